from listening_core.domain.models import BinaryPart, Document, Message, TextPart
from listening_core.engine.context import (
    compose_document_block,
    compose_rule_block,
    compose_system_instruction,
    map_history,
)


def test_blocks_omitted_when_empty():
    assert compose_document_block([]) is None
    assert compose_rule_block([]) is None


def test_document_block_format():
    block = compose_document_block([Document("a.txt", "alpha"), Document("b.txt", "beta")])
    assert block == (
        "--- SOURCE DOCUMENTS FOR CITATION ---\n\n"
        "File Name: a.txt\nContent:\nalpha"
        "\n\n---\n"
        "File Name: b.txt\nContent:\nbeta"
    )


def test_rule_block_keeps_order():
    assert compose_rule_block(["first", "second"]) == "--- YOUR LOGIC (RULES) ---\n- first\n- second"


def test_system_instruction_documents_before_rules():
    text = compose_system_instruction([Document("a.txt", "alpha {braces}")], ["be brief"])
    assert text.index("File Name: a.txt") < text.index("- be brief")
    assert "alpha {braces}" in text
    assert "---CITATIONS---" in text


def test_system_instruction_fallbacks():
    text = compose_system_instruction([], [])
    assert "No source documents provided." in text
    assert "You have no logic (rules) defined yet." in text


def test_map_history_one_to_one():
    img = BinaryPart(mime_type="image/png", data="aGk=")
    history = [
        Message(id="u1", role="user", parts=(TextPart("look"), img)),
        Message(id="m1", role="model", parts=()),
    ]
    mapped = map_history(history)
    assert [m.role for m in mapped] == ["user", "model"]
    assert mapped[0].parts == [TextPart("look"), img]
    assert mapped[1].parts == []
    # 不修改原消息
    assert history[0].parts == (TextPart("look"), img)
