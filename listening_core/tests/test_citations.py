from listening_core.domain.models import Citation
from listening_core.engine.citations import (
    CANCELLED_SUFFIX,
    CITATION_PARSE_SUFFIX,
    decode_response,
    finalize_response,
)


def test_decode_without_separator():
    res = decode_response("  plain answer \n", False)
    assert res.answer == "plain answer"
    assert res.citations == ()


def test_decode_valid_citations():
    res = decode_response('Answer---CITATIONS---[{"fileName":"a.pdf","quote":"x"}]', False)
    assert res.answer == "Answer"
    assert res.citations == (Citation(file_name="a.pdf", quote="x"),)


def test_decode_not_json():
    res = decode_response("Answer text---CITATIONS---not json here", False)
    assert res.answer == "Answer text" + CITATION_PARSE_SUFFIX
    assert res.citations == ()
    assert not res.citations_ok


def test_decode_broken_json_between_brackets():
    res = decode_response('Answer\n---CITATIONS---\n[{"fileName": "a.pdf", "quote": ]', False)
    assert res.answer.endswith("(Could not parse citations)")
    assert res.citations == ()


def test_decode_bracket_order_invalid():
    res = decode_response("Answer---CITATIONS---] oops [", False)
    assert res.answer == "Answer" + CITATION_PARSE_SUFFIX


def test_decode_splits_on_first_separator_only():
    buf = 'A---CITATIONS---[{"fileName":"f.txt","quote":"q ---CITATIONS--- q"}]'
    res = decode_response(buf, False)
    assert res.answer == "A"
    assert res.citations[0].quote == "q ---CITATIONS--- q"


def test_decode_drops_malformed_elements():
    buf = 'A---CITATIONS---[{"fileName":"a.txt","quote":"ok"}, {"fileName": 3}, "x", {"quote":"no name"}]'
    res = decode_response(buf, False)
    assert res.citations == (Citation(file_name="a.txt", quote="ok"),)
    assert res.answer == "A"


def test_decode_ignores_text_around_array():
    buf = 'A\n---CITATIONS---\n```json\n[{"fileName":"a.txt","quote":"q"}]\n```'
    res = decode_response(buf, False)
    assert len(res.citations) == 1


def test_decode_cancelled_empty_buffer():
    res = decode_response("", True)
    assert res.answer == CANCELLED_SUFFIX.strip()
    assert res.answer == "(Generation stopped by user)"


def test_decode_cancelled_after_parse_failure():
    res = decode_response("partial---CITATIONS---[{", True)
    assert res.answer == "partial" + CITATION_PARSE_SUFFIX + CANCELLED_SUFFIX


def test_decode_is_idempotent():
    buf = 'Answer---CITATIONS---[{"fileName":"a.pdf","quote":"x"}]'
    assert decode_response(buf, True) == decode_response(buf, True)


def test_finalize_measures_elapsed_time():
    ticks = iter([2.5])
    res = finalize_response("hi", False, started_at=1.0, clock=lambda: next(ticks))
    assert res.answer == "hi"
    assert res.generation_time_ms == 1500.0
