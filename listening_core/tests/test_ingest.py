import tempfile
from pathlib import Path

from listening_core.domain.session import SessionContext
from listening_core.infrastructure.ingest import ingest_text_files


def test_partial_success_reports_failures_by_name():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d)
        good = root / "good.txt"
        good.write_text("hello", encoding="utf-8")
        bad = root / "bad.txt"
        bad.write_bytes(b"\xff\xfe\xfa")
        missing = root / "missing.txt"

        report = ingest_text_files([good, bad, missing])
        assert [doc.file_name for doc in report.documents] == ["good.txt"]
        assert report.documents[0].content == "hello"
        assert set(report.failures) == {"bad.txt", "missing.txt"}
        assert report.failures["bad.txt"].code == "INGEST_FORMAT_ERROR"


def test_duplicate_file_names_are_filtered():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d)
        (root / "a.txt").write_text("one", encoding="utf-8")
        session = SessionContext()
        session.add_documents(ingest_text_files([root / "a.txt"]).documents)
        (root / "a.txt").write_text("two", encoding="utf-8")
        added = session.add_documents(ingest_text_files([root / "a.txt"]).documents)
        assert added == []
        assert len(session.documents) == 1
        assert session.documents[0].content == "one"
