"""纯文本文档导入。

每个文件独立读取：无法读取或解码的文件记录在 ``IngestReport.failures`` 中
（以文件名为键），不会产生部分内容。PDF 等格式由上游解析后直接以
``Document`` 传入。
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List

from listening_core.domain.exceptions import IngestFormatError
from listening_core.domain.models import Document
from listening_core.infrastructure.logging.logger import logger


@dataclass
class IngestReport:
    documents: List[Document] = field(default_factory=list)
    failures: Dict[str, IngestFormatError] = field(default_factory=dict)


def read_text_document(path: str | Path, encoding: str = "utf-8") -> Document:
    """读取单个文本文件；失败时抛出 IngestFormatError。"""
    p = Path(path)
    try:
        content = p.read_bytes().decode(encoding)
    except (OSError, UnicodeDecodeError) as e:
        raise IngestFormatError(code="INGEST_FORMAT_ERROR", message=str(e), file_name=p.name)
    return Document(file_name=p.name, content=content)


def ingest_text_files(paths: Iterable[str | Path], encoding: str = "utf-8") -> IngestReport:
    report = IngestReport()
    for path in paths:
        try:
            report.documents.append(read_text_document(path, encoding))
        except IngestFormatError as e:
            name = e.extra.get("file_name", str(path))
            logger.warning("Failed to ingest document", extra={"extra": {"file_name": name, "error": e.message}})
            report.failures[name] = e
    return report
