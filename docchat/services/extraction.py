"""Plain-text extraction for uploaded documents.

Strategies are registered against filename suffixes and looked up in
registration order; the first suffix that matches wins. Files with no
matching suffix are read verbatim as UTF-8 text.

Suffix matching is case-sensitive: ``report.CSV`` is read as plain text.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import docx
import openpyxl
import pytesseract
import xlrd
from PIL import Image
from starlette.concurrency import run_in_threadpool

from docchat.config import settings
from docchat.errors import ExtractionError
from docchat.services.upload_storage import scoped_upload

logger = logging.getLogger(__name__)

PDF_UNSUPPORTED_TEXT = "SORRY PDFs ARE CURRENTLY UNSUPPORTED FORMAT"

Extractor = Callable[[Path], str]

_REGISTRY: List[Tuple[Tuple[str, ...], Extractor]] = []


def register_extractor(suffixes: Sequence[str], extractor: Extractor) -> None:
    """Register ``extractor`` for files ending in any of ``suffixes``."""
    _REGISTRY.append((tuple(suffixes), extractor))


def resolve_extractor(file_name: str) -> Extractor:
    for suffixes, extractor in _REGISTRY:
        if file_name.endswith(suffixes):
            return extractor
    return extract_plain_text


def _cell_text(value: object) -> str:
    if value is None:
        return ""
    # 数值单元格：整数不带 ".0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _join_rows(rows: Sequence[Sequence[object]]) -> str:
    lines: List[str] = []
    for row in rows:
        cells = list(row)
        while cells and cells[-1] in (None, ""):
            cells.pop()
        lines.append(", ".join(_cell_text(c) for c in cells))
    return "\n".join(lines)


def extract_pdf(_path: Path) -> str:
    return PDF_UNSUPPORTED_TEXT


def extract_image(path: Path) -> str:
    with Image.open(path) as img:
        text = pytesseract.image_to_string(img, lang=settings.ocr_lang)
    return (text or "").strip()


def extract_csv(path: Path) -> str:
    with open(path, newline="", encoding="utf-8-sig", errors="replace") as f:
        rows = [row for row in csv.reader(f) if row]
    return "\n".join(", ".join(row) for row in rows)


def extract_xlsx(path: Path) -> str:
    # 传文件对象而非路径：openpyxl 会按扩展名拒绝 .xls
    with open(path, "rb") as f:
        wb = openpyxl.load_workbook(f, read_only=True, data_only=True)
        try:
            ws = wb.worksheets[0]
            rows = list(ws.iter_rows(values_only=True))
        finally:
            wb.close()
    return _join_rows(rows)


def extract_xls(path: Path) -> str:
    # 后缀为 .xls 但内容是 OOXML 工作簿时，交给 openpyxl
    if xlrd.inspect_format(str(path)) == "xlsx":
        return extract_xlsx(path)
    book = xlrd.open_workbook(str(path))
    sheet = book.sheet_by_index(0)
    return _join_rows([sheet.row_values(r) for r in range(sheet.nrows)])


def extract_docx(path: Path) -> str:
    """段落文本在前，表格单元格文本按行列顺序在后。"""
    document = docx.Document(str(path))
    lines = [p.text for p in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            lines.extend(cell.text for cell in row.cells)
    return "\n".join(lines)


def extract_plain_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


register_extractor((".pdf",), extract_pdf)
register_extractor((".png", ".jpg", ".jpeg"), extract_image)
register_extractor((".csv",), extract_csv)
register_extractor((".xlsx",), extract_xlsx)
register_extractor((".xls",), extract_xls)
register_extractor((".docx",), extract_docx)


async def extract_text(
    file_name: str,
    raw: bytes,
    upload_dir: Optional[Path] = None,
) -> str:
    """Store ``raw`` in a scoped temp file and return its text content.

    The temp file is removed whether extraction succeeds or fails. Any
    strategy failure is raised as ExtractionError.
    """
    extractor = resolve_extractor(file_name)
    target_dir = Path(upload_dir) if upload_dir is not None else settings.upload_dir
    async with scoped_upload(file_name, raw, target_dir) as path:
        try:
            text = await run_in_threadpool(extractor, path)
        except Exception as exc:
            logger.exception("Extraction failed | file=%s | strategy=%s", file_name, extractor.__name__)
            raise ExtractionError(f"failed to extract {file_name!r}: {exc}") from exc
    logger.info(
        "Extraction done | file=%s | strategy=%s | chars=%d",
        file_name,
        extractor.__name__,
        len(text),
    )
    return text
