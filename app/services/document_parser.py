"""
Document parsing service for study material.

Extracts text from PDF (PyMuPDF, with Tesseract OCR for scanned pages),
DOCX (python-docx) and plain text / markdown uploads. Returns a
ParsedDocument whose ``full_text`` feeds quiz and notes generation.
"""
from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiofiles
import fitz  # PyMuPDF
import pytesseract
from docx import Document as DocxDocument
from langdetect import detect as detect_language
from langdetect.lang_detect_exception import LangDetectException
from PIL import Image

from app.config import settings

logger = logging.getLogger(__name__)

# Pages with fewer extracted characters than this are treated as scanned
MIN_PAGE_TEXT_CHARS = 20
WORDS_PER_MINUTE = 200


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class ParsedDocument:
    """
    Output of the DocumentParser.

    Attributes:
        full_text:  Complete text of the document.
        pages:      Per-page text (PDF only; one entry for other formats).
        metadata:   page_count, detected_language, word_count,
                    reading_time_minutes, ocr_pages, title, author, file_type.
    """

    full_text: str
    pages: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class DocumentParser:
    """Parses PDF, DOCX, TXT and MD uploads into ParsedDocument objects."""

    def __init__(self) -> None:
        if settings.TESSERACT_CMD:
            pytesseract.pytesseract.tesseract_cmd = settings.TESSERACT_CMD

    async def parse_document(self, file_path: str, file_type: str) -> ParsedDocument:
        """
        Parse a document file.

        Args:
            file_path: Path to the file on disk.
            file_type: Extension with or without dot, e.g. ".pdf" or "docx".

        Raises:
            ValueError:   Unsupported file type.
            RuntimeError: Password-protected or unreadable file.
        """
        ft = file_type.lower().lstrip(".")
        if ft == "pdf":
            return await self._parse_pdf(file_path)
        elif ft == "docx":
            return await self._parse_docx(file_path)
        elif ft in ("txt", "md"):
            return await self._parse_text(file_path, ft)
        else:
            raise ValueError(f"Unsupported file type: {file_type!r}")

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------

    async def _parse_pdf(self, file_path: str) -> ParsedDocument:
        try:
            doc = fitz.open(file_path)
        except Exception as exc:
            raise RuntimeError(f"Cannot open PDF file: {exc}") from exc

        if doc.needs_pass:
            doc.close()
            raise RuntimeError("PDF is password-protected. Please provide an unlocked copy.")

        raw_meta = doc.metadata or {}
        pages: List[str] = []
        ocr_pages = 0
        try:
            for page in doc:
                text = _clean_page_text(page.get_text("text"))
                if len(text) < MIN_PAGE_TEXT_CHARS:
                    ocr_text = await self._ocr_page(page)
                    if ocr_text.strip():
                        ocr_pages += 1
                        text = _clean_page_text(ocr_text)
                pages.append(text)
            page_count = doc.page_count
        finally:
            doc.close()

        full_text = "\n\n".join(p for p in pages if p)
        metadata = _base_metadata(full_text, "pdf")
        metadata.update(
            page_count=page_count,
            ocr_pages=ocr_pages,
            title=raw_meta.get("title", "") or "",
            author=raw_meta.get("author", "") or "",
        )
        return ParsedDocument(full_text=full_text, pages=pages, metadata=metadata)

    async def _ocr_page(self, page: "fitz.Page") -> str:
        """Render a page at 2x scale and run Tesseract OCR."""
        try:
            pix = page.get_pixmap(matrix=fitz.Matrix(2, 2))
            img = Image.open(io.BytesIO(pix.tobytes("png")))
            return pytesseract.image_to_string(img)
        except Exception as exc:
            logger.warning("OCR failed on page %d: %s", page.number + 1, exc)
            return ""

    # ------------------------------------------------------------------
    # DOCX
    # ------------------------------------------------------------------

    async def _parse_docx(self, file_path: str) -> ParsedDocument:
        try:
            doc = DocxDocument(file_path)
        except Exception as exc:
            raise RuntimeError(f"Cannot open DOCX file: {exc}") from exc

        parts: List[str] = []
        for para in doc.paragraphs:
            text = para.text.strip()
            if not text:
                continue
            style_name = para.style.name.lower() if para.style and para.style.name else ""
            if style_name.startswith("heading") or style_name == "title":
                parts.append(f"\n## {text}")
            else:
                parts.append(text)

        for table in doc.tables:
            rows = []
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    rows.append(" | ".join(cells))
            if rows:
                parts.append("\n".join(rows))

        full_text = "\n".join(parts).strip()
        core = doc.core_properties
        metadata = _base_metadata(full_text, "docx")
        metadata.update(
            page_count=None,  # python-docx cannot report rendered page count
            title=core.title or "",
            author=core.author or "",
        )
        return ParsedDocument(full_text=full_text, pages=[full_text], metadata=metadata)

    # ------------------------------------------------------------------
    # Plain text / markdown
    # ------------------------------------------------------------------

    async def _parse_text(self, file_path: str, file_type: str) -> ParsedDocument:
        try:
            async with aiofiles.open(file_path, "rb") as fh:
                raw = await fh.read()
        except OSError as exc:
            raise RuntimeError(f"Cannot read text file: {exc}") from exc

        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            text = raw.decode("latin-1")

        full_text = text.replace("\r\n", "\n").strip()
        metadata = _base_metadata(full_text, file_type)
        metadata.update(page_count=None, title="", author="")
        return ParsedDocument(full_text=full_text, pages=[full_text], metadata=metadata)


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

def _clean_page_text(text: str) -> str:
    """Drop bare page-number lines and collapse runs of blank lines."""
    lines = [ln.rstrip() for ln in text.splitlines()]
    lines = [ln for ln in lines if not re.fullmatch(r"\s*\d{1,4}\s*", ln)]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def _base_metadata(full_text: str, file_type: str) -> Dict[str, Any]:
    word_count = len(full_text.split())
    return {
        "file_type": file_type,
        "word_count": word_count,
        "reading_time_minutes": round(word_count / WORDS_PER_MINUTE, 1),
        "detected_language": _detect_language(full_text[:3000]),
    }


def _detect_language(sample: str) -> Optional[str]:
    """ISO 639-1 code of a text sample, or 'unknown' for short/ambiguous text."""
    if len(sample.split()) < 20:
        return "unknown"
    try:
        return detect_language(sample)
    except LangDetectException:
        return "unknown"
