"""Turn binary documents into normalised plain text.

- PDF: positioned fragments via pypdf, line breaks from vertical offsets
- Word: raw paragraph and table text via python-docx
- strips `(cid:N)` glyph artifacts and control characters
"""

from __future__ import annotations

import io
import logging
import re
import zipfile
from pathlib import PurePath
from typing import Any, Callable

from docx import Document as load_docx
from docx.opc.exceptions import PackageNotFoundError
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from ..errors import UnreadableDocumentError, UnsupportedFormatError


logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".pdf", ".docx", ".doc")

_CID_RE = re.compile(r"\(cid:\d+\)")
_LINE_SEPARATORS = re.compile(r"\r\n?|[\u2028\u2029\x0b\x0c]")
_CONTROL = re.compile(r"[\x00-\x08\x0e-\x1f\x7f-\x9f]")
_HSPACE = re.compile(r"[^\S\n]+")
_BLANK_RUNS = re.compile(r"\n{3,}")


def clean_text(text: str) -> str:
    """Normalise whitespace: single spaces, at most one blank line, no control chars."""
    text = _CID_RE.sub("", text)
    text = _LINE_SEPARATORS.sub("\n", text)
    text = _CONTROL.sub("", text)
    text = _HSPACE.sub(" ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = _BLANK_RUNS.sub("\n\n", text)
    return text.strip()


def format_for(file_name: str) -> str:
    """Return the lower-cased suffix of a supported file name."""
    suffix = PurePath(file_name).suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise UnsupportedFormatError(file_name)
    return suffix


class TextExtractor:
    """Turn PDF and Word documents into cleaned text."""

    def __init__(self, line_threshold: float = 5.0):
        self.line_threshold = line_threshold
        self._handlers: dict[str, Callable[[bytes], str]] = {
            ".pdf": self._extract_pdf,
            ".docx": self._extract_docx,
            ".doc": self._extract_docx,
        }

    def extract(self, data: bytes, file_name: str) -> str:
        """Extract cleaned text, dispatching on the file name's suffix.

        Raises UnsupportedFormatError for unknown suffixes and
        UnreadableDocumentError when nothing readable comes out.
        """
        suffix = format_for(file_name)
        raw = self._handlers[suffix](data)
        text = clean_text(raw)
        if not text:
            raise UnreadableDocumentError(
                f"No readable text found in {file_name!r}. "
                "The file might be scanned or image-based.",
                {"file_name": file_name},
            )
        logger.debug("Extracted %d characters from %s", len(text), file_name)
        return text

    def _extract_pdf(self, data: bytes) -> str:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [self._page_text(page) for page in reader.pages]
        except PyPdfError as e:
            raise UnreadableDocumentError(f"Failed to read PDF: {e}") from e
        except Exception as e:
            # damaged streams surface as NotImplementedError or AttributeError
            raise UnreadableDocumentError(
                f"Failed to read PDF: {type(e).__name__}: {e}"
            ) from e
        return "\n\n".join(pages)

    def _page_text(self, page: Any) -> str:
        """Join a page's text fragments, breaking lines on vertical jumps."""
        fragments: list[tuple[str, float]] = []

        def visitor(text, cm, tm, font_dict, font_size):
            text = text.strip()
            if text:
                # y of the text matrix mapped through the current transformation matrix
                y = tm[4] * cm[1] + tm[5] * cm[3] + cm[5]
                fragments.append((text, y))

        page.extract_text(visitor_text=visitor)

        parts: list[str] = []
        previous_y: float | None = None
        for text, y in fragments:
            if previous_y is not None:
                parts.append("\n" if abs(y - previous_y) > self.line_threshold else " ")
            parts.append(text)
            previous_y = y
        return "".join(parts)

    def _extract_docx(self, data: bytes) -> str:
        try:
            document = load_docx(io.BytesIO(data))
            lines = [paragraph.text for paragraph in document.paragraphs]
            for table in document.tables:
                for row in table.rows:
                    lines.append(" ".join(cell.text for cell in row.cells))
        except (PackageNotFoundError, zipfile.BadZipFile) as e:
            raise UnreadableDocumentError(f"Failed to read Word document: {e}") from e
        except Exception as e:
            # malformed XML parts inside an otherwise valid package
            raise UnreadableDocumentError(
                f"Failed to read Word document: {type(e).__name__}: {e}"
            ) from e
        return "\n".join(lines)
