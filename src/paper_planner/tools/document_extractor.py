"""Extract plain text from uploaded PDF and Word documents.

Parsing runs in a worker thread under a timeout so a pathological file cannot
stall the caller. The thread itself cannot be interrupted and finishes in the
background after a timeout. Every parser error is mapped onto the ``DocumentError``
family; callers abort only the current review or import.
"""

from __future__ import annotations

import asyncio
import io
import logging
from pathlib import PurePath

from docx import Document
from docx.oxml.ns import qn
from docx.table import Table
from docx.text.paragraph import Paragraph
from pypdf import PdfReader

from ..exceptions import EmptyDocument, ExtractionFailure, UnsupportedFormat
from ..models import UploadedFile

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".pdf", ".doc", ".docx")

_MIME_EXTENSIONS = {
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
}


def validate_upload(upload: UploadedFile) -> str:
    """Return the normalised extension of *upload* or raise ``UnsupportedFormat``.

    The file name decides first; the MIME type is consulted only when the name
    carries no extension.
    """
    ext = PurePath(upload.name).suffix.lower()
    if not ext and upload.mime_type:
        ext = _MIME_EXTENSIONS.get(upload.mime_type.lower(), "")
    if ext not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormat(
            f"Unsupported file type {ext or '(none)'!r} for {upload.name!r}. "
            f"Upload one of: {', '.join(SUPPORTED_EXTENSIONS)}"
        )
    return ext


def _pdf_text(content: bytes) -> str:
    reader = PdfReader(io.BytesIO(content))
    if reader.is_encrypted:
        raise ExtractionFailure("PDF is password-protected")
    pages = [(page.extract_text() or "").strip() for page in reader.pages]
    return "\n\n".join(p for p in pages if p)


def _docx_text(content: bytes) -> str:
    """Paragraphs and table rows, in the order they appear in the body."""
    doc = Document(io.BytesIO(content))
    parts: list[str] = []
    for child in doc.element.body.iterchildren():
        if child.tag == qn("w:p"):
            text = Paragraph(child, doc).text.strip()
            if text:
                parts.append(text)
        elif child.tag == qn("w:tbl"):
            for row in Table(child, doc).rows:
                cells = [c.text.strip() for c in row.cells if c.text.strip()]
                if cells:
                    parts.append(" | ".join(cells))
    return "\n".join(parts)


def _parse(ext: str, content: bytes) -> str:
    if ext == ".pdf":
        return _pdf_text(content)
    if ext == ".docx":
        return _docx_text(content)
    raise ExtractionFailure("Legacy .doc files cannot be read; save the document as .docx or .pdf")


async def extract_text(upload: UploadedFile, *, timeout: float = 30.0) -> str:
    """Return the plain text of *upload* in document order.

    Raises:
        UnsupportedFormat: extension outside pdf/doc/docx.
        EmptyDocument: zero-byte file, or no usable characters extracted.
        ExtractionFailure: corrupt or protected file, or parsing timed out.
    """
    ext = validate_upload(upload)
    if not upload.content:
        raise EmptyDocument(f"{upload.name} is empty")

    try:
        text = await asyncio.wait_for(asyncio.to_thread(_parse, ext, upload.content), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise ExtractionFailure(f"Extracting {upload.name} timed out after {timeout:.0f}s") from e
    except ExtractionFailure:
        raise
    except Exception as e:
        raise ExtractionFailure(f"Could not read {upload.name}: {e}") from e

    text = text.strip()
    if not text:
        raise EmptyDocument(f"No text could be extracted from {upload.name}")
    logger.debug("Extracted %d characters from %s", len(text), upload.name)
    return text
