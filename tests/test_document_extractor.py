"""Tests for tools/document_extractor.py."""

from __future__ import annotations

import io
import time

import pytest
from docx import Document
from pypdf import PdfWriter

from conftest import make_docx_bytes
from paper_planner.exceptions import EmptyDocument, ExtractionFailure, UnsupportedFormat
from paper_planner.models import UploadedFile
from paper_planner.tools import document_extractor
from paper_planner.tools.document_extractor import extract_text, validate_upload


def _blank_pdf() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=200, height=200)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


class TestValidateUpload:
    @pytest.mark.parametrize("name", ["paper.pdf", "PAPER.PDF", "notes.doc", "draft.docx"])
    def test_supported(self, name):
        assert validate_upload(UploadedFile(name=name)) == "." + name.rsplit(".", 1)[1].lower()

    @pytest.mark.parametrize("name", ["paper.txt", "paper.pdf.exe", "image.png", "README"])
    def test_unsupported(self, name):
        with pytest.raises(UnsupportedFormat):
            validate_upload(UploadedFile(name=name))

    def test_mime_type_used_without_extension(self):
        upload = UploadedFile(name="upload", mime_type="application/pdf")
        assert validate_upload(upload) == ".pdf"


class TestExtractText:
    @pytest.mark.asyncio
    async def test_zero_byte_pdf_is_empty(self):
        with pytest.raises(EmptyDocument):
            await extract_text(UploadedFile(name="empty.pdf", content=b""))

    @pytest.mark.asyncio
    async def test_unsupported_rejected_before_parsing(self, monkeypatch):
        def _boom(*args):
            raise AssertionError("parser must not run")

        monkeypatch.setattr(document_extractor, "_parse", _boom)
        with pytest.raises(UnsupportedFormat):
            await extract_text(UploadedFile(name="notes.txt", content=b"hello"))

    @pytest.mark.asyncio
    async def test_docx_paragraphs_in_order(self):
        upload = UploadedFile(name="draft.docx", content=make_docx_bytes("First paragraph.", "", "Second paragraph."))
        text = await extract_text(upload)
        assert text == "First paragraph.\nSecond paragraph."

    @pytest.mark.asyncio
    async def test_docx_tables_stay_in_place(self):
        doc = Document()
        doc.add_paragraph("Methods overview.")
        table = doc.add_table(rows=2, cols=2)
        table.cell(0, 0).text = "Group"
        table.cell(0, 1).text = "n"
        table.cell(1, 0).text = "Control"
        table.cell(1, 1).text = "12"
        doc.add_paragraph("Results follow.")
        buf = io.BytesIO()
        doc.save(buf)

        text = await extract_text(UploadedFile(name="methods.docx", content=buf.getvalue()))
        assert text == "Methods overview.\nGroup | n\nControl | 12\nResults follow."

    @pytest.mark.asyncio
    async def test_blank_pdf_is_empty(self):
        with pytest.raises(EmptyDocument):
            await extract_text(UploadedFile(name="blank.pdf", content=_blank_pdf()))

    @pytest.mark.asyncio
    async def test_corrupt_pdf(self):
        with pytest.raises(ExtractionFailure):
            await extract_text(UploadedFile(name="broken.pdf", content=b"this is not a pdf"))

    @pytest.mark.asyncio
    async def test_corrupt_docx(self):
        with pytest.raises(ExtractionFailure):
            await extract_text(UploadedFile(name="broken.docx", content=b"PK\x03\x04garbage"))

    @pytest.mark.asyncio
    async def test_legacy_doc(self):
        with pytest.raises(ExtractionFailure, match=r"\.docx or \.pdf"):
            await extract_text(UploadedFile(name="old.doc", content=b"\xd0\xcf\x11\xe0"))

    @pytest.mark.asyncio
    async def test_pdf_pages_joined(self, monkeypatch):
        class _Page:
            def __init__(self, text):
                self._text = text

            def extract_text(self):
                return self._text

        class _Reader:
            is_encrypted = False

            def __init__(self, stream):
                self.pages = [_Page("Page one."), _Page(""), _Page("Page three.")]

        monkeypatch.setattr(document_extractor, "PdfReader", _Reader)
        text = await extract_text(UploadedFile(name="paper.pdf", content=b"%PDF-1.4"))
        assert text == "Page one.\n\nPage three."

    @pytest.mark.asyncio
    async def test_encrypted_pdf(self, monkeypatch):
        class _Reader:
            is_encrypted = True
            pages: list = []

            def __init__(self, stream):
                pass

        monkeypatch.setattr(document_extractor, "PdfReader", _Reader)
        with pytest.raises(ExtractionFailure, match="password"):
            await extract_text(UploadedFile(name="locked.pdf", content=b"%PDF-1.4"))

    @pytest.mark.asyncio
    async def test_timeout(self, monkeypatch):
        def _slow(ext, content):
            time.sleep(0.5)
            return "late"

        monkeypatch.setattr(document_extractor, "_parse", _slow)
        with pytest.raises(ExtractionFailure, match="timed out"):
            await extract_text(UploadedFile(name="slow.pdf", content=b"%PDF"), timeout=0.05)
