"""Tests for the DocumentExtractor utility."""

from docsync.ingest.document_extractor import (
    DOCX,
    GOOGLE_DOC,
    PDF,
    PLAIN_TEXT,
    DocumentExtractor,
)


class TestDocumentExtractor:
    """Tests for in-memory extraction."""

    def test_plain_text(self):
        result = DocumentExtractor().extract(b"line one\nline two", PLAIN_TEXT, "notes.txt")

        assert result.success is True
        assert result.content == "line one\nline two"
        assert result.format == "text"

    def test_google_doc_export_strips_bom(self):
        result = DocumentExtractor().extract("\ufeffExported".encode("utf-8"), GOOGLE_DOC)

        assert result.content == "Exported"
        assert result.format == "google_doc"

    def test_non_utf8_text_falls_back(self):
        result = DocumentExtractor().extract("café".encode("latin-1"), PLAIN_TEXT)

        assert result.success is True
        assert result.content == "café"

    def test_invalid_pdf_fails_gracefully(self):
        result = DocumentExtractor().extract(b"not a pdf", PDF, "broken.pdf")

        assert result.success is False
        assert result.error

    def test_invalid_docx_fails_gracefully(self):
        result = DocumentExtractor().extract(b"not a docx", DOCX, "broken.docx")

        assert result.success is False
        assert result.format == "docx"

    def test_unsupported_type(self):
        result = DocumentExtractor().extract(b"\x89PNG", "image/png", "photo.png")

        assert result.success is False
        assert "Unsupported" in result.error
