"""Document Extraction Utility - Turn downloaded file bytes into text.

Supports:
- Google Docs exported as plain text
- PDF files
- DOCX files
- Plain text files
"""
import io
import logging
from dataclasses import dataclass, field
from typing import Optional

import pypdf
from docx import Document

logger = logging.getLogger(__name__)

GOOGLE_DOC = "application/vnd.google-apps.document"
PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PLAIN_TEXT = "text/plain"

SUPPORTED_MIME_TYPES = (GOOGLE_DOC, PDF, PLAIN_TEXT, DOCX)


@dataclass
class ExtractionResult:
    """Result of document extraction."""
    success: bool
    content: str
    source: str
    format: str
    page_count: int = 0
    error: Optional[str] = None
    metadata: dict = field(default_factory=dict)


class DocumentExtractor:
    """Unified text extraction for downloaded Drive content.

    Example:
        >>> extractor = DocumentExtractor()
        >>> result = extractor.extract(data, "application/pdf", "report.pdf")
        >>> if result.success:
        ...     print(result.content)
    """

    def extract(self, data: bytes, mime_type: str, source: str = "memory") -> ExtractionResult:
        """Extract text from in-memory bytes.

        Args:
            data: Raw bytes as returned by the store.
            mime_type: MIME type of the original file.
            source: Name for logging/tracking.

        Returns:
            ExtractionResult with extracted content or error.
        """
        if mime_type == PDF:
            return self._extract_pdf_bytes(data, source)
        if mime_type == DOCX:
            return self._extract_docx_bytes(data, source)
        if mime_type == GOOGLE_DOC or mime_type.startswith("text/"):
            return self._decode_text(data, source, mime_type)
        return ExtractionResult(
            success=False,
            content="",
            source=source,
            format=mime_type,
            error=f"Unsupported MIME type: {mime_type}"
        )

    def _decode_text(self, data: bytes, source: str, mime_type: str) -> ExtractionResult:
        # Google Docs exports usually come with a BOM
        try:
            content = data.decode("utf-8-sig")
        except UnicodeDecodeError:
            content = data.decode("latin-1")
            logger.debug(f"{source} is not UTF-8; decoded as latin-1")
        return ExtractionResult(
            success=True,
            content=content,
            source=source,
            format="google_doc" if mime_type == GOOGLE_DOC else "text",
            metadata={"mime_type": mime_type}
        )

    def _extract_pdf_bytes(self, data: bytes, source: str) -> ExtractionResult:
        """Extract text from PDF bytes."""
        try:
            reader = pypdf.PdfReader(io.BytesIO(data))
            pages = []
            for page in reader.pages:
                text = page.extract_text()
                if text:
                    pages.append(text)

            return ExtractionResult(
                success=True,
                content="\n\n".join(pages),
                source=source,
                format="pdf",
                page_count=len(reader.pages)
            )

        except Exception as e:
            logger.error(f"PDF extraction error for {source}: {e}")
            return ExtractionResult(
                success=False,
                content="",
                source=source,
                format="pdf",
                error=str(e)
            )

    def _extract_docx_bytes(self, data: bytes, source: str) -> ExtractionResult:
        """Extract text from DOCX bytes."""
        try:
            doc = Document(io.BytesIO(data))
            paragraphs = [p.text for p in doc.paragraphs if p.text.strip()]

            return ExtractionResult(
                success=True,
                content="\n".join(paragraphs),
                source=source,
                format="docx"
            )

        except Exception as e:
            logger.error(f"DOCX extraction error for {source}: {e}")
            return ExtractionResult(
                success=False,
                content="",
                source=source,
                format="docx",
                error=str(e)
            )
