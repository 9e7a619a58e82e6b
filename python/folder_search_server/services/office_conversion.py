"""Convert office documents (PDF, DOCX, PPTX) to plain text."""
import logging
from pathlib import Path
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


class OfficeConverter:
    """Converts office documents with lightweight, in-process libraries."""

    def __init__(self):
        self._converters: Dict[str, Callable[[str], str]] = {
            '.pdf': self._convert_pdf_with_pymupdf,
            '.docx': self._convert_docx_with_python_docx,
            '.pptx': self._convert_pptx_with_python_pptx,
        }

    @property
    def supported_extensions(self):
        return set(self._converters)

    def is_supported(self, file_path: str) -> bool:
        """Check if a file extension has a converter."""
        return Path(file_path).suffix.lower() in self._converters

    def convert(self, file_path: str) -> str:
        """Convert a document to text. Unsupported extensions give an empty string.

        Conversion errors propagate to the caller.
        """
        converter = self._converters.get(Path(file_path).suffix.lower())
        if converter is None:
            return ""
        text = converter(file_path)
        logger.info(f"Converted {file_path} ({len(text)} chars)")
        return text

    def _convert_pdf_with_pymupdf(self, file_path: str) -> str:
        """Convert PDF to markdown using pymupdf4llm."""
        import pymupdf4llm

        return pymupdf4llm.to_markdown(file_path)

    def _convert_docx_with_python_docx(self, file_path: str) -> str:
        """Convert DOCX using python-docx paragraphs."""
        from docx import Document

        doc = Document(file_path)
        return "\n".join(para.text for para in doc.paragraphs)

    def _convert_pptx_with_python_pptx(self, file_path: str) -> str:
        """Convert PPTX using the text of every shape on every slide."""
        from pptx import Presentation

        prs = Presentation(file_path)
        text = []
        for slide in prs.slides:
            for shape in slide.shapes:
                if hasattr(shape, "text"):
                    text.append(shape.text)
        return "\n".join(text)


# Global instance
_office_converter: Optional[OfficeConverter] = None


def get_office_converter() -> OfficeConverter:
    """Get or create the global office converter instance."""
    global _office_converter
    if _office_converter is None:
        _office_converter = OfficeConverter()
    return _office_converter
