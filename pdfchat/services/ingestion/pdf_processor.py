"""Page-by-page text extraction from uploaded PDF files.

Reads PDFs with PyMuPDF (fitz) and returns one
:class:`~pdfchat.models.rag.PageText` per page, keeping 1-based page
numbers so chunks can cite where they came from.

Anything that prevents reading the file (missing, empty, not a PDF,
corrupt beyond repair, password protected) raises
:class:`~pdfchat.utils.errors.FileUnreadableError`.  A readable PDF with
no text layer (e.g. a scan) is not an error; it simply yields empty pages.
"""

from __future__ import annotations

from pathlib import Path

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from pdfchat.models.rag import PageText
from pdfchat.utils.errors import FileUnreadableError

logger = structlog.get_logger(logger_name=__name__)


class PDFProcessor:
    """Extracts raw page text from PDF files on disk."""

    def extract_pages(self, file_path: str) -> list[PageText]:
        """Read every page of the PDF at *file_path*.

        Blocking; the ingestion service calls it from a worker thread.

        Returns
        -------
        list[PageText]
            One entry per page that has extractable text, in page order.

        Raises
        ------
        FileUnreadableError
            If the file is missing or cannot be parsed as an unencrypted PDF.
        """
        path = Path(file_path)
        if not path.is_file():
            raise FileUnreadableError(message=f"Upload not found: {file_path}", provider_name="pymupdf")

        try:
            # filetype pins the parser; otherwise PyMuPDF would pick one from the extension.
            doc = fitz.open(str(path), filetype="pdf")
        except Exception as exc:
            logger.error("pdf_open_failed", file_path=file_path, error=str(exc))
            raise FileUnreadableError(
                message=f"Not a readable PDF: {path.name} ({exc})",
                provider_name="pymupdf",
            ) from exc

        try:
            # Encrypted files open without error; the password check comes after.
            if doc.needs_pass:
                raise FileUnreadableError(
                    message=f"PDF is password protected: {path.name}",
                    provider_name="pymupdf",
                )
            pages = self._read_pages(doc, path.name)
            page_count = len(doc)
        finally:
            doc.close()

        if not pages:
            logger.warning("pdf_no_text_extracted", file_path=file_path, page_count=page_count)
        else:
            logger.info("pdf_processed", file_path=file_path, page_count=page_count, text_pages=len(pages))
        return pages

    @staticmethod
    def _read_pages(doc: fitz.Document, name: str) -> list[PageText]:
        pages: list[PageText] = []
        try:
            for page_index in range(len(doc)):
                text = doc[page_index].get_text("text").strip()
                # Blank pages are skipped; numbering still follows the document.
                if text:
                    pages.append(PageText(page_number=page_index + 1, text=text))
        except FileUnreadableError:
            raise
        except Exception as exc:
            raise FileUnreadableError(
                message=f"Failed to extract text from {name}: {exc}",
                provider_name="pymupdf",
            ) from exc
        return pages
