"""PDF text extraction.

Produces one text string per page so the chunker can tag every passage with
its page number.
"""

from pathlib import Path

from loguru import logger
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from rag_backend.errors import InvalidArgumentError


def load_pdf_pages(path: str | Path) -> list[str]:
    """Extract text from every page of a PDF.

    Args:
        path: Path to the PDF file

    Returns:
        Page texts in page order (empty string for pages without text)

    Raises:
        InvalidArgumentError: If the file cannot be parsed or has no pages
    """
    pdf_path = Path(path)
    try:
        reader = PdfReader(pdf_path)
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PdfReadError, OSError, ValueError) as exc:
        raise InvalidArgumentError(
            f"PDF file is empty or could not be read: {pdf_path.name}"
        ) from exc

    if not pages:
        raise InvalidArgumentError(f"PDF file is empty or could not be read: {pdf_path.name}")

    logger.debug(f"Loaded {len(pages)} pages from {pdf_path.name}")
    return pages
