"""Extract plain text from Companies House filing PDFs."""

from __future__ import annotations

import logging
import re

from ch_analyst.errors import DocumentUnavailable

logger = logging.getLogger(__name__)


def clean_text(text: str) -> str:
    """Normalise extracted PDF text.

    Handles: unicode artifacts, form feeds, runs of spaces/tabs,
    trailing whitespace and excessive blank lines.
    """
    # 1. Remove unicode artifacts (BOM, zero-width spaces, soft hyphens)
    text = text.lstrip("\ufeff")
    text = re.sub(r"[\u200b\u200c\u200d\u00ad\u2060\ufeff]", "", text)
    text = text.replace("\f", "\n")

    # 2. Collapse multiple spaces/tabs to single space
    lines = [re.sub(r"[ \t]{2,}", " ", line).strip() for line in text.splitlines()]
    text = "\n".join(lines)

    # 3. Remove excessive blank lines (3+ -> 2)
    text = re.sub(r"\n{3,}", "\n\n", text)

    return text.strip()


def extract_pdf_text(pdf_bytes: bytes, max_chars: int | None = None) -> str:
    """Extract text from PDF bytes using PyMuPDF.

    Raises DocumentUnavailable for empty input, unreadable PDFs and
    documents with no text layer (e.g. scanned filings).
    """
    if not pdf_bytes:
        raise DocumentUnavailable("Document content is empty")

    import fitz  # PyMuPDF

    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as exc:
        raise DocumentUnavailable(f"Could not open PDF: {exc}") from exc

    pages = []
    try:
        for page in doc:
            pages.append(page.get_text())
    except Exception as exc:
        raise DocumentUnavailable(f"Could not read PDF text: {exc}") from exc
    finally:
        doc.close()

    text = clean_text("\n".join(pages))
    if not text:
        raise DocumentUnavailable("PDF has no extractable text")

    if max_chars is not None and len(text) > max_chars:
        logger.debug("Truncating document text from %d to %d chars", len(text), max_chars)
        text = text[:max_chars]
    return text
