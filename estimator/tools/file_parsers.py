# estimator/tools/file_parsers.py

from __future__ import annotations

import io
import logging
import os
from typing import Iterable, List, Optional, Tuple

from google.genai import types
from PyPDF2 import PdfReader

from estimator.config import DEFAULT_MODEL
from estimator.exceptions import ConfigError
from estimator.main_agent import _get_genai_client

logger = logging.getLogger(__name__)

PDF_TYPES = ("application/pdf",)
OFFICE_TYPES = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
)
TEXT_TYPES = ("text/plain", "text/markdown", "application/json")
IMAGE_TYPES = ("image/png", "image/jpeg", "image/webp")

ALLOWED_MIME_TYPES = PDF_TYPES + OFFICE_TYPES + TEXT_TYPES + IMAGE_TYPES

_EXTENSION_TYPES = {
    ".pdf": "application/pdf",
    ".docx": OFFICE_TYPES[0],
    ".doc": "application/msword",
    ".xlsx": OFFICE_TYPES[2],
    ".xls": "application/vnd.ms-excel",
    ".txt": "text/plain",
    ".log": "text/plain",
    ".md": "text/markdown",
    ".json": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}


def guess_mime_type(filename: str, declared: Optional[str] = None) -> str:
    """Trust the declared type when it is one we accept, else the extension."""
    if declared in ALLOWED_MIME_TYPES:
        return declared  # type: ignore[return-value]
    _, ext = os.path.splitext(filename.lower())
    return _EXTENSION_TYPES.get(ext, declared or "application/octet-stream")


def is_allowed_file(filename: str, mime_type: Optional[str] = None) -> bool:
    return guess_mime_type(filename, mime_type) in ALLOWED_MIME_TYPES


# --------------------------------------------------------------------
# PDF
# --------------------------------------------------------------------


def _extract_text_from_pdf_bytes(data: bytes) -> str:
    """All page text of a PDF; pages PyPDF2 cannot read are skipped."""
    pages: List[str] = []
    try:
        reader = PdfReader(io.BytesIO(data))
    except Exception as e:
        logger.warning("Could not open PDF: %s", e)
        return ""

    for number, page in enumerate(reader.pages, start=1):
        try:
            content = page.extract_text() or ""
        except Exception as e:
            logger.debug("Skipping unreadable PDF page %d: %s", number, e)
            continue
        if content.strip():
            pages.append(content)

    return "\n".join(pages).strip()


# --------------------------------------------------------------------
# Images (whiteboard photos, wireframes) via Gemini
# --------------------------------------------------------------------

_IMAGE_PROMPT = """
The attached image belongs to a software project brief: a whiteboard photo,
sticky notes, a wireframe or a screenshot of a requirements document.

Copy out every piece of readable text, then list the product features it
implies, one per line. Answer in plain text:

RAW_TEXT:
<everything you can read>

FEATURES:
- <feature>
"""


def _extract_text_from_image_bytes(
    data: bytes,
    mime_type: str,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
) -> str:
    """Transcription plus feature list for an image, "" without an API key."""
    try:
        client = _get_genai_client(api_key)
    except ConfigError as e:
        logger.warning("Skipping image transcription: %s", e)
        return ""

    try:
        response = client.models.generate_content(
            model=model or os.getenv("ESTIMATOR_MODEL") or DEFAULT_MODEL,
            contents=[_IMAGE_PROMPT.strip(), types.Part.from_bytes(data=data, mime_type=mime_type)],
        )
    except Exception as e:
        logger.warning("Image transcription failed: %s", e)
        return ""

    return (response.text or "").strip()


# --------------------------------------------------------------------
# Main entrypoints
# --------------------------------------------------------------------


def extract_text_from_bytes(
    name: str,
    raw_bytes: bytes,
    mime_type: Optional[str] = None,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
) -> str:
    """Text for one document, or "" when nothing could be read."""
    mime = guess_mime_type(name, mime_type)

    if mime in PDF_TYPES:
        return _extract_text_from_pdf_bytes(raw_bytes)

    if mime in IMAGE_TYPES:
        return _extract_text_from_image_bytes(raw_bytes, mime, api_key, model)

    if mime in OFFICE_TYPES:
        logger.warning("No text extractor for %s (%s); skipping", name, mime)
        return ""

    return raw_bytes.decode("utf-8", errors="ignore").strip()


def extract_text_from_documents(
    documents: Iterable[Tuple[str, bytes, Optional[str]]],
    api_key: Optional[str] = None,
    model: Optional[str] = None,
) -> str:
    """
    Merge text from (name, bytes, mime_type) triples with a section header
    per document. `api_key` and `model` are used for image transcription.
    """
    merged_chunks: List[str] = []

    for name, raw_bytes, mime_type in documents:
        if not raw_bytes:
            continue
        text = extract_text_from_bytes(name, bytes(raw_bytes), mime_type, api_key, model)
        if text:
            merged_chunks.append(f"# Extracted from {name}\n{text}")

    return "\n\n".join(merged_chunks).strip()
