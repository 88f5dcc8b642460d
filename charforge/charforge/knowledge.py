"""Turn uploaded documents into knowledge sentences."""

from __future__ import annotations

import io
import logging
import re
from pathlib import PurePath

from pypdf import PdfReader

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS: frozenset[str] = frozenset({".txt", ".md", ".json", ".yml", ".csv"})

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


def split_sentences(text: str) -> list[str]:
    """Split *text* into terminated sentences, skipping list bullets and blanks."""
    sentences: list[str] = []
    for piece in _SENTENCE_SPLIT_RE.split(text):
        sentence = piece.strip()
        if not sentence or sentence.startswith("-"):
            continue
        sentences.append(f"{sentence}.")
    return sentences


def is_text_file(filename: str) -> bool:
    return PurePath(filename).suffix.lower() in TEXT_EXTENSIONS


def is_pdf(filename: str, content_type: str | None = None) -> bool:
    return content_type == "application/pdf" or PurePath(filename).suffix.lower() == ".pdf"


def pdf_to_text(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def extract_knowledge(filename: str, data: bytes, content_type: str | None = None) -> list[str]:
    """Return knowledge sentences for one uploaded file.

    PDFs and plain-text formats are supported; anything else yields ``[]``.
    """
    if is_pdf(filename, content_type):
        text = pdf_to_text(data)
    elif is_text_file(filename):
        text = data.decode("utf-8", errors="replace")
    else:
        logger.info("Skipping unsupported file %s (%s)", filename, content_type)
        return []
    return split_sentences(text)
