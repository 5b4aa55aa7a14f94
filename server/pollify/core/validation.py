"""Input validation and sanitization utilities."""

import re
import unicodedata

# Control characters to remove (except newline, tab)
CONTROL_CHAR_PATTERN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

# Horizontal whitespace runs (newlines are kept for multi-line text)
INLINE_WHITESPACE_PATTERN = re.compile(r"[^\S\n]+")

# Any whitespace run
MULTI_WHITESPACE_PATTERN = re.compile(r"\s+")

MAX_FINGERPRINT_LENGTH = 64


def normalize_text(text: str | None) -> str | None:
    """
    Normalize multi-line text input (descriptions, comments) by:
    - Normalizing Unicode to NFC form
    - Removing null bytes and control characters
    - Collapsing runs of spaces/tabs while keeping line breaks
    - Stripping leading/trailing whitespace

    Returns None if input is None.
    """
    if text is None:
        return None

    text = unicodedata.normalize("NFC", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = CONTROL_CHAR_PATTERN.sub("", text)
    text = INLINE_WHITESPACE_PATTERN.sub(" ", text)
    return text.strip()


def normalize_single_line(text: str | None) -> str | None:
    """
    Normalize text for single-line fields (titles, option labels).
    """
    if text is None:
        return None

    text = unicodedata.normalize("NFC", text)
    text = CONTROL_CHAR_PATTERN.sub("", text)
    return MULTI_WHITESPACE_PATTERN.sub(" ", text).strip()


def is_valid_fingerprint(fingerprint: str | None) -> bool:
    """A fingerprint is a non-blank printable string of bounded length."""
    if not fingerprint or not fingerprint.strip():
        return False
    if len(fingerprint) > MAX_FINGERPRINT_LENGTH:
        return False
    return CONTROL_CHAR_PATTERN.search(fingerprint) is None


def validate_length(text: str | None, min_len: int = 0, max_len: int = 255) -> bool:
    """
    Validate that text length is within bounds.
    """
    if text is None:
        return min_len == 0
    return min_len <= len(text) <= max_len
