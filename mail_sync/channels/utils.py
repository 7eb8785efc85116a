"""Utility functions for mail channels.

This module provides small reusable helpers for mail operations: attachment
encoding, hashing, chunking and header cleanup.
"""

import base64
import hashlib
import re
import ssl
from typing import Iterator, List, Sequence, TypeVar

T = TypeVar("T")


def encode_attachment(content: bytes) -> str:
    """Encode binary attachment content to base64 string.

    Args:
    ----
        content: Binary attachment data

    Returns:
    -------
        Base64-encoded content string

    """
    if not content:
        return ""
    return base64.b64encode(content).decode("utf-8")


def hash_string(value: str) -> str:
    """Create a deterministic hash from a string.

    Args:
    ----
        value: String to hash

    Returns:
    -------
        Hex digest of SHA-256 hash

    """
    if not value:
        return ""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    size = max(int(size), 1)
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def extract_email_address(full_address: str) -> str:
    """Extract email address from a full address string.

    Args:
    ----
        full_address: Full address string (e.g. "Name <email@example.com>")

    Returns:
    -------
        Email address only

    """
    if not full_address:
        return ""

    # Try to extract email with regex
    match = re.search(r"<([^>]+)>", full_address)
    if match:
        return match.group(1).strip()

    # If no angle brackets, return the whole string with whitespace trimmed
    return full_address.strip()


def sanitize_subject(subject: str) -> str:
    """Sanitize an email subject line.

    Args:
    ----
        subject: Raw subject line

    Returns:
    -------
        Sanitized subject string

    """
    if not subject:
        return ""

    # Remove control characters
    subject = re.sub(r"[\x00-\x1F\x7F]", "", subject)

    # Limit length
    if len(subject) > 255:
        subject = subject[:252] + "..."

    return subject


def create_ssl_context(verify: bool = True) -> ssl.SSLContext:
    """Create an SSL context, optionally without certificate verification."""
    context = ssl.create_default_context()

    # Verify certificates by default
    if verify:
        context.verify_mode = ssl.CERT_REQUIRED
    else:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    return context
