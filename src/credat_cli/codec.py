"""Base64url helpers for storing raw key bytes in JSON."""

from __future__ import annotations

import base64
import binascii
import re

from .errors import DecodeError


_BASE64URL_RE = re.compile(r"^[A-Za-z0-9_-]*$")


def encode(data: bytes) -> str:
    """Base64url encode bytes (no padding)."""
    return base64.urlsafe_b64encode(bytes(data)).rstrip(b"=").decode("ascii")


def decode(text: str) -> bytes:
    """Base64url decode a string produced by encode()."""
    if not isinstance(text, str):
        raise DecodeError(f"Expected base64url text, got {type(text).__name__}")
    if not _BASE64URL_RE.match(text):
        raise DecodeError("Key material contains characters outside the base64url alphabet")
    if len(text) % 4 == 1:
        raise DecodeError(f"Invalid base64url length: {len(text)}")
    padding = -len(text) % 4
    try:
        return base64.urlsafe_b64decode(text + "=" * padding)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Invalid base64url key material: {exc}") from exc
