"""Content codec for the base64 transfer representation."""

from __future__ import annotations

import base64
import binascii
import hashlib

from .errors import SchemaError


def encode_content(content: bytes) -> str:
    """Encode raw bytes for transfer."""
    return base64.b64encode(content).decode("ascii")


def decode_content(encoded: str) -> bytes:
    """Decode transferred content.

    Stores wrap base64 payloads at 60 columns, so embedded newlines are
    stripped before decoding.
    """
    cleaned = "".join(encoded.split())
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SchemaError(f"content is not valid base64: {exc}") from exc


def contents_equal(left: bytes, right: bytes) -> bool:
    return left == right


def blob_hash(content: bytes) -> str:
    """Return the git blob id of ``content``, the store's version token."""
    hasher = hashlib.sha1()
    hasher.update(b"blob %d\0" % len(content))
    hasher.update(content)
    return hasher.hexdigest()


__all__ = ["encode_content", "decode_content", "contents_equal", "blob_hash"]
