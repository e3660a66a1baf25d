"""
Persistent reference transcoding.

The plaintext dump carries a record's persistent reference as base64 without
any class information. The backup plist stores the same reference prefixed
with the 4-byte class tag. `composite_key` turns the former into the latter so
both record spaces can be joined.
"""

import base64
import binascii
import logging
from typing import Optional

from errors import ReferenceDecodeError
from .classes import RecordClass

logger = logging.getLogger(__name__)


def normalize_b64(reference: str) -> str:
    """Map URL-safe characters to standard base64 and restore padding."""
    normalized = reference.strip().replace("-", "+").replace("_", "/")
    return normalized + "=" * (-len(normalized) % 4)


def decode_reference(reference: str) -> bytes:
    """
    Decode a plaintext persistent reference to its raw bytes.

    Accepts standard or URL-safe base64, with or without padding.

    Raises:
        ReferenceDecodeError: if the reference is not valid base64
    """
    try:
        return base64.b64decode(normalize_b64(reference), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ReferenceDecodeError(f"Invalid persistent reference {reference!r}: {e}") from e


def composite_key(record_class: RecordClass, reference: str) -> Optional[bytes]:
    """
    Container-side reference for `reference` in `record_class`.

    Returns None for an empty, non-string or undecodable reference; None never
    matches a container record.
    """
    if not reference or not isinstance(reference, str):
        return None
    try:
        raw = decode_reference(reference)
    except ReferenceDecodeError as e:
        logger.debug(f"Reference treated as unmatched: {e}")
        return None
    return record_class.tag_bytes + raw
