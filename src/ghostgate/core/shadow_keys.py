"""Helpers for building shadow-store keys.

Keys are fixed-width big-endian integers so that byte ordering matches
numeric ordering and an edit history can be read back with a prefix scan.
"""

from __future__ import annotations

import struct
from typing import Tuple

from ghostgate.core.models import MessageId

DELETED_MESSAGES_COLLECTION = 100
EDITED_MESSAGES_COLLECTION = 101

_ID = struct.Struct(">I")
_EDIT = struct.Struct(">II")


def deleted_message_key(message_id: MessageId) -> bytes:
    """Return the 4-byte key for a deleted message."""

    return _ID.pack(message_id.id)


def edited_message_prefix(message_id: MessageId) -> bytes:
    """Return the key prefix shared by every edit of one message."""

    return _ID.pack(message_id.id)


def edited_message_key(message_id: MessageId, edit_index: int) -> bytes:
    """Return the 8-byte key for one edit: message id then edit index."""

    return _EDIT.pack(message_id.id, edit_index)


def split_edited_message_key(key: bytes) -> Tuple[int, int]:
    """Split an edit key into (message id, edit index)."""

    if len(key) != _EDIT.size:
        raise ValueError(f"Edit key must be {_EDIT.size} bytes, got {len(key)}")
    return _EDIT.unpack(key)
