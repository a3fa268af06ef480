"""Telegram-to-core mapping adapter.

This keeps Telethon-specific details out of the core. Media is reduced to
type tags here, so no binary content ever reaches the shadow store.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional, Tuple

from telethon.tl.custom import Message

from ghostgate.core.models import (
    DeletionId,
    GlobalDeletionId,
    MediaKind,
    MessageDeletionId,
    MessageId,
    StoredMessage,
)


def media_kinds_from_message(message: Message) -> Tuple[MediaKind, ...]:
    """Summarise a message's media as a tuple of kind tags."""

    if not getattr(message, "media", None):
        return ()
    # Voice notes and round videos are also documents/videos in Telethon, so
    # the most specific property is checked first.
    if getattr(message, "voice", None):
        return (MediaKind.VOICE,)
    if getattr(message, "video_note", None):
        return (MediaKind.ROUND_VIDEO,)
    if getattr(message, "video", None):
        return (MediaKind.VIDEO,)
    if getattr(message, "photo", None):
        return (MediaKind.PHOTO,)
    if getattr(message, "document", None):
        return (MediaKind.DOCUMENT,)
    return (MediaKind.OTHER,)


def _unix_seconds(value: Optional[datetime]) -> int:
    if value is None:
        return 0
    return int(value.timestamp())


def stored_message_from_telethon(message: Message) -> StoredMessage:
    """Build a core StoredMessage from a Telethon Message."""

    return StoredMessage(
        message_id=MessageId(peer_id=message.chat_id, id=message.id),
        timestamp=_unix_seconds(message.date),
        author_id=getattr(message, "sender_id", None),
        text=message.raw_text or "",
        media=media_kinds_from_message(message),
        # Our own outgoing messages are read from our side by definition.
        is_read=bool(getattr(message, "out", False)),
    )


def edit_time_from_telethon(message: Message) -> Optional[int]:
    edit_date = getattr(message, "edit_date", None)
    return _unix_seconds(edit_date) if edit_date else None


def deletion_ids_from_event(event: Any) -> List[DeletionId]:
    """Map a MessageDeleted event to deletion ids.

    Telegram only names the chat for channel deletions. Private chats and
    basic groups report bare account-wide ids, which become GlobalDeletionId.
    """

    deleted_ids = list(getattr(event, "deleted_ids", None) or [])
    chat_id = getattr(event, "chat_id", None)
    if chat_id is None:
        return [GlobalDeletionId(global_id=deleted_id) for deleted_id in deleted_ids]
    return [MessageDeletionId(MessageId(peer_id=chat_id, id=deleted_id)) for deleted_id in deleted_ids]
