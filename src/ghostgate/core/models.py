"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any Telethon or storage-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple, Union

# Marker attached to a locally retained message whose remote copy was
# deleted. It carries no payload.
SHADOW_DELETED_ATTRIBUTE = "shadow_deleted"


class MediaKind(str, Enum):
    """Media summarised to a type tag; binary content is never kept."""

    VOICE = "voice"
    VIDEO = "video"
    ROUND_VIDEO = "round_video"
    PHOTO = "photo"
    DOCUMENT = "document"
    OTHER = "other"


@dataclass(frozen=True, order=True)
class MessageId:
    """Fully qualified message identity: the chat it lives in plus its id."""

    peer_id: int
    id: int


@dataclass(frozen=True)
class StoredMessage:
    """Local mirror of a message as last observed by the client."""

    message_id: MessageId
    timestamp: int
    author_id: Optional[int]
    text: str
    media: Tuple[MediaKind, ...] = ()
    attributes: Tuple[str, ...] = ()
    is_read: bool = False
    content_consumed: bool = False

    def with_attribute(self, tag: str) -> "StoredMessage":
        if tag in self.attributes:
            return self
        return replace(self, attributes=self.attributes + (tag,))

    @property
    def is_shadow_deleted(self) -> bool:
        return SHADOW_DELETED_ATTRIBUTE in self.attributes


@dataclass(frozen=True)
class DeletedMessageRecord:
    """Snapshot of a message taken when its remote deletion was observed."""

    message: StoredMessage
    deleted_at: int
    deleted_by: Optional[int] = None

    @property
    def message_id(self) -> MessageId:
        return self.message.message_id


@dataclass(frozen=True)
class MessageEditRecord:
    """One observed edit of a message, ordered by ``edit_index``."""

    message_id: MessageId
    edited_at: int
    original_text: str
    edited_text: str
    original_media: Tuple[MediaKind, ...] = ()
    edited_media: Tuple[MediaKind, ...] = ()
    edit_index: int = 0


@dataclass(frozen=True)
class MessageDeletionId:
    """Deletion notification naming the exact chat and message."""

    message_id: MessageId


@dataclass(frozen=True)
class GlobalDeletionId:
    """Deletion notification carrying only an account-wide id.

    Resolving these needs out-of-band knowledge of which chat owned the id,
    so the interceptor skips them.
    """

    global_id: int


DeletionId = Union[MessageDeletionId, GlobalDeletionId]
