"""Local shadow store for deleted and edited messages.

Records are JSON documents kept in two collections of the item store. The
shadow history is a best-effort enhancement: a record that cannot be encoded
or decoded is logged and dropped rather than surfaced to the caller.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any, List, Optional

from ghostgate.core.errors import ShadowSerializationError
from ghostgate.core.models import (
    DeletedMessageRecord,
    MediaKind,
    MessageEditRecord,
    MessageId,
    StoredMessage,
)
from ghostgate.core.ports import ItemStorePort
from ghostgate.core.shadow_keys import (
    DELETED_MESSAGES_COLLECTION,
    EDITED_MESSAGES_COLLECTION,
    deleted_message_key,
    edited_message_key,
    edited_message_prefix,
)

LOGGER = logging.getLogger(__name__)


def _message_id_to_dict(message_id: MessageId) -> dict[str, int]:
    return {"peer_id": message_id.peer_id, "id": message_id.id}


def _message_id_from_dict(raw: dict[str, Any]) -> MessageId:
    return MessageId(peer_id=int(raw["peer_id"]), id=int(raw["id"]))


def _media_from_list(raw: List[str]) -> tuple[MediaKind, ...]:
    return tuple(MediaKind(value) for value in raw)


def _message_to_dict(message: StoredMessage) -> dict[str, Any]:
    return {
        "message_id": _message_id_to_dict(message.message_id),
        "timestamp": message.timestamp,
        "author_id": message.author_id,
        "text": message.text,
        "media": [kind.value for kind in message.media],
        "attributes": list(message.attributes),
        "is_read": message.is_read,
        "content_consumed": message.content_consumed,
    }


def _message_from_dict(raw: dict[str, Any]) -> StoredMessage:
    author_id = raw.get("author_id")
    return StoredMessage(
        message_id=_message_id_from_dict(raw["message_id"]),
        timestamp=int(raw["timestamp"]),
        author_id=int(author_id) if author_id is not None else None,
        text=raw.get("text", ""),
        media=_media_from_list(raw.get("media", [])),
        attributes=tuple(raw.get("attributes", [])),
        is_read=bool(raw.get("is_read", False)),
        content_consumed=bool(raw.get("content_consumed", False)),
    )


def encode_deleted_record(record: DeletedMessageRecord) -> bytes:
    try:
        document = {
            "message": _message_to_dict(record.message),
            "deleted_at": record.deleted_at,
            "deleted_by": record.deleted_by,
        }
        return json.dumps(document, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise ShadowSerializationError(f"Cannot encode deleted record: {exc}") from exc


def decode_deleted_record(payload: bytes) -> DeletedMessageRecord:
    try:
        document = json.loads(payload.decode("utf-8"))
        deleted_by = document.get("deleted_by")
        return DeletedMessageRecord(
            message=_message_from_dict(document["message"]),
            deleted_at=int(document["deleted_at"]),
            deleted_by=int(deleted_by) if deleted_by is not None else None,
        )
    except (UnicodeDecodeError, KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ShadowSerializationError(f"Cannot decode deleted record: {exc}") from exc


def encode_edit_record(record: MessageEditRecord) -> bytes:
    try:
        document = {
            "message_id": _message_id_to_dict(record.message_id),
            "edited_at": record.edited_at,
            "original_text": record.original_text,
            "edited_text": record.edited_text,
            "original_media": [kind.value for kind in record.original_media],
            "edited_media": [kind.value for kind in record.edited_media],
            "edit_index": record.edit_index,
        }
        return json.dumps(document, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise ShadowSerializationError(f"Cannot encode edit record: {exc}") from exc


def decode_edit_record(payload: bytes) -> MessageEditRecord:
    try:
        document = json.loads(payload.decode("utf-8"))
        return MessageEditRecord(
            message_id=_message_id_from_dict(document["message_id"]),
            edited_at=int(document["edited_at"]),
            original_text=document["original_text"],
            edited_text=document["edited_text"],
            original_media=_media_from_list(document.get("original_media", [])),
            edited_media=_media_from_list(document.get("edited_media", [])),
            edit_index=int(document.get("edit_index", 0)),
        )
    except (UnicodeDecodeError, KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ShadowSerializationError(f"Cannot decode edit record: {exc}") from exc


class ShadowStore:
    """Deleted/edited message history on top of an item store."""

    def __init__(self, items: ItemStorePort) -> None:
        self._items = items

    async def put_deleted_message(self, record: DeletedMessageRecord) -> bool:
        """Persist a deleted-message snapshot; returns False if it was dropped."""

        try:
            payload = encode_deleted_record(record)
        except ShadowSerializationError:
            LOGGER.warning("Dropping deleted record for %s", record.message_id, exc_info=True)
            return False
        self._items.put_item(
            DELETED_MESSAGES_COLLECTION, deleted_message_key(record.message_id), payload
        )
        return True

    async def get_deleted_message(self, message_id: MessageId) -> Optional[DeletedMessageRecord]:
        payload = self._items.get_item(DELETED_MESSAGES_COLLECTION, deleted_message_key(message_id))
        if payload is None:
            return None
        record = self._decode_deleted(payload)
        # The key holds only the numeric id, so another chat's message with
        # the same id may occupy it.
        if record is None or record.message_id != message_id:
            return None
        return record

    async def list_deleted_messages(self, peer_id: int) -> List[DeletedMessageRecord]:
        """Return every deleted record for a chat, ordered by message id."""

        records: List[DeletedMessageRecord] = []
        for _, payload in self._items.list_items(DELETED_MESSAGES_COLLECTION):
            record = self._decode_deleted(payload)
            if record is not None and record.message_id.peer_id == peer_id:
                records.append(record)
        return records

    async def put_edit_record(self, record: MessageEditRecord) -> bool:
        """Write an edit at its own ``edit_index``, overwriting that key."""

        try:
            payload = encode_edit_record(record)
        except ShadowSerializationError:
            LOGGER.warning("Dropping edit record for %s", record.message_id, exc_info=True)
            return False
        self._items.put_item(
            EDITED_MESSAGES_COLLECTION,
            edited_message_key(record.message_id, record.edit_index),
            payload,
        )
        return True

    async def append_edit(self, record: MessageEditRecord) -> Optional[MessageEditRecord]:
        """Append an edit after the existing history of its message.

        Counting and writing happen without yielding to the event loop, so no
        other writer can claim the same index in between.
        """

        next_index = len(self._edit_payloads(record.message_id))
        indexed = replace(record, edit_index=next_index)
        if not await self.put_edit_record(indexed):
            return None
        return indexed

    async def get_edit_history(self, message_id: MessageId) -> List[MessageEditRecord]:
        """Return the edits of one message in append order."""

        history: List[MessageEditRecord] = []
        for payload in self._edit_payloads(message_id):
            try:
                record = decode_edit_record(payload)
            except ShadowSerializationError:
                LOGGER.warning("Skipping unreadable edit record for %s", message_id, exc_info=True)
                continue
            if record.message_id == message_id:
                history.append(record)
        return history

    async def get_edit_count(self, message_id: MessageId) -> int:
        return len(await self.get_edit_history(message_id))

    def _edit_payloads(self, message_id: MessageId) -> List[bytes]:
        rows = self._items.list_items(EDITED_MESSAGES_COLLECTION, edited_message_prefix(message_id))
        return [payload for _, payload in rows]

    @staticmethod
    def _decode_deleted(payload: bytes) -> Optional[DeletedMessageRecord]:
        try:
            return decode_deleted_record(payload)
        except ShadowSerializationError:
            LOGGER.warning("Skipping unreadable deleted record", exc_info=True)
            return None
