from __future__ import annotations

import asyncio
from typing import List, Optional, Tuple

import pytest

from ghostgate.core.models import (
    DeletedMessageRecord,
    MediaKind,
    MessageEditRecord,
    MessageId,
    StoredMessage,
)
from ghostgate.core.shadow_keys import (
    DELETED_MESSAGES_COLLECTION,
    EDITED_MESSAGES_COLLECTION,
    deleted_message_key,
    edited_message_key,
    split_edited_message_key,
)
from ghostgate.core.shadow_store import ShadowStore


class FakeItemStore:
    def __init__(self) -> None:
        self.items: dict[tuple[int, bytes], bytes] = {}

    def put_item(self, collection_id: int, key: bytes, payload: bytes) -> None:
        self.items[(collection_id, key)] = payload

    def get_item(self, collection_id: int, key: bytes) -> Optional[bytes]:
        return self.items.get((collection_id, key))

    def list_items(self, collection_id: int, prefix: bytes = b"") -> List[Tuple[bytes, bytes]]:
        return sorted(
            (key, payload)
            for (collection, key), payload in self.items.items()
            if collection == collection_id and key.startswith(prefix)
        )


def _message(peer_id: int = 10, message_id: int = 5, text: str = "hello") -> StoredMessage:
    return StoredMessage(
        message_id=MessageId(peer_id, message_id),
        timestamp=1_700_000_000,
        author_id=77,
        text=text,
        media=(MediaKind.PHOTO, MediaKind.VOICE),
        attributes=("pinned",),
        is_read=True,
    )


def _edit(message_id: MessageId, before: str, after: str, edit_index: int = 0) -> MessageEditRecord:
    return MessageEditRecord(
        message_id=message_id,
        edited_at=1_700_000_100,
        original_text=before,
        edited_text=after,
        original_media=(),
        edited_media=(MediaKind.DOCUMENT,),
        edit_index=edit_index,
    )


def test_key_layout() -> None:
    assert deleted_message_key(MessageId(1, 258)) == b"\x00\x00\x01\x02"
    key = edited_message_key(MessageId(1, 258), 3)
    assert key == b"\x00\x00\x01\x02\x00\x00\x00\x03"
    assert split_edited_message_key(key) == (258, 3)
    with pytest.raises(ValueError):
        split_edited_message_key(b"\x00")


def test_deleted_record_roundtrip() -> None:
    items = FakeItemStore()
    store = ShadowStore(items)
    record = DeletedMessageRecord(message=_message(), deleted_at=1_700_000_500, deleted_by=99)

    assert asyncio.run(store.put_deleted_message(record))

    assert (DELETED_MESSAGES_COLLECTION, deleted_message_key(record.message_id)) in items.items
    assert asyncio.run(store.get_deleted_message(record.message_id)) == record


def test_missing_records_are_absent_not_errors() -> None:
    store = ShadowStore(FakeItemStore())
    assert asyncio.run(store.get_deleted_message(MessageId(1, 1))) is None
    assert asyncio.run(store.get_edit_history(MessageId(1, 1))) == []
    assert asyncio.run(store.list_deleted_messages(1)) == []


def test_deleted_lookup_checks_the_chat() -> None:
    store = ShadowStore(FakeItemStore())
    record = DeletedMessageRecord(message=_message(peer_id=10, message_id=5), deleted_at=1)
    asyncio.run(store.put_deleted_message(record))

    assert asyncio.run(store.get_deleted_message(MessageId(11, 5))) is None


def test_list_deleted_messages_filters_by_chat() -> None:
    store = ShadowStore(FakeItemStore())
    for peer_id, message_id in ((10, 1), (20, 2), (10, 3)):
        record = DeletedMessageRecord(message=_message(peer_id, message_id), deleted_at=1)
        asyncio.run(store.put_deleted_message(record))

    records = asyncio.run(store.list_deleted_messages(10))
    assert [record.message_id.id for record in records] == [1, 3]


def test_same_edit_key_overwrites() -> None:
    items = FakeItemStore()
    store = ShadowStore(items)
    message_id = MessageId(10, 5)

    asyncio.run(store.put_edit_record(_edit(message_id, "a", "b")))
    asyncio.run(store.put_edit_record(_edit(message_id, "b", "c")))

    history = asyncio.run(store.get_edit_history(message_id))
    assert [(edit.original_text, edit.edited_text) for edit in history] == [("b", "c")]
    assert (EDITED_MESSAGES_COLLECTION, edited_message_key(message_id, 0)) in items.items


def test_append_edit_keeps_full_history_in_order() -> None:
    store = ShadowStore(FakeItemStore())
    message_id = MessageId(10, 5)

    for before, after in (("a", "b"), ("b", "c"), ("c", "d")):
        asyncio.run(store.append_edit(_edit(message_id, before, after)))
    asyncio.run(store.append_edit(_edit(MessageId(10, 6), "x", "y")))

    history = asyncio.run(store.get_edit_history(message_id))
    assert [edit.edit_index for edit in history] == [0, 1, 2]
    assert [edit.edited_text for edit in history] == ["b", "c", "d"]
    assert history[0].edited_media == (MediaKind.DOCUMENT,)
    assert asyncio.run(store.get_edit_count(message_id)) == 3


def test_corrupt_payloads_are_skipped() -> None:
    items = FakeItemStore()
    store = ShadowStore(items)
    message_id = MessageId(10, 5)
    items.put_item(DELETED_MESSAGES_COLLECTION, deleted_message_key(message_id), b"\xff not json")
    items.put_item(EDITED_MESSAGES_COLLECTION, edited_message_key(message_id, 0), b"{}")
    asyncio.run(store.put_edit_record(_edit(message_id, "a", "b", edit_index=1)))

    assert asyncio.run(store.get_deleted_message(message_id)) is None
    history = asyncio.run(store.get_edit_history(message_id))
    assert [edit.edit_index for edit in history] == [1]
