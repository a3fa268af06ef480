from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from ghostgate.adapters.telegram_mapper import (
    deletion_ids_from_event,
    edit_time_from_telethon,
    media_kinds_from_message,
    stored_message_from_telethon,
)
from ghostgate.adapters.telegram_transport import TelethonDeletionStream
from ghostgate.core.models import GlobalDeletionId, MediaKind, MessageDeletionId, MessageId


class DummyMessage:
    def __init__(
        self,
        *,
        chat_id: int = -100123,
        message_id: int = 10,
        text: "str | None" = "hello",
        sender_id: "int | None" = 55,
        out: bool = False,
        **media,
    ) -> None:
        self.chat_id = chat_id
        self.id = message_id
        self.raw_text = text
        self.sender_id = sender_id
        self.out = out
        self.date = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.edit_date = None
        self.media = object() if media else None
        for name in ("voice", "video_note", "video", "photo", "document"):
            setattr(self, name, media.get(name))


class DummyDeletedEvent:
    def __init__(self, deleted_ids: list[int], chat_id: "int | None") -> None:
        self.deleted_ids = deleted_ids
        self.chat_id = chat_id


class DummyClient:
    def __init__(self) -> None:
        self.handlers: list = []

    def add_event_handler(self, callback, event) -> None:
        self.handlers.append((callback, event))


def test_media_kinds_prefer_most_specific() -> None:
    assert media_kinds_from_message(DummyMessage()) == ()
    assert media_kinds_from_message(DummyMessage(voice=True, document=True)) == (MediaKind.VOICE,)
    assert media_kinds_from_message(DummyMessage(video_note=True, video=True)) == (MediaKind.ROUND_VIDEO,)
    assert media_kinds_from_message(DummyMessage(video=True, document=True)) == (MediaKind.VIDEO,)
    assert media_kinds_from_message(DummyMessage(photo=True)) == (MediaKind.PHOTO,)
    assert media_kinds_from_message(DummyMessage(document=True)) == (MediaKind.DOCUMENT,)
    assert media_kinds_from_message(DummyMessage(geo=True)) == (MediaKind.OTHER,)


def test_stored_message_from_telethon() -> None:
    stored = stored_message_from_telethon(DummyMessage(text=None, out=True, photo=True))

    assert stored.message_id == MessageId(-100123, 10)
    assert stored.timestamp == 1704067200
    assert stored.author_id == 55
    assert stored.text == ""
    assert stored.media == (MediaKind.PHOTO,)
    assert stored.is_read


def test_edit_time() -> None:
    message = DummyMessage()
    assert edit_time_from_telethon(message) is None
    message.edit_date = datetime(2024, 1, 1, 0, 1, tzinfo=timezone.utc)
    assert edit_time_from_telethon(message) == 1704067260


def test_channel_deletions_are_fully_qualified() -> None:
    ids = deletion_ids_from_event(DummyDeletedEvent([1, 2], chat_id=-100123))
    assert ids == [MessageDeletionId(MessageId(-100123, 1)), MessageDeletionId(MessageId(-100123, 2))]


def test_private_deletions_are_global() -> None:
    assert deletion_ids_from_event(DummyDeletedEvent([7], chat_id=None)) == [GlobalDeletionId(7)]
    assert deletion_ids_from_event(DummyDeletedEvent([], chat_id=None)) == []


def test_deletion_stream_forwards_batches() -> None:
    client = DummyClient()
    batches: list = []

    async def callback(ids) -> None:
        batches.append(ids)

    TelethonDeletionStream(client).subscribe(callback)
    handler, _ = client.handlers[0]
    asyncio.run(handler(DummyDeletedEvent([3], chat_id=-100123)))
    asyncio.run(handler(DummyDeletedEvent([], chat_id=-100123)))

    assert batches == [[MessageDeletionId(MessageId(-100123, 3))]]
