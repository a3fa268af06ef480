"""Ports (interfaces) used by the core.

Ports define the minimal contracts for settings, storage, transport and
notification adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Iterable, List, Optional, Protocol, Tuple

from ghostgate.core.config import PolicySettings
from ghostgate.core.models import DeletionId, MessageId, StoredMessage

# Single-shot outbound action supplied by the caller. The scheduler only
# invokes it; it never inspects the result.
SendAction = Callable[[], Awaitable[Any]]

DeletionCallback = Callable[[List[DeletionId]], Awaitable[Any]]


class SettingsBackendPort(Protocol):
    """Durable home of the account's single settings value."""

    async def read(self) -> Optional[PolicySettings]:
        ...

    async def write(self, settings: PolicySettings) -> None:
        ...


class ItemStorePort(Protocol):
    """Key/value collections of opaque payloads, scoped by a small integer."""

    def put_item(self, collection_id: int, key: bytes, payload: bytes) -> None:
        ...

    def get_item(self, collection_id: int, key: bytes) -> Optional[bytes]:
        ...

    def list_items(self, collection_id: int, prefix: bytes = b"") -> List[Tuple[bytes, bytes]]:
        ...


class MessageStorePort(Protocol):
    """Local message store owned by the client, not by the core."""

    def get_message(self, message_id: MessageId) -> Optional[StoredMessage]:
        ...

    def save_message(self, message: StoredMessage) -> None:
        ...

    def add_attribute(self, message_id: MessageId, tag: str) -> None:
        ...

    def mark_read(self, message_ids: Iterable[MessageId]) -> None:
        ...

    def mark_content_consumed(self, message_id: MessageId) -> None:
        ...


class TransportPort(Protocol):
    """Outward signals that ghost mode may suppress."""

    async def send_read_receipt(self, peer_id: int, max_id: int) -> None:
        ...

    async def send_online_status(self, online: bool) -> None:
        ...

    async def send_typing(self, peer_id: int) -> None:
        ...

    async def send_media_played(self, message_id: MessageId) -> None:
        ...


class DeletionStreamPort(Protocol):
    """Account-wide feed of deletion notifications (at-most-once)."""

    def subscribe(self, callback: DeletionCallback) -> None:
        ...
