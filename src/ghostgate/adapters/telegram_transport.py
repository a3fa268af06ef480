"""Telethon transport adapters.

TelethonTransport emits the outward signals that ghost mode gates, and
TelethonDeletionStream feeds deletion notifications into the core.
"""

from __future__ import annotations

import logging

from telethon import events, functions, types

from ghostgate.adapters.telegram_mapper import deletion_ids_from_event
from ghostgate.core.models import MessageId
from ghostgate.core.ports import DeletionCallback

LOGGER = logging.getLogger(__name__)


class TelethonTransport:
    """Transport adapter that satisfies the TransportPort contract."""

    def __init__(self, client) -> None:
        self._client = client

    async def send_read_receipt(self, peer_id: int, max_id: int) -> None:
        await self._client.send_read_acknowledge(peer_id, max_id=max_id)

    async def send_online_status(self, online: bool) -> None:
        await self._client(functions.account.UpdateStatusRequest(offline=not online))

    async def send_typing(self, peer_id: int) -> None:
        peer = await self._client.get_input_entity(peer_id)
        await self._client(
            functions.messages.SetTypingRequest(peer=peer, action=types.SendMessageTypingAction())
        )

    async def send_media_played(self, message_id: MessageId) -> None:
        peer = await self._client.get_input_entity(message_id.peer_id)
        # Channels keep their own message id space and their own request.
        if isinstance(peer, types.InputPeerChannel):
            await self._client(
                functions.channels.ReadMessageContentsRequest(channel=peer, id=[message_id.id])
            )
        else:
            await self._client(functions.messages.ReadMessageContentsRequest(id=[message_id.id]))

    async def send_text(self, peer_id: int, text: str):
        """Send a text message right away; used as the scheduler's action."""

        return await self._client.send_message(peer_id, text)


class TelethonDeletionStream:
    """Deletion stream that satisfies the DeletionStreamPort contract."""

    def __init__(self, client) -> None:
        self._client = client

    def subscribe(self, callback: DeletionCallback) -> None:
        async def _handler(event) -> None:
            deletion_ids = deletion_ids_from_event(event)
            if not deletion_ids:
                return
            LOGGER.info("Intercepted %s deleted message ids", len(deletion_ids))
            try:
                await callback(deletion_ids)
            except Exception:
                LOGGER.exception("Error while handling deleted messages")

        self._client.add_event_handler(_handler, events.MessageDeleted())
