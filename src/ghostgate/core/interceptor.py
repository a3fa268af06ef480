"""Deletion and edit interception (core domain).

Deletion notifications arrive at most once and without a durable queue
upstream. If a message is purged locally before its notification is
processed, its history is lost; that is part of the contract, not an error.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional

from ghostgate.core.models import (
    SHADOW_DELETED_ATTRIBUTE,
    DeletedMessageRecord,
    DeletionId,
    GlobalDeletionId,
    MessageDeletionId,
    MessageEditRecord,
    MessageId,
    StoredMessage,
)
from ghostgate.core.policy_store import PolicyStore
from ghostgate.core.ports import DeletionStreamPort, MessageStorePort
from ghostgate.core.shadow_store import ShadowStore

LOGGER = logging.getLogger(__name__)


class HistoryInterceptor:
    """Turns deletion and edit notifications into shadow-store records."""

    def __init__(
        self,
        policy: PolicyStore,
        shadow: ShadowStore,
        messages: MessageStorePort,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._policy = policy
        self._shadow = shadow
        self._messages = messages
        self._clock = clock
        self._attached = False

    def attach(self, stream: DeletionStreamPort) -> None:
        """Subscribe to the deletion stream; repeated calls are ignored."""

        if self._attached:
            return
        stream.subscribe(self.handle_deletions)
        self._attached = True

    async def handle_deletions(self, deletion_ids: Iterable[DeletionId]) -> List[DeletedMessageRecord]:
        """Process one batch of deletion notifications.

        Steps:
        1) Drop account-wide ids that cannot be tied to a chat
        2) Group the remaining ids by chat
        3) Resolve each id against the local store, skipping misses
        4) Write a shadow record and tag the local message
        """

        # The policy is read once per batch; a change mid-batch applies to the
        # next one.
        if not self._policy.get_snapshot().save_deleted_messages:
            return []

        by_peer: Dict[int, List[MessageId]] = defaultdict(list)
        for deletion_id in deletion_ids:
            if isinstance(deletion_id, MessageDeletionId):
                by_peer[deletion_id.message_id.peer_id].append(deletion_id.message_id)
            elif isinstance(deletion_id, GlobalDeletionId):
                LOGGER.debug("Skipping global deletion id %s", deletion_id.global_id)

        saved: List[DeletedMessageRecord] = []
        deleted_at = int(self._clock())
        for peer_id, message_ids in by_peer.items():
            peer_saved = 0
            for message_id in message_ids:
                message = self._messages.get_message(message_id)
                if message is None:
                    LOGGER.debug("Deleted message %s not found locally", message_id)
                    continue
                record = DeletedMessageRecord(message=message, deleted_at=deleted_at)
                if not await self._shadow.put_deleted_message(record):
                    continue
                self._messages.add_attribute(message_id, SHADOW_DELETED_ATTRIBUTE)
                saved.append(record)
                peer_saved += 1
            if peer_saved:
                LOGGER.info("Saved %s deleted messages for peer %s", peer_saved, peer_id)
        return saved

    async def handle_edit(
        self, edited: StoredMessage, edited_at: Optional[int] = None
    ) -> Optional[MessageEditRecord]:
        """Record an edit against the locally known previous version.

        Must run before the local store is updated with ``edited``.
        """

        if not self._policy.get_snapshot().save_edited_messages:
            return None

        original = self._messages.get_message(edited.message_id)
        if original is None:
            LOGGER.debug("Edited message %s not found locally", edited.message_id)
            return None
        if original.text == edited.text and original.media == edited.media:
            return None

        record = MessageEditRecord(
            message_id=edited.message_id,
            edited_at=int(edited_at if edited_at is not None else self._clock()),
            original_text=original.text,
            edited_text=edited.text,
            original_media=original.media,
            edited_media=edited.media,
        )
        stored = await self._shadow.append_edit(record)
        if stored is not None:
            LOGGER.info("Saved edit #%s for %s", stored.edit_index, edited.message_id)
        return stored
