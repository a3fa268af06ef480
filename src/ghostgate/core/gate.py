"""Action gate (core domain).

The ``should_*`` functions are pure: they map a settings snapshot to a
yes/no decision. Each returns True when the action may be performed.

Two-level rule: ``ghost_mode_enabled`` is the master switch, and a
per-feature ``prevent_*`` flag only suppresses anything while it is on.

``GhostMode`` applies those decisions. When an action has a local
counterpart (a message marked read, a voice note marked listened) the local
change is always applied; only the outward signal is dropped.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, Optional

from ghostgate.core.config import PolicySettings
from ghostgate.core.models import MediaKind, MessageId
from ghostgate.core.policy_store import PolicyStore
from ghostgate.core.ports import MessageStorePort, TransportPort

LOGGER = logging.getLogger(__name__)


class Decision(str, Enum):
    ALLOW = "allow"
    SUPPRESS_REMOTE = "suppress_remote"
    SUPPRESS_ALL = "suppress_all"


def should_send_online_status(settings: PolicySettings) -> bool:
    return not settings.ghost_mode_enabled or not settings.prevent_online_status


def should_send_typing_status(settings: PolicySettings) -> bool:
    return not settings.ghost_mode_enabled or not settings.prevent_typing_status


def should_send_read_receipt(settings: PolicySettings, peer_id: Optional[int] = None) -> bool:
    """Read receipts follow one account-wide rule; ``peer_id`` is unused."""

    return not settings.ghost_mode_enabled or not settings.prevent_read_receipts


def should_send_voice_playback_status(settings: PolicySettings) -> bool:
    return not settings.ghost_mode_enabled or not settings.prevent_voice_playback


def should_send_video_playback_status(settings: PolicySettings) -> bool:
    return not settings.ghost_mode_enabled or not settings.prevent_video_playback


def should_schedule_message(settings: PolicySettings) -> bool:
    return settings.ghost_mode_enabled and settings.use_scheduled_send


def should_send_media_status(settings: PolicySettings, media_kind: MediaKind) -> bool:
    """Route a media kind to its playback flag; other media is never gated."""

    if media_kind is MediaKind.VOICE:
        return should_send_voice_playback_status(settings)
    if media_kind in (MediaKind.VIDEO, MediaKind.ROUND_VIDEO):
        return should_send_video_playback_status(settings)
    return True


def _should_send_any_playback_status(settings: PolicySettings) -> bool:
    # ReadMessageContentsRequest carries no media type, so it is only dropped
    # when both playback flags agree. GhostMode.open_media decides per kind.
    return should_send_voice_playback_status(settings) or should_send_video_playback_status(
        settings
    )


# Raw request class names mapped to the gate that governs them. Requests that
# are not listed are always allowed.
_REQUEST_GATES = {
    "UpdateStatusRequest": should_send_online_status,
    "SetTypingRequest": should_send_typing_status,
    "ReadHistoryRequest": should_send_read_receipt,
    "GetMessagesViewsRequest": should_send_read_receipt,
    "ReadMessageContentsRequest": _should_send_any_playback_status,
}


def request_allowed(settings: PolicySettings, request_name: str) -> bool:
    """Decide whether a raw outgoing request may reach the network."""

    if not settings.ghost_mode_enabled:
        return True
    gate = _REQUEST_GATES.get(request_name)
    if gate is None:
        return True
    return gate(settings)


class GhostMode:
    """Applies gate decisions against the transport and the local store."""

    def __init__(
        self,
        policy: PolicyStore,
        messages: MessageStorePort,
        transport: TransportPort,
    ) -> None:
        self._policy = policy
        self._messages = messages
        self._transport = transport

    async def read_messages(self, peer_id: int, message_ids: Iterable[int]) -> Decision:
        """Mark messages read locally and, unless gated, tell the sender."""

        ids = sorted(set(message_ids))
        if not ids:
            return Decision.ALLOW

        self._messages.mark_read(MessageId(peer_id, message_id) for message_id in ids)

        if not should_send_read_receipt(self._policy.get_snapshot(), peer_id):
            LOGGER.debug("Read receipt suppressed for peer %s (%s messages)", peer_id, len(ids))
            return Decision.SUPPRESS_REMOTE

        await self._transport.send_read_receipt(peer_id, ids[-1])
        return Decision.ALLOW

    async def update_online_status(self, online: bool) -> Decision:
        if not should_send_online_status(self._policy.get_snapshot()):
            LOGGER.debug("Online status suppressed (online=%s)", online)
            return Decision.SUPPRESS_ALL
        await self._transport.send_online_status(online)
        return Decision.ALLOW

    async def send_typing(self, peer_id: int) -> Decision:
        if not should_send_typing_status(self._policy.get_snapshot()):
            LOGGER.debug("Typing status suppressed for peer %s", peer_id)
            return Decision.SUPPRESS_ALL
        await self._transport.send_typing(peer_id)
        return Decision.ALLOW

    async def open_media(self, message_id: MessageId, media_kind: MediaKind) -> Decision:
        """Record local playback and report it remotely when allowed."""

        self._messages.mark_content_consumed(message_id)

        if not should_send_media_status(self._policy.get_snapshot(), media_kind):
            LOGGER.debug("Playback status suppressed for %s (%s)", message_id, media_kind.value)
            return Decision.SUPPRESS_REMOTE

        if media_kind in (MediaKind.VOICE, MediaKind.VIDEO, MediaKind.ROUND_VIDEO):
            await self._transport.send_media_played(message_id)
        return Decision.ALLOW
