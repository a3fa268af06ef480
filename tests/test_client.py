from __future__ import annotations

import asyncio
from typing import Optional

from telethon import TelegramClient, functions, types

from ghostgate.adapters.telegram_transport import TelethonTransport
from ghostgate.client import GhostTelegramClient, build_client
from ghostgate.core.config import PolicySettings
from ghostgate.core.gate import Decision, GhostMode
from ghostgate.core.models import MediaKind, MessageId
from ghostgate.core.policy_store import PolicyStore


class FakeSettingsBackend:
    def __init__(self, settings: Optional[PolicySettings] = None) -> None:
        self.settings = settings

    async def read(self) -> Optional[PolicySettings]:
        return self.settings

    async def write(self, settings: PolicySettings) -> None:
        self.settings = settings


class FakeMessageStore:
    def __init__(self) -> None:
        self.consumed: list[MessageId] = []

    def mark_content_consumed(self, message_id: MessageId) -> None:
        self.consumed.append(message_id)


def _offline_client(settings: PolicySettings, monkeypatch, sent: list[str]) -> GhostTelegramClient:
    policy = PolicyStore(FakeSettingsBackend(settings))
    asyncio.run(policy.refresh())

    async def record(self, request, ordered=False, flood_sleep_threshold=None):
        sent.append(type(request).__name__)

    async def get_input_entity(peer):
        return types.InputPeerUser(user_id=peer, access_hash=0)

    # Requests the gate lets through land in ``sent`` instead of the network.
    monkeypatch.setattr(TelegramClient, "__call__", record)
    client = object.__new__(GhostTelegramClient)
    client.policy_store = policy
    client.get_input_entity = get_input_entity
    return client


def test_gated_request_never_reaches_the_network(monkeypatch) -> None:
    sent: list[str] = []
    client = _offline_client(PolicySettings(ghost_mode_enabled=True), monkeypatch, sent)

    assert asyncio.run(client(functions.account.UpdateStatusRequest(offline=False))) is None
    assert sent == []

    asyncio.run(client(functions.messages.SendMessageRequest(peer=types.InputPeerSelf(), message="hi")))
    assert sent == ["SendMessageRequest"]


def test_video_playback_passes_client_gate_when_only_voice_is_prevented(monkeypatch) -> None:
    sent: list[str] = []
    settings = PolicySettings(
        ghost_mode_enabled=True, prevent_voice_playback=True, prevent_video_playback=False
    )
    client = _offline_client(settings, monkeypatch, sent)
    ghost = GhostMode(client.policy_store, FakeMessageStore(), TelethonTransport(client))

    decision = asyncio.run(ghost.open_media(MessageId(7, 12), MediaKind.VIDEO))
    assert decision is Decision.ALLOW
    assert sent == ["ReadMessageContentsRequest"]

    decision = asyncio.run(ghost.open_media(MessageId(7, 13), MediaKind.VOICE))
    assert decision is Decision.SUPPRESS_REMOTE
    assert sent == ["ReadMessageContentsRequest"]


def test_playback_request_dropped_when_both_kinds_prevented(monkeypatch) -> None:
    sent: list[str] = []
    client = _offline_client(PolicySettings(ghost_mode_enabled=True), monkeypatch, sent)

    asyncio.run(client(functions.messages.ReadMessageContentsRequest(id=[1])))
    assert sent == []


def test_build_client_requires_credentials(monkeypatch) -> None:
    monkeypatch.setattr("ghostgate.client.load_dotenv", lambda: None)
    monkeypatch.delenv("API_ID", raising=False)
    monkeypatch.delenv("API_HASH", raising=False)

    try:
        build_client()
    except RuntimeError as exc:
        assert "API_ID" in str(exc)
    else:
        raise AssertionError("expected missing credentials to fail fast")
