"""Application entry point for the ghostgate client."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from dataclasses import fields
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from art import tprint
from dotenv import load_dotenv
from telethon import events

from ghostgate import settings
from ghostgate.adapters.json_settings import JsonSettingsBackend
from ghostgate.adapters.sqlite_storage import SQLiteStorage
from ghostgate.adapters.telegram_mapper import (
    edit_time_from_telethon,
    stored_message_from_telethon,
)
from ghostgate.adapters.telegram_transport import TelethonDeletionStream, TelethonTransport
from ghostgate.client import build_client
from ghostgate.core.config import PolicySettings, parse_flag
from ghostgate.core.gate import GhostMode
from ghostgate.core.interceptor import HistoryInterceptor
from ghostgate.core.models import MessageId
from ghostgate.core.policy_store import PolicyStore
from ghostgate.core.scheduler import ScheduledSender, SendOutcome
from ghostgate.core.shadow_store import ShadowStore
from ghostgate.session import authorize

NAME = "GHOSTGATE"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    """Masks configured secret values in every formatted record."""

    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        # Longest first so a secret containing another is masked whole.
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {})
    if not redact_cfg.get("enabled", False):
        return []
    return [os.getenv(name, "") for name in redact_cfg.get("patterns", ["API_HASH", "2FA", "PHONE"])]


def _file_handler(file_cfg: dict) -> logging.Handler:
    path = file_cfg.get("path", "logs/ghostgate.log")
    if not os.path.isabs(path):
        path = os.path.join(settings.PROJECT_ROOT, path)
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    return RotatingFileHandler(
        path,
        maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
        backupCount=int(file_cfg.get("backup_count", 5)),
        encoding="utf-8",
    )


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)
    formatter = _RedactingFormatter(
        _redaction_values(config),
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())
    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        handlers.append(_file_handler(file_cfg))
    if not handlers:
        return

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers)


def _open_storage() -> SQLiteStorage:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    return storage


def _open_policy() -> PolicyStore:
    return PolicyStore(JsonSettingsBackend(settings.POLICY_PATH))


def _parse_peer(raw: str) -> Any:
    """Numeric peers are ids; anything else is a username or phone."""

    try:
        return int(raw)
    except ValueError:
        return raw


def _log_policy_change(snapshot: PolicySettings) -> None:
    LOGGER.info(
        "Policy updated: ghost_mode=%s save_deleted=%s save_edited=%s scheduled_send=%s",
        snapshot.ghost_mode_enabled,
        snapshot.save_deleted_messages,
        snapshot.save_edited_messages,
        snapshot.use_scheduled_send,
    )


async def _refresh_policy_forever(policy: PolicyStore, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await policy.refresh()
        except Exception:
            LOGGER.exception("Policy refresh failed")


def _run() -> None:
    _print_banner()
    _configure_logging()

    LOGGER.info("Starting ghostgate")

    storage = _open_storage()
    policy = _open_policy()
    policy.subscribe(_log_policy_change)

    client = build_client(policy)
    client.loop.run_until_complete(client.connect())
    client.loop.run_until_complete(authorize(client))
    client.loop.run_until_complete(policy.refresh())

    ghost = GhostMode(policy, storage, TelethonTransport(client))
    interceptor = HistoryInterceptor(policy, ShadowStore(storage), storage)
    interceptor.attach(TelethonDeletionStream(client))

    # Every message we see is mirrored locally; that mirror is what deletions
    # and edits are resolved against later.
    @client.on(events.NewMessage())
    async def on_new_message(event) -> None:
        try:
            storage.save_message(stored_message_from_telethon(event.message))
        except Exception:
            LOGGER.exception("Error while mirroring message")

    @client.on(events.MessageEdited())
    async def on_message_edited(event) -> None:
        try:
            edited = stored_message_from_telethon(event.message)
            # History must be captured before the mirror is overwritten.
            await interceptor.handle_edit(edited, edit_time_from_telethon(event.message))
            storage.save_message(edited)
        except Exception:
            LOGGER.exception("Error while handling edited message")

    refresher = client.loop.create_task(
        _refresh_policy_forever(policy, settings.POLICY_REFRESH_SECONDS)
    )
    decision = client.loop.run_until_complete(ghost.update_online_status(True))
    LOGGER.info("Client connected (presence: %s). Listening for updates...", decision.value)
    try:
        client.run_until_disconnected()
    finally:
        refresher.cancel()


def _send(peer: str, text: str) -> None:
    _configure_logging()
    policy = _open_policy()
    client = build_client(policy)
    scheduler = ScheduledSender(policy)

    async def _run_send() -> None:
        await client.connect()
        await authorize(client)
        await policy.refresh()
        peer_id = await client.get_peer_id(_parse_peer(peer))
        transport = TelethonTransport(client)

        outcome = await scheduler.schedule_message(
            text, peer_id, lambda: transport.send_text(peer_id, text)
        )
        if outcome is SendOutcome.QUEUED:
            delay = policy.get_snapshot().scheduled_send_delay_seconds
            print(f"Queued, sending in {delay}s. Press Ctrl+C to cancel.")
            await scheduler.wait_idle(settings.SCHEDULER_POLL_SECONDS)
        print("Sent.")
        await client.disconnect()

    try:
        client.loop.run_until_complete(_run_send())
    except KeyboardInterrupt:
        if scheduler.cancel_all():
            print("Cancelled, nothing was sent.")
        else:
            print("Interrupted.")
        client.loop.run_until_complete(client.disconnect())


def _read(peer: str, limit: int) -> None:
    _configure_logging()
    storage = _open_storage()
    policy = _open_policy()
    client = build_client(policy)

    async def _run_read() -> None:
        await client.connect()
        await authorize(client)
        await policy.refresh()
        peer_id = await client.get_peer_id(_parse_peer(peer))

        unread: list[int] = []
        for message in await client.get_messages(peer_id, limit=limit):
            stored = stored_message_from_telethon(message)
            storage.save_message(stored)
            local = storage.get_message(stored.message_id)
            if local is not None and not local.is_read:
                unread.append(stored.message_id.id)

        ghost = GhostMode(policy, storage, TelethonTransport(client))
        decision = await ghost.read_messages(peer_id, unread)
        print(f"Marked {len(unread)} messages read ({decision.value}).")
        await client.disconnect()

    client.loop.run_until_complete(_run_read())


def _parse_setting(name: str, raw: str) -> Any:
    if name == "scheduled_send_delay_seconds":
        return max(0, int(raw))
    return parse_flag(name, raw)


def _settings(assignments: list[str]) -> None:
    policy = _open_policy()
    known = {field.name for field in fields(PolicySettings)}

    changes: dict[str, Any] = {}
    for assignment in assignments:
        name, sep, raw = assignment.partition("=")
        name = name.strip()
        if not sep or name not in known:
            raise SystemExit(f"Unknown setting: {assignment} (known: {', '.join(sorted(known))})")
        try:
            changes[name] = _parse_setting(name, raw)
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc

    if changes:
        snapshot = asyncio.run(policy.update(lambda current: current.with_changes(**changes)))
    else:
        snapshot = asyncio.run(policy.refresh())

    for name, value in snapshot.to_dict().items():
        print(f"{name:32} {value}")


def _history(peer_id: int, message_id: Optional[int]) -> None:
    shadow = ShadowStore(_open_storage())

    async def _run_history() -> None:
        if message_id is None:
            records = await shadow.list_deleted_messages(peer_id)
            if not records:
                print("No deleted messages saved for this chat.")
            for record in records:
                print(f"#{record.message_id.id} deleted at {record.deleted_at}: {record.message.text!r}")
            return

        target = MessageId(peer_id, message_id)
        record = await shadow.get_deleted_message(target)
        if record is not None:
            media = ", ".join(kind.value for kind in record.message.media) or "none"
            print(f"Deleted at {record.deleted_at}: {record.message.text!r} (media: {media})")
        edits = await shadow.get_edit_history(target)
        for edit in edits:
            print(f"Edit {edit.edit_index} at {edit.edited_at}: {edit.original_text!r} -> {edit.edited_text!r}")
        if record is None and not edits:
            print("No shadow history for this message.")

    asyncio.run(_run_history())


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="ghostgate")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the client with ghost mode and history capture")

    send_parser = subparsers.add_parser("send", help="Send a message, deferred if scheduled send is on")
    send_parser.add_argument("peer")
    send_parser.add_argument("text")

    read_parser = subparsers.add_parser("read", help="Mark a chat read, honouring read-receipt policy")
    read_parser.add_argument("peer")
    read_parser.add_argument("--limit", type=int, default=20)

    settings_parser = subparsers.add_parser("settings", help="Show or change the privacy policy")
    settings_parser.add_argument("assignments", nargs="*", metavar="KEY=VALUE")

    history_parser = subparsers.add_parser("history", help="Show saved deletions and edits")
    history_parser.add_argument("peer_id", type=int)
    history_parser.add_argument("message_id", type=int, nargs="?")

    args = parser.parse_args(argv)
    if args.command == "send":
        _send(args.peer, args.text)
        return
    if args.command == "read":
        _read(args.peer, args.limit)
        return
    if args.command == "settings":
        _settings(args.assignments)
        return
    if args.command == "history":
        _history(args.peer_id, args.message_id)
        return
    _run()


if __name__ == "__main__":
    main()
