"""Telegram client factory for ghostgate.

We explicitly manage the client's lifecycle (connect/run_until_disconnected)
so it is obvious when the session is created and when it ends. The client
subclass consults the shared policy before any raw request leaves, which
catches signals sent by Telethon internals that bypass GhostMode.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from telethon import TelegramClient

from ghostgate.core.gate import request_allowed
from ghostgate.core.policy_store import PolicyStore

LOGGER = logging.getLogger(__name__)


class GhostTelegramClient(TelegramClient):
    """TelegramClient whose outgoing requests pass through the request gate."""

    policy_store: Optional[PolicyStore] = None

    async def __call__(self, request, ordered=False, flood_sleep_threshold=None):
        policy = self.policy_store
        # Batched requests are passed through untouched; none of the gated
        # requests are sent in batches.
        if policy is not None and not isinstance(request, (list, tuple)):
            request_name = type(request).__name__
            if not request_allowed(policy.get_snapshot(), request_name):
                LOGGER.debug("Ghost mode suppressed %s", request_name)
                return None
        return await super().__call__(
            request, ordered=ordered, flood_sleep_threshold=flood_sleep_threshold
        )


def build_client(policy_store: Optional[PolicyStore] = None) -> GhostTelegramClient:
    """Create a Telethon client from environment variables.

    We read API_ID/API_HASH via python-dotenv to keep secrets out of the repo.
    The session name defaults to "ghostgate" to create a local .session file.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", "ghostgate")

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    LOGGER.info("Initializing Telegram client")

    client = GhostTelegramClient(session_name, int(api_id), api_hash)
    client.policy_store = policy_store
    return client
