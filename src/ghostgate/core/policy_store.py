"""Shared policy snapshot.

One PolicyStore instance is injected into every consumer. Consumers read the
snapshot synchronously at decision time and never keep their own copy, so a
settings change is visible to all of them after a single refresh.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from ghostgate.core.config import PolicySettings
from ghostgate.core.errors import PolicyUnavailableError
from ghostgate.core.ports import SettingsBackendPort

LOGGER = logging.getLogger(__name__)

PolicyListener = Callable[[PolicySettings], None]
PolicyMutator = Callable[[PolicySettings], PolicySettings]


class PolicyStore:
    """Holds the last-known settings and refreshes them from the backend."""

    def __init__(self, backend: SettingsBackendPort) -> None:
        self._backend = backend
        self._snapshot = PolicySettings()
        self._listeners: List[PolicyListener] = []

    def get_snapshot(self) -> PolicySettings:
        """Return the current snapshot (defaults until the first refresh)."""

        return self._snapshot

    async def refresh(self) -> PolicySettings:
        """Reload the snapshot from the backend."""

        settings = await self._read_backend()
        self._replace(settings)
        return settings

    async def update(self, mutator: PolicyMutator) -> PolicySettings:
        """Read-modify-write against the backend, then refresh.

        The mutator receives the backend's value rather than the cached
        snapshot so concurrent writers do not lose each other's changes.
        """

        current = await self._read_backend()
        updated = mutator(current)
        await self._backend.write(updated)
        return await self.refresh()

    async def set_ghost_mode(self, enabled: bool) -> PolicySettings:
        return await self.update(lambda s: s.with_changes(ghost_mode_enabled=enabled))

    async def set_save_deleted_messages(self, enabled: bool) -> PolicySettings:
        return await self.update(lambda s: s.with_changes(save_deleted_messages=enabled))

    async def set_save_edited_messages(self, enabled: bool) -> PolicySettings:
        return await self.update(lambda s: s.with_changes(save_edited_messages=enabled))

    async def set_scheduled_send(
        self, enabled: bool, delay_seconds: Optional[int] = None
    ) -> PolicySettings:
        def _mutate(settings: PolicySettings) -> PolicySettings:
            if delay_seconds is None:
                return settings.with_changes(use_scheduled_send=enabled)
            return settings.with_changes(
                use_scheduled_send=enabled,
                scheduled_send_delay_seconds=max(0, int(delay_seconds)),
            )

        return await self.update(_mutate)

    def subscribe(self, listener: PolicyListener) -> Callable[[], None]:
        """Register a listener called after every snapshot replacement."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def _read_backend(self) -> PolicySettings:
        try:
            settings = await self._backend.read()
        except PolicyUnavailableError:
            LOGGER.warning("Policy settings unavailable, using defaults", exc_info=True)
            return PolicySettings()
        if settings is None:
            return PolicySettings()
        return settings

    def _replace(self, settings: PolicySettings) -> None:
        # Whole-object swap: readers see either the old or the new snapshot.
        changed = settings != self._snapshot
        self._snapshot = settings
        if not changed:
            return
        LOGGER.debug("Policy snapshot replaced: ghost_mode=%s", settings.ghost_mode_enabled)
        for listener in list(self._listeners):
            listener(settings)
