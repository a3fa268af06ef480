"""Deferred send scheduler (core domain).

Outbound sends are queued and fired after the configured delay while the
caller is told immediately that the message was accepted. A single timer is
armed for the earliest fire time; every due entry fires in one batch and the
timer is then re-armed for the next one.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Set, Tuple

from ghostgate.core.gate import should_schedule_message
from ghostgate.core.policy_store import PolicyStore
from ghostgate.core.ports import SendAction

LOGGER = logging.getLogger(__name__)


class EntryState(str, Enum):
    QUEUED = "queued"
    FIRED = "fired"
    CANCELLED = "cancelled"


class SendOutcome(str, Enum):
    SENT = "sent"
    QUEUED = "queued"


@dataclass
class ScheduledSendEntry:
    """A pending send. Owned by the scheduler until it fires or is cancelled."""

    message: Any
    peer_id: int
    fire_time: float
    send_action: SendAction = field(repr=False)
    sequence: int = 0
    state: EntryState = EntryState.QUEUED


class ScheduledSender:
    """Queue of deferred sends driven by one asyncio timer."""

    def __init__(self, policy: PolicyStore) -> None:
        self._policy = policy
        self._heap: List[Tuple[float, int, ScheduledSendEntry]] = []
        self._sequence = itertools.count()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._in_flight: Set[asyncio.Future] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def schedule_message(self, message: Any, peer_id: int, send_action: SendAction) -> SendOutcome:
        """Send now or defer, depending on the current policy.

        With scheduling off the action is awaited inline and its failure
        propagates to the caller. With scheduling on the call returns as soon
        as the entry is queued.
        """

        settings = self._policy.get_snapshot()
        if not should_schedule_message(settings):
            await send_action()
            return SendOutcome.SENT

        self.enqueue(message, peer_id, send_action, settings.scheduled_send_delay_seconds)
        return SendOutcome.QUEUED

    def enqueue(
        self,
        message: Any,
        peer_id: int,
        send_action: SendAction,
        delay_seconds: float,
    ) -> ScheduledSendEntry:
        """Queue a send to fire after ``delay_seconds``; must run on the loop."""

        loop = asyncio.get_running_loop()
        self._loop = loop
        entry = ScheduledSendEntry(
            message=message,
            peer_id=peer_id,
            fire_time=loop.time() + max(0.0, float(delay_seconds)),
            send_action=send_action,
            sequence=next(self._sequence),
        )
        heapq.heappush(self._heap, (entry.fire_time, entry.sequence, entry))
        LOGGER.info("Queued send to %s in %ss", peer_id, delay_seconds)
        self._arm(loop)
        return entry

    def cancel_all(self) -> int:
        """Drop every queued entry and disarm the timer."""

        cancelled = len(self._heap)
        for _, _, entry in self._heap:
            entry.state = EntryState.CANCELLED
        self._heap.clear()
        self._disarm()
        if cancelled:
            LOGGER.info("Cancelled %s queued sends", cancelled)
        return cancelled

    def cancel_for(self, peer_id: int) -> int:
        """Drop queued entries for one recipient and re-arm for the rest."""

        kept: List[Tuple[float, int, ScheduledSendEntry]] = []
        cancelled = 0
        for item in self._heap:
            entry = item[2]
            if entry.peer_id == peer_id:
                entry.state = EntryState.CANCELLED
                cancelled += 1
            else:
                kept.append(item)
        if not cancelled:
            return 0

        heapq.heapify(kept)
        self._heap = kept
        self._disarm()
        if self._heap and self._loop is not None:
            self._arm(self._loop)
        LOGGER.info("Cancelled %s queued sends to %s", cancelled, peer_id)
        return cancelled

    def pending_count(self) -> int:
        return len(self._heap)

    def pending(self) -> List[ScheduledSendEntry]:
        """Queued entries ordered by fire time."""

        return [entry for _, _, entry in sorted(self._heap, key=lambda item: item[:2])]

    async def wait_idle(self, poll_seconds: float = 0.1) -> None:
        """Wait until nothing is queued and every fired send has finished."""

        while self._heap or self._in_flight:
            if self._in_flight:
                await asyncio.wait(set(self._in_flight))
            else:
                await asyncio.sleep(poll_seconds)

    def _arm(self, loop: asyncio.AbstractEventLoop) -> None:
        self._disarm()
        if not self._heap:
            return
        delay = max(0.0, self._heap[0][0] - loop.time())
        self._timer = loop.call_later(delay, self._fire_due, loop)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire_due(self, loop: asyncio.AbstractEventLoop) -> None:
        self._timer = None
        now = loop.time()
        batch: List[ScheduledSendEntry] = []
        while self._heap and self._heap[0][0] <= now:
            batch.append(heapq.heappop(self._heap)[2])

        try:
            for entry in batch:
                entry.state = EntryState.FIRED
                try:
                    task = asyncio.ensure_future(entry.send_action())
                except Exception:
                    # Same as a failed send: logged, never retried.
                    LOGGER.exception("Scheduled send to %s failed to start", entry.peer_id)
                    continue
                self._in_flight.add(task)
                task.add_done_callback(self._on_send_done)

            if batch:
                LOGGER.info("Fired %s scheduled sends", len(batch))
        finally:
            self._arm(loop)

    def _on_send_done(self, task: asyncio.Future) -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            # No retry: reporting the failure is the action's own job.
            LOGGER.error("Scheduled send failed", exc_info=error)
