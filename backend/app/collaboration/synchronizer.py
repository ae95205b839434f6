"""Collaboration synchronizer - keeps one session's view of a shared plan converged.

Two triggers feed the same reload path:
- push: a notification on the plan's channel
- poll: a fixed-interval fingerprint check (total place count)

Reloads are coalesced: while one is in flight, further requests join it.
Conflicts resolve as last-write-wins at the granularity of a full plan refetch.
"""

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Protocol

from backend.app.collaboration.channel import ChangeChannel
from backend.app.config import get_settings
from backend.app.models.collaboration import PlanChange
from backend.app.models.itinerary import Plan

logger = logging.getLogger(__name__)

PlanLoader = Callable[[uuid.UUID], Awaitable[Plan | None]]
FingerprintLoader = Callable[[uuid.UUID], Awaitable[int | None]]
ReloadListener = Callable[[Plan | None], Awaitable[None]]


class ReconcileStrategy(Protocol):
    """How a session converges after a remote change."""

    async def reconcile(
        self, plan_id: uuid.UUID, current: Plan | None, change: PlanChange | None
    ) -> Plan | None:
        """Return the new local state of the plan (None if it was deleted)."""
        ...


class FullReloadStrategy:
    """Ignore the payload and refetch the whole plan."""

    def __init__(self, loader: PlanLoader) -> None:
        self._loader = loader

    async def reconcile(
        self, plan_id: uuid.UUID, current: Plan | None, change: PlanChange | None
    ) -> Plan | None:
        return await self._loader(plan_id)


class PlanSynchronizer:
    """Push + poll synchronizer for a single plan."""

    def __init__(
        self,
        plan_id: uuid.UUID,
        channel: ChangeChannel,
        strategy: ReconcileStrategy,
        fingerprint: FingerprintLoader,
        poll_interval_sec: float | None = None,
        on_reload: ReloadListener | None = None,
    ) -> None:
        self.plan_id = plan_id
        self.plan: Plan | None = None
        self.last_fingerprint: int | None = None
        self.reload_count = 0
        self._channel = channel
        self._strategy = strategy
        self._fingerprint = fingerprint
        self.poll_interval_sec = (
            get_settings().sync_poll_interval_sec if poll_interval_sec is None else poll_interval_sec
        )
        self._on_reload = on_reload
        self._inflight: asyncio.Task[Plan | None] | None = None
        self._tasks: list[asyncio.Task[None]] = []

    def request_reload(self, change: PlanChange | None = None) -> asyncio.Task[Plan | None]:
        """Start a reload, or join the one already running."""
        if self._inflight is not None and not self._inflight.done():
            logger.debug("Reload coalesced", extra={"structured": {"plan_id": str(self.plan_id)}})
            return self._inflight
        self._inflight = asyncio.create_task(self._reload(change))
        return self._inflight

    async def _reload(self, change: PlanChange | None) -> Plan | None:
        plan = await self._strategy.reconcile(self.plan_id, self.plan, change)
        self.plan = plan
        self.last_fingerprint = plan.place_count if plan is not None else None
        self.reload_count += 1
        logger.info(
            "Plan reloaded",
            extra={
                "structured": {
                    "plan_id": str(self.plan_id),
                    "trigger": change.event if change else "poll",
                    "places": self.last_fingerprint,
                }
            },
        )
        if self._on_reload is not None:
            await self._on_reload(plan)
        return plan

    async def on_change(self, change: PlanChange) -> Plan | None:
        """Handle a push notification. The payload is not trusted."""
        if change.plan_id != self.plan_id:
            return self.plan
        return await self.request_reload(change)

    async def poll_once(self) -> bool:
        """Compare the remote fingerprint with the last known one.

        Returns:
            True if a reload was triggered
        """
        remote = await self._fingerprint(self.plan_id)
        if remote == self.last_fingerprint and self.plan is not None:
            return False
        await self.request_reload()
        return True

    async def _listen(self) -> None:
        async for change in self._channel.subscribe(self.plan_id):
            try:
                await self.on_change(change)
            except Exception as e:
                # Stay subscribed; the next push or poll retries the reload
                logger.warning(
                    "Push reload failed",
                    extra={
                        "structured": {
                            "plan_id": str(self.plan_id),
                            "event": change.event,
                            "error": str(e),
                        }
                    },
                )

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval_sec)
            try:
                await self.poll_once()
            except Exception as e:
                # Keep polling; the next tick retries
                logger.warning(
                    "Poll failed",
                    extra={"structured": {"plan_id": str(self.plan_id), "error": str(e)}},
                )

    async def start(self) -> Plan | None:
        """Load the plan and start the listener and poller tasks."""
        plan = await self.request_reload()
        self._tasks = [
            asyncio.create_task(self._listen()),
            asyncio.create_task(self._poll()),
        ]
        return plan

    async def stop(self) -> None:
        """Cancel background tasks and wait for them to finish."""
        tasks = self._tasks
        self._tasks = []
        if self._inflight is not None and not self._inflight.done():
            tasks.append(self._inflight)  # type: ignore[arg-type]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
