"""Periodic staleness sweeper.

Compensates for producers that crash or drop their stop events by demoting
sessions and agents that have not been heard from in a while.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from claude_monitor import config
from claude_monitor.observability import record_sweep
from claude_monitor.state.store import SessionStore, SweepResult

logger = logging.getLogger("claude_monitor.sweeper")


class StalenessSweeper:
    """Background task that calls ``SessionStore.sweep`` on a fixed period."""

    def __init__(
        self,
        store: SessionStore,
        interval_seconds: float | None = None,
        *,
        prune_journal: Callable[[], Awaitable[int]] | None = None,
        prune_interval_seconds: float | None = None,
    ):
        self.store = store
        self.interval_seconds = float(
            config.SWEEP_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        )
        self.prune_journal = prune_journal
        self.prune_interval_seconds = float(
            config.JOURNAL_PRUNE_INTERVAL_SECONDS if prune_interval_seconds is None else prune_interval_seconds
        )
        self._last_prune: float | None = None
        self._task: Optional[asyncio.Task] = None
        self._running = False

    async def start(self) -> None:
        """Start sweeping in a background task."""
        if self._running:
            logger.warning("Staleness sweeper already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(f"Staleness sweeper started (every {self.interval_seconds:g}s)")

    async def stop(self) -> None:
        """Stop the sweeper."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Staleness sweeper stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def sweep_once(self) -> SweepResult:
        result = self.store.sweep()
        if result.changed:
            record_sweep(
                idled_sessions=result.idled_sessions,
                completed_agents=result.completed_agents,
                removed_agents=result.removed_agents,
            )
        return result

    async def _maybe_prune(self) -> None:
        if self.prune_journal is None:
            return
        now = asyncio.get_running_loop().time()
        if self._last_prune is not None and now - self._last_prune < self.prune_interval_seconds:
            return
        self._last_prune = now
        try:
            await self.prune_journal()
        except Exception as e:
            logger.error(f"Journal prune failed: {e}")

    async def _sweep_loop(self) -> None:
        try:
            while self._running:
                await asyncio.sleep(self.interval_seconds)
                try:
                    self.sweep_once()
                except Exception as e:
                    logger.error(f"Staleness sweep failed: {e}")
                await self._maybe_prune()
        except asyncio.CancelledError:
            logger.info("Staleness sweeper task cancelled")
            raise
        finally:
            self._running = False
