"""File watcher service using watchfiles.

Monitors the spool directory and hands newly written event records to
``SpoolSync`` as soon as they land. The periodic rescan in ``SpoolSync``
covers anything the watcher misses.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from watchfiles import awatch, Change

from claude_monitor.services.spool import SpoolSync, is_spool_file

logger = logging.getLogger("claude_monitor.watcher")


class FileWatcher:
    """Background file watcher that triggers spool ingestion on change.

    Uses `watchfiles` (Rust-accelerated) for efficient watching.
    """

    def __init__(self):
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False

    async def start(self, spool: SpoolSync) -> None:
        """Start watching the spool directory in a background task."""
        if self._running:
            logger.warning("File watcher already running")
            return

        spool.spool_dir.mkdir(parents=True, exist_ok=True)
        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._watch_loop(spool, self._stop_event))
        logger.info(f"File watcher started for {spool.spool_dir}")

    async def stop(self) -> None:
        """Stop the file watcher."""
        self._running = False
        if self._stop_event:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._stop_event = None
        logger.info("File watcher stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    async def _watch_loop(self, spool: SpoolSync, stop_event: asyncio.Event) -> None:
        """Main watching loop."""
        try:
            async for changes in awatch(spool.spool_dir, stop_event=stop_event):
                if not self._running:
                    break

                paths = self._classify_changes(changes)
                if paths:
                    logger.debug(f"Detected {len(paths)} spool files, ingesting...")
                    try:
                        await spool.sync_paths(paths)
                    except Exception as e:
                        logger.error(f"Error ingesting spool files: {e}")
        except asyncio.CancelledError:
            logger.info("File watcher task cancelled")
        except Exception as e:
            logger.error(f"File watcher error: {e}")
        finally:
            self._running = False

    def _classify_changes(self, changes: set[tuple[Change, str]]) -> list[Path]:
        """Keep added/modified spool records; deletions are our own cleanup."""
        result = []
        for change_type, path_str in changes:
            path = Path(path_str)
            if not is_spool_file(path):
                continue
            if change_type in (Change.modified, Change.added):
                result.append(path)
        return sorted(result)


# Singleton instance
file_watcher = FileWatcher()
