"""Spool-directory transport.

Hook producers that cannot reach the HTTP endpoint drop one JSON record per
event into the spool directory. ``SpoolSync`` ingests and deletes those files,
either for specific paths reported by the file watcher or by rescanning the
whole directory on a timer.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Iterable, Optional

from claude_monitor import config
from claude_monitor.models import EventRecord
from claude_monitor.observability import record_rejected
from claude_monitor.parsers.hook_events import parse_event_file
from claude_monitor.services.ingest import EventIngestor

logger = logging.getLogger("claude_monitor.spool")

SPOOL_SUFFIX = ".json"


def is_spool_file(path: Path) -> bool:
    return path.suffix == SPOOL_SUFFIX and not path.name.startswith(".")


def write_spool_record(spool_dir: Path, session_id: str, payload: dict[str, Any]) -> Path:
    """Atomically write one event record; the file only appears under its final name once complete."""
    spool_dir.mkdir(parents=True, exist_ok=True)
    name = f"{session_id}-{time.time_ns()}-{os.getpid()}{SPOOL_SUFFIX}"
    fd, tmp_path = tempfile.mkstemp(dir=spool_dir, prefix=".", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f)
        final_path = spool_dir / name
        os.replace(tmp_path, final_path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return final_path


class SpoolSync:
    """Drains spool files into the ingestor."""

    def __init__(
        self,
        ingestor: EventIngestor,
        spool_dir: Path | None = None,
        rescan_interval_seconds: float | None = None,
    ):
        self.ingestor = ingestor
        self.spool_dir = Path(spool_dir or config.SESSIONS_DIR)
        self.rescan_interval_seconds = float(
            config.RESCAN_INTERVAL_SECONDS if rescan_interval_seconds is None else rescan_interval_seconds
        )
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def pending_files(self) -> list[Path]:
        if not self.spool_dir.is_dir():
            return []
        return [path for path in self.spool_dir.iterdir() if path.is_file() and is_spool_file(path)]

    async def sync_paths(self, paths: Iterable[Path]) -> int:
        """Ingest and delete the given spool files. Returns the number of events accepted."""
        async with self._lock:
            decoded: list[tuple[EventRecord, Path]] = []
            for path in paths:
                if not is_spool_file(path) or not path.exists():
                    continue
                try:
                    event = parse_event_file(path)
                except Exception as e:
                    logger.warning(f"Failed to decode spool file {path.name}: {e}")
                    event = None
                if event is None:
                    logger.debug(f"Discarding undecodable spool file {path.name}")
                    record_rejected("malformed", source="spool")
                    _unlink(path)
                    continue
                decoded.append((event, path))

            decoded.sort(key=lambda item: (item[0].timestamp, item[1].name))

            accepted = 0
            for event, path in decoded:
                if await self.ingestor.ingest(event, source="spool"):
                    accepted += 1
                _unlink(path)
            return accepted

    async def rescan(self) -> int:
        """Process every pending file in the spool directory."""
        return await self.sync_paths(self.pending_files())

    async def start(self) -> None:
        """Start the periodic rescan in a background task."""
        if self._running:
            logger.warning("Spool rescan already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._rescan_loop())
        logger.info(f"Spool rescan started for {self.spool_dir} (every {self.rescan_interval_seconds:g}s)")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Spool rescan stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    async def _rescan_loop(self) -> None:
        try:
            while self._running:
                try:
                    accepted = await self.rescan()
                    if accepted:
                        logger.debug(f"Rescan picked up {accepted} spool events")
                except Exception as e:
                    logger.error(f"Spool rescan failed: {e}")
                await asyncio.sleep(self.rescan_interval_seconds)
        except asyncio.CancelledError:
            logger.info("Spool rescan task cancelled")
            raise
        finally:
            self._running = False


def _unlink(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove spool file {path.name}: {e}")
