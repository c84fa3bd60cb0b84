"""File watcher service using watchfiles.

Monitors the Claude projects tree for new or modified transcript files and
invokes a callback once per path after that path has been quiet for the
debounce interval.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

from watchfiles import Change, DefaultFilter, awatch

from co11y.parsers.jsonl import RECORD_FILE_SUFFIX

logger = logging.getLogger("co11y.watcher")

FileChangeCallback = Callable[[str], Union[None, Awaitable[None]]]


class RecordFileFilter(DefaultFilter):
    """Only pass added/modified ``.jsonl`` files."""

    def __call__(self, change: Change, path: str) -> bool:
        return (
            change in (Change.added, Change.modified)
            and path.endswith(RECORD_FILE_SUFFIX)
            and super().__call__(change, path)
        )


class FileWatcher:
    """Background watcher with per-path debounced callbacks.

    Each changed path gets its own timer; another event for the same path
    restarts it. Distinct paths fire independently. Uses ``watchfiles``
    (Rust-accelerated) for the underlying recursive watch.
    """

    def __init__(
        self,
        root: Path,
        callback: FileChangeCallback,
        debounce_ms: int = 500,
    ):
        self.root = Path(root)
        self.debounce_ms = debounce_ms
        self._callback = callback
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._inflight: set[asyncio.Task] = set()
        self._running = False
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending_paths(self) -> list[str]:
        return sorted(self._timers)

    async def start(self) -> None:
        """Start watching in a background task. Pre-existing files never fire."""
        if self._closed:
            raise RuntimeError("FileWatcher has been closed")
        if self._running:
            logger.warning("File watcher already running")
            return
        if not self.root.exists():
            logger.warning(f"Watch root {self.root} does not exist, watcher has nothing to monitor")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._watch_loop())
        logger.info(f"File watcher started for {self.root}")

    async def close(self) -> None:
        """Stop watching. Idempotent; no callback fires after this returns."""
        if self._closed:
            return
        self._closed = True
        self._running = False

        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

        if self._stop_event is not None:
            self._stop_event.set()
        tasks = [t for t in (self._task, *self._inflight) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:  # noqa: BLE001
                logger.error(f"File watcher task failed during shutdown: {e}")
        self._task = None
        self._inflight.clear()
        logger.info("File watcher stopped")

    def handle_change(self, path: str) -> None:
        """Record one change event for ``path`` and (re)start its quiet timer."""
        if self._closed or not path.endswith(RECORD_FILE_SUFFIX):
            return
        loop = asyncio.get_running_loop()
        existing = self._timers.pop(path, None)
        if existing is not None:
            existing.cancel()
        self._timers[path] = loop.call_later(self.debounce_ms / 1000, self._fire, path)

    def _fire(self, path: str) -> None:
        self._timers.pop(path, None)
        if self._closed:
            return
        try:
            result = self._callback(path)
        except Exception as e:  # noqa: BLE001
            logger.error(f"File change callback failed for {path}: {e}")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._inflight.add(task)
            task.add_done_callback(self._on_callback_done)

    def _on_callback_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"File change callback failed: {exc}")

    async def _watch_loop(self) -> None:
        logger.info(f"Watching {self.root} for *{RECORD_FILE_SUFFIX} changes")
        try:
            async for changes in awatch(
                self.root,
                watch_filter=RecordFileFilter(),
                stop_event=self._stop_event,
                debounce=50,
                step=20,
                recursive=True,
            ):
                if self._closed:
                    break
                for _change, path in changes:
                    self.handle_change(path)
        except asyncio.CancelledError:
            logger.info("File watcher task cancelled")
        except Exception as e:  # noqa: BLE001
            logger.error(f"File watcher error: {e}")
        finally:
            self._running = False
