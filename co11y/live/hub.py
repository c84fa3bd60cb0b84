"""Aggregation & broadcast hub.

Owns the connected client set, the hook event ring buffer and the file
watcher. Re-aggregates the projects tree on a fixed interval and on debounced
file changes, and fans every produced frame out to all attached clients.

Concurrency model: everything runs on one asyncio event loop. The client set
and ring buffer are mutated under ``_lock`` and fan-out iterates over a copy,
so no lock is held while frames are handed to clients. Aggregation runs in a
worker thread and is single-flight: a refresh requested while one is running
sets a pending flag and the running pass loops once more, so bursts of
requests coalesce into at most one follow-up pass.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from co11y.errors import ClientChannelError
from co11y.live import frames
from co11y.live.connection import ClientConnection
from co11y.live.event_store import EventStore
from co11y.live.file_watcher import FileWatcher
from co11y.observability import (
    record_aggregation,
    record_broadcast,
    record_client_count,
    start_span,
)
from co11y.services.aggregator import Snapshot, build_snapshot

logger = logging.getLogger("co11y.hub")


class BroadcastHub:
    def __init__(
        self,
        projects_dir: Path,
        *,
        event_capacity: int = 100,
        refresh_interval: float = 10.0,
        heartbeat_interval: float = 30.0,
        debounce_ms: int = 500,
        client_queue_size: int = 256,
        watch: bool = True,
    ):
        self.projects_dir = Path(projects_dir)
        self.refresh_interval = refresh_interval
        self.heartbeat_interval = heartbeat_interval
        self.client_queue_size = client_queue_size
        self.event_store = EventStore(event_capacity)
        self.last_snapshot: Optional[Snapshot] = None

        self._clients: set[ClientConnection] = set()
        self._lock = threading.Lock()
        self._watcher: Optional[FileWatcher] = (
            FileWatcher(self.projects_dir, self._on_file_change, debounce_ms=debounce_ms)
            if watch
            else None
        )
        self._refresh_task: Optional[asyncio.Task] = None
        self._refresh_running = False
        self._refresh_pending = False
        self._started = False
        self._stopped = False

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> None:
        if self._started:
            logger.warning("Broadcast hub already started")
            return
        self._started = True
        if self._watcher is not None:
            await self._watcher.start()
        if self.refresh_interval > 0:
            self._refresh_task = asyncio.create_task(self._refresh_loop())
        logger.info(f"Broadcast hub started for {self.projects_dir}")

    async def stop(self) -> None:
        """Close the watcher, stop periodic refresh and detach every client."""
        if self._stopped:
            return
        self._stopped = True
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None
        if self._watcher is not None:
            await self._watcher.close()
        for client in self.clients:
            self.detach(client, reason="shutdown")
        logger.info("Broadcast hub stopped")

    @property
    def watcher_running(self) -> bool:
        return self._watcher is not None and self._watcher.is_running

    # ── Client membership ────────────────────────────────────────────

    @property
    def clients(self) -> list[ClientConnection]:
        with self._lock:
            return list(self._clients)

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def attach(self) -> ClientConnection:
        """Register a new client.

        The client is primed with a heartbeat followed by the ring-buffer
        backlog in insertion order. Priming and joining the client set happen
        under one lock acquisition, so no ingested event is missed or
        delivered twice.
        """
        with self._lock:
            backlog = [frames.hook_frame(event) for event in self.event_store.get_events()]
            client = ClientConnection(
                max_pending=self.client_queue_size,
                initial_frames=[frames.heartbeat_frame(), *backlog],
            )
            client.mark_attached()
            self._clients.add(client)
            total = len(self._clients)
        record_client_count(1, total)
        logger.info("Client %s attached (backlog=%d, clients=%d)", client.id, len(backlog), total)
        return client

    def detach(self, client: ClientConnection, reason: str = "disconnect") -> bool:
        """Remove a client exactly once; later calls are no-ops."""
        with self._lock:
            removed = client in self._clients
            self._clients.discard(client)
            total = len(self._clients)
        client.close(reason)
        if removed:
            record_client_count(-1, total)
            logger.info("Client %s detached (%s, clients=%d)", client.id, reason, total)
        return removed

    # ── Fan-out ──────────────────────────────────────────────────────

    def broadcast(self, frame: str, event: str = "") -> int:
        """Offer one frame to every attached client; returns deliveries.

        A client that is closed or backlogged is detached. Errors never
        propagate to the caller.
        """
        return self._fan_out(frame, self.clients, event)

    def _fan_out(self, frame: str, targets: list[ClientConnection], event: str) -> int:
        delivered = 0
        failed: list[tuple[ClientConnection, ClientChannelError]] = []
        for client in targets:
            try:
                client.offer(frame)
                delivered += 1
            except ClientChannelError as exc:
                failed.append((client, exc))
        for client, exc in failed:
            logger.warning(f"Dropping client {client.id}: {exc}")
            self.detach(client, reason=type(exc).__name__)
        record_broadcast(event, delivered=delivered, dropped=len(failed))
        return delivered

    def ingest(self, event: dict[str, Any]) -> int:
        """Store a validated hook event and push it to every client at once."""
        frame = frames.hook_frame(event)
        with self._lock:
            self.event_store.add_event(event)
            targets = list(self._clients)
        return self._fan_out(frame, targets, frames.HOOK)

    # ── Aggregation ──────────────────────────────────────────────────

    async def refresh(self, trigger: str = "manual") -> bool:
        """Recompute the snapshot and fan it out.

        Returns False when the request was coalesced into a pass already in
        flight.
        """
        if self._refresh_running:
            self._refresh_pending = True
            logger.debug("Refresh (%s) coalesced into running pass", trigger)
            return False

        self._refresh_running = True
        try:
            while True:
                self._refresh_pending = False
                await self._run_refresh(trigger)
                if not self._refresh_pending:
                    break
                trigger = "coalesced"
        finally:
            self._refresh_running = False
        return True

    async def _run_refresh(self, trigger: str) -> None:
        started = time.perf_counter()
        try:
            with start_span("co11y.aggregate", {"trigger": trigger}):
                snapshot = await asyncio.to_thread(build_snapshot, self.projects_dir)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Error aggregating sessions ({trigger}): {e}")
            record_aggregation(trigger, "error", (time.perf_counter() - started) * 1000)
            return

        self.last_snapshot = snapshot
        record_aggregation(trigger, "ok", (time.perf_counter() - started) * 1000)
        sessions_frame, projects_frame = frames.snapshot_frames(snapshot.projects)
        self.broadcast(sessions_frame, event=frames.SESSIONS)
        self.broadcast(projects_frame, event=frames.PROJECTS)
        logger.debug(
            "Snapshot (%s): %d projects, %d sessions",
            trigger,
            len(snapshot.projects),
            len(snapshot.sessions),
        )

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            await self._ensure_watcher()
            if not self.client_count:
                continue
            try:
                await self.refresh(trigger="interval")
            except Exception as e:  # noqa: BLE001
                logger.error(f"Error sending session update: {e}")

    async def _ensure_watcher(self) -> None:
        """Start the watcher once a root that was missing at startup appears."""
        if self._watcher is None or self._watcher.is_running or self._stopped:
            return
        if self.projects_dir.is_dir():
            try:
                await self._watcher.start()
            except RuntimeError as e:
                logger.error(f"Could not restart file watcher: {e}")

    async def _on_file_change(self, path: str) -> None:
        logger.debug("File changed: %s", path)
        if not self.client_count:
            return
        await self.refresh(trigger="file_change")

    # ── Per-client stream ────────────────────────────────────────────

    async def stream(self, client: Optional[ClientConnection] = None) -> AsyncIterator[str]:
        """Yield a client's frames until it is closed, with periodic heartbeats.

        Without ``client`` the generator attaches one on first iteration, so a
        response that is never consumed never joins the client set. The client
        is detached in a single ``finally`` however the stream ends: generator
        cancellation on peer disconnect, a write error surfacing in the
        consumer, or an explicit ``close()``.
        """
        if client is None:
            client = self.attach()
        loop = asyncio.get_running_loop()
        next_heartbeat = loop.time() + self.heartbeat_interval
        try:
            while not client.closed:
                timeout = max(0.0, next_heartbeat - loop.time())
                try:
                    frame = await client.next_frame(timeout=timeout)
                except asyncio.TimeoutError:
                    next_heartbeat = loop.time() + self.heartbeat_interval
                    yield frames.heartbeat_frame()
                    continue
                if frame is None:
                    break
                yield frame
        finally:
            self.detach(client, reason="stream closed")
