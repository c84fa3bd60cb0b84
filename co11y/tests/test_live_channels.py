import asyncio
import json
import unittest

from co11y.errors import ClientBackpressureError, ClientClosedError
from co11y.live import frames
from co11y.live.connection import ClientConnection, ConnectionState
from co11y.live.event_store import EventStore
from co11y.models import Project, Session


def _parse_frame(frame: str) -> tuple[str, object]:
    event_line, data_line, *_ = frame.split("\n")
    return event_line[len("event: "):], json.loads(data_line[len("data: "):])


class EventStoreTests(unittest.TestCase):
    def test_oldest_event_is_evicted_at_capacity(self) -> None:
        store = EventStore(capacity=3)
        for i in range(5):
            store.add_event({"n": i})

        self.assertEqual(len(store), 3)
        self.assertEqual([e["n"] for e in store.get_events()], [2, 3, 4])

    def test_get_events_returns_a_copy(self) -> None:
        store = EventStore()
        store.add_event({"n": 1})
        store.get_events().clear()
        self.assertEqual(len(store), 1)

    def test_clear_and_invalid_capacity(self) -> None:
        store = EventStore(capacity=2)
        store.add_event({"n": 1})
        store.clear()
        self.assertEqual(store.get_events(), [])
        with self.assertRaises(ValueError):
            EventStore(capacity=0)


class FrameTests(unittest.TestCase):
    def test_frame_layout(self) -> None:
        frame = frames.format_frame("hook", {"type": "SessionStart"})
        self.assertEqual(frame, 'event: hook\ndata: {"type":"SessionStart"}\n\n')

    def test_heartbeat_carries_timestamp(self) -> None:
        event, data = _parse_frame(frames.heartbeat_frame("2026-01-01T00:00:00.000Z"))
        self.assertEqual(event, frames.HEARTBEAT)
        self.assertEqual(data, {"timestamp": "2026-01-01T00:00:00.000Z"})

    def test_snapshot_frames_send_flat_sessions_then_projects(self) -> None:
        session = Session(id="s1", project="/p", projectPath="/p")
        project = Project(id="-p", name="p", fullPath="/p", sessions=[session], sessionCount=1)

        sessions_frame, projects_frame = frames.snapshot_frames([project])

        event, data = _parse_frame(sessions_frame)
        self.assertEqual(event, frames.SESSIONS)
        self.assertEqual([s["id"] for s in data], ["s1"])
        self.assertNotIn("model", data[0])
        event, data = _parse_frame(projects_frame)
        self.assertEqual(event, frames.PROJECTS)
        self.assertEqual(data[0]["sessionCount"], 1)


class ClientConnectionTests(unittest.IsolatedAsyncioTestCase):
    async def test_initial_frames_are_delivered_first(self) -> None:
        client = ClientConnection(max_pending=2, initial_frames=["a", "b", "c"])
        client.mark_attached()
        client.offer("d")

        received = [await client.next_frame(timeout=1) for _ in range(4)]

        self.assertEqual(received, ["a", "b", "c", "d"])
        self.assertEqual(client.state, ConnectionState.ATTACHED)

    async def test_full_queue_raises_backpressure(self) -> None:
        client = ClientConnection(max_pending=2)
        client.offer("1")
        client.offer("2")
        with self.assertRaises(ClientBackpressureError):
            client.offer("3")

    async def test_close_wakes_waiter_and_rejects_offers(self) -> None:
        client = ClientConnection()
        waiter = asyncio.create_task(client.next_frame())
        await asyncio.sleep(0)

        self.assertTrue(client.close("test"))
        self.assertIsNone(await asyncio.wait_for(waiter, timeout=1))
        self.assertFalse(client.close("again"))
        self.assertEqual(client.dropped_reason, "test")
        with self.assertRaises(ClientClosedError):
            client.offer("late")
        with self.assertRaises(ClientClosedError):
            client.mark_attached()

    async def test_close_discards_undelivered_frames(self) -> None:
        client = ClientConnection()
        client.offer("pending")
        client.close()
        self.assertIsNone(await client.next_frame(timeout=1))

    async def test_next_frame_times_out(self) -> None:
        client = ClientConnection()
        with self.assertRaises(asyncio.TimeoutError):
            await client.next_frame(timeout=0.01)


if __name__ == "__main__":
    unittest.main()
