import gc
import types
import unittest

from fastapi import HTTPException
from fastapi.responses import StreamingResponse

from co11y.live.hub import BroadcastHub
from co11y.routers import events as events_router


class EventsRouterTests(unittest.IsolatedAsyncioTestCase):
    async def test_stream_attaches_client_with_sse_headers(self) -> None:
        hub = BroadcastHub("/nonexistent", refresh_interval=0, watch=False)
        request = types.SimpleNamespace(app=types.SimpleNamespace(state=types.SimpleNamespace(hub=hub)))

        response = await events_router.stream_events(request)

        self.assertIsInstance(response, StreamingResponse)
        self.assertEqual(response.media_type, "text/event-stream")
        self.assertEqual(response.headers["cache-control"], "no-cache")
        self.assertEqual(response.headers["x-accel-buffering"], "no")
        self.assertEqual(hub.client_count, 0)

        first = await response.body_iterator.__anext__()
        self.assertEqual(hub.client_count, 1)
        self.assertTrue(first.startswith("event: heartbeat\n"))
        await response.body_iterator.aclose()
        self.assertEqual(hub.client_count, 0)

    async def test_unsent_response_leaves_no_client_behind(self) -> None:
        hub = BroadcastHub("/nonexistent", refresh_interval=0, watch=False)
        request = types.SimpleNamespace(app=types.SimpleNamespace(state=types.SimpleNamespace(hub=hub)))

        response = await events_router.stream_events(request)
        del response
        gc.collect()

        self.assertEqual(hub.client_count, 0)
        self.assertEqual(hub.ingest({"type": "SessionStart"}), 0)

    async def test_missing_hub_is_503(self) -> None:
        request = types.SimpleNamespace(app=types.SimpleNamespace(state=types.SimpleNamespace()))
        with self.assertRaises(HTTPException) as ctx:
            await events_router.stream_events(request)
        self.assertEqual(ctx.exception.status_code, 503)


if __name__ == "__main__":
    unittest.main()
