from __future__ import annotations

import asyncio
import contextlib
import json
import socket
import unittest

from synthbridge.audio_out import VirtualAudioEngine
from synthbridge.config import SynthConfig
from synthbridge.devices import VirtualInputProvider
from synthbridge.synth_engine import SynthSession
from synthbridge.ws_server import serve_ws


def _free_port() -> int:
    s = socket.socket()
    s.bind(("127.0.0.1", 0))
    addr, port = s.getsockname()
    s.close()
    return port


async def _connect(url: str):
    import websockets  # type: ignore
    for _ in range(50):
        try:
            return await websockets.connect(url)
        except Exception:
            await asyncio.sleep(0.05)
    raise RuntimeError("failed to connect to WS server")


class TestWSStatus(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.keys = VirtualInputProvider(inputs=["Keys"])
        self.engine = VirtualAudioEngine()
        self.session = SynthSession(SynthConfig(), audio_factory=lambda _cfg: self.engine, provider=self.keys)
        self.session.setup_midi()
        self.ws_port = _free_port()
        self.server_task = asyncio.create_task(serve_ws(self.session, "127.0.0.1", self.ws_port, metrics_interval=0.05))
        self.ws = await _connect(f"ws://127.0.0.1:{self.ws_port}")

    async def asyncTearDown(self):
        with contextlib.suppress(Exception):
            await self.ws.close()
        self.server_task.cancel()
        with contextlib.suppress(BaseException):
            await self.server_task

    async def _recv_until(self, pred, limit=50):
        for _ in range(limit):
            obj = json.loads(await asyncio.wait_for(self.ws.recv(), timeout=2.0))
            if pred(obj):
                return obj
        return None

    async def test_hello_and_idle_state(self):
        hello = await self._recv_until(lambda o: o.get("type") == "hello")
        self.assertEqual(hello["payload"]["protocol"], 1)
        state = await self._recv_until(lambda o: o.get("type") == "state")
        self.assertFalse(state["payload"]["running"])
        self.assertEqual(state["payload"]["devices"], ["Keys"])

    async def test_start_command_runs_session(self):
        await self.ws.send(json.dumps({"type": "start", "id": 7}))
        ack = await self._recv_until(lambda o: o.get("id") == 7 and o.get("type") in ("ack", "error"))
        self.assertEqual(ack["type"], "ack")
        self.assertTrue(ack["payload"]["ok"])
        running = await self._recv_until(lambda o: o.get("type") == "state" and o["payload"]["running"])
        self.assertIsNotNone(running)
        self.assertTrue(self.session.running)

    async def test_midi_messages_are_broadcast(self):
        self.session.start()
        await self._recv_until(lambda o: o.get("type") == "hello")
        self.keys.send("Keys", [144, 69, 100])
        msg = await self._recv_until(lambda o: o.get("type") == "message")
        self.assertEqual(msg["payload"]["data"], [144, 69, 100])
        self.assertIn("(440.0)", msg["payload"]["text"])
        self.assertEqual(self.session.get_state()["activeNotes"], [69])

    async def test_status_log_and_metrics(self):
        await self.ws.send(json.dumps({"type": "getStatus", "id": 3}))
        log = await self._recv_until(lambda o: o.get("type") == "statusLog")
        self.assertIn("Found MIDI input: 'Keys'", log["payload"]["lines"])
        metrics = await self._recv_until(lambda o: o.get("type") == "metrics")
        self.assertIn("msgs_note_on", metrics["payload"]["session"])

    async def test_unknown_command_errors(self):
        await self.ws.send(json.dumps({"type": "play", "id": 9}))
        err = await self._recv_until(lambda o: o.get("id") == 9)
        self.assertEqual(err["type"], "error")
        self.assertEqual(err["payload"]["error"], "unknown_command")


if __name__ == "__main__":
    unittest.main()
