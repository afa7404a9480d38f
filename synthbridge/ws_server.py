from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from typing import Any, Dict, Optional, Set

from synthbridge.synth_engine import SynthSession


logger = logging.getLogger(__name__)


def _record(kind: str, payload: Any = None, req_id: Any = None) -> str:
    obj: Dict[str, Any] = {"type": kind, "ts": time.time()}
    if req_id is not None:
        obj["id"] = req_id
    if payload is not None:
        obj["payload"] = payload
    return json.dumps(obj)


async def serve_ws(session: SynthSession, host: str, port: int, metrics_interval: float = 0.5):
    """Serve the status/control surface for ``session`` until cancelled.

    Broadcasts ``status``/``message``/``state`` records as the session emits
    them and ``metrics`` every ``metrics_interval`` seconds. Accepts the
    commands ``start``, ``getState``, ``getStatus`` and ``ping``.
    """
    try:
        import websockets  # type: ignore
    except Exception:
        print("[ws] websockets not installed; cannot start status server")
        return

    clients: Set[Any] = set()
    loop = asyncio.get_running_loop()
    outbox: "asyncio.Queue[str]" = asyncio.Queue()

    def on_session_event(kind: str, payload: Dict[str, Any]) -> None:
        # Called from MIDI callback threads as well as the loop thread
        msg = _record(kind, payload)
        try:
            loop.call_soon_threadsafe(outbox.put_nowait, msg)
        except RuntimeError:
            # Loop already closed during shutdown
            pass

    async def broadcast(msg: str):
        if not clients:
            return
        await asyncio.gather(*[c.send(msg) for c in list(clients)], return_exceptions=True)

    async def pump_task():
        while True:
            msg = await outbox.get()
            await broadcast(msg)

    async def metrics_task():
        while True:
            await asyncio.sleep(metrics_interval)
            await broadcast(_record("metrics", {"session": session.get_metrics(), "ws": {"clients": len(clients)}}))

    async def handler(ws, *maybe_path):
        logger.info("client connected: %s", getattr(ws, "remote_address", None))
        clients.add(ws)
        try:
            await ws.send(_record("hello", {"protocol": 1}))
            await ws.send(_record("state", session.get_state()))
            async for message in ws:
                try:
                    obj = json.loads(message)
                except ValueError:
                    continue
                t = obj.get("type")
                req_id = obj.get("id")
                if t == "start":
                    ok = session.start()
                    await ws.send(_record("ack" if ok else "error", {"ok": ok}, req_id))
                    await ws.send(_record("state", session.get_state(), req_id))
                elif t == "getState":
                    await ws.send(_record("state", session.get_state(), req_id))
                elif t == "getStatus":
                    await ws.send(_record("statusLog", {"lines": session.status_lines()}, req_id))
                elif t == "ping":
                    await ws.send(_record("pong", None, req_id))
                else:
                    await ws.send(_record("error", {"ok": False, "error": "unknown_command"}, req_id))
        finally:
            clients.discard(ws)

    session.add_listener(on_session_event)
    tasks = [asyncio.create_task(pump_task()), asyncio.create_task(metrics_task())]
    try:
        async with websockets.serve(handler, host, port):
            print(f"[ws] serving synth status on ws://{host}:{port}")
            await asyncio.Future()
    finally:
        session.remove_listener(on_session_event)
        for t in tasks:
            t.cancel()


def start_ws_server(session: SynthSession, host: str = "127.0.0.1", port: int = 8765) -> Optional[threading.Thread]:
    """Run ``serve_ws`` on a daemon thread with its own event loop."""
    try:
        import websockets  # type: ignore  # noqa: F401
    except Exception:
        print("[ws] websockets not installed; skipping WS server")
        return None

    def _runner():
        asyncio.run(serve_ws(session, host, port))

    th = threading.Thread(target=_runner, daemon=True)
    th.start()
    return th
