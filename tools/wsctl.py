from __future__ import annotations

import argparse
import asyncio
import json


async def run(url: str, cmd: str, follow: int):
    import websockets  # type: ignore

    async with websockets.connect(url) as ws:
        # Initial hello + state
        for _ in range(2):
            print(await ws.recv())
        if cmd == "start":
            await ws.send(json.dumps({"type": "start", "id": 1}))
        elif cmd == "state":
            await ws.send(json.dumps({"type": "getState", "id": 1}))
        elif cmd == "status":
            await ws.send(json.dumps({"type": "getStatus", "id": 1}))
        elif cmd == "ping":
            await ws.send(json.dumps({"type": "ping", "id": 1}))
        # Print the reply plus the next few broadcast records
        for _ in range(follow):
            try:
                msg = await asyncio.wait_for(ws.recv(), timeout=2.0)
                print(msg)
            except asyncio.TimeoutError:
                break


def main():
    ap = argparse.ArgumentParser(description="Simple WS controller for the synth status server")
    ap.add_argument("--url", default="ws://127.0.0.1:8765")
    ap.add_argument("--follow", type=int, default=3, help="Number of records to print after the reply")
    ap.add_argument("cmd", choices=["start", "state", "status", "ping"])
    args = ap.parse_args()
    asyncio.run(run(args.url, args.cmd, args.follow))


if __name__ == "__main__":
    main()
