from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading

from synthbridge.config import RETRIGGER_POLICIES, SynthConfig
from synthbridge.devices import PortWatcher
from synthbridge.synth_engine import SynthSession
from synthbridge.ws_server import start_ws_server


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Play MIDI input through a square-wave synth")
    ap.add_argument("--port", help="Substring to match MIDI input ports (default: all inputs)")
    ap.add_argument("--sample-rate", type=int, default=48000, help="Audio sample rate in Hz")
    ap.add_argument("--blocksize", type=int, default=256, help="Audio block size in frames")
    ap.add_argument("--retrigger", choices=list(RETRIGGER_POLICIES), default="release",
                    help="Repeated NoteOn on a sounding key: release the old voice, or overwrite it and let it ring")
    ap.add_argument("--poll-interval", type=float, default=1.0, help="Seconds between MIDI hot-plug scans")
    ap.add_argument("--ws-host", default="127.0.0.1")
    ap.add_argument("--ws-port", type=int, default=8765)
    ap.add_argument("--no-ws", action="store_true", help="Do not start the status WS server")
    ap.add_argument("--autostart", action="store_true", help="Start audio immediately instead of waiting for Enter / WS 'start'")
    ap.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return ap


def run(cfg: SynthConfig, autostart: bool = False, ws: bool = True) -> None:
    session = SynthSession(cfg)
    watcher = None
    if session.setup_midi():
        watcher = PortWatcher(session.provider, session.on_port_change, interval=cfg.poll_interval)
        watcher.prime()
        watcher.start()
    if ws:
        start_ws_server(session, cfg.ws_host, cfg.ws_port)

    def shutdown(*_):
        if watcher is not None:
            watcher.stop()
        session.close()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    if autostart:
        session.start()
    elif session.midi_available:
        print("[synth] press Enter to start audio (or send {\"type\": \"start\"} over WS)")
        try:
            input()
        except EOFError:
            # Detached stdin: wait for the WS start command instead
            pass
        else:
            session.start()
    # Device callbacks and the WS thread drive everything from here
    threading.Event().wait()


def main():
    args = build_parser().parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)
    cfg = SynthConfig.from_args(args)
    run(cfg, autostart=bool(args.autostart), ws=not args.no_ws)


if __name__ == "__main__":
    main()
