from __future__ import annotations

import argparse

from synthbridge.devices import MidiUnavailable, MidoInputProvider


def main():
    ap = argparse.ArgumentParser(description="List MIDI ports and audio output devices")
    ap.add_argument("--port", help="Substring filter for MIDI inputs")
    ap.add_argument("--audio", action="store_true", help="Also list PortAudio devices")
    args = ap.parse_args()
    try:
        provider = MidoInputProvider(args.port)
    except MidiUnavailable as e:
        print(f"MIDI unavailable: {e}")
    else:
        print("MIDI inputs:")
        for name in provider.list_inputs():
            print(f"  {name}")
        print("MIDI outputs:")
        for name in provider.list_outputs():
            print(f"  {name}")
    if args.audio:
        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            print(f"audio unavailable: {e}")
            return
        print(sd.query_devices())


if __name__ == "__main__":
    main()
