from __future__ import annotations

import argparse
import wave

import numpy as np

from synthbridge.audio_graph import AudioGraph
from synthbridge.config import SynthConfig
from synthbridge.devices import VirtualInputProvider
from synthbridge.synth_engine import SynthSession


def render_demo(cfg: SynthConfig, seconds_per_note: float = 0.25) -> np.ndarray:
    """Play a short phrase through a virtual keyboard and render it offline."""
    graph = AudioGraph(cfg)
    keyboard = VirtualInputProvider(inputs=["Demo Keys"])
    session = SynthSession(cfg, audio_factory=lambda _cfg: graph, provider=keyboard)
    session.setup_midi()
    session.start()

    frames = int(cfg.sample_rate * seconds_per_note)
    blocks = []
    # (status, data1, data2) per step; CC7 and pitch bend move the master stage
    phrase = [
        [(144, 60, 100)],
        [(128, 60, 0), (144, 64, 90)],
        [(128, 64, 0), (144, 67, 80), (224, 0, 96)],
        [(176, 7, 64), (144, 72, 110)],
        [(128, 67, 0), (128, 72, 0)],
    ]
    for step in phrase:
        for msg in step:
            keyboard.send("Demo Keys", msg)
        blocks.append(graph.render(frames))
    return np.concatenate(blocks)


def write_wav(path: str, samples: np.ndarray, sample_rate: int) -> None:
    pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype("<i2")
    with wave.open(path, "wb") as w:
        w.setnchannels(1)
        w.setsampwidth(2)
        w.setframerate(sample_rate)
        w.writeframes(pcm.tobytes())


def main():
    ap = argparse.ArgumentParser(description="Render a short demo phrase to a WAV file")
    ap.add_argument("out", nargs="?", default="demo.wav")
    ap.add_argument("--sample-rate", type=int, default=48000)
    args = ap.parse_args()
    cfg = SynthConfig(sample_rate=args.sample_rate)
    samples = render_demo(cfg)
    write_wav(args.out, samples, cfg.sample_rate)
    print(f"wrote {len(samples)} frames to {args.out}")


if __name__ == "__main__":
    main()
