from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Optional


RETRIGGER_POLICIES = ("release", "overwrite")
WAVEFORMS = ("sine", "square", "sawtooth", "triangle")


@dataclass
class SynthConfig:
    # Audio output
    sample_rate: int = 48000
    blocksize: int = 256
    channels: int = 1
    # Voice / master channel
    waveform: str = "square"
    filter_q: float = 8.0
    master_gain: float = 0.5
    filter_cutoff: float = 1000.0
    # "release": stop the sounding generator before replacing it on a repeated NoteOn.
    # "overwrite": replace the registry entry only (leaves the old generator running).
    retrigger: str = "release"
    # MIDI input
    port_filter: Optional[str] = None
    poll_interval: float = 1.0
    # Status server
    ws_host: str = "127.0.0.1"
    ws_port: int = 8765
    status_lines: int = 200

    def __post_init__(self) -> None:
        if self.retrigger not in RETRIGGER_POLICIES:
            raise ValueError(f"retrigger must be one of {RETRIGGER_POLICIES}, got {self.retrigger!r}")
        if self.waveform not in WAVEFORMS:
            raise ValueError(f"waveform must be one of {WAVEFORMS}, got {self.waveform!r}")
        if self.sample_rate <= 0 or self.blocksize <= 0:
            raise ValueError("sample_rate and blocksize must be positive")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "SynthConfig":
        return cls(
            sample_rate=int(args.sample_rate),
            blocksize=int(args.blocksize),
            retrigger=str(args.retrigger),
            port_filter=args.port,
            poll_interval=float(args.poll_interval),
            ws_host=str(args.ws_host),
            ws_port=int(args.ws_port),
        )
