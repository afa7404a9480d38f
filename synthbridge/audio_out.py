from __future__ import annotations

import itertools
import logging
from typing import Any, List, Optional, Tuple

from synthbridge.config import SynthConfig


logger = logging.getLogger(__name__)


class AudioUnavailable(RuntimeError):
    """Raised when no audio backend can be opened."""


class AudioEngine:
    """Abstract audio engine interface used by SynthSession.

    Nodes returned by the factories expose ``connect(target)``; generators add
    ``start()``/``stop()``, gain stages a mutable ``value`` and filters a
    mutable ``frequency``.
    """

    destination: Any = None

    def create_generator(self, frequency: float, waveform: str) -> Any:  # pragma: no cover - interface
        raise NotImplementedError

    def create_gain(self, value: float) -> Any:  # pragma: no cover - interface
        raise NotImplementedError

    def create_filter(self, type: str, frequency: float, q: float) -> Any:  # pragma: no cover - interface
        raise NotImplementedError

    def close(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class VirtualNode:
    def __init__(self, engine: "VirtualAudioEngine", node_id: int, kind: str, **attrs: Any) -> None:
        self.engine = engine
        self.id = node_id
        self.kind = kind
        self.started = False
        self.stopped = False
        for k, v in attrs.items():
            setattr(self, k, v)

    def connect(self, target: "VirtualNode") -> None:
        self.engine.events.append(("connect", self.id, target.id))

    def start(self) -> None:
        self.started = True
        self.engine.events.append(("start", self.id))

    def stop(self) -> None:
        self.stopped = True
        self.engine.events.append(("stop", self.id))

    def __repr__(self) -> str:
        return f"VirtualNode({self.kind}#{self.id})"


class VirtualAudioEngine(AudioEngine):
    """A minimal engine capturing graph commands for tests and demos.

    Records tuples like (type, args...). Types: 'generator', 'gain',
    'filter', 'connect', 'start', 'stop', 'close'.
    """

    def __init__(self, config: Optional[SynthConfig] = None) -> None:
        self.config = config
        self.events: List[Tuple[Any, ...]] = []
        self.nodes: List[VirtualNode] = []
        self._ids = itertools.count(1)
        self.destination = VirtualNode(self, 0, "destination")

    def _node(self, kind: str, **attrs: Any) -> VirtualNode:
        node = VirtualNode(self, next(self._ids), kind, **attrs)
        self.nodes.append(node)
        return node

    def create_generator(self, frequency: float, waveform: str) -> VirtualNode:
        node = self._node("generator", frequency=frequency, waveform=waveform)
        self.events.append(("generator", node.id, frequency, waveform))
        return node

    def create_gain(self, value: float) -> VirtualNode:
        node = self._node("gain", value=value)
        self.events.append(("gain", node.id, value))
        return node

    def create_filter(self, type: str, frequency: float, q: float) -> VirtualNode:
        node = self._node("filter", type=type, frequency=frequency, q=q)
        self.events.append(("filter", node.id, type, frequency, q))
        return node

    def close(self) -> None:
        self.events.append(("close",))

    def count(self, kind: str) -> int:
        return sum(1 for e in self.events if e[0] == kind)


def open_audio_engine(config: SynthConfig) -> AudioEngine:
    """Open the sounddevice-backed engine.

    Raises AudioUnavailable when numpy/scipy/sounddevice are missing or
    PortAudio refuses to open an output stream (headless hosts, CI).
    """
    try:
        from synthbridge.audio_graph import SoundDeviceEngine
    except ImportError as e:
        raise AudioUnavailable(f"audio backend not installed: {e}") from e
    engine = SoundDeviceEngine(config)
    engine.open()
    return engine
