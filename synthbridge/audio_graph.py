from __future__ import annotations

import logging
import math
import threading
from typing import List, Optional

import numpy as np
from scipy.signal import lfilter

from synthbridge.audio_out import AudioEngine, AudioUnavailable
from synthbridge.config import WAVEFORMS, SynthConfig


logger = logging.getLogger(__name__)


class Node:
    """Pull-rendered graph node. Sources connect into a node's inputs."""

    def __init__(self, graph: "AudioGraph") -> None:
        self.graph = graph
        self.inputs: List[Node] = []
        self._block = -1
        self._out: Optional[np.ndarray] = None

    def connect(self, target: "Node") -> None:
        with self.graph.lock:
            if self not in target.inputs:
                target.inputs.append(self)

    @property
    def finished(self) -> bool:
        # Finished nodes are dropped from their target's inputs on the next render
        return False

    def pull(self, frames: int, block: int) -> np.ndarray:
        # Nodes feeding several targets render once per block
        if block != self._block or self._out is None or len(self._out) != frames:
            self._out = self.process(frames, block)
            self._block = block
        return self._out

    def mix_inputs(self, frames: int, block: int) -> np.ndarray:
        out = np.zeros(frames, dtype=np.float64)
        live = []
        for src in self.inputs:
            if src.finished:
                continue
            out += src.pull(frames, block)
            live.append(src)
        if len(live) != len(self.inputs):
            self.inputs[:] = live
        return out

    def process(self, frames: int, block: int) -> np.ndarray:  # pragma: no cover - interface
        raise NotImplementedError


class Oscillator(Node):
    def __init__(self, graph: "AudioGraph", frequency: float, waveform: str = "square") -> None:
        super().__init__(graph)
        if waveform not in WAVEFORMS:
            raise ValueError(f"unsupported waveform: {waveform}")
        self.frequency = float(frequency)
        self.waveform = waveform
        self.started = False
        self.stopped = False
        self._phase = 0.0

    @property
    def finished(self) -> bool:
        return self.stopped

    def start(self) -> None:
        with self.graph.lock:
            self.started = True

    def stop(self) -> None:
        with self.graph.lock:
            self.stopped = True

    def process(self, frames: int, block: int) -> np.ndarray:
        if not self.started or self.stopped:
            return np.zeros(frames, dtype=np.float64)
        inc = self.frequency / self.graph.sample_rate
        phase = (self._phase + inc * np.arange(frames)) % 1.0
        self._phase = (self._phase + inc * frames) % 1.0
        if self.waveform == "square":
            return np.where(phase < 0.5, 1.0, -1.0)
        if self.waveform == "sawtooth":
            return 2.0 * phase - 1.0
        if self.waveform == "triangle":
            return 1.0 - 4.0 * np.abs(phase - 0.5)
        return np.sin(2.0 * np.pi * phase)


class Gain(Node):
    def __init__(self, graph: "AudioGraph", value: float = 1.0) -> None:
        super().__init__(graph)
        self.value = float(value)

    @property
    def finished(self) -> bool:
        # A gain fed only by stopped generators is a released voice tail
        return bool(self.inputs) and all(isinstance(n, Oscillator) and n.finished for n in self.inputs)

    def process(self, frames: int, block: int) -> np.ndarray:
        return self.mix_inputs(frames, block) * self.value


class LowpassFilter(Node):
    """RBJ cookbook low-pass biquad; coefficients follow ``frequency`` changes."""

    def __init__(self, graph: "AudioGraph", frequency: float = 1000.0, q: float = 8.0) -> None:
        super().__init__(graph)
        self.frequency = float(frequency)
        self.q = float(q)
        self._zi = np.zeros(2)
        self._coeffs_for: Optional[tuple] = None
        self._b = np.zeros(3)
        self._a = np.array([1.0, 0.0, 0.0])

    def _coefficients(self):
        key = (self.frequency, self.q)
        if key != self._coeffs_for:
            nyquist = self.graph.sample_rate / 2.0
            f = min(float(self.frequency), nyquist * 0.99)
            w0 = 2.0 * math.pi * f / self.graph.sample_rate
            cos_w0 = math.cos(w0)
            alpha = math.sin(w0) / (2.0 * max(self.q, 1e-6))
            a0 = 1.0 + alpha
            self._b = np.array([(1.0 - cos_w0) / 2.0, 1.0 - cos_w0, (1.0 - cos_w0) / 2.0]) / a0
            self._a = np.array([1.0, -2.0 * cos_w0 / a0, (1.0 - alpha) / a0])
            self._coeffs_for = key
        return self._b, self._a

    def process(self, frames: int, block: int) -> np.ndarray:
        x = self.mix_inputs(frames, block)
        if self.frequency <= 0:
            # Fully closed: pass nothing and forget history
            self._zi = np.zeros(2)
            return np.zeros(frames, dtype=np.float64)
        b, a = self._coefficients()
        y, self._zi = lfilter(b, a, x, zi=self._zi)
        return y


class Destination(Node):
    def process(self, frames: int, block: int) -> np.ndarray:
        return self.mix_inputs(frames, block)


class AudioGraph(AudioEngine):
    """In-process audio engine rendering blocks with numpy.

    ``render(frames)`` may be called from an audio callback thread; graph
    edits from the MIDI side take the same lock.
    """

    def __init__(self, config: Optional[SynthConfig] = None) -> None:
        self.config = config or SynthConfig()
        self.sample_rate = int(self.config.sample_rate)
        self.lock = threading.RLock()
        self.destination = Destination(self)
        self._block = 0

    def create_generator(self, frequency: float, waveform: str) -> Oscillator:
        return Oscillator(self, frequency, waveform)

    def create_gain(self, value: float) -> Gain:
        return Gain(self, value)

    def create_filter(self, type: str, frequency: float, q: float) -> LowpassFilter:
        if type != "lowpass":
            raise ValueError(f"unsupported filter type: {type}")
        return LowpassFilter(self, frequency, q)

    def render(self, frames: int) -> np.ndarray:
        with self.lock:
            self._block += 1
            return self.destination.pull(frames, self._block).astype(np.float32)

    def close(self) -> None:
        with self.lock:
            self.destination.inputs.clear()


class SoundDeviceEngine(AudioGraph):
    """AudioGraph driven by a PortAudio output stream."""

    def __init__(self, config: Optional[SynthConfig] = None) -> None:
        super().__init__(config)
        self.stream = None

    def open(self) -> None:
        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            # OSError: the PortAudio shared library itself is missing
            raise AudioUnavailable(f"sounddevice unavailable: {e}") from e
        channels = int(self.config.channels)

        def callback(outdata, frames, time_info, status):
            if status:
                logger.warning("output callback: %s", status)
            try:
                block = self.render(frames)
            except Exception:
                logger.exception("render failed; emitting silence")
                outdata.fill(0)
                return
            outdata[:] = np.repeat(block.reshape(frames, 1), channels, axis=1)

        try:
            self.stream = sd.OutputStream(
                samplerate=self.sample_rate,
                channels=channels,
                blocksize=int(self.config.blocksize),
                dtype="float32",
                callback=callback,
            )
            self.stream.start()
        except Exception as e:
            self.stream = None
            raise AudioUnavailable(f"cannot open audio output: {e}") from e
        logger.info("audio stream open: %d Hz, blocksize %d", self.sample_rate, self.config.blocksize)

    def close(self) -> None:
        if self.stream is not None:
            try:
                self.stream.stop()
                self.stream.close()
            finally:
                self.stream = None
        super().close()
