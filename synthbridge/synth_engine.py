from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional

from synthbridge.audio_out import AudioEngine, AudioUnavailable, open_audio_engine
from synthbridge.config import SynthConfig
from synthbridge.devices import DeviceRegistry, InputProvider, MidoInputProvider, PortChange
from synthbridge.mappers import (
    control_volume_to_gain,
    note_to_frequency,
    pitch_bend_to_filter_cutoff,
    velocity_to_gain,
)
from synthbridge.midi_decode import (
    CC_VOLUME,
    ControlChange,
    MidiEvent,
    NoteOff,
    NoteOn,
    PitchBend,
    decode_bytes,
    describe_message,
)


logger = logging.getLogger(__name__)

AudioFactory = Callable[[SynthConfig], AudioEngine]
StatusListener = Callable[[str, Dict[str, Any]], None]


@dataclass
class Voice:
    note: int
    generator: Any
    gain: Any


class VoiceRegistry:
    """Active note -> Voice. A note absent from the map is not sounding."""

    def __init__(self) -> None:
        self._voices: Dict[int, Voice] = {}

    def start(self, note: int, voice: Voice) -> Optional[Voice]:
        """Insert or overwrite; return the displaced voice, if any."""
        prev = self._voices.get(note)
        self._voices[note] = voice
        return prev

    def stop(self, note: int) -> Optional[Voice]:
        # Stopping an unheld key is not an error
        return self._voices.pop(note, None)

    def get(self, note: int) -> Optional[Voice]:
        return self._voices.get(note)

    def notes(self) -> List[int]:
        return sorted(self._voices)

    def __contains__(self, note: object) -> bool:
        return note in self._voices

    def __len__(self) -> int:
        return len(self._voices)


class MasterChannel:
    """Shared output stage: master gain -> low-pass filter -> destination."""

    def __init__(self, engine: AudioEngine, config: SynthConfig) -> None:
        self.gain_node = engine.create_gain(config.master_gain)
        self.filter_node = engine.create_filter("lowpass", config.filter_cutoff, config.filter_q)
        self.gain_node.connect(self.filter_node)
        self.filter_node.connect(engine.destination)

    @property
    def gain(self) -> float:
        return float(self.gain_node.value)

    @gain.setter
    def gain(self, value: float) -> None:
        self.gain_node.value = value

    @property
    def cutoff(self) -> float:
        return float(self.filter_node.frequency)

    @cutoff.setter
    def cutoff(self, value: float) -> None:
        self.filter_node.frequency = value

    @property
    def input(self) -> Any:
        return self.gain_node


class SynthSession:
    """Interpret MIDI input and drive the voice graph.

    - Idle until ``start()`` builds the audio engine; events received while
      Idle are dropped.
    - Running is terminal: there is no way back to Idle.
    - One voice per held note; see ``SynthConfig.retrigger`` for repeated
      NoteOn handling.
    - Intake arrives on per-port callback threads and is serialized by
      ``_lock``.
    """

    def __init__(self, config: Optional[SynthConfig] = None, audio_factory: Optional[AudioFactory] = None,
                 provider: Optional[InputProvider] = None) -> None:
        self.config = config or SynthConfig()
        self.audio_factory = audio_factory or open_audio_engine
        self.provider = provider
        self.engine: Optional[AudioEngine] = None
        self.master: Optional[MasterChannel] = None
        self.voices = VoiceRegistry()
        self.devices: Optional[DeviceRegistry] = None
        self.midi_available: bool = True
        self._lock = threading.RLock()
        self._status: Deque[str] = deque(maxlen=max(1, int(self.config.status_lines)))
        self._listeners: List[StatusListener] = []
        self.metrics: Dict[str, int] = {
            "msgs_note_on": 0,
            "msgs_note_off": 0,
            "msgs_cc": 0,
            "msgs_pitch_bend": 0,
            "msgs_other": 0,
            "msgs_ignored_idle": 0,
            "voices_released": 0,
            "voices_retriggered": 0,
        }

    @property
    def running(self) -> bool:
        return self.engine is not None

    # --- Status ---
    def log_status(self, line: str) -> None:
        logger.info(line)
        self._status.append(line)
        self._notify("status", {"line": line})

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, kind: str, payload: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(kind, payload)
            except Exception:
                logger.exception("status listener failed")

    def status_lines(self) -> List[str]:
        return list(self._status)

    # --- Setup ---
    def setup_midi(self, provider: Optional[InputProvider] = None) -> bool:
        """Acquire MIDI inputs and subscribe each one.

        On failure the error is reported once and the session is left Idle
        for good with intake disabled. ``provider`` defaults to a mido
        provider honoring ``config.port_filter``.
        """
        self.log_status("Setting up MIDI...")
        try:
            if provider is None:
                provider = self.provider
            if provider is None:
                provider = MidoInputProvider(self.config.port_filter)
            self.provider = provider
            self.devices = DeviceRegistry(provider, self.on_midi, status=self.log_status)
            names = provider.list_inputs()
        except Exception as e:
            # MidiUnavailable, permission errors, unsupported host
            self._midi_failed(e)
            return False
        self.devices.enable_all(names)
        if not names:
            self.log_status("No MIDI inputs found; waiting for devices.")
        return True

    def _midi_failed(self, e: Exception) -> None:
        self.midi_available = False
        self.devices = None
        self.log_status(f"Error setting up MIDI: {e}")

    def start(self) -> bool:
        """Idle -> Running. Returns True once the audio engine is live."""
        with self._lock:
            if self.running:
                return True
            if not self.midi_available:
                self.log_status("MIDI unavailable; synth stays idle.")
                return False
            self.log_status("Starting audio engine...")
            try:
                engine = self.audio_factory(self.config)
            except AudioUnavailable as e:
                self.log_status(f"Error starting audio: {e}")
                return False
            self.master = MasterChannel(engine, self.config)
            self.engine = engine
        self.log_status("Synth Running")
        self._notify("state", self.get_state())
        return True

    # --- Intake ---
    def on_port_change(self, change: PortChange) -> None:
        # DeviceRegistry locks itself; closing a port while holding _lock could
        # wait on that port's own callback thread
        if self.devices is not None:
            self.devices.on_port_change(change)

    def on_midi(self, device_name: str, data: List[int]) -> None:
        monitor = describe_message(device_name, data)
        logger.debug("%s", monitor)
        self._notify("message", {"device": device_name, "data": list(data[:3]), "text": monitor})
        self.handle(decode_bytes(data))

    def handle(self, event: MidiEvent) -> None:
        with self._lock:
            if not self.running:
                self.metrics["msgs_ignored_idle"] += 1
                return
            if isinstance(event, NoteOn):
                self.metrics["msgs_note_on"] += 1
                self._note_on(event.note, event.velocity)
            elif isinstance(event, NoteOff):
                self.metrics["msgs_note_off"] += 1
                self._note_off(event.note)
            elif isinstance(event, ControlChange):
                self.metrics["msgs_cc"] += 1
                # CC1 (modulation) and the rest are recognized but have no effect
                if event.controller == CC_VOLUME:
                    self.master.gain = control_volume_to_gain(event.value)
            elif isinstance(event, PitchBend):
                self.metrics["msgs_pitch_bend"] += 1
                self.master.cutoff = pitch_bend_to_filter_cutoff(event.value)
            else:
                self.metrics["msgs_other"] += 1

    def _note_on(self, note: int, velocity: int) -> None:
        prev = self.voices.get(note)
        if prev is not None:
            self.metrics["voices_retriggered"] += 1
            if self.config.retrigger == "release":
                prev.generator.stop()
                self.metrics["voices_released"] += 1
        engine = self.engine
        gen = engine.create_generator(note_to_frequency(note), self.config.waveform)
        gain = engine.create_gain(velocity_to_gain(velocity))
        gen.connect(gain)
        gain.connect(self.master.input)
        gen.start()
        # "overwrite" drops the previous voice from the registry while its generator keeps running
        self.voices.start(note, Voice(note=note, generator=gen, gain=gain))

    def _note_off(self, note: int) -> None:
        voice = self.voices.stop(note)
        if voice is None:
            return
        voice.generator.stop()
        self.metrics["voices_released"] += 1

    # --- Snapshots ---
    def get_metrics(self) -> Dict[str, int]:
        return dict(self.metrics)

    def get_state(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "running": self.running,
                "midiAvailable": self.midi_available,
                "devices": self.devices.subscribed() if self.devices is not None else [],
                "activeNotes": self.voices.notes(),
                "masterGain": self.master.gain if self.master is not None else None,
                "filterCutoff": self.master.cutoff if self.master is not None else None,
            }

    def close(self) -> None:
        """Release devices and audio output at process exit."""
        if self.devices is not None:
            self.devices.close_all()
        if self.engine is not None:
            self.engine.close()
