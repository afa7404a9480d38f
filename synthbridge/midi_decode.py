from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Union

from synthbridge.mappers import note_to_frequency


# Status byte ranges/values the interpreter understands
NOTE_OFF_FIRST = 128
NOTE_OFF_LAST = 143
NOTE_ON_FIRST = 144
NOTE_ON_LAST = 159
CONTROL_CHANGE = 176
PITCH_BEND = 224

CC_MODULATION = 1
CC_VOLUME = 7


@dataclass(frozen=True)
class NoteOn:
    note: int
    velocity: int


@dataclass(frozen=True)
class NoteOff:
    note: int


@dataclass(frozen=True)
class ControlChange:
    controller: int
    value: int


@dataclass(frozen=True)
class PitchBend:
    value: int


@dataclass(frozen=True)
class Other:
    status: int


MidiEvent = Union[NoteOn, NoteOff, ControlChange, PitchBend, Other]


def is_note_on(status: int) -> bool:
    return NOTE_ON_FIRST <= status <= NOTE_ON_LAST


def is_note_off(status: int) -> bool:
    return NOTE_OFF_FIRST <= status <= NOTE_OFF_LAST


def decode(status: int, data1: int = 0, data2: int = 0) -> MidiEvent:
    """Classify one channel message by its status byte.

    Never raises: out-of-range data bytes are passed through unchanged and
    unknown statuses become Other. Control change and pitch bend are only
    recognized on the first channel (176 / 224). Release velocity and the
    pitch bend low byte are dropped.
    """
    if is_note_on(status):
        return NoteOn(note=data1, velocity=data2)
    if is_note_off(status):
        return NoteOff(note=data1)
    if status == CONTROL_CHANGE:
        return ControlChange(controller=data1, value=data2)
    if status == PITCH_BEND:
        return PitchBend(value=data2)
    return Other(status=status)


def decode_bytes(data: Sequence[int]) -> MidiEvent:
    """Decode a raw message; missing data bytes read as 0."""
    if not data:
        return Other(status=-1)
    padded = list(data[:3]) + [0] * (3 - min(3, len(data)))
    return decode(int(padded[0]), int(padded[1]), int(padded[2]))


def describe_message(device_name: str, data: Sequence[int]) -> str:
    """Human-readable monitor block for one incoming message."""
    b = list(data[:3]) + [None] * (3 - min(3, len(data)))
    status, data1, data2 = b
    note_freq = ""
    if status is not None and data1 is not None and (is_note_on(status) or is_note_off(status)):
        note_freq = f" ({note_to_frequency(data1)})"
    return (
        "=====================\n"
        f"{device_name}\n"
        "---------------------\n"
        f"Status: {status}\n"
        f"Data 1: {data1}{note_freq}\n"
        f"Data 2: {data2}\n"
        "====================="
    )
