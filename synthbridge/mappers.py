from __future__ import annotations

import math

# Reference pitch: A4 = MIDI note 69 = 440 Hz
REFERENCE_NOTE = 69
REFERENCE_FREQ = 440.0

# ln(10 ** 127): velocity 127 maps to a gain of ~1.0
VELOCITY_GAIN_DIVISOR = 292.4283068102438


def note_to_frequency(note: int) -> float:
    """Map a MIDI note number to Hz (12-TET, A4=440). Not clamped.

    Notes past the float range map to +inf.
    """
    try:
        return REFERENCE_FREQ * 2.0 ** ((note - REFERENCE_NOTE) / 12)
    except OverflowError:
        return math.inf


def velocity_to_gain(velocity: int) -> float:
    """Map note velocity to a per-voice gain as ln(10^v) / 292.428...

    The power is evaluated in floating point; values past the float range
    map to +inf.
    """
    try:
        power = 10.0 ** velocity
    except OverflowError:
        return math.inf
    if power == 0.0:
        return -math.inf
    return math.log(power) / VELOCITY_GAIN_DIVISOR


def control_volume_to_gain(value: int) -> float:
    """Map a CC7 value to master gain in [0, 1]."""
    return value / 127


def pitch_bend_to_filter_cutoff(value: int) -> float:
    """Map the pitch bend high data byte to a low-pass cutoff in Hz (64 -> 1000)."""
    return (value / 64) * 1000
