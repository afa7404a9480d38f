import unittest

from synthbridge.midi_decode import (
    ControlChange,
    NoteOff,
    NoteOn,
    Other,
    PitchBend,
    decode,
    decode_bytes,
    describe_message,
)


class TestDecode(unittest.TestCase):
    def test_note_on_all_channels(self):
        self.assertEqual(decode(144, 60, 100), NoteOn(note=60, velocity=100))
        self.assertEqual(decode(159, 61, 1), NoteOn(note=61, velocity=1))
        # Velocity 0 is still a NoteOn (silent voice)
        self.assertEqual(decode(144, 60, 0), NoteOn(note=60, velocity=0))

    def test_note_off_ignores_release_velocity(self):
        self.assertEqual(decode(128, 60, 64), NoteOff(note=60))
        self.assertEqual(decode(143, 72, 0), NoteOff(note=72))

    def test_control_change_first_channel_only(self):
        self.assertEqual(decode(176, 7, 64), ControlChange(controller=7, value=64))
        self.assertEqual(decode(176, 1, 12), ControlChange(controller=1, value=12))
        self.assertEqual(decode(177, 7, 64), Other(status=177))

    def test_pitch_bend_uses_high_byte(self):
        self.assertEqual(decode(224, 5, 64), PitchBend(value=64))
        self.assertEqual(decode(225, 0, 64), Other(status=225))

    def test_unknown_status_is_other(self):
        self.assertEqual(decode(200, 1, 2), Other(status=200))
        self.assertEqual(decode(0xF8), Other(status=0xF8))
        self.assertEqual(decode(0, 0, 0), Other(status=0))

    def test_out_of_range_bytes_pass_through(self):
        self.assertEqual(decode(144, 200, 255), NoteOn(note=200, velocity=255))
        self.assertEqual(decode(300, 1, 1), Other(status=300))

    def test_short_and_empty_messages(self):
        self.assertEqual(decode_bytes([]), Other(status=-1))
        self.assertEqual(decode_bytes([0xF8]), Other(status=0xF8))
        self.assertEqual(decode_bytes([144, 60]), NoteOn(note=60, velocity=0))
        self.assertEqual(decode_bytes((128, 60, 0, 99)), NoteOff(note=60))

    def test_events_are_immutable(self):
        ev = decode(144, 60, 100)
        with self.assertRaises(Exception):
            ev.note = 61  # type: ignore[misc]


class TestDescribeMessage(unittest.TestCase):
    def test_note_message_shows_frequency(self):
        text = describe_message("Keys", [144, 69, 100])
        self.assertIn("Keys", text)
        self.assertIn("Status: 144", text)
        self.assertIn("Data 1: 69 (440.0)", text)
        self.assertIn("Data 2: 100", text)

    def test_non_note_message_has_no_frequency(self):
        text = describe_message("Keys", [176, 7, 64])
        self.assertIn("Data 1: 7\n", text)

    def test_short_message(self):
        text = describe_message("Clock", [0xF8])
        self.assertIn("Status: 248", text)
        self.assertIn("Data 1: None", text)


if __name__ == "__main__":
    unittest.main()
