import os
import tempfile
import unittest
import wave

import numpy as np

from synthbridge.config import SynthConfig
from synthbridge.demo_note import render_demo, write_wav


class TestDemoRender(unittest.TestCase):
    def test_demo_phrase_renders(self):
        cfg = SynthConfig(sample_rate=8000)
        samples = render_demo(cfg, seconds_per_note=0.05)
        self.assertEqual(len(samples), 5 * 400)
        self.assertGreater(float(np.max(np.abs(samples[:400]))), 0.01)

    def test_write_wav(self):
        samples = np.linspace(-1.0, 1.0, 100, dtype=np.float32)
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "demo.wav")
            write_wav(path, samples, 8000)
            with wave.open(path, "rb") as w:
                self.assertEqual(w.getnframes(), 100)
                self.assertEqual(w.getframerate(), 8000)
                self.assertEqual(w.getsampwidth(), 2)


if __name__ == "__main__":
    unittest.main()
