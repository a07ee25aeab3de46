"""
Unit tests for the MJPEG preview.
"""
import threading

import numpy as np

from live_recognition.recognition.matching import Match
from live_recognition.recognition.scheduler import DetectionSummary
from live_recognition.streaming import PreviewStream, draw_status


def _summary(*matches):
    return DetectionSummary.from_matches(list(matches))


class TestDrawStatus:
    """Tests for draw_status"""

    def test_no_summary_leaves_frame(self):
        frame = np.zeros((60, 200, 3), dtype=np.uint8)
        assert draw_status(frame, None).max() == 0

    def test_recognized_draws_text(self):
        frame = np.zeros((60, 400, 3), dtype=np.uint8)
        draw_status(frame, _summary(Match('Alice', 0.1)))
        assert frame.max() > 0


class TestPreviewStream:
    """Tests for PreviewStream"""

    def test_publish_copies_frame(self):
        preview = PreviewStream()
        frame = np.full((16, 16, 3), 50, dtype=np.uint8)
        preview.publish(frame)
        frame[:] = 0
        assert preview.is_streaming()
        assert preview.encode_jpeg().startswith(b'\xff\xd8')

    def test_clear(self):
        preview = PreviewStream()
        preview.publish(np.zeros((16, 16, 3), dtype=np.uint8))
        preview.clear()
        assert not preview.is_streaming()
        assert preview.encode_jpeg() is None

    def test_generate_mjpeg_yields_parts(self):
        preview = PreviewStream(fps=1000)
        preview.publish(np.zeros((16, 16, 3), dtype=np.uint8))
        stop = threading.Event()
        stream = preview.generate_mjpeg(stop)

        part = next(stream)
        stop.set()

        assert part.startswith(b'--frame\r\nContent-Type: image/jpeg\r\n\r\n')
        assert list(stream) == []
