"""
Video preview module.

Holds the most recent camera frame and serves it as an MJPEG stream.
Frames are published from the event loop thread and read by Flask
handler threads, so access goes through a lock.
"""

import threading
import time
from typing import Generator, Optional

import cv2
import numpy as np

from .recognition.scheduler import DetectionSummary


def draw_status(frame: np.ndarray, summary: Optional[DetectionSummary]) -> np.ndarray:
    """
    Draw the latest detection outcome on a frame.

    Args:
        frame: Frame to draw on (modified in place)
        summary: Latest detection summary, or None when not detecting

    Returns:
        The same frame
    """
    if summary is None:
        return frame

    if summary.recognized_labels:
        text = 'Recognized: ' + ', '.join(sorted(summary.recognized_labels))
        color = (0, 255, 0)
    elif summary.has_unknown:
        text = 'Unknown person detected!'
        color = (0, 0, 255)
    else:
        text = 'No faces'
        color = (255, 255, 255)

    # Shadow first, then the label
    cv2.putText(frame, text, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (0, 0, 0), 3)
    cv2.putText(frame, text, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, 2)
    return frame


class PreviewStream:
    """Latest-frame holder with MJPEG generation."""

    def __init__(self, jpeg_quality: int = 85, fps: float = 30.0):
        self.jpeg_quality = jpeg_quality
        self.frame_interval = 1.0 / fps
        self._frame: Optional[np.ndarray] = None
        self._lock = threading.Lock()

    def publish(self, frame: Optional[np.ndarray], summary: Optional[DetectionSummary] = None) -> None:
        annotated = draw_status(frame.copy(), summary) if frame is not None else None
        with self._lock:
            self._frame = annotated

    def clear(self) -> None:
        with self._lock:
            self._frame = None

    def is_streaming(self) -> bool:
        with self._lock:
            return self._frame is not None

    def encode_jpeg(self) -> Optional[bytes]:
        """Current frame as JPEG bytes, or None if there is no frame."""
        with self._lock:
            frame = self._frame
        if frame is None:
            return None

        ok, buffer = cv2.imencode('.jpg', frame, [cv2.IMWRITE_JPEG_QUALITY, self.jpeg_quality])
        if not ok:
            return None
        return buffer.tobytes()

    def generate_mjpeg(self, stop: Optional[threading.Event] = None) -> Generator[bytes, None, None]:
        """
        Yield multipart JPEG parts until stop is set.

        Yields:
            JPEG frame bytes with multipart headers
        """
        while stop is None or not stop.is_set():
            jpeg = self.encode_jpeg()
            if jpeg is None:
                time.sleep(0.1)
                continue

            yield (b'--frame\r\n'
                   b'Content-Type: image/jpeg\r\n\r\n' + jpeg + b'\r\n')

            time.sleep(self.frame_interval)
