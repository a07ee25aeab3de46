"""
Shared pytest fixtures: fake extractor, fake capture, ready camera session.
"""
import asyncio
import time
from typing import List, Optional

import numpy as np
import pytest

from live_recognition.session import CameraSession


class FakeExtractor:
    """
    Scriptable descriptor extractor.

    Records how many calls were outstanding at once.
    """

    def __init__(self, one=None, all_=(), delay: float = 0.0, error: Optional[Exception] = None):
        self.one = one
        self.all = list(all_)
        self.delay = delay
        self.error = error
        self.calls = 0
        self.outstanding = 0
        self.max_outstanding = 0

    async def _run(self, result):
        self.calls += 1
        self.outstanding += 1
        self.max_outstanding = max(self.max_outstanding, self.outstanding)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return result
        finally:
            self.outstanding -= 1

    async def extract_one(self, frame):
        return await self._run(self.one)

    async def extract_all(self, frame) -> List[np.ndarray]:
        return await self._run(list(self.all))


class FakeCapture:
    """cv2.VideoCapture stand-in delivering a fixed frame."""

    def __init__(self, frames_before_failure: Optional[int] = None):
        self.frames_before_failure = frames_before_failure
        self.reads = 0
        self.released = False

    def read(self):
        time.sleep(0.002)
        self.reads += 1
        if self.frames_before_failure is not None and self.reads > self.frames_before_failure:
            return False, None
        return True, np.full((8, 8, 3), 127, dtype=np.uint8)

    def release(self):
        self.released = True


def vec(value: float, length: int = 4) -> np.ndarray:
    return np.full(length, value, dtype=np.float32)


async def wait_until(predicate, timeout: float = 2.0, step: float = 0.005) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(step)
    return predicate()


@pytest.fixture
def frame():
    return np.zeros((8, 8, 3), dtype=np.uint8)


@pytest.fixture
def ready_session():
    session = CameraSession()
    session.select_device('0')
    session.on_stream_ready('0')
    return session
