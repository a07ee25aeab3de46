"""
Unit tests for DetectionScheduler.

Intervals are scaled down from seconds to milliseconds; the ratios between
interval and extraction latency match real deployments.
"""
import asyncio

import numpy as np
import pytest

from conftest import FakeExtractor, vec, wait_until
from live_recognition.errors import ExtractionFault
from live_recognition.recognition.registry import FaceRegistry
from live_recognition.recognition.scheduler import DetectionPhase, DetectionScheduler, DetectionSummary
from live_recognition.recognition.matching import Match, UNKNOWN_LABEL
from live_recognition.session import CameraSession

INTERVAL = 0.01


async def _enrolled_registry(session, frame, names=('Alice',)):
    extractor = FakeExtractor()
    registry = FaceRegistry(session, extractor)
    for i, name in enumerate(names):
        extractor.one = vec(float(i))
        await registry.enroll(name, frame)
    return registry


def _scheduler(session, extractor, frame, threshold=0.5):
    scheduler = DetectionScheduler(
        session,
        extractor,
        frame_provider=lambda: frame,
        threshold=threshold,
    )
    events = []
    scheduler.add_listener(events.append)
    return scheduler, events


class TestStart:
    """Tests for DetectionScheduler.start"""

    @pytest.mark.asyncio
    async def test_declines_with_empty_registry(self, ready_session, frame):
        scheduler, _ = _scheduler(ready_session, FakeExtractor(), frame)
        registry = FaceRegistry(ready_session, FakeExtractor())
        assert scheduler.start(registry, INTERVAL) is False
        assert scheduler.phase is DetectionPhase.IDLE
        assert scheduler.state.timer_handle is None

    @pytest.mark.asyncio
    async def test_declines_when_camera_not_ready(self, ready_session, frame):
        registry = await _enrolled_registry(ready_session, frame)
        ready_session.on_stream_error()
        scheduler, _ = _scheduler(ready_session, FakeExtractor(), frame)
        assert scheduler.start(registry, INTERVAL) is False
        assert scheduler.phase is DetectionPhase.IDLE

    @pytest.mark.asyncio
    async def test_second_start_is_noop(self, ready_session, frame):
        registry = await _enrolled_registry(ready_session, frame)
        scheduler, _ = _scheduler(ready_session, FakeExtractor(), frame)
        assert scheduler.start(registry, INTERVAL) is True
        handle = scheduler.state.timer_handle
        assert scheduler.start(registry, INTERVAL) is False
        assert scheduler.state.timer_handle is handle
        scheduler.stop()

    @pytest.mark.asyncio
    async def test_invalid_interval_raises(self, ready_session, frame):
        registry = await _enrolled_registry(ready_session, frame)
        scheduler, _ = _scheduler(ready_session, FakeExtractor(), frame)
        with pytest.raises(ValueError):
            scheduler.start(registry, 0)
        assert scheduler.phase is DetectionPhase.IDLE

    @pytest.mark.asyncio
    async def test_matcher_is_frozen_at_start(self, ready_session, frame):
        registry = await _enrolled_registry(ready_session, frame)
        scheduler, _ = _scheduler(ready_session, FakeExtractor(), frame)
        scheduler.start(registry, INTERVAL)
        registry.extractor.one = vec(7.0)
        await registry.enroll('Bob', frame)
        assert registry.count() == 2
        assert len(scheduler.matcher) == 1
        scheduler.stop()


class TestTicks:
    """Tests for tick behaviour"""

    @pytest.mark.asyncio
    async def test_tick_emits_summary(self, ready_session, frame):
        registry = await _enrolled_registry(ready_session, frame, names=('Alice', 'Bob'))
        extractor = FakeExtractor(all_=[vec(0.0), vec(5.0), vec(1.0)])
        scheduler, events = _scheduler(ready_session, extractor, frame)

        scheduler.start(registry, INTERVAL)
        assert await wait_until(lambda: len(events) >= 1)
        scheduler.stop()

        summary = events[0]
        assert summary.recognized_labels == frozenset({'Alice', 'Bob'})
        assert summary.has_unknown is True
        assert summary.face_count == 3
        assert scheduler.last_summary is not None

    @pytest.mark.asyncio
    async def test_no_faces_summary(self, ready_session, frame):
        registry = await _enrolled_registry(ready_session, frame)
        scheduler, events = _scheduler(ready_session, FakeExtractor(all_=[]), frame)
        scheduler.start(registry, INTERVAL)
        assert await wait_until(lambda: len(events) >= 1)
        scheduler.stop()
        assert events[0].recognized_labels == frozenset()
        assert events[0].has_unknown is False

    @pytest.mark.asyncio
    async def test_extraction_fault_keeps_timer_running(self, ready_session, frame):
        registry = await _enrolled_registry(ready_session, frame)
        extractor = FakeExtractor(error=ExtractionFault('model crashed'))
        scheduler, events = _scheduler(ready_session, extractor, frame)

        scheduler.start(registry, INTERVAL)
        assert await wait_until(lambda: extractor.calls >= 3)
        assert scheduler.is_running
        assert events == []

        extractor.error = None
        extractor.all = [vec(0.0)]
        assert await wait_until(lambda: len(events) >= 1)
        scheduler.stop()

    @pytest.mark.asyncio
    async def test_missing_frame_skips_tick(self, ready_session, frame):
        registry = await _enrolled_registry(ready_session, frame)
        extractor = FakeExtractor(all_=[vec(0.0)])
        scheduler = DetectionScheduler(ready_session, extractor, frame_provider=lambda: None)
        scheduler.start(registry, INTERVAL)
        await asyncio.sleep(INTERVAL * 5)
        scheduler.stop()
        assert extractor.calls == 0

    @pytest.mark.asyncio
    async def test_device_change_skips_ticks_until_ready(self, ready_session, frame):
        registry = await _enrolled_registry(ready_session, frame)
        extractor = FakeExtractor(all_=[vec(0.0)])
        scheduler, events = _scheduler(ready_session, extractor, frame)

        scheduler.start(registry, INTERVAL)
        assert await wait_until(lambda: len(events) >= 1)

        ready_session.select_device('1')
        await scheduler.wait_idle()
        calls_after_switch = extractor.calls
        await asyncio.sleep(INTERVAL * 5)
        assert scheduler.is_running
        assert extractor.calls == calls_after_switch

        ready_session.on_stream_ready('1')
        assert await wait_until(lambda: extractor.calls > calls_after_switch)
        scheduler.stop()


class TestStop:
    """Tests for DetectionScheduler.stop"""

    @pytest.mark.asyncio
    async def test_stop_returns_to_idle(self, ready_session, frame):
        registry = await _enrolled_registry(ready_session, frame)
        scheduler, _ = _scheduler(ready_session, FakeExtractor(), frame)
        scheduler.start(registry, INTERVAL)
        handle = scheduler.state.timer_handle

        scheduler.stop()

        assert scheduler.phase is DetectionPhase.IDLE
        assert scheduler.state.timer_handle is None
        await asyncio.sleep(0)
        assert handle.cancelled() or handle.done()

    @pytest.mark.asyncio
    async def test_no_events_after_stop(self, ready_session, frame):
        registry = await _enrolled_registry(ready_session, frame)
        extractor = FakeExtractor(all_=[vec(0.0)])
        scheduler, events = _scheduler(ready_session, extractor, frame)

        scheduler.start(registry, INTERVAL)
        assert await wait_until(lambda: len(events) >= 2)
        scheduler.stop()
        count = len(events)
        calls = extractor.calls

        await asyncio.sleep(INTERVAL * 5)
        assert len(events) == count
        assert extractor.calls == calls

    @pytest.mark.asyncio
    async def test_in_flight_result_is_discarded(self, ready_session, frame):
        registry = await _enrolled_registry(ready_session, frame)
        extractor = FakeExtractor(all_=[vec(0.0)], delay=INTERVAL * 5)
        scheduler, events = _scheduler(ready_session, extractor, frame)

        scheduler.start(registry, INTERVAL)
        assert await wait_until(lambda: extractor.outstanding == 1)
        scheduler.stop()

        await scheduler.wait_idle()
        assert extractor.outstanding == 0
        assert extractor.calls == 1
        assert events == []

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_noop(self, ready_session, frame):
        scheduler, _ = _scheduler(ready_session, FakeExtractor(), frame)
        scheduler.stop()
        assert scheduler.phase is DetectionPhase.IDLE


class TestOverlapGuard:
    """Extraction slower than the tick interval"""

    @pytest.mark.asyncio
    async def test_at_most_one_extraction_outstanding(self, ready_session, frame):
        registry = await _enrolled_registry(ready_session, frame)
        # 1500ms interval, 2000ms extraction
        extractor = FakeExtractor(all_=[vec(0.0)], delay=0.02)
        scheduler, events = _scheduler(ready_session, extractor, frame)

        scheduler.start(registry, 0.015)
        assert await wait_until(lambda: len(events) >= 3)
        scheduler.stop()
        await scheduler.wait_idle()

        assert extractor.max_outstanding == 1
        assert scheduler.skipped_ticks > 0


class TestDetectionSummary:
    """Tests for DetectionSummary"""

    def test_from_matches(self):
        summary = DetectionSummary.from_matches([
            Match('Alice', 0.1),
            Match('Alice', 0.2),
            Match(UNKNOWN_LABEL, 3.0),
        ])
        assert summary.recognized_labels == frozenset({'Alice'})
        assert summary.has_unknown
        assert summary.to_dict()['recognizedLabels'] == ['Alice']

    def test_empty(self):
        summary = DetectionSummary.from_matches([])
        assert summary.face_count == 0
        assert not summary.has_unknown


class TestStreamLease:
    """Ticks while another operation holds the stream"""

    @pytest.mark.asyncio
    async def test_tick_skipped_while_stream_held(self, ready_session, frame):
        registry = await _enrolled_registry(ready_session, frame)
        extractor = FakeExtractor(all_=[vec(0.0)])
        scheduler, events = _scheduler(ready_session, extractor, frame)

        with ready_session.exclusive_stream('enrollment'):
            scheduler.start(registry, INTERVAL)
            await asyncio.sleep(INTERVAL * 5)
            await scheduler.wait_idle()
            tick = scheduler._in_flight
            assert tick is not None and tick.done()
            assert tick.exception() is None
            assert extractor.calls == 0
            assert events == []

        assert await wait_until(lambda: len(events) >= 1)
        scheduler.stop()
        await scheduler.wait_idle()
