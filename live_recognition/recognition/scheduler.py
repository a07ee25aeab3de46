"""
Detection scheduling module.

Runs periodic detection ticks while detection is active:
- Samples the current camera frame
- Extracts descriptors for every face
- Classifies them against a matcher frozen at start
- Emits one summary per completed tick

At most one extraction is outstanding at a time. A tick that comes due
while the previous one is still extracting is skipped.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, List, Optional, Sequence, Tuple

import numpy as np

from ..config import DEFAULT_DETECTION_INTERVAL, DEFAULT_MATCH_THRESHOLD
from ..errors import ExtractionFault, StreamBusyError
from ..extraction import DescriptorExtractor
from ..logging_config import get_logger
from ..session import CameraSession
from .matching import Match, Matcher
from .registry import FaceRegistry, frame_has_data

logger = get_logger(__name__)

FrameProvider = Callable[[], Optional[np.ndarray]]
SummaryListener = Callable[['DetectionSummary'], None]


class DetectionPhase(str, Enum):
    IDLE = 'idle'
    RUNNING = 'running'


@dataclass
class DetectionState:
    phase: DetectionPhase = DetectionPhase.IDLE
    timer_handle: Optional[asyncio.Task] = None


@dataclass(frozen=True)
class DetectionSummary:
    """What one tick saw."""

    recognized_labels: FrozenSet[str]
    has_unknown: bool
    matches: Tuple[Match, ...] = ()

    @property
    def face_count(self) -> int:
        return len(self.matches)

    @classmethod
    def from_matches(cls, matches: Sequence[Match]) -> 'DetectionSummary':
        return cls(
            recognized_labels=frozenset(m.label for m in matches if m.is_known),
            has_unknown=any(not m.is_known for m in matches),
            matches=tuple(matches),
        )

    def to_dict(self) -> dict:
        return {
            'recognizedLabels': sorted(self.recognized_labels),
            'hasUnknown': self.has_unknown,
            'faces': [
                {'label': m.label, 'distance': m.distance}
                for m in self.matches
            ],
        }


class DetectionScheduler:
    """
    Idle/Running state machine driving detection ticks.

    Args:
        session: Camera session; ticks are skipped while it is not ready
        extractor: Descriptor extractor
        frame_provider: Returns the current frame, or None if not buffered
        threshold: Matcher distance threshold
        policy: Matcher duplicate name policy
    """

    def __init__(
        self,
        session: CameraSession,
        extractor: DescriptorExtractor,
        frame_provider: FrameProvider,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
        policy: str = 'nearest',
    ):
        self.session = session
        self.extractor = extractor
        self.frame_provider = frame_provider
        self.threshold = threshold
        self.policy = policy

        self.state = DetectionState()
        self.matcher: Optional[Matcher] = None
        self.last_summary: Optional[DetectionSummary] = None
        self.skipped_ticks = 0

        self._listeners: List[SummaryListener] = []
        self._generation = 0
        self._in_flight: Optional[asyncio.Task] = None

    @property
    def phase(self) -> DetectionPhase:
        return self.state.phase

    @property
    def is_running(self) -> bool:
        return self.state.phase is DetectionPhase.RUNNING

    @property
    def tick_in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def add_listener(self, callback: SummaryListener) -> None:
        self._listeners.append(callback)

    def start(
        self,
        registry: FaceRegistry,
        interval: float = DEFAULT_DETECTION_INTERVAL,
    ) -> bool:
        """
        Begin periodic detection.

        Declines silently when already running, when nothing is enrolled, or
        when the camera is not ready. Must be called from the event loop.

        Args:
            registry: Registry to snapshot into the matcher
            interval: Seconds between ticks

        Returns:
            True if detection started
        """
        if self.is_running:
            logger.debug('Detection already running')
            return False
        if registry.count() == 0:
            logger.debug('Detection declined: no faces enrolled')
            return False
        if not self.session.is_ready():
            logger.debug('Detection declined: camera not ready')
            return False
        if interval <= 0:
            raise ValueError('interval must be positive')

        loop = asyncio.get_running_loop()

        self.matcher = Matcher.build(registry.snapshot(), self.threshold, self.policy)
        self.last_summary = None
        self._generation += 1
        self.state.phase = DetectionPhase.RUNNING
        self.state.timer_handle = loop.create_task(
            self._run_timer(self._generation, interval),
            name='detection-timer',
        )

        logger.info(
            f'🎬 Detection started: {len(self.matcher)} candidate(s), '
            f'interval={interval}s, threshold={self.threshold}'
        )
        return True

    def stop(self) -> None:
        """
        Stop detection.

        The timer is cancelled immediately. A tick that is already
        extracting keeps running but its result is discarded.
        """
        if not self.is_running:
            return

        self._generation += 1
        handle = self.state.timer_handle
        self.state.timer_handle = None
        self.state.phase = DetectionPhase.IDLE
        self.matcher = None

        if handle is not None:
            handle.cancel()

        logger.info('Detection stopped')

    async def wait_idle(self) -> None:
        """Wait for an outstanding extraction to finish, if any."""
        task = self._in_flight
        if task is not None and not task.done():
            await asyncio.wait([task])

    async def _run_timer(self, generation: int, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            if generation != self._generation:
                return
            self._fire(generation)

    def _fire(self, generation: int) -> None:
        if self.tick_in_flight:
            self.skipped_ticks += 1
            logger.debug('Previous tick still extracting, skipping')
            return
        self._in_flight = asyncio.get_running_loop().create_task(
            self._tick(generation),
            name='detection-tick',
        )

    async def _tick(self, generation: int) -> Optional[DetectionSummary]:
        """One sampling and classification cycle."""
        matcher = self.matcher
        if matcher is None or generation != self._generation:
            return None

        if not self.session.is_ready():
            logger.debug('Camera not ready, tick skipped')
            return None

        frame = self.frame_provider()
        if not frame_has_data(frame):
            logger.debug('No frame buffered, tick skipped')
            return None

        try:
            with self.session.exclusive_stream('detection'):
                descriptors = await self.extractor.extract_all(frame)
        except StreamBusyError as e:
            logger.warning(f'Tick skipped: {e}')
            return None
        except ExtractionFault as e:
            logger.error(f'Detection error: {e}')
            return None
        except Exception as e:
            logger.error(f'Detection error: {e}', exc_info=True)
            return None

        if generation != self._generation:
            logger.debug('Discarding tick result from a stopped detection run')
            return None

        try:
            matches = [matcher.classify(d) for d in descriptors]
        except ValueError as e:
            logger.error(f'Classification error: {e}')
            return None

        summary = DetectionSummary.from_matches(matches)
        self.last_summary = summary
        self._emit(summary)
        return summary

    def _emit(self, summary: DetectionSummary) -> None:
        for callback in list(self._listeners):
            try:
                callback(summary)
            except Exception as e:
                logger.error(f'Detection listener failed: {e}', exc_info=True)
