"""
Face registry module.

Holds enrolled faces in memory, in enrollment order. Enrollment is
additive: entries are never merged or removed, even when names repeat.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..errors import CameraNotReady, EmptyName, ExtractionFault, NoFaceDetected, RecognitionError
from ..extraction import DescriptorExtractor
from ..logging_config import get_logger
from ..session import CameraSession

logger = get_logger(__name__)


@dataclass(frozen=True, eq=False)
class FaceEntry:
    """One enrolled face. The descriptor array is a read-only copy."""

    name: str
    descriptor: np.ndarray
    enrolled_at: float = field(default_factory=time.time)

    @classmethod
    def create(cls, name: str, descriptor: np.ndarray) -> 'FaceEntry':
        if not name:
            raise ValueError('FaceEntry name must be non-empty')
        frozen = np.array(descriptor, dtype=np.float64).reshape(-1)
        frozen.setflags(write=False)
        return cls(name=name, descriptor=frozen)

    def to_dict(self) -> Dict:
        return {
            'name': self.name,
            'enrolledAt': self.enrolled_at,
            'descriptorLength': int(self.descriptor.shape[0]),
        }


@dataclass(frozen=True)
class EnrollResult:
    """Outcome of an enrollment attempt: an entry or a recoverable error."""

    entry: Optional[FaceEntry] = None
    error: Optional[RecognitionError] = None

    @property
    def ok(self) -> bool:
        return self.entry is not None


def frame_has_data(frame: Optional[np.ndarray]) -> bool:
    """True when a captured frame actually holds image data."""
    return frame is not None and frame.size > 0


class FaceRegistry:
    """
    Ordered, append-only collection of enrolled faces.

    Args:
        session: Camera session gating enrollment on stream readiness
        extractor: Descriptor extractor used for captures
        descriptor_length: Expected descriptor length, or None to accept
            whatever the extractor produces
    """

    def __init__(
        self,
        session: CameraSession,
        extractor: DescriptorExtractor,
        descriptor_length: Optional[int] = None,
    ):
        self.session = session
        self.extractor = extractor
        self.descriptor_length = descriptor_length
        self._entries: List[FaceEntry] = []

    async def enroll(self, name: str, frame: Optional[np.ndarray]) -> EnrollResult:
        """
        Capture one face from a frame and store it under a name.

        Args:
            name: Person's name; surrounding whitespace is dropped
            frame: Current camera frame, or None if nothing is buffered

        Returns:
            EnrollResult with the new entry, or with EmptyName,
            CameraNotReady, NoFaceDetected or ExtractionFault

        Raises:
            StreamBusyError: If another operation is sampling the stream
        """
        name = (name or '').strip()
        if not name:
            return EnrollResult(error=EmptyName())

        if not self.session.is_ready() or not frame_has_data(frame):
            logger.warning(f'Camera not ready, cannot enroll {name}')
            return EnrollResult(error=CameraNotReady())

        with self.session.exclusive_stream('enrollment'):
            try:
                descriptor = await self.extractor.extract_one(frame)
            except ExtractionFault as e:
                logger.error(f'Capture error for {name}: {e}')
                return EnrollResult(error=e)
            except Exception as e:
                logger.error(f'Capture error for {name}: {e}', exc_info=True)
                return EnrollResult(error=ExtractionFault(str(e)))

        if descriptor is None:
            logger.warning(f'No face found for {name}')
            return EnrollResult(error=NoFaceDetected())

        if self.descriptor_length is not None and len(descriptor) != self.descriptor_length:
            logger.error(
                f'Extractor returned {len(descriptor)} values, '
                f'expected {self.descriptor_length}'
            )
            return EnrollResult(error=ExtractionFault('Unexpected descriptor length'))

        entry = FaceEntry.create(name, descriptor)
        self._entries.append(entry)

        logger.info(f'✅ {name} enrolled ({len(self._entries)} face(s) registered)')
        return EnrollResult(entry=entry)

    def snapshot(self) -> Tuple[FaceEntry, ...]:
        return tuple(self._entries)

    def count(self) -> int:
        return len(self._entries)

    def names(self) -> List[str]:
        return [entry.name for entry in self._entries]
