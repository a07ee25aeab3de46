"""
Recognition service.

Wires the recognition pipeline together:
- Model loading (gates enrollment and detection)
- Camera enumeration, selection and frame acquisition
- Enrollment into the face registry
- Periodic detection and operator notices
"""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import numpy as np

from .camera import CaptureOpener, VideoStream, connect_capture
from .config import Config
from .errors import (
    CameraNotReady,
    DeviceEnumerationFailure,
    ModelLoadFailure,
    ModelsLoading,
    RecognitionError,
    StreamError,
)
from .extraction import DescriptorExtractor
from .logging_config import get_logger
from .notices import NoticeBoard
from .recognition.registry import EnrollResult, FaceRegistry
from .recognition.scheduler import DetectionScheduler, DetectionSummary
from .session import CameraSession, VideoDevice
from .streaming import PreviewStream

logger = get_logger(__name__)

ModelLoader = Callable[[], Awaitable[DescriptorExtractor]]
DeviceEnumerator = Callable[[], Sequence[VideoDevice]]


class ModelStatus(str, Enum):
    LOADING = 'loading'
    READY = 'ready'
    FAILED = 'failed'


class RecognitionService:
    """
    Enrollment and recognition over a live camera.

    Args:
        config: Service configuration
        model_loader: Coroutine function returning a ready extractor
        device_enumerator: Blocking function listing cameras
        opener: Function opening a capture for a device id
        notices: Notice board; a new one is created if omitted
    """

    def __init__(
        self,
        config: Config,
        model_loader: ModelLoader,
        device_enumerator: DeviceEnumerator,
        opener: CaptureOpener = connect_capture,
        notices: Optional[NoticeBoard] = None,
    ):
        self.config = config
        self.model_loader = model_loader
        self.device_enumerator = device_enumerator
        self.notices = notices or NoticeBoard()

        self.session = CameraSession()
        self.preview = PreviewStream()
        self.stream = VideoStream(
            self.session,
            config,
            on_frame=self._on_frame,
            on_error=self._on_stream_error,
            opener=opener,
        )

        self.model_status = ModelStatus.LOADING
        self.extractor: Optional[DescriptorExtractor] = None
        self.registry: Optional[FaceRegistry] = None
        self.scheduler: Optional[DetectionScheduler] = None

        self.started_at = time.time()
        self._enroll_lock = asyncio.Lock()

    @property
    def models_ready(self) -> bool:
        return self.model_status is ModelStatus.READY

    def models_unavailable(self) -> RecognitionError:
        """Error describing why models cannot be used right now."""
        if self.model_status is ModelStatus.FAILED:
            return ModelLoadFailure()
        return ModelsLoading()

    async def startup(self) -> None:
        """Load models and open the first camera concurrently."""
        await asyncio.gather(self.load_models(), self.refresh_devices())

    async def load_models(self) -> bool:
        """
        Load the descriptor extractor.

        Failure is permanent for this process.

        Returns:
            True if models are ready
        """
        if self.model_status is not ModelStatus.LOADING:
            return self.models_ready

        try:
            extractor = await self.model_loader()
        except Exception as e:
            error = e if isinstance(e, ModelLoadFailure) else ModelLoadFailure(str(e))
            self.model_status = ModelStatus.FAILED
            logger.error(f'❌ Model loading failed: {error}')
            self.notices.report(error)
            return False

        self.extractor = extractor
        self.registry = FaceRegistry(
            self.session,
            extractor,
            descriptor_length=self.config.descriptor_length,
        )
        self.scheduler = DetectionScheduler(
            self.session,
            extractor,
            frame_provider=self.stream.current_frame,
            threshold=self.config.match_threshold,
            policy=self.config.duplicate_name_policy,
        )
        self.scheduler.add_listener(self._on_summary)
        self.model_status = ModelStatus.READY

        logger.info('✅ Models ready')
        return True

    async def refresh_devices(self) -> List[VideoDevice]:
        """
        Enumerate cameras and select the preferred one.

        Enumeration failure is not fatal: the device list is empty and
        camera-dependent actions stay unavailable.
        """
        try:
            devices = list(await asyncio.to_thread(self.device_enumerator))
        except Exception as e:
            error = e if isinstance(e, DeviceEnumerationFailure) else DeviceEnumerationFailure(str(e))
            logger.warning(f'Camera enumeration failed: {error}')
            self.notices.report(error)
            devices = []

        self.session.set_devices(devices)

        if self.config.camera_source:
            preferred = self.config.camera_source
        elif devices:
            preferred = devices[0].device_id
        else:
            logger.warning('No cameras found')
            preferred = ''

        if preferred != self.session.selected_device_id:
            await self.select_device(preferred)
        return devices

    async def select_device(self, device_id: str) -> None:
        """
        Switch cameras.

        Running detection is not stopped; its ticks are skipped until the
        new stream delivers frames.
        """
        self.session.select_device(device_id)
        self.preview.clear()
        await self.stream.open(device_id)

    async def enroll(self, name: str) -> EnrollResult:
        """
        Capture the current frame and enroll the face under a name.

        Enrollments are serialized and wait for any outstanding detection
        extraction so the two never sample the stream together.
        """
        if not self.models_ready:
            result = EnrollResult(error=self.models_unavailable())
        elif self.scheduler.is_running:
            result = EnrollResult(error=CameraNotReady(notice='Stop detection before adding faces'))
        else:
            async with self._enroll_lock:
                await self.scheduler.wait_idle()
                result = await self.registry.enroll(name, self.stream.current_frame())

        if result.ok:
            self.notices.success(f'{result.entry.name} added successfully!')
        else:
            self.notices.report(result.error)
        return result

    def start_detection(self) -> bool:
        """
        Start detection with the configured interval.

        Returns:
            False when models are not ready, nothing is enrolled, the camera
            is not ready, an enrollment is in progress, or detection is
            already running
        """
        if not self.models_ready:
            return False
        if self._enroll_lock.locked() or self.session.stream_in_use:
            logger.info('Enrollment in progress, detection not started')
            return False
        return self.scheduler.start(self.registry, self.config.detection_interval_seconds)

    def stop_detection(self) -> None:
        if self.scheduler is not None:
            self.scheduler.stop()
        self.notices.dismiss_all()

    def faces(self) -> List[Dict[str, Any]]:
        if self.registry is None:
            return []
        return [entry.to_dict() for entry in self.registry.snapshot()]

    def status(self) -> Dict[str, Any]:
        scheduler = self.scheduler
        last_summary = scheduler.last_summary if scheduler is not None else None
        return {
            'service': self.config.service_name,
            'modelStatus': self.model_status.value,
            'selectedDeviceId': self.session.selected_device_id,
            'streamReady': self.session.is_ready(),
            'devices': [d.to_dict() for d in self.session.devices],
            'enrolledCount': self.registry.count() if self.registry is not None else 0,
            'detection': scheduler.phase.value if scheduler is not None else 'idle',
            'lastSummary': last_summary.to_dict() if last_summary is not None else None,
            'uptimeSeconds': round(time.time() - self.started_at, 1),
        }

    async def shutdown(self) -> None:
        if self.scheduler is not None:
            self.scheduler.stop()
            await self.scheduler.wait_idle()
        await self.stream.close()
        logger.info('Recognition service stopped')

    def _on_frame(self, frame: np.ndarray) -> None:
        summary = None
        if self.scheduler is not None and self.scheduler.is_running:
            summary = self.scheduler.last_summary
        self.preview.publish(frame, summary)

    def _on_stream_error(self, error: StreamError) -> None:
        self.preview.clear()
        self.notices.report(error)

    def _on_summary(self, summary: DetectionSummary) -> None:
        # Detection order, duplicates collapsed
        names = list(dict.fromkeys(m.label for m in summary.matches if m.is_known))
        if names:
            self.notices.success(f'Recognized: {", ".join(names)}')
        elif summary.has_unknown:
            self.notices.error('Unknown person detected!')
