"""
Camera session state.

Tracks which camera is selected and whether its stream has confirmed that
it is delivering frames. Readiness is reset on every device change and only
restored by an explicit stream-ready signal.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence

from .errors import StreamBusyError
from .logging_config import get_logger, set_camera_context

logger = get_logger(__name__)


@dataclass(frozen=True)
class VideoDevice:
    """A physical or network camera the operator can select."""

    device_id: str
    label: str

    def to_dict(self) -> Dict[str, str]:
        return {'deviceId': self.device_id, 'label': self.label}


@dataclass
class SessionState:
    selected_device_id: str = ''
    is_stream_ready: bool = False


class CameraSession:
    """
    Camera selection and stream readiness.

    State changes only through the public methods below. Whoever owns the
    capture reopens it after select_device and reports back through
    on_stream_ready / on_stream_error.
    """

    def __init__(self):
        self.state = SessionState()
        self.devices: List[VideoDevice] = []
        self._stream_owner: Optional[str] = None

    @property
    def selected_device_id(self) -> str:
        return self.state.selected_device_id

    def set_devices(self, devices: Sequence[VideoDevice]) -> None:
        self.devices = list(devices)
        logger.info(f'{len(self.devices)} camera(s) available')

    def select_device(self, device_id: str) -> None:
        """
        Make a device active.

        Readiness drops to False unconditionally, even when re-selecting the
        current device.
        """
        previous = self.state.selected_device_id
        self.state.selected_device_id = device_id
        self.state.is_stream_ready = False
        set_camera_context(device_id)

        if previous != device_id:
            logger.info(f'Camera selected: {device_id or "<none>"}')

    def on_stream_ready(self, device_id: Optional[str] = None) -> None:
        """
        Stream-started signal.

        Args:
            device_id: Device the signal refers to. A signal for a device
                that is no longer selected is ignored.
        """
        if device_id is not None and device_id != self.state.selected_device_id:
            logger.debug(f'Ignoring ready signal from stale device {device_id}')
            return
        if not self.state.selected_device_id:
            return
        if not self.state.is_stream_ready:
            logger.info('✅ Camera stream ready')
        self.state.is_stream_ready = True

    def on_stream_error(self, device_id: Optional[str] = None) -> None:
        if device_id is not None and device_id != self.state.selected_device_id:
            logger.debug(f'Ignoring error signal from stale device {device_id}')
            return
        if self.state.is_stream_ready:
            logger.warning('Camera stream lost')
        self.state.is_stream_ready = False

    def is_ready(self) -> bool:
        return bool(self.state.selected_device_id) and self.state.is_stream_ready

    @contextmanager
    def exclusive_stream(self, owner: str) -> Iterator[None]:
        """
        Claim the live stream for one sampling operation.

        Raises:
            StreamBusyError: If another operation holds the stream
        """
        if self._stream_owner is not None:
            raise StreamBusyError(
                f'Stream already in use by {self._stream_owner}; {owner} refused'
            )
        self._stream_owner = owner
        try:
            yield
        finally:
            self._stream_owner = None

    @property
    def stream_in_use(self) -> bool:
        return self._stream_owner is not None
