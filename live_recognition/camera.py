"""
Camera connection and frame acquisition module.

Handles:
- Device enumeration (local webcams and configured stream URLs)
- Opening local webcams, RTSP streams and HTTP MJPEG streams with retries
- A frame pump that keeps the latest frame of the selected device and
  reports stream readiness to the camera session
"""

import asyncio
import threading
import time
from typing import Callable, List, Optional, Tuple, Union

import cv2
import numpy as np
import requests

from .config import Config
from .errors import DeviceEnumerationFailure, StreamError
from .logging_config import get_logger
from .session import CameraSession, VideoDevice

logger = get_logger(__name__)

CaptureOpener = Callable[[str, int], object]


def enumerate_devices(config: Config) -> List[VideoDevice]:
    """
    List selectable cameras.

    Probes local webcam indices and appends configured stream URLs.
    Stream URLs are not opened here.

    Args:
        config: Service configuration

    Returns:
        Devices in display order

    Raises:
        DeviceEnumerationFailure: If OpenCV cannot probe devices
    """
    devices: List[VideoDevice] = []

    try:
        for index in range(config.max_local_cameras):
            capture = cv2.VideoCapture(index)
            try:
                if capture.isOpened():
                    devices.append(VideoDevice(str(index), f'Camera {index + 1}'))
            finally:
                capture.release()
    except cv2.error as e:
        raise DeviceEnumerationFailure(f'Failed to probe local cameras: {e}') from e

    for url in config.extra_camera_sources:
        devices.append(VideoDevice(url, _sanitize_url(url)))

    logger.debug(f'Enumerated devices: {[d.device_id for d in devices]}')
    return devices


def _resolve_source(device_id: str) -> Tuple[str, Union[int, str]]:
    """Map a device id to (camera_type, VideoCapture source)."""
    if device_id.isdigit():
        return 'local', int(device_id)
    return 'stream', device_id


def connect_capture(device_id: str, max_retries: int = 3):
    """
    Open a camera with retry logic.

    Blocking; run it in a worker thread.

    Args:
        device_id: Webcam index or stream URL
        max_retries: Maximum connection attempts

    Returns:
        Opened capture object with a cv2.VideoCapture compatible interface

    Raises:
        StreamError: If connection fails after max_retries
    """
    camera_type, source = _resolve_source(device_id)

    for attempt in range(max_retries):
        logger.info(
            f'Connecting to {camera_type} camera {_sanitize_url(str(source))} '
            f'(attempt {attempt + 1}/{max_retries})...'
        )

        if camera_type == 'local':
            capture = cv2.VideoCapture(source)
        else:
            capture = _open_stream_capture(source)
            if capture is not None and is_rtsp_stream(device_id):
                capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        if capture is not None and capture.isOpened():
            ok, frame = capture.read()
            if ok and frame is not None:
                logger.info(f'✅ Camera connected ({camera_type}), frame size {frame.shape[1]}x{frame.shape[0]}')

                # Skip buffered frames so sampling starts near real time
                if is_rtsp_stream(device_id):
                    for _ in range(5):
                        capture.grab()

                return capture
            capture.release()
            logger.warning('Camera opened but failed to read frame')
        else:
            logger.warning('Failed to open camera')

        # Exponential backoff
        if attempt < max_retries - 1:
            wait_time = 2 ** attempt
            logger.info(f'Retrying in {wait_time} seconds...')
            time.sleep(wait_time)

    raise StreamError(f'Cannot connect to camera after {max_retries} attempts')


def is_rtsp_stream(device_id: str) -> bool:
    return device_id.startswith('rtsp://')


def _open_stream_capture(source: str):
    """
    Open an HTTP/RTSP stream.

    MJPEG over HTTP goes through MJPEGStreamCapture; everything else tries
    the OpenCV backends in turn.
    """
    if source.startswith(('http://', 'https://')):
        if '.mjpg' in source or 'mjpeg' in source.lower():
            logger.debug('Detected MJPEG stream, using HTTP reader')
            return MJPEGStreamCapture(source)

    backends = []
    if hasattr(cv2, 'CAP_FFMPEG'):
        backends.append(('CAP_FFMPEG', cv2.CAP_FFMPEG))
    backends.append(('DEFAULT', None))

    for backend_name, backend_flag in backends:
        try:
            if backend_flag is None:
                capture = cv2.VideoCapture(source)
            else:
                capture = cv2.VideoCapture(source, backend_flag)
        except cv2.error as exc:
            logger.debug(f'Backend {backend_name} failed: {exc}')
            continue

        if capture.isOpened():
            logger.debug(f'Stream opened with backend {backend_name}')
            return capture
        capture.release()

    return None


def _sanitize_url(url: str) -> str:
    """
    Remove password from URL for logging and labels.

    Args:
        url: URL with potential credentials

    Returns:
        URL with only the username kept
    """
    if '://' not in url:
        return url

    protocol, rest = url.split('://', 1)
    if '@' not in rest:
        return url

    creds, host = rest.rsplit('@', 1)
    username = creds.split(':', 1)[0]
    return f'{protocol}://{username}@{host}'


class MJPEGStreamCapture:
    """
    VideoCapture look-alike for HTTP MJPEG streams.

    Reads the multipart body with requests and decodes JPEG frames by
    scanning for SOI/EOI markers.
    """

    MAX_BUFFER_BYTES = 10 * 1024 * 1024

    def __init__(self, url: str, timeout: int = 10):
        self.url = url
        self._opened = False
        self._buffer = b''
        self._response = None
        self._chunks = None

        try:
            self._response = requests.get(url, stream=True, timeout=timeout)
            if self._response.status_code == 200:
                self._chunks = self._response.iter_content(chunk_size=1024)
                self._opened = True
            else:
                logger.warning(f'MJPEG stream returned status {self._response.status_code}')
        except requests.exceptions.RequestException as e:
            logger.warning(f'Failed to open MJPEG stream: {e}')

    def isOpened(self) -> bool:
        return self._opened

    def read(self) -> Tuple[bool, Optional[np.ndarray]]:
        if not self._opened or self._chunks is None:
            return False, None

        try:
            while True:
                chunk = next(self._chunks, None)
                if chunk is None:
                    return False, None
                self._buffer += chunk

                start = self._buffer.find(b'\xff\xd8')
                end = self._buffer.find(b'\xff\xd9', start + 2 if start != -1 else 0)
                if start != -1 and end != -1:
                    jpg = self._buffer[start:end + 2]
                    self._buffer = self._buffer[end + 2:]
                    frame = cv2.imdecode(np.frombuffer(jpg, dtype=np.uint8), cv2.IMREAD_COLOR)
                    if frame is not None:
                        return True, frame

                if len(self._buffer) > self.MAX_BUFFER_BYTES:
                    logger.warning('MJPEG buffer overflow, resetting')
                    self._buffer = b''
        except requests.exceptions.RequestException as e:
            logger.warning(f'Error reading MJPEG frame: {e}')
            return False, None

    def release(self) -> None:
        self._opened = False
        if self._response is not None:
            self._response.close()
        self._chunks = None
        self._buffer = b''

    def set(self, prop_id: int, value: float) -> bool:
        return True

    def grab(self) -> bool:
        return True


def _release_abandoned(opening: 'asyncio.Future') -> None:
    """Release a capture whose open finished after its stream was closed."""
    if opening.cancelled() or opening.exception() is not None:
        return
    capture = opening.result()
    try:
        capture.release()
        logger.info('Released camera opened after close')
    except Exception as e:
        logger.warning(f'Error releasing abandoned camera: {e}')


class VideoStream:
    """
    Keeps the latest frame of the selected camera.

    Opening runs in a worker thread. The first good frame signals
    on_stream_ready to the session; open failure or too many consecutive
    read failures signal on_stream_error.

    Args:
        session: Camera session receiving readiness signals
        config: Service configuration
        on_frame: Called with every new frame (preview publishing)
        on_error: Called with the StreamError when the stream fails
        opener: Function opening a capture for a device id
    """

    READ_RETRY_DELAY = 0.1

    def __init__(
        self,
        session: CameraSession,
        config: Config,
        on_frame: Optional[Callable[[np.ndarray], None]] = None,
        on_error: Optional[Callable[[StreamError], None]] = None,
        opener: CaptureOpener = connect_capture,
    ):
        self.session = session
        self.config = config
        self.on_frame = on_frame
        self.on_error = on_error
        self.opener = opener

        self.device_id = ''
        self._task: Optional[asyncio.Task] = None
        self._latest: Optional[np.ndarray] = None
        self._latest_at = 0.0
        self._io_lock = threading.Lock()

    async def open(self, device_id: str) -> None:
        """Switch to a device, closing the current one first."""
        await self.close()
        self.device_id = device_id
        if not device_id:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._pump(device_id),
            name=f'camera-{_sanitize_url(device_id)}',
        )

    async def close(self) -> None:
        task = self._task
        self._task = None
        self._latest = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    @property
    def is_open(self) -> bool:
        return self._task is not None and not self._task.done()

    def current_frame(self) -> Optional[np.ndarray]:
        """
        Copy of the latest frame.

        Returns None when nothing is buffered yet or the latest frame is
        older than frame_stale_seconds.
        """
        frame = self._latest
        if frame is None:
            return None
        if time.monotonic() - self._latest_at > self.config.frame_stale_seconds:
            return None
        return frame.copy()

    def _fail(self, device_id: str, error: StreamError) -> None:
        logger.error(f'Camera stream failed: {error}')
        self._latest = None
        self.session.on_stream_error(device_id)
        if self.on_error is not None:
            self.on_error(error)

    async def _pump(self, device_id: str) -> None:
        opening = asyncio.ensure_future(
            asyncio.to_thread(self.opener, device_id, self.config.camera_connect_retries)
        )
        try:
            # The worker thread cannot be interrupted; shield it so a cancel
            # leaves the capture to _release_abandoned
            capture = await asyncio.shield(opening)
        except asyncio.CancelledError:
            opening.add_done_callback(_release_abandoned)
            raise
        except StreamError as e:
            self._fail(device_id, e)
            return

        def read_frame():
            with self._io_lock:
                return capture.read()

        def release():
            with self._io_lock:
                capture.release()
            logger.info('Camera released')

        failures = 0
        try:
            while True:
                ok, frame = await asyncio.to_thread(read_frame)

                if not ok or frame is None:
                    failures += 1
                    logger.warning(
                        f'Failed to read frame ({failures}/{self.config.max_read_failures})'
                    )
                    if failures >= self.config.max_read_failures:
                        self._fail(device_id, StreamError('Camera stopped delivering frames'))
                        return
                    await asyncio.sleep(self.READ_RETRY_DELAY)
                    continue

                failures = 0
                self._latest = frame
                self._latest_at = time.monotonic()
                self.session.on_stream_ready(device_id)

                if self.on_frame is not None:
                    self.on_frame(frame)
        finally:
            # Waits for an in-progress read in the worker thread
            asyncio.get_running_loop().run_in_executor(None, release)
