"""
Configuration module for Live Recognition.

Loads configuration from environment variables with sensible defaults.
All settings are immutable after initialization.
"""

import os
from dataclasses import dataclass
from typing import Tuple


# L2 distance between normalized ArcFace descriptors; 1.2 ~ cosine 0.28
DEFAULT_MATCH_THRESHOLD = 1.2
DEFAULT_DETECTION_INTERVAL = 1.5
DUPLICATE_NAME_POLICIES = ('nearest', 'mean')


@dataclass(frozen=True)
class Config:
    """
    Immutable configuration for Live Recognition.

    Service Identity:
        service_name: Name of this service instance
        video_port: Port for Flask HTTP server
        request_timeout_seconds: How long an HTTP handler waits for the core

    Camera Settings:
        camera_source: Preferred device id to select on startup. Empty means
            "first enumerated device". Can be:
            - Integer (0, 1, 2) for local webcam
            - RTSP URL: rtsp://user:pass@ip:port/path
            - HTTP URL: http://camera-gateway:4000/streams/1.mjpg
        extra_camera_sources: Stream URLs offered alongside local webcams
        max_local_cameras: Number of local webcam indices to probe
        camera_connect_retries: Attempts when opening a device
        max_read_failures: Consecutive failed reads before the stream errors
        frame_stale_seconds: Frames older than this are not "ready"

    Detection:
        detection_interval_seconds: Seconds between detection ticks

    Matching:
        match_threshold: Euclidean distance above which a face is unknown
        duplicate_name_policy: 'nearest' keeps every enrollment as its own
            candidate, 'mean' averages enrollments sharing a name
        descriptor_length: Length of descriptors produced by the extractor

    InsightFace:
        insightface_model: Model pack name
        insightface_det_size: Detection size for InsightFace (width, height)

    System:
        debug_mode: Enable debug logging
    """

    # Service
    service_name: str = 'live-recognition'
    video_port: int = 5001
    request_timeout_seconds: float = 30.0

    # Camera
    camera_source: str = ''
    extra_camera_sources: Tuple[str, ...] = ()
    max_local_cameras: int = 4
    camera_connect_retries: int = 3
    max_read_failures: int = 10
    frame_stale_seconds: float = 1.0

    # Detection
    detection_interval_seconds: float = DEFAULT_DETECTION_INTERVAL

    # Matching
    match_threshold: float = DEFAULT_MATCH_THRESHOLD
    duplicate_name_policy: str = 'nearest'
    descriptor_length: int = 512

    # InsightFace
    insightface_model: str = 'buffalo_l'
    insightface_det_size: Tuple[int, int] = (640, 640)

    # System
    debug_mode: bool = False

    def __post_init__(self):
        if self.detection_interval_seconds <= 0:
            raise ValueError('detection_interval_seconds must be positive')
        if self.match_threshold <= 0:
            raise ValueError('match_threshold must be positive')
        if self.duplicate_name_policy not in DUPLICATE_NAME_POLICIES:
            raise ValueError(
                f'duplicate_name_policy must be one of {DUPLICATE_NAME_POLICIES}, '
                f'got {self.duplicate_name_policy!r}'
            )
        if self.descriptor_length <= 0:
            raise ValueError('descriptor_length must be positive')


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


def load_config() -> Config:
    """
    Load configuration from environment variables.

    Returns:
        Config: Immutable configuration object

    Raises:
        ValueError: If a value is malformed or out of range
    """
    # Comma separated list of stream URLs
    extra_sources = tuple(
        url.strip()
        for url in os.getenv('CAMERA_URLS', '').split(',')
        if url.strip()
    )

    return Config(
        # Service
        service_name=os.getenv('SERVICE_NAME', 'live-recognition'),
        video_port=int(os.getenv('VIDEO_PORT', '5001')),
        request_timeout_seconds=float(os.getenv('REQUEST_TIMEOUT', '30')),

        # Camera
        camera_source=os.getenv('CAMERA_SOURCE', ''),
        extra_camera_sources=extra_sources,
        max_local_cameras=int(os.getenv('MAX_LOCAL_CAMERAS', '4')),
        camera_connect_retries=int(os.getenv('CAMERA_RETRIES', '3')),
        max_read_failures=int(os.getenv('MAX_READ_FAILURES', '10')),
        frame_stale_seconds=float(os.getenv('FRAME_STALE_SECONDS', '1.0')),

        # Detection
        detection_interval_seconds=float(
            os.getenv('DETECTION_INTERVAL', str(DEFAULT_DETECTION_INTERVAL))
        ),

        # Matching
        match_threshold=float(os.getenv('MATCH_THRESHOLD', str(DEFAULT_MATCH_THRESHOLD))),
        duplicate_name_policy=os.getenv('DUPLICATE_NAME_POLICY', 'nearest').lower(),
        descriptor_length=int(os.getenv('DESCRIPTOR_LENGTH', '512')),

        # InsightFace
        insightface_model=os.getenv('INSIGHTFACE_MODEL', 'buffalo_l'),
        insightface_det_size=(640, 640),

        # System
        debug_mode=_env_bool('DEBUG', 'false'),
    )
