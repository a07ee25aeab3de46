"""
Live Recognition - Main Entry Point

Loads face models, opens the camera and serves the enrollment and
recognition HTTP API.
"""

import argparse
import dataclasses
import os
import sys
from pathlib import Path

from .app import create_app
from .camera import enumerate_devices
from .config import load_config
from .face_app import create_extractor
from .logging_config import get_logger, setup_logging
from .service import ModelStatus, RecognitionService
from .utils.async_loop import EventLoopThread

logger = get_logger(__name__)


def _load_local_env() -> None:
    """Load environment variables from live_recognition/.env if present."""
    env_path = Path(__file__).resolve().parent / '.env'
    if not env_path.exists():
        return

    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        os.environ.setdefault(key.strip(), value.strip())


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Live Recognition - enroll faces from a camera and recognize them'
    )

    parser.add_argument(
        '--camera',
        type=str,
        help='Camera index or stream URL to select on startup (or set CAMERA_SOURCE)'
    )

    parser.add_argument(
        '--port',
        type=int,
        help='HTTP port (or set VIDEO_PORT)'
    )

    parser.add_argument(
        '--interval',
        type=float,
        help='Seconds between detection ticks (or set DETECTION_INTERVAL)'
    )

    parser.add_argument(
        '--threshold',
        type=float,
        help='Match distance threshold (or set MATCH_THRESHOLD)'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace):
    """Environment config with command line overrides applied."""
    config = load_config()

    overrides = {}
    if args.camera is not None:
        overrides['camera_source'] = args.camera
    if args.port is not None:
        overrides['video_port'] = args.port
    if args.interval is not None:
        overrides['detection_interval_seconds'] = args.interval
    if args.threshold is not None:
        overrides['match_threshold'] = args.threshold
    if args.debug:
        overrides['debug_mode'] = True

    return dataclasses.replace(config, **overrides) if overrides else config


def main() -> None:
    """Main entry point."""
    _load_local_env()
    args = parse_args()

    try:
        config = build_config(args)
    except ValueError as e:
        print(f'Invalid configuration: {e}', file=sys.stderr)
        sys.exit(2)

    setup_logging(config.camera_source, config.debug_mode)

    logger.info('=' * 60)
    logger.info('Live Recognition')
    logger.info('=' * 60)
    logger.info(f'Detection interval: {config.detection_interval_seconds}s')
    logger.info(f'Match threshold: {config.match_threshold} ({config.duplicate_name_policy})')
    logger.info(f'HTTP port: {config.video_port}')
    logger.info('=' * 60)

    runner = EventLoopThread()
    runner.start()

    service = RecognitionService(
        config,
        model_loader=lambda: create_extractor(config),
        device_enumerator=lambda: enumerate_devices(config),
    )

    try:
        runner.run(service.startup())

        if service.model_status is ModelStatus.FAILED:
            logger.error('Models unavailable; enrollment and detection are disabled until restart')

        app = create_app(config, service, runner)
        logger.info(f'Video stream: http://localhost:{config.video_port}/video_feed')
        app.run(
            host='0.0.0.0',
            port=config.video_port,
            threaded=True,
            debug=False,
            use_reloader=False
        )
    except KeyboardInterrupt:
        logger.info('Received keyboard interrupt, shutting down...')
    finally:
        runner.run(service.shutdown(), timeout=10)
        runner.stop()


if __name__ == '__main__':
    main()
