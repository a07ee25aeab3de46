"""
Flask application for HTTP API.

Provides:
- GET /health: Service health check
- GET /devices, POST /devices/select: Camera selection
- GET /faces, POST /faces: Enrolled faces and enrollment
- GET /detection, POST /detection/start, POST /detection/stop
- GET /notices, DELETE /notices, DELETE /notices/<id>
- GET /video_feed: MJPEG preview stream

Handlers run on Flask's threads and hand work to the event loop thread
that owns the recognition service.
"""

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from .config import Config
from .logging_config import get_logger
from .service import RecognitionService
from .utils.async_loop import EventLoopThread

logger = get_logger(__name__)


def create_app(config: Config, service: RecognitionService, runner: EventLoopThread) -> Flask:
    """
    Create and configure Flask application.

    Args:
        config: Service configuration
        service: Recognition service living on the runner's loop
        runner: Event loop thread executing service calls

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    CORS(app)
    timeout = config.request_timeout_seconds

    @app.route('/health')
    def health():
        status = service.status()
        return jsonify({
            'status': 'ok' if status['modelStatus'] != 'failed' else 'degraded',
            'streaming': service.preview.is_streaming(),
            **status,
        })

    @app.route('/devices')
    def list_devices():
        return jsonify({
            'devices': [d.to_dict() for d in service.session.devices],
            'selectedDeviceId': service.session.selected_device_id,
        })

    @app.route('/devices/select', methods=['POST'])
    def select_device():
        payload = request.get_json(silent=True) or {}
        device_id = payload.get('deviceId')
        if not isinstance(device_id, str) or not device_id:
            return jsonify({'error': 'deviceId is required'}), 400

        runner.run(service.select_device(device_id), timeout)
        return jsonify({'selectedDeviceId': device_id, 'streamReady': service.session.is_ready()})

    @app.route('/faces')
    def list_faces():
        return jsonify({'faces': service.faces()})

    @app.route('/faces', methods=['POST'])
    def enroll_face():
        if not service.models_ready:
            error = service.models_unavailable()
            return jsonify({'error': error.notice, 'kind': type(error).__name__}), 503

        payload = request.get_json(silent=True) or {}
        name = payload.get('name', '')
        if not isinstance(name, str):
            return jsonify({'error': 'name must be a string'}), 400

        result = runner.run(service.enroll(name), timeout)
        if result.ok:
            return jsonify({'face': result.entry.to_dict()}), 201

        return jsonify({
            'error': result.error.notice,
            'kind': type(result.error).__name__,
        }), 422

    @app.route('/detection')
    def detection_status():
        status = service.status()
        return jsonify({
            'phase': status['detection'],
            'lastSummary': status['lastSummary'],
        })

    @app.route('/detection/start', methods=['POST'])
    def start_detection():
        started = runner.call(service.start_detection, timeout=timeout)
        return jsonify({'started': started, 'phase': service.status()['detection']})

    @app.route('/detection/stop', methods=['POST'])
    def stop_detection():
        runner.call(service.stop_detection, timeout=timeout)
        return jsonify({'phase': service.status()['detection']})

    @app.route('/notices')
    def list_notices():
        return jsonify({'notices': [n.to_dict() for n in service.notices.active()]})

    @app.route('/notices', methods=['DELETE'])
    def dismiss_all_notices():
        service.notices.dismiss_all()
        return '', 204

    @app.route('/notices/<int:notice_id>', methods=['DELETE'])
    def dismiss_notice(notice_id: int):
        if not service.notices.dismiss(notice_id):
            return jsonify({'error': 'notice not found'}), 404
        return '', 204

    @app.route('/video_feed')
    def video_feed():
        """Stream MJPEG video feed."""
        return Response(
            service.preview.generate_mjpeg(),
            mimetype='multipart/x-mixed-replace; boundary=frame'
        )

    return app
