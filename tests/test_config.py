"""
Unit tests for configuration loading.
"""
import pytest

from live_recognition.config import DEFAULT_DETECTION_INTERVAL, DEFAULT_MATCH_THRESHOLD, Config, load_config

_ENV_KEYS = [
    'CAMERA_SOURCE', 'CAMERA_URLS', 'DETECTION_INTERVAL', 'MATCH_THRESHOLD',
    'DUPLICATE_NAME_POLICY', 'DEBUG', 'VIDEO_PORT',
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestLoadConfig:
    """Tests for load_config"""

    def test_defaults(self):
        config = load_config()
        assert config.detection_interval_seconds == DEFAULT_DETECTION_INTERVAL == 1.5
        assert config.match_threshold == DEFAULT_MATCH_THRESHOLD
        assert config.duplicate_name_policy == 'nearest'
        assert config.camera_source == ''
        assert config.extra_camera_sources == ()
        assert config.debug_mode is False

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv('DETECTION_INTERVAL', '1.0')
        monkeypatch.setenv('MATCH_THRESHOLD', '0.6')
        monkeypatch.setenv('DUPLICATE_NAME_POLICY', 'MEAN')
        monkeypatch.setenv('DEBUG', 'true')
        monkeypatch.setenv('VIDEO_PORT', '8080')
        config = load_config()
        assert config.detection_interval_seconds == 1.0
        assert config.match_threshold == 0.6
        assert config.duplicate_name_policy == 'mean'
        assert config.debug_mode is True
        assert config.video_port == 8080

    def test_camera_urls_are_split(self, monkeypatch):
        monkeypatch.setenv('CAMERA_URLS', 'rtsp://a/1, http://b/2.mjpg ,,')
        config = load_config()
        assert config.extra_camera_sources == ('rtsp://a/1', 'http://b/2.mjpg')

    def test_invalid_policy_raises(self, monkeypatch):
        monkeypatch.setenv('DUPLICATE_NAME_POLICY', 'median')
        with pytest.raises(ValueError, match="duplicate_name_policy"):
            load_config()

    def test_malformed_number_raises(self, monkeypatch):
        monkeypatch.setenv('DETECTION_INTERVAL', 'soon')
        with pytest.raises(ValueError):
            load_config()


class TestConfigValidation:
    """Tests for Config invariants"""

    @pytest.mark.parametrize("field,value", [
        ('detection_interval_seconds', 0),
        ('match_threshold', -1.0),
        ('descriptor_length', 0),
    ])
    def test_out_of_range_raises(self, field, value):
        with pytest.raises(ValueError):
            Config(**{field: value})

    def test_is_frozen(self):
        config = Config()
        with pytest.raises(AttributeError):
            config.match_threshold = 2.0
