"""
Unit tests for the InsightFace-backed extractor.

FaceAnalysis is replaced with a mock; no models are loaded.
"""
from types import SimpleNamespace
from unittest.mock import MagicMock

import numpy as np
import pytest

from live_recognition import face_app
from live_recognition.config import Config
from live_recognition.errors import ExtractionFault, ModelLoadFailure
from live_recognition.face_app import InsightFaceExtractor, load_face_app


def _face(score, value):
    return SimpleNamespace(det_score=score, normed_embedding=np.full(4, value, dtype=np.float64))


class TestInsightFaceExtractor:
    """Tests for InsightFaceExtractor"""

    @pytest.mark.asyncio
    async def test_extract_one_picks_most_confident(self, frame):
        app = MagicMock()
        app.get.return_value = [_face(0.6, 1.0), _face(0.9, 2.0)]
        descriptor = await InsightFaceExtractor(app).extract_one(frame)
        assert descriptor.dtype == np.float32
        assert descriptor.tolist() == [2.0] * 4

    @pytest.mark.asyncio
    async def test_extract_one_without_faces(self, frame):
        app = MagicMock()
        app.get.return_value = []
        assert await InsightFaceExtractor(app).extract_one(frame) is None

    @pytest.mark.asyncio
    async def test_extract_all(self, frame):
        app = MagicMock()
        app.get.return_value = [_face(0.6, 1.0), _face(0.9, 2.0)]
        descriptors = await InsightFaceExtractor(app).extract_all(frame)
        assert [d[0] for d in descriptors] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_inference_error_is_extraction_fault(self, frame):
        app = MagicMock()
        app.get.side_effect = RuntimeError('onnx failure')
        with pytest.raises(ExtractionFault):
            await InsightFaceExtractor(app).extract_all(frame)


@pytest.mark.asyncio
async def test_load_failure_is_model_load_failure(monkeypatch):
    def broken(config):
        raise OSError('model download failed')

    monkeypatch.setattr(face_app, 'initialize_face_app', broken)
    with pytest.raises(ModelLoadFailure):
        await load_face_app(Config())
