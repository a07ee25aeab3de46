"""
InsightFace initialization module.

Provides face detection and descriptor extraction using InsightFace models.
Inference is blocking, so it runs in a worker thread to keep the event loop
responsive.
"""

import asyncio
from typing import Any, List, Optional

import numpy as np

from .config import Config
from .errors import ExtractionFault, ModelLoadFailure
from .logging_config import get_logger

logger = get_logger(__name__)


def initialize_face_app(config: Config) -> Any:
    """
    Initialize InsightFace FaceAnalysis.

    Args:
        config: Service configuration

    Returns:
        Initialized FaceAnalysis instance
    """
    from insightface.app import FaceAnalysis

    logger.info(f'Initializing InsightFace AI ({config.insightface_model})...')

    face_app = FaceAnalysis(
        name=config.insightface_model,
        providers=['CPUExecutionProvider'],
    )
    face_app.prepare(ctx_id=0, det_size=config.insightface_det_size)

    logger.info(f'✅ InsightFace initialized (det_size={config.insightface_det_size})')

    return face_app


async def load_face_app(config: Config) -> Any:
    """
    Load models without blocking the event loop.

    Raises:
        ModelLoadFailure: If any model fails to load
    """
    try:
        return await asyncio.to_thread(initialize_face_app, config)
    except Exception as e:
        logger.error(f'Model loading error: {e}', exc_info=True)
        raise ModelLoadFailure(str(e)) from e


async def create_extractor(config: Config) -> 'InsightFaceExtractor':
    """Load models and wrap them as a descriptor extractor."""
    face_app = await load_face_app(config)
    return InsightFaceExtractor(face_app)


class InsightFaceExtractor:
    """DescriptorExtractor backed by an InsightFace FaceAnalysis instance."""

    def __init__(self, face_app: Any):
        self.face_app = face_app

    def _detect(self, frame: np.ndarray) -> List[Any]:
        try:
            return list(self.face_app.get(frame))
        except Exception as e:
            raise ExtractionFault(f'InsightFace inference failed: {e}') from e

    async def extract_one(self, frame: np.ndarray) -> Optional[np.ndarray]:
        faces = await asyncio.to_thread(self._detect, frame)
        if not faces:
            return None

        # Most confident detection is the enrollment subject
        best = max(faces, key=lambda face: float(face.det_score))
        return np.asarray(best.normed_embedding, dtype=np.float32)

    async def extract_all(self, frame: np.ndarray) -> List[np.ndarray]:
        faces = await asyncio.to_thread(self._detect, frame)
        return [
            np.asarray(face.normed_embedding, dtype=np.float32)
            for face in faces
        ]
