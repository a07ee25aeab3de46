"""Descriptor extractor contract."""

from typing import List, Optional, Protocol

import numpy as np


class DescriptorExtractor(Protocol):
    """
    Turns a video frame into face identity descriptors.

    Implementations raise ExtractionFault for internal failures. "No face"
    is not a failure: extract_one returns None and extract_all returns [].
    """

    async def extract_one(self, frame: np.ndarray) -> Optional[np.ndarray]:
        """Descriptor of the best single face in the frame, or None."""
        ...

    async def extract_all(self, frame: np.ndarray) -> List[np.ndarray]:
        """Descriptors of every face detected in the frame."""
        ...
