"""
Descriptor matching module.

Classifies face descriptors against a frozen snapshot of enrolled faces
using Euclidean distance.
"""

import math
from collections import OrderedDict
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from ..config import DEFAULT_MATCH_THRESHOLD
from .registry import FaceEntry

UNKNOWN_LABEL = 'unknown'


@dataclass(frozen=True)
class Match:
    """Classification of one descriptor."""

    label: str
    distance: float

    @property
    def is_known(self) -> bool:
        return self.label != UNKNOWN_LABEL


def euclidean_distances(descriptor: np.ndarray, candidates: np.ndarray) -> np.ndarray:
    """
    Distance from one descriptor to every row of a candidate matrix.

    Args:
        descriptor: Query vector, shape (D,)
        candidates: Stored vectors, shape (N, D)

    Returns:
        Distances, shape (N,)
    """
    return np.linalg.norm(candidates - descriptor, axis=1)


def _group_by_name(entries: Sequence[FaceEntry]) -> Tuple[List[str], List[np.ndarray]]:
    """Average enrollments that share a name, keeping first-seen order."""
    grouped: 'OrderedDict[str, List[np.ndarray]]' = OrderedDict()
    for entry in entries:
        grouped.setdefault(entry.name, []).append(entry.descriptor)

    labels = list(grouped.keys())
    centroids = [np.mean(np.stack(vectors), axis=0) for vectors in grouped.values()]
    return labels, centroids


class Matcher:
    """
    Immutable classifier over a snapshot of enrolled faces.

    With the 'nearest' policy every enrollment is its own candidate, so a
    name enrolled twice wins if either capture is closest. With 'mean' the
    captures of one name are averaged into a single candidate.
    """

    def __init__(self, labels: Sequence[str], descriptors: np.ndarray, threshold: float):
        if threshold <= 0:
            raise ValueError('threshold must be positive')
        if len(labels) != len(descriptors):
            raise ValueError('labels and descriptors differ in length')

        self._labels: Tuple[str, ...] = tuple(labels)
        self._descriptors = np.array(descriptors, dtype=np.float64)
        self._descriptors.setflags(write=False)
        self.threshold = float(threshold)

    @classmethod
    def build(
        cls,
        entries: Sequence[FaceEntry],
        threshold: float = DEFAULT_MATCH_THRESHOLD,
        policy: str = 'nearest',
    ) -> 'Matcher':
        """
        Freeze enrolled faces into a matcher.

        Args:
            entries: Enrolled faces in insertion order
            threshold: Distances above this classify as unknown
            policy: 'nearest' or 'mean'

        Returns:
            Matcher that no longer observes the source collection

        Raises:
            ValueError: On unknown policy or mismatched descriptor lengths
        """
        if policy == 'nearest':
            labels = [entry.name for entry in entries]
            vectors = [entry.descriptor for entry in entries]
        elif policy == 'mean':
            labels, vectors = _group_by_name(entries)
        else:
            raise ValueError(f'Unknown duplicate name policy: {policy!r}')

        if vectors:
            lengths = {len(v) for v in vectors}
            if len(lengths) > 1:
                raise ValueError(f'Descriptors have mixed lengths: {sorted(lengths)}')
            matrix = np.stack(vectors)
        else:
            matrix = np.empty((0, 0), dtype=np.float64)

        return cls(labels, matrix, threshold)

    @property
    def labels(self) -> Tuple[str, ...]:
        return self._labels

    @property
    def descriptor_length(self) -> int:
        return self._descriptors.shape[1] if len(self._labels) else 0

    def __len__(self) -> int:
        return len(self._labels)

    def classify(self, descriptor: np.ndarray) -> Match:
        """
        Find the nearest enrolled face.

        Ties go to the earliest candidate. Returns UNKNOWN_LABEL when the
        nearest distance exceeds the threshold, with that distance kept.
        """
        if not self._labels:
            return Match(UNKNOWN_LABEL, math.inf)

        query = np.asarray(descriptor, dtype=np.float64)
        if query.shape != (self.descriptor_length,):
            raise ValueError(
                f'Descriptor shape {query.shape} does not match '
                f'enrolled length {self.descriptor_length}'
            )

        distances = euclidean_distances(query, self._descriptors)
        best_idx = int(np.argmin(distances))
        best_distance = float(distances[best_idx])

        if best_distance > self.threshold:
            return Match(UNKNOWN_LABEL, best_distance)

        return Match(self._labels[best_idx], best_distance)
