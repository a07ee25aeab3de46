"""
Recognition algorithms package.

Contains modules for:
- Face enrollment registry
- Descriptor matching
- Detection scheduling
"""

from .registry import EnrollResult, FaceEntry, FaceRegistry
from .matching import UNKNOWN_LABEL, Match, Matcher, euclidean_distances
from .scheduler import DetectionPhase, DetectionScheduler, DetectionState, DetectionSummary

__all__ = [
    'EnrollResult',
    'FaceEntry',
    'FaceRegistry',
    'UNKNOWN_LABEL',
    'Match',
    'Matcher',
    'euclidean_distances',
    'DetectionPhase',
    'DetectionScheduler',
    'DetectionState',
    'DetectionSummary',
]
