"""
Station Confidence

Feature-gated 0-100 reliability score per station.
Independent of reporter reputation.
"""

from .station_confidence import (
    StationConfidenceEstimator,
    ConfidenceEstimate,
    ConfidenceSignals,
    compute_confidence,
    confidence_label,
    is_confidence_enabled,
)

__all__ = [
    'StationConfidenceEstimator',
    'ConfidenceEstimate',
    'ConfidenceSignals',
    'compute_confidence',
    'confidence_label',
    'is_confidence_enabled',
]
