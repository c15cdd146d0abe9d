"""
Gene filtering and scaling for the queryable expression matrix.
"""

from amlsubtypes.quality.filtering import (
    DetectionFilter,
    FilterStage,
    VariabilityFilter,
    ZScaleTransform,
)

__all__ = ['DetectionFilter', 'FilterStage', 'VariabilityFilter', 'ZScaleTransform']
