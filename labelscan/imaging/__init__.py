"""
==============================================================================
Imaging Package - Frame Enhancement
==============================================================================

Pixel-level building blocks for label decoding.

Modules:
--------
- primitives: Stateless transforms (blur, median, stretch, Otsu, rotate...)
- roi: Label location and skew estimation
- pipeline: Named enhancement variants and full preprocessing

==============================================================================
"""

from .pipeline import (
    DEFAULT_PRESET,
    EnhancementPipeline,
    PipelinePreset,
    PreprocessResult,
    Variant,
    get_preset,
    preprocess_for_scanner,
)
from .roi import Rectangle, auto_crop_label, deskew, estimate_best_skew_angle, locate_label

__all__ = [
    "DEFAULT_PRESET",
    "EnhancementPipeline",
    "PipelinePreset",
    "PreprocessResult",
    "Variant",
    "get_preset",
    "preprocess_for_scanner",
    "Rectangle",
    "auto_crop_label",
    "deskew",
    "estimate_best_skew_angle",
    "locate_label",
]
