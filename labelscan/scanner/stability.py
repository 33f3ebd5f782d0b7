"""
==============================================================================
Stability Gate Module
==============================================================================

Skips decoding while the camera is moving.

A small centre patch of each frame is compared against the previous
frame's patch. Decoding is only attempted once enough consecutive frames
have stayed below the motion threshold.

==============================================================================
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from .session import ScanSession


# Module logger
logger = logging.getLogger(__name__)


# Difference reported when there is nothing to compare against
FULL_MOTION = 100.0


def sample_center_patch(rgba: np.ndarray, size: int = 32) -> np.ndarray:
    """
    Take the red channel of a centred square patch.

    Args:
        rgba: Frame buffer (grayscale frames are sampled directly)
        size: Patch side, clamped to the frame

    Returns:
        (h, w) float32 copy of the patch
    """
    height, width = rgba.shape[:2]
    pw = min(size, width)
    ph = min(size, height)
    x0 = (width - pw) // 2
    y0 = (height - ph) // 2

    patch = rgba[y0:y0 + ph, x0:x0 + pw]
    if patch.ndim == 3:
        patch = patch[..., 0]
    return patch.astype(np.float32, copy=True)


def frame_diff(previous: Optional[np.ndarray], current: np.ndarray) -> float:
    """Mean absolute difference of two patches (FULL_MOTION if incomparable)."""
    if previous is None or previous.shape != current.shape or current.size == 0:
        return FULL_MOTION
    return float(np.mean(np.abs(current - previous)))


class StabilityGate:
    """
    Motion gate updating a session's stability streak.

    Attributes:
        motion_threshold: Mean difference above which a frame is moving
        stable_frames_required: Streak that must be exceeded to decode
        patch_size: Side of the sampled centre patch
    """

    def __init__(
        self,
        motion_threshold: float = 25.0,
        stable_frames_required: int = 3,
        patch_size: int = 32,
    ) -> None:
        self.motion_threshold = motion_threshold
        self.stable_frames_required = stable_frames_required
        self.patch_size = patch_size

    def observe(self, session: ScanSession, rgba: np.ndarray) -> bool:
        """
        Record one frame and report whether decoding should run.

        Args:
            session: Session whose streak and sample are updated
            rgba: Current frame

        Returns:
            True once the stable streak exceeds ``stable_frames_required``
        """
        sample = sample_center_patch(rgba, self.patch_size)
        diff = frame_diff(session.last_frame_sample, sample)
        session.last_frame_sample = sample

        if diff > self.motion_threshold:
            if session.stable_frame_streak:
                logger.debug(f"Motion {diff:.1f} reset streak")
            session.stable_frame_streak = 0
        else:
            session.stable_frame_streak += 1

        return session.stable_frame_streak > self.stable_frames_required
