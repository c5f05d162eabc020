"""Orientation arithmetic shared by the body and bat stages."""

from typing import Sequence

import numpy as np


def angular_difference(a: float, b: float, period: float = 360.0) -> float:
    """Smallest absolute difference between two orientations with the given period."""
    delta = abs(a - b) % period
    return min(delta, period - delta)


def angle_deltas(angles: Sequence[float], period: float = 360.0) -> np.ndarray:
    """
    Frame-to-frame orientation changes, wrapped into ``[0, period / 2]``.

    A segment turning through the +/-180 degree seam changes by a few
    degrees, not by almost a full turn.
    """
    deltas = np.abs(np.diff(np.asarray(angles, dtype=float))) % period
    return np.minimum(deltas, period - deltas)
