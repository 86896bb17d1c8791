"""Polynomial evaluation and least-squares fitting for path approximation."""

from __future__ import annotations

from collections.abc import Iterable

import numpy as np


def polyeval(coeffs: Iterable[float], x: float) -> float:
    """Evaluate the polynomial with ascending-order ``coeffs`` at ``x``."""
    return float(sum(float(c) * x**i for i, c in enumerate(coeffs)))


def polyfit(xvals: Iterable[float], yvals: Iterable[float], order: int) -> np.ndarray:
    """Fit a polynomial of ``order`` to the points, lowest-order coefficient first.

    Raises ValueError when the point counts differ or the order is not
    between 1 and one less than the number of points.
    """
    x = np.asarray(list(xvals), dtype=float).ravel()
    y = np.asarray(list(yvals), dtype=float).ravel()
    if x.size != y.size:
        raise ValueError(
            f"xvals and yvals differ in length ({x.size} != {y.size})"
        )
    if not 1 <= order <= x.size - 1:
        raise ValueError(
            f"order must be between 1 and {x.size - 1} for {x.size} points, got {order}"
        )
    design = np.vander(x, order + 1, increasing=True)
    coeffs, *_ = np.linalg.lstsq(design, y, rcond=None)
    return coeffs