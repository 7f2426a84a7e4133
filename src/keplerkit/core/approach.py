"""Closest-approach search between two independently propagated orbits."""
from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

import numpy as np
from scipy.optimize import newton

from keplerkit.utils.constants import (
    DEFAULT_CROSSING_MAX_ITERATIONS,
    DEFAULT_CROSSING_SAMPLES,
    DEFAULT_CROSSING_TOLERANCE_S,
    DEFAULT_SEPARATION_TOLERANCE,
)

if TYPE_CHECKING:
    from keplerkit.core.orbit import Orbit

logger = logging.getLogger(__name__)


def object_separation(orbit_a: Orbit, orbit_b: Orbit, time: float, tolerance: float) -> float:
    """Distance between the objects on two orbits at ``time``.

    Args:
        orbit_a: First orbit.
        orbit_b: Second orbit, around the same parent body.
        time: Absolute time in s.
        tolerance: Universal prediction tolerance for both orbits.

    Returns:
        Separation in km.

    Raises:
        ConvergenceError: If either prediction fails to converge.
    """
    ax, ay, az, _, _, _ = orbit_a.position_velocity_inertial(
        orbit_a.universal_prediction(time, tolerance)
    )
    bx, by, bz, _, _, _ = orbit_b.position_velocity_inertial(
        orbit_b.universal_prediction(time, tolerance)
    )
    dx = ax - bx
    dy = ay - by
    dz = az - bz
    return math.sqrt(dx * dx + dy * dy + dz * dz)


def crosses_within_distance(
    orbit: Orbit,
    other: Orbit,
    distance: float,
    start_time: float,
    end_time: float,
    *,
    samples: int = DEFAULT_CROSSING_SAMPLES,
    tolerance: float = DEFAULT_CROSSING_TOLERANCE_S,
    max_iterations: int = DEFAULT_CROSSING_MAX_ITERATIONS,
    prediction_tolerance: float = DEFAULT_SEPARATION_TOLERANCE,
) -> float | None:
    """Find the first time the two objects come within ``distance`` of each other.

    Uses a two-stage algorithm:
    1. Coarse uniform sampling of separation minus ``distance`` looking for a
       sign change between consecutive samples (samples landing exactly on
       zero never bracket, so two coincident objects with ``distance`` 0
       report no crossing)
    2. Secant refinement inside the first bracketing interval

    A crossing that enters and leaves within one sampling interval is not
    seen by stage 1. Raise ``samples`` to narrow that blind spot.

    Args:
        orbit: Primary orbit.
        other: Secondary orbit, around the same parent body.
        distance: Separation threshold in km.
        start_time: Start of the search window (s).
        end_time: End of the search window (s).
        samples: Number of coarse sampling intervals.
        tolerance: Secant refinement stops once successive estimates differ
            by less than this many seconds.
        max_iterations: Secant iteration cap.
        prediction_tolerance: Universal prediction tolerance used for every
            separation evaluation.

    Returns:
        Crossing time in s, ``start_time`` if the objects are already closer
        than ``distance``, or None if no crossing was found.

    Raises:
        ConvergenceError: If a universal prediction fails to converge.
    """

    def gap(t: float) -> float:
        return object_separation(orbit, other, t, prediction_tolerance) - distance

    times = np.linspace(start_time, end_time, samples + 1)

    previous_time = float(times[0])
    previous_gap = gap(previous_time)
    if previous_gap < 0 or (previous_gap == 0 and distance > 0):
        logger.debug("Already within %.6g km at t=%.6g s", distance, previous_time)
        return previous_time

    bracket: tuple[float, float] | None = None
    for t in times[1:]:
        current_time = float(t)
        current_gap = gap(current_time)
        if current_gap == 0 and previous_gap != 0:
            return current_time
        if previous_gap * current_gap < 0:
            bracket = (previous_time, current_time)
            break
        previous_time, previous_gap = current_time, current_gap

    if bracket is None:
        logger.debug(
            "No crossing of %.6g km in [%.6g, %.6g] s over %d samples",
            distance, start_time, end_time, samples,
        )
        return None

    logger.debug("Crossing bracketed in [%.6g, %.6g] s", *bracket)

    root, result = newton(
        gap,
        bracket[0],
        x1=bracket[1],
        tol=tolerance,
        maxiter=max_iterations,
        full_output=True,
        disp=False,
    )
    if not result.converged:
        logger.warning(
            "Secant refinement stopped after %d iterations (%s); returning last estimate",
            result.iterations, result.flag,
        )
    return float(root)
