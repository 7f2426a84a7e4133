"""Sampling orbits over time via universal prediction."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Sequence

import numpy as np
from numpy.typing import NDArray

from keplerkit.core.anomaly import ConvergenceError
from keplerkit.utils.constants import DEFAULT_PREDICTION_TOLERANCE

if TYPE_CHECKING:
    from keplerkit.core.orbit import Orbit

logger = logging.getLogger(__name__)


@dataclass
class StateVector:
    """Position and velocity in the parent body's inertial frame.

    Attributes:
        position_km: [x, y, z] position in km.
        velocity_km_s: [vx, vy, vz] velocity in km/s.
        time_s: Absolute time of this state in s.
        true_anomaly_rad: True anomaly at ``time_s``.
    """

    position_km: NDArray[np.float64]  # shape (3,)
    velocity_km_s: NDArray[np.float64]  # shape (3,)
    time_s: float
    true_anomaly_rad: float


def state_at(
    orbit: Orbit, time: float, tolerance: float = DEFAULT_PREDICTION_TOLERANCE
) -> StateVector:
    """Inertial state of the object on ``orbit`` at ``time``.

    Raises:
        ConvergenceError: If universal prediction fails to converge.
    """
    true_anomaly = orbit.universal_prediction(time, tolerance)
    x, y, z, vx, vy, vz = orbit.position_velocity_inertial(true_anomaly)
    return StateVector(
        position_km=np.array([x, y, z], dtype=np.float64),
        velocity_km_s=np.array([vx, vy, vz], dtype=np.float64),
        time_s=float(time),
        true_anomaly_rad=true_anomaly,
    )


def propagate(
    orbit: Orbit,
    times: Iterable[float],
    tolerance: float = DEFAULT_PREDICTION_TOLERANCE,
) -> list[StateVector]:
    """Predict a single orbit at multiple times.

    Args:
        orbit: Orbit to sample.
        times: Absolute times in s.
        tolerance: Universal prediction tolerance.

    Returns:
        List of StateVector objects, one per requested time.

    Raises:
        ConvergenceError: If prediction fails at any requested time.
    """
    result = [state_at(orbit, t, tolerance) for t in times]
    logger.debug("Propagated orbit around %r to %d times", orbit.parent_body.name, len(result))
    return result


def propagate_batch(
    orbits: Sequence[Orbit],
    time: float,
    tolerance: float = DEFAULT_PREDICTION_TOLERANCE,
) -> tuple[NDArray[np.float64], NDArray[np.bool_]]:
    """Predict many orbits at a single time.

    Orbits whose prediction does not converge are flagged invalid instead of
    aborting the whole batch; their rows are NaN.

    Args:
        orbits: Orbits to sample.
        time: Absolute time in s.
        tolerance: Universal prediction tolerance.

    Returns:
        Tuple of:
            - positions_velocities: Array of shape (n, 6) with [x,y,z,vx,vy,vz] in km, km/s
            - valid_mask: Boolean array of shape (n,) indicating which predictions succeeded
    """
    if not orbits:
        return np.empty((0, 6), dtype=np.float64), np.empty(0, dtype=np.bool_)

    n = len(orbits)
    result = np.full((n, 6), np.nan, dtype=np.float64)
    valid_mask = np.zeros(n, dtype=np.bool_)

    for i, orbit in enumerate(orbits):
        try:
            true_anomaly = orbit.universal_prediction(time, tolerance)
        except ConvergenceError:
            logger.warning("Prediction failed for orbit %d at t=%.6g s; marked invalid", i, time)
            continue
        result[i] = orbit.position_velocity_inertial(true_anomaly)
        valid_mask[i] = True

    return result, valid_mask
