"""Numeric primitives for two-body prediction.

Vector helpers work on three independent scalar coordinates rather than a
packed vector so that every intermediate keeps full double precision. The
anomaly conversions cover both elliptical and hyperbolic trajectories.
"""
from __future__ import annotations

import logging
import math
from math import acosh, asinh, atanh, cosh, sinh, tanh

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import newton

from keplerkit.utils.constants import (
    DEFAULT_KEPLER_TOLERANCE,
    DEFAULT_MAX_NEWTON_ITERATIONS,
    TAU,
)

logger = logging.getLogger(__name__)

__all__ = [
    "ConvergenceError",
    "cross",
    "dot",
    "magnitude",
    "sqr_magnitude",
    "scale",
    "sinh",
    "cosh",
    "tanh",
    "asinh",
    "acosh",
    "atanh",
    "eccentric_from_true",
    "mean_from_eccentric",
    "true_from_eccentric",
    "eccentric_from_mean",
    "hyperbolic_eccentric_from_true",
    "hyperbolic_mean_from_eccentric",
    "true_from_hyperbolic_eccentric",
    "hyperbolic_eccentric_from_mean",
    "stumpff_c",
    "stumpff_s",
    "perifocal_to_inertial_matrix",
]


class ConvergenceError(RuntimeError):
    """An iterative solver exceeded its iteration cap without converging."""


# --- 3-vector algebra ---


def cross(
    a1: float, a2: float, a3: float, b1: float, b2: float, b3: float
) -> tuple[float, float, float]:
    """Cross product a × b."""
    return a2 * b3 - a3 * b2, a3 * b1 - a1 * b3, a1 * b2 - a2 * b1


def dot(a1: float, a2: float, a3: float, b1: float, b2: float, b3: float) -> float:
    """Dot product a · b."""
    return a1 * b1 + a2 * b2 + a3 * b3


def magnitude(a1: float, a2: float, a3: float) -> float:
    return math.sqrt(a1 * a1 + a2 * a2 + a3 * a3)


def sqr_magnitude(a1: float, a2: float, a3: float) -> float:
    return a1 * a1 + a2 * a2 + a3 * a3


def scale(s: float, a1: float, a2: float, a3: float) -> tuple[float, float, float]:
    """Scalar multiple s·a."""
    return s * a1, s * a2, s * a3


# --- Elliptical anomalies ---


def eccentric_from_true(true_anomaly: float, e: float) -> float:
    """Eccentric anomaly from true anomaly, wrapped to [0, 2π).

    Args:
        true_anomaly: True anomaly in radians.
        e: Eccentricity (0 <= e < 1).

    Returns:
        Eccentric anomaly in radians.
    """
    return math.atan2(
        math.sqrt(1.0 - e * e) * math.sin(true_anomaly), e + math.cos(true_anomaly)
    ) % TAU


def mean_from_eccentric(eccentric_anomaly: float, e: float) -> float:
    """Kepler's equation: M = E − e·sin(E)."""
    return eccentric_anomaly - e * math.sin(eccentric_anomaly)


def true_from_eccentric(eccentric_anomaly: float, e: float) -> float:
    """True anomaly from eccentric anomaly using the half-angle form.

    The result lies in (−2π, 2π]; callers compare angles modulo 2π.
    """
    half = 0.5 * eccentric_anomaly
    return 2.0 * math.atan2(
        math.sqrt(1.0 + e) * math.sin(half), math.sqrt(1.0 - e) * math.cos(half)
    )


def _eccentric_series(mean_anomaly: float, e: float) -> float:
    """Sixth-order series in e for E(M). Loses accuracy as e approaches 1."""
    e2 = e * e
    e3 = e2 * e
    e4 = e3 * e
    e5 = e4 * e
    e6 = e5 * e
    m = mean_anomaly
    return (
        m
        + (e - e3 / 8.0 + e5 / 192.0) * math.sin(m)
        + (0.5 * e2 - e4 / 6.0 + e6 / 48.0) * math.sin(2.0 * m)
        + (3.0 * e3 / 8.0 - 27.0 * e5 / 128.0) * math.sin(3.0 * m)
        + (e4 / 3.0 - 4.0 * e6 / 15.0) * math.sin(4.0 * m)
        + (125.0 / 384.0) * e5 * math.sin(5.0 * m)
        + (27.0 / 80.0) * e6 * math.sin(6.0 * m)
    )


def eccentric_from_mean(
    mean_anomaly: float,
    e: float,
    tolerance: float = DEFAULT_KEPLER_TOLERANCE,
    max_iterations: int = DEFAULT_MAX_NEWTON_ITERATIONS,
) -> float:
    """Solve Kepler's equation M = E − e·sin(E) for E.

    The series expansion seeds Newton's method for moderate eccentricities;
    highly eccentric orbits start from π instead.

    Args:
        mean_anomaly: Mean anomaly in radians.
        e: Eccentricity (0 <= e < 1).
        tolerance: Newton step tolerance in radians.
        max_iterations: Iteration cap.

    Returns:
        Eccentric anomaly in radians (same revolution as ``mean_anomaly``).

    Raises:
        ConvergenceError: If Newton's method does not converge.
    """
    guess = _eccentric_series(mean_anomaly, e) if e < 0.8 else math.pi

    try:
        root = newton(
            lambda E: E - e * math.sin(E) - mean_anomaly,
            guess,
            fprime=lambda E: 1.0 - e * math.cos(E),
            tol=tolerance,
            maxiter=max_iterations,
        )
    except (RuntimeError, OverflowError) as exc:
        logger.warning("Kepler solver failed for M=%g, e=%g", mean_anomaly, e)
        raise ConvergenceError(
            f"Kepler's equation did not converge for M={mean_anomaly}, e={e}"
        ) from exc
    return float(root)


# --- Hyperbolic anomalies ---


def hyperbolic_eccentric_from_true(true_anomaly: float, e: float) -> float:
    """Hyperbolic eccentric anomaly H from true anomaly (e > 1)."""
    return 2.0 * atanh(math.sqrt((e - 1.0) / (e + 1.0)) * math.tan(0.5 * true_anomaly))


def hyperbolic_mean_from_eccentric(eccentric_anomaly: float, e: float) -> float:
    """Hyperbolic Kepler equation: M = e·sinh(H) − H."""
    return e * sinh(eccentric_anomaly) - eccentric_anomaly


def true_from_hyperbolic_eccentric(eccentric_anomaly: float, e: float) -> float:
    """True anomaly from hyperbolic eccentric anomaly (e > 1)."""
    return 2.0 * math.atan(math.sqrt((e + 1.0) / (e - 1.0)) * tanh(0.5 * eccentric_anomaly))


def hyperbolic_eccentric_from_mean(
    mean_anomaly: float,
    e: float,
    tolerance: float = DEFAULT_KEPLER_TOLERANCE,
    max_iterations: int = DEFAULT_MAX_NEWTON_ITERATIONS,
) -> float:
    """Solve M = e·sinh(H) − H for H.

    Raises:
        ConvergenceError: If Newton's method does not converge.
    """
    try:
        root = newton(
            lambda H: e * sinh(H) - H - mean_anomaly,
            asinh(mean_anomaly / e),
            fprime=lambda H: e * cosh(H) - 1.0,
            tol=tolerance,
            maxiter=max_iterations,
        )
    except (RuntimeError, OverflowError) as exc:
        logger.warning("Hyperbolic Kepler solver failed for M=%g, e=%g", mean_anomaly, e)
        raise ConvergenceError(
            f"Hyperbolic Kepler equation did not converge for M={mean_anomaly}, e={e}"
        ) from exc
    return float(root)


# --- Universal formulation ---


def stumpff_c(z: float) -> float:
    """Stumpff function C(z)."""
    if z > 0:
        return (1.0 - math.cos(math.sqrt(z))) / z
    if z < 0:
        return (cosh(math.sqrt(-z)) - 1.0) / -z
    return 0.5


def stumpff_s(z: float) -> float:
    """Stumpff function S(z)."""
    if z > 0:
        sqrt_z = math.sqrt(z)
        return (sqrt_z - math.sin(sqrt_z)) / (sqrt_z * sqrt_z * sqrt_z)
    if z < 0:
        sqrt_z = math.sqrt(-z)
        return (sinh(sqrt_z) - sqrt_z) / (sqrt_z * sqrt_z * sqrt_z)
    return 1.0 / 6.0


# --- Frames ---


def perifocal_to_inertial_matrix(
    inclination: float, raan: float, arg_periapsis: float
) -> NDArray[np.float64]:
    """Rotation matrix from the perifocal frame to the parent's inertial frame.

    Composition R3(−Ω)·R1(−i)·R3(−ω) of the 3-1-3 Euler sequence. Column 1
    points to periapsis, column 3 along the orbit normal.

    Args:
        inclination: Inclination in radians.
        raan: Longitude of the ascending node in radians.
        arg_periapsis: Argument of periapsis in radians.

    Returns:
        Orthonormal 3x3 matrix.
    """
    sin_i, cos_i = math.sin(inclination), math.cos(inclination)
    sin_raan, cos_raan = math.sin(raan), math.cos(raan)
    sin_argp, cos_argp = math.sin(arg_periapsis), math.cos(arg_periapsis)

    return np.array(
        [
            [
                cos_raan * cos_argp - sin_raan * sin_argp * cos_i,
                -cos_raan * sin_argp - sin_raan * cos_i * cos_argp,
                sin_raan * sin_i,
            ],
            [
                sin_raan * cos_argp + cos_raan * cos_i * sin_argp,
                -sin_raan * sin_argp + cos_raan * cos_i * cos_argp,
                -cos_raan * sin_i,
            ],
            [
                sin_i * sin_argp,
                sin_i * cos_argp,
                cos_i,
            ],
        ],
        dtype=np.float64,
    )
