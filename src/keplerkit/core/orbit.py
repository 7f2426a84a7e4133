"""Two-body conic trajectories.

An :class:`Orbit` is built either from classical elements or from an
inertial position/velocity state, and then answers read-only queries:
state at a true anomaly, time of flight, and true anomaly at a time via the
universal-variable formulation of Kepler's problem.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import newton

from keplerkit.core import approach
from keplerkit.core.anomaly import (
    ConvergenceError,
    cross,
    dot,
    eccentric_from_true,
    hyperbolic_eccentric_from_true,
    hyperbolic_mean_from_eccentric,
    magnitude,
    mean_from_eccentric,
    perifocal_to_inertial_matrix,
    sqr_magnitude,
    stumpff_c,
    stumpff_s,
    true_from_eccentric,
    true_from_hyperbolic_eccentric,
)
from keplerkit.core.body import ParentBody
from keplerkit.utils.constants import (
    DEFAULT_MAX_NEWTON_ITERATIONS,
    DEFAULT_PREDICTION_TOLERANCE,
    EPSILON,
    TAU,
)

logger = logging.getLogger(__name__)


class ConicType(Enum):
    """Conic section of a trajectory, decided by eccentricity."""

    CIRCLE = "circle"
    ELLIPSE = "ellipse"
    PARABOLA = "parabola"
    HYPERBOLA = "hyperbola"

    @classmethod
    def from_eccentricity(cls, eccentricity: float) -> ConicType:
        if eccentricity == 0:
            return cls.CIRCLE
        if eccentricity < 1:
            return cls.ELLIPSE
        if eccentricity == 1:
            return cls.PARABOLA
        return cls.HYPERBOLA


def _acos(x: float) -> float:
    # Rounding can push a unit-vector cosine just past ±1.
    return math.acos(max(-1.0, min(1.0, x)))


def _perifocal_state(
    parameter: float, e: float, velocity_scale: float, true_anomaly: float
) -> tuple[float, float, float, float]:
    sin_nu = math.sin(true_anomaly)
    cos_nu = math.cos(true_anomaly)
    radius = parameter / (1.0 + e * cos_nu)
    return (
        radius * cos_nu,
        radius * sin_nu,
        velocity_scale * -sin_nu,
        velocity_scale * (e + cos_nu),
    )


def _rotate(rotation: NDArray[np.float64], x: float, y: float) -> tuple[float, float, float]:
    # Perifocal z is always zero, so the third column never contributes.
    return (
        float(x * rotation[0, 0] + y * rotation[0, 1]),
        float(x * rotation[1, 0] + y * rotation[1, 1]),
        float(x * rotation[2, 0] + y * rotation[2, 1]),
    )


def _true_anomaly_at_radius(parameter: float, e: float, radius: float) -> float | None:
    if e == 0:
        return None
    cos_nu = (parameter - radius) / (radius * e)
    if not -1.0 <= cos_nu <= 1.0:
        return None
    return math.acos(cos_nu)


def _time_to_escape(
    parent_body: ParentBody,
    e: float,
    semimajor_axis: float,
    parameter: float,
    true_anomaly: float,
) -> float:
    escape_radius = parent_body.sphere_of_influence
    if e < 1 or math.isinf(escape_radius):
        return math.inf

    escape_anomaly = _true_anomaly_at_radius(parameter, e, escape_radius)
    if escape_anomaly is None:
        # Sphere of influence lies inside periapsis: never inside to begin with.
        return 0.0

    front_term = math.sqrt(-semimajor_axis ** 3 / parent_body.mu)
    escape_mean = hyperbolic_mean_from_eccentric(
        hyperbolic_eccentric_from_true(escape_anomaly, e), e
    )
    current_mean = hyperbolic_mean_from_eccentric(
        hyperbolic_eccentric_from_true(true_anomaly, e), e
    )
    return front_term * (escape_mean - current_mean)


@dataclass(frozen=True, eq=False)
class Orbit:
    """A two-body trajectory about one :class:`ParentBody` as of one epoch.

    Orbits are immutable; assigning an attribute raises. A changed
    trajectory is a new Orbit. Both constructors accept a ``destination``
    to overwrite instead of allocating, for hosts that re-derive one orbit
    every tick. While that call runs the caller must hold exclusive access
    to the destination; no other reader may observe it mid-update.

    Attributes:
        parent_body: Body being orbited.
        conic: Conic section.
        specific_mechanical_energy: km²/s².
        specific_angular_momentum: km²/s.
        eccentricity: Dimensionless, >= 0.
        semimajor_axis: km; negative for hyperbolas.
        semiminor_axis: km.
        parameter: Semi-latus rectum in km.
        periapsis: Periapsis radius in km.
        apoapsis: Apoapsis radius in km, infinite unless elliptical.
        inclination: rad.
        longitude_of_ascending_node: rad.
        argument_of_periapsis: rad.
        epoch: Reference time in s.
        true_anomaly_at_epoch: rad.
        period: s, infinite unless elliptical.
        time_to_escape_at_epoch: s from epoch until leaving the parent's sphere of
            influence, infinite unless hyperbolic with a finite one.
        alpha: Reciprocal semimajor axis in 1/km.
        position_epoch: Inertial position at epoch, km.
        velocity_epoch: Inertial velocity at epoch, km/s.
        radius_epoch: |position_epoch|.
        speed_epoch: |velocity_epoch|.
        radial_velocity_epoch: Radial velocity component at epoch, km/s.
        rotation: Perifocal to inertial rotation matrix.
    """

    parent_body: ParentBody = field(repr=False)
    conic: ConicType
    specific_mechanical_energy: float
    specific_angular_momentum: float
    eccentricity: float
    semimajor_axis: float
    semiminor_axis: float
    parameter: float
    periapsis: float
    apoapsis: float
    inclination: float
    longitude_of_ascending_node: float
    argument_of_periapsis: float
    epoch: float
    true_anomaly_at_epoch: float
    period: float
    time_to_escape_at_epoch: float
    alpha: float
    position_epoch: NDArray[np.float64] = field(repr=False)
    velocity_epoch: NDArray[np.float64] = field(repr=False)
    radius_epoch: float = field(repr=False)
    speed_epoch: float = field(repr=False)
    radial_velocity_epoch: float = field(repr=False)
    rotation: NDArray[np.float64] = field(repr=False)

    @classmethod
    def _build(cls, destination: Orbit | None, fields: dict[str, Any]) -> Orbit:
        if destination is None:
            return cls(**fields)
        for name, value in fields.items():
            object.__setattr__(destination, name, value)
        return destination

    # --- Construction ---

    @classmethod
    def from_elements(
        cls,
        parent_body: ParentBody,
        eccentricity: float,
        semimajor_axis: float,
        inclination: float,
        raan: float,
        arg_periapsis: float,
        true_anomaly_at_epoch: float,
        epoch: float,
        destination: Orbit | None = None,
    ) -> Orbit:
        """Build an orbit from classical elements.

        Args:
            parent_body: Body being orbited.
            eccentricity: 0 <= e < 1 or e > 1.
            semimajor_axis: km, positive for ellipses, negative for hyperbolas.
            inclination: rad.
            raan: Longitude of the ascending node, rad.
            arg_periapsis: Argument of periapsis, rad.
            true_anomaly_at_epoch: rad.
            epoch: s.
            destination: Orbit to overwrite instead of allocating a new one.

        Returns:
            The orbit (``destination`` if given).

        Raises:
            ValueError: For a parabola (e == 1), a negative eccentricity or a
                semimajor axis whose sign does not match the conic. Nothing
                is written to ``destination``.
        """
        mu = parent_body.mu
        e = eccentricity
        a = semimajor_axis

        if e < 0:
            logger.error("Negative eccentricity: %r", e)
            raise ValueError(f"Eccentricity must be non-negative, got {e}")
        if e == 1:
            logger.error("Parabolic orbits are not supported")
            raise ValueError("Parabolic orbits (e == 1) are not supported")
        if e < 1 and a <= 0:
            logger.error("Elliptical orbit with semimajor axis %r", a)
            raise ValueError(f"Elliptical orbits need a positive semimajor axis, got {a}")
        if e > 1 and a >= 0:
            logger.error("Hyperbolic orbit with semimajor axis %r", a)
            raise ValueError(f"Hyperbolic orbits need a negative semimajor axis, got {a}")

        p = a * (1.0 - e * e)
        h = math.sqrt(mu * p)
        energy = -mu / (2.0 * a)

        rotation = perifocal_to_inertial_matrix(inclination, raan, arg_periapsis)

        if e < 1:
            semiminor_axis = math.sqrt(a * p)
            apoapsis = a * (1.0 + e)
            period = TAU * math.sqrt(a * a * a / mu)
        else:
            semiminor_axis = a * math.sqrt(e * e - 1.0)
            apoapsis = math.inf
            period = math.inf
        periapsis = a * (1.0 - e)

        rx, ry, vx, vy = _perifocal_state(p, e, mu / h, true_anomaly_at_epoch)
        px, py, pz = _rotate(rotation, rx, ry)
        qx, qy, qz = _rotate(rotation, vx, vy)
        radius = magnitude(px, py, pz)

        orbit = cls._build(destination, {
            "parent_body": parent_body,
            "conic": ConicType.from_eccentricity(e),
            "specific_mechanical_energy": energy,
            "specific_angular_momentum": h,
            "eccentricity": e,
            "semimajor_axis": a,
            "semiminor_axis": semiminor_axis,
            "parameter": p,
            "periapsis": periapsis,
            "apoapsis": apoapsis,
            "inclination": inclination,
            "longitude_of_ascending_node": raan,
            "argument_of_periapsis": arg_periapsis,
            "epoch": epoch,
            "true_anomaly_at_epoch": true_anomaly_at_epoch,
            "period": period,
            "time_to_escape_at_epoch": _time_to_escape(parent_body, e, a, p, true_anomaly_at_epoch),
            "alpha": 1.0 / a,
            "position_epoch": np.array([px, py, pz], dtype=np.float64),
            "velocity_epoch": np.array([qx, qy, qz], dtype=np.float64),
            "radius_epoch": radius,
            "speed_epoch": magnitude(qx, qy, qz),
            "radial_velocity_epoch": dot(qx, qy, qz, px, py, pz) / radius,
            "rotation": rotation,
        })

        logger.debug(
            "Built %s orbit around %r from elements: e=%.6g a=%.6g km",
            orbit.conic.value, parent_body.name, e, a,
        )
        return orbit

    @classmethod
    def from_state_vector(
        cls,
        parent_body: ParentBody,
        position_x: float,
        position_y: float,
        position_z: float,
        velocity_x: float,
        velocity_y: float,
        velocity_z: float,
        current_time: float,
        destination: Orbit | None = None,
    ) -> Orbit:
        """Determine the orbit from an inertial position/velocity state.

        Circular, parabolic and equatorial states leave some elements
        undefined. When one is hit exactly, the velocity is nudged by
        ``EPSILON`` km/s and the derivation restarts; the cached epoch state
        is the nudged one.

        Args:
            parent_body: Body being orbited.
            position_x: km.
            position_y: km.
            position_z: km.
            velocity_x: km/s.
            velocity_y: km/s.
            velocity_z: km/s.
            current_time: Time of the state, becomes the epoch (s).
            destination: Orbit to overwrite instead of allocating a new one.

        Returns:
            The orbit (``destination`` if given).
        """
        mu = parent_body.mu
        mu_reciprocal = 1.0 / mu
        px, py, pz = position_x, position_y, position_z
        vx, vy, vz = velocity_x, velocity_y, velocity_z

        while True:
            radius = magnitude(px, py, pz)
            velocity_sq = sqr_magnitude(vx, vy, vz)

            hx, hy, hz = cross(px, py, pz, vx, vy, vz)
            h_sq = sqr_magnitude(hx, hy, hz)

            r_dot_v = dot(px, py, pz, vx, vy, vz)
            radial_coefficient = velocity_sq - mu / radius
            ex = mu_reciprocal * (radial_coefficient * px - r_dot_v * vx)
            ey = mu_reciprocal * (radial_coefficient * py - r_dot_v * vy)
            ez = mu_reciprocal * (radial_coefficient * pz - r_dot_v * vz)
            e_sq = sqr_magnitude(ex, ey, ez)
            e = math.sqrt(e_sq)

            if e == 0.0 or e == 1.0:
                logger.debug("Degenerate eccentricity %g, nudging velocity x", e)
                vx += EPSILON
                continue

            inclination = _acos(hz / math.sqrt(h_sq))
            if inclination == 0.0 or inclination == math.pi:
                logger.debug("Equatorial state (i=%g), nudging velocity z", inclination)
                vz += EPSILON
                continue

            break

        energy = 0.5 * velocity_sq - mu / radius

        nx, ny, nz = cross(0.0, 0.0, 1.0, hx, hy, hz)
        n_mag = magnitude(nx, ny, nz)

        raan = _acos(nx / n_mag)
        if ny < 0:
            raan = TAU - raan

        arg_periapsis = _acos(dot(nx, ny, nz, ex, ey, ez) / (e * n_mag))
        if ez < 0:
            arg_periapsis = TAU - arg_periapsis

        true_anomaly = _acos(dot(ex, ey, ez, px, py, pz) / (e * radius))
        if r_dot_v < 0:
            true_anomaly = TAU - true_anomaly

        p = mu_reciprocal * h_sq

        if e < 1:
            a = p / (1.0 - e_sq)
            semiminor_axis = math.sqrt(a * p)
            apoapsis = a * (1.0 + e)
            period = TAU * math.sqrt(mu_reciprocal * a * a * a)
        else:
            a = -p / (e_sq - 1.0)
            semiminor_axis = a * math.sqrt(e * e - 1.0)
            apoapsis = math.inf
            period = math.inf
        periapsis = a * (1.0 - e)

        orbit = cls._build(destination, {
            "parent_body": parent_body,
            "conic": ConicType.from_eccentricity(e),
            "specific_mechanical_energy": energy,
            "specific_angular_momentum": math.sqrt(h_sq),
            "eccentricity": e,
            "semimajor_axis": a,
            "semiminor_axis": semiminor_axis,
            "parameter": p,
            "periapsis": periapsis,
            "apoapsis": apoapsis,
            "inclination": inclination,
            "longitude_of_ascending_node": raan,
            "argument_of_periapsis": arg_periapsis,
            "epoch": current_time,
            "true_anomaly_at_epoch": true_anomaly,
            "period": period,
            "time_to_escape_at_epoch": _time_to_escape(parent_body, e, a, p, true_anomaly),
            "alpha": 1.0 / a,
            "position_epoch": np.array([px, py, pz], dtype=np.float64),
            "velocity_epoch": np.array([vx, vy, vz], dtype=np.float64),
            "radius_epoch": radius,
            "speed_epoch": math.sqrt(velocity_sq),
            "radial_velocity_epoch": r_dot_v / radius,
            "rotation": perifocal_to_inertial_matrix(inclination, raan, arg_periapsis),
        })

        logger.debug(
            "Determined %s orbit around %r at t=%.3f s: e=%.6g a=%.6g km",
            orbit.conic.value, parent_body.name, current_time, e, a,
        )
        return orbit

    # --- Classification ---

    @property
    def is_elliptical(self) -> bool:
        """True for circles and ellipses."""
        return self.eccentricity < 1

    @property
    def is_hyperbolic(self) -> bool:
        return self.eccentricity > 1

    # --- State queries ---

    def position_velocity_perifocal(self, true_anomaly: float) -> tuple[float, float, float, float]:
        """Position and velocity in the perifocal frame (z is always 0).

        Returns:
            (x, y, vx, vy) in km and km/s.
        """
        return _perifocal_state(
            self.parameter,
            self.eccentricity,
            self.parent_body.mu / self.specific_angular_momentum,
            true_anomaly,
        )

    def position_velocity_inertial(
        self, true_anomaly: float
    ) -> tuple[float, float, float, float, float, float]:
        """Position and velocity in the parent's inertial frame.

        Returns:
            (x, y, z, vx, vy, vz) in km and km/s.
        """
        rx, ry, vx, vy = self.position_velocity_perifocal(true_anomaly)
        return _rotate(self.rotation, rx, ry) + _rotate(self.rotation, vx, vy)

    def transform_perifocal_to_inertial(self, x: float, y: float) -> tuple[float, float, float]:
        """Rotate an in-plane perifocal point into inertial coordinates."""
        return _rotate(self.rotation, x, y)

    def true_anomaly_at_radius(self, radius: float) -> float | None:
        """True anomaly where the trajectory crosses ``radius``.

        Returns the outbound crossing in [0, π], or None if the conic never
        reaches that radius (or is a circle, where every anomaly matches or
        none does).
        """
        return _true_anomaly_at_radius(self.parameter, self.eccentricity, radius)

    def normal(self) -> tuple[float, float, float]:
        """Unit normal of the orbital plane in inertial coordinates."""
        return (
            float(self.rotation[0, 2]),
            float(self.rotation[1, 2]),
            float(self.rotation[2, 2]),
        )

    # --- Time of flight and prediction ---

    def time_to_escape(self, true_anomaly: float) -> float:
        """Seconds until the trajectory leaves the parent's sphere of influence.

        Infinite for elliptical orbits and for a parent without a finite
        sphere of influence.
        """
        return _time_to_escape(
            self.parent_body, self.eccentricity, self.semimajor_axis, self.parameter, true_anomaly
        )

    def time_of_flight(self, start_anomaly: float, end_anomaly: float) -> float:
        """Seconds to travel from ``start_anomaly`` to ``end_anomaly``.

        On an ellipse the trip always runs forward, wrapping through
        periapsis when the end lies behind the start.
        """
        e = self.eccentricity
        a = self.semimajor_axis
        mu = self.parent_body.mu

        if self.is_elliptical:
            start_mean = mean_from_eccentric(eccentric_from_true(start_anomaly, e), e)
            end_mean = mean_from_eccentric(eccentric_from_true(end_anomaly, e), e)
            if start_mean > end_mean:
                end_mean += TAU
            return math.sqrt(a * a * a / mu) * (end_mean - start_mean)

        start_mean = hyperbolic_mean_from_eccentric(hyperbolic_eccentric_from_true(start_anomaly, e), e)
        end_mean = hyperbolic_mean_from_eccentric(hyperbolic_eccentric_from_true(end_anomaly, e), e)
        return math.sqrt(-a * a * a / mu) * (end_mean - start_mean)

    def universal_prediction(
        self,
        time: float,
        tolerance: float = DEFAULT_PREDICTION_TOLERANCE,
        max_iterations: int = DEFAULT_MAX_NEWTON_ITERATIONS,
    ) -> float:
        """True anomaly at ``time`` using the universal-variable formulation.

        Newton's method solves the universal Kepler equation for the
        universal anomaly x, which then maps back to eccentric (or
        hyperbolic eccentric) anomaly and on to true anomaly. The same
        iteration covers every supported conic.

        Args:
            time: Absolute time in s.
            tolerance: Stop once the Newton step |f(x)/f'(x)| is at most this.
            max_iterations: Iteration cap.

        Returns:
            True anomaly in radians.

        Raises:
            ConvergenceError: If the iteration cap is exceeded.
        """
        mu = self.parent_body.mu
        alpha = self.alpha
        e = self.eccentricity

        sqrt_mu = math.sqrt(mu)
        r0 = self.radius_epoch
        radial_term = r0 * self.radial_velocity_epoch / sqrt_mu
        energy_term = 1.0 - alpha * r0
        delta_time = time - self.epoch
        target = sqrt_mu * delta_time

        def f(x: float) -> float:
            z = alpha * x * x
            return (
                radial_term * x * x * stumpff_c(z)
                + energy_term * x * x * x * stumpff_s(z)
                + r0 * x
                - target
            )

        def f_prime(x: float) -> float:
            z = alpha * x * x
            return (
                radial_term * x * (1.0 - z * stumpff_s(z))
                + energy_term * x * x * stumpff_c(z)
                + r0
            )

        guess = sqrt_mu * abs(alpha) * delta_time
        if alpha < 0 and alpha * guess * guess < -1.0:
            # Far from epoch the linear guess overshoots a hyperbola by
            # orders of magnitude; seed from the asymptotic solution instead.
            direction = math.copysign(1.0, delta_time)
            ratio = (-2.0 * mu * alpha * delta_time) / (
                r0 * self.radial_velocity_epoch
                + direction * math.sqrt(-mu / alpha) * energy_term
            )
            if ratio > 1.0:
                guess = direction * math.sqrt(-1.0 / alpha) * math.log(ratio)

        try:
            x = float(newton(
                f,
                guess,
                fprime=f_prime,
                tol=tolerance,
                maxiter=max_iterations,
            ))
        except (RuntimeError, OverflowError, ZeroDivisionError) as exc:
            logger.warning(
                "Universal prediction did not converge (dt=%.6g s, e=%.6g, max_iterations=%d)",
                delta_time, e, max_iterations,
            )
            raise ConvergenceError(
                f"prediction did not converge within {max_iterations} iterations"
            ) from exc

        if self.is_elliptical:
            eccentric_at_epoch = eccentric_from_true(self.true_anomaly_at_epoch, e)
            eccentric_at_time = x / math.sqrt(self.semimajor_axis) + eccentric_at_epoch
            return true_from_eccentric(eccentric_at_time, e)

        hyperbolic_at_epoch = hyperbolic_eccentric_from_true(self.true_anomaly_at_epoch, e)
        hyperbolic_at_time = x / math.sqrt(-self.semimajor_axis) + hyperbolic_at_epoch
        return true_from_hyperbolic_eccentric(hyperbolic_at_time, e)

    # --- Closest approach ---

    def crosses_within_distance(
        self,
        other: Orbit,
        distance: float,
        start_time: float,
        end_time: float,
        **settings: Any,
    ) -> float | None:
        """First time in [start_time, end_time] the two objects come within ``distance``.

        See :func:`keplerkit.core.approach.crosses_within_distance` for the
        search settings.
        """
        return approach.crosses_within_distance(
            self, other, distance, start_time, end_time, **settings
        )
