"""Tests for universal-variable prediction, time of flight and escape time."""
from __future__ import annotations

import math

import pytest

from keplerkit.core.anomaly import (
    ConvergenceError,
    eccentric_from_mean,
    eccentric_from_true,
    hyperbolic_eccentric_from_mean,
    hyperbolic_eccentric_from_true,
    hyperbolic_mean_from_eccentric,
    mean_from_eccentric,
    true_from_eccentric,
    true_from_hyperbolic_eccentric,
)
from keplerkit.core.body import ParentBody
from keplerkit.core.orbit import Orbit

TAU = 2.0 * math.pi


def angle_diff(a: float, b: float) -> float:
    return (a - b + math.pi) % TAU - math.pi


@pytest.fixture
def earth() -> ParentBody:
    return ParentBody.create("Earth", 5.972e24, 6378.1)


@pytest.fixture
def ellipse(earth: ParentBody) -> Orbit:
    return Orbit.from_elements(earth, 0.3, 10000.0, 0.5, 1.0, 2.0, 0.7, 100.0)


@pytest.fixture
def hyperbola(earth: ParentBody) -> Orbit:
    return Orbit.from_elements(earth, 1.5, -20000.0, 0.5, 1.0, 2.0, 0.5, 100.0)


def kepler_true_anomaly(orbit: Orbit, time: float) -> float:
    """True anomaly at ``time`` via Kepler's equation, for comparison."""
    e = orbit.eccentricity
    a = orbit.semimajor_axis
    mu = orbit.parent_body.mu
    dt = time - orbit.epoch
    if orbit.is_elliptical:
        M0 = mean_from_eccentric(eccentric_from_true(orbit.true_anomaly_at_epoch, e), e)
        M = (M0 + math.sqrt(mu / a ** 3) * dt) % TAU
        return true_from_eccentric(eccentric_from_mean(M, e), e)
    M0 = hyperbolic_mean_from_eccentric(hyperbolic_eccentric_from_true(orbit.true_anomaly_at_epoch, e), e)
    M = M0 + math.sqrt(mu / -a ** 3) * dt
    return true_from_hyperbolic_eccentric(hyperbolic_eccentric_from_mean(M, e), e)


class TestUniversalPrediction:
    @pytest.mark.parametrize("nu", [0.7, 4.5])
    def test_at_epoch(self, earth: ParentBody, nu: float) -> None:
        orbit = Orbit.from_elements(earth, 0.3, 10000.0, 0.5, 1.0, 2.0, nu, 100.0)
        assert angle_diff(orbit.universal_prediction(orbit.epoch, 1e-5), nu) == pytest.approx(0.0, abs=1e-12)

    def test_hyperbola_at_epoch(self, hyperbola: Orbit) -> None:
        assert hyperbola.universal_prediction(hyperbola.epoch, 1e-5) == pytest.approx(0.5, abs=1e-12)

    @pytest.mark.parametrize("dt", [60.0, 1000.0, 5000.0, 20000.0, -3000.0])
    def test_ellipse_matches_kepler(self, ellipse: Orbit, dt: float) -> None:
        t = ellipse.epoch + dt
        predicted = ellipse.universal_prediction(t, 1e-9)
        assert angle_diff(predicted, kepler_true_anomaly(ellipse, t)) == pytest.approx(0.0, abs=1e-7)

    @pytest.mark.parametrize("dt", [60.0, 3600.0, 20000.0, -1800.0])
    def test_hyperbola_matches_kepler(self, hyperbola: Orbit, dt: float) -> None:
        t = hyperbola.epoch + dt
        predicted = hyperbola.universal_prediction(t, 1e-9)
        assert predicted == pytest.approx(kepler_true_anomaly(hyperbola, t), abs=1e-7)

    def test_one_period_returns_to_start(self, ellipse: Orbit) -> None:
        predicted = ellipse.universal_prediction(ellipse.epoch + ellipse.period, 1e-9)
        assert angle_diff(predicted, ellipse.true_anomaly_at_epoch) == pytest.approx(0.0, abs=1e-7)

    def test_default_tolerance(self, ellipse: Orbit) -> None:
        t = ellipse.epoch + 1234.0
        assert angle_diff(ellipse.universal_prediction(t), kepler_true_anomaly(ellipse, t)) == pytest.approx(
            0.0, abs=1e-6
        )

    def test_iteration_cap_raises(self, ellipse: Orbit) -> None:
        with pytest.raises(ConvergenceError, match="did not converge"):
            ellipse.universal_prediction(ellipse.epoch + 5000.0, tolerance=1e-12, max_iterations=1)

    def test_iteration_cap_is_logged(self, ellipse: Orbit, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level("WARNING", logger="keplerkit.core.orbit"):
            with pytest.raises(ConvergenceError):
                ellipse.universal_prediction(ellipse.epoch + 5000.0, tolerance=1e-12, max_iterations=1)
        assert "did not converge" in caplog.text

    @pytest.mark.parametrize("dt", [1e5, 1e6, 1e7, -1e6])
    def test_hyperbola_far_from_epoch(self, hyperbola: Orbit, dt: float) -> None:
        t = hyperbola.epoch + dt
        predicted = hyperbola.universal_prediction(t, 1e-9)
        assert predicted == pytest.approx(kepler_true_anomaly(hyperbola, t), abs=1e-7)

    def test_low_periapsis_hyperbola_default_tolerance(self, earth: ParentBody) -> None:
        orbit = Orbit.from_elements(earth, 1.2, -8000.0, 0.4, 0.0, 0.0, 0.0, 0.0)
        predicted = orbit.universal_prediction(1e6)
        assert predicted == pytest.approx(kepler_true_anomaly(orbit, 1e6), abs=1e-6)

    def test_overflow_reported_as_convergence_error(
        self, ellipse: Orbit, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def overflowing(z: float) -> float:
            raise OverflowError("math range error")

        monkeypatch.setattr("keplerkit.core.orbit.stumpff_c", overflowing)
        with pytest.raises(ConvergenceError, match="did not converge"):
            ellipse.universal_prediction(ellipse.epoch + 5000.0)


class TestTimeOfFlight:
    def test_zero_for_same_anomaly(self, ellipse: Orbit) -> None:
        assert ellipse.time_of_flight(1.3, 1.3) == 0.0

    @pytest.mark.parametrize("start, end", [(0.7, 2.5), (0.0, math.pi), (5.0, 1.0)])
    def test_forward_and_back_is_one_period(self, ellipse: Orbit, start: float, end: float) -> None:
        total = ellipse.time_of_flight(start, end) + ellipse.time_of_flight(end, start)
        assert total == pytest.approx(ellipse.period, rel=1e-9)

    def test_always_forward_on_ellipse(self, ellipse: Orbit) -> None:
        assert ellipse.time_of_flight(2.5, 0.7) > 0.0

    def test_consistent_with_prediction(self, ellipse: Orbit) -> None:
        target = 2.9
        tof = ellipse.time_of_flight(ellipse.true_anomaly_at_epoch, target)
        predicted = ellipse.universal_prediction(ellipse.epoch + tof, 1e-9)
        assert angle_diff(predicted, target) == pytest.approx(0.0, abs=1e-7)

    def test_hyperbola_signed(self, hyperbola: Orbit) -> None:
        forward = hyperbola.time_of_flight(-0.5, 1.0)
        backward = hyperbola.time_of_flight(1.0, -0.5)
        assert forward > 0.0
        assert backward == pytest.approx(-forward)

    def test_hyperbola_consistent_with_prediction(self, hyperbola: Orbit) -> None:
        tof = hyperbola.time_of_flight(0.5, 1.5)
        predicted = hyperbola.universal_prediction(hyperbola.epoch + tof, 1e-9)
        assert predicted == pytest.approx(1.5, abs=1e-7)


class TestTimeToEscape:
    @pytest.fixture
    def moon(self, earth: ParentBody) -> ParentBody:
        moon = ParentBody.create("Moon", 7.342e22, 1737.4)
        moon.set_parent(earth, Orbit.from_elements(earth, 0.0549, 384400.0, 0.09, 0.0, 0.0, 0.0, 0.0))
        return moon

    def test_infinite_around_root_body(self, hyperbola: Orbit) -> None:
        assert math.isinf(hyperbola.time_to_escape(0.5))
        assert math.isinf(hyperbola.time_to_escape_at_epoch)

    def test_infinite_for_ellipse(self, moon: ParentBody) -> None:
        orbit = Orbit.from_elements(moon, 0.2, 5000.0, 0.1, 0.0, 0.0, 0.0, 0.0)
        assert math.isinf(orbit.time_to_escape(0.0))

    def test_finite_for_hyperbola_in_soi(self, moon: ParentBody) -> None:
        orbit = Orbit.from_elements(moon, 1.5, -5000.0, 0.1, 0.0, 0.0, 0.0, 0.0)
        escape_anomaly = orbit.true_anomaly_at_radius(moon.sphere_of_influence)
        assert escape_anomaly is not None

        remaining = orbit.time_to_escape(0.0)
        assert remaining > 0.0
        assert orbit.time_to_escape_at_epoch == pytest.approx(remaining)
        assert remaining == pytest.approx(orbit.time_of_flight(0.0, escape_anomaly))
        assert orbit.time_to_escape(escape_anomaly) == pytest.approx(0.0, abs=1e-6)

    def test_zero_when_soi_inside_periapsis(self, moon: ParentBody) -> None:
        orbit = Orbit.from_elements(moon, 3.0, -50000.0, 0.1, 0.0, 0.0, 0.0, 0.0)
        assert orbit.periapsis > moon.sphere_of_influence
        assert orbit.time_to_escape(0.0) == 0.0
