"""Tests for state sampling and batch propagation."""
from __future__ import annotations

import numpy as np
import pytest

from keplerkit.core.anomaly import ConvergenceError
from keplerkit.core.body import ParentBody
from keplerkit.core.orbit import Orbit
from keplerkit.core.propagation import StateVector, propagate, propagate_batch, state_at


class NonConvergingOrbit:
    """Stand-in whose prediction never converges."""

    def universal_prediction(self, time: float, tolerance: float) -> float:
        raise ConvergenceError("prediction did not converge within 0 iterations")


@pytest.fixture
def earth() -> ParentBody:
    return ParentBody.create("Earth", 5.972e24, 6378.1)


@pytest.fixture
def orbit(earth: ParentBody) -> Orbit:
    return Orbit.from_elements(earth, 0.2, 9000.0, 0.9, 0.4, 1.1, 0.3, 0.0)


def test_state_at_epoch_matches_cache(orbit: Orbit):
    sv = state_at(orbit, orbit.epoch)
    assert isinstance(sv, StateVector)
    np.testing.assert_allclose(sv.position_km, orbit.position_epoch, atol=1e-6)
    np.testing.assert_allclose(sv.velocity_km_s, orbit.velocity_epoch, atol=1e-9)
    assert sv.time_s == orbit.epoch


def test_propagate_stays_on_conic(orbit: Orbit):
    times = np.linspace(0.0, 2 * orbit.period, 25)
    states = propagate(orbit, times)
    assert len(states) == 25

    mu = orbit.parent_body.mu
    for sv in states:
        r = np.linalg.norm(sv.position_km)
        v = np.linalg.norm(sv.velocity_km_s)
        assert orbit.periapsis - 1e-6 <= r <= orbit.apoapsis + 1e-6
        assert 0.5 * v * v - mu / r == pytest.approx(orbit.specific_mechanical_energy, rel=1e-9)


def test_propagate_empty(orbit: Orbit):
    assert propagate(orbit, []) == []


def test_propagate_raises_on_non_convergence():
    with pytest.raises(ConvergenceError):
        propagate(NonConvergingOrbit(), [0.0])  # type: ignore[arg-type]


def test_batch_empty():
    states, valid = propagate_batch([], 0.0)
    assert states.shape == (0, 6)
    assert valid.shape == (0,)


def test_batch_matches_single(orbit: Orbit, earth: ParentBody):
    other = Orbit.from_elements(earth, 1.4, -15000.0, 0.2, 0.0, 0.0, 0.0, 0.0)
    states, valid = propagate_batch([orbit, other], 1800.0)
    assert states.shape == (2, 6)
    assert np.all(valid)

    sv = state_at(other, 1800.0)
    np.testing.assert_allclose(states[1, :3], sv.position_km)
    np.testing.assert_allclose(states[1, 3:], sv.velocity_km_s)


def test_batch_marks_failures_invalid(orbit: Orbit, caplog: pytest.LogCaptureFixture):
    with caplog.at_level("WARNING", logger="keplerkit.core.propagation"):
        states, valid = propagate_batch([orbit, NonConvergingOrbit(), orbit], 600.0)  # type: ignore[list-item]
    np.testing.assert_array_equal(valid, [True, False, True])
    assert np.all(np.isnan(states[1]))
    assert np.all(np.isfinite(states[[0, 2]]))
    assert "marked invalid" in caplog.text


def test_batch_with_departing_hyperbola(orbit: Orbit, earth: ParentBody):
    flyby = Orbit.from_elements(earth, 1.5, -20000.0, 0.5, 1.0, 2.0, 0.5, 0.0)
    states, valid = propagate_batch([orbit, flyby], 1e7)
    assert np.all(valid)
    assert np.linalg.norm(states[1, :3]) > 1e7
