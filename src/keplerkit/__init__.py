"""
keplerkit — Two-body orbit prediction for Python.

Build conic orbits from classical elements or state vectors, predict
where an object will be at any time with the universal-variable
formulation, and search for the first close approach between two
objects around the same parent body.
"""

from __future__ import annotations

__version__ = "0.1.0-dev"

from keplerkit.core.anomaly import ConvergenceError
from keplerkit.core.body import ParentBody
from keplerkit.core.orbit import ConicType, Orbit
from keplerkit.core.approach import crosses_within_distance, object_separation
from keplerkit.core.propagation import StateVector, propagate, propagate_batch, state_at
from keplerkit.core.tle import orbit_from_satrec, orbit_from_tle

__all__ = [
    "__version__",
    "ConvergenceError",
    "ParentBody",
    "ConicType",
    "Orbit",
    "crosses_within_distance",
    "object_separation",
    "StateVector",
    "state_at",
    "propagate",
    "propagate_batch",
    "orbit_from_satrec",
    "orbit_from_tle",
]
