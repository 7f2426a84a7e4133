from __future__ import annotations

"""Physical constants and default numerical settings for two-body prediction.

Distances in km, times in s, masses in kg, angles in radians.
"""

import math

# --- Physical constants ---
G_KM3_KG_S2: float = 6.67408e-20
"""Universal gravitational constant in km³·kg⁻¹·s⁻²."""

TAU: float = 2.0 * math.pi
"""One full revolution in radians."""

EPSILON: float = 1e-6
"""Velocity nudge (km/s) applied to degenerate state vectors during orbit determination."""

# --- Reference bodies ---
EARTH_MASS_KG: float = 5.972e24
"""Mass of Earth in kg."""

EARTH_RADIUS_KM: float = 6378.1
"""Equatorial radius of Earth in km."""

# --- Universal prediction ---
DEFAULT_PREDICTION_TOLERANCE: float = 1e-5
"""Newton step tolerance on the universal anomaly (km^0.5)."""

DEFAULT_MAX_NEWTON_ITERATIONS: int = 100
"""Iteration cap for universal prediction and Kepler-equation inversion."""

DEFAULT_KEPLER_TOLERANCE: float = 1e-12
"""Newton step tolerance (rad) when inverting Kepler's equation."""

# --- Closest-approach search ---
DEFAULT_CROSSING_SAMPLES: int = 150
"""Number of coarse sampling intervals across the search window."""

DEFAULT_CROSSING_TOLERANCE_S: float = 1e-4
"""Secant refinement stops once successive time estimates differ by less than this (s)."""

DEFAULT_CROSSING_MAX_ITERATIONS: int = 30
"""Secant refinement iteration cap."""

DEFAULT_SEPARATION_TOLERANCE: float = 1e-3
"""Prediction tolerance used when evaluating separations during the search."""
