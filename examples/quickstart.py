"""keplerkit Quickstart — build an orbit and ask where it will be."""

import math

from keplerkit import Orbit, ParentBody, orbit_from_tle
from keplerkit.utils.constants import EARTH_MASS_KG, EARTH_RADIUS_KM

earth = ParentBody.create("Earth", EARTH_MASS_KG, EARTH_RADIUS_KM)

# Circular orbit 170 km above the surface
leo = Orbit.from_elements(earth, 0.0, 6548.1, 0.0, 0.0, 0.0, 0.0, 0.0)
_, _, vx, vy = leo.position_velocity_perifocal(0.0)

print(f"mu:        {earth.mu:.4f} km^3/s^2")
print(f"Speed:     {math.hypot(vx, vy)} km/s")
print(f"Period:    {leo.period / 60:.1f} min")

# ISS (ZARYA), time 0 at the element-set epoch
iss = orbit_from_tle(
    "1 25544U 98067A   24045.54896019  .00016717  00000-0  30093-3 0  9993",
    "2 25544  51.6412 207.4925 0004948 290.5508 178.9792 15.49583488439596",
    earth,
)

for minutes in (0, 30, 60, 90):
    nu = iss.universal_prediction(minutes * 60.0)
    x, y, z, _, _, _ = iss.position_velocity_inertial(nu)
    print(f"T+{minutes:3d} min | nu={math.degrees(nu) % 360:7.2f}° | r=({x:9.1f}, {y:9.1f}, {z:9.1f}) km")
