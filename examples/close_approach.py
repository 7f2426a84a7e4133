"""keplerkit Close Approach — find when a chaser first gets within range.

Two spacecraft share an orbital plane. The lower one moves faster and
slowly catches up with the higher one parked ahead of it.
"""

import logging

from keplerkit import Orbit, ParentBody, object_separation, propagate_batch
from keplerkit.utils.constants import EARTH_MASS_KG, EARTH_RADIUS_KM

logging.basicConfig(level=logging.DEBUG, format="%(name)s %(levelname)s %(message)s")

earth = ParentBody.create("Earth", EARTH_MASS_KG, EARTH_RADIUS_KM)

chaser = Orbit.from_elements(earth, 0.001, 7000.0, 0.1, 0.2, 0.3, 0.0, 0.0)
target = Orbit.from_elements(earth, 0.001, 7100.0, 0.1, 0.2, 0.3, 1.0, 0.0)

t = chaser.crosses_within_distance(target, 1000.0, 0.0, 86400.0)
if t is None:
    print("No approach within 1000 km today.")
else:
    print(f"Within 1000 km at T+{t / 3600:.3f} h")
    print(f"Separation then: {object_separation(chaser, target, t, 1e-3):.3f} km")

    states, valid = propagate_batch([chaser, target], t)
    for name, row, ok in zip(("chaser", "target"), states, valid):
        if ok:
            print(f"{name:7s} r=({row[0]:9.1f}, {row[1]:9.1f}, {row[2]:9.1f}) km")
