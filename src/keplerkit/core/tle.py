"""Seeding two-body orbits from sgp4 element sets.

An sgp4 ``Satrec`` carries Brouwer mean elements, not osculating ones. The
conversion here is a Keplerian snapshot of those mean elements: the
semimajor axis is recovered from the mean motion with the parent body's own
gravitational parameter, so the resulting period matches the catalog mean
motion exactly even when the parent's ``mu`` differs slightly from the
WGS72 value sgp4 was initialised with. Drag and zonal perturbations are
ignored, so positions drift from SGP4 over hours to days.
"""

from __future__ import annotations

import logging

from sgp4.api import WGS72, Satrec

from keplerkit.core.anomaly import eccentric_from_mean, true_from_eccentric
from keplerkit.core.body import ParentBody
from keplerkit.core.orbit import Orbit
from keplerkit.utils.constants import TAU

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0


def satrec_epoch_jd(satrec: Satrec) -> float:
    """Element-set epoch as a Julian date."""
    return satrec.jdsatepoch + satrec.jdsatepochF


def orbit_from_satrec(
    satrec: Satrec,
    parent_body: ParentBody,
    reference_jd: float | None = None,
) -> Orbit:
    """Two-body orbit matching an element set's mean elements.

    Args:
        satrec: Initialised sgp4 satellite record.
        parent_body: Body to orbit, normally one with Earth's mass.
        reference_jd: Julian date that maps to time 0 in the host's clock.
            The orbit epoch is the element-set epoch in seconds after it.
            Defaults to the element-set epoch itself (orbit epoch 0).

    Returns:
        An elliptical orbit.

    Raises:
        ValueError: If the record failed sgp4 initialisation or is not
            elliptical.
    """
    if satrec.error != 0:
        logger.error("Satrec %s has sgp4 error code %d", satrec.satnum, satrec.error)
        raise ValueError(f"Element set {satrec.satnum} failed sgp4 initialisation: error {satrec.error}")

    # Brouwer mean motion, rad/min
    n = satrec.no_unkozai / 60.0
    semimajor_axis = (parent_body.mu / (n * n)) ** (1.0 / 3.0)
    e = satrec.ecco
    true_anomaly = true_from_eccentric(eccentric_from_mean(satrec.mo, e), e) % TAU

    epoch_jd = satrec_epoch_jd(satrec)
    epoch_s = 0.0 if reference_jd is None else (epoch_jd - reference_jd) * SECONDS_PER_DAY

    logger.debug(
        "Element set %s -> a=%.3f km, e=%.7f around %r (mu %.1f vs sgp4 %.1f), epoch %.3f s",
        satrec.satnum, semimajor_axis, e, parent_body.name, parent_body.mu, satrec.mu, epoch_s,
    )
    return Orbit.from_elements(
        parent_body,
        e,
        semimajor_axis,
        satrec.inclo,
        satrec.nodeo,
        satrec.argpo,
        true_anomaly,
        epoch_s,
    )


def orbit_from_tle(
    line1: str,
    line2: str,
    parent_body: ParentBody,
    reference_jd: float | None = None,
) -> Orbit:
    """Parse a two-line element set and convert it with :func:`orbit_from_satrec`.

    Raises:
        ValueError: If either line is malformed.
    """
    line1 = line1.strip()
    line2 = line2.strip()
    if len(line1) != 69 or not line1.startswith("1 "):
        logger.error("Invalid TLE line 1: %r", line1)
        raise ValueError(f"Invalid TLE line 1: {line1!r}")
    if len(line2) != 69 or not line2.startswith("2 "):
        logger.error("Invalid TLE line 2: %r", line2)
        raise ValueError(f"Invalid TLE line 2: {line2!r}")

    return orbit_from_satrec(Satrec.twoline2rv(line1, line2, WGS72), parent_body, reference_jd)
