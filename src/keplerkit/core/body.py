"""Massive bodies and the parent/child hierarchy they form."""
from __future__ import annotations

import logging
import math
import weakref
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from keplerkit.utils.constants import G_KM3_KG_S2

if TYPE_CHECKING:
    from keplerkit.core.orbit import Orbit

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ParentBody:
    """A massive body that other bodies or spacecraft can orbit.

    Bodies form a tree. A body holds a weak reference to its parent and the
    parent keeps a weak index of its children; the only strong edge is the
    body's own orbit, which references the parent it is defined around.

    Physical constants are fixed at construction and assigning them raises.
    The hierarchy changes only through :meth:`set_parent`.

    Attributes:
        name: Display name.
        mass: Mass in kg.
        radius: Radius in km.
        mu: Gravitational parameter (mass × G) in km³/s².
    """

    name: str
    mass: float
    radius: float
    mu: float = field(init=False)
    _parent_ref: weakref.ReferenceType[ParentBody] | None = field(
        default=None, init=False, repr=False
    )
    _orbit: Orbit | None = field(default=None, init=False, repr=False)
    _children: weakref.WeakSet[ParentBody] = field(
        default_factory=weakref.WeakSet, init=False, repr=False
    )
    _sphere_of_influence: float = field(default=math.inf, init=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "mu", self.mass * G_KM3_KG_S2)

    @classmethod
    def create(cls, name: str, mass_kg: float, radius_km: float) -> ParentBody:
        """Create a root body.

        Args:
            name: Display name.
            mass_kg: Mass in kg.
            radius_km: Radius in km.

        Returns:
            A body with no parent and an infinite sphere of influence.
        """
        if mass_kg <= 0:
            logger.error("Invalid mass for body %r: %r", name, mass_kg)
            raise ValueError(f"Body mass must be positive, got {mass_kg}")
        return cls(name=name, mass=mass_kg, radius=radius_km)

    @property
    def parent(self) -> ParentBody | None:
        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def orbit(self) -> Orbit | None:
        return self._orbit

    @property
    def children(self) -> frozenset[ParentBody]:
        return frozenset(self._children)

    @property
    def sphere_of_influence(self) -> float:
        """Sphere-of-influence radius in km (infinite for a root body)."""
        return self._sphere_of_influence

    def set_parent(self, parent: ParentBody | None, orbit: Orbit | None) -> None:
        """Reparent this body.

        Pass ``None`` for both arguments to make the body a root.

        Args:
            parent: The new parent body.
            orbit: This body's orbit around ``parent``; must be bound
                (circular or elliptical).

        Raises:
            ValueError: If only one of ``parent``/``orbit`` is given, the
                orbit is defined around a different body or is hyperbolic,
                or the new parent is this body or one of its descendants.
                Nothing is changed.
        """
        if (parent is None) != (orbit is None):
            logger.error("set_parent on %r needs both parent and orbit, or neither", self.name)
            raise ValueError("parent and orbit must both be given or both be None")

        if parent is not None:
            if orbit.parent_body is not parent:
                logger.error(
                    "Orbit for %r is defined around %r, not %r",
                    self.name, orbit.parent_body.name, parent.name,
                )
                raise ValueError("Orbit's parent_body must match the new parent")

            if not orbit.is_elliptical:
                logger.error(
                    "Orbit for %r around %r is unbound (e=%g)",
                    self.name, parent.name, orbit.eccentricity,
                )
                raise ValueError("A child body's orbit must be circular or elliptical")

            ancestor = parent
            while ancestor is not None:
                if ancestor is self:
                    logger.error("Reparenting %r under %r would form a cycle", self.name, parent.name)
                    raise ValueError(f"{parent.name!r} is {self.name!r} or one of its descendants")
                ancestor = ancestor.parent

        old_parent = self.parent
        if old_parent is not None:
            old_parent._children.discard(self)

        object.__setattr__(self, "_orbit", orbit)
        if parent is None:
            object.__setattr__(self, "_parent_ref", None)
            object.__setattr__(self, "_sphere_of_influence", math.inf)
        else:
            object.__setattr__(self, "_parent_ref", weakref.ref(parent))
            object.__setattr__(
                self,
                "_sphere_of_influence",
                orbit.semimajor_axis * (self.mass / parent.mass) ** 0.4,
            )
            parent._children.add(self)

        logger.debug(
            "Body %r parent=%r soi=%.6g km",
            self.name, parent.name if parent is not None else None, self._sphere_of_influence,
        )
