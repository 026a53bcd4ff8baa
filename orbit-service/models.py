"""
GAUSS-ORBIT Orbit Service - Data Models

Value objects passed between the computational modules and the API layer.
"""

import math
from dataclasses import dataclass, field
from typing import Optional, List
from uuid import UUID, uuid4

from errors import DegenerateGeometryError
from transform import line_of_sight, hours_to_radians
from vector import Vector3


# =============================================================================
# Observations
# =============================================================================

@dataclass(frozen=True)
class Observation:
    """
    Single angles-only observation.

    Times are on a continuous date scale (e.g. truncated Julian date).
    The observer vector follows the Gauss-method convention: the target's
    position is P * L - observer_position, so for heliocentric work it is
    the geocentric position of the Sun.
    """
    time: float
    ra: float                      # Right ascension (radians)
    dec: float                     # Declination (radians)
    observer_position: Vector3     # AU

    @property
    def line_of_sight(self) -> Vector3:
        """Unit vector pointing from observer toward target."""
        return line_of_sight(self.ra, self.dec)

    @classmethod
    def from_hours_degrees(
        cls,
        time: float,
        ra_hours: float,
        dec_degrees: float,
        observer_position: Vector3
    ) -> "Observation":
        """Build from right ascension in hours and declination in degrees."""
        return cls(
            time=time,
            ra=hours_to_radians(ra_hours),
            dec=math.radians(dec_degrees),
            observer_position=observer_position,
        )

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "ra_deg": math.degrees(self.ra),
            "dec_deg": math.degrees(self.dec),
            "observer_position": self.observer_position.to_list(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Observation":
        return cls(
            time=data["time"],
            ra=math.radians(data["ra_deg"]),
            dec=math.radians(data["dec_deg"]),
            observer_position=Vector3.from_iterable(data["observer_position"]),
        )


@dataclass(frozen=True)
class ObservationTriple:
    """Exactly three observations, strictly ordered by time."""
    first: Observation
    middle: Observation
    last: Observation

    def __post_init__(self):
        if not (self.first.time < self.middle.time < self.last.time):
            raise DegenerateGeometryError(
                "Observations must be strictly ordered by time: "
                f"{self.first.time}, {self.middle.time}, {self.last.time}"
            )

    @classmethod
    def from_list(cls, observations: List[Observation]) -> "ObservationTriple":
        if len(observations) != 3:
            raise DegenerateGeometryError(
                f"Gauss's method needs exactly 3 observations, got {len(observations)}"
            )
        return cls(*observations)

    def __iter__(self):
        yield self.first
        yield self.middle
        yield self.last

    @property
    def times(self) -> List[float]:
        return [o.time for o in self]

    @property
    def lines_of_sight(self) -> List[Vector3]:
        return [o.line_of_sight for o in self]

    @property
    def observer_positions(self) -> List[Vector3]:
        return [o.observer_position for o in self]

    def to_dict(self) -> dict:
        return {"observations": [o.to_dict() for o in self]}


# =============================================================================
# State Vector
# =============================================================================

@dataclass(frozen=True)
class StateVector:
    """Position and velocity at an epoch (AU, AU per scaled time unit)."""
    epoch: float
    position: Vector3
    velocity: Vector3

    def to_dict(self) -> dict:
        return {
            "epoch": self.epoch,
            "position": self.position.to_list(),
            "velocity": self.velocity.to_list(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StateVector":
        return cls(
            epoch=data["epoch"],
            position=Vector3.from_iterable(data["position"]),
            velocity=Vector3.from_iterable(data["velocity"]),
        )


# =============================================================================
# Orbit Solution
# =============================================================================

@dataclass
class OrbitSolution:
    """Result of a full orbit determination (state, elements, residuals)."""
    success: bool
    solution_id: UUID = field(default_factory=uuid4)

    state: Optional[StateVector] = None
    elements: Optional["KeplerElements"] = None

    # Quality metrics
    iterations: int = 0
    root: Optional[float] = None
    rms_residual_arcsec: Optional[float] = None
    residuals_arcsec: List[float] = field(default_factory=list)

    # Error information
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        result = {
            "success": self.success,
            "solution_id": str(self.solution_id),
            "iterations": self.iterations,
        }

        if self.success:
            result.update({
                "state": self.state.to_dict() if self.state else None,
                "elements": self.elements.to_dict() if self.elements else None,
                "root": self.root,
                "rms_residual_arcsec": self.rms_residual_arcsec,
                "residuals_arcsec": list(self.residuals_arcsec),
            })
        else:
            result["error_kind"] = self.error_kind
            result["error_message"] = self.error_message

        return result
