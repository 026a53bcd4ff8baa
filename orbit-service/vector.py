"""
GAUSS-ORBIT Orbit Service - Vector Math

Immutable 3-vector used by every computational module.

The type is unitless: a Vector3 may hold a direction, a position in AU or a
velocity in AU per scaled time unit. Callers keep track of which.
"""

import math
from dataclasses import dataclass
from typing import Iterable

import numpy as np


@dataclass(frozen=True)
class Vector3:
    """Three real components; every operation returns a new vector."""
    x: float
    y: float
    z: float

    def __add__(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __neg__(self) -> "Vector3":
        return Vector3(-self.x, -self.y, -self.z)

    def __mul__(self, scalar: float) -> "Vector3":
        return Vector3(self.x * scalar, self.y * scalar, self.z * scalar)

    __rmul__ = __mul__

    def __truediv__(self, scalar: float) -> "Vector3":
        return Vector3(self.x / scalar, self.y / scalar, self.z / scalar)

    def __iter__(self):
        yield self.x
        yield self.y
        yield self.z

    def dot(self, other: "Vector3") -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: "Vector3") -> "Vector3":
        return Vector3(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x
        )

    def norm(self) -> float:
        return math.sqrt(self.dot(self))

    def unit(self) -> "Vector3":
        """Unit vector; a zero vector is returned unchanged."""
        n = self.norm()
        if n < 1e-12:
            return self
        return self / n

    def to_list(self) -> list:
        return [self.x, self.y, self.z]

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z])

    @classmethod
    def from_iterable(cls, values: Iterable[float]) -> "Vector3":
        x, y, z = (float(v) for v in values)
        return cls(x, y, z)

    @classmethod
    def zero(cls) -> "Vector3":
        return cls(0.0, 0.0, 0.0)


# =============================================================================
# Utility Functions
# =============================================================================

def dot(a: Vector3, b: Vector3) -> float:
    """Dot product of two vectors."""
    return a.dot(b)


def cross(a: Vector3, b: Vector3) -> Vector3:
    """Cross product of two vectors."""
    return a.cross(b)


def norm(v: Vector3) -> float:
    """Euclidean norm of a vector."""
    return v.norm()


def unit(v: Vector3) -> Vector3:
    """Unit vector."""
    return v.unit()
