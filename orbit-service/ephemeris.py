"""
GAUSS-ORBIT Orbit Service - Ephemeris Generation

Two-body trajectories over a time grid, predicted observations and .npz
export.

Features:
- Trajectory from a state vector (universal f and g) or from elements
- Low-precision geocentric Sun position (the observer vector for
  heliocentric Gauss's method)
- Light-time corrected RA/Dec predictions
- NPZ artifacts with JSON metadata
"""

import os
import json
import math
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Tuple, Dict, Any

import numpy as np

from config import (
    MU_SUN,
    GAUSS_K,
    ABERRATION,
    OBLIQUITY_J2000,
    SolverSettings,
)
from elements import KeplerElements, EllipticalElements, elements_to_state
from kepler import propagate_state
from models import StateVector
from transform import ra_dec_from_vector
from vector import Vector3

logger = logging.getLogger(__name__)

# Truncated Julian date (JD - 2440000) of 1999 Dec 31.0, epoch of the Sun model
SUN_MODEL_EPOCH = 11543.5


# =============================================================================
# Data Structures
# =============================================================================

@dataclass
class Ephemeris:
    """Positions and velocities sampled on a time grid."""
    times: np.ndarray               # (n,)
    positions: np.ndarray           # (n, 3) AU
    velocities: np.ndarray          # (n, 3) AU per scaled time unit
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.times)

    def state(self, index: int) -> StateVector:
        return StateVector(
            epoch=float(self.times[index]),
            position=Vector3.from_iterable(self.positions[index]),
            velocity=Vector3.from_iterable(self.velocities[index]),
        )

    def to_dict(self) -> dict:
        return {
            "times": self.times.tolist(),
            "positions": self.positions.tolist(),
            "velocities": self.velocities.tolist(),
            "metadata": self.metadata,
        }


# =============================================================================
# Time Grid
# =============================================================================

def time_grid(start: float, stop: float, step: float) -> np.ndarray:
    """
    Evenly spaced times from start to stop inclusive.

    The last interval is shortened if step does not divide the span.
    """
    if step <= 0:
        raise ValueError(f"Time step must be positive, got {step}")
    if stop < start:
        raise ValueError(f"Grid stop {stop} precedes start {start}")

    n = int(math.floor((stop - start) / step + 1e-9))
    grid = start + step * np.arange(n + 1)
    if grid[-1] < stop - 1e-9:
        grid = np.append(grid, stop)
    return grid


# =============================================================================
# Trajectories
# =============================================================================

def propagate_trajectory(
    state: StateVector,
    times: np.ndarray,
    mu: float = MU_SUN,
    k: float = GAUSS_K,
    settings: Optional[SolverSettings] = None
) -> Ephemeris:
    """
    Propagate a state over an array of absolute times.

    Each sample is propagated directly from the initial state.

    Args:
        state: Initial state
        times: Absolute times (days, same scale as state.epoch)
        mu: Gravitational parameter
        k: Gravitational constant

    Returns:
        Ephemeris with arrays of shape (n_times, 3)
    """
    settings = settings or SolverSettings()
    times = np.asarray(times, dtype=float)

    n = len(times)
    positions = np.zeros((n, 3))
    velocities = np.zeros((n, 3))

    for i, t in enumerate(times):
        s = propagate_state(state, float(t) - state.epoch, mu, k, settings.kepler)
        positions[i] = s.position.as_array()
        velocities[i] = s.velocity.as_array()

    return Ephemeris(
        times=times,
        positions=positions,
        velocities=velocities,
        metadata={"source": "state", "epoch": state.epoch},
    )


def ephemeris_from_elements(
    elements: KeplerElements,
    times: np.ndarray,
    obliquity: float = OBLIQUITY_J2000,
    mu: float = MU_SUN,
    k: float = GAUSS_K,
    settings: Optional[SolverSettings] = None
) -> Ephemeris:
    """Equatorial positions and velocities from classical elements."""
    settings = settings or SolverSettings()
    times = np.asarray(times, dtype=float)

    n = len(times)
    positions = np.zeros((n, 3))
    velocities = np.zeros((n, 3))

    for i, t in enumerate(times):
        r, v = elements_to_state(float(t), elements, obliquity, mu, k, settings.anomaly)
        positions[i] = r.as_array()
        velocities[i] = v.as_array()

    return Ephemeris(
        times=times,
        positions=positions,
        velocities=velocities,
        metadata={"source": "elements", "elements": elements.to_dict()},
    )


# =============================================================================
# Sun Position
# =============================================================================

def sun_elements(t: float) -> EllipticalElements:
    """
    Low-precision elements of the Sun's apparent geocentric orbit.

    Args:
        t: Truncated Julian date

    Returns:
        Ecliptic elements valid near t (perigee argument and eccentricity
        drift slowly)
    """
    d = t - SUN_MODEL_EPOCH

    omega = math.radians((282.9404 + 4.70935e-5 * d) % 360.0)
    e = 0.016709 - 1.151e-9 * d
    mean_anomaly = math.radians((356.0470 + 0.9856002585 * d) % 360.0)

    # a = 1 AU, so the mean motion is k radians per day
    tp = t - mean_anomaly / GAUSS_K

    return EllipticalElements(
        tp=tp, e=e, i=0.0, node=0.0, omega=omega, semi_major_axis=1.0
    )


def sun_position(t: float, obliquity: float = OBLIQUITY_J2000) -> Vector3:
    """Geocentric equatorial position of the Sun (AU) at truncated Julian date t."""
    r, _ = elements_to_state(t, sun_elements(t), obliquity)
    return r


# =============================================================================
# Predicted Observations
# =============================================================================

def apparent_direction(
    elements: KeplerElements,
    t: float,
    observer_position: Vector3,
    obliquity: float = OBLIQUITY_J2000,
    aberration: float = ABERRATION,
    iterations: int = 5
) -> Tuple[Vector3, float]:
    """
    Light-time corrected line of sight to a body.

    Uses the Gauss-method convention: the body is at P * L - R with R the
    observer_position vector.

    Returns:
        (unit line of sight, slant range in AU)
    """
    rho = 0.0
    los = Vector3.zero()
    for _ in range(iterations):
        r, _ = elements_to_state(t - aberration * rho, elements, obliquity)
        los = r + observer_position
        rho = los.norm()
    return los.unit(), rho


def predict_angles(
    elements: KeplerElements,
    times: List[float],
    observer_positions: List[Vector3],
    obliquity: float = OBLIQUITY_J2000,
    aberration: float = ABERRATION
) -> List[Tuple[float, float]]:
    """RA/Dec (radians) of a body seen from each observer position."""
    angles = []
    for t, obs in zip(times, observer_positions):
        los, _ = apparent_direction(elements, t, obs, obliquity, aberration)
        angles.append(ra_dec_from_vector(los))
    return angles


# =============================================================================
# NPZ Export
# =============================================================================

def export_npz(
    ephemeris: Ephemeris,
    path: str,
    extra_metadata: Optional[Dict[str, Any]] = None
) -> str:
    """
    Write an ephemeris artifact.

    Args:
        ephemeris: Trajectory to write
        path: Output file; parent directories are created
        extra_metadata: Merged into the stored JSON metadata

    Returns:
        Path written
    """
    if not path.endswith(".npz"):
        path += ".npz"

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    metadata = dict(ephemeris.metadata)
    metadata.update(extra_metadata or {})
    metadata.setdefault("created", datetime.now(timezone.utc).isoformat())
    metadata["sample_count"] = len(ephemeris)

    np.savez(
        path,
        times=ephemeris.times,
        positions=ephemeris.positions,
        velocities=ephemeris.velocities,
        metadata=json.dumps(metadata),
    )

    logger.info(f"Exported {len(ephemeris)} ephemeris samples to {path}")
    return path


def load_npz(path: str) -> Ephemeris:
    """Read an artifact written by export_npz."""
    with np.load(path) as data:
        metadata = json.loads(str(data["metadata"]))
        return Ephemeris(
            times=data["times"],
            positions=data["positions"],
            velocities=data["velocities"],
            metadata=metadata,
        )
