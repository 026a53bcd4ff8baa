"""
GAUSS-ORBIT Orbit Service - Configuration

Astronomical constants, service settings and solver parameters.

Service settings are read from the environment at import time. Solver
parameters are plain dataclasses so callers (and tests) can tighten or
loosen a tolerance or iteration cap without touching module constants.
"""

import os
import math
import logging
from dataclasses import dataclass, field


# =============================================================================
# Astronomical Constants
# =============================================================================

# Units: AU, days, and the scaled time unit k*day used throughout the core.
MU_SUN = 1.0                     # (M + m)/M, effectively 1 in the solar system
GAUSS_K = 0.017202099            # Gaussian gravitational constant (AU^1.5/day)
ABERRATION = 1 / 173.1446        # light time per AU (days/AU)
OBLIQUITY_J2000 = math.radians(23.43921)  # obliquity of the ecliptic
K_EARTH = 0.07436680             # geocentric gravitational constant (Earth radii, minutes)


# =============================================================================
# Service Configuration
# =============================================================================

VERSION = "0.1.0"
SERVICE_NAME = os.getenv("SERVICE_NAME", "orbit")
DATA_DIR = os.getenv("DATA_DIR", "/data/orbit_artifacts")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", "8002"))

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> logging.Logger:
    """Configure root logging for the service and return its logger."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT
    )
    return logging.getLogger(SERVICE_NAME)


# =============================================================================
# Solver Configuration
# =============================================================================

@dataclass
class KeplerSolverConfig:
    """Universal Kepler equation (universal anomaly) solver."""

    # Residual |F(x)| at which the universal anomaly is accepted
    tolerance: float = 1e-7

    # Newton-Raphson iterations before giving up
    max_iterations: int = 50


@dataclass
class OcticRootConfig:
    """Newton-Raphson on the 8th-degree Gauss equation."""

    # Step size |dx| at which the root is accepted
    tolerance: float = 1e-7
    max_iterations: int = 100

    # |D0| below this means the three lines of sight are coplanar
    min_triple_product: float = 1e-12


@dataclass
class RefinementConfig:
    """Light-time corrected refinement loop."""

    # Stop when the slant-range change |dp| falls to this value
    tolerance: float = 1e-7
    max_iterations: int = 200


@dataclass
class AnomalySolverConfig:
    """Anomaly equations used by elements -> state."""

    # Barker-like cubic for parabolic orbits
    parabolic_tolerance: float = 1e-7

    # Kepler's equation (elliptical) and its hyperbolic analogue
    tolerance: float = 1e-6

    max_iterations: int = 100


@dataclass
class SolverSettings:
    """All solver parameters for one orbit determination."""
    kepler: KeplerSolverConfig = field(default_factory=KeplerSolverConfig)
    octic: OcticRootConfig = field(default_factory=OcticRootConfig)
    refinement: RefinementConfig = field(default_factory=RefinementConfig)
    anomaly: AnomalySolverConfig = field(default_factory=AnomalySolverConfig)

    # Eccentricity within this of 1.0 is classified as parabolic
    eccentricity_tolerance: float = 1e-5
