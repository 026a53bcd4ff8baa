"""
GAUSS-ORBIT Orbit Service - API Schemas

Pydantic models for FastAPI request/response validation.
These define the OpenAPI contract for the orbit service.

Angles cross the API in hours (right ascension) and degrees (everything
else); the core works in radians.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field
from enum import Enum


# =============================================================================
# Enums (mirrored for Pydantic)
# =============================================================================

class OrbitTypeEnum(str, Enum):
    ELLIPTICAL = "elliptical"
    PARABOLIC = "parabolic"
    HYPERBOLIC = "hyperbolic"


# =============================================================================
# Observation Schemas
# =============================================================================

class ObservationSchema(BaseModel):
    """Single angles-only observation."""
    time: float = Field(..., description="Truncated Julian date (JD - 2440000)")
    ra_hours: float = Field(..., ge=0.0, lt=24.0, description="Right ascension (hours)")
    dec_deg: float = Field(..., ge=-90.0, le=90.0, description="Declination (degrees)")
    observer_position: list[float] = Field(
        ..., min_length=3, max_length=3,
        description="Geocentric Sun vector [x, y, z] AU, equatorial (target = P*L - R)"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "time": 6370.57744,
                "ra_hours": 6.38029,
                "dec_deg": -24.25104,
                "observer_position": [-0.7735829, -0.5704494, -0.2473703]
            }
        }


class DetermineRequest(BaseModel):
    """
    Orbit determination request.
    POST /orbits/determine and POST /sessions accept this.
    """
    observations: list[ObservationSchema] = Field(
        ..., min_length=3, max_length=3, description="Exactly three observations, time ordered"
    )
    root_bracket: list[float] = Field(
        ..., min_length=2, max_length=2, description="[low, high] interval for the octic root (AU)"
    )
    root_guess: float = Field(..., gt=0.0, description="Starting value for the octic root (AU)")
    eccentricity_tolerance: float = Field(1e-5, gt=0.0, description="Parabolic band half-width")
    obliquity_deg: Optional[float] = Field(None, description="Ecliptic obliquity; default J2000, 0 for body-centered")

    class Config:
        json_schema_extra = {
            "example": {
                "observations": [
                    {"time": 6370.57744, "ra_hours": 6.38029, "dec_deg": -24.25104,
                     "observer_position": [-0.7735829, -0.5704494, -0.2473703]},
                    {"time": 6378.56789, "ra_hours": 6.40793, "dec_deg": -26.48060,
                     "observer_position": [-0.6780640, -0.6624821, -0.2872733]},
                    {"time": 6390.65113, "ra_hours": 6.38762, "dec_deg": -29.48400,
                     "observer_position": [-0.5091536, -0.7766740, -0.3367798]}
                ],
                "root_bracket": [2.0, 3.0],
                "root_guess": 2.3,
                "eccentricity_tolerance": 1e-5
            }
        }


class BatchDetermineRequest(BaseModel):
    """Independent determinations solved together."""
    items: list[DetermineRequest] = Field(..., min_length=1, description="Determination requests")
    processes: int = Field(0, ge=0, le=32, description="Worker processes; 0 runs in the service process")


class TabulateRequest(BaseModel):
    """Octic table request (informational root selection aid)."""
    observations: list[ObservationSchema] = Field(..., min_length=3, max_length=3)
    low: float = Field(..., gt=0.0, description="Low end of the table (AU)")
    high: float = Field(..., gt=0.0, description="High end of the table (AU)")
    steps: int = Field(10, ge=1, le=1000, description="Table intervals")
    scan_steps: int = Field(100, ge=1, le=100000, description="Intervals used to scan for sign changes")


# =============================================================================
# State and Element Schemas
# =============================================================================

class StateSchema(BaseModel):
    """Position and velocity at an epoch."""
    epoch: float = Field(..., description="Truncated Julian date")
    position: list[float] = Field(..., min_length=3, max_length=3, description="[x, y, z] AU, equatorial")
    velocity: list[float] = Field(..., min_length=3, max_length=3, description="[vx, vy, vz] AU per scaled day (k*day)")


class ElementsSchema(BaseModel):
    """Classical orbital elements (ecliptic)."""
    orbit_type: OrbitTypeEnum
    aq: float = Field(..., description="Semi-major axis (elliptical/hyperbolic) or perifocal distance (parabolic), AU")
    tp: float = Field(..., description="Time of perihelion passage (truncated Julian date)")
    e: float = Field(..., ge=0.0, description="Eccentricity")
    i_deg: float = Field(..., ge=0.0, le=180.0, description="Inclination (degrees)")
    node_deg: float = Field(..., description="Longitude of ascending node (degrees)")
    omega_deg: float = Field(..., description="Argument of perifocus (degrees)")

    class Config:
        json_schema_extra = {
            "example": {
                "orbit_type": "elliptical",
                "aq": 2.77,
                "tp": 6500.0,
                "e": 0.23,
                "i_deg": 34.8,
                "node_deg": 173.1,
                "omega_deg": 310.0
            }
        }


class ElementsFromStateRequest(BaseModel):
    state: StateSchema
    obliquity_deg: Optional[float] = Field(None, description="Ecliptic obliquity; default J2000")
    eccentricity_tolerance: float = Field(1e-5, gt=0.0)


class ElementsToStateRequest(BaseModel):
    elements: ElementsSchema
    t: float = Field(..., description="Time at which to evaluate (truncated Julian date)")
    obliquity_deg: Optional[float] = Field(None, description="Ecliptic obliquity; default J2000")


class PropagateRequest(BaseModel):
    """Universal f and g propagation."""
    state: StateSchema
    dt: float = Field(..., description="Time step (days)")


class EphemerisRequest(BaseModel):
    """Elements evaluated on a time grid."""
    elements: ElementsSchema
    start: float = Field(..., description="First time (truncated Julian date)")
    stop: float = Field(..., description="Last time (truncated Julian date)")
    step: float = Field(..., gt=0.0, description="Grid step (days)")
    obliquity_deg: Optional[float] = Field(None, description="Ecliptic obliquity; default J2000")
    export: bool = Field(False, description="Write an .npz artifact to the data directory")
    name: Optional[str] = Field(None, pattern=r"^[A-Za-z0-9_\-]+$", description="Artifact name")


# =============================================================================
# Output Schemas
# =============================================================================

class SolutionOutput(BaseModel):
    """Result of one orbit determination."""
    success: bool
    solution_id: str
    iterations: int

    state: Optional[StateSchema] = None
    elements: Optional[ElementsSchema] = None
    root: Optional[float] = None
    rms_residual_arcsec: Optional[float] = None
    residuals_arcsec: Optional[list[float]] = None

    error_kind: Optional[str] = None
    error_message: Optional[str] = None


class BatchOutput(BaseModel):
    solutions: list[SolutionOutput]
    succeeded: int
    failed: int


class OcticRowOutput(BaseModel):
    x: float = Field(..., description="Trial radius (AU)")
    p: float = Field(..., description="Implied middle slant range (AU)")
    value: float = Field(..., description="Octic residual")


class TabulateOutput(BaseModel):
    geometry: dict
    rows: list[OcticRowOutput]
    sign_changes: list[list[float]] = Field(..., description="[low, high] sub-intervals containing a root")


class SnapshotOutput(BaseModel):
    """Refinement state after one iteration."""
    iteration: int
    ranges: list[float]
    delta: list[float]
    delta_norm: float
    times: list[float]
    epoch: float
    position: list[float]
    velocity: list[float]
    converged: bool


class SessionOutput(BaseModel):
    """Interactive refinement session."""
    session_id: str
    root: float
    iteration: int
    converged: bool
    delta_history: list[float]
    snapshot: Optional[SnapshotOutput] = None
    elements: Optional[ElementsSchema] = None


class EphemerisOutput(BaseModel):
    times: list[float]
    positions: list[list[float]]
    velocities: list[list[float]]
    path: Optional[str] = None


class ScenarioOutput(BaseModel):
    name: str
    description: str
    observations: list[ObservationSchema]
    root_bracket: list[float]
    root_guess: float
    eccentricity_tolerance: float
    expected: dict


# =============================================================================
# Service Status Schema
# =============================================================================

class ServiceStatus(BaseModel):
    """Orbit service health status."""
    status: str = Field(..., description="Service status: healthy, degraded, unhealthy")
    timestamp: datetime
    version: str

    # Counts
    active_sessions: int
    solutions_computed: int
    solutions_failed: int

    uptime_seconds: float


# =============================================================================
# Error Response Schema
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: str
    timestamp: datetime
