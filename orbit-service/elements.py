"""
GAUSS-ORBIT Orbit Service - Classical Orbital Elements

Conversion between a heliocentric state vector and classical elements.

Orbit type is a tagged variant chosen from the eccentricity:

    e < 1 - eps        elliptical  (semi-major axis a > 0)
    |1 - e| <= eps     parabolic   (perifocal distance q)
    e > 1 + eps        hyperbolic  (semi-major axis a < 0)

State vectors are equatorial; elements are referred to the ecliptic. With an
obliquity of zero the frames coincide (useful for body-centered orbits).
"""

import math
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from config import MU_SUN, GAUSS_K, OBLIQUITY_J2000, AnomalySolverConfig
from errors import DegenerateGeometryError, AnomalySolveNonConvergentError
from models import StateVector
from transform import equatorial_to_ecliptic, ecliptic_to_equatorial, perifocal_basis
from vector import Vector3

logger = logging.getLogger(__name__)

# cos(omega) at or above this snaps omega to zero
OMEGA_SNAP = 1e-6

# |N|/|h| and e below these are treated as equatorial / circular
EQUATORIAL_EPS = 1e-10
CIRCULAR_EPS = 1e-10

TWO_PI = 2.0 * math.pi


class OrbitType(str, Enum):
    ELLIPTICAL = "elliptical"
    PARABOLIC = "parabolic"
    HYPERBOLIC = "hyperbolic"


# =============================================================================
# Element Variants
# =============================================================================

@dataclass(frozen=True)
class KeplerElements:
    """
    Orientation and timing shared by every orbit type.

    Angles in radians; tp (time of perihelion passage) on the same date
    scale as the observations.
    """
    tp: float
    e: float
    i: float
    node: float
    omega: float

    orbit_type = None

    @property
    def aq(self) -> float:
        """Size parameter: semi-major axis, or perifocal distance for parabolas."""
        raise NotImplementedError

    def mean_motion(self, mu: float = MU_SUN, k: float = GAUSS_K) -> float:
        """Mean motion (radians per day)."""
        raise NotImplementedError

    def to_dict(self) -> dict:
        return {
            "orbit_type": self.orbit_type.value,
            "aq": self.aq,
            "tp": self.tp,
            "e": self.e,
            "i_deg": math.degrees(self.i),
            "node_deg": math.degrees(self.node),
            "omega_deg": math.degrees(self.omega),
        }

    @staticmethod
    def from_dict(data: dict) -> "KeplerElements":
        """Inverse of to_dict; the variant comes from 'orbit_type'."""
        orbit_type = OrbitType(data["orbit_type"])
        return make_elements(
            orbit_type,
            aq=data["aq"],
            tp=data["tp"],
            e=data["e"],
            i=math.radians(data["i_deg"]),
            node=math.radians(data["node_deg"]),
            omega=math.radians(data["omega_deg"]),
        )


@dataclass(frozen=True)
class EllipticalElements(KeplerElements):
    semi_major_axis: float

    orbit_type = OrbitType.ELLIPTICAL

    def __post_init__(self):
        if not 0.0 <= self.e < 1.0:
            raise DegenerateGeometryError(f"Elliptical orbit needs 0 <= e < 1 (e = {self.e})")
        if self.semi_major_axis <= 0.0:
            raise DegenerateGeometryError(
                f"Elliptical orbit needs a > 0 (a = {self.semi_major_axis})"
            )

    @property
    def aq(self) -> float:
        return self.semi_major_axis

    def mean_motion(self, mu: float = MU_SUN, k: float = GAUSS_K) -> float:
        a = self.semi_major_axis
        return k / a * math.sqrt(mu / a)

    def period(self, mu: float = MU_SUN, k: float = GAUSS_K) -> float:
        """Orbital period (days)."""
        return TWO_PI / self.mean_motion(mu, k)


@dataclass(frozen=True)
class ParabolicElements(KeplerElements):
    perifocal_distance: float

    orbit_type = OrbitType.PARABOLIC

    def __post_init__(self):
        if self.perifocal_distance <= 0.0:
            raise DegenerateGeometryError(
                f"Parabolic orbit needs q > 0 (q = {self.perifocal_distance})"
            )

    @property
    def aq(self) -> float:
        return self.perifocal_distance

    def mean_motion(self, mu: float = MU_SUN, k: float = GAUSS_K) -> float:
        return k * math.sqrt(mu)


@dataclass(frozen=True)
class HyperbolicElements(KeplerElements):
    semi_major_axis: float  # negative

    orbit_type = OrbitType.HYPERBOLIC

    def __post_init__(self):
        if self.e <= 1.0:
            raise DegenerateGeometryError(f"Hyperbolic orbit needs e > 1 (e = {self.e})")
        if self.semi_major_axis >= 0.0:
            raise DegenerateGeometryError(
                f"Hyperbolic orbit needs a < 0 (a = {self.semi_major_axis})"
            )

    @property
    def aq(self) -> float:
        return self.semi_major_axis

    def mean_motion(self, mu: float = MU_SUN, k: float = GAUSS_K) -> float:
        a = self.semi_major_axis
        return -k / a * math.sqrt(-mu / a)


_VARIANTS = {
    OrbitType.ELLIPTICAL: EllipticalElements,
    OrbitType.PARABOLIC: ParabolicElements,
    OrbitType.HYPERBOLIC: HyperbolicElements,
}


def make_elements(
    orbit_type: OrbitType,
    aq: float,
    tp: float,
    e: float,
    i: float,
    node: float,
    omega: float
) -> KeplerElements:
    """
    Construct the variant for orbit_type with aq as its size parameter.

    Raises:
        DegenerateGeometryError: e or aq inconsistent with orbit_type
    """
    cls = _VARIANTS[OrbitType(orbit_type)]
    return cls(tp, e, i, node, omega, aq)


def classify_orbit(e: float, tolerance: float = 1e-5) -> OrbitType:
    """Orbit type from eccentricity (parabolic band is inclusive)."""
    if abs(1.0 - e) <= tolerance:
        return OrbitType.PARABOLIC
    if e < 1.0:
        return OrbitType.ELLIPTICAL
    return OrbitType.HYPERBOLIC


def _clamped_acos(value: float) -> float:
    return math.acos(float(np.clip(value, -1.0, 1.0)))


# =============================================================================
# State -> Elements
# =============================================================================

def _elliptical_timing(t0, ai, e, xb, yb, mu, k):
    a = 1.0 / ai
    b = a * math.sqrt(1.0 - e * e)
    cos_x = xb * ai + e
    sin_x = yb / b
    ea = math.atan2(sin_x, cos_x)
    mm = ea - e * sin_x
    n = k / a * math.sqrt(mu / a)
    return a, t0 - mm / n


def _hyperbolic_timing(t0, ai, e, xb, yb, mu, k):
    a = 1.0 / ai
    b = -a * math.sqrt(e * e - 1.0)
    sinh_x = yb / b
    ha = math.asinh(sinh_x)
    mm = e * sinh_x - ha
    n = -k * ai * math.sqrt(-mu * ai)
    return a, t0 - mm / n


def state_to_elements(
    state: StateVector,
    obliquity: float = OBLIQUITY_J2000,
    mu: float = MU_SUN,
    k: float = GAUSS_K,
    eccentricity_tolerance: float = 1e-5
) -> KeplerElements:
    """
    Classical elements from an equatorial state vector.

    Args:
        state: Epoch, position (AU) and velocity (AU per scaled time unit)
        obliquity: Ecliptic obliquity (radians); 0 keeps the input frame
        mu: Gravitational parameter
        k: Gravitational constant
        eccentricity_tolerance: Half-width of the parabolic band around e = 1

    Returns:
        EllipticalElements, ParabolicElements or HyperbolicElements

    Raises:
        DegenerateGeometryError: Zero position or zero angular momentum
    """
    r = equatorial_to_ecliptic(state.position, obliquity)
    v = equatorial_to_ecliptic(state.velocity, obliquity)

    r_mag = r.norm()
    if r_mag == 0.0:
        raise DegenerateGeometryError("Cannot compute elements from a zero position vector")

    v2 = v.dot(v)
    rv = r.dot(v)

    h_vec = r.cross(v)
    h_mag = h_vec.norm()
    if h_mag == 0.0:
        raise DegenerateGeometryError("Rectilinear motion (zero angular momentum)")
    h_hat = h_vec / h_mag

    # (r.v)v is divided by mu along with the first term; forms that leave it
    # unscaled agree with this one only when mu = 1
    e_vec = ((v2 - mu / r_mag) * r - rv * v) / mu
    e = e_vec.norm()

    ai = 2.0 / r_mag - v2 / mu
    sp = h_mag * h_mag / mu
    q = sp / (1.0 + e)

    inc = _clamped_acos(h_vec.z / h_mag)

    # Ascending node; equatorial orbits measure from the x axis
    n_vec = Vector3(-h_vec.y, h_vec.x, 0.0)
    n_mag = n_vec.norm()
    equatorial = n_mag < EQUATORIAL_EPS * h_mag
    if equatorial:
        node = 0.0
        node_dir = Vector3(1.0, 0.0, 0.0)
    else:
        node = _clamped_acos(n_vec.x / n_mag)
        if n_vec.y < 0:
            node = TWO_PI - node
        node_dir = n_vec / n_mag

    circular = e < CIRCULAR_EPS
    if circular:
        omega = 0.0
        # Perifocus taken along the node direction
        xb = r.dot(node_dir)
        yb = r.dot(h_hat.cross(node_dir))
    else:
        cos_w = node_dir.dot(e_vec) / e
        if cos_w >= 1.0 - OMEGA_SNAP:
            omega = 0.0
        else:
            omega = _clamped_acos(cos_w)
            if equatorial:
                if node_dir.cross(e_vec).dot(h_vec) < 0:
                    omega = TWO_PI - omega
            elif e_vec.z < 0:
                omega = TWO_PI - omega
        xb = (sp - r_mag) / e
        yb = rv * math.sqrt(sp / mu) / e

    orbit_type = classify_orbit(e, eccentricity_tolerance)
    t0 = state.epoch

    if orbit_type is OrbitType.PARABOLIC:
        dd = rv / math.sqrt(mu)
        mm = q * dd + dd ** 3 / 6.0
        tp = t0 - mm / (k * math.sqrt(mu))
        elements = ParabolicElements(tp, e, inc, node, omega, q)
    elif orbit_type is OrbitType.ELLIPTICAL:
        a, tp = _elliptical_timing(t0, ai, e, xb, yb, mu, k)
        elements = EllipticalElements(tp, e, inc, node, omega, a)
    else:
        a, tp = _hyperbolic_timing(t0, ai, e, xb, yb, mu, k)
        elements = HyperbolicElements(tp, e, inc, node, omega, a)

    logger.debug(f"State -> {orbit_type.value} elements: aq={elements.aq:.7f} e={e:.7f}")
    return elements


# =============================================================================
# Anomaly Solvers
# =============================================================================

def solve_parabolic_anomaly(
    q: float,
    mean_anomaly: float,
    config: Optional[AnomalySolverConfig] = None
) -> float:
    """Solve q*D + D³/6 = M for D by Newton-Raphson from D = M."""
    config = config or AnomalySolverConfig()

    d = mean_anomaly
    step = float("inf")
    for iteration in range(1, config.max_iterations + 1):
        step = (q * d + d ** 3 / 6.0 - mean_anomaly) / (q + d * d / 2.0)
        d -= step
        if abs(step) < config.parabolic_tolerance:
            return d

    raise AnomalySolveNonConvergentError(
        f"Parabolic anomaly did not converge for M={mean_anomaly:.6g}",
        iterations=config.max_iterations,
        residual=step
    )


def solve_kepler_equation(
    e: float,
    mean_anomaly: float,
    config: Optional[AnomalySolverConfig] = None
) -> float:
    """Solve E - e*sin(E) = M for E by Newton-Raphson from E = M."""
    config = config or AnomalySolverConfig()

    ea = mean_anomaly
    step = float("inf")
    for iteration in range(1, config.max_iterations + 1):
        step = (ea - e * math.sin(ea) - mean_anomaly) / (1.0 - e * math.cos(ea))
        ea -= step
        if abs(step) < config.tolerance:
            return ea

    raise AnomalySolveNonConvergentError(
        f"Kepler's equation did not converge for M={mean_anomaly:.6g}, e={e:.6g}",
        iterations=config.max_iterations,
        residual=step
    )


def solve_hyperbolic_anomaly(
    e: float,
    mean_anomaly: float,
    config: Optional[AnomalySolverConfig] = None
) -> float:
    """
    Solve e*sinh(H) - H = M for H by Newton-Raphson.

    Starts from H = sign(M) * ln(2|M|/e + 1.8), which follows the
    logarithmic growth of H, so long arcs converge in a few steps.

    Raises:
        AnomalySolveNonConvergentError: Cap reached, or the iteration
            diverged or overflowed
    """
    config = config or AnomalySolverConfig()

    ha = math.copysign(math.log(2.0 * abs(mean_anomaly) / e + 1.8), mean_anomaly)
    step = float("inf")
    iteration = 0
    for iteration in range(1, config.max_iterations + 1):
        try:
            step = (e * math.sinh(ha) - ha - mean_anomaly) / (e * math.cosh(ha) - 1.0)
        except OverflowError:
            raise AnomalySolveNonConvergentError(
                f"Hyperbolic anomaly overflowed at H={ha:.6g} for M={mean_anomaly:.6g}",
                iterations=iteration,
                residual=step
            ) from None
        ha -= step
        if not math.isfinite(ha):
            break
        if abs(step) < config.tolerance:
            return ha

    raise AnomalySolveNonConvergentError(
        f"Hyperbolic anomaly did not converge for M={mean_anomaly:.6g}, e={e:.6g}",
        iterations=iteration,
        residual=step
    )


# =============================================================================
# Elements -> State
# =============================================================================

def _parabolic_in_plane(el: ParabolicElements, t, mu, k, config):
    q = el.perifocal_distance
    mm = el.mean_motion(mu, k) * (t - el.tp)
    d = solve_parabolic_anomaly(q, mm, config)

    r = q + d * d / 2.0
    dp = math.sqrt(mu) / r
    xb = q - d * d / 2.0
    yb = d * math.sqrt(2.0 * q)
    xp = -d * dp
    yp = dp * math.sqrt(2.0 * q)
    return xb, yb, xp, yp


def _elliptical_in_plane(el: EllipticalElements, t, mu, k, config):
    a = el.semi_major_axis
    e = el.e
    mm = el.mean_motion(mu, k) * (t - el.tp)
    ea = solve_kepler_equation(e, mm, config)

    cos_e = math.cos(ea)
    sin_e = math.sin(ea)
    r = a * (1.0 - e * cos_e)
    ep = math.sqrt(mu / a) / r
    b = a * math.sqrt(1.0 - e * e)
    xb = a * (cos_e - e)
    yb = b * sin_e
    xp = -a * ep * sin_e
    yp = b * ep * cos_e
    return xb, yb, xp, yp


def _hyperbolic_in_plane(el: HyperbolicElements, t, mu, k, config):
    a = el.semi_major_axis
    e = el.e
    mm = el.mean_motion(mu, k) * (t - el.tp)
    ha = solve_hyperbolic_anomaly(e, mm, config)

    cosh_h = math.cosh(ha)
    sinh_h = math.sinh(ha)
    r = a * (1.0 - e * cosh_h)
    hp = math.sqrt(-mu / a) / r
    b = -a * math.sqrt(e * e - 1.0)
    xb = a * (cosh_h - e)
    yb = b * sinh_h
    xp = a * hp * sinh_h
    yp = b * hp * cosh_h
    return xb, yb, xp, yp


_IN_PLANE = {
    OrbitType.ELLIPTICAL: _elliptical_in_plane,
    OrbitType.PARABOLIC: _parabolic_in_plane,
    OrbitType.HYPERBOLIC: _hyperbolic_in_plane,
}


def elements_to_state(
    t: float,
    elements: KeplerElements,
    obliquity: float = OBLIQUITY_J2000,
    mu: float = MU_SUN,
    k: float = GAUSS_K,
    config: Optional[AnomalySolverConfig] = None
) -> Tuple[Vector3, Vector3]:
    """
    Equatorial position and velocity at time t from classical elements.

    Args:
        t: Time on the same scale as elements.tp
        elements: Any element variant
        obliquity: Ecliptic obliquity (radians)
        mu: Gravitational parameter
        k: Gravitational constant
        config: Anomaly solver tolerances and cap

    Returns:
        (position, velocity) with velocity per scaled time unit

    Raises:
        AnomalySolveNonConvergentError: Anomaly equation did not converge
    """
    in_plane = _IN_PLANE[elements.orbit_type]
    xb, yb, xp, yp = in_plane(elements, t, mu, k, config)

    p_hat, q_hat = perifocal_basis(elements.i, elements.node, elements.omega)
    r = xb * p_hat + yb * q_hat
    v = xp * p_hat + yp * q_hat

    return ecliptic_to_equatorial(r, obliquity), ecliptic_to_equatorial(v, obliquity)


def state_at(
    t: float,
    elements: KeplerElements,
    obliquity: float = OBLIQUITY_J2000,
    mu: float = MU_SUN,
    k: float = GAUSS_K,
    config: Optional[AnomalySolverConfig] = None
) -> StateVector:
    """elements_to_state packaged as a StateVector at epoch t."""
    r, v = elements_to_state(t, elements, obliquity, mu, k, config)
    return StateVector(epoch=t, position=r, velocity=v)
