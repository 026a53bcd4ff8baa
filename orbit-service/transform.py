"""
GAUSS-ORBIT Orbit Service - Coordinate Transformations

Boundary conversions between observed angles and inertial vectors.

    RA (hours) / Dec (degrees) -> radians -> line-of-sight unit vector
    Equatorial frame <-> ecliptic frame (rotation about x by the obliquity)

Calendar and Julian date conversion are handled by the caller; times arrive
here already on a continuous date scale.
"""

import math
from typing import Tuple

import numpy as np

from vector import Vector3


# =============================================================================
# Angle Conversions
# =============================================================================

def hours_to_radians(hours: float) -> float:
    """Right ascension in hours to radians."""
    return hours / 12.0 * math.pi


def radians_to_hours(rad: float) -> float:
    return rad * 12.0 / math.pi


def hms_to_hours(h: float, m: float, s: float) -> float:
    """Sexagesimal right ascension to decimal hours."""
    return h + m / 60.0 + s / 3600.0


def dms_to_degrees(d: float, m: float, s: float, sign: float = 1.0) -> float:
    """Sexagesimal declination to decimal degrees."""
    return sign * (abs(d) + m / 60.0 + s / 3600.0)


def format_ra_dec(ra_rad: float, dec_rad: float) -> str:
    """Format RA/Dec as 'HHhMMmSS.Ss +DD°MM'SS"' for logs."""
    ra_hours = radians_to_hours(ra_rad) % 24.0
    h = int(ra_hours)
    m = int((ra_hours - h) * 60)
    s = ((ra_hours - h) * 60 - m) * 60

    dec_deg = math.degrees(dec_rad)
    sign = "+" if dec_deg >= 0 else "-"
    dec_abs = abs(dec_deg)
    dd = int(dec_abs)
    dm = int((dec_abs - dd) * 60)
    ds = ((dec_abs - dd) * 60 - dm) * 60

    return f"{h:02d}h{m:02d}m{s:04.1f}s {sign}{dd:02d}°{dm:02d}'{ds:04.1f}\""


# =============================================================================
# Line of Sight
# =============================================================================

def line_of_sight(ra: float, dec: float) -> Vector3:
    """
    Unit vector from observer toward target.

    Args:
        ra: Right ascension (radians)
        dec: Declination (radians)

    Returns:
        Direction cosines (cos δ cos α, cos δ sin α, sin δ)
    """
    return Vector3(
        math.cos(dec) * math.cos(ra),
        math.cos(dec) * math.sin(ra),
        math.sin(dec)
    )


def ra_dec_from_vector(v: Vector3) -> Tuple[float, float]:
    """Right ascension in [0, 2π) and declination of a direction (radians)."""
    u = v.unit()
    dec = math.asin(float(np.clip(u.z, -1.0, 1.0)))
    ra = math.atan2(u.y, u.x)
    if ra < 0:
        ra += 2 * math.pi
    return ra, dec


def angular_separation(a: Vector3, b: Vector3) -> float:
    """Angle between two directions (radians)."""
    cos_ang = np.clip(a.unit().dot(b.unit()), -1.0, 1.0)
    return math.acos(float(cos_ang))


# =============================================================================
# Frame Rotations
# =============================================================================

def obliquity_matrix(obliquity: float) -> np.ndarray:
    """
    Rotation matrix from the ecliptic frame to the equatorial frame.

    Its transpose takes equatorial vectors into the ecliptic frame. An
    obliquity of zero (body-centered work) gives the identity.
    """
    c = math.cos(obliquity)
    s = math.sin(obliquity)
    return np.array([
        [1.0, 0.0, 0.0],
        [0.0, c, -s],
        [0.0, s, c]
    ])


def equatorial_to_ecliptic(v: Vector3, obliquity: float) -> Vector3:
    """Rotate an equatorial vector into the ecliptic frame."""
    return Vector3.from_iterable(obliquity_matrix(obliquity).T @ v.as_array())


def ecliptic_to_equatorial(v: Vector3, obliquity: float) -> Vector3:
    """Rotate an ecliptic vector into the equatorial frame."""
    return Vector3.from_iterable(obliquity_matrix(obliquity) @ v.as_array())


def perifocal_basis(i: float, node: float, arg_peri: float) -> Tuple[Vector3, Vector3]:
    """
    Unit vectors of the orbital plane.

    Args:
        i: Inclination (radians)
        node: Longitude of ascending node (radians)
        arg_peri: Argument of perifocus (radians)

    Returns:
        (P, Q): P points from the primary to pericenter, Q along the
        velocity at pericenter
    """
    cos_node = math.cos(node)
    sin_node = math.sin(node)
    cos_i = math.cos(i)
    sin_i = math.sin(i)
    cos_w = math.cos(arg_peri)
    sin_w = math.sin(arg_peri)

    p_hat = Vector3(
        cos_w * cos_node - sin_w * sin_node * cos_i,
        cos_w * sin_node + sin_w * cos_node * cos_i,
        sin_w * sin_i
    )
    q_hat = Vector3(
        -sin_w * cos_node - cos_w * sin_node * cos_i,
        -sin_w * sin_node + cos_w * cos_node * cos_i,
        cos_w * sin_i
    )
    return p_hat, q_hat
