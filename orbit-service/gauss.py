"""
GAUSS-ORBIT Orbit Service - Gauss's Method

Preliminary orbit determination from three angles-only observations.

The Problem:
- We have right ascension / declination at three times
- The observer's position is known at each time
- The target's distance along each line of sight is unknown

Approach:
1. Build line-of-sight unit vectors and the Gauss geometry (D matrix, D0)
2. Solve the 8th-degree scalar equation for the orbital radius at the
   middle observation (Newton-Raphson from a caller-supplied guess)
3. Seed Lagrange f and g from a truncated series at that radius
4. Refine: ranges -> positions -> middle velocity -> light-time corrected
   times -> universal f and g -> Lagrange multipliers, until the slant
   ranges settle

The octic may have several positive real roots. Picking the physical one is
the caller's job: the bracket and guess are required inputs, and
tabulate_octic / scan_octic_roots exist to help choose them.
"""

import math
import logging
from dataclasses import dataclass
from typing import Optional, Tuple, List

import numpy as np

from config import (
    MU_SUN,
    GAUSS_K,
    ABERRATION,
    OcticRootConfig,
    SolverSettings,
)
from errors import (
    DegenerateGeometryError,
    RootNotFoundError,
    RefinementNonConvergentError,
)
from kepler import solve_universal_fg
from models import ObservationTriple, StateVector
from vector import Vector3, dot, cross

logger = logging.getLogger(__name__)


# =============================================================================
# Data Structures
# =============================================================================

@dataclass(frozen=True)
class GaussGeometry:
    """
    Coefficients derived once from an observation triple.

    tau holds the scaled intervals [k(t0-t1), k(t2-t0), k(t2-t1)] of the raw
    observation times; the refinement loop keeps its own corrected copy.
    """
    lines_of_sight: Tuple[Vector3, Vector3, Vector3]
    observer_positions: Tuple[Vector3, Vector3, Vector3]
    times: Tuple[float, float, float]
    tau: Tuple[float, float, float]

    d: Tuple[Tuple[float, float, float], ...]  # D[i][j]
    d0: float

    ee: float
    ff: float
    aa: float
    bb: float

    # Octic C + x³(B + x³(A + x²)) = 0
    a: float
    b: float
    c: float

    mu: float

    def to_dict(self) -> dict:
        return {
            "tau": list(self.tau),
            "D": [list(row) for row in self.d],
            "D0": self.d0,
            "EE": self.ee,
            "FF": self.ff,
            "AA": self.aa,
            "BB": self.bb,
            "A": self.a,
            "B": self.b,
            "C": self.c,
        }


@dataclass(frozen=True)
class OcticSample:
    """One row of the octic table: trial radius, slant range, residual."""
    x: float
    p: float
    value: float


@dataclass(frozen=True)
class RefinementSnapshot:
    """State of a refinement session after one iteration."""
    iteration: int
    ranges: Tuple[float, float, float]
    delta: Tuple[float, float, float]
    delta_norm: float
    times: Tuple[float, float, float]
    epoch: float
    position: Vector3
    velocity: Vector3
    converged: bool

    @property
    def state(self) -> StateVector:
        return StateVector(epoch=self.epoch, position=self.position, velocity=self.velocity)

    def to_dict(self) -> dict:
        return {
            "iteration": self.iteration,
            "ranges": list(self.ranges),
            "delta": list(self.delta),
            "delta_norm": self.delta_norm,
            "times": list(self.times),
            "epoch": self.epoch,
            "position": self.position.to_list(),
            "velocity": self.velocity.to_list(),
            "converged": self.converged,
        }


# =============================================================================
# Gauss Geometry
# =============================================================================

def scaled_intervals(times: List[float], k: float) -> List[float]:
    """Scaled intervals [k(t0-t1), k(t2-t0), k(t2-t1)]."""
    return [k * (times[0] - times[1]), k * (times[2] - times[0]), k * (times[2] - times[1])]


def build_geometry(
    triple: ObservationTriple,
    mu: float = MU_SUN,
    k: float = GAUSS_K,
    config: Optional[OcticRootConfig] = None
) -> GaussGeometry:
    """
    Gauss geometry coefficients for an observation triple.

    Args:
        triple: Three time-ordered observations
        mu: Gravitational parameter
        k: Gravitational constant used to scale time
        config: Supplies the coplanarity threshold for D0

    Returns:
        GaussGeometry

    Raises:
        DegenerateGeometryError: Lines of sight are (nearly) coplanar
    """
    config = config or OcticRootConfig()

    L = triple.lines_of_sight
    R = triple.observer_positions
    times = triple.times
    tau = scaled_intervals(times, k)

    d = [[0.0, 0.0, 0.0] for _ in range(3)]
    for j in range(3):
        d[0][j] = dot(R[j], cross(L[1], L[2]))
        d[1][j] = dot(L[0], cross(R[j], L[2]))
        d[2][j] = dot(L[0], cross(L[1], R[j]))

    # Scalar triple product
    d0 = dot(L[0], cross(L[1], L[2]))
    if abs(d0) < config.min_triple_product:
        raise DegenerateGeometryError(
            f"Coplanar lines of sight (D0 = {d0:.3e}); Gauss's method is undefined"
        )

    ee = -2.0 * dot(L[1], R[1])
    ff = dot(R[1], R[1])

    a1 = tau[2] / tau[1]
    b1 = a1 * (tau[1] * tau[1] - tau[2] * tau[2]) / 6.0
    a3 = -tau[0] / tau[1]
    b3 = a3 * (tau[1] * tau[1] - tau[0] * tau[0]) / 6.0

    aa = -(a1 * d[1][0] - d[1][1] + a3 * d[1][2]) / d0
    bb = -(b1 * d[1][0] + b3 * d[1][2]) / d0

    geometry = GaussGeometry(
        lines_of_sight=tuple(L),
        observer_positions=tuple(R),
        times=tuple(times),
        tau=tuple(tau),
        d=tuple(tuple(row) for row in d),
        d0=d0,
        ee=ee,
        ff=ff,
        aa=aa,
        bb=bb,
        a=-(aa * aa + aa * ee + ff),
        b=-mu * (2.0 * aa * bb + bb * ee),
        c=-mu * mu * bb * bb,
        mu=mu,
    )

    logger.debug(
        f"Gauss geometry: D0={d0:.7f} AA={aa:.7f} BB={bb:.7f} "
        f"A={geometry.a:.7f} B={geometry.b:.7f} C={geometry.c:.7f}"
    )

    return geometry


# =============================================================================
# Octic Equation
# =============================================================================

def octic_value(geometry: GaussGeometry, x: float) -> float:
    """C + x³(B + x³(A + x²))"""
    x3 = x * x * x
    return geometry.c + x3 * (geometry.b + x3 * (geometry.a + x * x))


def octic_derivative(geometry: GaussGeometry, x: float) -> float:
    """x²(3B + x³(6A + 8x²))"""
    x3 = x * x * x
    return x * x * (3.0 * geometry.b + x3 * (6.0 * geometry.a + 8.0 * x * x))


def slant_range_estimate(geometry: GaussGeometry, x: float) -> float:
    """Middle slant range AA + mu*BB/x³ implied by a trial radius."""
    return geometry.aa + geometry.mu * geometry.bb / (x * x * x)


def tabulate_octic(
    geometry: GaussGeometry,
    low: float,
    high: float,
    steps: int = 10
) -> List[OcticSample]:
    """
    Sample the octic across [low, high] to help choose a root guess.

    Returns steps + 1 evenly spaced rows.
    """
    if high <= low:
        raise ValueError(f"Empty root bracket [{low}, {high}]")
    if low <= 0:
        raise ValueError("Root bracket must be strictly positive")

    return [
        OcticSample(
            x=float(x),
            p=slant_range_estimate(geometry, float(x)),
            value=octic_value(geometry, float(x)),
        )
        for x in np.linspace(low, high, steps + 1)
    ]


def scan_octic_roots(
    geometry: GaussGeometry,
    low: float,
    high: float,
    steps: int = 100
) -> List[Tuple[float, float]]:
    """
    Sub-intervals of [low, high] over which the octic changes sign.

    Each interval brackets at least one real root. The list is informational;
    no root is chosen here.
    """
    samples = tabulate_octic(geometry, low, high, steps)
    intervals = []
    for s0, s1 in zip(samples, samples[1:]):
        if s0.value == 0.0 or s0.value * s1.value < 0:
            intervals.append((s0.x, s1.x))
    if samples[-1].value == 0.0:
        intervals.append((samples[-1].x, samples[-1].x))
    return intervals


def solve_octic(
    geometry: GaussGeometry,
    bracket: Tuple[float, float],
    guess: float,
    config: Optional[OcticRootConfig] = None
) -> float:
    """
    Newton-Raphson on the Gauss octic from a caller-supplied guess.

    Args:
        geometry: Gauss geometry for the triple
        bracket: (low, high) interval the root must fall in
        guess: Starting value, inside the bracket
        config: Tolerance on |dx| and iteration cap

    Returns:
        Root x (orbital radius scale at the middle observation)

    Raises:
        RootNotFoundError: Newton diverged, stalled, hit the cap, or
            converged outside the bracket
    """
    config = config or OcticRootConfig()
    low, high = bracket

    if not low < high:
        raise RootNotFoundError(f"Empty root bracket [{low}, {high}]")
    if not low <= guess <= high:
        raise RootNotFoundError(f"Root guess {guess} outside bracket [{low}, {high}]")

    x = guess
    dx = float("inf")
    for iteration in range(1, config.max_iterations + 1):
        df = octic_derivative(geometry, x)
        if df == 0.0:
            raise RootNotFoundError(
                f"Octic derivative vanished at x={x:.6f}",
                iterations=iteration,
                residual=octic_value(geometry, x)
            )

        dx = octic_value(geometry, x) / df
        x = x - dx

        if not math.isfinite(x):
            raise RootNotFoundError(
                f"Octic Newton iteration diverged from guess {guess}",
                iterations=iteration
            )

        if abs(dx) < config.tolerance:
            break
    else:
        raise RootNotFoundError(
            f"Octic Newton iteration did not converge in {config.max_iterations} iterations",
            iterations=config.max_iterations,
            residual=dx
        )

    if not low <= x <= high:
        raise RootNotFoundError(
            f"Octic root {x:.6f} lies outside bracket [{low}, {high}]",
            iterations=iteration,
            residual=dx
        )

    logger.debug(f"Octic root x={x:.7f} after {iteration} iterations")
    return x


# =============================================================================
# Lagrange Coefficients
# =============================================================================

def lagrange_multipliers(
    f: List[float],
    g: List[float]
) -> Tuple[List[float], List[float]]:
    """
    Lagrange multiplier arrays C and D from f, g at indices 0 and 2.

    C weights the three ranges; D gives the middle velocity from the outer
    positions.
    """
    fg = f[0] * g[2] - f[2] * g[0]
    if fg == 0.0:
        raise DegenerateGeometryError("Lagrange determinant f0*g2 - f2*g0 vanished")

    c = [g[2] / fg, -1.0, -g[0] / fg]
    d = [-f[2] / fg, 0.0, f[0] / fg]
    return c, d


def initial_lagrange(
    tau: Tuple[float, float, float],
    root: float,
    mu: float = MU_SUN
) -> Tuple[List[float], List[float]]:
    """
    First-guess f and g from the second-order universal series at radius x.

    Returns:
        (F, G) with index 1 unused
    """
    u2 = mu / (root * root * root)
    f = [1.0 - u2 * tau[0] * tau[0] / 2.0, 0.0, 1.0 - u2 * tau[2] * tau[2] / 2.0]
    g = [
        tau[0] * (1.0 - u2 * tau[0] * tau[0] / 6.0),
        0.0,
        tau[2] * (1.0 - u2 * tau[2] * tau[2] / 6.0)
    ]
    return f, g


# =============================================================================
# Refinement Session
# =============================================================================

class RefinementSession:
    """
    Light-time corrected refinement of Gauss's method.

    The session owns its working arrays (P, P_old, F, G, C, D and the
    corrected tau). Each advance() performs one iteration and returns a
    snapshot, so a caller can pace iterations; run() iterates to
    convergence under the configured cap.
    """

    def __init__(
        self,
        geometry: GaussGeometry,
        root: float,
        k: float = GAUSS_K,
        aberration: float = ABERRATION,
        settings: Optional[SolverSettings] = None
    ):
        self.geometry = geometry
        self.root = root
        self.k = k
        self.aberration = aberration
        self.settings = settings or SolverSettings()

        self.tau = list(geometry.tau)
        self.f, self.g = initial_lagrange(geometry.tau, root, geometry.mu)
        self.c, self.d = lagrange_multipliers(self.f, self.g)

        self.p = [0.0, 0.0, 0.0]
        self.p_old = [0.0, 0.0, 0.0]

        self.iteration = 0
        self.converged = False
        self.delta_history: List[float] = []
        self.last_snapshot: Optional[RefinementSnapshot] = None

    def advance(self) -> RefinementSnapshot:
        """
        Perform one refinement iteration.

        A converged session returns its final snapshot unchanged.
        """
        if self.converged and self.last_snapshot is not None:
            return self.last_snapshot

        geo = self.geometry
        L = geo.lines_of_sight
        R = geo.observer_positions
        raw_t = geo.times

        self.iteration += 1

        # Slant ranges from the current multipliers
        for i in range(3):
            num = (self.c[0] * geo.d[i][0]
                   + self.c[1] * geo.d[i][1]
                   + self.c[2] * geo.d[i][2])
            self.p[i] = num / (self.c[i] * geo.d0)

        # Positions and middle velocity
        r = [self.p[i] * L[i] - R[i] for i in range(3)]
        v = self.d[0] * r[0] + self.d[2] * r[2]

        dp = [self.p[i] - self.p_old[i] for i in range(3)]
        self.p_old = list(self.p)
        dp_mag = math.sqrt(dp[0] * dp[0] + dp[1] * dp[1] + dp[2] * dp[2])
        self.delta_history.append(dp_mag)

        # Light-time correction
        t = [raw_t[i] - self.aberration * self.p[i] for i in range(3)]
        self.tau[0] = self.k * (t[0] - t[1])
        self.tau[2] = self.k * (t[2] - t[1])
        self.tau[1] = self.tau[2] - self.tau[0]

        logger.debug(
            f"Iteration {self.iteration}: P=({self.p[0]:.7f}, {self.p[1]:.7f}, "
            f"{self.p[2]:.7f}) t={t[1]:.7f} |dp|={dp_mag:.5e}"
        )

        # Damped update of f and g from the universal solution
        kepler_config = self.settings.kepler
        for i in (0, 2):
            f_new, g_new, _, _ = solve_universal_fg(r[1], v, self.tau[i], geo.mu, kepler_config)
            self.f[i] = (f_new + self.f[i]) / 2.0
            self.g[i] = (g_new + self.g[i]) / 2.0

        self.c, self.d = lagrange_multipliers(self.f, self.g)

        self.converged = dp_mag <= self.settings.refinement.tolerance

        snapshot = RefinementSnapshot(
            iteration=self.iteration,
            ranges=tuple(self.p),
            delta=tuple(dp),
            delta_norm=dp_mag,
            times=tuple(t),
            epoch=t[1],
            position=r[1],
            velocity=v,
            converged=self.converged,
        )
        self.last_snapshot = snapshot
        return snapshot

    def run(self) -> RefinementSnapshot:
        """
        Advance until converged.

        Raises:
            RefinementNonConvergentError: Iteration cap reached first
        """
        cap = self.settings.refinement.max_iterations
        while not self.converged:
            if self.iteration >= cap:
                last = self.delta_history[-1] if self.delta_history else None
                raise RefinementNonConvergentError(
                    f"Refinement did not converge in {cap} iterations"
                    + (f" (|dp| = {last:.3e})" if last is not None else ""),
                    iterations=self.iteration,
                    residual=last
                )
            self.advance()

        logger.debug(f"Refinement converged after {self.iteration} iterations")
        return self.last_snapshot

    def result(self) -> StateVector:
        """State at the middle observation (light-time corrected epoch)."""
        return self.run().state


# =============================================================================
# Entry Points
# =============================================================================

def start_session(
    triple: ObservationTriple,
    root_bracket: Tuple[float, float],
    root_guess: float,
    mu: float = MU_SUN,
    k: float = GAUSS_K,
    aberration: float = ABERRATION,
    settings: Optional[SolverSettings] = None
) -> RefinementSession:
    """Build the geometry, solve the octic and return a fresh session."""
    settings = settings or SolverSettings()

    geometry = build_geometry(triple, mu, k, settings.octic)
    root = solve_octic(geometry, root_bracket, root_guess, settings.octic)

    return RefinementSession(geometry, root, k, aberration, settings)


def determine_orbit(
    triple: ObservationTriple,
    root_bracket: Tuple[float, float],
    root_guess: float,
    mu: float = MU_SUN,
    k: float = GAUSS_K,
    aberration: float = ABERRATION,
    settings: Optional[SolverSettings] = None
) -> StateVector:
    """
    Gauss's method of preliminary orbit determination.

    Args:
        triple: Three time-ordered observations
        root_bracket: (low, high) interval containing the wanted octic root
        root_guess: Starting value for Newton's method on the octic
        mu: Gravitational parameter
        k: Gravitational constant
        aberration: Light time per unit distance (days/AU)
        settings: Solver tolerances and caps

    Returns:
        Position and velocity at the (light-time corrected) middle epoch

    Raises:
        DegenerateGeometryError: Coplanar lines of sight
        RootNotFoundError: Octic solve failed
        RefinementNonConvergentError: Refinement loop hit its cap
    """
    session = start_session(triple, root_bracket, root_guess, mu, k, aberration, settings)
    return session.result()
