"""
GAUSS-ORBIT Orbit Service - Universal Kepler Solver

Lagrange f and g coefficients from the universal Kepler equation.

The universal anomaly x satisfies

    r0*x + c0*U(x) + d0*C(x) = sqrt(mu)*h

where C and U are the universal analogues of the Stumpff series, evaluated
as power series in x²α summed until further terms no longer change the
result. Because the series are analytic in α the same solver covers
elliptical, parabolic and hyperbolic motion with no case split on orbit
type.

Time here is the scaled interval h = k*(t - t0); velocities are per scaled
time unit.
"""

import sys
import math
import logging
from typing import Optional, Tuple

from config import KeplerSolverConfig, MU_SUN, GAUSS_K
from errors import DegenerateGeometryError, NonConvergenceError
from models import StateVector
from vector import Vector3

logger = logging.getLogger(__name__)

SERIES_MAX_TERMS = 500

# x*sqrt(-alpha) above this switches to the logarithmic starting value
HYPERBOLIC_LOG_GUESS = 5.0


# =============================================================================
# Universal Series
# =============================================================================

def universal_series(x: float, alpha: float) -> Tuple[float, float, float]:
    """
    Evaluate the universal series at anomaly x.

    Args:
        x: Universal anomaly
        alpha: Inverse semi-major axis indicator, 2/r0 - v²/mu

    Returns:
        (C, U, S) with C = x²c2(x²α), U = x³c3(x²α) and S = x - α*U
    """
    x2 = x * x
    xa = x2 * alpha
    eps = sys.float_info.epsilon

    # C = x² Σ (-xa)^n / (2n+2)!,  U = x³ Σ (-xa)^n / (2n+3)!
    c_term = 0.5
    u_term = 1.0 / 6.0
    c_sum = c_term
    u_sum = u_term
    for n in range(1, SERIES_MAX_TERMS + 1):
        c_term *= -xa / ((2 * n + 1) * (2 * n + 2))
        u_term *= -xa / ((2 * n + 2) * (2 * n + 3))
        c_sum += c_term
        u_sum += u_term

        # Terms only shrink once the factorial outgrows |xa|
        if ((2 * n + 1) * (2 * n + 2) > abs(xa)
                and abs(c_term) <= eps * abs(c_sum)
                and abs(u_term) <= eps * abs(u_sum)):
            break

    cc = c_sum * x2
    uu = u_sum * x2 * x
    ss = x - uu * alpha
    return cc, uu, ss


def _initial_anomaly(r0: float, rv: float, alpha: float, h: float, mu: float) -> float:
    """Starting universal anomaly for the Newton solve."""
    x = h * math.sqrt(mu) / r0
    if alpha < 0.0 and abs(x) * math.sqrt(-alpha) > HYPERBOLIC_LOG_GUESS:
        # Far along a hyperbola x grows like the log of the time
        a = 1.0 / alpha
        sign = math.copysign(1.0, h)
        arg = (-2.0 * mu * alpha * h) / (rv + sign * math.sqrt(-mu * a) * (1.0 - r0 * alpha))
        if arg > 1.0:
            x = sign * math.sqrt(-a) * math.log(arg)
    return x


# =============================================================================
# f and g Solution
# =============================================================================

def solve_universal_fg(
    r: Vector3,
    v: Vector3,
    h: float,
    mu: float = MU_SUN,
    config: Optional[KeplerSolverConfig] = None
) -> Tuple[float, float, float, float]:
    """
    Universal f and g solution.

    Args:
        r: Position vector
        v: Velocity vector (per scaled time unit)
        h: Scaled time step, k*(t - t0)
        mu: Gravitational parameter (1 + mass of secondary relative to primary)
        config: Solver tolerance and iteration cap

    Returns:
        (f, g, fdot, gdot) such that r(t) = f*r + g*v and v(t) = fdot*r + gdot*v

    Raises:
        DegenerateGeometryError: |r| is zero
        NonConvergenceError: Newton-Raphson exceeded the iteration cap
    """
    config = config or KeplerSolverConfig()

    r0 = r.norm()
    if r0 == 0.0:
        raise DegenerateGeometryError("Universal f/g undefined for a zero position vector")

    if h == 0.0:
        return 1.0, 0.0, 0.0, 1.0

    sqrt_mu = math.sqrt(mu)
    rv = r.dot(v)
    d0 = rv / sqrt_mu
    alpha = 2.0 / r0 - v.dot(v) / mu
    c0 = 1.0 - r0 * alpha

    # Elliptic motion repeats each period; keep h within half a period of zero
    if alpha > 0.0:
        period = 2.0 * math.pi / (sqrt_mu * alpha ** 1.5)
        if abs(h) > period / 2.0:
            h = math.remainder(h, period)
            if h == 0.0:
                return 1.0, 0.0, 0.0, 1.0

    ww = h * sqrt_mu
    x = _initial_anomaly(r0, rv, alpha, h, mu)
    fx = float("inf")

    for iteration in range(config.max_iterations + 1):
        cc, uu, ss = universal_series(x, alpha)
        fx = r0 * x + c0 * uu + d0 * cc - ww

        if abs(fx) < config.tolerance:
            break

        if iteration == config.max_iterations:
            raise NonConvergenceError(
                f"Universal anomaly did not converge in {config.max_iterations} "
                f"iterations (h={h:.6g}, residual={fx:.3e})",
                iterations=iteration,
                residual=fx
            )

        df = r0 + c0 * cc + d0 * ss
        x = x - fx / df

        if not math.isfinite(x):
            raise NonConvergenceError(
                f"Universal anomaly diverged (h={h:.6g})",
                iterations=iteration + 1,
                residual=fx
            )

    f = 1.0 - cc / r0
    g = (r0 * ss + d0 * cc) / sqrt_mu
    r_new = r0 + c0 * cc + d0 * ss
    fdot = -sqrt_mu * ss / (r_new * r0)
    gdot = 1.0 - cc / r_new

    logger.debug(f"Universal f/g: h={h:.6g} x={x:.9f} iterations={iteration}")

    return f, g, fdot, gdot


def propagate_state(
    state: StateVector,
    dt: float,
    mu: float = MU_SUN,
    k: float = GAUSS_K,
    config: Optional[KeplerSolverConfig] = None
) -> StateVector:
    """
    Propagate a state vector across dt days under two-body motion.

    Args:
        state: Initial state (AU, AU per scaled time unit)
        dt: Time step (days); scaled internally by k
        mu: Gravitational parameter
        k: Gravitational constant used to scale time

    Returns:
        State at epoch + dt
    """
    f, g, fdot, gdot = solve_universal_fg(state.position, state.velocity, k * dt, mu, config)

    r = f * state.position + g * state.velocity
    v = fdot * state.position + gdot * state.velocity

    return StateVector(epoch=state.epoch + dt, position=r, velocity=v)
