"""
GAUSS-ORBIT Orbit Service - Errors

Exception hierarchy for orbit determination.

Precondition violations (degenerate geometry) are fatal and never retried.
Each Newton-Raphson solver raises its own non-convergence error so callers
can decide whether to retry with a different guess or bracket.
"""

from typing import Optional


class OrbitDeterminationError(Exception):
    """Base class for all orbit determination failures."""

    kind = "orbit_determination_error"


class DegenerateGeometryError(OrbitDeterminationError, ValueError):
    """Input geometry makes the computation undefined (e.g. D0 ~ 0, |r| = 0)."""

    kind = "degenerate_geometry"


class NonConvergenceError(OrbitDeterminationError):
    """Universal Kepler (universal anomaly) iteration did not converge."""

    kind = "non_convergence"

    def __init__(
        self,
        message: str,
        iterations: int = 0,
        residual: Optional[float] = None
    ):
        super().__init__(message)
        self.iterations = iterations
        self.residual = residual


class RootNotFoundError(NonConvergenceError):
    """Newton-Raphson on the octic diverged or left the caller's bracket."""

    kind = "root_not_found"


class RefinementNonConvergentError(NonConvergenceError):
    """Refinement loop hit its iteration cap before the ranges settled."""

    kind = "refinement_non_convergent"


class AnomalySolveNonConvergentError(NonConvergenceError):
    """Kepler / Barker / hyperbolic anomaly equation did not converge."""

    kind = "anomaly_solve_non_convergent"
