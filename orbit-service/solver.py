"""
GAUSS-ORBIT Orbit Service - Orbit Determination Pipeline

Runs the full determination for an observation triple:

    Gauss estimate -> refinement -> classical elements -> residuals

and packages the outcome as an OrbitSolution. Determination failures are
reported in the solution (success=False) instead of being raised, so a
batch of triples can fail item by item.
"""

import math
import functools
import logging
import multiprocessing
from dataclasses import dataclass
from typing import Optional, Tuple, List

from config import (
    MU_SUN,
    GAUSS_K,
    ABERRATION,
    OBLIQUITY_J2000,
    SolverSettings,
)
from errors import OrbitDeterminationError
from elements import state_to_elements
from gauss import start_session, RefinementSession
from kepler import propagate_state
from models import ObservationTriple, OrbitSolution, StateVector
from transform import angular_separation

logger = logging.getLogger(__name__)


@dataclass
class DeterminationRequest:
    """One triple with the caller's choice of octic root."""
    triple: ObservationTriple
    root_bracket: Tuple[float, float]
    root_guess: float


# =============================================================================
# Residuals
# =============================================================================

def compute_residuals(
    triple: ObservationTriple,
    state: StateVector,
    times: Optional[List[float]] = None,
    mu: float = MU_SUN,
    k: float = GAUSS_K,
    settings: Optional[SolverSettings] = None
) -> Tuple[float, List[float]]:
    """
    Angular residuals between observations and the propagated orbit.

    Args:
        triple: Observations
        state: Reference state
        times: Times at which the body is evaluated for each observation
            (light-time corrected); defaults to the raw observation times
        mu: Gravitational parameter
        k: Gravitational constant

    Returns:
        (rms_residual_arcsec, list_of_residuals_arcsec)
    """
    settings = settings or SolverSettings()
    times = times if times is not None else triple.times

    residuals = []
    for obs, t in zip(triple, times):
        predicted = propagate_state(state, t - state.epoch, mu, k, settings.kepler)

        # Target = P * L - R, so the predicted line of sight is r + R
        los_pred = predicted.position + obs.observer_position
        ang_sep = angular_separation(los_pred, obs.line_of_sight)

        residuals.append(math.degrees(ang_sep) * 3600)

    rms = math.sqrt(sum(r ** 2 for r in residuals) / len(residuals))
    return rms, residuals


# =============================================================================
# Orbit Solver
# =============================================================================

class OrbitSolver:
    """
    Preliminary orbit determination for angles-only observation triples.
    """

    def __init__(
        self,
        mu: float = MU_SUN,
        k: float = GAUSS_K,
        aberration: float = ABERRATION,
        obliquity: float = OBLIQUITY_J2000,
        settings: Optional[SolverSettings] = None
    ):
        self.mu = mu
        self.k = k
        self.aberration = aberration
        self.obliquity = obliquity
        self.settings = settings or SolverSettings()

    def start_session(
        self,
        triple: ObservationTriple,
        root_bracket: Tuple[float, float],
        root_guess: float
    ) -> RefinementSession:
        """Gauss estimate only; the caller drives the refinement."""
        return start_session(
            triple, root_bracket, root_guess,
            self.mu, self.k, self.aberration, self.settings
        )

    def finish(
        self,
        triple: ObservationTriple,
        session: RefinementSession
    ) -> OrbitSolution:
        """Elements and residuals for a converged session."""
        snapshot = session.run()
        state = snapshot.state

        elements = state_to_elements(
            state, self.obliquity, self.mu, self.k,
            self.settings.eccentricity_tolerance
        )
        rms, residuals = compute_residuals(
            triple, state, list(snapshot.times), self.mu, self.k, self.settings
        )

        return OrbitSolution(
            success=True,
            state=state,
            elements=elements,
            iterations=session.iteration,
            root=session.root,
            rms_residual_arcsec=rms,
            residuals_arcsec=residuals,
        )

    def solve(
        self,
        triple: ObservationTriple,
        root_bracket: Tuple[float, float],
        root_guess: float
    ) -> OrbitSolution:
        """
        Determine an orbit from three observations.

        Args:
            triple: Three time-ordered observations
            root_bracket: (low, high) interval for the octic root
            root_guess: Starting value for the octic solve

        Returns:
            OrbitSolution with state and elements, or the error
        """
        try:
            session = self.start_session(triple, root_bracket, root_guess)
            solution = self.finish(triple, session)
        except OrbitDeterminationError as e:
            logger.warning(f"Orbit determination failed ({e.kind}): {e}")
            return OrbitSolution(
                success=False,
                iterations=getattr(e, "iterations", 0),
                error_kind=e.kind,
                error_message=str(e),
            )

        logger.info(
            f"Orbit determined: {solution.elements.orbit_type.value} "
            f"aq={solution.elements.aq:.6f} e={solution.elements.e:.6f} "
            f"after {solution.iterations} iterations "
            f"(RMS {solution.rms_residual_arcsec:.3f} arcsec)"
        )
        return solution

    def solve_request(self, request: DeterminationRequest) -> OrbitSolution:
        return self.solve(request.triple, request.root_bracket, request.root_guess)

    def solve_batch(
        self,
        requests: List[DeterminationRequest],
        processes: int = 0
    ) -> List[OrbitSolution]:
        """
        Solve independent triples, in order.

        Args:
            requests: Triples with their root brackets and guesses
            processes: Worker processes; 0 or 1 runs in this process

        Returns:
            One OrbitSolution per request
        """
        if processes <= 1 or len(requests) <= 1:
            return [self.solve_request(r) for r in requests]

        with multiprocessing.Pool(processes) as pool:
            work_func = functools.partial(_solve_worker, self)
            return pool.map(work_func, requests)


def _solve_worker(solver: OrbitSolver, request: DeterminationRequest) -> OrbitSolution:
    return solver.solve_request(request)
