"""
GAUSS-ORBIT Orbit Service

Preliminary orbit determination from angles-only observations.

Pipeline: observations -> Gauss estimate -> refinement -> elements
"""

import os
import math
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from schemas import (
    ObservationSchema,
    DetermineRequest,
    BatchDetermineRequest,
    TabulateRequest,
    ElementsFromStateRequest,
    ElementsToStateRequest,
    PropagateRequest,
    EphemerisRequest,
    SolutionOutput,
    BatchOutput,
    TabulateOutput,
    OcticRowOutput,
    SessionOutput,
    SnapshotOutput,
    EphemerisOutput,
    ScenarioOutput,
    ServiceStatus,
    ErrorResponse,
)
from config import (
    VERSION,
    SERVICE_NAME,
    DATA_DIR,
    PORT,
    OBLIQUITY_J2000,
    SolverSettings,
    configure_logging,
)
from errors import (
    OrbitDeterminationError,
    DegenerateGeometryError,
    NonConvergenceError,
    RefinementNonConvergentError,
)
from models import Observation, ObservationTriple, StateVector
from vector import Vector3
from elements import KeplerElements, state_to_elements, elements_to_state
from kepler import propagate_state
from gauss import build_geometry, tabulate_octic, scan_octic_roots, RefinementSession
from solver import OrbitSolver, DeterminationRequest
from ephemeris import ephemeris_from_elements, time_grid, export_npz
from scenarios import SCENARIOS, get_scenario

logger = configure_logging()


# =============================================================================
# In-Memory State
# =============================================================================

class OrbitServiceState:
    """In-memory state for the orbit service."""

    def __init__(self):
        self.start_time = datetime.now(timezone.utc)
        self.data_dir = DATA_DIR

        self.solutions_computed = 0
        self.solutions_failed = 0

        # Interactive refinement sessions (session_id -> session data)
        self.sessions: dict[str, dict] = {}

    def record(self, success: bool):
        if success:
            self.solutions_computed += 1
        else:
            self.solutions_failed += 1

    def get_session(self, session_id: str) -> dict:
        if session_id not in self.sessions:
            raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
        return self.sessions[session_id]


# Global state instance
state = OrbitServiceState()


# =============================================================================
# Lifespan (startup/shutdown)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info(f"Starting {SERVICE_NAME} service v{VERSION}")

    os.makedirs(state.data_dir, exist_ok=True)
    logger.info(f"Data directory: {state.data_dir}")

    yield

    logger.info(f"Shutting down {SERVICE_NAME} service")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="GAUSS-ORBIT Orbit Service",
    description="""
Preliminary orbit determination from three angles-only observations.

## Overview

- **Gauss's method**: octic root for the middle orbital radius
- **Refinement**: universal-variable f and g with light-time correction
- **Elements**: state vector <-> classical elements (elliptical, parabolic, hyperbolic)
- **Propagation**: two-body ephemerides and .npz export

## Key Concepts

- **Observer vector**: geocentric Sun position; the body is at P*L - R
- **Root bracket**: the caller chooses which octic root is physical;
  `/orbits/tabulate` helps pick one
- **Session**: a refinement that the client advances one iteration at a time
    """,
    version=VERSION,
    lifespan=lifespan,
    responses={
        500: {"model": ErrorResponse, "description": "Internal server error"}
    }
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Error Handlers
# =============================================================================

def _error_response(status_code: int, exc: OrbitDeterminationError) -> JSONResponse:
    body = ErrorResponse(
        error=exc.kind,
        detail=str(exc),
        timestamp=datetime.now(timezone.utc)
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(DegenerateGeometryError)
async def degenerate_geometry_handler(request: Request, exc: DegenerateGeometryError):
    logger.warning(f"Degenerate geometry on {request.url.path}: {exc}")
    return _error_response(400, exc)


@app.exception_handler(NonConvergenceError)
async def non_convergence_handler(request: Request, exc: NonConvergenceError):
    logger.warning(f"{exc.kind} on {request.url.path}: {exc}")
    return _error_response(422, exc)


# =============================================================================
# Request Conversion
# =============================================================================

def _obliquity(obliquity_deg: Optional[float]) -> float:
    return OBLIQUITY_J2000 if obliquity_deg is None else math.radians(obliquity_deg)


def _triple(observations: list[ObservationSchema]) -> ObservationTriple:
    return ObservationTriple.from_list([
        Observation.from_hours_degrees(o.time, o.ra_hours, o.dec_deg, _vector(o.observer_position))
        for o in observations
    ])


def _vector(values: list[float]) -> Vector3:
    return Vector3.from_iterable(values)


def _state(schema) -> StateVector:
    return StateVector(
        epoch=schema.epoch,
        position=_vector(schema.position),
        velocity=_vector(schema.velocity),
    )


def _elements(schema) -> KeplerElements:
    return KeplerElements.from_dict(schema.model_dump(mode="json"))


def _solver(req: DetermineRequest) -> OrbitSolver:
    settings = SolverSettings(eccentricity_tolerance=req.eccentricity_tolerance)
    return OrbitSolver(obliquity=_obliquity(req.obliquity_deg), settings=settings)


def _session_output(session_id: str, entry: dict) -> SessionOutput:
    session: RefinementSession = entry["session"]
    snapshot = session.last_snapshot

    elements = None
    if session.converged:
        solver: OrbitSolver = entry["solver"]
        elements = state_to_elements(
            snapshot.state, solver.obliquity, solver.mu, solver.k,
            solver.settings.eccentricity_tolerance
        ).to_dict()

    return SessionOutput(
        session_id=session_id,
        root=session.root,
        iteration=session.iteration,
        converged=session.converged,
        delta_history=list(session.delta_history),
        snapshot=SnapshotOutput(**snapshot.to_dict()) if snapshot else None,
        elements=elements,
    )


# =============================================================================
# Health & Status Endpoints
# =============================================================================

@app.get("/health", tags=["Health"])
async def health_check():
    """Basic health check."""
    return {"status": "healthy", "service": SERVICE_NAME, "version": VERSION}


@app.get("/status", response_model=ServiceStatus, tags=["Health"])
async def service_status():
    """Detailed service status."""
    now = datetime.now(timezone.utc)

    return ServiceStatus(
        status="healthy",
        timestamp=now,
        version=VERSION,
        active_sessions=len(state.sessions),
        solutions_computed=state.solutions_computed,
        solutions_failed=state.solutions_failed,
        uptime_seconds=(now - state.start_time).total_seconds()
    )


# =============================================================================
# Orbit Determination Endpoints
# =============================================================================

@app.post("/orbits/determine", response_model=SolutionOutput, tags=["Orbits"])
async def determine(req: DetermineRequest):
    """
    Full determination: Gauss estimate, refinement, elements and residuals.

    Degenerate input returns 400; any solver non-convergence returns 422.
    """
    triple = _triple(req.observations)
    solver = _solver(req)

    try:
        session = solver.start_session(triple, tuple(req.root_bracket), req.root_guess)
        solution = solver.finish(triple, session)
    except OrbitDeterminationError:
        state.record(False)
        raise

    state.record(True)
    logger.info(
        f"Determined {solution.elements.orbit_type.value} orbit "
        f"aq={solution.elements.aq:.6f} e={solution.elements.e:.6f} "
        f"in {solution.iterations} iterations"
    )
    return SolutionOutput(**solution.to_dict())


@app.post("/orbits/batch", response_model=BatchOutput, tags=["Orbits"])
async def determine_batch(req: BatchDetermineRequest):
    """
    Independent determinations; failures are reported per item.

    All items share the first item's obliquity and tolerance settings.
    """
    requests = [
        DeterminationRequest(_triple(item.observations), tuple(item.root_bracket), item.root_guess)
        for item in req.items
    ]
    solver = _solver(req.items[0])
    solutions = solver.solve_batch(requests, processes=req.processes)

    succeeded = sum(1 for s in solutions if s.success)
    for s in solutions:
        state.record(s.success)

    logger.info(f"Batch: {succeeded}/{len(solutions)} determinations succeeded")

    return BatchOutput(
        solutions=[SolutionOutput(**s.to_dict()) for s in solutions],
        succeeded=succeeded,
        failed=len(solutions) - succeeded,
    )


@app.post("/orbits/tabulate", response_model=TabulateOutput, tags=["Orbits"])
async def tabulate(req: TabulateRequest):
    """Octic table and sign-change intervals to help choose a root bracket."""
    if req.high <= req.low:
        raise HTTPException(status_code=400, detail=f"Empty interval [{req.low}, {req.high}]")

    triple = _triple(req.observations)
    geometry = build_geometry(triple)

    rows = tabulate_octic(geometry, req.low, req.high, req.steps)
    intervals = scan_octic_roots(geometry, req.low, req.high, req.scan_steps)

    return TabulateOutput(
        geometry=geometry.to_dict(),
        rows=[OcticRowOutput(x=r.x, p=r.p, value=r.value) for r in rows],
        sign_changes=[list(i) for i in intervals],
    )


# =============================================================================
# Element Conversion & Propagation Endpoints
# =============================================================================

@app.post("/elements/from-state", tags=["Elements"])
async def elements_from_state(req: ElementsFromStateRequest):
    """Classical elements from an equatorial state vector."""
    elements = state_to_elements(
        _state(req.state),
        obliquity=_obliquity(req.obliquity_deg),
        eccentricity_tolerance=req.eccentricity_tolerance
    )
    return {"elements": elements.to_dict()}


@app.post("/elements/to-state", tags=["Elements"])
async def elements_to_state_endpoint(req: ElementsToStateRequest):
    """Equatorial state vector at time t from classical elements."""
    r, v = elements_to_state(req.t, _elements(req.elements), obliquity=_obliquity(req.obliquity_deg))
    return {"state": StateVector(epoch=req.t, position=r, velocity=v).to_dict()}


@app.post("/propagate", tags=["Elements"])
async def propagate(req: PropagateRequest):
    """Two-body propagation by universal f and g."""
    result = propagate_state(_state(req.state), req.dt)
    return {"state": result.to_dict()}


@app.post("/ephemeris", response_model=EphemerisOutput, tags=["Elements"])
async def ephemeris(req: EphemerisRequest):
    """Elements evaluated on a time grid, optionally exported to .npz."""
    try:
        times = time_grid(req.start, req.stop, req.step)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    eph = ephemeris_from_elements(_elements(req.elements), times, _obliquity(req.obliquity_deg))

    path = None
    if req.export:
        name = req.name or f"ephemeris_{uuid4().hex[:8]}"
        path = export_npz(eph, os.path.join(state.data_dir, f"{name}.npz"))

    return EphemerisOutput(
        times=eph.times.tolist(),
        positions=eph.positions.tolist(),
        velocities=eph.velocities.tolist(),
        path=path,
    )


# =============================================================================
# Refinement Session Endpoints
# =============================================================================

@app.post("/sessions", response_model=SessionOutput, tags=["Sessions"])
async def create_session(req: DetermineRequest):
    """Run the Gauss estimate and open a refinement session."""
    triple = _triple(req.observations)
    solver = _solver(req)
    session = solver.start_session(triple, tuple(req.root_bracket), req.root_guess)

    session_id = str(uuid4())
    state.sessions[session_id] = {
        "session": session,
        "triple": triple,
        "solver": solver,
        "created_at": datetime.now(timezone.utc),
    }

    logger.info(f"Session {session_id} opened (root x={session.root:.6f})")
    return _session_output(session_id, state.sessions[session_id])


@app.get("/sessions/{session_id}", response_model=SessionOutput, tags=["Sessions"])
async def get_session(session_id: str):
    """Latest snapshot of a session."""
    return _session_output(session_id, state.get_session(session_id))


@app.post("/sessions/{session_id}/advance", response_model=SessionOutput, tags=["Sessions"])
async def advance_session(session_id: str):
    """
    One refinement iteration.

    Advancing a converged session returns the final snapshot unchanged.
    """
    entry = state.get_session(session_id)
    session: RefinementSession = entry["session"]

    cap = session.settings.refinement.max_iterations
    if not session.converged and session.iteration >= cap:
        raise RefinementNonConvergentError(
            f"Session {session_id} reached the {cap} iteration cap",
            iterations=session.iteration,
            residual=session.delta_history[-1] if session.delta_history else None
        )

    was_converged = session.converged
    session.advance()
    if session.converged and not was_converged:
        state.record(True)
        logger.info(f"Session {session_id} converged after {session.iteration} iterations")

    return _session_output(session_id, entry)


@app.delete("/sessions/{session_id}", tags=["Sessions"])
async def delete_session(session_id: str):
    """Drop a session."""
    state.get_session(session_id)
    del state.sessions[session_id]
    return {"status": "deleted", "session_id": session_id}


# =============================================================================
# Scenario Endpoints
# =============================================================================

@app.get("/scenarios", tags=["Scenarios"])
async def list_scenarios():
    """Names of the built-in observation sets."""
    return {"scenarios": sorted(SCENARIOS)}


@app.get("/scenarios/{name}", response_model=ScenarioOutput, tags=["Scenarios"])
async def scenario_detail(name: str):
    """Observations, root bracket and guess of a built-in scenario."""
    if name not in SCENARIOS:
        raise HTTPException(status_code=404, detail=f"Scenario {name} not found")
    return ScenarioOutput(**get_scenario(name).to_dict())


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
