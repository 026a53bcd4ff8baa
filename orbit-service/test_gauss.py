import math

import pytest

from config import SolverSettings, RefinementConfig
from elements import state_to_elements, elements_to_state, EllipticalElements
from errors import DegenerateGeometryError, RootNotFoundError, RefinementNonConvergentError
from gauss import (
    build_geometry,
    octic_value,
    solve_octic,
    tabulate_octic,
    scan_octic_roots,
    initial_lagrange,
    lagrange_multipliers,
    start_session,
    determine_orbit,
)
from models import Observation, ObservationTriple
from scenarios import pallas, synthetic_asteroid, SYNTHETIC_ELEMENTS
from vector import Vector3


@pytest.fixture
def pallas_scenario():
    return pallas()


# =============================================================================
# Geometry and Octic
# =============================================================================

def test_geometry_coefficients_are_consistent(pallas_scenario):
    geo = build_geometry(pallas_scenario.triple)

    assert geo.tau[1] == pytest.approx(geo.tau[2] - geo.tau[0])
    assert geo.c == pytest.approx(-geo.bb ** 2)
    assert geo.a == pytest.approx(-(geo.aa ** 2 + geo.aa * geo.ee + geo.ff))


def test_coplanar_lines_of_sight_are_degenerate():
    sun = Vector3(-0.7, -0.6, -0.25)
    triple = ObservationTriple.from_list([
        Observation.from_hours_degrees(t, 6.0, -20.0, sun) for t in (1.0, 2.0, 3.0)
    ])
    with pytest.raises(DegenerateGeometryError):
        build_geometry(triple)


def test_unordered_times_are_degenerate():
    sun = Vector3(-0.7, -0.6, -0.25)
    with pytest.raises(DegenerateGeometryError):
        ObservationTriple.from_list([
            Observation.from_hours_degrees(t, 6.0 + t / 10, -20.0 - t, sun) for t in (1.0, 3.0, 2.0)
        ])


def test_octic_root_for_pallas(pallas_scenario):
    geo = build_geometry(pallas_scenario.triple)
    x = solve_octic(geo, (2.0, 3.0), 2.3)

    assert 2.0 <= x <= 3.0
    assert octic_value(geo, x) == pytest.approx(0.0, abs=1e-6)


def test_guess_outside_bracket(pallas_scenario):
    geo = build_geometry(pallas_scenario.triple)
    with pytest.raises(RootNotFoundError):
        solve_octic(geo, (2.0, 3.0), 3.5)


def test_tabulation_rows(pallas_scenario):
    geo = build_geometry(pallas_scenario.triple)
    rows = tabulate_octic(geo, 2.0, 3.0)

    assert len(rows) == 11
    assert rows[0].x == pytest.approx(2.0)
    assert rows[-1].x == pytest.approx(3.0)
    assert rows[5].p == pytest.approx(geo.aa + geo.bb / 2.5 ** 3)


def test_sign_change_scan_brackets_the_root(pallas_scenario):
    geo = build_geometry(pallas_scenario.triple)
    root = solve_octic(geo, (2.0, 3.0), 2.3)
    intervals = scan_octic_roots(geo, 2.0, 3.0)

    assert any(lo <= root <= hi for lo, hi in intervals)


def test_first_guess_lagrange_multipliers():
    tau = (-0.15, 0.35, 0.2)
    f, g = initial_lagrange(tau, 2.0)
    c, d = lagrange_multipliers(f, g)

    assert c[1] == -1.0
    assert d[1] == 0.0
    assert f[0] == pytest.approx(1 - tau[0] ** 2 / 16)
    assert g[2] == pytest.approx(tau[2] * (1 - tau[2] ** 2 / 48))
    # C and D invert the f/g system
    fg = f[0] * g[2] - f[2] * g[0]
    assert c[0] * fg == pytest.approx(g[2])


# =============================================================================
# Refinement
# =============================================================================

def test_pallas_golden(pallas_scenario):
    state = determine_orbit(
        pallas_scenario.triple, pallas_scenario.root_bracket, pallas_scenario.root_guess
    )
    elements = state_to_elements(state, eccentricity_tolerance=pallas_scenario.eccentricity_tolerance)

    assert isinstance(elements, EllipticalElements)
    assert elements.semi_major_axis == pytest.approx(2.77, abs=0.05)
    assert elements.e == pytest.approx(0.24, abs=0.02)
    # Light-time corrected epoch sits just before the middle observation
    assert state.epoch < pallas_scenario.triple.middle.time


def test_range_changes_settle(pallas_scenario):
    session = start_session(
        pallas_scenario.triple, pallas_scenario.root_bracket, pallas_scenario.root_guess
    )
    final = session.run()

    assert final.converged
    history = session.delta_history
    assert len(history) == session.iteration
    for earlier, later in zip(history[2:], history[3:]):
        assert later <= earlier * (1 + 1e-9) + 1e-12
    assert history[-1] <= session.settings.refinement.tolerance


def test_advance_after_convergence_is_idempotent(pallas_scenario):
    session = start_session(
        pallas_scenario.triple, pallas_scenario.root_bracket, pallas_scenario.root_guess
    )
    final = session.run()
    iterations = session.iteration

    again = session.advance()
    assert again is final
    assert session.iteration == iterations


def test_snapshot_reports_iteration_state(pallas_scenario):
    session = start_session(
        pallas_scenario.triple, pallas_scenario.root_bracket, pallas_scenario.root_guess
    )
    first = session.advance()

    assert first.iteration == 1
    assert not first.converged
    assert first.delta_norm == pytest.approx(math.sqrt(sum(p * p for p in first.ranges)))
    assert first.epoch == first.times[1]
    for i in range(3):
        assert first.times[i] < pallas_scenario.triple.times[i]


def test_refinement_cap(pallas_scenario):
    settings = SolverSettings(refinement=RefinementConfig(max_iterations=2))
    session = start_session(
        pallas_scenario.triple, pallas_scenario.root_bracket, pallas_scenario.root_guess,
        settings=settings
    )
    with pytest.raises(RefinementNonConvergentError) as excinfo:
        session.run()
    assert excinfo.value.iterations == 2


def test_recovers_synthetic_orbit():
    scenario = synthetic_asteroid()
    state = determine_orbit(scenario.triple, scenario.root_bracket, scenario.root_guess)

    truth_r, truth_v = elements_to_state(state.epoch, SYNTHETIC_ELEMENTS)
    for a, b in zip(state.position, truth_r):
        assert a == pytest.approx(b, rel=1e-4, abs=1e-6)
    for a, b in zip(state.velocity, truth_v):
        assert a == pytest.approx(b, rel=1e-4, abs=1e-6)

    elements = state_to_elements(state)
    assert elements.semi_major_axis == pytest.approx(SYNTHETIC_ELEMENTS.semi_major_axis, rel=1e-4)
    assert elements.e == pytest.approx(SYNTHETIC_ELEMENTS.e, rel=1e-4)
    assert elements.i == pytest.approx(SYNTHETIC_ELEMENTS.i, rel=1e-4)
