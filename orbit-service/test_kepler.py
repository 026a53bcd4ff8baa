import math

import pytest

from config import KeplerSolverConfig, GAUSS_K
from errors import DegenerateGeometryError, NonConvergenceError
from elements import EllipticalElements, HyperbolicElements, state_at
from kepler import universal_series, solve_universal_fg, propagate_state
from models import StateVector
from vector import Vector3


def energy(state: StateVector, mu: float = 1.0) -> float:
    return state.velocity.dot(state.velocity) / 2 - mu / state.position.norm()


def test_series_leading_terms():
    cc, uu, ss = universal_series(1e-3, 0.5)
    assert cc == pytest.approx(1e-6 / 2, rel=1e-6)
    assert uu == pytest.approx(1e-9 / 6, rel=1e-6)
    assert ss == pytest.approx(1e-3 - 0.5 * uu)


def test_series_matches_closed_form_for_ellipse():
    # C(x) = (1 - cos(x sqrt(alpha))) / alpha for alpha > 0
    x, alpha = 1.3, 0.8
    cc, uu, _ = universal_series(x, alpha)
    s = x * math.sqrt(alpha)
    assert cc == pytest.approx((1 - math.cos(s)) / alpha, rel=1e-12)
    assert uu == pytest.approx((s - math.sin(s)) / alpha ** 1.5, rel=1e-12)


def test_series_converges_for_large_arguments():
    # Well past the point where a fixed number of terms is enough
    x, alpha = 6.0, 1.0
    cc, uu, _ = universal_series(x, alpha)
    assert cc == pytest.approx(1 - math.cos(x), abs=1e-13)
    assert uu == pytest.approx(x - math.sin(x), rel=1e-12)

    x, alpha = 20.0, -1.0
    cc, uu, _ = universal_series(x, alpha)
    assert cc == pytest.approx(math.cosh(x) - 1, rel=1e-12)
    assert uu == pytest.approx(math.sinh(x) - x, rel=1e-12)


def test_zero_step_is_identity():
    r = Vector3(1.0, 0.2, -0.1)
    v = Vector3(0.1, 0.9, 0.05)
    assert solve_universal_fg(r, v, 0.0) == (1.0, 0.0, 0.0, 1.0)


def test_zero_position_is_degenerate():
    with pytest.raises(DegenerateGeometryError):
        solve_universal_fg(Vector3.zero(), Vector3(0.0, 1.0, 0.0), 0.1)


def test_circular_orbit_quarter_turn():
    r = Vector3(1.0, 0.0, 0.0)
    v = Vector3(0.0, 1.0, 0.0)
    h = math.pi / 2

    f, g, fdot, gdot = solve_universal_fg(r, v, h)

    assert f == pytest.approx(math.cos(h), abs=1e-6)
    assert g == pytest.approx(math.sin(h), abs=1e-6)
    assert fdot == pytest.approx(-math.sin(h), abs=1e-6)
    assert gdot == pytest.approx(math.cos(h), abs=1e-6)


def test_lagrange_determinant_is_one():
    r = Vector3(1.1, 0.3, 0.2)
    v = Vector3(-0.2, 0.95, 0.1)
    f, g, fdot, gdot = solve_universal_fg(r, v, 0.4)
    assert f * gdot - fdot * g == pytest.approx(1.0, abs=1e-6)


@pytest.mark.parametrize("velocity", [
    Vector3(0.0, 1.2, 0.1),     # ellipse
    Vector3(0.0, 1.414, 0.0),   # near parabolic
    Vector3(0.3, 1.6, 0.2),     # hyperbola
])
def test_forward_then_back_returns_to_start(velocity):
    start = StateVector(epoch=6000.0, position=Vector3(1.0, 0.1, -0.05), velocity=velocity)

    out = propagate_state(start, 12.0)
    back = propagate_state(out, -12.0)

    assert back.epoch == pytest.approx(start.epoch)
    for a, b in zip(back.position, start.position):
        assert a == pytest.approx(b, abs=1e-6)
    for a, b in zip(back.velocity, start.velocity):
        assert a == pytest.approx(b, abs=1e-6)


def test_propagation_conserves_energy_and_momentum():
    start = StateVector(epoch=0.0, position=Vector3(1.2, 0.0, 0.1), velocity=Vector3(0.0, 0.8, 0.2))
    out = propagate_state(start, 30.0)

    assert energy(out) == pytest.approx(energy(start), abs=1e-7)
    h0 = start.position.cross(start.velocity)
    h1 = out.position.cross(out.velocity)
    for a, b in zip(h0, h1):
        assert a == pytest.approx(b, abs=1e-7)


def test_propagation_uses_scaled_time():
    start = StateVector(epoch=0.0, position=Vector3(1.0, 0.0, 0.0), velocity=Vector3(0.0, 1.0, 0.0))
    dt = 10.0
    out = propagate_state(start, dt)
    angle = GAUSS_K * dt
    assert out.position.x == pytest.approx(math.cos(angle), abs=1e-7)
    assert out.position.y == pytest.approx(math.sin(angle), abs=1e-7)


def test_iteration_cap_raises():
    r = Vector3(1.0, 0.0, 0.0)
    v = Vector3(0.0, 1.2, 0.0)
    with pytest.raises(NonConvergenceError) as excinfo:
        solve_universal_fg(r, v, 0.5, config=KeplerSolverConfig(tolerance=1e-30, max_iterations=1))
    assert excinfo.value.iterations == 1
    assert excinfo.value.kind == "non_convergence"


# =============================================================================
# Long Arcs
# =============================================================================

MAIN_BELT = EllipticalElements(
    tp=6000.0, e=0.1, i=math.radians(10.0), node=math.radians(10.0),
    omega=math.radians(30.0), semi_major_axis=2.5,
)

OUTBOUND = HyperbolicElements(
    tp=6000.0, e=1.6, i=math.radians(30.0), node=math.radians(100.0),
    omega=math.radians(200.0), semi_major_axis=-1.5,
)


def assert_states_close(a: StateVector, b: StateVector, rel: float, abs_tol: float):
    for x, y in zip(a.position, b.position):
        assert x == pytest.approx(y, rel=rel, abs=abs_tol)
    for x, y in zip(a.velocity, b.velocity):
        assert x == pytest.approx(y, rel=rel, abs=abs_tol)


def test_full_period_returns_to_start():
    start = state_at(MAIN_BELT.tp + 37.0, MAIN_BELT)
    out = propagate_state(start, MAIN_BELT.period())

    assert out.epoch == pytest.approx(start.epoch + MAIN_BELT.period())
    assert_states_close(out, start, rel=0.0, abs_tol=1e-9)


@pytest.mark.parametrize("periods", [0.45, 3.7, 10.3])
def test_elliptical_long_arc_matches_elements(periods):
    dt = periods * MAIN_BELT.period()
    start = state_at(MAIN_BELT.tp + 20.0, MAIN_BELT)

    out = propagate_state(start, dt)
    expected = state_at(start.epoch + dt, MAIN_BELT)

    assert_states_close(out, expected, rel=0.0, abs_tol=1e-6)


@pytest.mark.parametrize("dt", [500.0, 3000.0, 1e5])
def test_hyperbolic_long_arc_matches_elements(dt):
    start = state_at(OUTBOUND.tp + 100.0, OUTBOUND)

    out = propagate_state(start, dt)
    expected = state_at(start.epoch + dt, OUTBOUND)

    assert_states_close(out, expected, rel=1e-7, abs_tol=1e-6)
    assert energy(out) == pytest.approx(energy(start), rel=1e-9)
