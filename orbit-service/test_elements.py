import math

import pytest

from config import AnomalySolverConfig
from elements import (
    OrbitType,
    KeplerElements,
    EllipticalElements,
    ParabolicElements,
    HyperbolicElements,
    classify_orbit,
    make_elements,
    state_to_elements,
    elements_to_state,
    state_at,
    solve_kepler_equation,
    solve_parabolic_anomaly,
    solve_hyperbolic_anomaly,
)
from errors import DegenerateGeometryError, AnomalySolveNonConvergentError
from models import StateVector
from vector import Vector3

EPS = 1e-5


def assert_elements_close(a: KeplerElements, b: KeplerElements, tol: float = 1e-5):
    assert type(a) is type(b)
    assert a.aq == pytest.approx(b.aq, rel=tol)
    assert a.e == pytest.approx(b.e, abs=tol)
    assert a.i == pytest.approx(b.i, abs=tol)
    assert a.node == pytest.approx(b.node, abs=tol)
    assert a.omega == pytest.approx(b.omega, abs=tol)
    assert a.tp == pytest.approx(b.tp, abs=tol)


# =============================================================================
# Classification
# =============================================================================

def test_classify_boundaries():
    assert classify_orbit(1.0, EPS) is OrbitType.PARABOLIC
    assert classify_orbit(1.0 - 0.5 * EPS, EPS) is OrbitType.PARABOLIC
    assert classify_orbit(1.0 + 0.5 * EPS, EPS) is OrbitType.PARABOLIC
    assert classify_orbit(1.0 - 2 * EPS, EPS) is OrbitType.ELLIPTICAL
    assert classify_orbit(1.0 + 2 * EPS, EPS) is OrbitType.HYPERBOLIC
    assert classify_orbit(0.0, EPS) is OrbitType.ELLIPTICAL


def test_variants_expose_size_parameter():
    ell = make_elements(OrbitType.ELLIPTICAL, 2.5, 0.0, 0.1, 0.2, 0.3, 0.4)
    par = make_elements("parabolic", 0.8, 0.0, 1.0, 0.2, 0.3, 0.4)
    hyp = make_elements(OrbitType.HYPERBOLIC, -1.5, 0.0, 1.5, 0.2, 0.3, 0.4)

    assert isinstance(ell, EllipticalElements) and ell.aq == 2.5
    assert isinstance(par, ParabolicElements) and par.aq == 0.8
    assert isinstance(hyp, HyperbolicElements) and hyp.aq == -1.5
    assert hyp.orbit_type is OrbitType.HYPERBOLIC


def test_dict_round_trip():
    el = EllipticalElements(
        tp=6100.0, e=0.2, i=math.radians(12.0), node=math.radians(80.0),
        omega=math.radians(150.0), semi_major_axis=3.1,
    )
    data = el.to_dict()
    assert data["orbit_type"] == "elliptical"
    assert data["i_deg"] == pytest.approx(12.0)
    assert_elements_close(KeplerElements.from_dict(data), el, tol=1e-12)


# =============================================================================
# Round Trips
# =============================================================================

ROUND_TRIP_CASES = [
    EllipticalElements(
        tp=6000.0, e=0.3, i=math.radians(20.0), node=math.radians(40.0),
        omega=math.radians(60.0), semi_major_axis=2.5,
    ),
    EllipticalElements(
        tp=6000.0, e=0.65, i=math.radians(140.0), node=math.radians(300.0),
        omega=math.radians(250.0), semi_major_axis=4.0,
    ),
    HyperbolicElements(
        tp=6000.0, e=1.6, i=math.radians(30.0), node=math.radians(100.0),
        omega=math.radians(200.0), semi_major_axis=-1.5,
    ),
    ParabolicElements(
        tp=6000.0, e=1.0, i=math.radians(50.0), node=math.radians(250.0),
        omega=math.radians(120.0), perifocal_distance=0.8,
    ),
]


@pytest.mark.parametrize("elements", ROUND_TRIP_CASES, ids=lambda el: el.orbit_type.value)
@pytest.mark.parametrize("dt", [-40.0, 50.0])
def test_elements_state_elements_round_trip(elements, dt):
    t = elements.tp + dt
    r, v = elements_to_state(t, elements)
    recovered = state_to_elements(StateVector(epoch=t, position=r, velocity=v))
    assert_elements_close(recovered, elements)


def test_round_trip_without_obliquity():
    el = ROUND_TRIP_CASES[0]
    t = el.tp + 10.0
    state = state_at(t, el, obliquity=0.0)
    assert_elements_close(state_to_elements(state, obliquity=0.0), el)


def test_obliquity_rotates_frame():
    el = ROUND_TRIP_CASES[0]
    r_ecl, _ = elements_to_state(el.tp, el, obliquity=0.0)
    r_eq, _ = elements_to_state(el.tp, el)
    assert r_eq.norm() == pytest.approx(r_ecl.norm())
    assert r_eq.x == pytest.approx(r_ecl.x)
    assert r_eq.z != pytest.approx(r_ecl.z)


def test_perihelion_distance_at_tp():
    el = ROUND_TRIP_CASES[1]
    r, _ = elements_to_state(el.tp, el)
    assert r.norm() == pytest.approx(el.semi_major_axis * (1 - el.e), rel=1e-9)


# =============================================================================
# Degenerate Orientations
# =============================================================================

def test_equatorial_orbit_measures_from_x_axis():
    state = StateVector(epoch=0.0, position=Vector3(0.0, 1.0, 0.0), velocity=Vector3(-1.1, 0.0, 0.0))
    el = state_to_elements(state, obliquity=0.0)

    assert el.i == pytest.approx(0.0)
    assert el.node == 0.0
    assert el.omega == pytest.approx(math.pi / 2)
    assert el.tp == pytest.approx(0.0, abs=1e-9)

    r, _ = elements_to_state(0.0, el, obliquity=0.0)
    assert r.x == pytest.approx(0.0, abs=1e-9)
    assert r.y == pytest.approx(1.0)


def test_circular_inclined_orbit():
    c30, s30 = math.cos(math.radians(30.0)), math.sin(math.radians(30.0))
    state = StateVector(epoch=100.0, position=Vector3(1.0, 0.0, 0.0), velocity=Vector3(0.0, c30, s30))
    el = state_to_elements(state, obliquity=0.0)

    assert isinstance(el, EllipticalElements)
    assert el.e == pytest.approx(0.0, abs=1e-12)
    assert el.omega == 0.0
    assert el.i == pytest.approx(math.radians(30.0))

    r, v = elements_to_state(150.0, el, obliquity=0.0)
    back = state_to_elements(StateVector(epoch=150.0, position=r, velocity=v), obliquity=0.0)
    r0, _ = elements_to_state(100.0, back, obliquity=0.0)
    assert r0.x == pytest.approx(1.0, abs=1e-9)
    assert r0.y == pytest.approx(0.0, abs=1e-9)
    assert r0.z == pytest.approx(0.0, abs=1e-9)


def test_zero_angular_momentum_is_degenerate():
    state = StateVector(epoch=0.0, position=Vector3(1.0, 0.0, 0.0), velocity=Vector3(0.5, 0.0, 0.0))
    with pytest.raises(DegenerateGeometryError):
        state_to_elements(state)


def test_zero_position_is_degenerate():
    state = StateVector(epoch=0.0, position=Vector3.zero(), velocity=Vector3(0.0, 1.0, 0.0))
    with pytest.raises(DegenerateGeometryError):
        state_to_elements(state)


# =============================================================================
# Anomaly Solvers
# =============================================================================

def test_kepler_equation_solution():
    ea = solve_kepler_equation(0.3, 1.0)
    assert ea - 0.3 * math.sin(ea) == pytest.approx(1.0, abs=1e-10)


def test_parabolic_anomaly_solution():
    d = solve_parabolic_anomaly(0.8, 0.5)
    assert 0.8 * d + d ** 3 / 6 == pytest.approx(0.5, abs=1e-10)


def test_hyperbolic_anomaly_solution():
    ha = solve_hyperbolic_anomaly(1.6, 2.0)
    assert 1.6 * math.sinh(ha) - ha == pytest.approx(2.0, abs=1e-10)


def test_anomaly_cap_raises():
    config = AnomalySolverConfig(tolerance=1e-30, max_iterations=1)
    with pytest.raises(AnomalySolveNonConvergentError) as excinfo:
        solve_kepler_equation(0.5, 1.0, config)
    assert excinfo.value.kind == "anomaly_solve_non_convergent"


def test_anomaly_solvers_with_zero_cap_raise():
    config = AnomalySolverConfig(max_iterations=0)
    for solve, args in [
        (solve_kepler_equation, (0.5, 1.0)),
        (solve_parabolic_anomaly, (0.8, 0.5)),
        (solve_hyperbolic_anomaly, (1.6, 2.0)),
    ]:
        with pytest.raises(AnomalySolveNonConvergentError) as excinfo:
            solve(*args, config)
        assert excinfo.value.iterations == 0


@pytest.mark.parametrize("mean_anomaly", [-936.4, 105.0, 936.4, 1e6])
def test_hyperbolic_anomaly_large_mean_anomaly(mean_anomaly):
    ha = solve_hyperbolic_anomaly(1.6, mean_anomaly)
    assert 1.6 * math.sinh(ha) - ha == pytest.approx(mean_anomaly, rel=1e-12)


def test_hyperbolic_anomaly_overflow_is_non_convergence():
    with pytest.raises(AnomalySolveNonConvergentError):
        solve_hyperbolic_anomaly(1.6, 1e308)


def test_hyperbolic_state_far_from_perihelion():
    el = ROUND_TRIP_CASES[2]
    t = el.tp + 1e5
    r, v = elements_to_state(t, el, obliquity=0.0)

    mm = el.mean_motion() * (t - el.tp)
    ha = solve_hyperbolic_anomaly(el.e, mm)
    a = el.semi_major_axis

    assert r.norm() == pytest.approx(a * (1 - el.e * math.cosh(ha)), rel=1e-12)
    # Vis-viva with mu = 1
    assert v.dot(v) == pytest.approx(2 / r.norm() - 1 / a, rel=1e-9)


# =============================================================================
# Variant Consistency
# =============================================================================

@pytest.mark.parametrize("orbit_type, aq, e", [
    (OrbitType.ELLIPTICAL, 2.0, 1.5),
    (OrbitType.ELLIPTICAL, -2.0, 0.3),
    (OrbitType.ELLIPTICAL, 2.0, -0.1),
    (OrbitType.HYPERBOLIC, 1.5, 1.6),
    (OrbitType.HYPERBOLIC, -1.5, 0.6),
    (OrbitType.PARABOLIC, 0.0, 1.0),
    (OrbitType.PARABOLIC, -0.8, 1.0),
])
def test_inconsistent_elements_are_rejected(orbit_type, aq, e):
    with pytest.raises(DegenerateGeometryError):
        make_elements(orbit_type, aq, 0.0, e, 0.2, 0.3, 0.4)


def test_from_dict_checks_orbit_type_against_eccentricity():
    data = ROUND_TRIP_CASES[0].to_dict()
    data["e"] = 1.5
    with pytest.raises(DegenerateGeometryError):
        KeplerElements.from_dict(data)


@pytest.mark.parametrize("elements", ROUND_TRIP_CASES[:3], ids=lambda el: el.orbit_type.value)
def test_round_trip_with_non_unit_mu(elements):
    mu = 2.5
    t = elements.tp + 30.0
    r, v = elements_to_state(t, elements, mu=mu)
    recovered = state_to_elements(StateVector(epoch=t, position=r, velocity=v), mu=mu)
    assert_elements_close(recovered, elements)
