"""
GAUSS-ORBIT Built-in Observation Scenarios

Observation sets for demonstration and regression testing.

Usage:
    python scenarios.py [scenario_name]

Scenarios:
    - pallas: minor planet 2 Pallas, three nights over 20 days
    - rebek_jewel: comet Rebek-Jewel, three nights over 8 days
    - synthetic_asteroid: generated from known main-belt elements
"""

import sys
import math
from dataclasses import dataclass, field
from typing import List, Tuple, Dict, Any, Optional

from config import ABERRATION, OBLIQUITY_J2000, configure_logging
from elements import KeplerElements, EllipticalElements
from ephemeris import sun_position, apparent_direction
from models import Observation, ObservationTriple
from solver import OrbitSolver
from transform import ra_dec_from_vector, radians_to_hours, format_ra_dec
from vector import Vector3


@dataclass
class Scenario:
    """A named observation triple with the root bracket and guess to use."""
    name: str
    description: str
    triple: ObservationTriple
    root_bracket: Tuple[float, float]
    root_guess: float
    eccentricity_tolerance: float = 1e-5
    expected: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "observations": [
                {
                    "time": o.time,
                    "ra_hours": radians_to_hours(o.ra),
                    "dec_deg": math.degrees(o.dec),
                    "observer_position": o.observer_position.to_list(),
                }
                for o in self.triple
            ],
            "root_bracket": list(self.root_bracket),
            "root_guess": self.root_guess,
            "eccentricity_tolerance": self.eccentricity_tolerance,
            "expected": self.expected,
        }


def triple_from_table(
    times: List[float],
    ra_hours: List[float],
    dec_degrees: List[float],
    observer_positions: List[Tuple[float, float, float]]
) -> ObservationTriple:
    """Triple from tabulated RA (hours), Dec (degrees) and observer vectors."""
    return ObservationTriple.from_list([
        Observation.from_hours_degrees(t, a, d, Vector3(*r))
        for t, a, d, r in zip(times, ra_hours, dec_degrees, observer_positions)
    ])


# =============================================================================
# Tabulated Scenarios
# =============================================================================

# Geocentric Sun positions (equatorial, AU) shared by both tabulated sets
_SUN_6370 = (-0.7735829, -0.5704494, -0.2473703)
_SUN_6374 = (-0.7275905, -0.6179560, -0.2679668)
_SUN_6378 = (-0.6780640, -0.6624821, -0.2872733)
_SUN_6390 = (-0.5091536, -0.7766740, -0.3367798)


def pallas() -> Scenario:
    return Scenario(
        name="pallas",
        description="Minor planet 2 Pallas, truncated Julian dates 6370-6390",
        triple=triple_from_table(
            times=[6370.57744, 6378.56789, 6390.65113],
            ra_hours=[6.38029, 6.40793, 6.38762],
            dec_degrees=[-24.25104, -26.48060, -29.48400],
            observer_positions=[_SUN_6370, _SUN_6378, _SUN_6390],
        ),
        root_bracket=(2.0, 3.0),
        root_guess=2.3,
        eccentricity_tolerance=1e-5,
        expected={"orbit_type": "elliptical", "a": 2.77, "e": 0.24},
    )


def rebek_jewel() -> Scenario:
    return Scenario(
        name="rebek_jewel",
        description="Comet Rebek-Jewel, truncated Julian dates 6370-6378",
        triple=triple_from_table(
            times=[6370.57744, 6374.57284, 6378.56789],
            ra_hours=[5.41652, 5.12686, 4.75436],
            dec_degrees=[21.85272, 22.14104, 22.32127],
            observer_positions=[_SUN_6370, _SUN_6374, _SUN_6378],
        ),
        root_bracket=(1.0, 3.0),
        root_guess=1.8,
        eccentricity_tolerance=1e-7,
    )


# =============================================================================
# Synthetic Observations
# =============================================================================

def synthesize_observations(
    elements: KeplerElements,
    times: List[float],
    observer_positions: Optional[List[Vector3]] = None,
    obliquity: float = OBLIQUITY_J2000,
    aberration: float = ABERRATION
) -> ObservationTriple:
    """
    Light-time corrected observations of a body with known elements.

    Args:
        elements: Heliocentric ecliptic elements of the body
        times: Three observation times (truncated Julian date)
        observer_positions: Geocentric Sun vectors; computed from the
            low-precision Sun model when omitted
        obliquity: Ecliptic obliquity (radians)
        aberration: Light time per AU (days)

    Returns:
        ObservationTriple whose geometry is exactly two-body consistent
    """
    if observer_positions is None:
        observer_positions = [sun_position(t, obliquity) for t in times]

    observations = []
    for t, obs_pos in zip(times, observer_positions):
        los, _ = apparent_direction(elements, t, obs_pos, obliquity, aberration)
        ra, dec = ra_dec_from_vector(los)
        observations.append(Observation(time=t, ra=ra, dec=dec, observer_position=obs_pos))

    return ObservationTriple.from_list(observations)


# Main-belt asteroid near opposition at the 1985 November epoch
SYNTHETIC_ELEMENTS = EllipticalElements(
    tp=6380.5,
    e=0.1,
    i=math.radians(10.0),
    node=math.radians(10.0),
    omega=math.radians(30.0),
    semi_major_axis=2.5,
)

SYNTHETIC_TIMES = [6370.5, 6380.5, 6390.5]


def synthetic_asteroid() -> Scenario:
    triple = synthesize_observations(SYNTHETIC_ELEMENTS, SYNTHETIC_TIMES)
    r_peri = SYNTHETIC_ELEMENTS.semi_major_axis * (1.0 - SYNTHETIC_ELEMENTS.e)
    return Scenario(
        name="synthetic_asteroid",
        description="Observations generated from known elements (a=2.5, e=0.1, i=10°)",
        triple=triple,
        root_bracket=(r_peri - 0.5, r_peri + 0.5),
        root_guess=r_peri,
        expected={
            "orbit_type": "elliptical",
            "a": SYNTHETIC_ELEMENTS.semi_major_axis,
            "e": SYNTHETIC_ELEMENTS.e,
        },
    )


SCENARIOS = {
    "pallas": pallas,
    "rebek_jewel": rebek_jewel,
    "synthetic_asteroid": synthetic_asteroid,
}


def get_scenario(name: str) -> Scenario:
    """Look up a built-in scenario; KeyError if unknown."""
    return SCENARIOS[name]()


# =============================================================================
# Command Line
# =============================================================================

def main():
    configure_logging()

    scenario_name = sys.argv[1] if len(sys.argv) > 1 else "pallas"
    if scenario_name not in SCENARIOS:
        print(f"Unknown scenario: {scenario_name}. Choose from {', '.join(SCENARIOS)}")
        sys.exit(1)

    scenario = get_scenario(scenario_name)

    print(f"\n{'='*60}")
    print(f"SCENARIO: {scenario.name.upper()}")
    print(f"{'='*60}")
    print(scenario.description)
    for o in scenario.triple:
        print(f"  t={o.time:12.5f}  {format_ra_dec(o.ra, o.dec)}")

    solver = OrbitSolver()
    solver.settings.eccentricity_tolerance = scenario.eccentricity_tolerance
    solution = solver.solve(scenario.triple, scenario.root_bracket, scenario.root_guess)

    print(f"{'-'*60}")
    if not solution.success:
        print(f"FAILED ({solution.error_kind}): {solution.error_message}")
        sys.exit(1)

    el = solution.elements
    state = solution.state
    print(f"Epoch:      {state.epoch:.6f}")
    print(f"Position:   {state.position.to_list()}")
    print(f"Velocity:   {state.velocity.to_list()}")
    print(f"Type:       {el.orbit_type.value}")
    print(f"a/q:        {el.aq:.6f} AU")
    print(f"e:          {el.e:.6f}")
    print(f"i:          {math.degrees(el.i):.4f} deg")
    print(f"node:       {math.degrees(el.node):.4f} deg")
    print(f"omega:      {math.degrees(el.omega):.4f} deg")
    print(f"tp:         {el.tp:.5f}")
    print(f"Iterations: {solution.iterations}  RMS residual: {solution.rms_residual_arcsec:.3f} arcsec")
    print(f"{'='*60}\n")


if __name__ == "__main__":
    main()
