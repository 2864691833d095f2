"""
End-to-end validation against analytic sphere solutions.

Tests:
1. Rigid sphere in a plane wave at low frequency (total pressure on a ring)
2. Rigid, soft and impedance spheres at ka = 1 (scattered potential)
3. Mesh convergence of the rigid case
4. Pulsating sphere: field and radiated power
5. Extinction of the total field inside a scatterer
6. Interior problem: rigid spherical cavity driven by a source at its centre
"""

import math

import numpy as np
import pytest
from scipy.special import spherical_jn

from helmholtz_bem.analysis.pipeline import configure, preprocess, run_sweep
from helmholtz_bem.validation.sphere import (
    plane_wave_sphere_scattered,
    pulsating_sphere_potential,
    pulsating_sphere_power,
)

from conftest import MASS_DENSITY, SOUND_SPEED, frequency_for_ka, ring_points

RING = ring_points(5.0, 12)


def _solve(mesh, user_input):
    solved = run_sweep(preprocess(configure(user_input, mesh)))
    assert not solved.failures
    return solved.results[0]


def _rel_err(a, b):
    return float(np.linalg.norm(a - b) / np.linalg.norm(b))


def test_rigid_sphere_low_frequency(sphere_l2, make_input):
    f = 10.0
    k = 2.0 * math.pi * f / SOUND_SPEED
    ring = ring_points(10.0, 12)
    res = _solve(sphere_l2, make_input(frequency=f, field_points=ring.tolist()))

    phi_ref = np.exp(1j * k * ring[:, 0]) + plane_wave_sphere_scattered(k, 1.0, ring)
    p_ref = 1j * 2.0 * math.pi * f * MASS_DENSITY * phi_ref
    p = res.pressure(MASS_DENSITY)
    assert np.max(np.abs(np.abs(p) - np.abs(p_ref)) / np.abs(p_ref)) < 1e-2
    assert res.radiated_power == pytest.approx(0.0, abs=1e-12)


@pytest.mark.parametrize("boundary", ["rigid", "soft", "impedance"])
def test_plane_wave_scattering_ka1(sphere_l3, make_input, boundary):
    f = frequency_for_ka(1.0)
    k = 1.0
    omega = 2.0 * math.pi * f
    beta = None
    if boundary == "rigid":
        bc = {"bc_type": "NormalVelocity", "value": [0.0, 0.0]}
    elif boundary == "soft":
        bc = {"bc_type": "Pressure", "value": [0.0, 0.0]}
    else:
        # locally reacting absorber, p = -rho c vn along the outward normal
        Z = -MASS_DENSITY * SOUND_SPEED
        beta = Z / (1j * omega * MASS_DENSITY)
        bc = {"bc_type": "Impedance", "value": [Z, 0.0]}

    res = _solve(sphere_l3, make_input(frequency=f, field_points=RING.tolist(), surface_bc=bc))
    ref = plane_wave_sphere_scattered(k, 1.0, RING, boundary=boundary, beta=beta)
    assert _rel_err(res.scattered, ref) < 0.05


def test_rigid_sphere_convergence(sphere_l1, sphere_l2, sphere_l3, make_input):
    f = frequency_for_ka(1.0)
    ui = make_input(frequency=f, field_points=RING.tolist())
    ref = plane_wave_sphere_scattered(1.0, 1.0, RING)
    errs = [_rel_err(_solve(mesh, ui).scattered, ref) for mesh in (sphere_l1, sphere_l2, sphere_l3)]
    assert errs[0] > errs[1] > errs[2]


def test_pulsating_sphere(sphere_l3, make_input):
    f = frequency_for_ka(1.0)
    U = 1e-3
    omega = 2.0 * math.pi * f
    res = _solve(sphere_l3, make_input(
        frequency=f,
        field_points=RING.tolist(),
        incident_wave={"origin": [1.0, 0.0, 0.0], "wave_type": "PlaneWave", "amplitude": [0.0, 0.0]},
        surface_bc={"bc_type": "NormalVelocity", "value": [U, 0.0]},
    ))
    ref = pulsating_sphere_potential(1.0, 1.0, U, RING)
    assert _rel_err(res.phi_fp, ref) < 0.05
    power_ref = pulsating_sphere_power(1.0, 1.0, U, omega, MASS_DENSITY)
    assert res.radiated_power == pytest.approx(power_ref, rel=0.05)
    assert res.radiated_power > 0.0


def test_extinction_inside_scatterer(sphere_l2, make_input):
    f = frequency_for_ka(1.0)
    inside = np.array([[0.0, 0.0, 0.0], [0.4, 0.0, 0.0], [0.0, -0.3, 0.3], [-0.5, 0.2, 0.0]])
    res = _solve(sphere_l2, make_input(frequency=f, field_points=inside.tolist()))
    assert np.max(np.abs(res.phi_fp)) < 0.1


def test_interior_cavity_with_point_source(sphere_l3, make_input):
    f = frequency_for_ka(1.0)
    k, a, A = 1.0, 1.0, 2.0
    pts = 0.5 * np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, -1.0], [0.6, 0.0, 0.8]])
    res = _solve(sphere_l3, make_input(
        frequency=f,
        problem_type="Interior",
        field_points=pts.tolist(),
        incident_wave={"origin": [0.0, 0.0, 0.0], "wave_type": "SphericalWave", "amplitude": [A, 0.0]},
    ))

    # phi = A (g(r) + C j0(kr)), C chosen so that d phi / dr = 0 at r = a
    r = np.linalg.norm(pts, axis=1)
    g = np.exp(1j * k * r) / (4 * np.pi * r)
    dg_a = np.exp(1j * k * a) * (1j * k * a - 1.0) / (4 * np.pi * a * a)
    C = dg_a / (k * spherical_jn(1, k * a))
    ref = A * (g + C * spherical_jn(0, k * r))
    assert _rel_err(res.phi_fp, ref) < 0.05
    # closed rigid cavity: no net power through the wall
    assert res.radiated_power == pytest.approx(0.0, abs=1e-12)
