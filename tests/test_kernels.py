"""
Kernel evaluator: point kernels, closed-form static parts and panel integrals.

Tests:
1. green / green_normal_derivative values, finite-difference check, r = 0 rejection
2. Closed-form single layer (Wilton) and solid angle (Van Oosterom & Strackee)
3. Panel integrals: self term, continuity/jump across the panel, far field
4. NumericalToleranceWarning and configuration validation
"""

import math
import warnings

import numpy as np
import numpy.testing as npt
import pytest

from helmholtz_bem.bem.kernels import (
    green,
    green_normal_derivative,
    panel_integrals,
    single_layer_static,
    solid_angle,
)
from helmholtz_bem.bem.quadrature import BEMConfig, dunavant_rule, point_triangle_distance
from helmholtz_bem.errors import ConfigurationError, NumericalToleranceWarning

L = 1.0
EQUILATERAL = np.array([
    [0.0, 0.0, 0.0],
    [L, 0.0, 0.0],
    [0.5 * L, 0.5 * math.sqrt(3.0) * L, 0.0],
])
CENTROID = EQUILATERAL.mean(axis=0)
NORMAL = np.array([0.0, 0.0, 1.0])
AREA = math.sqrt(3.0) / 4.0 * L**2


def _centroid_rule(f, tri, levels=7):
    """Reference integral: one-point rule on 4**levels midpoint sub-triangles."""
    tris = np.asarray(tri, dtype=float)[None]
    for _ in range(levels):
        v0, v1, v2 = tris[:, 0], tris[:, 1], tris[:, 2]
        m01, m12, m20 = 0.5 * (v0 + v1), 0.5 * (v1 + v2), 0.5 * (v2 + v0)
        tris = np.concatenate([
            np.stack([v0, m01, m20], axis=1),
            np.stack([m01, v1, m12], axis=1),
            np.stack([m20, m12, v2], axis=1),
            np.stack([m12, m20, m01], axis=1),
        ])
    area = 0.5 * np.linalg.norm(np.cross(tri[1] - tri[0], tri[2] - tri[0]))
    return np.sum(f(tris.mean(axis=1))) * area / tris.shape[0]


# ---------------------------------------------------------------------------
# Point kernels
# ---------------------------------------------------------------------------
class TestPointKernels:
    def test_green_value(self):
        k, r = 2.0, 0.7
        npt.assert_allclose(green(k, r), np.exp(1j * k * r) / (4 * np.pi * r), rtol=1e-14)

    def test_green_vectorised(self):
        r = np.array([0.5, 1.0, 2.0])
        assert green(1.0, r).shape == (3,)

    def test_green_zero_distance(self):
        with pytest.raises(ConfigurationError):
            green(1.0, 0.0)

    def test_normal_derivative_finite_difference(self):
        k = 3.0
        x = np.array([0.3, -0.2, 0.9])
        y = np.array([0.1, 0.4, -0.1])
        n = np.array([1.0, 2.0, 2.0]) / 3.0
        h = 1e-6
        fd = (green(k, np.linalg.norm(x - (y + h * n))) - green(k, np.linalg.norm(x - (y - h * n)))) / (2 * h)
        npt.assert_allclose(green_normal_derivative(k, x - y, n), fd, rtol=1e-7)

    def test_normal_derivative_zero_distance(self):
        with pytest.raises(ConfigurationError):
            green_normal_derivative(1.0, np.zeros(3), NORMAL)


# ---------------------------------------------------------------------------
# Static closed forms
# ---------------------------------------------------------------------------
class TestStaticParts:
    def test_single_layer_equilateral_centroid(self):
        expected = math.sqrt(3.0) * L * math.log(2.0 + math.sqrt(3.0)) / (4 * np.pi)
        npt.assert_allclose(single_layer_static(CENTROID, EQUILATERAL, NORMAL), expected, rtol=1e-12)

    def test_single_layer_far_point(self):
        x = CENTROID + np.array([30.0, -40.0, 50.0])
        r = np.linalg.norm(x - CENTROID)
        npt.assert_allclose(single_layer_static(x, EQUILATERAL, NORMAL), AREA / (4 * np.pi * r), rtol=1e-4)

    def test_single_layer_continuous_across_panel(self):
        on = single_layer_static(CENTROID, EQUILATERAL, NORMAL)
        above = single_layer_static(CENTROID + 1e-9 * NORMAL, EQUILATERAL, NORMAL)
        below = single_layer_static(CENTROID - 1e-9 * NORMAL, EQUILATERAL, NORMAL)
        npt.assert_allclose(above, on, rtol=1e-7)
        npt.assert_allclose(below, on, rtol=1e-7)

    def test_single_layer_matches_fine_quadrature(self):
        x = np.array([2.0, 1.5, 0.8])
        ref = _centroid_rule(lambda y: 1.0 / (4 * np.pi * np.linalg.norm(x - y, axis=1)), EQUILATERAL)
        npt.assert_allclose(single_layer_static(x, EQUILATERAL, NORMAL), ref, rtol=1e-5)

    def test_solid_angle_half_space_limit(self):
        npt.assert_allclose(solid_angle(CENTROID + 1e-10 * NORMAL, EQUILATERAL), -2 * np.pi, rtol=1e-6)
        npt.assert_allclose(solid_angle(CENTROID - 1e-10 * NORMAL, EQUILATERAL), 2 * np.pi, rtol=1e-6)

    def test_solid_angle_closed_surface(self, sphere_l2):
        panels = sphere_l2.panel_vertices()
        inside = sum(solid_angle(np.array([0.1, -0.2, 0.05]), p) for p in panels)
        outside = sum(solid_angle(np.array([3.0, 0.0, 0.0]), p) for p in panels)
        npt.assert_allclose(inside, 4 * np.pi, rtol=1e-10)
        assert abs(outside) < 1e-10


# ---------------------------------------------------------------------------
# Panel integrals
# ---------------------------------------------------------------------------
class TestPanelIntegrals:
    def test_static_self_term(self):
        S, D = panel_integrals(CENTROID, EQUILATERAL, NORMAL, 0.0, is_self=True)
        npt.assert_allclose(S, single_layer_static(CENTROID, EQUILATERAL, NORMAL), rtol=1e-14)
        assert D == 0

    def test_self_term_low_frequency(self):
        k = 1e-3
        S, D = panel_integrals(CENTROID, EQUILATERAL, NORMAL, k, is_self=True)
        S0 = single_layer_static(CENTROID, EQUILATERAL, NORMAL)
        npt.assert_allclose(S.real, S0, rtol=1e-6)
        npt.assert_allclose(S.imag, k * AREA / (4 * np.pi), rtol=1e-5)
        assert D == 0

    def test_self_term_is_limit_of_near_field(self):
        k = 2.0
        S_self, D_self = panel_integrals(CENTROID, EQUILATERAL, NORMAL, k, is_self=True)
        # offset below the default rejection distance coincidence_tol * sqrt(A)
        cfg = BEMConfig(coincidence_tol=1e-9)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NumericalToleranceWarning)
            S_above, D_above = panel_integrals(CENTROID + 1e-7 * NORMAL, EQUILATERAL, NORMAL, k, config=cfg)
            S_below, D_below = panel_integrals(CENTROID - 1e-7 * NORMAL, EQUILATERAL, NORMAL, k, config=cfg)
        npt.assert_allclose(S_above, S_self, atol=1e-5)
        npt.assert_allclose(S_below, S_self, atol=1e-5)
        # double-layer jump: +1/2 on the normal side, -1/2 behind
        npt.assert_allclose(D_above, D_self + 0.5, atol=1e-5)
        npt.assert_allclose(D_below, D_self - 0.5, atol=1e-5)

    @pytest.mark.parametrize("offset", [[4.0, 1.0, -3.0], [0.5, 0.3, 0.4]])
    def test_matches_fine_quadrature(self, offset):
        # far pair (Dunavant) and near pair (adaptive subdivision)
        k = 1.0
        x = CENTROID + np.asarray(offset)
        S, D = panel_integrals(x, EQUILATERAL, NORMAL, k)
        S_ref = _centroid_rule(lambda y: green(k, np.linalg.norm(x - y, axis=1)), EQUILATERAL)
        D_ref = _centroid_rule(lambda y: green_normal_derivative(k, x - y, NORMAL), EQUILATERAL)
        npt.assert_allclose(S, S_ref, rtol=1e-4)
        npt.assert_allclose(D, D_ref, rtol=1e-4)

    def test_normal_flips_winding(self):
        x = CENTROID + np.array([0.2, 0.1, 0.5])
        S1, D1 = panel_integrals(x, EQUILATERAL, NORMAL, 1.0)
        S2, D2 = panel_integrals(x, EQUILATERAL, -NORMAL, 1.0)
        npt.assert_allclose(S2, S1, rtol=1e-10)
        npt.assert_allclose(D2, -D1, rtol=1e-10)

    def test_point_on_panel_rejected(self):
        with pytest.raises(ConfigurationError):
            panel_integrals(CENTROID, EQUILATERAL, NORMAL, 1.0)

    def test_rejection_distance_follows_coincidence_tol(self):
        x = CENTROID + 1e-7 * NORMAL
        with pytest.raises(ConfigurationError, match="lies on the panel"):
            panel_integrals(x, EQUILATERAL, NORMAL, 1.0)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NumericalToleranceWarning)
            S, _ = panel_integrals(x, EQUILATERAL, NORMAL, 1.0, config=BEMConfig(coincidence_tol=1e-9))
        assert np.isfinite(S)

    def test_tolerance_warning(self):
        cfg = BEMConfig(TOL_NEAR=1e-15, MAX_SUBDIV=0)
        with pytest.warns(NumericalToleranceWarning):
            panel_integrals(CENTROID + 0.05 * NORMAL, EQUILATERAL, NORMAL, 5.0, config=cfg)


# ---------------------------------------------------------------------------
# Quadrature helpers and configuration
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("order", [1, 3, 7])
def test_dunavant_weights_sum_to_half(order):
    pts, w = dunavant_rule(order)
    npt.assert_allclose(w.sum(), 0.5, rtol=1e-12)
    assert np.all(pts >= 0.0) and np.all(pts.sum(axis=1) <= 1.0)


def test_point_triangle_distance():
    assert point_triangle_distance(CENTROID + 0.3 * NORMAL, EQUILATERAL) == pytest.approx(0.3)
    assert point_triangle_distance([-1.0, 0.0, 0.0], EQUILATERAL) == pytest.approx(1.0)


@pytest.mark.parametrize("kwargs", [
    {"quad_order": 5},
    {"TOL_NEAR": 0.0},
    {"MAX_SUBDIV": -1},
    {"jump_term": "full"},
    {"pivot_tol": 2.0},
])
def test_config_validation(kwargs):
    with pytest.raises(ConfigurationError):
        BEMConfig(**kwargs).validate()
