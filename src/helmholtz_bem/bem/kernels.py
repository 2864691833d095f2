# helmholtz_bem/bem/kernels.py
"""
Helmholtz kernels and their integrals over flat triangular panels.

Convention: time dependence exp(-i w t), so the free-space Green's function is

    G(x, y) = exp(i k r) / (4 pi r),         r = |x - y|
    dG/dn_y = exp(i k r) (1 - i k r) ((x - y) . n_y) / (4 pi r^3)

Panel integrals are split into a static (k = 0) part, integrated in closed form
for every pair, and a bounded remainder G - G0, which is smooth enough for
Dunavant quadrature away from the panel, adaptive subdivision close to it and a
radial closed form on the panel itself.
"""
from __future__ import annotations

import math
import warnings

import numpy as np
from numba import njit

from ..errors import ConfigurationError, NumericalToleranceWarning
from .quadrature import (
    BEMConfig,
    _map_ref_to_phys,
    _point_triangle_distance,
    _split_triangle,
    _triangle_area,
    _triangle_height,
    dunavant_rule,
)

FOURPI = 4.0 * math.pi

# Gauss-Legendre rule for the angular integral of the self-panel remainder
_GL_T, _GL_W = np.polynomial.legendre.leggauss(16)

# ----------------------------- Point kernels -----------------------------
def green(k: float, r):
    """G(k, r) = exp(i k r) / (4 pi r). ``r`` must be strictly positive."""
    r = np.asarray(r, dtype=np.float64)
    if np.any(~np.isfinite(r)) or np.any(r <= 0.0):
        raise ConfigurationError(
            "green() needs r > 0; coincident points must go through panel_integrals()"
        )
    return np.exp(1j * k * r) / (FOURPI * r)


def green_normal_derivative(k: float, r_vec, normal):
    """
    Normal derivative of G with respect to the source point y, along ``normal``
    (the source normal). ``r_vec = x - y`` with shape (..., 3).
    """
    r_vec = np.asarray(r_vec, dtype=np.float64)
    normal = np.asarray(normal, dtype=np.float64)
    if r_vec.shape[-1] != 3 or normal.shape[-1] != 3:
        raise ConfigurationError("r_vec and normal must have a trailing dimension of 3")
    r = np.linalg.norm(r_vec, axis=-1)
    if np.any(~np.isfinite(r)) or np.any(r <= 0.0):
        raise ConfigurationError(
            "green_normal_derivative() needs r > 0; coincident points must go through panel_integrals()"
        )
    rn = np.sum(r_vec * normal, axis=-1)
    return np.exp(1j * k * r) * (1.0 - 1j * k * r) * rn / (FOURPI * r**3)

# ----------------------------- Static parts ------------------------------
@njit(cache=True, fastmath=True)
def _single_layer_static(x, v0, v1, v2, n) -> float:
    # int_T 1/(4 pi |x - y|) dS_y, edge formula of Wilton et al. (1984)
    d = np.dot(x - v0, n)
    ad = abs(d)
    rho = x - d * n
    acc = 0.0
    for e in range(3):
        if e == 0:
            a, b = v0, v1
        elif e == 1:
            a, b = v1, v2
        else:
            a, b = v2, v0
        edge = b - a
        le = np.linalg.norm(edge)
        t = edge / le
        m = np.cross(t, n)
        p0 = np.dot(a - rho, m)
        lm = np.dot(a - rho, t)
        lp = np.dot(b - rho, t)
        r02 = p0 * p0 + d * d
        if r02 <= (1e-12 * le) ** 2:
            # x on the line of this edge: no contribution
            continue
        rm = np.linalg.norm(x - a)
        rp = np.linalg.norm(x - b)
        # R + l without cancellation when l < 0
        fp = rp + lp if lp >= 0.0 else r02 / (rp - lp)
        fm = rm + lm if lm >= 0.0 else r02 / (rm - lm)
        acc += p0 * math.log(fp / fm)
        if ad > 0.0:
            acc -= ad * (
                math.atan(p0 * lp / (r02 + ad * rp)) - math.atan(p0 * lm / (r02 + ad * rm))
            )
    return acc / (4.0 * math.pi)

@njit(cache=True, fastmath=True)
def _solid_angle(x, v0, v1, v2) -> float:
    # signed solid angle subtended by (v0, v1, v2) at x (Van Oosterom & Strackee, 1983);
    # negative when x is on the side the right-handed normal points to
    r1 = v0 - x
    r2 = v1 - x
    r3 = v2 - x
    l1 = np.linalg.norm(r1)
    l2 = np.linalg.norm(r2)
    l3 = np.linalg.norm(r3)
    num = np.dot(r1, np.cross(r2, r3))
    den = l1 * l2 * l3 + np.dot(r1, r2) * l3 + np.dot(r1, r3) * l2 + np.dot(r2, r3) * l1
    return 2.0 * math.atan2(num, den)

# ----------------------------- Remainders --------------------------------
@njit(cache=True, fastmath=True)
def _remainder_s(k, r) -> complex:
    # (exp(ikr) - 1) / (4 pi r), limit ik/(4 pi) at r = 0
    if r <= 1e-300:
        return complex(0.0, k / (4.0 * math.pi))
    kr = k * r
    s = math.sin(0.5 * kr)
    return complex(-2.0 * s * s, math.sin(kr)) / (4.0 * math.pi * r)

@njit(cache=True, fastmath=True)
def _remainder_d(k, r, rn) -> complex:
    # ((x-y).n / (4 pi r^3)) * ((exp(ikr) - 1) - ikr exp(ikr)), zero at r = 0
    if r <= 1e-300:
        return 0j
    kr = k * r
    s = math.sin(0.5 * kr)
    em1 = complex(-2.0 * s * s, math.sin(kr))
    bracket = complex(em1.real, em1.imag - kr) - 1j * kr * em1
    return bracket * rn / (4.0 * math.pi * r * r * r)

@njit(cache=True, fastmath=True)
def _remainder_rule(x, v0, v1, v2, n, k, pts, w):
    area = _triangle_area(v0, v1, v2)
    acc_s = 0j
    acc_d = 0j
    for q in range(pts.shape[0]):
        y = _map_ref_to_phys(v0, v1, v2, pts[q, 0], pts[q, 1])
        xy = x - y
        r = np.linalg.norm(xy)
        acc_s += w[q] * _remainder_s(k, r)
        acc_d += w[q] * _remainder_d(k, r, np.dot(xy, n))
    return acc_s * (2.0 * area), acc_d * (2.0 * area)

@njit(cache=True, fastmath=True)
def _adaptive_remainder(x, v0, v1, v2, n, k, pts, w, scale_s, scale_d, tol, max_subdiv):
    """
    Adaptive 4-way midpoint subdivision of the remainder integrals until
    coarse-vs-children error < tol (relative to the pair scale, weighted by
    area fraction) or max_subdiv reached. Stack based, no recursion.
    """
    total_area = _triangle_area(v0, v1, v2)
    cap = 4 * (max_subdiv + 2)
    stack = np.empty((cap, 3, 3))
    depth = np.empty(cap, dtype=np.int64)
    children = np.empty((4, 3, 3))
    stack[0, 0] = v0
    stack[0, 1] = v1
    stack[0, 2] = v2
    depth[0] = 0
    top = 1

    acc_s = 0j
    acc_d = 0j
    ok = True
    while top > 0:
        top -= 1
        a = stack[top, 0].copy()
        b = stack[top, 1].copy()
        c = stack[top, 2].copy()
        lvl = depth[top]

        coarse_s, coarse_d = _remainder_rule(x, a, b, c, n, k, pts, w)
        _split_triangle(a, b, c, children)
        fine_s = 0j
        fine_d = 0j
        for q in range(4):
            cs, cd = _remainder_rule(x, children[q, 0], children[q, 1], children[q, 2], n, k, pts, w)
            fine_s += cs
            fine_d += cd

        frac = _triangle_area(a, b, c) / total_area
        if abs(fine_s - coarse_s) <= tol * scale_s * frac and abs(fine_d - coarse_d) <= tol * scale_d * frac:
            acc_s += fine_s
            acc_d += fine_d
        elif lvl >= max_subdiv:
            acc_s += fine_s
            acc_d += fine_d
            ok = False
        else:
            for q in range(4):
                stack[top, 0] = children[q, 0]
                stack[top, 1] = children[q, 1]
                stack[top, 2] = children[q, 2]
                depth[top] = lvl + 1
                top += 1
    return acc_s, acc_d, ok

@njit(cache=True, fastmath=True)
def _self_remainder(x, v0, v1, v2, n, k, gl_t, gl_w) -> complex:
    # int_T (exp(ikr) - 1)/(4 pi r) dS for x on T: polar coordinates about x,
    # one wedge per edge, radial integral in closed form
    d = np.dot(x - v0, n)
    rho = x - d * n
    acc = 0j
    for e in range(3):
        if e == 0:
            a, b = v0, v1
        elif e == 1:
            a, b = v1, v2
        else:
            a, b = v2, v0
        edge = b - a
        le = np.linalg.norm(edge)
        t = edge / le
        m = np.cross(t, n)
        p0 = np.dot(a - rho, m)
        if abs(p0) <= 1e-12 * le:
            continue
        th_m = math.atan(np.dot(a - rho, t) / p0)
        th_p = math.atan(np.dot(b - rho, t) / p0)
        half = 0.5 * (th_p - th_m)
        mid = 0.5 * (th_p + th_m)
        wedge = 0j
        for q in range(gl_t.shape[0]):
            R = p0 / math.cos(mid + half * gl_t[q])
            kR = k * R
            s = math.sin(0.5 * kR)
            wedge += gl_w[q] * complex(math.sin(kR) / k - R, 2.0 * s * s / k)
        acc += half * wedge
    return acc / (4.0 * math.pi)

# ----------------------------- Panel pair --------------------------------
@njit(cache=True, fastmath=True)
def _panel_pair(x, v0, v1, v2, n, centroid, radius, h, k, pts, w, gl_t, gl_w,
                tau, tol, max_subdiv, is_self):
    """
    Returns (S, D, D0, converged) for collocation/field point x and panel j.
    D0 is the static double layer, used for the solid-angle jump term.
    """
    s0 = _single_layer_static(x, v0, v1, v2, n)
    if is_self:
        d0 = 0.0
    else:
        d0 = -_solid_angle(x, v0, v1, v2) / (4.0 * math.pi)

    s = complex(s0, 0.0)
    d = complex(d0, 0.0)
    if k == 0.0:
        return s, d, d0, True

    if is_self:
        # flat panel: (x - y) . n = 0, the double-layer remainder vanishes
        s += _self_remainder(x, v0, v1, v2, n, k, gl_t, gl_w)
        return s, d, d0, True

    near = False
    if np.linalg.norm(x - centroid) - radius <= tau * h:
        near = _point_triangle_distance(x, v0, v1, v2) < tau * h

    if near:
        scale_s = max(abs(s0), h / (4.0 * math.pi))
        scale_d = max(abs(d0), k * scale_s)
        rs, rd, ok = _adaptive_remainder(x, v0, v1, v2, n, k, pts, w, scale_s, scale_d, tol, max_subdiv)
        return s + rs, d + rd, d0, ok

    rs, rd = _remainder_rule(x, v0, v1, v2, n, k, pts, w)
    return s + rs, d + rd, d0, True

# ----------------------------- Public API --------------------------------
def _as_panel(vertices, normal=None):
    v = np.ascontiguousarray(vertices, dtype=np.float64)
    if v.shape != (3, 3) or not np.isfinite(v).all():
        raise ConfigurationError(f"vertices must be finite (3,3), got {v.shape}")
    cr = np.cross(v[1] - v[0], v[2] - v[0])
    area = 0.5 * float(np.linalg.norm(cr))
    if not area > 0.0:
        raise ConfigurationError("degenerate panel (zero area)")
    if normal is None:
        n = cr / (2.0 * area)
    else:
        n = np.asarray(normal, dtype=np.float64)
        n = n / np.linalg.norm(n)
        if np.dot(n, cr) < 0.0:
            # winding must agree with the normal
            v = np.ascontiguousarray(v[[0, 2, 1]])
    return v, np.ascontiguousarray(n), area


def panel_integrals(x, vertices, normal, k: float, config: BEMConfig | None = None,
                    is_self: bool = False) -> tuple[complex, complex]:
    """
    Integrals of G and dG/dn_y over one flat triangle.

    Parameters
    ----------
    x : (3,) observation point. With ``is_self`` it must lie on the panel.
    vertices : (3, 3) panel corners.
    normal : (3,) source normal; winding is flipped to agree with it.
    k : wavenumber.
    config : quadrature settings (``BEMConfig()`` when omitted).
    is_self : x is the collocation point of this panel.

    Returns
    -------
    (S, D) : complex
        ``S = int G dS`` and ``D = int dG/dn_y dS``; on the self panel D is the
        principal value.

    Emits NumericalToleranceWarning when adaptive quadrature stops early.
    """
    cfg = (config or BEMConfig()).validate()
    v, n, area = _as_panel(vertices, normal)
    x = np.ascontiguousarray(x, dtype=np.float64)
    centroid = v.mean(axis=0)
    radius = float(np.max(np.linalg.norm(v - centroid, axis=1)))
    h = _triangle_height(area)
    if not is_self and _point_triangle_distance(x, v[0], v[1], v[2]) < cfg.coincidence_tol * h:
        raise ConfigurationError("x lies on the panel; use is_self=True for the collocation point")
    pts, w = dunavant_rule(cfg.quad_order)
    s, d, _, ok = _panel_pair(
        x, v[0], v[1], v[2], n, centroid, radius, h, float(k), pts, w, _GL_T, _GL_W,
        float(cfg.TAU_NEAR), float(cfg.TOL_NEAR), int(cfg.MAX_SUBDIV), bool(is_self),
    )
    if not ok:
        warnings.warn(
            f"Near-singular quadrature did not reach TOL_NEAR={cfg.TOL_NEAR:g} "
            f"within MAX_SUBDIV={cfg.MAX_SUBDIV}",
            NumericalToleranceWarning,
            stacklevel=2,
        )
    return complex(s), complex(d)


def solid_angle(x, vertices) -> float:
    """Signed solid angle of the triangle seen from x (negative on the normal side)."""
    v = np.ascontiguousarray(vertices, dtype=np.float64)
    x = np.ascontiguousarray(x, dtype=np.float64)
    return float(_solid_angle(x, v[0], v[1], v[2]))


def single_layer_static(x, vertices, normal=None) -> float:
    """Closed-form int_T 1/(4 pi |x - y|) dS_y."""
    v, n, _ = _as_panel(vertices, normal)
    x = np.ascontiguousarray(x, dtype=np.float64)
    return float(_single_layer_static(x, v[0], v[1], v[2], n))
