# helmholtz_bem/bem/assembly.py
from __future__ import annotations

import logging
import warnings
from enum import Enum

import numpy as np
from numba import njit

from ..errors import ConfigurationError, NumericalToleranceWarning
from .kernels import _GL_T, _GL_W, _panel_pair
from .quadrature import BEMConfig, _point_triangle_distance, dunavant_rule

LOG = logging.getLogger(__name__)


class ProblemType(Enum):
    INTERIOR = "Interior"
    EXTERIOR = "Exterior"

    @property
    def sign(self) -> float:
        # +1 when the fluid is outside the closed surface, -1 when inside
        return 1.0 if self is ProblemType.EXTERIOR else -1.0

# ----------------------------- numba kernels -----------------------------
@njit(cache=True, fastmath=True)
def _assemble_kernel(xs, self_idx, tri, normals, centroids, radii, hs, k, pts, w,
                     gl_t, gl_w, tau, tol, max_subdiv):
    P = xs.shape[0]
    N = tri.shape[0]
    S = np.zeros((P, N), dtype=np.complex128)
    D = np.zeros((P, N), dtype=np.complex128)
    d0_offdiag = np.zeros(P)
    n_unconverged = 0
    for i in range(P):
        x = xs[i]
        for j in range(N):
            is_self = self_idx[i] == j
            s, d, d0, ok = _panel_pair(
                x, tri[j, 0], tri[j, 1], tri[j, 2], normals[j], centroids[j],
                radii[j], hs[j], k, pts, w, gl_t, gl_w, tau, tol, max_subdiv, is_self,
            )
            S[i, j] = s
            D[i, j] = d
            if not is_self:
                d0_offdiag[i] += d0
            if not ok:
                n_unconverged += 1
    return S, D, d0_offdiag, n_unconverged

@njit(cache=True, fastmath=True)
def _find_coincident(xs, tri, centroids, radii, hs, tol):
    # first (point, panel) pair closer than tol * h_j, or (-1, -1)
    for i in range(xs.shape[0]):
        x = xs[i]
        for j in range(tri.shape[0]):
            if np.linalg.norm(x - centroids[j]) - radii[j] > tol * hs[j]:
                continue
            if _point_triangle_distance(x, tri[j, 0], tri[j, 1], tri[j, 2]) < tol * hs[j]:
                return i, j
    return -1, -1

# ----------------------------- helpers -----------------------------------
def _panel_geometry(mesh, eq_map):
    tri = np.ascontiguousarray(mesh.panel_vertices(eq_map.element_ids))
    centroids = np.ascontiguousarray(eq_map.centroids, dtype=np.float64)
    normals = np.ascontiguousarray(eq_map.normals, dtype=np.float64)
    radii = np.max(np.linalg.norm(tri - centroids[:, None, :], axis=2), axis=1)
    hs = np.sqrt(np.asarray(eq_map.areas, dtype=np.float64))
    return tri, normals, centroids, np.ascontiguousarray(radii), np.ascontiguousarray(hs)


def _check_wavenumber(k: float) -> float:
    k = float(k)
    if not np.isfinite(k) or k < 0.0:
        raise ConfigurationError(f"wavenumber must be finite and >= 0, got {k}")
    return k


def _warn_unconverged(count: int, total: int, cfg: BEMConfig, what: str) -> None:
    if count == 0:
        return
    msg = (
        f"{what}: {count} of {total} near-singular panel integrals did not reach "
        f"TOL_NEAR={cfg.TOL_NEAR:g} within MAX_SUBDIV={cfg.MAX_SUBDIV}"
    )
    LOG.warning(msg)
    warnings.warn(msg, NumericalToleranceWarning, stacklevel=3)


def _check_field_points(field_points, eq_map, geometry, cfg: BEMConfig) -> np.ndarray:
    xs = np.ascontiguousarray(field_points, dtype=np.float64)
    if xs.ndim != 2 or xs.shape[1] != 3:
        raise ConfigurationError(f"field_points must have shape (P,3), got {xs.shape}")
    if not np.isfinite(xs).all():
        raise ConfigurationError("field_points contain non-finite coordinates")
    if xs.shape[0] == 0:
        return xs
    tri, _, centroids, radii, hs = geometry
    i, j = _find_coincident(xs, tri, centroids, radii, hs, float(cfg.coincidence_tol))
    if i >= 0:
        raise ConfigurationError(
            f"field point {i} at {xs[i].tolist()} lies on surface element "
            f"{int(eq_map.element_ids[j])}"
        )
    return xs


def check_field_points(mesh, eq_map, field_points, config: BEMConfig | None = None) -> np.ndarray:
    """Reject field points lying on a panel of ``eq_map``; returns them as a (P,3) array."""
    cfg = (config or BEMConfig()).validate()
    return _check_field_points(field_points, eq_map, _panel_geometry(mesh, eq_map), cfg)


def _run_kernel(xs, self_idx, geometry, k, cfg):
    tri, normals, centroids, radii, hs = geometry
    pts, w = dunavant_rule(cfg.quad_order)
    return _assemble_kernel(
        xs, self_idx, tri, normals, centroids, radii, hs, k, pts, w,
        _GL_T, _GL_W, float(cfg.TAU_NEAR), float(cfg.TOL_NEAR), int(cfg.MAX_SUBDIV),
    )

# ----------------------------- Assembly ----------------------------------
def assemble_surface(
    mesh,
    eq_map,
    k: float,
    config: BEMConfig | None = None,
    problem: ProblemType = ProblemType.EXTERIOR,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Assemble dense H, G over the surface unknowns of ``eq_map``:

      H = s D - diag(c),   G = s S,   s = +1 (Exterior) / -1 (Interior)

    so that the boundary integral equation reads  H phi = G vn - phi_inc.

    Notes:
    - Collocation at panel centroids; the diagonal uses the self-panel path.
    - D_ii = 0 (principal value on a flat panel).
    - c = 1/2 (``jump_term="half"``) or, with ``"solid_angle"``, derived from the
      static double-layer row so that H rows sum to 0 (Interior) / -1 (Exterior)
      at k = 0.

    Returns
    -------
    H : (N,N) complex128
    G : (N,N) complex128
    """
    cfg = (config or BEMConfig()).validate()
    problem = ProblemType(problem)
    k = _check_wavenumber(k)

    N = len(eq_map)
    LOG.debug("Assembling surface matrices: N=%d, k=%.6g, %s", N, k, problem.value)
    geometry = _panel_geometry(mesh, eq_map)
    xs = geometry[2]
    S, D, d0_offdiag, n_bad = _run_kernel(xs, np.arange(N, dtype=np.int64), geometry, k, cfg)

    sgn = problem.sign
    if cfg.jump_term == "half":
        c = np.full(N, 0.5)
    else:
        interior_angle = -d0_offdiag
        c = interior_angle if problem is ProblemType.INTERIOR else 1.0 - interior_angle

    H = sgn * D
    H[np.diag_indices(N)] -= c
    G = sgn * S

    if not (np.isfinite(H).all() and np.isfinite(G).all()):
        raise ConfigurationError("non-finite entries in surface influence matrices (degenerate mesh?)")
    _warn_unconverged(int(n_bad), N * N, cfg, "assemble_surface")
    return H, G


def assemble_field(
    mesh,
    eq_map,
    field_points,
    k: float,
    config: BEMConfig | None = None,
    problem: ProblemType = ProblemType.EXTERIOR,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Assemble dense M = s D_fp, L = s S_fp from surface unknowns to field points,
    so that  phi_fp = M phi - L vn + phi_inc_fp.

    Field points within ``coincidence_tol * sqrt(A_j)`` of a panel raise
    ConfigurationError.
    """
    cfg = (config or BEMConfig()).validate()
    problem = ProblemType(problem)
    k = _check_wavenumber(k)

    N = len(eq_map)
    geometry = _panel_geometry(mesh, eq_map)
    xs = _check_field_points(field_points, eq_map, geometry, cfg)
    P = xs.shape[0]
    if P == 0:
        empty = np.zeros((0, N), dtype=np.complex128)
        return empty, empty.copy()

    LOG.debug("Assembling field matrices: P=%d, N=%d, k=%.6g", P, N, k)
    self_idx = np.full(P, -1, dtype=np.int64)
    S, D, _, n_bad = _run_kernel(xs, self_idx, geometry, k, cfg)

    sgn = problem.sign
    M = sgn * D
    L = sgn * S
    if not (np.isfinite(M).all() and np.isfinite(L).all()):
        raise ConfigurationError("non-finite entries in field influence matrices")
    _warn_unconverged(int(n_bad), P * N, cfg, "assemble_field")
    return M, L
