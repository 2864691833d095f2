# helmholtz_bem/bem/solve.py
from __future__ import annotations

import logging
import warnings

import numpy as np
from scipy.linalg import LinAlgWarning, lu_factor, lu_solve

from ..errors import ConfigurationError, SingularSystemError
from .assembly import ProblemType
from .system import SurfaceSolution

LOG = logging.getLogger(__name__)


def solve(A, b, *, frequency: float | None = None, pivot_tol: float = 1e-12) -> np.ndarray:
    """
    Dense complex LU with partial pivoting.

    Raises SingularSystemError when min|U_ii| <= pivot_tol * max|U_ii| or the
    solution is not finite.
    """
    A = np.asarray(A, dtype=np.complex128)
    b = np.asarray(b, dtype=np.complex128)
    if A.ndim != 2 or A.shape[0] != A.shape[1] or b.shape != (A.shape[0],):
        raise ConfigurationError(f"incompatible system shapes A={A.shape}, b={b.shape}")
    if not (np.isfinite(A).all() and np.isfinite(b).all()):
        raise ConfigurationError("system matrix or right-hand side is not finite")

    with warnings.catch_warnings():
        # the pivot check below is the single source of truth
        warnings.simplefilter("ignore", LinAlgWarning)
        warnings.simplefilter("ignore", RuntimeWarning)
        lu, piv = lu_factor(A, check_finite=False)

    diag = np.abs(np.diag(lu))
    dmax = float(diag.max()) if diag.size else 0.0
    dmin = float(diag.min()) if diag.size else 0.0
    if not dmax > 0.0 or dmin <= pivot_tol * dmax:
        raise SingularSystemError(
            f"LU pivot ratio {dmin / dmax if dmax > 0 else 0.0:.3e} below {pivot_tol:g}",
            frequency,
        )
    LOG.debug("LU pivot ratio %.3e", dmin / dmax)

    x = lu_solve((lu, piv), b, check_finite=False)
    if not np.isfinite(x).all():
        raise SingularSystemError("non-finite solution", frequency)
    return x


def project_field(M, L, surface: SurfaceSolution, phi_inc_fp) -> np.ndarray:
    """phi_fp = M phi - L vn + phi_inc_fp"""
    M = np.asarray(M, dtype=np.complex128)
    L = np.asarray(L, dtype=np.complex128)
    phi_inc_fp = np.asarray(phi_inc_fp, dtype=np.complex128)
    n = surface.phi.shape[0]
    if M.shape != L.shape or M.ndim != 2 or M.shape[1] != n or phi_inc_fp.shape != (M.shape[0],):
        raise ConfigurationError(
            f"incompatible projection shapes M={M.shape}, L={L.shape}, N={n}, "
            f"phi_inc_fp={phi_inc_fp.shape}"
        )
    return M @ surface.phi - L @ surface.vn + phi_inc_fp


def radiated_power(surface: SurfaceSolution, areas, *, omega: float, mass_density: float,
                   problem: ProblemType = ProblemType.EXTERIOR) -> float:
    """
    Time-averaged power flowing from the surface into the fluid,
    s * 1/2 Re sum_j p_j conj(vn_j) A_j  with p = i w rho phi.
    """
    areas = np.asarray(areas, dtype=np.float64)
    p = surface.pressure(omega, mass_density)
    return float(ProblemType(problem).sign * 0.5 * np.real(np.sum(p * np.conj(surface.vn) * areas)))
