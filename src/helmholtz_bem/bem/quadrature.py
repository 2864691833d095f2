# helmholtz_bem/bem/quadrature.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal

import numpy as np
from numba import njit

from ..errors import ConfigurationError

# ----------------------------- Configuration -----------------------------
@dataclass(slots=True)
class BEMConfig:
    quad_order: Literal[1, 3, 7] = 7
    TAU_NEAR: float = 1.0
    TOL_NEAR: float = 1e-6
    MAX_SUBDIV: int = 4
    jump_term: Literal["half", "solid_angle"] = "half"
    coincidence_tol: float = 1e-6
    pivot_tol: float = 1e-12

    def validate(self) -> "BEMConfig":
        if self.quad_order not in _DUNAVANT:
            raise ConfigurationError(
                f"quad_order must be one of {sorted(_DUNAVANT)}, got {self.quad_order}"
            )
        if not (self.TAU_NEAR >= 0.0):
            raise ConfigurationError(f"TAU_NEAR must be >= 0, got {self.TAU_NEAR}")
        if not (self.TOL_NEAR > 0.0):
            raise ConfigurationError(f"TOL_NEAR must be > 0, got {self.TOL_NEAR}")
        if int(self.MAX_SUBDIV) < 0:
            raise ConfigurationError(f"MAX_SUBDIV must be >= 0, got {self.MAX_SUBDIV}")
        if self.jump_term not in ("half", "solid_angle"):
            raise ConfigurationError(
                f"jump_term must be 'half' or 'solid_angle', got {self.jump_term!r}"
            )
        if not (self.coincidence_tol > 0.0):
            raise ConfigurationError(
                f"coincidence_tol must be > 0, got {self.coincidence_tol}"
            )
        if not (0.0 < self.pivot_tol < 1.0):
            raise ConfigurationError(f"pivot_tol must be in (0, 1), got {self.pivot_tol}")
        return self

    @classmethod
    def from_dict(cls, data: dict | None) -> "BEMConfig":
        if not data:
            return cls()
        known = {f for f in cls.__dataclass_fields__}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown solver option(s): {sorted(unknown)}")
        return cls(**data).validate()

# Dunavant quadrature rules (barycentric pairs (a,b), weight w on reference triangle with area 1/2)
# Weights sum to 1/2. For a physical triangle, multiply Σ w f(y) by (2 * Area(T)).
_DUNAVANT = {
    1: (np.array([[1/3, 1/3]]), np.array([0.5])),
    3: (
        np.array([
            [1/6, 1/6],
            [2/3, 1/6],
            [1/6, 2/3],
        ]),
        np.array([1/6, 1/6, 1/6]),
    ),
    7: (
        np.array([
            [1/3, 1/3],
            [0.0597158717897698, 0.4701420641051151],
            [0.4701420641051151, 0.0597158717897698],
            [0.4701420641051151, 0.4701420641051151],
            [0.7974269853530873, 0.1012865073234563],
            [0.1012865073234563, 0.7974269853530873],
            [0.1012865073234563, 0.1012865073234563],
        ]),
        np.array([
            0.2250000000000000,
            0.1323941527885062, 0.1323941527885062, 0.1323941527885062,
            0.1259391805448271, 0.1259391805448271, 0.1259391805448271,
        ]) * 0.5,
    ),
}


def dunavant_rule(order: int) -> tuple[np.ndarray, np.ndarray]:
    """Contiguous copies of the (points, weights) pair for ``order``."""
    if order not in _DUNAVANT:
        raise ConfigurationError(f"No Dunavant rule of order {order}")
    pts, w = _DUNAVANT[order]
    return np.ascontiguousarray(pts, dtype=np.float64), np.ascontiguousarray(w, dtype=np.float64)

# ----------------------------- Utilities ---------------------------------
@njit(cache=True, fastmath=True)
def _triangle_area(v0, v1, v2) -> float:
    return 0.5 * np.linalg.norm(np.cross(v1 - v0, v2 - v0))

@njit(cache=True, fastmath=True)
def _triangle_height(area: float) -> float:
    # element scale h = sqrt(area)
    return math.sqrt(area)

@njit(cache=True, fastmath=True)
def _map_ref_to_phys(v0, v1, v2, a, b):
    return a * v0 + b * v1 + (1.0 - a - b) * v2

@njit(cache=True, fastmath=True)
def _split_triangle(v0, v1, v2, out):
    """Write the 4 midpoint children of (v0, v1, v2) into out (4, 3, 3), winding kept."""
    m01 = 0.5 * (v0 + v1)
    m12 = 0.5 * (v1 + v2)
    m20 = 0.5 * (v2 + v0)
    out[0, 0] = v0
    out[0, 1] = m01
    out[0, 2] = m20
    out[1, 0] = m01
    out[1, 1] = v1
    out[1, 2] = m12
    out[2, 0] = m20
    out[2, 1] = m12
    out[2, 2] = v2
    out[3, 0] = m12
    out[3, 1] = m20
    out[3, 2] = m01

@njit(cache=True, fastmath=True)
def _point_triangle_distance(x, v0, v1, v2) -> float:
    # Closest distance from point x to triangle (v0,v1,v2)
    # (Christer Ericson, "Real-Time Collision Detection", robust form)
    ab = v1 - v0
    ac = v2 - v0
    ap = x - v0
    d1 = np.dot(ab, ap)
    d2 = np.dot(ac, ap)
    if d1 <= 0.0 and d2 <= 0.0:
        return np.linalg.norm(ap)

    bp = x - v1
    d3 = np.dot(ab, bp)
    d4 = np.dot(ac, bp)
    if d3 >= 0.0 and d4 <= d3:
        return np.linalg.norm(bp)

    vc = d1 * d4 - d3 * d2
    if vc <= 0.0 and d1 >= 0.0 and d3 <= 0.0:
        v = d1 / (d1 - d3)
        proj = v0 + v * ab
        return np.linalg.norm(x - proj)

    cp = x - v2
    d5 = np.dot(ab, cp)
    d6 = np.dot(ac, cp)
    if d6 >= 0.0 and d5 <= d6:
        return np.linalg.norm(cp)

    vb = d5 * d2 - d1 * d6
    if vb <= 0.0 and d2 >= 0.0 and d6 <= 0.0:
        w = d2 / (d2 - d6)
        proj = v0 + w * ac
        return np.linalg.norm(x - proj)

    va = d3 * d6 - d5 * d4
    if va <= 0.0 and (d4 - d3) >= 0.0 and (d5 - d6) >= 0.0:
        w = (d4 - d3) / ((d4 - d3) + (d5 - d6))
        proj = v1 + w * (v2 - v1)
        return np.linalg.norm(x - proj)

    # Inside face region
    denom = 1.0 / (va + vb + vc)
    v = vb * denom
    w = vc * denom
    u = 1.0 - v - w
    proj = u * v0 + v * v1 + w * v2
    return np.linalg.norm(x - proj)


def point_triangle_distance(x, vertices) -> float:
    x = np.asarray(x, dtype=np.float64)
    v = np.asarray(vertices, dtype=np.float64)
    return float(_point_triangle_distance(x, v[0], v[1], v[2]))
