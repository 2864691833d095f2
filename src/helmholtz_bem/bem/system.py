# helmholtz_bem/bem/system.py
"""
Fold a boundary condition into the single system shape  A x = b.

All three kinds start from  H phi = G vn - phi_inc  and move whatever is known
to the right-hand side:

    Pressure         phi known (p / (i w rho))   A = G                 b = H phi + phi_inc   x = vn
    NormalVelocity   vn known                    A = H                 b = G vn - phi_inc    x = phi
    Impedance        phi = beta vn               A = H diag(beta) - G  b = -phi_inc          x = vn

with beta = Z / (i w rho), i.e. p = Z vn along the outward normal.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

from ..errors import ConfigurationError


class BCType(Enum):
    PRESSURE = "Pressure"
    NORMAL_VELOCITY = "NormalVelocity"
    IMPEDANCE = "Impedance"


@dataclass(frozen=True, slots=True)
class BoundaryCondition:
    bc_type: BCType
    value: complex | np.ndarray = 0j

    def values(self, n: int) -> np.ndarray:
        """Per-unknown complex values, broadcast from a scalar when uniform."""
        v = np.asarray(self.value, dtype=np.complex128)
        if v.ndim == 0:
            return np.full(n, complex(v), dtype=np.complex128)
        if v.shape != (n,):
            raise ConfigurationError(
                f"{BCType(self.bc_type).value} values have shape {v.shape}, expected ({n},)"
            )
        if not np.isfinite(v).all():
            raise ConfigurationError("boundary-condition values must be finite")
        return v.copy()


@dataclass(frozen=True, slots=True)
class SurfaceSolution:
    phi: np.ndarray
    vn: np.ndarray

    def pressure(self, omega: float, mass_density: float) -> np.ndarray:
        return 1j * omega * mass_density * self.phi


@dataclass(frozen=True, slots=True)
class LinearSystem:
    A: np.ndarray
    b: np.ndarray
    bc_type: BCType
    known: np.ndarray  # phi (Pressure), vn (NormalVelocity) or beta (Impedance)

    def recover(self, x) -> SurfaceSolution:
        """Invert the column rearrangement: solution vector -> (phi, vn)."""
        x = np.asarray(x, dtype=np.complex128)
        if x.shape != self.b.shape:
            raise ConfigurationError(f"solution has shape {x.shape}, expected {self.b.shape}")
        if self.bc_type is BCType.PRESSURE:
            return SurfaceSolution(phi=self.known.copy(), vn=x.copy())
        if self.bc_type is BCType.NORMAL_VELOCITY:
            return SurfaceSolution(phi=x.copy(), vn=self.known.copy())
        return SurfaceSolution(phi=self.known * x, vn=x.copy())


def build_system(H, G, bc: BoundaryCondition, phi_inc, *, omega: float,
                 mass_density: float) -> LinearSystem:
    H = np.asarray(H, dtype=np.complex128)
    G = np.asarray(G, dtype=np.complex128)
    phi_inc = np.asarray(phi_inc, dtype=np.complex128)
    if H.ndim != 2 or H.shape[0] != H.shape[1]:
        raise ConfigurationError(f"H must be square, got {H.shape}")
    if G.shape != H.shape:
        raise ConfigurationError(f"G has shape {G.shape}, H has {H.shape}")
    n = H.shape[0]
    if phi_inc.shape != (n,):
        raise ConfigurationError(f"phi_inc has shape {phi_inc.shape}, expected ({n},)")
    if not (omega > 0.0 and mass_density > 0.0):
        raise ConfigurationError("omega and mass_density must be positive")

    bc_type = BCType(bc.bc_type)
    values = bc.values(n)
    iwr = 1j * omega * mass_density

    if bc_type is BCType.PRESSURE:
        phi_known = values / iwr
        return LinearSystem(A=G.copy(), b=H @ phi_known + phi_inc, bc_type=bc_type, known=phi_known)

    if bc_type is BCType.NORMAL_VELOCITY:
        return LinearSystem(A=H.copy(), b=G @ values - phi_inc, bc_type=bc_type, known=values)

    beta = values / iwr
    return LinearSystem(A=H * beta[None, :] - G, b=-phi_inc, bc_type=bc_type, known=beta)
