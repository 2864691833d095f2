# helmholtz_bem/validation/sphere.py
"""
Analytic reference solutions for a sphere of radius ``a``, in the same
conventions as the solver: exp(-i w t), p = i w rho phi, vn = d phi / d n
with n pointing out of the sphere.
"""
from __future__ import annotations

import math
from typing import Literal

import numpy as np
from scipy.special import eval_legendre, spherical_jn, spherical_yn


def _n_max(ka: float) -> int:
    return int(ka + 4.0 * ka ** (1.0 / 3.0) + 10)


def plane_wave_sphere_scattered(
    k: float,
    a: float,
    points,
    *,
    direction=(1.0, 0.0, 0.0),
    amplitude: complex = 1.0,
    boundary: Literal["rigid", "soft", "impedance"] = "rigid",
    beta: complex | None = None,
    center=(0.0, 0.0, 0.0),
) -> np.ndarray:
    """
    Scattered potential of the plane wave  A exp(i k d . x)  by a sphere:

        phi_s = -A sum_n (2n+1) i^n B_n h_n(k r) P_n(cos g)

    rigid: B_n = j_n'(ka) / h_n'(ka)      (vn = 0)
    soft:  B_n = j_n(ka) / h_n(ka)        (phi = 0)
    impedance: phi = beta vn,  B_n = (beta k j_n' - j_n) / (beta k h_n' - h_n)

    The incident phase is referenced at ``center``.
    """
    pts = np.asarray(points, dtype=np.float64) - np.asarray(center, dtype=np.float64)
    d = np.asarray(direction, dtype=np.float64)
    d = d / np.linalg.norm(d)
    r = np.linalg.norm(pts, axis=1)
    if np.any(r < a * (1.0 - 1e-12)):
        raise ValueError("points must lie on or outside the sphere")
    cos_g = np.clip(pts @ d / r, -1.0, 1.0)

    ka = k * a
    kr = k * r
    out = np.zeros(pts.shape[0], dtype=np.complex128)
    for n in range(_n_max(ka) + 1):
        jn = spherical_jn(n, ka)
        jd = spherical_jn(n, ka, derivative=True)
        hn = jn + 1j * spherical_yn(n, ka)
        hd = jd + 1j * spherical_yn(n, ka, derivative=True)
        if boundary == "rigid":
            B = jd / hd
        elif boundary == "soft":
            B = jn / hn
        elif boundary == "impedance":
            if beta is None:
                raise ValueError("impedance boundary needs beta")
            B = (beta * k * jd - jn) / (beta * k * hd - hn)
        else:
            raise ValueError(f"unknown boundary {boundary!r}")
        h_r = spherical_jn(n, kr) + 1j * spherical_yn(n, kr)
        out += (2 * n + 1) * (1j ** n) * B * h_r * eval_legendre(n, cos_g)
    return -complex(amplitude) * out


def pulsating_sphere_potential(k: float, a: float, velocity: complex, points,
                               center=(0.0, 0.0, 0.0)) -> np.ndarray:
    """phi(r) = C exp(i k r) / r  with  C = U a^2 exp(-i k a) / (i k a - 1)."""
    pts = np.asarray(points, dtype=np.float64) - np.asarray(center, dtype=np.float64)
    r = np.linalg.norm(pts, axis=1)
    C = velocity * a * a * np.exp(-1j * k * a) / (1j * k * a - 1.0)
    return C * np.exp(1j * k * r) / r


def pulsating_sphere_surface_potential(k: float, a: float, velocity: complex) -> complex:
    return complex(velocity * a / (1j * k * a - 1.0))


def pulsating_sphere_power(k: float, a: float, velocity: complex, omega: float,
                           mass_density: float) -> float:
    """Time-averaged radiated power 2 pi a^4 w rho k |U|^2 / (1 + (k a)^2)."""
    return 2.0 * math.pi * a**4 * omega * mass_density * k * abs(velocity) ** 2 / (1.0 + (k * a) ** 2)
