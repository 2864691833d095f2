#!/usr/bin/env python3
"""
Rigid sphere in a plane wave: BEM vs analytic series on a ring of field points.

Sphere radius 1 m, water (c = 1500 m/s, rho = 1000 kg/m^3), plane wave of
amplitude (1, 0) travelling along +x, field points on a ring of radius 10 m in
the XY plane. Prints the pressure error for each mesh level.
"""
import math
import sys

import numpy as np
import matplotlib.pyplot as plt

from helmholtz_bem.analysis.input_data import UserInput
from helmholtz_bem.analysis.pipeline import configure, preprocess, run_sweep
from helmholtz_bem.mesh.generators import icosphere
from helmholtz_bem.validation.sphere import plane_wave_sphere_scattered

# ---------- CONFIG ----------
RADIUS = 1.0
SOUND_SPEED = 1500.0
MASS_DENSITY = 1000.0
FREQUENCIES = [10.0, 100.0, 240.0]
LEVELS = [1, 2, 3]
RING_RADIUS = 10.0
N_RING = 100

SAVE_PNG = False
PNG_NAME = "rigid_sphere_ring.png"
# -------------------------------


def ring_points(radius: float, n: int) -> np.ndarray:
    t = np.linspace(0.0, 2.0 * math.pi, n, endpoint=False)
    return np.column_stack([radius * np.cos(t), radius * np.sin(t), np.zeros(n)])


def make_input(points: np.ndarray) -> UserInput:
    return UserInput.from_dict({
        "mesh_file": None,
        "body_index": 0,
        "frequency": FREQUENCIES,
        "sound_speed": SOUND_SPEED,
        "mass_density": MASS_DENSITY,
        "problem_type": "Exterior",
        "field_points": points.tolist(),
        "incident_wave": {"origin": [1.0, 0.0, 0.0], "wave_type": "PlaneWave", "amplitude": [1.0, 0.0]},
        "surface_bc": {"bc_type": "NormalVelocity", "value": [0.0, 0.0]},
    })


def main() -> int:
    points = ring_points(RING_RADIUS, N_RING)
    ui = make_input(points)
    rows = []
    curves = {}
    for level in LEVELS:
        mesh = icosphere(RADIUS, level)
        solved = run_sweep(preprocess(configure(ui, mesh)))
        for res in solved.results:
            k = 2.0 * math.pi * res.frequency / SOUND_SPEED
            omega = 2.0 * math.pi * res.frequency
            exact = plane_wave_sphere_scattered(k, RADIUS, points) + res.phi_inc_fp
            p_bem = np.abs(res.pressure(MASS_DENSITY))
            p_ref = np.abs(1j * omega * MASS_DENSITY * exact)
            rel_total = float(np.max(np.abs(p_bem - p_ref)) / np.max(p_ref))
            scat_ref = exact - res.phi_inc_fp
            rel_scat = float(np.linalg.norm(res.scattered - scat_ref) / np.linalg.norm(scat_ref))
            rows.append((level, mesh.n_elements, res.frequency, k * RADIUS, rel_total, rel_scat))
            curves[(level, res.frequency)] = (p_bem, p_ref)

    print(f"{'level':>5} {'panels':>7} {'f [Hz]':>8} {'ka':>7} {'|p| err':>10} {'scat err':>10}")
    for level, n, f, ka, e_tot, e_scat in rows:
        print(f"{level:>5d} {n:>7d} {f:>8.1f} {ka:>7.3f} {e_tot:>10.2e} {e_scat:>10.2e}")

    if SAVE_PNG:
        fig, axes = plt.subplots(1, len(FREQUENCIES), figsize=(4 * len(FREQUENCIES), 3.5))
        theta = np.degrees(np.arctan2(points[:, 1], points[:, 0]))
        order = np.argsort(theta)
        for ax, f in zip(np.atleast_1d(axes), FREQUENCIES):
            for level in LEVELS:
                p_bem, p_ref = curves[(level, f)]
                ax.plot(theta[order], p_bem[order], label=f"BEM level {level}")
            ax.plot(theta[order], p_ref[order], "k--", label="analytic")
            ax.set_title(f"{f:g} Hz")
            ax.set_xlabel("angle [deg]")
            ax.set_ylabel("|p| [Pa]")
        np.atleast_1d(axes)[0].legend()
        fig.tight_layout()
        fig.savefig(PNG_NAME, dpi=150)
        print(f"Saved {PNG_NAME}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
