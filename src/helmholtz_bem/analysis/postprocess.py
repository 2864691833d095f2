# helmholtz_bem/analysis/postprocess.py
from __future__ import annotations

import csv
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np

from ..errors import ConfigurationError

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FPResult:
    """Field-point result of one frequency. Arrays are read-only."""
    frequency: float
    phi_fp: np.ndarray       # total potential (scattered + incident)
    phi_inc_fp: np.ndarray   # incident potential
    radiated_power: float

    def __post_init__(self):
        for name in ("phi_fp", "phi_inc_fp"):
            a = np.array(getattr(self, name), dtype=np.complex128)
            a.setflags(write=False)
            object.__setattr__(self, name, a)

    @property
    def scattered(self) -> np.ndarray:
        return self.phi_fp - self.phi_inc_fp

    def pressure(self, mass_density: float) -> np.ndarray:
        return 1j * 2.0 * math.pi * self.frequency * mass_density * self.phi_fp

    def incident_pressure(self, mass_density: float) -> np.ndarray:
        return 1j * 2.0 * math.pi * self.frequency * mass_density * self.phi_inc_fp


_FP_HEADER = [
    "frequency", "point", "x", "y", "z",
    "phi_re", "phi_im", "phi_inc_re", "phi_inc_im",
    "p_abs", "p_inc_abs", "p_scat_abs", "radiated_power",
]


def _rows(result: FPResult, field_points: np.ndarray, mass_density: float, indices):
    p = result.pressure(mass_density)
    p_inc = result.incident_pressure(mass_density)
    for i in indices:
        x, y, z = field_points[i]
        yield [
            repr(result.frequency), i, x, y, z,
            result.phi_fp[i].real, result.phi_fp[i].imag,
            result.phi_inc_fp[i].real, result.phi_inc_fp[i].imag,
            abs(p[i]), abs(p_inc[i]), abs(p[i] - p_inc[i]), result.radiated_power,
        ]


def write_fp_csv(path: Path, results: Sequence[FPResult], field_points, mass_density: float) -> Path:
    """One row per field point per frequency."""
    path = Path(path)
    field_points = np.asarray(field_points, dtype=np.float64)
    for r in results:
        if r.phi_fp.shape[0] != field_points.shape[0]:
            raise ConfigurationError(
                f"result at {r.frequency:g} Hz has {r.phi_fp.shape[0]} values, "
                f"expected {field_points.shape[0]} field points"
            )
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        writer.writerow(_FP_HEADER)
        for r in results:
            writer.writerows(_rows(r, field_points, mass_density, range(field_points.shape[0])))
    LOG.info("Wrote %d frequency result(s) to %s", len(results), path)
    return path


def write_point_sweep_csv(path: Path, results: Sequence[FPResult], field_points, point_index: int,
                          mass_density: float) -> Path:
    """One row per frequency at a single field point."""
    path = Path(path)
    field_points = np.asarray(field_points, dtype=np.float64)
    if not 0 <= int(point_index) < field_points.shape[0]:
        raise ConfigurationError(
            f"point_index {point_index} out of range for {field_points.shape[0]} field points"
        )
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        writer.writerow(_FP_HEADER)
        for r in results:
            writer.writerows(_rows(r, field_points, mass_density, [int(point_index)]))
    LOG.info("Wrote sweep at field point %d to %s", int(point_index), path)
    return path
