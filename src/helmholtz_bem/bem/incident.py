# helmholtz_bem/bem/incident.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

from ..errors import ConfigurationError
from .kernels import FOURPI


class WaveType(Enum):
    PLANE_WAVE = "PlaneWave"
    SPHERICAL_WAVE = "SphericalWave"


@dataclass(frozen=True, slots=True)
class IncidentWave:
    """
    ``origin`` is the propagation direction for a plane wave (phase referenced
    at the coordinate origin) and the source location for a spherical wave.
    """
    origin: tuple[float, float, float]
    wave_type: WaveType
    amplitude: complex

    @property
    def is_silent(self) -> bool:
        return self.amplitude == 0


def incident_field(wave: IncidentWave, k: float, points) -> np.ndarray:
    """
    PlaneWave:      A exp(i k d . x),  d = origin / |origin|
    SphericalWave:  A exp(i k r) / (4 pi r),  r = |x - origin|
    """
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim != 2 or pts.shape[1] != 3:
        raise ConfigurationError(f"points must have shape (P,3), got {pts.shape}")
    amp = complex(wave.amplitude)
    if amp == 0:
        return np.zeros(pts.shape[0], dtype=np.complex128)

    origin = np.asarray(wave.origin, dtype=np.float64)
    wave_type = WaveType(wave.wave_type)
    if wave_type is WaveType.PLANE_WAVE:
        norm = np.linalg.norm(origin)
        if not norm > 0.0:
            raise ConfigurationError("plane-wave direction (origin) must be non-zero")
        d = origin / norm
        return amp * np.exp(1j * k * (pts @ d))

    r = np.linalg.norm(pts - origin, axis=1)
    if np.any(r <= 0.0):
        raise ConfigurationError(
            f"point {int(np.argmin(r))} coincides with the spherical-wave source"
        )
    return amp * np.exp(1j * k * r) / (FOURPI * r)
