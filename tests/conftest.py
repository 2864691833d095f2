"""Shared fixtures: sphere meshes and a UserInput factory."""

import math

import numpy as np
import pytest

from helmholtz_bem.analysis.input_data import UserInput
from helmholtz_bem.mesh.generators import icosphere

SOUND_SPEED = 1500.0
MASS_DENSITY = 1000.0


def frequency_for_ka(ka: float, radius: float = 1.0) -> float:
    return ka * SOUND_SPEED / (2.0 * math.pi * radius)


def ring_points(radius: float, n: int) -> np.ndarray:
    t = np.linspace(0.0, 2.0 * math.pi, n, endpoint=False)
    return np.column_stack([radius * np.cos(t), radius * np.sin(t), np.zeros(n)])


@pytest.fixture(scope="session")
def sphere_l1():
    return icosphere(1.0, 1)


@pytest.fixture(scope="session")
def sphere_l2():
    return icosphere(1.0, 2)


@pytest.fixture(scope="session")
def sphere_l3():
    return icosphere(1.0, 3)


@pytest.fixture
def make_input():
    """Build a UserInput from the rigid-sphere defaults, overriding any key."""

    def _make(**overrides) -> UserInput:
        data = {
            "mesh_file": None,
            "body_index": 0,
            "frequency": 10.0,
            "sound_speed": SOUND_SPEED,
            "mass_density": MASS_DENSITY,
            "problem_type": "Exterior",
            "field_points": ring_points(10.0, 12).tolist(),
            "incident_wave": {"origin": [1.0, 0.0, 0.0], "wave_type": "PlaneWave", "amplitude": [1.0, 0.0]},
            "surface_bc": {"bc_type": "NormalVelocity", "value": [0.0, 0.0]},
        }
        data.update(overrides)
        return UserInput.from_dict(data)

    return _make
