# helmholtz_bem/analysis/input_data.py
"""
JSON input adapter.

Example::

    {
      "mesh_file": "sphere.vtk",
      "body_index": 0,
      "frequency": {"start": 10, "stop": 1000, "num": 20, "spacing": "log"},
      "sound_speed": 1500.0,
      "mass_density": 1000.0,
      "problem_type": "Exterior",
      "field_points": [[10, 0, 0], [0, 10, 0]],
      "incident_wave": {"origin": [1, 0, 0], "wave_type": "PlaneWave", "amplitude": [1, 0]},
      "surface_bc": {"bc_type": "NormalVelocity", "value": [0, 0]},
      "output_file": "result.csv",
      "solver": {"quad_order": 7, "TAU_NEAR": 1.0}
    }
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np

from ..bem.assembly import ProblemType
from ..bem.incident import IncidentWave, WaveType
from ..bem.quadrature import BEMConfig
from ..bem.system import BCType, BoundaryCondition
from ..errors import ConfigurationError

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UserInput:
    mesh_file: Path | None
    body_index: int
    frequency: tuple[float, ...]
    sound_speed: float
    mass_density: float
    problem_type: ProblemType
    field_points: np.ndarray
    incident_wave: IncidentWave
    surface_bc: BoundaryCondition
    output_file: Path | None = None
    solver: BEMConfig = field(default_factory=BEMConfig)

    def wavenumber(self, frequency: float) -> float:
        return 2.0 * math.pi * frequency / self.sound_speed

    def omega(self, frequency: float) -> float:
        return 2.0 * math.pi * frequency

    def validate(self) -> "UserInput":
        if not self.frequency:
            raise ConfigurationError("at least one frequency is required")
        for f in self.frequency:
            if not (math.isfinite(f) and f > 0.0):
                raise ConfigurationError(f"frequencies must be finite and > 0, got {f}")
        if not (math.isfinite(self.sound_speed) and self.sound_speed > 0.0):
            raise ConfigurationError(f"sound_speed must be > 0, got {self.sound_speed}")
        if not (math.isfinite(self.mass_density) and self.mass_density > 0.0):
            raise ConfigurationError(f"mass_density must be > 0, got {self.mass_density}")
        fp = np.asarray(self.field_points)
        if fp.ndim != 2 or fp.shape[1] != 3 or not np.isfinite(fp).all():
            raise ConfigurationError(f"field_points must be finite with shape (P,3), got {fp.shape}")
        if self.body_index < 0:
            raise ConfigurationError(f"body_index must be >= 0, got {self.body_index}")
        self.solver.validate()
        return self

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: Path | None = None) -> "UserInput":
        if not isinstance(data, dict):
            raise ConfigurationError("input must be a JSON object")
        try:
            mesh_file = data.get("mesh_file")
            if mesh_file is not None:
                mesh_file = Path(mesh_file)
                if base_dir is not None and not mesh_file.is_absolute():
                    mesh_file = Path(base_dir) / mesh_file
            output_file = data.get("output_file")
            if output_file is not None:
                output_file = Path(output_file)
                if base_dir is not None and not output_file.is_absolute():
                    output_file = Path(base_dir) / output_file

            inc = data["incident_wave"]
            bc = data["surface_bc"]
            field_points = np.array(data["field_points"], dtype=np.float64).reshape(-1, 3)
            field_points.setflags(write=False)
            return cls(
                mesh_file=mesh_file,
                body_index=int(data["body_index"]),
                frequency=_parse_frequency(data["frequency"]),
                sound_speed=float(data["sound_speed"]),
                mass_density=float(data["mass_density"]),
                problem_type=_enum(ProblemType, data["problem_type"], "problem_type"),
                field_points=field_points,
                incident_wave=IncidentWave(
                    origin=tuple(float(v) for v in inc["origin"]),
                    wave_type=_enum(WaveType, inc["wave_type"], "wave_type"),
                    amplitude=_complex(inc["amplitude"]),
                ),
                surface_bc=BoundaryCondition(
                    bc_type=_enum(BCType, bc["bc_type"], "bc_type"),
                    value=_bc_value(bc["value"]),
                ),
                output_file=output_file,
                solver=BEMConfig.from_dict(data.get("solver")),
            )
        except KeyError as exc:
            raise ConfigurationError(f"missing input key {exc}") from exc
        except (TypeError, ValueError) as exc:
            if isinstance(exc, ConfigurationError):
                raise
            raise ConfigurationError(f"malformed input: {exc}") from exc


def _enum(kind, value, name: str):
    try:
        return kind(value)
    except ValueError:
        allowed = [m.value for m in kind]
        raise ConfigurationError(f"{name} must be one of {allowed}, got {value!r}") from None


def _complex(value) -> complex:
    # [re, im] pair or a plain real number
    if isinstance(value, (int, float)):
        return complex(float(value), 0.0)
    re, im = value
    return complex(float(re), float(im))


def _bc_value(value):
    arr = np.asarray(value, dtype=np.float64)
    if arr.ndim <= 1:
        return _complex(value)
    if arr.ndim == 2 and arr.shape[1] == 2:
        return arr[:, 0] + 1j * arr[:, 1]
    raise ConfigurationError(f"surface_bc.value must be [re, im] or a list of pairs, got shape {arr.shape}")


def _parse_frequency(value) -> tuple[float, ...]:
    if isinstance(value, (int, float)):
        return (float(value),)
    if isinstance(value, dict):
        start = float(value["start"])
        stop = float(value["stop"])
        num = int(value["num"])
        spacing = str(value.get("spacing", "linear")).lower()
        if num < 1:
            raise ConfigurationError("frequency.num must be >= 1")
        if spacing in ("linear", "lin"):
            freqs = np.linspace(start, stop, num)
        elif spacing in ("log", "logarithmic"):
            if start <= 0.0 or stop <= 0.0:
                raise ConfigurationError("log-spaced frequencies need start, stop > 0")
            freqs = np.geomspace(start, stop, num)
        else:
            raise ConfigurationError(f"frequency.spacing must be 'linear' or 'log', got {spacing!r}")
        return tuple(float(f) for f in freqs)
    return tuple(float(f) for f in value)


def read_input_string(text: str, base_dir: Path | None = None) -> UserInput:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"invalid JSON input: {exc}") from exc
    return UserInput.from_dict(data, base_dir=base_dir)


def read_input_json(path: Path) -> UserInput:
    """Read a JSON input file; relative paths inside it resolve against its directory."""
    path = Path(path)
    LOG.info("Reading input file '%s'", path)
    with path.open("r", encoding="utf-8") as fh:
        text = fh.read()
    return read_input_string(text, base_dir=path.parent)
