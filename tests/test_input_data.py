"""JSON input adapter."""

import json
from pathlib import Path

import numpy as np
import numpy.testing as npt
import pytest

from helmholtz_bem.analysis.input_data import UserInput, read_input_json, read_input_string
from helmholtz_bem.bem.assembly import ProblemType
from helmholtz_bem.bem.incident import WaveType
from helmholtz_bem.bem.system import BCType
from helmholtz_bem.errors import ConfigurationError

BASE = {
    "mesh_file": "meshes/sphere.vtk",
    "body_index": 1,
    "frequency": [100.0, 200.0],
    "sound_speed": 343.0,
    "mass_density": 1.21,
    "problem_type": "Exterior",
    "field_points": [[0.0, 0.0, 5.0], [5.0, 0.0, 0.0]],
    "incident_wave": {"origin": [0.0, 1.0, 0.0], "wave_type": "PlaneWave", "amplitude": [1.0, 0.5]},
    "surface_bc": {"bc_type": "Impedance", "value": [415.0, -20.0]},
    "output_file": "out/result.csv",
    "solver": {"quad_order": 3, "TAU_NEAR": 2.0},
}


def _data(**overrides):
    data = json.loads(json.dumps(BASE))
    data.update(overrides)
    return data


def test_from_dict():
    ui = UserInput.from_dict(_data())
    assert ui.body_index == 1
    assert ui.frequency == (100.0, 200.0)
    assert ui.problem_type is ProblemType.EXTERIOR
    assert ui.incident_wave.wave_type is WaveType.PLANE_WAVE
    assert ui.incident_wave.amplitude == 1.0 + 0.5j
    assert ui.surface_bc.bc_type is BCType.IMPEDANCE
    assert ui.surface_bc.value == 415.0 - 20.0j
    assert ui.solver.quad_order == 3 and ui.solver.TAU_NEAR == 2.0
    assert ui.field_points.shape == (2, 3)
    assert not ui.field_points.flags.writeable
    assert ui.wavenumber(343.0) == pytest.approx(2.0 * np.pi)


def test_relative_paths_resolve_against_base_dir(tmp_path):
    ui = UserInput.from_dict(_data(), base_dir=tmp_path)
    assert ui.mesh_file == tmp_path / "meshes" / "sphere.vtk"
    assert ui.output_file == tmp_path / "out" / "result.csv"


def test_read_input_json(tmp_path):
    path = tmp_path / "case.json"
    path.write_text(json.dumps(_data()), encoding="utf-8")
    ui = read_input_json(path)
    assert ui.mesh_file == tmp_path / "meshes" / "sphere.vtk"
    assert isinstance(ui.output_file, Path)


@pytest.mark.parametrize("spacing, expected", [
    ("linear", [10.0, 20.0, 30.0]),
    ("log", [10.0, 100.0, 1000.0]),
])
def test_frequency_ranges(spacing, expected):
    stop = expected[-1]
    ui = UserInput.from_dict(_data(frequency={"start": 10.0, "stop": stop, "num": 3, "spacing": spacing}))
    npt.assert_allclose(ui.frequency, expected)


def test_single_frequency():
    assert UserInput.from_dict(_data(frequency=50)).frequency == (50.0,)


def test_per_element_bc_values():
    ui = UserInput.from_dict(_data(surface_bc={"bc_type": "Pressure", "value": [[1.0, 0.0], [0.0, 2.0]]}))
    npt.assert_array_equal(ui.surface_bc.values(2), [1.0, 2.0j])


@pytest.mark.parametrize("overrides", [
    {"problem_type": "Outside"},
    {"incident_wave": {"origin": [1, 0, 0], "wave_type": "Cylindrical", "amplitude": [1, 0]}},
    {"surface_bc": {"bc_type": "Admittance", "value": [0, 0]}},
    {"solver": {"quad_order": 7, "bogus": 1}},
    {"frequency": {"start": 0.0, "stop": 10.0, "num": 3, "spacing": "log"}},
    {"frequency": {"start": 1.0, "stop": 10.0, "num": 3, "spacing": "octave"}},
    {"field_points": [[0.0, 1.0]]},
    {"sound_speed": "fast"},
])
def test_malformed_input(overrides):
    with pytest.raises(ConfigurationError):
        UserInput.from_dict(_data(**overrides))


def test_missing_key():
    data = _data()
    del data["sound_speed"]
    with pytest.raises(ConfigurationError, match="sound_speed"):
        UserInput.from_dict(data)


def test_invalid_json():
    with pytest.raises(ConfigurationError, match="invalid JSON"):
        read_input_string("{not json")


@pytest.mark.parametrize("overrides", [
    {"frequency": [-5.0]},
    {"frequency": []},
    {"sound_speed": 0.0},
    {"mass_density": -1.0},
    {"body_index": -1},
])
def test_validate(overrides):
    ui = UserInput.from_dict(_data(**overrides))
    with pytest.raises(ConfigurationError):
        ui.validate()
