"""VTK mesh loader."""

import logging

import numpy as np
import pytest

pytest.importorskip("vtk")

from helmholtz_bem.errors import ConfigurationError  # noqa: E402
from helmholtz_bem.mesh.loader import load_mesh_from_vtk  # noqa: E402
from helmholtz_bem.mesh.preprocess import build_equation_map  # noqa: E402


def write_sphere(path, *, body_tag=2, array_name="body_index", radius=1.0):
    from vtkmodules.vtkCommonCore import vtkIntArray
    from vtkmodules.vtkFiltersSources import vtkSphereSource
    from vtkmodules.vtkIOLegacy import vtkPolyDataWriter
    from vtkmodules.vtkIOXML import vtkXMLPolyDataWriter

    src = vtkSphereSource()
    src.SetRadius(radius)
    src.SetThetaResolution(16)
    src.SetPhiResolution(10)
    src.Update()
    poly = src.GetOutput()

    if array_name is not None:
        tags = vtkIntArray()
        tags.SetName(array_name)
        for _ in range(poly.GetNumberOfCells()):
            tags.InsertNextValue(body_tag)
        poly.GetCellData().AddArray(tags)

    writer = vtkXMLPolyDataWriter() if path.suffix == ".vtp" else vtkPolyDataWriter()
    writer.SetFileName(str(path))
    writer.SetInputData(poly)
    writer.Write()
    return path


@pytest.mark.parametrize("suffix", [".vtp", ".vtk"])
def test_load_sphere(tmp_path, suffix):
    path = write_sphere(tmp_path / f"sphere{suffix}")
    mesh = load_mesh_from_vtk(path)
    assert mesh.elements.shape[1] == 3
    assert np.all(mesh.body == 2)
    # outward normals
    assert np.all(np.einsum("ij,ij->i", mesh.normals, mesh.centroids) > 0.0)
    eq = build_equation_map(mesh, 2)
    assert len(eq) == mesh.n_elements


def test_missing_body_array(tmp_path, caplog):
    path = write_sphere(tmp_path / "plain.vtp", array_name=None)
    with caplog.at_level(logging.WARNING):
        mesh = load_mesh_from_vtk(path)
    assert np.all(mesh.body == 0)
    assert "body_index" in caplog.text


def test_custom_body_array(tmp_path):
    path = write_sphere(tmp_path / "tagged.vtp", body_tag=5, array_name="region")
    mesh = load_mesh_from_vtk(path, body_array="region")
    assert np.all(mesh.body == 5)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_mesh_from_vtk(tmp_path / "nope.vtp")


def test_unsupported_extension(tmp_path):
    path = tmp_path / "mesh.stl"
    path.write_text("solid\nendsolid\n")
    with pytest.raises(ConfigurationError, match="Unsupported"):
        load_mesh_from_vtk(path)


def test_empty_file_is_configuration_error(tmp_path):
    path = tmp_path / "empty.vtp"
    path.write_text("")
    with pytest.raises(ConfigurationError):
        load_mesh_from_vtk(path)
