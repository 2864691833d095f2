# helmholtz_bem/mesh/loader.py
from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from ..errors import ConfigurationError
from .preprocess import Mesh

LOG = logging.getLogger(__name__)


def _reader_for(mesh_path: Path):
    suffix = mesh_path.suffix.lower()
    if suffix not in (".vtk", ".vtu", ".vtp"):
        raise ConfigurationError(
            f"Unsupported mesh extension '{suffix}'. Use .vtk (legacy), .vtu or .vtp."
        )

    from vtkmodules.vtkIOLegacy import vtkGenericDataObjectReader
    from vtkmodules.vtkIOXML import vtkXMLPolyDataReader, vtkXMLUnstructuredGridReader

    if suffix == ".vtk":
        return vtkGenericDataObjectReader()
    if suffix == ".vtu":
        return vtkXMLUnstructuredGridReader()
    return vtkXMLPolyDataReader()


def load_mesh_from_vtk(mesh_path: Path, *, body_array: str = "body_index") -> Mesh:
    """
    Load a surface mesh from a legacy .vtk (unstructured grid or polydata),
    .vtu or .vtp file.

    The surface is extracted and triangulated with VTK, normals are made
    consistent and oriented outward, and the body tag of each element is read
    from the CellData array ``body_array`` (every element tagged 0 when the
    array is absent).
    """
    mesh_path = Path(mesh_path)
    if not mesh_path.exists():
        raise FileNotFoundError(mesh_path)

    reader = _reader_for(mesh_path)

    from vtkmodules.util.numpy_support import vtk_to_numpy
    from vtkmodules.vtkFiltersCore import vtkPolyDataNormals, vtkTriangleFilter
    from vtkmodules.vtkFiltersGeometry import vtkDataSetSurfaceFilter

    reader.SetFileName(str(mesh_path))
    reader.Update()
    data = reader.GetOutput()
    if data is None or data.GetNumberOfPoints() == 0:
        raise ConfigurationError(f"VTK reader produced no output for {mesh_path}")

    surf = vtkDataSetSurfaceFilter()
    surf.SetInputData(data)
    surf.Update()

    tri_f = vtkTriangleFilter()
    tri_f.SetInputData(surf.GetOutput())
    tri_f.PassVertsOff()
    tri_f.PassLinesOff()
    tri_f.Update()

    n_f = vtkPolyDataNormals()
    n_f.SetInputData(tri_f.GetOutput())
    n_f.ComputePointNormalsOff()
    n_f.ComputeCellNormalsOn()
    n_f.SplittingOff()
    n_f.ConsistencyOn()
    n_f.AutoOrientNormalsOn()
    n_f.Update()
    tri_poly = n_f.GetOutput()

    points = tri_poly.GetPoints()
    if points is None:
        raise ConfigurationError("Mesh has no points.")
    n_cells = tri_poly.GetNumberOfCells()
    if n_cells <= 0:
        raise ConfigurationError("No surface cells in mesh.")

    cell_data = tri_poly.GetCellData()
    normals = cell_data.GetArray("Normals")
    if normals is None:
        raise ConfigurationError(
            "Expected CellData 'Normals' after vtkPolyDataNormals, but not found."
        )

    elements = np.empty((n_cells, 3), dtype=np.int64)
    for cid in range(n_cells):
        cell = tri_poly.GetCell(cid)
        if cell is None or cell.GetNumberOfPoints() != 3:
            raise ConfigurationError(f"Cell {cid} is not a triangle after triangulation.")
        elements[cid] = (cell.GetPointId(0), cell.GetPointId(1), cell.GetPointId(2))

    body_vtk = cell_data.GetArray(body_array)
    if body_vtk is None:
        LOG.warning("CellData array '%s' not found in %s; tagging all elements as body 0",
                    body_array, mesh_path.name)
        body = np.zeros(n_cells, dtype=np.int64)
    else:
        body = np.rint(vtk_to_numpy(body_vtk).reshape(n_cells, -1)[:, 0]).astype(np.int64)

    nodes = vtk_to_numpy(points.GetData()).astype(np.float64)
    LOG.info("Loaded %s: %d nodes, %d triangles, bodies %s",
             mesh_path.name, nodes.shape[0], n_cells, sorted(set(body.tolist())))
    return Mesh.from_arrays(
        nodes, elements, body=body, normals=vtk_to_numpy(normals).astype(np.float64)
    )
