# helmholtz_bem/mesh/generators.py
from __future__ import annotations

import logging

import numpy as np

from .preprocess import Mesh

LOG = logging.getLogger(__name__)

_T = (1.0 + np.sqrt(5.0)) / 2.0
_ICO_NODES = np.array([
    [-1, _T, 0], [1, _T, 0], [-1, -_T, 0], [1, -_T, 0],
    [0, -1, _T], [0, 1, _T], [0, -1, -_T], [0, 1, -_T],
    [_T, 0, -1], [_T, 0, 1], [-_T, 0, -1], [-_T, 0, 1],
], dtype=np.float64)
_ICO_FACES = np.array([
    [0, 11, 5], [0, 5, 1], [0, 1, 7], [0, 7, 10], [0, 10, 11],
    [1, 5, 9], [5, 11, 4], [11, 10, 2], [10, 7, 6], [7, 1, 8],
    [3, 9, 4], [3, 4, 2], [3, 2, 6], [3, 6, 8], [3, 8, 9],
    [4, 9, 5], [2, 4, 11], [6, 2, 10], [8, 6, 7], [9, 8, 1],
], dtype=np.int64)


def _subdivide(nodes: list, faces: np.ndarray) -> np.ndarray:
    # 4-way midpoint split; midpoints shared between neighbours and pushed to the unit sphere
    midpoint: dict[tuple[int, int], int] = {}

    def mid(i: int, j: int) -> int:
        key = (i, j) if i < j else (j, i)
        if key not in midpoint:
            p = 0.5 * (nodes[i] + nodes[j])
            nodes.append(p / np.linalg.norm(p))
            midpoint[key] = len(nodes) - 1
        return midpoint[key]

    out = []
    for a, b, c in faces:
        ab, bc, ca = mid(a, b), mid(b, c), mid(c, a)
        out.extend(([a, ab, ca], [b, bc, ab], [c, ca, bc], [ab, bc, ca]))
    return np.array(out, dtype=np.int64)


def icosphere(radius: float = 1.0, subdivisions: int = 2, center=(0.0, 0.0, 0.0),
              body_index: int = 0) -> Mesh:
    """
    Sphere triangulated from a subdivided icosahedron (20 * 4**subdivisions
    near-equilateral faces), nodes on the sphere, normals outward.
    """
    if subdivisions < 0:
        raise ValueError("subdivisions must be >= 0")
    nodes = list(_ICO_NODES / np.linalg.norm(_ICO_NODES, axis=1)[:, None])
    faces = _ICO_FACES.copy()
    for _ in range(subdivisions):
        faces = _subdivide(nodes, faces)
    xyz = np.asarray(nodes) * float(radius) + np.asarray(center, dtype=np.float64)
    LOG.debug("icosphere: radius=%g, subdivisions=%d, %d nodes, %d faces",
              radius, subdivisions, len(xyz), len(faces))
    return Mesh.from_arrays(xyz, faces, body=np.full(len(faces), body_index, dtype=np.int64))


def combine_meshes(meshes) -> Mesh:
    """Concatenate meshes into one, keeping each element's body tag."""
    meshes = list(meshes)
    if not meshes:
        raise ValueError("combine_meshes needs at least one mesh")
    nodes, elements, body, normals = [], [], [], []
    offset = 0
    for m in meshes:
        nodes.append(m.nodes)
        elements.append(m.elements + offset)
        body.append(m.body)
        normals.append(m.normals)
        offset += m.nodes.shape[0]
    return Mesh.from_arrays(
        np.vstack(nodes), np.vstack(elements), body=np.concatenate(body), normals=np.vstack(normals)
    )
