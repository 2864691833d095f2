# helmholtz_bem/mesh/preprocess.py
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass

import numpy as np

from ..errors import ConfigurationError

LOG = logging.getLogger(__name__)


def _readonly(a: np.ndarray) -> np.ndarray:
    a.setflags(write=False)
    return a


@dataclass(frozen=True, slots=True)
class Mesh:
    """
    Triangle surface mesh. Element winding always agrees with ``normals``
    (right-hand rule), and normals point outward from their body.
    """
    nodes: np.ndarray      # (P,3) float64
    elements: np.ndarray   # (E,3) int64
    body: np.ndarray       # (E,) int64
    normals: np.ndarray    # (E,3)
    centroids: np.ndarray  # (E,3)
    areas: np.ndarray      # (E,)

    @classmethod
    def from_arrays(cls, nodes, elements, body=None, normals=None, *, area_eps: float = 1e-12) -> "Mesh":
        nodes = np.array(nodes, dtype=np.float64)
        elements = np.array(elements)
        if nodes.ndim != 2 or nodes.shape[1] != 3:
            raise ConfigurationError(f"nodes must have shape (P,3), got {nodes.shape}")
        if not np.isfinite(nodes).all():
            raise ConfigurationError("nodes contain non-finite coordinates")
        if elements.ndim != 2 or elements.shape[1] != 3 or elements.shape[0] == 0:
            raise ConfigurationError(f"elements must have shape (E,3) with E > 0, got {elements.shape}")
        if not np.issubdtype(elements.dtype, np.integer):
            raise ConfigurationError("elements must hold integer node indices")
        elements = elements.astype(np.int64)
        bad = (elements < 0) | (elements >= nodes.shape[0])
        if bad.any():
            e = int(np.argwhere(bad.any(axis=1))[0, 0])
            raise ConfigurationError(
                f"element {e} references missing node(s) {elements[e].tolist()} "
                f"(mesh has {nodes.shape[0]} nodes)"
            )

        E = elements.shape[0]
        if body is None:
            body = np.zeros(E, dtype=np.int64)
        else:
            body = np.array(body).reshape(-1)
            if body.shape != (E,) or not np.issubdtype(body.dtype, np.integer):
                raise ConfigurationError(f"body must be an integer array of shape ({E},)")
            body = body.astype(np.int64)

        cross = _cross(nodes, elements)
        areas = 0.5 * np.linalg.norm(cross, axis=1)
        extent = float(np.ptp(nodes, axis=0).max()) if nodes.shape[0] else 0.0
        degenerate = ~(areas > area_eps * max(extent, 1.0) ** 2)
        if degenerate.any():
            e = int(np.argmax(degenerate))
            raise ConfigurationError(f"element {e} is degenerate (area={areas[e]:.3e})")

        if normals is not None:
            normals = np.asarray(normals, dtype=np.float64)
            if normals.shape != (E, 3):
                raise ConfigurationError(f"normals must have shape ({E},3), got {normals.shape}")
            flip = np.einsum("ij,ij->i", cross, normals) < 0.0
        else:
            flip = np.zeros(E, dtype=bool)
            for b in np.unique(body):
                sel = body == b
                if _signed_volume(nodes, elements[sel]) < 0.0:
                    flip[sel] = True
        if flip.any():
            LOG.debug("Flipping winding of %d element(s) to match outward normals", int(flip.sum()))
            elements[flip] = elements[flip][:, [0, 2, 1]]
            cross[flip] = -cross[flip]

        unit = cross / (2.0 * areas[:, None])
        centroids = nodes[elements].mean(axis=1)
        return cls(
            nodes=_readonly(nodes),
            elements=_readonly(elements),
            body=_readonly(body),
            normals=_readonly(unit),
            centroids=_readonly(centroids),
            areas=_readonly(areas),
        )

    @property
    def n_elements(self) -> int:
        return int(self.elements.shape[0])

    def panel_vertices(self, element_ids=None) -> np.ndarray:
        """(N,3,3) corner coordinates of the given elements (all when omitted)."""
        if element_ids is None:
            return self.nodes[self.elements]
        return self.nodes[self.elements[np.asarray(element_ids, dtype=np.int64)]]


def _cross(nodes: np.ndarray, elements: np.ndarray) -> np.ndarray:
    v0 = nodes[elements[:, 0]]
    v1 = nodes[elements[:, 1]]
    v2 = nodes[elements[:, 2]]
    return np.cross(v1 - v0, v2 - v0)


def _signed_volume(nodes: np.ndarray, elements: np.ndarray) -> float:
    v0 = nodes[elements[:, 0]]
    v1 = nodes[elements[:, 1]]
    v2 = nodes[elements[:, 2]]
    return float(np.einsum("ij,ij->i", v0, np.cross(v1, v2)).sum() / 6.0)


@dataclass(frozen=True, slots=True)
class EquationMap:
    """One unknown per panel of the selected body, in ascending element order."""
    body_index: int
    element_ids: np.ndarray  # (N,) ascending
    centroids: np.ndarray    # (N,3) collocation points
    normals: np.ndarray      # (N,3)
    areas: np.ndarray        # (N,)

    def __len__(self) -> int:
        return int(self.element_ids.shape[0])

    def unknown_of(self, element_id: int) -> int:
        i = int(np.searchsorted(self.element_ids, element_id))
        if i >= len(self) or self.element_ids[i] != element_id:
            raise ConfigurationError(
                f"element {element_id} is not part of body {self.body_index}"
            )
        return i


def _edge_counts(elements: np.ndarray) -> Counter:
    edges = []
    for a, b, c in elements:
        for i, j in ((a, b), (b, c), (c, a)):
            edges.append((i, j) if i < j else (j, i))
    return Counter(edges)


def build_equation_map(mesh: Mesh, body_index: int) -> EquationMap:
    body_index = int(body_index)
    element_ids = np.flatnonzero(mesh.body == body_index).astype(np.int64)
    if element_ids.size == 0:
        available = sorted(int(b) for b in np.unique(mesh.body))
        raise ConfigurationError(
            f"body_index {body_index} selects no elements (available: {available})"
        )

    cnt = _edge_counts(mesh.elements[element_ids])
    n_open = sum(1 for k in cnt.values() if k == 1)
    n_nonmanifold = sum(1 for k in cnt.values() if k > 2)
    if n_open or n_nonmanifold:
        LOG.warning(
            "Body %d is not a closed manifold surface: %d open edge(s), %d non-manifold edge(s)",
            body_index, n_open, n_nonmanifold,
        )

    LOG.info(
        "Equation map: body %d, %d unknowns, total area %.6g",
        body_index, element_ids.size, float(mesh.areas[element_ids].sum()),
    )
    return EquationMap(
        body_index=body_index,
        element_ids=_readonly(element_ids),
        centroids=_readonly(mesh.centroids[element_ids].copy()),
        normals=_readonly(mesh.normals[element_ids].copy()),
        areas=_readonly(mesh.areas[element_ids].copy()),
    )
