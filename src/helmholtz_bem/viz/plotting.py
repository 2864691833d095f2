# helmholtz_bem/viz/plotting.py
from __future__ import annotations

import numpy as np
import matplotlib.pyplot as plt
from mpl_toolkits.mplot3d.art3d import Poly3DCollection


def plot_surface(ax, mesh, element_ids=None, face_vals=None, cmap: str = "viridis",
                 label: str = "|p| (Pa)"):
    """
    Plot surface panels as a Poly3DCollection.

    If `face_vals` is provided (one value per plotted panel), faces are coloured
    by those values and a colorbar is added to the figure.
    """
    faces_xyz = mesh.panel_vertices(element_ids)
    poly = Poly3DCollection(faces_xyz, linewidths=0.2)
    ax.add_collection3d(poly)
    poly.set_label("Surface")

    if face_vals is not None:
        face_vals = np.asarray(face_vals, dtype=float)
        norm = plt.Normalize(np.nanmin(face_vals), np.nanmax(face_vals))
        poly.set_facecolor(plt.get_cmap(cmap)(norm(face_vals)))
        poly.set_edgecolor("none")

        mappable = plt.cm.ScalarMappable(norm=norm, cmap=cmap)
        mappable.set_array(face_vals)
        ax.figure.colorbar(mappable, ax=ax, shrink=0.5, pad=0.02, label=label)
    else:
        poly.set_facecolor("lightblue")
        poly.set_alpha(0.5)
        poly.set_edgecolors("k")

    return poly


def plot_field_points(ax, field_points, values=None, cmap: str = "magma", label: str = "Field points"):
    pts = np.asarray(field_points, dtype=float)
    if values is None:
        return ax.scatter(pts[:, 0], pts[:, 1], pts[:, 2], c="k", s=8, label=label)
    sc = ax.scatter(pts[:, 0], pts[:, 1], pts[:, 2], c=np.asarray(values, dtype=float),
                    cmap=cmap, s=12, label=label)
    ax.figure.colorbar(sc, ax=ax, shrink=0.5, pad=0.08)
    return sc


def set_axes_equal(ax) -> None:
    """
    Sets equal scaling for a 3D plot so that the scale for x, y, and z axes are equal.
    This ensures that a cube appears as a cube rather than a rectangular prism.
    """
    x_limits = ax.get_xlim3d()
    y_limits = ax.get_ylim3d()
    z_limits = ax.get_zlim3d()

    x_range = abs(x_limits[1] - x_limits[0])
    x_middle = np.mean(x_limits)
    y_range = abs(y_limits[1] - y_limits[0])
    y_middle = np.mean(y_limits)
    z_range = abs(z_limits[1] - z_limits[0])
    z_middle = np.mean(z_limits)

    # The plot radius is half of the maximum range
    plot_radius = 0.5 * max([x_range, y_range, z_range])

    ax.set_xlim3d([x_middle - plot_radius, x_middle + plot_radius])
    ax.set_ylim3d([y_middle - plot_radius, y_middle + plot_radius])
    ax.set_zlim3d([z_middle - plot_radius, z_middle + plot_radius])
