from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import open3d as o3d

from .plane import ClusterTag

# Color map for plane categories
PLANE_COLORS = {
    ClusterTag.GROUND: [0.4, 0.2, 0.1],  # dark brown
    ClusterTag.WALL: [0.6, 0.6, 0.5],  # beige
}
DEFAULT_COLOR = [0.8, 0.2, 0.2]


def create_triangle_mesh(mesher, planes=None):
    """
    Open3D mesh of the current mesher state.

    Triangles of tracked planes are colored by their cluster tag.

    Args:
        mesher: Mesher instance
        planes: Planes to color, defaults to the mesher's tracked planes

    Returns:
        mesh: o3d.geometry.TriangleMesh
    """
    _, positions = mesher.get_vertices_mesh()
    faces = mesher.get_polygons_mesh()

    mesh = o3d.geometry.TriangleMesh()
    mesh.vertices = o3d.utility.Vector3dVector(positions)
    mesh.triangles = o3d.utility.Vector3iVector(faces.astype(np.int32))

    if planes is None:
        planes = mesher.get_planes()

    vertex_colors = np.tile(DEFAULT_COLOR, (len(positions), 1))
    for plane in planes:
        color = PLANE_COLORS.get(plane.cluster_tag, DEFAULT_COLOR)
        for triangle_id in plane.triangle_cluster.triangle_ids:
            if triangle_id < len(faces):
                vertex_colors[faces[triangle_id]] = color
    mesh.vertex_colors = o3d.utility.Vector3dVector(vertex_colors)

    if len(faces) > 0:
        mesh.compute_vertex_normals()
    return mesh


def save_mesh(mesher, output_path, planes=None):
    """Write the mesh to a PLY/OBJ file, format taken from the extension."""
    mesh = create_triangle_mesh(mesher, planes)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if not o3d.io.write_triangle_mesh(str(output_path), mesh):
        raise IOError(f"Could not write mesh to {output_path}")
    return output_path


def plot_histogram_1d(z_hist, peaks, output_dir, filename="histogram_1d.png"):
    """Height histogram with the selected peaks."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    bin_size = z_hist.edges[1] - z_hist.edges[0]
    fig, ax = plt.subplots(figsize=(14, 6))
    ax.bar(
        z_hist.bin_centers,
        z_hist.hist,
        width=bin_size * 0.8,
        alpha=0.7,
        color="lightblue",
        edgecolor="black",
    )
    ax.plot(z_hist.bin_centers, z_hist.smoothed, "b-", lw=1.5, label="Smoothed")
    ax.plot(
        [peak.value for peak in peaks],
        [peak.support for peak in peaks],
        "r*",
        markersize=12,
        label="Selected peaks",
    )

    ax.set_xlabel("Height (m)", fontsize=12, fontweight="bold")
    ax.set_ylabel("Votes", fontsize=12, fontweight="bold")
    ax.set_title("Height Histogram", fontsize=14, fontweight="bold")
    ax.legend()
    ax.grid(True, alpha=0.3)
    plt.tight_layout()

    save_path = output_dir / filename
    plt.savefig(save_path, dpi=150, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    return save_path


def plot_histogram_2d(hist_2d, peaks, output_dir, filename="histogram_2d.png"):
    """Wall (theta, distance) histogram with the extracted peaks."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(10, 8))
    image = ax.imshow(
        hist_2d.smoothed.T,
        origin="lower",
        aspect="auto",
        extent=[
            hist_2d.x_edges[0],
            hist_2d.x_edges[-1],
            hist_2d.y_edges[0],
            hist_2d.y_edges[-1],
        ],
        cmap="viridis",
    )
    fig.colorbar(image, ax=ax, label="Votes")
    ax.plot(
        [peak.x_value for peak in peaks],
        [peak.y_value for peak in peaks],
        "r*",
        markersize=14,
    )

    ax.set_xlabel("Theta (rad)", fontsize=12, fontweight="bold")
    ax.set_ylabel("Distance (m)", fontsize=12, fontweight="bold")
    ax.set_title("Wall Histogram", fontsize=14, fontweight="bold")
    plt.tight_layout()

    save_path = output_dir / filename
    plt.savefig(save_path, dpi=150, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    return save_path
