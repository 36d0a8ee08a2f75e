import logging
from dataclasses import dataclass, field

import numpy as np

logger = logging.getLogger(__name__)

UNIT_NORM_TOLERANCE = 1e-5
ALIGNED_VECTORS_EPSILON = 1e-3  # ~2.5 deg aperture
VERTICAL = np.array([0.0, 0.0, 1.0])


@dataclass
class Pose3:
    """
    Rigid body pose of the camera in the world frame.

    rotation maps camera-frame vectors to world frame, translation is the
    camera position in world frame.
    """

    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        self.rotation = np.asarray(self.rotation, dtype=np.float64).reshape(3, 3)
        self.translation = np.asarray(self.translation, dtype=np.float64).reshape(3)

    def transform_to(self, points):
        """World frame -> camera frame. Accepts (3,) or (N, 3)."""
        points = np.asarray(points, dtype=np.float64)
        return (points - self.translation) @ self.rotation

    def transform_from(self, points):
        """Camera frame -> world frame. Accepts (3,) or (N, 3)."""
        points = np.asarray(points, dtype=np.float64)
        return points @ self.rotation.T + self.translation


def check_unit_norm(vector, name="vector"):
    norm = np.linalg.norm(vector)
    if abs(norm - 1.0) > UNIT_NORM_TOLERANCE:
        raise ValueError(f"Expected unit norm for {name}, got norm {norm:.6f}")


def check_tolerance(tolerance):
    if not 0.0 < tolerance < 1.0:
        raise ValueError(f"Tolerance must lie in (0, 1), got {tolerance}")


# ============ TRIANGLE QUALITY ============


def triangle_side_lengths(p1, p2, p3):
    """Return (d12, d23, d31)."""
    return (
        float(np.linalg.norm(p1 - p2)),
        float(np.linalg.norm(p2 - p3)),
        float(np.linalg.norm(p3 - p1)),
    )


def ratio_smallest_largest_side(d12, d23, d31):
    max_side = max(d12, d23, d31)
    if max_side == 0.0:
        return 0.0
    return min(d12, d23, d31) / max_side


def ratio_tangential_radial_displacement(points_camera):
    """
    How much a triangle extends across the viewing rays vs along them.

    Args:
        points_camera: (3, 3) vertices in camera frame

    Returns:
        ratio: tangential / radial extent, inf for a fronto-parallel triangle
    """
    points_camera = np.asarray(points_camera, dtype=np.float64)
    depths = points_camera[:, 2]
    min_z, max_z = depths.min(), depths.max()
    if min_z <= 0.0:
        # Behind or on the camera plane, no meaningful elongation
        return 0.0

    rescaled = points_camera / depths[:, np.newaxis]
    tangential = 0.0
    for i in range(len(rescaled)):
        for j in range(i + 1, len(rescaled)):
            tangential = max(tangential, np.linalg.norm(rescaled[i] - rescaled[j]))
    tangential *= min_z

    radial = max_z - min_z
    if radial == 0.0:
        return np.inf
    return tangential / radial


def is_bad_triangle(
    polygon,
    camera_pose,
    min_ratio_largest_smallest_side=None,
    min_elongation_ratio=None,
    max_triangle_side=None,
):
    """
    Reject degenerate or outlier triangles.

    Each threshold is either an enabled value or None (disabled). Disabled
    tests are not computed.

    Args:
        polygon: Sequence of 3 Vertex
        camera_pose: Pose3 of the camera observing the triangle
        min_ratio_largest_smallest_side: min allowed shortest/longest side
        min_elongation_ratio: min allowed tangential/radial displacement
        max_triangle_side: max allowed side length

    Returns:
        True if any enabled test fails
    """
    if len(polygon) != 3:
        raise ValueError(f"Expecting 3 vertices in triangle, got {len(polygon)}")
    p1, p2, p3 = (vertex.position for vertex in polygon)

    d12, d23, d31 = triangle_side_lengths(p1, p2, p3)

    if min_ratio_largest_smallest_side is not None:
        ratio_sides = ratio_smallest_largest_side(d12, d23, d31)
        if ratio_sides < min_ratio_largest_smallest_side:
            return True

    if max_triangle_side is not None:
        if max(d12, d23, d31) > max_triangle_side:
            return True

    if min_elongation_ratio is not None:
        points_camera = camera_pose.transform_to(np.stack([p1, p2, p3]))
        if ratio_tangential_radial_displacement(points_camera) < min_elongation_ratio:
            return True

    return False


# ============ NORMALS ============


def calculate_normal(p1, p2, p3):
    """
    Unit normal of triangle (p1, p2, p3), or None if it is degenerate.

    Degenerate means a zero-length edge from p1 or the two edges from p1
    being (anti)parallel within ALIGNED_VECTORS_EPSILON.
    """
    v21 = np.asarray(p2, dtype=np.float64) - p1
    v31 = np.asarray(p3, dtype=np.float64) - p1

    v21_norm = np.linalg.norm(v21)
    v31_norm = np.linalg.norm(v31)
    if v21_norm == 0.0 or v31_norm == 0.0:
        logger.warning("Triangle with coincident vertices, no normal.")
        return None
    v21 = v21 / v21_norm
    v31 = v31 / v31_norm

    if abs(np.dot(v21, v31)) >= 1.0 - ALIGNED_VECTORS_EPSILON:
        logger.warning("Cross product of aligned vectors.")
        return None

    normal = np.cross(v21, v31)
    normal /= np.linalg.norm(normal)
    check_unit_norm(normal, "triangle normal")
    return normal


def is_normal_around_axis(axis, normal, tolerance):
    """Normal (anti)parallel to axis: |dot| > 1 - tolerance."""
    check_unit_norm(axis, "axis")
    check_unit_norm(normal, "normal")
    check_tolerance(tolerance)
    return abs(np.dot(normal, axis)) > 1.0 - tolerance


def is_normal_perpendicular_to_axis(axis, normal, tolerance):
    """Normal perpendicular to axis: |dot| < tolerance."""
    check_unit_norm(axis, "axis")
    check_unit_norm(normal, "normal")
    check_tolerance(tolerance)
    return abs(np.dot(normal, axis)) < tolerance


def cluster_normals_around_axis(axis, normals, tolerance):
    """Indices of the normals around axis. None entries are skipped."""
    return [
        idx
        for idx, normal in enumerate(normals)
        if normal is not None and is_normal_around_axis(axis, normal, tolerance)
    ]


def cluster_normals_perpendicular_to_axis(axis, normals, tolerance):
    """Indices of the normals perpendicular to axis. None entries are skipped."""
    return [
        idx
        for idx, normal in enumerate(normals)
        if normal is not None
        and is_normal_perpendicular_to_axis(axis, normal, tolerance)
    ]


def get_longitude(normal, vertical=VERTICAL):
    """
    Angle of the normal's projection on the equatorial plane, in (-pi, pi].
    """
    check_unit_norm(normal, "normal")
    check_unit_norm(vertical, "vertical")
    equatorial = normal - np.dot(vertical, normal) * vertical
    if equatorial[0] == 0.0 and equatorial[1] == 0.0:
        raise ValueError(f"Normal {normal} has no equatorial component")
    return float(np.arctan2(equatorial[1], equatorial[0]))


# ============ PLANE DISTANCES ============


def is_point_at_distance_from_plane(
    point, plane_distance, plane_normal, distance_tolerance
):
    check_unit_norm(plane_normal, "plane normal")
    if distance_tolerance < 0.0:
        raise ValueError(f"Distance tolerance must be >= 0, got {distance_tolerance}")
    return abs(plane_distance - np.dot(point, plane_normal)) <= distance_tolerance


def is_polygon_at_distance_from_plane(
    polygon, plane_distance, plane_normal, distance_tolerance
):
    """True if every vertex of polygon is within tolerance of the plane."""
    return all(
        is_point_at_distance_from_plane(
            vertex.position, plane_distance, plane_normal, distance_tolerance
        )
        for vertex in polygon
    )
