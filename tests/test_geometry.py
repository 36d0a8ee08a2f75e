import numpy as np
import pytest

from mesh_segmentation import Pose3, Vertex
from mesh_segmentation.geometry import (
    VERTICAL,
    calculate_normal,
    cluster_normals_around_axis,
    cluster_normals_perpendicular_to_axis,
    get_longitude,
    is_bad_triangle,
    is_normal_around_axis,
    is_normal_perpendicular_to_axis,
    is_point_at_distance_from_plane,
    is_polygon_at_distance_from_plane,
    ratio_tangential_radial_displacement,
)


def make_triangle(*points):
    return [Vertex(i, p) for i, p in enumerate(points, start=1)]


def test_pose_round_trip():
    angle = 0.3
    rotation = np.array(
        [
            [np.cos(angle), -np.sin(angle), 0.0],
            [np.sin(angle), np.cos(angle), 0.0],
            [0.0, 0.0, 1.0],
        ]
    )
    pose = Pose3(rotation, [1.0, -2.0, 0.5])
    points = np.array([[0.0, 0.0, 0.0], [1.0, 2.0, 3.0]])
    camera = pose.transform_to(points)
    np.testing.assert_allclose(pose.transform_from(camera), points, atol=1e-12)
    # Camera center maps to the origin of the camera frame
    np.testing.assert_allclose(
        pose.transform_to(pose.translation), np.zeros(3), atol=1e-12
    )


def test_normal_of_xy_triangle():
    normal = calculate_normal([0, 0, 0], [1, 0, 0], [0, 1, 0])
    np.testing.assert_allclose(normal, [0, 0, 1])


def test_normal_is_unit_and_orthogonal():
    rng = np.random.default_rng(0)
    for _ in range(20):
        p1, p2, p3 = rng.uniform(-5, 5, size=(3, 3))
        normal = calculate_normal(p1, p2, p3)
        if normal is None:
            continue
        assert np.linalg.norm(normal) == pytest.approx(1.0)
        assert np.dot(normal, p2 - p1) == pytest.approx(0.0, abs=1e-9)
        assert np.dot(normal, p3 - p1) == pytest.approx(0.0, abs=1e-9)


def test_degenerate_normals():
    # Collinear
    assert calculate_normal([0, 0, 0], [1, 0, 0], [2, 0, 0]) is None
    # Coincident
    assert calculate_normal([1, 1, 1], [1, 1, 1], [0, 1, 0]) is None


@pytest.mark.parametrize("tolerance", [0.01, 0.5, 0.99])
def test_axis_predicates(tolerance):
    x_axis = np.array([1.0, 0.0, 0.0])
    assert is_normal_around_axis(VERTICAL, VERTICAL, tolerance)
    assert is_normal_around_axis(VERTICAL, -VERTICAL, tolerance)
    assert not is_normal_around_axis(VERTICAL, x_axis, tolerance)
    assert is_normal_perpendicular_to_axis(VERTICAL, x_axis, tolerance)
    assert not is_normal_perpendicular_to_axis(VERTICAL, VERTICAL, tolerance)


def test_axis_predicates_check_inputs():
    with pytest.raises(ValueError):
        is_normal_around_axis(VERTICAL, np.array([0.0, 0.0, 2.0]), 0.1)
    with pytest.raises(ValueError):
        is_normal_perpendicular_to_axis(VERTICAL, VERTICAL, 1.0)
    with pytest.raises(ValueError):
        is_normal_around_axis(VERTICAL, VERTICAL, 0.0)


def test_cluster_normals():
    normals = [
        VERTICAL,
        None,
        np.array([0.0, 1.0, 0.0]),
        np.array([0.0, 0.0, -1.0]),
    ]
    assert cluster_normals_around_axis(VERTICAL, normals, 0.01) == [0, 3]
    assert cluster_normals_perpendicular_to_axis(VERTICAL, normals, 0.01) == [2]


def test_longitude():
    assert get_longitude(np.array([1.0, 0.0, 0.0])) == pytest.approx(0.0)
    assert get_longitude(np.array([0.0, 1.0, 0.0])) == pytest.approx(np.pi / 2)
    assert get_longitude(np.array([0.0, -1.0, 0.0])) == pytest.approx(-np.pi / 2)
    tilted = np.array([1.0, 1.0, 1.0]) / np.sqrt(3)
    assert get_longitude(tilted) == pytest.approx(np.pi / 4)
    with pytest.raises(ValueError):
        get_longitude(VERTICAL)


def test_distance_to_plane():
    assert is_point_at_distance_from_plane([0, 0, 1.05], 1.0, VERTICAL, 0.1)
    assert not is_point_at_distance_from_plane([0, 0, 1.2], 1.0, VERTICAL, 0.1)
    # Boundary is inclusive
    assert is_point_at_distance_from_plane([0, 0, 1.0], 1.0, VERTICAL, 0.0)

    polygon = make_triangle([0, 0, 1.0], [1, 0, 1.02], [0, 1, 1.3])
    assert not is_polygon_at_distance_from_plane(polygon, 1.0, VERTICAL, 0.1)
    assert is_polygon_at_distance_from_plane(polygon, 1.0, VERTICAL, 0.5)


def test_good_triangle_with_loose_thresholds(identity_pose):
    triangle = make_triangle([0, 0, 0], [1, 0, 0], [0, 1, 0])
    assert not is_bad_triangle(triangle, identity_pose, 0.1, None, 10.0)


def test_triangle_rejected_by_max_side(identity_pose):
    triangle = make_triangle([0, 0, 0], [1, 0, 0], [0, 1, 0])
    assert is_bad_triangle(triangle, identity_pose, 0.1, None, 0.5)


def test_all_tests_disabled(identity_pose):
    sliver = make_triangle([0, 0, 0], [100, 0, 0], [50, 0.001, 0])
    assert not is_bad_triangle(sliver, identity_pose)


def test_bad_triangle_monotone_in_thresholds(identity_pose):
    triangle = make_triangle([0, 0, 2], [0.3, 0, 2.1], [0.1, 0.25, 2.05])
    ratios = [None, 0.1, 0.3, 0.5, 0.7, 0.9]
    sides = [None, 2.0, 0.4, 0.3, 0.2, 0.1]
    for max_side in sides:
        verdicts = [
            is_bad_triangle(triangle, identity_pose, ratio, None, max_side)
            for ratio in ratios
        ]
        # Once rejected, stricter ratios keep rejecting
        assert verdicts == sorted(verdicts)
    for ratio in ratios:
        verdicts = [
            is_bad_triangle(triangle, identity_pose, ratio, None, max_side)
            for max_side in sides
        ]
        assert verdicts == sorted(verdicts)


def test_elongation(identity_pose):
    fronto_parallel = make_triangle([0, 0, 2], [0.2, 0, 2], [0, 0.2, 2])
    along_ray = make_triangle([0, 0, 1], [0, 0.01, 3], [0.01, 0, 2])
    behind = make_triangle([0, 0, -1], [0.2, 0, -1], [0, 0.2, -1.1])

    assert not is_bad_triangle(fronto_parallel, identity_pose, None, 0.5, None)
    assert is_bad_triangle(along_ray, identity_pose, None, 0.5, None)
    assert is_bad_triangle(behind, identity_pose, None, 0.5, None)
    # Disabled elongation test lets everything through
    assert not is_bad_triangle(along_ray, identity_pose, None, None, None)


def test_elongation_uses_camera_pose():
    # Camera 5 m above the origin looking down: world z is depth
    pose = Pose3(np.diag([1.0, -1.0, -1.0]), [0.0, 0.0, 5.0])
    on_floor = np.array([[0, 0, 0], [0.2, 0, 0], [0, 0.2, 0]], dtype=float)
    camera = pose.transform_to(on_floor)
    np.testing.assert_allclose(camera[:, 2], [5.0, 5.0, 5.0])
    assert ratio_tangential_radial_displacement(camera) == np.inf
    assert not is_bad_triangle(make_triangle(*on_floor), pose, None, 0.5, None)
