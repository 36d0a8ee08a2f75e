import pytest

from mesh_segmentation import Frame, Mesher, Pose3

from .helpers import SEGMENTATION_PARAMS, grid_patch, pixel_of


@pytest.fixture
def identity_pose():
    return Pose3()


@pytest.fixture
def make_frame():
    """Frame with one keypoint per landmark id, at pixel_of(lmk_id)."""

    def _make(lmk_ids):
        keypoints = [pixel_of(lmk_id) for lmk_id in lmk_ids]
        return Frame(keypoints, list(lmk_ids))

    return _make


@pytest.fixture
def make_mesh_2d():
    """2D triangles (6 floats) for triangles given as landmark id triplets."""

    def _make(triangles):
        return [
            [c for lmk_id in triangle for c in pixel_of(lmk_id)]
            for triangle in triangles
        ]

    return _make


@pytest.fixture
def room_scene():
    """A 0.4 m floor patch at z=0 and a 0.4 m wall patch at y=1."""
    floor_lmks, floor_triangles = grid_patch(0, [0, 0, 0], [1, 0, 0], [0, 1, 0])
    wall_lmks, wall_triangles = grid_patch(100, [0, 1, 0], [1, 0, 0], [0, 0, 1])
    landmarks = {**floor_lmks, **wall_lmks}
    return landmarks, floor_triangles + wall_triangles


@pytest.fixture
def room_mesher(room_scene, make_frame, make_mesh_2d, identity_pose):
    landmarks, triangles = room_scene
    mesher = Mesher(SEGMENTATION_PARAMS)
    mesher.update_mesh_3d(
        landmarks, make_mesh_2d(triangles), make_frame(landmarks), identity_pose
    )
    return mesher
