from dataclasses import dataclass, field

import numpy as np

INVALID_LMK_ID = -1


@dataclass
class Frame:
    """
    Keypoints of one image and the landmark id tracked at each of them.

    keypoints: (N, 2) pixel coordinates
    landmarks: (N,) landmark ids, INVALID_LMK_ID where none is tracked
    """

    keypoints: np.ndarray
    landmarks: np.ndarray
    pixel_tolerance: float = 1e-3

    def __post_init__(self):
        self.keypoints = np.asarray(self.keypoints, dtype=np.float64).reshape(-1, 2)
        self.landmarks = np.asarray(self.landmarks, dtype=np.int64).reshape(-1)
        if len(self.keypoints) != len(self.landmarks):
            raise ValueError(
                f"Frame has {len(self.keypoints)} keypoints "
                f"but {len(self.landmarks)} landmark ids"
            )

    def find_lmk_id_from_pixel(self, pixel):
        """Landmark id of the keypoint at `pixel`, INVALID_LMK_ID if none."""
        if len(self.keypoints) == 0:
            return INVALID_LMK_ID
        offsets = np.abs(self.keypoints - np.asarray(pixel, dtype=np.float64))
        matches = np.flatnonzero(np.all(offsets <= self.pixel_tolerance, axis=1))
        if len(matches) == 0:
            return INVALID_LMK_ID
        return int(self.landmarks[matches[0]])


@dataclass
class StereoFrame:
    """
    Left frame plus stereo triangulated keypoints.

    keypoints_3d: (N, 3) points in the left camera frame, one per left keypoint
    right_keypoints_valid: (N,) True where stereo matching succeeded
    """

    left_frame: Frame
    keypoints_3d: np.ndarray
    right_keypoints_valid: np.ndarray = field(default=None)

    def __post_init__(self):
        n = len(self.left_frame.landmarks)
        self.keypoints_3d = np.asarray(self.keypoints_3d, dtype=np.float64).reshape(
            -1, 3
        )
        if self.right_keypoints_valid is None:
            self.right_keypoints_valid = np.ones(n, dtype=bool)
        self.right_keypoints_valid = np.asarray(self.right_keypoints_valid, dtype=bool)
        if len(self.keypoints_3d) != n or len(self.right_keypoints_valid) != n:
            raise ValueError(
                f"StereoFrame expects {n} 3D keypoints and statuses, got "
                f"{len(self.keypoints_3d)} and {len(self.right_keypoints_valid)}"
            )
