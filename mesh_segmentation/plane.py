from dataclasses import dataclass, field
from enum import Enum
from typing import List

import numpy as np

from .geometry import check_unit_norm


class ClusterTag(Enum):
    """Coarse plane category, only used for visualization."""

    WALL = 1
    GROUND = 2


@dataclass
class TriangleCluster:
    triangle_ids: List[int] = field(default_factory=list)
    cluster_tag: ClusterTag = ClusterTag.GROUND


@dataclass
class Plane:
    """
    Infinite plane {x : normal . x = distance} with its supporting landmarks.
    """

    plane_id: int
    normal: np.ndarray
    distance: float
    lmk_ids: List[int] = field(default_factory=list)
    triangle_cluster: TriangleCluster = field(default_factory=TriangleCluster)

    def __post_init__(self):
        self.normal = np.asarray(self.normal, dtype=np.float64).reshape(3)
        check_unit_norm(self.normal, f"normal of plane {self.symbol}")
        self.distance = float(self.distance)

    @property
    def symbol(self):
        return f"P{self.plane_id}"

    @property
    def cluster_tag(self):
        return self.triangle_cluster.cluster_tag

    def clear_membership(self):
        self.lmk_ids.clear()
        self.triangle_cluster.triangle_ids.clear()

    def geometric_equal(self, other, normal_tolerance, distance_tolerance):
        """
        Same physical plane within tolerances.

        Normals may be parallel or opposite, distances are compared in
        absolute value.
        """
        parallel = np.linalg.norm(self.normal - other.normal) < normal_tolerance
        opposite = np.linalg.norm(self.normal + other.normal) < normal_tolerance
        if not (parallel or opposite):
            return False
        return abs(abs(self.distance) - abs(other.distance)) < distance_tolerance

    def __repr__(self):
        nx, ny, nz = self.normal
        return (
            f"Plane({self.symbol}, normal=[{nx:.3f}, {ny:.3f}, {nz:.3f}], "
            f"distance={self.distance:.3f}, {self.cluster_tag.name.lower()}, "
            f"{len(self.lmk_ids)} lmks)"
        )
