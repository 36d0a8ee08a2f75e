"""Incremental landmark mesh and ground/wall plane segmentation."""
from .config import DEFAULT_PARAMS, load_config
from .frame import Frame, StereoFrame
from .geometry import Pose3
from .mesh import Mesh3D, Vertex
from .mesher import Mesher, associate_planes
from .plane import ClusterTag, Plane, TriangleCluster

__all__ = [
    "DEFAULT_PARAMS",
    "load_config",
    "Frame",
    "StereoFrame",
    "Pose3",
    "Mesh3D",
    "Vertex",
    "Mesher",
    "associate_planes",
    "ClusterTag",
    "Plane",
    "TriangleCluster",
]
