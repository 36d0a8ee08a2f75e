"""
Incremental 3D mesh from per-frame landmarks, and plane segmentation on it.

The Mesher owns the mesh and the set of tracked planes. Every public call
works on copies of that state and only commits them once the call finishes,
so a call that raises leaves the previous mesh and planes untouched.
"""

import copy
import logging

import numpy as np

from .config import load_config, threshold
from .frame import INVALID_LMK_ID
from .geometry import (
    VERTICAL,
    calculate_normal,
    get_longitude,
    is_bad_triangle,
    is_normal_around_axis,
    is_normal_perpendicular_to_axis,
    is_polygon_at_distance_from_plane,
)
from .histogram import (
    Histogram1D,
    Histogram2D,
    remove_close_peaks,
    select_peaks_by_support,
)
from .mesh import Mesh3D, Vertex
from .plane import ClusterTag, Plane, TriangleCluster

logger = logging.getLogger(__name__)


# ============ NEW PLANES FROM HISTOGRAMS ============


def segment_horizontal_planes(z_hist, z_components, plane_id, params):
    """
    Horizontal planes from the height histogram.

    Args:
        z_hist: Histogram1D, recomputed here
        z_components: Heights of the vertices of horizontal triangles
        plane_id: First id to give to a new plane
        params: Mesher parameters

    Returns:
        planes: New ground planes, without landmarks
        plane_id: Next free plane id
    """
    z_hist.calculate(z_components)
    peaks = z_hist.get_local_maximum(
        params["z_histogram_gaussian_kernel_size"],
        params["z_histogram_window_size"],
        params["z_histogram_peak_per"],
        params["z_histogram_min_support"],
    )
    logger.info("# of peaks in 1D histogram = %d", len(peaks))

    peaks = remove_close_peaks(peaks, params["z_histogram_min_separation"])
    selected = select_peaks_by_support(
        peaks, params["z_histogram_max_number_of_peaks_to_select"]
    )

    planes = []
    for peak in selected:
        plane = Plane(
            plane_id,
            VERTICAL.copy(),
            peak.value,
            triangle_cluster=TriangleCluster(cluster_tag=ClusterTag.GROUND),
        )
        logger.debug(
            "Segmented an horizontal plane %s at distance %.3f (support %.1f)",
            plane.symbol,
            peak.value,
            peak.support,
        )
        planes.append(plane)
        plane_id += 1

    if params["visualize_histogram_1d"]:
        from .visualization import plot_histogram_1d

        plot_histogram_1d(z_hist, selected, params["histogram_output_dir"])

    return planes, plane_id


def segment_walls(hist_2d, walls, plane_id, params):
    """
    Vertical planes from the (theta, distance) histogram.

    Returns:
        planes: New wall planes, without landmarks
        plane_id: Next free plane id
    """
    hist_2d.calculate(walls)
    peaks = hist_2d.get_local_maximum(
        params["hist_2d_gaussian_kernel_size"],
        params["hist_2d_nr_of_local_max"],
        params["hist_2d_min_support"],
        params["hist_2d_min_dist_btw_local_max"],
    )
    logger.info("# of peaks in 2D histogram = %d", len(peaks))

    planes = []
    for peak in peaks:
        theta = peak.x_value
        normal = np.array([np.cos(theta), np.sin(theta), 0.0])
        plane = Plane(
            plane_id,
            normal,
            peak.y_value,
            triangle_cluster=TriangleCluster(cluster_tag=ClusterTag.WALL),
        )
        logger.debug(
            "Segmented a wall plane %s in bin %s: theta %.3f, distance %.3f",
            plane.symbol,
            peak.pos,
            theta,
            peak.y_value,
        )
        planes.append(plane)
        plane_id += 1

    if params["visualize_histogram_2d"]:
        from .visualization import plot_histogram_2d

        plot_histogram_2d(hist_2d, peaks, params["histogram_output_dir"])

    return planes, plane_id


# ============ PLANE ASSOCIATION ============


def associate_planes(
    segmented_planes,
    planes,
    normal_tolerance,
    distance_tolerance,
    do_double_association=True,
):
    """
    Match freshly segmented planes against the tracked ones.

    Tracked planes are scanned in order and the first geometric match decides.
    A tracked plane that was already taken by another segmented plane is
    either accepted again (do_double_association) or skipped so the scan goes
    on with the next tracked plane.

    Returns:
        non_associated: Copies of the segmented planes with no match
        associations: List of (segmented plane id, tracked plane id)
    """
    if len(planes) == 0:
        logger.info(
            "No tracked planes, copying the %d segmented planes, "
            "skipping data association.",
            len(segmented_planes),
        )
        return copy.deepcopy(list(segmented_planes)), []

    if len(segmented_planes) == 0:
        logger.warning("No segmented planes.")

    associated_plane_ids = set()
    associations = []
    non_associated = []
    for segmented_plane in segmented_planes:
        match = None
        for plane in planes:
            if not plane.geometric_equal(
                segmented_plane, normal_tolerance, distance_tolerance
            ):
                continue

            if plane.plane_id not in associated_plane_ids:
                logger.debug(
                    "Tracked plane %s associated with segmented plane %s",
                    plane.symbol,
                    segmented_plane.symbol,
                )
                associated_plane_ids.add(plane.plane_id)
                match = plane
                break

            logger.error(
                "Double plane association of tracked plane %s "
                "with segmented plane %s.",
                plane.symbol,
                segmented_plane.symbol,
            )
            if do_double_association:
                logger.error("Doing double plane association of tracked plane.")
                match = plane
                break
            logger.error(
                "Avoiding double plane association, searching for another "
                "tracked plane."
            )

        if match is None:
            logger.info("Adding %s as a new plane.", segmented_plane.symbol)
            non_associated.append(copy.deepcopy(segmented_plane))
        else:
            associations.append((segmented_plane.plane_id, match.plane_id))

    return non_associated, associations


# ============ MESHER ============


class Mesher:
    def __init__(self, params=None):
        self.params = load_config(overrides=params)

        self._mesh = Mesh3D()
        self._planes = []
        self._next_plane_id = 0

        self.z_hist = Histogram1D(
            self.params["z_histogram_bins"],
            (
                self.params["z_histogram_min_range"],
                self.params["z_histogram_max_range"],
            ),
        )
        self.hist_2d = Histogram2D(
            (self.params["hist_2d_theta_bins"], self.params["hist_2d_distance_bins"]),
            (
                self.params["hist_2d_theta_range_min"],
                self.params["hist_2d_theta_range_max"],
            ),
            (
                self.params["hist_2d_distance_range_min"],
                self.params["hist_2d_distance_range_max"],
            ),
        )

    # ============ MESH UPDATE ============

    def update_mesh_3d(
        self, points_with_id_vio, mesh_2d, frame, camera_pose, stereo_frame=None
    ):
        """
        Add the triangles of one frame and reduce the mesh to the time horizon.

        Args:
            points_with_id_vio: {lmk_id: (3,) position} from the estimator
            mesh_2d: 2D triangles, each 6 floats (u1, v1, u2, v2, u3, v3)
            frame: Frame resolving pixels to landmark ids
            camera_pose: Pose3 of the left camera
            stereo_frame: StereoFrame, only used with add_extra_lmks_from_stereo
        """
        points_with_id_all = points_with_id_vio
        if self.params["add_extra_lmks_from_stereo"]:
            if stereo_frame is None:
                raise ValueError(
                    "add_extra_lmks_from_stereo is set but no stereo frame was given"
                )
            points_with_id_all = self.append_non_vio_stereo_points(
                stereo_frame, camera_pose, points_with_id_vio
            )
            logger.debug(
                "Landmarks for the mesh: %d stereo + estimator, %d estimator",
                len(points_with_id_all),
                len(points_with_id_vio),
            )

        self.populate_3d_mesh_time_horizon(
            mesh_2d,
            points_with_id_all,
            frame,
            camera_pose,
            self.params["min_ratio_btw_largest_smallest_side"],
            self.params["min_elongation_ratio"],
            self.params["max_triangle_side"],
        )

    def populate_3d_mesh_time_horizon(
        self,
        mesh_2d,
        points_with_id_map,
        frame,
        camera_pose,
        min_ratio_largest_smallest_side,
        min_elongation_ratio,
        max_triangle_side,
    ):
        mesh = self._mesh.copy()
        self._populate_3d_mesh(
            mesh,
            mesh_2d,
            points_with_id_map,
            frame,
            camera_pose,
            min_ratio_largest_smallest_side,
            min_elongation_ratio,
            max_triangle_side,
        )
        mesh = self._reduce_mesh_to_time_horizon(
            mesh,
            points_with_id_map,
            camera_pose,
            min_ratio_largest_smallest_side,
            max_triangle_side,
            self.params["reduce_mesh_to_time_horizon"],
        )
        self._mesh = mesh

    def populate_3d_mesh(
        self,
        mesh_2d,
        points_with_id_map,
        frame,
        camera_pose,
        min_ratio_largest_smallest_side,
        min_elongation_ratio,
        max_triangle_side,
    ):
        """Add the good triangles of mesh_2d whose landmarks are all known."""
        mesh = self._mesh.copy()
        self._populate_3d_mesh(
            mesh,
            mesh_2d,
            points_with_id_map,
            frame,
            camera_pose,
            min_ratio_largest_smallest_side,
            min_elongation_ratio,
            max_triangle_side,
        )
        self._mesh = mesh

    def _populate_3d_mesh(
        self,
        mesh,
        mesh_2d,
        points_with_id_map,
        frame,
        camera_pose,
        min_ratio_largest_smallest_side,
        min_elongation_ratio,
        max_triangle_side,
    ):
        added = 0
        for triangle_2d in mesh_2d:
            triangle_2d = np.asarray(triangle_2d, dtype=np.float64).ravel()
            if len(triangle_2d) != 6:
                raise ValueError(
                    f"Expecting 6 pixel coordinates per 2D triangle, "
                    f"got {len(triangle_2d)}"
                )

            polygon = []
            for pixel in triangle_2d.reshape(3, 2):
                lmk_id = frame.find_lmk_id_from_pixel(pixel)
                if lmk_id == INVALID_LMK_ID:
                    raise ValueError(
                        f"No landmark id for pixel ({pixel[0]:.2f}, {pixel[1]:.2f}), "
                        f"2D triangulation must only use pixels with landmarks"
                    )
                if lmk_id not in points_with_id_map:
                    logger.error(
                        "Landmark with id %d could not be found in the landmark "
                        "map. But it should have been.",
                        lmk_id,
                    )
                    break
                polygon.append(Vertex(lmk_id, points_with_id_map[lmk_id]))
            else:
                if not self.is_bad_triangle(
                    polygon,
                    camera_pose,
                    min_ratio_largest_smallest_side,
                    min_elongation_ratio,
                    max_triangle_side,
                ):
                    mesh.add_polygon(polygon)
                    added += 1

        logger.debug("Added %d of %d 2D triangles to the mesh", added, len(mesh_2d))
        return mesh

    def update_polygon_mesh_to_time_horizon(
        self,
        points_with_id_map,
        camera_pose,
        min_ratio_largest_smallest_side,
        max_triangle_side,
        reduce_mesh_to_time_horizon,
    ):
        """
        Refresh vertex positions, drop stale faces and re-filter the mesh.
        """
        self._mesh = self._reduce_mesh_to_time_horizon(
            self._mesh,
            points_with_id_map,
            camera_pose,
            min_ratio_largest_smallest_side,
            max_triangle_side,
            reduce_mesh_to_time_horizon,
        )

    def _reduce_mesh_to_time_horizon(
        self,
        mesh,
        points_with_id_map,
        camera_pose,
        min_ratio_largest_smallest_side,
        max_triangle_side,
        reduce_mesh_to_time_horizon,
    ):
        mesh_output = Mesh3D(mesh.polygon_dimension)
        for _, polygon in mesh.polygons():
            in_horizon = [vertex.lmk_id in points_with_id_map for vertex in polygon]
            if reduce_mesh_to_time_horizon and not all(in_horizon):
                continue

            for vertex, present in zip(polygon, in_horizon):
                if present:
                    vertex.position = np.asarray(
                        points_with_id_map[vertex.lmk_id], dtype=np.float64
                    ).reshape(3)

            # Elongation is a per-frame test, stale vertices can be anywhere
            if not self.is_bad_triangle(
                polygon,
                camera_pose,
                min_ratio_largest_smallest_side,
                None,
                max_triangle_side,
            ):
                mesh_output.add_polygon(polygon)

        logger.debug(
            "Time horizon reduction: %d -> %d polygons",
            mesh.get_number_of_polygons(),
            mesh_output.get_number_of_polygons(),
        )
        return mesh_output

    def filter_out_bad_triangles(
        self,
        camera_pose,
        min_ratio_largest_smallest_side,
        min_elongation_ratio,
        max_triangle_side,
    ):
        mesh_output = Mesh3D(self._mesh.polygon_dimension)
        for _, polygon in self._mesh.polygons():
            if not self.is_bad_triangle(
                polygon,
                camera_pose,
                min_ratio_largest_smallest_side,
                min_elongation_ratio,
                max_triangle_side,
            ):
                mesh_output.add_polygon(polygon)
        self._mesh = mesh_output

    @staticmethod
    def is_bad_triangle(
        polygon,
        camera_pose,
        min_ratio_largest_smallest_side,
        min_elongation_ratio,
        max_triangle_side,
    ):
        """is_bad_triangle with raw thresholds, <= 0 or None disables a test."""
        return is_bad_triangle(
            polygon,
            camera_pose,
            threshold(min_ratio_largest_smallest_side),
            threshold(min_elongation_ratio),
            threshold(max_triangle_side),
        )

    def append_non_vio_stereo_points(self, stereo_frame, camera_pose, points_with_id):
        """
        Landmark map augmented with stereo points.

        Existing ids are never overridden, so estimator points take
        precedence over stereo ones.

        Returns:
            points: New dict, points_with_id is not modified
        """
        points = dict(points_with_id)
        left_frame = stereo_frame.left_frame
        for i, lmk_id in enumerate(left_frame.landmarks):
            if stereo_frame.right_keypoints_valid[i] and lmk_id != INVALID_LMK_ID:
                point_world = camera_pose.transform_from(stereo_frame.keypoints_3d[i])
                points.setdefault(int(lmk_id), point_world)
        return points

    # ============ NORMALS ============

    def calculate_normals(self):
        """One normal per polygon, None for degenerate ones."""
        normals = []
        for _, polygon in self._mesh.polygons():
            p1, p2, p3 = (vertex.position for vertex in polygon)
            normals.append(calculate_normal(p1, p2, p3))
        return normals

    # ============ PLANE SEGMENTATION ============

    def cluster_planes_from_mesh(self, points_with_id_vio):
        """
        Refresh the tracked planes and add the newly segmented ones.

        Args:
            points_with_id_vio: Estimator landmarks, restricts plane landmarks
                when stereo landmarks are added to the mesh

        Returns:
            planes: Snapshot of the tracked planes after the update
        """
        planes = copy.deepcopy(self._planes)

        logger.debug("Starting plane segmentation...")
        new_planes, next_plane_id = self.segment_planes_in_mesh(
            planes,
            points_with_id_vio,
            self._next_plane_id,
            self.params["normal_tolerance_polygon_plane_association"],
            self.params["distance_tolerance_polygon_plane_association"],
            self.params["normal_tolerance_horizontal_surface"],
            self.params["normal_tolerance_walls"],
        )

        logger.debug("Starting plane association...")
        non_associated, _ = associate_planes(
            new_planes,
            planes,
            self.params["normal_tolerance_plane_plane_association"],
            self.params["distance_tolerance_plane_plane_association"],
            self.params["do_double_association"],
        )

        if non_associated:
            # Histograms give no landmarks, so one more pass over the mesh
            self.update_planes_lmk_ids_from_mesh(
                non_associated,
                self.params["normal_tolerance_polygon_plane_association"],
                self.params["distance_tolerance_polygon_plane_association"],
                points_with_id_vio,
            )
            planes.extend(non_associated)
        else:
            logger.debug("No new non-associated planes, skipping extra mesh pass.")

        self._planes = planes
        self._next_plane_id = next_plane_id
        return self.get_planes()

    def segment_planes_in_mesh(
        self,
        seed_planes,
        points_with_id_vio,
        plane_id,
        normal_tolerance_polygon_plane_association,
        distance_tolerance_polygon_plane_association,
        normal_tolerance_horizontal_surface,
        normal_tolerance_walls,
    ):
        """
        Refresh seed plane memberships and segment new planes, in one mesh pass.

        Args:
            seed_planes: Tracked planes, their landmarks are recomputed in place
            plane_id: First id for new planes

        Returns:
            new_planes: Planes extracted from the histograms
            plane_id: Next free plane id
        """
        for seed_plane in seed_planes:
            seed_plane.clear_membership()

        only_non_clustered = self.params["only_use_non_clustered_points"]
        z_components = []
        walls = []
        for triangle_id, polygon in self._mesh.polygons():
            p1, p2, p3 = (vertex.position for vertex in polygon)
            triangle_normal = calculate_normal(p1, p2, p3)
            if triangle_normal is None:
                continue

            is_polygon_on_a_plane = self.update_planes_lmk_ids_from_polygon(
                seed_planes,
                polygon,
                triangle_id,
                triangle_normal,
                normal_tolerance_polygon_plane_association,
                distance_tolerance_polygon_plane_association,
                points_with_id_vio,
            )
            if only_non_clustered and is_polygon_on_a_plane:
                continue

            if is_normal_around_axis(
                VERTICAL, triangle_normal, normal_tolerance_horizontal_surface
            ):
                z_components.extend([p1[2], p2[2], p3[2]])

            if is_normal_perpendicular_to_axis(
                VERTICAL, triangle_normal, normal_tolerance_walls
            ):
                theta = get_longitude(triangle_normal, VERTICAL)
                distance = float(np.dot(p1, triangle_normal))
                if theta < 0:
                    # Same wall seen from the other side
                    theta += np.pi
                    distance = -distance
                walls.append((theta, distance))

        logger.debug("Number of polygons potentially on a wall: %d", len(walls))
        return self.segment_new_planes(z_components, walls, plane_id)

    def segment_new_planes(self, z_components, walls, plane_id):
        """
        Returns:
            new_planes: Horizontal planes first, then walls
            plane_id: Next free plane id
        """
        horizontal_planes, plane_id = segment_horizontal_planes(
            self.z_hist, z_components, plane_id, self.params
        )
        wall_planes, plane_id = segment_walls(
            self.hist_2d, walls, plane_id, self.params
        )
        return horizontal_planes + wall_planes, plane_id

    def update_planes_lmk_ids_from_mesh(
        self, planes, normal_tolerance, distance_tolerance, points_with_id_vio
    ):
        for triangle_id, polygon in self._mesh.polygons():
            p1, p2, p3 = (vertex.position for vertex in polygon)
            triangle_normal = calculate_normal(p1, p2, p3)
            if triangle_normal is not None:
                self.update_planes_lmk_ids_from_polygon(
                    planes,
                    polygon,
                    triangle_id,
                    triangle_normal,
                    normal_tolerance,
                    distance_tolerance,
                    points_with_id_vio,
                )

    def update_planes_lmk_ids_from_polygon(
        self,
        planes,
        polygon,
        triangle_id,
        triangle_normal,
        normal_tolerance,
        distance_tolerance,
        points_with_id_vio,
    ):
        """
        Append the polygon's landmarks to every plane it lies on.

        A polygon may land on several planes when they are close to each other.

        Returns:
            True if the polygon is on at least one plane
        """
        is_polygon_on_a_plane = False
        for plane in planes:
            if is_normal_around_axis(
                plane.normal, triangle_normal, normal_tolerance
            ) and is_polygon_at_distance_from_plane(
                polygon, plane.distance, plane.normal, distance_tolerance
            ):
                self.append_lmk_ids_of_polygon(
                    polygon, plane.lmk_ids, points_with_id_vio
                )
                plane.triangle_cluster.triangle_ids.append(triangle_id)
                is_polygon_on_a_plane = True
        return is_polygon_on_a_plane

    def append_lmk_ids_of_polygon(self, polygon, lmk_ids, points_with_id_vio):
        """
        Append the polygon's landmark ids not yet in lmk_ids.

        With stereo landmarks in the mesh, only ids known to the estimator are
        appended.
        """
        for vertex in polygon:
            if vertex.lmk_id in lmk_ids:
                continue
            if (
                self.params["add_extra_lmks_from_stereo"]
                and vertex.lmk_id not in points_with_id_vio
            ):
                continue
            lmk_ids.append(vertex.lmk_id)

    def extract_lmk_ids_from_triangle_clusters(
        self, triangle_clusters, points_with_id_vio
    ):
        """Landmark ids of all polygons in the given triangle clusters."""
        lmk_ids = []
        for triangle_cluster in triangle_clusters:
            lmk_ids.extend(
                lmk_id
                for lmk_id in self.extract_lmk_ids_from_triangle_cluster(
                    triangle_cluster, points_with_id_vio
                )
                if lmk_id not in lmk_ids
            )
        return lmk_ids

    def extract_lmk_ids_from_triangle_cluster(
        self, triangle_cluster, points_with_id_vio
    ):
        lmk_ids = []
        for triangle_id in triangle_cluster.triangle_ids:
            polygon = self._mesh.get_polygon(triangle_id)
            self.append_lmk_ids_of_polygon(polygon, lmk_ids, points_with_id_vio)
        return lmk_ids

    # ============ SNAPSHOTS ============

    def get_vertices_mesh(self):
        """(lmk_ids, positions) copies of the mesh vertices."""
        return self._mesh.get_vertices()

    def get_polygons_mesh(self):
        return self._mesh.get_polygons()

    def get_mesh(self):
        return self._mesh.copy()

    def get_planes(self):
        return copy.deepcopy(self._planes)

    def set_planes(self, planes):
        """Replace the tracked planes, e.g. with planes refined by a backend."""
        planes = copy.deepcopy(list(planes))
        if planes:
            self._next_plane_id = max(
                self._next_plane_id, max(plane.plane_id for plane in planes) + 1
            )
        self._planes = planes

    @property
    def next_plane_id(self):
        return self._next_plane_id
