import math
from pathlib import Path

import yaml

DEFAULT_PARAMS = {
    # General
    "add_extra_lmks_from_stereo": False,
    "reduce_mesh_to_time_horizon": True,
    # Mesh filters (<= 0 disables the test)
    "min_ratio_btw_largest_smallest_side": 0.5,
    "min_elongation_ratio": 0.5,
    "max_triangle_side": 0.5,
    # Association
    "normal_tolerance_polygon_plane_association": 0.011,  # ~10 deg aperture
    "distance_tolerance_polygon_plane_association": 0.10,
    "normal_tolerance_plane_plane_association": 0.011,
    "distance_tolerance_plane_plane_association": 0.20,
    "do_double_association": True,
    # Segmentation
    "normal_tolerance_horizontal_surface": 0.011,
    "normal_tolerance_walls": 0.0165,
    "only_use_non_clustered_points": True,
    # Wall histogram (theta, distance)
    "hist_2d_gaussian_kernel_size": 3,
    "hist_2d_nr_of_local_max": 2,
    "hist_2d_min_support": 20,
    "hist_2d_min_dist_btw_local_max": 5,
    "hist_2d_theta_bins": 40,
    "hist_2d_distance_bins": 40,
    "hist_2d_theta_range_min": 0.0,
    "hist_2d_theta_range_max": math.pi,
    "hist_2d_distance_range_min": -6.0,
    "hist_2d_distance_range_max": 6.0,
    # Height histogram
    "z_histogram_bins": 512,
    "z_histogram_min_range": -0.75,
    "z_histogram_max_range": 3.0,
    "z_histogram_window_size": 3,
    "z_histogram_peak_per": 0.5,
    "z_histogram_min_support": 50,
    "z_histogram_min_separation": 0.1,  # < 0 disables
    "z_histogram_gaussian_kernel_size": 5,
    "z_histogram_max_number_of_peaks_to_select": 3,
    # Debug output
    "visualize_histogram_1d": False,
    "visualize_histogram_2d": False,
    "histogram_output_dir": "histograms",
}

_UNIT_TOLERANCES = (
    "normal_tolerance_polygon_plane_association",
    "normal_tolerance_plane_plane_association",
    "normal_tolerance_horizontal_surface",
    "normal_tolerance_walls",
)

_NON_NEGATIVE = (
    "distance_tolerance_polygon_plane_association",
    "distance_tolerance_plane_plane_association",
    "hist_2d_min_support",
    "hist_2d_min_dist_btw_local_max",
    "z_histogram_min_support",
)

_POSITIVE_INTS = (
    "hist_2d_nr_of_local_max",
    "hist_2d_theta_bins",
    "hist_2d_distance_bins",
    "z_histogram_bins",
    "z_histogram_window_size",
    "z_histogram_max_number_of_peaks_to_select",
)

_RANGES = (
    ("hist_2d_theta_range_min", "hist_2d_theta_range_max"),
    ("hist_2d_distance_range_min", "hist_2d_distance_range_max"),
    ("z_histogram_min_range", "z_histogram_max_range"),
)


def threshold(value):
    """
    Map a numeric triangle threshold to its enabled value or None.

    A missing or non-positive threshold means the test is disabled.
    """
    if value is None or value <= 0.0:
        return None
    return float(value)


def validate_params(params):
    """
    Check a parameter dict and raise ValueError on the first problem found.
    """
    unknown = sorted(set(params) - set(DEFAULT_PARAMS))
    if unknown:
        raise ValueError(f"Unknown mesher parameters: {unknown}")

    for key in _UNIT_TOLERANCES:
        if not 0.0 < params[key] < 1.0:
            raise ValueError(f"{key} must lie in (0, 1), got {params[key]}")

    for key in _NON_NEGATIVE:
        if params[key] < 0:
            raise ValueError(f"{key} must be non-negative, got {params[key]}")

    for key in _POSITIVE_INTS:
        if int(params[key]) != params[key] or params[key] <= 0:
            raise ValueError(f"{key} must be a positive integer, got {params[key]}")

    for low, high in _RANGES:
        if params[low] >= params[high]:
            raise ValueError(
                f"{low} ({params[low]}) must be lower than {high} ({params[high]})"
            )

    for key in ("hist_2d_gaussian_kernel_size", "z_histogram_gaussian_kernel_size"):
        size = params[key]
        if int(size) != size or size <= 0 or size % 2 == 0:
            raise ValueError(f"{key} must be a positive odd integer, got {size}")

    if not 0.0 < params["z_histogram_peak_per"] <= 1.0:
        peak_per = params["z_histogram_peak_per"]
        raise ValueError(f"z_histogram_peak_per must lie in (0, 1], got {peak_per}")

    return params


def load_config(path=None, overrides=None):
    """
    Build the mesher parameters.

    Args:
        path: Optional YAML file with a flat mapping of parameter overrides
        overrides: Optional dict applied after the file

    Returns:
        params: Validated dict with every key of DEFAULT_PARAMS
    """
    params = dict(DEFAULT_PARAMS)

    if path is not None:
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(file_path) as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        params.update(loaded)

    if overrides:
        params.update(overrides)

    return validate_params(params)
