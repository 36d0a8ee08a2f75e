import numpy as np

SEGMENTATION_PARAMS = {
    "min_elongation_ratio": -1,
    "z_histogram_min_support": 10,
    "hist_2d_min_support": 5,
}


def pixel_of(lmk_id):
    return (10.0 * lmk_id, 5.0)


def grid_patch(first_id, origin, axis_u, axis_v, n=5, step=0.1):
    """
    Planar grid of n x n landmarks and its 2 * (n - 1)^2 triangles.

    Returns:
        landmarks: {lmk_id: position}
        triangles: List of landmark id triplets
    """
    origin = np.asarray(origin, dtype=float)
    axis_u = np.asarray(axis_u, dtype=float)
    axis_v = np.asarray(axis_v, dtype=float)

    def lmk_id(i, j):
        return first_id + i * n + j

    landmarks = {
        lmk_id(i, j): origin + step * (i * axis_u + j * axis_v)
        for i in range(n)
        for j in range(n)
    }
    triangles = []
    for i in range(n - 1):
        for j in range(n - 1):
            triangles.append((lmk_id(i, j), lmk_id(i + 1, j), lmk_id(i, j + 1)))
            triangles.append(
                (lmk_id(i + 1, j), lmk_id(i + 1, j + 1), lmk_id(i, j + 1))
            )
    return landmarks, triangles
