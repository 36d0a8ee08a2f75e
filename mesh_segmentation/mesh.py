import copy

import numpy as np

POLYGON_DIMENSION = 3


class Vertex:
    """Mesh vertex identified by its landmark id."""

    def __init__(self, lmk_id, position):
        self.lmk_id = int(lmk_id)
        self.position = np.array(position, dtype=np.float64).reshape(3)

    def __eq__(self, other):
        if not isinstance(other, Vertex):
            return NotImplemented
        return self.lmk_id == other.lmk_id and np.array_equal(
            self.position, other.position
        )

    def __repr__(self):
        x, y, z = self.position
        return f"Vertex({self.lmk_id}, [{x:.3f}, {y:.3f}, {z:.3f}])"


class Mesh3D:
    """
    Triangle mesh keyed by landmark ids.

    Vertices are stored once per landmark id. Polygons are stored as tuples of
    landmark ids, so re-adding a polygon refreshes the positions of its
    vertices instead of creating a new face.
    """

    def __init__(self, polygon_dimension=POLYGON_DIMENSION):
        if polygon_dimension < 3:
            raise ValueError(
                f"Polygons need at least 3 vertices, got {polygon_dimension}"
            )
        self.polygon_dimension = polygon_dimension
        self._vertices = {}
        self._polygons = []
        self._polygon_keys = set()

    def add_polygon(self, polygon):
        """
        Insert a polygon, or update the vertex positions of an existing one.

        Args:
            polygon: Sequence of Vertex of length polygon_dimension
        """
        if len(polygon) != self.polygon_dimension:
            raise ValueError(
                f"Expecting {self.polygon_dimension} vertices in polygon, "
                f"got {len(polygon)}"
            )
        lmk_ids = tuple(vertex.lmk_id for vertex in polygon)
        if len(set(lmk_ids)) != len(lmk_ids):
            raise ValueError(f"Polygon has repeated landmark ids: {lmk_ids}")

        for vertex in polygon:
            self._vertices[vertex.lmk_id] = vertex.position.copy()

        key = frozenset(lmk_ids)
        if key not in self._polygon_keys:
            self._polygon_keys.add(key)
            self._polygons.append(lmk_ids)

    def get_polygon(self, index):
        """Return a copy of polygon `index` as a list of Vertex."""
        if not 0 <= index < len(self._polygons):
            raise ValueError(
                f"Polygon with idx {index} is not in the mesh "
                f"({len(self._polygons)} polygons)"
            )
        return [
            Vertex(lmk_id, self._vertices[lmk_id]) for lmk_id in self._polygons[index]
        ]

    def polygons(self):
        """Iterate over (index, polygon) pairs."""
        for index in range(len(self._polygons)):
            yield index, self.get_polygon(index)

    def get_number_of_polygons(self):
        return len(self._polygons)

    def get_number_of_vertices(self):
        return len(self._vertices)

    def has_vertex(self, lmk_id):
        return lmk_id in self._vertices

    def get_vertex_position(self, lmk_id):
        return self._vertices[lmk_id].copy()

    def get_vertices(self):
        """
        Returns:
            lmk_ids: (N,) int array
            positions: (N, 3) float array, row i belongs to lmk_ids[i]
        """
        lmk_ids = np.array(list(self._vertices.keys()), dtype=np.int64)
        if len(lmk_ids) == 0:
            return lmk_ids, np.zeros((0, 3))
        positions = np.array([self._vertices[i] for i in lmk_ids])
        return lmk_ids, positions

    def get_polygons(self):
        """
        Returns:
            faces: (M, polygon_dimension) int array of rows into get_vertices()
        """
        row_of = {lmk_id: row for row, lmk_id in enumerate(self._vertices)}
        faces = np.array(
            [[row_of[lmk_id] for lmk_id in polygon] for polygon in self._polygons],
            dtype=np.int64,
        )
        return faces.reshape(-1, self.polygon_dimension)

    def copy(self):
        return copy.deepcopy(self)

    def __eq__(self, other):
        if not isinstance(other, Mesh3D):
            return NotImplemented
        if self._polygons != other._polygons:
            return False
        if self._vertices.keys() != other._vertices.keys():
            return False
        return all(
            np.array_equal(position, other._vertices[lmk_id])
            for lmk_id, position in self._vertices.items()
        )

    def __len__(self):
        return len(self._polygons)
