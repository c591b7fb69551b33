"""
Тесты для слияния треугольников и графа смежности.
"""

import unittest
import numpy as np

from navforge.navmesh.errors import MeshInvariantError
from navforge.navmesh.merging import (
    build_edge_map,
    build_polygon_adjacency,
    connected_components,
    is_convex_polygon,
    merge_triangles,
    polygon_area_2d,
    splice_polygons,
)
from navforge.navmesh.triangulation import triangulate_polygon


SQUARE = np.array([[0, 0], [1, 0], [1, 1], [0, 1]], dtype=np.float64)
SQUARE_BOUNDARY = {(0, 1), (1, 2), (2, 3), (0, 3)}


class SpliceTest(unittest.TestCase):

    def test_splice_two_triangles(self):
        # p содержит ребро 2->0, q содержит 0->2
        self.assertEqual(splice_polygons([0, 1, 2], [0, 2, 3], 2, 0), [0, 1, 2, 3])

    def test_edge_map(self):
        edge_map = build_edge_map([[0, 1, 2], [0, 2, 3]])
        self.assertEqual(sorted(edge_map[(0, 2)]), [(0, 2), (1, 0)])
        self.assertEqual(edge_map[(0, 1)], [(0, 0)])


class MergeTrianglesTest(unittest.TestCase):
    """Тесты для merge_triangles."""

    def test_square_merges_into_quad(self):
        polys = merge_triangles(SQUARE, [(0, 1, 2), (0, 2, 3)], SQUARE_BOUNDARY)
        self.assertEqual(len(polys), 1)
        self.assertEqual(sorted(polys[0]), [0, 1, 2, 3])
        self.assertAlmostEqual(polygon_area_2d(SQUARE, polys[0]), 1.0)

    def test_constraint_blocks_merge(self):
        polys = merge_triangles(SQUARE, [(0, 1, 2), (0, 2, 3)], SQUARE_BOUNDARY | {(0, 2)})
        self.assertEqual(len(polys), 2)

    def test_result_convex_and_area_preserved(self):
        """L-образная область: полигоны выпуклые, площадь сохраняется."""
        outer = np.array([
            [0, 0], [2, 0], [2, 1], [1, 1], [1, 2], [0, 2],
        ], dtype=np.float64)
        tri = triangulate_polygon(outer)
        polys = merge_triangles(tri.vertices, tri.triangles, tri.constraints)

        self.assertGreaterEqual(len(polys), 2)
        self.assertLess(len(polys), len(tri.triangles))
        total = 0.0
        for poly in polys:
            self.assertTrue(is_convex_polygon(tri.vertices, poly))
            total += polygon_area_2d(tri.vertices, poly)
        self.assertAlmostEqual(total, 3.0)

    def test_constraint_edges_survive(self):
        tri = triangulate_polygon(
            np.array([[0, 0], [10, 0], [10, 10], [0, 10]], dtype=np.float64),
            [np.array([[4, 4], [6, 4], [6, 6], [4, 6]], dtype=np.float64)],
        )
        polys = merge_triangles(tri.vertices, tri.triangles, tri.constraints)
        edges = set()
        for poly in polys:
            for i in range(len(poly)):
                a, b = poly[i], poly[(i + 1) % len(poly)]
                edges.add((min(a, b), max(a, b)))
        self.assertTrue(tri.constraints <= edges)
        self.assertAlmostEqual(sum(polygon_area_2d(tri.vertices, p) for p in polys), 96.0)

    def test_max_passes_limits_merging(self):
        angles = np.linspace(0, 2 * np.pi, 12, endpoint=False)
        ring = np.stack([np.cos(angles), np.sin(angles)], axis=1)
        tri = triangulate_polygon(ring)
        unlimited = merge_triangles(tri.vertices, tri.triangles, tri.constraints)
        limited = merge_triangles(tri.vertices, tri.triangles, tri.constraints, max_passes=1)
        self.assertEqual(len(unlimited), 1)
        self.assertGreaterEqual(len(limited), len(unlimited))

    def test_no_merge_leaves_triangles(self):
        polys = merge_triangles(SQUARE, [(0, 1, 2)], set())
        self.assertEqual(polys, [[0, 1, 2]])


class AdjacencyTest(unittest.TestCase):
    """Тесты для build_polygon_adjacency."""

    def test_two_triangles(self):
        adjacency = build_polygon_adjacency([[0, 1, 2], [0, 2, 3]])
        # ребро 2 первого треугольника (2->0) граничит со вторым
        self.assertEqual(adjacency[0], (-1, -1, 1))
        self.assertEqual(adjacency[1], (0, -1, -1))

    def test_inconsistent_orientation(self):
        with self.assertRaises(MeshInvariantError):
            build_polygon_adjacency([[0, 1, 2], [0, 1, 3]])

    def test_degenerate_polygon(self):
        with self.assertRaises(MeshInvariantError):
            build_polygon_adjacency([[0, 1]])
        with self.assertRaises(MeshInvariantError):
            build_polygon_adjacency([[0, 0, 1]])

    def test_connected_components(self):
        adjacency = build_polygon_adjacency([[0, 1, 2], [0, 2, 3], [4, 5, 6]])
        labels = connected_components(adjacency)
        self.assertEqual(labels[0], labels[1])
        self.assertNotEqual(labels[0], labels[2])


if __name__ == "__main__":
    unittest.main()
