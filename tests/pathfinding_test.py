"""Tests for navmesh pathfinding."""

import unittest
import numpy as np

from navforge.navmesh.layers import LayerMesh, assemble_navmesh
from navforge.navmesh.pathfinding import astar_polygons, find_path


def corner_mesh():
    """
    Три квадрата буквой L:

        3---2---6
        | A | B |      C над B
        0---1---4
    """
    #  7---6
    #  | C |
    #  2---5
    #  | B |
    #  1---4
    vertices = np.array([
        (0, 0), (1, 0), (1, 1), (0, 1),
        (2, 0), (2, 1), (2, 2), (1, 2),
    ], dtype=np.float64)
    polygons = [
        [0, 1, 2, 3],  # A
        [1, 4, 5, 2],  # B
        [2, 5, 6, 7],  # C
    ]
    return assemble_navmesh([LayerMesh(0, 0.0, 0.0, vertices, polygons)], generation=1)


class AStarTest(unittest.TestCase):
    """Тесты для astar_polygons."""

    def test_corridor(self):
        mesh = corner_mesh()
        self.assertEqual(astar_polygons(mesh, 0, 2), [0, 1, 2])
        self.assertEqual(astar_polygons(mesh, 2, 0), [2, 1, 0])

    def test_same_polygon(self):
        self.assertEqual(astar_polygons(corner_mesh(), 1, 1), [1])

    def test_disconnected(self):
        vertices = np.array([
            (0, 0), (1, 0), (1, 1), (0, 1),
            (5, 0), (6, 0), (6, 1), (5, 1),
        ], dtype=np.float64)
        mesh = assemble_navmesh(
            [LayerMesh(0, 0.0, 0.0, vertices, [[0, 1, 2, 3], [4, 5, 6, 7]])],
            generation=1,
        )
        self.assertIsNone(astar_polygons(mesh, 0, 1))
        self.assertIsNone(find_path(mesh, (0.5, 0.5), (5.5, 0.5)))


class FindPathTest(unittest.TestCase):
    """Тесты для find_path."""

    def test_straight(self):
        path = find_path(corner_mesh(), (0.5, 0.5), (1.5, 0.5))
        self.assertEqual(path, [(0.5, 0.5), (1.5, 0.5)])

    def test_bends_around_corner(self):
        """Прямая из A в C проходит вне сетки: путь огибает угол (1, 1)."""
        path = find_path(corner_mesh(), (0.5, 0.5), (1.2, 1.8))
        self.assertEqual(len(path), 3)
        np.testing.assert_allclose(path[0], (0.5, 0.5))
        np.testing.assert_allclose(path[1], (1.0, 1.0))
        np.testing.assert_allclose(path[2], (1.2, 1.8))

    def test_same_polygon(self):
        self.assertEqual(find_path(corner_mesh(), (0.2, 0.2), (0.8, 0.9)), [(0.2, 0.2), (0.8, 0.9)])

    def test_outside_mesh(self):
        mesh = corner_mesh()
        self.assertIsNone(find_path(mesh, (0.5, 1.5), (1.5, 1.5)))
        self.assertIsNone(find_path(mesh, (0.5, 0.5), (10.0, 10.0)))

    def test_accepts_3d_points(self):
        path = find_path(corner_mesh(), (0.5, 0.5, 3.0), (1.5, 0.5, 3.0))
        self.assertEqual(path, [(0.5, 0.5), (1.5, 0.5)])

    def test_empty_mesh(self):
        mesh = assemble_navmesh([], generation=1)
        self.assertIsNone(find_path(mesh, (0.0, 0.0), (1.0, 1.0)))

    def test_through_layer_link(self):
        """Путь переходит между слоями по вертикальной связи."""
        def square(layer, height, x0, x1):
            return LayerMesh(
                layer=layer,
                height=height,
                height_tolerance=0.5,
                vertices=np.array([(x0, 0.0), (x1, 0.0), (x1, 1.0), (x0, 1.0)]),
                polygons=[[0, 1, 2, 3]],
            )

        mesh = assemble_navmesh([square(0, 0.0, 0.0, 1.0), square(1, 0.3, 1.0, 2.0)], generation=1)
        self.assertEqual(find_path(mesh, (0.5, 0.5), (1.5, 0.5)), [(0.5, 0.5), (1.5, 0.5)])
        self.assertIsNone(find_path(mesh, (0.5, 0.5), (1.5, 0.5), start_layer=1))


if __name__ == "__main__":
    unittest.main()
