"""
Тесты для построения NavMesh целиком: граница, препятствия, слои, путь.
"""

import math
import time
import unittest
import numpy as np

from navforge.navmesh.builder import BuildRequest, NavMeshBuilder, run_build
from navforge.navmesh.obstacles import Circle, Obstacle, Placement, PolygonShape, Rectangle
from navforge.navmesh.pathfinding import find_path
from navforge.navmesh.settings import LayerSettings, NavMeshSettings, Stitch
from navforge.navmesh.source_mesh import rectangle_boundary


BOUNDARY = rectangle_boundary((0, 0), (10, 10))


def box(obstacle_id, x, y, half=1.0, **kwargs):
    return Obstacle(
        id=obstacle_id,
        shape=Rectangle((half, half)),
        placement=Placement(position=(x, y)),
        **kwargs,
    )


def path_length(path):
    return sum(math.dist(a, b) for a, b in zip(path, path[1:]))


class BuildTest(unittest.TestCase):
    """Тесты для NavMeshBuilder."""

    def test_empty_square(self):
        mesh = NavMeshBuilder().build(BOUNDARY, generation=1)
        self.assertEqual(mesh.polygon_count(), 1)
        self.assertAlmostEqual(mesh.total_area(), 100.0)
        self.assertEqual(mesh.generation, 1)

    def test_box_in_center(self):
        mesh = NavMeshBuilder().build(BOUNDARY, [box(1, 5, 5)], generation=1)
        self.assertAlmostEqual(mesh.total_area(), 96.0)
        self.assertFalse(mesh.contains_point((5.0, 5.0)))
        self.assertTrue(mesh.contains_point((1.0, 1.0)))
        self.assertGreater(mesh.polygon_count(), 1)

    def test_polygons_convex_and_ccw(self):
        mesh = NavMeshBuilder().build(BOUNDARY, [box(1, 3, 3), box(2, 7, 6, half=0.5)], generation=1)
        for i, poly in enumerate(mesh.polygons):
            pts = mesh.polygon_points(i)[:, :2]
            n = len(pts)
            for k in range(n):
                a, b, c = pts[k], pts[(k + 1) % n], pts[(k + 2) % n]
                cross = (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])
                self.assertGreaterEqual(cross, -1e-9)
            self.assertGreater(mesh.polygon_area(i), 0.0)

    def test_adjacency_symmetric(self):
        mesh = NavMeshBuilder().build(BOUNDARY, [box(1, 5, 5)], generation=1)
        for i, poly in enumerate(mesh.polygons):
            for n in poly.neighbors:
                if n >= 0:
                    self.assertIn(i, mesh.polygons[n].neighbors)

    def test_agent_radius(self):
        settings = NavMeshSettings(agent_radius=0.5)
        mesh = NavMeshBuilder(settings).build(BOUNDARY, [box(1, 5, 5)], generation=1)
        # 100 - (4 + 4 * 2 * 0.5 + pi * 0.25)
        self.assertGreater(mesh.total_area(), 91.1)
        self.assertLess(mesh.total_area(), 91.3)
        self.assertFalse(mesh.contains_point((6.3, 5.0)))
        self.assertTrue(mesh.contains_point((6.7, 5.0)))

    def test_obstacles_cover_everything(self):
        mesh = NavMeshBuilder().build(BOUNDARY, [box(1, 5, 5, half=6.0)], generation=1)
        self.assertTrue(mesh.is_empty())
        self.assertIsNone(find_path(mesh, (1, 1), (9, 9)))

    def test_overlapping_obstacles(self):
        mesh = NavMeshBuilder().build(BOUNDARY, [box(1, 4, 5), box(2, 5, 5)], generation=1)
        # объединение двух квадратов 2x2 со сдвигом 1: 4 + 4 - 2
        self.assertAlmostEqual(mesh.total_area(), 94.0)

    def test_obstacle_outside_boundary(self):
        mesh = NavMeshBuilder().build(BOUNDARY, [box(1, 50, 50)], generation=1)
        self.assertAlmostEqual(mesh.total_area(), 100.0)

    def test_deflate_boundary(self):
        settings = NavMeshSettings(agent_radius=1.0, deflate_boundary=True)
        mesh = NavMeshBuilder(settings).build(BOUNDARY, generation=1)
        self.assertAlmostEqual(mesh.total_area(), 64.0)
        self.assertFalse(mesh.contains_point((0.5, 5.0)))

    def test_segment_obstacle_becomes_stadium(self):
        wall = Obstacle(id=1, shape=PolygonShape(([(5.0, 2.0), (5.0, 8.0)],)))
        settings = NavMeshSettings(agent_radius=0.5)
        mesh = NavMeshBuilder(settings).build(BOUNDARY, [wall], generation=1)
        self.assertFalse(mesh.contains_point((5.0, 5.0)))
        self.assertTrue(mesh.contains_point((3.0, 5.0)))
        self.assertAlmostEqual(mesh.total_area(), 100.0 - 6.0 - math.pi * 0.25, places=1)

    def test_simplification(self):
        settings = NavMeshSettings(simplification_tolerance=0.05)
        mesh = NavMeshBuilder(settings).build(BOUNDARY, [Obstacle(id=1, shape=Circle(2.0), placement=Placement(position=(5.0, 5.0)))], generation=1)
        full = NavMeshBuilder().build(BOUNDARY, [Obstacle(id=1, shape=Circle(2.0), placement=Placement(position=(5.0, 5.0)))], generation=1)
        self.assertLessEqual(mesh.vertex_count(), full.vertex_count())
        self.assertAlmostEqual(mesh.total_area(), full.total_area(), places=0)

    def test_without_merging(self):
        settings = NavMeshSettings(merge=False)
        mesh = NavMeshBuilder(settings).build(BOUNDARY, [box(1, 5, 5)], generation=1)
        self.assertEqual(mesh.triangle_count(), mesh.polygon_count())
        self.assertAlmostEqual(mesh.total_area(), 96.0)

    def test_many_round_obstacles(self):
        """Двадцать круглых препятствий на большой площадке строятся за секунды."""
        obstacles = [
            Obstacle(id=i, shape=Circle(0.8), placement=Placement(position=(10.0 + (i % 5) * 18.0, 10.0 + (i // 5) * 20.0)))
            for i in range(20)
        ]
        settings = NavMeshSettings(agent_radius=0.5)
        started = time.perf_counter()
        mesh = NavMeshBuilder(settings).build(rectangle_boundary((0, 0), (100, 100)), obstacles, generation=1)
        self.assertLess(time.perf_counter() - started, 10.0)
        # 20 кругов радиуса 1.3
        self.assertGreater(mesh.total_area(), 10000.0 - 20 * math.pi * 1.3 ** 2 - 1.0)
        self.assertLess(mesh.total_area(), 10000.0 - 20 * math.pi * 1.2 ** 2)


class PathThroughBuiltMeshTest(unittest.TestCase):
    """Путь по собранной сетке огибает препятствие."""

    def test_path_around_box(self):
        mesh = NavMeshBuilder().build(BOUNDARY, [box(1, 5, 5)], generation=1)
        path = find_path(mesh, (1.0, 1.0), (9.0, 9.0))
        self.assertIsNotNone(path)
        np.testing.assert_allclose(path[0], (1.0, 1.0))
        np.testing.assert_allclose(path[-1], (9.0, 9.0))
        self.assertGreater(path_length(path), 8.0 * math.sqrt(2.0) + 0.1)

        for a, b in zip(path, path[1:]):
            for t in np.linspace(0.0, 1.0, 50):
                x = a[0] + t * (b[0] - a[0])
                y = a[1] + t * (b[1] - a[1])
                inside = 4.0 + 1e-6 < x < 6.0 - 1e-6 and 4.0 + 1e-6 < y < 6.0 - 1e-6
                self.assertFalse(inside, f"path point ({x}, {y}) inside obstacle")

    def test_straight_path_when_clear(self):
        mesh = NavMeshBuilder().build(BOUNDARY, [box(1, 5, 5)], generation=1)
        path = find_path(mesh, (1.0, 1.0), (9.0, 1.0))
        self.assertEqual(len(path), 2)


class LayeredBuildTest(unittest.TestCase):
    """Тесты для режима нескольких слоёв."""

    def settings(self, tolerance=0.5):
        return NavMeshSettings(layers=(
            LayerSettings(0.0, tolerance, boundary=[[(0, 0), (5, 0), (5, 2), (0, 2)]]),
            LayerSettings(0.2, tolerance, boundary=[[(5, 0), (10, 0), (10, 2), (5, 2)]]),
        ))

    def test_layers_linked(self):
        mesh = NavMeshBuilder(self.settings()).build(BOUNDARY, generation=1)
        self.assertEqual(len(mesh.layers), 2)
        self.assertEqual(len(mesh.links), 1)
        self.assertAlmostEqual(mesh.total_area(), 20.0)
        self.assertEqual(find_path(mesh, (1.0, 1.0), (9.0, 1.0)), [(1.0, 1.0), (9.0, 1.0)])

    def test_layers_too_far_apart(self):
        mesh = NavMeshBuilder(self.settings(tolerance=0.1)).build(BOUNDARY, generation=1)
        self.assertEqual(mesh.links, ())
        self.assertIsNone(find_path(mesh, (1.0, 1.0), (9.0, 1.0)))

    def test_obstacles_filtered_by_layer(self):
        obstacle = box(1, 7.5, 1.0, half=0.5, layer=1)
        mesh = NavMeshBuilder(self.settings()).build(BOUNDARY, [obstacle], generation=1)
        self.assertAlmostEqual(mesh.total_area(), 19.0)
        part = mesh.layers[0]
        area0 = sum(mesh.polygon_area(i) for i in part.polygon_range)
        self.assertAlmostEqual(area0, 10.0)

    def stitched(self):
        return self.settings().replace(stitches=(Stitch(layers=(0, 1), segment=((5.0, 0.0), (5.0, 2.0))),))

    def test_declared_stitch(self):
        mesh = NavMeshBuilder(self.stitched()).build(BOUNDARY, generation=1)
        self.assertEqual(len(mesh.links), 1)
        self.assertEqual(mesh.failed_stitches, ())
        self.assertIsNotNone(find_path(mesh, (1.0, 1.0), (9.0, 1.0)))

    def test_obstacle_on_seam_fails_stitch(self):
        """Препятствие у шва режет край только одного слоя: шов не сшивается."""
        obstacle = box(1, 5.5, 1.0, half=0.5, layer=1)
        mesh = NavMeshBuilder(self.stitched()).build(BOUNDARY, [obstacle], generation=1)
        self.assertEqual(mesh.links, ())
        self.assertEqual(mesh.failed_stitches, ((0, 1),))
        self.assertIsNone(find_path(mesh, (1.0, 1.0), (9.0, 1.0)))


class RunBuildTest(unittest.TestCase):
    """Тесты для run_build и кэша статических препятствий."""

    def test_success_without_static_version(self):
        request = BuildRequest(
            generation=1,
            boundary=BOUNDARY,
            obstacles=(box(1, 5, 5),),
            settings=NavMeshSettings(),
        )
        result = run_build(request)
        self.assertTrue(result.ok)
        self.assertIsNone(result.error)
        self.assertIsNone(result.static_cache)

    def test_static_cache(self):
        obstacles = (box(1, 3, 3, static=True), box(2, 7, 7))
        request = BuildRequest(
            generation=1,
            boundary=BOUNDARY,
            obstacles=obstacles,
            settings=NavMeshSettings(),
            static_version=1,
        )
        first = run_build(request)
        self.assertIsNotNone(first.static_cache)
        self.assertEqual(len(first.static_cache.layers[0]), 1)
        self.assertAlmostEqual(first.navmesh.total_area(), 92.0)

        second = run_build(BuildRequest(
            generation=2,
            boundary=BOUNDARY,
            obstacles=obstacles,
            settings=NavMeshSettings(),
            static_version=1,
            static_cache=first.static_cache,
        ))
        self.assertIs(second.static_cache, first.static_cache)
        self.assertAlmostEqual(second.navmesh.total_area(), 92.0)

    def test_static_cache_rebuilt_on_settings_change(self):
        obstacles = (box(1, 3, 3, static=True),)
        first = run_build(BuildRequest(
            generation=1, boundary=BOUNDARY, obstacles=obstacles,
            settings=NavMeshSettings(), static_version=1,
        ))
        second = run_build(BuildRequest(
            generation=2, boundary=BOUNDARY, obstacles=obstacles,
            settings=NavMeshSettings(agent_radius=0.5), static_version=1,
            static_cache=first.static_cache,
        ))
        self.assertIsNot(second.static_cache, first.static_cache)
        self.assertLess(second.navmesh.total_area(), first.navmesh.total_area())


if __name__ == "__main__":
    unittest.main()
