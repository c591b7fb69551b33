"""
Тесты для edge flipping (Delaunay optimization) и ear clipping.
"""

import math

import numpy as np
import pytest

from navforge.navmesh.triangulation import (
    delaunay_flip,
    ear_clip_indices,
    in_circumcircle,
    triangulate_polygon,
)


def edge_set(triangles):
    edges = set()
    for a, b, c in triangles:
        for u, v in ((a, b), (b, c), (c, a)):
            edges.add((min(u, v), max(u, v)))
    return edges


class TestInCircumcircle:
    """Тесты для in_circumcircle."""

    def test_point_inside(self):
        """Точка внутри окружности."""
        assert in_circumcircle(0, 0, 2, 0, 1, 2, 1, 0.5) is True

    def test_point_outside(self):
        """Точка снаружи окружности."""
        assert in_circumcircle(0, 0, 2, 0, 1, 2, 1, 5) is False

    def test_point_on_circle(self):
        """Точка на окружности — граничный случай."""
        result = in_circumcircle(0, 0, 1, 0, 0, 1, 1, 1)
        assert isinstance(result, bool)


class TestDelaunayFlip:
    """Тесты для delaunay_flip."""

    # Ромб, вытянутый вдоль X: диагональ 0-2 длинная, 1-3 короткая
    VERTICES = np.array([
        [0, 0],
        [3, -1],
        [6, 0],
        [3, 1],
    ], dtype=np.float64)
    BOUNDARY = {(0, 1), (1, 2), (2, 3), (0, 3)}

    def test_long_diagonal_flipped(self):
        triangles = [(0, 1, 2), (0, 2, 3)]
        result = delaunay_flip(self.VERTICES, triangles, self.BOUNDARY)

        assert len(result) == 2
        edges = edge_set(result)
        assert (1, 3) in edges
        assert (0, 2) not in edges

    def test_result_ccw(self):
        result = delaunay_flip(self.VERTICES, [(0, 1, 2), (0, 2, 3)], self.BOUNDARY)
        for a, b, c in result:
            pa, pb, pc = self.VERTICES[a], self.VERTICES[b], self.VERTICES[c]
            cross = (pb[0] - pa[0]) * (pc[1] - pa[1]) - (pb[1] - pa[1]) * (pc[0] - pa[0])
            assert cross > 0

    def test_constraint_not_flipped(self):
        """Ребро-ограничение остаётся на месте."""
        triangles = [(0, 1, 2), (0, 2, 3)]
        constraints = self.BOUNDARY | {(0, 2)}
        result = delaunay_flip(self.VERTICES, triangles, constraints)
        assert edge_set(result) == edge_set(triangles)

    def test_already_delaunay(self):
        triangles = [(0, 1, 3), (1, 2, 3)]
        result = delaunay_flip(self.VERTICES, triangles, self.BOUNDARY)
        assert edge_set(result) == edge_set(triangles)

    def test_single_triangle(self):
        vertices = np.array([[0, 0], [1, 0], [0, 1]], dtype=np.float64)
        assert delaunay_flip(vertices, [(0, 1, 2)]) == [(0, 1, 2)]


class TestEarClip:
    """Тесты для ear_clip_indices."""

    def test_square(self):
        vertices = np.array([[0, 0], [1, 0], [1, 1], [0, 1]], dtype=np.float64)
        triangles = ear_clip_indices(vertices, [0, 1, 2, 3])
        assert len(triangles) == 2

    def test_concave(self):
        """L-образный контур: n - 2 треугольника, площадь сохраняется."""
        vertices = np.array([
            [0, 0], [2, 0], [2, 1], [1, 1], [1, 2], [0, 2],
        ], dtype=np.float64)
        triangles = ear_clip_indices(vertices, list(range(6)))
        assert len(triangles) == 4
        area = 0.0
        for a, b, c in triangles:
            pa, pb, pc = vertices[a], vertices[b], vertices[c]
            area += 0.5 * ((pb[0] - pa[0]) * (pc[1] - pa[1]) - (pb[1] - pa[1]) * (pc[0] - pa[0]))
        assert area == pytest.approx(3.0)

    def test_collinear_vertex(self):
        """Вершина на ребре не даёт вырожденных треугольников."""
        vertices = np.array([[0, 0], [1, 0], [2, 0], [2, 2], [0, 2]], dtype=np.float64)
        triangles = ear_clip_indices(vertices, list(range(5)))
        assert len(triangles) == 3


def illegal_edges(tri):
    """Рёбра, не являющиеся ограничениями и нарушающие критерий Delaunay."""
    owners = {}
    for t in tri.triangles:
        a, b, c = (int(i) for i in t)
        for u, w, opposite in ((a, b, c), (b, c, a), (c, a, b)):
            owners.setdefault((min(u, w), max(u, w)), []).append((u, w, opposite))
    result = []
    for edge, sides in owners.items():
        if len(sides) != 2 or edge in tri.constraints:
            continue
        (u, w, c), (_, _, d) = sides
        pa, pb, pc, pd = tri.vertices[[u, w, c, d]]
        if in_circumcircle(pa[0], pa[1], pb[0], pb[1], pc[0], pc[1], pd[0], pd[1]):
            result.append(edge)
    return result


class TestDelaunayFlipLarge:
    """Переворот рёбер на многоугольниках с сотнями вершин."""

    def star(self, count, seed):
        rng = np.random.default_rng(seed)
        angles = np.linspace(0.0, 2 * math.pi, count, endpoint=False)
        radii = rng.uniform(5.0, 10.0, count)
        return np.stack([radii * np.cos(angles), radii * np.sin(angles)], axis=1)

    @pytest.mark.parametrize("seed", range(3))
    def test_star_becomes_delaunay(self, seed):
        tri = triangulate_polygon(self.star(200, seed))
        assert len(tri.triangles) == 198
        assert illegal_edges(tri) == []

    def test_holes_become_delaunay(self):
        outer = np.array([(0, 0), (40, 0), (40, 40), (0, 40)], dtype=np.float64)
        holes = []
        for cx, cy in ((10, 10), (30, 10), (10, 30), (30, 30)):
            angles = np.linspace(0.0, 2 * math.pi, 24, endpoint=False)
            holes.append(np.stack([cx + 3 * np.cos(-angles), cy + 3 * np.sin(-angles)], axis=1))
        tri = triangulate_polygon(outer, holes)
        assert illegal_edges(tri) == []

    def test_flip_limit(self):
        tri = triangulate_polygon(self.star(100, 0), optimize=False)
        triangles = [tuple(int(i) for i in t) for t in tri.triangles]
        limited = delaunay_flip(tri.vertices, triangles, tri.constraints, max_iterations=1)
        changed = edge_set(limited) ^ edge_set(triangles)
        # один переворот заменяет ровно одно ребро
        assert len(changed) in (0, 2)
