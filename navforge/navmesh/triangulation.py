"""
Триангуляция навигационной области с ограничениями.

Внешний контур (CCW) и дырки (CW) объединяются в один контур через
мосты (bridge edges), контур режется методом Ear Clipping, затем
внутренние рёбра переворачиваются по критерию Delaunay. Рёбра контуров
являются ограничениями: они никогда не переворачиваются и не
разбиваются, поэтому каждое ребро границы и дырок присутствует
в результате без изменений.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

import numpy as np

from navforge import log
from navforge.geombase.kernel import (
    PointWelder,
    as_points,
    ensure_ccw,
    ensure_cw,
    find_crossing_edges,
    orient,
    polygon_area,
    signed_area,
    validate_polygon,
    winding_numbers,
)
from navforge.navmesh.errors import (
    DegenerateGeometry,
    SelfIntersectingConstraint,
    TriangulationFailure,
)


@dataclass
class Triangulation:
    """Результат триангуляции: общий буфер вершин и треугольники."""

    vertices: np.ndarray
    """2D координаты вершин, shape (N, 2)."""

    triangles: np.ndarray
    """Индексы вершин треугольников (CCW), shape (M, 3)."""

    constraints: frozenset[tuple[int, int]] = field(default_factory=frozenset)
    """Рёбра-ограничения (меньший индекс первым)."""

    def area(self) -> float:
        if len(self.triangles) == 0:
            return 0.0
        a = self.vertices[self.triangles[:, 0]]
        b = self.vertices[self.triangles[:, 1]]
        c = self.vertices[self.triangles[:, 2]]
        cross = (b[:, 0] - a[:, 0]) * (c[:, 1] - a[:, 1]) - (b[:, 1] - a[:, 1]) * (c[:, 0] - a[:, 0])
        return float(0.5 * np.abs(cross).sum())

    def edge_set(self) -> set[tuple[int, int]]:
        edges = set()
        for a, b, c in self.triangles:
            for u, v in ((a, b), (b, c), (c, a)):
                edges.add((int(min(u, v)), int(max(u, v))))
        return edges


def _segments(contour: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    return contour, np.roll(contour, -1, axis=0)


def _distances_to_segments(points: np.ndarray, starts: np.ndarray, ends: np.ndarray) -> np.ndarray:
    """Расстояние от каждой точки до ближайшего из отрезков, shape (P,)."""
    d = ends - starts
    len_sq = (d * d).sum(axis=1)
    len_sq = np.where(len_sq > 0.0, len_sq, 1.0)
    rel = points[:, None, :] - starts[None, :, :]
    t = np.clip((rel * d[None, :, :]).sum(axis=2) / len_sq[None, :], 0.0, 1.0)
    closest = starts[None, :, :] + t[:, :, None] * d[None, :, :]
    dist = np.hypot(points[:, None, 0] - closest[:, :, 0], points[:, None, 1] - closest[:, :, 1])
    return dist.min(axis=1)


def _strictly_inside(points: np.ndarray, contour: np.ndarray, eps: float) -> np.ndarray:
    starts, ends = _segments(contour)
    inside = winding_numbers(points, starts, ends) != 0
    return inside & (_distances_to_segments(points, starts, ends) > eps)


def validate_constraints(
    outer,
    holes: Iterable = (),
    eps: float = 1e-9,
) -> tuple[np.ndarray, list[np.ndarray]]:
    """
    Проверить входные контуры триангуляции.

    Returns:
        (outer CCW, [holes CW]) без повторяющихся точек.

    Raises:
        DegenerateGeometry: контур вырожден.
        SelfIntersectingConstraint: рёбра контуров пересекаются или
            накладываются, дырка выходит за внешний контур или лежит в другой дырке.
    """
    outer = ensure_ccw(validate_polygon(outer, eps))
    holes = [ensure_cw(validate_polygon(h, eps)) for h in holes]

    conflicts = find_crossing_edges([outer] + holes, eps)
    if conflicts:
        (ci, ei), (cj, ej) = conflicts[0]
        raise SelfIntersectingConstraint(
            f"constraint edges cross: contour {ci} edge {ei} and contour {cj} edge {ej}"
        )

    for i, hole in enumerate(holes):
        starts, ends = _segments(outer)
        outside = winding_numbers(hole, starts, ends) == 0
        if np.any(outside & (_distances_to_segments(hole, starts, ends) > eps)):
            raise SelfIntersectingConstraint(f"hole {i} lies outside the outer contour")
        for j, other in enumerate(holes):
            if i != j and np.any(_strictly_inside(hole, other, eps)):
                raise SelfIntersectingConstraint(f"hole {i} lies inside hole {j}")

    return outer, holes


def _in_wedge(prev_p, v, next_p, target) -> bool:
    """Направление v→target лежит во внутреннем угле (слева от prev→v→next)."""
    left_in = orient(prev_p, v, target) > 0.0
    left_out = orient(v, next_p, target) > 0.0
    if orient(prev_p, v, next_p) >= 0.0:
        return left_in and left_out
    return left_in or left_out


def _segment_blocked(
    p: np.ndarray,
    q: np.ndarray,
    starts: np.ndarray,
    ends: np.ndarray,
    points: np.ndarray,
    eps: float,
) -> bool:
    """Отрезок pq пересекает рёбра или проходит через чужую вершину."""
    length = float(np.hypot(*(q - p)))
    tol = eps * max(length, 1.0)

    def side(a, b, c):
        return (b[..., 0] - a[..., 0]) * (c[..., 1] - a[..., 1]) - (b[..., 1] - a[..., 1]) * (c[..., 0] - a[..., 0])

    d1 = side(starts, ends, p)
    d2 = side(starts, ends, q)
    d3 = side(p, q, starts)
    d4 = side(p, q, ends)
    crossing = (
        (((d1 > tol) & (d2 < -tol)) | ((d1 < -tol) & (d2 > tol)))
        & (((d3 > tol) & (d4 < -tol)) | ((d3 < -tol) & (d4 > tol)))
    )
    if np.any(crossing):
        return True

    far_from_ends = (np.hypot(*(points - p).T) > eps) & (np.hypot(*(points - q).T) > eps)
    others = points[far_from_ends]
    if len(others):
        dist = _distances_to_segments(others, p[None, :], q[None, :])
        if np.any(dist <= eps):
            return True

    mid = 0.5 * (p + q)
    return bool(_distances_to_segments(mid[None, :], starts, ends)[0] <= eps)


def _bridge_holes(
    vertices: np.ndarray,
    outer: list[int],
    holes: list[list[int]],
    eps: float,
) -> list[int]:
    """
    Включить дырки во внешний контур через мосты.

    Дырки обрабатываются по убыванию максимального X. Мост выбирается
    кратчайшим среди видимых: он не пересекает рёбра контура, уже
    вставленных мостов и ещё не вставленных дырок, не проходит через
    вершины и лежит внутри области.
    """
    all_starts = []
    all_ends = []
    for contour in [outer] + holes:
        pts = vertices[contour]
        all_starts.append(pts)
        all_ends.append(np.roll(pts, -1, axis=0))
    region_starts = np.concatenate(all_starts)
    region_ends = np.concatenate(all_ends)

    loop = list(outer)
    pending = sorted(holes, key=lambda h: float(vertices[h][:, 0].max()), reverse=True)

    while pending:
        hole = pending.pop(0)
        m = len(hole)
        loop_pts = vertices[loop]
        hole_pts = vertices[hole]

        edge_starts = [loop_pts, hole_pts]
        edge_ends = [np.roll(loop_pts, -1, axis=0), np.roll(hole_pts, -1, axis=0)]
        for other in pending:
            other_pts = vertices[other]
            edge_starts.append(other_pts)
            edge_ends.append(np.roll(other_pts, -1, axis=0))
        starts = np.concatenate(edge_starts)
        ends = np.concatenate(edge_ends)

        dist = np.hypot(
            loop_pts[:, None, 0] - hole_pts[None, :, 0],
            loop_pts[:, None, 1] - hole_pts[None, :, 1],
        )
        order = np.argsort(dist, axis=None, kind="stable")
        n = len(loop)
        bridge = None
        for flat in order:
            ci, hj = divmod(int(flat), m)
            v = loop_pts[ci]
            h = hole_pts[hj]
            loop_prev = loop_pts[(ci - 1) % n]
            loop_next = loop_pts[(ci + 1) % n]
            if loop[ci] == hole[hj]:
                if _in_wedge(loop_prev, v, loop_next, hole_pts[(hj + 1) % m]):
                    bridge = (ci, hj, True)
                    break
                continue
            if dist[ci, hj] <= eps:
                continue
            if not _in_wedge(loop_prev, v, loop_next, h):
                continue
            if not _in_wedge(hole_pts[(hj - 1) % m], h, hole_pts[(hj + 1) % m], v):
                continue
            if _segment_blocked(h, v, starts, ends, vertices, eps):
                continue
            mid = 0.5 * (h + v)
            if winding_numbers(mid, region_starts, region_ends)[0] <= 0:
                continue
            bridge = (ci, hj, False)
            break

        if bridge is None:
            raise TriangulationFailure(f"no visible bridge for a hole with {m} vertices")

        ci, hj, shared = bridge
        rotated = [hole[(hj + k) % m] for k in range(m)]
        if shared:
            loop = loop[:ci + 1] + rotated[1:] + [loop[ci]] + loop[ci + 1:]
        else:
            loop = loop[:ci + 1] + rotated + [hole[hj], loop[ci]] + loop[ci + 1:]

    return loop


def ear_clip_indices(
    vertices: np.ndarray,
    loop: list[int],
    eps: float = 1e-9,
) -> list[tuple[int, int, int]]:
    """
    Триангулировать (слабо) простой CCW-контур методом Ear Clipping.

    Контур задан индексами в общий буфер вершин; после вставки мостов
    одна вершина может встречаться в нём несколько раз.

    Raises:
        TriangulationFailure: ухо не найдено, а оставшаяся часть имеет
            ненулевую площадь.
    """
    ring = list(loop)
    triangles: list[tuple[int, int, int]] = []
    tol = eps * eps

    while len(ring) > 3:
        m = len(ring)
        # шип a-b-a: вершина b и повтор a удаляются
        spike = next((i for i in range(m) if ring[i - 1] == ring[(i + 1) % m]), None)
        if spike is not None:
            for pos in sorted({spike, (spike + 1) % m}, reverse=True):
                ring.pop(pos)
            continue

        pts = vertices[ring]
        ids = np.array(ring)
        found = False
        for i in range(m):
            a = ring[i - 1]
            b = ring[i]
            c = ring[(i + 1) % m]
            pa = vertices[a]
            pb = vertices[b]
            pc = vertices[c]
            if orient(pa, pb, pc) <= tol:
                continue

            others = (ids != a) & (ids != b) & (ids != c)
            for corner in (pa, pb, pc):
                others &= np.hypot(pts[:, 0] - corner[0], pts[:, 1] - corner[1]) > eps
            test = pts[others]
            if len(test):
                s1 = (pb[0] - pa[0]) * (test[:, 1] - pa[1]) - (pb[1] - pa[1]) * (test[:, 0] - pa[0])
                s2 = (pc[0] - pb[0]) * (test[:, 1] - pb[1]) - (pc[1] - pb[1]) * (test[:, 0] - pb[0])
                s3 = (pa[0] - pc[0]) * (test[:, 1] - pc[1]) - (pa[1] - pc[1]) * (test[:, 0] - pc[0])
                if np.any((s1 >= -tol) & (s2 >= -tol) & (s3 >= -tol)):
                    continue

            triangles.append((a, b, c))
            ring.pop(i)
            found = True
            break

        if not found:
            if abs(signed_area(vertices[ring])) <= eps:
                log.debug(f"[ear_clip] dropping zero-area remainder of {len(ring)} vertices")
                return triangles
            raise TriangulationFailure(
                f"no ear found: remaining={len(ring)}, triangles={len(triangles)}"
            )

    if len(ring) == 3:
        a, b, c = ring
        if orient(vertices[a], vertices[b], vertices[c]) > tol:
            triangles.append((a, b, c))
    return triangles


def in_circumcircle(
    ax: float, ay: float,
    bx: float, by: float,
    cx: float, cy: float,
    dx: float, dy: float,
) -> bool:
    """
    Проверить, лежит ли точка D внутри описанной окружности треугольника ABC.

    Использует определитель 3x3 (критерий Delaunay).
    Предполагает CCW ориентацию ABC.
    """
    adx = ax - dx
    ady = ay - dy
    bdx = bx - dx
    bdy = by - dy
    cdx = cx - dx
    cdy = cy - dy

    ad_sq = adx * adx + ady * ady
    bd_sq = bdx * bdx + bdy * bdy
    cd_sq = cdx * cdx + cdy * cdy

    det = adx * (bdy * cd_sq - cdy * bd_sq) \
        - ady * (bdx * cd_sq - cdx * bd_sq) \
        + ad_sq * (bdx * cdy - cdx * bdy)

    return det > 0


def _triangle_edge_map(
    triangles: list[tuple[int, int, int]],
) -> dict[tuple[int, int], list[int]]:
    """Ребро (меньший индекс первым) -> индексы треугольников."""
    edge_map: dict[tuple[int, int], list[int]] = {}
    for tri_idx, (a, b, c) in enumerate(triangles):
        for v0, v1 in ((a, b), (b, c), (c, a)):
            edge_map.setdefault((min(v0, v1), max(v0, v1)), []).append(tri_idx)
    return edge_map


def _directed_opposite(tri: tuple[int, int, int], u: int, w: int) -> int | None:
    """Вершина треугольника напротив направленного ребра u→w (если оно есть)."""
    a, b, c = tri
    for x, y, z in ((a, b, c), (b, c, a), (c, a, b)):
        if x == u and y == w:
            return z
    return None


def _edge_key(u: int, w: int) -> tuple[int, int]:
    return (u, w) if u < w else (w, u)


def _move_edge(edge_map: dict, edge: tuple[int, int], old: int, new: int) -> None:
    owners = edge_map[edge]
    owners[owners.index(old)] = new


def delaunay_flip(
    vertices: np.ndarray,
    triangles: list[tuple[int, int, int]],
    constraints: set[tuple[int, int]] | frozenset | None = None,
    eps: float = 1e-9,
    max_iterations: int | None = None,
) -> list[tuple[int, int, int]]:
    """
    Переворот рёбер по критерию Delaunay (алгоритм Лоусона).

    Рёбра-ограничения не переворачиваются. Переворот выполняется только
    если оба новых треугольника невырождены и сохраняют CCW-ориентацию,
    то есть четырёхугольник выпуклый.

    Карта рёбер строится один раз и обновляется при каждом перевороте;
    проверяются только рёбра из стека подозрительных: сначала все, затем
    четыре внешних ребра каждого перевёрнутого четырёхугольника.
    max_iterations ограничивает число переворотов.
    """
    if len(triangles) < 2:
        return list(triangles)

    triangles = list(triangles)
    constraints = constraints or frozenset()
    if max_iterations is None:
        max_iterations = 10 * len(triangles) * len(triangles) + 100
    tol = eps * eps

    edge_map = _triangle_edge_map(triangles)
    stack = sorted((e for e in edge_map if e not in constraints), reverse=True)
    queued = set(stack)
    flip_count = 0

    while stack and flip_count < max_iterations:
        edge = stack.pop()
        queued.discard(edge)
        tri_indices = edge_map.get(edge)
        if tri_indices is None or len(tri_indices) != 2:
            continue

        t1, t2 = tri_indices
        u, w = edge
        c = _directed_opposite(triangles[t1], u, w)
        if c is None:
            u, w = w, u
            c = _directed_opposite(triangles[t1], u, w)
        d = _directed_opposite(triangles[t2], w, u)
        if c is None or d is None or _edge_key(c, d) in edge_map:
            continue

        ax, ay = vertices[u]
        bx, by = vertices[w]
        cx, cy = vertices[c]
        dx, dy = vertices[d]
        if not in_circumcircle(ax, ay, bx, by, cx, cy, dx, dy):
            continue
        if orient(vertices[c], vertices[u], vertices[d]) <= tol:
            continue
        if orient(vertices[d], vertices[w], vertices[c]) <= tol:
            continue

        # t1 = (u, w, c), t2 = (w, u, d) -> (c, u, d), (d, w, c)
        triangles[t1] = (c, u, d)
        triangles[t2] = (d, w, c)
        del edge_map[edge]
        _move_edge(edge_map, _edge_key(w, c), t1, t2)
        _move_edge(edge_map, _edge_key(u, d), t2, t1)
        edge_map[_edge_key(c, d)] = [t1, t2]
        flip_count += 1

        for outer in (_edge_key(u, c), _edge_key(c, w), _edge_key(w, d), _edge_key(d, u)):
            if outer not in constraints and outer not in queued:
                stack.append(outer)
                queued.add(outer)

    if flip_count > 0:
        log.debug(f"[delaunay_flip] {flip_count} flips")

    return triangles


def triangulate_polygon(
    outer,
    holes: Iterable = (),
    eps: float = 1e-9,
    optimize: bool = True,
) -> Triangulation:
    """
    Триангулировать многоугольник с дырками.

    Args:
        outer: Внешний контур shape (N, 2).
        holes: Дырки shape (M, 2).
        eps: Точность геометрии.
        optimize: Применить Delaunay edge flipping.

    Returns:
        Triangulation, покрывающая ровно outer минус holes.
    """
    outer, holes = validate_constraints(outer, holes, eps)

    welder = PointWelder(eps)
    outer_ids = [welder.add(p) for p in outer]
    hole_ids = [[welder.add(p) for p in hole] for hole in holes]
    vertices = welder.array()

    constraints = set()
    for contour in [outer_ids] + hole_ids:
        for i in range(len(contour)):
            a = contour[i]
            b = contour[(i + 1) % len(contour)]
            constraints.add((min(a, b), max(a, b)))

    loop = _bridge_holes(vertices, outer_ids, hole_ids, eps) if hole_ids else outer_ids
    triangles = ear_clip_indices(vertices, loop, eps)
    if optimize:
        triangles = delaunay_flip(vertices, triangles, constraints, eps)

    return Triangulation(
        vertices=vertices,
        triangles=np.array(triangles, dtype=np.int64).reshape(-1, 3),
        constraints=frozenset(constraints),
    )


def group_contours(
    contours: Iterable,
    eps: float = 1e-9,
) -> list[tuple[np.ndarray, list[np.ndarray]]]:
    """
    Сгруппировать разрешённые контуры в (внешний контур, дырки).

    Дырка относится к внешнему контуру наименьшей площади, содержащему
    точку чуть снаружи от неё.
    """
    outers = []
    holes = []
    for contour in contours:
        pts = as_points(contour)
        if len(pts) < 3:
            continue
        (outers if signed_area(pts) > 0 else holes).append(pts)

    groups: list[tuple[np.ndarray, list[np.ndarray]]] = [(o, []) for o in outers]
    areas = [polygon_area(o) for o in outers]
    for hole in holes:
        a = hole[0]
        b = hole[1]
        d = b - a
        length = float(np.hypot(*d))
        if length == 0.0:
            continue
        # слева от ребра CW-дырки навигационная область
        inside = 0.5 * (a + b) + np.array([-d[1], d[0]]) / length * min(eps * 10.0, 0.25 * length)
        owner = None
        for k, o in enumerate(outers):
            starts, ends = _segments(o)
            if winding_numbers(inside, starts, ends)[0] != 0:
                if owner is None or areas[k] < areas[owner]:
                    owner = k
        if owner is None:
            log.warn(f"[triangulation] hole with {len(hole)} vertices has no outer contour, skipped")
            continue
        groups[owner][1].append(hole)
    return groups


def triangulate_region(
    contours: Iterable,
    eps: float = 1e-9,
    optimize: bool = True,
) -> Triangulation:
    """
    Триангулировать область, заданную разрешёнными контурами
    (внешние CCW, дырки CW), в один общий буфер вершин.

    Вырожденные контуры пропускаются с предупреждением.
    """
    welder = PointWelder(eps)
    triangles = []
    constraints = set()

    for outer, holes in group_contours(contours, eps):
        try:
            outer = validate_polygon(outer, eps)
        except DegenerateGeometry as e:
            log.warn(e, "[triangulation] skipping degenerate outer contour")
            continue
        kept_holes = []
        for hole in holes:
            try:
                kept_holes.append(validate_polygon(hole, eps))
            except DegenerateGeometry as e:
                log.warn(e, "[triangulation] skipping degenerate hole")

        part = triangulate_polygon(outer, kept_holes, eps, optimize)
        remap = np.array([welder.add(p) for p in part.vertices], dtype=np.int64)
        triangles.extend(tuple(int(i) for i in remap[t]) for t in part.triangles)
        for a, b in part.constraints:
            ra = int(remap[a])
            rb = int(remap[b])
            constraints.add((min(ra, rb), max(ra, rb)))

    return Triangulation(
        vertices=welder.array(),
        triangles=np.array(triangles, dtype=np.int64).reshape(-1, 3),
        constraints=frozenset(constraints),
    )
