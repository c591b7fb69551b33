"""
Упрощение полилиний и контуров.

Алгоритм повторного исключения точек (в духе Visvalingam–Whyatt):
на каждом шаге удаляется вершина, удаление которой дешевле всего.
Цена вершины — максимальное отклонение всех исходных точек, которые
после удаления окажутся покрыты новым отрезком. Поэтому каждая
выброшенная точка остаётся в пределах tolerance от упрощённой линии,
а сохранённые точки не сдвигаются.
"""

from __future__ import annotations

import numpy as np

from navforge.geombase.kernel import (
    IntersectionKind,
    orient,
    point_segment_distance,
    remove_duplicate_points,
    segment_intersection,
)


def _covered(prev: int, nxt: int, n: int, closed: bool) -> list[int]:
    """Исходные индексы строго между prev и nxt (с учётом цикличности)."""
    if not closed or nxt > prev:
        return list(range(prev + 1, nxt))
    return list(range(prev + 1, n)) + list(range(0, nxt))


def _removal_cost(
    points: np.ndarray,
    prev: int,
    nxt: int,
    closed: bool,
) -> float:
    a = points[prev]
    b = points[nxt]
    return max(
        (point_segment_distance(points[k], a, b) for k in _covered(prev, nxt, len(points), closed)),
        default=0.0,
    )


def _shortcut_is_simple(
    points: np.ndarray,
    ring: list[int],
    pos: int,
    eps: float,
    closed: bool = True,
) -> bool:
    """
    Проверить, что отрезок prev-next (вместо вершины ring[pos]) не
    пересекает остальные рёбра контура.
    """
    m = len(ring)
    prev = ring[(pos - 1) % m]
    nxt = ring[(pos + 1) % m]
    a = points[prev]
    b = points[nxt]
    for k in range(m if closed else m - 1):
        s = ring[k]
        e = ring[(k + 1) % m]
        if s in (prev, ring[pos]) or e in (ring[pos], nxt):
            continue
        hit = segment_intersection(a, b, points[s], points[e], eps)
        if not hit:
            continue
        # общая вершина с соседним ребром допустима
        if (e == prev or s == nxt) and hit.kind is IntersectionKind.POINT:
            continue
        return False
    return True


def simplify_polyline(
    points,
    tolerance: float,
    closed: bool = True,
    eps: float = 1e-9,
) -> np.ndarray:
    """
    Упростить полилинию или замкнутый контур.

    Args:
        points: (N, 2) — вершины. Для замкнутого контура повтор первой
            точки в конце допустим и отбрасывается.
        tolerance: Максимальное отклонение удалённой точки от упрощённой линии.
        closed: Замкнутый контур (минимум 3 вершины) или открытая
            полилиния (минимум 2, концы не удаляются).
        eps: Точность геометрических проверок.

    Returns:
        Упрощённая линия shape (M, 2), подмножество исходных точек в исходном порядке.
    """
    pts = remove_duplicate_points(points, eps, closed=closed)
    n = len(pts)
    min_count = 3 if closed else 2
    if tolerance <= 0.0 or n <= min_count:
        return pts

    ring = list(range(n))
    pinned: set[int] = set()
    if not closed:
        pinned.update((0, n - 1))

    def area_of(indices: list[int]) -> float:
        sub = pts[indices]
        x = sub[:, 0]
        y = sub[:, 1]
        return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))

    original_sign = np.sign(area_of(ring)) if closed else 0.0

    while len(ring) > min_count:
        m = len(ring)
        best = None
        for pos in range(m):
            idx = ring[pos]
            if idx in pinned:
                continue
            if not closed and (pos == 0 or pos == m - 1):
                continue
            prev = ring[(pos - 1) % m]
            nxt = ring[(pos + 1) % m]
            cost = _removal_cost(pts, prev, nxt, closed)
            if cost > tolerance:
                continue
            area = abs(orient(pts[prev], pts[idx], pts[nxt]))
            key = (cost, area, idx)
            if best is None or key < best[0]:
                best = (key, pos)

        if best is None:
            break

        pos = best[1]
        idx = ring[pos]
        if closed:
            candidate = ring[:pos] + ring[pos + 1:]
            new_area = area_of(candidate)
            if (
                abs(new_area) <= eps * eps
                or np.sign(new_area) != original_sign
                or not _shortcut_is_simple(pts, ring, pos, eps)
            ):
                pinned.add(idx)
                continue
            ring = candidate
        else:
            if not _shortcut_is_simple(pts, ring, pos, eps, closed=False):
                pinned.add(idx)
                continue
            ring = ring[:pos] + ring[pos + 1:]

    return pts[ring]
