"""
Геометрическое ядро: точки, отрезки, полигоны.

Соглашения:
- полигон — np.ndarray shape (N, 2), замыкание неявное (последняя точка
  соединяется с первой, повтор первой точки не хранится);
- внешний контур CCW (положительная площадь), дырки CW;
- принадлежность точки полигону — по ненулевому winding number,
  то же правило использует offset (navforge.geombase.offset).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import math

import numpy as np

from navforge.geombase.errors import DegenerateGeometry, SelfIntersectingConstraint


def as_points(points) -> np.ndarray:
    """Привести последовательность точек к np.ndarray shape (N, 2) float64."""
    arr = np.asarray(points, dtype=np.float64)
    if arr.size == 0:
        return np.zeros((0, 2), dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] < 2:
        raise ValueError(f"expected (N, 2) points, got shape {arr.shape}")
    return np.ascontiguousarray(arr[:, :2])


def cross2(ax: float, ay: float, bx: float, by: float) -> float:
    return ax * by - ay * bx


def orient(a, b, c) -> float:
    """Удвоенная знаковая площадь треугольника abc (> 0 для CCW)."""
    return (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])


def signed_area(polygon: np.ndarray) -> float:
    """Вычислить знаковую площадь полигона (положительная для CCW)."""
    pts = as_points(polygon)
    if len(pts) < 3:
        return 0.0
    x = pts[:, 0]
    y = pts[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


def polygon_area(polygon: np.ndarray) -> float:
    return abs(signed_area(polygon))


def is_ccw(polygon: np.ndarray) -> bool:
    return signed_area(polygon) > 0.0


def ensure_ccw(polygon: np.ndarray) -> np.ndarray:
    pts = as_points(polygon)
    return pts if signed_area(pts) >= 0.0 else pts[::-1].copy()


def ensure_cw(polygon: np.ndarray) -> np.ndarray:
    pts = as_points(polygon)
    return pts if signed_area(pts) <= 0.0 else pts[::-1].copy()


def polygon_centroid(polygon: np.ndarray) -> np.ndarray:
    """Центр масс полигона. Для вырожденного контура — среднее вершин."""
    pts = as_points(polygon)
    area = signed_area(pts)
    if abs(area) < 1e-18:
        return pts.mean(axis=0) if len(pts) else np.zeros(2)
    x = pts[:, 0]
    y = pts[:, 1]
    xn = np.roll(x, -1)
    yn = np.roll(y, -1)
    c = x * yn - xn * y
    cx = float(np.sum((x + xn) * c)) / (6.0 * area)
    cy = float(np.sum((y + yn) * c)) / (6.0 * area)
    return np.array([cx, cy])


def point_segment_distance(p, a, b) -> float:
    """Расстояние от точки до отрезка ab."""
    abx = b[0] - a[0]
    aby = b[1] - a[1]
    apx = p[0] - a[0]
    apy = p[1] - a[1]
    denom = abx * abx + aby * aby
    if denom <= 0.0:
        return math.hypot(apx, apy)
    t = (apx * abx + apy * aby) / denom
    t = min(1.0, max(0.0, t))
    return math.hypot(apx - t * abx, apy - t * aby)


def winding_numbers(
    points: np.ndarray,
    starts: np.ndarray,
    ends: np.ndarray,
) -> np.ndarray:
    """
    Winding number набора точек относительно набора направленных отрезков.

    Отрезки могут принадлежать нескольким замкнутым кривым — результат
    является суммой winding number по всем кривым (алгоритм Sunday,
    полуоткрытое правило для вершин).

    Args:
        points: (P, 2) — точки.
        starts: (S, 2) — начала отрезков.
        ends: (S, 2) — концы отрезков.

    Returns:
        (P,) int — winding number каждой точки.
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if len(starts) == 0 or len(points) == 0:
        return np.zeros(len(points), dtype=np.int64)

    px = points[:, 0][:, None]
    py = points[:, 1][:, None]
    ax = starts[:, 0][None, :]
    ay = starts[:, 1][None, :]
    bx = ends[:, 0][None, :]
    by = ends[:, 1][None, :]

    is_left = (bx - ax) * (py - ay) - (px - ax) * (by - ay)
    upward = (ay <= py) & (by > py) & (is_left > 0)
    downward = (ay > py) & (by <= py) & (is_left < 0)
    return upward.sum(axis=1) - downward.sum(axis=1)


def polygon_segments(polygon: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    pts = as_points(polygon)
    return pts, np.roll(pts, -1, axis=0)


def winding_number(point, polygon: np.ndarray) -> int:
    starts, ends = polygon_segments(polygon)
    return int(winding_numbers(np.asarray(point, dtype=np.float64)[:2], starts, ends)[0])


def point_in_polygon(point, polygon: np.ndarray) -> bool:
    """Точка внутри полигона (ненулевой winding number). Граница не определена."""
    return winding_number(point, polygon) != 0


class IntersectionKind(Enum):
    NONE = 0
    POINT = 1
    OVERLAP = 2


@dataclass(frozen=True)
class SegmentIntersection:
    """Результат пересечения двух отрезков."""

    kind: IntersectionKind
    points: tuple[tuple[float, float], ...] = ()
    """Точка пересечения (POINT) или концы общего участка (OVERLAP)."""

    def __bool__(self) -> bool:
        return self.kind is not IntersectionKind.NONE


_NO_INTERSECTION = SegmentIntersection(IntersectionKind.NONE)


def segment_intersection(a1, a2, b1, b2, eps: float = 1e-9) -> SegmentIntersection:
    """
    Пересечение отрезков a1-a2 и b1-b2.

    Касание в конце считается пересечением (POINT). Коллинеарные отрезки
    с общим участком ненулевой длины дают OVERLAP.
    """
    dax = a2[0] - a1[0]
    day = a2[1] - a1[1]
    dbx = b2[0] - b1[0]
    dby = b2[1] - b1[1]
    len_a = math.hypot(dax, day)
    len_b = math.hypot(dbx, dby)
    denom = cross2(dax, day, dbx, dby)
    wx = b1[0] - a1[0]
    wy = b1[1] - a1[1]

    if abs(denom) > eps * max(len_a * len_b, eps):
        t = cross2(wx, wy, dbx, dby) / denom
        u = cross2(wx, wy, dax, day) / denom
        tol_a = eps / len_a if len_a > 0 else 0.0
        tol_b = eps / len_b if len_b > 0 else 0.0
        if -tol_a <= t <= 1.0 + tol_a and -tol_b <= u <= 1.0 + tol_b:
            t = min(1.0, max(0.0, t))
            return SegmentIntersection(
                IntersectionKind.POINT,
                ((a1[0] + t * dax, a1[1] + t * day),),
            )
        return _NO_INTERSECTION

    # Параллельные: проверяем коллинеарность
    if len_a <= eps:
        if point_segment_distance(a1, b1, b2) <= eps:
            return SegmentIntersection(IntersectionKind.POINT, ((a1[0], a1[1]),))
        return _NO_INTERSECTION
    if abs(cross2(dax, day, wx, wy)) / len_a > eps:
        return _NO_INTERSECTION

    inv = 1.0 / (len_a * len_a)
    t0 = (wx * dax + wy * day) * inv
    t1 = ((b2[0] - a1[0]) * dax + (b2[1] - a1[1]) * day) * inv
    lo = max(0.0, min(t0, t1))
    hi = min(1.0, max(t0, t1))
    tol = eps / len_a
    if hi < lo - tol:
        return _NO_INTERSECTION
    p_lo = (a1[0] + lo * dax, a1[1] + lo * day)
    if hi - lo <= tol:
        return SegmentIntersection(IntersectionKind.POINT, (p_lo,))
    p_hi = (a1[0] + hi * dax, a1[1] + hi * day)
    return SegmentIntersection(IntersectionKind.OVERLAP, (p_lo, p_hi))


def remove_duplicate_points(polygon: np.ndarray, eps: float = 1e-9, closed: bool = True) -> np.ndarray:
    """Удалить подряд идущие совпадающие точки (и повтор первой точки в конце)."""
    pts = as_points(polygon)
    if len(pts) == 0:
        return pts
    keep = [0]
    for i in range(1, len(pts)):
        if np.hypot(*(pts[i] - pts[keep[-1]])) > eps:
            keep.append(i)
    if closed and len(keep) > 1 and np.hypot(*(pts[keep[-1]] - pts[keep[0]])) <= eps:
        keep.pop()
    return pts[keep]


class PolygonCheck(Enum):
    VALID = 0
    DEGENERATE = 1
    SELF_INTERSECTING = 2


def _segments_conflict(a1, a2, b1, b2, eps: float) -> bool:
    """Недопустимый контакт рёбер: всё, кроме общего конца."""
    hit = segment_intersection(a1, a2, b1, b2, eps)
    if not hit:
        return False
    if hit.kind is IntersectionKind.OVERLAP:
        return True
    p = hit.points[0]
    ends_a = (a1, a2)
    ends_b = (b1, b2)
    on_end_a = any(math.hypot(p[0] - q[0], p[1] - q[1]) <= eps for q in ends_a)
    on_end_b = any(math.hypot(p[0] - q[0], p[1] - q[1]) <= eps for q in ends_b)
    return not (on_end_a and on_end_b)


def find_crossing_edges(
    contours: list[np.ndarray],
    eps: float = 1e-9,
) -> list[tuple[tuple[int, int], tuple[int, int]]]:
    """
    Найти пары конфликтующих рёбер в наборе контуров.

    Ребро задаётся как (индекс контура, индекс начальной вершины).
    Соседние рёбра одного контура, сходящиеся в общей вершине, не считаются.
    """
    starts = []
    ends = []
    ids = []
    for ci, contour in enumerate(contours):
        pts = as_points(contour)
        n = len(pts)
        for i in range(n):
            starts.append(pts[i])
            ends.append(pts[(i + 1) % n])
            ids.append((ci, i, n))
    if not starts:
        return []

    starts_arr = np.array(starts)
    ends_arr = np.array(ends)
    lo = np.minimum(starts_arr, ends_arr) - eps
    hi = np.maximum(starts_arr, ends_arr) + eps
    overlap = (
        (lo[:, None, 0] <= hi[None, :, 0]) & (lo[None, :, 0] <= hi[:, None, 0])
        & (lo[:, None, 1] <= hi[None, :, 1]) & (lo[None, :, 1] <= hi[:, None, 1])
    )
    overlap = np.triu(overlap, k=1)

    conflicts = []
    for i, j in zip(*np.nonzero(overlap)):
        ci, ei, n = ids[i]
        cj, ej, _ = ids[j]
        if ci == cj and n > 2 and ((ei + 1) % n == ej or (ej + 1) % n == ei):
            # соседние рёбра: конфликт только если они накладываются
            hit = segment_intersection(starts[i], ends[i], starts[j], ends[j], eps)
            if hit.kind is IntersectionKind.OVERLAP:
                conflicts.append(((ci, ei), (cj, ej)))
            continue
        if _segments_conflict(starts[i], ends[i], starts[j], ends[j], eps):
            conflicts.append(((ci, ei), (cj, ej)))
    return conflicts


def check_polygon(polygon: np.ndarray, eps: float = 1e-9) -> PolygonCheck:
    """Проверить контур: вырожденность и самопересечения."""
    pts = remove_duplicate_points(polygon, eps)
    if len(pts) < 3 or polygon_area(pts) <= eps * eps:
        return PolygonCheck.DEGENERATE
    if find_crossing_edges([pts], eps):
        return PolygonCheck.SELF_INTERSECTING
    return PolygonCheck.VALID


def validate_polygon(polygon: np.ndarray, eps: float = 1e-9) -> np.ndarray:
    """
    Проверить контур и вернуть его без повторяющихся точек.

    Raises:
        DegenerateGeometry: меньше трёх точек или нулевая площадь.
        SelfIntersectingConstraint: контур самопересекается.
    """
    pts = remove_duplicate_points(polygon, eps)
    result = check_polygon(pts, eps)
    if result is PolygonCheck.DEGENERATE:
        raise DegenerateGeometry(f"degenerate contour with {len(pts)} points")
    if result is PolygonCheck.SELF_INTERSECTING:
        raise SelfIntersectingConstraint("contour intersects itself")
    return pts


class PointWelder:
    """
    Склейка совпадающих точек.

    Точки ближе eps получают один и тот же идентификатор.
    Поиск по хешу сетки с шагом eps (проверяются соседние ячейки).
    """

    def __init__(self, eps: float = 1e-9) -> None:
        self.eps = eps
        self.points: list[tuple[float, float]] = []
        self._cells: dict[tuple[int, int], list[int]] = {}

    def __len__(self) -> int:
        return len(self.points)

    def _cell(self, x: float, y: float) -> tuple[int, int]:
        return (math.floor(x / self.eps), math.floor(y / self.eps))

    def add(self, point) -> int:
        x = float(point[0])
        y = float(point[1])
        cx, cy = self._cell(x, y)
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for idx in self._cells.get((cx + dx, cy + dy), ()):
                    px, py = self.points[idx]
                    if math.hypot(px - x, py - y) <= self.eps:
                        return idx
        idx = len(self.points)
        self.points.append((x, y))
        self._cells.setdefault((cx, cy), []).append(idx)
        return idx

    def array(self) -> np.ndarray:
        if not self.points:
            return np.zeros((0, 2), dtype=np.float64)
        return np.array(self.points, dtype=np.float64)
