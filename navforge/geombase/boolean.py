"""
Булевы операции над контурами на shapely.

Контуры — массивы (N, 2) с неявным замыканием, ориентация значима:
внешние CCW, дырки CW. Область, заданная набором контуров,
определяется по winding number (kernel.winding_numbers) — тем же
правилом, что и point_in_polygon. Линии всех контуров узлуются
(unary_union), сеть рёбер разбивается на грани (polygonize), и каждая
грань берётся или отбрасывается по winding number своей внутренней точки.
Так корректно обрабатываются самопересекающиеся и перекрывающиеся контуры.

Результат возвращается обратно в массивы: внешние контуры CCW,
дырки CW (shapely.geometry.polygon.orient).
"""

from __future__ import annotations

import math
from typing import Callable, Iterable

import numpy as np
from shapely.geometry import GeometryCollection, LineString, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient as orient_polygon
from shapely.ops import polygonize, unary_union
from shapely.validation import make_valid

from navforge.geombase.kernel import orient, remove_duplicate_points, signed_area, winding_numbers


def positive_winding(w: np.ndarray) -> np.ndarray:
    return w > 0


def region(
    contours: Iterable[np.ndarray],
    keep: Callable[[np.ndarray], np.ndarray] = positive_winding,
    eps: float = 1e-9,
) -> BaseGeometry:
    """
    Область набора контуров в виде геометрии shapely.

    Args:
        contours: Замкнутые контуры, ориентация значима.
        keep: Предикат над массивом winding number — какие грани оставить.
        eps: Точность склейки соседних точек.
    """
    rings = []
    for contour in contours:
        pts = remove_duplicate_points(contour, eps)
        if len(pts) >= 2:
            rings.append(pts)
    if not rings:
        return GeometryCollection()

    noded = unary_union([LineString(np.vstack([r, r[:1]])) for r in rings])
    faces = list(polygonize(noded))
    if not faces:
        return GeometryCollection()

    starts = np.vstack(rings)
    ends = np.vstack([np.roll(r, -1, axis=0) for r in rings])
    inside = np.array([face.representative_point().coords[0] for face in faces], dtype=np.float64)
    kept = keep(winding_numbers(inside, starts, ends))
    return unary_union([face for face, k in zip(faces, kept) if k])


def _polygons(geometry: BaseGeometry) -> list[Polygon]:
    if geometry.is_empty:
        return []
    if isinstance(geometry, Polygon):
        return [geometry]
    if hasattr(geometry, "geoms"):
        return [p for part in geometry.geoms for p in _polygons(part)]
    return []


def _drop_collinear(points: np.ndarray, eps: float) -> np.ndarray:
    """Убрать вершины, лежащие на прямой между соседями (без разворота)."""
    pts = points
    while len(pts) > 3:
        n = len(pts)
        drop = None
        for i in range(n):
            a = pts[i - 1]
            b = pts[i]
            c = pts[(i + 1) % n]
            ab = math.hypot(b[0] - a[0], b[1] - a[1])
            bc = math.hypot(c[0] - b[0], c[1] - b[1])
            dot = (b[0] - a[0]) * (c[0] - b[0]) + (b[1] - a[1]) * (c[1] - b[1])
            if ab <= eps or bc <= eps or (abs(orient(a, b, c)) <= eps * max(ab, bc) and dot > 0):
                drop = i
                break
        if drop is None:
            break
        pts = np.delete(pts, drop, axis=0)
    return pts


def to_contours(geometry: BaseGeometry, eps: float = 1e-9) -> list[np.ndarray]:
    """
    Полигоны геометрии shapely в виде контуров.

    Для каждого полигона сначала идёт внешний контур (CCW), затем его дырки (CW).
    Линии и точки отбрасываются.
    """
    result = []
    for polygon in _polygons(geometry):
        polygon = orient_polygon(polygon, sign=1.0)
        for ring in (polygon.exterior, *polygon.interiors):
            contour = _drop_collinear(np.array(ring.coords, dtype=np.float64)[:-1, :2], eps)
            if len(contour) < 3 or abs(signed_area(contour)) <= eps * eps:
                continue
            result.append(contour)
    return result


def resolve_contours(
    contours: Iterable[np.ndarray],
    keep: Callable[[np.ndarray], np.ndarray] = positive_winding,
    eps: float = 1e-9,
) -> list[np.ndarray]:
    """
    Разрешить набор (возможно пересекающихся) контуров по правилу winding number.

    Returns:
        Список простых контуров: внешние CCW, дырки CW.
    """
    return to_contours(region(contours, keep, eps), eps)


def union(polygons: Iterable[np.ndarray], eps: float = 1e-9) -> list[np.ndarray]:
    """Объединение полигонов. Каждый полигон считается заполненным независимо от ориентации."""
    shapes = []
    for polygon in polygons:
        pts = remove_duplicate_points(polygon, eps)
        if len(pts) < 3:
            continue
        shape = Polygon(pts)
        if not shape.is_valid:
            shape = make_valid(shape)
        shapes.append(shape)
    if not shapes:
        return []
    return to_contours(unary_union(shapes), eps)


def difference(
    subject: Iterable[np.ndarray],
    clip: Iterable[np.ndarray],
    eps: float = 1e-9,
) -> list[np.ndarray]:
    """
    Разность subject − clip.

    Оба набора задают области по winding number: внешние контуры CCW,
    дырки CW.
    """
    result = region(subject, eps=eps)
    cut = region(clip, eps=eps)
    if not cut.is_empty and not result.is_empty:
        result = result.difference(cut)
    return to_contours(result, eps)
