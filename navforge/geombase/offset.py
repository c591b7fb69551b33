"""
Смещение (offset) полигонов на радиус агента.

Контуры сначала сводятся в область по winding number
(boolean.region), затем область смещается буфером shapely со
скруглёнными соединениями. GEOS сам разрешает самопересечения
смещённой кривой, поэтому перекрывающиеся после раздувания
препятствия сливаются, а на выходе нет самопересекающихся контуров.

Знак distance: положительное значение раздувает область (дырки
при этом уменьшаются), отрицательное — сжимает.
"""

from __future__ import annotations

from typing import Iterable

import numpy as np
from shapely.geometry import LineString, Point
from shapely.ops import unary_union

from navforge.geombase.boolean import region, to_contours
from navforge.geombase.kernel import remove_duplicate_points, signed_area


def _collapsed(pts: np.ndarray, eps: float) -> bool:
    """Контур вырожден в точку или отрезок."""
    if len(pts) < 3:
        return True
    extent = float(np.hypot(*(pts.max(axis=0) - pts.min(axis=0))))
    return abs(signed_area(pts)) <= eps * max(1.0, extent)


def offset_polygons(
    polygons: Iterable,
    distance: float,
    resolution: int = 32,
    eps: float = 1e-9,
) -> list[np.ndarray]:
    """
    Сместить набор контуров на distance и разрешить результат.

    Args:
        polygons: Контуры. Внешние CCW, дырки CW; ориентация значима.
        distance: > 0 — раздувание, < 0 — сжатие.
        resolution: Число сегментов на полную окружность для скруглений.
        eps: Точность геометрии.

    Returns:
        Простые контуры (внешние CCW, дырки CW). Пустой список, если
        всё исчезло при сжатии. Точка раздувается в круг, отрезок —
        в скруглённую полосу.
    """
    quad_segs = max(1, resolution // 4)
    solid = []
    thin = []
    for polygon in polygons:
        pts = remove_duplicate_points(polygon, eps)
        if len(pts) == 0:
            continue
        if not _collapsed(pts, eps):
            solid.append(pts)
        elif distance > eps:
            if len(pts) == 1:
                thin.append(Point(pts[0]))
            else:
                thin.append(LineString(np.vstack([pts, pts[:1]])))

    geometry = region(solid, eps=eps)
    if abs(distance) > eps and not geometry.is_empty:
        geometry = geometry.buffer(distance, quad_segs=quad_segs, join_style="round")
    if thin:
        geometry = unary_union([geometry] + [shape.buffer(distance, quad_segs=quad_segs) for shape in thin])
    return to_contours(geometry, eps)
