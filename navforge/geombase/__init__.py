"""
Плоская вычислительная геометрия для построения навигационных сеток.

Содержит:
- kernel - площади, winding number, пересечения отрезков, проверка контуров
- simplify - упрощение полилиний повторным исключением точек
- boolean - области контуров по winding number, объединение и разность (shapely)
- offset - смещение полигонов на радиус агента (буфер shapely)
"""

from navforge.geombase.errors import (
    GeometryError,
    DegenerateGeometry,
    SelfIntersectingConstraint,
    TriangulationFailure,
)
from navforge.geombase.kernel import (
    IntersectionKind,
    PointWelder,
    PolygonCheck,
    SegmentIntersection,
    as_points,
    check_polygon,
    ensure_ccw,
    ensure_cw,
    is_ccw,
    point_in_polygon,
    polygon_area,
    polygon_centroid,
    remove_duplicate_points,
    segment_intersection,
    signed_area,
    validate_polygon,
    winding_number,
    winding_numbers,
)
from navforge.geombase.simplify import simplify_polyline
from navforge.geombase.boolean import difference, region, resolve_contours, to_contours, union
from navforge.geombase.offset import offset_polygons

__all__ = [
    'GeometryError',
    'DegenerateGeometry',
    'SelfIntersectingConstraint',
    'TriangulationFailure',
    'IntersectionKind',
    'PointWelder',
    'PolygonCheck',
    'SegmentIntersection',
    'as_points',
    'check_polygon',
    'ensure_ccw',
    'ensure_cw',
    'is_ccw',
    'point_in_polygon',
    'polygon_area',
    'polygon_centroid',
    'remove_duplicate_points',
    'segment_intersection',
    'signed_area',
    'validate_polygon',
    'winding_number',
    'winding_numbers',
    'simplify_polyline',
    'difference',
    'region',
    'resolve_contours',
    'to_contours',
    'union',
    'offset_polygons',
]
