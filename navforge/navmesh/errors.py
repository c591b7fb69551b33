"""
Ошибки построения и использования навигационной сетки.

Геометрические ошибки (GeometryError и наследники) восстановимы:
сборка пропускает вырожденный контур или завершается неудачей, а
ранее опубликованная сетка остаётся в силе. RuntimeError-наследники
означают дефект или неверное использование API.
"""

from navforge.geombase.errors import (
    GeometryError,
    DegenerateGeometry,
    SelfIntersectingConstraint,
    TriangulationFailure,
)


class MeshInvariantError(RuntimeError):
    """Граф смежности внутренне противоречив. Это дефект, а не рабочая ситуация."""


class NavMeshNotReady(RuntimeError):
    """Запрос к сетке до первой успешной публикации."""


__all__ = [
    "GeometryError",
    "DegenerateGeometry",
    "SelfIntersectingConstraint",
    "TriangulationFailure",
    "MeshInvariantError",
    "NavMeshNotReady",
]
