"""Ошибки геометрических алгоритмов."""


class GeometryError(Exception):
    """Базовая ошибка геометрии. Восстановима: сборка пропускает контур или падает целиком."""


class DegenerateGeometry(GeometryError):
    """Меньше трёх различных точек или нулевая площадь контура."""


class SelfIntersectingConstraint(GeometryError):
    """Рёбра-ограничения пересекаются или перекрываются."""


class TriangulationFailure(GeometryError):
    """Численный сбой: не удалось выполнить ограничения триангуляции."""
