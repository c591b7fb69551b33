"""
Препятствия: форма + размещение + слой.

Форма — один из вариантов (ящик, примитив, выпуклая оболочка,
произвольный полигон, контур меша). Каждая форма приводится к
каноническим локальным контурам (CCW), после чего дальнейший
конвейер работает только с полигонами и от формы не зависит.

Примитивы строятся так же, как в 2D-примитивах игровых движков:
дуги и эллипсы разбиваются на resolution сегментов на полный оборот,
сектор и сегмент симметричны относительно оси +Y, капсула вытянута вдоль Y.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import math
from typing import ClassVar, Optional, Tuple

import numpy as np
from scipy.spatial import ConvexHull, QhullError

from navforge.geombase.boolean import union
from navforge.geombase.kernel import as_points, ensure_ccw, polygon_area, remove_duplicate_points


def _readonly(values, columns: int, dtype=np.float64) -> np.ndarray:
    arr = np.array(values, dtype=dtype).reshape(-1, columns)
    arr.setflags(write=False)
    return arr


def _arc(radius: float, arc_angle: float, resolution: int) -> np.ndarray:
    """Дуга, симметричная относительно +Y, с обоими концами."""
    start = math.pi * 0.5 - arc_angle * 0.5
    angles = start + np.arange(resolution + 1) * (arc_angle / resolution)
    return np.stack([radius * np.cos(angles), radius * np.sin(angles)], axis=1)


def _ellipse(half_x: float, half_y: float, resolution: int) -> np.ndarray:
    angles = np.arange(resolution) * (2.0 * math.pi / resolution)
    return np.stack([half_x * np.cos(angles), half_y * np.sin(angles)], axis=1)


@dataclass(frozen=True)
class Placement:
    """Положение, поворот (радианы, CCW) и масштаб в плоскости навигационной сетки."""

    position: Tuple[float, float] = (0.0, 0.0)
    rotation: float = 0.0
    scale: Tuple[float, float] = (1.0, 1.0)

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", (float(self.position[0]), float(self.position[1])))
        object.__setattr__(self, "scale", (float(self.scale[0]), float(self.scale[1])))
        object.__setattr__(self, "rotation", float(self.rotation))

    def apply(self, points: np.ndarray) -> np.ndarray:
        """Локальные точки -> мировые."""
        pts = as_points(points) * np.array(self.scale)
        c = math.cos(self.rotation)
        s = math.sin(self.rotation)
        x = pts[:, 0] * c - pts[:, 1] * s + self.position[0]
        y = pts[:, 0] * s + pts[:, 1] * c + self.position[1]
        return np.stack([x, y], axis=1)

    def moved(self, dx: float, dy: float) -> "Placement":
        return Placement(
            position=(self.position[0] + dx, self.position[1] + dy),
            rotation=self.rotation,
            scale=self.scale,
        )


class Shape:
    """Базовый класс формы препятствия."""

    kind: ClassVar[str] = "shape"

    def local_outlines(self, resolution: int = 32) -> list[np.ndarray]:
        raise NotImplementedError


@dataclass(frozen=True)
class Aabb(Shape):
    """Осевыровненный прямоугольник (например, проекция AABB коллайдера)."""

    kind: ClassVar[str] = "aabb"
    min_corner: Tuple[float, float] = (-0.5, -0.5)
    max_corner: Tuple[float, float] = (0.5, 0.5)

    def local_outlines(self, resolution: int = 32) -> list[np.ndarray]:
        (x0, y0), (x1, y1) = self.min_corner, self.max_corner
        return [np.array([(x0, y0), (x1, y0), (x1, y1), (x0, y1)], dtype=np.float64)]


@dataclass(frozen=True)
class Rectangle(Shape):
    kind: ClassVar[str] = "rectangle"
    half_size: Tuple[float, float] = (0.5, 0.5)

    def local_outlines(self, resolution: int = 32) -> list[np.ndarray]:
        hx, hy = self.half_size
        return [np.array([(-hx, -hy), (hx, -hy), (hx, hy), (-hx, hy)], dtype=np.float64)]


@dataclass(frozen=True)
class Circle(Shape):
    kind: ClassVar[str] = "circle"
    radius: float = 0.5

    def local_outlines(self, resolution: int = 32) -> list[np.ndarray]:
        return [_ellipse(self.radius, self.radius, resolution)]


@dataclass(frozen=True)
class Ellipse(Shape):
    kind: ClassVar[str] = "ellipse"
    half_size: Tuple[float, float] = (1.0, 0.5)

    def local_outlines(self, resolution: int = 32) -> list[np.ndarray]:
        return [_ellipse(self.half_size[0], self.half_size[1], resolution)]


@dataclass(frozen=True)
class CircularSector(Shape):
    """Сектор круга (кусок пирога) с вершиной в начале координат."""

    kind: ClassVar[str] = "circular_sector"
    radius: float = 0.5
    angle: float = math.pi * 0.5

    def local_outlines(self, resolution: int = 32) -> list[np.ndarray]:
        arc = _arc(self.radius, self.angle, resolution)
        return [np.vstack([arc, [(0.0, 0.0)]])]


@dataclass(frozen=True)
class CircularSegment(Shape):
    """Сегмент круга: область между дугой и её хордой."""

    kind: ClassVar[str] = "circular_segment"
    radius: float = 0.5
    angle: float = math.pi * 0.5

    def local_outlines(self, resolution: int = 32) -> list[np.ndarray]:
        return [_arc(self.radius, self.angle, resolution)]


@dataclass(frozen=True)
class Capsule(Shape):
    """Капсула (стадион), вытянутая вдоль Y."""

    kind: ClassVar[str] = "capsule"
    radius: float = 0.5
    half_length: float = 0.5

    def local_outlines(self, resolution: int = 32) -> list[np.ndarray]:
        top = _arc(self.radius, math.pi, resolution // 2 or 1) + (0.0, self.half_length)
        bottom = -_arc(self.radius, math.pi, resolution // 2 or 1) - (0.0, self.half_length)
        return [np.vstack([top, bottom])]


@dataclass(frozen=True)
class RegularPolygon(Shape):
    """Правильный многоугольник, вписанный в окружность circumradius."""

    kind: ClassVar[str] = "regular_polygon"
    circumradius: float = 0.5
    sides: int = 6

    def __post_init__(self) -> None:
        if self.sides < 3:
            raise ValueError(f"regular polygon needs at least 3 sides, got {self.sides}")

    def local_outlines(self, resolution: int = 32) -> list[np.ndarray]:
        angles = math.pi * 0.5 + np.arange(self.sides) * (2.0 * math.pi / self.sides)
        r = self.circumradius
        return [np.stack([r * np.cos(angles), r * np.sin(angles)], axis=1)]


@dataclass(frozen=True)
class Rhombus(Shape):
    kind: ClassVar[str] = "rhombus"
    half_diagonals: Tuple[float, float] = (0.5, 0.5)

    def local_outlines(self, resolution: int = 32) -> list[np.ndarray]:
        hx, hy = self.half_diagonals
        return [np.array([(hx, 0.0), (0.0, hy), (-hx, 0.0), (0.0, -hy)], dtype=np.float64)]


@dataclass(frozen=True, eq=False)
class ConvexHullShape(Shape):
    """
    Выпуклая оболочка набора точек.

    Подходит для коллайдеров: достаточно передать их вершины в плоскости
    навигационной сетки.
    """

    kind: ClassVar[str] = "convex_hull"
    points: np.ndarray = field(default_factory=lambda: _readonly((), 2))

    def __post_init__(self) -> None:
        object.__setattr__(self, "points", _readonly(as_points(self.points), 2))

    def local_outlines(self, resolution: int = 32) -> list[np.ndarray]:
        pts = np.unique(np.ascontiguousarray(self.points), axis=0)
        if len(pts) < 3:
            return [pts.copy()]
        try:
            hull = ConvexHull(pts)
        except (QhullError, ValueError):
            # коллинеарные точки: np.unique отсортировал их, крайние - концы отрезка
            return [pts[[0, -1]]]
        # для 2D scipy отдаёт вершины оболочки против часовой стрелки
        return [pts[hull.vertices]]


@dataclass(frozen=True, eq=False)
class PolygonShape(Shape):
    """Произвольные контуры. Все контуры считаются заполненными."""

    kind: ClassVar[str] = "polygon"
    outlines: Tuple[np.ndarray, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "outlines", tuple(_readonly(as_points(o), 2) for o in self.outlines))

    def local_outlines(self, resolution: int = 32) -> list[np.ndarray]:
        return [np.array(o) for o in self.outlines]


@dataclass(frozen=True, eq=False)
class MeshOutline(Shape):
    """Проекция треугольного меша на плоскость (объединение треугольников)."""

    kind: ClassVar[str] = "mesh_outline"
    vertices: np.ndarray = field(default_factory=lambda: _readonly((), 2))
    indices: np.ndarray = field(default_factory=lambda: _readonly((), 3, np.int64))

    def __post_init__(self) -> None:
        verts = np.asarray(self.vertices, dtype=np.float64)
        if verts.size:
            verts = verts.reshape(len(verts), -1)[:, :2]
        object.__setattr__(self, "vertices", _readonly(verts, 2))
        object.__setattr__(self, "indices", _readonly(self.indices, 3, np.int64))

    def local_outlines(self, resolution: int = 32) -> list[np.ndarray]:
        triangles = [self.vertices[list(t)] for t in self.indices]
        triangles = [t for t in triangles if polygon_area(t) > 0.0]
        return union(triangles)


@dataclass(frozen=True)
class Obstacle:
    """Препятствие в плоскости навигационной сетки."""

    id: int
    shape: Shape
    placement: Placement = field(default_factory=Placement)
    layer: int = 0
    static: bool = False

    def world_outlines(self, resolution: int = 32) -> list[np.ndarray]:
        """Контуры в мировых координатах, CCW, без повторяющихся точек."""
        result = []
        for outline in self.shape.local_outlines(resolution):
            pts = remove_duplicate_points(self.placement.apply(outline))
            if len(pts) == 0:
                continue
            result.append(ensure_ccw(pts) if len(pts) >= 3 else pts)
        return result


@dataclass(frozen=True)
class ObstacleReport:
    """
    Запись о препятствии от хоста за один тик.

    dirty=False означает «без изменений с прошлого тика»; removed=True
    удаляет препятствие из реестра.
    """

    id: int
    shape: Optional[Shape] = None
    placement: Placement = field(default_factory=Placement)
    layer: int = 0
    dirty: bool = True
    static: bool = False
    removed: bool = False

    def to_obstacle(self) -> Obstacle:
        if self.shape is None:
            raise ValueError(f"obstacle report {self.id} has no shape")
        return Obstacle(
            id=self.id,
            shape=self.shape,
            placement=self.placement,
            layer=self.layer,
            static=self.static,
        )
