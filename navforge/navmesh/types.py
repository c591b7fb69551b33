"""
Базовые структуры данных для NavMesh.

NavMesh неизменяем после создания: массивы доступны только для чтения,
кортежи вместо списков. Новая сборка создаёт новый объект, старый
остаётся валидным для всех, кто его держит.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class NavPolygon:
    """
    Выпуклый полигон навигационной сетки.

    Ребро i соединяет вершины indices[i] и indices[(i + 1) % n].
    """

    indices: tuple[int, ...]
    """Индексы вершин в общем буфере (CCW в плане)."""

    neighbors: tuple[int, ...]
    """Сосед по каждому ребру, -1 = граница или препятствие."""

    layer: int = 0
    """Индекс слоя, которому принадлежит полигон."""

    def __len__(self) -> int:
        return len(self.indices)

    def edge(self, i: int) -> tuple[int, int]:
        """Вершины ребра i."""
        return self.indices[i], self.indices[(i + 1) % len(self.indices)]


@dataclass(frozen=True)
class LayerPartition:
    """Диапазон полигонов одного слоя (полигоны упорядочены по слоям)."""

    layer: int
    height: float
    first_polygon: int
    polygon_count: int

    @property
    def polygon_range(self) -> range:
        return range(self.first_polygon, self.first_polygon + self.polygon_count)


@dataclass(frozen=True)
class LayerLink:
    """Вертикальная связь между граничными рёбрами полигонов разных слоёв."""

    polygon_a: int
    edge_a: int
    polygon_b: int
    edge_b: int


def _frozen_array(values, dtype, columns: int) -> np.ndarray:
    arr = np.array(values, dtype=dtype).reshape(-1, columns)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class NavMesh:
    """
    Навигационная сетка.

    Набор выпуклых полигонов над общим буфером вершин с графом смежности.
    Координата z вершины — высота слоя.
    """

    vertices: np.ndarray = field(default_factory=lambda: _frozen_array((), np.float64, 3))
    """Вершины (x, y, высота слоя), shape (N, 3), только чтение."""

    polygons: tuple[NavPolygon, ...] = ()
    """Полигоны, упорядоченные по слоям."""

    layers: tuple[LayerPartition, ...] = ()
    """Разбиение полигонов по слоям."""

    links: tuple[LayerLink, ...] = ()
    """Связи между слоями."""

    generation: int = 0
    """Номер сборки. Строго возрастает от публикации к публикации."""

    name: str = ""
    """Имя навигационной сетки."""

    failed_stitches: tuple[tuple[int, int], ...] = ()
    """Объявленные швы между слоями (пары слоёв), которые не удалось сшить."""

    def __post_init__(self) -> None:
        if self.vertices.flags.writeable:
            object.__setattr__(self, "vertices", _frozen_array(self.vertices, np.float64, 3))
        object.__setattr__(self, "polygons", tuple(self.polygons))
        object.__setattr__(self, "layers", tuple(self.layers))
        object.__setattr__(self, "links", tuple(self.links))
        object.__setattr__(self, "failed_stitches", tuple((int(a), int(b)) for a, b in self.failed_stitches))

    def polygon_count(self) -> int:
        """Количество полигонов."""
        return len(self.polygons)

    def triangle_count(self) -> int:
        """Количество треугольников при веерной триангуляции полигонов."""
        return sum(len(p) - 2 for p in self.polygons)

    def vertex_count(self) -> int:
        """Количество вершин."""
        return len(self.vertices)

    def is_empty(self) -> bool:
        return not self.polygons

    def polygon_points(self, index: int) -> np.ndarray:
        """Вершины полигона shape (n, 3)."""
        return self.vertices[list(self.polygons[index].indices)]

    def polygon_area(self, index: int) -> float:
        pts = self.polygon_points(index)
        x = pts[:, 0]
        y = pts[:, 1]
        return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))

    def total_area(self) -> float:
        return sum(self.polygon_area(i) for i in range(len(self.polygons)))

    @cached_property
    def centroids(self) -> np.ndarray:
        """Центры полигонов shape (P, 3)."""
        if not self.polygons:
            return _frozen_array((), np.float64, 3)
        result = np.array([self.polygon_points(i).mean(axis=0) for i in range(len(self.polygons))])
        result.setflags(write=False)
        return result

    @cached_property
    def _bounds(self) -> np.ndarray:
        if not self.polygons:
            return _frozen_array((), np.float64, 4)
        rows = []
        for i in range(len(self.polygons)):
            pts = self.polygon_points(i)
            rows.append((pts[:, 0].min(), pts[:, 1].min(), pts[:, 0].max(), pts[:, 1].max()))
        return _frozen_array(rows, np.float64, 4)

    @cached_property
    def _links_by_polygon(self) -> dict[int, tuple[tuple[int, int], ...]]:
        table: dict[int, list[tuple[int, int]]] = {}
        for link in self.links:
            table.setdefault(link.polygon_a, []).append((link.polygon_b, link.edge_a))
            table.setdefault(link.polygon_b, []).append((link.polygon_a, link.edge_b))
        return {k: tuple(v) for k, v in table.items()}

    def neighbors_of(self, index: int) -> list[tuple[int, int]]:
        """
        Соседи полигона с учётом межслойных связей.

        Returns:
            Список (сосед, индекс ребра в полигоне index).
        """
        poly = self.polygons[index]
        result = [(n, e) for e, n in enumerate(poly.neighbors) if n >= 0]
        result.extend(self._links_by_polygon.get(index, ()))
        return result

    def find_polygon(self, point, layer: Optional[int] = None, eps: float = 1e-6) -> int:
        """
        Найти полигон, содержащий точку (в плане). Возвращает -1 если не найден.

        Точка на общем ребре относится к полигону с меньшим индексом.
        """
        if not self.polygons:
            return -1
        x = float(point[0])
        y = float(point[1])
        bounds = self._bounds
        candidates = np.nonzero(
            (bounds[:, 0] - eps <= x) & (x <= bounds[:, 2] + eps)
            & (bounds[:, 1] - eps <= y) & (y <= bounds[:, 3] + eps)
        )[0]
        for i in candidates:
            poly = self.polygons[int(i)]
            if layer is not None and poly.layer != layer:
                continue
            pts = self.vertices[list(poly.indices)]
            ex = np.roll(pts[:, 0], -1) - pts[:, 0]
            ey = np.roll(pts[:, 1], -1) - pts[:, 1]
            lengths = np.hypot(ex, ey)
            cross = ex * (y - pts[:, 1]) - ey * (x - pts[:, 0])
            if np.all(cross >= -eps * lengths):
                return int(i)
        return -1

    def contains_point(self, point, layer: Optional[int] = None, eps: float = 1e-6) -> bool:
        return self.find_polygon(point, layer, eps) >= 0
