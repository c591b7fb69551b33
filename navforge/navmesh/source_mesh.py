"""
Источник границы: контуры навигационной области.

Граница задаётся внешними контурами (CCW) и дырками (CW). Её можно
получить из прямоугольника или из треугольного меша (вершины +
тройки индексов), например из загруженной сцены. Файлы здесь не
читаются — меш передаётся уже загруженным.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
from scipy.spatial import cKDTree

from navforge import log
from navforge.geombase.boolean import union
from navforge.geombase.kernel import as_points, signed_area
from navforge.navmesh.layers import LayerMesh, assemble_navmesh
from navforge.navmesh.merging import merge_triangles
from navforge.navmesh.types import NavMesh


@dataclass(frozen=True, eq=False)
class Boundary:
    """Навигационная область до вычитания препятствий."""

    contours: tuple[np.ndarray, ...] = field(default_factory=tuple)
    """Контуры: внешние CCW, дырки CW."""

    def __post_init__(self) -> None:
        frozen = []
        for contour in self.contours:
            arr = np.array(as_points(contour))
            arr.setflags(write=False)
            frozen.append(arr)
        object.__setattr__(self, "contours", tuple(frozen))

    @property
    def outers(self) -> list[np.ndarray]:
        return [c for c in self.contours if signed_area(c) > 0]

    @property
    def holes(self) -> list[np.ndarray]:
        return [c for c in self.contours if signed_area(c) < 0]

    def area(self) -> float:
        return sum(signed_area(c) for c in self.contours)

    def is_empty(self) -> bool:
        return not self.contours


def rectangle_boundary(min_corner: Sequence[float], max_corner: Sequence[float]) -> Boundary:
    """Прямоугольная граница."""
    x0, y0 = float(min_corner[0]), float(min_corner[1])
    x1, y1 = float(max_corner[0]), float(max_corner[1])
    if x1 <= x0 or y1 <= y0:
        raise ValueError(f"empty rectangle {min_corner} - {max_corner}")
    return Boundary(contours=(np.array([(x0, y0), (x1, y0), (x1, y1), (x0, y1)], dtype=np.float64),))


def weld_vertices(vertices, eps: float = 1e-6) -> tuple[np.ndarray, np.ndarray]:
    """
    Склеить совпадающие (в плане) вершины меша.

    Returns:
        (уникальные 2D вершины, отображение старый индекс -> новый).
    """
    pts = np.asarray(vertices, dtype=np.float64)
    pts = pts.reshape(len(pts), -1)[:, :2] if pts.size else np.zeros((0, 2))
    remap = np.arange(len(pts))
    if len(pts) > 1:
        tree = cKDTree(pts)
        for i, j in sorted(tree.query_pairs(r=eps)):
            # к наименьшему представителю
            ri = remap[i]
            while remap[ri] != ri:
                ri = remap[ri]
            rj = remap[j]
            while remap[rj] != rj:
                rj = remap[rj]
            if ri != rj:
                remap[max(ri, rj)] = min(ri, rj)
        for i in range(len(remap)):
            r = remap[i]
            while remap[r] != r:
                r = remap[r]
            remap[i] = r
    representatives, compact = np.unique(remap, return_inverse=True)
    return pts[representatives], compact.astype(np.int64)


def _planar_triangles(vertices: np.ndarray, indices, eps: float) -> list[tuple[int, int, int]]:
    """Треугольники в плане, CCW, без вырожденных."""
    result = []
    for tri in np.asarray(indices, dtype=np.int64).reshape(-1, 3):
        a, b, c = (int(i) for i in tri)
        if len({a, b, c}) < 3:
            continue
        pa, pb, pc = vertices[a], vertices[b], vertices[c]
        cross = (pb[0] - pa[0]) * (pc[1] - pa[1]) - (pb[1] - pa[1]) * (pc[0] - pa[0])
        if abs(cross) <= eps * eps:
            continue
        result.append((a, b, c) if cross > 0 else (a, c, b))
    return result


def boundary_from_mesh(vertices, indices, eps: float = 1e-6) -> Boundary:
    """
    Граница области, покрытой треугольным мешем (проекция на плоскость XY).

    Треугольники объединяются; результат — внешние контуры CCW и дырки CW.
    """
    verts, remap = weld_vertices(vertices, eps)
    triangles = _planar_triangles(verts, remap[np.asarray(indices, dtype=np.int64)], eps)

    contours = tuple(union([verts[list(t)] for t in triangles], eps))
    log.debug(f"[source_mesh] {len(triangles)} triangles -> {len(contours)} boundary contours")
    return Boundary(contours=contours)


def navmesh_from_mesh(
    vertices,
    indices,
    generation: int = 0,
    merge: bool = True,
    eps: float = 1e-6,
    name: str = "",
) -> NavMesh:
    """
    Навигационная сетка из готового (авторского) меша без препятствий.

    Треугольники склеиваются по совпадающим вершинам, при merge=True
    сливаются в выпуклые полигоны; рёбра границы меша не удаляются.
    """
    verts, remap = weld_vertices(vertices, eps)
    triangles = _planar_triangles(verts, remap[np.asarray(indices, dtype=np.int64)], eps)

    directed = set()
    for a, b, c in triangles:
        directed.update(((a, b), (b, c), (c, a)))
    constraints = {(min(u, v), max(u, v)) for u, v in directed if (v, u) not in directed}

    if merge:
        polygons = merge_triangles(verts, triangles, constraints, eps=eps)
    else:
        polygons = [list(t) for t in triangles]

    layer = LayerMesh(layer=0, height=0.0, height_tolerance=0.0, vertices=verts, polygons=polygons)
    return assemble_navmesh([layer], generation=generation, name=name, eps=eps)
