"""
Слияние треугольников в выпуклые полигоны и граф смежности.

Слияние жадное: проходы по полигонам в порядке индексов, для каждого
выбирается сосед, дающий выпуклый полигон наибольшей площади (при
равенстве — сосед с меньшим индексом). Рёбра-ограничения (граница и
препятствия) никогда не удаляются.
"""

from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np

from navforge import log
from navforge.geombase.kernel import orient
from navforge.navmesh.errors import MeshInvariantError


def build_edge_map(
    polygons: Sequence[Sequence[int]],
) -> dict[tuple[int, int], list[tuple[int, int]]]:
    """
    Построить карту рёбер: edge -> список (индекс полигона, индекс ребра).

    Ребро нормализовано (меньший индекс первым).
    """
    edge_map: dict[tuple[int, int], list[tuple[int, int]]] = {}
    for poly_idx, poly in enumerate(polygons):
        n = len(poly)
        for edge_idx in range(n):
            v0 = int(poly[edge_idx])
            v1 = int(poly[(edge_idx + 1) % n])
            edge_map.setdefault((min(v0, v1), max(v0, v1)), []).append((poly_idx, edge_idx))
    return edge_map


def polygon_area_2d(vertices: np.ndarray, poly: Sequence[int]) -> float:
    pts = vertices[list(poly)]
    x = pts[:, 0]
    y = pts[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


def is_convex_polygon(vertices: np.ndarray, poly: Sequence[int], eps: float = 1e-9) -> bool:
    """Все повороты CCW-полигона неотрицательны (коллинеарные вершины допустимы)."""
    n = len(poly)
    for i in range(n):
        if orient(vertices[poly[i - 1]], vertices[poly[i]], vertices[poly[(i + 1) % n]]) < -eps:
            return False
    return True


def splice_polygons(p: Sequence[int], q: Sequence[int], a: int, b: int) -> list[int]:
    """
    Склеить полигоны p (содержит ребро a→b) и q (содержит b→a) по общему ребру.
    """
    k = list(p).index(b)
    p_rot = list(p[k:]) + list(p[:k])          # b ... a
    j = list(q).index(a)
    q_rot = list(q[j:]) + list(q[:j])          # a ... b
    return p_rot + q_rot[1:-1]


def merge_triangles(
    vertices: np.ndarray,
    triangles: Iterable[Sequence[int]],
    constraints: Iterable[tuple[int, int]] = (),
    max_passes: int = 0,
    eps: float = 1e-9,
) -> list[list[int]]:
    """
    Объединить треугольники в выпуклые полигоны.

    Args:
        vertices: 2D координаты вершин.
        triangles: Треугольники (CCW).
        constraints: Рёбра, которые нельзя удалять (меньший индекс первым).
        max_passes: Ограничение числа проходов, 0 = пока есть что сливать.
        eps: Допуск выпуклости.

    Returns:
        Полигоны как списки индексов вершин (CCW).
    """
    polys: list[list[int] | None] = [[int(v) for v in t] for t in triangles]
    constraints = {(min(a, b), max(a, b)) for a, b in constraints}
    areas = [polygon_area_2d(vertices, p) for p in polys]

    owner: dict[tuple[int, int], int] = {}
    for idx, poly in enumerate(polys):
        n = len(poly)
        for e in range(n):
            owner[(poly[e], poly[(e + 1) % n])] = idx

    passes = 0
    merge_count = 0
    while max_passes <= 0 or passes < max_passes:
        passes += 1
        merged_any = False
        for i in range(len(polys)):
            p = polys[i]
            if p is None:
                continue
            best = None
            n = len(p)
            for e in range(n):
                a = p[e]
                b = p[(e + 1) % n]
                if (min(a, b), max(a, b)) in constraints:
                    continue
                j = owner.get((b, a))
                if j is None or j == i:
                    continue
                q = polys[j]
                merged = splice_polygons(p, q, a, b)
                if len(set(merged)) != len(merged):
                    continue
                if not is_convex_polygon(vertices, merged, eps):
                    continue
                key = (-(areas[i] + areas[j]), j)
                if best is None or key < best[0]:
                    best = (key, j, merged)

            if best is None:
                continue

            _, j, merged = best
            for poly in (p, polys[j]):
                m = len(poly)
                for e in range(m):
                    owner.pop((poly[e], poly[(e + 1) % m]), None)
            polys[i] = merged
            polys[j] = None
            areas[i] += areas[j]
            m = len(merged)
            for e in range(m):
                owner[(merged[e], merged[(e + 1) % m])] = i
            merged_any = True
            merge_count += 1

        if not merged_any:
            break

    result = [p for p in polys if p is not None]
    log.debug(f"[merge] {merge_count} merges in {passes} passes, {len(result)} polygons")
    return result


def build_polygon_adjacency(polygons: Sequence[Sequence[int]]) -> list[tuple[int, ...]]:
    """
    Построить граф смежности полигонов.

    Returns:
        Для каждого полигона кортеж соседей по рёбрам; -1 = нет соседа.

    Raises:
        MeshInvariantError: ребро вырождено, направленное ребро встречается
            дважды (несогласованная ориентация) или ребро принадлежит
            более чем двум полигонам.
    """
    owner: dict[tuple[int, int], int] = {}
    for idx, poly in enumerate(polygons):
        n = len(poly)
        if n < 3:
            raise MeshInvariantError(f"polygon {idx} has {n} vertices")
        for e in range(n):
            a = int(poly[e])
            b = int(poly[(e + 1) % n])
            if a == b:
                raise MeshInvariantError(f"polygon {idx} has a degenerate edge at vertex {a}")
            if (a, b) in owner:
                raise MeshInvariantError(
                    f"directed edge ({a}, {b}) is shared by polygons {owner[(a, b)]} and {idx}"
                )
            owner[(a, b)] = idx

    result = []
    for idx, poly in enumerate(polygons):
        n = len(poly)
        neighbors = []
        for e in range(n):
            a = int(poly[e])
            b = int(poly[(e + 1) % n])
            other = owner.get((b, a), -1)
            if other == idx:
                raise MeshInvariantError(f"polygon {idx} is adjacent to itself across ({a}, {b})")
            neighbors.append(other)
        result.append(tuple(neighbors))
    return result


def connected_components(adjacency: Sequence[Sequence[int]]) -> list[int]:
    """Номер компоненты связности для каждого полигона."""
    labels = [-1] * len(adjacency)
    current = 0
    for start in range(len(adjacency)):
        if labels[start] >= 0:
            continue
        stack = [start]
        labels[start] = current
        while stack:
            node = stack.pop()
            for n in adjacency[node]:
                if n >= 0 and labels[n] < 0:
                    labels[n] = current
                    stack.append(n)
        current += 1
    return labels
