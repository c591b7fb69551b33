"""
Pathfinding по графу полигонов NavMesh.

1. Найти полигоны, содержащие старт и финиш.
2. A* по графу смежности (включая межслойные связи), вес — расстояние
   между центрами полигонов.
3. Извлечь порталы (общие рёбра) вдоль коридора.
4. Натянуть путь через порталы funnel-алгоритмом.

Все вычисления в плане XY; путь возвращается 2D точками.
"""

from __future__ import annotations

import heapq
from typing import Optional

import numpy as np

from navforge.navmesh.types import NavMesh


def astar_polygons(navmesh: NavMesh, start_poly: int, end_poly: int) -> list[int] | None:
    """
    A* поиск пути по графу полигонов.

    Returns:
        Список индексов полигонов от старта до финиша, или None.
    """
    centroids = navmesh.centroids
    goal = centroids[end_poly]

    def heuristic(poly: int) -> float:
        return float(np.linalg.norm(centroids[poly] - goal))

    # (f_score, counter, polygon_idx)
    counter = 0
    open_set: list[tuple[float, int, int]] = [(heuristic(start_poly), counter, start_poly)]
    came_from: dict[int, int] = {}
    g_score: dict[int, float] = {start_poly: 0.0}
    closed: set[int] = set()

    while open_set:
        _, _, current = heapq.heappop(open_set)

        if current == end_poly:
            path = [current]
            while current in came_from:
                current = came_from[current]
                path.append(current)
            return path[::-1]

        if current in closed:
            continue
        closed.add(current)

        for neighbor, _ in navmesh.neighbors_of(current):
            dist = float(np.linalg.norm(centroids[current] - centroids[neighbor]))
            tentative_g = g_score[current] + dist

            if neighbor not in g_score or tentative_g < g_score[neighbor]:
                came_from[neighbor] = current
                g_score[neighbor] = tentative_g
                counter += 1
                heapq.heappush(open_set, (tentative_g + heuristic(neighbor), counter, neighbor))

    return None


def get_portals_from_path(navmesh: NavMesh, path: list[int]) -> list[tuple[np.ndarray, np.ndarray]]:
    """
    Извлечь порталы (общие рёбра) между соседними полигонами пути.

    Полигоны CCW: при выходе через ребро a -> b левый конец портала b,
    правый a.

    Returns:
        Список порталов (left, right) — 2D координаты концов ребра.
    """
    xy = navmesh.vertices[:, :2]
    portals: list[tuple[np.ndarray, np.ndarray]] = []

    for i in range(len(path) - 1):
        poly_a = path[i]
        poly_b = path[i + 1]
        for neighbor, edge_idx in navmesh.neighbors_of(poly_a):
            if neighbor == poly_b:
                a, b = navmesh.polygons[poly_a].edge(edge_idx)
                portals.append((xy[b].copy(), xy[a].copy()))
                break

    return portals


def _triarea2(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float:
    """Удвоенная знаковая площадь треугольника в плане XY (> 0 для CCW)."""
    return float((b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0]))


def funnel_algorithm(
    start: np.ndarray,
    end: np.ndarray,
    portals: list[tuple[np.ndarray, np.ndarray]],
) -> list[np.ndarray]:
    """
    Funnel Algorithm (Simple Stupid Funnel Algorithm).

    Оптимизирует путь через порталы, "натягивая верёвку".

    Args:
        start: Начальная точка (2D).
        end: Конечная точка (2D).
        portals: Список порталов (left, right).

    Returns:
        Оптимизированный список точек пути.
    """
    start = np.asarray(start, dtype=np.float64)[:2]
    end = np.asarray(end, dtype=np.float64)[:2]
    if len(portals) == 0:
        return [start.copy(), end.copy()]

    portals = [(start, start)] + list(portals) + [(end, end)]

    path: list[np.ndarray] = [start.copy()]

    apex = start
    apex_index = 0
    left = start
    right = start
    left_index = 0
    right_index = 0

    i = 1
    while i < len(portals):
        portal_left, portal_right = portals[i]

        # правая граница
        if _triarea2(apex, right, portal_right) >= 0.0:
            if np.allclose(apex, right) or _triarea2(apex, left, portal_right) < 0.0:
                right = portal_right
                right_index = i
            else:
                # правая граница пересекла левую: left становится вершиной
                path.append(left.copy())
                apex = left
                apex_index = left_index
                right = apex
                right_index = apex_index
                i = apex_index + 1
                continue

        # левая граница
        if _triarea2(apex, left, portal_left) <= 0.0:
            if np.allclose(apex, left) or _triarea2(apex, right, portal_left) > 0.0:
                left = portal_left
                left_index = i
            else:
                path.append(right.copy())
                apex = right
                apex_index = right_index
                left = apex
                left_index = apex_index
                i = apex_index + 1
                continue

        i += 1

    if not np.allclose(path[-1], end):
        path.append(end.copy())

    return path


def find_path(
    navmesh: NavMesh,
    start,
    end,
    start_layer: Optional[int] = None,
    end_layer: Optional[int] = None,
) -> list[tuple[float, float]] | None:
    """
    Найти сглаженный путь между двумя точками.

    Returns:
        Список 2D точек от start до end, или None, если старт или финиш
        вне сетки или пути нет.
    """
    start_pt = np.asarray(start, dtype=np.float64)[:2]
    end_pt = np.asarray(end, dtype=np.float64)[:2]

    start_poly = navmesh.find_polygon(start_pt, start_layer)
    end_poly = navmesh.find_polygon(end_pt, end_layer)
    if start_poly < 0 or end_poly < 0:
        return None

    if start_poly == end_poly:
        return [tuple(map(float, start_pt)), tuple(map(float, end_pt))]

    corridor = astar_polygons(navmesh, start_poly, end_poly)
    if corridor is None:
        return None

    portals = get_portals_from_path(navmesh, corridor)
    points = funnel_algorithm(start_pt, end_pt, portals)
    return [(float(p[0]), float(p[1])) for p in points]
