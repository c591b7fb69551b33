"""
Сборка NavMesh из слоёв и вертикальные связи между слоями.

Каждый слой триангулируется и сливается независимо. Здесь слои
сводятся в один буфер вершин (z = высота слоя), строится граф
смежности и ищутся связи: граничные рёбра разных слоёв, совпадающие
в плане, соединяются, если высоты слоёв отличаются не больше чем на
допуск (берётся больший из двух).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
from scipy.spatial import cKDTree

from navforge import log
from navforge.navmesh.merging import build_polygon_adjacency
from navforge.navmesh.settings import Stitch
from navforge.navmesh.types import LayerLink, LayerPartition, NavMesh, NavPolygon


@dataclass
class LayerMesh:
    """Результат сборки одного слоя до объединения."""

    layer: int
    height: float
    height_tolerance: float
    vertices: np.ndarray
    """2D координаты вершин слоя, shape (N, 2)."""
    polygons: list[list[int]] = field(default_factory=list)
    """Выпуклые полигоны (CCW), индексы в vertices."""


def _boundary_edges(
    vertices: np.ndarray,
    polygons: Sequence[NavPolygon],
) -> tuple[list[tuple[int, int]], np.ndarray]:
    refs = []
    mids = []
    for p_idx, poly in enumerate(polygons):
        for e_idx, n in enumerate(poly.neighbors):
            if n >= 0:
                continue
            a, b = poly.edge(e_idx)
            refs.append((p_idx, e_idx))
            mids.append(0.5 * (vertices[a, :2] + vertices[b, :2]))
    return refs, np.array(mids, dtype=np.float64).reshape(-1, 2)


def stitch_layers(
    vertices: np.ndarray,
    polygons: Sequence[NavPolygon],
    tolerances: Sequence[float],
    eps: float = 1e-6,
) -> list[LayerLink]:
    """
    Найти вертикальные связи между слоями.

    Args:
        vertices: (N, 3) — вершины, z = высота слоя.
        polygons: Полигоны с заполненными соседями и слоями.
        tolerances: Допуск по высоте для каждого слоя.
        eps: Допуск совпадения рёбер в плане.

    Returns:
        Связи, упорядоченные по (polygon_a, edge_a).
    """
    refs, mids = _boundary_edges(vertices, polygons)
    if len(refs) < 2:
        return []

    tree = cKDTree(mids)
    links = []
    for i, j in sorted(tree.query_pairs(r=eps)):
        pa, ea = refs[i]
        pb, eb = refs[j]
        poly_a = polygons[pa]
        poly_b = polygons[pb]
        if poly_a.layer == poly_b.layer:
            continue

        a0, a1 = poly_a.edge(ea)
        b0, b1 = poly_b.edge(eb)
        same = (
            np.hypot(*(vertices[a0, :2] - vertices[b0, :2])) <= eps
            and np.hypot(*(vertices[a1, :2] - vertices[b1, :2])) <= eps
        )
        opposite = (
            np.hypot(*(vertices[a0, :2] - vertices[b1, :2])) <= eps
            and np.hypot(*(vertices[a1, :2] - vertices[b0, :2])) <= eps
        )
        if not (same or opposite):
            continue

        dh = abs(vertices[a0, 2] - vertices[b0, 2])
        limit = max(tolerances[poly_a.layer], tolerances[poly_b.layer])
        if dh > limit:
            continue
        if pa > pb:
            pa, ea, pb, eb = pb, eb, pa, ea
        links.append(LayerLink(polygon_a=pa, edge_a=ea, polygon_b=pb, edge_b=eb))

    links.sort(key=lambda link: (link.polygon_a, link.edge_a, link.polygon_b))
    return links


def _vertices_on_segment(
    vertices: np.ndarray,
    candidates: Sequence[int],
    segment,
    eps: float,
) -> list[int]:
    """Вершины из candidates, лежащие на отрезке, упорядоченные от его начала."""
    a = np.asarray(segment[0], dtype=np.float64)
    b = np.asarray(segment[1], dtype=np.float64)
    d = b - a
    length_sq = float(np.dot(d, d))
    found = []
    for v in candidates:
        p = vertices[v, :2]
        t = float(np.dot(p - a, d)) / length_sq if length_sq > 0 else 0.0
        t = min(1.0, max(0.0, t))
        if np.hypot(*(a + t * d - p)) <= eps:
            found.append((t, v))
    return [v for _, v in sorted(found)]


def stitch_declared(
    vertices: np.ndarray,
    polygons: Sequence[NavPolygon],
    stitches: Sequence[Stitch],
    eps: float = 1e-6,
) -> tuple[list[LayerLink], list[tuple[int, int]]]:
    """
    Сшить слои по объявленным швам.

    На каждом шве берутся граничные вершины обоих слоёв, лежащие на
    отрезке шва. Шов удаётся, если их поровну и они попарно совпадают
    в плане; тогда граничные рёбра между соседними точками шва
    связываются. Иначе пара слоёв попадает в список неудавшихся.

    Returns:
        (связи, неудавшиеся пары слоёв).
    """
    edges_by_layer: dict[int, dict[frozenset, tuple[int, int]]] = {}
    for p_idx, poly in enumerate(polygons):
        for e_idx, n in enumerate(poly.neighbors):
            if n < 0:
                edges_by_layer.setdefault(poly.layer, {})[frozenset(poly.edge(e_idx))] = (p_idx, e_idx)

    links = []
    failed = []
    for stitch in stitches:
        layer_a, layer_b = stitch.layers
        edges_a = edges_by_layer.get(layer_a, {})
        edges_b = edges_by_layer.get(layer_b, {})
        points_a = _vertices_on_segment(vertices, sorted({v for e in edges_a for v in e}), stitch.segment, eps)
        points_b = _vertices_on_segment(vertices, sorted({v for e in edges_b for v in e}), stitch.segment, eps)
        if not points_a or len(points_a) != len(points_b):
            log.warn(
                f"[layers] stitch {layer_a}-{layer_b}: {len(points_a)} and {len(points_b)} points on the seam"
            )
            failed.append((layer_a, layer_b))
            continue
        if any(np.hypot(*(vertices[va, :2] - vertices[vb, :2])) > eps for va, vb in zip(points_a, points_b)):
            log.warn(f"[layers] stitch {layer_a}-{layer_b}: seam points don't match")
            failed.append((layer_a, layer_b))
            continue

        for k in range(len(points_a) - 1):
            ref_a = edges_a.get(frozenset((points_a[k], points_a[k + 1])))
            ref_b = edges_b.get(frozenset((points_b[k], points_b[k + 1])))
            if ref_a is None or ref_b is None:
                continue
            (pa, ea), (pb, eb) = sorted((ref_a, ref_b))
            links.append(LayerLink(polygon_a=pa, edge_a=ea, polygon_b=pb, edge_b=eb))

    links = sorted(set(links), key=lambda link: (link.polygon_a, link.edge_a, link.polygon_b))
    return links, failed



def assemble_navmesh(
    layer_meshes: Sequence[LayerMesh],
    generation: int,
    name: str = "",
    eps: float = 1e-6,
    stitch: bool = True,
    stitches: Sequence[Stitch] = (),
) -> NavMesh:
    """
    Свести слои в неизменяемую NavMesh.

    Если объявлены швы (stitches), слои сшиваются только по ним,
    иначе связываются совпадающие в плане граничные рёбра.

    Raises:
        MeshInvariantError: граф смежности противоречив.
    """
    vertex_blocks = []
    all_polys: list[list[int]] = []
    poly_layers: list[int] = []
    partitions = []
    tolerances = {}
    offset = 0

    for mesh in sorted(layer_meshes, key=lambda m: m.layer):
        verts = np.asarray(mesh.vertices, dtype=np.float64).reshape(-1, 2)
        block = np.column_stack([verts, np.full(len(verts), mesh.height, dtype=np.float64)])
        vertex_blocks.append(block)
        partitions.append(LayerPartition(
            layer=mesh.layer,
            height=float(mesh.height),
            first_polygon=len(all_polys),
            polygon_count=len(mesh.polygons),
        ))
        tolerances[mesh.layer] = float(mesh.height_tolerance)
        for poly in mesh.polygons:
            all_polys.append([int(v) + offset for v in poly])
            poly_layers.append(mesh.layer)
        offset += len(verts)

    vertices = np.concatenate(vertex_blocks) if vertex_blocks else np.zeros((0, 3))
    adjacency = build_polygon_adjacency(all_polys)
    polygons = tuple(
        NavPolygon(indices=tuple(p), neighbors=adj, layer=layer)
        for p, adj, layer in zip(all_polys, adjacency, poly_layers)
    )

    links = ()
    failed: list[tuple[int, int]] = []
    if stitch and stitches and len(partitions) > 1:
        found, failed = stitch_declared(vertices, polygons, stitches, eps)
        links = tuple(found)
        log.debug(f"[layers] {len(links)} links on {len(stitches)} declared stitches")
    elif stitch and len(partitions) > 1:
        tol_list = [0.0] * (max(tolerances) + 1)
        for layer, tol in tolerances.items():
            tol_list[layer] = tol
        links = tuple(stitch_layers(vertices, polygons, tol_list, eps))
        log.debug(f"[layers] {len(links)} links between {len(partitions)} layers")

    return NavMesh(
        vertices=vertices,
        polygons=polygons,
        layers=tuple(partitions),
        links=links,
        generation=generation,
        name=name,
        failed_stitches=tuple(failed),
    )
