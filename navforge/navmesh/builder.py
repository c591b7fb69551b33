"""
Конвейер построения NavMesh.

Для каждого слоя:
1. Контуры границы упрощаются и разрешаются (объединение).
2. При deflate_boundary граница сжимается на радиус агента.
3. Контуры препятствий слоя упрощаются и раздуваются на радиус агента.
4. Из области вычитаются раздутые препятствия.
5. Остаток триангулируется с ограничениями.
6. Треугольники сливаются в выпуклые полигоны.

Слои сводятся в одну NavMesh с графом смежности и межслойными связями.

Статические препятствия раздуваются и объединяются один раз: результат
кэшируется и переиспользуется, пока не изменились ни набор статических
препятствий, ни настройки.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import time
from typing import Optional, Sequence

import numpy as np

from navforge import log
from navforge.geombase.boolean import difference, resolve_contours
from navforge.geombase.kernel import PolygonCheck, check_polygon
from navforge.geombase.offset import offset_polygons
from navforge.geombase.simplify import simplify_polyline
from navforge.navmesh.errors import GeometryError
from navforge.navmesh.layers import LayerMesh, assemble_navmesh
from navforge.navmesh.merging import merge_triangles
from navforge.navmesh.obstacles import Obstacle
from navforge.navmesh.settings import LayerSettings, NavMeshSettings
from navforge.navmesh.source_mesh import Boundary
from navforge.navmesh.triangulation import triangulate_region
from navforge.navmesh.types import NavMesh


class BuildOutcome(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    STALE = "stale"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True, eq=False)
class StaticObstacleCache:
    """Раздутые и объединённые статические препятствия по слоям."""

    version: int
    settings: NavMeshSettings
    layers: dict[int, tuple[np.ndarray, ...]] = field(default_factory=dict)

    def matches(self, version: Optional[int], settings: NavMeshSettings) -> bool:
        return version is not None and self.version == version and self.settings == settings


@dataclass(frozen=True, eq=False)
class BuildRequest:
    """
    Неизменяемый снимок для одной сборки.

    obstacles — глубокая копия реестра на момент захвата.
    """

    generation: int
    boundary: Boundary
    obstacles: tuple[Obstacle, ...]
    settings: NavMeshSettings
    static_version: Optional[int] = None
    static_cache: Optional[StaticObstacleCache] = None
    name: str = ""


@dataclass(eq=False)
class BuildResult:
    """Результат сборки, передаваемый из рабочего потока."""

    request: BuildRequest
    navmesh: Optional[NavMesh] = None
    error: Optional[BaseException] = None
    duration: float = 0.0
    static_cache: Optional[StaticObstacleCache] = None
    outcome: BuildOutcome = BuildOutcome.SUCCESS

    @property
    def generation(self) -> int:
        return self.request.generation

    @property
    def ok(self) -> bool:
        return self.outcome is BuildOutcome.SUCCESS and self.navmesh is not None


class NavMeshBuilder:
    """Построитель NavMesh из границы и препятствий."""

    def __init__(self, settings: Optional[NavMeshSettings] = None):
        self.settings = settings or NavMeshSettings()

    @property
    def eps(self) -> float:
        return self.settings.build_epsilon

    def _clean_contours(self, contours: Sequence[np.ndarray], what: str) -> list[np.ndarray]:
        """Упростить контуры и отбросить вырожденные (с предупреждением)."""
        tolerance = self.settings.simplification_tolerance
        result = []
        for contour in contours:
            pts = np.asarray(contour, dtype=np.float64)
            if tolerance > 0 and len(pts) > 3:
                pts = simplify_polyline(pts, tolerance, closed=True, eps=self.eps)
            check = check_polygon(pts, self.eps)
            if check is PolygonCheck.DEGENERATE:
                log.warn(f"[NavMeshBuilder] skipping degenerate {what} contour with {len(pts)} points")
                continue
            result.append(pts)
        return result

    def _layer_region(self, boundary: Boundary, layer: LayerSettings) -> list[np.ndarray]:
        if layer.boundary is not None:
            source = [np.array(outline, dtype=np.float64) for outline in layer.boundary]
        else:
            source = list(boundary.contours)
        contours = self._clean_contours(source, "boundary")
        region = resolve_contours(contours, eps=self.eps)
        radius = self.settings.agent_radius
        if self.settings.deflate_boundary and radius > 0 and region:
            region = offset_polygons(region, -radius, self.settings.arc_resolution, self.eps)
        return region

    def inflate_obstacles(self, obstacles: Sequence[Obstacle]) -> list[np.ndarray]:
        """Контуры препятствий, раздутые на радиус агента и объединённые."""
        outlines = []
        radius = self.settings.agent_radius
        tolerance = self.settings.simplification_tolerance
        for obstacle in obstacles:
            for outline in obstacle.world_outlines(self.settings.arc_resolution):
                if tolerance > 0 and len(outline) > 3:
                    outline = simplify_polyline(outline, tolerance, closed=True, eps=self.eps)
                if len(outline) >= 3 and check_polygon(outline, self.eps) is not PolygonCheck.DEGENERATE:
                    outlines.append(outline)
                elif radius > 0:
                    # точка или отрезок: раздувается в круг или стадион
                    outlines.append(outline)
                else:
                    log.warn(f"[NavMeshBuilder] skipping degenerate outline of obstacle {obstacle.id}")
        if not outlines:
            return []
        return offset_polygons(outlines, radius, self.settings.arc_resolution, self.eps)

    def _layer_obstacles(self, obstacles: Sequence[Obstacle], layer_index: int) -> list[Obstacle]:
        if not self.settings.layered:
            return list(obstacles)
        return [o for o in obstacles if o.layer == layer_index]

    def build_layer(
        self,
        boundary: Boundary,
        obstacles: Sequence[Obstacle],
        layer_index: int,
        static_contours: Optional[Sequence[np.ndarray]] = None,
    ) -> LayerMesh:
        layer = self.settings.effective_layers()[layer_index]
        region = self._layer_region(boundary, layer)
        empty = LayerMesh(
            layer=layer_index,
            height=layer.height,
            height_tolerance=layer.height_tolerance,
            vertices=np.zeros((0, 2)),
        )
        if not region:
            return empty

        layer_obstacles = self._layer_obstacles(obstacles, layer_index)
        if static_contours is None:
            clip = self.inflate_obstacles(layer_obstacles)
        else:
            clip = list(static_contours) + self.inflate_obstacles(
                [o for o in layer_obstacles if not o.static]
            )

        contours = difference(region, clip, eps=self.eps) if clip else region
        if not contours:
            log.info(f"[NavMeshBuilder] layer {layer_index}: obstacles cover the whole region")
            return empty

        tri = triangulate_region(contours, eps=self.eps)
        if self.settings.merge:
            polygons = merge_triangles(
                tri.vertices,
                tri.triangles,
                tri.constraints,
                max_passes=self.settings.merge_steps,
                eps=self.eps,
            )
        else:
            polygons = [list(map(int, t)) for t in tri.triangles]

        return LayerMesh(
            layer=layer_index,
            height=layer.height,
            height_tolerance=layer.height_tolerance,
            vertices=tri.vertices,
            polygons=polygons,
        )

    def static_cache_for(
        self,
        obstacles: Sequence[Obstacle],
        version: Optional[int],
        cache: Optional[StaticObstacleCache] = None,
    ) -> Optional[StaticObstacleCache]:
        """Вернуть годный кэш статических препятствий или построить новый."""
        if version is None:
            return None
        if cache is not None and cache.matches(version, self.settings):
            return cache
        statics = [o for o in obstacles if o.static]
        layers = {}
        for index in range(len(self.settings.effective_layers())):
            layers[index] = tuple(self.inflate_obstacles(self._layer_obstacles(statics, index)))
        log.debug(f"[NavMeshBuilder] static obstacle cache rebuilt ({len(statics)} obstacles)")
        return StaticObstacleCache(version=version, settings=self.settings, layers=layers)

    def build(
        self,
        boundary: Boundary,
        obstacles: Sequence[Obstacle] = (),
        generation: int = 0,
        static_cache: Optional[StaticObstacleCache] = None,
        name: str = "",
    ) -> NavMesh:
        """
        Построить NavMesh.

        Raises:
            SelfIntersectingConstraint, TriangulationFailure: сборка невозможна.
            MeshInvariantError: дефект сборки графа.
        """
        layer_meshes = []
        for index in range(len(self.settings.effective_layers())):
            static_contours = static_cache.layers.get(index, ()) if static_cache is not None else None
            layer_meshes.append(self.build_layer(boundary, obstacles, index, static_contours))
        return assemble_navmesh(
            layer_meshes,
            generation=generation,
            name=name,
            eps=self.eps,
            stitch=self.settings.layered,
            stitches=self.settings.stitches,
        )


def run_build(request: BuildRequest) -> BuildResult:
    """
    Выполнить сборку по снимку. Геометрические ошибки не выбрасываются,
    а возвращаются в результате.
    """
    builder = NavMeshBuilder(request.settings)
    started = time.perf_counter()
    cache = None
    try:
        cache = builder.static_cache_for(request.obstacles, request.static_version, request.static_cache)
        navmesh = builder.build(
            request.boundary,
            request.obstacles,
            generation=request.generation,
            static_cache=cache,
            name=request.name,
        )
    except GeometryError as e:
        log.warn(e, f"[NavMeshBuilder] build of generation {request.generation} failed")
        return BuildResult(
            request=request,
            error=e,
            duration=time.perf_counter() - started,
            static_cache=cache,
            outcome=BuildOutcome.FAILED,
        )
    return BuildResult(
        request=request,
        navmesh=navmesh,
        duration=time.perf_counter() - started,
        static_cache=cache,
        outcome=BuildOutcome.SUCCESS,
    )
