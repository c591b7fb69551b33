"""
NavMesh construction from a boundary and obstacles.

Алгоритм:
1. Граница и контуры препятствий упрощаются
2. Препятствия раздуваются на радиус агента и вычитаются из границы
3. Остаток триангулируется с ограничениями (дырки, слои)
4. Треугольники сливаются в выпуклые полигоны с графом смежности
5. NavMeshUpdater перестраивает сетку в фоне при изменении препятствий
"""

from navforge.navmesh.errors import (
    GeometryError,
    DegenerateGeometry,
    SelfIntersectingConstraint,
    TriangulationFailure,
    MeshInvariantError,
    NavMeshNotReady,
)
from navforge.navmesh.types import NavPolygon, NavMesh, LayerPartition, LayerLink
from navforge.navmesh.settings import (
    LayerSettings,
    Stitch,
    NavMeshSettings,
    AgentType,
    NavigationSettings,
    NavigationSettingsManager,
)
from navforge.navmesh.obstacles import (
    Placement,
    Aabb,
    Rectangle,
    Circle,
    Ellipse,
    CircularSector,
    CircularSegment,
    Capsule,
    RegularPolygon,
    Rhombus,
    ConvexHullShape,
    PolygonShape,
    MeshOutline,
    Obstacle,
    ObstacleReport,
)
from navforge.navmesh.source_mesh import (
    Boundary,
    rectangle_boundary,
    boundary_from_mesh,
    navmesh_from_mesh,
)
from navforge.navmesh.builder import (
    BuildOutcome,
    BuildRequest,
    BuildResult,
    NavMeshBuilder,
    run_build,
)
from navforge.navmesh.registry import ObstacleRegistry, ArtifactStore
from navforge.navmesh.worker import BuildWorker, InlineBuildWorker
from navforge.navmesh.updater import (
    NavMeshUpdater,
    NavMeshStatus,
    UpdateMode,
    UpdaterState,
    UpdaterStats,
)
from navforge.navmesh.pathfinding import find_path
from navforge.navmesh.persistence import NavMeshPersistence

__all__ = [
    "GeometryError",
    "DegenerateGeometry",
    "SelfIntersectingConstraint",
    "TriangulationFailure",
    "MeshInvariantError",
    "NavMeshNotReady",
    "NavPolygon",
    "NavMesh",
    "LayerPartition",
    "LayerLink",
    "LayerSettings",
    "Stitch",
    "NavMeshSettings",
    "AgentType",
    "NavigationSettings",
    "NavigationSettingsManager",
    "Placement",
    "Aabb",
    "Rectangle",
    "Circle",
    "Ellipse",
    "CircularSector",
    "CircularSegment",
    "Capsule",
    "RegularPolygon",
    "Rhombus",
    "ConvexHullShape",
    "PolygonShape",
    "MeshOutline",
    "Obstacle",
    "ObstacleReport",
    "Boundary",
    "rectangle_boundary",
    "boundary_from_mesh",
    "navmesh_from_mesh",
    "BuildOutcome",
    "BuildRequest",
    "BuildResult",
    "NavMeshBuilder",
    "run_build",
    "ObstacleRegistry",
    "ArtifactStore",
    "BuildWorker",
    "InlineBuildWorker",
    "NavMeshUpdater",
    "NavMeshStatus",
    "UpdateMode",
    "UpdaterState",
    "UpdaterStats",
    "find_path",
    "NavMeshPersistence",
]
