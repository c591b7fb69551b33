"""
Obstacle registry and versioned NavMesh storage.

ObstacleRegistry is the single owner of obstacle records. It is mutated
only by the updater's ingestion step; builds receive a deep copy.

ArtifactStore keeps published NavMesh generations. The current mesh is
held strongly, older generations only weakly: they disappear once no
reader holds them.
"""

from __future__ import annotations

import copy
import threading
from typing import Dict, Iterable, List, Optional, Tuple
from weakref import WeakValueDictionary

from navforge import log
from navforge.navmesh.obstacles import Obstacle, ObstacleReport
from navforge.navmesh.types import NavMesh


class ObstacleRegistry:
    """
    Obstacle storage.

    Structure:
        obstacle id -> Obstacle

    Every accepted change bumps `version`; changes that touch static
    obstacles also bump `static_version` (invalidates the static cache).
    """

    _obstacles: Dict[int, Obstacle]

    def __init__(self) -> None:
        self._obstacles = {}
        self.version = 0
        self.static_version = 0

    def __len__(self) -> int:
        return len(self._obstacles)

    def __contains__(self, obstacle_id: int) -> bool:
        return obstacle_id in self._obstacles

    def get(self, obstacle_id: int) -> Optional[Obstacle]:
        return self._obstacles.get(obstacle_id)

    def ids(self) -> List[int]:
        return sorted(self._obstacles)

    def _changed(self, *obstacles: Optional[Obstacle]) -> None:
        self.version += 1
        if any(o is not None and o.static for o in obstacles):
            self.static_version += 1

    def add(self, obstacle: Obstacle) -> None:
        """Add or replace an obstacle."""
        previous = self._obstacles.get(obstacle.id)
        self._obstacles[obstacle.id] = obstacle
        self._changed(previous, obstacle)

    def remove(self, obstacle_id: int) -> bool:
        """Remove an obstacle. Returns False if it was not registered."""
        previous = self._obstacles.pop(obstacle_id, None)
        if previous is None:
            return False
        self._changed(previous)
        return True

    def ingest(self, reports: Iterable[ObstacleReport]) -> int:
        """
        Apply one tick of obstacle reports.

        Reports with dirty=False are ignored for already known obstacles.

        Returns:
            Number of accepted changes.
        """
        changes = 0
        for report in reports:
            if report.removed:
                if self.remove(report.id):
                    changes += 1
                continue
            if not report.dirty and report.id in self._obstacles:
                continue
            if report.shape is None:
                log.warn(f"[ObstacleRegistry] report for obstacle {report.id} has no shape, ignored")
                continue
            self.add(report.to_obstacle())
            changes += 1
        return changes

    def clear(self) -> None:
        if not self._obstacles:
            return
        previous = list(self._obstacles.values())
        self._obstacles.clear()
        self._changed(*previous)

    def snapshot(self) -> Tuple[Obstacle, ...]:
        """Deep, independent copy of all obstacles ordered by id."""
        return tuple(copy.deepcopy(self._obstacles[i]) for i in sorted(self._obstacles))


class ArtifactStore:
    """
    Versioned NavMesh storage.

    Structure:
        generation -> NavMesh (weak, except the current one)

    `publish` replaces the current mesh with a single reference swap,
    so readers see either the old or the new mesh, never a partial one.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: Optional[NavMesh] = None
        self._history: "WeakValueDictionary[int, NavMesh]" = WeakValueDictionary()

    @property
    def current(self) -> Optional[NavMesh]:
        return self._current

    @property
    def current_generation(self) -> int:
        """Generation of the current mesh, 0 when nothing is published."""
        mesh = self._current
        return mesh.generation if mesh is not None else 0

    def publish(self, navmesh: NavMesh) -> None:
        """
        Make navmesh current.

        Raises:
            ValueError: generation does not increase.
        """
        with self._lock:
            current = self._current
            if current is not None and navmesh.generation <= current.generation:
                raise ValueError(
                    f"generation {navmesh.generation} is not newer than {current.generation}"
                )
            self._history[navmesh.generation] = navmesh
            self._current = navmesh

    def get(self, generation: int) -> Optional[NavMesh]:
        """NavMesh of a generation if it is still alive."""
        return self._history.get(generation)

    def generations(self) -> List[int]:
        """Generations still held by someone, ascending."""
        return sorted(self._history.keys())

    def clear(self) -> None:
        with self._lock:
            self._current = None
            self._history.clear()
