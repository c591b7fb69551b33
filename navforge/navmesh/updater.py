"""
NavMesh update orchestrator.

Состояния:
    IDLE        — перестройка не нужна
    PENDING     — замечено изменение, сборка ещё не запущена
    BUILDING    — сборка выполняется в рабочем потоке
    PUBLISHING  — готовый результат проверяется на устаревание

Каждое изменение (препятствие добавлено, сдвинуто, удалено, изменены
настройки или граница) увеличивает requested_generation. Сборка
захватывает текущее поколение и глубокую копию реестра. Результат
публикуется, только если его поколение равно последнему запрошенному,
иначе он отбрасывается и запускается новая сборка. Одновременно
выполняется не больше одной сборки; несколько изменений до старта
сборки сливаются в один запрос.

Ошибка геометрии не роняет оркестратор: предыдущая сетка остаётся
в силе, а одно и то же поколение повторяется не больше max_retries раз.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import time
from typing import Callable, Iterable, Optional, Sequence

from navforge import log
from navforge.navmesh.builder import (
    BuildOutcome,
    BuildRequest,
    BuildResult,
    StaticObstacleCache,
)
from navforge.navmesh.errors import GeometryError, NavMeshNotReady
from navforge.navmesh.obstacles import Obstacle, ObstacleReport, Placement
from navforge.navmesh.pathfinding import find_path
from navforge.navmesh.registry import ArtifactStore, ObstacleRegistry
from navforge.navmesh.settings import NavMeshSettings
from navforge.navmesh.source_mesh import Boundary
from navforge.navmesh.types import NavMesh
from navforge.navmesh.worker import BuildWorker, InlineBuildWorker


class UpdaterState(Enum):
    IDLE = "idle"
    PENDING = "pending"
    BUILDING = "building"
    PUBLISHING = "publishing"


class NavMeshStatus(Enum):
    """Статус последней сборки."""

    INVALID = "invalid"
    """Ничего ещё не собрано."""
    BUILDING = "building"
    BUILT = "built"
    FAILED = "failed"
    """Ошибка геометрии или превышен build_timeout."""
    CANCELLED = "cancelled"
    """Результат устарел до завершения сборки и отброшен."""


class UpdateMode(Enum):
    DIRECT = "direct"
    """Сборка на первом же тике после изменения."""
    DEBOUNCED = "debounced"
    """Не чаще одной сборки за debounce секунд; изменения в окне откладываются."""
    ON_DEMAND = "on_demand"
    """Только по request_rebuild()."""


@dataclass
class UpdaterStats:
    builds_started: int = 0
    published: int = 0
    discarded: int = 0
    failed: int = 0
    timed_out: int = 0
    last_build_duration: float = 0.0


class NavMeshUpdater:
    """
    Поддерживает актуальную NavMesh при изменении препятствий.

    Управляется тиками хоста: tick() никогда не ждёт рабочий поток
    (кроме блокирующего режима, где сборка идёт прямо в тике).
    """

    def __init__(
        self,
        boundary: Boundary,
        settings: Optional[NavMeshSettings] = None,
        mode: UpdateMode = UpdateMode.DIRECT,
        debounce: float = 0.0,
        blocking: bool = False,
        worker=None,
        build_timeout: Optional[float] = None,
        max_retries: int = 2,
        clock: Callable[[], float] = time.monotonic,
        name: str = "",
    ) -> None:
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        if debounce < 0:
            raise ValueError(f"debounce must be >= 0, got {debounce}")

        self.boundary = boundary
        self.settings = settings or NavMeshSettings()
        self.mode = mode
        self.debounce = debounce
        self.blocking = blocking
        self.build_timeout = build_timeout
        self.max_retries = max_retries
        self.name = name
        self._clock = clock

        if worker is None:
            worker = InlineBuildWorker() if blocking else BuildWorker()
        self._worker = worker

        self.registry = ObstacleRegistry()
        self.store = ArtifactStore()
        self.stats = UpdaterStats()
        self.state = UpdaterState.IDLE
        self.status = NavMeshStatus.INVALID
        self.last_error: Optional[BaseException] = None

        self._requested_generation = 0
        self._pending = False
        self._demanded = False
        self._in_flight: Optional[BuildRequest] = None
        self._in_flight_started = 0.0
        self._abandoned = False
        self._failed_generation: Optional[int] = None
        self._failures = 0
        self._retry_held = False
        self._next_allowed = 0.0
        self._static_cache: Optional[StaticObstacleCache] = None

        self._mark_changed()

    # --- queries ---

    @property
    def navmesh(self) -> Optional[NavMesh]:
        """Текущая опубликованная сетка (или None)."""
        return self.store.current

    @property
    def requested_generation(self) -> int:
        return self._requested_generation

    @property
    def current_generation(self) -> int:
        return self.store.current_generation

    @property
    def is_ready(self) -> bool:
        return self.store.current is not None

    @property
    def building(self) -> bool:
        return self._in_flight is not None

    def require_navmesh(self) -> NavMesh:
        """
        Raises:
            NavMeshNotReady: ещё ни одна сетка не опубликована.
        """
        mesh = self.store.current
        if mesh is None:
            raise NavMeshNotReady("navmesh has not been built yet")
        return mesh

    def find_path(self, start, end, start_layer: Optional[int] = None, end_layer: Optional[int] = None):
        """
        Путь по текущей сетке: список 2D точек или None, если пути нет.

        Raises:
            NavMeshNotReady: ещё ни одна сетка не опубликована.
        """
        return find_path(self.require_navmesh(), start, end, start_layer, end_layer)

    # --- changes ---

    def _mark_changed(self) -> None:
        self._requested_generation += 1
        self._pending = True
        if self.state is UpdaterState.IDLE:
            self.state = UpdaterState.PENDING

    def ingest(self, reports: Iterable[ObstacleReport]) -> int:
        """Принять записи о препятствиях за тик. Возвращает число изменений."""
        changes = self.registry.ingest(reports)
        if changes:
            self._mark_changed()
        return changes

    def add_obstacle(self, obstacle: Obstacle) -> None:
        self.registry.add(obstacle)
        self._mark_changed()

    def remove_obstacle(self, obstacle_id: int) -> bool:
        removed = self.registry.remove(obstacle_id)
        if removed:
            self._mark_changed()
        return removed

    def move_obstacle(self, obstacle_id: int, placement: Placement) -> None:
        """
        Raises:
            KeyError: препятствие не зарегистрировано.
        """
        obstacle = self.registry.get(obstacle_id)
        if obstacle is None:
            raise KeyError(f"unknown obstacle {obstacle_id}")
        self.add_obstacle(Obstacle(
            id=obstacle.id,
            shape=obstacle.shape,
            placement=placement,
            layer=obstacle.layer,
            static=obstacle.static,
        ))

    def set_settings(self, settings: NavMeshSettings) -> None:
        if settings == self.settings:
            return
        self.settings = settings
        self._static_cache = None
        log.debug("[NavMeshUpdater] static obstacle cache cleared due to settings change")
        self._mark_changed()

    def set_boundary(self, boundary: Boundary) -> None:
        self.boundary = boundary
        self._mark_changed()

    def request_rebuild(self) -> None:
        """Запросить сборку (единственный триггер в режиме ON_DEMAND)."""
        self._demanded = True
        self._mark_changed()

    # --- tick ---

    def tick(self, reports: Optional[Sequence[ObstacleReport]] = None) -> NavMeshStatus:
        """
        Один шаг хоста: принять изменения, забрать результат сборки,
        при необходимости запустить новую. После неудачной сборки
        повтор запускается не раньше следующего тика.
        """
        self._retry_held = False
        if reports:
            self.ingest(reports)
        self._collect()
        self._maybe_start()
        if self.blocking:
            self._collect()
        return self.status

    def _retries_exhausted(self) -> bool:
        return (
            self._failed_generation == self._requested_generation
            and self._failures > self.max_retries
        )

    def _maybe_start(self) -> None:
        if not self._pending or self._in_flight is not None or self._worker.busy:
            return
        if self._retry_held or self._retries_exhausted():
            return
        if self.mode is UpdateMode.ON_DEMAND and not self._demanded:
            return
        now = self._clock()
        if self.mode is UpdateMode.DEBOUNCED:
            if now < self._next_allowed:
                return
            self._next_allowed = now + self.debounce
        self._demanded = False

        request = BuildRequest(
            generation=self._requested_generation,
            boundary=self.boundary,
            obstacles=self.registry.snapshot(),
            settings=self.settings,
            static_version=self.registry.static_version,
            static_cache=self._static_cache,
            name=self.name,
        )
        self._pending = False
        self._in_flight = request
        self._in_flight_started = now
        self.state = UpdaterState.BUILDING
        self.status = NavMeshStatus.BUILDING
        self.stats.builds_started += 1
        log.debug(f"[NavMeshUpdater] build of generation {request.generation} started")
        self._worker.submit(request)

    def _record_failure(self, generation: int) -> None:
        if self._failed_generation == generation:
            self._failures += 1
        else:
            self._failed_generation = generation
            self._failures = 1

    def _settle(self) -> None:
        self.state = UpdaterState.PENDING if self._pending else UpdaterState.IDLE

    def _check_timeout(self) -> None:
        if self._in_flight is None or self._abandoned or self.build_timeout is None:
            return
        if self._clock() - self._in_flight_started <= self.build_timeout:
            return
        generation = self._in_flight.generation
        log.warn(f"[NavMeshUpdater] build of generation {generation} timed out")
        self._abandoned = True
        self.status = NavMeshStatus.FAILED
        self.stats.timed_out += 1
        self._record_failure(generation)
        self._pending = True

    def _collect(self) -> None:
        result = self._worker.poll()
        if result is None:
            self._check_timeout()
            return
        self._publish(result)

    def _publish(self, result: BuildResult) -> None:
        request = result.request
        abandoned = self._abandoned
        self._in_flight = None
        self._abandoned = False
        self.state = UpdaterState.PUBLISHING

        if result.error is not None and not isinstance(result.error, GeometryError):
            self._pending = True
            self._settle()
            raise result.error

        cache = result.static_cache
        if cache is not None and cache.matches(self.registry.static_version, self.settings):
            self._static_cache = cache

        if abandoned:
            result.outcome = BuildOutcome.TIMED_OUT
            self.stats.discarded += 1
            log.debug(f"[NavMeshUpdater] late result of generation {request.generation} dropped")
            self._settle()
            return

        if request.generation != self._requested_generation:
            result.outcome = BuildOutcome.STALE
            self.stats.discarded += 1
            self.status = NavMeshStatus.CANCELLED
            self._pending = True
            log.debug(
                f"[NavMeshUpdater] stale build of generation {request.generation} discarded "
                f"(latest is {self._requested_generation})"
            )
            self._settle()
            return

        if result.outcome is BuildOutcome.FAILED or result.navmesh is None:
            self.stats.failed += 1
            self.status = NavMeshStatus.FAILED
            self.last_error = result.error
            self._record_failure(request.generation)
            self._pending = True
            self._retry_held = True
            self._settle()
            return

        self.store.publish(result.navmesh)
        self.status = NavMeshStatus.BUILT
        self.last_error = None
        self.stats.published += 1
        self.stats.last_build_duration = result.duration
        self._failed_generation = None
        self._failures = 0
        log.info(
            f"[NavMeshUpdater] published generation {request.generation}: "
            f"{result.navmesh.polygon_count()} polygons in {result.duration * 1000.0:.1f} ms"
        )
        if result.navmesh.failed_stitches:
            log.warn(
                f"[NavMeshUpdater] generation {request.generation} has failed stitches "
                f"{list(result.navmesh.failed_stitches)}"
            )
        self._settle()

    def wait(self, timeout: Optional[float] = None) -> NavMeshStatus:
        """Дождаться текущей сборки и обработать её результат (инструменты, тесты)."""
        if self._in_flight is None:
            return self.status
        result = self._worker.wait(timeout)
        if result is not None:
            self._publish(result)
        return self.status

    def close(self) -> None:
        self._worker.shutdown()
