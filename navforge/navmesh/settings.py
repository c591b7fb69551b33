"""
Navigation settings — build parameters and project-level configuration.

NavMeshSettings is immutable for the duration of one build.
Project settings (agent types) are saved to project_settings/navigation.json.
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import List, Optional, Tuple

from navforge import log


@dataclass(frozen=True)
class LayerSettings:
    """
    Declared height layer.

    - height: layer elevation, becomes the z coordinate of its vertices
    - height_tolerance: max height difference for vertical links to other layers
    - boundary: optional layer-specific outline(s); None uses the shared boundary
    """

    height: float = 0.0
    height_tolerance: float = 0.0
    boundary: Optional[Tuple[Tuple[Tuple[float, float], ...], ...]] = None

    def __post_init__(self) -> None:
        if self.height_tolerance < 0:
            raise ValueError(f"height_tolerance must be >= 0, got {self.height_tolerance}")
        if self.boundary is not None:
            outlines = tuple(
                tuple((float(x), float(y)) for x, y, *_ in outline)
                for outline in self.boundary
            )
            object.__setattr__(self, "boundary", outlines)

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        data = {"height": self.height, "height_tolerance": self.height_tolerance}
        if self.boundary is not None:
            data["boundary"] = [[list(p) for p in outline] for outline in self.boundary]
        return data

    @staticmethod
    def from_dict(data: dict) -> "LayerSettings":
        """Deserialize from dictionary."""
        return LayerSettings(
            height=data.get("height", 0.0),
            height_tolerance=data.get("height_tolerance", 0.0),
            boundary=data.get("boundary"),
        )


@dataclass(frozen=True)
class Stitch:
    """
    Declared seam between two layers.

    - layers: pair of layer indices
    - segment: seam endpoints in plan; boundary vertices of both layers lying
      on it are matched one to one and their boundary edges are linked
    """

    layers: Tuple[int, int] = (0, 1)
    segment: Tuple[Tuple[float, float], Tuple[float, float]] = ((0.0, 0.0), (0.0, 0.0))

    def __post_init__(self) -> None:
        a, b = (int(i) for i in self.layers)
        if a == b:
            raise ValueError(f"stitch must join two different layers, got {self.layers}")
        (x0, y0), (x1, y1) = self.segment
        object.__setattr__(self, "layers", (a, b))
        object.__setattr__(self, "segment", ((float(x0), float(y0)), (float(x1), float(y1))))

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {"layers": list(self.layers), "segment": [list(p) for p in self.segment]}

    @staticmethod
    def from_dict(data: dict) -> "Stitch":
        """Deserialize from dictionary."""
        return Stitch(
            layers=tuple(data.get("layers", (0, 1))),
            segment=tuple(tuple(p) for p in data.get("segment", ((0.0, 0.0), (0.0, 0.0)))),
        )


@dataclass(frozen=True)
class NavMeshSettings:
    """
    NavMesh build parameters.

    - agent_radius: obstacles are inflated by this distance
    - simplification_tolerance: max deviation of dropped outline points
    - merge: merge triangles into convex polygons
    - merge_steps: merge passes limit, 0 = until nothing can be merged
    - layers: declared height layers, empty = one flat layer
    - stitches: declared seams between layers; empty = link coinciding edges
    - build_epsilon: edge/point coincidence tolerance
    - arc_resolution: segments per full circle for curved outlines and offset joins
    - deflate_boundary: shrink the outer boundary by agent_radius as well
    """

    agent_radius: float = 0.0
    simplification_tolerance: float = 0.0
    merge: bool = True
    merge_steps: int = 0
    layers: Tuple[LayerSettings, ...] = ()
    stitches: Tuple[Stitch, ...] = ()
    build_epsilon: float = 1e-6
    arc_resolution: int = 32
    deflate_boundary: bool = False

    def __post_init__(self) -> None:
        if self.agent_radius < 0:
            raise ValueError(f"agent_radius must be >= 0, got {self.agent_radius}")
        if self.simplification_tolerance < 0:
            raise ValueError(
                f"simplification_tolerance must be >= 0, got {self.simplification_tolerance}"
            )
        if self.merge_steps < 0:
            raise ValueError(f"merge_steps must be >= 0, got {self.merge_steps}")
        if not self.build_epsilon > 0:
            raise ValueError(f"build_epsilon must be > 0, got {self.build_epsilon}")
        if self.arc_resolution < 3:
            raise ValueError(f"arc_resolution must be >= 3, got {self.arc_resolution}")
        object.__setattr__(self, "layers", tuple(self.layers))
        object.__setattr__(self, "stitches", tuple(self.stitches))
        for stitch in self.stitches:
            if max(stitch.layers) >= len(self.layers):
                raise ValueError(f"stitch {stitch.layers} refers to an undeclared layer")

    @property
    def layered(self) -> bool:
        """Detailed layers mode: more than the implicit flat layer is declared."""
        return bool(self.layers)

    def effective_layers(self) -> Tuple[LayerSettings, ...]:
        return self.layers or (LayerSettings(),)

    def replace(self, **changes) -> "NavMeshSettings":
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "agent_radius": self.agent_radius,
            "simplification_tolerance": self.simplification_tolerance,
            "merge": self.merge,
            "merge_steps": self.merge_steps,
            "layers": [layer.to_dict() for layer in self.layers],
            "stitches": [stitch.to_dict() for stitch in self.stitches],
            "build_epsilon": self.build_epsilon,
            "arc_resolution": self.arc_resolution,
            "deflate_boundary": self.deflate_boundary,
        }

    @staticmethod
    def from_dict(data: dict) -> "NavMeshSettings":
        """Deserialize from dictionary."""
        return NavMeshSettings(
            agent_radius=data.get("agent_radius", 0.0),
            simplification_tolerance=data.get("simplification_tolerance", 0.0),
            merge=data.get("merge", True),
            merge_steps=data.get("merge_steps", 0),
            layers=tuple(LayerSettings.from_dict(d) for d in data.get("layers", [])),
            stitches=tuple(Stitch.from_dict(d) for d in data.get("stitches", [])),
            build_epsilon=data.get("build_epsilon", 1e-6),
            arc_resolution=data.get("arc_resolution", 32),
            deflate_boundary=data.get("deflate_boundary", False),
        )


@dataclass
class AgentType:
    """
    Navigation agent type definition.

    - radius: Agent collision radius (obstacles are inflated by it)
    """

    name: str = "Human"
    radius: float = 0.5

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return asdict(self)

    @staticmethod
    def from_dict(data: dict) -> "AgentType":
        """Deserialize from dictionary."""
        return AgentType(
            name=data.get("name", "Human"),
            radius=data.get("radius", 0.5),
        )


@dataclass
class NavigationSettings:
    """
    Project-level navigation settings.

    Contains list of agent types and the shared build parameters.
    """

    agent_types: List[AgentType] = field(default_factory=lambda: [AgentType()])
    navmesh: NavMeshSettings = field(default_factory=NavMeshSettings)

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "agent_types": [agent.to_dict() for agent in self.agent_types],
            "navmesh": self.navmesh.to_dict(),
        }

    @staticmethod
    def from_dict(data: dict) -> "NavigationSettings":
        """Deserialize from dictionary."""
        agent_types = [
            AgentType.from_dict(agent_data)
            for agent_data in data.get("agent_types", [])
        ]
        if not agent_types:
            agent_types = [AgentType()]
        return NavigationSettings(
            agent_types=agent_types,
            navmesh=NavMeshSettings.from_dict(data.get("navmesh", {})),
        )

    def get_agent_type(self, name: str) -> Optional[AgentType]:
        """Get agent type by name."""
        for agent in self.agent_types:
            if agent.name == name:
                return agent
        return None

    def get_agent_type_names(self) -> List[str]:
        """Get list of all agent type names."""
        return [agent.name for agent in self.agent_types]

    def settings_for_agent(self, name: str) -> NavMeshSettings:
        """Build parameters for the named agent type."""
        agent = self.get_agent_type(name)
        if agent is None:
            raise KeyError(f"unknown agent type: {name}")
        return self.navmesh.replace(agent_radius=agent.radius)


class NavigationSettingsManager:
    """
    Singleton manager for navigation settings.

    Handles loading/saving settings from project directory.
    """

    _instance: Optional["NavigationSettingsManager"] = None
    _settings: NavigationSettings
    _project_path: Optional[Path] = None

    def __init__(self) -> None:
        self._settings = NavigationSettings()

    @classmethod
    def instance(cls) -> "NavigationSettingsManager":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = NavigationSettingsManager()
        return cls._instance

    @property
    def settings(self) -> NavigationSettings:
        """Get current navigation settings."""
        return self._settings

    def set_project_path(self, path: Path) -> None:
        """Set project path and load settings."""
        self._project_path = Path(path)
        self._load()

    def _get_settings_path(self) -> Optional[Path]:
        """Get path to settings file."""
        if self._project_path is None:
            return None
        return self._project_path / "project_settings" / "navigation.json"

    def _load(self) -> None:
        """Load settings from file."""
        path = self._get_settings_path()
        if path is None or not path.exists():
            self._settings = NavigationSettings()
            return

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self._settings = NavigationSettings.from_dict(data)
            log.info(f"[NavigationSettings] Loaded {len(self._settings.agent_types)} agent types from {path}")
        except (OSError, ValueError, TypeError, AttributeError) as e:
            log.error(e, "[NavigationSettings] Failed to load settings")
            self._settings = NavigationSettings()

    def save(self) -> bool:
        """Save settings to file."""
        path = self._get_settings_path()
        if path is None:
            log.error("[NavigationSettings] No project path set, cannot save")
            return False

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(self._settings.to_dict(), f, indent=2)
            log.info(f"[NavigationSettings] Saved to {path}")
            return True
        except OSError as e:
            log.error(e, "[NavigationSettings] Failed to save settings")
            return False

    def add_agent_type(self, agent: AgentType) -> None:
        """Add new agent type."""
        self._settings.agent_types.append(agent)

    def remove_agent_type(self, index: int) -> None:
        """Remove agent type by index."""
        if 0 <= index < len(self._settings.agent_types):
            del self._settings.agent_types[index]
            # at least one agent type
            if not self._settings.agent_types:
                self._settings.agent_types.append(AgentType())

    def update_agent_type(self, index: int, agent: AgentType) -> None:
        """Update agent type at index."""
        if 0 <= index < len(self._settings.agent_types):
            self._settings.agent_types[index] = agent

    def set_navmesh_settings(self, settings: NavMeshSettings) -> None:
        self._settings.navmesh = settings
