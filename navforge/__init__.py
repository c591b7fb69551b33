"""
Navforge - navigation mesh construction and live updates for dynamic scenes.

Основные модули:
- geombase - геометрическое ядро (полигоны, упрощение, offset, булевы операции)
- navmesh - триангуляция, сборка NavMesh, оркестратор перестроений, поиск пути
"""

from navforge.navmesh import (
    NavMesh,
    NavMeshSettings,
    NavMeshUpdater,
    Obstacle,
    Placement,
)

__version__ = '0.1.0'

__all__ = [
    'NavMesh',
    'NavMeshSettings',
    'NavMeshUpdater',
    'Obstacle',
    'Placement',
]
