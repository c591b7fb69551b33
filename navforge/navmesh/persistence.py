"""
Сохранение и загрузка NavMesh.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Union

import numpy as np

from navforge.navmesh.types import LayerLink, LayerPartition, NavMesh, NavPolygon


NAVMESH_FILE_EXTENSION = ".navmesh"
NAVMESH_FORMAT_VERSION = "2.0"


class NavMeshPersistence:
    """
    Сохранение и загрузка NavMesh в файл .navmesh.

    Формат — JSON: общий буфер вершин, полигоны (индексы вершин, соседи,
    слой), разбиение по слоям, межслойные связи, неудавшиеся швы и номер
    поколения.
    """

    @staticmethod
    def to_dict(navmesh: NavMesh) -> dict:
        return {
            "version": NAVMESH_FORMAT_VERSION,
            "name": navmesh.name,
            "generation": navmesh.generation,
            "vertices": navmesh.vertices.tolist(),
            "polygons": [
                {
                    "indices": list(polygon.indices),
                    "neighbors": list(polygon.neighbors),
                    "layer": polygon.layer,
                }
                for polygon in navmesh.polygons
            ],
            "layers": [
                {
                    "layer": part.layer,
                    "height": part.height,
                    "first_polygon": part.first_polygon,
                    "polygon_count": part.polygon_count,
                }
                for part in navmesh.layers
            ],
            "links": [
                [link.polygon_a, link.edge_a, link.polygon_b, link.edge_b]
                for link in navmesh.links
            ],
            "failed_stitches": [list(pair) for pair in navmesh.failed_stitches],
        }

    @staticmethod
    def from_dict(data: dict) -> NavMesh:
        """
        Raises:
            ValueError: Если формат неверный.
        """
        version = str(data.get("version", ""))
        if not version.startswith("2."):
            raise ValueError(f"Unsupported navmesh format version: {version}")

        vertices = np.array(data.get("vertices", []), dtype=np.float64).reshape(-1, 3)
        polygons = []
        for poly_data in data.get("polygons", []):
            indices = tuple(int(i) for i in poly_data["indices"])
            neighbors = tuple(int(n) for n in poly_data.get("neighbors", [-1] * len(indices)))
            if len(neighbors) != len(indices):
                raise ValueError(
                    f"polygon has {len(indices)} vertices but {len(neighbors)} neighbors"
                )
            if indices and max(indices) >= len(vertices):
                raise ValueError(f"polygon vertex index {max(indices)} out of range")
            polygons.append(NavPolygon(
                indices=indices,
                neighbors=neighbors,
                layer=int(poly_data.get("layer", 0)),
            ))

        layers = tuple(
            LayerPartition(
                layer=int(part["layer"]),
                height=float(part["height"]),
                first_polygon=int(part["first_polygon"]),
                polygon_count=int(part["polygon_count"]),
            )
            for part in data.get("layers", [])
        )
        links = tuple(LayerLink(*(int(v) for v in link)) for link in data.get("links", []))

        return NavMesh(
            vertices=vertices,
            polygons=tuple(polygons),
            layers=layers,
            links=links,
            generation=int(data.get("generation", 0)),
            name=data.get("name", ""),
            failed_stitches=tuple(tuple(pair) for pair in data.get("failed_stitches", [])),
        )

    @staticmethod
    def save_to_content(navmesh: NavMesh) -> str:
        """Сериализовать NavMesh в строку JSON."""
        return json.dumps(NavMeshPersistence.to_dict(navmesh), indent=2)

    @staticmethod
    def load_from_content(content: str) -> NavMesh:
        """
        Загрузить NavMesh из строки JSON.

        Raises:
            ValueError: Если формат неверный.
        """
        return NavMeshPersistence.from_dict(json.loads(content))

    @staticmethod
    def save(navmesh: NavMesh, path: Union[str, Path]) -> None:
        """
        Сохранить NavMesh в файл.

        Args:
            navmesh: NavMesh для сохранения.
            path: Путь к файлу (.navmesh).
        """
        path = Path(path)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(NavMeshPersistence.to_dict(navmesh), f, indent=2)

    @staticmethod
    def load(path: Union[str, Path]) -> NavMesh:
        """
        Загрузить NavMesh из файла.

        Raises:
            ValueError: Если формат файла неверный.
            FileNotFoundError: Если файл не найден.
        """
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return NavMeshPersistence.from_dict(data)

    @staticmethod
    def get_info(path: Union[str, Path]) -> dict:
        """
        Получить информацию о navmesh файле без построения NavMesh.

        Returns:
            Словарь: name, generation, polygon_count, triangle_count,
            vertex_count, layer_count.
        """
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        polygons = data.get("polygons", [])
        return {
            "name": data.get("name", ""),
            "generation": data.get("generation", 0),
            "polygon_count": len(polygons),
            "triangle_count": sum(max(len(p.get("indices", [])) - 2, 0) for p in polygons),
            "vertex_count": len(data.get("vertices", [])),
            "layer_count": len(data.get("layers", [])),
        }
