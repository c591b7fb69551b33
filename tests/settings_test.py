"""
Тесты для настроек навигации.
"""

import json
import tempfile
import unittest
from pathlib import Path

from navforge.navmesh.settings import (
    AgentType,
    LayerSettings,
    NavigationSettings,
    NavigationSettingsManager,
    NavMeshSettings,
    Stitch,
)


class NavMeshSettingsTest(unittest.TestCase):

    def test_defaults(self):
        settings = NavMeshSettings()
        self.assertEqual(settings.agent_radius, 0.0)
        self.assertTrue(settings.merge)
        self.assertEqual(settings.merge_steps, 0)
        self.assertFalse(settings.layered)
        self.assertEqual(len(settings.effective_layers()), 1)

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            NavMeshSettings(agent_radius=-1.0)
        with self.assertRaises(ValueError):
            NavMeshSettings(build_epsilon=0.0)
        with self.assertRaises(ValueError):
            NavMeshSettings(arc_resolution=2)
        with self.assertRaises(ValueError):
            NavMeshSettings(merge_steps=-1)
        with self.assertRaises(ValueError):
            LayerSettings(height_tolerance=-0.1)

    def test_replace(self):
        settings = NavMeshSettings().replace(agent_radius=0.5)
        self.assertEqual(settings.agent_radius, 0.5)

    def test_equality(self):
        self.assertEqual(NavMeshSettings(agent_radius=0.5), NavMeshSettings(agent_radius=0.5))
        self.assertNotEqual(NavMeshSettings(agent_radius=0.5), NavMeshSettings())

    def test_round_trip(self):
        settings = NavMeshSettings(
            agent_radius=0.3,
            simplification_tolerance=0.01,
            merge_steps=2,
            layers=(
                LayerSettings(0.0, 0.2),
                LayerSettings(1.0, 0.2, boundary=[[(0, 0), (1, 0), (1, 1)]]),
            ),
        )
        restored = NavMeshSettings.from_dict(json.loads(json.dumps(settings.to_dict())))
        self.assertEqual(restored, settings)
        self.assertTrue(restored.layered)

    def test_stitches(self):
        settings = NavMeshSettings(
            layers=(LayerSettings(0.0), LayerSettings(1.0)),
            stitches=(Stitch(layers=(0, 1), segment=((0, 0), (0, 5))),),
        )
        self.assertEqual(settings.stitches[0].segment, ((0.0, 0.0), (0.0, 5.0)))
        restored = NavMeshSettings.from_dict(json.loads(json.dumps(settings.to_dict())))
        self.assertEqual(restored, settings)

    def test_invalid_stitches(self):
        with self.assertRaises(ValueError):
            Stitch(layers=(1, 1))
        with self.assertRaises(ValueError):
            NavMeshSettings(stitches=(Stitch(layers=(0, 1)),))


class NavigationSettingsTest(unittest.TestCase):

    def test_default_agent(self):
        settings = NavigationSettings()
        self.assertEqual(settings.get_agent_type_names(), ["Human"])

    def test_settings_for_agent(self):
        settings = NavigationSettings(agent_types=[AgentType("Small", 0.2), AgentType("Big", 1.0)])
        self.assertEqual(settings.settings_for_agent("Big").agent_radius, 1.0)
        with self.assertRaises(KeyError):
            settings.settings_for_agent("Unknown")

    def test_from_dict_without_agents(self):
        settings = NavigationSettings.from_dict({})
        self.assertEqual(len(settings.agent_types), 1)


class NavigationSettingsManagerTest(unittest.TestCase):

    def tearDown(self):
        NavigationSettingsManager._instance = None

    def test_instance_is_shared(self):
        first = NavigationSettingsManager.instance()
        self.assertIs(NavigationSettingsManager.instance(), first)
        first.add_agent_type(AgentType("Tank", 2.0))
        self.assertIn("Tank", NavigationSettingsManager.instance().settings.get_agent_type_names())

    def test_update_agent_type(self):
        manager = NavigationSettingsManager()
        manager.update_agent_type(0, AgentType("Dwarf", 0.3))
        self.assertEqual(manager.settings.get_agent_type_names(), ["Dwarf"])
        self.assertEqual(manager.settings.settings_for_agent("Dwarf").agent_radius, 0.3)

        manager.update_agent_type(5, AgentType("Ghost", 0.1))
        self.assertEqual(manager.settings.get_agent_type_names(), ["Dwarf"])

    def test_set_navmesh_settings(self):
        manager = NavigationSettingsManager()
        manager.set_navmesh_settings(NavMeshSettings(merge=False))
        self.assertFalse(manager.settings.navmesh.merge)
        self.assertEqual(manager.settings.settings_for_agent("Human").agent_radius, 0.5)

    def test_save_and_load(self):
        with tempfile.TemporaryDirectory() as tmp:
            manager = NavigationSettingsManager()
            manager.set_project_path(Path(tmp))
            manager.add_agent_type(AgentType("Tank", 2.0))
            manager.set_navmesh_settings(NavMeshSettings(agent_radius=0.1))
            self.assertTrue(manager.save())

            other = NavigationSettingsManager()
            other.set_project_path(Path(tmp))
            self.assertEqual(other.settings.get_agent_type_names(), ["Human", "Tank"])
            self.assertEqual(other.settings.navmesh.agent_radius, 0.1)

    def test_broken_file_falls_back(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "project_settings" / "navigation.json"
            path.parent.mkdir(parents=True)
            path.write_text("{ not json", encoding="utf-8")

            manager = NavigationSettingsManager()
            manager.set_project_path(Path(tmp))
            self.assertEqual(manager.settings.get_agent_type_names(), ["Human"])

    def test_save_without_project(self):
        self.assertFalse(NavigationSettingsManager().save())

    def test_remove_last_agent_keeps_default(self):
        manager = NavigationSettingsManager()
        manager.remove_agent_type(0)
        self.assertEqual(len(manager.settings.agent_types), 1)


if __name__ == "__main__":
    unittest.main()
