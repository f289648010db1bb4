import unittest
import json
import os
from datetime import date

from decision.configmanager import ConfigManager, EngineConfig, UpgradeTarget


class TestConfigManager(unittest.TestCase):

    def setUp(self):
        # Reset singleton instance before each test
        ConfigManager._instance = None
        self.config_data = {
            "engine": {"tribe": "gaul", "auto_farm": True, "server_speed": 3},
            "villages": {
                "123": {"auto_farm": False, "auto_hero_adventure": True}
            }
        }
        # Create a mock config file
        with open("config.json", "w") as f:
            json.dump(self.config_data, f)

    def tearDown(self):
        # Remove the mock config file
        os.remove("config.json")
        ConfigManager._instance = None

    def test_load_config(self):
        cm = ConfigManager()
        self.assertEqual(cm.get_config(), self.config_data)

    def test_missing_config_raises(self):
        with self.assertRaises(FileNotFoundError):
            ConfigManager(config_path='does_not_exist.json')

    def test_save_config(self):
        with open('test_config.json', 'w') as f:
            json.dump({}, f)
        cm = ConfigManager(config_path='test_config.json')
        cm.config = {"key": "new_value"}
        cm.save_config()
        with open('test_config.json', 'r') as f:
            data = json.load(f)
        self.assertEqual(data, {"key": "new_value"})
        os.remove('test_config.json')

    def test_update_village_config(self):
        with open('test_config.json', 'w') as f:
            json.dump(self.config_data, f)
        cm = ConfigManager(config_path='test_config.json')
        cm.update_village_config("123", "auto_farm", True)
        with open('test_config.json', 'r') as f:
            data = json.load(f)
        self.assertTrue(data["villages"]["123"]["auto_farm"])
        os.remove('test_config.json')

    def test_update_creates_missing_village_section(self):
        # Arrange
        with open('test_config.json', 'w') as f:
            json.dump({"engine": {}}, f)
        cm = ConfigManager(config_path='test_config.json')

        # Act
        changed = cm.update_village_config(456, "auto_farm", True)
        unchanged = cm.update_village_config(456, "auto_farm", True)

        # Assert
        with open('test_config.json', 'r') as f:
            data = json.load(f)
        self.assertTrue(changed)
        self.assertFalse(unchanged)
        self.assertEqual(data["villages"], {"456": {"auto_farm": True}})
        self.assertFalse(os.path.exists('test_config.json.tmp'))
        self.assertTrue(cm.get_engine_config(456).auto_farm)
        os.remove('test_config.json')

    def test_engine_config_merges_village_override(self):
        cm = ConfigManager()
        config = cm.get_engine_config(123)
        self.assertEqual(config.village_id, "123")
        self.assertEqual(config.tribe, "gaul")
        self.assertEqual(config.server_speed, 3)
        self.assertFalse(config.auto_farm)
        self.assertTrue(config.auto_hero_adventure)

    def test_engine_config_without_village(self):
        config = ConfigManager().get_engine_config()
        self.assertIsNone(config.village_id)
        self.assertTrue(config.auto_farm)


class TestEngineConfig(unittest.TestCase):

    def test_defaults(self):
        config = EngineConfig.from_dict({})
        self.assertFalse(config.auto_upgrade_resources)
        self.assertFalse(config.auto_farm)
        self.assertEqual(config.tribe, "roman")
        self.assertEqual(config.server_speed, 1)
        self.assertEqual(config.game_day, 15)
        self.assertIsNone(config.troops)
        self.assertEqual(config.farm.interval_ms, 300000)
        self.assertEqual(config.farm.min_troops, 10)
        self.assertTrue(config.farm.use_rally_point_farm_list)
        self.assertEqual(config.hero.min_health, 30)
        self.assertIsNone(config.origin)

    def test_legacy_toggle_names(self):
        config = EngineConfig.from_dict({"auto_farming": True, "auto_resource_upgrade": "true"})
        self.assertTrue(config.auto_farm)
        self.assertTrue(config.auto_upgrade_resources)

    def test_current_toggle_name_wins_over_legacy(self):
        config = EngineConfig.from_dict({"auto_farming": True, "auto_farm": False})
        self.assertFalse(config.auto_farm)

    def test_invalid_values_are_coerced(self):
        with self.assertLogs("decision.configmanager", level="WARNING"):
            config = EngineConfig.from_dict({"tribe": "egyptian", "server_speed": 50})
        self.assertEqual(config.tribe, "roman")
        self.assertEqual(config.server_speed, 10)
        self.assertEqual(EngineConfig.from_dict({"server_speed": "fast"}).server_speed, 1)

    def test_upgrade_targets(self):
        with self.assertLogs("decision.configmanager", level="WARNING"):
            config = EngineConfig.from_dict({"upgrade_targets": {
                "4": {"target_level": 25},
                "24": {"is_new_build": True, "build_gid": "19"},
                "x": {"target_level": 3},
            }})
        self.assertEqual(set(config.upgrade_targets), {4, 24})
        self.assertEqual(config.upgrade_targets[4], UpgradeTarget(enabled=True, target_level=20))
        self.assertEqual(config.upgrade_targets[24].build_gid, 19)
        self.assertTrue(config.upgrade_targets[24].is_new_build)

    def test_game_day_from_server_start(self):
        config = EngineConfig.from_dict({"server_start_date": "2026-10-01"}, today=date(2026, 10, 19))
        self.assertEqual(config.game_day, 19)

    def test_explicit_game_day_wins(self):
        config = EngineConfig.from_dict({"game_day": 40, "server_start_date": "2026-10-01"},
                                        today=date(2026, 10, 19))
        self.assertEqual(config.game_day, 40)

    def test_troop_threshold_is_merged(self):
        config = EngineConfig.from_dict({"troops": {"default_troop_type": "phalanx",
                                                    "min_resource_threshold": {"crop": 50}}})
        self.assertEqual(config.troops.default_troop_type, "phalanx")
        self.assertEqual(config.troops.train_count, 5)
        self.assertEqual(config.troops.min_resource_threshold,
                         {"wood": 500, "clay": 500, "iron": 500, "crop": 50})

    def test_farm_and_origin(self):
        config = EngineConfig.from_dict({
            "village_x": "12", "village_y": -4,
            "farm": {"use_rally_point_farm_list": False, "targets": [{"x": 1, "y": 2}, "junk"],
                     "default_troops": {"t1": "20"}},
        })
        self.assertEqual(config.origin, {"x": 12, "y": -4})
        self.assertFalse(config.farm.use_rally_point_farm_list)
        self.assertEqual(config.farm.targets, [{"x": 1, "y": 2}])
        self.assertEqual(config.farm.default_troops, {"t1": 20})


if __name__ == '__main__':
    unittest.main()
