import unittest

from strategy.game_data import GameData
from strategy.gamestate import Building, ResourceField


class TestGameDataCurves(unittest.TestCase):

    def test_production_is_clamped_to_valid_levels(self):
        self.assertEqual(GameData.production(0), 2)
        self.assertEqual(GameData.production(20), 2450)
        self.assertEqual(GameData.production(25), 2450)
        self.assertEqual(GameData.production(-3), 2)

    def test_storage_capacity(self):
        self.assertEqual(GameData.storage_capacity(1), 1220)
        self.assertEqual(GameData.storage_capacity(7), 4170)

    def test_production_gain(self):
        self.assertEqual(GameData.production_gain(0), 3)
        self.assertEqual(GameData.production_gain(9), 55)
        self.assertEqual(GameData.production_gain(20), 0)

    def test_wall_bonus_percent(self):
        self.assertEqual(GameData.wall_bonus_percent(0), 0)
        self.assertEqual(GameData.wall_bonus_percent(10), 37)


class TestGameDataCosts(unittest.TestCase):

    def test_upgrade_cost_at_level_zero_is_base_cost(self):
        self.assertEqual(GameData.upgrade_cost("woodcutter", 0),
                         {"wood": 40, "clay": 100, "iron": 50, "crop": 60})

    def test_upgrade_cost_grows_by_multiplier(self):
        # 40*1.28=51.2, 100*1.28=128, 50*1.28=64, 60*1.28=76.8
        self.assertEqual(GameData.upgrade_cost("woodcutter", 1),
                         {"wood": 51, "clay": 128, "iron": 64, "crop": 77})

    def test_each_level_costs_previous_times_multiplier(self):
        for key in GameData.BUILDINGS:
            for level in range(20):
                previous = GameData.upgrade_cost(key, level)
                current = GameData.upgrade_cost(key, level + 1)
                for res, amount in previous.items():
                    with self.subTest(building=key, level=level, resource=res):
                        # both sides are rounded, so they may drift by one or two
                        self.assertLessEqual(abs(current[res] - round(amount * GameData.COST_MULT)), 2)

    def test_unknown_building_costs_nothing(self):
        self.assertEqual(GameData.upgrade_cost("moat", 3),
                         {"wood": 0, "clay": 0, "iron": 0, "crop": 0})

    def test_total_cost(self):
        self.assertEqual(GameData.total_cost({"wood": 40, "clay": 100, "iron": 50, "crop": 60}), 250)
        self.assertEqual(GameData.total_cost(None), 0)

    def test_construction_time(self):
        # 500s base, main building level 10 saves 35%
        self.assertEqual(GameData.construction_time_seconds("cranny", 0, main_building_level=10), 325)
        self.assertEqual(GameData.construction_time_seconds("cranny", 0, main_building_level=10, server_speed=5), 65)
        self.assertEqual(GameData.construction_time_seconds("moat", 0), 0)


class TestGameDataIdentifiers(unittest.TestCase):

    def test_gid_to_key(self):
        self.assertEqual(GameData.gid_to_key(23), "cranny")
        self.assertEqual(GameData.gid_to_key("10"), "warehouse")
        self.assertEqual(GameData.gid_to_key(32), "wall")
        self.assertIsNone(GameData.gid_to_key("abc"))

    def test_key_to_gid_and_names(self):
        self.assertEqual(GameData.key_to_gid("warehouse"), 10)
        self.assertEqual(GameData.key_to_gid("moat"), 0)
        self.assertEqual(GameData.building_name(23), "Cranny")
        self.assertEqual(GameData.building_name(99), "GID99")

    def test_unit_upkeep_defaults_to_one(self):
        self.assertEqual(GameData.unit_upkeep("equites_imperatoris"), 3)
        self.assertEqual(GameData.unit_upkeep("dragon"), 1)

    def test_input_name_round_trip(self):
        self.assertEqual(GameData.input_name("gaul", "theutates_thunder"), "t4")
        self.assertEqual(GameData.unit_key("gaul", "t4"), "theutates_thunder")
        self.assertIsNone(GameData.unit_key("roman", "x"))
        self.assertIsNone(GameData.unit_key("roman", "t11"))
        self.assertIsNone(GameData.input_name("roman", "phalanx"))

    def test_troop_options_filtered_by_building(self):
        options = GameData.troop_options("roman", "stable")
        self.assertEqual([o["unit_key"] for o in options],
                         ["equites_legati", "equites_imperatoris", "equites_caesaris"])
        self.assertEqual([o["value"] for o in options], ["t4", "t5", "t6"])

    def test_troop_options_include_units_without_stats(self):
        options = GameData.troop_options("teuton")
        self.assertEqual(len(options), 10)
        self.assertEqual(options[7]["building"], "workshop")


class TestPrerequisites(unittest.TestCase):

    def test_missing_requirement_is_reported(self):
        # Barracks need main building 3 and a rally point
        report = GameData.check_prerequisites(19, [Building(slot_id=26, gid=15, level=3)], [])
        self.assertFalse(report.met)
        self.assertEqual(report.missing, [{"gid": 16, "need": 1, "have": 0}])

    def test_requirements_met(self):
        buildings = [Building(slot_id=26, gid=15, level=3), Building(slot_id=39, gid=16, level=1)]
        self.assertTrue(GameData.check_prerequisites(19, buildings, []).met)

    def test_resource_field_requirements_use_field_levels(self):
        buildings = [Building(slot_id=26, gid=15, level=5)]
        fields = [ResourceField(slot_id=2, kind="crop", level=5)]
        self.assertTrue(GameData.check_prerequisites(8, buildings, fields).met)

    def test_building_without_requirements(self):
        self.assertTrue(GameData.check_prerequisites(10).met)
        self.assertTrue(GameData.check_prerequisites("junk").met)


if __name__ == '__main__':
    unittest.main()
