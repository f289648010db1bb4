import unittest

from strategy.gamestate import GameState
from tests.helpers import get_mock_data, make_state


class TestGameState(unittest.TestCase):

    def setUp(self):
        self.state = GameState.from_dict(get_mock_data("village_snapshot.json"))

    def test_parses_village_snapshot(self):
        self.assertEqual(self.state.village_id, "1001")
        self.assertEqual(self.state.resources["wood"], 1500)
        self.assertEqual(len(self.state.resource_fields), 6)
        self.assertEqual(len(self.state.buildings), 7)
        self.assertTrue(self.state.resource_fields[4].is_upgrading)
        self.assertEqual(self.state.resource_fields[0].building_key, "woodcutter")

    def test_building_kind_resolves_to_gid(self):
        barracks = self.state.building_in_slot(25)
        self.assertEqual(barracks.gid, 19)
        self.assertEqual(barracks.key, "barracks")
        self.assertFalse(barracks.is_empty)

    def test_derived_views(self):
        self.assertEqual(self.state.first_empty_slot(), 24)
        self.assertEqual(self.state.storage_levels(), (5, 4))
        self.assertEqual(self.state.capacity_for("wood"), 3100)
        self.assertEqual(self.state.capacity_for("crop"), 2600)
        self.assertEqual(self.state.army_size, 15)
        self.assertEqual(self.state.main_building_level, 3)
        self.assertEqual(self.state.max_building_level, 5)

    def test_hero_and_status(self):
        self.assertTrue(self.state.hero.is_home)
        self.assertTrue(self.state.hero.has_adventure)
        self.assertEqual(self.state.hero.adventure_count, 2)
        self.assertEqual(self.state.construction_queue.max_count, 2)
        self.assertFalse(self.state.construction_queue.is_full)
        self.assertTrue(self.state.logged_in)
        self.assertFalse(self.state.captcha_present)

    def test_empty_snapshot(self):
        state = GameState.from_dict(None)
        self.assertIsNone(state.village_id)
        self.assertEqual(state.resources, {"wood": 0, "clay": 0, "iron": 0, "crop": 0})
        self.assertEqual(state.buildings, [])
        self.assertIsNone(state.first_empty_slot())

    def test_capacity_falls_back_to_storage_levels(self):
        # Arrange
        state = make_state(storage={"warehouse": 3})

        # Act / Assert
        self.assertEqual(state.capacity_for("wood"), 2120)
        self.assertEqual(state.capacity_for("crop"), 1220)

    def test_queue_items_accept_seconds(self):
        state = make_state(construction_queue={
            "count": 1,
            "max_count": 1,
            "items": [{"remaining_sec": 90, "cost": {"wood": 100, "clay": 50}}],
        })
        item = state.construction_queue.items[0]
        self.assertEqual(item.remaining_ms, 90000)
        self.assertEqual(item.cost, {"wood": 100, "clay": 50, "iron": 0, "crop": 0})
        self.assertTrue(state.construction_queue.is_full)

    def test_malformed_values_parse_to_zero(self):
        state = make_state(resources={"wood": "abc", "clay": None, "iron": 5, "crop": "7"})
        self.assertEqual(state.resources, {"wood": 0, "clay": 0, "iron": 5, "crop": 7})

    def test_can_afford(self):
        state = make_state()
        self.assertTrue(state.can_afford({"wood": 1000, "clay": 10}))
        self.assertFalse(state.can_afford({"crop": 1001}))


if __name__ == '__main__':
    unittest.main()
