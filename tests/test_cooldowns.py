import unittest
from unittest.mock import patch

from decision.cooldowns import CooldownTable


class TestCooldownTable(unittest.TestCase):

    def setUp(self):
        self.table = CooldownTable()

    @patch('time.time')
    def test_cooldown_expires(self, mock_time):
        mock_time.return_value = 1000.0
        self.table.set("send_farm", 60000)
        self.assertTrue(self.table.is_cooling_down("send_farm"))
        self.assertEqual(self.table.remaining_ms("send_farm"), 60000)

        mock_time.return_value = 1061.0
        self.assertFalse(self.table.is_cooling_down("send_farm"))
        # expired entries are dropped on lookup
        self.assertEqual(self.table.get_state(), {})

    @patch('time.time', return_value=1000.0)
    def test_slot_cooldown_is_separate(self, mock_time):
        self.table.set("upgrade_building", 60000, slot=22)
        self.assertFalse(self.table.is_cooling_down("upgrade_building"))
        self.assertTrue(self.table.is_cooling_down("upgrade_building", 22))
        self.assertFalse(self.table.is_cooling_down("upgrade_building", 23))
        self.assertIn("upgrade_building:22", self.table.get_state())

    @patch('time.time')
    def test_table_is_pruned_when_large(self, mock_time):
        # Arrange
        mock_time.return_value = 1000.0
        for slot in range(20):
            self.table.set("upgrade_resource", 1000, slot=slot)
        self.assertEqual(len(self.table.get_state()), 20)

        # Act
        mock_time.return_value = 1002.0
        self.table.set("send_farm", 1000)

        # Assert
        self.assertEqual(list(self.table.get_state()), ["send_farm"])

    @patch('time.time', return_value=1000.0)
    def test_clear_kind_removes_slot_entries(self, mock_time):
        self.table.set("build_new", 60000)
        self.table.set("build_new", 60000, slot=24)
        self.table.set("send_farm", 60000)

        self.table.clear("build_new")

        self.assertEqual(list(self.table.get_state()), ["send_farm"])

    @patch('time.time', return_value=1000.0)
    def test_state_round_trip(self, mock_time):
        self.table.set("send_hero_adventure", 5000)
        restored = CooldownTable()
        restored.load_state(self.table.get_state())
        self.assertTrue(restored.is_cooling_down("send_hero_adventure"))

    def test_load_state_ignores_bad_input(self):
        self.table.load_state(None)
        with self.assertLogs("CooldownTable", level="WARNING"):
            self.table.load_state(["not", "a", "dict"])
        self.table.load_state({"send_farm": "soon", "build_new": 5})
        self.assertEqual(self.table.get_state(), {"build_new": 5})


if __name__ == '__main__':
    unittest.main()
