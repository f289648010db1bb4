import unittest
from unittest.mock import MagicMock

from strategy.build_optimizer import BuildOptimizer
from strategy.military_planner import MilitaryPlanner
from strategy.strategy_engine import StrategyEngine
from tests.helpers import make_state


class TestPhaseDetection(unittest.TestCase):

    def setUp(self):
        self.engine = StrategyEngine()

    def test_fresh_village_is_early(self):
        result = self.engine.detect_phase(game_day=1)
        self.assertEqual(result["phase"], "early")
        self.assertEqual(result["confidence"], 100)

    def test_developed_account_is_late(self):
        result = self.engine.detect_phase(game_day=100, village_count=6, total_population=1000,
                                          army_size=600, highest_building_level=16)
        self.assertEqual(result["phase"], "late")

    def test_server_speed_normalizes_game_day(self):
        # day 90 on a 3x server counts as day 30
        result = self.engine.detect_phase(game_day=90, server_speed=3, village_count=3,
                                          total_population=500, army_size=100, highest_building_level=10)
        self.assertEqual(result["phase"], "mid")
        self.assertEqual(result["indicators"]["normalized_day"], 30)

    def test_phase_strategy_is_tribe_specific(self):
        strategy = self.engine.get_phase_strategy("early", "teuton")
        self.assertEqual(strategy["focus"], "ECONOMY")
        self.assertIn("Build small raiding force (clubswinger)", strategy["priorities"])
        self.assertEqual(strategy["tips"][0], "Use clubswingers for early farming - cheap and high carry")

    def test_unknown_phase_uses_mid_template(self):
        self.assertEqual(self.engine.get_phase_strategy("endgame", "roman")["focus"], "BALANCED")


class TestExpansionAndProjection(unittest.TestCase):

    def setUp(self):
        self.engine = StrategyEngine()

    def test_expansion_ready(self):
        state = make_state(
            resources={"wood": 25000, "clay": 25000, "iron": 25000, "crop": 25000},
            buildings=[{"slot_id": 30, "gid": 25, "level": 10}],
        )
        result = self.engine.evaluate_expansion(state, "mid", 1)
        self.assertTrue(result["ready"])
        self.assertEqual(result["readiness_score"], 100)
        self.assertEqual(result["requirements"], [])

    def test_expansion_not_ready(self):
        state = make_state(resources={"wood": 0, "clay": 0, "iron": 0, "crop": 0},
                           production={"wood": 0, "clay": 0, "iron": 0, "crop": 0})
        result = self.engine.evaluate_expansion(state, "early", 1)
        self.assertFalse(result["ready"])
        self.assertEqual(result["readiness_score"], 20)
        self.assertEqual(result["estimated_time_hours"], float("inf"))

    def test_project_resources(self):
        resources = {"wood": 1000, "clay": 1000, "iron": 1000, "crop": 1000}
        production = {"wood": 100, "clay": 0, "iron": 0, "crop": 0}

        result = self.engine.project_resources(resources, production, 6, {"warehouse": 1, "granary": 1})

        self.assertEqual(result["projected"]["wood"], 1220)
        self.assertEqual(result["wasted_resources"]["wood"], 380)
        self.assertEqual(result["overflow_at"]["wood"], 2.2)
        self.assertIsNone(result["overflow_at"]["clay"])
        self.assertEqual(result["total_wasted"], 380)

    def test_compare_build_orders(self):
        state = make_state()
        order_a = [{"building": "woodcutter", "from_level": 5}]
        order_b = [{"building": "main_building", "from_level": 1}]

        result = self.engine.compare_build_orders(state, order_a, order_b)

        self.assertEqual(result["winner"], "A")
        self.assertEqual(result["advantage_per_hour"], 17)
        self.assertEqual(result["explanation"], "Order A produces 17 more resources/hr")

    def test_identical_orders_tie(self):
        order = [{"building": "clay_pit", "from_level": 0}]
        result = self.engine.compare_build_orders(make_state(), order, list(order))
        self.assertEqual(result["winner"], "TIE")


class TestAnalyze(unittest.TestCase):

    def setUp(self):
        self.engine = StrategyEngine(BuildOptimizer(), MilitaryPlanner())
        self.state = make_state(
            capacity={"warehouse": 1000, "granary": 1000},
            resources={"wood": 950, "clay": 300, "iron": 300, "crop": 300},
            resource_fields=[
                {"slot_id": 1, "kind": "wood", "level": 1},
                {"slot_id": 2, "kind": "clay", "level": 1},
            ],
            buildings=[
                {"slot_id": 19, "gid": 15, "level": 1},
                {"slot_id": 20, "gid": 10, "level": 1},
            ],
        )

    def test_analyze_returns_every_section(self):
        result = self.engine.analyze(self.state, tribe="gaul", game_day=3)
        for key in ("phase_detection", "phase_strategy", "build_ranking", "build_order",
                    "resource_optimization", "risk_assessment", "troop_strategy",
                    "farming_analysis", "expansion_timing", "recommendations"):
            self.assertIn(key, result)
        self.assertEqual(result["phase_detection"]["phase"], "early")
        self.assertIn("projection_6h", result["resource_optimization"])
        self.assertEqual(result["troop_strategy"]["primary_unit"], "theutates_thunder")
        self.assertIsNone(result["farming_analysis"])

    def test_storage_overflow_is_the_first_recommendation(self):
        recs = self.engine.analyze(self.state)["recommendations"]
        self.assertEqual(recs[0]["priority"], 1)
        self.assertEqual(recs[0]["category"], "storage")
        self.assertEqual(recs[0]["action"], "URGENT: Upgrade Warehouse")
        self.assertLessEqual(len(recs), 10)
        self.assertEqual([r["rank"] for r in recs], list(range(1, len(recs) + 1)))

    def test_farming_analysis_when_farm_data_given(self):
        result = self.engine.analyze(self.state, farm_data={"total_raids": 10, "total_loot": 1000,
                                                            "raids_per_day": 24})
        self.assertEqual(result["farming_analysis"]["loot_per_hour"], 100)

    def test_analyze_without_collaborators(self):
        engine = StrategyEngine()
        result = engine.analyze(self.state)
        self.assertEqual(result["build_ranking"], [])
        self.assertEqual(result["risk_assessment"]["risk_level"], "UNKNOWN")
        self.assertIsNone(result["troop_strategy"])

    def test_collaborators_are_called_with_detected_phase(self):
        # Arrange
        optimizer = MagicMock()
        optimizer.rank_upgrades.return_value = []
        optimizer.suggest_build_order.return_value = []
        optimizer.detect_overflow.return_value = {}
        optimizer.get_bottleneck.return_value = {}
        engine = StrategyEngine(build_optimizer=optimizer)

        # Act
        engine.analyze(self.state, game_day=100, village_count=6, total_population=1000, army_size=600)

        # Assert
        optimizer.rank_upgrades.assert_called_once_with(self.state, "late", 20)
        optimizer.suggest_build_order.assert_called_once_with(self.state, "late", 5)


if __name__ == '__main__':
    unittest.main()
