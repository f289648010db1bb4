import unittest

from strategy.build_optimizer import BuildOptimizer, SimulationState
from strategy.candidates import BuildingCandidate, ResourceFieldCandidate
from tests.helpers import make_state


class TestBuildOptimizerScoring(unittest.TestCase):

    def setUp(self):
        self.optimizer = BuildOptimizer()

    def test_resource_field_roi(self):
        roi = self.optimizer.resource_field_roi(0, "woodcutter")
        # 250 resources for +3/hr
        self.assertEqual(roi["payback_hours"], 83.3)
        self.assertEqual(roi["roi"], 0.012)
        self.assertEqual(roi["production_gain"], 3)

    def test_resource_field_roi_accepts_resource_kind(self):
        self.assertEqual(self.optimizer.resource_field_roi(0, "wood"), self.optimizer.resource_field_roi(0, "woodcutter"))

    def test_max_level_field_has_no_return(self):
        roi = self.optimizer.resource_field_roi(20, "crop_field")
        self.assertEqual(roi["roi"], 0.0)
        self.assertEqual(roi["payback_hours"], float("inf"))

    def test_storage_score_flags_imminent_overflow(self):
        # Arrange
        sim = SimulationState(
            resources={"wood": 900, "clay": 100, "iron": 100, "crop": 100},
            production={"wood": 10, "clay": 10, "iron": 10, "crop": 10},
            warehouse_capacity=1000,
            granary_capacity=1000,
        )

        # Act
        result = self.optimizer.building_utility_score("warehouse", 1, sim, "early")

        # Assert
        self.assertEqual(result["reason"], "CRITICAL: storage overflow imminent")
        self.assertGreater(result["score"], 0)

    def test_main_building_score_depends_on_phase(self):
        state = make_state()
        early = self.optimizer.building_utility_score("main_building", 0, state, "early")
        late = self.optimizer.building_utility_score("main_building", 0, state, "late")
        # 40 future builds * 3000s * 3.5% over a 190 resource cost
        self.assertAlmostEqual(early["score"], round(4200 / 190 * 10, 4))
        self.assertGreater(early["score"], late["score"])

    def test_wall_score_uses_bonus_delta(self):
        result = self.optimizer.building_utility_score("wall", 0, make_state(), "mid")
        self.assertEqual(result["reason"], "+3% defense bonus from wall")

    def test_unknown_building_scores_zero(self):
        result = self.optimizer.building_utility_score("moat", 0, make_state(), "mid")
        self.assertEqual(result["score"], 0.0)


class TestBuildOptimizerRanking(unittest.TestCase):

    def setUp(self):
        self.optimizer = BuildOptimizer()
        self.state = make_state(
            resources={"wood": 300, "clay": 300, "iron": 300, "crop": 300},
            resource_fields=[
                {"slot_id": 1, "kind": "wood", "level": 0},
                {"slot_id": 2, "kind": "clay", "level": 8},
                {"slot_id": 3, "kind": "iron", "level": 1, "is_upgrading": True},
                {"slot_id": 4, "kind": "crop", "level": 20},
            ],
            buildings=[
                {"slot_id": 19, "gid": 15, "level": 1},
                {"slot_id": 20, "gid": 10, "level": 1},
                {"slot_id": 21, "gid": 0, "is_empty": True},
            ],
        )

    def test_rank_upgrades_skips_upgrading_and_maxed_slots(self):
        ranked = self.optimizer.rank_upgrades(self.state, "early")
        slots = {c.slot for c in ranked}
        self.assertEqual(slots, {1, 2, 19, 20})

    def test_rank_upgrades_orders_by_score_with_ranks(self):
        ranked = self.optimizer.rank_upgrades(self.state, "early")
        scores = [c.score for c in ranked]
        self.assertEqual(scores, sorted(scores, reverse=True))
        self.assertEqual([c.rank for c in ranked], [1, 2, 3, 4])

    def test_rank_upgrades_tags_variants_and_affordability(self):
        ranked = {c.slot: c for c in self.optimizer.rank_upgrades(self.state, "mid")}
        self.assertIsInstance(ranked[1], ResourceFieldCandidate)
        self.assertIsInstance(ranked[19], BuildingCandidate)
        self.assertEqual(ranked[1].kind, "upgrade_resource")
        self.assertEqual(ranked[19].kind, "upgrade_building")
        # woodcutter 0->1 costs 40/100/50/60, clay pit 8->9 needs 576 wood
        self.assertTrue(ranked[1].affordable)
        self.assertFalse(ranked[2].affordable)

    def test_rank_upgrades_respects_count(self):
        self.assertEqual(len(self.optimizer.rank_upgrades(self.state, "early", count=2)), 2)

    def test_detect_overflow(self):
        state = make_state(
            capacity={"warehouse": 1000, "granary": 1000},
            resources={"wood": 900, "clay": 100, "iron": 100, "crop": 100},
            production={"wood": 100, "clay": 100, "iron": 100, "crop": 0},
        )
        overflow = self.optimizer.detect_overflow(state)
        self.assertEqual(overflow["wood"]["hours_until_full"], 1.0)
        self.assertEqual(overflow["wood"]["fill_percent"], 90)
        self.assertTrue(overflow["wood"]["critical"])
        self.assertFalse(overflow["clay"]["warning"])
        self.assertEqual(overflow["crop"]["hours_until_full"], float("inf"))

    def test_get_bottleneck(self):
        state = make_state(production={"wood": 10, "clay": 20, "iron": 20, "crop": 20})
        bottleneck = self.optimizer.get_bottleneck(state)
        self.assertEqual(bottleneck["bottleneck"], "wood")
        self.assertEqual(bottleneck["ratios"]["wood"], 14)

    def test_suggest_build_order_leaves_snapshot_untouched(self):
        # Act
        order = self.optimizer.suggest_build_order(self.state, "early", steps=3)

        # Assert
        self.assertEqual([s["step"] for s in order], [1, 2, 3])
        for step in order:
            self.assertEqual(step["to_level"], step["from_level"] + 1)
        self.assertEqual([f.level for f in self.state.resource_fields], [0, 8, 1, 20])
        self.assertEqual(self.state.production["wood"], 100)

    def test_apply_upgrade_updates_simulation(self):
        sim = SimulationState.from_game_state(self.state)
        field = ResourceFieldCandidate("woodcutter", 1, 0, 0.1, {}, "")
        warehouse = BuildingCandidate("warehouse", 20, 1, 0.1, {}, "")

        self.optimizer.apply_upgrade(sim, field)
        self.optimizer.apply_upgrade(sim, warehouse)

        self.assertEqual(sim.fields[1][1], 1)
        self.assertEqual(sim.production["wood"], 103)
        self.assertEqual(sim.buildings[20][1], 2)
        self.assertEqual(sim.warehouse_capacity, 1660)


if __name__ == '__main__':
    unittest.main()
