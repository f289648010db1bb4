"""
This module contains the build optimizer: ROI scoring for resource fields,
category utility scoring for village buildings, overflow and bottleneck
detection and a greedy multi-step build order planner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from strategy.candidates import BuildingCandidate, ResourceFieldCandidate, UpgradeCandidate
from strategy.game_data import GameData, MAX_LEVEL, RESOURCE_TYPES
from strategy.gamestate import GameState


PHASE_FIELD_MULT = {"early": 1.5, "mid": 1.0, "late": 0.6}


@dataclass
class SimulationState:
    """
    The parts of a village that change while planning several upgrades ahead.
    Built once from a snapshot and updated in place; resources are shared
    with the snapshot and never written.
    """
    resources: Dict[str, int]
    production: Dict[str, int]
    # slot -> [building_key, level, is_upgrading]
    fields: Dict[int, list] = field(default_factory=dict)
    buildings: Dict[int, list] = field(default_factory=dict)
    warehouse_capacity: int = 0
    granary_capacity: int = 0

    @classmethod
    def from_game_state(cls, state: GameState) -> "SimulationState":
        sim = cls(
            resources=state.resources,
            production=dict(state.production),
            warehouse_capacity=state.capacity_for("wood"),
            granary_capacity=state.capacity_for("crop"),
        )
        for res_field in state.resource_fields:
            if res_field.building_key:
                sim.fields[res_field.slot_id] = [res_field.building_key, res_field.level, res_field.is_upgrading]
        for building in state.buildings:
            key = building.key
            if key and not building.is_empty:
                sim.buildings[building.slot_id] = [key, building.level, building.is_upgrading]
        return sim


class BuildOptimizer:
    """
    Scores every upgrade available in a village and plans the next few builds.
    """
    def __init__(self, game_data=GameData):
        self.logger = logging.getLogger("BuildOptimizer")
        self.game_data = game_data

    # ---- Scoring ----

    def resource_field_roi(self, from_level: int, building_key: str) -> dict:
        """
        Payback time of a field upgrade: hours of the extra production needed
        to earn back its total cost.
        """
        building_key = self.game_data.FIELD_KEYS.get(building_key, building_key)
        cost = self.game_data.upgrade_cost(building_key, from_level)
        total = self.game_data.total_cost(cost)
        gain = self.game_data.production_gain(from_level)

        if gain <= 0:
            return {"payback_hours": float("inf"), "roi": 0.0, "cost": cost, "production_gain": 0}

        payback = total / gain
        return {
            "payback_hours": round(payback, 1),
            "roi": round(1 / payback, 3) if payback > 0 else 0.0,
            "cost": cost,
            "production_gain": gain,
        }

    def building_utility_score(self, building_key: str, from_level: int, state, phase: str) -> dict:
        """
        Heuristic value per resource spent for a non-field building. `state`
        may be a GameState or a SimulationState.
        """
        sim = state if isinstance(state, SimulationState) else SimulationState.from_game_state(state)
        cost = self.game_data.upgrade_cost(building_key, from_level)
        total = self.game_data.total_cost(cost)
        if total <= 0:
            return {"score": 0.0, "reason": "invalid", "cost": cost}

        category = self.game_data.category(building_key)
        if category is None:
            return {"score": 0.0, "reason": "unknown building", "cost": cost}

        if category == "storage":
            urgency = self._overflow_urgency(sim, building_key)
            score = urgency * 100 / total
            reason = "CRITICAL: storage overflow imminent" if urgency > 0.8 else "prevent resource waste"

        elif category == "infra":
            if building_key == "main_building":
                future_builds = {"early": 40, "mid": 20}.get(phase, 10)
                time_saved = future_builds * 3000 * 0.035
                score = time_saved / total * 10
                reason = "speeds up all future construction"
            else:
                score = 5 / total
                reason = "infrastructure"

        elif category == "military":
            phase_mult = {"early": 0.3, "mid": 1.0}.get(phase, 1.5)
            score = 10 * phase_mult / total
            reason = "war preparation" if phase == "late" else "military capability"

        elif category == "defense":
            if building_key == "wall":
                bonus = self.game_data.wall_bonus_percent(from_level + 1) - self.game_data.wall_bonus_percent(from_level)
                score = bonus * (0.5 if phase == "early" else 1.0) / total * 100
                reason = f"+{bonus}% defense bonus from wall"
            else:
                score = 5 * (0.8 if phase == "early" else 0.3) / total
                reason = "resource protection"

        elif category == "expansion":
            phase_mult = {"early": 1.5, "mid": 1.0}.get(phase, 0.3)
            score = 15 * phase_mult / total
            reason = "expansion capability"

        elif category == "trade":
            score = 8 * (0.2 if phase == "early" else 0.8) / total
            reason = "trading capability"

        elif category == "bonus":
            resource = self.game_data.BONUS_RESOURCES.get(building_key)
            bonus_gain = sim.production.get(resource, 0) * self.game_data.BONUS_BUILDING_PER_LEVEL
            score = bonus_gain / total
            reason = f"+5% production ({round(bonus_gain)}/hr gain)"

        else:
            score = 1 / total
            reason = "general upgrade"

        return {"score": round(score, 4), "reason": reason, "cost": cost}

    def rank_upgrades(self, state, phase: str, count: int = 10) -> List[UpgradeCandidate]:
        """
        Scores every field and building that can be upgraded right now and
        returns the best `count`, highest score first, with 1-based ranks.
        """
        sim = state if isinstance(state, SimulationState) else SimulationState.from_game_state(state)
        candidates: List[UpgradeCandidate] = []
        phase_mult = PHASE_FIELD_MULT.get(phase, 0.6)

        for slot, (key, level, upgrading) in sim.fields.items():
            if upgrading or level >= MAX_LEVEL:
                continue
            roi = self.resource_field_roi(level, key)
            candidates.append(ResourceFieldCandidate(
                building_key=key,
                slot=slot,
                from_level=level,
                score=roi["roi"] * phase_mult,
                cost=roi["cost"],
                reason=f"ROI: {roi['payback_hours']}h payback, +{roi['production_gain']}/hr",
                payback_hours=roi["payback_hours"],
            ))

        for slot, (key, level, upgrading) in sim.buildings.items():
            if upgrading or level >= MAX_LEVEL:
                continue
            utility = self.building_utility_score(key, level, sim, phase)
            candidates.append(BuildingCandidate(
                building_key=key,
                slot=slot,
                from_level=level,
                score=utility["score"],
                cost=utility["cost"],
                reason=utility["reason"],
            ))

        for candidate in candidates:
            candidate.affordable = all(sim.resources.get(res, 0) >= candidate.cost[res] for res in RESOURCE_TYPES)

        candidates.sort(key=lambda c: c.score, reverse=True)
        ranked = candidates[:count]
        for i, candidate in enumerate(ranked):
            candidate.rank = i + 1
        return ranked

    # ---- Analysis ----

    def detect_overflow(self, state: GameState) -> Dict[str, dict]:
        """Hours until each resource fills its storage, with urgency flags."""
        result = {}
        for res in RESOURCE_TYPES:
            current = state.resources.get(res, 0)
            production = state.production.get(res, 0)
            capacity = state.capacity_for(res)
            hours_until_full = (capacity - current) / production if production > 0 else float("inf")
            fill = current / capacity if capacity > 0 else 0

            result[res] = {
                "current": current,
                "capacity": capacity,
                "production": production,
                "hours_until_full": round(hours_until_full, 1),
                "fill_percent": round(fill * 100),
                "critical": hours_until_full < 2,
                "warning": hours_until_full < 4,
            }
        return result

    def get_bottleneck(self, state: GameState) -> dict:
        production = state.production
        bottleneck = min(RESOURCE_TYPES, key=lambda res: production.get(res, 0))
        total = sum(production.get(res, 0) for res in RESOURCE_TYPES)
        ratios = {
            res: round(production.get(res, 0) / total * 100) if total > 0 else 25
            for res in RESOURCE_TYPES
        }
        return {
            "bottleneck": bottleneck,
            "production": dict(production),
            "ratios": ratios,
            "advice": f"Focus upgrades on {bottleneck} ({ratios[bottleneck]}% of total production)",
        }

    # ---- Planning ----

    def suggest_build_order(self, state: GameState, phase: str, steps: int = 5) -> List[dict]:
        """
        Greedy plan: take the top ranked upgrade, apply it to the simulation
        and re-rank, `steps` times.
        """
        sim = SimulationState.from_game_state(state)
        order = []

        for step in range(steps):
            ranked = self.rank_upgrades(sim, phase, 1)
            if not ranked:
                break
            best = ranked[0]
            order.append({
                "step": step + 1,
                "action": best.kind,
                "building": best.building_key,
                "slot": best.slot,
                "from_level": best.from_level,
                "to_level": best.to_level,
                "score": best.score,
                "reason": best.reason,
            })
            self.apply_upgrade(sim, best)

        self.logger.debug("Suggested build order (%s): %s", phase, [s["building"] for s in order])
        return order

    def apply_upgrade(self, sim: SimulationState, candidate: UpgradeCandidate) -> None:
        """Applies one upgrade to the simulation state in place."""
        slots = sim.fields if candidate.kind == "upgrade_resource" else sim.buildings
        entry = slots.get(candidate.slot)
        if entry is None:
            return
        entry[1] += 1

        if candidate.kind == "upgrade_resource":
            resource = self._field_resource(candidate.building_key)
            if resource:
                sim.production[resource] = sim.production.get(resource, 0) + self.game_data.production_gain(candidate.from_level)
        elif candidate.building_key == "warehouse":
            sim.warehouse_capacity = self.game_data.storage_capacity(entry[1])
        elif candidate.building_key == "granary":
            sim.granary_capacity = self.game_data.storage_capacity(entry[1])

    # ---- Internal helpers ----

    def _field_resource(self, building_key: str) -> Optional[str]:
        for res, key in self.game_data.FIELD_KEYS.items():
            if key == building_key:
                return res
        return None

    def _overflow_urgency(self, sim: SimulationState, building_key: str) -> float:
        if building_key == "warehouse":
            peak = max(sim.resources.get(res, 0) for res in ("wood", "clay", "iron"))
            return peak / sim.warehouse_capacity if sim.warehouse_capacity > 0 else 0
        if building_key == "granary":
            return sim.resources.get("crop", 0) / sim.granary_capacity if sim.granary_capacity > 0 else 0
        return 0
