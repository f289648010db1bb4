"""
This module contains the StrategyEngine, which detects the game phase and
merges the build optimizer's and military planner's output into one ranked
strategic analysis of a village.
"""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional

from strategy.game_data import GameData, RESOURCE_TYPES
from strategy.gamestate import GameState


PHASE_STRATEGIES = {
    "early": {
        "priorities": [
            "Maximize resource field upgrades (focus on ROI)",
            "Upgrade Main Building to level 10+",
            "Build Warehouse/Granary as needed to prevent overflow",
            "Start hero adventure farming",
            "Build small raiding force ({farmer})",
            "Plan for 2nd village by day 5-7 (speed-adjusted)",
        ],
        "focus": "ECONOMY",
        "avoid": ["Large military investment", "Unnecessary infrastructure", "PvP combat"],
        "tips": [
            "{tribe_tip}",
            "Upgrade lowest-level resource fields first for best ROI",
            "Keep hero on resource production bonus until level 10+",
        ],
    },
    "mid": {
        "priorities": [
            "Optimize farming operations",
            "Build balanced troop composition",
            "Upgrade resource fields to 8-10",
            "Build bonus buildings (sawmill, brickyard, etc.) at resource level 10",
            "Expand to 3-5 villages",
            "Upgrade wall to level 10+",
            "Research key military upgrades at academy",
        ],
        "focus": "BALANCED",
        "avoid": ["Neglecting defense", "Over-expanding without troops", "Idle production buildings"],
        "tips": [
            "Specialize villages: one for offense, one for defense, rest for resources",
            "Farm list raids every 10-15 minutes for maximum income",
            "Start coordinating with alliance for defense operations",
        ],
    },
    "late": {
        "priorities": [
            "Full military production",
            "Alliance coordination for operations",
            "Resource funneling to hammer village",
            "Max out key buildings in capital",
            "Prepare siege units (rams, catapults)",
            "Defense coordination with alliance",
        ],
        "focus": "MILITARY",
        "avoid": ["Solo operations", "Uncoordinated attacks", "Neglecting defense on support villages"],
        "tips": [
            "Capital should be maxed resource fields with Great Barracks/Stable",
            "Coordinate hammer timing with alliance for maximum impact",
            "Keep scouts active to detect incoming attacks",
        ],
    },
}

TRIBE_TIPS = {
    "teuton": "Use clubswingers for early farming - cheap and high carry",
    "gaul": "Double cranny protection lets you save more resources",
    "roman": "Roman double build queue is your advantage - always have 2 buildings going",
}


class StrategyEngine:
    """
    Orchestrates the build optimizer and military planner into a single
    analysis with top-10 recommendations.
    """
    def __init__(self, build_optimizer=None, military_planner=None, game_data=GameData):
        self.logger = logging.getLogger("StrategyEngine")
        self.build_optimizer = build_optimizer
        self.military_planner = military_planner
        self.game_data = game_data

    # ------------------------------------------------------------------
    # Phase
    # ------------------------------------------------------------------
    def detect_phase(self, game_day=1, server_speed=1, village_count=1, total_population=0,
                     army_size=0, highest_building_level=0) -> dict:
        """
        Votes early / mid / late from five weighted indicators. Ties go to
        the earlier phase.
        """
        normalized_day = (game_day or 1) / (server_speed or 1)
        village_count = village_count or 1
        scores = {"early": 0.0, "mid": 0.0, "late": 0.0}

        def vote(value, early_below, mid_below, weight):
            if value < early_below:
                scores["early"] += weight
            elif value < mid_below:
                scores["mid"] += weight
            else:
                scores["late"] += weight

        vote(normalized_day, 20, 60, 0.4)
        vote(village_count, 2, 5, 0.2)
        vote(total_population or 0, 200, 800, 0.15)
        vote(army_size or 0, 50, 500, 0.1)
        vote(highest_building_level or 0, 8, 15, 0.15)

        if scores["early"] >= scores["mid"] and scores["early"] >= scores["late"]:
            phase = "early"
        elif scores["mid"] >= scores["late"]:
            phase = "mid"
        else:
            phase = "late"

        return {
            "phase": phase,
            "confidence": round(scores[phase] * 100),
            "indicators": {
                "normalized_day": round(normalized_day),
                "early_score": round(scores["early"] * 100),
                "mid_score": round(scores["mid"] * 100),
                "late_score": round(scores["late"] * 100),
            },
        }

    def get_phase_strategy(self, phase: str, tribe: str) -> dict:
        template = PHASE_STRATEGIES.get(phase, PHASE_STRATEGIES["mid"])
        profile = self.game_data.tribe_profile(tribe)
        farmer = profile["best_farmer"] if profile else "farmers"
        tribe_tip = TRIBE_TIPS.get(tribe, TRIBE_TIPS["roman"])
        return {
            "priorities": [p.format(farmer=farmer) for p in template["priorities"]],
            "focus": template["focus"],
            "avoid": list(template["avoid"]),
            "tips": [t.format(tribe_tip=tribe_tip) for t in template["tips"]],
        }

    # ------------------------------------------------------------------
    # Expansion
    # ------------------------------------------------------------------
    def evaluate_expansion(self, state: GameState, phase: str, current_villages: int) -> dict:
        """
        Weighted readiness checklist for founding another village; ready
        once the score reaches 0.8.
        """
        requirements = []
        score = 0.0

        residence_level = max(
            [b.level for b in state.buildings if b.gid in (25, 26)] or [0]
        )
        if residence_level >= 10:
            score += 0.3
        else:
            requirements.append(f"Need Residence/Palace level 10+ (current: {residence_level})")

        needed = {res: cost * self.game_data.SETTLERS_NEEDED for res, cost in self.game_data.SETTLER_COST.items()}
        resources = state.resources
        if all(resources.get(res, 0) >= needed[res] for res in RESOURCE_TYPES):
            score += 0.3
        else:
            deficit = {res: max(0, needed[res] - resources.get(res, 0)) for res in RESOURCE_TYPES}
            requirements.append(f"Need resources for {self.game_data.SETTLERS_NEEDED} settlers: {needed}")
            requirements.append(f"Deficit: {deficit}")

        # culture points are not observable; the first expansions are cheap
        if (current_villages or 1) < 3:
            score += 0.2
        else:
            requirements.append("May need culture points (celebrations at Town Hall)")

        total_production = sum(state.production.get(res, 0) for res in RESOURCE_TYPES)
        if total_production > 300:
            score += 0.2
        else:
            requirements.append(f"Low production ({total_production}/hr). Upgrade resource fields first.")

        max_deficit = max([needed[res] - resources.get(res, 0) for res in RESOURCE_TYPES] + [0])
        average_production = total_production / 4
        estimated_hours = max_deficit / average_production if average_production > 0 else float("inf")

        if score >= 0.8:
            advice = ["Ready to settle! Choose a 15-cropper for capital or 9-cropper for support."]
        elif score >= 0.5:
            advice = ["Almost ready. Focus on requirements above."]
        elif phase == "early":
            advice = ["Settle early for maximum advantage. Rush residence level 10."]
        else:
            advice = ["Expansion delayed. Consider trading for resources."]

        return {
            "ready": score >= 0.8,
            "readiness_score": round(score * 100),
            "requirements": requirements,
            "estimated_time_hours": round(estimated_hours, 1),
            "advice": advice,
        }

    # ------------------------------------------------------------------
    # Forward simulation
    # ------------------------------------------------------------------
    def project_resources(self, resources: Dict[str, int], production: Dict[str, int], hours: float,
                          storage_levels: Dict[str, int]) -> dict:
        """Resources after `hours`, when each overflows and how much is wasted."""
        warehouse_cap = self.game_data.storage_capacity(storage_levels.get("warehouse") or 1)
        granary_cap = self.game_data.storage_capacity(storage_levels.get("granary") or 1)

        projected, overflow_at, wasted = {}, {}, {}
        for res in RESOURCE_TYPES:
            capacity = granary_cap if res == "crop" else warehouse_cap
            current = resources.get(res, 0) or 0
            rate = production.get(res, 0) or 0
            raw = current + rate * hours
            projected[res] = min(raw, capacity)
            wasted[res] = max(0, raw - capacity)
            overflow_at[res] = round((capacity - current) / rate, 1) if rate > 0 else None

        return {
            "projected": projected,
            "overflow_at": overflow_at,
            "wasted_resources": wasted,
            "total_wasted": sum(wasted.values()),
        }

    def compare_build_orders(self, state: GameState, order_a: List[dict], order_b: List[dict],
                             horizon_hours: float = 24) -> dict:
        result_a = self._simulate_build_order(state, order_a, horizon_hours)
        result_b = self._simulate_build_order(state, order_b, horizon_hours)
        advantage = result_a["total_production_per_hour"] - result_b["total_production_per_hour"]

        if advantage > 0:
            winner = "A"
        elif advantage < 0:
            winner = "B"
        else:
            winner = "TIE"

        if abs(advantage) < 5:
            explanation = "Orders are roughly equivalent"
        else:
            explanation = f"Order {winner} produces {round(abs(advantage))} more resources/hr"

        return {
            "order_a": result_a,
            "order_b": result_b,
            "winner": winner,
            "advantage_per_hour": round(abs(advantage)),
            "explanation": explanation,
        }

    def _simulate_build_order(self, state: GameState, order: List[dict], horizon_hours: float) -> dict:
        production = dict(state.production) if any(state.production.values()) else {res: 10 for res in RESOURCE_TYPES}
        main_building_level = state.main_building_level or 1
        field_resources = {key: res for res, key in self.game_data.FIELD_KEYS.items()}
        total_build_hours = 0.0

        for step in order or []:
            building = step.get("building") or step.get("building_key")
            from_level = step.get("from_level") or 0
            total_build_hours += self.game_data.construction_time_seconds(building, from_level, main_building_level, 1) / 3600

            resource = field_resources.get(building)
            if resource:
                production[resource] = production.get(resource, 0) + self.game_data.production_gain(from_level)
            if building == "main_building":
                main_building_level += 1

        if total_build_hours > horizon_hours:
            self.logger.debug("Build order needs %.1fh, beyond the %sh horizon", total_build_hours, horizon_hours)

        return {
            "total_production_per_hour": round(sum(production.get(res, 0) for res in RESOURCE_TYPES)),
            "production": production,
            "total_build_time_hours": round(total_build_hours, 1),
        }

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------
    def analyze(self, state: GameState, tribe: str = "roman", server_speed: int = 1, game_day: int = 1,
                village_count: int = 1, total_population: int = 0, army_size: int = 0,
                threat_level: float = 0, enemies: Optional[list] = None, origin=None,
                farm_data: Optional[dict] = None, troop_costs: Optional[dict] = None) -> dict:
        """
        Runs the complete strategic analysis of one village.

        Returns:
            dict: phase detection and strategy, upgrade ranking and build
            order, overflow / bottleneck / 6h projection, risk, troop plan,
            farming grade, expansion readiness and the top-10 recommendations.
        """
        tribe = tribe or "roman"
        server_speed = server_speed or 1
        origin = origin or {"x": 0, "y": 0}

        highest_building = max([b.level for b in state.buildings] or [0])
        phase_result = self.detect_phase(
            game_day=game_day or 1,
            server_speed=server_speed,
            village_count=village_count or 1,
            total_population=total_population or state.population,
            army_size=army_size,
            highest_building_level=highest_building,
        )
        phase = phase_result["phase"]

        build_ranking, build_order, overflow, bottleneck = [], [], {}, {}
        if self.build_optimizer:
            build_ranking = self.build_optimizer.rank_upgrades(state, phase, 20)
            build_order = self.build_optimizer.suggest_build_order(state, phase, 5)
            overflow = self.build_optimizer.detect_overflow(state)
            bottleneck = self.build_optimizer.get_bottleneck(state)

        risk = {"risk_score": 0, "risk_level": "UNKNOWN"}
        troop_plan = None
        farm_analysis = None
        if self.military_planner:
            risk = self.military_planner.assess_risk(state, tribe, enemies or [], origin)
            troop_plan = self.military_planner.troop_production_plan(tribe, phase, threat_level or 0, state.resources)
            if farm_data:
                farm_analysis = self.military_planner.analyze_farming_efficiency(
                    farm_data, troop_costs or {"total_investment": 0, "upkeep_per_hour": 0}
                )

        expansion = self.evaluate_expansion(state, phase, village_count or 1)
        warehouse_level, granary_level = state.storage_levels()
        projection = self.project_resources(
            state.resources, state.production, 6, {"warehouse": warehouse_level, "granary": granary_level}
        )

        recommendations = self._compile_recommendations(build_ranking, overflow, risk, troop_plan, expansion, phase)
        self.logger.debug("Analysis: phase %s (%s%%), %d recommendations",
                          phase, phase_result["confidence"], len(recommendations))

        return {
            "timestamp": int(time.time() * 1000),
            "tribe": tribe,
            "server_speed": server_speed,
            "recommendations": recommendations,
            "build_order": build_order,
            "build_ranking": build_ranking,
            "troop_strategy": troop_plan,
            "farming_analysis": farm_analysis,
            "risk_assessment": risk,
            "resource_optimization": {
                "overflow": overflow,
                "bottleneck": bottleneck,
                "projection_6h": projection,
            },
            "expansion_timing": expansion,
            "phase_detection": phase_result,
            "phase_strategy": self.get_phase_strategy(phase, tribe),
        }

    def _compile_recommendations(self, build_ranking, overflow, risk, troop_plan, expansion, phase) -> List[dict]:
        recs = []

        for res in RESOURCE_TYPES:
            entry = (overflow or {}).get(res)
            if entry and entry["critical"]:
                recs.append({
                    "priority": 1,
                    "action": f"URGENT: Upgrade {'Granary' if res == 'crop' else 'Warehouse'}",
                    "reason": f"{res} overflow in {entry['hours_until_full']} hours ({entry['fill_percent']}% full)",
                    "category": "storage",
                })

        defense = (risk or {}).get("defense") or {}
        if risk and risk.get("risk_level") == "CRITICAL":
            recs.append({
                "priority": 1,
                "action": "EMERGENCY: Build defenses immediately",
                "reason": defense.get("recommendation") or f"Extreme threat detected. Risk score: {risk.get('risk_score')}",
                "category": "defense",
            })
        elif risk and risk.get("risk_level") == "HIGH":
            recs.append({
                "priority": 2,
                "action": "Prioritize wall + defense troops",
                "reason": defense.get("recommendation") or "High threat level",
                "category": "defense",
            })

        for i, candidate in enumerate(build_ranking or []):
            verb = "Upgrade" if candidate.kind == "upgrade_resource" else "Build"
            recs.append({
                "priority": (2 if candidate.affordable else 4) + i * 0.1,
                "action": f"{verb} {candidate.building_key} (slot {candidate.slot}) Lv.{candidate.from_level} -> {candidate.to_level}",
                "reason": candidate.reason + ("" if candidate.affordable else " [NOT AFFORDABLE YET]"),
                "category": "build",
                "affordable": candidate.affordable,
                "score": candidate.score,
            })

        if troop_plan and troop_plan.get("primary_unit"):
            count = troop_plan.get("affordable_count")
            recs.append({
                "priority": 2 if phase == "late" else 3,
                "action": f"Train {troop_plan['primary_unit']}" + (f" (can train {count})" if count else ""),
                "reason": ". ".join(troop_plan.get("reasoning", [])),
                "category": "military",
            })

        if expansion and expansion["ready"]:
            recs.append({
                "priority": 2,
                "action": "Settle new village NOW",
                "reason": f"All expansion requirements met. Score: {expansion['readiness_score']}%",
                "category": "expansion",
            })
        elif expansion and expansion["readiness_score"] > 50:
            recs.append({
                "priority": 3,
                "action": f"Prepare for expansion ({expansion['readiness_score']}% ready)",
                "reason": "; ".join(expansion["requirements"]),
                "category": "expansion",
            })

        recs.sort(key=lambda r: r["priority"])
        top = recs[:10]
        for i, rec in enumerate(top):
            rec["rank"] = i + 1
        return top
