"""
This module contains the MilitaryPlanner class, which rates troop types,
scores farm targets, grades the farming operation, and assesses how well a
village is defended against nearby enemies.
"""
import logging
import math
import time

from strategy.game_data import GameData, RESOURCE_TYPES

DEFAULT_UNIT_SPEED = 7
DEFAULT_CARRY = 50
DEFAULT_HOURS_SINCE_RAID = 6


def _coords(point):
    if isinstance(point, dict):
        return point.get("x", 0) or 0, point.get("y", 0) or 0
    if isinstance(point, (tuple, list)) and len(point) >= 2:
        return point[0], point[1]
    return 0, 0


def _distance(a, b) -> float:
    ax, ay = _coords(a)
    bx, by = _coords(b)
    return math.sqrt((bx - ax) ** 2 + (by - ay) ** 2)


class MilitaryPlanner:
    """
    Plans troop production and raids from the static troop tables.
    """
    def __init__(self, game_data=GameData):
        self.logger = logging.getLogger("MilitaryPlanner")
        self.game_data = game_data

    # ------------------------------------------------------------------
    # Troop efficiency
    # ------------------------------------------------------------------
    def troop_efficiency(self, tribe, unit_key):
        """Stats per resource spent for one unit, or None for unknown units."""
        unit = self.game_data.unit(tribe, unit_key)
        if not unit:
            return None

        total = self.game_data.total_cost(unit["cost"])

        def per_res(value):
            return round(value / total, 3) if total > 0 else 0

        return {
            "unit": unit_key,
            "tribe": tribe,
            "cost_total": total,
            "attack_per_res": per_res(unit["attack"]),
            "def_inf_per_res": per_res(unit["def_inf"]),
            "def_cav_per_res": per_res(unit["def_cav"]),
            "farm_efficiency": per_res(unit["carry"]),
            "raid_score": per_res(unit["carry"] * unit["speed"]),
            "upkeep_efficiency": round(unit["attack"] / unit["upkeep"], 1) if unit["upkeep"] > 0 else 0,
        }

    def rank_troops(self, tribe, purpose):
        """
        Sorts all units of a tribe by the metric of `purpose`
        (attack, defense, farming or raiding), best first.
        """
        results = []
        for unit_key in self.game_data.TROOPS.get(tribe, {}):
            eff = self.troop_efficiency(tribe, unit_key)
            if not eff:
                continue
            if purpose == "attack":
                eff["score"] = eff["attack_per_res"]
            elif purpose == "defense":
                eff["score"] = (eff["def_inf_per_res"] + eff["def_cav_per_res"]) / 2
            elif purpose == "farming":
                eff["score"] = eff["farm_efficiency"]
            elif purpose == "raiding":
                eff["score"] = eff["raid_score"]
            else:
                eff["score"] = 0
            results.append(eff)

        return sorted(results, key=lambda x: x["score"], reverse=True)

    # ------------------------------------------------------------------
    # Farming
    # ------------------------------------------------------------------
    def score_farm_target(self, target, origin, troops, server_speed=1):
        """
        Scores a farm target by expected loot per hour of troop commitment.

        Args:
            target (dict): x, y, population, last_raid_time (ms), wall_level, losses.
            origin (dict): x, y of the sending village.
            troops (dict): speed, count, carry_per_unit of the raiding party.
            server_speed (int): Server speed multiplier.

        Returns:
            dict: score, expected loot, round trip hours, risk and a recommendation.
        """
        server_speed = server_speed or 1
        distance = _distance(origin, target)

        speed = troops.get("speed") or DEFAULT_UNIT_SPEED
        round_trip_hours = distance / (speed * server_speed) * 2

        population = target.get("population") or 0
        estimated_production = (population or 10) * 4
        last_raid = target.get("last_raid_time")
        if last_raid:
            hours_since_raid = (time.time() * 1000 - last_raid) / 3600000
        else:
            hours_since_raid = DEFAULT_HOURS_SINCE_RAID
        available_loot = round(estimated_production * hours_since_raid)
        carry_capacity = (troops.get("count") or 1) * (troops.get("carry_per_unit") or DEFAULT_CARRY)
        expected_loot = min(available_loot, carry_capacity)

        wall_risk = (target.get("wall_level") or 0) * 0.05
        loss_risk = min((target.get("losses") or 0) * 0.2, 0.5)
        population_risk = min(population / 500, 0.5)
        risk = min(wall_risk + loss_risk + population_risk, 1.0)
        success_probability = 1 - risk

        expected_value = expected_loot * success_probability
        efficiency = round(expected_value / round_trip_hours) if round_trip_hours > 0 else 0
        score = efficiency * (1 - risk * 0.5)

        if risk > 0.6:
            recommendation = "AVOID"
        elif risk > 0.3:
            recommendation = "CAUTION"
        else:
            recommendation = "SAFE"

        return {
            "score": round(score),
            "expected_loot": expected_loot,
            "travel_time_hours": round(round_trip_hours, 2),
            "distance": round(distance, 1),
            "risk": round(risk, 2),
            "success_probability": round(success_probability, 2),
            "efficiency": efficiency,
            "recommendation": recommendation,
        }

    def plan_raids(self, targets, origin, troops, max_raids=10, server_speed=1):
        """Best `max_raids` targets by score, dangerous ones removed."""
        scored = []
        for target in targets or []:
            result = self.score_farm_target(target, origin, troops, server_speed)
            if result["recommendation"] == "AVOID":
                self.logger.debug("Skipping risky farm target at %s", _coords(target))
                continue
            result["target"] = target
            scored.append(result)

        scored.sort(key=lambda x: x["score"], reverse=True)
        return scored[:max_raids or 10]

    def analyze_farming_efficiency(self, farm_data, troop_costs):
        """
        Grades the farming operation A-F from its net profit per hour and
        its loss rate.
        """
        total_raids = farm_data.get("total_raids", 0) or 0
        raids_per_day = farm_data.get("raids_per_day", 0) or 0
        if raids_per_day:
            loot_per_hour = farm_data.get("total_loot", 0) / (total_raids or 1) * (raids_per_day / 24)
        else:
            loot_per_hour = 0
        upkeep = troop_costs.get("upkeep_per_hour", 0) or 0
        net_profit = loot_per_hour - upkeep

        investment = troop_costs.get("total_investment", 0) or 0
        if investment > 0 and net_profit > 0:
            roi_days = round(investment / (net_profit * 24), 1)
        else:
            roi_days = float("inf")

        loss_rate = (farm_data.get("total_losses", 0) or 0) / total_raids if total_raids > 0 else 0

        if net_profit > 500 and loss_rate < 0.01:
            grade = "A"
        elif net_profit > 200 and loss_rate < 0.05:
            grade = "B"
        elif net_profit > 50 and loss_rate < 0.1:
            grade = "C"
        elif net_profit > 0:
            grade = "D"
        else:
            grade = "F"

        advice = []
        if loss_rate > 0.05:
            advice.append(f"Loss rate too high ({round(loss_rate * 100)}%). Scout before raiding.")
        if net_profit < upkeep:
            advice.append("Farming barely covers troop upkeep. Optimize targets or increase carry capacity.")
        if raids_per_day < 5:
            advice.append("Increase raid frequency. More frequent small raids > infrequent large raids.")
        if grade == "A":
            advice.append("Excellent farming operation. Consider expanding farm list.")

        return {
            "efficiency_score": round(net_profit),
            "loot_per_hour": round(loot_per_hour),
            "profit_per_hour": round(net_profit),
            "upkeep_per_hour": round(upkeep),
            "roi_days": roi_days,
            "loss_rate": round(loss_rate * 100, 1),
            "grade": grade,
            "advice": advice,
        }

    # ------------------------------------------------------------------
    # Defense and risk
    # ------------------------------------------------------------------
    def assess_defense(self, state, tribe, threat_level=0):
        """
        Compares wall plus troop defence against a requirement that grows
        with the square of the threat level. The score is capped at 2.0.
        """
        threat_level = threat_level or 0

        wall_level = 0
        for building in state.buildings:
            if building.gid in self.game_data.WALL_GIDS:
                wall_level = building.level

        wall_bonus = self.game_data.wall_bonus_percent(wall_level)
        wall_defense = self.game_data.WALL_BASE_DEF.get(tribe, 0) * wall_level

        troop_defense = 0
        for unit_key, count in state.troops.items():
            unit = self.game_data.unit(tribe, unit_key)
            if unit:
                troop_defense += (count or 0) * (unit["def_inf"] + unit["def_cav"]) / 2

        total_defense = troop_defense * (1 + wall_bonus / 100) + wall_defense
        required_defense = threat_level * threat_level * 200
        defense_score = min(total_defense / required_defense, 2.0) if required_defense > 0 else 2.0

        needed = []
        if defense_score >= 1.5:
            recommendation = "Defense is strong. Focus on offense/economy."
        elif defense_score >= 1.0:
            recommendation = "Defense is adequate. Monitor threats."
        elif defense_score >= 0.5:
            recommendation = "Defense is weak. Train defenders urgently."
            needed.append(f"Train defensive troops (deficit: {round(required_defense - total_defense)} defense points)")
            if wall_level < 10:
                needed.append("Upgrade wall to at least level 10")
        else:
            recommendation = "CRITICAL: Village is nearly undefended!"
            needed.append("Emergency defense build required")
            needed.append("Request alliance defense support")
            if wall_level < 5:
                needed.append("Build wall immediately")

        return {
            "defense_score": round(defense_score, 2),
            "wall_level": wall_level,
            "wall_bonus_pct": wall_bonus,
            "troop_defense": round(troop_defense),
            "total_defense": round(total_defense),
            "required_defense": round(required_defense),
            "recommendation": recommendation,
            "needed": needed,
        }

    def assess_risk(self, state, tribe, enemies, origin):
        """
        Sums enemy power weighted by proximity and divides it by the village
        defence. The ratio (capped at 10) maps to LOW, MODERATE, HIGH or CRITICAL.
        """
        total_threat = 0
        threats = []
        for enemy in enemies or []:
            distance = _distance(origin, enemy)
            proximity = 1 / distance if distance > 0 else 10
            power = (enemy.get("population") or 50) * (enemy.get("aggression_level") or 1)
            threat = power * proximity
            total_threat += threat
            threats.append({
                "distance": round(distance, 1),
                "power": round(power),
                "threat": round(threat, 2),
            })

        defense = self.assess_defense(state, tribe, math.sqrt(total_threat))
        if defense["total_defense"] > 0:
            risk_score = total_threat / defense["total_defense"]
        else:
            risk_score = total_threat
        risk_score = min(risk_score, 10)

        if risk_score < 1:
            risk_level = "LOW"
            advice = ["Safe to focus on economy."]
        elif risk_score < 3:
            risk_level = "MODERATE"
            advice = ["Maintain basic defenses. Keep crannies upgraded."]
        elif risk_score < 6:
            risk_level = "HIGH"
            advice = ["Prioritize wall + defense troops. Consider dodging attacks."]
        else:
            risk_level = "CRITICAL"
            advice = ["Immediate danger! Request alliance help. Build crannies. Dodge troops."]

        return {
            "risk_score": round(risk_score, 2),
            "risk_level": risk_level,
            "threats": threats,
            "defense": defense,
            "advice": advice,
        }

    # ------------------------------------------------------------------
    # Production planning
    # ------------------------------------------------------------------
    def troop_production_plan(self, tribe, phase, threat_level, resources):
        """
        Picks the units to train for the current phase and threat, and how
        many of the primary unit the village can pay for right now.
        """
        profile = self.game_data.tribe_profile(tribe)
        if not profile:
            self.logger.warning("Unknown tribe %s; no troop plan", tribe)
            return None

        plan = {"queue": [], "reasoning": [], "secondary_unit": None, "affordable_count": 0}

        if phase == "early":
            plan["primary_unit"] = profile["best_farmer"]
            plan["ratio"] = {"offense": 0.8, "defense": 0.2}
            plan["reasoning"].append("Early game: build farming troops to fuel economy.")
            plan["reasoning"].append(f"Primary: {profile['best_farmer']} for farm raids.")
        elif phase == "mid":
            if (threat_level or 0) > 3:
                plan["primary_unit"] = profile["best_def_inf"]
                plan["secondary_unit"] = profile["best_def_cav"]
                plan["ratio"] = {"offense": 0.3, "defense": 0.7}
                plan["reasoning"].append("Mid game with threats: defensive build.")
            else:
                plan["primary_unit"] = profile["best_off"]
                plan["secondary_unit"] = profile["best_def_inf"]
                plan["ratio"] = {"offense": 0.6, "defense": 0.4}
                plan["reasoning"].append("Mid game: balanced offense/defense split.")
        else:
            plan["primary_unit"] = profile["best_off"]
            plan["secondary_unit"] = profile["best_def_cav"]
            plan["ratio"] = {"offense": 0.7, "defense": 0.3}
            plan["reasoning"].append("Late game: heavy offense build for alliance operations.")

        primary = self.game_data.unit(tribe, plan["primary_unit"])
        if primary and resources:
            affordable = min(
                (resources.get(res, 0) or 0) // primary["cost"][res] if primary["cost"][res] > 0 else math.inf
                for res in RESOURCE_TYPES
            )
            plan["affordable_count"] = max(0, int(affordable))
            plan["queue"].append({
                "unit": plan["primary_unit"],
                "count": min(plan["affordable_count"], 20),
                "building": primary["building"],
            })

        return plan
