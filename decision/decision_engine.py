"""
This module contains the DecisionEngine, which turns one GameState snapshot
and the village configuration into the list of tasks the executor should
queue next. Collaborators are passed in by the caller; any optional one may
be None, in which case the step that needs it falls back or is skipped.
"""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional

from decision.configmanager import EngineConfig
from decision.cooldowns import CooldownTable
from decision.tasks import (
    BuildNewTask,
    EmergencyStopTask,
    SendAttackTask,
    SendFarmTask,
    SendHeroAdventureTask,
    Task,
    TrainTroopsTask,
    UpgradeBuildingTask,
    UpgradeResourceTask,
)
from strategy.build_optimizer import BuildOptimizer
from strategy.game_data import GameData, RESOURCE_TYPES
from strategy.gamestate import GameState
from strategy.military_planner import MilitaryPlanner
from strategy.resource_intel import PendingCost, ResourceIntel
from strategy.strategy_engine import StrategyEngine

WAREHOUSE_GID = 10
CRANNY_GID = 23
MAX_CRANNY_LEVEL = 10
FALLBACK_MAX_LEVEL = 10
POLICY_PRESSURE_THRESHOLD = 30
REFERENCE_STORAGE = 10000

PRIORITY_EMERGENCY = 1
PRIORITY_CRANNY = 2
PRIORITY_NEW_BUILD = 3
PRIORITY_RESOURCE_UPGRADE = 3
PRIORITY_BUILDING_UPGRADE = 4
PRIORITY_TROOPS_LATE = 4
PRIORITY_HERO = 5
PRIORITY_TROOPS = 6
PRIORITY_FARM = 7


def _now_ms() -> int:
    return int(time.time() * 1000)


class DecisionEngine:
    """
    Evaluates one village per call. Every step runs on its own; a failing
    step is logged and the remaining steps still produce their tasks.
    """

    def __init__(self, strategy_engine: Optional[StrategyEngine] = None,
                 build_optimizer: Optional[BuildOptimizer] = None,
                 military_planner: Optional[MilitaryPlanner] = None,
                 resource_intel: Optional[ResourceIntel] = None,
                 game_data=GameData, rules=(), cooldowns: Optional[CooldownTable] = None):
        self.logger = logging.getLogger("DecisionEngine")
        self.strategy_engine = strategy_engine
        self.build_optimizer = build_optimizer
        self.military_planner = military_planner
        self.resource_intel = resource_intel
        self.game_data = game_data
        self.rules = list(rules or [])
        self.cooldowns = cooldowns or CooldownTable()

        self.current_phase = "early"
        self.last_analysis: Optional[dict] = None
        self.last_resource_report: Optional[dict] = None

    @classmethod
    def with_defaults(cls, rules=()) -> "DecisionEngine":
        """Wires the engine with the standard optimizers."""
        build_optimizer = BuildOptimizer(GameData)
        military_planner = MilitaryPlanner(GameData)
        return cls(
            strategy_engine=StrategyEngine(build_optimizer, military_planner, GameData),
            build_optimizer=build_optimizer,
            military_planner=military_planner,
            resource_intel=ResourceIntel(GameData),
            game_data=GameData,
            rules=rules,
        )

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------
    def evaluate(self, state, config, queue=None) -> List[Task]:
        """
        Runs one decision cycle.

        Args:
            state (GameState | dict): Snapshot of the village.
            config (EngineConfig | dict): Village configuration.
            queue: Optional task queue offering `has_task_of_type(kind, village_id)`.

        Returns:
            list[Task]: Tasks in evaluation order, lower priority values first
            within each step.
        """
        if state is None or config is None:
            return []
        if not isinstance(state, GameState):
            state = GameState.from_dict(state)
        if not isinstance(config, EngineConfig):
            config = EngineConfig.from_dict(config)

        village_id = config.village_id or state.village_id

        if state.captcha_present or state.error_page:
            reason = "Captcha detected" if state.captcha_present else "Error detected"
            self.logger.warning("%s on village %s; stopping", reason, village_id)
            return [EmergencyStopTask(priority=PRIORITY_EMERGENCY, village_id=village_id, reason=reason)]

        queue_room = max(0, state.construction_queue.max_count - state.construction_queue.count)
        planned: List[Task] = []

        def accept(task: Optional[Task]) -> bool:
            nonlocal queue_room
            if task is None or not self._accept(task, queue, planned):
                return False
            if isinstance(task, (UpgradeResourceTask, UpgradeBuildingTask, BuildNewTask)):
                if queue_room <= 0:
                    self.logger.debug("Construction queue full; dropping %s", task)
                    return False
                queue_room -= 1
            planned.append(task)
            return True

        self._run_step("analysis", self._analyze, state, config)

        if queue_room > 0 and not (self.is_cooling_down("upgrade_building") or self.is_cooling_down("build_new")):
            accept(self._run_step("cranny", self._cranny_task, state, village_id))
        if queue_room > 0 and not self.is_cooling_down("build_new"):
            accept(self._run_step("new build", self._new_build_task, state, config, village_id))

        report = self._run_step("resources", self._resource_report, state) or {}
        self.last_resource_report = report or None

        if queue_room > 0 and (config.auto_upgrade_resources or config.auto_upgrade_buildings):
            if not (self.is_cooling_down("upgrade_resource") and self.is_cooling_down("upgrade_building")):
                if self.build_optimizer:
                    task = self._run_step("upgrade", self._strategy_upgrade_task,
                                          state, config, report.get("pressure"), village_id)
                else:
                    task = self._run_step("upgrade", self._fallback_upgrade_task, state, config, village_id)
                accept(task)

        crop = report.get("crop_safety")
        if config.auto_train_troops and (crop is None or crop.safe_to_train):
            accept(self._run_step("troops", self._troop_task, state, config, village_id))
        elif config.auto_train_troops:
            self.logger.debug("Crop balance unsafe (%s); not training", crop.level)

        if config.auto_hero_adventure:
            accept(self._run_step("hero", self._hero_task, state, config, village_id))

        if config.auto_farm:
            for task in self._run_step("farm", self._farm_tasks, state, config, village_id) or []:
                accept(task)

        for rule in self.rules:
            try:
                produced = rule.evaluate(state, config, queue) or []
            except Exception:
                self.logger.exception("Custom rule %s failed", getattr(rule, "name", rule))
                continue
            for task in produced:
                if isinstance(task, Task):
                    accept(task)
                else:
                    self.logger.warning("Custom rule %s returned a non-task: %r", getattr(rule, "name", rule), task)

        for kind in {task.kind for task in planned}:
            duration = config.task_cooldowns_ms.get(kind)
            if duration:
                self.set_cooldown(kind, duration)

        if planned:
            self.logger.info("Village %s: %d task(s) planned: %s", village_id, len(planned), planned)
        else:
            self.logger.debug("Village %s: nothing to do", village_id)
        return planned

    def _run_step(self, name, step, *args):
        try:
            return step(*args)
        except Exception:
            self.logger.exception("Decision step '%s' failed", name)
            return None

    def _accept(self, task: Task, queue, planned: List[Task]) -> bool:
        if self.is_cooling_down(task.kind):
            self.logger.debug("%s cooling down; skipping", task.kind)
            return False
        slot = task.target_slot
        if slot is not None:
            if self.is_slot_cooling_down(task.kind, slot):
                self.logger.debug("%s on slot %s cooling down; skipping", task.kind, slot)
                return False
            if any(other.target_slot == slot for other in planned):
                self.logger.debug("Slot %s already planned this cycle; skipping %s", slot, task.kind)
                return False
        if queue is not None and queue.has_task_of_type(task.kind, task.village_id):
            self.logger.debug("%s already queued for village %s", task.kind, task.village_id)
            return False
        return True

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _analyze(self, state: GameState, config: EngineConfig) -> Optional[dict]:
        if not self.strategy_engine:
            return None
        analysis = self.strategy_engine.analyze(
            state,
            tribe=config.tribe,
            server_speed=config.server_speed,
            game_day=config.game_day,
            village_count=max(1, len(state.villages)),
            total_population=state.population,
            army_size=state.army_size,
            threat_level=config.threat_level,
            enemies=config.enemies,
            origin=config.origin,
        )
        self.last_analysis = analysis
        self.current_phase = analysis["phase_detection"]["phase"]
        return analysis

    def _cranny_task(self, state: GameState, village_id) -> Optional[Task]:
        """Keeps the cranny level up with the warehouse level."""
        warehouse_level = state.highest_level(WAREHOUSE_GID)
        if not warehouse_level:
            return None

        crannies = [b for b in state.buildings if b.gid == CRANNY_GID and not b.is_empty]
        cranny = max(crannies, key=lambda b: b.level) if crannies else None
        cranny_level = cranny.level if cranny else 0
        if cranny_level >= warehouse_level or cranny_level >= MAX_CRANNY_LEVEL:
            return None

        if cranny:
            if cranny.is_upgrading:
                return None
            self.logger.debug("Cranny %d trails warehouse %d; upgrading slot %s",
                              cranny_level, warehouse_level, cranny.slot_id)
            return UpgradeBuildingTask(priority=PRIORITY_CRANNY, village_id=village_id, slot=cranny.slot_id)

        slot = state.first_empty_slot()
        if slot is None:
            self.logger.debug("No empty slot for a cranny")
            return None
        return BuildNewTask(priority=PRIORITY_CRANNY, village_id=village_id, slot=slot, gid=CRANNY_GID,
                            building_name=self.game_data.building_name(CRANNY_GID))

    def _new_build_task(self, state: GameState, config: EngineConfig, village_id) -> Optional[Task]:
        for slot, target in sorted(config.upgrade_targets.items()):
            if not (target.enabled and target.is_new_build and target.build_gid):
                continue
            building = state.building_in_slot(slot)
            # a slot the scanner did not report is treated as empty
            if building is not None and not building.is_empty:
                continue
            if self.is_slot_cooling_down("build_new", slot):
                continue
            report = self.game_data.check_prerequisites(target.build_gid, state.buildings, state.resource_fields)
            if not report.met:
                self.logger.debug("Prerequisites missing for gid %s on slot %s: %s",
                                  target.build_gid, slot, report.missing)
                continue
            return BuildNewTask(priority=PRIORITY_NEW_BUILD, village_id=village_id, slot=slot,
                                gid=target.build_gid, building_name=self.game_data.building_name(target.build_gid))
        return None

    def _resource_report(self, state: GameState) -> dict:
        if not self.resource_intel:
            return {}
        snapshot = self.resource_intel.build_snapshot(state)

        pending = [
            PendingCost(cost=item.cost, completion_ms=item.remaining_ms)
            for item in state.construction_queue.items if item.cost
        ]
        farm_income = self.resource_intel.get_all_farm_predictions()
        income = farm_income["income_per_hr"] if farm_income["farms"] else None

        upkeep = sum(self.game_data.unit_upkeep(unit) * count for unit, count in state.troops.items() if count > 0)

        forecast = self.resource_intel.forecast(snapshot, pending_costs=pending, farm_income_per_hr=income)
        pressure = self.resource_intel.pressure(snapshot)
        crop_safety = self.resource_intel.crop_safety(snapshot, upkeep)
        if pressure is not None:
            self.logger.debug("Resource pressure %.1f (%s)", pressure.overall, pressure.level)
        return {"forecast": forecast, "pressure": pressure, "crop_safety": crop_safety}

    def _strategy_upgrade_task(self, state: GameState, config: EngineConfig, pressure, village_id) -> Optional[Task]:
        candidates = self.build_optimizer.rank_upgrades(state, self.current_phase, 20)
        if self.resource_intel and pressure is not None and pressure.overall >= POLICY_PRESSURE_THRESHOLD:
            candidates = self.resource_intel.policy(pressure, candidates)

        upgrading = {f.slot_id for f in state.resource_fields if f.is_upgrading}
        upgrading.update(b.slot_id for b in state.buildings if b.is_upgrading)
        targets = config.upgrade_targets

        eligible = []
        for candidate in candidates:
            is_field = candidate.kind == UpgradeResourceTask.kind
            if is_field and not config.auto_upgrade_resources:
                continue
            if not is_field and not config.auto_upgrade_buildings:
                continue
            if targets and not self._wants_upgrade(targets, candidate.slot, candidate.from_level):
                continue
            if candidate.slot in upgrading:
                continue
            if self.is_cooling_down(candidate.kind) or self.is_slot_cooling_down(candidate.kind, candidate.slot):
                continue
            eligible.append(candidate)

        affordable = [c for c in eligible if c.affordable]
        if not affordable:
            if eligible:
                self.logger.debug("%d upgrade candidate(s), none affordable", len(eligible))
            return None

        best = affordable[0]
        self.logger.debug("Best upgrade: %s", best)
        return self._upgrade_task(best.kind, best.slot, village_id)

    def _fallback_upgrade_task(self, state: GameState, config: EngineConfig, village_id) -> Optional[Task]:
        """Lowest level affordable upgrade, used when no BuildOptimizer is wired."""
        targets = config.upgrade_targets
        options = []

        if config.auto_upgrade_resources:
            for res_field in state.resource_fields:
                if res_field.is_upgrading or not res_field.building_key:
                    continue
                options.append((UpgradeResourceTask.kind, res_field.slot_id, res_field.level, res_field.building_key))
        if config.auto_upgrade_buildings:
            for building in state.buildings:
                if building.is_empty or building.is_upgrading or not building.key:
                    continue
                options.append((UpgradeBuildingTask.kind, building.slot_id, building.level, building.key))

        best = None
        for kind, slot, level, key in options:
            if targets:
                if not self._wants_upgrade(targets, slot, level):
                    continue
            elif level >= FALLBACK_MAX_LEVEL:
                continue
            if self.is_slot_cooling_down(kind, slot):
                continue
            if not state.can_afford(self.game_data.upgrade_cost(key, level)):
                continue
            if best is None or level < best[2]:
                best = (kind, slot, level)

        if best is None:
            return None
        return self._upgrade_task(best[0], best[1], village_id)

    @staticmethod
    def _wants_upgrade(targets, slot, from_level) -> bool:
        target = targets.get(slot)
        return bool(target and target.enabled and not target.is_new_build and from_level < target.target_level)

    @staticmethod
    def _upgrade_task(kind, slot, village_id) -> Task:
        if kind == UpgradeResourceTask.kind:
            return UpgradeResourceTask(priority=PRIORITY_RESOURCE_UPGRADE, village_id=village_id, field_id=slot)
        return UpgradeBuildingTask(priority=PRIORITY_BUILDING_UPGRADE, village_id=village_id, slot=slot)

    def _troop_task(self, state: GameState, config: EngineConfig, village_id) -> Optional[Task]:
        troops = config.troops
        if troops is None:
            return None
        for res in RESOURCE_TYPES:
            if state.resources.get(res, 0) < troops.min_resource_threshold.get(res, 0):
                self.logger.debug("Not training: %s below threshold", res)
                return None

        if not self.military_planner:
            return TrainTroopsTask(
                priority=PRIORITY_TROOPS,
                village_id=village_id,
                troop_type=troops.default_troop_type or "infantry",
                count=troops.train_count,
                building_type=troops.training_building or "barracks",
            )

        plan = self.military_planner.troop_production_plan(
            config.tribe, self.current_phase, config.threat_level, state.resources
        )
        if not plan or plan["affordable_count"] <= 0:
            return None

        if troops.default_troop_type:
            troop_type = troops.default_troop_type
            building = troops.training_building or "barracks"
        else:
            troop_type = plan["primary_unit"]
            building = plan["queue"][0]["building"] if plan["queue"] else "barracks"

        return TrainTroopsTask(
            priority=PRIORITY_TROOPS_LATE if self.current_phase == "late" else PRIORITY_TROOPS,
            village_id=village_id,
            troop_type=troop_type,
            count=min(troops.train_count, plan["affordable_count"]),
            building_type=building,
        )

    def _hero_task(self, state: GameState, config: EngineConfig, village_id) -> Optional[Task]:
        hero = state.hero
        if not hero.is_home or hero.is_away or hero.is_dead:
            return None
        if not hero.has_adventure or hero.adventure_count <= 0:
            return None
        if hero.health < config.hero.min_health:
            self.logger.debug("Hero health %s below %s; resting", hero.health, config.hero.min_health)
            return None
        return SendHeroAdventureTask(priority=PRIORITY_HERO, village_id=village_id,
                                     adventure_count=hero.adventure_count, hero_health=hero.health)

    def _farm_tasks(self, state: GameState, config: EngineConfig, village_id) -> List[Task]:
        farm = config.farm
        if state.last_farm_time and _now_ms() - state.last_farm_time < farm.interval_ms:
            return []
        if state.outgoing_raids > 0:
            self.logger.debug("%d raid(s) still out; not farming", state.outgoing_raids)
            return []
        if state.army_size < farm.min_troops:
            return []

        if farm.use_rally_point_farm_list:
            return [SendFarmTask(priority=PRIORITY_FARM, village_id=village_id, farm_list_id=None)]

        tasks = []
        for target in farm.targets:
            x, y = target.get("x"), target.get("y")
            if x is None or y is None:
                self.logger.warning("Skipping farm target without coordinates: %s", target)
                continue
            tasks.append(SendAttackTask(
                priority=PRIORITY_FARM,
                village_id=village_id,
                target=(int(x), int(y)),
                target_name=target.get("name") or f"{x}|{y}",
                troops=dict(farm.default_troops),
            ))
        return tasks

    # ------------------------------------------------------------------
    # Cooldowns
    # ------------------------------------------------------------------
    def set_cooldown(self, action_kind: str, duration_ms: int, slot=None) -> None:
        self.cooldowns.set(action_kind, duration_ms, slot)

    def is_cooling_down(self, action_kind: str) -> bool:
        return self.cooldowns.is_cooling_down(action_kind)

    def is_slot_cooling_down(self, action_kind: str, slot) -> bool:
        return self.cooldowns.is_cooling_down(action_kind, slot)

    # ------------------------------------------------------------------
    # Farm history and persistence
    # ------------------------------------------------------------------
    def record_farm_result(self, farm_id: str, loot: Optional[Dict[str, int]], success: bool = True, now_ms=None):
        if not self.resource_intel:
            return None
        return self.resource_intel.record_farm_run(farm_id, loot, success, now_ms)

    def get_resource_intel_state(self) -> Optional[dict]:
        return self.resource_intel.get_state() if self.resource_intel else None

    def load_resource_intel_state(self, state) -> None:
        if self.resource_intel:
            self.resource_intel.load_state(state)

    def get_last_analysis(self) -> Optional[dict]:
        return self.last_analysis

    def get_last_resource_report(self) -> Optional[dict]:
        """Forecast, pressure and crop safety reports of the last cycle, or None without ResourceIntel."""
        return self.last_resource_report

    def get_phase(self) -> str:
        return self.current_phase

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------
    def resource_score(self, state) -> int:
        """
        0-100 health score of a village's stock: balance between the four
        resources (40), storage headroom used (30) and total production (30).
        """
        if isinstance(state, GameState):
            resources, production = state.resources, state.production
            max_storage = state.capacity.get("warehouse") or REFERENCE_STORAGE
        elif isinstance(state, dict) and isinstance(state.get("resources"), dict):
            resources, production = state["resources"], state.get("production")
            max_storage = state.get("max_storage") or REFERENCE_STORAGE
        else:
            return 0

        values = [resources.get(res, 0) or 0 for res in RESOURCE_TYPES]
        total = sum(values)
        if total <= 0:
            return 0

        avg = total / 4
        avg_deviation = sum(abs(v - avg) for v in values) / 4
        balance = max(0.0, 1 - avg_deviation / avg)
        storage = min(1.0, total / (max_storage * 4))

        production_factor = 0.5
        if production:
            production_factor = min(1.0, sum(production.get(res, 0) or 0 for res in RESOURCE_TYPES) / 400)

        return int(round(min(100, max(0, balance * 40 + storage * 30 + production_factor * 30))))
