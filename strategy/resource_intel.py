"""
Resource intelligence: linear forecasting of stock levels, overflow pressure
scoring, pressure-aware re-ranking of upgrade candidates, crop starvation
checks and farm income prediction from raid history.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional

from strategy.candidates import UpgradeCandidate
from strategy.game_data import GameData, RESOURCE_TYPES, _zero_resources
from strategy.gamestate import GameState


HOUR_MS = 3600000
DEFAULT_HORIZON_MS = 2 * HOUR_MS
URGENCY_WINDOW_MS = 4 * HOUR_MS
FALLBACK_CAPACITY = 800
EMA_ALPHA = 0.3
STATE_VERSION = 2


def _now_ms() -> int:
    return int(time.time() * 1000)


def _num(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class ResourceSnapshot:
    resources: Dict[str, int]
    capacity: Dict[str, int]
    production: Dict[str, int]
    queue_time_remaining_ms: int = 0
    timestamp: int = 0

    def capacity_for(self, resource: str) -> int:
        store = "granary" if resource == "crop" else "warehouse"
        return self.capacity.get(store) or FALLBACK_CAPACITY


@dataclass
class PendingCost:
    """Cost of an already queued build and the time until it completes."""
    cost: Dict[str, int]
    completion_ms: int = 0


@dataclass
class ResourceForecast:
    current: int
    projected: int
    overflow: bool
    overflow_ms: Optional[int] = None
    ms_to_full: Optional[int] = None


@dataclass
class ForecastReport:
    horizon_ms: int
    resources: Dict[str, ResourceForecast]
    first_overflow_ms: Optional[int]
    pending_drain: Dict[str, int] = field(default_factory=_zero_resources)

    def __getitem__(self, resource: str) -> ResourceForecast:
        return self.resources[resource]


@dataclass
class PressureReport:
    overall: float
    per_resource: Dict[str, float]
    level: str
    urgent_action: Optional[str]
    overflow_risk: Dict[str, bool]
    first_overflow_ms: Optional[int]


@dataclass
class CropSafetyReport:
    net_crop: float
    crop_production: float
    troop_upkeep: float
    current_crop: float
    fill_ratio: float
    hours_to_starvation: Optional[float]
    safe_to_train: bool
    level: str
    action: Optional[str]


@dataclass
class FarmIncomeHistory:
    """Moving averages of one farm source's raids."""
    farm_id: str
    ema_loot: Dict[str, float] = field(default_factory=lambda: {res: 0.0 for res in RESOURCE_TYPES})
    ema_interval_ms: Optional[float] = None
    runs: int = 0
    successes: int = 0
    last_run_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "ema_loot": dict(self.ema_loot),
            "ema_interval_ms": self.ema_interval_ms,
            "runs": self.runs,
            "successes": self.successes,
            "last_run_ms": self.last_run_ms,
        }

    @classmethod
    def from_dict(cls, farm_id: str, raw: dict) -> "FarmIncomeHistory":
        loot = raw.get("ema_loot") or {}
        interval = raw.get("ema_interval_ms")
        return cls(
            farm_id=farm_id,
            ema_loot={res: _num(loot.get(res)) for res in RESOURCE_TYPES},
            ema_interval_ms=float(interval) if interval is not None else None,
            runs=int(raw.get("runs", 0)),
            successes=int(raw.get("successes", 0)),
            last_run_ms=int(raw.get("last_run_ms", 0)),
        )


@dataclass
class FarmIncomePrediction:
    farm_id: str
    runs: int
    income_per_hr: Dict[str, float]
    total_per_hr: float
    success_rate: float
    interval_ms: float


class ResourceIntel:
    """
    Forecasts and scores the resource situation of one village and keeps
    the raid history used to predict farm income.
    """
    def __init__(self, game_data=GameData):
        self.logger = logging.getLogger("ResourceIntel")
        self.game_data = game_data
        self.farm_history: Dict[str, FarmIncomeHistory] = {}

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------
    def build_snapshot(self, state) -> Optional[ResourceSnapshot]:
        """
        Normalizes a GameState (or its raw dict form) into the values the
        forecast needs.
        """
        if state is None:
            return None
        if isinstance(state, dict):
            state = GameState.from_dict(state)

        queue_ms = sum(item.remaining_ms for item in state.construction_queue.items)
        return ResourceSnapshot(
            resources=dict(state.resources),
            capacity=self._resolve_capacity(state),
            production=dict(state.production),
            queue_time_remaining_ms=queue_ms,
            timestamp=_now_ms(),
        )

    def _resolve_capacity(self, state: GameState) -> Dict[str, int]:
        # explicit values, then building levels, then level hints, then the fallback
        if any(value > 0 for value in state.capacity.values()):
            return {
                store: state.capacity.get(store) or FALLBACK_CAPACITY
                for store in ("warehouse", "granary")
            }

        warehouse_level = state.highest_level(10)
        granary_level = state.highest_level(11)
        if warehouse_level or granary_level:
            return {
                "warehouse": self.game_data.storage_capacity(warehouse_level) if warehouse_level else FALLBACK_CAPACITY,
                "granary": self.game_data.storage_capacity(granary_level) if granary_level else FALLBACK_CAPACITY,
            }

        capacity = {"warehouse": FALLBACK_CAPACITY, "granary": FALLBACK_CAPACITY}
        for store in ("warehouse", "granary"):
            level = state.storage.get(store, 0)
            if level > 0:
                capacity[store] = self.game_data.storage_capacity(level)
        return capacity

    # ------------------------------------------------------------------
    # Forecast
    # ------------------------------------------------------------------
    def forecast(self, snapshot: Optional[ResourceSnapshot], horizon_ms: int = DEFAULT_HORIZON_MS,
                 pending_costs: Optional[Iterable] = None,
                 farm_income_per_hr: Optional[Dict[str, float]] = None) -> Optional[ForecastReport]:
        """
        Projects every resource `horizon_ms` ahead at its current production
        plus predicted farm income, clamped to storage capacity. Costs of
        queued builds finishing inside the horizon are then subtracted,
        never below zero.
        """
        if snapshot is None:
            return None
        if horizon_ms is None or horizon_ms < 0:
            horizon_ms = DEFAULT_HORIZON_MS

        drain = _zero_resources()
        for pending in self._normalize_pending(pending_costs):
            if pending.completion_ms <= horizon_ms:
                for res in RESOURCE_TYPES:
                    drain[res] += int(_num(pending.cost.get(res)))

        farm_income = farm_income_per_hr or {}
        resources = {}
        first_overflow_ms = None

        for res in RESOURCE_TYPES:
            current = snapshot.resources.get(res, 0) or 0
            production = (snapshot.production.get(res, 0) or 0) + _num(farm_income.get(res))
            capacity = snapshot.capacity_for(res)

            projected = current + production * horizon_ms / HOUR_MS
            projected = min(capacity, max(0, projected))

            if current >= capacity:
                ms_to_full = 0
            elif production > 0:
                ms_to_full = (capacity - current) / (production / HOUR_MS)
            else:
                ms_to_full = None

            overflow = projected >= capacity and production > 0
            overflow_ms = None
            if overflow:
                overflow_ms = 0 if current >= capacity else ms_to_full
            if overflow_ms is not None and (first_overflow_ms is None or overflow_ms < first_overflow_ms):
                first_overflow_ms = overflow_ms

            projected = max(0, projected - drain[res])

            resources[res] = ResourceForecast(
                current=current,
                projected=round(projected),
                overflow=overflow,
                overflow_ms=round(overflow_ms) if overflow_ms is not None else None,
                ms_to_full=round(ms_to_full) if ms_to_full is not None else None,
            )

        return ForecastReport(
            horizon_ms=horizon_ms,
            resources=resources,
            first_overflow_ms=round(first_overflow_ms) if first_overflow_ms is not None else None,
            pending_drain=drain,
        )

    @staticmethod
    def _normalize_pending(pending_costs) -> List[PendingCost]:
        normalized = []
        for item in pending_costs or []:
            if isinstance(item, PendingCost):
                normalized.append(item)
            elif isinstance(item, dict):
                cost = item.get("cost") if isinstance(item.get("cost"), dict) else item
                normalized.append(PendingCost(cost=cost, completion_ms=int(_num(item.get("completion_ms")))))
        return normalized

    # ------------------------------------------------------------------
    # Pressure
    # ------------------------------------------------------------------
    def pressure(self, snapshot: Optional[ResourceSnapshot]) -> Optional[PressureReport]:
        """
        Scores each resource 0-100 from its fill ratio (40), how soon it
        overflows within four hours (40) and how far its production share
        is from an even 25% (20). The overall pressure is the maximum.
        """
        fc = self.forecast(snapshot)
        if fc is None:
            return None

        total_production = sum(snapshot.production.get(res, 0) or 0 for res in RESOURCE_TYPES)
        per_resource = {}
        overflow_risk = {}

        for res in RESOURCE_TYPES:
            current = snapshot.resources.get(res, 0) or 0
            capacity = snapshot.capacity_for(res)
            production = snapshot.production.get(res, 0) or 0
            ms_to_full = fc[res].ms_to_full

            fill_ratio = min(1.0, max(0.0, current / capacity)) if capacity > 0 else 0.0

            urgency = 0.0
            if ms_to_full is not None and ms_to_full >= 0:
                urgency = max(0.0, 1 - ms_to_full / URGENCY_WINDOW_MS)

            share = production / total_production if total_production > 0 else 0.25
            imbalance = min(1.0, abs(share - 0.25) / 0.25)

            score = 40 * fill_ratio + 40 * urgency + 20 * imbalance
            per_resource[res] = max(0.0, min(100.0, round(score, 1)))
            overflow_risk[res] = fc[res].overflow

        overall = max(per_resource.values())

        if overall >= 80:
            level = "critical"
        elif overall >= 60:
            level = "high"
        elif overall >= 30:
            level = "medium"
        else:
            level = "low"

        urgent_action = None
        if overall >= 60:
            urgent_action = "upgrade_storage" if any(overflow_risk.values()) else "spend_resources"

        return PressureReport(
            overall=overall,
            per_resource=per_resource,
            level=level,
            urgent_action=urgent_action,
            overflow_risk=overflow_risk,
            first_overflow_ms=fc.first_overflow_ms,
        )

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------
    def policy(self, pressure_report: Optional[PressureReport],
               candidates: Optional[List[UpgradeCandidate]]) -> List[UpgradeCandidate]:
        """
        Re-ranks upgrade candidates by how much their cost relieves the
        resources under pressure. Returns copies; the input list and its
        candidates are left untouched.
        """
        if not candidates:
            return []
        if pressure_report is None:
            return list(candidates)

        if pressure_report.overall < 30:
            return [replace(c, adjusted_score=c.score) for c in candidates]

        if pressure_report.level == "critical":
            pressure_mult = 1.0
        elif pressure_report.level == "high":
            pressure_mult = 0.6
        else:
            pressure_mult = 0.3

        adjusted = []
        for candidate in candidates:
            total = self.game_data.total_cost(candidate.cost)
            relief = 0.0
            if total > 0:
                relief = sum(
                    candidate.cost.get(res, 0) * pressure_report.per_resource.get(res, 0)
                    for res in RESOURCE_TYPES
                ) / total / 100

            score = candidate.score * (1 + relief * pressure_mult)
            if pressure_report.overall >= 60 and not candidate.affordable:
                score *= 0.01
            adjusted.append(replace(candidate, adjusted_score=round(score, 4)))

        adjusted.sort(key=lambda c: c.adjusted_score, reverse=True)

        if pressure_report.overall >= 80:
            for index, candidate in enumerate(adjusted):
                if candidate.affordable and candidate.is_storage:
                    if index:
                        adjusted.insert(0, adjusted.pop(index))
                        self.logger.debug("Critical pressure: promoted %s upgrade to the front", candidate.building_key)
                    break

        return adjusted

    # ------------------------------------------------------------------
    # Crop safety
    # ------------------------------------------------------------------
    def crop_safety(self, snapshot: Optional[ResourceSnapshot], troop_upkeep_per_hr: float = 0) -> Optional[CropSafetyReport]:
        if snapshot is None:
            return None

        upkeep = troop_upkeep_per_hr or 0
        production = snapshot.production.get("crop", 0) or 0
        current = snapshot.resources.get("crop", 0) or 0
        capacity = snapshot.capacity_for("crop")
        net = production - upkeep
        fill_ratio = current / capacity if capacity > 0 else 0

        hours_to_starvation = None
        if net < 0:
            hours = current / -net if current > 0 else 0
            hours_to_starvation = round(hours, 2)
            level = "danger" if hours < 2 else "warning"
            action = "upgrade_crop"
        elif net < 5:
            level = "warning"
            action = "monitor"
        else:
            level = "safe"
            action = None

        return CropSafetyReport(
            net_crop=net,
            crop_production=production,
            troop_upkeep=upkeep,
            current_crop=current,
            fill_ratio=round(fill_ratio, 3),
            hours_to_starvation=hours_to_starvation,
            safe_to_train=net > 5 and fill_ratio > 0.1,
            level=level,
            action=action,
        )

    # ------------------------------------------------------------------
    # Farm income
    # ------------------------------------------------------------------
    def record_farm_run(self, farm_id: str, loot: Optional[Dict[str, int]], success: bool = True,
                        now_ms: Optional[int] = None) -> FarmIncomeHistory:
        """Feeds one raid outcome into the farm's moving averages."""
        now_ms = _now_ms() if now_ms is None else now_ms
        success = bool(success and loot)
        history = self.farm_history.get(farm_id)

        if history is None:
            history = FarmIncomeHistory(farm_id=farm_id)
            if success:
                history.ema_loot = {res: _num(loot.get(res)) for res in RESOURCE_TYPES}
            self.farm_history[farm_id] = history
        else:
            interval = now_ms - history.last_run_ms
            if interval > 0:
                if history.ema_interval_ms is None:
                    history.ema_interval_ms = float(interval)
                else:
                    history.ema_interval_ms = EMA_ALPHA * interval + (1 - EMA_ALPHA) * history.ema_interval_ms
            if success:
                if history.successes == 0:
                    history.ema_loot = {res: _num(loot.get(res)) for res in RESOURCE_TYPES}
                else:
                    history.ema_loot = {
                        res: EMA_ALPHA * _num(loot.get(res)) + (1 - EMA_ALPHA) * history.ema_loot.get(res, 0.0)
                        for res in RESOURCE_TYPES
                    }

        history.runs += 1
        if success:
            history.successes += 1
        history.last_run_ms = now_ms
        return history

    def predict_farm_income(self, farm_id: str) -> Optional[FarmIncomePrediction]:
        history = self.farm_history.get(farm_id)
        if history is None or history.runs < 2 or not history.ema_interval_ms:
            return None

        success_rate = history.successes / history.runs
        raids_per_hr = HOUR_MS / history.ema_interval_ms
        income = {
            res: round(history.ema_loot.get(res, 0.0) * raids_per_hr * success_rate, 1)
            for res in RESOURCE_TYPES
        }
        return FarmIncomePrediction(
            farm_id=farm_id,
            runs=history.runs,
            income_per_hr=income,
            total_per_hr=round(sum(income.values()), 1),
            success_rate=round(success_rate, 3),
            interval_ms=round(history.ema_interval_ms),
        )

    def get_all_farm_predictions(self) -> dict:
        farms = []
        income = {res: 0.0 for res in RESOURCE_TYPES}
        for farm_id in self.farm_history:
            prediction = self.predict_farm_income(farm_id)
            if prediction is None:
                continue
            farms.append(prediction)
            for res in RESOURCE_TYPES:
                income[res] += prediction.income_per_hr[res]
        return {
            "farms": farms,
            "income_per_hr": {res: round(value, 1) for res, value in income.items()},
            "total_per_hr": round(sum(income.values()), 1),
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def get_state(self) -> dict:
        return {
            "version": STATE_VERSION,
            "farm_history": {farm_id: h.to_dict() for farm_id, h in self.farm_history.items()},
        }

    def load_state(self, state) -> None:
        if not isinstance(state, dict) or not isinstance(state.get("farm_history"), dict):
            if state is not None:
                self.logger.warning("Ignoring invalid resource intel state")
            return
        if state.get("version") != STATE_VERSION:
            self.logger.warning("Ignoring resource intel state version %s", state.get("version"))
            return

        loaded = {}
        for farm_id, raw in state["farm_history"].items():
            if not isinstance(raw, dict):
                continue
            try:
                loaded[farm_id] = FarmIncomeHistory.from_dict(farm_id, raw)
            except (TypeError, ValueError) as e:
                self.logger.warning("Skipping farm history %s: %s", farm_id, e)
        self.farm_history = loaded
