"""
This module defines the GameState snapshot, the centralized data model for
everything observed about a single village during one decision cycle. It is
populated by the page scanner and then handed to the optimizers and the
decision engine, which only read from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from strategy.game_data import GameData, RESOURCE_TYPES, _zero_resources


def _parse_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _parse_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _parse_bool(value, default=False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _parse_resources(raw) -> Dict[str, int]:
    resources = _zero_resources()
    if isinstance(raw, dict):
        for res in RESOURCE_TYPES:
            resources[res] = _parse_int(raw.get(res))
    return resources


def _as_list(raw) -> list:
    return raw if isinstance(raw, list) else []


@dataclass
class ResourceField:
    slot_id: int
    kind: str
    level: int = 0
    is_upgrading: bool = False

    @property
    def building_key(self) -> str:
        return GameData.FIELD_KEYS.get(self.kind, "")

    @classmethod
    def from_dict(cls, raw: dict) -> "ResourceField":
        kind = raw.get("kind") or raw.get("type") or ""
        return cls(
            slot_id=_parse_int(raw.get("slot_id", raw.get("id"))),
            kind=kind if kind in RESOURCE_TYPES else "",
            level=_parse_int(raw.get("level")),
            is_upgrading=_parse_bool(raw.get("is_upgrading")),
        )


@dataclass
class Building:
    slot_id: int
    gid: int = 0
    level: int = 0
    is_upgrading: bool = False
    is_empty: bool = False

    @property
    def key(self) -> Optional[str]:
        return GameData.gid_to_key(self.gid)

    @classmethod
    def from_dict(cls, raw: dict) -> "Building":
        gid = _parse_int(raw.get("gid"))
        if not gid and raw.get("kind"):
            gid = GameData.key_to_gid(raw.get("kind"))
        return cls(
            slot_id=_parse_int(raw.get("slot_id", raw.get("slot"))),
            gid=gid,
            level=_parse_int(raw.get("level")),
            is_upgrading=_parse_bool(raw.get("is_upgrading")),
            is_empty=_parse_bool(raw.get("is_empty"), default=not gid),
        )


@dataclass
class QueueItem:
    remaining_ms: int = 0
    cost: Optional[Dict[str, int]] = None

    @classmethod
    def from_dict(cls, raw: dict) -> "QueueItem":
        if "remaining_ms" in raw:
            remaining = _parse_int(raw.get("remaining_ms"))
        else:
            remaining = _parse_int(raw.get("remaining_sec")) * 1000
        cost = _parse_resources(raw["cost"]) if isinstance(raw.get("cost"), dict) else None
        return cls(remaining_ms=remaining, cost=cost)


@dataclass
class ConstructionQueue:
    count: int = 0
    max_count: int = 1
    items: List[QueueItem] = field(default_factory=list)

    @property
    def is_full(self) -> bool:
        return self.count >= self.max_count

    @classmethod
    def from_dict(cls, raw) -> "ConstructionQueue":
        if not isinstance(raw, dict):
            return cls()
        items = [QueueItem.from_dict(item) for item in _as_list(raw.get("items")) if isinstance(item, dict)]
        return cls(
            count=_parse_int(raw.get("count", len(items))),
            max_count=_parse_int(raw.get("max_count", 1)) or 1,
            items=items,
        )


@dataclass
class Hero:
    is_home: bool = False
    is_away: bool = False
    is_dead: bool = False
    health: float = 0.0
    has_adventure: bool = False
    adventure_count: int = 0

    @classmethod
    def from_dict(cls, raw) -> "Hero":
        if not isinstance(raw, dict):
            return cls()
        adventure_count = _parse_int(raw.get("adventure_count"))
        return cls(
            is_home=_parse_bool(raw.get("is_home")),
            is_away=_parse_bool(raw.get("is_away")),
            is_dead=_parse_bool(raw.get("is_dead")),
            health=_parse_float(raw.get("health")),
            has_adventure=_parse_bool(raw.get("has_adventure"), default=adventure_count > 0),
            adventure_count=adventure_count,
        )


@dataclass
class GameState:
    """
    Represents the observed state of a village at a specific point in time.
    Missing or malformed fields parse to zero / empty values.
    """
    village_id: Optional[str] = None
    timestamp: int = 0

    # --- Resources ---
    resources: Dict[str, int] = field(default_factory=_zero_resources)
    production: Dict[str, int] = field(default_factory=_zero_resources)
    # Explicit capacities reported by the page, 0 when unknown
    capacity: Dict[str, int] = field(default_factory=lambda: {"warehouse": 0, "granary": 0})
    # Storage level hints, used when no warehouse/granary building is visible
    storage: Dict[str, int] = field(default_factory=dict)

    # --- Buildings ---
    resource_fields: List[ResourceField] = field(default_factory=list)
    buildings: List[Building] = field(default_factory=list)
    construction_queue: ConstructionQueue = field(default_factory=ConstructionQueue)

    # --- Troops ---
    troops: Dict[str, int] = field(default_factory=dict)
    outgoing_raids: int = 0

    # --- Village status ---
    hero: Hero = field(default_factory=Hero)
    villages: List[dict] = field(default_factory=list)
    farm_lists: List[dict] = field(default_factory=list)
    population: int = 0
    last_farm_time: int = 0

    # --- Safety flags ---
    logged_in: bool = True
    captcha_present: bool = False
    error_page: bool = False

    def __repr__(self):
        return f"<GameState for Village {self.village_id} at {self.timestamp}>"

    @classmethod
    def from_dict(cls, raw: Optional[dict]) -> "GameState":
        if not isinstance(raw, dict):
            return cls()

        capacity_raw = raw.get("capacity") if isinstance(raw.get("capacity"), dict) else {}
        storage_raw = raw.get("storage") if isinstance(raw.get("storage"), dict) else {}
        troops_raw = raw.get("troops") if isinstance(raw.get("troops"), dict) else {}
        movements = raw.get("troop_movements") if isinstance(raw.get("troop_movements"), dict) else {}

        return cls(
            village_id=raw.get("village_id"),
            timestamp=_parse_int(raw.get("timestamp")),
            resources=_parse_resources(raw.get("resources")),
            production=_parse_resources(raw.get("production")),
            capacity={
                "warehouse": _parse_int(capacity_raw.get("warehouse")),
                "granary": _parse_int(capacity_raw.get("granary")),
            },
            storage={key: _parse_int(storage_raw.get(key)) for key in ("warehouse", "granary") if key in storage_raw},
            resource_fields=[ResourceField.from_dict(f) for f in _as_list(raw.get("resource_fields")) if isinstance(f, dict)],
            buildings=[Building.from_dict(b) for b in _as_list(raw.get("buildings")) if isinstance(b, dict)],
            construction_queue=ConstructionQueue.from_dict(raw.get("construction_queue")),
            troops={unit: _parse_int(count) for unit, count in troops_raw.items()},
            outgoing_raids=_parse_int(movements.get("outgoing")),
            hero=Hero.from_dict(raw.get("hero")),
            villages=_as_list(raw.get("villages")),
            farm_lists=_as_list(raw.get("farm_lists")),
            population=_parse_int(raw.get("population")),
            last_farm_time=_parse_int(raw.get("last_farm_time")),
            logged_in=_parse_bool(raw.get("logged_in"), default=True),
            captcha_present=_parse_bool(raw.get("captcha_present")),
            error_page=_parse_bool(raw.get("error_page")),
        )

    # --- Derived views ---

    def highest_level(self, gid: int) -> int:
        levels = [b.level for b in self.buildings if b.gid == gid]
        return max(levels) if levels else 0

    def storage_levels(self) -> Tuple[int, int]:
        """
        Warehouse and granary levels: highest visible building, else the
        storage hint, else 1.
        """
        warehouse = self.highest_level(10) or self.storage.get("warehouse", 0) or 1
        granary = self.highest_level(11) or self.storage.get("granary", 0) or 1
        return warehouse, granary

    def capacity_for(self, resource: str) -> int:
        store = "granary" if resource == "crop" else "warehouse"
        explicit = self.capacity.get(store, 0)
        if explicit > 0:
            return explicit
        warehouse, granary = self.storage_levels()
        return GameData.storage_capacity(granary if resource == "crop" else warehouse)

    @property
    def main_building_level(self) -> int:
        return self.highest_level(15)

    @property
    def max_building_level(self) -> int:
        levels = [b.level for b in self.buildings] + [f.level for f in self.resource_fields]
        return max(levels) if levels else 0

    @property
    def army_size(self) -> int:
        return sum(count for count in self.troops.values() if count > 0)

    def first_empty_slot(self) -> Optional[int]:
        for building in self.buildings:
            if building.is_empty:
                return building.slot_id
        return None

    def building_in_slot(self, slot_id: int) -> Optional[Building]:
        for building in self.buildings:
            if building.slot_id == slot_id:
                return building
        return None

    def can_afford(self, cost: Dict[str, int]) -> bool:
        return all(self.resources.get(res, 0) >= cost.get(res, 0) for res in RESOURCE_TYPES)
