"""
This module defines the task space of the decision engine. Each task kind is
its own class carrying only the parameters that kind needs; `kind` is the
tag the external task queue and executor dispatch on.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import ClassVar, Dict, Optional, Tuple


@dataclass
class Task:
    """Base class for all tasks. Lower priority values are more urgent."""
    priority: int
    village_id: Optional[str]

    kind: ClassVar[str] = ""

    def __repr__(self):
        return f"<Task: {self.kind} {self.params} p{self.priority}>"

    @property
    def params(self) -> Dict:
        base = {f.name for f in fields(Task)}
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name not in base}

    @property
    def target_slot(self) -> Optional[int]:
        """Building slot or field the task targets, if any."""
        return None

    def to_dict(self) -> Dict:
        return {
            "kind": self.kind,
            "params": self.params,
            "priority": self.priority,
            "village_id": self.village_id,
        }


@dataclass
class EmergencyStopTask(Task):
    reason: str
    details: str = ""

    kind: ClassVar[str] = "emergency_stop"


@dataclass
class UpgradeResourceTask(Task):
    field_id: int

    kind: ClassVar[str] = "upgrade_resource"

    @property
    def target_slot(self) -> Optional[int]:
        return self.field_id


@dataclass
class UpgradeBuildingTask(Task):
    slot: int

    kind: ClassVar[str] = "upgrade_building"

    @property
    def target_slot(self) -> Optional[int]:
        return self.slot


@dataclass
class BuildNewTask(Task):
    slot: int
    gid: int
    building_name: Optional[str] = None

    kind: ClassVar[str] = "build_new"

    @property
    def target_slot(self) -> Optional[int]:
        return self.slot


@dataclass
class TrainTroopsTask(Task):
    troop_type: str
    count: int
    building_type: str

    kind: ClassVar[str] = "train_troops"


@dataclass
class SendHeroAdventureTask(Task):
    adventure_count: int
    hero_health: float

    kind: ClassVar[str] = "send_hero_adventure"


@dataclass
class SendFarmTask(Task):
    farm_list_id: Optional[str] = None

    kind: ClassVar[str] = "send_farm"


@dataclass
class SendAttackTask(Task):
    target: Tuple[int, int]
    target_name: str
    troops: Optional[Dict[str, int]] = None

    kind: ClassVar[str] = "send_attack"
