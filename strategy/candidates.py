"""
This module defines the upgrade candidates the build optimizer produces.
Each variant carries the fields relevant to its kind and knows its cost.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Dict, Optional

from strategy.game_data import GameData


@dataclass
class UpgradeCandidate:
    """Base class for all upgrade candidates."""
    building_key: str
    slot: int
    from_level: int
    score: float
    cost: Dict[str, int]
    reason: str
    affordable: bool = False
    adjusted_score: Optional[float] = None
    rank: int = 0

    kind: ClassVar[str] = ""

    def __repr__(self):
        return f"<{self.__class__.__name__}: {self.building_key} slot {self.slot} {self.from_level}->{self.to_level}>"

    @property
    def to_level(self) -> int:
        return self.from_level + 1

    @property
    def total_cost(self) -> int:
        return GameData.total_cost(self.cost)

    @property
    def effective_score(self) -> float:
        return self.score if self.adjusted_score is None else self.adjusted_score

    @property
    def is_storage(self) -> bool:
        return self.building_key in ("warehouse", "granary")


@dataclass
class ResourceFieldCandidate(UpgradeCandidate):
    """Upgrade of a resource field, scored by return on investment."""
    payback_hours: float = 0.0

    kind: ClassVar[str] = "upgrade_resource"


@dataclass
class BuildingCandidate(UpgradeCandidate):
    """Upgrade of a village building, scored by category utility."""
    kind: ClassVar[str] = "upgrade_building"
