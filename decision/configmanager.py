import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from strategy.game_data import GameData, MAX_LEVEL, RESOURCE_TYPES

logger = logging.getLogger(__name__)


def _parse_int(value, default=0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_bool(value, default=False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _game_day_from_start(value, today: Optional[date] = None) -> Optional[int]:
    """Day number of the server (day 1 is the start date)."""
    if not value:
        return None
    try:
        start = date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.warning(f"Ignoring invalid server_start_date '{value}'")
        return None
    today = today or date.today()
    return max(1, (today - start).days + 1)


@dataclass
class UpgradeTarget:
    enabled: bool = True
    target_level: int = 0
    is_new_build: bool = False
    build_gid: Optional[int] = None

    @classmethod
    def from_dict(cls, raw) -> "UpgradeTarget":
        if not isinstance(raw, dict):
            return cls(enabled=False)
        gid = raw.get("build_gid")
        return cls(
            enabled=_parse_bool(raw.get("enabled"), True),
            target_level=max(0, min(MAX_LEVEL, _parse_int(raw.get("target_level")))),
            is_new_build=_parse_bool(raw.get("is_new_build")),
            build_gid=(_parse_int(gid) or None) if gid is not None else None,
        )


@dataclass
class TroopConfig:
    DEFAULT_THRESHOLD = {"wood": 500, "clay": 500, "iron": 500, "crop": 300}

    default_troop_type: Optional[str] = None
    train_count: int = 5
    min_resource_threshold: Dict[str, int] = field(default_factory=lambda: dict(TroopConfig.DEFAULT_THRESHOLD))
    training_building: Optional[str] = None

    @classmethod
    def from_dict(cls, raw) -> "TroopConfig":
        raw = raw if isinstance(raw, dict) else {}
        threshold = dict(cls.DEFAULT_THRESHOLD)
        if isinstance(raw.get("min_resource_threshold"), dict):
            for res in RESOURCE_TYPES:
                if res in raw["min_resource_threshold"]:
                    threshold[res] = max(0, _parse_int(raw["min_resource_threshold"][res]))
        return cls(
            default_troop_type=raw.get("default_troop_type") or None,
            train_count=max(1, _parse_int(raw.get("train_count"), 5)),
            min_resource_threshold=threshold,
            training_building=raw.get("training_building") or None,
        )


@dataclass
class FarmConfig:
    interval_ms: int = 300000
    min_troops: int = 10
    use_rally_point_farm_list: bool = True
    targets: List[dict] = field(default_factory=list)
    default_troops: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw) -> "FarmConfig":
        raw = raw if isinstance(raw, dict) else {}
        targets = [t for t in (raw.get("targets") or []) if isinstance(t, dict)]
        troops = raw.get("default_troops") if isinstance(raw.get("default_troops"), dict) else {}
        return cls(
            interval_ms=max(0, _parse_int(raw.get("interval_ms"), 300000)),
            min_troops=max(0, _parse_int(raw.get("min_troops"), 10)),
            use_rally_point_farm_list=_parse_bool(raw.get("use_rally_point_farm_list"), True),
            targets=targets,
            default_troops={str(k): _parse_int(v) for k, v in troops.items()},
        )


@dataclass
class HeroConfig:
    min_health: int = 30

    @classmethod
    def from_dict(cls, raw) -> "HeroConfig":
        raw = raw if isinstance(raw, dict) else {}
        return cls(min_health=max(0, min(100, _parse_int(raw.get("min_health"), 30))))


@dataclass
class EngineConfig:
    """Normalized options of one decision cycle."""

    DEFAULTS = {
        "auto_upgrade_resources": False,
        "auto_upgrade_buildings": False,
        "auto_train_troops": False,
        "auto_hero_adventure": False,
        "auto_farm": False,
        "tribe": "roman",
        "server_speed": 1,
        "village_id": None,
        "upgrade_targets": {},
        "troops": {},
        "farm": {},
        "hero": {},
        "game_day": None,
        "server_start_date": None,
        "village_x": None,
        "village_y": None,
        "threat_level": 0,
        "enemies": [],
        "task_cooldowns_ms": {},
    }

    LEGACY_ALIASES = {
        "auto_resource_upgrade": "auto_upgrade_resources",
        "auto_building_upgrade": "auto_upgrade_buildings",
        "auto_troop_training": "auto_train_troops",
        "auto_farming": "auto_farm",
    }

    DEFAULT_GAME_DAY = 15

    auto_upgrade_resources: bool = False
    auto_upgrade_buildings: bool = False
    auto_train_troops: bool = False
    auto_hero_adventure: bool = False
    auto_farm: bool = False
    tribe: str = "roman"
    server_speed: int = 1
    village_id: Optional[str] = None
    upgrade_targets: Dict[int, UpgradeTarget] = field(default_factory=dict)
    troops: Optional[TroopConfig] = None
    farm: FarmConfig = field(default_factory=FarmConfig)
    hero: HeroConfig = field(default_factory=HeroConfig)
    game_day: int = DEFAULT_GAME_DAY
    village_x: Optional[int] = None
    village_y: Optional[int] = None
    threat_level: int = 0
    enemies: List[dict] = field(default_factory=list)
    task_cooldowns_ms: Dict[str, int] = field(default_factory=dict)

    @property
    def origin(self) -> Optional[Dict[str, int]]:
        if self.village_x is None or self.village_y is None:
            return None
        return {"x": self.village_x, "y": self.village_y}

    @classmethod
    def from_dict(cls, raw, today: Optional[date] = None) -> "EngineConfig":
        raw = raw if isinstance(raw, dict) else {}
        merged = dict(cls.DEFAULTS)
        for legacy, current in cls.LEGACY_ALIASES.items():
            if legacy in raw and current not in raw:
                merged[current] = raw[legacy]
        merged.update({k: v for k, v in raw.items() if k not in cls.LEGACY_ALIASES})

        tribe = str(merged.get("tribe") or "roman").lower()
        if tribe not in GameData.TRIBE_PROFILES:
            logger.warning(f"Unknown tribe '{tribe}', falling back to roman")
            tribe = "roman"

        targets = {}
        raw_targets = merged.get("upgrade_targets") if isinstance(merged.get("upgrade_targets"), dict) else {}
        for slot, target in raw_targets.items():
            slot_id = _parse_int(slot, -1)
            if slot_id < 0:
                logger.warning(f"Ignoring upgrade target for invalid slot '{slot}'")
                continue
            targets[slot_id] = UpgradeTarget.from_dict(target)

        game_day = _parse_int(merged.get("game_day"), 0) or None
        if game_day is None:
            game_day = _game_day_from_start(merged.get("server_start_date"), today)

        cooldowns = merged.get("task_cooldowns_ms") if isinstance(merged.get("task_cooldowns_ms"), dict) else {}
        village_id = merged.get("village_id")

        return cls(
            auto_upgrade_resources=_parse_bool(merged["auto_upgrade_resources"]),
            auto_upgrade_buildings=_parse_bool(merged["auto_upgrade_buildings"]),
            auto_train_troops=_parse_bool(merged["auto_train_troops"]),
            auto_hero_adventure=_parse_bool(merged["auto_hero_adventure"]),
            auto_farm=_parse_bool(merged["auto_farm"]),
            tribe=tribe,
            server_speed=max(1, min(10, _parse_int(merged.get("server_speed"), 1))),
            village_id=str(village_id) if village_id is not None else None,
            upgrade_targets=targets,
            troops=TroopConfig.from_dict(merged["troops"]) if merged.get("troops") else None,
            farm=FarmConfig.from_dict(merged.get("farm")),
            hero=HeroConfig.from_dict(merged.get("hero")),
            game_day=game_day or cls.DEFAULT_GAME_DAY,
            village_x=_parse_int(merged["village_x"]) if merged.get("village_x") is not None else None,
            village_y=_parse_int(merged["village_y"]) if merged.get("village_y") is not None else None,
            threat_level=max(0, _parse_int(merged.get("threat_level"))),
            enemies=[e for e in (merged.get("enemies") or []) if isinstance(e, dict)],
            task_cooldowns_ms={str(k): max(0, _parse_int(v)) for k, v in cooldowns.items()},
        )


class ConfigManager:
    _instance = None
    _lock = threading.Lock()

    def __new__(cls, *args, **kwargs):
        if not cls._instance:
            with cls._lock:
                if not cls._instance:
                    cls._instance = super(ConfigManager, cls).__new__(cls)
        return cls._instance

    def __init__(self, config_path='config.json'):
        if not hasattr(self, 'initialized'):
            self.config_path = config_path
            self.config = None
            self.load_config()
            self.initialized = True

    def load_config(self):
        """Loads the engine configuration from the JSON file."""
        with self._lock:
            try:
                with open(self.config_path, 'r') as f:
                    self.config = json.load(f)
                logger.debug(f"Configuration loaded from {self.config_path}")
            except FileNotFoundError:
                logger.error(f"Config file not found at {self.config_path}")
                raise
            except json.JSONDecodeError:
                logger.error(f"Error decoding JSON from {self.config_path}")
                raise

    def save_config(self):
        """Writes the configuration through a temporary file so readers never see a partial file."""
        tmp_path = f"{self.config_path}.tmp"
        with self._lock:
            try:
                with open(tmp_path, 'w') as f:
                    json.dump(self.config, f, indent=4)
                os.replace(tmp_path, self.config_path)
                logger.debug(f"Configuration saved to {self.config_path}")
            except OSError as e:
                logger.error(f"Could not write config file {self.config_path}: {e}")
                raise

    def get_config(self):
        return self.config

    def get_engine_config(self, village_id=None, today: Optional[date] = None) -> EngineConfig:
        """
        Builds the EngineConfig for a village: the global "engine" section
        overridden by the village's entry under "villages".
        """
        if not self.config:
            self.load_config()

        merged = dict(self.config.get("engine") or {})
        if village_id is not None:
            village_id_str = str(village_id)
            override = (self.config.get("villages") or {}).get(village_id_str)
            if override is None:
                logger.debug(f"No village override for {village_id_str}; using engine defaults")
            elif isinstance(override, dict):
                merged.update(override)
            merged["village_id"] = village_id_str
        return EngineConfig.from_dict(merged, today=today)

    def update_village_config(self, village_id, key, value) -> bool:
        """
        Sets one option in a village's override section, creating the section
        on first use, and saves the file. Returns False when nothing changed.
        """
        if self.config is None:
            self.load_config()

        village_id_str = str(village_id)
        villages = self.config.setdefault("villages", {})
        override = villages.get(village_id_str)
        if not isinstance(override, dict):
            override = villages[village_id_str] = {}

        if key in override and override[key] == value:
            logger.debug(f"No change needed for village {village_id_str}, key '{key}'")
            return False

        override[key] = value
        logger.info(f"Village {village_id_str}: set '{key}' to {value!r}")
        self.save_config()
        return True
