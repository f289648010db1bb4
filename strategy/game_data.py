"""
Static Travian tables and the formulas built on top of them.

Everything in here is a pure lookup: costs, production and storage curves,
troop statistics, tribe profiles and building prerequisites. The optimizers
and planners receive the GameData class as a collaborator instead of
importing the tables directly, so tests can swap in reduced data sets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional


RESOURCE_TYPES = ("wood", "clay", "iron", "crop")

MAX_LEVEL = 20


def _zero_resources() -> Dict[str, int]:
    return {res: 0 for res in RESOURCE_TYPES}


def _clamp_level(level) -> int:
    try:
        level = int(level)
    except (TypeError, ValueError):
        return 0
    return max(0, min(MAX_LEVEL, level))


@dataclass
class PrerequisiteReport:
    met: bool
    missing: List[Dict[str, int]] = field(default_factory=list)


class GameData:
    """Travian Legends reference data (1x speed)."""

    # Hourly production of a resource field per level, index = level
    PRODUCTION = [
        2, 5, 9, 15, 22, 33, 50, 70, 100, 145, 200,
        280, 375, 495, 635, 800, 1000, 1300, 1600, 2000, 2450,
    ]

    # Warehouse / granary capacity per level, index = level
    STORAGE = [
        800, 1220, 1660, 2120, 2600, 3100, 3620, 4170, 4740, 5340, 5960,
        6620, 7300, 8020, 8780, 9580, 10420, 11300, 12240, 13220, 14240,
    ]

    COST_MULT = 1.28
    TIME_MULT = 1.28

    # Level 0 -> 1 cost, base build time in seconds, category and gid
    BUILDINGS = {
        "woodcutter": {"wood": 40, "clay": 100, "iron": 50, "crop": 60, "time": 260, "category": "resource", "gid": 1},
        "clay_pit": {"wood": 80, "clay": 40, "iron": 80, "crop": 50, "time": 220, "category": "resource", "gid": 2},
        "iron_mine": {"wood": 100, "clay": 80, "iron": 30, "crop": 60, "time": 450, "category": "resource", "gid": 3},
        "crop_field": {"wood": 70, "clay": 90, "iron": 70, "crop": 20, "time": 150, "category": "resource", "gid": 4},
        "sawmill": {"wood": 520, "clay": 380, "iron": 290, "crop": 90, "time": 6000, "category": "bonus", "gid": 5},
        "brickyard": {"wood": 440, "clay": 480, "iron": 320, "crop": 50, "time": 5600, "category": "bonus", "gid": 6},
        "iron_foundry": {"wood": 200, "clay": 450, "iron": 510, "crop": 120, "time": 7200, "category": "bonus", "gid": 7},
        "grain_mill": {"wood": 500, "clay": 440, "iron": 380, "crop": 1240, "time": 4800, "category": "bonus", "gid": 8},
        "bakery": {"wood": 1200, "clay": 1480, "iron": 870, "crop": 1600, "time": 9000, "category": "bonus", "gid": 9},
        "warehouse": {"wood": 130, "clay": 160, "iron": 90, "crop": 40, "time": 2000, "category": "storage", "gid": 10},
        "granary": {"wood": 80, "clay": 100, "iron": 70, "crop": 20, "time": 1600, "category": "storage", "gid": 11},
        "main_building": {"wood": 70, "clay": 40, "iron": 60, "crop": 20, "time": 3000, "category": "infra", "gid": 15},
        "rally_point": {"wood": 110, "clay": 160, "iron": 90, "crop": 70, "time": 2400, "category": "military", "gid": 16},
        "marketplace": {"wood": 80, "clay": 70, "iron": 120, "crop": 70, "time": 3200, "category": "trade", "gid": 17},
        "embassy": {"wood": 180, "clay": 130, "iron": 150, "crop": 80, "time": 4800, "category": "infra", "gid": 18},
        "barracks": {"wood": 210, "clay": 140, "iron": 260, "crop": 120, "time": 3000, "category": "military", "gid": 19},
        "stable": {"wood": 260, "clay": 140, "iron": 220, "crop": 100, "time": 4600, "category": "military", "gid": 20},
        "workshop": {"wood": 460, "clay": 510, "iron": 600, "crop": 320, "time": 6000, "category": "military", "gid": 21},
        "academy": {"wood": 220, "clay": 160, "iron": 90, "crop": 40, "time": 5000, "category": "military", "gid": 22},
        "cranny": {"wood": 40, "clay": 50, "iron": 30, "crop": 10, "time": 500, "category": "defense", "gid": 23},
        "town_hall": {"wood": 1250, "clay": 1110, "iron": 1260, "crop": 600, "time": 15000, "category": "infra", "gid": 24},
        "residence": {"wood": 580, "clay": 460, "iron": 350, "crop": 180, "time": 3800, "category": "expansion", "gid": 25},
        "palace": {"wood": 550, "clay": 800, "iron": 750, "crop": 250, "time": 6600, "category": "expansion", "gid": 26},
        "trade_office": {"wood": 1400, "clay": 1330, "iron": 1200, "crop": 400, "time": 7000, "category": "trade", "gid": 28},
        "wall": {"wood": 120, "clay": 200, "iron": 0, "crop": 80, "time": 2000, "category": "defense", "gid": 31},
        "hero_mansion": {"wood": 700, "clay": 670, "iron": 700, "crop": 240, "time": 5400, "category": "infra", "gid": 37},
    }

    # Resource kind of a field -> building key of that field
    FIELD_KEYS = {
        "wood": "woodcutter",
        "clay": "clay_pit",
        "iron": "iron_mine",
        "crop": "crop_field",
    }

    # Bonus building -> resource it boosts
    BONUS_RESOURCES = {
        "sawmill": "wood",
        "brickyard": "clay",
        "iron_foundry": "iron",
        "grain_mill": "crop",
        "bakery": "crop",
    }

    BONUS_BUILDING_PER_LEVEL = 0.05

    # Defence bonus of the wall in percent, index = level
    WALL_BONUS = [
        0, 3, 6, 9, 12, 15, 19, 23, 27, 32, 37,
        42, 48, 54, 60, 67, 74, 81, 89, 97, 106,
    ]

    # Flat defence per wall level
    WALL_BASE_DEF = {"roman": 10, "teuton": 6, "gaul": 8}

    # Wall gids differ per tribe (city wall, earth wall, palisade)
    WALL_GIDS = (31, 32, 33)

    TROOPS = {
        "roman": {
            "legionnaire": {"attack": 40, "def_inf": 35, "def_cav": 50, "speed": 6, "carry": 50,
                            "cost": {"wood": 120, "clay": 100, "iron": 150, "crop": 30},
                            "upkeep": 1, "time": 1600, "building": "barracks"},
            "praetorian": {"attack": 30, "def_inf": 65, "def_cav": 35, "speed": 5, "carry": 20,
                           "cost": {"wood": 100, "clay": 130, "iron": 160, "crop": 70},
                           "upkeep": 1, "time": 1760, "building": "barracks"},
            "imperian": {"attack": 70, "def_inf": 40, "def_cav": 25, "speed": 7, "carry": 50,
                         "cost": {"wood": 150, "clay": 160, "iron": 210, "crop": 80},
                         "upkeep": 1, "time": 1920, "building": "barracks"},
            "equites_legati": {"attack": 0, "def_inf": 20, "def_cav": 10, "speed": 16, "carry": 0,
                               "cost": {"wood": 140, "clay": 160, "iron": 20, "crop": 40},
                               "upkeep": 2, "time": 1360, "building": "stable"},
            "equites_imperatoris": {"attack": 120, "def_inf": 65, "def_cav": 50, "speed": 14, "carry": 100,
                                    "cost": {"wood": 550, "clay": 440, "iron": 320, "crop": 100},
                                    "upkeep": 3, "time": 2640, "building": "stable"},
            "equites_caesaris": {"attack": 180, "def_inf": 80, "def_cav": 105, "speed": 10, "carry": 70,
                                 "cost": {"wood": 550, "clay": 640, "iron": 800, "crop": 180},
                                 "upkeep": 4, "time": 3520, "building": "stable"},
            "battering_ram": {"attack": 60, "def_inf": 30, "def_cav": 75, "speed": 4, "carry": 0,
                              "cost": {"wood": 900, "clay": 360, "iron": 500, "crop": 180},
                              "upkeep": 3, "time": 4600, "building": "workshop"},
            "senator": {"attack": 50, "def_inf": 40, "def_cav": 30, "speed": 4, "carry": 0,
                        "cost": {"wood": 30750, "clay": 27200, "iron": 45000, "crop": 37500},
                        "upkeep": 5, "time": 90700, "building": "residence"},
        },
        "teuton": {
            "clubswinger": {"attack": 40, "def_inf": 20, "def_cav": 5, "speed": 7, "carry": 60,
                            "cost": {"wood": 95, "clay": 75, "iron": 40, "crop": 40},
                            "upkeep": 1, "time": 1120, "building": "barracks"},
            "spearfighter": {"attack": 10, "def_inf": 35, "def_cav": 60, "speed": 7, "carry": 40,
                             "cost": {"wood": 145, "clay": 70, "iron": 85, "crop": 40},
                             "upkeep": 1, "time": 1360, "building": "barracks"},
            "axefighter": {"attack": 60, "def_inf": 30, "def_cav": 30, "speed": 6, "carry": 50,
                           "cost": {"wood": 130, "clay": 120, "iron": 170, "crop": 70},
                           "upkeep": 1, "time": 1760, "building": "barracks"},
            "scout": {"attack": 0, "def_inf": 10, "def_cav": 5, "speed": 9, "carry": 0,
                      "cost": {"wood": 160, "clay": 100, "iron": 50, "crop": 10},
                      "upkeep": 1, "time": 1120, "building": "stable"},
            "paladin": {"attack": 55, "def_inf": 100, "def_cav": 40, "speed": 10, "carry": 110,
                        "cost": {"wood": 370, "clay": 270, "iron": 290, "crop": 75},
                        "upkeep": 2, "time": 2640, "building": "stable"},
            "teutonic_knight": {"attack": 150, "def_inf": 50, "def_cav": 75, "speed": 9, "carry": 80,
                                "cost": {"wood": 450, "clay": 515, "iron": 480, "crop": 80},
                                "upkeep": 3, "time": 3520, "building": "stable"},
            "ram": {"attack": 65, "def_inf": 30, "def_cav": 80, "speed": 4, "carry": 0,
                    "cost": {"wood": 1000, "clay": 300, "iron": 350, "crop": 200},
                    "upkeep": 3, "time": 4200, "building": "workshop"},
            "chief": {"attack": 40, "def_inf": 60, "def_cav": 40, "speed": 4, "carry": 0,
                      "cost": {"wood": 35500, "clay": 26600, "iron": 25000, "crop": 27200},
                      "upkeep": 4, "time": 70500, "building": "residence"},
        },
        "gaul": {
            "phalanx": {"attack": 15, "def_inf": 40, "def_cav": 50, "speed": 7, "carry": 35,
                        "cost": {"wood": 100, "clay": 130, "iron": 55, "crop": 30},
                        "upkeep": 1, "time": 1360, "building": "barracks"},
            "swordsman": {"attack": 65, "def_inf": 35, "def_cav": 20, "speed": 6, "carry": 45,
                          "cost": {"wood": 140, "clay": 150, "iron": 185, "crop": 60},
                          "upkeep": 1, "time": 1760, "building": "barracks"},
            "pathfinder": {"attack": 0, "def_inf": 20, "def_cav": 10, "speed": 17, "carry": 0,
                           "cost": {"wood": 170, "clay": 150, "iron": 120, "crop": 40},
                           "upkeep": 2, "time": 1360, "building": "stable"},
            "theutates_thunder": {"attack": 90, "def_inf": 25, "def_cav": 40, "speed": 19, "carry": 75,
                                  "cost": {"wood": 350, "clay": 450, "iron": 230, "crop": 60},
                                  "upkeep": 2, "time": 2400, "building": "stable"},
            "druidrider": {"attack": 45, "def_inf": 115, "def_cav": 55, "speed": 16, "carry": 35,
                           "cost": {"wood": 360, "clay": 330, "iron": 280, "crop": 120},
                           "upkeep": 2, "time": 2560, "building": "stable"},
            "haeduan": {"attack": 140, "def_inf": 60, "def_cav": 165, "speed": 13, "carry": 65,
                        "cost": {"wood": 500, "clay": 620, "iron": 675, "crop": 170},
                        "upkeep": 3, "time": 3200, "building": "stable"},
            "ram": {"attack": 50, "def_inf": 30, "def_cav": 105, "speed": 4, "carry": 0,
                    "cost": {"wood": 950, "clay": 555, "iron": 330, "crop": 75},
                    "upkeep": 3, "time": 4600, "building": "workshop"},
            "chieftain": {"attack": 40, "def_inf": 50, "def_cav": 50, "speed": 5, "carry": 0,
                          "cost": {"wood": 30750, "clay": 45400, "iron": 31000, "crop": 37500},
                          "upkeep": 4, "time": 90700, "building": "residence"},
        },
    }

    # Order of units on the training pages, position i <-> input name t{i+1}
    TROOP_ORDER = {
        "roman": ["legionnaire", "praetorian", "imperian", "equites_legati", "equites_imperatoris",
                  "equites_caesaris", "battering_ram", "fire_catapult", "senator", "settler"],
        "teuton": ["clubswinger", "spearfighter", "axefighter", "scout", "paladin",
                   "teutonic_knight", "ram", "catapult", "chief", "settler"],
        "gaul": ["phalanx", "swordsman", "pathfinder", "theutates_thunder", "druidrider",
                 "haeduan", "ram", "trebuchet", "chieftain", "settler"],
    }

    # Units without a stat entry still need a training building
    TROOP_BUILDING_FALLBACK = {
        "fire_catapult": "workshop",
        "catapult": "workshop",
        "trebuchet": "workshop",
        "senator": "residence",
        "chief": "residence",
        "chieftain": "residence",
        "settler": "residence",
    }

    TRIBE_PROFILES = {
        "roman": {"double_build": True, "cranny_mult": 1.0, "best_farmer": "equites_imperatoris",
                  "best_def_inf": "praetorian", "best_def_cav": "equites_caesaris",
                  "best_off": "imperian", "eco_style": "balanced"},
        "teuton": {"double_build": False, "cranny_mult": 0.33, "best_farmer": "clubswinger",
                   "best_def_inf": "spearfighter", "best_def_cav": "paladin",
                   "best_off": "axefighter", "eco_style": "aggressive"},
        "gaul": {"double_build": False, "cranny_mult": 2.0, "best_farmer": "theutates_thunder",
                 "best_def_inf": "phalanx", "best_def_cav": "druidrider",
                 "best_off": "swordsman", "eco_style": "defensive"},
    }

    SETTLER_COST = {"wood": 5800, "clay": 5300, "iron": 7200, "crop": 5500}
    SETTLERS_NEEDED = 3

    BUILDING_NAMES = {
        1: "Woodcutter", 2: "Clay Pit", 3: "Iron Mine", 4: "Cropland",
        5: "Sawmill", 6: "Brickyard", 7: "Iron Foundry", 8: "Grain Mill",
        9: "Bakery", 10: "Warehouse", 11: "Granary", 13: "Smithy",
        14: "Tournament Square", 15: "Main Building", 16: "Rally Point",
        17: "Marketplace", 18: "Embassy", 19: "Barracks", 20: "Stable",
        21: "Workshop", 22: "Academy", 23: "Cranny", 24: "Town Hall",
        25: "Residence", 26: "Palace", 27: "Treasury", 28: "Trade Office",
        29: "Great Barracks", 30: "Great Stable", 34: "Stonemason",
        35: "Brewery", 36: "Trapper", 37: "Hero Mansion", 38: "Great Warehouse",
        39: "Great Granary", 40: "Wonder of the World", 41: "Horse Drinking Trough",
        42: "Water Ditch", 43: "Natarian Wall", 44: "City Wall",
    }

    # gid -> list of (required gid, required level); all must hold
    PREREQUISITES = {
        5: [(15, 5), (1, 10)],
        6: [(15, 5), (2, 10)],
        7: [(15, 5), (3, 10)],
        8: [(15, 5), (4, 5)],
        9: [(15, 5), (8, 5), (4, 10)],
        17: [(15, 1), (10, 1), (11, 1)],
        18: [(15, 1)],
        19: [(15, 3), (16, 1)],
        20: [(22, 5), (19, 3)],
        21: [(15, 5), (22, 10)],
        22: [(15, 3), (19, 3)],
        24: [(15, 10), (22, 10)],
        25: [(15, 5)],
        26: [(15, 5), (18, 1)],
        28: [(15, 10), (17, 20), (20, 10)],
        37: [(15, 3), (16, 1)],
    }

    # ---- Curves ----

    @classmethod
    def production(cls, level) -> int:
        return cls.PRODUCTION[_clamp_level(level)]

    @classmethod
    def storage_capacity(cls, level) -> int:
        return cls.STORAGE[_clamp_level(level)]

    @classmethod
    def production_gain(cls, from_level) -> int:
        """Extra hourly production of one field going from `from_level` to the next level."""
        from_level = _clamp_level(from_level)
        return cls.production(min(from_level + 1, MAX_LEVEL)) - cls.production(from_level)

    @classmethod
    def wall_bonus_percent(cls, level) -> int:
        return cls.WALL_BONUS[_clamp_level(level)]

    # ---- Costs ----

    @classmethod
    def upgrade_cost(cls, building_key: str, from_level) -> Dict[str, int]:
        """
        Resource cost of upgrading `building_key` from `from_level` to the next level.
        Unknown buildings cost nothing.
        """
        base = cls.BUILDINGS.get(building_key)
        if not base:
            return _zero_resources()
        mult = cls.COST_MULT ** _clamp_level(from_level)
        return {res: int(round(base[res] * mult)) for res in RESOURCE_TYPES}

    @staticmethod
    def total_cost(cost: Optional[Dict[str, int]]) -> int:
        if not cost:
            return 0
        return sum(cost.get(res, 0) for res in RESOURCE_TYPES)

    @classmethod
    def construction_time_seconds(cls, building_key: str, from_level, main_building_level=1, server_speed=1) -> int:
        base = cls.BUILDINGS.get(building_key)
        if not base:
            return 0
        mb_factor = max(1 - (main_building_level or 1) * 0.035, 0.1)
        seconds = base["time"] * cls.TIME_MULT ** _clamp_level(from_level) * mb_factor / (server_speed or 1)
        return int(round(seconds))

    # ---- Identifiers ----

    @classmethod
    def gid_to_key(cls, gid) -> Optional[str]:
        try:
            gid = int(gid)
        except (TypeError, ValueError):
            return None
        for key, data in cls.BUILDINGS.items():
            if data["gid"] == gid:
                return key
        if gid in cls.WALL_GIDS:
            return "wall"
        return None

    @classmethod
    def key_to_gid(cls, building_key: str) -> int:
        data = cls.BUILDINGS.get(building_key)
        return data["gid"] if data else 0

    @classmethod
    def building_name(cls, gid) -> str:
        return cls.BUILDING_NAMES.get(gid, f"GID{gid}")

    @classmethod
    def category(cls, building_key: str) -> Optional[str]:
        data = cls.BUILDINGS.get(building_key)
        return data["category"] if data else None

    # ---- Troops ----

    @classmethod
    def unit(cls, tribe: str, unit_key: str) -> Optional[dict]:
        return cls.TROOPS.get(tribe, {}).get(unit_key)

    @classmethod
    def unit_upkeep(cls, unit_key: str) -> int:
        for units in cls.TROOPS.values():
            if unit_key in units:
                return units[unit_key]["upkeep"]
        return 1

    @classmethod
    def tribe_profile(cls, tribe: str) -> Optional[dict]:
        return cls.TRIBE_PROFILES.get(tribe)

    @classmethod
    def input_name(cls, tribe: str, unit_key: str) -> Optional[str]:
        """Training form input name (t1..t10) of a unit."""
        order = cls.TROOP_ORDER.get(tribe, [])
        if unit_key not in order:
            return None
        return f"t{order.index(unit_key) + 1}"

    @classmethod
    def unit_key(cls, tribe: str, input_name: str) -> Optional[str]:
        order = cls.TROOP_ORDER.get(tribe, [])
        if not input_name or not input_name.startswith("t"):
            return None
        try:
            index = int(input_name[1:]) - 1
        except ValueError:
            return None
        if 0 <= index < len(order):
            return order[index]
        return None

    @classmethod
    def troop_options(cls, tribe: str, building: Optional[str] = None) -> List[dict]:
        """Selectable units of a tribe, optionally restricted to one training building."""
        options = []
        for index, key in enumerate(cls.TROOP_ORDER.get(tribe, [])):
            data = cls.unit(tribe, key)
            unit_building = data["building"] if data else cls.TROOP_BUILDING_FALLBACK.get(key, "barracks")
            if building and unit_building != building:
                continue
            options.append({
                "value": f"t{index + 1}",
                "label": key.replace("_", " ").title(),
                "building": unit_building,
                "unit_key": key,
            })
        return options

    # ---- Prerequisites ----

    @classmethod
    def check_prerequisites(cls, gid, buildings: Iterable = (), resource_fields: Iterable = ()) -> PrerequisiteReport:
        """
        Compares the required (gid, level) pairs of a building against what the
        village already has. Buildings are matched by gid, resource fields
        (gid 1-4) by their resource kind.
        """
        try:
            gid = int(gid)
        except (TypeError, ValueError):
            return PrerequisiteReport(met=True)
        requirements = cls.PREREQUISITES.get(gid)
        if not requirements:
            return PrerequisiteReport(met=True)

        field_gids = {res: cls.BUILDINGS[key]["gid"] for res, key in cls.FIELD_KEYS.items()}
        buildings = list(buildings or [])
        resource_fields = list(resource_fields or [])

        missing = []
        for req_gid, req_level in requirements:
            best = 0
            for building in buildings:
                if building.gid == req_gid and building.level > best:
                    best = building.level
            if req_gid <= 4:
                for res_field in resource_fields:
                    if field_gids.get(res_field.kind) == req_gid and res_field.level > best:
                        best = res_field.level
            if best < req_level:
                missing.append({"gid": req_gid, "need": req_level, "have": best})

        return PrerequisiteReport(met=not missing, missing=missing)
