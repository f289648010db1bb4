import copy
import json
import os

from strategy.gamestate import GameState


def get_mock_data(file_name):
    """
    Reads a JSON mock data file from the tests/mock_data directory.
    """
    path = os.path.join(os.path.dirname(__file__), 'mock_data', file_name)
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def make_state(**overrides):
    """
    Builds a GameState from a minimal village snapshot; keyword arguments
    replace top-level snapshot keys.
    """
    raw = {
        "village_id": "1001",
        "resources": {"wood": 1000, "clay": 1000, "iron": 1000, "crop": 1000},
        "production": {"wood": 100, "clay": 100, "iron": 100, "crop": 100},
        "resource_fields": [],
        "buildings": [],
        "construction_queue": {"count": 0, "max_count": 1, "items": []},
        "troops": {},
        "hero": {},
    }
    raw.update(copy.deepcopy(overrides))
    return GameState.from_dict(raw)
