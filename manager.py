import argparse
import json
import logging
import os
import sys

from decision.configmanager import ConfigManager, EngineConfig
from decision.decision_engine import DecisionEngine
from strategy.gamestate import GameState

DEFAULT_CACHE = "cache/decision_state.json"


class VillageManager:
    @staticmethod
    def load_state(path):
        with open(path, "r") as f:
            return GameState.from_dict(json.load(f))

    @staticmethod
    def load_engine_config(config_path, village_id=None):
        logger = logging.getLogger("VillageManager")
        if not os.path.exists(config_path):
            logger.warning("Config %s not found, using engine defaults", config_path)
            return EngineConfig.from_dict({"village_id": village_id})
        return ConfigManager(config_path).get_engine_config(village_id)

    @staticmethod
    def restore(engine, cache_path):
        """Loads persisted cooldowns and farm history into the engine."""
        logger = logging.getLogger("VillageManager")
        if not os.path.exists(cache_path):
            return
        try:
            with open(cache_path, "r") as f:
                cached = json.load(f)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt decision cache %s", cache_path)
            return
        if not isinstance(cached, dict):
            logger.warning("Ignoring malformed decision cache %s", cache_path)
            return
        engine.cooldowns.load_state(cached.get("cooldowns"))
        engine.load_resource_intel_state(cached.get("resource_intel"))

    @staticmethod
    def persist(engine, cache_path):
        directory = os.path.dirname(cache_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(cache_path, "w") as f:
            json.dump({
                "cooldowns": engine.cooldowns.get_state(),
                "resource_intel": engine.get_resource_intel_state(),
            }, f, indent=4)

    @staticmethod
    def parse_option(text):
        """Splits KEY=VALUE; VALUE is read as JSON when it parses, else kept as a string."""
        key, sep, raw = text.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got '{text}'")
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            value = raw
        return key.strip(), value

    @staticmethod
    def decide(state_path, config_path="config.json", village_id=None, cache_path=DEFAULT_CACHE, engine=None,
               options=None):
        logger = logging.getLogger("VillageManager")
        engine = engine or DecisionEngine.with_defaults()
        state = VillageManager.load_state(state_path)
        village_id = village_id or state.village_id
        if options:
            if village_id is None:
                logger.warning("No village id; ignoring --set options")
            else:
                manager = ConfigManager(config_path)
                for key, value in options:
                    manager.update_village_config(village_id, key, value)
        config = VillageManager.load_engine_config(config_path, village_id)

        VillageManager.restore(engine, cache_path)
        tasks = engine.evaluate(state, config, queue=None)
        logger.info("Phase %s, %d task(s)", engine.get_phase(), len(tasks))
        forecast = (engine.get_last_resource_report() or {}).get("forecast")
        if forecast is not None and forecast.first_overflow_ms is not None:
            logger.info("Storage overflows in %.1f h", forecast.first_overflow_ms / 3600000)
        VillageManager.persist(engine, cache_path)
        return tasks


def main(argv=None):
    parser = argparse.ArgumentParser(description="Plan the next tasks for a village snapshot")
    parser.add_argument("state", help="GameState snapshot (JSON)")
    parser.add_argument("--config", default="config.json", help="Bot configuration (JSON)")
    parser.add_argument("--village", default=None, help="Village id to take overrides for")
    parser.add_argument("--cache", default=DEFAULT_CACHE, help="Cooldown and farm history cache")
    parser.add_argument("--set", dest="options", action="append", default=[], metavar="KEY=VALUE",
                        type=VillageManager.parse_option,
                        help="Store a village option in the config before deciding (repeatable)")
    args = parser.parse_args(argv)

    try:
        tasks = VillageManager.decide(args.state, args.config, args.village, args.cache, options=args.options)
    except FileNotFoundError as e:
        logging.getLogger("VillageManager").error("Cannot read %s", e.filename)
        return 1
    except json.JSONDecodeError as e:
        logging.getLogger("VillageManager").error("Invalid JSON input: %s", e)
        return 1

    print(json.dumps([task.to_dict() for task in tasks], indent=4))
    return 0


if __name__ == "__main__":
    logging.basicConfig(stream=sys.stderr)
    sys.exit(main())
