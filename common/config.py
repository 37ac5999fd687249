import os
import json
import logging

logger = logging.getLogger("Config")

FARM_API_BASE_URL = os.getenv("FARM_API_BASE_URL", "http://localhost:8000")
FARM_API_TOKEN = os.getenv("FARM_API_TOKEN")

POLL_INTERVAL_S = float(os.getenv("POLL_INTERVAL_S", 5.0))
FETCH_TIMEOUT_S = float(os.getenv("FETCH_TIMEOUT_S", 3.0))
MAX_CONCURRENT_FETCHES = int(os.getenv("MAX_CONCURRENT_FETCHES", 8))
ROSTER_REFRESH_S = float(os.getenv("ROSTER_REFRESH_S", 60.0))

FAN_MAX_HZ = 50.0
DEFAULT_FAN_START_HZ = float(os.getenv("DEFAULT_FAN_START_HZ", 25.0))

MQTT_TOPIC_PREFIX = os.getenv("MQTT_TOPIC_PREFIX", "farms")
ACTUATOR_MEASUREMENT = "actuator_commands"

HTTP_HOST = os.getenv("HTTP_HOST", "0.0.0.0")
HTTP_PORT = int(os.getenv("HTTP_PORT", 5000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

SYSTEM_CONFIG_PATH = os.getenv("SYSTEM_CONFIG_PATH", "system_config.json")


def load_system_config(path=SYSTEM_CONFIG_PATH):
    try:
        with open(path, "r") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.info(f"No system config at {path}, using environment only")
    except (OSError, ValueError) as e:
        logger.error(f"Error loading system config from {path}: {e}")
    return {"farms": []}


def get_config(key: str, system_config: dict, farm_id=None, default=None):
    """
    Retrieve config value with precedence:
    1. Farm-specific config (system_config['farms'][n]['config'])
    2. Global defaults (system_config['defaults'])
    3. The supplied default
    """
    if farm_id is not None:
        for farm in system_config.get("farms", []):
            if farm.get("id") == farm_id:
                if "config" in farm and key in farm["config"]:
                    return farm["config"][key]

    if "defaults" in system_config and key in system_config["defaults"]:
        return system_config["defaults"][key]

    return default
