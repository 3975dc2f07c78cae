"""
Configuration Loader.

Responsible for reading the config.yaml file and turning its `profile` and
`subscriptions` sections into the models the client expects.
"""
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, List, Tuple

from mqtt_ui_bridge.client.models import ConnectionProfile, SubscriptionSpec

logger = logging.getLogger(__name__)

# Subscribe to everything unless told otherwise.
DEFAULT_SUBSCRIPTIONS = [{"filter": "#", "qos": 0}]


def load_config(config_path: str = "config.yaml") -> Dict[str, Any]:
    """
    Loads the YAML configuration file.
    """
    path = Path(config_path)
    if not path.exists():
        logger.warning(f"Config file not found at {path}. Using defaults.")
        return {}

    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {path}")
            return config
    except Exception as e:
        logger.error(f"Failed to parse config file: {e}")
        raise


def load_profile(config: Dict[str, Any]) -> Tuple[ConnectionProfile, List[SubscriptionSpec]]:
    """
    Builds the connection profile and subscription list from a loaded config.

    Raises ValueError when no profile (or no broker url) is configured.
    """
    profile_conf = config.get("profile") or {}
    if not profile_conf.get("url"):
        raise ValueError("Config has no 'profile.url' to connect to")

    profile = ConnectionProfile.from_dict({
        "id": profile_conf.get("id", "default"),
        "name": profile_conf.get("name", profile_conf["url"]),
        **profile_conf,
    })

    subscriptions_conf = config.get("subscriptions")
    if subscriptions_conf is None:
        subscriptions_conf = DEFAULT_SUBSCRIPTIONS
    subscriptions = [SubscriptionSpec.from_dict(entry) for entry in subscriptions_conf]

    logger.debug(f"Profile '{profile.name}' with {len(subscriptions)} subscription(s)")
    return profile, subscriptions
