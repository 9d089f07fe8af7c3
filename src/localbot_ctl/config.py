import logging
from pathlib import Path

import yaml
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

_CONFIG_DIR = "/var/lib/clawdbot/workspace/config"


class Settings(BaseSettings):
    plugin_config_path: str = f"{_CONFIG_DIR}/localbot-ctl.yaml"
    endpoints_path: str = f"{_CONFIG_DIR}/inference-endpoints.json"
    models_path: str = f"{_CONFIG_DIR}/localbot-models.json"
    rooms_path: str = f"{_CONFIG_DIR}/localbot-rooms.json"
    state_dir: str = "/var/lib/clawdbot"
    controller_script: str = "/var/lib/clawdbot/workspace/wechsler-llm/wechsler.sh"
    controller_workdir: str = ""
    probe_timeout_seconds: float = 5.0
    status_timeout_seconds: float = 15.0
    switch_timeout_seconds: float = 180.0
    log_level: str = "INFO"

    model_config = {"env_prefix": "LOCALBOT_"}


settings = Settings()

# Plugin config keys (camelCase, as written by the host) -> Settings fields
PLUGIN_CONFIG_KEYS = {
    "endpointsPath": "endpoints_path",
    "modelsPath": "models_path",
    "roomsPath": "rooms_path",
    "stateDir": "state_dir",
    "controllerScript": "controller_script",
}


def load_plugin_config(path: str | None = None) -> dict:
    """Load the optional YAML plugin config. Missing or invalid files yield {}."""
    config_path = Path(path or settings.plugin_config_path)
    if not config_path.exists():
        return {}
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Could not load plugin config from %s: %s", config_path, e)
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring plugin config %s: top level is not a mapping", config_path)
        return {}
    return data


def apply_plugin_config(base: Settings, plugin_config: dict) -> Settings:
    """Return a copy of ``base`` with path overrides from the plugin config applied."""
    updates = {}
    for key, field_name in PLUGIN_CONFIG_KEYS.items():
        value = plugin_config.get(key)
        if isinstance(value, str) and value.strip():
            updates[field_name] = value.strip()
    if not updates:
        return base
    return base.model_copy(update=updates)
