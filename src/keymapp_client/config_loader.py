"""
Configuration Loader.

Responsible for reading the client's config.yaml (broker address, RPC topics,
timeouts, log level).
"""
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Union

logger = logging.getLogger(__name__)

def load_config(config_path: Union[str, Path] = "config.yaml") -> Dict[str, Any]:
    """
    Loads the YAML configuration file. A missing file yields an empty
    config so every component falls back to its defaults.
    """
    path = Path(config_path)
    if not path.exists():
        logger.warning(f"Config file not found at {path}. Using defaults.")
        return {}

    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse config file: {e}")
        raise

    if not isinstance(config, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(config).__name__}")
    logger.info(f"Loaded configuration from {path}")
    return config
