"""
config_loader.py
-----------------
Cached access to config.yaml. The file is read on first use; every tunable
(frequency buckets, thresholds, monthly factors, confidence levels, default
rule path) is looked up here rather than hardcoded.

Blocks:
    recurring_detection       RecurringTransactionDetector
    subscription_projection   SubscriptionProjector
    confidence_levels         RecurringTransactionDetector.confidence_level()
    rule_engine               main.py
"""

import os
import yaml
from typing import Any, Dict


_CONFIG_CACHE: Dict[str, Any] = {}


def load_config(config_path: str | None = None) -> Dict[str, Any]:
    """
    Load and cache the YAML configuration file.

    Args:
        config_path: Path to a config file. Defaults to config.yaml next to
            this module. Ignored once a config is cached.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    global _CONFIG_CACHE

    if _CONFIG_CACHE:
        return _CONFIG_CACHE

    if config_path is None:
        config_path = os.path.join(os.path.dirname(__file__), "config.yaml")

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        _CONFIG_CACHE = yaml.safe_load(f) or {}

    return _CONFIG_CACHE


def _section(name: str) -> Dict[str, Any]:
    config = load_config()
    if name not in config:
        raise KeyError(
            f"Config block '{name}' is missing. "
            f"Available: {list(config.keys())}"
        )
    return config[name]


def get_recurring_detection_config() -> Dict[str, Any]:
    """Gap buckets and detection thresholds."""
    return _section("recurring_detection")


def get_subscription_projection_config() -> Dict[str, Any]:
    """Monthly factors, upcoming-bill window and review threshold."""
    return _section("subscription_projection")


def get_confidence_levels() -> Dict[str, Dict[str, float]]:
    return _section("confidence_levels")


def get_rule_engine_config() -> Dict[str, Any]:
    return _section("rule_engine")


def reset_config() -> None:
    """Clears cached config. Useful for testing."""
    global _CONFIG_CACHE
    _CONFIG_CACHE = {}
