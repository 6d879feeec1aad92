"""
Market configuration

Loads a network's market TOML file. Environment variables override TOML
values.
"""

from .loader import (
    DeployFlags,
    MarketConfig,
    MarketSettings,
    env_address,
    load_settings,
    require_env,
    require_env_address,
)

__all__ = [
    "DeployFlags",
    "MarketConfig",
    "MarketSettings",
    "env_address",
    "load_settings",
    "require_env",
    "require_env_address",
]
