"""
Market TOML Configuration Loader

Loads a network's market file with environment variable overrides.
Follows the dataclass + from_dict + from_file pattern of the node config.

Sections:
    [market]      MarketConfig
    [roles]       Roles
    [flags]       DeployFlags
    [[listings]]  static listing table (ListingDescriptor)

Environment variable mapping:
    [market] wrapped_native_token            → WRAPPED_NATIVE_TOKEN
    [market] network_base_token_price_feed   → NETWORK_BASE_TOKEN_PRICE_FEED
    [roles]  pool_admin                      → POOL_ADMIN
    ...

Keys (PRIVATE_KEY) MUST come from env vars, never TOML.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from ..constants import (
    DEFAULT_MARKET_ID,
    DEFAULT_ORACLE_DECIMALS,
    DEFAULT_PROVIDER_ID,
    DEFAULT_SENTINEL_GRACE_PERIOD,
    LENDMARKET_CONFIG,
    ZERO_ADDRESS,
)
from ..exceptions import ConfigurationError, PreconditionMissing
from ..ledger.addresses import is_zero, normalize
from ..logger import get_logger
from ..market.listing import ListingDescriptor
from ..market.roles import Roles

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Environment helpers
# ---------------------------------------------------------------------------

def require_env(name: str, description: str = "") -> str:
    """Value of a mandatory environment variable."""
    value = os.environ.get(name, "").strip()
    if not value:
        hint = f" ({description})" if description else ""
        raise PreconditionMissing(f"Environment variable {name} is required{hint}", missing=[name])
    return value


def require_env_address(name: str, description: str = "") -> str:
    """Mandatory non-zero address from the environment."""
    address = normalize(require_env(name, description))
    if is_zero(address):
        raise PreconditionMissing(f"Environment variable {name} must not be the zero address", missing=[name])
    return address


def env_address(name: str, default: str = ZERO_ADDRESS) -> str:
    """Optional address from the environment."""
    value = os.environ.get(name, "").strip()
    return normalize(value) if value else normalize(default)


def _env_bool(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    return value.strip().casefold() in {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MarketConfig:
    """[market] section. Immutable for the duration of a run."""
    network: str = "local"
    market_id: str = DEFAULT_MARKET_ID
    provider_id: int = DEFAULT_PROVIDER_ID
    wrapped_native_token: str = ZERO_ADDRESS
    oracle_decimals: int = DEFAULT_ORACLE_DECIMALS
    network_base_token_price_feed: str = ZERO_ADDRESS
    market_reference_currency_price_feed: str = ZERO_ADDRESS
    sequencer_uptime_feed: str = ZERO_ADDRESS
    sentinel_grace_period: int = DEFAULT_SENTINEL_GRACE_PERIOD
    salt: Optional[str] = None

    def __post_init__(self):
        for name in (
            "wrapped_native_token",
            "network_base_token_price_feed",
            "market_reference_currency_price_feed",
            "sequencer_uptime_feed",
        ):
            object.__setattr__(self, name, normalize(getattr(self, name)))
        if self.oracle_decimals < 0 or self.oracle_decimals > 18:
            raise ConfigurationError(f"Invalid oracle_decimals: {self.oracle_decimals}")
        if self.provider_id < 1:
            raise ConfigurationError("provider_id must be >= 1")

    @property
    def base_currency_unit(self) -> int:
        return 10 ** self.oracle_decimals

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarketConfig":
        return cls(
            network=data.get("network", "local"),
            market_id=data.get("market_id", DEFAULT_MARKET_ID),
            provider_id=int(data.get("provider_id", DEFAULT_PROVIDER_ID)),
            wrapped_native_token=data.get("wrapped_native_token", ZERO_ADDRESS),
            oracle_decimals=int(data.get("oracle_decimals", DEFAULT_ORACLE_DECIMALS)),
            network_base_token_price_feed=data.get("network_base_token_price_feed", ZERO_ADDRESS),
            market_reference_currency_price_feed=data.get(
                "market_reference_currency_price_feed",
                data.get("network_base_token_price_feed", ZERO_ADDRESS),
            ),
            sequencer_uptime_feed=data.get("sequencer_uptime_feed", ZERO_ADDRESS),
            sentinel_grace_period=int(data.get("sentinel_grace_period", DEFAULT_SENTINEL_GRACE_PERIOD)),
            salt=data.get("salt") or None,
        )

    def with_env(self) -> "MarketConfig":
        """Copy with environment overrides applied."""
        changes: Dict[str, Any] = {}
        if v := os.environ.get("LENDMARKET_NETWORK"):
            changes["network"] = v
        if v := os.environ.get("LENDMARKET_MARKET_ID"):
            changes["market_id"] = v
        for name in (
            "wrapped_native_token",
            "network_base_token_price_feed",
            "market_reference_currency_price_feed",
            "sequencer_uptime_feed",
        ):
            if v := os.environ.get(name.upper()):
                changes[name] = v
        if v := os.environ.get("LENDMARKET_SALT"):
            changes["salt"] = v
        return replace(self, **changes) if changes else self

    def missing(self) -> List[str]:
        required = ["wrapped_native_token", "network_base_token_price_feed"]
        return [name for name in required if is_zero(getattr(self, name))]


@dataclass(frozen=True)
class DeployFlags:
    """[flags] section: optional components."""
    l2: bool = False
    fallback_oracle: bool = True
    price_oracle_sentinel: bool = False
    incentives: bool = True
    gateway: bool = True
    ui_helpers: bool = True
    config_engine: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeployFlags":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown deploy flags: {', '.join(unknown)}")
        return cls(**{k: bool(v) for k, v in data.items()})

    def with_env(self) -> "DeployFlags":
        changes = {}
        for f in fields(self):
            value = _env_bool(f"LENDMARKET_FLAG_{f.name.upper()}")
            if value is not None:
                changes[f.name] = value
        return replace(self, **changes) if changes else self


def _roles_with_env(roles: Roles) -> Roles:
    return Roles(
        market_owner=env_address("MARKET_OWNER", roles.market_owner),
        pool_admin=env_address("POOL_ADMIN", roles.pool_admin),
        emergency_admin=env_address("EMERGENCY_ADMIN", roles.emergency_admin),
        risk_admin=env_address("RISK_ADMIN", roles.risk_admin),
    )


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

@dataclass
class MarketSettings:
    """Everything a network's market file describes."""
    market: MarketConfig = field(default_factory=MarketConfig)
    roles: Roles = field(default_factory=Roles)
    flags: DeployFlags = field(default_factory=DeployFlags)
    listings: List[ListingDescriptor] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarketSettings":
        return cls(
            market=MarketConfig.from_dict(data.get("market", {})),
            roles=Roles.from_dict(data.get("roles", {})),
            flags=DeployFlags.from_dict(data.get("flags", {})),
            listings=[ListingDescriptor.from_dict(item) for item in data.get("listings", [])],
        )

    @classmethod
    def from_file(cls, config_path: str) -> "MarketSettings":
        """
        Load settings from a TOML file.

        Args:
            config_path: Path to the network's market file

        Returns:
            MarketSettings instance with environment overrides applied
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            settings = cls()
            settings.apply_env()
            return settings

        with open(path, "rb") as f:
            try:
                raw = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise ConfigurationError(f"Malformed config file {path}: {e}") from e

        settings = cls.from_dict(raw)
        settings.apply_env()
        return settings

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.market = self.market.with_env()
        self.flags = self.flags.with_env()
        self.roles = _roles_with_env(self.roles)

    def validate(self) -> bool:
        """
        Validate settings before any ledger interaction.

        Raises:
            ConfigurationError: on a malformed listing table
        """
        symbols = [listing.symbol for listing in self.listings]
        duplicates = sorted({s for s in symbols if symbols.count(s) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate listing symbols: {', '.join(duplicates)}")
        for listing in self.listings:
            listing.validate()
        return True


def load_settings(path: Optional[str] = None) -> MarketSettings:
    """
    Load market settings.

    Resolution order:
        1. Explicit *path* argument
        2. LENDMARKET_CONFIG env var / .env
        3. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("LENDMARKET_CONFIG", str(LENDMARKET_CONFIG))
    return MarketSettings.from_file(path)
