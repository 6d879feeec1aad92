"""
Market Report

The durable record of every component deployed for one market. The
orchestrator fills it; every downstream stage reads it.

Invariant: once a field holds a non-zero address it is never replaced by
a different one. Re-runs reuse populated fields instead of redeploying.
"""

import json
import time
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from ..artifacts import Artifact
from ..constants import ZERO_ADDRESS
from ..exceptions import ConfigurationError, ReportOverwriteError
from ..ledger.addresses import is_zero, normalize
from ..logger import get_logger

logger = get_logger(__name__)


def _address(key: str, core: bool, interface: Artifact):
    return field(default=ZERO_ADDRESS, metadata={"key": key, "core": core, "interface": interface})


@dataclass
class MarketReport:
    """
    Component addresses of one market. Serialized keys are the camelCase
    names in each field's metadata.
    """
    pool_addresses_provider_registry: str = _address("poolAddressesProviderRegistry", True, Artifact.POOL_ADDRESSES_PROVIDER_REGISTRY)
    pool_addresses_provider: str = _address("poolAddressesProvider", True, Artifact.POOL_ADDRESSES_PROVIDER)
    protocol_data_provider: str = _address("protocolDataProvider", True, Artifact.PROTOCOL_DATA_PROVIDER)
    pool_implementation: str = _address("poolImplementation", True, Artifact.POOL)
    pool_configurator_implementation: str = _address("poolConfiguratorImplementation", True, Artifact.POOL_CONFIGURATOR)
    acl_manager: str = _address("aclManager", True, Artifact.ACL_MANAGER)
    pool_proxy: str = _address("poolProxy", True, Artifact.POOL)
    pool_configurator_proxy: str = _address("poolConfiguratorProxy", True, Artifact.POOL_CONFIGURATOR)
    treasury: str = _address("treasury", True, Artifact.TREASURY)
    default_interest_rate_strategy: str = _address("defaultInterestRateStrategy", True, Artifact.INTEREST_RATE_STRATEGY)
    a_token_implementation: str = _address("aTokenImplementation", True, Artifact.ATOKEN)
    variable_debt_token_implementation: str = _address("variableDebtTokenImplementation", True, Artifact.VARIABLE_DEBT_TOKEN)
    fallback_oracle: str = _address("fallbackOracle", False, Artifact.FALLBACK_ORACLE)
    aave_oracle: str = _address("aaveOracle", True, Artifact.AAVE_ORACLE)
    price_oracle_sentinel: str = _address("priceOracleSentinel", False, Artifact.PRICE_ORACLE_SENTINEL)
    emission_manager: str = _address("emissionManager", False, Artifact.EMISSION_MANAGER)
    rewards_controller_implementation: str = _address("rewardsControllerImplementation", False, Artifact.REWARDS_CONTROLLER)
    wrapped_token_gateway: str = _address("wrappedTokenGateway", False, Artifact.WRAPPED_TOKEN_GATEWAY)
    ui_pool_data_provider: str = _address("uiPoolDataProvider", False, Artifact.UI_POOL_DATA_PROVIDER)
    wallet_balance_provider: str = _address("walletBalanceProvider", False, Artifact.WALLET_BALANCE_PROVIDER)
    l2_encoder: str = _address("l2Encoder", False, Artifact.L2_ENCODER)
    config_engine: str = _address("configEngine", False, Artifact.CONFIG_ENGINE)

    def __post_init__(self):
        for f in fields(self):
            setattr(self, f.name, normalize(getattr(self, f.name)))

    # -- field access -------------------------------------------------------

    def get(self, name: str) -> str:
        self._check_name(name)
        return getattr(self, name)

    def is_set(self, name: str) -> bool:
        return not is_zero(self.get(name))

    def set(self, name: str, address: str) -> None:
        """Record *address* for *name*. Refuses to replace a different non-zero value."""
        current = self.get(name)
        address = normalize(address)
        if not is_zero(current):
            if current == address:
                return
            raise ReportOverwriteError(
                f"{self.key_of(name)} already recorded as {current}; refusing to overwrite with {address}"
            )
        setattr(self, name, address)

    def missing(self, names: Optional[Iterable[str]] = None) -> List[str]:
        names = list(names) if names is not None else [f.name for f in fields(self)]
        return [name for name in names if not self.is_set(name)]

    def populated(self) -> Dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self) if self.is_set(f.name)}

    def copy(self) -> "MarketReport":
        return MarketReport(**{f.name: getattr(self, f.name) for f in fields(self)})

    @classmethod
    def key_of(cls, name: str) -> str:
        for f in fields(cls):
            if f.name == name:
                return f.metadata["key"]
        raise KeyError(name)

    @classmethod
    def interface_of(cls, name: str) -> Artifact:
        for f in fields(cls):
            if f.name == name:
                return f.metadata["interface"]
        raise KeyError(name)

    @classmethod
    def core_fields(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls) if f.metadata["core"])

    @classmethod
    def peripheral_fields(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls) if not f.metadata["core"])

    def _check_name(self, name: str) -> None:
        if name not in self.__dataclass_fields__:
            raise KeyError(f"unknown market report field {name!r}")

    # -- serialization ------------------------------------------------------

    def to_dict(self) -> Dict[str, str]:
        return {f.metadata["key"]: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarketReport":
        by_key = {f.metadata["key"]: f.name for f in fields(cls)}
        unknown = sorted(set(data) - set(by_key))
        if unknown:
            raise ConfigurationError(f"Unknown market report keys: {', '.join(unknown)}")
        return cls(**{by_key[key]: value for key, value in data.items()})


@dataclass
class TokenReport:
    """Freshly minted test assets, keyed by symbol."""
    tokens: Dict[str, str] = field(default_factory=dict)
    deployer: str = ZERO_ADDRESS
    timestamp: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tokens": dict(self.tokens),
            "deployer": self.deployer,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenReport":
        return cls(
            tokens={symbol: normalize(address) for symbol, address in data.get("tokens", {}).items()},
            deployer=normalize(data.get("deployer", ZERO_ADDRESS)),
            timestamp=int(data.get("timestamp", 0)),
        )


# ══════════════════════════════════════════════════════════════════════
#  STORAGE
# ══════════════════════════════════════════════════════════════════════

class ReportStore:
    """
    Report files of one network.

    Layout:
        <base_dir>/<network>/market-report-<ts>.json          snapshot
        <base_dir>/<network>/market-report-latest.json        last complete run
        <base_dir>/<network>/market-report-<ts>.partial.json  aborted run
        <base_dir>/<network>/tokens-<ts>.json, tokens-latest.json
    """

    MARKET_PREFIX = "market-report"
    TOKENS_PREFIX = "tokens"

    def __init__(self, base_dir: Union[str, Path], network: str):
        self.directory = Path(base_dir) / network
        self.network = network

    @property
    def latest_path(self) -> Path:
        return self.directory / f"{self.MARKET_PREFIX}-latest.json"

    @property
    def latest_tokens_path(self) -> Path:
        return self.directory / f"{self.TOKENS_PREFIX}-latest.json"

    def write(self, report: MarketReport) -> Path:
        """Persist a complete run as a timestamped snapshot plus latest copy."""
        snapshot = self._snapshot_path(self.MARKET_PREFIX, ".json")
        self._dump(snapshot, report.to_dict())
        self._dump(self.latest_path, report.to_dict())
        logger.info("[report] market report written to %s", snapshot)
        return snapshot

    def write_partial(self, report: MarketReport) -> Path:
        """Persist an aborted run; never touches the latest copy."""
        path = self._snapshot_path(self.MARKET_PREFIX, ".partial.json")
        self._dump(path, report.to_dict())
        logger.warning("[report] partial market report written to %s", path)
        return path

    def read(self, path: Optional[Union[str, Path]] = None) -> MarketReport:
        path = Path(path) if path is not None else self.latest_path
        return MarketReport.from_dict(self._load(path))

    def write_tokens(self, tokens: TokenReport) -> Path:
        snapshot = self._snapshot_path(self.TOKENS_PREFIX, ".json")
        self._dump(snapshot, tokens.to_dict())
        self._dump(self.latest_tokens_path, tokens.to_dict())
        logger.info("[report] token report written to %s", snapshot)
        return snapshot

    def read_tokens(self, path: Optional[Union[str, Path]] = None) -> TokenReport:
        path = Path(path) if path is not None else self.latest_tokens_path
        return TokenReport.from_dict(self._load(path))

    def has_latest(self) -> bool:
        return self.latest_path.exists()

    def _snapshot_path(self, prefix: str, suffix: str) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        path = self.directory / f"{prefix}-{stamp}{suffix}"
        counter = 1
        while path.exists():
            path = self.directory / f"{prefix}-{stamp}-{counter}{suffix}"
            counter += 1
        return path

    def _dump(self, path: Path, data: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        tmp.replace(path)

    @staticmethod
    def _load(path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise ConfigurationError(f"Report file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            try:
                return json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Malformed report file {path}: {e}") from e
