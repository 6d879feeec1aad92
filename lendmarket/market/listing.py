"""
Listing Payload

One-shot privileged transaction that lists a fixed set of assets and then
gives up its own POOL_ADMIN role, so a stale payload can never be reused
to alter the market.

Flow (run_listing):
  1. build the listing list from the static table, filling placeholder
     (zero) assets from runtime overrides and token implementations from
     the market report
  2. deploy a ListingPayload holding that list
  3. grant it POOL_ADMIN
  4. execute: list every asset through the config engine, then renounce
     POOL_ADMIN. The ledger applies both halves atomically.
  5. if execution fails, POOL_ADMIN is revoked from the payload before the
     error propagates
"""

from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..artifacts import Artifact
from ..constants import PERCENTAGE_FACTOR, ZERO_ADDRESS
from ..exceptions import AlreadyFinalized, ConfigurationError, LendMarketError, PreconditionMissing
from ..ledger.addresses import is_zero, normalize
from ..ledger.sandbox import Component
from ..logger import get_logger
from .roles import Role

logger = get_logger(__name__)

_ADDRESS_FIELDS = ("asset", "price_feed", "a_token_impl", "variable_debt_token_impl", "rate_strategy")
_BPS_FIELDS = (
    "optimal_usage_ratio",
    "base_variable_borrow_rate",
    "variable_rate_slope1",
    "variable_rate_slope2",
    "liquidation_bonus",
    "reserve_factor",
    "liquidation_protocol_fee",
)


@dataclass(frozen=True)
class ListingDescriptor:
    """
    Per-asset listing configuration. Percentages are basis points.

    Invariants:
        ltv < liquidation_threshold < 100%
        liquidation_bonus, reserve_factor, liquidation_protocol_fee
        and rate parameters within 0..10000
    """
    symbol: str
    asset: str = ZERO_ADDRESS
    price_feed: str = ZERO_ADDRESS
    optimal_usage_ratio: int = 8000
    base_variable_borrow_rate: int = 0
    variable_rate_slope1: int = 400
    variable_rate_slope2: int = 6000
    ltv: int = 0
    liquidation_threshold: int = 0
    liquidation_bonus: int = 0
    reserve_factor: int = 1000
    supply_cap: int = 0
    borrow_cap: int = 0
    debt_ceiling: int = 0
    liquidation_protocol_fee: int = 1000
    borrowing_enabled: bool = True
    a_token_impl: str = ZERO_ADDRESS
    variable_debt_token_impl: str = ZERO_ADDRESS
    rate_strategy: str = ZERO_ADDRESS

    def __post_init__(self):
        for name in _ADDRESS_FIELDS:
            object.__setattr__(self, name, normalize(getattr(self, name)))

    @property
    def is_placeholder(self) -> bool:
        return is_zero(self.asset)

    def validate(self) -> None:
        """Raises ConfigurationError when a risk or rate parameter is out of range."""
        if not self.symbol:
            raise ConfigurationError("Listing symbol cannot be empty")
        if is_zero(self.price_feed):
            raise ConfigurationError(f"{self.symbol}: price feed is the zero address")
        if not (0 <= self.ltv < self.liquidation_threshold < PERCENTAGE_FACTOR):
            raise ConfigurationError(
                f"{self.symbol}: expected ltv < liquidation threshold < {PERCENTAGE_FACTOR}, "
                f"got ltv={self.ltv} liquidation_threshold={self.liquidation_threshold}"
            )
        for name in _BPS_FIELDS:
            value = getattr(self, name)
            if not 0 <= value <= PERCENTAGE_FACTOR:
                raise ConfigurationError(f"{self.symbol}: {name}={value} outside 0..{PERCENTAGE_FACTOR}")
        if self.optimal_usage_ratio == 0:
            raise ConfigurationError(f"{self.symbol}: optimal_usage_ratio must be positive")
        for name in ("supply_cap", "borrow_cap", "debt_ceiling"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{self.symbol}: {name} cannot be negative")

    def rate_params(self) -> Dict[str, int]:
        return {
            "optimal_usage_ratio": self.optimal_usage_ratio,
            "base_variable_borrow_rate": self.base_variable_borrow_rate,
            "variable_rate_slope1": self.variable_rate_slope1,
            "variable_rate_slope2": self.variable_rate_slope2,
        }

    def to_abi(self) -> Tuple[Any, ...]:
        """Config engine ``Listing`` struct, in field order."""
        return (
            self.asset,
            self.symbol,
            self.price_feed,
            (
                self.optimal_usage_ratio,
                self.base_variable_borrow_rate,
                self.variable_rate_slope1,
                self.variable_rate_slope2,
            ),
            1 if self.borrowing_enabled else 0,
            self.ltv,
            self.liquidation_threshold,
            self.liquidation_bonus,
            self.reserve_factor,
            self.supply_cap,
            self.borrow_cap,
            self.debt_ceiling,
            self.liquidation_protocol_fee,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListingDescriptor":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown listing keys for {data.get('symbol', '?')}: {', '.join(unknown)}")
        if "symbol" not in data:
            raise ConfigurationError("Listing entry without symbol")
        return cls(**data)


def placeholders(table: Sequence[ListingDescriptor]) -> List[str]:
    """Symbols whose asset address must be supplied at runtime."""
    return [listing.symbol for listing in table if listing.is_placeholder]


def build_listings(
    table: Sequence[ListingDescriptor],
    report: Any,
    overrides: Optional[Mapping[str, str]] = None,
) -> List[ListingDescriptor]:
    """
    Listing list for one execution.

    Placeholder assets are replaced by ``overrides[symbol]``; non-placeholder
    assets are kept as configured. Token implementations and the rate
    strategy default to the ones recorded in *report*.
    """
    overrides = {symbol: normalize(address) for symbol, address in (overrides or {}).items()}
    listings = []
    for listing in table:
        changes: Dict[str, Any] = {}
        if listing.is_placeholder and listing.symbol in overrides:
            changes["asset"] = overrides[listing.symbol]
        elif listing.symbol in overrides and overrides[listing.symbol] != listing.asset:
            logger.warning("[listing] %s is configured as %s; ignoring override %s",
                           listing.symbol, listing.asset, overrides[listing.symbol])
        if is_zero(listing.a_token_impl):
            changes["a_token_impl"] = report.a_token_implementation
        if is_zero(listing.variable_debt_token_impl):
            changes["variable_debt_token_impl"] = report.variable_debt_token_implementation
        if is_zero(listing.rate_strategy):
            changes["rate_strategy"] = report.default_interest_rate_strategy
        listings.append(replace(listing, **changes))
    return listings


# ══════════════════════════════════════════════════════════════════════
#  ON-LEDGER PAYLOAD
# ══════════════════════════════════════════════════════════════════════

class ListingPayload(Component):
    """Holds a listing list and applies it exactly once."""

    artifact = Artifact.LISTING_PAYLOAD

    def __init__(self, config_engine: str, acl_manager: str, listings: Sequence[ListingDescriptor]):
        self._engine = normalize(config_engine)
        self._acl = normalize(acl_manager)
        self._listings = tuple(listings)
        self._executed = False

    def CONFIG_ENGINE(self) -> str:
        return self._engine

    def get_listings(self) -> List[ListingDescriptor]:
        return list(self._listings)

    def executed(self) -> bool:
        return self._executed

    def execute(self) -> None:
        if not self._call(self._acl, "is_pool_admin", self.this):
            if self._executed:
                raise AlreadyFinalized("listing payload no longer holds POOL_ADMIN")
            raise PreconditionMissing("listing payload does not hold POOL_ADMIN", ["POOL_ADMIN"])
        zero = [listing.symbol for listing in self._listings if is_zero(listing.asset)]
        if zero:
            raise PreconditionMissing(f"asset address is zero for: {', '.join(zero)}", zero)

        self._delegate(self._engine, "list_assets", list(self._listings))
        self._call(self._acl, "renounce_role", Role.POOL_ADMIN, self.this)
        self._executed = True


# ══════════════════════════════════════════════════════════════════════
#  STAGE
# ══════════════════════════════════════════════════════════════════════

@dataclass
class ListingReceipt:
    payload: str
    assets: Dict[str, str] = field(default_factory=dict)
    tx_hash: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"payload": self.payload, "assets": dict(self.assets), "txHash": self.tx_hash}


def execute_payload(deployer, payload: str, acl_manager: str) -> str:
    """
    Execute a deployed payload; returns the transaction hash.

    Raises:
        AlreadyFinalized: the payload has already executed and renounced its role
    """
    if not deployer.query(acl_manager, "is_pool_admin", payload):
        if deployer.query(payload, "executed"):
            raise AlreadyFinalized(f"listing payload {payload} already executed")
        raise PreconditionMissing(f"listing payload {payload} does not hold POOL_ADMIN", ["POOL_ADMIN"])
    receipt = deployer.transact(payload, "execute")
    logger.info("[listing] payload %s executed, POOL_ADMIN renounced", payload)
    return receipt.tx_hash


def revoke_payload(deployer, payload: str, acl_manager: str) -> None:
    """Take POOL_ADMIN back from a payload whose execution failed."""
    try:
        if deployer.query(acl_manager, "is_pool_admin", payload):
            deployer.transact(acl_manager, "remove_pool_admin", payload)
            logger.warning("[listing] execution failed; POOL_ADMIN revoked from payload %s", payload)
    except LendMarketError as e:
        logger.error("[listing] could not revoke POOL_ADMIN from payload %s: %s", payload, e)


def run_listing(
    deployer,
    report,
    table: Sequence[ListingDescriptor],
    overrides: Optional[Mapping[str, str]] = None,
    config_engine: Optional[str] = None,
) -> ListingReceipt:
    """
    List *table* on the market recorded in *report*.

    Args:
        deployer:      acting Deployer; must hold DEFAULT_ADMIN on the ACL manager
        report:        market report (read only)
        table:         static listing table of the network
        overrides:     runtime asset addresses keyed by symbol
        config_engine: engine address overriding the report's

    Raises:
        PreconditionMissing: engine / ACL manager / asset address missing
    """
    engine = normalize(config_engine) if config_engine and not is_zero(config_engine) else report.config_engine
    missing = []
    if is_zero(engine):
        missing.append("configEngine")
    if is_zero(report.acl_manager):
        missing.append("aclManager")
    if missing:
        raise PreconditionMissing(f"Market report lacks: {', '.join(missing)}", missing)
    deployer.require_live("configEngine", engine)
    deployer.require_live("aclManager", report.acl_manager)
    deployer.bind_report(report)
    deployer.bind(engine, Artifact.CONFIG_ENGINE)

    listings = build_listings(table, report, overrides)
    if not listings:
        raise PreconditionMissing("Listing table is empty", ["listings"])
    unresolved = [listing.symbol for listing in listings if listing.is_placeholder]
    if unresolved:
        raise PreconditionMissing(
            f"No asset address supplied for: {', '.join(unresolved)}",
            [f"{symbol}_ADDRESS" for symbol in unresolved],
        )
    for listing in listings:
        listing.validate()

    payload = deployer.deploy(Artifact.LISTING_PAYLOAD, engine, report.acl_manager, listings)
    deployer.transact(report.acl_manager, "add_pool_admin", payload)
    try:
        tx_hash = execute_payload(deployer, payload, report.acl_manager)
    except Exception:
        revoke_payload(deployer, payload, report.acl_manager)
        raise

    return ListingReceipt(
        payload=payload,
        assets={listing.symbol: listing.asset for listing in listings},
        tx_hash=tx_hash,
    )
