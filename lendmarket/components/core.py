"""
Core market components

Python-native models of the administrative surface of the market's core
components: providers registry, addresses provider, upgradeable proxy,
pool and pool configurator. Lending math is out of scope; the pool only
tracks which reserves exist and their configuration.
"""

from typing import Any, Dict, List

from ..artifacts import Artifact
from ..constants import PERCENTAGE_FACTOR, ZERO_ADDRESS
from ..exceptions import AccessDenied, CallReverted, ConfigurationError, PreconditionMissing
from ..ledger.addresses import is_zero, normalize, same
from ..ledger.sandbox import Component


class Ownable(Component):
    """Single-owner access control."""

    def _init_owner(self, owner: str) -> None:
        self._owner = normalize(owner)

    def owner(self) -> str:
        return self._owner

    def transfer_ownership(self, new_owner: str) -> None:
        self._only_owner()
        self._require(not is_zero(new_owner), "new owner is the zero address", PreconditionMissing)
        self._owner = normalize(new_owner)

    def _only_owner(self) -> None:
        self._require(same(self.msg_sender, self._owner), f"caller {self.msg_sender} is not the owner")


class VersionedInitializable(Component):
    """
    One-time initializer per revision.

    The counter sits in storage slot 0, so a JSON-RPC ledger can read it
    even though the contract exposes no getter for it.
    """

    REVISION = 1
    _last_initialized_revision = 0

    def last_initialized_revision(self) -> int:
        return self._last_initialized_revision

    def _initializer(self) -> None:
        self._require(
            self.REVISION > self.last_initialized_revision(),
            "contract instance has already been initialized",
            CallReverted,
        )
        self._last_initialized_revision = self.REVISION


# ══════════════════════════════════════════════════════════════════════
#  PROXY
# ══════════════════════════════════════════════════════════════════════

class UpgradeableProxy(Component):
    """
    Admin-upgradeable proxy.

    Storage lives in the proxy; code comes from the implementation. The
    model keeps a private instance of the implementation's class bound to
    the proxy address and forwards every public function to it.
    """

    artifact = Artifact.PROXY

    def __init__(self, admin: str):
        self._admin = normalize(admin)
        self._implementation = ZERO_ADDRESS
        self._target = None

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        target = self.__dict__.get("_target")
        if target is None:
            raise AttributeError(name)
        return getattr(target, name)

    def implementation(self) -> str:
        return self._implementation

    def admin(self) -> str:
        return self._admin

    def initialize_proxy(self, implementation: str, init_fn: str, init_args: tuple) -> None:
        self._require(same(self.msg_sender, self._admin), "only the proxy admin may initialize")
        self._require(is_zero(self._implementation), "proxy already initialized", CallReverted)
        self._target = self._bind(implementation)
        self._implementation = normalize(implementation)
        self._ledger.invoke(self.address, init_fn, init_args, sender=self.msg_sender)

    def upgrade_to(self, implementation: str) -> None:
        self._require(same(self.msg_sender, self._admin), "only the proxy admin may upgrade")
        previous = self._target
        self._target = self._bind(implementation)
        if previous is not None:
            self._target.__dict__.update(
                {k: v for k, v in previous.__dict__.items() if k not in ("_ledger", "address")}
            )
        self._implementation = normalize(implementation)

    def _bind(self, implementation: str) -> Component:
        impl = self._ledger.component(implementation)
        cls = type(impl)
        target = cls.__new__(cls)
        target._ledger = self._ledger
        target.address = self.address
        target._ctor_args = impl._ctor_args
        cls.__init__(target, *impl._ctor_args)
        return target


# ══════════════════════════════════════════════════════════════════════
#  PROVIDERS REGISTRY
# ══════════════════════════════════════════════════════════════════════

class PoolAddressesProviderRegistry(Ownable):
    """Directory of every market's addresses provider, keyed by id."""

    artifact = Artifact.POOL_ADDRESSES_PROVIDER_REGISTRY

    def __init__(self, owner: str):
        self._init_owner(owner)
        self._ids: Dict[str, int] = {}

    def register_addresses_provider(self, provider: str, provider_id: int) -> None:
        self._only_owner()
        self._require(provider_id != 0, "invalid addresses provider id", ConfigurationError)
        self._require(provider_id not in self._ids.values(), f"provider id {provider_id} already in use", CallReverted)
        self._require(normalize(provider) not in self._ids, "addresses provider already registered", CallReverted)
        self._ids[normalize(provider)] = int(provider_id)

    def unregister_addresses_provider(self, provider: str) -> None:
        self._only_owner()
        self._require(normalize(provider) in self._ids, "addresses provider not registered", CallReverted)
        del self._ids[normalize(provider)]

    def get_addresses_providers_list(self) -> List[str]:
        return list(self._ids)

    def get_addresses_provider_id_by_address(self, provider: str) -> int:
        return self._ids.get(normalize(provider), 0)


# ══════════════════════════════════════════════════════════════════════
#  ADDRESSES PROVIDER
# ══════════════════════════════════════════════════════════════════════

POOL = "POOL"
POOL_CONFIGURATOR = "POOL_CONFIGURATOR"
PRICE_ORACLE = "PRICE_ORACLE"
ACL_MANAGER = "ACL_MANAGER"
ACL_ADMIN = "ACL_ADMIN"
PRICE_ORACLE_SENTINEL = "PRICE_ORACLE_SENTINEL"
DATA_PROVIDER = "DATA_PROVIDER"


class PoolAddressesProvider(Ownable):
    """Resolves named components of one market and owns its proxies."""

    artifact = Artifact.POOL_ADDRESSES_PROVIDER

    def __init__(self, market_id: str, owner: str):
        self._init_owner(owner)
        self._market_id = market_id
        self._addresses: Dict[str, str] = {}

    def get_market_id(self) -> str:
        return self._market_id

    def set_market_id(self, market_id: str) -> None:
        self._only_owner()
        self._market_id = market_id

    def get_address(self, key: str) -> str:
        return self._addresses.get(key, ZERO_ADDRESS)

    def set_address(self, key: str, address: str) -> None:
        self._only_owner()
        self._addresses[key] = normalize(address)

    def get_pool(self) -> str:
        return self.get_address(POOL)

    def set_pool_impl(self, implementation: str) -> None:
        self._only_owner()
        self._update_impl(POOL, implementation)

    def get_pool_configurator(self) -> str:
        return self.get_address(POOL_CONFIGURATOR)

    def set_pool_configurator_impl(self, implementation: str) -> None:
        self._only_owner()
        self._update_impl(POOL_CONFIGURATOR, implementation)

    def get_price_oracle(self) -> str:
        return self.get_address(PRICE_ORACLE)

    def set_price_oracle(self, oracle: str) -> None:
        self.set_address(PRICE_ORACLE, oracle)

    def get_acl_manager(self) -> str:
        return self.get_address(ACL_MANAGER)

    def set_acl_manager(self, acl_manager: str) -> None:
        self.set_address(ACL_MANAGER, acl_manager)

    def get_acl_admin(self) -> str:
        return self.get_address(ACL_ADMIN)

    def set_acl_admin(self, acl_admin: str) -> None:
        self.set_address(ACL_ADMIN, acl_admin)

    def get_price_oracle_sentinel(self) -> str:
        return self.get_address(PRICE_ORACLE_SENTINEL)

    def set_price_oracle_sentinel(self, sentinel: str) -> None:
        self.set_address(PRICE_ORACLE_SENTINEL, sentinel)

    def get_pool_data_provider(self) -> str:
        return self.get_address(DATA_PROVIDER)

    def set_pool_data_provider(self, data_provider: str) -> None:
        self.set_address(DATA_PROVIDER, data_provider)

    def _update_impl(self, key: str, implementation: str) -> None:
        proxy = self.get_address(key)
        if is_zero(proxy):
            proxy = self._create(Artifact.PROXY, self.this)
            self._addresses[key] = proxy
            self._call(proxy, "initialize_proxy", implementation, "initialize", (self.this,))
        else:
            self._call(proxy, "upgrade_to", implementation)


# ══════════════════════════════════════════════════════════════════════
#  POOL
# ══════════════════════════════════════════════════════════════════════

class Pool(VersionedInitializable):
    """Reserve registry of the market. Accounting is not modelled."""

    artifact = Artifact.POOL

    def __init__(self, provider: str):
        self._provider = normalize(provider)
        self._reserves: Dict[str, Dict[str, Any]] = {}
        self._reserves_list: List[str] = []

    def ADDRESSES_PROVIDER(self) -> str:
        return self._provider

    def initialize(self, provider: str) -> None:
        self._require(same(provider, self._provider), "invalid addresses provider", ConfigurationError)
        self._initializer()

    def init_reserve(self, asset: str, a_token: str, variable_debt_token: str, strategy: str) -> None:
        self._only_configurator()
        asset = normalize(asset)
        self._require(asset not in self._reserves, f"reserve {asset} already added", CallReverted)
        self._reserves[asset] = {
            "aToken": normalize(a_token),
            "variableDebtToken": normalize(variable_debt_token),
            "interestRateStrategy": normalize(strategy),
            "configuration": {},
        }
        self._reserves_list.append(asset)

    def set_configuration(self, asset: str, configuration: Dict[str, Any]) -> None:
        self._only_configurator()
        self._reserve(asset)["configuration"] = dict(configuration)

    def get_configuration(self, asset: str) -> Dict[str, Any]:
        return dict(self._reserve(asset)["configuration"])

    def get_reserve_data(self, asset: str) -> Dict[str, Any]:
        data = dict(self._reserve(asset))
        data["configuration"] = dict(data["configuration"])
        return data

    def get_reserves_list(self) -> List[str]:
        return list(self._reserves_list)

    def _reserve(self, asset: str) -> Dict[str, Any]:
        reserve = self._reserves.get(normalize(asset))
        self._require(reserve is not None, f"reserve {asset} not listed", CallReverted)
        return reserve

    def _only_configurator(self) -> None:
        configurator = self._call(self._provider, "get_pool_configurator")
        self._require(same(self.msg_sender, configurator), "caller is not the pool configurator")


class L2Pool(Pool):
    """Pool variant for rollups; calldata compression happens in L2Encoder."""

    artifact = Artifact.L2_POOL


# ══════════════════════════════════════════════════════════════════════
#  POOL CONFIGURATOR
# ══════════════════════════════════════════════════════════════════════

class PoolConfigurator(VersionedInitializable):
    """Role-gated reserve configuration entry point."""

    artifact = Artifact.POOL_CONFIGURATOR

    def __init__(self):
        self._provider = ZERO_ADDRESS
        self._pool = ZERO_ADDRESS

    def initialize(self, provider: str) -> None:
        self._initializer()
        self._provider = normalize(provider)
        self._pool = self._call(self._provider, "get_pool")

    def init_reserves(self, inputs: List[Dict[str, Any]]) -> None:
        self._only_asset_listing_or_pool_admins()
        for item in inputs:
            a_token = self._token_proxy(item["a_token_impl"], item["asset"], "a" + item["symbol"])
            debt_token = self._token_proxy(
                item["variable_debt_token_impl"], item["asset"], "variableDebt" + item["symbol"]
            )
            self._call(self._pool, "init_reserve", item["asset"], a_token, debt_token, item["strategy"])
            self._call(item["strategy"], "set_interest_rate_params", item["asset"], dict(item["rate_params"]))
            self._update(item["asset"], borrowing_enabled=False, active=True)

    def configure_reserve_as_collateral(self, asset: str, ltv: int, liquidation_threshold: int, liquidation_bonus: int) -> None:
        self._only_risk_or_pool_admins()
        self._require(ltv <= liquidation_threshold, "ltv above liquidation threshold", ConfigurationError)
        self._require(liquidation_threshold < PERCENTAGE_FACTOR, "liquidation threshold must be below 100%", ConfigurationError)
        self._require(0 <= liquidation_bonus <= PERCENTAGE_FACTOR, "invalid liquidation bonus", ConfigurationError)
        self._update(asset, ltv=ltv, liquidation_threshold=liquidation_threshold, liquidation_bonus=liquidation_bonus)

    def set_reserve_borrowing(self, asset: str, enabled: bool) -> None:
        self._only_risk_or_pool_admins()
        self._update(asset, borrowing_enabled=bool(enabled))

    def set_reserve_factor(self, asset: str, reserve_factor: int) -> None:
        self._only_risk_or_pool_admins()
        self._require(0 <= reserve_factor <= PERCENTAGE_FACTOR, "invalid reserve factor", ConfigurationError)
        self._update(asset, reserve_factor=reserve_factor)

    def set_supply_cap(self, asset: str, cap: int) -> None:
        self._only_risk_or_pool_admins()
        self._require(cap >= 0, "invalid supply cap", ConfigurationError)
        self._update(asset, supply_cap=cap)

    def set_borrow_cap(self, asset: str, cap: int) -> None:
        self._only_risk_or_pool_admins()
        self._require(cap >= 0, "invalid borrow cap", ConfigurationError)
        self._update(asset, borrow_cap=cap)

    def set_debt_ceiling(self, asset: str, ceiling: int) -> None:
        self._only_risk_or_pool_admins()
        self._require(ceiling >= 0, "invalid debt ceiling", ConfigurationError)
        self._update(asset, debt_ceiling=ceiling)

    def set_liquidation_protocol_fee(self, asset: str, fee: int) -> None:
        self._only_risk_or_pool_admins()
        self._require(0 <= fee <= PERCENTAGE_FACTOR, "invalid liquidation protocol fee", ConfigurationError)
        self._update(asset, liquidation_protocol_fee=fee)

    def _update(self, asset: str, **changes: Any) -> None:
        configuration = self._call(self._pool, "get_configuration", asset)
        configuration.update(changes)
        self._call(self._pool, "set_configuration", asset, configuration)

    def _token_proxy(self, implementation: str, asset: str, symbol: str) -> str:
        proxy = self._create(Artifact.PROXY, self.this)
        self._call(proxy, "initialize_proxy", implementation, "initialize", (asset, symbol))
        return proxy

    def _acl(self) -> str:
        return self._call(self._provider, "get_acl_manager")

    def _only_asset_listing_or_pool_admins(self) -> None:
        acl, sender = self._acl(), self.msg_sender
        allowed = self._call(acl, "is_pool_admin", sender) or self._call(acl, "is_asset_listing_admin", sender)
        if not allowed:
            raise AccessDenied(f"caller {sender} is not an asset listing or pool admin")

    def _only_risk_or_pool_admins(self) -> None:
        acl, sender = self._acl(), self.msg_sender
        allowed = self._call(acl, "is_pool_admin", sender) or self._call(acl, "is_risk_admin", sender)
        if not allowed:
            raise AccessDenied(f"caller {sender} is not a risk or pool admin")
