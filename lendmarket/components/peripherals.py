"""
Peripheral components

Treasury, rate strategy, token implementations, incentives, sentinel,
UI helpers and the configuration engine. Apart from the configuration
engine these are deployed as opaque building blocks: the models keep
their wiring so the validator and tests can read it back.
"""

from typing import Any, Dict, List, Sequence

from ..artifacts import Artifact
from ..constants import PERCENTAGE_FACTOR, ZERO_ADDRESS
from ..exceptions import ConfigurationError, InvalidPriceReading, PreconditionMissing
from ..ledger.addresses import is_zero, normalize, same
from ..ledger.sandbox import Component
from .core import Ownable


class ProtocolDataProvider(Component):

    artifact = Artifact.PROTOCOL_DATA_PROVIDER

    def __init__(self, provider: str):
        self._provider = normalize(provider)

    def ADDRESSES_PROVIDER(self) -> str:
        return self._provider

    def get_all_reserves_tokens(self) -> List[str]:
        pool = self._call(self._provider, "get_pool")
        return self._call(pool, "get_reserves_list")

    def get_reserve_configuration_data(self, asset: str) -> Dict[str, Any]:
        pool = self._call(self._provider, "get_pool")
        return self._call(pool, "get_configuration", asset)


class Collector(Component):
    """Protocol treasury."""

    artifact = Artifact.TREASURY

    def __init__(self, funds_admin: str):
        self._funds_admin = normalize(funds_admin)

    def get_funds_admin(self) -> str:
        return self._funds_admin


class DefaultReserveInterestRateStrategy(Component):
    """Stores per-reserve rate curve parameters, in basis points."""

    artifact = Artifact.INTEREST_RATE_STRATEGY

    def __init__(self, provider: str):
        self._provider = normalize(provider)
        self._params: Dict[str, Dict[str, int]] = {}

    def ADDRESSES_PROVIDER(self) -> str:
        return self._provider

    def set_interest_rate_params(self, asset: str, params: Dict[str, int]) -> None:
        configurator = self._call(self._provider, "get_pool_configurator")
        self._require(same(self.msg_sender, configurator), "caller is not the pool configurator")
        optimal = params.get("optimal_usage_ratio", 0)
        self._require(0 < optimal < PERCENTAGE_FACTOR, "invalid optimal usage ratio", ConfigurationError)
        self._params[normalize(asset)] = dict(params)

    def get_interest_rate_data(self, asset: str) -> Dict[str, int]:
        return dict(self._params.get(normalize(asset), {}))


class TokenImplementation(Component):
    """Shared shape of the interest-bearing and debt token implementations."""

    def __init__(self, pool: str):
        self._pool = normalize(pool)
        self._underlying = ZERO_ADDRESS
        self._symbol = ""

    def POOL(self) -> str:
        return self._pool

    def initialize(self, underlying: str, symbol: str) -> None:
        self._require(is_zero(self._underlying), "token already initialized", ConfigurationError)
        self._underlying = normalize(underlying)
        self._symbol = symbol

    def UNDERLYING_ASSET_ADDRESS(self) -> str:
        return self._underlying

    def symbol(self) -> str:
        return self._symbol


class AToken(TokenImplementation):
    artifact = Artifact.ATOKEN


class VariableDebtToken(TokenImplementation):
    artifact = Artifact.VARIABLE_DEBT_TOKEN


class EmissionManager(Ownable):

    artifact = Artifact.EMISSION_MANAGER

    def __init__(self, owner: str):
        self._init_owner(owner)


class RewardsController(Component):

    artifact = Artifact.REWARDS_CONTROLLER

    def __init__(self, emission_manager: str):
        self._emission_manager = normalize(emission_manager)

    def EMISSION_MANAGER(self) -> str:
        return self._emission_manager


class PriceOracleSentinel(Component):
    """Gates borrows and liquidations on an L2 sequencer uptime feed."""

    artifact = Artifact.PRICE_ORACLE_SENTINEL

    def __init__(self, provider: str, sequencer_oracle: str, grace_period: int):
        self._require(not is_zero(sequencer_oracle), "sequencer oracle is the zero address", PreconditionMissing)
        self._provider = normalize(provider)
        self._sequencer_oracle = normalize(sequencer_oracle)
        self._grace_period = int(grace_period)

    def ADDRESSES_PROVIDER(self) -> str:
        return self._provider

    def get_sequencer_oracle(self) -> str:
        return self._sequencer_oracle

    def get_grace_period(self) -> int:
        return self._grace_period

    def is_borrow_allowed(self) -> bool:
        # Uptime feeds answer 0 while the sequencer is up
        return self._call(self._sequencer_oracle, "latest_answer") == 0


class WrappedTokenGateway(Ownable):

    artifact = Artifact.WRAPPED_TOKEN_GATEWAY

    def __init__(self, wrapped_native: str, owner: str, pool: str):
        self._init_owner(owner)
        self._wrapped_native = normalize(wrapped_native)
        self._pool = normalize(pool)

    def get_weth_address(self) -> str:
        return self._wrapped_native

    def POOL(self) -> str:
        return self._pool


class UiPoolDataProvider(Component):

    artifact = Artifact.UI_POOL_DATA_PROVIDER

    def __init__(self, network_base_token_price_feed: str, market_reference_currency_price_feed: str):
        self._network_feed = normalize(network_base_token_price_feed)
        self._reference_feed = normalize(market_reference_currency_price_feed)

    def network_base_token_price_in_usd_proxy_aggregator(self) -> str:
        return self._network_feed

    def market_reference_currency_price_in_usd_proxy_aggregator(self) -> str:
        return self._reference_feed


class WalletBalanceProvider(Component):

    artifact = Artifact.WALLET_BALANCE_PROVIDER

    def __init__(self):
        pass

    def balance_of(self, user: str, token: str) -> int:
        return self._call(token, "balance_of", user)


class L2Encoder(Component):

    artifact = Artifact.L2_ENCODER

    def __init__(self, pool: str):
        self._pool = normalize(pool)

    def POOL(self) -> str:
        return self._pool


# ══════════════════════════════════════════════════════════════════════
#  CONFIGURATION ENGINE
# ══════════════════════════════════════════════════════════════════════

class ConfigEngine(Component):
    """
    Applies listings to a market.

    Designed to be delegate-called: every downstream call is made with the
    caller's identity, so the caller (a listing payload) must hold the
    pool admin role.
    """

    artifact = Artifact.CONFIG_ENGINE

    def __init__(
        self,
        pool: str,
        pool_configurator: str,
        oracle: str,
        a_token_impl: str,
        variable_debt_token_impl: str,
        rewards_controller: str,
        collector: str,
        rate_strategy: str,
    ):
        self._pool = normalize(pool)
        self._configurator = normalize(pool_configurator)
        self._oracle = normalize(oracle)
        self._a_token_impl = normalize(a_token_impl)
        self._variable_debt_token_impl = normalize(variable_debt_token_impl)
        self._rewards_controller = normalize(rewards_controller)
        self._collector = normalize(collector)
        self._rate_strategy = normalize(rate_strategy)

    def POOL(self) -> str:
        return self._pool

    def POOL_CONFIGURATOR(self) -> str:
        return self._configurator

    def ORACLE(self) -> str:
        return self._oracle

    def list_assets(self, listings: Sequence[Any]) -> None:
        for listing in listings:
            self._require(not is_zero(listing.asset), f"{listing.symbol}: asset address is zero", PreconditionMissing)
            listing.validate()
            answer = self._call(listing.price_feed, "latest_answer")
            self._require(answer > 0, f"{listing.symbol}: invalid price feed answer {answer}", InvalidPriceReading)

        self._call(
            self._oracle,
            "set_asset_sources",
            [listing.asset for listing in listings],
            [listing.price_feed for listing in listings],
        )
        self._call(self._configurator, "init_reserves", [self._init_input(listing) for listing in listings])

        for listing in listings:
            self._call(
                self._configurator,
                "configure_reserve_as_collateral",
                listing.asset,
                listing.ltv,
                listing.liquidation_threshold,
                listing.liquidation_bonus,
            )
            self._call(self._configurator, "set_reserve_borrowing", listing.asset, listing.borrowing_enabled)
            self._call(self._configurator, "set_reserve_factor", listing.asset, listing.reserve_factor)
            self._call(self._configurator, "set_supply_cap", listing.asset, listing.supply_cap)
            self._call(self._configurator, "set_borrow_cap", listing.asset, listing.borrow_cap)
            self._call(self._configurator, "set_debt_ceiling", listing.asset, listing.debt_ceiling)
            self._call(
                self._configurator, "set_liquidation_protocol_fee", listing.asset, listing.liquidation_protocol_fee
            )

    def _init_input(self, listing: Any) -> Dict[str, Any]:
        def pick(value: str, default: str) -> str:
            return default if is_zero(value) else normalize(value)

        return {
            "asset": normalize(listing.asset),
            "symbol": listing.symbol,
            "a_token_impl": pick(listing.a_token_impl, self._a_token_impl),
            "variable_debt_token_impl": pick(listing.variable_debt_token_impl, self._variable_debt_token_impl),
            "strategy": pick(listing.rate_strategy, self._rate_strategy),
            "rate_params": listing.rate_params(),
        }
