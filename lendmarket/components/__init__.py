"""
Component models for the sandbox ledger

Python-native stand-ins for the compiled market contracts, keyed by the
artifact id the pipeline deploys them under:
  - core:        registry, addresses provider, pool, configurator, proxy
  - acl:         role-based access control
  - peripherals: treasury, rate strategy, token implementations, incentives,
                 sentinel, UI helpers, configuration engine
  - tokens:      mintable test ERC-20
"""

from ..artifacts import Artifact
from ..market.listing import ListingPayload
from ..market.oracle import FallbackOracle, MarketOracle, PriceFeed
from .acl import ACLManager
from .core import (
    L2Pool,
    Pool,
    PoolAddressesProvider,
    PoolAddressesProviderRegistry,
    PoolConfigurator,
    UpgradeableProxy,
)
from .peripherals import (
    AToken,
    Collector,
    ConfigEngine,
    DefaultReserveInterestRateStrategy,
    EmissionManager,
    L2Encoder,
    PriceOracleSentinel,
    ProtocolDataProvider,
    RewardsController,
    UiPoolDataProvider,
    VariableDebtToken,
    WalletBalanceProvider,
    WrappedTokenGateway,
)
from .tokens import TestnetERC20

SANDBOX_ARTIFACTS = {
    Artifact.POOL_ADDRESSES_PROVIDER_REGISTRY: PoolAddressesProviderRegistry,
    Artifact.POOL_ADDRESSES_PROVIDER: PoolAddressesProvider,
    Artifact.PROTOCOL_DATA_PROVIDER: ProtocolDataProvider,
    Artifact.POOL: Pool,
    Artifact.L2_POOL: L2Pool,
    Artifact.POOL_CONFIGURATOR: PoolConfigurator,
    Artifact.PROXY: UpgradeableProxy,
    Artifact.ACL_MANAGER: ACLManager,
    Artifact.FALLBACK_ORACLE: FallbackOracle,
    Artifact.AAVE_ORACLE: MarketOracle,
    Artifact.PRICE_ORACLE_SENTINEL: PriceOracleSentinel,
    Artifact.TREASURY: Collector,
    Artifact.INTEREST_RATE_STRATEGY: DefaultReserveInterestRateStrategy,
    Artifact.ATOKEN: AToken,
    Artifact.VARIABLE_DEBT_TOKEN: VariableDebtToken,
    Artifact.EMISSION_MANAGER: EmissionManager,
    Artifact.REWARDS_CONTROLLER: RewardsController,
    Artifact.WRAPPED_TOKEN_GATEWAY: WrappedTokenGateway,
    Artifact.UI_POOL_DATA_PROVIDER: UiPoolDataProvider,
    Artifact.WALLET_BALANCE_PROVIDER: WalletBalanceProvider,
    Artifact.L2_ENCODER: L2Encoder,
    Artifact.CONFIG_ENGINE: ConfigEngine,
    Artifact.LISTING_PAYLOAD: ListingPayload,
    Artifact.TESTNET_ERC20: TestnetERC20,
    Artifact.PRICE_FEED: PriceFeed,
}

__all__ = [
    "SANDBOX_ARTIFACTS",
    "ACLManager",
    "AToken",
    "Collector",
    "ConfigEngine",
    "DefaultReserveInterestRateStrategy",
    "EmissionManager",
    "FallbackOracle",
    "L2Encoder",
    "L2Pool",
    "ListingPayload",
    "MarketOracle",
    "Pool",
    "PoolAddressesProvider",
    "PoolAddressesProviderRegistry",
    "PoolConfigurator",
    "PriceFeed",
    "PriceOracleSentinel",
    "ProtocolDataProvider",
    "RewardsController",
    "TestnetERC20",
    "UiPoolDataProvider",
    "UpgradeableProxy",
    "VariableDebtToken",
    "WalletBalanceProvider",
    "WrappedTokenGateway",
]
