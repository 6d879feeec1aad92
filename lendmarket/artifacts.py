"""
Artifact identifiers for every component the pipeline can create.

Values match the compiled contract names so the JSON-RPC ledger can locate
`<artifacts dir>/<Name>.sol/<Name>.json`.
"""

from enum import Enum


class Artifact(str, Enum):
    POOL_ADDRESSES_PROVIDER_REGISTRY = "PoolAddressesProviderRegistry"
    POOL_ADDRESSES_PROVIDER = "PoolAddressesProvider"
    PROTOCOL_DATA_PROVIDER = "AaveProtocolDataProvider"
    POOL = "PoolInstance"
    L2_POOL = "L2PoolInstance"
    POOL_CONFIGURATOR = "PoolConfiguratorInstance"
    PROXY = "InitializableImmutableAdminUpgradeabilityProxy"
    ACL_MANAGER = "ACLManager"
    FALLBACK_ORACLE = "FallbackOracle"
    AAVE_ORACLE = "AaveOracle"
    PRICE_ORACLE_SENTINEL = "PriceOracleSentinel"
    TREASURY = "Collector"
    INTEREST_RATE_STRATEGY = "DefaultReserveInterestRateStrategyV2"
    ATOKEN = "ATokenInstance"
    VARIABLE_DEBT_TOKEN = "VariableDebtTokenInstance"
    EMISSION_MANAGER = "EmissionManager"
    REWARDS_CONTROLLER = "RewardsController"
    WRAPPED_TOKEN_GATEWAY = "WrappedTokenGatewayV3"
    UI_POOL_DATA_PROVIDER = "UiPoolDataProviderV3"
    WALLET_BALANCE_PROVIDER = "WalletBalanceProvider"
    L2_ENCODER = "L2Encoder"
    CONFIG_ENGINE = "AaveV3ConfigEngine"
    LISTING_PAYLOAD = "MarketListingPayload"
    TESTNET_ERC20 = "TestnetERC20"
    PRICE_FEED = "MockAggregator"

    def __str__(self) -> str:
        return self.value
