"""
Shared fixtures: a sandbox ledger, a deployer bound to it, and a fully
deployed market with price feeds and test tokens.
"""

import os
import sys

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from lendmarket.artifacts import Artifact
from lendmarket.config.loader import DeployFlags, MarketConfig
from lendmarket.ledger.sandbox import SandboxLedger
from lendmarket.market.deployer import Deployer
from lendmarket.market.listing import ListingDescriptor
from lendmarket.market.orchestrator import MarketOrchestrator
from lendmarket.market.roles import Roles


# ══════════════════════════════════════════════════════════════════════
#  ACCOUNTS / PRICES
# ══════════════════════════════════════════════════════════════════════

DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
OWNER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
POOL_ADMIN = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
EMERGENCY_ADMIN = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"
RISK_ADMIN = "0x15d34AAf54267DB7D7c367839AAf71A00a2C6A65"
GOVERNANCE = "0x9965507D1a55bcC2695C58ba16FB37d819B0A4dc"
STRANGER = "0x976EA74026E726554dB657fA54763abd0C3a0aa9"

ETH_USD = 2000 * 10 ** 8
USDX_USD = 1 * 10 ** 8
WBTC_USD = 60000 * 10 ** 8


def make_listing(symbol: str, asset: str, price_feed: str, **overrides) -> ListingDescriptor:
    """Listing with sensible risk parameters."""
    params = dict(
        symbol=symbol,
        asset=asset,
        price_feed=price_feed,
        optimal_usage_ratio=9000,
        variable_rate_slope1=400,
        variable_rate_slope2=6000,
        ltv=7500,
        liquidation_threshold=7800,
        liquidation_bonus=500,
        reserve_factor=1000,
        supply_cap=1_000_000,
        borrow_cap=900_000,
    )
    params.update(overrides)
    return ListingDescriptor(**params)


# ══════════════════════════════════════════════════════════════════════
#  FIXTURES
# ══════════════════════════════════════════════════════════════════════

@pytest.fixture
def ledger():
    return SandboxLedger(deployer=DEPLOYER)


@pytest.fixture
def deployer(ledger):
    return Deployer(ledger)


@pytest.fixture
def eth_feed(deployer):
    return deployer.deploy(Artifact.PRICE_FEED, ETH_USD, 8)


@pytest.fixture
def weth(deployer):
    return deployer.deploy(Artifact.TESTNET_ERC20, "Wrapped Ether", "WETH", 18, deployer.address)


@pytest.fixture
def market_config(weth, eth_feed):
    return MarketConfig(
        network="sandbox",
        market_id="Sandbox Market",
        wrapped_native_token=weth,
        network_base_token_price_feed=eth_feed,
        market_reference_currency_price_feed=eth_feed,
    )


@pytest.fixture
def roles():
    return Roles(
        market_owner=DEPLOYER,
        pool_admin=POOL_ADMIN,
        emergency_admin=EMERGENCY_ADMIN,
    )


@pytest.fixture
def flags():
    return DeployFlags()


@pytest.fixture
def market(deployer, roles, market_config, flags):
    """A complete market deployed with default flags."""
    return MarketOrchestrator(deployer).run(roles, market_config, flags)


@pytest.fixture
def assets(deployer):
    """Two test assets with their price feeds: {symbol: (asset, feed)}."""
    usdx = deployer.deploy(Artifact.TESTNET_ERC20, "USD X", "USDX", 6, deployer.address)
    wbtc = deployer.deploy(Artifact.TESTNET_ERC20, "Wrapped BTC", "WBTC", 8, deployer.address)
    return {
        "USDX": (usdx, deployer.deploy(Artifact.PRICE_FEED, USDX_USD, 8)),
        "WBTC": (wbtc, deployer.deploy(Artifact.PRICE_FEED, WBTC_USD, 8)),
    }
