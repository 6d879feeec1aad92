"""
Price Oracle Test Suite

Coverage:
  - FallbackOracle: construction guard, single reference price for every
    asset, non-positive readings rejected
  - MarketOracle: base currency, per-asset feeds, fallback delegation,
    access control on source updates
"""

import pytest

from lendmarket.artifacts import Artifact
from lendmarket.constants import FALLBACK_ORACLE_DECIMALS, USD_BASE_CURRENCY, ZERO_ADDRESS
from lendmarket.exceptions import AccessDenied, ConfigurationError, InvalidAggregator, InvalidPriceReading

from conftest import DEPLOYER, ETH_USD, OWNER, POOL_ADMIN, STRANGER, USDX_USD

ASSETS = [
    ZERO_ADDRESS,
    DEPLOYER,
    OWNER,
    STRANGER,
    "0x000000000000000000000000000000000000dEaD",
]


def deploy_feed(deployer, answer):
    return deployer.deploy(Artifact.PRICE_FEED, answer, 8)


# ══════════════════════════════════════════════════════════════════════
#  FALLBACK ORACLE
# ══════════════════════════════════════════════════════════════════════


class TestFallbackOracle:

    def test_zero_reference_feed_is_rejected(self, deployer):
        with pytest.raises(InvalidAggregator, match="invalid aggregator"):
            deployer.deploy(Artifact.FALLBACK_ORACLE, ZERO_ADDRESS)

    def test_negative_reading_fails_for_every_asset(self, deployer):
        oracle = deployer.deploy(Artifact.FALLBACK_ORACLE, deploy_feed(deployer, -1))
        for asset in ASSETS:
            with pytest.raises(InvalidPriceReading, match="invalid price"):
                deployer.query(oracle, "get_asset_price", asset)

    def test_zero_reading_fails(self, deployer):
        oracle = deployer.deploy(Artifact.FALLBACK_ORACLE, deploy_feed(deployer, 0))
        with pytest.raises(InvalidPriceReading):
            deployer.query(oracle, "get_asset_price", OWNER)

    def test_reference_price_for_every_asset(self, deployer):
        oracle = deployer.deploy(Artifact.FALLBACK_ORACLE, deploy_feed(deployer, ETH_USD))
        prices = {asset: deployer.query(oracle, "get_asset_price", asset) for asset in ASSETS}
        assert set(prices.values()) == {ETH_USD}

    def test_tracks_reference_feed_updates(self, deployer):
        feed = deploy_feed(deployer, ETH_USD)
        oracle = deployer.deploy(Artifact.FALLBACK_ORACLE, feed)
        deployer.transact(feed, "set_answer", 2500 * 10 ** 8)
        assert deployer.query(oracle, "get_asset_price", OWNER) == 2500 * 10 ** 8

    def test_fixed_decimals_and_base_currency(self, deployer):
        feed = deploy_feed(deployer, ETH_USD)
        oracle = deployer.deploy(Artifact.FALLBACK_ORACLE, feed)
        assert deployer.query(oracle, "DECIMALS") == FALLBACK_ORACLE_DECIMALS == 8
        assert deployer.query(oracle, "BASE_CURRENCY") == USD_BASE_CURRENCY
        assert deployer.query(oracle, "reference_feed") == feed


# ══════════════════════════════════════════════════════════════════════
#  MARKET ORACLE
# ══════════════════════════════════════════════════════════════════════


class TestMarketOracle:

    @pytest.fixture
    def priced(self, market, deployer, assets):
        """Deployed market plus its oracle and the USDX asset / feed."""
        usdx, usdx_feed = assets["USDX"]
        return market.aave_oracle, usdx, usdx_feed

    def _set_source(self, deployer, oracle, asset, feed):
        # The deployer is not a pool admin; act as the market's pool admin
        call = deployer._call(oracle, "set_asset_sources", ([asset], [feed]))
        deployer.ledger.call(oracle, call, sender=POOL_ADMIN)

    def test_base_currency_unit(self, priced, deployer, market_config):
        oracle, _, _ = priced
        assert deployer.query(oracle, "BASE_CURRENCY") == USD_BASE_CURRENCY
        assert deployer.query(oracle, "BASE_CURRENCY_UNIT") == market_config.base_currency_unit == 10 ** 8
        assert deployer.query(oracle, "get_asset_price", USD_BASE_CURRENCY) == 10 ** 8

    def test_unmapped_asset_uses_fallback(self, priced, deployer):
        oracle, usdx, _ = priced
        assert deployer.query(oracle, "get_source_of_asset", usdx) == ZERO_ADDRESS
        assert deployer.query(oracle, "get_asset_price", usdx) == ETH_USD

    def test_mapped_asset_uses_its_feed(self, priced, deployer):
        oracle, usdx, usdx_feed = priced
        self._set_source(deployer, oracle, usdx, usdx_feed)
        assert deployer.query(oracle, "get_source_of_asset", usdx) == usdx_feed
        assert deployer.query(oracle, "get_asset_price", usdx) == USDX_USD

    def test_non_positive_feed_falls_back(self, priced, deployer):
        oracle, usdx, usdx_feed = priced
        self._set_source(deployer, oracle, usdx, usdx_feed)
        deployer.transact(usdx_feed, "set_answer", -5)
        assert deployer.query(oracle, "get_asset_price", usdx) == ETH_USD

    def test_no_fallback_and_no_feed_fails(self, deployer, eth_feed):
        oracle = deployer.deploy(
            Artifact.AAVE_ORACLE, DEPLOYER, [], [], ZERO_ADDRESS, USD_BASE_CURRENCY, 10 ** 8
        )
        with pytest.raises(InvalidPriceReading, match="no fallback"):
            deployer.query(oracle, "get_asset_price", OWNER)

    def test_mismatched_sources_rejected(self, deployer, eth_feed):
        with pytest.raises(ConfigurationError, match="same length"):
            deployer.deploy(
                Artifact.AAVE_ORACLE, DEPLOYER, [OWNER], [], ZERO_ADDRESS, USD_BASE_CURRENCY, 10 ** 8
            )

    def test_stranger_cannot_set_sources(self, priced, deployer):
        oracle, usdx, usdx_feed = priced
        with pytest.raises(AccessDenied, match="not an asset listing or pool admin"):
            deployer.transact(oracle, "set_asset_sources", [usdx], [usdx_feed])

    def test_assets_prices_batch(self, priced, deployer):
        oracle, usdx, usdx_feed = priced
        self._set_source(deployer, oracle, usdx, usdx_feed)
        assert deployer.query(oracle, "get_assets_prices", [usdx, OWNER]) == [USDX_USD, ETH_USD]
