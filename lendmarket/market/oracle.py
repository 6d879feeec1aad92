"""
Price Oracle Subsystem

  - PriceFeed:      Chainlink-style aggregator (latest_answer / decimals)
  - FallbackOracle: single reference price for every asset
  - MarketOracle:   per-asset feeds, delegating to the fallback when an
                    asset has no feed or its feed reports a non-positive value

The fallback quotes every asset at the reference feed's price. This is an
interim mechanism for networks without dedicated feeds; listing and
validation rely on it answering for unknown assets, so it must not start
discriminating by asset.
"""

from typing import Dict, List, Sequence

from ..artifacts import Artifact
from ..constants import FALLBACK_ORACLE_DECIMALS, USD_BASE_CURRENCY, ZERO_ADDRESS
from ..exceptions import AccessDenied, ConfigurationError, InvalidAggregator, InvalidPriceReading
from ..ledger.addresses import is_zero, normalize, same
from ..ledger.sandbox import Component
from ..logger import get_logger

logger = get_logger(__name__)


class PriceFeed(Component):
    """Settable aggregator for test networks and the sandbox."""

    artifact = Artifact.PRICE_FEED

    def __init__(self, answer: int, decimals: int = 8):
        self._answer = int(answer)
        self._decimals = int(decimals)

    def latest_answer(self) -> int:
        return self._answer

    def decimals(self) -> int:
        return self._decimals

    def set_answer(self, answer: int) -> None:
        self._answer = int(answer)


class FallbackOracle(Component):
    """
    Fallback price source.

    Initialized with exactly one reference feed (the network's base
    currency / USD feed). Quotes in USD (zero-address tag) with 8 decimals.
    """

    artifact = Artifact.FALLBACK_ORACLE

    def __init__(self, reference_feed: str):
        if is_zero(reference_feed):
            raise InvalidAggregator("invalid aggregator")
        self._reference_feed = normalize(reference_feed)

    def DECIMALS(self) -> int:
        return FALLBACK_ORACLE_DECIMALS

    def BASE_CURRENCY(self) -> str:
        return USD_BASE_CURRENCY

    def reference_feed(self) -> str:
        return self._reference_feed

    def get_asset_price(self, asset: str) -> int:
        # The asset argument is intentionally unused
        price = self._call(self._reference_feed, "latest_answer")
        if price <= 0:
            raise InvalidPriceReading(f"invalid price {price} from reference feed {self._reference_feed}")
        return price


class MarketOracle(Component):
    """
    Primary oracle of a market.

    Args:
        provider: addresses provider, used to resolve the ACL manager
        assets / sources: initial per-asset feeds (equal length)
        fallback_oracle: consulted when a feed is missing or invalid; may be zero
        base_currency: quote currency tag (zero address for USD)
        base_currency_unit: price of the base currency in itself (10 ** decimals)
    """

    artifact = Artifact.AAVE_ORACLE

    def __init__(
        self,
        provider: str,
        assets: Sequence[str],
        sources: Sequence[str],
        fallback_oracle: str,
        base_currency: str,
        base_currency_unit: int,
    ):
        self._provider = normalize(provider)
        self._sources: Dict[str, str] = {}
        self._fallback = normalize(fallback_oracle)
        self._base_currency = normalize(base_currency)
        self._base_currency_unit = int(base_currency_unit)
        self._set_sources(assets, sources)

    def ADDRESSES_PROVIDER(self) -> str:
        return self._provider

    def BASE_CURRENCY(self) -> str:
        return self._base_currency

    def BASE_CURRENCY_UNIT(self) -> int:
        return self._base_currency_unit

    def get_source_of_asset(self, asset: str) -> str:
        return self._sources.get(normalize(asset), ZERO_ADDRESS)

    def get_fallback_oracle(self) -> str:
        return self._fallback

    def set_asset_sources(self, assets: Sequence[str], sources: Sequence[str]) -> None:
        self._only_asset_listing_or_pool_admins()
        self._set_sources(assets, sources)

    def set_fallback_oracle(self, fallback_oracle: str) -> None:
        self._only_asset_listing_or_pool_admins()
        self._fallback = normalize(fallback_oracle)

    def get_asset_price(self, asset: str) -> int:
        asset = normalize(asset)
        if same(asset, self._base_currency):
            return self._base_currency_unit

        source = self._sources.get(asset, ZERO_ADDRESS)
        if not is_zero(source):
            price = self._call(source, "latest_answer")
            if price > 0:
                return price
            logger.debug("feed %s for %s answered %s, using fallback", source, asset, price)
        return self._from_fallback(asset)

    def get_assets_prices(self, assets: Sequence[str]) -> List[int]:
        return [self.get_asset_price(asset) for asset in assets]

    def _from_fallback(self, asset: str) -> int:
        if is_zero(self._fallback):
            raise InvalidPriceReading(f"no valid price for {asset} and no fallback oracle")
        return self._call(self._fallback, "get_asset_price", asset)

    def _set_sources(self, assets: Sequence[str], sources: Sequence[str]) -> None:
        if len(assets) != len(sources):
            raise ConfigurationError("assets and sources must have the same length")
        for asset, source in zip(assets, sources):
            self._sources[normalize(asset)] = normalize(source)

    def _only_asset_listing_or_pool_admins(self) -> None:
        acl = self._call(self._provider, "get_acl_manager")
        sender = self.msg_sender
        if not (self._call(acl, "is_pool_admin", sender) or self._call(acl, "is_asset_listing_admin", sender)):
            raise AccessDenied(f"caller {sender} is not an asset listing or pool admin")
