"""
Testnet ERC-20

Mintable token used to stand in for real assets on test networks.
"""

from typing import Dict

from ..artifacts import Artifact
from ..exceptions import ConfigurationError
from ..ledger.addresses import normalize
from .core import Ownable


class TestnetERC20(Ownable):

    __test__ = False  # not a pytest test class

    artifact = Artifact.TESTNET_ERC20

    def __init__(self, name: str, symbol: str, decimals: int, owner: str):
        if not symbol:
            raise ConfigurationError("Token symbol cannot be empty")
        self._init_owner(owner)
        self._name = name
        self._symbol = symbol
        self._decimals = int(decimals)
        self._balances: Dict[str, int] = {}
        self._total_supply = 0

    def name(self) -> str:
        return self._name

    def symbol(self) -> str:
        return self._symbol

    def decimals(self) -> int:
        return self._decimals

    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        return self._balances.get(normalize(account), 0)

    def mint(self, to: str, amount: int) -> None:
        self._only_owner()
        self._require(amount > 0, "mint amount must be positive", ConfigurationError)
        to = normalize(to)
        self._balances[to] = self._balances.get(to, 0) + int(amount)
        self._total_supply += int(amount)
