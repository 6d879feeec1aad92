"""
Test-token deployment

Deploys mintable ERC-20 stand-ins for the assets a test network lists and
mints an initial balance to the deployer. Symbols already present in a
previous token report are reused when their code is still live.
"""

from typing import Dict, Optional, Sequence

from ..artifacts import Artifact
from ..constants import DEFAULT_TEST_TOKEN_DECIMALS, DEFAULT_TEST_TOKEN_MINT
from ..exceptions import ConfigurationError
from ..logger import get_logger
from .deployer import Deployer
from .report import TokenReport

logger = get_logger(__name__)


def token_decimals(symbol: str) -> int:
    return DEFAULT_TEST_TOKEN_DECIMALS.get(symbol.upper(), 18)


def deploy_test_tokens(
    deployer: Deployer,
    symbols: Sequence[str],
    mint_amount: int = DEFAULT_TEST_TOKEN_MINT,
    previous: Optional[TokenReport] = None,
    decimals: Optional[Dict[str, int]] = None,
) -> TokenReport:
    """
    Deploy one TestnetERC20 per symbol.

    Args:
        deployer:    acting deployer; owns the tokens and receives the mint
        symbols:     token symbols, in deployment order
        mint_amount: whole tokens minted to the deployer (scaled by decimals)
        previous:    earlier token report; its live tokens are reused
        decimals:    per-symbol decimals overriding the defaults

    Returns:
        TokenReport covering every requested symbol
    """
    if not symbols:
        raise ConfigurationError("No token symbols given")
    if len(set(symbols)) != len(symbols):
        raise ConfigurationError(f"Duplicate token symbols: {', '.join(symbols)}")
    if mint_amount < 0:
        raise ConfigurationError("Mint amount cannot be negative")

    decimals = decimals or {}
    known = previous.tokens if previous is not None else {}
    report = TokenReport(deployer=deployer.address)

    for symbol in symbols:
        existing = known.get(symbol)
        if existing and deployer.has_code(existing):
            logger.info("[skip] %s already deployed at %s", symbol, existing)
            report.tokens[symbol] = deployer.bind(existing, Artifact.TESTNET_ERC20)
            continue

        places = decimals.get(symbol, token_decimals(symbol))
        token = deployer.deploy(Artifact.TESTNET_ERC20, f"Test {symbol}", symbol, places, deployer.address)
        if mint_amount:
            deployer.transact(token, "mint", deployer.address, mint_amount * 10 ** places)
        logger.info("[tokens] %s at %s, minted %d to %s", symbol, token, mint_amount, deployer.address)
        report.tokens[symbol] = token

    return report
