"""
Lending Market Deployment Constants

This module consolidates global constants and environment configuration
used throughout the deployment pipeline. Constants are organized by
category for easy reference and maintenance.
"""
import ast

from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

DEPLOY_DEFAULTS = {
    'LENDMARKET_NETWORK':              'local',
    'LENDMARKET_REPORTS_DIR':          'reports',
    'LENDMARKET_ARTIFACTS_DIR':        'out',
    'LENDMARKET_CONFIG':               'market.toml',
    'RPC_URL':                         'http://127.0.0.1:8545',
}

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_TO_FILE':                     'False',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# ==================================================================================
# LEDGER CONSTANTS
# ==================================================================================
ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'
ZERO_BYTES32 = b'\x00' * 32

# Gas ceiling for JSON-RPC transactions when estimation is unavailable
DEFAULT_GAS_LIMIT = 8_000_000

# Seconds to wait for a transaction receipt
RECEIPT_TIMEOUT = 300


# ==================================================================================
# ORACLE CONSTANTS
# ==================================================================================
# Fallback oracle quotes every asset in USD with 8 decimals
FALLBACK_ORACLE_DECIMALS = 8

# USD is tagged by the zero address in oracle base-currency fields
USD_BASE_CURRENCY = ZERO_ADDRESS

DEFAULT_ORACLE_DECIMALS = 8

# Grace period (seconds) after a sequencer comes back online
DEFAULT_SENTINEL_GRACE_PERIOD = 3600


# ==================================================================================
# RISK PARAMETER CONSTANTS
# ==================================================================================
# Percentages are expressed in basis points: 10000 == 100.00%
PERCENTAGE_FACTOR = 10_000

DEFAULT_MARKET_ID = 'Lending Market'
DEFAULT_PROVIDER_ID = 1

# Test tokens minted to the deployer by deploy-tokens
DEFAULT_TEST_TOKEN_MINT = 10_000_000
DEFAULT_TEST_TOKEN_DECIMALS = {
    'USDX': 6,
    'USDC': 6,
    'USDT': 6,
    'WBTC': 8,
}


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
DEFAULTS = DEPLOY_DEFAULTS | LOGGER_DEFAULTS
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Avoids exceptions by only calling ast.literal_eval for known literals.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        return ast.literal_eval(s.title())
    return v

for key, default_raw in DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
