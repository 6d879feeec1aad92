"""
Ledger capabilities

  - Ledger / ArtifactFactory: the two capabilities every pipeline stage
    depends on
  - SandboxLedger:            in-process implementation (dry runs, tests)
  - Web3Ledger:               JSON-RPC implementation over web3.py
"""

from .base import ArtifactFactory, Call, Ledger, QueryResult, Receipt
from .sandbox import Component, SandboxLedger

__all__ = [
    "ArtifactFactory",
    "Call",
    "Component",
    "Ledger",
    "QueryResult",
    "Receipt",
    "SandboxLedger",
]
