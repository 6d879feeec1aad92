"""
Ledger capabilities

Every stage of the pipeline talks to the outside world through two
injected capabilities:

  - ArtifactFactory: creates components from compiled artifacts and
    pre-computes deterministic (CREATE2) addresses
  - Ledger:          reads code, submits state-changing calls and runs
                     read-only queries

Backends: SandboxLedger (in-process, used by tests and --dry-run) and
Web3Ledger (JSON-RPC).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple, Union


@dataclass(frozen=True)
class Call:
    """
    A single function invocation on a component.

    Attributes:
        fn:    snake_case function name (the JSON-RPC backend maps it to the ABI name)
        args:  positional arguments
        interface: artifact whose ABI describes *fn*; optional for the sandbox
    """
    fn: str
    args: Tuple[Any, ...] = ()
    interface: str = ""

    def __repr__(self) -> str:
        rendered = ", ".join(repr(a) for a in self.args)
        return f"{self.fn}({rendered})"


@dataclass(frozen=True)
class QueryResult:
    """Outcome of a best-effort query: either a value or a failure reason."""
    ok: bool
    value: Any = None
    reason: str = ""

    @classmethod
    def success(cls, value: Any) -> "QueryResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: str) -> "QueryResult":
        return cls(ok=False, reason=reason)


@dataclass
class Receipt:
    """Result of a state-changing call."""
    tx_hash: str
    status: bool = True
    return_value: Any = None
    gas_used: int = 0
    logs: list = field(default_factory=list)


class ArtifactFactory(ABC):
    """Creates on-ledger components from artifacts."""

    @abstractmethod
    def deploy(
        self,
        artifact: str,
        args: Sequence[Any] = (),
        sender: Optional[str] = None,
        salt: Union[bytes, str, int, None] = None,
    ) -> str:
        """Create a component and return its address. Raises ArtifactDeploymentError."""

    @abstractmethod
    def compute_address(self, artifact: str, args: Sequence[Any], salt: Union[bytes, str, int]) -> str:
        """Deterministic address of a CREATE2 deployment, without deploying."""


class Ledger(ABC):
    """Read and write access to live ledger state."""

    @property
    @abstractmethod
    def default_sender(self) -> str:
        """Account used when no explicit sender is given."""

    @abstractmethod
    def get_code(self, address: str) -> bytes:
        """Runtime code at *address*; empty when nothing is deployed there."""

    @abstractmethod
    def call(self, address: str, call: Call, sender: Optional[str] = None) -> Receipt:
        """Submit a state-changing call and wait until it is confirmed."""

    @abstractmethod
    def query(self, address: str, call: Call) -> Any:
        """Run a read-only call and return its decoded value."""

    def has_code(self, address: str) -> bool:
        return len(self.get_code(address)) > 0
