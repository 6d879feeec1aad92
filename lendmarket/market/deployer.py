"""
Deployer

The single capability every stage receives: an artifact factory, a
ledger and the account acting on them. Shared helpers (deploy-or-reuse,
transact, best-effort queries) live here instead of in a base class each
stage inherits from.
"""

from typing import Any, Dict, Optional, Tuple, Union

from ..exceptions import ArtifactDeploymentError, ComponentUnreachable, LendMarketError
from ..ledger.addresses import normalize, salt_to_bytes32
from ..ledger.base import ArtifactFactory, Call, Ledger, QueryResult, Receipt
from ..logger import get_logger
from .report import MarketReport

logger = get_logger(__name__)


class Deployer:
    """
    Args:
        ledger:  ledger capability
        factory: artifact factory; defaults to *ledger* when it is one
        sender:  acting account; defaults to the ledger's default sender
    """

    def __init__(self, ledger: Ledger, factory: Optional[ArtifactFactory] = None, sender: Optional[str] = None):
        if factory is None:
            if not isinstance(ledger, ArtifactFactory):
                raise TypeError("ledger is not an ArtifactFactory; pass factory explicitly")
            factory = ledger
        self.ledger = ledger
        self.factory = factory
        self.address = normalize(sender or ledger.default_sender)
        self._interfaces: Dict[str, str] = {}

    # -- interfaces ---------------------------------------------------------

    def bind(self, address: str, interface: str) -> str:
        """Remember which artifact's ABI describes *address*."""
        address = normalize(address)
        self._interfaces[address] = str(interface)
        return address

    def bind_report(self, report: MarketReport) -> None:
        for name in report.populated():
            self.bind(report.get(name), report.interface_of(name))

    # -- deployment ---------------------------------------------------------

    def deploy(self, artifact: str, *args: Any, salt: Union[bytes, str, int, None] = None) -> str:
        """Create a component; with *salt* the address is pre-computed and checked."""
        expected = None
        if salt is not None:
            salt = salt_to_bytes32(salt)
            expected = self.factory.compute_address(artifact, args, salt)
        address = self.factory.deploy(artifact, args, sender=self.address, salt=salt)
        if expected is not None and normalize(address) != expected:
            raise ArtifactDeploymentError(f"{artifact} landed at {address}, expected {expected}")
        logger.info("[deploy] %s at %s", artifact, address)
        return self.bind(address, artifact)

    def deploy_or_reuse(
        self,
        report: MarketReport,
        name: str,
        artifact: str,
        *args: Any,
        salt: Union[bytes, str, int, None] = None,
    ) -> Tuple[str, bool]:
        """
        Deploy *artifact* into report field *name* unless it is already present.

        Returns:
            (address, deployed) where deployed is False for a reused address
        """
        if report.is_set(name):
            address = report.get(name)
            self.require_live(report.key_of(name), address)
            logger.info("[skip] %s already at %s", report.key_of(name), address)
            return self.bind(address, report.interface_of(name)), False

        address = self.deploy(artifact, *args, salt=salt)
        report.set(name, address)
        self.bind(address, report.interface_of(name))
        return address, True

    # -- calls --------------------------------------------------------------

    def transact(self, address: str, fn: str, *args: Any) -> Receipt:
        call = self._call(address, fn, args)
        logger.debug("[tx] %s.%r", address, call)
        return self.ledger.call(normalize(address), call, sender=self.address)

    def query(self, address: str, fn: str, *args: Any) -> Any:
        return self.ledger.query(normalize(address), self._call(address, fn, args))

    def try_query(self, address: str, fn: str, *args: Any) -> QueryResult:
        """Best-effort read: failures become a QueryResult instead of an exception."""
        try:
            return QueryResult.success(self.query(address, fn, *args))
        except LendMarketError as e:
            logger.debug("[query] %s.%s failed: %s", address, fn, e)
            return QueryResult.failure(str(e) or type(e).__name__)

    def has_code(self, address: str) -> bool:
        return self.ledger.has_code(normalize(address))

    def require_live(self, name: str, address: str) -> None:
        if not self.has_code(address):
            raise ComponentUnreachable(name, address)

    def _call(self, address: str, fn: str, args: Tuple[Any, ...]) -> Call:
        return Call(fn=fn, args=tuple(args), interface=self._interfaces.get(normalize(address), ""))
