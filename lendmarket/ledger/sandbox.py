"""
Sandbox Ledger

In-process ledger hosting Python-native component models. It implements
both the Ledger and ArtifactFactory capabilities with the semantics the
pipeline relies on:

  - CREATE / CREATE2 addresses identical to a real chain for the same inputs
  - msg.sender tracking through nested and delegated calls
  - every top-level call or deployment is atomic: any exception restores
    the state captured before it started (snapshot / revert)
"""

import copy
import itertools
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Type, Union

from eth_utils import encode_hex, keccak

from ..exceptions import AccessDenied, ArtifactDeploymentError, CallReverted, LendMarketError
from ..logger import get_logger
from .addresses import compute_create2_address, compute_create_address, normalize, salt_to_bytes32
from .base import ArtifactFactory, Call, Ledger, Receipt

logger = get_logger(__name__)

DEFAULT_DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
# Canonical deterministic-deployment proxy used by CREATE2 tooling
DEFAULT_CREATE2_FACTORY = "0x4e59b44847b379578588920cA78FbF26c0B4956C"


@dataclass(frozen=True)
class Frame:
    """Execution context of one call: who called, and whose storage runs."""
    sender: str
    this: str


class Component:
    """
    Base class for component models hosted by SandboxLedger.

    Subclasses declare their constructor arguments in ``__init__`` and
    expose public methods as the component's functions. The ledger binds
    ``_ledger`` and ``address`` before ``__init__`` runs.
    """

    artifact: str = ""

    _ledger: "SandboxLedger"
    address: str

    @property
    def code(self) -> bytes:
        return keccak(text=self.artifact)

    @property
    def msg_sender(self) -> str:
        return self._ledger.frame.sender

    @property
    def this(self) -> str:
        return self._ledger.frame.this

    def _call(self, target: str, fn: str, *args: Any) -> Any:
        return self._ledger.invoke(target, fn, args, sender=self.this)

    def _delegate(self, target: str, fn: str, *args: Any) -> Any:
        return self._ledger.delegate(target, fn, args)

    def _create(self, artifact: str, *args: Any) -> str:
        return self._ledger.create(artifact, args, sender=self.this)

    @staticmethod
    def _require(condition: bool, message: str, exc: Type[Exception] = AccessDenied) -> None:
        if not condition:
            raise exc(message)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {getattr(self, 'address', '?')}>"


class SandboxLedger(Ledger, ArtifactFactory):
    """
    In-process ledger.

    Args:
        deployer: default sender for calls and deployments
        artifacts: artifact id -> Component subclass; defaults to the
                   models in ``lendmarket.components``
        create2_factory: address deterministic deployments are attributed to
    """

    def __init__(
        self,
        deployer: str = DEFAULT_DEPLOYER,
        artifacts: Optional[Dict[str, Type[Component]]] = None,
        create2_factory: str = DEFAULT_CREATE2_FACTORY,
    ):
        if artifacts is None:
            from ..components import SANDBOX_ARTIFACTS
            artifacts = SANDBOX_ARTIFACTS
        self._artifacts: Dict[str, Type[Component]] = {str(k): v for k, v in artifacts.items()}
        self._deployer = normalize(deployer)
        self.create2_factory = normalize(create2_factory)
        self._components: Dict[str, Component] = {}
        self._nonces: Dict[str, int] = {}
        self._frames: List[Frame] = []
        self._snapshots: List[Any] = []
        self._tx_counter = itertools.count(1)
        self.transactions: List[Receipt] = []

    # -- capabilities -------------------------------------------------------

    @property
    def default_sender(self) -> str:
        return self._deployer

    def get_code(self, address: str) -> bytes:
        component = self._components.get(normalize(address))
        return component.code if component is not None else b""

    def deploy(
        self,
        artifact: str,
        args: Sequence[Any] = (),
        sender: Optional[str] = None,
        salt: Union[bytes, str, int, None] = None,
    ) -> str:
        sender = normalize(sender or self._deployer)
        with self._transaction(sender):
            address = self.create(artifact, tuple(args), sender=sender, salt=salt)
        self._record(return_value=address)
        return address

    def compute_address(self, artifact: str, args: Sequence[Any], salt: Union[bytes, str, int]) -> str:
        return compute_create2_address(self.create2_factory, salt, self._init_code_hash(str(artifact), args))

    def call(self, address: str, call: Call, sender: Optional[str] = None) -> Receipt:
        sender = normalize(sender or self._deployer)
        with self._transaction(sender):
            value = self.invoke(address, call.fn, call.args, sender=sender)
        return self._record(return_value=value)

    def query(self, address: str, call: Call) -> Any:
        with self._transaction(self._deployer, commit=False):
            return self.invoke(address, call.fn, call.args, sender=self._deployer)

    # -- execution ----------------------------------------------------------

    @property
    def frame(self) -> Frame:
        if not self._frames:
            raise CallReverted("no active call frame")
        return self._frames[-1]

    def component(self, address: str) -> Component:
        """Direct access to a hosted model (tests and diagnostics)."""
        component = self._components.get(normalize(address))
        if component is None:
            raise CallReverted(f"no component at {address}")
        return component

    def create(
        self,
        artifact: str,
        args: Sequence[Any] = (),
        sender: Optional[str] = None,
        salt: Union[bytes, str, int, None] = None,
    ) -> str:
        artifact = str(artifact)
        cls = self._artifacts.get(artifact)
        if cls is None:
            raise ArtifactDeploymentError(f"unknown artifact {artifact}")

        sender = normalize(sender or self.frame.this)
        if salt is None:
            nonce = self._nonces.get(sender, 0)
            self._nonces[sender] = nonce + 1
            address = compute_create_address(sender, nonce)
        else:
            address = self.compute_address(artifact, args, salt)
        if address in self._components:
            raise ArtifactDeploymentError(f"address collision at {address}")

        component = cls.__new__(cls)
        component._ledger = self
        component.address = address
        component._ctor_args = tuple(args)
        self._components[address] = component

        self._frames.append(Frame(sender=sender, this=address))
        try:
            component.__init__(*args)
        except (TypeError, ValueError) as e:
            raise ArtifactDeploymentError(f"{artifact} constructor rejected arguments: {e}") from e
        finally:
            self._frames.pop()

        logger.debug("[sandbox] created %s at %s", artifact, address)
        return address

    def invoke(self, address: str, fn: str, args: Sequence[Any], sender: str) -> Any:
        component = self.component(address)
        method = self._resolve(component, fn)
        self._frames.append(Frame(sender=normalize(sender), this=component.address))
        try:
            return method(*args)
        finally:
            self._frames.pop()

    def delegate(self, target: str, fn: str, args: Sequence[Any]) -> Any:
        """Run *target*'s function in the caller's identity (delegatecall)."""
        current = self.frame
        method = self._resolve(self.component(target), fn)
        self._frames.append(Frame(sender=current.sender, this=current.this))
        try:
            return method(*args)
        finally:
            self._frames.pop()

    @staticmethod
    def _resolve(component: Component, fn: str):
        if not fn or fn.startswith("_"):
            raise CallReverted(f"{fn!r} is not callable")
        method = getattr(component, fn, None)
        if method is None or not callable(method):
            raise CallReverted(f"{type(component).__name__} has no function {fn!r}")
        return method

    # -- snapshots ----------------------------------------------------------

    def snapshot(self) -> int:
        """Capture hosted state; returns an id usable with revert()."""
        state = copy.deepcopy((self._components, self._nonces), {id(self): self})
        self._snapshots.append(state)
        return len(self._snapshots) - 1

    def revert(self, snapshot_id: int) -> None:
        self._components, self._nonces = self._snapshots[snapshot_id]
        del self._snapshots[snapshot_id:]

    def _discard(self, snapshot_id: int) -> None:
        del self._snapshots[snapshot_id:]

    @contextmanager
    def _transaction(self, sender: str, commit: bool = True):
        snapshot_id = self.snapshot()
        self._frames.append(Frame(sender=sender, this=sender))
        try:
            yield
        except LendMarketError:
            self.revert(snapshot_id)
            raise
        except Exception as e:
            self.revert(snapshot_id)
            raise CallReverted(str(e)) from e
        else:
            if commit:
                self._discard(snapshot_id)
            else:
                self.revert(snapshot_id)
        finally:
            self._frames.pop()

    def _record(self, return_value: Any = None) -> Receipt:
        tx_hash = encode_hex(keccak(text=f"sandbox-tx-{next(self._tx_counter)}"))
        receipt = Receipt(tx_hash=tx_hash, return_value=return_value)
        self.transactions.append(receipt)
        return receipt

    @staticmethod
    def _init_code_hash(artifact: str, args: Sequence[Any]) -> bytes:
        return keccak(text=f"{artifact}:{tuple(args)!r}")

    @property
    def nonce(self) -> int:
        return self._nonces.get(self._deployer, 0)

    def addresses(self) -> List[str]:
        return list(self._components)
