"""
JSON-RPC Ledger

Ledger and ArtifactFactory over web3.py. Contract ABIs and bytecode come
from compiled artifacts on disk:

    <artifacts dir>/<Name>.sol/<Name>.json   Foundry (bytecode.object)
    <artifacts dir>/<Name>.json              Hardhat / flat (bytecode)

Function names are snake_case inside the pipeline and mapped to the ABI's
camelCase names here. Roles cross this boundary as their 32-byte ids.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from eth_utils import encode_hex, is_address, keccak, to_bytes, to_checksum_address
from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware

from ..constants import DEFAULT_GAS_LIMIT, RECEIPT_TIMEOUT
from ..exceptions import ArtifactDeploymentError, CallReverted, LedgerError
from ..logger import get_logger
from ..market.roles import Role
from .addresses import compute_create2_address, normalize, salt_to_bytes32
from .base import ArtifactFactory, Call, Ledger, Receipt
from .sandbox import DEFAULT_CREATE2_FACTORY

logger = get_logger(__name__)

# snake_case names whose ABI spelling is not plain camelCase
ABI_NAMES = {
    "get_acl_manager": "getACLManager",
    "set_acl_manager": "setACLManager",
    "get_acl_admin": "getACLAdmin",
    "set_acl_admin": "setACLAdmin",
    "get_weth_address": "getWETHAddress",
    "initialize_proxy": "initialize",
    "get_addresses_providers_list": "getAddressesProvidersList",
    "network_base_token_price_in_usd_proxy_aggregator": "networkBaseTokenPriceInUsdProxyAggregator",
    "market_reference_currency_price_in_usd_proxy_aggregator": "marketReferenceCurrencyPriceInUsdProxyAggregator",
}

# views with no ABI getter, read from their storage slot
STORAGE_SLOTS = {
    "last_initialized_revision": 0,
}

# transport failures (requests raises OSError subclasses) and node-side rejections
RPC_ERRORS = (ContractLogicError, Web3Exception, ValueError, OSError)


def abi_name(fn: str) -> str:
    """
    ABI function name for a pipeline function name.

    >>> abi_name("get_pool_configurator")
    'getPoolConfigurator'
    >>> abi_name("BASE_CURRENCY")
    'BASE_CURRENCY'
    """
    if fn in ABI_NAMES:
        return ABI_NAMES[fn]
    if fn.isupper() or "_" not in fn:
        return fn
    head, *rest = fn.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def to_abi_value(value: Any) -> Any:
    """Convert a pipeline value into something web3 can encode."""
    if isinstance(value, Role):
        return value.role_id
    if hasattr(value, "to_abi"):
        return to_abi_value(value.to_abi())
    if isinstance(value, (list, tuple)):
        return type(value)(to_abi_value(item) for item in value)
    if isinstance(value, str) and is_address(value):
        return to_checksum_address(value)
    return value


class ArtifactStore:
    """Reads compiled artifacts; results are cached per name."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self._cache: Dict[str, Tuple[list, str]] = {}

    def path_of(self, name: str) -> Path:
        foundry = self.root / f"{name}.sol" / f"{name}.json"
        return foundry if foundry.exists() else self.root / f"{name}.json"

    def load(self, name: str) -> Tuple[list, str]:
        """(abi, creation bytecode) of artifact *name*."""
        name = str(name)
        if name in self._cache:
            return self._cache[name]

        path = self.path_of(name)
        if not path.exists():
            raise ArtifactDeploymentError(f"Artifact {name} not found under {self.root}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ArtifactDeploymentError(f"Artifact {name} at {path} is unreadable: {e}") from e
        if not isinstance(data, dict) or "abi" not in data:
            raise ArtifactDeploymentError(f"Artifact {name} at {path} has no ABI")

        bytecode = data.get("bytecode", "")
        if isinstance(bytecode, dict):
            bytecode = bytecode.get("object", "")
        if bytecode and not bytecode.startswith("0x"):
            bytecode = "0x" + bytecode

        self._cache[name] = (data["abi"], bytecode)
        return self._cache[name]


class Web3Ledger(Ledger, ArtifactFactory):
    """
    Args:
        rpc_url:         JSON-RPC endpoint
        private_key:     signing key of the deployer account
        artifacts_dir:   compiled artifact directory
        create2_factory: deterministic deployment proxy used for salted deployments
        gas_limit:       gas for deployments; calls are estimated
        receipt_timeout: seconds to wait for each receipt
        w3:              pre-built Web3 instance (rpc_url is then ignored)
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        artifacts_dir: Union[str, Path],
        create2_factory: str = DEFAULT_CREATE2_FACTORY,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        receipt_timeout: int = RECEIPT_TIMEOUT,
        w3: Optional[Web3] = None,
    ):
        if w3 is None:
            w3 = Web3(Web3.HTTPProvider(rpc_url))
            w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
            if not w3.is_connected():
                raise LedgerError(f"Could not connect to RPC URL: {rpc_url}")
        self.w3 = w3
        self.account = w3.eth.account.from_key(private_key)
        self.artifacts = ArtifactStore(artifacts_dir)
        self.create2_factory = normalize(create2_factory)
        self.gas_limit = gas_limit
        self.receipt_timeout = receipt_timeout
        logger.info("[rpc] connected to %s as %s (chain %s)", rpc_url, self.account.address, w3.eth.chain_id)

    # -- capabilities -------------------------------------------------------

    @property
    def default_sender(self) -> str:
        return self.account.address

    def get_code(self, address: str) -> bytes:
        try:
            return bytes(self.w3.eth.get_code(to_checksum_address(address)))
        except RPC_ERRORS as e:
            raise LedgerError(f"get_code({address}): {e}") from e

    def deploy(
        self,
        artifact: str,
        args: Sequence[Any] = (),
        sender: Optional[str] = None,
        salt: Union[bytes, str, int, None] = None,
    ) -> str:
        self._check_sender(sender)
        try:
            init_code = self._init_code(artifact, args)
            if salt is None:
                tx = self._tx_params(gas=self.gas_limit)
                tx["data"] = init_code
                receipt = self._send(tx)
                address = receipt["contractAddress"]
            else:
                salt = salt_to_bytes32(salt)
                address = compute_create2_address(self.create2_factory, salt, keccak(hexstr=init_code))
                tx = self._tx_params(gas=self.gas_limit)
                tx["to"] = self.create2_factory
                tx["data"] = encode_hex(salt + to_bytes(hexstr=init_code))
                self._send(tx)
        except RPC_ERRORS as e:
            raise ArtifactDeploymentError(f"{artifact}: {e}") from e

        if not address or not self.has_code(address):
            raise ArtifactDeploymentError(f"{artifact}: no code at {address} after deployment")
        return normalize(address)

    def compute_address(self, artifact: str, args: Sequence[Any], salt: Union[bytes, str, int]) -> str:
        try:
            init_code = self._init_code(artifact, args)
            return compute_create2_address(self.create2_factory, salt, keccak(hexstr=init_code))
        except RPC_ERRORS as e:
            raise ArtifactDeploymentError(f"{artifact}: cannot compute address: {e}") from e

    def call(self, address: str, call: Call, sender: Optional[str] = None) -> Receipt:
        self._check_sender(sender)
        function = self._function(address, call)
        try:
            tx = function.build_transaction(self._tx_params())
            receipt = self._send(tx)
        except RPC_ERRORS as e:
            raise CallReverted(f"{call!r} on {address}: {e}") from e
        return Receipt(
            tx_hash=encode_hex(receipt["transactionHash"]),
            status=receipt["status"] == 1,
            gas_used=receipt["gasUsed"],
            logs=list(receipt["logs"]),
        )

    def query(self, address: str, call: Call) -> Any:
        if call.fn in STORAGE_SLOTS:
            return self._read_slot(address, STORAGE_SLOTS[call.fn])
        function = self._function(address, call)
        try:
            return function.call({"from": self.account.address})
        except RPC_ERRORS as e:
            raise CallReverted(f"{call!r} on {address}: {e}") from e

    # -- internals ----------------------------------------------------------

    def _read_slot(self, address: str, slot: int) -> int:
        try:
            raw = self.w3.eth.get_storage_at(to_checksum_address(address), slot)
        except RPC_ERRORS as e:
            raise LedgerError(f"storage slot {slot} of {address}: {e}") from e
        return int.from_bytes(bytes(raw), "big")

    def _init_code(self, artifact: str, args: Sequence[Any]) -> str:
        abi, bytecode = self.artifacts.load(artifact)
        if not bytecode or bytecode == "0x":
            raise ArtifactDeploymentError(f"{artifact} has no creation bytecode (abstract or interface?)")
        contract = self.w3.eth.contract(abi=abi, bytecode=bytecode)
        return contract.constructor(*to_abi_value(tuple(args))).data_in_transaction

    def _function(self, address: str, call: Call):
        if not call.interface:
            raise CallReverted(f"no ABI bound for {address}; cannot call {call.fn}")
        abi, _ = self.artifacts.load(call.interface)
        contract = self.w3.eth.contract(address=to_checksum_address(address), abi=abi)
        name = abi_name(call.fn)
        try:
            function = contract.get_function_by_name(name)
        except (ValueError, Web3Exception) as e:
            raise CallReverted(f"{call.interface} has no function {name}") from e
        try:
            return function(*to_abi_value(tuple(call.args)))
        except RPC_ERRORS as e:
            raise CallReverted(f"{call!r} on {address}: bad arguments: {e}") from e

    def _tx_params(self, gas: Optional[int] = None) -> Dict[str, Any]:
        params = {
            "from": self.account.address,
            "nonce": self.w3.eth.get_transaction_count(self.account.address, "pending"),
            "gasPrice": self.w3.eth.gas_price,
            "chainId": self.w3.eth.chain_id,
        }
        if gas:
            params["gas"] = gas
        return params

    def _send(self, tx: Dict[str, Any]):
        signed = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        if receipt["status"] != 1:
            raise CallReverted(f"transaction {encode_hex(tx_hash)} reverted")
        logger.debug("[rpc] tx %s mined in block %s", encode_hex(tx_hash), receipt["blockNumber"])
        return receipt

    def _check_sender(self, sender: Optional[str]) -> None:
        if sender and normalize(sender) != normalize(self.account.address):
            raise LedgerError(f"cannot sign for {sender}; ledger holds the key of {self.account.address}")
