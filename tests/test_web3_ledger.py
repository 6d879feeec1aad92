"""
JSON-RPC Ledger Test Suite

Coverage:
  - ABI name mapping and value conversion at the web3 boundary
  - ArtifactStore: Foundry and flat layouts, unreadable artifacts
  - Web3Ledger over a mocked Web3: storage-slot reads, receipts, and
    transport / node failures mapped onto the ledger error hierarchy
"""

import json
from unittest.mock import MagicMock

import pytest
from eth_utils import keccak
from web3.exceptions import ContractLogicError

from lendmarket.artifacts import Artifact
from lendmarket.exceptions import ArtifactDeploymentError, CallReverted, LedgerError
from lendmarket.ledger.addresses import compute_create2_address
from lendmarket.ledger.base import Call
from lendmarket.ledger.sandbox import DEFAULT_CREATE2_FACTORY
from lendmarket.ledger.web3_ledger import ArtifactStore, Web3Ledger, abi_name, to_abi_value
from lendmarket.market.roles import Role

from conftest import DEPLOYER, OWNER, make_listing

POOL = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
TX_HASH = b"\x12" * 32


def write_artifact(root, name, bytecode="0x6080", foundry=True, abi=None):
    data = {"abi": abi if abi is not None else [], "bytecode": bytecode}
    if foundry:
        path = root / f"{name}.sol" / f"{name}.json"
        path.parent.mkdir(parents=True)
        data["bytecode"] = {"object": bytecode}
    else:
        path = root / f"{name}.json"
    path.write_text(json.dumps(data))
    return path


@pytest.fixture
def w3():
    w3 = MagicMock()
    w3.eth.account.from_key.return_value = MagicMock(address=DEPLOYER)
    w3.eth.chain_id = 31337
    w3.eth.contract.return_value.constructor.return_value.data_in_transaction = "0x6080"
    return w3


@pytest.fixture
def rpc(tmp_path, w3):
    write_artifact(tmp_path, str(Artifact.POOL))
    return Web3Ledger("http://127.0.0.1:8545", "0x01", tmp_path, w3=w3)


def bound_function(w3):
    """The mock standing in for ``contract.get_function_by_name(name)(*args)``."""
    return w3.eth.contract.return_value.get_function_by_name.return_value.return_value


# ══════════════════════════════════════════════════════════════════════
#  BOUNDARY CONVERSIONS
# ══════════════════════════════════════════════════════════════════════

class TestAbiName:

    @pytest.mark.parametrize("fn, expected", [
        ("get_pool_configurator", "getPoolConfigurator"),
        ("set_pool_impl", "setPoolImpl"),
        ("owner", "owner"),
        ("BASE_CURRENCY", "BASE_CURRENCY"),
        ("ADDRESSES_PROVIDER", "ADDRESSES_PROVIDER"),
        ("get_acl_manager", "getACLManager"),
        ("set_acl_admin", "setACLAdmin"),
        ("initialize_proxy", "initialize"),
    ])
    def test_mapping(self, fn, expected):
        assert abi_name(fn) == expected


class TestToAbiValue:

    def test_role_becomes_role_id(self):
        assert to_abi_value(Role.POOL_ADMIN) == keccak(text="POOL_ADMIN")
        assert to_abi_value(Role.DEFAULT_ADMIN) == b"\x00" * 32

    def test_address_checksummed(self):
        assert to_abi_value(POOL.lower()) == POOL

    def test_plain_values_pass_through(self):
        assert to_abi_value(7) == 7
        assert to_abi_value("USDX") == "USDX"

    def test_sequences_converted_recursively(self):
        converted = to_abi_value([Role.RISK_ADMIN, (POOL.lower(), 1)])
        assert converted == [keccak(text="RISK_ADMIN"), (POOL, 1)]

    def test_listing_struct(self):
        listing = make_listing("USDX", OWNER.lower(), POOL.lower())
        converted = to_abi_value([listing])
        assert converted[0][0] == OWNER
        assert converted[0][1] == "USDX"
        assert converted[0][2] == POOL
        assert converted[0] == listing.to_abi()


# ══════════════════════════════════════════════════════════════════════
#  ARTIFACT STORE
# ══════════════════════════════════════════════════════════════════════

class TestArtifactStore:

    def test_foundry_layout(self, tmp_path):
        write_artifact(tmp_path, "ACLManager", bytecode="6080", abi=[{"type": "constructor"}])
        abi, bytecode = ArtifactStore(tmp_path).load(Artifact.ACL_MANAGER)
        assert abi == [{"type": "constructor"}]
        assert bytecode == "0x6080"

    def test_flat_layout(self, tmp_path):
        write_artifact(tmp_path, "ACLManager", bytecode="0x6080", foundry=False)
        _, bytecode = ArtifactStore(tmp_path).load("ACLManager")
        assert bytecode == "0x6080"

    def test_foundry_preferred(self, tmp_path):
        write_artifact(tmp_path, "ACLManager", bytecode="0xaaaa", foundry=False)
        write_artifact(tmp_path, "ACLManager", bytecode="0xbbbb")
        assert ArtifactStore(tmp_path).load("ACLManager")[1] == "0xbbbb"

    def test_cached(self, tmp_path):
        path = write_artifact(tmp_path, "ACLManager")
        store = ArtifactStore(tmp_path)
        first = store.load("ACLManager")
        path.unlink()
        assert store.load("ACLManager") is first

    def test_missing(self, tmp_path):
        with pytest.raises(ArtifactDeploymentError, match="not found"):
            ArtifactStore(tmp_path).load("ACLManager")

    def test_without_abi(self, tmp_path):
        (tmp_path / "ACLManager.json").write_text(json.dumps({"bytecode": "0x6080"}))
        with pytest.raises(ArtifactDeploymentError, match="no ABI"):
            ArtifactStore(tmp_path).load("ACLManager")

    def test_malformed_json(self, tmp_path):
        (tmp_path / "ACLManager.json").write_text("{not json")
        with pytest.raises(ArtifactDeploymentError, match="unreadable"):
            ArtifactStore(tmp_path).load("ACLManager")


# ══════════════════════════════════════════════════════════════════════
#  WEB3 LEDGER
# ══════════════════════════════════════════════════════════════════════

class TestReads:

    def test_initialized_revision_read_from_slot_zero(self, rpc, w3):
        w3.eth.get_storage_at.return_value = (1).to_bytes(32, "big")
        assert rpc.query(POOL, Call("last_initialized_revision", (), str(Artifact.POOL))) == 1
        w3.eth.get_storage_at.assert_called_once_with(POOL, 0)
        w3.eth.contract.assert_not_called()

    def test_query_returns_call_result(self, rpc, w3):
        bound_function(w3).call.return_value = 42
        assert rpc.query(POOL, Call("get_reserves_list", (), str(Artifact.POOL))) == 42
        w3.eth.contract.return_value.get_function_by_name.assert_called_once_with("getReservesList")

    def test_query_revert(self, rpc, w3):
        bound_function(w3).call.side_effect = ContractLogicError("execution reverted")
        with pytest.raises(CallReverted, match="get_reserves_list"):
            rpc.query(POOL, Call("get_reserves_list", (), str(Artifact.POOL)))

    def test_query_without_interface(self, rpc):
        with pytest.raises(CallReverted, match="no ABI bound"):
            rpc.query(POOL, Call("get_reserves_list"))

    def test_unknown_function(self, rpc, w3):
        w3.eth.contract.return_value.get_function_by_name.side_effect = ValueError("no such function")
        with pytest.raises(CallReverted, match="has no function getNothing"):
            rpc.query(POOL, Call("get_nothing", (), str(Artifact.POOL)))

    def test_has_code(self, rpc, w3):
        w3.eth.get_code.return_value = b"\x60\x80"
        assert rpc.has_code(POOL)
        w3.eth.get_code.return_value = b""
        assert not rpc.has_code(POOL)


class TestTransactions:

    def test_call_returns_receipt(self, rpc, w3):
        bound_function(w3).build_transaction.return_value = {}
        w3.eth.send_raw_transaction.return_value = TX_HASH
        w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 1, "transactionHash": TX_HASH, "gasUsed": 21000, "logs": [], "blockNumber": 1,
        }
        receipt = rpc.call(POOL, Call("initialize", (POOL,), str(Artifact.POOL)))
        assert receipt.status
        assert receipt.gas_used == 21000
        assert receipt.tx_hash == "0x" + "12" * 32

    def test_failed_receipt(self, rpc, w3):
        bound_function(w3).build_transaction.return_value = {}
        w3.eth.send_raw_transaction.return_value = TX_HASH
        w3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "transactionHash": TX_HASH}
        with pytest.raises(CallReverted, match="reverted"):
            rpc.call(POOL, Call("initialize", (POOL,), str(Artifact.POOL)))

    def test_foreign_sender(self, rpc):
        with pytest.raises(LedgerError, match="cannot sign"):
            rpc.call(POOL, Call("initialize", (POOL,), str(Artifact.POOL)), sender=OWNER)

    def test_compute_address(self, rpc):
        expected = compute_create2_address(DEFAULT_CREATE2_FACTORY, 5, keccak(hexstr="0x6080"))
        assert rpc.compute_address(Artifact.POOL, (POOL,), 5) == expected

    def test_deploy_returns_contract_address(self, rpc, w3):
        w3.eth.send_raw_transaction.return_value = TX_HASH
        w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 1, "contractAddress": POOL.lower(), "blockNumber": 1,
        }
        w3.eth.get_code.return_value = b"\x60\x80"
        assert rpc.deploy(Artifact.POOL, (POOL,)) == POOL


class TestTransportFailures:

    def test_deploy_connection_error(self, rpc, w3):
        w3.eth.get_transaction_count.side_effect = ConnectionError("connection refused")
        with pytest.raises(ArtifactDeploymentError, match="connection refused"):
            rpc.deploy(Artifact.POOL, (POOL,))

    def test_call_connection_error(self, rpc, w3):
        w3.eth.get_transaction_count.side_effect = ConnectionError("connection refused")
        with pytest.raises(CallReverted, match="connection refused"):
            rpc.call(POOL, Call("initialize", (POOL,), str(Artifact.POOL)))

    def test_get_code_connection_error(self, rpc, w3):
        w3.eth.get_code.side_effect = ConnectionError("connection refused")
        with pytest.raises(LedgerError):
            rpc.has_code(POOL)

    def test_storage_read_timeout(self, rpc, w3):
        w3.eth.get_storage_at.side_effect = TimeoutError("read timed out")
        with pytest.raises(LedgerError, match="timed out"):
            rpc.query(POOL, Call("last_initialized_revision", (), str(Artifact.POOL)))

    def test_compute_address_bad_constructor_args(self, rpc, w3):
        w3.eth.contract.return_value.constructor.side_effect = ValueError("wrong argument count")
        with pytest.raises(ArtifactDeploymentError, match="wrong argument count"):
            rpc.compute_address(Artifact.POOL, (), 5)

    def test_compute_address_missing_artifact(self, rpc):
        with pytest.raises(ArtifactDeploymentError, match="not found"):
            rpc.compute_address(Artifact.ACL_MANAGER, (), 5)


    def test_deploy_without_code(self, rpc, w3):
        w3.eth.send_raw_transaction.return_value = TX_HASH
        w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 1, "contractAddress": POOL.lower(), "blockNumber": 1,
        }
        w3.eth.get_code.return_value = b""
        with pytest.raises(ArtifactDeploymentError, match="no code"):
            rpc.deploy(Artifact.POOL, (POOL,))
