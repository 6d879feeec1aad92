"""
Ledger Test Suite

Coverage:
  - address derivation (CREATE / CREATE2) and normalization
  - sandbox ledger: call frames, atomic transactions, snapshots, queries
  - Deployer: deterministic deploys, deploy-or-reuse, best-effort queries
"""

from unittest.mock import MagicMock

import pytest
from eth_utils import keccak

from lendmarket.artifacts import Artifact
from lendmarket.constants import ZERO_ADDRESS
from lendmarket.exceptions import (
    AccessDenied,
    ArtifactDeploymentError,
    CallReverted,
    ComponentUnreachable,
    ConfigurationError,
    InvalidAggregator,
)
from lendmarket.ledger.addresses import (
    compute_create2_address,
    compute_create_address,
    is_zero,
    normalize,
    same,
    salt_to_bytes32,
)
from lendmarket.ledger.base import Ledger, QueryResult
from lendmarket.market.deployer import Deployer
from lendmarket.market.report import MarketReport

from conftest import DEPLOYER, OWNER, STRANGER


# ══════════════════════════════════════════════════════════════════════
#  ADDRESSES
# ══════════════════════════════════════════════════════════════════════


class TestAddresses:

    def test_create_address_matches_chain(self):
        # First two contracts of the default local-node account
        assert compute_create_address(DEPLOYER, 0) == "0x5FbDB2315678afecb367f032d93F642f64180aa3"
        assert compute_create_address(DEPLOYER, 1) == "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"

    def test_create2_reference_vector(self):
        address = compute_create2_address(ZERO_ADDRESS, 0, keccak(b"\x00"))
        assert address == "0x4D1A2e2bB4F88F0250f26Ffff098B0b30B26BF38"

    def test_normalize_checksums(self):
        assert normalize(DEPLOYER.lower()) == DEPLOYER

    def test_normalize_empty_is_zero(self):
        assert normalize(None) == ZERO_ADDRESS
        assert normalize("") == ZERO_ADDRESS
        assert is_zero(None)

    def test_normalize_invalid_raises(self):
        with pytest.raises(ConfigurationError, match="Invalid address"):
            normalize("0x1234")

    def test_same_ignores_case(self):
        assert same(OWNER.lower(), OWNER)
        assert not same(OWNER, STRANGER)

    def test_salt_forms(self):
        assert salt_to_bytes32(1) == b"\x00" * 31 + b"\x01"
        assert salt_to_bytes32("0x01") == b"\x00" * 31 + b"\x01"
        assert salt_to_bytes32("market-v1") == keccak(text="market-v1")

    def test_salt_too_long(self):
        with pytest.raises(ValueError):
            salt_to_bytes32(b"\x01" * 33)


# ══════════════════════════════════════════════════════════════════════
#  SANDBOX LEDGER
# ══════════════════════════════════════════════════════════════════════


class TestSandboxLedger:

    def test_deploy_uses_create_addresses(self, ledger):
        first = ledger.deploy(Artifact.PRICE_FEED, (1, 8))
        second = ledger.deploy(Artifact.PRICE_FEED, (2, 8))
        assert first == compute_create_address(DEPLOYER, 0)
        assert second == compute_create_address(DEPLOYER, 1)
        assert ledger.nonce == 2

    def test_code_only_where_deployed(self, ledger):
        feed = ledger.deploy(Artifact.PRICE_FEED, (1, 8))
        assert ledger.has_code(feed)
        assert not ledger.has_code(OWNER)

    def test_unknown_artifact(self, ledger):
        with pytest.raises(ArtifactDeploymentError, match="unknown artifact"):
            ledger.deploy("NoSuchContract", ())

    def test_constructor_argument_mismatch(self, ledger):
        with pytest.raises(ArtifactDeploymentError, match="rejected arguments"):
            ledger.deploy(Artifact.PRICE_FEED, ())

    def test_failed_deploy_leaves_no_trace(self, ledger):
        with pytest.raises(InvalidAggregator):
            ledger.deploy(Artifact.FALLBACK_ORACLE, (ZERO_ADDRESS,))
        assert ledger.nonce == 0
        assert ledger.addresses() == []

    def test_msg_sender_is_caller(self, deployer):
        token = deployer.deploy(Artifact.TESTNET_ERC20, "Test", "TST", 18, OWNER)
        with pytest.raises(AccessDenied, match="not the owner"):
            deployer.transact(token, "mint", DEPLOYER, 1)
        deployer.ledger.call(token, deployer._call(token, "mint", (OWNER, 5)), sender=OWNER)
        assert deployer.query(token, "balance_of", OWNER) == 5

    def test_failed_call_reverts_state(self, deployer):
        token = deployer.deploy(Artifact.TESTNET_ERC20, "Test", "TST", 18, DEPLOYER)
        deployer.transact(token, "mint", OWNER, 10)
        with pytest.raises(ConfigurationError):
            deployer.transact(token, "mint", OWNER, 0)
        assert deployer.query(token, "total_supply") == 10

    def test_private_functions_are_not_callable(self, deployer):
        token = deployer.deploy(Artifact.TESTNET_ERC20, "Test", "TST", 18, DEPLOYER)
        with pytest.raises(CallReverted, match="not callable"):
            deployer.query(token, "_only_owner")

    def test_unknown_function(self, deployer):
        token = deployer.deploy(Artifact.TESTNET_ERC20, "Test", "TST", 18, DEPLOYER)
        with pytest.raises(CallReverted, match="no function"):
            deployer.query(token, "burn")

    def test_query_never_commits(self, deployer):
        token = deployer.deploy(Artifact.TESTNET_ERC20, "Test", "TST", 18, DEPLOYER)
        deployer.query(token, "mint", OWNER, 7)
        assert deployer.query(token, "balance_of", OWNER) == 0

    def test_snapshot_and_revert(self, ledger):
        snapshot = ledger.snapshot()
        feed = ledger.deploy(Artifact.PRICE_FEED, (1, 8))
        ledger.revert(snapshot)
        assert not ledger.has_code(feed)
        assert ledger.nonce == 0

    def test_transactions_are_recorded(self, deployer):
        before = len(deployer.ledger.transactions)
        feed = deployer.deploy(Artifact.PRICE_FEED, 1, 8)
        receipt = deployer.transact(feed, "set_answer", 2)
        assert len(deployer.ledger.transactions) == before + 2
        assert receipt.tx_hash.startswith("0x")
        assert receipt.status


# ══════════════════════════════════════════════════════════════════════
#  DEPLOYER
# ══════════════════════════════════════════════════════════════════════


class TestDeployer:

    def test_salted_deploy_lands_on_computed_address(self, deployer):
        expected = deployer.factory.compute_address(Artifact.PRICE_FEED, (1, 8), salt_to_bytes32("feed"))
        assert deployer.deploy(Artifact.PRICE_FEED, 1, 8, salt="feed") == expected

    def test_salted_deploy_twice_collides(self, deployer):
        deployer.deploy(Artifact.PRICE_FEED, 1, 8, salt="feed")
        with pytest.raises(ArtifactDeploymentError, match="collision"):
            deployer.deploy(Artifact.PRICE_FEED, 1, 8, salt="feed")

    def test_deploy_or_reuse_deploys_once(self, deployer):
        report = MarketReport()
        address, deployed = deployer.deploy_or_reuse(report, "treasury", Artifact.TREASURY, OWNER)
        assert deployed
        assert report.treasury == address

        again, deployed = deployer.deploy_or_reuse(report, "treasury", Artifact.TREASURY, OWNER)
        assert not deployed
        assert again == address

    def test_reuse_requires_live_code(self, deployer):
        report = MarketReport(treasury=STRANGER)
        with pytest.raises(ComponentUnreachable, match="treasury"):
            deployer.deploy_or_reuse(report, "treasury", Artifact.TREASURY, OWNER)

    def test_try_query_success(self, deployer):
        feed = deployer.deploy(Artifact.PRICE_FEED, 42, 8)
        assert deployer.try_query(feed, "latest_answer") == QueryResult.success(42)

    def test_try_query_failure_is_a_value(self, deployer):
        result = deployer.try_query(STRANGER, "latest_answer")
        assert not result.ok
        assert "no component" in result.reason

    def test_ledger_without_factory_needs_one(self, ledger):
        plain = MagicMock(spec=Ledger)
        with pytest.raises(TypeError, match="ArtifactFactory"):
            Deployer(plain)
        assert Deployer(plain, factory=ledger, sender=OWNER).address == OWNER
