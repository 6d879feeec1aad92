"""
CLI Test Suite

Drives every command through click's CliRunner against the sandbox
ledger (--dry-run) from an empty working directory.
"""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from lendmarket import __version__
from lendmarket.artifacts import Artifact
from lendmarket.cli.market import cli
from lendmarket.exceptions import CallReverted
from lendmarket.ledger.sandbox import SandboxLedger
from lendmarket.market.deployer import Deployer
from lendmarket.market.orchestrator import MarketOrchestrator

from conftest import DEPLOYER, EMERGENCY_ADMIN, ETH_USD, POOL_ADMIN, RISK_ADMIN

MARKET_TOML = """
[market]
market_id = "Dry Run Market"

[flags]
incentives = false

[[listings]]
symbol = "USDX"
price_feed = "0x0000000000000000000000000000000000000001"
ltv = 7500
liquidation_threshold = 7800
liquidation_bonus = 500

[[listings]]
symbol = "WBTC"
price_feed = "0x0000000000000000000000000000000000000002"
ltv = 7000
liquidation_threshold = 7500
liquidation_bonus = 500
"""


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("RISK_ADMIN", "GOVERNANCE", "CONFIG_ENGINE", "LENDMARKET_CONFIG", "PRIVATE_KEY"):
        monkeypatch.delenv(name, raising=False)
    (tmp_path / "market.toml").write_text(MARKET_TOML)
    return CliRunner()


def invoke(runner, *args):
    return runner.invoke(cli, ["--dry-run", "--config", "market.toml", *args])


class TestDryRun:

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_deploy_market(self, runner, tmp_path):
        result = invoke(runner, "deploy-market")
        assert result.exit_code == 0, result.output
        assert '"poolAddressesProvider"' in result.output
        assert not (tmp_path / "reports").exists()

    def test_deploy_tokens(self, runner):
        result = invoke(runner, "deploy-tokens", "USDX", "WBTC", "--mint-amount", "5")
        assert result.exit_code == 0, result.output
        assert '"USDX"' in result.output
        assert '"WBTC"' in result.output

    def test_list_assets(self, runner):
        result = invoke(runner, "list-assets")
        assert result.exit_code == 0, result.output
        assert '"payload"' in result.output
        assert '"txHash"' in result.output

    def test_validate(self, runner):
        result = invoke(runner, "validate")
        assert result.exit_code == 0, result.output
        assert "PASS: 0 error(s)" in result.output

    def test_validate_json(self, runner):
        result = invoke(runner, "validate", "--json")
        assert result.exit_code == 0, result.output
        assert '"allValid": true' in result.output

    def test_post_setup(self, runner):
        result = invoke(runner, "post-setup", "--risk-admin", RISK_ADMIN)
        assert result.exit_code == 0, result.output
        assert '"riskAdmin": "APPLIED"' in result.output

    def test_post_setup_requires_risk_admin(self, runner):
        result = invoke(runner, "post-setup")
        assert result.exit_code == 1
        assert "RISK_ADMIN" in result.output


class TestErrors:

    def test_validate_without_report(self, runner):
        result = runner.invoke(cli, ["--config", "market.toml", "validate"])
        assert result.exit_code == 1
        assert "Report file not found" in result.output

    def test_invalid_listing_table(self, runner, tmp_path):
        (tmp_path / "bad.toml").write_text(MARKET_TOML.replace("ltv = 7000", "ltv = 9000"))
        result = runner.invoke(cli, ["--dry-run", "--config", "bad.toml", "deploy-market"])
        assert result.exit_code == 1
        assert "WBTC" in result.output

    def test_duplicate_tokens(self, runner):
        result = invoke(runner, "deploy-tokens", "USDX", "USDX")
        assert result.exit_code == 1
        assert "Duplicate" in result.output


class TestAbortedDeployment:
    """deploy-market against a ledger standing in for the JSON-RPC one."""

    @pytest.fixture
    def ledger(self, runner, tmp_path, monkeypatch):
        monkeypatch.setenv("PRIVATE_KEY", "0x01")
        ledger = SandboxLedger(deployer=DEPLOYER)
        deployer = Deployer(ledger)
        weth = deployer.deploy(Artifact.TESTNET_ERC20, "Wrapped Ether", "WETH", 18, DEPLOYER)
        feed = deployer.deploy(Artifact.PRICE_FEED, ETH_USD, 8)
        (tmp_path / "live.toml").write_text(
            MARKET_TOML.replace(
                'market_id = "Dry Run Market"',
                f'market_id = "Live Market"\n'
                f'wrapped_native_token = "{weth}"\n'
                f'network_base_token_price_feed = "{feed}"\n'
                f'market_reference_currency_price_feed = "{feed}"\n'
                f'\n[roles]\n'
                f'market_owner = "{DEPLOYER}"\n'
                f'pool_admin = "{POOL_ADMIN}"\n'
                f'emergency_admin = "{EMERGENCY_ADMIN}"',
            )
        )
        with patch("lendmarket.ledger.web3_ledger.Web3Ledger", return_value=ledger):
            yield ledger

    @staticmethod
    def deploy(runner, *args):
        return runner.invoke(cli, [
            "--network", "local", "--reports-dir", "reports", "--config", "live.toml", "deploy-market", *args,
        ])

    def test_abort_writes_partial_report(self, runner, ledger, tmp_path):
        with patch.object(MarketOrchestrator, "_oracle", side_effect=CallReverted("rpc down")):
            result = self.deploy(runner)
        assert result.exit_code == 1
        assert "stage 'oracle' failed" in result.output
        assert "--from-report" in result.output

        reports = tmp_path / "reports" / "local"
        partials = list(reports.glob("*.partial.json"))
        assert len(partials) == 1
        assert str(partials[0].name) in result.output
        assert not (reports / "market-report-latest.json").exists()

    def test_resume_from_partial_report(self, runner, ledger, tmp_path):
        with patch.object(MarketOrchestrator, "_oracle", side_effect=CallReverted("rpc down")):
            self.deploy(runner)
        partial = next((tmp_path / "reports" / "local").glob("*.partial.json"))
        nonce = ledger.nonce

        result = self.deploy(runner, "--from-report", str(partial))
        assert result.exit_code == 0, result.output
        assert (tmp_path / "reports" / "local" / "market-report-latest.json").exists()
        # oracle, gateway, two UI helpers and the config engine
        assert ledger.nonce == nonce + 5
