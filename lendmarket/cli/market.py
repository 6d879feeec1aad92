#!/usr/bin/env python3
"""
Lending Market CLI

One command per pipeline stage. Every command reads the network's market
file (TOML + environment overrides) and the report files under
<reports dir>/<network>/.

Usage:
    lendmarket deploy-tokens USDX WBTC [--mint-amount N]
    lendmarket deploy-market [--from-report FILE] [--fresh]
    lendmarket list-assets [--config-engine ADDRESS]
    lendmarket validate
    lendmarket post-setup [--risk-admin ADDRESS] [--governance ADDRESS]

Global options (before the command):
    --network, --config, --reports-dir, --artifacts-dir, --rpc-url, --dry-run

With --dry-run the command runs against an in-process sandbox ledger;
commands that need an existing market first deploy one there, with mock
price feeds standing in for feeds that have no code. Nothing is written.
"""

import json
import os
from dataclasses import replace
from typing import Dict, Optional

import click
from dotenv import load_dotenv

from .. import __version__
from ..artifacts import Artifact
from ..config.loader import MarketSettings, env_address, load_settings, require_env
from ..constants import (
    DEFAULT_TEST_TOKEN_MINT,
    LENDMARKET_ARTIFACTS_DIR,
    LENDMARKET_NETWORK,
    LENDMARKET_REPORTS_DIR,
    RPC_URL,
    ZERO_ADDRESS,
)
from ..exceptions import LendMarketError, OrchestrationAborted, PreconditionMissing
from ..ledger.addresses import is_zero, normalize
from ..ledger.sandbox import SandboxLedger
from ..logger import get_logger
from ..market.deployer import Deployer
from ..market.listing import placeholders, run_listing
from ..market.orchestrator import MarketOrchestrator
from ..market.report import MarketReport, ReportStore
from ..market.setup import PostDeploySetup
from ..market.tokens import deploy_test_tokens
from ..market.validator import Validator

logger = get_logger(__name__)


# Answer of every mock feed deployed for a dry run (1.0 with 8 decimals)
DRY_RUN_PRICE = 10 ** 8


class Session:
    """Per-invocation state shared by the commands."""

    def __init__(self, network: str, config_path: Optional[str], reports_dir: str,
                 artifacts_dir: str, rpc_url: Optional[str], dry_run: bool):
        self.network = network
        self.config_path = config_path
        self.store = ReportStore(reports_dir, network)
        self.artifacts_dir = artifacts_dir
        self.rpc_url = rpc_url
        self.dry_run = dry_run
        self._deployer: Optional[Deployer] = None
        self._settings: Optional[MarketSettings] = None

    @property
    def settings(self) -> MarketSettings:
        if self._settings is None:
            settings = load_settings(self.config_path)
            settings.market = replace(settings.market, network=self.network)
            settings.validate()
            self._settings = settings
        return self._settings

    @property
    def deployer(self) -> Deployer:
        if self._deployer is None:
            if self.dry_run:
                self._deployer = Deployer(SandboxLedger())
                logger.info("[dry-run] using sandbox ledger, deployer %s", self._deployer.address)
            else:
                from ..ledger.web3_ledger import Web3Ledger
                rpc_url = self.rpc_url or os.environ.get("RPC_URL", str(RPC_URL))
                ledger = Web3Ledger(rpc_url, require_env("PRIVATE_KEY", "deployer signing key"), self.artifacts_dir)
                self._deployer = Deployer(ledger)
        return self._deployer

    # -- dry run ------------------------------------------------------------

    def _mock_feed(self, address: str) -> str:
        if not is_zero(address) and self.deployer.has_code(address):
            return address
        return self.deployer.deploy(Artifact.PRICE_FEED, DRY_RUN_PRICE, 8)

    def rehearsal_settings(self) -> MarketSettings:
        """Settings with every feed and the wrapped native token backed by sandbox code."""
        settings = self.settings
        market = settings.market
        wrapped = market.wrapped_native_token
        if is_zero(wrapped) or not self.deployer.has_code(wrapped):
            wrapped = deploy_test_tokens(self.deployer, ["WETH"], 0).tokens["WETH"]
        base_feed = self._mock_feed(market.network_base_token_price_feed)
        market = replace(
            market,
            wrapped_native_token=wrapped,
            network_base_token_price_feed=base_feed,
            market_reference_currency_price_feed=base_feed,
            sequencer_uptime_feed=(
                self._mock_feed(market.sequencer_uptime_feed) if settings.flags.price_oracle_sentinel
                else market.sequencer_uptime_feed
            ),
        )
        listings = [replace(listing, price_feed=self._mock_feed(listing.price_feed)) for listing in settings.listings]
        roles = settings.roles
        if roles.missing():
            roles = replace(
                roles,
                **{name: self.deployer.address for name in roles.missing()},
            )
        return MarketSettings(market=market, roles=roles, flags=settings.flags, listings=listings)

    def rehearsal_market(self) -> MarketReport:
        settings = self.rehearsal_settings()
        self._settings = settings
        return MarketOrchestrator(self.deployer).run(settings.roles, settings.market, settings.flags)

    def market_report(self) -> MarketReport:
        if self.dry_run:
            return self.rehearsal_market()
        return self.store.read()


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2))


def _fail(error: LendMarketError) -> click.ClickException:
    return click.ClickException(f"{type(error).__name__}: {error}")


@click.group()
@click.version_option(version=__version__, prog_name="lendmarket")
@click.option("--network", "-n", default=None, help="Network name (default: LENDMARKET_NETWORK)")
@click.option("--config", "-c", "config_path", type=click.Path(), default=None, help="Market TOML file")
@click.option("--reports-dir", type=click.Path(), default=None, help="Report directory root")
@click.option("--artifacts-dir", type=click.Path(), default=None, help="Compiled artifact directory")
@click.option("--rpc-url", default=None, help="JSON-RPC endpoint (default: RPC_URL)")
@click.option("--dry-run", is_flag=True, help="Run against an in-process sandbox ledger; write nothing")
@click.pass_context
def cli(ctx, network, config_path, reports_dir, artifacts_dir, rpc_url, dry_run):
    """Lending market deployment pipeline."""
    load_dotenv()
    ctx.obj = Session(
        network=network or os.environ.get("LENDMARKET_NETWORK", str(LENDMARKET_NETWORK)),
        config_path=config_path,
        reports_dir=reports_dir or os.environ.get("LENDMARKET_REPORTS_DIR", str(LENDMARKET_REPORTS_DIR)),
        artifacts_dir=artifacts_dir or os.environ.get("LENDMARKET_ARTIFACTS_DIR", str(LENDMARKET_ARTIFACTS_DIR)),
        rpc_url=rpc_url,
        dry_run=dry_run,
    )


@cli.command("deploy-tokens")
@click.argument("symbols", nargs=-1, required=True)
@click.option("--mint-amount", type=int, default=None, help="Whole tokens minted to the deployer")
@click.pass_obj
def deploy_tokens_cmd(session: Session, symbols, mint_amount):
    """Deploy mintable test tokens.

    Examples:

        lendmarket deploy-tokens USDX WBTC

        lendmarket --dry-run deploy-tokens USDX
    """
    try:
        previous = None
        if not session.dry_run and session.store.latest_tokens_path.exists():
            previous = session.store.read_tokens()
        tokens = deploy_test_tokens(
            session.deployer,
            list(symbols),
            DEFAULT_TEST_TOKEN_MINT if mint_amount is None else mint_amount,
            previous=previous,
        )
        if not session.dry_run:
            session.store.write_tokens(tokens)
    except LendMarketError as e:
        raise _fail(e)
    _echo_json(tokens.to_dict())


@cli.command("deploy-market")
@click.option("--from-report", type=click.Path(exists=True), default=None,
              help="Resume from this report (default: the latest report, if any)")
@click.option("--fresh", is_flag=True, help="Ignore existing reports and deploy everything")
@click.pass_obj
def deploy_market_cmd(session: Session, from_report, fresh):
    """Deploy (or resume deploying) the market.

    A failed run writes a .partial.json report; pass it to --from-report
    to resume without redeploying what already exists.
    """
    try:
        if session.dry_run:
            settings = session.rehearsal_settings()
            previous = None
        else:
            settings = session.settings
            previous = None
            if from_report:
                previous = session.store.read(from_report)
            elif not fresh and session.store.has_latest():
                previous = session.store.read()

        orchestrator = MarketOrchestrator(session.deployer)
        try:
            report = orchestrator.run(settings.roles, settings.market, settings.flags, report=previous)
        except OrchestrationAborted as e:
            if not session.dry_run:
                path = session.store.write_partial(e.report)
                raise click.ClickException(f"{e}; resume with --from-report {path}")
            raise _fail(e)

        if not session.dry_run:
            session.store.write(report)
        result = Validator(session.deployer, report, roles=settings.roles, flags=settings.flags).run()
    except LendMarketError as e:
        raise _fail(e)

    _echo_json(report.to_dict())
    if not result.all_valid:
        raise click.ClickException(f"market deployed but validation found {result.error_count} error(s)")


@cli.command("list-assets")
@click.option("--config-engine", default=None, help="Config engine address (default: CONFIG_ENGINE or the report's)")
@click.pass_obj
def list_assets_cmd(session: Session, config_engine):
    """List the network's assets through a one-shot listing payload.

    Placeholder assets (zero address in the market file) are taken from
    <SYMBOL>_ADDRESS, falling back to the latest token report.
    """
    try:
        report = session.market_report()
        settings = session.settings
        overrides = _asset_overrides(session, settings)
        engine = config_engine or env_address("CONFIG_ENGINE")
        receipt = run_listing(session.deployer, report, settings.listings, overrides, config_engine=engine)
    except LendMarketError as e:
        raise _fail(e)
    _echo_json(receipt.to_dict())


def _asset_overrides(session: Session, settings: MarketSettings) -> Dict[str, str]:
    wanted = placeholders(settings.listings)
    if not wanted:
        return {}
    if session.dry_run:
        return deploy_test_tokens(session.deployer, wanted, 0).tokens

    known = session.store.read_tokens().tokens if session.store.latest_tokens_path.exists() else {}
    overrides = {}
    for symbol in wanted:
        address = env_address(f"{symbol.upper()}_ADDRESS", known.get(symbol, ZERO_ADDRESS))
        if is_zero(address):
            raise PreconditionMissing(
                f"Environment variable {symbol.upper()}_ADDRESS is required (asset address of {symbol})",
                [f"{symbol.upper()}_ADDRESS"],
            )
        overrides[symbol] = normalize(address)
    return overrides


@cli.command("validate")
@click.option("--report", "report_path", type=click.Path(exists=True), default=None, help="Report file to validate")
@click.option("--json", "as_json", is_flag=True, help="Print findings as JSON")
@click.pass_obj
def validate_cmd(session: Session, report_path, as_json):
    """Check a deployed market. Exits non-zero on any error."""
    try:
        report = session.store.read(report_path) if report_path and not session.dry_run else session.market_report()
        settings = session.settings
        result = Validator(session.deployer, report, roles=settings.roles, flags=settings.flags).run()
    except LendMarketError as e:
        raise _fail(e)

    if as_json:
        _echo_json(result.to_dict())
    else:
        colour = "green" if result.all_valid else "red"
        click.echo(click.style(
            f"{'PASS' if result.all_valid else 'FAIL'}: {result.error_count} error(s), {result.warning_count} warning(s)",
            fg=colour,
        ))
    if not result.all_valid:
        raise SystemExit(1)


@cli.command("post-setup")
@click.option("--risk-admin", default=None, help="Risk admin address (default: RISK_ADMIN)")
@click.option("--governance", default=None, help="New owner of provider and registry (default: GOVERNANCE)")
@click.pass_obj
def post_setup_cmd(session: Session, risk_admin, governance):
    """Grant RISK_ADMIN and optionally hand ownership to governance. Safe to repeat."""
    try:
        risk_admin = risk_admin or require_env("RISK_ADMIN", "address receiving the risk admin role")
        governance = governance or env_address("GOVERNANCE")
        report = session.market_report()
        outcome = PostDeploySetup(session.deployer, report).run(
            risk_admin, governance=governance, roles=session.settings.roles
        )
    except LendMarketError as e:
        raise _fail(e)
    _echo_json(outcome.to_dict())


def main():
    cli()


if __name__ == "__main__":
    main()
