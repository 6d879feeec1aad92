"""
Deployment Orchestrator

Deploys a market in dependency order and accumulates the resulting
addresses into a MarketReport.

Resume: every component goes through an explicit "already present in the
incoming report → reuse and skip" branch, and every wiring call is
guarded by a read of the current on-ledger value, so re-running after a
mid-run failure never creates or configures anything twice.

Fail-fast: the first failing stage aborts the run with
OrchestrationAborted, which carries the partially filled report.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from ..artifacts import Artifact
from ..config.loader import DeployFlags, MarketConfig
from ..constants import USD_BASE_CURRENCY
from ..exceptions import LendMarketError, OrchestrationAborted, PreconditionMissing
from ..ledger.addresses import is_zero, same
from ..logger import get_logger
from .deployer import Deployer
from .report import MarketReport
from .roles import Role, Roles

logger = get_logger(__name__)


def expected_fields(flags: DeployFlags) -> List[str]:
    """Report fields a complete run fills for *flags*."""
    names = list(MarketReport.core_fields())
    optional = {
        "fallback_oracle": flags.fallback_oracle,
        "price_oracle_sentinel": flags.price_oracle_sentinel,
        "emission_manager": flags.incentives,
        "rewards_controller_implementation": flags.incentives,
        "wrapped_token_gateway": flags.gateway,
        "ui_pool_data_provider": flags.ui_helpers,
        "wallet_balance_provider": flags.ui_helpers,
        "l2_encoder": flags.l2,
        "config_engine": flags.config_engine,
    }
    names.extend(name for name, enabled in optional.items() if enabled)
    return names


@dataclass
class _Run:
    roles: Roles
    config: MarketConfig
    flags: DeployFlags
    report: MarketReport


class MarketOrchestrator:
    """
    Deploys one market.

    Usage:
        >>> report = MarketOrchestrator(deployer).run(roles, config, flags)
    """

    def __init__(self, deployer: Deployer):
        self.deployer = deployer
        self.stages: List[Tuple[str, Callable[[_Run], None]]] = [
            ("registry", self._registry),
            ("addresses-provider", self._addresses_provider),
            ("data-provider", self._data_provider),
            ("pool-implementation", self._pool_implementation),
            ("configurator-implementation", self._configurator_implementation),
            ("acl", self._acl),
            ("pool-proxy", self._pool_proxy),
            ("configurator-proxy", self._configurator_proxy),
            ("treasury", self._treasury),
            ("rate-strategy", self._rate_strategy),
            ("token-implementations", self._token_implementations),
            ("fallback-oracle", self._fallback_oracle),
            ("oracle", self._oracle),
            ("sentinel", self._sentinel),
            ("incentives", self._incentives),
            ("periphery", self._periphery),
            ("config-engine", self._config_engine),
        ]

    def run(
        self,
        roles: Roles,
        config: MarketConfig,
        flags: Optional[DeployFlags] = None,
        report: Optional[MarketReport] = None,
    ) -> MarketReport:
        """
        Deploy every missing component.

        Args:
            roles:  market role holders
            config: network parameters
            flags:  optional components; defaults to DeployFlags()
            report: partially filled report from an earlier run

        Returns:
            The completed report (a new object; *report* is not mutated)

        Raises:
            PreconditionMissing: required configuration absent, nothing deployed
            OrchestrationAborted: a stage failed; ``.report`` holds the partial result
        """
        flags = flags or DeployFlags()
        self.check_preconditions(roles, config, flags)

        run = _Run(roles=roles, config=config, flags=flags, report=report.copy() if report else MarketReport())
        reused = len(run.report.populated())
        if reused:
            logger.info("[resume] %d components already present in the incoming report", reused)

        for stage, step in self.stages:
            logger.debug("[stage] %s", stage)
            try:
                step(run)
            except LendMarketError as e:
                logger.error("[abort] stage %s failed: %s", stage, e)
                raise OrchestrationAborted(stage, run.report, e) from e
            except Exception as e:
                logger.exception("[abort] stage %s failed unexpectedly", stage)
                raise OrchestrationAborted(stage, run.report, e) from e

        missing = run.report.missing(expected_fields(flags))
        if missing:
            raise OrchestrationAborted("finalize", run.report, PreconditionMissing(
                f"run finished with unset fields: {', '.join(missing)}", missing
            ))
        logger.info("[done] market '%s' deployed on %s", config.market_id, config.network)
        return run.report

    @staticmethod
    def check_preconditions(roles: Roles, config: MarketConfig, flags: DeployFlags) -> None:
        missing = config.missing() + roles.missing()
        if flags.price_oracle_sentinel and is_zero(config.sequencer_uptime_feed):
            missing.append("sequencer_uptime_feed")
        if missing:
            raise PreconditionMissing(f"Missing required configuration: {', '.join(missing)}", missing)

    # -- helpers ------------------------------------------------------------

    def _deploy(self, run: _Run, name: str, artifact: Artifact, *args) -> Tuple[str, bool]:
        salt = f"{run.config.salt}:{name}" if run.config.salt else None
        return self.deployer.deploy_or_reuse(run.report, name, artifact, *args, salt=salt)

    def _ensure(self, target: str, getter: str, setter: str, value: str) -> None:
        """Call *setter* only when *getter* does not already return *value*."""
        if same(self.deployer.query(target, getter), value):
            logger.debug("[skip] %s already returns %s", getter, value)
            return
        self.deployer.transact(target, setter, value)

    def _grant(self, acl: str, role: Role, account: str) -> None:
        if self.deployer.query(acl, "has_role", role, account):
            logger.debug("[skip] %s already holds %s", account, role.name)
            return
        self.deployer.transact(acl, "grant_role", role, account)
        logger.info("[acl] granted %s to %s", role.name, account)

    def _initialize(self, implementation: str, provider: str) -> None:
        """Lock an implementation by initializing it, unless that already happened."""
        if self.deployer.query(implementation, "last_initialized_revision") > 0:
            logger.debug("[skip] %s already initialized", implementation)
            return
        self.deployer.transact(implementation, "initialize", provider)

    def _proxy(self, run: _Run, name: str, getter: str, setter: str, implementation: str) -> None:
        if run.report.is_set(name):
            self.deployer.require_live(run.report.key_of(name), run.report.get(name))
            self.deployer.bind(run.report.get(name), run.report.interface_of(name))
            logger.info("[skip] %s already at %s", run.report.key_of(name), run.report.get(name))
            return
        provider = run.report.pool_addresses_provider
        proxy = self.deployer.query(provider, getter)
        if is_zero(proxy):
            self.deployer.transact(provider, setter, implementation)
            proxy = self.deployer.query(provider, getter)
            logger.info("[deploy] %s at %s", run.report.key_of(name), proxy)
        else:
            logger.info("[resume] %s recovered from addresses provider: %s", run.report.key_of(name), proxy)
        run.report.set(name, proxy)
        self.deployer.bind(proxy, run.report.interface_of(name))

    # -- stages -------------------------------------------------------------

    def _registry(self, run: _Run) -> None:
        self._deploy(run, "pool_addresses_provider_registry", Artifact.POOL_ADDRESSES_PROVIDER_REGISTRY,
                     self.deployer.address)

    def _addresses_provider(self, run: _Run) -> None:
        provider, _ = self._deploy(run, "pool_addresses_provider", Artifact.POOL_ADDRESSES_PROVIDER,
                                   run.config.market_id, self.deployer.address)
        registry = run.report.pool_addresses_provider_registry
        if self.deployer.query(registry, "get_addresses_provider_id_by_address", provider) == 0:
            self.deployer.transact(registry, "register_addresses_provider", provider, run.config.provider_id)
            logger.info("[registry] provider %s registered with id %d", provider, run.config.provider_id)

    def _data_provider(self, run: _Run) -> None:
        provider = run.report.pool_addresses_provider
        data_provider, _ = self._deploy(run, "protocol_data_provider", Artifact.PROTOCOL_DATA_PROVIDER, provider)
        self._ensure(provider, "get_pool_data_provider", "set_pool_data_provider", data_provider)

    def _pool_implementation(self, run: _Run) -> None:
        provider = run.report.pool_addresses_provider
        artifact = Artifact.L2_POOL if run.flags.l2 else Artifact.POOL
        implementation, _ = self._deploy(run, "pool_implementation", artifact, provider)
        self._initialize(implementation, provider)

    def _configurator_implementation(self, run: _Run) -> None:
        provider = run.report.pool_addresses_provider
        implementation, _ = self._deploy(run, "pool_configurator_implementation", Artifact.POOL_CONFIGURATOR)
        self._initialize(implementation, provider)

    def _acl(self, run: _Run) -> None:
        provider = run.report.pool_addresses_provider
        if is_zero(self.deployer.query(provider, "get_acl_admin")):
            self.deployer.transact(provider, "set_acl_admin", self.deployer.address)
        acl, _ = self._deploy(run, "acl_manager", Artifact.ACL_MANAGER, provider)
        self._ensure(provider, "get_acl_manager", "set_acl_manager", acl)
        self._grant(acl, Role.POOL_ADMIN, run.roles.pool_admin)
        self._grant(acl, Role.EMERGENCY_ADMIN, run.roles.emergency_admin)
        self._grant(acl, Role.DEFAULT_ADMIN, run.roles.market_owner)

    def _pool_proxy(self, run: _Run) -> None:
        self._proxy(run, "pool_proxy", "get_pool", "set_pool_impl", run.report.pool_implementation)

    def _configurator_proxy(self, run: _Run) -> None:
        self._proxy(run, "pool_configurator_proxy", "get_pool_configurator", "set_pool_configurator_impl",
                    run.report.pool_configurator_implementation)

    def _treasury(self, run: _Run) -> None:
        self._deploy(run, "treasury", Artifact.TREASURY, run.roles.market_owner)

    def _rate_strategy(self, run: _Run) -> None:
        self._deploy(run, "default_interest_rate_strategy", Artifact.INTEREST_RATE_STRATEGY,
                     run.report.pool_addresses_provider)

    def _token_implementations(self, run: _Run) -> None:
        pool = run.report.pool_proxy
        self._deploy(run, "a_token_implementation", Artifact.ATOKEN, pool)
        self._deploy(run, "variable_debt_token_implementation", Artifact.VARIABLE_DEBT_TOKEN, pool)

    def _fallback_oracle(self, run: _Run) -> None:
        if not run.flags.fallback_oracle:
            return
        self._deploy(run, "fallback_oracle", Artifact.FALLBACK_ORACLE, run.config.network_base_token_price_feed)

    def _oracle(self, run: _Run) -> None:
        provider = run.report.pool_addresses_provider
        oracle, _ = self._deploy(
            run,
            "aave_oracle",
            Artifact.AAVE_ORACLE,
            provider,
            [],
            [],
            run.report.fallback_oracle,
            USD_BASE_CURRENCY,
            run.config.base_currency_unit,
        )
        self._ensure(provider, "get_price_oracle", "set_price_oracle", oracle)

    def _sentinel(self, run: _Run) -> None:
        if not run.flags.price_oracle_sentinel:
            return
        provider = run.report.pool_addresses_provider
        sentinel, _ = self._deploy(run, "price_oracle_sentinel", Artifact.PRICE_ORACLE_SENTINEL, provider,
                                   run.config.sequencer_uptime_feed, run.config.sentinel_grace_period)
        self._ensure(provider, "get_price_oracle_sentinel", "set_price_oracle_sentinel", sentinel)

    def _incentives(self, run: _Run) -> None:
        if not run.flags.incentives:
            return
        emission_manager, _ = self._deploy(run, "emission_manager", Artifact.EMISSION_MANAGER,
                                           run.roles.market_owner)
        self._deploy(run, "rewards_controller_implementation", Artifact.REWARDS_CONTROLLER, emission_manager)

    def _periphery(self, run: _Run) -> None:
        if run.flags.gateway:
            self._deploy(run, "wrapped_token_gateway", Artifact.WRAPPED_TOKEN_GATEWAY,
                         run.config.wrapped_native_token, run.roles.market_owner, run.report.pool_proxy)
        if run.flags.ui_helpers:
            self._deploy(run, "ui_pool_data_provider", Artifact.UI_POOL_DATA_PROVIDER,
                         run.config.network_base_token_price_feed, run.config.market_reference_currency_price_feed)
            self._deploy(run, "wallet_balance_provider", Artifact.WALLET_BALANCE_PROVIDER)
        if run.flags.l2:
            self._deploy(run, "l2_encoder", Artifact.L2_ENCODER, run.report.pool_proxy)

    def _config_engine(self, run: _Run) -> None:
        if not run.flags.config_engine:
            return
        report = run.report
        self._deploy(
            run,
            "config_engine",
            Artifact.CONFIG_ENGINE,
            report.pool_proxy,
            report.pool_configurator_proxy,
            report.aave_oracle,
            report.a_token_implementation,
            report.variable_debt_token_implementation,
            report.rewards_controller_implementation,
            report.treasury,
            report.default_interest_rate_strategy,
        )
