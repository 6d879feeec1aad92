"""
Market Validator

Read-only diagnostic pass over a deployed market. Every check runs even
after earlier ones fail; findings are collected and summarized.

Severity:
  - ERROR:   core component missing or dead, any cross-reference mismatch,
             oracle base currency unreadable
  - WARNING: optional component missing or dead, no price for an unlisted
             asset, expected role holder without its role

The market passes when there are no errors, whatever the warning count.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional

from ..ledger.addresses import is_zero, same
from ..logger import get_logger
from .deployer import Deployer
from .report import MarketReport
from .roles import Role, Roles

logger = get_logger(__name__)

# Any asset no market lists; its price can only come from the fallback oracle
UNLISTED_ASSET = "0x000000000000000000000000000000000000dEaD"

_FLAG_OF_FIELD = {
    "fallback_oracle": "fallback_oracle",
    "price_oracle_sentinel": "price_oracle_sentinel",
    "emission_manager": "incentives",
    "rewards_controller_implementation": "incentives",
    "wrapped_token_gateway": "gateway",
    "ui_pool_data_provider": "ui_helpers",
    "wallet_balance_provider": "ui_helpers",
    "l2_encoder": "l2",
    "config_engine": "config_engine",
}


class Severity(IntEnum):
    OK = 0
    WARNING = 1
    ERROR = 2

    @property
    def marker(self) -> str:
        return {Severity.OK: "[OK]", Severity.WARNING: "[WARN]", Severity.ERROR: "[FAIL]"}[self]


@dataclass(frozen=True)
class Finding:
    check: str
    severity: Severity
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"check": self.check, "severity": self.severity.name, "message": self.message}


@dataclass
class ValidationResult:
    """Aggregate of one validator pass."""
    findings: List[Finding] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.WARNING)

    @property
    def all_valid(self) -> bool:
        return self.error_count == 0

    @property
    def errors(self) -> List[Finding]:
        return [f for f in self.findings if f.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[Finding]:
        return [f for f in self.findings if f.severity == Severity.WARNING]

    def add(self, check: str, severity: Severity, message: str) -> Finding:
        finding = Finding(check, severity, message)
        self.findings.append(finding)
        return finding

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allValid": self.all_valid,
            "errorCount": self.error_count,
            "warningCount": self.warning_count,
            "findings": [f.to_dict() for f in self.findings],
        }


class Validator:
    """
    Args:
        deployer: read access to the ledger (no transactions are sent)
        report:   market report to validate
        roles:    expected role holders; enables the role-holder checks
        flags:    deploy flags; optional components they disable are not checked
    """

    def __init__(self, deployer: Deployer, report: MarketReport, roles: Optional[Roles] = None, flags=None):
        self.deployer = deployer
        self.report = report
        self.roles = roles
        self.flags = flags
        self.result = ValidationResult()

    def run(self) -> ValidationResult:
        self.result = ValidationResult()
        self.deployer.bind_report(self.report)

        self.check_presence()
        self.check_pool_cross_reference()
        self.check_configurator_cross_reference()
        self.check_oracle()
        self.check_acl_manager()
        self.check_role_holders()

        result = self.result
        summary = "[OK] market valid" if result.all_valid else "[FAIL] market invalid"
        logger.info("%s: %d error(s), %d warning(s)", summary, result.error_count, result.warning_count)
        return result

    # -- recording ----------------------------------------------------------

    def _record(self, check: str, severity: Severity, message: str) -> None:
        self.result.add(check, severity, message)
        line = "%s %s: %s"
        if severity == Severity.ERROR:
            logger.error(line, severity.marker, check, message)
        elif severity == Severity.WARNING:
            logger.warning(line, severity.marker, check, message)
        else:
            logger.info(line, severity.marker, check, message)

    def _enabled(self, name: str) -> bool:
        flag = _FLAG_OF_FIELD.get(name)
        if flag is None or self.flags is None:
            return True
        return bool(getattr(self.flags, flag))

    # -- checks -------------------------------------------------------------

    def check_presence(self) -> None:
        for name in MarketReport.core_fields():
            self._check_component(name, Severity.ERROR)
        for name in MarketReport.peripheral_fields():
            if self._enabled(name):
                self._check_component(name, Severity.WARNING)

    def _check_component(self, name: str, severity: Severity) -> None:
        key = self.report.key_of(name)
        address = self.report.get(name)
        if is_zero(address):
            self._record(key, severity, "address is zero")
        elif not self.deployer.has_code(address):
            self._record(key, severity, f"no code at {address}")
        else:
            self._record(key, Severity.OK, address)

    def _compare(self, check: str, target: str, fn: str, expected: str) -> None:
        if is_zero(target):
            self._record(check, Severity.ERROR, "cannot query: address is zero")
            return
        answer = self.deployer.try_query(target, fn)
        if not answer.ok:
            self._record(check, Severity.ERROR, f"{fn} failed: {answer.reason}")
        elif not same(answer.value, expected):
            self._record(check, Severity.ERROR, f"{fn} returned {answer.value}, report has {expected}")
        else:
            self._record(check, Severity.OK, f"{fn} matches {expected}")

    def check_pool_cross_reference(self) -> None:
        report = self.report
        self._compare("provider -> pool", report.pool_addresses_provider, "get_pool", report.pool_proxy)
        self._compare("pool -> provider", report.pool_proxy, "ADDRESSES_PROVIDER", report.pool_addresses_provider)

    def check_configurator_cross_reference(self) -> None:
        report = self.report
        self._compare("provider -> configurator", report.pool_addresses_provider,
                      "get_pool_configurator", report.pool_configurator_proxy)

    def check_oracle(self) -> None:
        report = self.report
        self._compare("provider -> oracle", report.pool_addresses_provider, "get_price_oracle", report.aave_oracle)
        if is_zero(report.aave_oracle):
            return

        base = self.deployer.try_query(report.aave_oracle, "BASE_CURRENCY")
        if base.ok:
            self._record("oracle base currency", Severity.OK, str(base.value))
        else:
            self._record("oracle base currency", Severity.ERROR, f"BASE_CURRENCY failed: {base.reason}")

        price = self.deployer.try_query(report.aave_oracle, "get_asset_price", UNLISTED_ASSET)
        if price.ok:
            self._record("oracle price", Severity.OK, f"unlisted asset priced at {price.value}")
        else:
            self._record("oracle price", Severity.WARNING, f"no price for unlisted asset (no assets listed?): {price.reason}")

    def check_acl_manager(self) -> None:
        report = self.report
        self._compare("provider -> acl manager", report.pool_addresses_provider, "get_acl_manager", report.acl_manager)

    def check_role_holders(self) -> None:
        if self.roles is None or is_zero(self.report.acl_manager):
            return
        expected = {
            Role.POOL_ADMIN: self.roles.pool_admin,
            Role.EMERGENCY_ADMIN: self.roles.emergency_admin,
        }
        for role, holder in expected.items():
            if is_zero(holder):
                continue
            check = f"role {role.name}"
            answer = self.deployer.try_query(self.report.acl_manager, "has_role", role, holder)
            if not answer.ok:
                self._record(check, Severity.WARNING, f"has_role failed: {answer.reason}")
            elif not answer.value:
                self._record(check, Severity.WARNING, f"{holder} does not hold {role.name}")
            else:
                self._record(check, Severity.OK, holder)


def validate_market(deployer: Deployer, report: MarketReport, roles: Optional[Roles] = None, flags=None) -> ValidationResult:
    return Validator(deployer, report, roles=roles, flags=flags).run()
