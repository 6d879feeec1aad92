"""
Post-Deploy Setup

Finalizes role assignment on a deployed market:
  1. grant RISK_ADMIN to the target address (idempotent)
  2. optionally hand ownership of the addresses provider and its registry
     to governance, only while the deployer still owns them
  3. read back the current role holders

Every action is safe to repeat. A satisfied precondition is reported as
REDUNDANT and logged, never raised.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional

from ..exceptions import PreconditionMissing
from ..ledger.addresses import is_zero, normalize, same
from ..logger import get_logger
from .deployer import Deployer
from .report import MarketReport
from .roles import Role, Roles

logger = get_logger(__name__)


class SetupOutcome(IntEnum):
    APPLIED = 0    # State changed
    REDUNDANT = 1  # Already in the requested state
    SKIPPED = 2    # Not applicable (unexpected owner, component absent)


@dataclass
class SetupReport:
    actions: Dict[str, SetupOutcome] = field(default_factory=dict)
    holders: Dict[str, Any] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return any(outcome == SetupOutcome.APPLIED for outcome in self.actions.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "actions": {name: outcome.name for name, outcome in self.actions.items()},
            "holders": self.holders,
        }


class PostDeploySetup:

    # Ownable components handed to governance, in transfer order
    OWNED = ("pool_addresses_provider", "pool_addresses_provider_registry")

    def __init__(self, deployer: Deployer, report: MarketReport):
        self.deployer = deployer
        self.report = report

    def _require_report(self, *names: str) -> None:
        missing = self.report.missing(names)
        if missing:
            keys = [self.report.key_of(name) for name in missing]
            raise PreconditionMissing(f"Market report lacks: {', '.join(keys)}", keys)

    def grant_risk_admin(self, risk_admin: str) -> SetupOutcome:
        if is_zero(risk_admin):
            raise PreconditionMissing("Risk admin address is required", ["RISK_ADMIN"])
        self._require_report("acl_manager")
        acl = self.report.acl_manager
        self.deployer.require_live("aclManager", acl)

        if self.deployer.query(acl, "has_role", Role.RISK_ADMIN, risk_admin):
            logger.info("[skip] %s already holds RISK_ADMIN (redundant)", risk_admin)
            return SetupOutcome.REDUNDANT
        self.deployer.transact(acl, "add_risk_admin", risk_admin)
        logger.info("[acl] granted RISK_ADMIN to %s", risk_admin)
        return SetupOutcome.APPLIED

    def transfer_ownership(self, governance: str) -> Dict[str, SetupOutcome]:
        """Move provider (and registry, when recorded) ownership to *governance*."""
        if is_zero(governance):
            raise PreconditionMissing("Governance address is zero", ["GOVERNANCE"])
        self._require_report("pool_addresses_provider")
        governance = normalize(governance)

        outcomes = {}
        for name in self.OWNED:
            if not self.report.is_set(name):
                continue
            key = self.report.key_of(name)
            address = self.report.get(name)
            owner = self.deployer.query(address, "owner")
            if same(owner, governance):
                logger.info("[skip] %s already owned by governance %s (redundant)", key, governance)
                outcomes[key] = SetupOutcome.REDUNDANT
            elif same(owner, self.deployer.address):
                self.deployer.transact(address, "transfer_ownership", governance)
                logger.info("[owner] %s ownership transferred to %s", key, governance)
                outcomes[key] = SetupOutcome.APPLIED
            else:
                logger.warning("[owner] %s is owned by %s, not the deployer; transfer skipped", key, owner)
                outcomes[key] = SetupOutcome.SKIPPED
        return outcomes

    def role_holders(self, roles: Optional[Roles] = None) -> Dict[str, Any]:
        """Current owners, ACL admin and role membership. Read only."""
        report = self.report
        holders: Dict[str, Any] = {}

        def read(label: str, address: str, fn: str, *args: Any) -> None:
            if is_zero(address):
                return
            answer = self.deployer.try_query(address, fn, *args)
            holders[label] = answer.value if answer.ok else None
            logger.info("[roles] %s: %s", label, answer.value if answer.ok else f"unavailable ({answer.reason})")

        read("providerOwner", report.pool_addresses_provider, "owner")
        read("registryOwner", report.pool_addresses_provider_registry, "owner")
        read("aclAdmin", report.pool_addresses_provider, "get_acl_admin")

        if roles is not None and not is_zero(report.acl_manager):
            for role, holder in roles.grants().items():
                if not is_zero(holder):
                    read(f"{role.name}:{holder}", report.acl_manager, "has_role", role, holder)
        return holders

    def run(self, risk_admin: str, governance: Optional[str] = None, roles: Optional[Roles] = None) -> SetupReport:
        self.deployer.bind_report(self.report)
        setup = SetupReport()
        setup.actions["riskAdmin"] = self.grant_risk_admin(risk_admin)
        if governance and not is_zero(governance):
            for key, outcome in self.transfer_ownership(governance).items():
                setup.actions[f"owner:{key}"] = outcome
        setup.holders = self.role_holders(roles)
        return setup
