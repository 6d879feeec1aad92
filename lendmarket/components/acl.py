"""
ACL Manager

Role membership for one market. The ACL admin registered in the
addresses provider at construction time receives DEFAULT_ADMIN, which
administers every other role.
"""

from typing import Dict, List, Set, Union

from ..artifacts import Artifact
from ..exceptions import AccessDenied, PreconditionMissing
from ..ledger.addresses import is_zero, normalize, same
from ..ledger.sandbox import Component
from ..market.roles import Role


def _as_role(value: Union[Role, int, bytes]) -> Role:
    if isinstance(value, bytes):
        return Role.from_role_id(value)
    return Role(value)


class ACLManager(Component):

    artifact = Artifact.ACL_MANAGER

    def __init__(self, provider: str):
        self._provider = normalize(provider)
        acl_admin = self._call(self._provider, "get_acl_admin")
        self._require(not is_zero(acl_admin), "ACL admin cannot be set to the zero address", PreconditionMissing)
        self._members: Dict[Role, Set[str]] = {role: set() for role in Role}
        self._members[Role.DEFAULT_ADMIN].add(normalize(acl_admin))

    def ADDRESSES_PROVIDER(self) -> str:
        return self._provider

    # -- generic role API ---------------------------------------------------

    def has_role(self, role, account: str) -> bool:
        return normalize(account) in self._members[_as_role(role)]

    def grant_role(self, role, account: str) -> None:
        self._only_admin()
        self._members[_as_role(role)].add(normalize(account))

    def revoke_role(self, role, account: str) -> None:
        self._only_admin()
        self._members[_as_role(role)].discard(normalize(account))

    def renounce_role(self, role, account: str) -> None:
        self._require(same(account, self.msg_sender), "can only renounce roles for self")
        self._members[_as_role(role)].discard(normalize(account))

    def get_role_members(self, role) -> List[str]:
        return sorted(self._members[_as_role(role)])

    def _only_admin(self) -> None:
        if normalize(self.msg_sender) not in self._members[Role.DEFAULT_ADMIN]:
            raise AccessDenied(f"caller {self.msg_sender} is missing role DEFAULT_ADMIN")

    # -- named helpers ------------------------------------------------------

    def add_pool_admin(self, admin: str) -> None:
        self.grant_role(Role.POOL_ADMIN, admin)

    def remove_pool_admin(self, admin: str) -> None:
        self.revoke_role(Role.POOL_ADMIN, admin)

    def is_pool_admin(self, admin: str) -> bool:
        return self.has_role(Role.POOL_ADMIN, admin)

    def add_emergency_admin(self, admin: str) -> None:
        self.grant_role(Role.EMERGENCY_ADMIN, admin)

    def is_emergency_admin(self, admin: str) -> bool:
        return self.has_role(Role.EMERGENCY_ADMIN, admin)

    def add_risk_admin(self, admin: str) -> None:
        self.grant_role(Role.RISK_ADMIN, admin)

    def remove_risk_admin(self, admin: str) -> None:
        self.revoke_role(Role.RISK_ADMIN, admin)

    def is_risk_admin(self, admin: str) -> bool:
        return self.has_role(Role.RISK_ADMIN, admin)

    def add_asset_listing_admin(self, admin: str) -> None:
        self.grant_role(Role.ASSET_LISTING_ADMIN, admin)

    def is_asset_listing_admin(self, admin: str) -> bool:
        return self.has_role(Role.ASSET_LISTING_ADMIN, admin)
