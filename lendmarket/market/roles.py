"""
Market roles

Role: the closed set of ACL capabilities a market grants.
Roles: the addresses that hold the market's administrative roles.
"""

from dataclasses import dataclass, fields
from enum import IntEnum
from typing import Any, Dict, List

from eth_utils import keccak

from ..constants import ZERO_ADDRESS, ZERO_BYTES32
from ..ledger.addresses import is_zero, normalize


class Role(IntEnum):
    """ACL capability granted by the ACL manager."""
    DEFAULT_ADMIN = 0        # Grants and revokes every other role
    POOL_ADMIN = 1           # Day-to-day configuration
    EMERGENCY_ADMIN = 2      # Pause / unpause
    RISK_ADMIN = 3           # Risk parameter changes
    ASSET_LISTING_ADMIN = 4  # Listing new reserves
    FLASH_BORROWER = 5
    BRIDGE = 6

    @property
    def role_id(self) -> bytes:
        """32-byte identifier used on the JSON-RPC boundary."""
        if self is Role.DEFAULT_ADMIN:
            return ZERO_BYTES32
        return keccak(text=self.name)

    @classmethod
    def from_role_id(cls, role_id: bytes) -> "Role":
        for role in cls:
            if role.role_id == role_id:
                return role
        raise ValueError(f"unknown role id {role_id.hex()}")


@dataclass(frozen=True)
class Roles:
    """
    Administrative role holders of one market.

    Fields:
        market_owner:    Set at genesis; owns the ACL admin capability
        pool_admin:      Day-to-day risk / configuration changes
        emergency_admin: Pause guardian
        risk_admin:      Granted by post-deploy setup
    """
    market_owner: str = ZERO_ADDRESS
    pool_admin: str = ZERO_ADDRESS
    emergency_admin: str = ZERO_ADDRESS
    risk_admin: str = ZERO_ADDRESS

    def __post_init__(self):
        for f in fields(self):
            object.__setattr__(self, f.name, normalize(getattr(self, f.name)))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Roles":
        return cls(
            market_owner=data.get("market_owner", ZERO_ADDRESS),
            pool_admin=data.get("pool_admin", ZERO_ADDRESS),
            emergency_admin=data.get("emergency_admin", ZERO_ADDRESS),
            risk_admin=data.get("risk_admin", ZERO_ADDRESS),
        )

    @classmethod
    def single(cls, address: str) -> "Roles":
        """Every role held by one account (local and test networks)."""
        return cls(address, address, address, address)

    def missing(self, required=("market_owner", "pool_admin", "emergency_admin")) -> List[str]:
        return [name for name in required if is_zero(getattr(self, name))]

    def grants(self) -> Dict[Role, str]:
        """ACL role each holder is expected to have."""
        return {
            Role.DEFAULT_ADMIN: self.market_owner,
            Role.POOL_ADMIN: self.pool_admin,
            Role.EMERGENCY_ADMIN: self.emergency_admin,
            Role.RISK_ADMIN: self.risk_admin,
        }

    def to_dict(self) -> Dict[str, str]:
        return {
            "marketOwner": self.market_owner,
            "poolAdmin": self.pool_admin,
            "emergencyAdmin": self.emergency_admin,
            "riskAdmin": self.risk_admin,
        }
