"""
Role Registry

Which accounts hold which named roles, and which role administers which.

Rules (enforced in code):
- The set of roles is closed (Role enum)
- Every role has exactly one admin role; OWNER_ROLE administers itself
- Grant and revoke require the caller to hold the target role's admin role
- Grant and revoke are idempotent: only a real membership change emits a fact
- An account may renounce its own membership, never someone else's
"""

from enum import Enum
from typing import Iterable, TYPE_CHECKING

from eth_utils import keccak

from ..observability import get_logger
from ..schemas import EventType, RoleChangedPayload
from .accounts import normalize_address
from .errors import AccessDenied, ValidationError

if TYPE_CHECKING:
    from ..db.store import StateStore, TransactionContext

logger = get_logger(__name__)


class Role(str, Enum):
    """The closed set of capabilities."""
    OWNER = "OWNER_ROLE"
    MINTER_BURNER = "MINTER_BURNER_ROLE"
    MINTER = "MINTER_ROLE"
    PAUSER = "PAUSER_ROLE"
    UPGRADE_OPERATOR = "ASTRO_MECHANIC_ROLE"
    FORGE_OPERATOR = "ASTRO_BLACKSMITH_ROLE"

    @property
    def role_id(self) -> str:
        """0x-prefixed keccak256 of the role name."""
        return "0x" + keccak(text=self.value).hex()

    @classmethod
    def parse(cls, value) -> "Role":
        """
        Resolve a role from a Role, its value ("MINTER_ROLE"), its member
        name ("MINTER") or its role_id.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for role in cls:
                if value in (role.value, role.name) or value.lower() == role.role_id:
                    return role
        raise ValidationError(f"Unknown role: {value!r}")


class RoleRegistry:
    """
    Access-control table of one ledger.

    Membership and admin tables live in the ledger's StateStore, so role
    changes commit or roll back together with the operation that made them.
    """

    def __init__(self, store: "StateStore", source: str):
        self.store = store
        self.source = source
        self._members = store.table(f"{source}.roles.members")
        self._admins = store.table(f"{source}.roles.admins")

    def bootstrap(self, deployer: str, roles: Iterable[Role]) -> None:
        """Set every admin to OWNER_ROLE and grant the deployer its roles."""
        deployer = normalize_address(deployer)
        with self.store.begin("roles.bootstrap") as ctx:
            for role in Role:
                self._admins.set(role.value, Role.OWNER.value)
            for role in roles:
                self._grant(ctx, role, deployer, deployer)

    # --------------------------------------------------------
    # Reads
    # --------------------------------------------------------

    def has_role(self, role: Role, account: str) -> bool:
        role = Role.parse(role)
        return (role.value, normalize_address(account)) in self._members

    def get_role_admin(self, role: Role) -> Role:
        role = Role.parse(role)
        return Role(self._admins.get(role.value, Role.OWNER.value))

    def members(self, role: Role) -> list[str]:
        role = Role.parse(role)
        return [account for (name, account) in self._members if name == role.value]

    def require(self, role: Role, account: str) -> None:
        """Raise AccessDenied unless account holds role."""
        if not self.has_role(role, account):
            raise AccessDenied(role, account)

    # --------------------------------------------------------
    # Commands
    # --------------------------------------------------------

    def grant_role(self, caller: str, role: Role, account: str) -> bool:
        """Grant role to account. Returns False if it was already held."""
        with self.store.begin("roles.grant") as ctx:
            role = Role.parse(role)
            caller = normalize_address(caller)
            account = normalize_address(account)
            self.require(self.get_role_admin(role), caller)
            changed = self._grant(ctx, role, account, caller)
        if changed:
            logger.info("Role granted", ledger=self.source, role=role.value, account=account)
        return changed

    def revoke_role(self, caller: str, role: Role, account: str) -> bool:
        """Revoke role from account. Returns False if it was not held."""
        with self.store.begin("roles.revoke") as ctx:
            role = Role.parse(role)
            caller = normalize_address(caller)
            account = normalize_address(account)
            self.require(self.get_role_admin(role), caller)
            changed = self._revoke(ctx, role, account, caller)
        if changed:
            logger.info("Role revoked", ledger=self.source, role=role.value, account=account)
        return changed

    def renounce_role(self, caller: str, role: Role, account: str) -> bool:
        """Drop the caller's own membership."""
        with self.store.begin("roles.renounce") as ctx:
            role = Role.parse(role)
            caller = normalize_address(caller)
            account = normalize_address(account)
            if account != caller:
                raise AccessDenied(
                    role, caller, f"account {caller} can only renounce roles for itself"
                )
            changed = self._revoke(ctx, role, account, caller)
        if changed:
            logger.info("Role renounced", ledger=self.source, role=role.value, account=account)
        return changed

    def _grant(self, ctx: "TransactionContext", role: Role, account: str, sender: str) -> bool:
        if not self._members.insert_if_absent((role.value, account), True):
            return False
        ctx.emit(
            EventType.ROLE_GRANTED,
            self.source,
            RoleChangedPayload(
                role=role.value, role_id=role.role_id, account=account, sender=sender
            ),
        )
        return True

    def _revoke(self, ctx: "TransactionContext", role: Role, account: str, sender: str) -> bool:
        key = (role.value, account)
        if key not in self._members:
            return False
        self._members.delete(key)
        ctx.emit(
            EventType.ROLE_REVOKED,
            self.source,
            RoleChangedPayload(
                role=role.value, role_id=role.role_id, account=account, sender=sender
            ),
        )
        return True
