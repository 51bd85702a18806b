import enum
from typing import Dict, FrozenSet

from budget_service.models.groups import GroupRole


class GroupPermission(str, enum.Enum):
    read = "read"
    write_transactions = "write_transactions"
    delete_transactions = "delete_transactions"
    record_settlements = "record_settlements"
    manage_members = "manage_members"
    manage_settings = "manage_settings"


ALL_PERMISSIONS: FrozenSet[GroupPermission] = frozenset(GroupPermission)

ROLE_PERMISSIONS: Dict[GroupRole, FrozenSet[GroupPermission]] = {
    GroupRole.owner: ALL_PERMISSIONS,
    GroupRole.admin: ALL_PERMISSIONS - {GroupPermission.manage_settings},
    GroupRole.member: frozenset({
        GroupPermission.read,
        GroupPermission.write_transactions,
        GroupPermission.record_settlements,
    }),
}


def has_permission(role: GroupRole, permission: GroupPermission) -> bool:
    """Check a role against the fixed capability table."""
    return permission in ROLE_PERMISSIONS[GroupRole(role)]
