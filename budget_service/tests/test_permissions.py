import pytest
from budget_service.models.groups import GroupRole
from budget_service.utils.permissions import GroupPermission, ROLE_PERMISSIONS, has_permission


@pytest.mark.unit
class TestPermissions:
    """Test the role capability table."""

    def test_every_role_has_an_entry(self):
        """Test every role appears in the table."""
        assert set(ROLE_PERMISSIONS) == set(GroupRole)

    def test_owner_has_everything(self):
        """Test owners hold every permission."""
        assert all(has_permission(GroupRole.owner, p) for p in GroupPermission)

    def test_admin_cannot_manage_settings(self):
        """Test admins manage members but not settings."""
        assert has_permission(GroupRole.admin, GroupPermission.manage_members)
        assert not has_permission(GroupRole.admin, GroupPermission.manage_settings)

    @pytest.mark.parametrize("permission, allowed", [
        (GroupPermission.read, True),
        (GroupPermission.write_transactions, True),
        (GroupPermission.record_settlements, True),
        (GroupPermission.delete_transactions, False),
        (GroupPermission.manage_members, False),
        (GroupPermission.manage_settings, False),
    ])
    def test_member_capabilities(self, permission, allowed):
        """Test what plain members may do."""
        assert has_permission(GroupRole.member, permission) is allowed

    def test_role_given_as_string(self):
        """Test roles may be passed as strings."""
        assert has_permission("admin", GroupPermission.record_settlements)
