import pytest
from pydantic import ValidationError

from linkshare.models.enums import Permission
from linkshare.models.permissions import DEFAULT_LINK_PERMISSIONS, LinkPermissions


def test_default_policy_grants_insert_and_view_only() -> None:
    assert DEFAULT_LINK_PERMISSIONS.allows(Permission.INSERT)
    assert DEFAULT_LINK_PERMISSIONS.allows(Permission.VIEW)
    assert not DEFAULT_LINK_PERMISSIONS.allows(Permission.DELETE)
    assert not DEFAULT_LINK_PERMISSIONS.allows(Permission.MODIFY_SCHEMA)


def test_each_permission_maps_to_its_own_bit() -> None:
    only_delete = LinkPermissions(can_insert=False, can_view=False, can_delete=True, can_modify_schema=False)

    assert [p for p in Permission if only_delete.allows(p)] == [Permission.DELETE]


def test_overrides_replace_defaults_and_skip_none() -> None:
    permissions = DEFAULT_LINK_PERMISSIONS.with_overrides(
        {"can_view": False, "canModifySchema": True, "can_delete": None}
    )

    assert permissions.can_insert is True
    assert permissions.can_view is False
    assert permissions.can_delete is False
    assert permissions.can_modify_schema is True


def test_overrides_leave_default_policy_untouched() -> None:
    DEFAULT_LINK_PERMISSIONS.with_overrides({"can_delete": True})

    assert DEFAULT_LINK_PERMISSIONS.can_delete is False


def test_unknown_override_rejected() -> None:
    with pytest.raises(ValueError, match="unknown permission"):
        DEFAULT_LINK_PERMISSIONS.with_overrides({"can_admin": True})


def test_empty_overrides_return_same_instance() -> None:
    assert DEFAULT_LINK_PERMISSIONS.with_overrides(None) is DEFAULT_LINK_PERMISSIONS
    assert DEFAULT_LINK_PERMISSIONS.with_overrides({}) is DEFAULT_LINK_PERMISSIONS


def test_permissions_dump_with_camel_case_aliases() -> None:
    dumped = DEFAULT_LINK_PERMISSIONS.model_dump(by_alias=True)

    assert dumped == {"canInsert": True, "canView": True, "canDelete": False, "canModifySchema": False}


def test_permissions_are_immutable() -> None:
    with pytest.raises(ValidationError):
        DEFAULT_LINK_PERMISSIONS.can_delete = True
