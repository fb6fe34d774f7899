"""Capability bits carried by a shared link.

Each client operation checks exactly one bit, ANDed with the link's liveness.
``DEFAULT_LINK_PERMISSIONS`` is the only place the default grant is defined.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from linkshare.models.enums import Permission

_PERMISSION_FIELDS: dict[Permission, str] = {
    Permission.INSERT: "can_insert",
    Permission.VIEW: "can_view",
    Permission.DELETE: "can_delete",
    Permission.MODIFY_SCHEMA: "can_modify_schema",
}


class LinkPermissions(BaseModel):
    can_insert: bool
    can_view: bool
    can_delete: bool
    can_modify_schema: bool

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def allows(self, permission: Permission) -> bool:
        return bool(getattr(self, _PERMISSION_FIELDS[permission]))

    def with_overrides(self, overrides: Mapping[str, Any] | None = None) -> "LinkPermissions":
        """Return a copy with the non-None overrides applied.

        Keys may use either the snake_case field names or their camelCase
        aliases. Unknown keys are rejected.
        """
        if not overrides:
            return self
        data = self.model_dump()
        by_alias = {to_camel(name): name for name in data}
        for key, value in overrides.items():
            if value is None:
                continue
            name = key if key in data else by_alias.get(key)
            if name is None:
                raise ValueError(f"unknown permission '{key}'")
            data[name] = value
        return LinkPermissions.model_validate(data)


DEFAULT_LINK_PERMISSIONS = LinkPermissions(
    can_insert=True,
    can_view=True,
    can_delete=False,
    can_modify_schema=False,
)


__all__ = ["DEFAULT_LINK_PERMISSIONS", "LinkPermissions"]
