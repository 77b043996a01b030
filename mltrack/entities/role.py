"""Role entity: a named grant of namespace access bound to users."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from mltrack.entities.permission import EDIT, MANAGE, READ, Permission
from mltrack.exceptions import MltrackException

ADMIN_ROLE_NAME = "admin"
NAMESPACE_ROLE_PREFIX = "ns:"
READ_ONLY_ROLE_SUFFIX = ":read"


@dataclass(frozen=True, slots=True)
class Role:
    """
    A named grant of access to an ordered list of namespace codes, or to every namespace when
    ``is_admin`` is set, bound to an ordered list of user identities.
    """

    name: str
    namespace_codes: tuple[str, ...] = ()
    users: tuple[str, ...] = ()
    is_admin: bool = False
    permission: Permission = EDIT

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "namespace_codes": list(self.namespace_codes),
            "users": list(self.users),
            "is_admin": self.is_admin,
            "permission": self.permission.name,
        }

    @classmethod
    def from_role_string(cls, role: str, users: tuple[str, ...] = ()) -> "Role":
        """
        Builds a role from its textual form used in the users configuration file:

        - ``admin``: access to every namespace.
        - ``ns:<code>``: read-write access to namespace ``<code>``.
        - ``ns:<code>:read``: read-only access to namespace ``<code>``.
        """
        if role == ADMIN_ROLE_NAME:
            return cls(name=role, users=users, is_admin=True, permission=MANAGE)
        if role.startswith(NAMESPACE_ROLE_PREFIX):
            code = role[len(NAMESPACE_ROLE_PREFIX) :]
            permission = EDIT
            if code.endswith(READ_ONLY_ROLE_SUFFIX):
                code = code[: -len(READ_ONLY_ROLE_SUFFIX)]
                permission = READ
            if code:
                return cls(name=role, namespace_codes=(code,), users=users, permission=permission)
        raise MltrackException.invalid_parameter_value(
            f"Invalid role '{role}'. Roles must be '{ADMIN_ROLE_NAME}', "
            f"'{NAMESPACE_ROLE_PREFIX}<code>' or "
            f"'{NAMESPACE_ROLE_PREFIX}<code>{READ_ONLY_ROLE_SUFFIX}'."
        )
