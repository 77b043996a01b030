from dataclasses import dataclass

from mltrack.exceptions import MltrackException


@dataclass(frozen=True)
class Permission:
    name: str
    priority: int
    can_read: bool
    can_update: bool
    can_manage: bool


READ = Permission(
    name="READ",
    priority=1,
    can_read=True,
    can_update=False,
    can_manage=False,
)

EDIT = Permission(
    name="EDIT",
    priority=2,
    can_read=True,
    can_update=True,
    can_manage=False,
)

MANAGE = Permission(
    name="MANAGE",
    priority=3,
    can_read=True,
    can_update=True,
    can_manage=True,
)

ALL_PERMISSIONS = {
    READ.name: READ,
    EDIT.name: EDIT,
    MANAGE.name: MANAGE,
}


def get_permission(permission: str) -> Permission:
    _validate_permission(permission)
    return ALL_PERMISSIONS[permission]


def max_permission(a: Permission | None, b: Permission) -> Permission:
    if a is None or b.priority > a.priority:
        return b
    return a


def _validate_permission(permission: str):
    if permission not in ALL_PERMISSIONS:
        raise MltrackException.invalid_parameter_value(
            f"Invalid permission '{permission}'. "
            f"Valid permissions are: {tuple(ALL_PERMISSIONS)}"
        )
