from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType

from mltrack.entities.permission import MANAGE, Permission, max_permission
from mltrack.store.cached_store import SnapshotCache
from mltrack.store.notifier import ROLES_CHANNEL

_logger = logging.getLogger(__name__)

_EMPTY = MappingProxyType({})


@dataclass(frozen=True)
class PermittedNamespaces:
    """
    The namespaces a caller may access: every namespace when ``is_all`` is set, otherwise the
    namespace codes of ``grants`` with the highest permission held on each.
    """

    is_all: bool = False
    grants: MappingProxyType = field(default_factory=lambda: _EMPTY)

    @property
    def codes(self) -> frozenset:
        return frozenset(self.grants)

    def permission_for(self, code) -> Permission | None:
        if self.is_all:
            return MANAGE
        return self.grants.get(code)

    def allows(self, code, write=False) -> bool:
        permission = self.permission_for(code)
        if permission is None:
            return False
        return permission.can_update if write else permission.can_read


@dataclass(frozen=True)
class RoleSnapshot:
    version: int
    user_grants: MappingProxyType
    role_grants: MappingProxyType
    namespace_users: MappingProxyType
    admin_users: frozenset
    admin_roles: frozenset


def _freeze(mapping):
    return MappingProxyType({key: MappingProxyType(value) for key, value in mapping.items()})


class CachedRoleStore(SnapshotCache):
    """
    Cache of the role bindings of a :py:class:`mltrack.store.role.abstract_store.AbstractRoleStore`
    answering "which namespaces may this caller access" without touching the database.

    Callers are identified by user name and, for OIDC identities, by the role names carried in
    their token. A caller bound to several roles holds the union of their grants with the highest
    permission per namespace; an admin role in any of them grants every namespace.
    """

    name = "role cache"

    def __init__(self, store, notifier, resync_interval=None):
        self.store = store
        super().__init__(notifier, ROLES_CHANNEL, resync_interval=resync_interval)

    def _build_snapshot(self, version):
        user_grants: dict[str, dict[str, Permission]] = {}
        role_grants: dict[str, dict[str, Permission]] = {}
        namespace_users: dict[str, set[str]] = {}
        admin_users = set()
        admin_roles = set()
        roles = self.store.list_roles()
        for role in roles:
            if role.is_admin:
                admin_roles.add(role.name)
                admin_users.update(role.users)
                continue
            grants = role_grants.setdefault(role.name, {})
            for code in role.namespace_codes:
                grants[code] = max_permission(grants.get(code), role.permission)
                namespace_users.setdefault(code, set()).update(role.users)
                for user in role.users:
                    per_user = user_grants.setdefault(user, {})
                    per_user[code] = max_permission(per_user.get(code), role.permission)
        _logger.debug("Loaded %d roles", len(roles))
        return RoleSnapshot(
            version=version,
            user_grants=_freeze(user_grants),
            role_grants=_freeze(role_grants),
            namespace_users=MappingProxyType(
                {code: frozenset(users) for code, users in namespace_users.items()}
            ),
            admin_users=frozenset(admin_users),
            admin_roles=frozenset(admin_roles),
        )

    def is_admin(self, user, roles=()) -> bool:
        snapshot = self.snapshot
        return user in snapshot.admin_users or any(r in snapshot.admin_roles for r in roles)

    def get_permitted_namespaces(self, user, roles=()) -> PermittedNamespaces:
        # Read the reference once so that the whole answer comes from one snapshot.
        snapshot = self.snapshot
        if user in snapshot.admin_users or any(r in snapshot.admin_roles for r in roles):
            return PermittedNamespaces(is_all=True)
        grants = dict(snapshot.user_grants.get(user, _EMPTY))
        for role in roles:
            for code, permission in snapshot.role_grants.get(role, _EMPTY).items():
                grants[code] = max_permission(grants.get(code), permission)
        return PermittedNamespaces(grants=MappingProxyType(grants))

    def get_namespace_users(self, code) -> frozenset:
        """
        Returns the users permitted in namespace ``code``: those bound to it by a role and the
        users of admin roles.
        """
        snapshot = self.snapshot
        return snapshot.namespace_users.get(code, frozenset()) | snapshot.admin_users
