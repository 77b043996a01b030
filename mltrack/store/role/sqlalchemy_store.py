import logging

import sqlalchemy

from mltrack.entities.permission import get_permission
from mltrack.error_codes import RESOURCE_ALREADY_EXISTS, RESOURCE_DOES_NOT_EXIST
from mltrack.exceptions import MltrackException
from mltrack.store.db.models import SqlRole, SqlRoleNamespace, SqlRoleUser
from mltrack.store.db.utils import get_managed_session_maker
from mltrack.store.notifier import ROLES_CHANNEL
from mltrack.store.role.abstract_store import AbstractRoleStore
from mltrack.store.role.users_config import roles_from_users_config

_logger = logging.getLogger(__name__)


class SqlAlchemyRoleStore(AbstractRoleStore):
    """
    SQLAlchemy compliant backend store for roles and their namespace and user bindings. Every
    committed write publishes an event on the ``mltrack_roles`` channel of ``notifier``.
    """

    def __init__(self, engine, notifier=None):
        self.engine = engine
        self.notifier = notifier
        self.ManagedSessionMaker = get_managed_session_maker(engine)

    def _notify(self, payload=""):
        if self.notifier is not None:
            self.notifier.notify(ROLES_CHANNEL, payload)

    @staticmethod
    def _get_role(session, name):
        role = session.query(SqlRole).filter(SqlRole.name == name).first()
        if role is None:
            raise MltrackException(f"Role with name={name} not found", RESOURCE_DOES_NOT_EXIST)
        return role

    @staticmethod
    def _bind_users(role, users):
        bound = {u.user for u in role.users}
        position = len(role.users)
        for user in users:
            if user in bound:
                continue
            role.users.append(SqlRoleUser(user=user, position=position))
            bound.add(user)
            position += 1

    def _add_role(self, session, name, namespace_codes, users, is_admin, permission):
        role = SqlRole(name=name, is_admin=is_admin, permission=get_permission(permission).name)
        for position, code in enumerate(dict.fromkeys(namespace_codes)):
            role.namespaces.append(SqlRoleNamespace(namespace_code=code, position=position))
        self._bind_users(role, users)
        try:
            session.add(role)
            session.flush()
        except sqlalchemy.exc.IntegrityError:
            raise MltrackException(f"Role(name={name}) already exists.", RESOURCE_ALREADY_EXISTS)
        return role

    def list_roles(self):
        with self.ManagedSessionMaker() as session:
            return [
                role.to_mltrack_entity() for role in session.query(SqlRole).order_by(SqlRole.name)
            ]

    def get_roles_by_user(self, user):
        with self.ManagedSessionMaker() as session:
            roles = (
                session.query(SqlRole)
                .join(SqlRoleUser, SqlRoleUser.role_id == SqlRole.id)
                .filter(SqlRoleUser.user == user)
                .order_by(SqlRole.name)
            )
            return [role.to_mltrack_entity() for role in roles]

    def create_role(self, name, namespace_codes=(), users=(), is_admin=False, permission="EDIT"):
        with self.ManagedSessionMaker() as session:
            if session.query(SqlRole.id).filter(SqlRole.name == name).first() is not None:
                raise MltrackException(
                    f"Role(name={name}) already exists.", RESOURCE_ALREADY_EXISTS
                )
            role = self._add_role(
                session, name, namespace_codes, users, is_admin, permission
            ).to_mltrack_entity()
        self._notify(name)
        return role

    def add_users_to_role(self, name, users):
        with self.ManagedSessionMaker() as session:
            role = self._get_role(session, name)
            self._bind_users(role, users)
            session.flush()
            updated = role.to_mltrack_entity()
        self._notify(name)
        return updated

    def delete_role(self, name):
        with self.ManagedSessionMaker() as session:
            session.delete(self._get_role(session, name))
        _logger.info("Revoked role %s", name)
        self._notify(name)

    def load_static_config(self, users_config):
        roles = roles_from_users_config(users_config)
        with self.ManagedSessionMaker() as session:
            for existing in session.query(SqlRole).all():
                session.delete(existing)
            session.flush()
            for role in roles:
                self._add_role(
                    session,
                    role.name,
                    role.namespace_codes,
                    role.users,
                    role.is_admin,
                    role.permission.name,
                )
        _logger.info("Loaded %d roles for %d users", len(roles), len(users_config))
        self._notify()
        return roles
