import time

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    PrimaryKeyConstraint,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from mltrack.entities import Experiment, LifecycleStage, Namespace, Role
from mltrack.entities.permission import get_permission

Base = declarative_base()


def _now_millis():
    return int(time.time() * 1000)


class SqlNamespace(Base):
    """
    DB model for :py:class:`mltrack.entities.Namespace`. These are recorded in ``namespaces``
    table.
    """

    __tablename__ = "namespaces"

    id = Column(Integer, autoincrement=True)
    """
    Namespace ID: `Integer`. *Primary Key* for ``namespaces`` table.
    """
    code = Column(String(12), nullable=False)
    """
    Namespace code: `String` (limit 12 characters). Unique across active and deleted namespaces.
    """
    description = Column(String(1000), nullable=False, default="")
    """
    Free-form description: `String` (limit 1000 characters).
    """
    default_experiment_id = Column(Integer, nullable=True)
    """
    ID of the ``Default`` experiment created together with the namespace: `Integer`.
    """
    lifecycle_stage = Column(String(32), default=LifecycleStage.ACTIVE)
    """
    Lifecycle Stage of namespace: `String` (limit 32 characters).
                                    Can be either ``active`` (default) or ``deleted``.
    """
    creation_time = Column(BigInteger, default=_now_millis)
    last_update_time = Column(BigInteger, default=_now_millis)

    __table_args__ = (
        CheckConstraint(
            "lifecycle_stage IN ('active', 'deleted')", name="namespaces_lifecycle_stage"
        ),
        PrimaryKeyConstraint("id", name="namespace_pk"),
        UniqueConstraint("code", name="namespaces_code_key"),
    )

    def __repr__(self):
        return f"<SqlNamespace ({self.id}, {self.code})>"

    def to_mltrack_entity(self):
        """
        Convert DB model to corresponding mltrack entity.

        Returns:
            :py:class:`mltrack.entities.Namespace`.
        """
        return Namespace(
            id=self.id,
            code=self.code,
            description=self.description or "",
            default_experiment_id=self.default_experiment_id,
            lifecycle_stage=self.lifecycle_stage,
        )


class SqlExperiment(Base):
    """
    DB model for :py:class:`mltrack.entities.Experiment`. These are recorded in ``experiments``
    table.
    """

    __tablename__ = "experiments"

    experiment_id = Column(Integer, autoincrement=True)
    """
    Experiment ID: `Integer`. *Primary Key* for ``experiments`` table.
    """
    name = Column(String(256), nullable=False)
    """
    Experiment name: `String` (limit 256 characters). Unique within a namespace.
    """
    namespace_id = Column(Integer, ForeignKey("namespaces.id"), nullable=False)
    artifact_location = Column(String(256), nullable=True)
    lifecycle_stage = Column(String(32), default=LifecycleStage.ACTIVE)
    creation_time = Column(BigInteger, default=_now_millis)
    last_update_time = Column(BigInteger, default=_now_millis)

    __table_args__ = (
        CheckConstraint(
            "lifecycle_stage IN ('active', 'deleted')", name="experiments_lifecycle_stage"
        ),
        PrimaryKeyConstraint("experiment_id", name="experiment_pk"),
        UniqueConstraint("namespace_id", "name", name="experiments_namespace_name_key"),
    )

    def __repr__(self):
        return f"<SqlExperiment ({self.experiment_id}, {self.name})>"

    def to_mltrack_entity(self):
        """
        Convert DB model to corresponding mltrack entity.

        Returns:
            :py:class:`mltrack.entities.Experiment`.
        """
        return Experiment(
            experiment_id=self.experiment_id,
            name=self.name,
            namespace_id=self.namespace_id,
            artifact_location=self.artifact_location,
            lifecycle_stage=self.lifecycle_stage,
            creation_time=self.creation_time,
            last_update_time=self.last_update_time,
        )


class SqlRole(Base):
    """
    DB model for :py:class:`mltrack.entities.Role`. These are recorded in ``roles`` table, with
    their namespace and user bindings in ``role_namespaces`` and ``role_users``.
    """

    __tablename__ = "roles"

    id = Column(Integer, autoincrement=True)
    name = Column(String(256), nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    permission = Column(String(32), nullable=False, default="EDIT")

    namespaces = relationship(
        "SqlRoleNamespace",
        order_by="SqlRoleNamespace.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    users = relationship(
        "SqlRoleUser",
        order_by="SqlRoleUser.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        PrimaryKeyConstraint("id", name="role_pk"),
        UniqueConstraint("name", name="roles_name_key"),
    )

    def __repr__(self):
        return f"<SqlRole ({self.id}, {self.name})>"

    def to_mltrack_entity(self):
        return Role(
            name=self.name,
            namespace_codes=tuple(ns.namespace_code for ns in self.namespaces),
            users=tuple(u.user for u in self.users),
            is_admin=self.is_admin,
            permission=get_permission(self.permission),
        )


class SqlRoleNamespace(Base):
    __tablename__ = "role_namespaces"

    role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    namespace_code = Column(String(12), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (PrimaryKeyConstraint("role_id", "namespace_code", name="role_namespace_pk"),)


class SqlRoleUser(Base):
    __tablename__ = "role_users"

    role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    user = Column(String(256), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (PrimaryKeyConstraint("role_id", "user", name="role_user_pk"),)


class SqlChangeCounter(Base):
    """
    Per-channel change counters in ``change_counters`` table. Every committed write bumps the
    counter of its channel, so that server processes without a native notification transport
    detect changes made by other processes.
    """

    __tablename__ = "change_counters"

    channel = Column(String(64), nullable=False)
    version = Column(BigInteger, nullable=False, default=0)
    payload = Column(String(256), nullable=False, default="")
    """
    Payload of the most recent change on the channel: `String` (limit 256 characters).
    """

    __table_args__ = (PrimaryKeyConstraint("channel", name="change_counter_pk"),)

    def __repr__(self):
        return f"<SqlChangeCounter ({self.channel}, {self.version})>"
