import logging

import sqlalchemy

from mltrack.entities import Experiment, LifecycleStage, Namespace
from mltrack.environment_variables import MLTRACK_DEFAULT_ARTIFACT_ROOT
from mltrack.error_codes import (
    INVALID_PARAMETER_VALUE,
    RESOURCE_ALREADY_EXISTS,
    RESOURCE_DOES_NOT_EXIST,
)
from mltrack.exceptions import MltrackException
from mltrack.store.db.models import SqlNamespace
from mltrack.store.db.utils import get_managed_session_maker
from mltrack.store.experiment.sqlalchemy_store import create_experiment_in_session
from mltrack.store.namespace.abstract_store import AbstractNamespaceStore, NamespaceCodeValidator
from mltrack.store.notifier import NAMESPACES_CHANNEL

_logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE_DESCRIPTION = "Default namespace"


class SqlAlchemyNamespaceStore(AbstractNamespaceStore):
    """
    SQLAlchemy compliant backend store for namespaces. Every committed write publishes an event on
    the ``mltrack_namespaces`` channel of ``notifier`` so that the namespace caches of all server
    processes reload.
    """

    def __init__(self, engine, notifier=None, default_artifact_root=None):
        """
        Args:
            engine: SQLAlchemy engine shared by the stores of the server process.
            notifier: :py:class:`mltrack.store.notifier.ChangeNotifier` receiving change events.
            default_artifact_root: Artifact root of the ``Default`` experiment of new namespaces.
        """
        self.engine = engine
        self.notifier = notifier
        self.artifact_root_uri = default_artifact_root or MLTRACK_DEFAULT_ARTIFACT_ROOT.get()
        self.ManagedSessionMaker = get_managed_session_maker(engine)

    def _notify(self, payload=""):
        if self.notifier is not None:
            self.notifier.notify(NAMESPACES_CHANNEL, payload)

    def _query_active(self, session):
        return session.query(SqlNamespace).filter(
            SqlNamespace.lifecycle_stage == LifecycleStage.ACTIVE
        )

    def _get_namespace(self, session, namespace_id):
        namespace = self._query_active(session).filter(SqlNamespace.id == namespace_id).first()
        if namespace is None:
            raise MltrackException(
                f"namespace not found by id: {namespace_id}", RESOURCE_DOES_NOT_EXIST
            )
        return namespace

    @staticmethod
    def _check_code_available(session, code, namespace_id=None):
        # Codes of deleted namespaces stay reserved.
        query = session.query(SqlNamespace.id).filter(SqlNamespace.code == code)
        if namespace_id is not None:
            query = query.filter(SqlNamespace.id != namespace_id)
        if query.first() is not None:
            raise MltrackException("The namespace code is already in use.", RESOURCE_ALREADY_EXISTS)

    def list_namespaces(self):
        with self.ManagedSessionMaker() as session:
            return [
                ns.to_mltrack_entity()
                for ns in self._query_active(session).order_by(SqlNamespace.id)
            ]

    def get_namespace_by_code(self, code):
        with self.ManagedSessionMaker() as session:
            namespace = self._query_active(session).filter(SqlNamespace.code == code).first()
            return namespace.to_mltrack_entity() if namespace else None

    def get_namespace_by_id(self, namespace_id):
        with self.ManagedSessionMaker() as session:
            namespace = self._query_active(session).filter(SqlNamespace.id == namespace_id).first()
            return namespace.to_mltrack_entity() if namespace else None

    def _create_namespace(self, session, code, description):
        namespace = SqlNamespace(
            code=code, description=description or "", lifecycle_stage=LifecycleStage.ACTIVE
        )
        try:
            session.add(namespace)
            session.flush()
        except sqlalchemy.exc.IntegrityError:
            raise MltrackException("The namespace code is already in use.", RESOURCE_ALREADY_EXISTS)
        experiment = create_experiment_in_session(
            session, namespace.id, Experiment.DEFAULT_EXPERIMENT_NAME, self.artifact_root_uri
        )
        namespace.default_experiment_id = experiment.experiment_id
        session.flush()
        return namespace

    def create_namespace(self, code, description=""):
        NamespaceCodeValidator.validate(code)
        with self.ManagedSessionMaker() as session:
            self._check_code_available(session, code)
            namespace = self._create_namespace(session, code, description).to_mltrack_entity()
        _logger.info("Created namespace %s (id=%s)", namespace.code, namespace.id)
        self._notify(namespace.code)
        return namespace

    def update_namespace(self, namespace_id, code, description):
        NamespaceCodeValidator.validate(code)
        with self.ManagedSessionMaker() as session:
            namespace = self._get_namespace(session, namespace_id)
            if namespace.code != code:
                if namespace.code == Namespace.DEFAULT_CODE:
                    raise MltrackException(
                        "The code of the default namespace cannot be changed.",
                        INVALID_PARAMETER_VALUE,
                    )
                self._check_code_available(session, code, namespace_id)
            namespace.code = code
            namespace.description = description or ""
            try:
                session.flush()
            except sqlalchemy.exc.IntegrityError:
                raise MltrackException(
                    "The namespace code is already in use.", RESOURCE_ALREADY_EXISTS
                )
            updated = namespace.to_mltrack_entity()
        self._notify(updated.code)
        return updated

    def delete_namespace(self, namespace_id):
        with self.ManagedSessionMaker() as session:
            namespace = self._get_namespace(session, namespace_id)
            if namespace.code == Namespace.DEFAULT_CODE:
                raise MltrackException(
                    "The default namespace cannot be deleted.", INVALID_PARAMETER_VALUE
                )
            namespace.lifecycle_stage = LifecycleStage.DELETED
            code = namespace.code
        _logger.info("Deleted namespace %s (id=%s)", code, namespace_id)
        self._notify(code)

    def create_default_namespace(self):
        if namespace := self.get_namespace_by_code(Namespace.DEFAULT_CODE):
            return namespace
        try:
            with self.ManagedSessionMaker() as session:
                namespace = self._create_namespace(
                    session, Namespace.DEFAULT_CODE, DEFAULT_NAMESPACE_DESCRIPTION
                ).to_mltrack_entity()
        except MltrackException as e:
            # Another server process created it concurrently.
            if e.error_code != RESOURCE_ALREADY_EXISTS:
                raise
            return self.get_namespace_by_code(Namespace.DEFAULT_CODE)
        _logger.info("Created default namespace (id=%s)", namespace.id)
        self._notify(namespace.code)
        return namespace
