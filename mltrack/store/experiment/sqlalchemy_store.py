import logging
import posixpath

import sqlalchemy

from mltrack.entities import Experiment, LifecycleStage
from mltrack.environment_variables import MLTRACK_DEFAULT_ARTIFACT_ROOT
from mltrack.error_codes import (
    INVALID_PARAMETER_VALUE,
    RESOURCE_ALREADY_EXISTS,
    RESOURCE_DOES_NOT_EXIST,
)
from mltrack.exceptions import MltrackException
from mltrack.store.db.models import SqlExperiment
from mltrack.store.db.utils import get_managed_session_maker

_logger = logging.getLogger(__name__)


def _get_artifact_location(artifact_root, experiment_id):
    return posixpath.join(artifact_root.rstrip("/"), str(experiment_id))


def create_experiment_in_session(
    session, namespace_id, name, artifact_root, artifact_location=None
):
    """
    Adds an experiment to ``session`` without committing, so that callers can create it in the
    same transaction as the namespace owning it.

    Returns:
        The flushed :py:class:`SqlExperiment`.
    """
    if not name:
        raise MltrackException("Invalid experiment name", INVALID_PARAMETER_VALUE)
    experiment = SqlExperiment(
        name=name,
        namespace_id=namespace_id,
        lifecycle_stage=LifecycleStage.ACTIVE,
        artifact_location=artifact_location,
    )
    try:
        session.add(experiment)
        # The first write generates the auto-incremented ID the artifact location needs.
        session.flush()
    except sqlalchemy.exc.IntegrityError as e:
        _logger.debug("Creating experiment %s failed: %s", name, e)
        raise MltrackException(
            f"Experiment(name={name}) already exists.", RESOURCE_ALREADY_EXISTS
        ) from e
    if not artifact_location:
        experiment.artifact_location = _get_artifact_location(
            artifact_root, experiment.experiment_id
        )
        session.flush()
    return experiment


class SqlAlchemyExperimentStore:
    """
    SQLAlchemy store for the experiments of a namespace. Experiment IDs are global but every
    lookup is scoped to the namespace of the caller, so experiments of other namespaces are
    reported as missing.
    """

    def __init__(self, engine, default_artifact_root=None):
        self.engine = engine
        self.artifact_root_uri = default_artifact_root or MLTRACK_DEFAULT_ARTIFACT_ROOT.get()
        self.ManagedSessionMaker = get_managed_session_maker(engine)

    def create_experiment(self, name, namespace_id, artifact_location=None):
        with self.ManagedSessionMaker() as session:
            experiment = create_experiment_in_session(
                session, namespace_id, name, self.artifact_root_uri, artifact_location
            )
            return experiment.to_mltrack_entity()

    def _list_experiments(self, session, namespace_id, ids=None, stages=None):
        stages = stages or [LifecycleStage.ACTIVE]
        conditions = [
            SqlExperiment.namespace_id == namespace_id,
            SqlExperiment.lifecycle_stage.in_(stages),
        ]
        if ids:
            conditions.append(SqlExperiment.experiment_id.in_(ids))
        return session.query(SqlExperiment).filter(*conditions).order_by(
            SqlExperiment.experiment_id
        )

    def list_experiments(self, namespace_id, include_deleted=False) -> list[Experiment]:
        stages = (
            [LifecycleStage.ACTIVE, LifecycleStage.DELETED]
            if include_deleted
            else [LifecycleStage.ACTIVE]
        )
        with self.ManagedSessionMaker() as session:
            return [
                exp.to_mltrack_entity()
                for exp in self._list_experiments(session, namespace_id, stages=stages)
            ]

    def get_experiment(self, experiment_id, namespace_id) -> Experiment:
        with self.ManagedSessionMaker() as session:
            experiment = (
                self._list_experiments(
                    session,
                    namespace_id,
                    ids=[experiment_id],
                    stages=[LifecycleStage.ACTIVE, LifecycleStage.DELETED],
                )
                .one_or_none()
            )
            if experiment is None:
                raise MltrackException(
                    f"No Experiment with id={experiment_id} exists", RESOURCE_DOES_NOT_EXIST
                )
            return experiment.to_mltrack_entity()
