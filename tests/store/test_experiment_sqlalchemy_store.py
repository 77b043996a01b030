import pytest

from mltrack.entities import LifecycleStage
from mltrack.error_codes import (
    INVALID_PARAMETER_VALUE,
    RESOURCE_ALREADY_EXISTS,
    RESOURCE_DOES_NOT_EXIST,
)
from mltrack.exceptions import MltrackException
from mltrack.store.db.models import SqlExperiment


def test_create_experiment(namespace_store, experiment_store, artifact_root):
    namespace = namespace_store.create_namespace("team-a")

    experiment = experiment_store.create_experiment("exp", namespace.id)

    assert experiment.name == "exp"
    assert experiment.namespace_id == namespace.id
    assert experiment.lifecycle_stage == LifecycleStage.ACTIVE
    assert experiment.artifact_location == f"{artifact_root}/{experiment.experiment_id}"


def test_create_experiment_with_artifact_location(namespace_store, experiment_store):
    namespace = namespace_store.create_namespace("team-a")

    experiment = experiment_store.create_experiment("exp", namespace.id, "s3://bucket/exp")

    assert experiment.artifact_location == "s3://bucket/exp"


def test_create_experiment_without_name(namespace_store, experiment_store):
    namespace = namespace_store.create_namespace("team-a")
    with pytest.raises(MltrackException, match="Invalid experiment name") as e:
        experiment_store.create_experiment("", namespace.id)
    assert e.value.error_code == INVALID_PARAMETER_VALUE


def test_experiment_names_are_unique_per_namespace(namespace_store, experiment_store):
    ns1 = namespace_store.create_namespace("ns1")
    ns2 = namespace_store.create_namespace("ns2")
    experiment_store.create_experiment("exp", ns1.id)

    with pytest.raises(MltrackException, match=r"Experiment\(name=exp\) already exists") as e:
        experiment_store.create_experiment("exp", ns1.id)
    assert e.value.error_code == RESOURCE_ALREADY_EXISTS
    assert e.value.message == "Experiment(name=exp) already exists."

    other = experiment_store.create_experiment("exp", ns2.id)
    assert other.namespace_id == ns2.id


def test_list_experiments_is_scoped_to_namespace(namespace_store, experiment_store):
    ns1 = namespace_store.create_namespace("ns1")
    ns2 = namespace_store.create_namespace("ns2")
    experiment_store.create_experiment("exp-1", ns1.id)
    experiment_store.create_experiment("exp-2", ns2.id)

    assert [e.name for e in experiment_store.list_experiments(ns1.id)] == ["Default", "exp-1"]
    assert [e.name for e in experiment_store.list_experiments(ns2.id)] == ["Default", "exp-2"]


def test_list_experiments_include_deleted(namespace_store, experiment_store):
    namespace = namespace_store.create_namespace("ns1")
    deleted = experiment_store.create_experiment("old", namespace.id)
    with experiment_store.ManagedSessionMaker() as session:
        session.get(SqlExperiment, deleted.experiment_id).lifecycle_stage = LifecycleStage.DELETED

    assert [e.name for e in experiment_store.list_experiments(namespace.id)] == ["Default"]
    assert [
        e.name for e in experiment_store.list_experiments(namespace.id, include_deleted=True)
    ] == ["Default", "old"]


def test_get_experiment_hides_other_namespaces(namespace_store, experiment_store):
    ns1 = namespace_store.create_namespace("ns1")
    ns2 = namespace_store.create_namespace("ns2")
    experiment = experiment_store.create_experiment("exp", ns1.id)

    assert experiment_store.get_experiment(experiment.experiment_id, ns1.id) == experiment
    with pytest.raises(
        MltrackException, match=f"No Experiment with id={experiment.experiment_id} exists"
    ) as e:
        experiment_store.get_experiment(experiment.experiment_id, ns2.id)
    assert e.value.error_code == RESOURCE_DOES_NOT_EXIST
