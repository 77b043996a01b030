import os

import pytest

from mltrack.store.db.utils import _initialize_tables, create_sqlalchemy_engine
from mltrack.store.experiment.sqlalchemy_store import SqlAlchemyExperimentStore
from mltrack.store.namespace.sqlalchemy_store import SqlAlchemyNamespaceStore
from mltrack.store.notifier import InMemoryChangeNotifier
from mltrack.store.role.sqlalchemy_store import SqlAlchemyRoleStore
from mltrack.utils import namespace_context


@pytest.fixture(autouse=True)
def clean_mltrack_environment(monkeypatch):
    for name in list(os.environ):
        if name.startswith("MLTRACK_") and name != "MLTRACK_CONFIGURE_LOGGING":
            monkeypatch.delenv(name)


@pytest.fixture(autouse=True)
def reset_namespace_context():
    yield
    namespace_context.clear_namespace()


@pytest.fixture
def db_uri(tmp_path):
    return f"sqlite:///{tmp_path / 'mltrack.db'}"


@pytest.fixture
def artifact_root(tmp_path):
    return str(tmp_path / "artifacts")


@pytest.fixture
def engine(db_uri):
    engine = create_sqlalchemy_engine(db_uri)
    _initialize_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def notifier():
    notifier = InMemoryChangeNotifier()
    notifier.start()
    yield notifier
    notifier.close()


@pytest.fixture
def namespace_store(engine, notifier, artifact_root):
    return SqlAlchemyNamespaceStore(engine, notifier, default_artifact_root=artifact_root)


@pytest.fixture
def role_store(engine, notifier):
    return SqlAlchemyRoleStore(engine, notifier)


@pytest.fixture
def experiment_store(engine, artifact_root):
    return SqlAlchemyExperimentStore(engine, default_artifact_root=artifact_root)
