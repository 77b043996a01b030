import time

import pytest
from click.testing import CliRunner

from mltrack import cli
from mltrack.server import get_server_context
from mltrack.store.notifier import PollingChangeNotifier

ADMIN = ("user3", "user3pw")
USER1 = ("user1", "user1pw")

SEARCH = "/api/2.0/mlflow/experiments/search"


def _search_status(client, code, auth):
    return client.get(f"/ns/{code}{SEARCH}", auth=auth).status_code


def _wait_until(condition, timeout=5):
    deadline = time.monotonic() + timeout
    while not condition():
        assert time.monotonic() < deadline, "condition not met in time"
        time.sleep(0.01)


@pytest.fixture
def make_worker(make_app, users_config_path):
    def _make_worker():
        return make_app(auth_users_config=users_config_path, notifier_poll_interval=0.01)

    return _make_worker


def test_workers_on_a_sqlite_file_poll_for_changes(make_worker):
    assert isinstance(get_server_context(make_worker()).notifier, PollingChangeNotifier)


def test_namespace_created_by_another_worker_becomes_visible(make_worker):
    worker_a = make_worker()
    worker_b = make_worker()
    client_b = worker_b.test_client()
    assert _search_status(client_b, "temp", ADMIN) == 404

    get_server_context(worker_a).namespace_cache.create_namespace("temp")

    _wait_until(lambda: _search_status(client_b, "temp", ADMIN) == 200)


def test_namespace_deleted_by_another_worker_is_rejected(make_worker):
    worker_a = make_worker()
    worker_b = make_worker()
    client_b = worker_b.test_client()
    namespace = get_server_context(worker_b).namespace_cache.create_namespace("temp")
    assert _search_status(client_b, "temp", ADMIN) == 200

    get_server_context(worker_a).namespace_cache.delete_namespace(namespace.id)

    _wait_until(lambda: _search_status(client_b, "temp", ADMIN) == 404)


def test_role_revoked_by_another_worker_is_enforced(make_worker):
    worker_a = make_worker()
    worker_b = make_worker()
    client_b = worker_b.test_client()
    get_server_context(worker_b).namespace_cache.create_namespace("ns1")
    assert _search_status(client_b, "ns1", USER1) == 200

    get_server_context(worker_a).role_store.delete_role("ns:ns1")

    _wait_until(lambda: _search_status(client_b, "ns1", USER1) == 404)


def test_cli_writes_reach_running_workers(make_worker, db_uri):
    client = make_worker().test_client()

    result = CliRunner().invoke(
        cli.create_namespace, ["--backend-store-uri", db_uri, "from-cli"], catch_exceptions=False
    )

    assert result.exit_code == 0, result.output
    _wait_until(lambda: _search_status(client, "from-cli", ADMIN) == 200)
