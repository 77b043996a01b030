import threading
import time
from dataclasses import dataclass
from unittest import mock

import pytest

from mltrack.entities.permission import EDIT, MANAGE, READ
from mltrack.exceptions import MltrackException, MltrackStartupException
from mltrack.store.cached_store import SnapshotCache
from mltrack.store.namespace.cached_store import CachedNamespaceStore
from mltrack.store.notifier import NAMESPACES_CHANNEL, ROLES_CHANNEL
from mltrack.store.role.cached_store import CachedRoleStore, PermittedNamespaces
from mltrack.store.role.users_config import UserConfig


@dataclass(frozen=True)
class _Snapshot:
    version: int
    value: object


class _SourceCache(SnapshotCache):
    name = "test cache"

    def __init__(self, notifier, source, resync_interval=60):
        self.source = source
        self.gates = {}
        self.waiting = threading.Event()
        super().__init__(notifier, NAMESPACES_CHANNEL, resync_interval=resync_interval)

    def _build_snapshot(self, version):
        value = self.source()
        if gate := self.gates.get(version):
            self.waiting.set()
            gate.wait(timeout=5)
        return _Snapshot(version, value)


def _wait_for(condition, timeout=5):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def namespace_cache(namespace_store, notifier):
    cache = CachedNamespaceStore(namespace_store, notifier)
    yield cache
    cache.close()


@pytest.fixture
def role_cache(role_store, notifier):
    cache = CachedRoleStore(role_store, notifier)
    yield cache
    cache.close()


def test_initial_load(namespace_store, notifier):
    ns1 = namespace_store.create_namespace("ns1")
    cache = CachedNamespaceStore(namespace_store, notifier)
    try:
        assert cache.version == 1
        assert cache.get_by_code("ns1") == ns1
        assert cache.get_by_id(ns1.id) == ns1
        assert cache.get_by_code("missing") is None
    finally:
        cache.close()


def test_initial_load_failure_aborts_startup(notifier):
    store = mock.Mock()
    store.list_namespaces.side_effect = MltrackException("The database operation failed.")

    with pytest.raises(
        MltrackStartupException,
        match="Initial load of the namespace cache failed: The database operation failed.",
    ):
        CachedNamespaceStore(store, notifier)

    assert notifier._subscriptions[NAMESPACES_CHANNEL] == []


def test_change_events_reload_the_cache(namespace_store, namespace_cache):
    created = namespace_store.create_namespace("ns1")
    assert namespace_cache.get_by_code("ns1") is None

    assert namespace_cache.process_pending_events()

    assert namespace_cache.get_by_code("ns1") == created
    assert not namespace_cache.process_pending_events()


def test_pending_events_are_coalesced(namespace_store, namespace_cache):
    version = namespace_cache.version
    for code in ("ns1", "ns2", "ns3"):
        namespace_store.create_namespace(code)

    namespace_cache.process_pending_events()

    assert namespace_cache.version == version + 1
    assert [ns.code for ns in namespace_cache.list_namespaces()] == ["ns1", "ns2", "ns3"]


def test_cache_writes_are_visible_immediately(namespace_cache):
    created = namespace_cache.create_namespace("temp", "temporary")
    assert namespace_cache.get_by_code("temp") == created

    updated = namespace_cache.update_namespace(created.id, "temp2", "renamed")
    assert namespace_cache.get_by_code("temp") is None
    assert namespace_cache.get_by_id(created.id) == updated

    namespace_cache.delete_namespace(created.id)
    assert namespace_cache.get_by_id(created.id) is None
    assert namespace_cache.get_by_code("temp2") is None


def test_failed_update_leaves_cache_unchanged(namespace_cache):
    ns1 = namespace_cache.create_namespace("ns1")
    ns2 = namespace_cache.create_namespace("ns2")
    snapshot = namespace_cache.snapshot

    with pytest.raises(MltrackException, match="already in use"):
        namespace_cache.update_namespace(ns2.id, "ns1", "")

    assert namespace_cache.snapshot is snapshot
    assert namespace_cache.get_by_code("ns1") == ns1
    assert namespace_cache.get_by_code("ns2") == ns2


def test_snapshots_are_immutable(namespace_cache):
    namespace_cache.create_namespace("ns1")
    with pytest.raises(TypeError, match="does not support item assignment"):
        namespace_cache.snapshot.by_code["ns2"] = None


def test_reload_failure_keeps_last_snapshot(notifier):
    values = iter(["first"])

    def source():
        try:
            return next(values)
        except StopIteration:
            raise RuntimeError("database unavailable")

    cache = _SourceCache(notifier, source)
    try:
        assert not cache.reload()
        assert cache.snapshot == _Snapshot(1, "first")
    finally:
        cache.close()


def test_stale_reload_is_discarded(notifier):
    counter = iter(range(100))
    cache = _SourceCache(notifier, lambda: next(counter))
    slow_gate = threading.Event()
    cache.gates[2] = slow_gate
    results = {}
    slow = threading.Thread(target=lambda: results.setdefault("slow", cache.reload()))
    try:
        slow.start()
        assert cache.waiting.wait(timeout=5)
        assert cache.reload()
        assert cache.version == 3
        slow_gate.set()
        slow.join(timeout=5)

        assert results["slow"] is False
        assert cache.version == 3
        assert cache.snapshot.value == 2
    finally:
        slow_gate.set()
        cache.close()


def test_readers_never_observe_partial_snapshots(namespace_cache):
    stop = threading.Event()
    errors = []

    def read():
        while not stop.is_set():
            snapshot = namespace_cache.snapshot
            if set(snapshot.by_id) != {ns.id for ns in snapshot.by_code.values()}:
                errors.append(snapshot.version)

    readers = [threading.Thread(target=read) for _ in range(4)]
    for reader in readers:
        reader.start()
    try:
        for i in range(20):
            namespace_cache.create_namespace(f"ns{i}")
    finally:
        stop.set()
        for reader in readers:
            reader.join(timeout=5)

    assert errors == []
    assert len(namespace_cache.list_namespaces()) == 20


def test_watcher_thread_applies_change_events(namespace_store, namespace_cache):
    namespace_cache.start()

    created = namespace_store.create_namespace("ns1")

    assert _wait_for(lambda: namespace_cache.get_by_code("ns1") == created)


def test_watcher_thread_resyncs_periodically(notifier):
    counter = iter(range(1000))
    cache = _SourceCache(notifier, lambda: next(counter), resync_interval=0.01)
    try:
        cache.start()
        assert _wait_for(lambda: cache.version >= 3)
    finally:
        cache.close()
    assert cache._watcher is None


def test_permitted_namespaces():
    permitted = PermittedNamespaces(grants={"ns1": EDIT, "ns2": READ})

    assert permitted.codes == frozenset({"ns1", "ns2"})
    assert permitted.allows("ns1", write=True)
    assert permitted.allows("ns2")
    assert not permitted.allows("ns2", write=True)
    assert not permitted.allows("ns3")

    everything = PermittedNamespaces(is_all=True)
    assert everything.permission_for("anything") == MANAGE
    assert everything.allows("anything", write=True)


def _load_users(role_store):
    role_store.load_static_config(
        [
            UserConfig("user1", "pw", ("ns:ns1", "ns:ns2")),
            UserConfig("user2", "pw", ("ns:ns2", "ns:ns3")),
            UserConfig("user3", "pw", ("admin",)),
            UserConfig("user4", "pw", ("ns:ns1:read", "ns:ns2:read", "ns:ns2")),
        ]
    )


def test_role_cache_union_of_grants(role_store, role_cache):
    _load_users(role_store)
    role_cache.process_pending_events()

    assert role_cache.get_permitted_namespaces("user1").codes == {"ns1", "ns2"}
    assert role_cache.get_permitted_namespaces("user2").codes == {"ns2", "ns3"}
    user4 = role_cache.get_permitted_namespaces("user4")
    assert user4.permission_for("ns1") == READ
    assert user4.permission_for("ns2") == EDIT
    assert role_cache.get_permitted_namespaces("nobody").codes == frozenset()


def test_role_cache_admin(role_store, role_cache):
    _load_users(role_store)
    role_cache.process_pending_events()

    assert role_cache.is_admin("user3")
    assert not role_cache.is_admin("user1")
    assert role_cache.get_permitted_namespaces("user3").is_all


def test_role_cache_resolves_token_roles(role_store, role_cache):
    role_store.create_role("data-science", namespace_codes=["ns1"])
    role_store.create_role("analysts", namespace_codes=["ns2"], permission="READ")
    role_store.create_role("platform", is_admin=True, permission="MANAGE")
    role_cache.process_pending_events()

    permitted = role_cache.get_permitted_namespaces("alice", roles=["data-science", "analysts"])
    assert permitted.permission_for("ns1") == EDIT
    assert permitted.permission_for("ns2") == READ
    assert role_cache.get_permitted_namespaces("alice", roles=["unknown"]).codes == frozenset()
    assert role_cache.is_admin("alice", roles=["platform"])


def test_role_cache_namespace_users(role_store, role_cache):
    _load_users(role_store)
    role_cache.process_pending_events()

    assert role_cache.get_namespace_users("ns2") == {"user1", "user2", "user3", "user4"}
    assert role_cache.get_namespace_users("ns9") == {"user3"}


def test_revoked_role_is_removed_after_reload(role_store, role_cache):
    role_store.create_role("team", namespace_codes=["ns1"], users=["user1"])
    role_cache.process_pending_events()
    assert role_cache.get_permitted_namespaces("user1").allows("ns1")
    version = role_cache.version

    role_store.delete_role("team")
    role_cache.process_pending_events()

    assert role_cache.version > version
    assert not role_cache.get_permitted_namespaces("user1").allows("ns1")


def test_role_cache_listens_on_roles_channel(role_store, role_cache, notifier):
    version = role_cache.version
    notifier.notify(NAMESPACES_CHANNEL, "ns1")
    assert not role_cache.process_pending_events()

    notifier.notify(ROLES_CHANNEL)
    assert role_cache.process_pending_events()
    assert role_cache.version == version + 1
