from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType

from mltrack.entities import Namespace
from mltrack.store.cached_store import SnapshotCache
from mltrack.store.notifier import NAMESPACES_CHANNEL

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NamespaceSnapshot:
    version: int
    by_code: MappingProxyType
    by_id: MappingProxyType


class CachedNamespaceStore(SnapshotCache):
    """
    Read-through cache of the active namespaces of a
    :py:class:`mltrack.store.namespace.abstract_store.AbstractNamespaceStore`. Lookups return None
    for namespaces that do not exist. Writes go to the backing store, which publishes the change
    event reloading this cache in every server process.
    """

    name = "namespace cache"

    def __init__(self, store, notifier, resync_interval=None):
        self.store = store
        super().__init__(notifier, NAMESPACES_CHANNEL, resync_interval=resync_interval)

    def _build_snapshot(self, version):
        namespaces = self.store.list_namespaces()
        snapshot = NamespaceSnapshot(
            version=version,
            by_code=MappingProxyType({ns.code: ns for ns in namespaces}),
            by_id=MappingProxyType({ns.id: ns for ns in namespaces}),
        )
        _logger.debug("Loaded %d namespaces", len(namespaces))
        return snapshot

    def get_by_code(self, code) -> Namespace | None:
        return self.snapshot.by_code.get(code)

    def get_by_id(self, namespace_id) -> Namespace | None:
        return self.snapshot.by_id.get(namespace_id)

    def list_namespaces(self) -> list[Namespace]:
        return sorted(self.snapshot.by_id.values(), key=lambda ns: ns.id)

    # Writes reload this process's cache right away so that callers read their own writes.
    def create_namespace(self, code, description=""):
        namespace = self.store.create_namespace(code, description)
        self.reload()
        return namespace

    def update_namespace(self, namespace_id, code, description):
        namespace = self.store.update_namespace(namespace_id, code, description)
        self.reload()
        return namespace

    def delete_namespace(self, namespace_id):
        self.store.delete_namespace(namespace_id)
        self.reload()
