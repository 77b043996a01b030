"""
Base class of the in-process caches kept consistent with the database through change events.

A cache materializes store contents into an immutable snapshot and publishes it by swapping a
single reference, so readers never observe a partially built snapshot. Every reload takes a
version ticket before reading the store; a reload only publishes when its ticket is newer than the
published snapshot, so a slow reload finishing late never overwrites a newer one.
"""

from __future__ import annotations

import itertools
import logging
import threading
from abc import ABCMeta, abstractmethod

from mltrack.environment_variables import MLTRACK_CACHE_RESYNC_INTERVAL
from mltrack.exceptions import MltrackStartupException

_logger = logging.getLogger(__name__)


class SnapshotCache(metaclass=ABCMeta):
    #: Name used in log messages.
    name = "cache"

    def __init__(self, notifier, channel, resync_interval=None):
        self._resync_interval = (
            resync_interval if resync_interval is not None else MLTRACK_CACHE_RESYNC_INTERVAL.get()
        )
        self._tickets = itertools.count(1)
        self._publish_lock = threading.Lock()
        self._snapshot = None
        self._watcher = None
        self._stop = threading.Event()
        # Subscribe before the initial load so that no change committed in between is missed.
        self._subscription = notifier.subscribe(channel)
        try:
            self.reload(raise_on_failure=True)
        except Exception as e:
            self._subscription.close()
            raise MltrackStartupException(f"Initial load of the {self.name} failed: {e}") from e

    @abstractmethod
    def _build_snapshot(self, version):
        """
        Reads the backing store and returns a new immutable snapshot carrying ``version``.
        """

    @property
    def snapshot(self):
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def reload(self, raise_on_failure=False) -> bool:
        """
        Rebuilds the snapshot from the store. A failure keeps the last published snapshot serving
        lookups.

        Returns:
            True if the rebuilt snapshot was published.
        """
        ticket = next(self._tickets)
        try:
            snapshot = self._build_snapshot(ticket)
        except Exception:
            if raise_on_failure:
                raise
            _logger.exception(
                "Reloading the %s failed, keeping snapshot version %s", self.name, self.version
            )
            return False
        with self._publish_lock:
            if self._snapshot is not None and self._snapshot.version >= ticket:
                _logger.debug("Discarding stale %s snapshot version %s", self.name, ticket)
                return False
            self._snapshot = snapshot
        _logger.debug("Published %s snapshot version %s", self.name, ticket)
        return True

    def process_pending_events(self) -> bool:
        """
        Coalesces every queued change event into one reload.

        Returns:
            True if there were events to process.
        """
        if not self._subscription.drain():
            return False
        self.reload()
        return True

    def _watch(self):
        while not self._stop.is_set():
            event = self._subscription.get(timeout=self._resync_interval)
            if self._stop.is_set() or self._subscription.closed:
                return
            if event is not None:
                self._subscription.drain()
            self.reload()

    def start(self):
        """
        Starts the background thread reloading the cache on change events and at least every
        ``resync_interval`` seconds.
        """
        if self._watcher is not None:
            return
        self._watcher = threading.Thread(
            target=self._watch, name=f"mltrack-{self.name.replace(' ', '-')}", daemon=True
        )
        self._watcher.start()

    def close(self):
        self._stop.set()
        self._subscription.close()
        if self._watcher is not None and self._watcher is not threading.current_thread():
            self._watcher.join(timeout=5)
            self._watcher = None
