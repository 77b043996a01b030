"""
Change notification primitives. Stores publish a change event on a channel after every
committed write; caches subscribe to the channel and treat every event as "re-fetch".
Delivery is at-least-once and events carry no ordering guarantee.
"""

from __future__ import annotations

import queue
import threading
from abc import ABCMeta, abstractmethod
from dataclasses import dataclass

NAMESPACES_CHANNEL = "mltrack_namespaces"
ROLES_CHANNEL = "mltrack_roles"
ALL_CHANNELS = (NAMESPACES_CHANNEL, ROLES_CHANNEL)

_CLOSED = object()


@dataclass(frozen=True)
class ChangeEvent:
    channel: str
    payload: str = ""


class Subscription:
    """
    A lazy, blocking stream of :py:class:`ChangeEvent` objects for one channel. Iterating blocks
    until the next event arrives and stops once the subscription is closed.
    """

    def __init__(self, channel: str, on_close=None):
        self.channel = channel
        self._queue = queue.Queue()
        self._closed = threading.Event()
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def put(self, event: ChangeEvent):
        if not self.closed:
            self._queue.put(event)

    def get(self, timeout: float | None = None) -> ChangeEvent | None:
        """
        Waits up to ``timeout`` seconds for the next event. Returns None on timeout or once the
        subscription has been closed.
        """
        if self.closed and self._queue.empty():
            return None
        try:
            event = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        return None if event is _CLOSED else event

    def drain(self) -> list[ChangeEvent]:
        """Returns every event already queued without blocking."""
        events = []
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                return events
            if event is _CLOSED:
                return events
            events.append(event)

    def close(self):
        if self.closed:
            return
        self._closed.set()
        self._queue.put(_CLOSED)
        if self._on_close is not None:
            self._on_close(self)

    def __iter__(self):
        while True:
            event = self._queue.get()
            if event is _CLOSED:
                return
            yield event


class ChangeNotifier(metaclass=ABCMeta):
    """
    Abstract class for change notification transports.
    """

    def __init__(self):
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, channel: str) -> Subscription:
        """
        Registers a new subscriber on ``channel``. Subscriptions survive transport reconnects;
        a dropped connection only shows up as a gap in events.
        """
        subscription = Subscription(channel, on_close=self._unsubscribe)
        with self._lock:
            self._subscriptions.setdefault(channel, []).append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription):
        with self._lock:
            subscribers = self._subscriptions.get(subscription.channel, [])
            if subscription in subscribers:
                subscribers.remove(subscription)

    def _dispatch(self, event: ChangeEvent):
        with self._lock:
            subscribers = list(self._subscriptions.get(event.channel, []))
        for subscription in subscribers:
            subscription.put(event)

    @abstractmethod
    def start(self):
        """
        Begins listening for change events. Raises
        :py:class:`mltrack.exceptions.MltrackStartupException` if the transport cannot be set up.
        """

    @abstractmethod
    def notify(self, channel: str, payload: str = ""):
        """
        Publishes a change event on ``channel`` to every subscriber of every server process.
        """

    def close(self):
        with self._lock:
            subscriptions = [s for subs in self._subscriptions.values() for s in subs]
            self._subscriptions = {}
        for subscription in subscriptions:
            subscription.close()
