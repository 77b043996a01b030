from mltrack.store.notifier.abstract import (
    ALL_CHANNELS,
    NAMESPACES_CHANNEL,
    ROLES_CHANNEL,
    ChangeEvent,
    ChangeNotifier,
    Subscription,
)
from mltrack.store.notifier.in_memory import InMemoryChangeNotifier
from mltrack.store.notifier.polling import PollingChangeNotifier


def _is_in_memory_database(url):
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def get_change_notifier(engine, reconnect_delay=None, poll_interval=None) -> ChangeNotifier:
    """
    Returns the change notifier matching the database of ``engine``. Change events reach every
    server process sharing the database: PostgreSQL backends use ``LISTEN``/``NOTIFY``, other
    databases poll the change counters. In-memory SQLite databases are private to one process and
    are served in-process.
    """
    if engine.dialect.name == "postgresql":
        from mltrack.store.notifier.postgres import PostgresChangeNotifier

        return PostgresChangeNotifier(engine, reconnect_delay=reconnect_delay)
    if _is_in_memory_database(engine.url):
        return InMemoryChangeNotifier()
    return PollingChangeNotifier(engine, poll_interval=poll_interval)


__all__ = [
    "ALL_CHANNELS",
    "NAMESPACES_CHANNEL",
    "ROLES_CHANNEL",
    "ChangeEvent",
    "ChangeNotifier",
    "InMemoryChangeNotifier",
    "PollingChangeNotifier",
    "Subscription",
    "get_change_notifier",
]
