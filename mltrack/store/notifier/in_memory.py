from mltrack.store.notifier.abstract import ChangeEvent, ChangeNotifier


class InMemoryChangeNotifier(ChangeNotifier):
    """
    Delivers change events to subscribers of the current process only. Used with in-memory SQLite
    databases, which are private to one process, and as a synchronous fake in tests.
    """

    def start(self):
        pass

    def notify(self, channel, payload=""):
        self._dispatch(ChangeEvent(channel=channel, payload=payload))
