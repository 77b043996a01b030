import logging
import threading

import sqlalchemy
from sqlalchemy import insert, select, update

from mltrack.environment_variables import MLTRACK_NOTIFIER_POLL_INTERVAL
from mltrack.exceptions import MltrackStartupException
from mltrack.store.db.models import SqlChangeCounter
from mltrack.store.notifier.abstract import ChangeEvent, ChangeNotifier

_logger = logging.getLogger(__name__)

_MAX_PAYLOAD_LENGTH = 256


class PollingChangeNotifier(ChangeNotifier):
    """
    Change notifier for databases without a notification transport, such as a SQLite file shared
    by several server processes.

    :py:meth:`notify` bumps the counter of the channel in the ``change_counters`` table and
    delivers the event to the subscribers of the current process right away. A background thread
    reads the counters every ``poll_interval`` seconds and emits one event per channel whose
    counter moved, which is how writes made by other processes (or by the CLI) reach this one.
    """

    def __init__(self, engine, poll_interval=None):
        super().__init__()
        self._engine = engine
        self._poll_interval = (
            poll_interval if poll_interval is not None else MLTRACK_NOTIFIER_POLL_INTERVAL.get()
        )
        self._versions = {}
        self._versions_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread = None

    def _read_counters(self):
        with self._engine.connect() as connection:
            rows = connection.execute(
                select(SqlChangeCounter.channel, SqlChangeCounter.version, SqlChangeCounter.payload)
            ).all()
        return {row.channel: (row.version, row.payload) for row in rows}

    def start(self):
        try:
            counters = self._read_counters()
        except sqlalchemy.exc.SQLAlchemyError as e:
            raise MltrackStartupException(f"Unable to read the change counters: {e}") from e
        with self._versions_lock:
            self._versions = {channel: version for channel, (version, _) in counters.items()}
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._poll_loop, name="mltrack-change-poller", daemon=True
        )
        self._thread.start()

    def poll(self) -> int:
        """
        Reads the change counters once and dispatches an event for every channel whose counter
        moved since the previous read.

        Returns:
            The number of dispatched events.
        """
        counters = self._read_counters()
        events = []
        with self._versions_lock:
            for channel, (version, payload) in counters.items():
                if version > self._versions.get(channel, 0):
                    self._versions[channel] = version
                    events.append(ChangeEvent(channel=channel, payload=payload or ""))
        for event in events:
            self._dispatch(event)
        return len(events)

    def _poll_loop(self):
        while not self._stop.wait(self._poll_interval):
            try:
                self.poll()
            except sqlalchemy.exc.SQLAlchemyError:
                _logger.exception(
                    "Reading the change counters failed, retrying in %s seconds",
                    self._poll_interval,
                )

    def _bump_counter(self, channel, payload):
        with self._engine.begin() as connection:
            result = connection.execute(
                update(SqlChangeCounter)
                .where(SqlChangeCounter.channel == channel)
                .values(version=SqlChangeCounter.version + 1, payload=payload)
            )
            if result.rowcount == 0:
                connection.execute(
                    insert(SqlChangeCounter).values(channel=channel, version=1, payload=payload)
                )

    def notify(self, channel, payload=""):
        payload = payload[:_MAX_PAYLOAD_LENGTH]
        try:
            self._bump_counter(channel, payload)
        except sqlalchemy.exc.IntegrityError:
            # Another process created the counter of this channel concurrently.
            self._bump_counter(channel, payload)
        self._dispatch(ChangeEvent(channel=channel, payload=payload))

    def close(self):
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=max(self._poll_interval, 1.0) * 5)
        super().close()
