import logging
import select
import threading

import psycopg2
import psycopg2.extensions
from psycopg2 import sql
from sqlalchemy import text

from mltrack.environment_variables import MLTRACK_NOTIFIER_RECONNECT_DELAY
from mltrack.exceptions import MltrackStartupException
from mltrack.store.notifier.abstract import ALL_CHANNELS, ChangeEvent, ChangeNotifier

_logger = logging.getLogger(__name__)

RECONNECT_PAYLOAD = "reconnect"
_POLL_INTERVAL_SECONDS = 1.0


class PostgresChangeNotifier(ChangeNotifier):
    """
    Change notifier backed by PostgreSQL ``LISTEN``/``NOTIFY``. A dedicated autocommit connection
    listens on every channel and a background thread fans incoming notifications out to
    subscribers. When the connection drops the thread logs the failure, waits
    ``reconnect_delay`` seconds and listens again; subscribers then receive one event per channel
    so that changes missed during the outage are re-fetched.
    """

    def __init__(self, engine, channels=ALL_CHANNELS, reconnect_delay=None):
        super().__init__()
        self._engine = engine
        self._channels = tuple(channels)
        self._reconnect_delay = (
            reconnect_delay
            if reconnect_delay is not None
            else MLTRACK_NOTIFIER_RECONNECT_DELAY.get()
        )
        self._dsn = engine.url.set(drivername="postgresql").render_as_string(hide_password=False)
        self._connection = None
        self._stop = threading.Event()
        self._thread = None

    def _connect(self):
        connection = psycopg2.connect(self._dsn)
        connection.set_isolation_level(psycopg2.extensions.ISOLATION_LEVEL_AUTOCOMMIT)
        with connection.cursor() as cursor:
            for channel in self._channels:
                cursor.execute(sql.SQL("LISTEN {}").format(sql.Identifier(channel)))
        _logger.debug("Listening for change events on %s", ", ".join(self._channels))
        return connection

    def start(self):
        try:
            self._connection = self._connect()
        except psycopg2.Error as e:
            raise MltrackStartupException(
                f"Unable to listen for database change notifications: {e}"
            ) from e
        self._thread = threading.Thread(
            target=self._listen, name="mltrack-change-notifier", daemon=True
        )
        self._thread.start()

    def _poll_once(self, timeout=_POLL_INTERVAL_SECONDS):
        """
        Waits up to ``timeout`` seconds for notifications on the listening connection and
        dispatches them. Raises psycopg2 errors when the connection is broken.
        """
        readable, _, _ = select.select([self._connection], [], [], timeout)
        if not readable:
            return
        self._connection.poll()
        while self._connection.notifies:
            notification = self._connection.notifies.pop(0)
            self._dispatch(ChangeEvent(channel=notification.channel, payload=notification.payload))

    def _reconnect(self):
        self._close_connection()
        while not self._stop.wait(self._reconnect_delay):
            try:
                self._connection = self._connect()
            except psycopg2.Error as e:
                _logger.warning(
                    "Reconnecting change notifier failed, retrying in %s seconds: %s",
                    self._reconnect_delay,
                    e,
                )
                continue
            _logger.info("Change notifier reconnected")
            for channel in self._channels:
                self._dispatch(ChangeEvent(channel=channel, payload=RECONNECT_PAYLOAD))
            return

    def _listen(self):
        while not self._stop.is_set():
            try:
                self._poll_once()
            except (psycopg2.Error, OSError, ValueError):
                if self._stop.is_set():
                    return
                _logger.exception("Change notifier connection lost, reconnecting")
                self._reconnect()

    def notify(self, channel, payload=""):
        with self._engine.begin() as connection:
            connection.execute(
                text("SELECT pg_notify(:channel, :payload)"),
                {"channel": channel, "payload": payload},
            )

    def _close_connection(self):
        connection, self._connection = self._connection, None
        if connection is not None:
            try:
                connection.close()
            except psycopg2.Error:
                _logger.debug("Ignoring error while closing notifier connection", exc_info=True)

    def close(self):
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=_POLL_INTERVAL_SECONDS * 5)
        self._close_connection()
        super().close()
