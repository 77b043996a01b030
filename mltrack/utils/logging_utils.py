import logging
import logging.config
import sys

from mltrack.environment_variables import MLTRACK_LOGGING_LEVEL

# Logging format example:
# 2024/11/20 12:36:37 INFO mltrack.store.namespace.cached_store: Reloaded 3 namespaces
LOGGING_LINE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOGGING_DATETIME_FORMAT = "%Y/%m/%d %H:%M:%S"


class MltrackLoggingStream:
    """
    A Python stream for the mltrack loggers. This stream wraps `sys.stderr`, forwarding
    `write()` and `flush()` calls to the stream referred to by `sys.stderr` at the time of the
    call.
    """

    def write(self, text):
        sys.stderr.write(text)

    def flush(self):
        sys.stderr.flush()


MLTRACK_LOGGING_STREAM = MltrackLoggingStream()


def _configure_mltrack_loggers(root_module_name):
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "mltrack_formatter": {
                    "format": LOGGING_LINE_FORMAT,
                    "datefmt": LOGGING_DATETIME_FORMAT,
                },
            },
            "handlers": {
                "mltrack_handler": {
                    "formatter": "mltrack_formatter",
                    "class": "logging.StreamHandler",
                    "stream": MLTRACK_LOGGING_STREAM,
                },
            },
            "loggers": {
                root_module_name: {
                    "handlers": ["mltrack_handler"],
                    "level": (MLTRACK_LOGGING_LEVEL.get() or "INFO").upper(),
                    "propagate": False,
                },
                "sqlalchemy.engine": {
                    "handlers": ["mltrack_handler"],
                    "level": "WARN",
                    "propagate": False,
                },
            },
        }
    )
