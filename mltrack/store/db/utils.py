import logging
from contextlib import contextmanager

import sqlalchemy
from sqlalchemy.orm import sessionmaker

from mltrack.environment_variables import (
    MLTRACK_DATABASE_POOL_MAX,
    MLTRACK_DATABASE_POOL_TIMEOUT,
)
from mltrack.error_codes import INTERNAL_ERROR
from mltrack.exceptions import MltrackException
from mltrack.store.db.models import Base

_logger = logging.getLogger(__name__)

SQLITE = "sqlite"
POSTGRES = "postgresql"


def create_sqlalchemy_engine(db_uri, pool_max=None, pool_timeout=None):
    """
    Creates the engine shared by every store of a server process. Requests borrow connections
    from its pool: at most ``pool_max`` are open at a time and callers block up to
    ``pool_timeout`` seconds for a free one.
    """
    pool_max = pool_max if pool_max is not None else MLTRACK_DATABASE_POOL_MAX.get()
    pool_timeout = pool_timeout if pool_timeout is not None else MLTRACK_DATABASE_POOL_TIMEOUT.get()
    url = sqlalchemy.engine.make_url(db_uri)
    pool_kwargs = {}
    if url.get_backend_name() != SQLITE:
        pool_kwargs = {"pool_size": pool_max, "max_overflow": 0, "pool_timeout": pool_timeout}
    _logger.debug(
        "Create SQLAlchemy engine for %s with %s",
        url.render_as_string(hide_password=True),
        pool_kwargs or "the default sqlite pool",
    )
    return sqlalchemy.create_engine(url, pool_pre_ping=True, **pool_kwargs)


def _initialize_tables(engine):
    _logger.info("Creating initial mltrack database tables...")
    Base.metadata.create_all(engine)


def _get_managed_session_maker(SessionMaker):
    """
    Creates a factory for producing exception-safe SQLAlchemy sessions that are made available
    using a context manager. Any session produced by this factory is automatically committed
    if no exceptions are encountered within its associated context. If an exception is
    encountered, the session is rolled back. Finally, any session produced by this factory is
    automatically closed when the session's associated context is exited.
    """

    @contextmanager
    def make_managed_session():
        """Provide a transactional scope around a series of operations."""
        session = SessionMaker()
        try:
            yield session
            session.commit()
        except MltrackException:
            session.rollback()
            raise
        except Exception as e:
            session.rollback()
            _logger.error("Database operation failed: %s", e, exc_info=True)
            raise MltrackException(
                message="The database operation failed.", error_code=INTERNAL_ERROR
            ) from e
        finally:
            session.close()

    return make_managed_session


def get_managed_session_maker(engine):
    return _get_managed_session_maker(sessionmaker(bind=engine, expire_on_commit=False))
