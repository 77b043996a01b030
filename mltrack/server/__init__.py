import atexit
import logging
import os
import shlex
import subprocess
import sys
import time
import warnings
from dataclasses import dataclass

from flask import Flask, g, request

from mltrack.environment_variables import _MLTRACK_STATIC_ROLES_LOADED
from mltrack.error_codes import RESOURCE_ALREADY_EXISTS
from mltrack.exceptions import MltrackException, MltrackStartupException
from mltrack.server import handlers
from mltrack.server.auth.middleware import Authorizer
from mltrack.server.auth.modes import build_auth_mode
from mltrack.server.config import AUTH_USER, ServerConfig
from mltrack.store.db.utils import _initialize_tables, create_sqlalchemy_engine
from mltrack.store.experiment.sqlalchemy_store import SqlAlchemyExperimentStore
from mltrack.store.namespace.cached_store import CachedNamespaceStore
from mltrack.store.namespace.sqlalchemy_store import SqlAlchemyNamespaceStore
from mltrack.store.notifier import get_change_notifier
from mltrack.store.role.cached_store import CachedRoleStore
from mltrack.store.role.sqlalchemy_store import SqlAlchemyRoleStore
from mltrack.store.role.users_config import read_users_config

_logger = logging.getLogger(__name__)


@dataclass
class ServerContext:
    """
    Resources owned by one server process. Created by :py:func:`create_app` and released by
    :py:meth:`close`.
    """

    config: ServerConfig
    engine: object
    notifier: object
    namespace_store: SqlAlchemyNamespaceStore
    role_store: SqlAlchemyRoleStore
    experiment_store: SqlAlchemyExperimentStore
    namespace_cache: CachedNamespaceStore = None
    role_cache: CachedRoleStore = None
    authorizer: Authorizer = None
    closed: bool = False

    def close(self):
        if self.closed:
            return
        self.closed = True
        atexit.unregister(self.close)
        for cache in (self.namespace_cache, self.role_cache):
            if cache is not None:
                cache.close()
        self.notifier.close()
        self.engine.dispose()
        _logger.debug("Server context closed")


def _log_request_start():
    g.request_start_time = time.perf_counter()


def _log_request(response):
    start = g.get("request_start_time")
    latency = f"{(time.perf_counter() - start) * 1000:.3f}ms" if start is not None else "-"
    _logger.info("%s - %s %s %s", response.status_code, latency, request.method, request.path)
    return response


def _load_static_roles(role_store, users_config):
    if _MLTRACK_STATIC_ROLES_LOADED.get():
        _logger.debug("Static roles were loaded before the server processes started")
        return
    try:
        role_store.load_static_config(users_config)
    except MltrackException as e:
        # Another server process loaded the same users file concurrently.
        if e.error_code != RESOURCE_ALREADY_EXISTS:
            raise
        _logger.info("Static roles were loaded by another server process")


def _build_context(config, notifier=None, oidc_client=None, users_config=None):
    engine = create_sqlalchemy_engine(
        config.database_uri, config.database_pool_max, config.database_pool_timeout
    )
    _initialize_tables(engine)
    if notifier is None:
        notifier = get_change_notifier(
            engine,
            reconnect_delay=config.notifier_reconnect_delay,
            poll_interval=config.notifier_poll_interval,
        )
    try:
        notifier.start()
    except Exception:
        engine.dispose()
        raise
    context = ServerContext(
        config=config,
        engine=engine,
        notifier=notifier,
        namespace_store=SqlAlchemyNamespaceStore(
            engine, notifier, default_artifact_root=config.default_artifact_root
        ),
        role_store=SqlAlchemyRoleStore(engine, notifier),
        experiment_store=SqlAlchemyExperimentStore(
            engine, default_artifact_root=config.default_artifact_root
        ),
    )
    try:
        context.namespace_store.create_default_namespace()
        if config.resolved_auth_type == AUTH_USER:
            if users_config is None:
                users_config = read_users_config(config.auth_users_config)
            _load_static_roles(context.role_store, users_config)
        context.namespace_cache = CachedNamespaceStore(
            context.namespace_store, notifier, resync_interval=config.cache_resync_interval
        )
        context.role_cache = CachedRoleStore(
            context.role_store, notifier, resync_interval=config.cache_resync_interval
        )
        auth_mode = build_auth_mode(config, users_config=users_config, oidc_client=oidc_client)
        context.authorizer = Authorizer(auth_mode, context.namespace_cache, context.role_cache)
    except Exception:
        context.close()
        raise
    context.namespace_cache.start()
    context.role_cache.start()
    return context


def create_app(config=None, *, notifier=None, oidc_client=None, users_config=None):
    """
    Creates the Flask application of one server process: connects to the database, creates the
    ``default`` namespace, loads the namespace and role caches and installs the authorization
    middleware.

    Args:
        config: :py:class:`mltrack.server.config.ServerConfig`, read from the environment when
            omitted.
        notifier: Change notifier to use instead of the one matching the database dialect.
        oidc_client: Discovered OIDC client to use instead of one built from ``config``.
        users_config: Parsed users file to use instead of reading ``config.auth_users_config``.

    Raises:
        MltrackStartupException: If the server cannot reach a consistent initial state.
    """
    config = (config or ServerConfig.from_env()).validate()
    try:
        context = _build_context(
            config, notifier=notifier, oidc_client=oidc_client, users_config=users_config
        )
    except MltrackStartupException:
        raise
    except MltrackException as e:
        raise MltrackStartupException(f"Server startup failed: {e.message}") from e
    except Exception as e:
        raise MltrackStartupException(f"Server startup failed: {e}") from e
    atexit.register(context.close)

    app = Flask(__name__)
    app.extensions[handlers.SERVER_CONTEXT_EXTENSION] = context
    app.before_request(_log_request_start)
    context.authorizer.init_app(app)
    app.after_request(_log_request)
    for http_path, handler, methods in handlers.get_endpoints():
        app.add_url_rule(http_path, handler.__name__, handler, methods=methods)

    _logger.info(
        "mltrack server ready (auth=%s, namespaces=%d)",
        type(context.authorizer.auth_mode).__name__,
        len(context.namespace_cache.list_namespaces()),
    )
    return app


def get_server_context(app) -> ServerContext:
    return app.extensions[handlers.SERVER_CONTEXT_EXTENSION]


def _build_waitress_command(waitress_opts, host, port, app_name):
    opts = shlex.split(waitress_opts) if waitress_opts else []
    return [
        sys.executable,
        "-m",
        "waitress",
        *opts,
        f"--host={host}",
        f"--port={port}",
        "--ident=mltrack",
        "--call",
        app_name,
    ]


def _build_gunicorn_command(gunicorn_opts, host, port, workers, app_name):
    bind_address = f"{host}:{port}"
    opts = shlex.split(gunicorn_opts) if gunicorn_opts else []
    return [
        sys.executable,
        "-m",
        "gunicorn",
        *opts,
        "-b",
        bind_address,
        "-w",
        str(workers),
        f"{app_name}()",
    ]


def _build_uvicorn_command(uvicorn_opts, host, port, workers, app_name):
    """Build command to run uvicorn server."""
    opts = shlex.split(uvicorn_opts) if uvicorn_opts else []
    return [
        sys.executable,
        "-m",
        "uvicorn",
        *opts,
        "--host",
        host,
        "--port",
        str(port),
        "--workers",
        str(workers),
        "--factory",
        app_name,
    ]


def _run_server(
    *,
    env_map,
    host,
    port,
    workers=None,
    gunicorn_opts=None,
    waitress_opts=None,
    uvicorn_opts=None,
):
    """
    Run the mltrack server, wrapping it in uvicorn (default), gunicorn or waitress. Every worker
    process creates its own app, caches and change notifier.

    Args:
        env_map: ``MLTRACK_*`` environment variables passed to the worker processes.

    Returns:
        The exit code of the server process.
    """
    env_map = dict(env_map)
    using_gunicorn = gunicorn_opts is not None
    using_waitress = waitress_opts is not None

    if using_gunicorn:
        if sys.platform == "win32":
            raise MltrackException(
                "Gunicorn is not supported on Windows. "
                "Please use uvicorn (default) or specify '--waitress-opts'."
            )
        warnings.warn(
            "We recommend using uvicorn for improved performance. "
            "Please use uvicorn by default or specify '--uvicorn-opts' "
            "instead of '--gunicorn-opts'.",
            FutureWarning,
            stacklevel=2,
        )
        full_command = _build_gunicorn_command(
            gunicorn_opts, host, port, workers or 4, f"{__name__}:create_app"
        )
    elif using_waitress:
        warnings.warn(
            "We recommend using uvicorn for improved performance. "
            "Please use uvicorn by default or specify '--uvicorn-opts' "
            "instead of '--waitress-opts'.",
            FutureWarning,
            stacklevel=2,
        )
        full_command = _build_waitress_command(waitress_opts, host, port, f"{__name__}:create_app")
    else:
        full_command = _build_uvicorn_command(
            uvicorn_opts,
            host,
            port,
            workers or 4,
            "mltrack.server.fastapi_app:create_fastapi_app",
        )

    _logger.debug("Starting server: %s", shlex.join(full_command))
    server_proc = subprocess.Popen(full_command, env={**os.environ, **env_map})
    return server_proc.wait()
