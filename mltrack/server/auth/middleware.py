"""
Request authorization. Every request is admitted into exactly one namespace: the one named by a
``/ns/<code>`` path prefix, otherwise ``default``.

A namespace that does not exist and one the caller may not access are rejected with the same
``RESOURCE_DOES_NOT_EXIST`` error, so that namespace codes cannot be discovered.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from flask import Response, g, request

from mltrack.entities import Namespace
from mltrack.entities.permission import MANAGE, Permission
from mltrack.error_codes import INTERNAL_ERROR, PERMISSION_DENIED
from mltrack.exceptions import AuthenticationException, MltrackException
from mltrack.server.auth.modes import Identity, OidcAuth, resolve_identity
from mltrack.utils import namespace_context

_logger = logging.getLogger(__name__)

NAMESPACE_CODE_ENVIRON_KEY = "mltrack.namespace_code"
ADMIN_PATH_PREFIX = "/admin/"
EXEMPT_PATHS = ("/health", "/version")
EXEMPT_PATH_PREFIXES = ("/set-cookie/",)
SAFE_METHODS = frozenset(["GET", "HEAD", "OPTIONS"])
# POST endpoints that only read, e.g. searches with a request body.
READ_ONLY_PATH_SUFFIXES = ("/search",)

_NAMESPACE_PATH_REGEX = re.compile(r"^/ns/([^/]+)(/.*)?$")


def split_namespace_path(path) -> tuple[str | None, str]:
    """
    Splits a ``/ns/<code>/...`` path into the namespace code and the remaining path.

    Returns:
        ``(code, path)``, where ``code`` is None for paths without namespace prefix.
    """
    if match := _NAMESPACE_PATH_REGEX.match(path):
        return match.group(1), match.group(2) or "/"
    return None, path


class NamespacePathMiddleware:
    """
    WSGI middleware stripping the ``/ns/<code>`` prefix from ``PATH_INFO`` so that every route is
    served with and without namespace prefix. The code is kept in the WSGI environ.
    """

    def __init__(self, wsgi_app):
        self.wsgi_app = wsgi_app

    def __call__(self, environ, start_response):
        code, path = split_namespace_path(environ.get("PATH_INFO", ""))
        if code is not None:
            environ[NAMESPACE_CODE_ENVIRON_KEY] = code
            environ["SCRIPT_NAME"] = environ.get("SCRIPT_NAME", "") + f"/ns/{code}"
            environ["PATH_INFO"] = path
        return self.wsgi_app(environ, start_response)


@dataclass(frozen=True)
class AuthorizationResult:
    namespace: Namespace | None
    identity: Identity
    permission: Permission
    is_admin: bool


def _namespace_not_found(code):
    return MltrackException.resource_does_not_exist(f"unable to find namespace with code: {code}")


def _error_response(exc: Exception) -> Response:
    if not isinstance(exc, MltrackException):
        exc = MltrackException("Unable to authorize the request.", error_code=INTERNAL_ERROR)
    response = Response(mimetype="application/json")
    response.set_data(exc.serialize_as_json())
    response.status_code = exc.get_http_status_code()
    if isinstance(exc, AuthenticationException) and exc.challenge:
        response.headers["WWW-Authenticate"] = exc.challenge
    return response


def _is_exempt(path):
    return path in EXEMPT_PATHS or path.startswith(EXEMPT_PATH_PREFIXES)


def _is_write_request(flask_request):
    return flask_request.method not in SAFE_METHODS and not flask_request.path.endswith(
        READ_ONLY_PATH_SUFFIXES
    )


class Authorizer:
    """
    Admits requests into namespaces using the namespace and role caches of the server process.
    """

    def __init__(self, auth_mode, namespace_cache, role_cache):
        self.auth_mode = auth_mode
        self.namespace_cache = namespace_cache
        self.role_cache = role_cache

    def resolve_namespace(self, code) -> Namespace:
        """
        Returns:
            The active namespace with ``code``.

        Raises:
            MltrackException: ``RESOURCE_DOES_NOT_EXIST`` if there is no such namespace.
        """
        namespace = self.namespace_cache.get_by_code(code)
        if namespace is None:
            raise _namespace_not_found(code)
        return namespace

    def _is_admin(self, identity: Identity) -> bool:
        if identity.full_access:
            return True
        if (
            isinstance(self.auth_mode, OidcAuth)
            and self.auth_mode.admin_role
            and self.auth_mode.admin_role in identity.roles
        ):
            return True
        return self.role_cache.is_admin(identity.username, identity.roles)

    def authorize(self, flask_request=request) -> AuthorizationResult | None:
        """
        Authenticates the caller and admits it into the requested namespace.

        Returns:
            None for paths exempt from authorization, otherwise the admitted namespace (None for
            admin paths) and identity.

        Raises:
            MltrackException: If the namespace is unknown or hidden from the caller, or the
                caller may not perform the request.
            AuthenticationException: If the caller's credentials are missing or invalid.
        """
        path = flask_request.path
        if _is_exempt(path):
            return None

        if path.startswith(ADMIN_PATH_PREFIX):
            identity = resolve_identity(self.auth_mode, flask_request)
            if not self._is_admin(identity):
                raise MltrackException("Admin access is required.", error_code=PERMISSION_DENIED)
            return AuthorizationResult(
                namespace=None, identity=identity, permission=MANAGE, is_admin=True
            )

        code = flask_request.environ.get(NAMESPACE_CODE_ENVIRON_KEY) or Namespace.DEFAULT_CODE
        # Unknown namespaces are rejected before the caller is authenticated.
        namespace = self.resolve_namespace(code)
        identity = resolve_identity(self.auth_mode, flask_request)
        if self._is_admin(identity):
            return AuthorizationResult(
                namespace=namespace, identity=identity, permission=MANAGE, is_admin=True
            )

        permitted = self.role_cache.get_permitted_namespaces(identity.username, identity.roles)
        permission = permitted.permission_for(namespace.code)
        if permission is None or not permission.can_read:
            raise _namespace_not_found(code)
        if _is_write_request(flask_request) and not permission.can_update:
            raise MltrackException(
                f"Permission denied: namespace {code} is read-only for user "
                f"{identity.username}.",
                error_code=PERMISSION_DENIED,
            )
        return AuthorizationResult(
            namespace=namespace, identity=identity, permission=permission, is_admin=False
        )

    def before_request(self):
        try:
            result = self.authorize()
        except MltrackException as e:
            return _error_response(e)
        except Exception as e:
            _logger.exception("Unexpected error while authorizing request")
            return _error_response(e)

        if result is None:
            return None
        g.identity = result.identity
        g.permission = result.permission
        g.is_admin = result.is_admin
        g.namespace = result.namespace
        if result.namespace is not None:
            namespace_context.set_current_namespace(result.namespace)
        return None

    def teardown_request(self, _exc):
        namespace_context.clear_namespace()

    def init_app(self, app):
        app.wsgi_app = NamespacePathMiddleware(app.wsgi_app)
        app.before_request(self.before_request)
        app.teardown_request(self.teardown_request)
