"""
Authentication modes of the server. Exactly one mode is active per server process; it resolves
the caller's :py:class:`Identity` from the request credentials.

- :py:class:`NoAuth`: every caller has full access.
- :py:class:`SharedBasicAuth`: one Basic-Auth credential shared by every caller, full access.
- :py:class:`UserBasicAuth`: per-user Basic-Auth credentials read from the users file; access is
  granted through roles.
- :py:class:`OidcAuth`: bearer tokens issued by an OpenID Connect provider; access is granted
  through the roles carried in the token and those bound to the user name.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from types import MappingProxyType

from werkzeug.security import check_password_hash, generate_password_hash

from mltrack.exceptions import AuthenticationException
from mltrack.server.auth.oidc import ACCESS_TOKEN_COOKIE, OidcClient
from mltrack.server.config import AUTH_BASIC, AUTH_NONE, AUTH_OIDC, AUTH_USER
from mltrack.store.role.users_config import read_users_config

_logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "
_BASIC_CHALLENGE = 'Basic realm="mltrack"'
_BEARER_CHALLENGE = 'Bearer realm="mltrack"'
_PASSWORD_HASH_METHODS = ("scrypt:", "pbkdf2:")


@dataclass(frozen=True)
class Identity:
    """
    The authenticated caller. ``full_access`` identities bypass role checks; the others are
    authorized through the role cache using ``username`` and ``roles``.
    """

    username: str | None = None
    roles: tuple[str, ...] = ()
    full_access: bool = False


ANONYMOUS = Identity(full_access=True)


@dataclass(frozen=True)
class NoAuth:
    pass


@dataclass(frozen=True)
class SharedBasicAuth:
    username: str
    password: str


@dataclass(frozen=True)
class UserBasicAuth:
    #: User name to werkzeug password hash.
    users: MappingProxyType


@dataclass(frozen=True)
class OidcAuth:
    client: OidcClient
    admin_role: str | None = None


def _is_password_hash(password):
    return password.startswith(_PASSWORD_HASH_METHODS) and password.count("$") == 2


def _hash_password(password):
    return password if _is_password_hash(password) else generate_password_hash(password)


def user_basic_auth_from_config(users_config) -> UserBasicAuth:
    return UserBasicAuth(
        users=MappingProxyType({user.name: _hash_password(user.password) for user in users_config})
    )


def build_auth_mode(config, users_config=None, oidc_client=None):
    """
    Creates the auth mode selected by ``config``.

    Args:
        config: A validated :py:class:`mltrack.server.config.ServerConfig`.
        users_config: Parsed users file; read from ``config.auth_users_config`` when omitted.
        oidc_client: Discovered :py:class:`OidcClient`; created and discovered when omitted.
    """
    auth_type = config.resolved_auth_type
    if auth_type == AUTH_NONE:
        return NoAuth()
    if auth_type == AUTH_BASIC:
        return SharedBasicAuth(username=config.auth_username, password=config.auth_password)
    if auth_type == AUTH_USER:
        if users_config is None:
            users_config = read_users_config(config.auth_users_config)
        return user_basic_auth_from_config(users_config)
    if auth_type == AUTH_OIDC:
        if oidc_client is None:
            oidc_client = OidcClient(
                config.auth_oidc_provider_endpoint,
                config.auth_oidc_client_id,
                groups_claim=config.auth_oidc_groups_claim,
            ).discover()
        return OidcAuth(client=oidc_client, admin_role=config.auth_oidc_admin_role)
    raise ValueError(f"Unknown auth type {auth_type!r}")


def _basic_credentials(request):
    authorization = request.authorization
    if authorization is None or (authorization.type or "").lower() != "basic":
        raise AuthenticationException(challenge=_BASIC_CHALLENGE)
    return authorization.username or "", authorization.password or ""


def _resolve_no_auth(mode, request):
    return ANONYMOUS


def _resolve_shared_basic_auth(mode, request):
    username, password = _basic_credentials(request)
    # Compare both parts to keep timing independent of which one is wrong.
    username_ok = secrets.compare_digest(username.encode(), mode.username.encode())
    password_ok = secrets.compare_digest(password.encode(), mode.password.encode())
    if not (username_ok and password_ok):
        raise AuthenticationException(challenge=_BASIC_CHALLENGE)
    return Identity(username=username, full_access=True)


def _resolve_user_basic_auth(mode, request):
    username, password = _basic_credentials(request)
    password_hash = mode.users.get(username)
    if password_hash is None or not check_password_hash(password_hash, password):
        _logger.debug("Rejected credentials of user %s", username)
        raise AuthenticationException(challenge=_BASIC_CHALLENGE)
    return Identity(username=username)


def _bearer_token(request):
    header = request.headers.get("Authorization")
    if header is not None and header.lower().startswith(BEARER_PREFIX):
        return header[len(BEARER_PREFIX) :].strip()
    return request.cookies.get(ACCESS_TOKEN_COOKIE)


def _resolve_oidc_auth(mode, request):
    token = _bearer_token(request)
    if not token:
        raise AuthenticationException(challenge=_BEARER_CHALLENGE)
    claims = mode.client.verify(token)
    return Identity(username=claims.username, roles=claims.roles)


_RESOLVERS = {
    NoAuth: _resolve_no_auth,
    SharedBasicAuth: _resolve_shared_basic_auth,
    UserBasicAuth: _resolve_user_basic_auth,
    OidcAuth: _resolve_oidc_auth,
}


def resolve_identity(mode, request) -> Identity:
    """
    Authenticates ``request`` according to ``mode``.

    Raises:
        AuthenticationException: If the request carries no valid credentials.
    """
    return _RESOLVERS[type(mode)](mode, request)
