from mltrack.server.auth.middleware import Authorizer, split_namespace_path
from mltrack.server.auth.modes import (
    Identity,
    NoAuth,
    OidcAuth,
    SharedBasicAuth,
    UserBasicAuth,
    build_auth_mode,
    resolve_identity,
)

__all__ = [
    "Authorizer",
    "Identity",
    "NoAuth",
    "OidcAuth",
    "SharedBasicAuth",
    "UserBasicAuth",
    "build_auth_mode",
    "resolve_identity",
    "split_namespace_path",
]
