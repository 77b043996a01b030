from __future__ import annotations

from contextvars import ContextVar, Token
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mltrack.entities import Namespace

_NAMESPACE: ContextVar[Namespace | None] = ContextVar("mltrack_active_namespace", default=None)


def get_request_namespace() -> Namespace | None:
    """
    Return the namespace currently bound to this execution context.

    This helper is request-scoped and is populated by the authorization middleware once the
    caller has been admitted into the namespace.
    """

    return _NAMESPACE.get()


def set_current_namespace(namespace: Namespace | None) -> Token[Namespace | None]:
    """Bind the given namespace to the current execution context."""
    return _NAMESPACE.set(namespace)


def reset_namespace(token: Token[Namespace | None]) -> None:
    """Restore the namespace context to the state captured by ``token``."""
    _NAMESPACE.reset(token)


def clear_namespace() -> None:
    """Explicitly clear the current namespace binding (set it to ``None``)."""
    _NAMESPACE.set(None)


class NamespaceContext:
    """Context manager helper that temporarily sets the active namespace."""

    def __init__(self, namespace: Namespace | None):
        self._namespace = namespace
        self._token: Token[Namespace | None] | None = None

    def __enter__(self) -> Namespace | None:
        self._token = set_current_namespace(self._namespace)
        return self._namespace

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._token is not None:
            reset_namespace(self._token)
            self._token = None
