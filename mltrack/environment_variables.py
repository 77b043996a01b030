"""
This module defines environment variables used in mltrack.
mltrack's environment variables adhere to the following naming conventions:
- Public variables: environment variable names begin with `MLTRACK_`
- Internal-use variables: For variables used only internally, names start with `_MLTRACK_`
"""

import os


class _EnvironmentVariable:
    """
    Represents an environment variable.
    """

    def __init__(self, name, type_, default):
        if type_ == bool and not isinstance(self, _BooleanEnvironmentVariable):
            raise ValueError("Use _BooleanEnvironmentVariable instead for boolean variables")
        self.name = name
        self.type = type_
        self.default = default

    @property
    def defined(self):
        return self.name in os.environ

    def get_raw(self):
        return os.getenv(self.name)

    def set(self, value):
        os.environ[self.name] = str(value)

    def unset(self):
        os.environ.pop(self.name, None)

    def is_set(self):
        return self.name in os.environ

    def get(self):
        """
        Reads the value of the environment variable if it exists and converts it to the desired
        type. Otherwise, returns the default value.
        """
        if (val := self.get_raw()) is not None:
            try:
                return self.type(val)
            except Exception as e:
                raise ValueError(f"Failed to convert {val!r} for {self.name}: {e}")
        return self.default

    def __str__(self):
        return f"{self.name} (default: {self.default})"

    def __repr__(self):
        return repr(self.name)

    def __format__(self, format_spec: str) -> str:
        return self.name.__format__(format_spec)


class _BooleanEnvironmentVariable(_EnvironmentVariable):
    """
    Represents a boolean environment variable.
    """

    def __init__(self, name, default):
        # `default not in [True, False, None]` doesn't work because `1 in [True]`
        # (or `0 in [False]`) returns True.
        if not (default is True or default is False or default is None):
            raise ValueError(f"{name} default value must be one of [True, False, None]")
        super().__init__(name, bool, default)

    def get(self):
        if not self.defined:
            return self.default

        val = os.getenv(self.name)
        lowercased = val.lower()
        if lowercased not in ["true", "false", "1", "0"]:
            raise ValueError(
                f"{self.name} value must be one of ['true', 'false', '1', '0'] (case-insensitive), "
                f"but got {val}"
            )
        return lowercased in ["true", "1"]


#: Specifies the SQLAlchemy database URI of the backend store.
#: (default: ``sqlite:///mltrack.db``)
MLTRACK_DATABASE_URI = _EnvironmentVariable("MLTRACK_DATABASE_URI", str, "sqlite:///mltrack.db")

#: Specifies the maximum number of pooled database connections shared by all requests of a
#: server process.
#: (default: ``20``)
MLTRACK_DATABASE_POOL_MAX = _EnvironmentVariable("MLTRACK_DATABASE_POOL_MAX", int, 20)

#: Specifies how many seconds a request waits for a pooled database connection before failing.
#: (default: ``30``)
MLTRACK_DATABASE_POOL_TIMEOUT = _EnvironmentVariable("MLTRACK_DATABASE_POOL_TIMEOUT", int, 30)

#: Specifies the artifact root used for the default experiment of new namespaces.
#: (default: ``./mltrack-artifacts``)
MLTRACK_DEFAULT_ARTIFACT_ROOT = _EnvironmentVariable(
    "MLTRACK_DEFAULT_ARTIFACT_ROOT", str, "./mltrack-artifacts"
)

#: Specifies the authentication mode of the server. One of ``none``, ``basic`` (one shared
#: Basic-Auth credential), ``user`` (per-user Basic-Auth from a YAML file) or ``oidc``.
#: When unset the mode is inferred from the other ``MLTRACK_AUTH_*`` variables.
#: (default: ``None``)
MLTRACK_AUTH_TYPE = _EnvironmentVariable("MLTRACK_AUTH_TYPE", str, None)

#: Specifies the user name of the shared Basic-Auth credential.
#: (default: ``None``)
MLTRACK_AUTH_USERNAME = _EnvironmentVariable("MLTRACK_AUTH_USERNAME", str, None)

#: Specifies the password of the shared Basic-Auth credential.
#: (default: ``None``)
MLTRACK_AUTH_PASSWORD = _EnvironmentVariable("MLTRACK_AUTH_PASSWORD", str, None)

#: Specifies the path to the YAML file describing users, their passwords and roles.
#: (default: ``None``)
MLTRACK_AUTH_USERS_CONFIG = _EnvironmentVariable("MLTRACK_AUTH_USERS_CONFIG", str, None)

#: Specifies the issuer URL of the OIDC identity provider. The discovery document is read from
#: ``<endpoint>/.well-known/openid-configuration``.
#: (default: ``None``)
MLTRACK_AUTH_OIDC_PROVIDER_ENDPOINT = _EnvironmentVariable(
    "MLTRACK_AUTH_OIDC_PROVIDER_ENDPOINT", str, None
)

#: Specifies the OIDC client ID, validated against the ``aud`` claim of bearer tokens.
#: (default: ``None``)
MLTRACK_AUTH_OIDC_CLIENT_ID = _EnvironmentVariable("MLTRACK_AUTH_OIDC_CLIENT_ID", str, None)

#: Specifies the token claim holding the caller's role names.
#: (default: ``groups``)
MLTRACK_AUTH_OIDC_GROUPS_CLAIM = _EnvironmentVariable(
    "MLTRACK_AUTH_OIDC_GROUPS_CLAIM", str, "groups"
)

#: Specifies the role name that grants administrative access to OIDC callers.
#: (default: ``None``)
MLTRACK_AUTH_OIDC_ADMIN_ROLE = _EnvironmentVariable("MLTRACK_AUTH_OIDC_ADMIN_ROLE", str, None)

#: Specifies the number of seconds between two unconditional reloads of the namespace and role
#: caches. Reloads triggered by change notifications happen regardless of this interval.
#: (default: ``300``)
MLTRACK_CACHE_RESYNC_INTERVAL = _EnvironmentVariable("MLTRACK_CACHE_RESYNC_INTERVAL", float, 300.0)

#: Specifies the number of seconds the change notifier waits before re-establishing a dropped
#: database notification connection.
#: (default: ``5``)
MLTRACK_NOTIFIER_RECONNECT_DELAY = _EnvironmentVariable(
    "MLTRACK_NOTIFIER_RECONNECT_DELAY", float, 5.0
)

#: Specifies the number of seconds between two reads of the change counters by servers whose
#: database has no native change notifications (e.g. SQLite).
#: (default: ``1``)
MLTRACK_NOTIFIER_POLL_INTERVAL = _EnvironmentVariable(
    "MLTRACK_NOTIFIER_POLL_INTERVAL", float, 1.0
)

#: If set to True, mltrack will configure ``mltrack.<module_name>`` loggers with
#: logging handlers and formatters.
#: (default: ``True``)
MLTRACK_CONFIGURE_LOGGING = _BooleanEnvironmentVariable("MLTRACK_CONFIGURE_LOGGING", True)

#: Specifies the logging level of mltrack loggers (e.g., "DEBUG", "INFO"). This environment
#: must be set before importing mltrack to take effect.
#: (default: ``None``).
MLTRACK_LOGGING_LEVEL = _EnvironmentVariable("MLTRACK_LOGGING_LEVEL", str, None)

#: Set by ``mltrack server`` once the static roles of the users file are loaded, so that its
#: worker processes do not load them again.
#: (default: ``False``)
_MLTRACK_STATIC_ROLES_LOADED = _BooleanEnvironmentVariable("_MLTRACK_STATIC_ROLES_LOADED", False)
