from __future__ import annotations

from dataclasses import dataclass

from mltrack.environment_variables import (
    MLTRACK_AUTH_OIDC_ADMIN_ROLE,
    MLTRACK_AUTH_OIDC_CLIENT_ID,
    MLTRACK_AUTH_OIDC_GROUPS_CLAIM,
    MLTRACK_AUTH_OIDC_PROVIDER_ENDPOINT,
    MLTRACK_AUTH_PASSWORD,
    MLTRACK_AUTH_TYPE,
    MLTRACK_AUTH_USERNAME,
    MLTRACK_AUTH_USERS_CONFIG,
    MLTRACK_CACHE_RESYNC_INTERVAL,
    MLTRACK_DATABASE_POOL_MAX,
    MLTRACK_DATABASE_POOL_TIMEOUT,
    MLTRACK_DATABASE_URI,
    MLTRACK_DEFAULT_ARTIFACT_ROOT,
    MLTRACK_NOTIFIER_POLL_INTERVAL,
    MLTRACK_NOTIFIER_RECONNECT_DELAY,
)
from mltrack.exceptions import MltrackException

AUTH_NONE = "none"
AUTH_BASIC = "basic"
AUTH_USER = "user"
AUTH_OIDC = "oidc"
AUTH_TYPES = (AUTH_NONE, AUTH_BASIC, AUTH_USER, AUTH_OIDC)


@dataclass(frozen=True)
class ServerConfig:
    """
    Settings of one server process, read from ``MLTRACK_*`` environment variables.
    """

    database_uri: str = MLTRACK_DATABASE_URI.default
    database_pool_max: int = MLTRACK_DATABASE_POOL_MAX.default
    database_pool_timeout: int = MLTRACK_DATABASE_POOL_TIMEOUT.default
    default_artifact_root: str = MLTRACK_DEFAULT_ARTIFACT_ROOT.default
    auth_type: str | None = None
    auth_username: str | None = None
    auth_password: str | None = None
    auth_users_config: str | None = None
    auth_oidc_provider_endpoint: str | None = None
    auth_oidc_client_id: str | None = None
    auth_oidc_groups_claim: str = MLTRACK_AUTH_OIDC_GROUPS_CLAIM.default
    auth_oidc_admin_role: str | None = None
    cache_resync_interval: float = MLTRACK_CACHE_RESYNC_INTERVAL.default
    notifier_reconnect_delay: float = MLTRACK_NOTIFIER_RECONNECT_DELAY.default
    notifier_poll_interval: float = MLTRACK_NOTIFIER_POLL_INTERVAL.default

    @classmethod
    def from_env(cls) -> "ServerConfig":
        return cls(
            database_uri=MLTRACK_DATABASE_URI.get(),
            database_pool_max=MLTRACK_DATABASE_POOL_MAX.get(),
            database_pool_timeout=MLTRACK_DATABASE_POOL_TIMEOUT.get(),
            default_artifact_root=MLTRACK_DEFAULT_ARTIFACT_ROOT.get(),
            auth_type=MLTRACK_AUTH_TYPE.get(),
            auth_username=MLTRACK_AUTH_USERNAME.get(),
            auth_password=MLTRACK_AUTH_PASSWORD.get(),
            auth_users_config=MLTRACK_AUTH_USERS_CONFIG.get(),
            auth_oidc_provider_endpoint=MLTRACK_AUTH_OIDC_PROVIDER_ENDPOINT.get(),
            auth_oidc_client_id=MLTRACK_AUTH_OIDC_CLIENT_ID.get(),
            auth_oidc_groups_claim=MLTRACK_AUTH_OIDC_GROUPS_CLAIM.get(),
            auth_oidc_admin_role=MLTRACK_AUTH_OIDC_ADMIN_ROLE.get(),
            cache_resync_interval=MLTRACK_CACHE_RESYNC_INTERVAL.get(),
            notifier_reconnect_delay=MLTRACK_NOTIFIER_RECONNECT_DELAY.get(),
            notifier_poll_interval=MLTRACK_NOTIFIER_POLL_INTERVAL.get(),
        )

    def _configured_auth_types(self):
        configured = []
        if self.auth_oidc_provider_endpoint:
            configured.append(AUTH_OIDC)
        if self.auth_users_config:
            configured.append(AUTH_USER)
        if self.auth_username or self.auth_password:
            configured.append(AUTH_BASIC)
        return configured

    @property
    def resolved_auth_type(self) -> str:
        """
        The explicit ``auth_type``, or the auth mode implied by the other auth settings.
        """
        if self.auth_type:
            return self.auth_type.lower()
        configured = self._configured_auth_types()
        return configured[0] if configured else AUTH_NONE

    def validate(self):
        if self.auth_type and self.auth_type.lower() not in AUTH_TYPES:
            raise MltrackException.invalid_parameter_value(
                f"Invalid auth type '{self.auth_type}'. Valid auth types are: {AUTH_TYPES}"
            )
        if not self.auth_type and len(configured := self._configured_auth_types()) > 1:
            raise MltrackException.invalid_parameter_value(
                f"Settings for several auth modes were given ({', '.join(configured)}). "
                f"Only one auth mode can be active, set {MLTRACK_AUTH_TYPE.name} to choose."
            )
        auth_type = self.resolved_auth_type
        if auth_type == AUTH_BASIC and not (self.auth_username and self.auth_password):
            raise MltrackException.invalid_parameter_value(
                f"Basic auth requires both {MLTRACK_AUTH_USERNAME.name} and "
                f"{MLTRACK_AUTH_PASSWORD.name}."
            )
        if auth_type == AUTH_USER and not self.auth_users_config:
            raise MltrackException.invalid_parameter_value(
                f"User auth requires {MLTRACK_AUTH_USERS_CONFIG.name}."
            )
        if auth_type == AUTH_OIDC and not (
            self.auth_oidc_provider_endpoint and self.auth_oidc_client_id
        ):
            raise MltrackException.invalid_parameter_value(
                f"OIDC auth requires both {MLTRACK_AUTH_OIDC_PROVIDER_ENDPOINT.name} and "
                f"{MLTRACK_AUTH_OIDC_CLIENT_ID.name}."
            )
        if self.database_pool_max < 1:
            raise MltrackException.invalid_parameter_value(
                f"{MLTRACK_DATABASE_POOL_MAX.name} must be a positive integer."
            )
        if self.cache_resync_interval <= 0:
            raise MltrackException.invalid_parameter_value(
                f"{MLTRACK_CACHE_RESYNC_INTERVAL.name} must be positive."
            )
        if self.notifier_poll_interval <= 0:
            raise MltrackException.invalid_parameter_value(
                f"{MLTRACK_NOTIFIER_POLL_INTERVAL.name} must be positive."
            )
        return self
