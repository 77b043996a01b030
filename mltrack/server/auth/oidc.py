from __future__ import annotations

import logging
from dataclasses import dataclass

import jwt
import requests

from mltrack.exceptions import AuthenticationException, MltrackStartupException

_logger = logging.getLogger(__name__)

DISCOVERY_PATH = "/.well-known/openid-configuration"
ACCESS_TOKEN_COOKIE = "access_token"
_SUPPORTED_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384", "ES512", "PS256"]
_REQUEST_TIMEOUT_SECONDS = 10
_BEARER_CHALLENGE = 'Bearer error="invalid_token"'


@dataclass(frozen=True)
class OidcClaims:
    username: str
    roles: tuple[str, ...]


class OidcClient:
    """
    Verifies bearer tokens issued by an OpenID Connect provider. Signing keys are fetched from the
    JWKS endpoint advertised by the provider's discovery document and cached by
    :py:class:`jwt.PyJWKClient`.
    """

    def __init__(self, provider_endpoint, client_id, groups_claim="groups"):
        self.provider_endpoint = provider_endpoint.rstrip("/")
        self.client_id = client_id
        self.groups_claim = groups_claim
        self.issuer = None
        self._jwks_client = None

    def discover(self):
        url = self.provider_endpoint + DISCOVERY_PATH
        try:
            response = requests.get(url, timeout=_REQUEST_TIMEOUT_SECONDS)
            response.raise_for_status()
            document = response.json()
            self.issuer = document["issuer"]
            jwks_uri = document["jwks_uri"]
        except (requests.RequestException, ValueError, KeyError) as e:
            raise MltrackStartupException(
                f"Unable to read the OIDC discovery document from {url}: {e}"
            ) from e
        self._jwks_client = jwt.PyJWKClient(jwks_uri)
        _logger.info("Using OIDC provider %s", self.issuer)
        return self

    def verify(self, token) -> OidcClaims:
        """
        Validates signature, expiry, audience and issuer of ``token``.

        Raises:
            AuthenticationException: If the token cannot be validated.
        """
        if self._jwks_client is None:
            self.discover()
        try:
            signing_key = self._jwks_client.get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=_SUPPORTED_ALGORITHMS,
                audience=self.client_id,
                issuer=self.issuer,
                options={"require": ["exp", "iss", "aud"]},
            )
        except jwt.PyJWTError as e:
            _logger.debug("Rejected access token: %s", e)
            raise AuthenticationException(
                "The access token is invalid.", challenge=_BEARER_CHALLENGE
            )
        username = claims.get("preferred_username") or claims.get("email") or claims.get("sub")
        if not username:
            raise AuthenticationException(
                "The access token does not identify a user.", challenge=_BEARER_CHALLENGE
            )
        groups = claims.get(self.groups_claim) or []
        if isinstance(groups, str):
            groups = [groups]
        return OidcClaims(username=str(username), roles=tuple(str(g) for g in groups))
