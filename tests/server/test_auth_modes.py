from unittest import mock

import pytest
from werkzeug.security import generate_password_hash
from werkzeug.test import EnvironBuilder

from mltrack.exceptions import AuthenticationException
from mltrack.server.auth.modes import (
    ANONYMOUS,
    Identity,
    NoAuth,
    OidcAuth,
    SharedBasicAuth,
    UserBasicAuth,
    build_auth_mode,
    resolve_identity,
    user_basic_auth_from_config,
)
from mltrack.server.auth.oidc import OidcClaims
from mltrack.server.config import ServerConfig
from mltrack.store.role.users_config import UserConfig


def _request(auth=None, headers=None):
    return EnvironBuilder(
        path="/api/2.0/mlflow/experiments/search", auth=auth, headers=headers
    ).get_request()


def test_no_auth_grants_full_access():
    assert resolve_identity(NoAuth(), _request()) is ANONYMOUS
    assert ANONYMOUS.full_access


def test_shared_basic_auth():
    mode = SharedBasicAuth(username="admin", password="secret")

    identity = resolve_identity(mode, _request(auth=("admin", "secret")))

    assert identity == Identity(username="admin", full_access=True)


@pytest.mark.parametrize("auth", [None, ("admin", "wrong"), ("other", "secret")])
def test_shared_basic_auth_rejects_invalid_credentials(auth):
    mode = SharedBasicAuth(username="admin", password="secret")
    with pytest.raises(AuthenticationException) as e:
        resolve_identity(mode, _request(auth=auth))
    assert e.value.challenge == 'Basic realm="mltrack"'
    assert e.value.get_http_status_code() == 401


def test_shared_basic_auth_rejects_bearer_tokens():
    mode = SharedBasicAuth(username="admin", password="secret")
    with pytest.raises(AuthenticationException):
        resolve_identity(mode, _request(headers={"Authorization": "Bearer abc"}))


def test_user_basic_auth_hashes_clear_text_passwords():
    hashed = generate_password_hash("pw2")
    mode = user_basic_auth_from_config(
        [UserConfig("user1", "pw1", ("ns:ns1",)), UserConfig("user2", hashed, ("ns:ns2",))]
    )

    assert mode.users["user1"] != "pw1"
    assert mode.users["user2"] == hashed
    assert resolve_identity(mode, _request(auth=("user1", "pw1"))) == Identity(username="user1")
    assert resolve_identity(mode, _request(auth=("user2", "pw2"))) == Identity(username="user2")


@pytest.mark.parametrize("auth", [("user1", "wrong"), ("unknown", "pw1"), None])
def test_user_basic_auth_rejects_invalid_credentials(auth):
    mode = user_basic_auth_from_config([UserConfig("user1", "pw1", ())])
    with pytest.raises(AuthenticationException, match="You are not authenticated."):
        resolve_identity(mode, _request(auth=auth))


def test_oidc_auth_reads_bearer_header_and_cookie():
    client = mock.Mock()
    client.verify.return_value = OidcClaims(username="alice", roles=("team-a",))
    mode = OidcAuth(client=client)

    from_header = resolve_identity(mode, _request(headers={"Authorization": "Bearer token-1"}))
    from_cookie = resolve_identity(mode, _request(headers={"Cookie": "access_token=token-2"}))

    assert from_header == Identity(username="alice", roles=("team-a",))
    assert from_cookie == from_header
    assert [c.args[0] for c in client.verify.call_args_list] == ["token-1", "token-2"]


def test_oidc_auth_requires_token():
    mode = OidcAuth(client=mock.Mock())
    with pytest.raises(AuthenticationException) as e:
        resolve_identity(mode, _request())
    assert e.value.challenge == 'Bearer realm="mltrack"'
    mode.client.verify.assert_not_called()


def test_build_auth_mode(tmp_path):
    assert build_auth_mode(ServerConfig()) == NoAuth()
    assert build_auth_mode(ServerConfig(auth_username="u", auth_password="p")) == SharedBasicAuth(
        "u", "p"
    )

    users_file = tmp_path / "users.yaml"
    users_file.write_text("users:\n  - name: user1\n    password: pw1\n    roles: [ns:ns1]\n")
    mode = build_auth_mode(ServerConfig(auth_users_config=str(users_file)))
    assert isinstance(mode, UserBasicAuth)
    assert set(mode.users) == {"user1"}

    client = mock.Mock()
    mode = build_auth_mode(
        ServerConfig(
            auth_oidc_provider_endpoint="https://idp.example.com",
            auth_oidc_client_id="mltrack",
            auth_oidc_admin_role="mltrack-admins",
        ),
        oidc_client=client,
    )
    assert mode == OidcAuth(client=client, admin_role="mltrack-admins")
