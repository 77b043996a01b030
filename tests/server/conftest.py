import pytest
import yaml

from mltrack.server import create_app, get_server_context
from mltrack.server.config import ServerConfig

USERS = [
    {"name": "user1", "password": "user1pw", "roles": ["ns:ns1", "ns:ns2"]},
    {"name": "user2", "password": "user2pw", "roles": ["ns:ns2", "ns:ns3"]},
    {"name": "user3", "password": "user3pw", "roles": ["admin"]},
    {"name": "user4", "password": "user4pw", "roles": ["ns:ns1:read"]},
]


@pytest.fixture
def users_config_path(tmp_path):
    path = tmp_path / "users.yaml"
    path.write_text(yaml.safe_dump({"users": USERS}))
    return str(path)


@pytest.fixture
def make_app(db_uri, artifact_root):
    apps = []

    def _make_app(**kwargs):
        oidc_client = kwargs.pop("oidc_client", None)
        config = ServerConfig(
            database_uri=db_uri,
            default_artifact_root=artifact_root,
            cache_resync_interval=60,
            **kwargs,
        )
        app = create_app(config, oidc_client=oidc_client)
        apps.append(app)
        return app

    yield _make_app

    for app in apps:
        get_server_context(app).close()


@pytest.fixture
def user_app(make_app, users_config_path):
    app = make_app(auth_users_config=users_config_path)
    cache = get_server_context(app).namespace_cache
    for code in ("ns1", "ns2", "ns3"):
        cache.create_namespace(code, f"namespace {code}")
    return app


@pytest.fixture
def client(user_app):
    return user_app.test_client()
