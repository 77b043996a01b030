import pytest
import yaml

from mltrack.entities.permission import EDIT, READ
from mltrack.exceptions import MissingConfigException, MltrackException
from mltrack.store.role.users_config import (
    UserConfig,
    parse_users_config,
    read_users_config,
    roles_from_users_config,
)


def _write_config(path, config):
    path.write_text(yaml.safe_dump(config))
    return str(path)


def test_read_users_config(tmp_path):
    path = _write_config(
        tmp_path / "users.yaml",
        {
            "users": [
                {"name": "user1", "password": "pw1", "roles": ["ns:ns1", "ns:ns2"]},
                {"name": "user2", "password": "pw2", "roles": ["ns:ns2:read"]},
                {"name": "user3", "password": "pw3"},
            ]
        },
    )

    users = read_users_config(path)

    assert users == [
        UserConfig("user1", "pw1", ("ns:ns1", "ns:ns2")),
        UserConfig("user2", "pw2", ("ns:ns2:read",)),
        UserConfig("user3", "pw3", ()),
    ]


def test_read_missing_users_config(tmp_path):
    with pytest.raises(MissingConfigException, match="does not exist"):
        read_users_config(str(tmp_path / "missing.yaml"))


def test_read_invalid_yaml(tmp_path):
    path = tmp_path / "users.yaml"
    path.write_text("users: [unclosed")

    with pytest.raises(MltrackException, match="is not valid YAML"):
        read_users_config(str(path))


@pytest.mark.parametrize(
    ("config", "match"),
    [
        (None, "must contain a 'users' list"),
        ({"users": "user1"}, "must contain a 'users' list"),
        ({"users": [{"password": "pw"}]}, "'name' and 'password' are required"),
        ({"users": [{"name": "user1"}]}, "'name' and 'password' are required"),
        ({"users": ["user1"]}, "'name' and 'password' are required"),
        (
            {"users": [{"name": "u", "password": "a"}, {"name": "u", "password": "b"}]},
            "Duplicate user 'u'",
        ),
        ({"users": [{"name": "u", "password": "a", "roles": ["owner"]}]}, "Invalid role 'owner'"),
    ],
)
def test_parse_invalid_users_config(config, match):
    with pytest.raises(MltrackException, match=match):
        parse_users_config(config)


def test_numeric_passwords_are_read_as_strings():
    users = parse_users_config({"users": [{"name": "user1", "password": 1234}]})
    assert users[0].password == "1234"


def test_roles_from_users_config():
    users = [
        UserConfig("user1", "pw", ("ns:ns1", "ns:ns2")),
        UserConfig("user2", "pw", ("ns:ns2", "ns:ns3:read")),
        UserConfig("user3", "pw", ("admin",)),
    ]

    roles = {role.name: role for role in roles_from_users_config(users)}

    assert list(roles) == ["ns:ns1", "ns:ns2", "ns:ns3:read", "admin"]
    assert roles["ns:ns1"].users == ("user1",)
    assert roles["ns:ns2"].users == ("user1", "user2")
    assert roles["ns:ns2"].permission == EDIT
    assert roles["ns:ns3:read"].namespace_codes == ("ns3",)
    assert roles["ns:ns3:read"].permission == READ
    assert roles["admin"].is_admin
