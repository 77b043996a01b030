"""
Reading of the YAML users configuration file::

    users:
      - name: user1
        password: user1password
        roles: ["ns:namespace1", "ns:namespace2:read"]
      - name: admin
        password: "scrypt:32768:8:1$..."
        roles: ["admin"]

Passwords are given either in clear text or as a werkzeug password hash.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import yaml

from mltrack.entities import Role
from mltrack.exceptions import MissingConfigException, MltrackException

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserConfig:
    name: str
    password: str
    roles: tuple[str, ...] = field(default=())


def parse_users_config(config) -> list[UserConfig]:
    if not isinstance(config, dict) or not isinstance(config.get("users"), list):
        raise MltrackException.invalid_parameter_value(
            "The users configuration must contain a 'users' list."
        )
    users = []
    seen = set()
    for entry in config["users"]:
        if not isinstance(entry, dict) or not entry.get("name") or entry.get("password") is None:
            raise MltrackException.invalid_parameter_value(
                f"Invalid user entry {entry!r}: 'name' and 'password' are required."
            )
        name = str(entry["name"])
        if name in seen:
            raise MltrackException.invalid_parameter_value(f"Duplicate user '{name}'.")
        seen.add(name)
        roles = tuple(str(role) for role in entry.get("roles") or ())
        for role in roles:
            # Fails on malformed role strings.
            Role.from_role_string(role)
        users.append(UserConfig(name=name, password=str(entry["password"]), roles=roles))
    return users


def read_users_config(path) -> list[UserConfig]:
    try:
        with open(path) as f:
            config = yaml.safe_load(f)
    except FileNotFoundError:
        raise MissingConfigException(f"Users configuration file '{path}' does not exist.")
    except yaml.YAMLError as e:
        raise MltrackException.invalid_parameter_value(
            f"Users configuration file '{path}' is not valid YAML: {e}"
        )
    users = parse_users_config(config)
    _logger.debug("Read %d users from %s", len(users), path)
    return users


def roles_from_users_config(users_config) -> list[Role]:
    """
    Builds one :py:class:`mltrack.entities.Role` per distinct role string, bound to the users
    listing it, in order of first appearance.
    """
    bindings: dict[str, list[str]] = {}
    for user in users_config:
        for role in user.roles:
            bindings.setdefault(role, [])
            if user.name not in bindings[role]:
                bindings[role].append(user.name)
    return [Role.from_role_string(name, users=tuple(users)) for name, users in bindings.items()]
