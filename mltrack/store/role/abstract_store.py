from abc import ABCMeta, abstractmethod


class AbstractRoleStore(metaclass=ABCMeta):
    """
    Abstract class for role backends.
    This class defines the API interface for front ends to connect with various types of backends.
    """

    @abstractmethod
    def list_roles(self):
        """
        Returns:
            A list of every :py:class:`mltrack.entities.Role` ordered by name.
        """

    @abstractmethod
    def get_roles_by_user(self, user):
        """
        Returns:
            A list of the :py:class:`mltrack.entities.Role` objects bound to ``user``.
        """

    @abstractmethod
    def create_role(
        self, name, namespace_codes=(), users=(), is_admin=False, permission="EDIT"
    ):
        """
        Create a role granting ``permission`` on ``namespace_codes`` (or on every namespace when
        ``is_admin`` is set) to ``users``.

        Returns:
            The created :py:class:`mltrack.entities.Role`.
        """

    @abstractmethod
    def add_users_to_role(self, name, users):
        """
        Binds additional users to an existing role without recreating it.

        Returns:
            The updated :py:class:`mltrack.entities.Role`.
        """

    @abstractmethod
    def delete_role(self, name):
        """
        Revokes a role together with all of its namespace and user bindings.
        """

    @abstractmethod
    def load_static_config(self, users_config):
        """
        Replaces every role with those declared by a users configuration (see
        :py:func:`mltrack.store.role.users_config.read_users_config`).
        """
