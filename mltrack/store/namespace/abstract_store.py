import re
from abc import ABCMeta, abstractmethod

from mltrack.error_codes import INVALID_PARAMETER_VALUE
from mltrack.exceptions import MltrackException

_NAMESPACE_CODE_REGEX = re.compile(r"^[a-zA-Z0-9_-]{2,12}$")


class NamespaceCodeValidator:
    @staticmethod
    def is_valid(code) -> bool:
        return isinstance(code, str) and bool(_NAMESPACE_CODE_REGEX.match(code))

    @classmethod
    def validate(cls, code):
        if not cls.is_valid(code):
            raise MltrackException("The namespace code is invalid.", INVALID_PARAMETER_VALUE)


class AbstractNamespaceStore(metaclass=ABCMeta):
    """
    Abstract class for namespace backends.
    This class defines the API interface for front ends to connect with various types of backends.
    """

    @abstractmethod
    def list_namespaces(self):
        """
        Returns:
            A list of active :py:class:`mltrack.entities.Namespace` objects ordered by ID.
        """

    @abstractmethod
    def get_namespace_by_code(self, code):
        """
        Returns:
            The active :py:class:`mltrack.entities.Namespace` with ``code``, or None.
        """

    @abstractmethod
    def get_namespace_by_id(self, namespace_id):
        """
        Returns:
            The active :py:class:`mltrack.entities.Namespace` with ``namespace_id``, or None.
        """

    @abstractmethod
    def create_namespace(self, code, description=""):
        """
        Create a namespace together with its ``Default`` experiment.

        Args:
            code: Unique namespace code matching ``^[a-zA-Z0-9_-]{2,12}$``.
            description: Free-form description.

        Returns:
            The created :py:class:`mltrack.entities.Namespace`.
        """

    @abstractmethod
    def update_namespace(self, namespace_id, code, description):
        """
        Update code and description of an active namespace. The store is left unchanged when the
        new code is invalid or already in use.

        Returns:
            The updated :py:class:`mltrack.entities.Namespace`.
        """

    @abstractmethod
    def delete_namespace(self, namespace_id):
        """
        Marks a namespace as deleted. The ``default`` namespace cannot be deleted.
        """

    @abstractmethod
    def create_default_namespace(self):
        """
        Creates the ``default`` namespace when it does not exist yet.

        Returns:
            The ``default`` :py:class:`mltrack.entities.Namespace`.
        """
