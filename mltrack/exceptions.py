import json

from mltrack.error_codes import (
    ERROR_CODE_TO_HTTP_STATUS,
    INTERNAL_ERROR,
    INVALID_PARAMETER_VALUE,
    RESOURCE_DOES_NOT_EXIST,
    UNAUTHENTICATED,
)


class MltrackException(Exception):
    """
    Generic exception thrown to surface failure information about external-facing operations.
    The error message associated with this exception may be exposed to clients in HTTP responses
    for debugging purposes. If the error text is sensitive, raise a generic `Exception` object
    instead.
    """

    def __init__(self, message, error_code=INTERNAL_ERROR, **kwargs):
        """
        Args:
            message: The message or exception describing the error that occurred. This will be
                included in the exception's serialized JSON representation.
            error_code: An appropriate error code for the error that occurred; it will be
                included in the exception's serialized JSON representation. This should
                be one of the codes listed in `mltrack.error_codes`.
            kwargs: Additional key-value pairs to include in the serialized JSON representation
                of the MltrackException.
        """
        self.error_code = error_code if error_code in ERROR_CODE_TO_HTTP_STATUS else INTERNAL_ERROR
        message = str(message)
        self.message = message
        self.json_kwargs = kwargs
        super().__init__(message)

    def serialize_as_json(self):
        exception_dict = {"error_code": self.error_code, "message": self.message}
        exception_dict.update(self.json_kwargs)
        return json.dumps(exception_dict)

    def get_http_status_code(self):
        return ERROR_CODE_TO_HTTP_STATUS.get(self.error_code, 500)

    @classmethod
    def invalid_parameter_value(cls, message, **kwargs):
        """Constructs an `MltrackException` object with the `INVALID_PARAMETER_VALUE` error code.

        Args:
            message: The message describing the error that occurred. This will be included in the
                exception's serialized JSON representation.
            kwargs: Additional key-value pairs to include in the serialized JSON representation
                of the MltrackException.
        """
        return cls(message, error_code=INVALID_PARAMETER_VALUE, **kwargs)

    @classmethod
    def resource_does_not_exist(cls, message, **kwargs):
        return cls(message, error_code=RESOURCE_DOES_NOT_EXIST, **kwargs)


class AuthenticationException(MltrackException):
    """Exception thrown when the caller's credentials or token cannot be verified"""

    def __init__(self, message="You are not authenticated.", challenge=None):
        super().__init__(message, error_code=UNAUTHENTICATED)
        self.challenge = challenge


class MltrackStartupException(MltrackException):
    """
    Exception thrown when the server cannot reach a consistent initial state, e.g. the initial
    namespace cache load or the change notification subscription failed. The server must not
    start serving traffic after this exception.
    """

    def __init__(self, message):
        super().__init__(message, error_code=INTERNAL_ERROR)


class MissingConfigException(MltrackException):
    """Exception thrown when expected configuration file/directory not found"""
