"""
Stable, machine-readable error codes surfaced in every error payload returned by the
mltrack server. The names mirror the error codes used by the MLflow REST API so that
MLflow clients can interpret them.
"""

INTERNAL_ERROR = "INTERNAL_ERROR"
INVALID_PARAMETER_VALUE = "INVALID_PARAMETER_VALUE"
RESOURCE_DOES_NOT_EXIST = "RESOURCE_DOES_NOT_EXIST"
RESOURCE_ALREADY_EXISTS = "RESOURCE_ALREADY_EXISTS"
PERMISSION_DENIED = "PERMISSION_DENIED"
UNAUTHENTICATED = "UNAUTHENTICATED"

ERROR_CODE_TO_HTTP_STATUS = {
    INTERNAL_ERROR: 500,
    RESOURCE_DOES_NOT_EXIST: 404,
    PERMISSION_DENIED: 403,
    UNAUTHENTICATED: 401,
    RESOURCE_ALREADY_EXISTS: 400,
    INVALID_PARAMETER_VALUE: 400,
}
