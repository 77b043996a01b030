import logging
from functools import wraps

from flask import Response, current_app, g, jsonify, redirect, request

from mltrack.error_codes import INVALID_PARAMETER_VALUE, RESOURCE_DOES_NOT_EXIST
from mltrack.exceptions import MltrackException
from mltrack.server.auth.oidc import ACCESS_TOKEN_COOKIE
from mltrack.version import VERSION

_logger = logging.getLogger(__name__)

SERVER_CONTEXT_EXTENSION = "mltrack"
AIM_PROJECT_NAME = "mltrack"


def _get_server_context():
    return current_app.extensions[SERVER_CONTEXT_EXTENSION]


def catch_mltrack_exception(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except MltrackException as e:
            response = Response(mimetype="application/json")
            response.set_data(e.serialize_as_json())
            response.status_code = e.get_http_status_code()
            return response

    return wrapper


def _get_request_json():
    request_json = request.get_json(force=True, silent=True)
    if request_json is None:
        return {}
    if not isinstance(request_json, dict):
        raise MltrackException(
            "The request body must be a JSON object.", error_code=INVALID_PARAMETER_VALUE
        )
    return request_json


def _get_required_param(params, name):
    value = params.get(name)
    if value is None or value == "":
        raise MltrackException(
            f"Missing value for required parameter '{name}'.",
            error_code=INVALID_PARAMETER_VALUE,
        )
    return value


def _parse_experiment_id(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise MltrackException(
            f"Invalid experiment ID: '{value}'", error_code=INVALID_PARAMETER_VALUE
        )


def health():
    return "OK", 200


def version():
    return VERSION, 200


def set_access_token_cookie(access_token):
    response = redirect("/")
    response.set_cookie(
        ACCESS_TOKEN_COOKIE, access_token, httponly=True, samesite="Lax", secure=request.is_secure
    )
    return response


@catch_mltrack_exception
def _search_experiments():
    if request.method == "GET":
        include_deleted = request.args.get("view_type", "").upper() == "ALL"
    else:
        include_deleted = str(_get_request_json().get("view_type", "")).upper() == "ALL"
    experiments = _get_server_context().experiment_store.list_experiments(
        g.namespace.id, include_deleted=include_deleted
    )
    return jsonify({"experiments": [e.to_dict() for e in experiments]})


@catch_mltrack_exception
def _get_experiment():
    experiment_id = _parse_experiment_id(_get_required_param(request.args, "experiment_id"))
    experiment = _get_server_context().experiment_store.get_experiment(
        experiment_id, g.namespace.id
    )
    return jsonify({"experiment": experiment.to_dict()})


@catch_mltrack_exception
def _create_experiment():
    request_json = _get_request_json()
    name = _get_required_param(request_json, "name")
    experiment = _get_server_context().experiment_store.create_experiment(
        str(name), g.namespace.id, artifact_location=request_json.get("artifact_location")
    )
    return jsonify({"experiment_id": str(experiment.experiment_id)})


@catch_mltrack_exception
def _get_aim_project():
    namespace = g.namespace
    return jsonify(
        {
            "name": AIM_PROJECT_NAME,
            "path": namespace.code,
            "description": namespace.description,
            "telemetry_enabled": 0,
        }
    )


@catch_mltrack_exception
def _list_namespaces():
    namespaces = _get_server_context().namespace_cache.list_namespaces()
    return jsonify({"namespaces": [ns.to_dict() for ns in namespaces]})


@catch_mltrack_exception
def _create_namespace():
    request_json = _get_request_json()
    namespace = _get_server_context().namespace_cache.create_namespace(
        request_json.get("code"), request_json.get("description") or ""
    )
    _logger.info("Namespace %s created by %s", namespace.code, g.identity.username)
    return jsonify({"namespace": namespace.to_dict()})


def _get_namespace_or_raise(namespace_id):
    namespace = _get_server_context().namespace_cache.get_by_id(namespace_id)
    if namespace is None:
        raise MltrackException(
            f"namespace not found by id: {namespace_id}", error_code=RESOURCE_DOES_NOT_EXIST
        )
    return namespace


@catch_mltrack_exception
def _get_namespace(namespace_id):
    return jsonify({"namespace": _get_namespace_or_raise(namespace_id).to_dict()})


@catch_mltrack_exception
def _update_namespace(namespace_id):
    request_json = _get_request_json()
    current = _get_namespace_or_raise(namespace_id)
    namespace = _get_server_context().namespace_cache.update_namespace(
        namespace_id,
        request_json.get("code", current.code),
        request_json.get("description", current.description),
    )
    return jsonify({"namespace": namespace.to_dict()})


@catch_mltrack_exception
def _delete_namespace(namespace_id):
    _get_server_context().namespace_cache.delete_namespace(namespace_id)
    return jsonify({})


def _get_rest_path(base_path, version=2):
    return f"/api/{version}.0{base_path}"


def _get_ajax_path(base_path, version=2):
    return f"/ajax-api/{version}.0{base_path}"


def _get_paths(base_path, version=2):
    """
    A service endpoints base path is typically something like /mlflow/experiments.
    We should register paths like /api/2.0/mlflow/experiments and
    /ajax-api/2.0/mlflow/experiments in the Flask router.
    """
    return [_get_rest_path(base_path, version), _get_ajax_path(base_path, version)]


def get_endpoints():
    """
    Returns:
        List of tuples (path, handler, methods)
    """
    return (
        [("/health", health, ["GET"]), ("/version", version, ["GET"])]
        + [("/set-cookie/<access_token>", set_access_token_cookie, ["GET"])]
        + [
            (path, _search_experiments, ["GET", "POST"])
            for path in _get_paths("/mlflow/experiments/search")
        ]
        + [(path, _get_experiment, ["GET"]) for path in _get_paths("/mlflow/experiments/get")]
        + [
            (path, _create_experiment, ["POST"])
            for path in _get_paths("/mlflow/experiments/create")
        ]
        + [("/aim/api/projects", _get_aim_project, ["GET"])]
        + [
            ("/admin/namespaces/list", _list_namespaces, ["GET"]),
            ("/admin/namespaces", _create_namespace, ["POST"]),
            ("/admin/namespaces/<int:namespace_id>", _get_namespace, ["GET"]),
            ("/admin/namespaces/<int:namespace_id>", _update_namespace, ["PUT"]),
            ("/admin/namespaces/<int:namespace_id>", _delete_namespace, ["DELETE"]),
        ]
    )
