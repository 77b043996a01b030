"""
FastAPI application wrapper for the mltrack server.

This module provides a FastAPI application that wraps the Flask application using
WSGIMiddleware, so that the server can be run by uvicorn. Authorization stays in the Flask
middleware.
"""

from fastapi import FastAPI
from fastapi.middleware.wsgi import WSGIMiddleware
from flask import Flask

from mltrack.version import VERSION


def create_fastapi_app(flask_app: Flask = None):
    """
    Create a FastAPI application that wraps the Flask app.

    Args:
        flask_app: The Flask app to serve, created with
            :py:func:`mltrack.server.create_app` when omitted.

    Returns:
        FastAPI application instance with the Flask app mounted via WSGIMiddleware.
    """
    if flask_app is None:
        from mltrack.server import create_app

        flask_app = create_app()

    fastapi_app = FastAPI(
        title="mltrack Tracking Server",
        description="mltrack Tracking Server API",
        version=VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    fastapi_app.state.flask_app = flask_app
    fastapi_app.mount("/", WSGIMiddleware(flask_app))
    return fastapi_app
