"""Flask application factory and bootstrap.

This module provides the create_app() factory function for exposing a
Crowd connector session over HTTP.
"""
from __future__ import annotations
import threading
from typing import Optional

from flask import Flask

from crowd_connector.connector import CrowdConnector


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(connector: Optional[CrowdConnector] = None) -> Flask:
    """Create and configure Flask application.

    Args:
        connector: Connector session to serve (built from the environment if omitted)

    Returns:
        Flask app with the connector, health and error handlers registered
    """
    if connector is None:
        connector = CrowdConnector()
    if not connector.initialized:
        connector.init()

    app = Flask(__name__)

    # One logical connector operation at a time
    app.config["CONNECTOR"] = connector
    app.config["CONNECTOR_LOCK"] = threading.Lock()
    app.config["APP_CONFIG"] = connector.config

    from crowd_connector.api import connector as connector_routes
    from crowd_connector.api import errors, health

    app.register_blueprint(health.bp)
    app.register_blueprint(connector_routes.bp)

    errors.register_error_handlers(app)

    print(f"[flask_app] Instance={connector.config.instance_name}")
    print("[flask_app] Connector API registered at /connector")

    return app
