"""Error handlers for the application."""
from flask import jsonify
from werkzeug.exceptions import HTTPException

from crowd_connector.core.exceptions import ConnectorError


def register_error_handlers(app):
    """Register JSON error handlers with the Flask app."""

    @app.errorhandler(ConnectorError)
    def connector_error(error):
        """Surface connector failures with their own status."""
        if error.status >= 500:
            app.logger.error(f"Connector error: {error.message}")
        return jsonify(error.to_dict()), error.status

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Not Found", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "Method Not Allowed", "message": str(error.description)}), 405

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        # Pass through HTTP errors
        if isinstance(error, HTTPException):
            return jsonify({"error": error.name, "message": str(error.description)}), error.code

        # ALWAYS log the error - logs never contain secrets
        app.logger.error(f"Unhandled exception: {error}", exc_info=True)
        print(f"[ERROR UNHANDLED] {error}")

        return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500
