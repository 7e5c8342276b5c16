"""Gunicorn configuration for the Crowd connector API.

Each worker owns one connector session; requests inside a worker are
serialized by the connector lock, so workers run a single thread.

Secret loading (post_fork hook):
1. /run/secrets/crowd_application_password (Docker secrets)
2. CROWD_APPLICATION_PASSWORD environment variable
"""
import os
from pathlib import Path

wsgi_app = "crowd_connector.wsgi:app"
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:5000")
workers = int(os.environ.get("GUNICORN_WORKERS", "2"))
threads = 1
# Matches the default Crowd socket timeout (600000 ms)
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "600"))


def post_fork(server, worker):
    """
    Called just after a worker has been forked.

    Reports where the Crowd application password will come from; the settings
    loader reads it when the worker builds its connector session.
    """
    secret_file = Path("/run/secrets") / "crowd_application_password"
    if secret_file.exists() and secret_file.is_file():
        worker.log.info("Found crowd_application_password in /run/secrets")
        return

    if os.environ.get("CROWD_APPLICATION_PASSWORD"):
        worker.log.info("Using CROWD_APPLICATION_PASSWORD from environment")
        return

    worker.log.error(
        "Crowd application password missing: mount /run/secrets/crowd_application_password "
        "or set CROWD_APPLICATION_PASSWORD"
    )
