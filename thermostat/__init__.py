from __future__ import annotations

import atexit
import contextlib
import logging
import signal
import threading
from typing import Any

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from thermostat.blueprints.api import mqtt_api, thermostat_api
from thermostat.config import load_config, setup_logging

__version__ = "1.0.0"


def create_app(
    config_overrides: dict[str, Any] | None = None,
    *,
    container=None,
    bootstrap_runtime: bool = False,
) -> Flask:
    """
    Build the Flask application.

    Args:
        config_overrides: AppConfig attributes to override (keys are lower-cased)
        container: Pre-built ServiceContainer (tests); built from config otherwise
        bootstrap_runtime: Start the bridge/autostart and install shutdown handlers
    """
    if container is not None:
        config = container.config
    else:
        config = load_config()
        if config_overrides:
            for key, value in config_overrides.items():
                setattr(config, key.lower(), value)

    # Configure logging early so hardware detection and the MQTT connect are visible
    setup_logging(debug=config.DEBUG, level=config.log_level, log_dir=config.log_dir)

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())

    if container is None:
        from thermostat.services.container import ServiceContainer

        container = ServiceContainer.build(config, start_services=bootstrap_runtime)
    flask_app.config["CONTAINER"] = container

    if bootstrap_runtime:
        _install_shutdown_handlers(container)

    # Global JSON error handler: domain exceptions carry their own ``http_status``
    @flask_app.errorhandler(Exception)
    def _handle_unhandled(exc):
        if not request.path.startswith("/api/"):
            raise exc
        from thermostat.domain.exceptions import ThermostatError
        from thermostat.utils.http import error_response, safe_error

        if isinstance(exc, HTTPException):
            status = int(exc.code or 500)
            if status >= 500:
                return safe_error(exc, status, context="http-exception")
            return error_response(exc.description or "Request failed", status)

        if isinstance(exc, ThermostatError):
            status = exc.http_status
            if status >= 500:
                return safe_error(exc, status, context=type(exc).__name__)
            return error_response(str(exc) or "Request failed", status)

        return safe_error(exc, 500, context="unhandled")

    flask_app.register_blueprint(thermostat_api)
    flask_app.register_blueprint(mqtt_api)

    logging.info("Thermostat API ready (environment=%s)", config.environment)
    return flask_app


def _install_shutdown_handlers(container) -> None:
    """Make sure the relay ends up off however the process exits."""
    _shutdown_lock = threading.Lock()
    _shutdown_done = False

    def _graceful_shutdown(reason: str = "unknown") -> None:
        nonlocal _shutdown_done
        with _shutdown_lock:
            if _shutdown_done:
                return
            _shutdown_done = True
        logging.info("Graceful shutdown initiated (%s)", reason)
        try:
            container.shutdown()
        except Exception as exc:
            logging.warning("Error during graceful shutdown: %s", exc)

    def _signal_handler(signum: int, _frame: object) -> None:
        sig_name = signal.Signals(signum).name
        logging.info("Received %s, shutting down", sig_name)
        _graceful_shutdown(sig_name)
        raise SystemExit(0)

    atexit.register(_graceful_shutdown, "atexit")

    # SIGINT=Ctrl-C, SIGTERM=systemd stop
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(OSError, ValueError):
            signal.signal(sig, _signal_handler)
