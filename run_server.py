"""Entry point for the relay thermostat service.

Builds the service container (hardware, control loop, MQTT bridge), serves
the HTTP API and guarantees the relay is switched off on exit.
"""

from __future__ import annotations

import logging
import sys

from thermostat import create_app


def main() -> int:
    if sys.platform == "win32":
        sys.stdout.reconfigure(encoding="utf-8")

    app = create_app(bootstrap_runtime=True)
    config = app.config["CONTAINER"].config

    logging.info("Server starting on http://%s:%s", config.http_host, config.http_port)
    try:
        app.run(host=config.http_host, port=config.http_port, debug=False, use_reloader=False)
    except KeyboardInterrupt:
        logging.info("Server stopped by user")
    finally:
        app.config["CONTAINER"].shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
