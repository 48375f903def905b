"""
HTTP server for the liveness and readiness checks and the prometheus metrics.
/healthz and /readyz answer with a status code only. /metrics serves the
prometheus text format.
"""

# Standard
from typing import Callable, Optional
import threading

# Third Party
from flask import Flask
from prometheus_client import make_wsgi_app
from werkzeug.middleware.dispatcher import DispatcherMiddleware
from werkzeug.serving import BaseWSGIServer, make_server

# First Party
import alog

# Local
from . import config

log = alog.use_channel("HLTH")

# Paths served by the app
HEALTHZ_PATH = "/healthz"
READYZ_PATH = "/readyz"
METRICS_PATH = "/metrics"


def create_app(
    liveness_check: Callable[[], bool],
    readiness_check: Callable[[], bool],
):
    """Build the combined WSGI app

    Args:
        liveness_check:  Callable[[], bool]
            Returns True while the operator can make progress
        readiness_check:  Callable[[], bool]
            Returns True while the operator is the leader and watching

    Returns:
        app:  DispatcherMiddleware
            The flask health app with the metrics app mounted at /metrics
    """
    app = Flask("example_operator")

    @app.route(HEALTHZ_PATH)
    def healthz():
        return _check_response(liveness_check, "liveness")

    @app.route(READYZ_PATH)
    def readyz():
        return _check_response(readiness_check, "readiness")

    return DispatcherMiddleware(app, {METRICS_PATH: make_wsgi_app()})


def _check_response(check: Callable[[], bool], name: str):
    try:
        healthy = check()
    except Exception as err:  # pylint: disable=broad-except
        log.warning("%s check raised: %s", name, err, exc_info=True)
        healthy = False
    if healthy:
        return "ok", 200
    log.debug2("%s check failed", name)
    return "unavailable", 503


class HealthServer:
    """Serve the health app from a daemon thread"""

    def __init__(
        self,
        liveness_check: Callable[[], bool],
        readiness_check: Callable[[], bool],
        port: Optional[int] = None,
        host: str = "",
    ):
        self.port = config.server.port if port is None else port
        self.host = host
        self.app = create_app(liveness_check, readiness_check)
        self._server: Optional[BaseWSGIServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def server_port(self) -> Optional[int]:
        """The bound port. Differs from port when port 0 was requested."""
        return self._server.server_port if self._server else None

    def start(self):
        """Bind the port and start serving"""
        if self._server is not None:
            return
        self._server = make_server(self.host, self.port, self.app, threaded=True)
        self._thread = threading.Thread(
            name="health_server", target=self._server.serve_forever, daemon=True
        )
        self._thread.start()
        log.info("Serving health and metrics on port %s", self.server_port)

    def stop(self):
        """Stop serving and release the port"""
        if self._server is None:
            return
        log.debug("Stopping health server")
        self._server.shutdown()
        self._server.server_close()
        self._thread.join()
        self._server = None
        self._thread = None
