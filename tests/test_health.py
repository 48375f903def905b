"""
Tests for the health and metrics server
"""

# Third Party
from werkzeug.test import Client
import pytest
import urllib3

# Local
from example_operator.health import HealthServer, create_app

## Helpers #####################################################################


def make_client(alive=True, ready=True):
    return Client(create_app(lambda: alive, lambda: ready))


def raises():
    raise RuntimeError("Yikes")


## Tests #######################################################################


@pytest.mark.parametrize(
    ["path", "alive", "ready", "expected"],
    [
        ("/healthz", True, False, 200),
        ("/healthz", False, True, 503),
        ("/readyz", False, True, 200),
        ("/readyz", True, False, 503),
    ],
)
def test_health_status_codes(path, alive, ready, expected):
    response = make_client(alive, ready).get(path)
    assert response.status_code == expected


def test_health_check_raises():
    """A check that raises reports unavailable rather than erroring"""
    client = Client(create_app(raises, raises))
    assert client.get("/healthz").status_code == 503
    assert client.get("/readyz").status_code == 503


def test_metrics_served():
    response = make_client().get("/metrics")
    assert response.status_code == 200
    body = response.get_data(as_text=True)
    assert "example_operator_work_queue_depth" in body
    assert "example_operator_reconcile_total" in body


def test_unknown_path():
    assert make_client().get("/nope").status_code == 404


@pytest.mark.timeout(10)
def test_health_server_start_stop():
    """The server binds a port, answers health checks and releases the port on stop"""
    server = HealthServer(lambda: True, lambda: False, port=0, host="127.0.0.1")
    assert server.server_port is None
    server.start()
    try:
        port = server.server_port
        assert port
        http = urllib3.PoolManager()
        assert http.request("GET", f"http://127.0.0.1:{port}/healthz").status == 200
        assert http.request("GET", f"http://127.0.0.1:{port}/readyz").status == 503
        http.clear()
    finally:
        server.stop()
    assert server.server_port is None

    # Stopping twice is fine
    server.stop()
