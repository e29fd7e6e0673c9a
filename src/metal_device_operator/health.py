"""Metrics, liveness and readiness served from one WSGI server."""

import json
import threading
from typing import Any

from prometheus_client import make_wsgi_app
from werkzeug.serving import make_server
from werkzeug.wrappers import Response

# Set once the kopf startup handler has configured the operator
_ready = threading.Event()


def mark_ready() -> None:
    _ready.set()


def mark_not_ready() -> None:
    _ready.clear()


def _json_response(payload: dict[str, str], status: int = 200) -> Response:
    return Response(json.dumps(payload, separators=(",", ":")), mimetype="application/json", status=status)


def _healthz() -> Response:
    return _json_response({"status": "ok"})


def _readyz() -> Response:
    if _ready.is_set():
        return _json_response({"status": "ready"})
    return _json_response({"status": "starting"}, status=503)


_PROBES = {
    "/healthz": _healthz,
    "/readyz": _readyz,
}


def create_combined_wsgi_app() -> Any:
    """Create a WSGI app answering the probes and delegating everything else to Prometheus.

    Returns:
        Combined WSGI application
    """
    metrics_app = make_wsgi_app()

    def combined_app(environ: dict[str, Any], start_response: Any) -> list[bytes]:
        probe = _PROBES.get(environ.get("PATH_INFO", ""))
        if probe is None:
            return metrics_app(environ, start_response)
        return probe()(environ, start_response)

    return combined_app


def start_metrics_server(port: int) -> None:
    """Serve metrics and probes from a daemon thread.

    Args:
        port: Port to listen on
    """
    server = make_server("", port, create_combined_wsgi_app(), threaded=True)
    thread = threading.Thread(target=server.serve_forever, name="metrics-server", daemon=True)
    thread.start()
