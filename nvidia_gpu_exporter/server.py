"""HTTP exposition of the metrics registry."""

from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
import logging
import threading
from typing import Optional, Type
from urllib.parse import urlsplit

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from .config.models import WebConfig


LANDING_PAGE = """<html lang="en">
<head><title>NVIDIA GPU Exporter</title></head>
<body>
<h1>NVIDIA GPU Exporter</h1>
<p><a href="{path}">Metrics</a></p>
</body>
</html>
"""


class MetricsHandler(BaseHTTPRequestHandler):
    """Serves the registry on the telemetry path and a landing page on /."""

    registry: CollectorRegistry
    telemetry_path = "/metrics"
    logger = logging.getLogger(__name__)

    def do_GET(self):
        path = urlsplit(self.path).path
        if path == self.telemetry_path:
            self._serve_metrics()
        elif path == "/":
            self._reply(200, "text/html; charset=utf-8",
                        LANDING_PAGE.format(path=self.telemetry_path).encode("utf-8"))
        else:
            self._reply(404, "text/plain; charset=utf-8", b"Not Found")

    def _serve_metrics(self):
        try:
            output = generate_latest(self.registry)
        except Exception as e:
            self.logger.error(f"Failed to render metrics: {e}", exc_info=True)
            self._reply(500, "text/plain; charset=utf-8", b"Internal Server Error")
            return
        self._reply(200, CONTENT_TYPE_LATEST, output)

    def _reply(self, status: int, content_type: str, body: bytes):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        self.logger.debug(format % args)


def make_handler(
    registry: CollectorRegistry,
    telemetry_path: str,
    logger: Optional[logging.Logger] = None
) -> Type[MetricsHandler]:
    """Create a handler class bound to a registry and path."""
    return type(
        "BoundMetricsHandler",
        (MetricsHandler,),
        {
            "registry": registry,
            "telemetry_path": telemetry_path,
            "logger": logger or logging.getLogger(__name__),
        }
    )


def start_server(
    web: WebConfig,
    registry: CollectorRegistry,
    logger: Optional[logging.Logger] = None
) -> ThreadingHTTPServer:
    """
    Start serving metrics in a background thread.

    Args:
        web: HTTP configuration
        registry: Registry to expose
        logger: Logger instance

    Returns:
        ThreadingHTTPServer: Running server; call shutdown() to stop it
    """
    host, port = web.host_port()
    server = ThreadingHTTPServer((host, port), make_handler(registry, web.telemetry_path, logger))
    server.daemon_threads = True

    thread = threading.Thread(target=server.serve_forever, name="metrics-http", daemon=True)
    thread.start()
    return server
