"""
HTTP server exposing Celery worker metrics to Prometheus.

The API serves /metrics itself; workers have no HTTP stack, so they
run prometheus_client's built-in server in a daemon thread.
"""
import logging
from prometheus_client import start_http_server

logger = logging.getLogger(__name__)

_started_port = None


def start_metrics_server(port: int = 9090, addr: str = "0.0.0.0"):
    """
    Start the Prometheus metrics server once per process.

    Args:
        port: Port to listen on (default: 9090)
        addr: Bind address

    Returns:
        The port the server listens on
    """
    global _started_port
    if _started_port is not None:
        return _started_port

    start_http_server(port, addr=addr)
    _started_port = port
    logger.info(f"Metrics server started on port {port}")
    return port
