#!/usr/bin/env python3
"""
Exporter HTTP server

Threaded HTTP server exposing the landing page and the metrics endpoint.
Metrics are generated on every request so each scrape triggers a fresh probe.
"""

import gzip
import html
import logging
from http.server import HTTPServer, BaseHTTPRequestHandler
from socketserver import ThreadingMixIn
from typing import Type

from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.core import CollectorRegistry

from .config import parse_listen_address

logger = logging.getLogger(__name__)

LANDING_PAGE = """<html>
<head><title>Olric Exporter</title></head>
<body>
<h1>Olric Exporter</h1>
<p><a href="{path}">Metrics</a></p>
</body>
</html>"""


class ListenError(Exception):
    """Raised when the metrics listener cannot be bound"""


class ThreadedHTTPServer(ThreadingMixIn, HTTPServer):
    """HTTP Server with threading support for concurrent requests"""
    daemon_threads = True
    allow_reuse_address = True


def make_handler(registry: CollectorRegistry, telemetry_path: str = '/metrics') -> Type[BaseHTTPRequestHandler]:
    """Build a request handler class bound to a registry and metrics path"""
    landing_page = LANDING_PAGE.format(path=html.escape(telemetry_path, quote=True)).encode('utf-8')

    class MetricsHandler(BaseHTTPRequestHandler):

        def log_message(self, format, *args):
            logger.debug("%s - %s", self.address_string(), format % args)

        def do_GET(self):
            self._route()

        def do_HEAD(self):
            self._route()

        def _route(self):
            path = self.path.split('?', 1)[0]
            if path == telemetry_path:
                self._serve_metrics()
            elif path == '/':
                self._send(200, 'text/html; charset=utf-8', landing_page)
            else:
                try:
                    self.send_error(404, "Not Found")
                except (BrokenPipeError, ConnectionResetError):
                    pass

        def _serve_metrics(self):
            try:
                output = generate_latest(registry)
            except Exception as e:
                logger.error(f"Error serving metrics: {e}", exc_info=True)
                try:
                    self.send_error(500, f"Internal Server Error: {e}")
                except (BrokenPipeError, ConnectionResetError):
                    pass
                return

            if 'gzip' in self.headers.get('Accept-Encoding', ''):
                self._send(200, CONTENT_TYPE_LATEST, gzip.compress(output, compresslevel=6), encoding='gzip')
            else:
                self._send(200, CONTENT_TYPE_LATEST, output)

        def _send(self, status: int, content_type: str, body: bytes, encoding: str = None):
            try:
                self.send_response(status)
                self.send_header('Content-Type', content_type)
                if encoding:
                    self.send_header('Content-Encoding', encoding)
                self.send_header('Content-Length', str(len(body)))
                self.end_headers()
                if self.command != 'HEAD':
                    self.wfile.write(body)
            except (BrokenPipeError, ConnectionResetError):
                # Client disconnected
                pass

    return MetricsHandler


def create_server(listen_address: str, registry: CollectorRegistry,
                  telemetry_path: str = '/metrics') -> ThreadedHTTPServer:
    """Bind the exporter HTTP server, raising ListenError if the socket is unavailable"""
    host, port = parse_listen_address(listen_address)
    try:
        return ThreadedHTTPServer((host, port), make_handler(registry, telemetry_path))
    except OSError as e:
        raise ListenError(f"cannot listen on {listen_address}: {e}") from e
