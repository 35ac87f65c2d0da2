"""
Shared fixtures: a threaded HTTP server on 127.0.0.1 that records what it
receives, and an environment without proxy variables.
"""

import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

PROXY_ENV_VARS = (
    "HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "NO_PROXY",
    "http_proxy", "https_proxy", "all_proxy", "no_proxy",
)


@pytest.fixture(autouse=True)
def no_env_proxy(monkeypatch):
    for name in PROXY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class RecordingHandler(BaseHTTPRequestHandler):
    """Answers every method; the path picks the behavior."""

    def __getattr__(self, name):
        """Handle any HTTP method dynamically"""
        if name.startswith('do_'):
            return self.handle_request
        raise AttributeError(f"'{self.__class__.__name__}' object has no attribute '{name}'")

    def log_message(self, format, *args):
        pass

    def handle_request(self):
        content_length = int(self.headers.get('Content-Length', 0))
        body = self.rfile.read(content_length) if content_length > 0 else b""
        self.server.requests.append({
            "method": self.command,
            "path": self.path,
            "headers": self.headers,
            "body": body,
        })

        route = self.path.split('?', 1)[0]
        if route == "/big":
            self.send_response(200)
            self.send_header("Content-Length", "10000000")
            self.end_headers()
        elif route == "/redirect":
            payload = b"moved"
            self.send_response(302)
            self.send_header("Location", "/landing")
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)
        elif route == "/echo":
            self._reply(200, body)
        elif route == "/slow":
            time.sleep(0.2)
            self._reply(200, b"late")
        elif route == "/hang":
            time.sleep(2)
            self._reply(200, b"too late")
        elif route == "/trickle":
            # head and a first slice, then a stall before the rest
            self.send_response(200)
            self.send_header("Content-Length", "100")
            self.end_headers()
            self.wfile.write(b"y" * 10)
            time.sleep(2)
            self.wfile.write(b"y" * 90)
        elif route == "/stream":
            # no Content-Length, the body ends when the connection closes
            self.send_response(200)
            self.end_headers()
            for _ in range(64):
                self.wfile.write(b"x" * 1024)
        else:
            self._reply(200, b"hello world\nsecond line\n")

    def _reply(self, status, payload):
        self.send_response(status)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)


@pytest.fixture
def http_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), RecordingHandler)
    server.daemon_threads = True
    server.requests = []
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    server.base_url = f"http://127.0.0.1:{server.server_address[1]}"
    yield server
    server.shutdown()
    server.server_close()
