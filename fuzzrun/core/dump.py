# fuzzrun/core/dump.py
"""Serialization of requests and responses back into HTTP/1.1 wire form."""

from typing import Iterable, Optional, Tuple

import httpx

CRLF = b"\r\n"


def _header_block(raw_headers: Iterable[Tuple[bytes, bytes]]) -> bytes:
    return b"".join(name + b": " + value + CRLF for name, value in raw_headers)


def dump_request(request: httpx.Request, target: Optional[bytes] = None) -> bytes:
    """
    Returns the bytes of an outgoing request as they are written on the wire.

    Args:
        request: A built httpx request. Its body must already be in memory.
        target: Request-line target overriding the URL path and query.
    """
    if target is None:
        target = request.url.raw_path
    request_line = request.method.encode("ascii") + b" " + target + b" HTTP/1.1" + CRLF
    return request_line + _header_block(request.headers.raw) + CRLF + request.content


def dump_response(response: httpx.Response, body: bytes) -> bytes:
    """
    Returns the status line, headers and body of a response.

    Args:
        response: The response whose head to serialize.
        body: The body as it was read, which may be truncated.
    """
    version = (response.http_version or "HTTP/1.1").encode("ascii")
    status_line = b"%s %d %s" % (version, response.status_code, response.reason_phrase.encode("latin-1"))
    return status_line + CRLF + _header_block(response.headers.raw) + CRLF + body
