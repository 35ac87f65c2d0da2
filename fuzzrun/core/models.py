# fuzzrun/core/models.py
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import urljoin

import httpx


@dataclass
class Request:
    """
    A fully materialized request, produced by Runner.prepare().

    Attributes:
        method: HTTP method after keyword substitution.
        url: Request URL after keyword and host/port substitution.
        headers: Header mapping with canonical MIME names.
        data: Request body.
        opaque: Raw request-line target sent verbatim when non-empty.
        host: Effective Host, filled in by Runner.execute().
        input: The keyword -> value map this request was built from.
        raw: Serialized outgoing request, only when raw capture is enabled.
    """

    method: str = "GET"
    url: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    data: bytes = b""
    opaque: str = ""
    host: str = ""
    input: Dict[str, bytes] = field(default_factory=dict)
    raw: bytes = b""


@dataclass
class Response:
    """
    The outcome of one round trip, shaped for the filter pipeline.

    content_length is the number of body bytes read, or the advertised
    Content-Length when the body was skipped. time is the delay in seconds
    between the request being fully written and the first response byte.
    It is filled in for cancelled responses too, so a skipped body still
    reports its time to first byte rather than 0.
    """

    status_code: int
    headers: httpx.Headers
    request: Request
    data: bytes = b""
    content_length: int = 0
    content_words: int = 0
    content_lines: int = 0
    time: float = 0.0
    cancelled: bool = False
    raw: bytes = b""

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "")

    def redirect_location(self, absolute: bool = False) -> Optional[str]:
        """
        Returns the Location header of a redirect.

        Args:
            absolute: Resolve a relative location against the request URL.

        Returns:
            The location, or None when the response carries no Location header.
        """
        location = self.headers.get("Location")
        if location is None:
            return None
        if absolute:
            return urljoin(self.request.url, location)
        return location
