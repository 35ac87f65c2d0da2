# fuzzrun/core/parser.py
from typing import Any, Dict, Optional


class RequestParser:
    def __init__(self, raw_request: str, target: Optional[str] = None, scheme: str = "https"):
        """
        Args:
            raw_request: A raw HTTP request as captured by a proxy.
            target: Scheme and authority to send the request to. When omitted,
                the Host header of the request is used with `scheme`.
            scheme: Scheme used when no target is given.
        """
        self.raw = raw_request
        self.target = target.rstrip('/') if target else None
        self.scheme = scheme

    def parse(self) -> Dict[str, Any]:
        """
        Parses a raw HTTP request string into request template fields.

        Keywords in the request are left untouched, so a captured request with
        FUZZ markers becomes a fuzzing template as-is.

        Returns:
            Dict with 'method', 'url', 'headers' and 'data' keys.

        Raises:
            ValueError: If the request line is malformed or no target can be
                determined.
        """
        # Normalize line endings to \n for consistent processing
        normalized_request = self.raw.replace('\r\n', '\n').replace('\r', '\n')

        head, sep, body = normalized_request.lstrip('\n').partition('\n\n')
        request_lines = head.split('\n')

        first_line_parts = request_lines[0].split()
        if len(first_line_parts) < 2:
            raise ValueError(f"Invalid HTTP request line: {request_lines[0]}")

        method = first_line_parts[0]
        path = first_line_parts[1]

        headers = {}
        host = None
        for line in request_lines[1:]:
            if ':' not in line:
                continue
            key, value = line.split(':', 1)
            key, value = key.strip(), value.strip()
            if key.lower() == 'host':
                host = value
                continue
            # The body is re-measured when the request is built
            if key.lower() == 'content-length':
                continue
            headers[key] = value

        if path.startswith(('http://', 'https://')):
            # absolute-form target, as sent to a forward proxy
            url = path
        elif self.target:
            url = self.target + path
        elif host:
            url = f"{self.scheme}://{host}{path}"
        else:
            raise ValueError("No target given and the request has no Host header")

        # drop the newline editors add at the end of the file
        if body.endswith('\n'):
            body = body[:-1]

        return {
            "method": method,
            "url": url,
            "headers": headers,
            "data": body if sep else "",
        }
