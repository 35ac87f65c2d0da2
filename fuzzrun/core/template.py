# fuzzrun/core/template.py
"""
Template instantiation helpers used by Runner.prepare().

Keyword replacement is plain substring replacement; the three reserved
placeholders are resolved from the URL once user keywords are in place.
"""

import re
from dataclasses import dataclass
from typing import Dict, Union
from urllib.parse import urlsplit

from fuzzrun.core.errors import TemplateParseError
from fuzzrun.core.headers import canonicalize_headers

HOST_KEYWORD = "{HOST}"
HOSTPORT_KEYWORD = "{HOSTPORT}"  # something.com:port
PORT_KEYWORD = "{PORT}"

RESERVED_KEYWORDS = (HOST_KEYWORD, HOSTPORT_KEYWORD, PORT_KEYWORD)

_PORT_RE = re.compile(r"[0-9]*")
_SURROGATE_RE = re.compile("[\udc80-\udcff]")


@dataclass(frozen=True)
class Authority:
    host: str
    port: str
    hostport: str


class _Unresolved:
    """Marker for a URL whose host and port could not be derived."""

    def __bool__(self):
        return False

    def __repr__(self):
        return "UNRESOLVED"


UNRESOLVED = _Unresolved()


def as_bytes(value: Union[bytes, str]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def as_text(value: bytes) -> str:
    # Undecodable bytes survive the round trip back to the wire.
    return value.decode("utf-8", errors="surrogateescape")


def escape_url_bytes(url: str) -> str:
    """
    Percent-encodes the undecodable payload bytes carried in a prepared URL.

    Bytes that are not valid UTF-8 come out of substitution as lone
    surrogates (see as_text). They are written as %XX escapes so the URL can
    be sent; everything else is left for the HTTP client to quote.
    """
    return _SURROGATE_RE.sub(lambda m: "%%%02X" % (ord(m.group()) - 0xDC00), url)


def substitute_keywords(fields: Dict[str, Union[str, bytes]], headers: Dict[str, str],
                        input: Dict[str, bytes]):
    """
    Replaces every input keyword in the request fields and headers.

    Text fields get the value decoded as UTF-8, byte fields get it verbatim.
    Header names and values are replaced independently; names are
    canonicalized once every keyword has been applied, so a name that
    collapses onto an earlier one overwrites it.

    Args:
        fields: Mapping of field name to str or bytes template.
        headers: Header template mapping.
        input: Keyword -> value mapping.

    Returns:
        A (fields, headers) tuple with substitutions applied.
    """
    fields = dict(fields)
    header_items = list(headers.items())

    for keyword, value in input.items():
        if not keyword:
            continue
        raw_value = as_bytes(value)
        text_value = as_text(raw_value)
        raw_keyword = keyword.encode("utf-8")

        for name, template in fields.items():
            if isinstance(template, bytes):
                fields[name] = template.replace(raw_keyword, raw_value)
            else:
                fields[name] = template.replace(keyword, text_value)

        header_items = [
            (h.replace(keyword, text_value), v.replace(keyword, text_value))
            for h, v in header_items
        ]

    return fields, canonicalize_headers(header_items)


def clean(text: str) -> str:
    """Drops control and other non-printable characters, keeping spaces."""
    return "".join(c for c in text if c.isprintable())


def _split_url(url: str):
    """
    Parses a URL the way a strict URL parser would, raising TemplateParseError.
    """
    if url.startswith(":"):
        raise TemplateParseError(f"missing protocol scheme: {url!r}")
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise TemplateParseError(f"invalid URL {url!r}: {e}") from e

    # userinfo is not part of the authority used for {HOSTPORT}
    hostport = parts.netloc.rpartition("@")[2]

    if hostport.startswith("["):
        end = hostport.find("]")
        if end == -1:
            raise TemplateParseError(f"missing ']' in host: {hostport!r}")
        port = hostport[end + 1:]
        if port and (not port.startswith(":") or not _PORT_RE.fullmatch(port[1:])):
            raise TemplateParseError(f"invalid port {port!r} after host")
    elif ":" in hostport:
        port = hostport.rpartition(":")[2]
        if not _PORT_RE.fullmatch(port):
            raise TemplateParseError(f"invalid port {port!r} after host")
    if "%" in hostport and not _valid_escapes(hostport):
        raise TemplateParseError(f"invalid URL escape in host: {hostport!r}")

    return parts, hostport


def _valid_escapes(text: str) -> bool:
    return re.fullmatch(r"(?:[^%]|%[0-9A-Fa-f]{2})*", text) is not None


def parse_authority(url: str) -> Union[Authority, _Unresolved]:
    """
    Derives host and port from a post-substitution URL.

    Reserved placeholders are stripped from a working copy first so they do
    not confuse the parser. A URL that cannot be parsed yields UNRESOLVED
    instead of raising: malformed URLs are normal fuzzing input.

    When the authority carries a port it is split off, otherwise the port
    is implied by the scheme: 443 for URLs starting with "https", 80 for
    anything else.

    Args:
        url: The request URL after user keyword substitution.

    Returns:
        An Authority, or UNRESOLVED.
    """
    working = url
    for keyword in RESERVED_KEYWORDS:
        working = working.replace(keyword, "")

    try:
        _, hostport = _split_url(clean(working))
    except TemplateParseError:
        return UNRESOLVED

    if hostport.startswith("[") and "]:" in hostport:
        # bracketed IPv6 literal with an explicit port
        host, _, port = hostport.rpartition(":")
    elif not hostport.startswith("[") and ":" in hostport:
        host, port = hostport.split(":")[:2]
    else:
        host = hostport
        port = "443" if url.startswith("https") else "80"

    return Authority(host=host, port=port, hostport=hostport)


def substitute_reserved(fields: Dict[str, Union[str, bytes]], authority: Authority) -> Dict[str, Union[str, bytes]]:
    """Replaces {HOST}, {HOSTPORT} and {PORT} in the given fields."""
    replacements = (
        (HOST_KEYWORD, authority.host),
        (HOSTPORT_KEYWORD, authority.hostport),
        (PORT_KEYWORD, authority.port),
    )
    fields = dict(fields)
    for keyword, value in replacements:
        for name, template in fields.items():
            if isinstance(template, bytes):
                fields[name] = template.replace(keyword.encode(), as_bytes(value))
            else:
                fields[name] = template.replace(keyword, value)
    return fields
