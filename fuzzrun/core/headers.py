# fuzzrun/core/headers.py
"""
MIME header name canonicalization.

Prepared requests must carry canonical names before anything touches the
wire, so this cannot be left to the HTTP client.
"""

# RFC 7230 token characters
_TOKEN_CHARS = frozenset(
    "!#$%&'*+-.^_`|~"
    "0123456789"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "abcdefghijklmnopqrstuvwxyz"
)


def canonical_header_key(name: str) -> str:
    """
    Returns the canonical format of a MIME header name.

    The first letter and every letter following a hyphen are upper case,
    the rest are lower case ("content-TYPE" -> "Content-Type"). Names that
    contain a space or any other non-token character are returned unchanged.

    Args:
        name: Header name as written in the template.

    Returns:
        The canonical header name.
    """
    if not name or any(c not in _TOKEN_CHARS for c in name):
        return name

    chars = []
    upper = True
    for c in name:
        if upper and 'a' <= c <= 'z':
            c = c.upper()
        elif not upper and 'A' <= c <= 'Z':
            c = c.lower()
        chars.append(c)
        upper = c == '-'
    return "".join(chars)


def canonicalize_headers(headers) -> dict:
    """
    Copies headers with every name canonicalized. Later duplicates win.

    Args:
        headers: A mapping or an iterable of (name, value) pairs.
    """
    if isinstance(headers, dict):
        headers = headers.items()
    return {canonical_header_key(k): v for k, v in headers}
