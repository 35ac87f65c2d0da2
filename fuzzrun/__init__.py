"""
fuzzrun - the HTTP request runner of a web-content fuzzer.

Turns a request template plus a map of keyword substitutions into a concrete
HTTP request, sends it, and hands back a response shaped for scoring.
"""

__version__ = "1.0.0"


def version() -> str:
    """Returns the version string appended to the default User-Agent."""
    return __version__
