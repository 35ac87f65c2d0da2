# fuzzrun/core/errors.py
"""Exceptions raised by the request runner."""


class RunnerError(Exception):
    """Base class for every error the runner raises."""


class TemplateParseError(RunnerError):
    """The templated URL could not be parsed. Never escapes Runner.prepare()."""


class RequestBuildError(RunnerError, ValueError):
    """The method or URL was rejected while building the transport request."""


class TransportError(RunnerError):
    """Dial, TLS, write or read failure before the response was available."""


class RequestTimeout(TransportError):
    """The overall request deadline passed."""


class RequestCancelled(TransportError):
    """The shared cancellation context was cancelled mid-request."""
