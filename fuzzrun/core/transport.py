# fuzzrun/core/transport.py
"""
Construction of the long-lived HTTP client a Runner sends through.

Certificates are not verified and redirects are not followed unless the
config asks for it.
"""

import ssl
from typing import Optional, Union

import httpx

from fuzzrun import config
from fuzzrun.core.colors import colored_print, format_log_prefix
from fuzzrun.core.options import RunnerConfig

_PROXY_SCHEMES = ("http", "https", "socks5", "socks5h")


def resolve_proxy(runner_config: RunnerConfig, replay: bool = False, debug: bool = False) -> Optional[str]:
    """
    Picks the proxy for a runner role.

    Replay runners use replay_proxy_url, primary runners proxy_url. An empty
    or unparseable value returns None, which leaves the client on the
    proxy settings from the environment.

    Args:
        runner_config: The runner configuration.
        replay: Whether the runner is built in replay mode.
        debug: Flag for debug output.

    Returns:
        The proxy URL to route through, or None.
    """
    custom_proxy = runner_config.replay_proxy_url if replay else runner_config.proxy_url
    if not custom_proxy:
        return None

    try:
        proxy = httpx.URL(custom_proxy)
    except (httpx.InvalidURL, TypeError) as e:
        if debug:
            colored_print(format_log_prefix("DEBUG", f"Ignoring proxy {custom_proxy!r}: {e}"), "debug")
        return None

    if proxy.scheme not in _PROXY_SCHEMES or not proxy.host:
        if debug:
            colored_print(format_log_prefix("DEBUG", f"Ignoring proxy {custom_proxy!r}: not an absolute proxy URL"), "debug")
        return None

    return custom_proxy


def build_ssl_context() -> ssl.SSLContext:
    """
    TLS context with certificate verification turned off.

    The server name override is not set here; it travels with each request
    as the sni_hostname extension.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    # Talk to servers that lack RFC 5746 secure renegotiation
    context.options |= getattr(ssl, "OP_LEGACY_SERVER_CONNECT", 0)
    return context


def build_timeout(runner_config: RunnerConfig) -> httpx.Timeout:
    # connect covers both the TCP dial and the TLS handshake
    return httpx.Timeout(float(runner_config.timeout))


def build_limits() -> httpx.Limits:
    # httpx has no per-host caps, the per-host values apply to the whole pool
    return httpx.Limits(
        max_connections=config.MAX_CONNS_PER_HOST,
        max_keepalive_connections=min(config.MAX_IDLE_CONNS, config.MAX_IDLE_CONNS_PER_HOST),
    )


def build_client(runner_config: RunnerConfig, replay: bool = False, is_async: bool = False,
                 transport: Optional[Union[httpx.BaseTransport, httpx.AsyncBaseTransport]] = None,
                 debug: bool = False) -> Union[httpx.Client, httpx.AsyncClient]:
    """
    Builds the single client a Runner uses for all of its requests.

    Args:
        runner_config: The runner configuration.
        replay: Select the replay proxy instead of the primary one.
        is_async: Build an httpx.AsyncClient instead of an httpx.Client.
        transport: Optional transport override, used by tests.
        debug: Flag for debug output.

    Returns:
        The configured client.
    """
    proxy = resolve_proxy(runner_config, replay=replay, debug=debug)

    client_kwargs = {
        'timeout': build_timeout(runner_config),
        'limits': build_limits(),
        'verify': build_ssl_context(),
        'follow_redirects': runner_config.follow_redirects,
        # falls back to HTTP(S)_PROXY / NO_PROXY when no proxy is given
        'trust_env': True,
    }
    if proxy:
        client_kwargs['proxy'] = proxy
    if transport is not None:
        client_kwargs['transport'] = transport

    if debug:
        colored_print(format_log_prefix("DEBUG", f"Proxy: {proxy or '(from environment)'}"), "debug")

    if is_async:
        return httpx.AsyncClient(**client_kwargs)
    return httpx.Client(**client_kwargs)
