# fuzzrun/core/runner.py
import asyncio
import re
import socket
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Optional, Union

import httpx

from fuzzrun import config, version
from fuzzrun.core.colors import color_formatter, colored_print, format_log_prefix
from fuzzrun.core.context import CancelContext
from fuzzrun.core.dump import dump_request, dump_response
from fuzzrun.core.errors import RequestBuildError, RequestCancelled, RequestTimeout, TransportError
from fuzzrun.core.models import Request, Response
from fuzzrun.core.options import RunnerConfig
from fuzzrun.core.template import (
    UNRESOLVED,
    as_bytes,
    escape_url_bytes,
    parse_authority,
    substitute_keywords,
    substitute_reserved,
)
from fuzzrun.core.transport import build_client

# Download results < 5MB
MAX_DOWNLOAD_SIZE = config.MAX_DOWNLOAD_SIZE

DEFAULT_USER_AGENT = f"{config.USER_AGENT} v{version()}"

_METHOD_RE = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")
_CONTENT_LENGTH_RE = re.compile(r"[+-]?[0-9]+")


def _parse_content_length(value: Optional[str]) -> Optional[int]:
    if value is None or not _CONTENT_LENGTH_RE.fullmatch(value):
        return None
    return int(value)


def _has_header(headers: Dict[str, str], name: str) -> bool:
    name = name.lower()
    return any(k.lower() == name for k in headers)


def _stream_interrupter(httpresp: httpx.Response):
    """
    Returns a callback that shuts down the socket under a streaming response,
    waking up a body read blocked on it. A no-op when there is no socket.
    """
    stream = httpresp.extensions.get("network_stream")
    sock = stream.get_extra_info("socket") if stream is not None else None

    def interrupt():
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # already closed by the transport
            pass

    return interrupt


def _close_abandoned(future: Future):
    if not future.cancelled() and future.exception() is None:
        future.result().close()


def _resolve(future: asyncio.Future):
    if not future.done():
        future.set_result(None)


class _Timing:
    """
    Timing state of a single request, fed by the httpx trace extension.

    Each execute() call gets its own instance; the trace hook is also where
    cancellation and the overall deadline are enforced between I/O phases.
    """

    def __init__(self, context: CancelContext, timeout: float):
        self.context = context
        self.deadline = time.perf_counter() + timeout
        self.start: Optional[float] = None
        self.first_byte_time = 0.0

    def expired(self) -> bool:
        return time.perf_counter() > self.deadline

    def observe(self, event_name: str):
        self.context.raise_if_cancelled()
        now = time.perf_counter()
        if now > self.deadline:
            raise RequestTimeout("request deadline exceeded")

        if event_name.endswith("send_request_body.complete"):
            # begin the timer after the request is fully written
            self.start = now
        elif event_name.endswith("receive_response_headers.complete") and self.start is not None:
            self.first_byte_time = now - self.start

    def trace(self, event_name: str, info: dict):
        self.observe(event_name)

    async def atrace(self, event_name: str, info: dict):
        self.observe(event_name)


class Runner:
    """
    Prepares templated requests and executes them over one shared client.

    A Runner is built once per role (primary or replay) and shared by every
    worker; prepare() and execute() keep no state between calls.
    """

    def __init__(self, runner_config: RunnerConfig, replay: bool = False, is_async: bool = False,
                 verbose: bool = False, debug: bool = False,
                 transport: Optional[Union[httpx.BaseTransport, httpx.AsyncBaseTransport]] = None):
        self.config = runner_config
        self.replay = replay
        self.is_async = is_async
        self.verbose = verbose or config.VERBOSE_MODE
        self.debug = debug

        self.client = build_client(runner_config, replay=replay, is_async=is_async,
                                   transport=transport, debug=debug)
        # sends run here so a blocked one can be abandoned on cancel
        self._send_pool = None if is_async else ThreadPoolExecutor(
            max_workers=config.MAX_CONNS_PER_HOST, thread_name_prefix="fuzzrun-send")

    # --- Templating ---

    def prepare(self, input: Dict[str, Union[bytes, str]]) -> Request:
        """
        Builds a concrete request from the configured template.

        Every input keyword is replaced in the method, URL, opaque target,
        body and header names and values. {HOST}, {HOSTPORT} and {PORT} are
        then resolved from the resulting URL in the URL, opaque target and
        body. Headers are not templated for these three placeholders.

        When the URL cannot be parsed the request is returned with the
        reserved placeholders left in place; no error is raised.

        Args:
            input: Keyword -> substitution value.

        Returns:
            The prepared request.
        """
        input = {keyword: as_bytes(value) for keyword, value in input.items()}

        fields, headers = substitute_keywords(
            {
                "method": self.config.method,
                "url": self.config.url,
                "opaque": self.config.opaque,
                "data": self.config.data.encode("utf-8"),
            },
            self.config.headers,
            input,
        )

        req = Request(
            method=fields["method"],
            url=fields["url"],
            opaque=fields["opaque"],
            data=fields["data"],
            headers=headers,
            input=input,
        )

        authority = parse_authority(req.url)
        if authority is UNRESOLVED:
            if self.debug:
                colored_print(format_log_prefix("DEBUG", f"Could not derive host from {req.url!r}, placeholders left as-is"), "debug")
            return req

        fields = substitute_reserved({"url": req.url, "opaque": req.opaque, "data": req.data}, authority)
        req.url = fields["url"]
        req.opaque = fields["opaque"]
        req.data = fields["data"]
        return req

    # --- Execution ---

    def execute(self, req: Request) -> Response:
        """Runs a single request synchronously."""
        if self.is_async:
            raise RuntimeError("Use 'aexecute' for async mode.")

        timing = _Timing(self.config.context, self.config.timeout)
        httpreq, rawreq = self._build_request(req, timing.trace)

        self.config.context.raise_if_cancelled()
        try:
            httpresp = self._send(httpreq)
        except httpx.HTTPError as e:
            raise TransportError(f"{httpreq.method} {req.url}: {e}") from e

        try:
            resp = Response(status_code=httpresp.status_code, headers=httpresp.headers, request=req)
            if self._skip_body(httpresp, resp, timing):
                return resp

            body = bytearray()
            interrupt = _stream_interrupter(httpresp)
            self.config.context.add_callback(interrupt)
            try:
                for chunk in httpresp.iter_bytes():
                    if not self._consume(body, chunk, timing):
                        break
            except httpx.HTTPError as e:
                self._body_error(req, e)
            finally:
                self.config.context.remove_callback(interrupt)

            self.config.context.raise_if_cancelled()
            return self._finish(resp, bytes(body), httpresp, rawreq, timing)
        finally:
            httpresp.close()

    async def aexecute(self, req: Request) -> Response:
        """Runs a single request asynchronously."""
        if not self.is_async:
            raise RuntimeError("Use 'execute' for sync mode.")

        timing = _Timing(self.config.context, self.config.timeout)
        httpreq, rawreq = self._build_request(req, timing.atrace)

        self.config.context.raise_if_cancelled()
        try:
            httpresp = await self._asend(httpreq)
        except httpx.HTTPError as e:
            raise TransportError(f"{httpreq.method} {req.url}: {e}") from e

        try:
            resp = Response(status_code=httpresp.status_code, headers=httpresp.headers, request=req)
            if self._skip_body(httpresp, resp, timing):
                return resp

            body = bytearray()
            interrupt = _stream_interrupter(httpresp)
            self.config.context.add_callback(interrupt)
            try:
                async for chunk in httpresp.aiter_bytes():
                    if not self._consume(body, chunk, timing):
                        break
            except httpx.HTTPError as e:
                self._body_error(req, e)
            finally:
                self.config.context.remove_callback(interrupt)

            self.config.context.raise_if_cancelled()
            return self._finish(resp, bytes(body), httpresp, rawreq, timing)
        finally:
            await httpresp.aclose()

    def _send(self, httpreq: httpx.Request) -> httpx.Response:
        """
        Sends on a worker thread and waits for the response head or for the
        context to be cancelled, whichever comes first.

        A send abandoned on cancel keeps running until the server answers or
        the timeout hits; its response is closed as soon as it arrives.
        """
        future = self._send_pool.submit(self.client.send, httpreq, stream=True)
        finished = threading.Event()
        future.add_done_callback(lambda f: finished.set())

        wake = finished.set
        self.config.context.add_callback(wake)
        try:
            finished.wait()
        finally:
            self.config.context.remove_callback(wake)

        if not future.done():
            future.cancel()
            future.add_done_callback(_close_abandoned)
            raise RequestCancelled("request cancelled by context")
        return future.result()

    async def _asend(self, httpreq: httpx.Request) -> httpx.Response:
        """Async twin of _send(): races the send task against cancellation."""
        loop = asyncio.get_running_loop()
        cancelled = loop.create_future()

        def wake():
            loop.call_soon_threadsafe(_resolve, cancelled)

        send = asyncio.ensure_future(self.client.send(httpreq, stream=True))
        self.config.context.add_callback(wake)
        try:
            await asyncio.wait({send, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            self.config.context.remove_callback(wake)
            cancelled.cancel()
            if not send.done():
                send.cancel()
                await asyncio.wait({send})

        if send.cancelled():
            raise RequestCancelled("request cancelled by context")
        return send.result()

    def _build_request(self, req: Request, trace):
        """
        Turns a prepared Request into an httpx.Request ready to send.

        Returns:
            Tuple of (httpx request, raw request bytes or None).

        Raises:
            RequestBuildError: If the method or URL is rejected.
        """
        # an empty method means GET
        method = req.method or "GET"
        if not _METHOD_RE.fullmatch(method):
            raise RequestBuildError(f"invalid method {method!r}")

        extensions = {"trace": trace}
        if self.config.sni:
            extensions["sni_hostname"] = self.config.sni

        try:
            httpreq = self.client.build_request(method, escape_url_bytes(req.url), content=req.data,
                                                extensions=extensions)
        except (httpx.InvalidURL, ValueError, TypeError) as e:
            raise RequestBuildError(f"invalid URL {req.url!r}: {e}") from e

        # set default User-Agent header if not present
        if not _has_header(req.headers, "User-Agent"):
            req.headers["User-Agent"] = DEFAULT_USER_AGENT

        # header bytes go out as substituted, including undecodable payload bytes
        try:
            prepared = [(k.encode("utf-8", errors="surrogateescape"), v.encode("utf-8", errors="surrogateescape"))
                        for k, v in req.headers.items()]
        except UnicodeEncodeError as e:
            raise RequestBuildError(f"header cannot be encoded: {e}") from e
        replaced = {k.lower() for k, _ in prepared}
        httpreq.headers = httpx.Headers(
            [(k, v) for k, v in httpreq.headers.raw if k.lower() not in replaced] + prepared
        )

        # a Host header replaces the host derived from the URL
        req.host = httpreq.headers.get("Host", "")

        target = None
        if req.opaque:
            target = req.opaque.encode("utf-8", errors="surrogateescape")
            httpreq.extensions["target"] = target

        rawreq = None
        if self.config.capture_raw:
            rawreq = dump_request(httpreq, target)

        return httpreq, rawreq

    def _skip_body(self, httpresp: httpx.Response, resp: Response, timing: _Timing) -> bool:
        """Decides from Content-Length whether the body is downloaded at all."""
        size = _parse_content_length(httpresp.headers.get("Content-Length"))
        if size is None:
            return False

        resp.content_length = size
        if self.config.ignore_body or size > MAX_DOWNLOAD_SIZE:
            resp.cancelled = True
            resp.time = timing.first_byte_time
            if self.debug:
                colored_print(format_log_prefix("DEBUG", f"Skipping body of {resp.request.url} ({size} bytes advertised)"), "debug")
            self._log_response(resp)
            return True
        return False

    def _consume(self, body: bytearray, chunk: bytes, timing: _Timing) -> bool:
        """Appends a body chunk. Returns False once reading should stop."""
        self.config.context.raise_if_cancelled()

        room = MAX_DOWNLOAD_SIZE - len(body)
        body.extend(chunk[:room])
        if len(chunk) > room:
            if self.debug:
                colored_print(format_log_prefix("DEBUG", f"Body truncated at {MAX_DOWNLOAD_SIZE} bytes"), "debug")
            return False

        if timing.expired():
            if self.debug:
                colored_print(format_log_prefix("DEBUG", f"Deadline reached after {len(body)} body bytes"), "debug")
            return False
        return True

    def _finish(self, resp: Response, data: bytes, httpresp: httpx.Response,
                rawreq: Optional[bytes], timing: _Timing) -> Response:
        if self.config.capture_raw:
            resp.request.raw = rawreq or b""
            resp.raw = dump_response(httpresp, data)

        resp.data = data
        resp.content_length = len(data)
        resp.content_words = len(data.split(b" "))
        resp.content_lines = len(data.split(b"\n"))
        resp.time = timing.first_byte_time

        self._log_response(resp)
        return resp

    def _body_error(self, req: Request, error: Exception):
        # a read broken by cancel() is a cancellation, not a short body
        self.config.context.raise_if_cancelled()
        if self.debug:
            colored_print(format_log_prefix("DEBUG", f"Body read of {req.url} failed, keeping partial body: {error}"), "debug")

    def _log_response(self, resp: Response):
        if self.verbose:
            status_colored = color_formatter.status_code(resp.status_code)
            print(f"  -> {resp.request.method} {resp.request.url} - Status: {status_colored} - "
                  f"Size: {resp.content_length} - Time: {resp.time * 1000:.0f}ms")

    # --- Lifecycle ---

    def close(self):
        """Closes the HTTP client."""
        if isinstance(self.client, httpx.Client):
            self.client.close()
        if self._send_pool is not None:
            self._send_pool.shutdown(wait=False)

    async def aclose(self):
        """Closes the HTTP client asynchronously."""
        if isinstance(self.client, httpx.AsyncClient):
            await self.client.aclose()
        else:
            self.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
