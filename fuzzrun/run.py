import hashlib
import time
from pathlib import Path
from typing import Dict

from fuzzrun.core.colors import color_formatter, colored_print, format_log_prefix
from fuzzrun.core.errors import RequestBuildError, TransportError
from fuzzrun.core.models import Response
from fuzzrun.core.options import RunnerConfig
from fuzzrun.core.runner import Runner


def save_raw(resp: Response, output_directory: str) -> Path:
    """
    Writes the captured request and response of `resp` to the output directory.

    The file is named after the MD5 of the raw request, so re-running the
    same request overwrites its previous capture.
    """
    directory = Path(output_directory)
    directory.mkdir(parents=True, exist_ok=True)
    request_hash = hashlib.md5(resp.request.raw).hexdigest()
    path = directory / f"{request_hash}.txt"
    with open(path, "wb") as f:
        f.write(resp.request.raw)
        f.write(b"\n---- REQUEST ABOVE / RESPONSE BELOW ----\n\n")
        f.write(resp.raw)
    return path


def print_response(resp: Response, verbose: bool = False):
    status = color_formatter.status_code(resp.status_code)
    print(f"{resp.request.method} {resp.request.url}")
    print(f"  Status: {status} | Size: {resp.content_length} | Words: {resp.content_words} | "
          f"Lines: {resp.content_lines} | Time: {resp.time * 1000:.0f}ms")
    if resp.cancelled:
        colored_print(format_log_prefix("INFO", "Body not downloaded (ignored or too large)"), "info")
    location = resp.redirect_location(absolute=True)
    if location:
        print(f"  Location: {location}")
    if verbose:
        for name, value in resp.headers.multi_items():
            print(f"  {name}: {value}")


async def run(runner_config: RunnerConfig, inputs: Dict[str, bytes], replay: bool = False, is_async: bool = False,
              verbose: bool = False, debug: bool = False) -> int:
    """
    Prepares and executes one request, prints the outcome.

    Returns:
        Process exit code: 0 on success, 1 on transport failure, 2 when the
        request could not be built.
    """
    start_time = time.perf_counter()
    runner = None
    try:
        runner = Runner(runner_config, replay=replay, is_async=is_async, verbose=verbose, debug=debug)
        req = runner.prepare(inputs)
        if is_async:
            resp = await runner.aexecute(req)
        else:
            resp = runner.execute(req)

        print_response(resp, verbose=verbose)
        if runner_config.capture_raw and not resp.cancelled:
            path = save_raw(resp, runner_config.output_directory)
            colored_print(format_log_prefix("INFO", f"Raw traffic saved to {path}"), "info")
        return 0

    except RequestBuildError as e:
        print(format_log_prefix("ERROR", f"Could not build request: {e}"))
        return 2
    except TransportError as e:
        print(format_log_prefix("ERROR", f"Request failed: {e}"))
        return 1
    finally:
        if runner:
            await runner.aclose()
        end_time = time.perf_counter()
        if verbose:
            print(f"Execution finished in {end_time - start_time:.2f} seconds.")
