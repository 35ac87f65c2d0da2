import httpx

from fuzzrun.core.dump import dump_request, dump_response


def test_dump_request():
    request = httpx.Request("POST", "http://example.com/a?b=1", headers={"X-A": "1"}, content=b"body")
    raw = dump_request(request)

    assert raw.startswith(b"POST /a?b=1 HTTP/1.1\r\n")
    assert b"\r\nHost: example.com\r\n" in raw
    assert b"\r\nX-A: 1\r\n" in raw
    assert b"\r\nContent-Length: 4\r\n" in raw
    assert raw.endswith(b"\r\n\r\nbody")


def test_dump_request_with_target():
    request = httpx.Request("GET", "http://example.com/normalized")
    raw = dump_request(request, b"/a/../b")
    assert raw.startswith(b"GET /a/../b HTTP/1.1\r\n")
    assert raw.endswith(b"\r\n\r\n")


def test_dump_response():
    response = httpx.Response(404, headers={"X-B": "2"}, content=b"full body")
    raw = dump_response(response, b"full")

    assert raw.startswith(b"HTTP/1.1 404 Not Found\r\n")
    assert b"X-B: 2\r\n" in raw
    assert raw.endswith(b"\r\n\r\nfull")
