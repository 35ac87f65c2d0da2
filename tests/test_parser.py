import pytest

from fuzzrun.core.parser import RequestParser

RAW_POST = (
    "POST /api/login?next=/ HTTP/1.1\r\n"
    "Host: example.com\r\n"
    "Content-Type: application/x-www-form-urlencoded\r\n"
    "Content-Length: 18\r\n"
    "Cookie: session=FUZZ\r\n"
    "\r\n"
    "user=admin&pw=FUZZ\n"
)


def test_url_from_host_header():
    parsed = RequestParser(RAW_POST).parse()

    assert parsed["method"] == "POST"
    assert parsed["url"] == "https://example.com/api/login?next=/"
    assert parsed["data"] == "user=admin&pw=FUZZ"


def test_headers_without_host_and_content_length():
    headers = RequestParser(RAW_POST).parse()["headers"]
    assert headers == {
        "Content-Type": "application/x-www-form-urlencoded",
        "Cookie": "session=FUZZ",
    }


def test_scheme_for_host_header():
    parsed = RequestParser(RAW_POST, scheme="http").parse()
    assert parsed["url"] == "http://example.com/api/login?next=/"


def test_target_wins_over_host():
    parsed = RequestParser(RAW_POST, target="http://127.0.0.1:8000/").parse()
    assert parsed["url"] == "http://127.0.0.1:8000/api/login?next=/"


def test_absolute_form_target():
    raw = "GET http://proxied.example/x HTTP/1.1\nHost: other\n\n"
    parsed = RequestParser(raw, target="http://ignored").parse()
    assert parsed["url"] == "http://proxied.example/x"


def test_no_body():
    parsed = RequestParser("GET / HTTP/1.1\nHost: example.com").parse()
    assert parsed["data"] == ""
    assert parsed["method"] == "GET"


def test_body_keeps_inner_blank_lines():
    raw = "PUT /f HTTP/1.1\nHost: h\n\nline one\n\nline two\n\n"
    assert RequestParser(raw).parse()["data"] == "line one\n\nline two\n"


def test_header_value_with_colon():
    raw = "GET / HTTP/1.1\nHost: h\nReferer: http://a.b:81/\n\n"
    assert RequestParser(raw).parse()["headers"] == {"Referer": "http://a.b:81/"}


def test_bad_request_line():
    with pytest.raises(ValueError):
        RequestParser("GARBAGE\nHost: h\n\n").parse()


def test_no_target_and_no_host():
    with pytest.raises(ValueError):
        RequestParser("GET / HTTP/1.1\nAccept: */*\n\n").parse()
