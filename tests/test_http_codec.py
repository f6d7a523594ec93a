"""Tests for the mini HTTP codec."""

import asyncio

import pytest

from core.http_codec import (
    BadRequest,
    HeadersUnreadable,
    LengthRequired,
    Method,
    MethodNotAllowed,
    Response,
    encode_response,
    read_request,
    split_path,
    write_response,
)


def _read(data: bytes):
    async def run():
        reader = asyncio.StreamReader()
        reader.feed_data(data)
        reader.feed_eof()
        return await read_request(reader)

    return asyncio.run(run())


class DummyWriter:
    def __init__(self):
        self.data = b""

    def write(self, data: bytes):
        self.data += data

    async def drain(self):
        return None


def test_get_request_parses_method_path_and_headers():
    request = _read(b"GET /version HTTP/1.1\r\nHost: 10.0.0.2:2529\r\n\r\n")

    assert request.method is Method.GET
    assert request.target == "/version"
    assert request.path == ["version"]
    assert request.headers == {"host": "10.0.0.2:2529"}
    assert request.body == b""


def test_notify_reads_exactly_content_length():
    body = b"<e:propertyset/>"
    raw = (
        b"NOTIFY /upnp/event HTTP/1.1\r\n"
        b"SID: uuid:abc\r\n"
        b"Content-Length: " + str(len(body)).encode() + b"\r\n"
        b"\r\n" + body + b"trailing garbage"
    )
    request = _read(raw)

    assert request.method is Method.NOTIFY
    assert request.path == ["upnp", "event"]
    assert request.headers["sid"] == "uuid:abc"
    assert request.body == body


def test_header_names_are_lowercased_and_continuations_folded():
    raw = (
        b"PUT /upnp/event/x HTTP/1.0\r\n"
        b"X-Long-Header: first\r\n"
        b"   second\r\n"
        b"\tthird\r\n"
        b"CONTENT-LENGTH: 0\r\n"
        b"\r\n"
    )
    request = _read(raw)

    assert request.headers["x-long-header"] == "first second third"
    assert request.headers["content-length"] == "0"


def test_bare_lf_line_endings_are_accepted():
    request = _read(b"DELETE /upnp/event/uuid:1 HTTP/1.1\nHost: x\n\n")

    assert request.method is Method.DELETE
    assert request.path == ["upnp", "event", "uuid:1"]


def test_unknown_method_is_not_allowed():
    with pytest.raises(MethodNotAllowed) as exc:
        _read(b"SUBSCRIBE /upnp/event HTTP/1.1\r\n\r\n")

    assert exc.value.status == 405
    assert "SUBSCRIBE" in exc.value.reason


@pytest.mark.parametrize("line", [
    b"M-SEARCH * HTTP/1.1",
    b"notify /upnp/event HTTP/1.1",
])
def test_any_method_token_is_not_allowed(line):
    with pytest.raises(MethodNotAllowed):
        _read(line + b"\r\n\r\n")


def test_trailing_whitespace_after_version_is_accepted():
    request = _read(b"GET /version HTTP/1.1 \r\n\r\n")

    assert request.method is Method.GET
    assert request.path == ["version"]


def test_malformed_request_line_is_bad_request():
    with pytest.raises(BadRequest):
        _read(b"hello there\r\n\r\n")


def test_empty_connection_is_bad_request():
    with pytest.raises(BadRequest):
        _read(b"")


def test_missing_blank_line_means_headers_unreadable():
    with pytest.raises(HeadersUnreadable) as exc:
        _read(b"GET /version HTTP/1.1\r\nHost: x\r\n")

    assert exc.value.status == 400


def test_header_without_colon_is_unreadable():
    with pytest.raises(HeadersUnreadable):
        _read(b"GET /version HTTP/1.1\r\nnonsense\r\n\r\n")


def test_continuation_before_any_header_is_unreadable():
    with pytest.raises(HeadersUnreadable):
        _read(b"GET /version HTTP/1.1\r\n  dangling\r\n\r\n")


def test_body_method_without_content_length_is_rejected():
    with pytest.raises(LengthRequired) as exc:
        _read(b"NOTIFY /upnp/event HTTP/1.1\r\nSID: x\r\n\r\n<xml/>")

    assert exc.value.status == 411


@pytest.mark.parametrize("length", [b"abc", b"-4"])
def test_invalid_content_length_is_bad_request(length):
    with pytest.raises(BadRequest):
        _read(b"PUT /upnp/event/x HTTP/1.1\r\nContent-Length: " + length + b"\r\n\r\n")


def test_truncated_body_is_bad_request():
    with pytest.raises(BadRequest) as exc:
        _read(b"PUT /upnp/event/x HTTP/1.1\r\nContent-Length: 10\r\n\r\nshort")

    assert "truncated" in exc.value.reason


def test_get_body_is_not_read():
    request = _read(b"GET /version HTTP/1.1\r\nContent-Length: 4\r\n\r\nbody")

    assert request.body == b""


def test_split_path_decodes_segments_and_drops_query():
    assert split_path("/upnp//event/uuid%3Aabc/?x=1") == ["upnp", "event", "uuid:abc"]
    assert split_path("/") == []


def test_encode_response_with_body():
    raw = encode_response(Response.text(200, "3"))

    assert raw.startswith(b"HTTP/1.1 200 OK\r\n")
    assert b"Content-Length: 1\r\n" in raw
    assert b"Content-Type: text/plain\r\n" in raw
    assert raw.endswith(b"\r\n\r\n3")


def test_encode_response_without_body():
    raw = encode_response(Response(412))

    assert raw.startswith(b"HTTP/1.1 412 Precondition Failed\r\n")
    assert b"Content-Length: 0\r\n" in raw
    assert b"Content-Type" not in raw


def test_write_response_writes_encoded_bytes():
    writer = DummyWriter()

    asyncio.run(write_response(writer, Response(404)))

    assert writer.data.startswith(b"HTTP/1.1 404 Not Found\r\n")


def test_encode_response_with_reason_override():
    raw = encode_response(Response(405, reason="Method not allowed: M-SEARCH"))

    assert raw.startswith(b"HTTP/1.1 405 Method not allowed: M-SEARCH\r\n")


def test_reason_override_cannot_break_the_status_line():
    raw = encode_response(Response(400, reason="bad\r\nX-Injected: 1"))

    assert raw.startswith(b"HTTP/1.1 400 bad X-Injected: 1\r\n")
    assert b"\r\nX-Injected" not in raw
