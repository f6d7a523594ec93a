"""
Mini HTTP codec - just enough HTTP/1.x for the event proxy

Reads one request (request line, headers, body) from an asyncio stream and
writes one minimal response. Every exchange closes the connection afterwards:
no keep-alive, no chunked transfer encoding.

Only GET, PUT, DELETE and NOTIFY are understood. PUT and NOTIFY must carry a
Content-Length; reading "until the peer closes" could block the whole proxy.
"""
import asyncio
import re
from dataclasses import dataclass, field
from enum import Enum
from http import HTTPStatus
from typing import Dict, List, Optional
from urllib.parse import unquote

REQUEST_LINE_RE = re.compile(r"^([!#$%&'*+.^_`|~0-9A-Za-z-]+) (\S+) HTTP/1\.[01]\s*$")
HEADER_RE = re.compile(r"^([^:]+): ?(.*)$")


class Method(Enum):
    """Request methods the proxy handles"""
    GET = "GET"
    PUT = "PUT"
    DELETE = "DELETE"
    NOTIFY = "NOTIFY"


# Methods whose body is read and handed to the request handler
BODY_METHODS = (Method.PUT, Method.NOTIFY)


# ============== Errors ==============

class HTTPError(Exception):
    """A request could not be read; carries the status to answer with"""
    status = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, reason: str = ""):
        super().__init__(reason or self.status.phrase)
        self.reason = reason or self.status.phrase


class BadRequest(HTTPError):
    status = HTTPStatus.BAD_REQUEST


class HeadersUnreadable(BadRequest):
    pass


class MethodNotAllowed(HTTPError):
    status = HTTPStatus.METHOD_NOT_ALLOWED


class LengthRequired(HTTPError):
    status = HTTPStatus.LENGTH_REQUIRED


class RequestTimeout(HTTPError):
    status = HTTPStatus.REQUEST_TIMEOUT


# ============== Messages ==============

@dataclass
class Request:
    """
    One parsed request.

    Attributes:
        method: Request method
        target: Raw request target as sent by the client
        path: Decoded, non-empty path segments ("/upnp/event/x" -> ["upnp", "event", "x"])
        headers: Headers keyed by lower-cased name
        body: Request body (empty for GET and DELETE)
    """
    method: Method
    target: str
    path: List[str] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def path_string(self) -> str:
        return "/" + "/".join(self.path)


@dataclass
class Response:
    status: int
    body: bytes = b""
    content_type: Optional[str] = None
    # Status line text; the standard phrase when unset
    reason: Optional[str] = None

    @classmethod
    def text(cls, status: int, text: str) -> "Response":
        return cls(status, text.encode("utf-8"), "text/plain")


def split_path(target: str) -> List[str]:
    """Split a request target into decoded segments, ignoring any query string"""
    path = target.split("?", 1)[0]
    return [unquote(segment) for segment in path.split("/") if segment]


# ============== Reading ==============

async def _read_line(reader: asyncio.StreamReader) -> Optional[str]:
    """Read one line without its terminator; None at end of stream"""
    try:
        raw = await reader.readline()
    except (asyncio.LimitOverrunError, ValueError):
        raise BadRequest("Line too long")
    if not raw:
        return None
    return raw.decode("iso-8859-1").rstrip("\r\n")


async def read_request_line(reader: asyncio.StreamReader):
    """
    Parse the request line.

    Returns:
        (method, target)

    Raises:
        BadRequest: Line is missing or not an HTTP/1.x request line
        MethodNotAllowed: Method is not one of GET, PUT, DELETE, NOTIFY
    """
    line = await _read_line(reader)
    if line is None:
        raise BadRequest("Empty request")
    match = REQUEST_LINE_RE.match(line)
    if not match:
        raise BadRequest(f"Malformed request line: {line[:80]!r}")
    name, target = match.groups()
    try:
        method = Method(name)
    except ValueError:
        raise MethodNotAllowed(f"Method not allowed: {name}")
    return method, target


async def read_headers(reader: asyncio.StreamReader) -> Dict[str, str]:
    """
    Parse headers up to the terminating blank line.

    Continuation lines (starting with whitespace) are folded into the
    previous header's value. Names are lower-cased.

    Raises:
        HeadersUnreadable: Stream ended before the blank line, or a line
            is not a "name: value" header
    """
    headers: Dict[str, str] = {}
    name = None
    while True:
        line = await _read_line(reader)
        if line is None:
            raise HeadersUnreadable("Headers not terminated")
        if line == "":
            return headers
        if line[0] in " \t":
            if name is None:
                raise HeadersUnreadable("Continuation line without a header")
            headers[name] += " " + line.lstrip()
            continue
        match = HEADER_RE.match(line)
        if not match:
            raise HeadersUnreadable(f"Malformed header: {line[:80]!r}")
        name = match.group(1).strip().lower()
        headers[name] = match.group(2)


async def read_body(reader: asyncio.StreamReader, headers: Dict[str, str]) -> bytes:
    """Read exactly content-length bytes"""
    raw_length = headers.get("content-length")
    if raw_length is None:
        raise LengthRequired()
    try:
        length = int(raw_length.strip())
    except ValueError:
        raise BadRequest(f"Invalid Content-Length: {raw_length!r}")
    if length < 0:
        raise BadRequest(f"Invalid Content-Length: {raw_length!r}")
    try:
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise BadRequest(f"Body truncated after {len(e.partial)} of {length} bytes")


async def read_request(reader: asyncio.StreamReader) -> Request:
    """Read one complete request from the stream"""
    method, target = await read_request_line(reader)
    headers = await read_headers(reader)
    body = b""
    if method in BODY_METHODS:
        body = await read_body(reader, headers)
    return Request(method, target, split_path(target), headers, body)


# ============== Writing ==============

def encode_response(response: Response) -> bytes:
    status = int(response.status)
    reason = response.reason
    if reason is None:
        try:
            reason = HTTPStatus(status).phrase
        except ValueError:
            reason = "Unknown"
    reason = " ".join(reason.split())
    lines = [
        f"HTTP/1.1 {status} {reason}",
        f"Content-Length: {len(response.body)}",
    ]
    if response.content_type:
        lines.append(f"Content-Type: {response.content_type}")
    lines.append("Connection: close")
    head = "\r\n".join(lines) + "\r\n\r\n"
    return head.encode("iso-8859-1", errors="replace") + response.body


async def write_response(writer: asyncio.StreamWriter, response: Response):
    writer.write(encode_response(response))
    await writer.drain()
