"""
=============================================================================
RESPONSE EMISSION
=============================================================================

Handlers and middleware finish a request by returning an HTTPResponse.
Nothing here writes to a socket: the Application hands the finished
response to the WSGI server, which emits status line, headers and body.

=============================================================================
BUILDER PATTERN
=============================================================================

    Direct construction:
        HTTPResponse(status=HTTPStatus.OK, headers={...}, body=b"...")

    Builder (fluent interface):
        ResponseBuilder()
            .status(HTTPStatus.OK)
            .json({"message": "Hello"})
            .header("X-Custom", "value")
            .cookie("access", token, expires=exp, httponly=False)
            .build()

    One-liners for the common cases:
        return json_response({"error": "Unauthorized"}, HTTPStatus.UNAUTHORIZED)
        return redirect("/login")
        return not_found()

=============================================================================
STREAMED BODIES
=============================================================================

A page with a loading fragment is emitted in two parts: the fragment goes
out first, the wrapped page follows once it has been rendered. Such a
response carries `stream` (an iterator of byte chunks) instead of `body`.
The status of a streamed response is fixed when the first chunk leaves.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from http.cookies import SimpleCookie
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union
import json

from .status_codes import HTTPStatus


@dataclass
class HTTPResponse:
    """
    An HTTP response on its way back out through the middleware chain.

    Middleware may still add headers and cookies after the handler returns
    (security headers, rate-limit counters, request id).
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    cookies: List[str] = field(default_factory=list)   # Set-Cookie values
    stream: Optional[Iterable[bytes]] = field(default=None, repr=False)

    @property
    def status_line(self) -> str:
        """Status as sent on the wire: "200 OK"."""
        status = HTTPStatus(self.status)
        return f"{status.value} {status.phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def set_cookie(
        self,
        name: str,
        value: str,
        expires: Optional[float] = None,
        path: str = "/",
        secure: bool = False,
        httponly: bool = True,
        samesite: Optional[str] = "Lax",
    ) -> "HTTPResponse":
        """
        Add a Set-Cookie header.

        Args:
            name: Cookie name
            value: Cookie value
            expires: Absolute expiry as a UNIX timestamp (None = session cookie)
            path: Cookie path
            secure: Only send over HTTPS
            httponly: Hide from client-side scripts
            samesite: "Lax", "Strict", "None" or None to omit
        """
        self.cookies.append(format_cookie(name, value, expires, path, secure, httponly, samesite))
        return self

    def delete_cookie(self, name: str, path: str = "/") -> "HTTPResponse":
        """Expire a cookie on the client."""
        return self.set_cookie(name, "", expires=0, path=path)

    def iter_body(self) -> Iterator[bytes]:
        """Yield the body, chunk by chunk for streamed responses."""
        if self.stream is None:
            yield self.body
            return
        for chunk in self.stream:
            yield chunk

    def header_list(self) -> List[Tuple[str, str]]:
        """Headers in WSGI form, one entry per Set-Cookie."""
        headers = list(self.headers.items())
        if self.stream is None and "Content-Length" not in self.headers:
            headers.append(("Content-Length", str(len(self.body))))
        headers.extend(("Set-Cookie", cookie) for cookie in self.cookies)
        return headers


class ResponseBuilder:
    """
    Fluent builder for HTTP responses.

    Each method returns `self` except build():

        builder.status(200).header("X-Key", "val").json(data).build()
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""
        self._cookies: List[str] = []

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def html(self, html: str) -> "ResponseBuilder":
        self._body = html.encode("utf-8")
        self._headers["Content-Type"] = "text/html; charset=utf-8"
        return self

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        """
        Set a JSON body and Content-Type.

        ensure_ascii=False keeps non-ASCII text readable instead of
        escaping it to \\uXXXX sequences.
        """
        indent = 2 if pretty else None
        self._body = json.dumps(data, indent=indent, ensure_ascii=False, default=str).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    def redirect(self, location: str, permanent: bool = False) -> "ResponseBuilder":
        """
        Redirect with 301 (permanent) or 302 (temporary).

        302 is what the login flow uses: browsers must not cache it.
        """
        self._status = HTTPStatus.MOVED_PERMANENTLY if permanent else HTTPStatus.FOUND
        self._headers["Location"] = location
        return self

    def cookie(self, name: str, value: str, **options: Any) -> "ResponseBuilder":
        """Add a cookie; options are those of HTTPResponse.set_cookie."""
        self._cookies.append(format_cookie(name, value, **options))
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
            cookies=self._cookies,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231).

    Example: Wed, 01 Jan 2026 12:00:00 GMT
    HTTP dates are always GMT, never local time.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    dt = dt.astimezone(timezone.utc)
    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def format_cookie(
    name: str,
    value: str,
    expires: Optional[float] = None,
    path: str = "/",
    secure: bool = False,
    httponly: bool = True,
    samesite: Optional[str] = "Lax",
) -> str:
    """Render one Set-Cookie header value."""
    jar = SimpleCookie()
    jar[name] = value
    morsel = jar[name]
    morsel["path"] = path
    if expires is not None:
        morsel["expires"] = format_http_date(datetime.fromtimestamp(expires, timezone.utc))
    if secure:
        morsel["secure"] = True
    if httponly:
        morsel["httponly"] = True
    if samesite:
        morsel["samesite"] = samesite
    return morsel.OutputString()


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def ok(body: Union[str, bytes, dict, list] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """
    200 OK with the body type detected:
    dict/list → JSON, str → HTML, bytes → raw.
    """
    builder = ResponseBuilder().status(HTTPStatus.OK)

    if isinstance(body, (dict, list)):
        builder.json(body)
    elif isinstance(body, str):
        builder.text(body, content_type or "text/html; charset=utf-8")
    else:
        builder.body(body)
        if content_type:
            builder.header("Content-Type", content_type)

    return builder.build()


def json_response(data: Any, status: HTTPStatus = HTTPStatus.OK) -> HTTPResponse:
    return ResponseBuilder().status(status).json(data).build()


def html_response(content: str, status: HTTPStatus = HTTPStatus.OK) -> HTTPResponse:
    return ResponseBuilder().status(status).html(content).build()


def text_response(content: str, status: HTTPStatus = HTTPStatus.OK) -> HTTPResponse:
    return ResponseBuilder().status(status).text(content).build()


def redirect(location: str, permanent: bool = False) -> HTTPResponse:
    return ResponseBuilder().redirect(location, permanent).build()


def unauthorized(message: str = "Unauthorized") -> HTTPResponse:
    """
    401 Unauthorized.

    401 means "I don't know who you are"; for "I know who you are but you
    may not do this", use 403.
    """
    return (ResponseBuilder()
        .status(HTTPStatus.UNAUTHORIZED)
        .header("WWW-Authenticate", "Bearer")
        .json({"error": message})
        .build())


def forbidden(message: str = "Forbidden") -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.FORBIDDEN).text(message).build()


def not_found(message: str = "Not Found") -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.NOT_FOUND).text(message).build()


def method_not_allowed(allowed_methods: List[str]) -> HTTPResponse:
    """405 with the Allow header listing the methods that do exist."""
    return (ResponseBuilder()
        .status(HTTPStatus.METHOD_NOT_ALLOWED)
        .header("Allow", ", ".join(allowed_methods))
        .json({"error": "Method not allowed"})
        .build())


def to_response(value: Any) -> HTTPResponse:
    """
    Normalize whatever a handler or middleware returned.

        HTTPResponse   → unchanged
        None           → empty 200 (terminal step with no output)
        dict / list    → JSON 200
        str / bytes    → HTML / raw 200
    """
    if isinstance(value, HTTPResponse):
        return value
    if value is None:
        return HTTPResponse()
    return ok(value)
