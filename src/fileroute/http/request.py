"""
=============================================================================
REQUEST MODEL
=============================================================================

Turns what the transport hands us (a WSGI environ) into one normalized
Request value that every middleware step and handler shares.

=============================================================================
REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        REQUEST FIELDS                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   POST /blog/my-post/?draft=1 HTTP/1.1                              │
    │   Content-Type: application/x-www-form-urlencoded                   │
    │   Cookie: access=eyJ...; csrf=9f2c...                               │
    │                                                                      │
    │   title=Hello&_csrf=9f2c...                                         │
    │                                                                      │
    │        │                                                             │
    │        ▼                                                             │
    │                                                                      │
    │   Request(                                                           │
    │     method="POST",                                                   │
    │     path="blog/my-post",          ← no leading/trailing slash       │
    │     query_params={"draft": ["1"]},                                   │
    │     body={"title": "Hello", "_csrf": "9f2c..."},                     │
    │     headers=Headers({...}),       ← case-insensitive                │
    │     cookies={"access": "eyJ...", "csrf": "9f2c..."},                 │
    │     files={},                                                        │
    │     meta={},                      ← filled in by middleware         │
    │   )                                                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PATH NORMALIZATION
=============================================================================

The router maps path segments straight onto directory names, so the path
must never carry anything that could walk outside the application tree:

    "/blog//my-post/"         → "blog/my-post"
    "/a/./b"                  → "a/b"
    "/../../etc/passwd"       → "etc/passwd"
    "/search?q=1#top"         → "search"

=============================================================================
META: THE REQUEST-SCOPED CONTEXT
=============================================================================

There is no process-wide "current user". Everything computed during the
request (route params, the authenticated principal, the CSP nonce, the CSRF
token) lives in `request.meta` and travels with the request through the
middleware chain into handlers and templates.

=============================================================================
"""

from dataclasses import dataclass, field
from http.cookies import SimpleCookie, CookieError
from typing import Any, Dict, Iterator, List, Optional, Tuple
from urllib.parse import parse_qs, unquote
import io
import json
import logging
import re

from python_multipart import parse_form


logger = logging.getLogger(__name__)


# Methods that change server state; CSRF verification applies to these.
UNSAFE_METHODS = frozenset({"POST", "PUT", "DELETE", "PATCH"})

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_path(uri: str) -> str:
    """
    Reduce a request URI to slash-separated path segments.

    Strips query and fragment, URL-decodes, and drops empty, "." and ".."
    segments. The result has no leading or trailing slash; the root is "".
    """
    path = unquote(uri.split("?", 1)[0].split("#", 1)[0])
    segments = [s for s in path.split("/") if s not in ("", ".", "..")]
    return "/".join(segments)


def wsgi_path(environ: dict) -> str:
    """
    PATH_INFO as text.

    WSGI servers hand over the raw path bytes decoded as latin-1 (PEP 3333);
    re-encode and decode as UTF-8 so non-ASCII segments survive.
    """
    path = environ.get("PATH_INFO", "/")
    try:
        return path.encode("latin-1").decode("utf-8", errors="replace")
    except UnicodeEncodeError:
        # Already real text
        return path


class Headers(dict):
    """
    Header mapping with case-insensitive keys.

    HTTP header names are case-insensitive (RFC 7230), so keys are stored
    lowercase and every lookup lowercases its argument:

        headers = Headers({"Content-Type": "application/json"})
        headers["content-type"]  # "application/json"
        headers["CONTENT-TYPE"]  # "application/json"
    """

    def __init__(self, data: Optional[Dict[str, str]] = None):
        super().__init__()
        for name, value in (data or {}).items():
            self[name] = value

    def __setitem__(self, name: str, value: str) -> None:
        super().__setitem__(name.lower(), value)

    def __getitem__(self, name: str) -> str:
        return super().__getitem__(name.lower())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and super().__contains__(name.lower())

    def __delitem__(self, name: str) -> None:
        super().__delitem__(name.lower())

    def get(self, name: str, default: Any = None) -> Any:
        return super().get(name.lower(), default)


@dataclass
class UploadedFile:
    """A file part from a multipart/form-data body."""

    field_name: str
    filename: str
    data: bytes = b""

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ValidationResult:
    """
    Outcome of `Request.validate`.

    Either `errors` is empty and `data` holds the validated fields, or
    `errors` maps each failing field to its messages:

        result = request.validate({"email": "required|email"})
        if not result.ok:
            return json_response({"errors": result.errors}, 422)
    """

    data: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class Request:
    """
    One inbound HTTP request.

    Constructed once per request by the transport layer, shared by every
    middleware step and the final handler. Only `meta` is meant to be
    mutated after construction.
    """

    method: str = "GET"
    path: str = ""
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: Dict[str, Any] = field(default_factory=dict)
    headers: Headers = field(default_factory=Headers)
    cookies: Dict[str, str] = field(default_factory=dict)
    files: Dict[str, UploadedFile] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)
    client_address: Tuple[str, int] = ("", 0)
    raw_body: bytes = b""

    # Cached lazily by json()
    _json: Optional[Any] = field(default=None, repr=False)

    def __post_init__(self):
        self.method = self.method.upper()
        self.path = normalize_path(self.path)
        if not isinstance(self.headers, Headers):
            self.headers = Headers(self.headers)

    # =========================================================================
    # CONSTRUCTION FROM THE TRANSPORT
    # =========================================================================

    @classmethod
    def from_environ(cls, environ: Dict[str, Any]) -> "Request":
        """
        Build a Request from a WSGI environ.

        =====================================================================
        ENVIRON → REQUEST
        =====================================================================

            REQUEST_METHOD      → method
            PATH_INFO           → path (normalized)
            QUERY_STRING        → query_params
            HTTP_*, CONTENT_*   → headers
            HTTP_COOKIE         → cookies
            wsgi.input          → body / files / raw_body
            REMOTE_ADDR         → client_address

        =====================================================================
        """
        headers = Headers()
        for key, value in environ.items():
            if key.startswith("HTTP_"):
                headers[key[5:].replace("_", "-")] = value
            elif key in ("CONTENT_TYPE", "CONTENT_LENGTH") and value:
                headers[key.replace("_", "-")] = value

        try:
            length = int(environ.get("CONTENT_LENGTH") or 0)
        except ValueError:
            length = 0

        raw_body = b""
        stream = environ.get("wsgi.input")
        if stream is not None and length > 0:
            raw_body = stream.read(length)

        try:
            port = int(environ.get("REMOTE_PORT") or 0)
        except ValueError:
            port = 0

        request = cls(
            method=environ.get("REQUEST_METHOD", "GET"),
            path=wsgi_path(environ),
            query_params=parse_qs(environ.get("QUERY_STRING", ""), keep_blank_values=True),
            headers=headers,
            cookies=parse_cookies(headers.get("cookie", "")),
            client_address=(environ.get("REMOTE_ADDR", ""), port),
            raw_body=raw_body,
        )
        request._parse_body()
        return request

    def _parse_body(self) -> None:
        """Fill `body` and `files` from the raw body based on Content-Type."""
        if not self.raw_body:
            return

        content_type = self.content_type
        if content_type == "application/x-www-form-urlencoded":
            form = parse_qs(self.raw_body.decode("utf-8", errors="replace"), keep_blank_values=True)
            self.body = {name: values[0] for name, values in form.items()}
        elif content_type == "multipart/form-data":
            self._parse_multipart()

    def _parse_multipart(self) -> None:
        def on_field(part) -> None:
            name = _decode(part.field_name)
            self.body[name] = _decode(part.value or b"")

        def on_file(part) -> None:
            part.file_object.seek(0)
            name = _decode(part.field_name)
            self.files[name] = UploadedFile(
                field_name=name,
                filename=_decode(part.file_name or b""),
                data=part.file_object.read(),
            )
            part.close()

        form_headers = {
            "Content-Type": self.headers.get("content-type", ""),
            "Content-Length": str(len(self.raw_body)),
        }
        try:
            parse_form(form_headers, io.BytesIO(self.raw_body), on_field, on_file)
        except ValueError as e:
            # python-multipart errors derive from ValueError
            logger.debug(f"Malformed multipart body on /{self.path}: {e}")

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters ("application/json")."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def query(self) -> Dict[str, str]:
        """Query parameters, first value wins."""
        return {name: values[0] for name, values in self.query_params.items() if values}

    @property
    def is_json(self) -> bool:
        """Check if the request body is JSON based on Content-Type."""
        return "application/json" in self.headers.get("content-type", "").lower()

    @property
    def is_ajax(self) -> bool:
        return self.headers.get("x-requested-with", "") == "XMLHttpRequest"

    @property
    def wants_json(self) -> bool:
        """
        Check if the client should get JSON rather than HTML.

        Used to choose between a JSON error body and a redirect or HTML
        fragment when short-circuiting (401, 429, ...).
        """
        accept = self.headers.get("accept", "").lower()
        return self.is_json or self.is_ajax or "application/json" in accept

    # -------------------------------------------------------------------------
    # Views over meta
    # -------------------------------------------------------------------------

    @property
    def params(self) -> Dict[str, str]:
        """Dynamic route parameters bound by the router."""
        return self.meta.get("params", {})

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        """The authenticated principal, if a valid access token was sent."""
        return self.meta.get("user")

    @property
    def csp_nonce(self) -> str:
        return self.meta.get("csp_nonce", "")

    @property
    def csrf_token(self) -> str:
        return self.meta.get("csrf_token", "")

    @property
    def app(self) -> Any:
        """The Application handling this request (tokens, users, config)."""
        return self.meta.get("app")

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        return self.headers.get(name, default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """
        Get the first value of a query parameter.

        Example:
            # URL: /users?page=1&page=2
            request.get_query("page")  # Returns "1"
        """
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def get_query_list(self, name: str) -> List[str]:
        return self.query_params.get(name, [])

    def json(self) -> Any:
        """
        The JSON body, parsed once on first access.

        Returns an empty dict when the request is not JSON or the body is
        malformed; handlers never need to guard against a parse error.
        """
        if self._json is None:
            self._json = {}
            if self.is_json and self.raw_body:
                try:
                    self._json = json.loads(self.raw_body.decode("utf-8"))
                except (json.JSONDecodeError, UnicodeDecodeError) as e:
                    logger.debug(f"Ignoring malformed JSON body on /{self.path}: {e}")
        return self._json

    def input(self, key: str, default: Any = None) -> Any:
        """Get an input value from the form body, falling back to JSON."""
        if key in self.body:
            return self.body[key]
        data = self.json()
        if isinstance(data, dict):
            return data.get(key, default)
        return default

    def validate(self, rules: Dict[str, str]) -> ValidationResult:
        """
        Check input fields against pipe-separated rules.

        =====================================================================
        RULES
        =====================================================================

            required    value present and non-empty
            email       looks like an e-mail address (when present)
            min:N       at least N characters
            max:N       at most N characters
            confirmed   equals the "<field>_confirmation" input

        =====================================================================

        Example:
            result = request.validate({
                "email": "required|email",
                "password": "required|min:8|confirmed",
            })
        """
        result = ValidationResult()

        for name, spec in rules.items():
            value = self.input(name)
            text = "" if value is None else str(value)
            messages = []

            for rule in spec.split("|"):
                rule = rule.strip()
                if rule == "required" and not text:
                    messages.append(f"{name} is required")
                elif rule == "email" and text and not EMAIL_PATTERN.match(text):
                    messages.append(f"{name} must be a valid email")
                elif rule.startswith("min:") and len(text) < int(rule[4:]):
                    messages.append(f"{name} must be at least {rule[4:]} characters")
                elif rule.startswith("max:") and len(text) > int(rule[4:]):
                    messages.append(f"{name} must not exceed {rule[4:]} characters")
                elif rule == "confirmed" and self.input(f"{name}_confirmation") != value:
                    messages.append(f"{name} confirmation does not match")

            if messages:
                result.errors[name] = messages
            elif value is not None:
                result.data[name] = value

        if result.errors:
            result.data = {}
        return result


def parse_cookies(header: str) -> Dict[str, str]:
    """Parse a Cookie header into a name → value dict."""
    cookies: Dict[str, str] = {}
    if not header:
        return cookies
    jar = SimpleCookie()
    try:
        jar.load(header)
    except CookieError:
        logger.debug(f"Ignoring malformed Cookie header: {header!r}")
        return cookies
    for name, morsel in jar.items():
        cookies[name] = morsel.value
    return cookies


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def iter_segments(path: str) -> Iterator[str]:
    """Yield the segments of a normalized path ("" yields nothing)."""
    if path:
        yield from path.split("/")
