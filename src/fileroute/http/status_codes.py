"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes the framework emits, with their reason phrases.

    ┌───────────┬──────────────────────────────────────────────────────────┐
    │   Code    │  Emitted when                                            │
    ├───────────┼──────────────────────────────────────────────────────────┤
    │  200      │  Handler or page rendered successfully                   │
    │  302      │  Redirect (login, after form posts)                      │
    │  401      │  Protected route without a valid principal (JSON)        │
    │  403      │  CSRF token mismatch                                     │
    │  404      │  No directory / handler / page matched the path          │
    │  405      │  Method table has no entry for the request method        │
    │  429      │  Rate limit exceeded                                     │
    │  500      │  Unhandled error while rendering a page                  │
    └───────────┴──────────────────────────────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    Extends IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    # 2xx SUCCESS
    OK = 200
    CREATED = 201
    NO_CONTENT = 204

    # 3xx REDIRECTION
    MOVED_PERMANENTLY = 301
    FOUND = 302
    SEE_OTHER = 303

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    UNPROCESSABLE_ENTITY = 422
    TOO_MANY_REQUESTS = 429

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503

    @property
    def phrase(self) -> str:
        """Reason phrase used in the status line ("404 Not Found")."""
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_redirect(self) -> bool:
        return 300 <= self < 400

    @property
    def is_error(self) -> bool:
        """Check if this is an error status code (4xx or 5xx)."""
        return self >= 400


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.SEE_OTHER: "See Other",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.UNAUTHORIZED: "Unauthorized",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.UNPROCESSABLE_ENTITY: "Unprocessable Entity",
    HTTPStatus.TOO_MANY_REQUESTS: "Too Many Requests",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
}
