"""
HTTP primitives: the request model, response values and status codes.
"""

from .request import Request, Headers, UploadedFile, ValidationResult, normalize_path
from .response import (
    HTTPResponse,
    ResponseBuilder,
    ok,
    json_response,
    html_response,
    text_response,
    redirect,
    unauthorized,
    forbidden,
    not_found,
    method_not_allowed,
    to_response,
)
from .status_codes import HTTPStatus

__all__ = [
    "Request",
    "Headers",
    "UploadedFile",
    "ValidationResult",
    "normalize_path",
    "HTTPResponse",
    "ResponseBuilder",
    "HTTPStatus",
    "ok",
    "json_response",
    "html_response",
    "text_response",
    "redirect",
    "unauthorized",
    "forbidden",
    "not_found",
    "method_not_allowed",
    "to_response",
]
