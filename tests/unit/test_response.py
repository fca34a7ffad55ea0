"""
Unit tests for response building.
"""

from datetime import datetime, timezone
import json

import pytest

from fileroute.http.response import (
    HTTPResponse,
    ResponseBuilder,
    format_cookie,
    format_http_date,
    json_response,
    method_not_allowed,
    not_found,
    ok,
    redirect,
    to_response,
    unauthorized,
)
from fileroute.http.status_codes import HTTPStatus


class TestHTTPResponse:
    """Tests for the response dataclass."""

    def test_status_line(self):
        """Status lines carry the reason phrase."""
        assert HTTPResponse(status=HTTPStatus.NOT_FOUND).status_line == "404 Not Found"
        assert HTTPResponse(status=HTTPStatus.TOO_MANY_REQUESTS).status_line == "429 Too Many Requests"

    def test_header_list_adds_content_length(self):
        """Content-Length is added for buffered bodies."""
        response = HTTPResponse(body=b"Hello")
        response.set_header("Content-Type", "text/plain")

        assert response.header_list() == [
            ("Content-Type", "text/plain"),
            ("Content-Length", "5"),
        ]

    def test_streamed_response_has_no_content_length(self):
        """Streamed bodies have no Content-Length."""
        response = HTTPResponse(stream=iter([b"a", b"b"]))

        assert ("Content-Length", "0") not in response.header_list()
        assert list(response.iter_body()) == [b"a", b"b"]

    def test_one_set_cookie_entry_per_cookie(self):
        """Every cookie gets its own Set-Cookie entry."""
        response = HTTPResponse()
        response.set_cookie("access", "aaa", httponly=False)
        response.set_cookie("refresh", "bbb")

        cookies = [value for name, value in response.header_list() if name == "Set-Cookie"]
        assert len(cookies) == 2
        assert cookies[0].startswith("access=aaa")
        assert "HttpOnly" not in cookies[0]
        assert "HttpOnly" in cookies[1]

    def test_delete_cookie_expires_in_the_past(self):
        """Deleted cookies expire at the epoch."""
        response = HTTPResponse().delete_cookie("refresh")

        assert response.cookies[0].startswith("refresh=")
        assert "expires=Thu, 01 Jan 1970 00:00:00 GMT" in response.cookies[0]

    def test_set_body_encodes_text(self):
        """Text bodies are UTF-8 encoded."""
        assert HTTPResponse().set_body("héllo").body == "héllo".encode("utf-8")


class TestResponseBuilder:
    """Tests for the fluent builder."""

    def test_json(self):
        """Builder sets status, JSON body and headers."""
        response = (ResponseBuilder()
            .status(HTTPStatus.CREATED)
            .json({"message": "Hello"})
            .header("X-Custom", "value")
            .build())

        assert response.status == HTTPStatus.CREATED
        assert response.headers["Content-Type"] == "application/json; charset=utf-8"
        assert response.headers["X-Custom"] == "value"
        assert json.loads(response.body) == {"message": "Hello"}

    def test_redirect(self):
        """Redirects are 302 unless permanent."""
        response = ResponseBuilder().redirect("/login").build()
        assert response.status == HTTPStatus.FOUND
        assert response.headers["Location"] == "/login"

        permanent = ResponseBuilder().redirect("/new", permanent=True).build()
        assert permanent.status == HTTPStatus.MOVED_PERMANENTLY

    def test_cookie(self):
        """Builder cookies default to SameSite=Lax."""
        response = ResponseBuilder().cookie("csrf", "tok", secure=True).build()

        assert "csrf=tok" in response.cookies[0]
        assert "Secure" in response.cookies[0]
        assert "SameSite=Lax" in response.cookies[0]


class TestHelpers:
    """Tests for the one-liner helpers."""

    def test_ok_detects_body_type(self):
        """ok() picks the content type from the body."""
        assert ok({"a": 1}).headers["Content-Type"].startswith("application/json")
        assert ok("<p>hi</p>").headers["Content-Type"] == "text/html; charset=utf-8"
        assert ok(b"raw", "image/png").headers["Content-Type"] == "image/png"

    def test_json_response_status(self):
        """json_response takes a status."""
        response = json_response({"errors": {}}, HTTPStatus.UNPROCESSABLE_ENTITY)
        assert response.status == 422

    def test_redirect(self):
        """redirect() sets Location."""
        assert redirect("/").headers["Location"] == "/"

    def test_unauthorized(self):
        """401 with a Bearer challenge."""
        response = unauthorized()
        assert response.status == HTTPStatus.UNAUTHORIZED
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert json.loads(response.body) == {"error": "Unauthorized"}

    def test_not_found(self):
        """404 as plain text."""
        response = not_found()
        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"Not Found"

    def test_method_not_allowed(self):
        """405 lists the allowed methods."""
        response = method_not_allowed(["GET", "POST"])
        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, POST"
        assert json.loads(response.body) == {"error": "Method not allowed"}


class TestToResponse:
    """Tests for return value normalization."""

    def test_response_passes_through(self):
        """Responses are returned untouched."""
        response = HTTPResponse(status=HTTPStatus.NO_CONTENT)
        assert to_response(response) is response

    def test_none_is_empty_200(self):
        """None is an empty 200."""
        response = to_response(None)
        assert response.status == HTTPStatus.OK
        assert response.body == b""

    @pytest.mark.parametrize("value, content_type", [
        ({"a": 1}, "application/json; charset=utf-8"),
        ([1, 2], "application/json; charset=utf-8"),
        ("<b>x</b>", "text/html; charset=utf-8"),
    ])
    def test_values(self, value, content_type):
        """Dicts and lists are JSON, strings are HTML."""
        response = to_response(value)
        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"] == content_type


class TestUtilities:

    def test_format_http_date(self):
        """Dates use the RFC 7231 format."""
        dt = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert format_http_date(dt) == "Thu, 01 Jan 2026 12:00:00 GMT"

    def test_format_cookie_without_samesite(self):
        """SameSite and HttpOnly can be left out."""
        cookie = format_cookie("a", "b", samesite=None, httponly=False)
        assert cookie == "a=b; Path=/"


class TestHTTPStatus:

    def test_phrase(self):
        """Reason phrases."""
        assert HTTPStatus.OK.phrase == "OK"
        assert HTTPStatus.METHOD_NOT_ALLOWED.phrase == "Method Not Allowed"
        assert HTTPStatus.INTERNAL_SERVER_ERROR.phrase == "Internal Server Error"

    def test_classification(self):
        """Redirect and error classification."""
        assert HTTPStatus.FOUND.is_redirect
        assert not HTTPStatus.OK.is_redirect
        assert HTTPStatus.NOT_FOUND.is_error
        assert not HTTPStatus.SEE_OTHER.is_error
