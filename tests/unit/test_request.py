"""
Unit tests for the request model.
"""

import pytest

from fileroute.http.request import Headers, Request, normalize_path, parse_cookies

from conftest import build_environ, make_request


class TestNormalizePath:
    """Tests for path normalization."""

    @pytest.mark.parametrize("raw, expected", [
        ("/", ""),
        ("", ""),
        ("/blog/my-post/", "blog/my-post"),
        ("/blog//my-post", "blog/my-post"),
        ("/a/./b", "a/b"),
        ("/../../etc/passwd", "etc/passwd"),
        ("/search?q=1#top", "search"),
        ("/caf%C3%A9", "café"),
        ("//blog/my-post", "blog/my-post"),
        ("//admin/settings", "admin/settings"),
        ("/a?b/c", "a"),
    ])
    def test_normalize(self, raw, expected):
        """Paths are reduced to their segments."""
        assert normalize_path(raw) == expected


class TestRequestFromEnviron:
    """Tests for building requests from a WSGI environ."""

    def test_basic_fields(self):
        """Method, path, query and client address are extracted."""
        request = Request.from_environ(build_environ(
            "get", "/api/users/", query="page=1&page=2&limit=10", remote_addr="10.0.0.5",
        ))

        assert request.method == "GET"
        assert request.path == "api/users"
        assert request.get_query("page") == "1"
        assert request.get_query_list("page") == ["1", "2"]
        assert request.query == {"page": "1", "limit": "10"}
        assert request.get_query("missing", "default") == "default"
        assert request.client_address == ("10.0.0.5", 54321)

    def test_utf8_path_info(self):
        """Raw UTF-8 path bytes arrive latin-1 decoded and are re-decoded."""
        raw = "/blog/café".encode("utf-8").decode("latin-1")

        request = Request.from_environ(build_environ("GET", raw))

        assert request.path == "blog/café"

    def test_double_slash_keeps_first_segment(self):
        """A leading // is part of the path, not a network location."""
        assert make_request("GET", "//blog/my-post").path == "blog/my-post"

    def test_headers_are_case_insensitive(self):
        """Header lookups ignore case."""
        request = make_request(headers={"X-Custom-Header": "yes", "User-Agent": "pytest"})

        assert request.headers["x-custom-header"] == "yes"
        assert request.get_header("X-CUSTOM-HEADER") == "yes"
        assert "X-Custom-Header" in request.headers
        assert request.user_agent == "pytest"

    def test_cookies(self):
        """The Cookie header is parsed into a dict."""
        request = make_request(cookies={"access": "abc.def.ghi", "csrf": "token"})

        assert request.cookies == {"access": "abc.def.ghi", "csrf": "token"}

    def test_form_body(self):
        """URL-encoded forms fill the body."""
        request = make_request("POST", "/login", form={"email": "a@b.co", "password": "secret"})

        assert request.body == {"email": "a@b.co", "password": "secret"}
        assert request.input("email") == "a@b.co"
        assert request.is_json is False

    def test_json_body(self):
        """JSON bodies are parsed and reachable through input()."""
        request = make_request("POST", "/api/items", json_body={"name": "widget", "qty": 2})

        assert request.is_json is True
        assert request.wants_json is True
        assert request.json() == {"name": "widget", "qty": 2}
        assert request.input("name") == "widget"
        assert request.input("missing", "fallback") == "fallback"

    def test_malformed_json_is_empty(self):
        """Malformed JSON reads as an empty object."""
        request = make_request(
            "POST", "/api/items",
            headers={"Content-Type": "application/json", "Content-Length": "9"},
        )
        request.raw_body = b"{not json"
        request._json = None

        assert request.json() == {}

    def test_multipart_body(self):
        """Multipart fields go to body, files to files."""
        boundary = "----fileroute"
        body = (
            f"--{boundary}\r\n"
            'Content-Disposition: form-data; name="title"\r\n\r\n'
            "Hello\r\n"
            f"--{boundary}\r\n"
            'Content-Disposition: form-data; name="avatar"; filename="me.txt"\r\n'
            "Content-Type: text/plain\r\n\r\n"
            "file contents\r\n"
            f"--{boundary}--\r\n"
        ).encode()
        request = Request.from_environ(build_environ(
            "POST", "/upload",
            headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
            body=body,
        ))

        assert request.body["title"] == "Hello"
        assert request.files["avatar"].filename == "me.txt"
        assert request.files["avatar"].data == b"file contents"
        assert request.files["avatar"].size == 13


class TestRequestFlags:
    """Tests for content negotiation helpers."""

    def test_is_ajax(self):
        """XMLHttpRequest asks for JSON."""
        request = make_request(headers={"X-Requested-With": "XMLHttpRequest"})
        assert request.is_ajax is True
        assert request.wants_json is True

    def test_accept_json(self):
        """Accept: application/json asks for JSON."""
        request = make_request(headers={"Accept": "application/json"})
        assert request.is_json is False
        assert request.wants_json is True

    def test_browser(self):
        """Browsers asking for HTML get HTML."""
        request = make_request(headers={"Accept": "text/html"})
        assert request.wants_json is False

    def test_meta_views(self):
        """params, user and csp_nonce are views over meta."""
        request = make_request()
        assert request.params == {}
        assert request.user is None

        request.meta.update({"params": {"slug": "x"}, "user": {"id": 1}, "csp_nonce": "n"})
        assert request.params == {"slug": "x"}
        assert request.user == {"id": 1}
        assert request.csp_nonce == "n"


class TestValidate:
    """Tests for Request.validate."""

    def test_valid_input(self):
        """Valid input is returned in data."""
        request = make_request("POST", "/register", form={
            "email": "user@example.com",
            "password": "longenough",
        })
        result = request.validate({"email": "required|email", "password": "required|min:8"})

        assert result.ok
        assert result.data == {"email": "user@example.com", "password": "longenough"}

    def test_errors_per_field(self):
        """Each failing field gets its own message."""
        request = make_request("POST", "/register", form={"email": "not-an-email", "password": "short"})
        result = request.validate({
            "email": "required|email",
            "password": "required|min:8",
            "name": "required",
        })

        assert not result.ok
        assert result.data == {}
        assert result.errors["email"] == ["email must be a valid email"]
        assert result.errors["password"] == ["password must be at least 8 characters"]
        assert result.errors["name"] == ["name is required"]

    def test_max_and_confirmed(self):
        """max and confirmed rules."""
        request = make_request("POST", "/x", json_body={
            "name": "x" * 11,
            "password": "secret123",
            "password_confirmation": "secret124",
        })
        result = request.validate({"name": "max:10", "password": "confirmed"})

        assert result.errors == {
            "name": ["name must not exceed 10 characters"],
            "password": ["password confirmation does not match"],
        }


class TestHelpers:

    def test_headers_mapping(self):
        """Headers supports case-insensitive delete."""
        headers = Headers({"Content-Type": "text/html"})
        assert headers.get("content-type") == "text/html"
        del headers["CONTENT-TYPE"]
        assert "content-type" not in headers

    def test_parse_cookies_malformed(self):
        """Empty and simple cookie headers."""
        assert parse_cookies("") == {}
        assert parse_cookies("a=1; b=2") == {"a": "1", "b": "2"}
