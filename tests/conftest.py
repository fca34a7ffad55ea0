"""
pytest configuration and fixtures.
"""

import io
import json
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlencode
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fileroute.auth.tokens import TokenService
from fileroute.config import AppConfig
from fileroute.http.request import Request


SECRET = "test-secret-key-with-enough-length-for-hs256"


def build_environ(
    method: str = "GET",
    path: str = "/",
    query: str = "",
    headers: Optional[Dict[str, str]] = None,
    body: bytes = b"",
    remote_addr: str = "127.0.0.1",
) -> dict:
    """A minimal WSGI environ."""
    environ = {
        "REQUEST_METHOD": method,
        "PATH_INFO": path,
        "QUERY_STRING": query,
        "REMOTE_ADDR": remote_addr,
        "REMOTE_PORT": "54321",
        "SERVER_NAME": "localhost",
        "SERVER_PORT": "8000",
        "SERVER_PROTOCOL": "HTTP/1.1",
        "wsgi.input": io.BytesIO(body),
        "wsgi.url_scheme": "http",
    }
    if body:
        environ["CONTENT_LENGTH"] = str(len(body))
    for name, value in (headers or {}).items():
        key = name.upper().replace("-", "_")
        if key in ("CONTENT_TYPE", "CONTENT_LENGTH"):
            environ[key] = value
        else:
            environ[f"HTTP_{key}"] = value
    return environ


def make_request(
    method: str = "GET",
    path: str = "/",
    headers: Optional[Dict[str, str]] = None,
    form: Optional[Dict[str, str]] = None,
    json_body=None,
    cookies: Optional[Dict[str, str]] = None,
    remote_addr: str = "127.0.0.1",
) -> Request:
    """Build a Request through the same path the WSGI entry point uses."""
    headers = dict(headers or {})
    body = b""
    if form is not None:
        body = urlencode(form).encode()
        headers.setdefault("Content-Type", "application/x-www-form-urlencoded")
    elif json_body is not None:
        body = json.dumps(json_body).encode()
        headers.setdefault("Content-Type", "application/json")
    if cookies:
        headers["Cookie"] = "; ".join(f"{k}={v}" for k, v in cookies.items())

    path, _, query = path.partition("?")
    return Request.from_environ(
        build_environ(method, path, query, headers, body, remote_addr)
    )


class FakeClock:
    """Controllable time source."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """The sorted-set subset of redis-py used by the rate-limit store."""

    def __init__(self):
        self.sets: Dict[str, Dict[str, float]] = {}
        self.expiries: Dict[str, int] = {}

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    def zremrangebyscore(self, key, low, high):
        members = self.sets.get(key, {})
        low = float("-inf") if low == "-inf" else float(low)
        doomed = [m for m, score in members.items() if low <= score <= float(high)]
        for member in doomed:
            del members[member]
        return len(doomed)

    def zcard(self, key):
        return len(self.sets.get(key, {}))

    def zadd(self, key, mapping):
        self.sets.setdefault(key, {}).update(mapping)
        return len(mapping)

    def zrem(self, key, *members):
        bucket = self.sets.get(key, {})
        removed = [m for m in members if bucket.pop(m, None) is not None]
        return len(removed)

    def expire(self, key, seconds):
        self.expiries[key] = seconds
        return True

    def delete(self, key):
        self.sets.pop(key, None)
        return 1


class FakePipeline:
    def __init__(self, client: FakeRedis):
        self.client = client
        self.calls = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return queue

    def execute(self):
        results = [getattr(self.client, name)(*args, **kwargs) for name, args, kwargs in self.calls]
        self.calls = []
        return results


class FakeUsers:
    """In-memory user lookup."""

    def __init__(self, users=None):
        self.users = {u["id"]: u for u in users or []}

    def find_by_id(self, user_id):
        try:
            return self.users.get(int(user_id))
        except (TypeError, ValueError):
            return None


def write(root: Path, relative: str, content: str = "") -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tokens(clock) -> TokenService:
    return TokenService(secret=SECRET, clock=clock)


@pytest.fixture
def app_dir(tmp_path: Path) -> Path:
    """
    An application tree exercising every routing feature:

        /                     page with the root layout
        /blog/<slug>          dynamic page under a nested layout
        /blog/broken          page that fails, caught by blog/error.html
        /slow                 page with a loading fragment
        /fails                page that fails with no error fragment
        /api/items            method table (get, post)
        /api/echo             single handler
        /api/broken           handler file that fails to import
        /contact              page + POST-only handler
        views/errors/404.html
    """
    root = tmp_path / "app"
    write(root, "layout.html", "<html>{{ title | default('') }}|{{ content }}</html>")
    write(root, "page.html", "home")
    write(root, "blog/layout.html", "<blog>{{ content }}</blog>")
    write(root, "blog/error.html", "blog error: {{ error }} ({{ params.slug }})")
    write(root, "blog/[slug]/page.html", '{% set title = "Post" %}post {{ params.slug }}')
    write(root, "blog/broken/page.html", "{{ missing.attribute.lookup }}")
    write(root, "slow/loading.html", "loading...")
    write(root, "slow/page.html", "slow page")
    write(root, "fails/page.html", "{{ 1 // 0 }}")
    write(
        root,
        "api/items/+server.py",
        "def get(request):\n"
        "    return {'items': [], 'params': request.params}\n"
        "\n"
        "def post(request):\n"
        "    return {'created': request.input('name')}\n",
    )
    write(
        root,
        "api/echo/+server.py",
        "def handler(request):\n"
        "    return {'method': request.method}\n",
    )
    write(root, "api/broken/+server.py", "raise RuntimeError('boom')\n")
    write(root, "api/users/[id]/+server.py", "handler = {'get': lambda request: {'id': request.params['id']}}\n")
    write(root, "contact/page.html", "contact form")
    write(root, "contact/+server.py", "def post(request):\n    return 'sent'\n")
    write(root, "views/errors/404.html", "custom 404")
    return root


@pytest.fixture
def app_config(app_dir: Path, tmp_path: Path) -> AppConfig:
    return AppConfig(
        app_dir=str(app_dir),
        jwt_secret=SECRET,
        db_path=str(tmp_path / "db" / "app.db"),
    )
