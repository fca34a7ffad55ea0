"""
fileroute: a small web framework whose routes are folders.

    app/
    ├── page.html              → /
    ├── blog/[slug]/page.html  → /blog/<slug>
    └── api/users/+server.py   → /api/users

Quick start:

    from fileroute import Application, AppConfig

    app = Application(AppConfig.from_env(env_file=".env"))
    app.run()
"""

__version__ = "1.0.0"

from .app import Application, create_app
from .config import AppConfig, env
from .exceptions import (
    ConfigurationError,
    FilerouteError,
    RouteLoadError,
    TemplateNotFoundError,
)
from .http import (
    HTTPResponse,
    HTTPStatus,
    Request,
    ResponseBuilder,
    json_response,
    redirect,
)
from .middleware import Middleware, MiddlewarePipeline, limit
from .routing import FileRouter, RouteTree, resolve

__all__ = [
    "__version__",
    "Application",
    "create_app",
    "AppConfig",
    "env",
    "FilerouteError",
    "ConfigurationError",
    "RouteLoadError",
    "TemplateNotFoundError",
    "Request",
    "HTTPResponse",
    "HTTPStatus",
    "ResponseBuilder",
    "json_response",
    "redirect",
    "Middleware",
    "MiddlewarePipeline",
    "limit",
    "FileRouter",
    "RouteTree",
    "resolve",
]
