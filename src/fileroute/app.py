"""
=============================================================================
APPLICATION
=============================================================================

Wires the pieces together and exposes one WSGI callable:

    WSGI server
        │  environ
        ▼
    Application.__call__ ──► Request.from_environ
        │
        ▼
    AccessLog → SecurityHeaders → CSRF → LoadPrincipal → [your middleware] → FileRouter
        │
        ▼
    start_response(status, headers) + body chunks

=============================================================================
USAGE
=============================================================================

    from fileroute import Application, AppConfig

    app = Application(AppConfig.from_env(env_file=".env"))
    app.rate_limit(5, 60, paths=["login", "register"], methods=["POST"])
    app.require_auth(paths=["profile", "api/users"])

    # any WSGI server:
    #   gunicorn 'myproject.wsgi:app'
    # or the bundled development server:
    app.run()

Handlers reach the application's services through the request:

    def post(request):
        pair = request.app.tokens.issue_tokens(user["id"])

=============================================================================
"""

from socketserver import ThreadingMixIn
from typing import Any, Callable, Iterable, List, Optional
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server
import logging
import traceback

from .auth.middleware import LoadPrincipalMiddleware, RequireAuthenticationMiddleware
from .auth.tokens import TokenService
from .config import AppConfig
from .http.request import Request
from .http.response import HTTPResponse, ResponseBuilder
from .http.status_codes import HTTPStatus
from .middleware.access_log import AccessLogMiddleware
from .middleware.base import MiddlewareLike, MiddlewarePipeline, PathScopedMiddleware
from .middleware.csrf import CSRFMiddleware
from .middleware.rate_limit import (
    InMemoryRateLimitStore,
    RateLimitMiddleware,
    RateLimitStore,
    RedisRateLimitStore,
)
from .middleware.security import SecurityHeadersMiddleware
from .routing.router import FileRouter
from .storage import Database
from .users import UserRepository


logger = logging.getLogger(__name__)


class Application:
    """
    A file-routed web application.

    Args:
        config: Settings (defaults to AppConfig())
        tokens: Token service (defaults to one built from config)
        users: User lookup (defaults to a UserRepository over config.db_path)
        rate_limit_store: Store shared by every rate-limit step
        reload: Rescan the route tree when files change
        default_middleware: Install AccessLog, SecurityHeaders, CSRF and
                            LoadPrincipal
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        tokens: Optional[TokenService] = None,
        users: Optional[Any] = None,
        rate_limit_store: Optional[RateLimitStore] = None,
        reload: bool = False,
        default_middleware: bool = True,
    ):
        self.config = config or AppConfig()
        self.config.validate()

        self.router = FileRouter(self.config.app_dir, debug=self.config.debug, reload=reload)
        self.db = Database(self.config.db_path)
        self.users = users if users is not None else UserRepository(self.db)
        self.tokens = tokens or TokenService.from_config(self.config)
        self.rate_limit_store = rate_limit_store or self._make_rate_limit_store()

        self._middleware = MiddlewarePipeline()
        self._handler: Optional[Callable[[Request], HTTPResponse]] = None

        if default_middleware:
            self._install_default_middleware()

    def _make_rate_limit_store(self) -> RateLimitStore:
        if self.config.rate_limit_backend == "redis":
            logger.info("Using Redis rate-limit store")
            return RedisRateLimitStore.from_url(self.config.redis_url)
        return InMemoryRateLimitStore()

    def _install_default_middleware(self) -> None:
        self.use(AccessLogMiddleware())
        self.use(SecurityHeadersMiddleware(hsts=self.config.secure_cookies))
        if self.config.csrf_enabled:
            self.use(CSRFMiddleware(secure=self.config.secure_cookies))
        self.use(LoadPrincipalMiddleware(self.tokens, self.users))

    # =========================================================================
    # MIDDLEWARE REGISTRATION
    # =========================================================================

    def use(self, middleware: MiddlewareLike, paths: Optional[List[str]] = None) -> "Application":
        """
        Append a middleware step, optionally limited to path prefixes.

        Steps run in registration order, after the defaults.
        """
        if paths is not None:
            middleware = PathScopedMiddleware(middleware, paths)
        self._middleware.add(middleware)
        self._handler = None
        return self

    def rate_limit(
        self,
        max_attempts: int,
        decay_seconds: float,
        paths: Optional[List[str]] = None,
        methods: Optional[List[str]] = None,
    ) -> "Application":
        """Rate-limit matching paths (and methods) using the application's store."""
        return self.use(
            RateLimitMiddleware(max_attempts, decay_seconds, store=self.rate_limit_store, methods=methods),
            paths=paths,
        )

    def require_auth(self, paths: Optional[List[str]] = None) -> "Application":
        """Require a principal on matching paths (all paths when None)."""
        return self.use(RequireAuthenticationMiddleware(self.config.login_path, protect=paths))

    @property
    def middleware(self) -> MiddlewarePipeline:
        return self._middleware

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def handle(self, request: Request) -> HTTPResponse:
        """
        Run a request through the middleware chain and router.

        Never raises: anything that escapes becomes a 500.
        """
        if self._handler is None:
            self._handler = self._middleware.wrap(self.router.dispatch)

        request.meta["app"] = self
        try:
            return self._handler(request)
        except Exception as e:
            logger.error(
                f"Unhandled error: {type(e).__name__}: {e}",
                extra={"context": {"path": request.path, "trace": traceback.format_exc()}},
            )
            return self._internal_error(request, e)

    def _internal_error(self, request: Request, error: Exception) -> HTTPResponse:
        status = HTTPStatus.INTERNAL_SERVER_ERROR
        if request.wants_json:
            body = {"error": status.phrase}
            if self.config.debug:
                body["message"] = str(error)
            return ResponseBuilder().status(status).json(body).build()
        message = status.phrase
        if self.config.debug:
            message = f"{message}\n\n{traceback.format_exc()}"
        return ResponseBuilder().status(status).text(message).build()

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        """WSGI entry point."""
        request = Request.from_environ(environ)
        response = self.handle(request)
        start_response(response.status_line, response.header_list())
        if request.method == "HEAD":
            return []
        return response.iter_body()

    # =========================================================================
    # DEVELOPMENT SERVER
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """Serve with the threaded wsgiref server until Ctrl+C."""
        host = host or self.config.host
        port = port or self.config.port

        with make_server(host, port, self, server_class=ThreadingWSGIServer,
                         handler_class=QuietRequestHandler) as server:
            logger.info(f"Serving {self.router.tree.root_dir} on http://{host}:{port}")
            try:
                server.serve_forever()
            except KeyboardInterrupt:
                logger.info("Received keyboard interrupt")
        logger.info("Server stopped")


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """One thread per request."""
    daemon_threads = True


class QuietRequestHandler(WSGIRequestHandler):
    """wsgiref's own access lines go to DEBUG; AccessLogMiddleware logs requests."""

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug(format % args)


def create_app(config: Optional[AppConfig] = None, **kwargs: Any) -> Application:
    """Build an Application from the environment when no config is given."""
    return Application(config or AppConfig.from_env(env_file=".env"), **kwargs)
