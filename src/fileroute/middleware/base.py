"""
=============================================================================
MIDDLEWARE CHAIN
=============================================================================

Cross-cutting concerns (security headers, CSRF, authentication, rate
limiting, access logging) run as an ordered chain around the router.

    Request ──►  AccessLog ─► SecurityHeaders ─► CSRF ─► LoadPrincipal ─► Router
    Response ◄── AccessLog ◄─ SecurityHeaders ◄─ CSRF ◄─ LoadPrincipal ◄──┘

Each step receives the request and `next`, the rest of the chain:

    def step(request, next):
        if not allowed(request):
            return forbidden()          # terminal: later steps never run
        response = next(request)        # continue
        response.set_header("X-Step", "done")
        return response

There is no implicit continuation. A step that does not call `next` ends
the request; if it returns None the client gets an empty 200.

=============================================================================
COMPOSITION
=============================================================================

The chain is built right to left, once:

    given [A, B, C] and dispatch

        current = dispatch
        current = wrap(C, current)
        current = wrap(B, current)
        current = wrap(A, current)      → A runs first

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterator, List, Optional, Union
import logging

from ..http.request import Request
from ..http.response import HTTPResponse, to_response


logger = logging.getLogger(__name__)


NextHandler = Callable[[Request], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware steps.

    Subclasses implement __call__(request, next) and either return
    next(request) (possibly after changing the response) or return their
    own response without calling next.
    """

    @abstractmethod
    def __call__(self, request: Request, next: NextHandler) -> Optional[HTTPResponse]:
        """
        Process the request.

        Args:
            request: The inbound request; only request.meta may be changed
            next: The rest of the chain

        Returns:
            A response, or None to end the request with an empty 200
        """
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


class FunctionMiddleware(Middleware):
    """
    A plain (request, next) function used as middleware.

        def add_header(request, next):
            response = next(request)
            response.set_header("X-Custom", "value")
            return response

        pipeline.add(FunctionMiddleware(add_header))
    """

    def __init__(
        self,
        func: Callable[[Request, NextHandler], Any],
        name: Optional[str] = None,
    ):
        self._func = func
        self._name = name or getattr(func, "__name__", type(func).__name__)

    def __call__(self, request: Request, next: NextHandler) -> Any:
        return self._func(request, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(func: Callable[[Request, NextHandler], Any]) -> FunctionMiddleware:
    """Decorator form of FunctionMiddleware."""
    return FunctionMiddleware(func)


MiddlewareLike = Union[Middleware, Callable[[Request, NextHandler], Any]]


class MiddlewarePipeline:
    """
    Ordered list of middleware composed around a terminal handler.

    Usage:
        pipeline = MiddlewarePipeline()
        pipeline.add(AccessLogMiddleware())
        pipeline.add(SecurityHeadersMiddleware())
        handler = pipeline.wrap(router.dispatch)
        response = handler(request)

    First added = outermost = runs first.
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: MiddlewareLike) -> "MiddlewarePipeline":
        """Append a step. Plain functions are wrapped in FunctionMiddleware."""
        if not isinstance(middleware, Middleware):
            middleware = FunctionMiddleware(middleware)
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: MiddlewareLike) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: Callable[[Request], Any]) -> NextHandler:
        """
        Build the chain around `handler`.

        Wrapping in reverse order makes the first-added middleware the
        outermost one.
        """
        current = self._terminal(handler)
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _terminal(self, handler: Callable[[Request], Any]) -> NextHandler:
        def terminal(request: Request) -> HTTPResponse:
            return to_response(handler(request))
        return terminal

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler,
    ) -> NextHandler:
        # Closure over this step and the rest of the chain
        def wrapped(request: Request) -> HTTPResponse:
            return to_response(middleware(request, next_handler))
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self._middleware)


class PathScopedMiddleware(Middleware):
    """
    Run a step only for paths under the given prefixes.

        pipeline.add(PathScopedMiddleware(limit(5, 60), ["login", "api/auth"]))

    Prefixes are matched on whole segments: "api" covers "api" and
    "api/users" but not "apiary".
    """

    def __init__(self, middleware: MiddlewareLike, prefixes: List[str]):
        if not isinstance(middleware, Middleware):
            middleware = FunctionMiddleware(middleware)
        self.middleware = middleware
        self.prefixes = [p.strip("/") for p in prefixes]

    def applies_to(self, path: str) -> bool:
        return any(path_matches(path, prefix) for prefix in self.prefixes)

    def __call__(self, request: Request, next: NextHandler) -> Optional[HTTPResponse]:
        if self.applies_to(request.path):
            return self.middleware(request, next)
        return next(request)

    @property
    def name(self) -> str:
        return f"{self.middleware.name}[{', '.join(self.prefixes)}]"


def path_matches(path: str, prefix: str) -> bool:
    """Segment-wise prefix test on normalized paths ("" matches everything)."""
    prefix = prefix.strip("/")
    if not prefix:
        return True
    return path == prefix or path.startswith(prefix + "/")
