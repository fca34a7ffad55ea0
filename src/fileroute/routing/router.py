"""
=============================================================================
FILE-BASED ROUTER
=============================================================================

The terminal step of the middleware chain. Given a request it resolves
the path against the route tree and either runs an API handler or renders
a page.

    dispatch(request)
        │
        ├── resolve(tree, path)
        │
        ├── API   → +server.py handler (405 when the method is missing)
        ├── PAGE  → loading? → page → layouts (deepest first) → 200
        │                        └── failure → error.html or 500
        └── NONE  → views/errors/404.html or "Not Found"

=============================================================================
PAGE COMPOSITION
=============================================================================

For /blog/my-post with this tree:

    app/layout.html
    app/blog/layout.html
    app/blog/[slug]/page.html

    content = render(blog/[slug]/page.html)
    content = render(blog/layout.html, content)   ← deepest layout first
    content = render(layout.html, content)         ← root layout is the shell

=============================================================================
PROGRESSIVE OUTPUT
=============================================================================

When a loading.html exists on the matched path, it is sent as the first
chunk of a streamed 200 response and the page follows when it is ready.
The status line is already out by then, so a failure can only be reported
in the body (error fragment or generic message).

Without a loading fragment the page is rendered before anything is sent,
so a failure carries its real status: 500.

=============================================================================
"""

from typing import Iterator, Optional
import logging
import threading
import traceback

from ..exceptions import RouteLoadError
from ..http.request import Request
from ..http.response import (
    HTTPResponse,
    ResponseBuilder,
    method_not_allowed,
    to_response,
)
from ..http.status_codes import HTTPStatus
from ..templates import TemplateRenderer, debug_error_html
from .handlers import HandlerCache, MethodTable
from .tree import (
    API_FILE,
    ERROR_FILE,
    LAYOUT_FILE,
    LOADING_FILE,
    PAGE_FILE,
    MatchKind,
    Resolution,
    RouteTree,
    resolve,
)


logger = logging.getLogger(__name__)


ERROR_VIEW = "views/errors/{code}.html"

GENERIC_MESSAGES = {
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
}


class FileRouter:
    """
    Maps request paths onto an application directory.

    Usage:
        router = FileRouter("app", debug=True)
        response = router.dispatch(request)

    Args:
        app_dir: Root of the route tree
        debug: Show error details in generic 500 responses
        reload: Rescan the tree when it changes on disk
        renderer: Template renderer (defaults to one rooted at app_dir)
    """

    def __init__(
        self,
        app_dir: str,
        debug: bool = False,
        reload: bool = False,
        renderer: Optional[TemplateRenderer] = None,
    ):
        self.debug = debug
        self.reload = reload
        self._tree = RouteTree.scan(app_dir)
        self._tree_lock = threading.Lock()
        self.renderer = renderer or TemplateRenderer(self._tree.root_dir, debug=debug)
        self.handlers = HandlerCache()

    @property
    def tree(self) -> RouteTree:
        """Current snapshot; rebuilt first when reloading and stale."""
        if self.reload and self._tree.is_stale():
            with self._tree_lock:
                if self._tree.is_stale():
                    logger.info("Route tree changed on disk, rescanning")
                    self._tree = RouteTree.scan(self._tree.root_dir)
        return self._tree

    def resolve(self, path: str) -> Resolution:
        return resolve(self.tree, path)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def dispatch(self, request: Request) -> HTTPResponse:
        """Route the request; always returns a response."""
        resolution = self.resolve(request.path)
        request.meta["params"] = dict(resolution.params)

        if resolution.kind is MatchKind.API:
            response = self._dispatch_api(request, resolution)
            if response is not None:
                return response

        if resolution.leaf.has(PAGE_FILE) and resolution.complete:
            return self._dispatch_page(request, resolution)

        return self.error_response(request, HTTPStatus.NOT_FOUND)

    __call__ = dispatch

    def _dispatch_api(self, request: Request, resolution: Resolution) -> Optional[HTTPResponse]:
        """
        Run the folder's +server.py.

        Returns None only when a method table lacks a GET/HEAD handler and
        the same folder has a page: the page answers instead.
        """
        path = resolution.leaf.file(API_FILE)
        try:
            route_handler = self.handlers.get(path)
        except RouteLoadError as e:
            logger.error(f"Could not load handler: {e}", extra={"context": {"path": request.path}})
            return self._internal_error(request, e)

        func = route_handler.handler_for(request.method)
        if func is None and isinstance(route_handler, MethodTable):
            if request.method in ("GET", "HEAD") and resolution.leaf.has(PAGE_FILE):
                return None
            return method_not_allowed(route_handler.allowed_methods)

        return to_response(func(request))

    def _dispatch_page(self, request: Request, resolution: Resolution) -> HTTPResponse:
        loading = resolution.nearest(LOADING_FILE)
        if loading is None:
            return self._render_buffered(request, resolution)

        return HTTPResponse(
            status=HTTPStatus.OK,
            headers={"Content-Type": "text/html; charset=utf-8"},
            stream=self._render_streamed(request, resolution, loading.template(LOADING_FILE)),
        )

    # =========================================================================
    # PAGE RENDERING
    # =========================================================================

    def render_page(self, request: Request, resolution: Resolution) -> str:
        """Render the page and wrap it in every layout on the path."""
        content, exported = self.renderer.render_page(
            resolution.leaf.template(PAGE_FILE), request
        )
        for node in reversed(resolution.collect(LAYOUT_FILE)):
            content = self.renderer.render_layout(
                node.template(LAYOUT_FILE), request, content, exported
            )
        return content

    def _render_buffered(self, request: Request, resolution: Resolution) -> HTTPResponse:
        try:
            html = self.render_page(request, resolution)
        except Exception as e:
            self._log_page_error(request, e)
            fragment = self._render_error_fragment(request, resolution, e)
            if fragment is not None:
                return (ResponseBuilder()
                    .status(HTTPStatus.INTERNAL_SERVER_ERROR)
                    .html(fragment)
                    .build())
            return self._internal_error(request, e)

        return ResponseBuilder().html(html).build()

    def _render_streamed(
        self,
        request: Request,
        resolution: Resolution,
        loading_template: str,
    ) -> Iterator[bytes]:
        try:
            yield self.renderer.render(loading_template, request).encode("utf-8")
        except Exception as e:
            # Loading output is best effort; the page still renders
            logger.warning(f"Loading fragment {loading_template} failed: {e}")

        try:
            html = self.render_page(request, resolution)
        except Exception as e:
            self._log_page_error(request, e)
            fragment = self._render_error_fragment(request, resolution, e)
            if fragment is None:
                fragment = self._generic_error_body(e)
            yield fragment.encode("utf-8")
            return

        yield html.encode("utf-8")

    def _render_error_fragment(
        self,
        request: Request,
        resolution: Resolution,
        error: Exception,
    ) -> Optional[str]:
        node = resolution.nearest(ERROR_FILE)
        if node is None:
            return None
        try:
            return self.renderer.render(node.template(ERROR_FILE), request, error=error)
        except Exception as e:
            logger.error(f"Error fragment {node.template(ERROR_FILE)} failed: {e}")
            return None

    def _log_page_error(self, request: Request, error: Exception) -> None:
        logger.error(
            f"Route error: {error}",
            extra={"context": {
                "path": request.path,
                "trace": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
            }},
        )

    # =========================================================================
    # ERROR RESPONSES
    # =========================================================================

    def _generic_error_body(self, error: Exception) -> str:
        if self.debug:
            trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
            return debug_error_html(error, trace)
        return GENERIC_MESSAGES[HTTPStatus.INTERNAL_SERVER_ERROR]

    def _internal_error(self, request: Request, error: Exception) -> HTTPResponse:
        status = HTTPStatus.INTERNAL_SERVER_ERROR
        if request.wants_json:
            body = {"error": status.phrase}
            if self.debug:
                body["message"] = str(error)
            return ResponseBuilder().status(status).json(body).build()
        if not self.debug and self.renderer.exists(ERROR_VIEW.format(code=int(status))):
            return self.error_response(request, status)
        return ResponseBuilder().status(status).html(self._generic_error_body(error)).build()

    def error_response(self, request: Request, status: HTTPStatus) -> HTTPResponse:
        """
        Render views/errors/<code>.html, or a plain message without one.

        JSON clients get {"error": "<phrase>"}.
        """
        status = HTTPStatus(status)
        if request.wants_json:
            return ResponseBuilder().status(status).json({"error": status.phrase}).build()

        view = ERROR_VIEW.format(code=int(status))
        if self.renderer.exists(view):
            try:
                html = self.renderer.render(view, request, status=int(status))
                return ResponseBuilder().status(status).html(html).build()
            except Exception as e:
                logger.error(f"Error view {view} failed: {e}")

        message = GENERIC_MESSAGES.get(status, status.phrase)
        return ResponseBuilder().status(status).text(message).build()
