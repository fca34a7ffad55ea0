"""
=============================================================================
API HANDLER FILES
=============================================================================

A `+server.py` file turns its folder into an API endpoint. It can take
one of two shapes, decided once when the file is loaded:

    ONE HANDLER FOR EVERY METHOD            PER-METHOD HANDLERS
    ─────────────────────────────           ─────────────────────────────
    def handler(request):                   def get(request):
        return {"ok": True}                     return {"users": [...]}

                                            def post(request):
                                                ...

                                            # or, equivalently:
                                            handler = {"get": list_users,
                                                       "post": create_user}

    → SingleHandler(func)                   → MethodTable({"get": ..., ...})

A MethodTable that lacks the request method answers 405 with an Allow
header; a SingleHandler accepts anything.

Handlers take the Request and return an HTTPResponse, a dict/list (JSON),
a str (HTML) or None (empty 200). Route parameters are in request.params.

=============================================================================
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
import hashlib
import importlib.util
import logging
import os
import sys
import threading

from ..exceptions import RouteLoadError
from ..http.request import Request


logger = logging.getLogger(__name__)


Handler = Callable[[Request], Any]

HTTP_METHODS = ("get", "head", "post", "put", "patch", "delete", "options")


@dataclass(frozen=True)
class SingleHandler:
    """One callable invoked for every method."""

    func: Handler

    def handler_for(self, method: str) -> Optional[Handler]:
        return self.func


@dataclass(frozen=True)
class MethodTable:
    """Lower-case method name → callable."""

    methods: Dict[str, Handler]

    def handler_for(self, method: str) -> Optional[Handler]:
        return self.methods.get(method.lower())

    @property
    def allowed_methods(self) -> List[str]:
        return sorted(name.upper() for name in self.methods)


RouteHandler = Union[SingleHandler, MethodTable]


def load_handler(path: str) -> RouteHandler:
    """
    Import a handler file and classify what it exports.

    Raises:
        RouteLoadError: the file fails to import, or exports neither a
                        `handler` callable/mapping nor method functions
    """
    module_name = "fileroute_routes._" + hashlib.blake2b(path.encode("utf-8"), digest_size=8).hexdigest()
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise RouteLoadError(path, "not an importable Python file")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        sys.modules.pop(module_name, None)
        raise RouteLoadError(path, f"import failed: {type(e).__name__}: {e}") from e

    return classify(module, path)


def classify(module: Any, path: str = "<module>") -> RouteHandler:
    """Turn a loaded handler module into a SingleHandler or MethodTable."""
    exported = getattr(module, "handler", None)

    if isinstance(exported, dict):
        methods = {}
        for name, func in exported.items():
            if not callable(func):
                raise RouteLoadError(path, f"handler for {name!r} is not callable")
            methods[str(name).lower()] = func
        return MethodTable(methods)

    if callable(exported):
        return SingleHandler(exported)

    if exported is not None:
        raise RouteLoadError(path, "`handler` must be a callable or a method mapping")

    methods = {
        name: getattr(module, name)
        for name in HTTP_METHODS
        if callable(getattr(module, name, None))
    }
    if not methods:
        raise RouteLoadError(path, "defines no `handler` and no method functions")
    return MethodTable(methods)


class HandlerCache:
    """
    Loaded handler files keyed by path.

    A file is re-imported when its modification time changes, so editing
    a handler during development takes effect on the next request.
    Thread-safe: a lock guards the cache dict.
    """

    def __init__(self):
        self._entries: Dict[str, Tuple[int, RouteHandler]] = {}
        self._lock = threading.Lock()

    def get(self, path: str) -> RouteHandler:
        try:
            mtime = os.stat(path).st_mtime_ns
        except FileNotFoundError as e:
            raise RouteLoadError(path, "file disappeared") from e

        with self._lock:
            entry = self._entries.get(path)
            if entry is not None and entry[0] == mtime:
                return entry[1]

        handler = load_handler(path)
        logger.debug(f"Loaded handler {path} as {type(handler).__name__}")

        with self._lock:
            self._entries[path] = (mtime, handler)
        return handler

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
