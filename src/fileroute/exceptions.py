"""
Exception hierarchy for fileroute.

Only configuration and loading problems are raised as exceptions. Routing
misses, unsupported methods, missing credentials and invalid tokens are
turned into responses (or ``None``) at the point where they are detected,
so none of them ever crosses a middleware boundary.
"""


class FilerouteError(Exception):
    """Base class for all framework errors."""


class ConfigurationError(FilerouteError):
    """A required setting (e.g. JWT_SECRET) is missing or invalid."""


class RouteLoadError(FilerouteError):
    """
    An API handler file could not be turned into a handler.

    Raised when a ``+server.py`` file fails to import, or defines neither a
    ``handler`` callable/mapping nor any HTTP-method functions.
    """

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


class TemplateNotFoundError(FilerouteError):
    """A page, layout or error fragment vanished between scan and render."""
