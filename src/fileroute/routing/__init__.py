"""
File-based routing: the route tree snapshot, handler loading and dispatch.
"""

from .handlers import HandlerCache, MethodTable, SingleHandler, load_handler
from .router import FileRouter
from .tree import MatchKind, Resolution, RouteNode, RouteTree, resolve

__all__ = [
    "FileRouter",
    "RouteTree",
    "RouteNode",
    "Resolution",
    "MatchKind",
    "resolve",
    "SingleHandler",
    "MethodTable",
    "HandlerCache",
    "load_handler",
]
