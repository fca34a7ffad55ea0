"""
Middleware steps and the pipeline that chains them around the router.
"""

from .access_log import AccessLogMiddleware, RequestLog
from .base import (
    FunctionMiddleware,
    Middleware,
    MiddlewarePipeline,
    NextHandler,
    PathScopedMiddleware,
    function_middleware,
    path_matches,
)
from .csrf import CSRFMiddleware
from .rate_limit import (
    InMemoryRateLimitStore,
    RateLimitMiddleware,
    RateLimitStore,
    RedisRateLimitStore,
    limit,
)
from .security import SecurityHeadersMiddleware

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "FunctionMiddleware",
    "PathScopedMiddleware",
    "NextHandler",
    "function_middleware",
    "path_matches",
    "AccessLogMiddleware",
    "RequestLog",
    "SecurityHeadersMiddleware",
    "CSRFMiddleware",
    "RateLimitMiddleware",
    "RateLimitStore",
    "InMemoryRateLimitStore",
    "RedisRateLimitStore",
    "limit",
]
