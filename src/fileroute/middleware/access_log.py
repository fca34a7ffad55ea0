"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

One log line per request on the `fileroute.access` logger, with timing
and a short request id that is also returned to the client:

    TEXT:
        127.0.0.1 "GET /blog/my-post" 200 1834 4.21ms a1b2c3d4

    JSON:
        {"request_id": "a1b2c3d4", "method": "GET", "path": "/blog/my-post",
         "client_ip": "127.0.0.1", "status_code": 200, ...}

Registered first so that it sees every request, including ones rejected
by later steps, and so that the id is in request.meta for handlers.

=============================================================================
"""

from dataclasses import asdict, dataclass
from typing import List, Optional
import json
import logging
import time
import uuid

from ..http.request import Request
from ..http.response import HTTPResponse
from .base import Middleware, NextHandler


logger = logging.getLogger("fileroute.access")


@dataclass
class RequestLog:
    """Structured access log entry."""

    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: Optional[int]   # None for streamed bodies
    duration_ms: float

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        size = "-" if self.content_length is None else str(self.content_length)
        return (
            f'{self.client_ip or "-"} "{self.method} /{self.path}" '
            f"{self.status_code} {size} {self.duration_ms:.2f}ms {self.request_id}"
        )


class AccessLogMiddleware(Middleware):
    """
    Args:
        log_format: "text" or "json"
        include_request_id: Add X-Request-ID to responses
        log_level: Level for access lines
        skip_paths: Normalized paths not to log
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[List[str]] = None,
    ):
        if log_format not in ("text", "json"):
            raise ValueError(f"Unknown access log format: {log_format}")
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = {p.strip("/") for p in skip_paths or []}

    def __call__(self, request: Request, next: NextHandler) -> HTTPResponse:
        request_id = str(uuid.uuid4())[:8]
        request.meta["request_id"] = request_id
        start_time = time.perf_counter()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} /{request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms) {request_id}"
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        if self.include_request_id:
            response.headers["X-Request-ID"] = request_id

        if request.path in self.skip_paths:
            return response

        entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            query="&".join(f"{k}={v}" for k, v in request.query.items()),
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=None if response.stream is not None else len(response.body),
            duration_ms=duration_ms,
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())

        return response
