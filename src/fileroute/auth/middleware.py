"""
=============================================================================
AUTHENTICATION MIDDLEWARE
=============================================================================

Two steps with separate jobs:

    LoadPrincipalMiddleware         annotates, never blocks
        Authorization: Bearer <t>  ─┐
        Cookie: access=<t>         ─┴─► validate(type=access) ─► users.find_by_id(sub)
                                                                   └─► request.meta["user"]

    RequireAuthenticationMiddleware blocks when no principal was loaded
        JSON client  → 401 {"error": "Unauthorized"}
        browser      → 302 Location: /login

The principal is request-scoped: it lives in request.meta and nowhere else.

=============================================================================
COOKIES
=============================================================================

    access    HttpOnly: no    expires with the access token    Path=/  SameSite=Lax
    refresh   HttpOnly: yes   expires with the refresh token   Path=/  SameSite=Lax

The access cookie is readable by page scripts so they can call the API
with a bearer header; the refresh token never is.

=============================================================================
"""

from functools import wraps
from typing import Any, Callable, Dict, List, Optional, Protocol
import logging
import re

from ..http.request import Request
from ..http.response import HTTPResponse, redirect, unauthorized
from ..middleware.base import Middleware, NextHandler, path_matches
from .tokens import ACCESS, TokenPair, TokenService


logger = logging.getLogger(__name__)


ACCESS_COOKIE = "access"
REFRESH_COOKIE = "refresh"

BEARER_PATTERN = re.compile(r"Bearer\s+(.+)")


class UserLookup(Protocol):
    def find_by_id(self, user_id: Any) -> Optional[Dict[str, Any]]:
        ...


def extract_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else the access cookie."""
    match = BEARER_PATTERN.search(request.get_header("authorization"))
    if match:
        return match.group(1).strip()
    return request.cookies.get(ACCESS_COOKIE) or None


class LoadPrincipalMiddleware(Middleware):
    """
    Resolve the authenticated user, if any, into request.meta["user"].

    Always continues to next, whatever the outcome.
    """

    def __init__(self, tokens: TokenService, users: UserLookup):
        self.tokens = tokens
        self.users = users

    def __call__(self, request: Request, next: NextHandler) -> HTTPResponse:
        token = extract_token(request)
        if token:
            claims = self.tokens.validate(token, expected_type=ACCESS)
            if claims is not None:
                user = self.users.find_by_id(claims["sub"])
                if user is not None:
                    request.meta["user"] = user
                    request.meta["claims"] = claims
                else:
                    logger.debug(f"Token subject {claims['sub']} not found")
        return next(request)


def authentication_required_response(request: Request, login_path: str) -> HTTPResponse:
    if request.wants_json:
        return unauthorized()
    return redirect(login_path)


class RequireAuthenticationMiddleware(Middleware):
    """
    Stop unauthenticated requests.

    Args:
        login_path: Where browsers are sent
        protect: Path prefixes to guard; None guards every path
    """

    def __init__(self, login_path: str = "/login", protect: Optional[List[str]] = None):
        self.login_path = login_path
        self.protect = None if protect is None else [p.strip("/") for p in protect]

    def applies_to(self, path: str) -> bool:
        if self.protect is None:
            return True
        return any(path_matches(path, prefix) for prefix in self.protect)

    def __call__(self, request: Request, next: NextHandler) -> HTTPResponse:
        if request.user is None and self.applies_to(request.path):
            return authentication_required_response(request, self.login_path)
        return next(request)


def login_required(func: Optional[Callable] = None, *, login_path: str = "/login"):
    """
    Guard a single API handler.

        @login_required
        def get(request):
            return {"email": request.user["email"]}
    """
    def decorator(handler: Callable[[Request], Any]) -> Callable[[Request], Any]:
        @wraps(handler)
        def wrapper(request: Request) -> Any:
            if request.user is None:
                return authentication_required_response(request, login_path)
            return handler(request)
        return wrapper

    if func is not None:
        return decorator(func)
    return decorator


def set_auth_cookies(response: HTTPResponse, pair: TokenPair, secure: bool = False) -> HTTPResponse:
    """Attach the access and refresh cookies for a freshly issued pair."""
    response.set_cookie(
        REFRESH_COOKIE,
        pair.refresh,
        expires=pair.refresh_expires,
        secure=secure,
        httponly=True,
        samesite="Lax",
    )
    response.set_cookie(
        ACCESS_COOKIE,
        pair.access,
        expires=pair.expires,
        secure=secure,
        httponly=False,
        samesite="Lax",
    )
    return response


def clear_auth_cookies(response: HTTPResponse) -> HTTPResponse:
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)
    return response
