"""
Authentication: token service, principal loading and password hashing.
"""

from .middleware import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    LoadPrincipalMiddleware,
    RequireAuthenticationMiddleware,
    clear_auth_cookies,
    extract_token,
    login_required,
    set_auth_cookies,
)
from .passwords import hash_password, verify_password
from .tokens import ACCESS, REFRESH, TokenPair, TokenService

__all__ = [
    "TokenService",
    "TokenPair",
    "ACCESS",
    "REFRESH",
    "ACCESS_COOKIE",
    "REFRESH_COOKIE",
    "LoadPrincipalMiddleware",
    "RequireAuthenticationMiddleware",
    "login_required",
    "extract_token",
    "set_auth_cookies",
    "clear_auth_cookies",
    "hash_password",
    "verify_password",
]
