"""
=============================================================================
CSRF PROTECTION
=============================================================================

Double-submit token: the server hands each client a random token in an
HttpOnly `csrf` cookie and expects every state-changing form submission to
echo it back, either as the `_csrf` form field or the `X-CSRF-Token`
header. A forged cross-site form can make the browser send the cookie, but
it cannot read it to put it into the form.

    GET  /login          → Set-Cookie: csrf=9f2c...   (first visit only)
                           <input name="_csrf" value="9f2c...">
    POST /login          ← Cookie: csrf=9f2c...; body _csrf=9f2c...   ✓
    POST /login (forged) ← Cookie: csrf=9f2c...; body _csrf=???       403

Checked for POST, PUT, PATCH and DELETE. JSON requests are skipped: a
cross-site form cannot send `Content-Type: application/json`, and API
clients authenticate with bearer tokens.

=============================================================================
"""

from typing import Optional
import hmac
import logging
import secrets

from ..http.request import UNSAFE_METHODS, Request
from ..http.response import HTTPResponse, forbidden
from .base import Middleware, NextHandler


logger = logging.getLogger(__name__)


CSRF_COOKIE = "csrf"
CSRF_FIELD = "_csrf"
CSRF_HEADER = "X-CSRF-Token"


def generate_token() -> str:
    """64 hex characters from 32 random bytes."""
    return secrets.token_hex(32)


class CSRFMiddleware(Middleware):
    """
    Args:
        secure: Mark the token cookie Secure (HTTPS only)
        cookie_name: Name of the cookie holding the token
    """

    def __init__(self, secure: bool = False, cookie_name: str = CSRF_COOKIE):
        self.secure = secure
        self.cookie_name = cookie_name

    def __call__(self, request: Request, next: NextHandler) -> HTTPResponse:
        cookie_token = request.cookies.get(self.cookie_name, "")
        token = cookie_token or generate_token()
        request.meta["csrf_token"] = token

        if request.method in UNSAFE_METHODS and not request.is_json:
            sent = self._sent_token(request)
            if not sent or not cookie_token or not hmac.compare_digest(cookie_token, sent):
                logger.warning(
                    "CSRF token mismatch",
                    extra={"context": {"ip": request.client_address[0], "path": request.path}},
                )
                return forbidden("CSRF token mismatch")

        response = next(request)

        if not cookie_token:
            response.set_cookie(
                self.cookie_name, token, secure=self.secure, httponly=True, samesite="Lax"
            )
        return response

    def _sent_token(self, request: Request) -> Optional[str]:
        sent = request.input(CSRF_FIELD) or request.get_header(CSRF_HEADER)
        return str(sent) if sent else None
