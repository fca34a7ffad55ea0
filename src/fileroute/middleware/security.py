"""
=============================================================================
SECURITY HEADERS MIDDLEWARE
=============================================================================

Adds the browser hardening headers to every response, including responses
produced by later steps that short-circuit (403, 429, redirects):

    X-Frame-Options: SAMEORIGIN                 no framing by other sites
    X-Content-Type-Options: nosniff             no MIME sniffing
    X-XSS-Protection: 1; mode=block             legacy XSS filter
    Referrer-Policy: strict-origin-when-cross-origin
    Content-Security-Policy: ... 'nonce-<n>' ...
    Strict-Transport-Security: ...              only when served over HTTPS

=============================================================================
CSP NONCE
=============================================================================

Each request gets a fresh random nonce, stored in request.meta so that
templates can mark their own inline code as trusted:

    <script nonce="{{ csp_nonce }}">...</script>

Injected inline scripts do not know the nonce and are refused.

=============================================================================
"""

from typing import Dict, Optional
import base64
import secrets

from ..http.request import Request
from ..http.response import HTTPResponse
from .base import Middleware, NextHandler


DEFAULT_HEADERS: Dict[str, str] = {
    "X-Frame-Options": "SAMEORIGIN",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}

CSP_TEMPLATE = (
    "default-src 'self'; "
    "script-src 'self' 'nonce-{nonce}' unpkg.com; "
    "style-src 'self' 'nonce-{nonce}';"
)

HSTS_VALUE = "max-age=31536000; includeSubDomains"


def generate_nonce() -> str:
    """Base64 of 16 random bytes."""
    return base64.b64encode(secrets.token_bytes(16)).decode("ascii")


class SecurityHeadersMiddleware(Middleware):
    """
    Args:
        hsts: Send Strict-Transport-Security (enable with secure cookies)
        csp_template: Policy with a `{nonce}` placeholder; None disables CSP
        extra_headers: Additional headers to set on every response
    """

    def __init__(
        self,
        hsts: bool = False,
        csp_template: Optional[str] = CSP_TEMPLATE,
        extra_headers: Optional[Dict[str, str]] = None,
    ):
        self.hsts = hsts
        self.csp_template = csp_template
        self.headers = dict(DEFAULT_HEADERS)
        self.headers.update(extra_headers or {})

    def __call__(self, request: Request, next: NextHandler) -> HTTPResponse:
        nonce = generate_nonce()
        request.meta["csp_nonce"] = nonce

        response = next(request)

        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        if self.csp_template:
            response.headers.setdefault(
                "Content-Security-Policy", self.csp_template.format(nonce=nonce)
            )
        if self.hsts:
            response.headers.setdefault("Strict-Transport-Security", HSTS_VALUE)
        return response
