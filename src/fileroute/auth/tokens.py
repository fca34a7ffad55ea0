"""
=============================================================================
TOKEN SERVICE
=============================================================================

Stateless authentication with two signed JWTs (HS256):

    ┌──────────────┬──────────────────────┬──────────────────────────────┐
    │ token        │ lifetime (default)   │ used for                     │
    ├──────────────┼──────────────────────┼──────────────────────────────┤
    │ access       │ 900 s (15 min)       │ every authenticated request  │
    │ refresh      │ 604800 s (7 days)    │ getting a new pair only      │
    └──────────────┴──────────────────────┴──────────────────────────────┘

Claims: sub (user id, as a string), iat, exp, type ("access"/"refresh").

=============================================================================
VALIDATION
=============================================================================

    token ──► signature ok? ──► claims present? ──► not expired? ──► type ok? ──► claims
                  │                  │                   │               │
                  └──────────────────┴───────────────────┴───────────────┴──► None

Every failure yields None, never an exception: an invalid token is the
same as no token. Failures are logged at DEBUG since expired tokens are
routine.

The signature is checked by PyJWT; expiry is checked here against the
service clock so that tests can move time.

=============================================================================
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union
import logging
import time

import jwt

from ..exceptions import ConfigurationError


logger = logging.getLogger(__name__)


ALGORITHM = "HS256"
ACCESS = "access"
REFRESH = "refresh"

DEFAULT_ACCESS_TTL = 900
DEFAULT_REFRESH_TTL = 604800

REQUIRED_CLAIMS = ["sub", "iat", "exp", "type"]


@dataclass(frozen=True)
class TokenPair:
    """
    Result of issuing tokens.

    `expires` is the access token's expiry, `refresh_expires` the refresh
    token's, both as UNIX timestamps.
    """

    access: str
    refresh: str
    expires: int
    refresh_expires: int

    def to_dict(self) -> Dict[str, Any]:
        return {"access": self.access, "refresh": self.refresh, "expires": self.expires}


class TokenService:
    """
    Issue and validate access/refresh tokens.

    Usage:
        tokens = TokenService(secret=config.jwt_secret)
        pair = tokens.issue_tokens(user["id"])
        claims = tokens.validate(pair.access, expected_type="access")

    Args:
        secret: HMAC key; may be None until first use, which then raises
        access_ttl: Access token lifetime in seconds
        refresh_ttl: Refresh token lifetime in seconds
        leeway: Seconds of clock skew tolerated on expiry
        clock: Time source returning seconds
    """

    def __init__(
        self,
        secret: Optional[str],
        access_ttl: int = DEFAULT_ACCESS_TTL,
        refresh_ttl: int = DEFAULT_REFRESH_TTL,
        leeway: int = 0,
        clock: Callable[[], float] = time.time,
    ):
        if access_ttl <= 0 or refresh_ttl <= 0:
            raise ValueError("Token lifetimes must be positive")
        self.secret = secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.leeway = leeway
        self.clock = clock

    @classmethod
    def from_config(cls, config) -> "TokenService":
        return cls(
            secret=config.jwt_secret,
            access_ttl=config.jwt_access_exp,
            refresh_ttl=config.jwt_refresh_exp,
            leeway=config.jwt_leeway,
        )

    def _require_secret(self) -> str:
        if not self.secret:
            raise ConfigurationError("JWT_SECRET not configured")
        return self.secret

    # =========================================================================
    # ISSUING
    # =========================================================================

    def issue_tokens(self, subject_id: Union[int, str]) -> TokenPair:
        """
        Create a fresh access/refresh pair for a subject.

        Raises:
            ConfigurationError: no secret configured
        """
        secret = self._require_secret()
        now = int(self.clock())
        sub = str(subject_id)

        access_exp = now + self.access_ttl
        refresh_exp = now + self.refresh_ttl

        access = jwt.encode(
            {"sub": sub, "iat": now, "exp": access_exp, "type": ACCESS},
            secret,
            algorithm=ALGORITHM,
        )
        refresh = jwt.encode(
            {"sub": sub, "iat": now, "exp": refresh_exp, "type": REFRESH},
            secret,
            algorithm=ALGORITHM,
        )
        return TokenPair(access=access, refresh=refresh, expires=access_exp, refresh_expires=refresh_exp)

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate(self, token: Optional[str], expected_type: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Decode and check a token.

        Args:
            token: Encoded JWT
            expected_type: "access" or "refresh"; None accepts either

        Returns:
            The claims, or None for any failure
        """
        if not token or not self.secret:
            if token:
                logger.debug("JWT validation failed: no secret configured")
            return None

        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                options={"require": REQUIRED_CLAIMS, "verify_exp": False, "verify_iat": False},
            )
        except jwt.PyJWTError as e:
            logger.debug(f"JWT validation failed: {type(e).__name__}: {e}")
            return None

        try:
            iat = int(claims["iat"])
            exp = int(claims["exp"])
        except (TypeError, ValueError):
            logger.debug("JWT validation failed: non-numeric iat/exp")
            return None

        if exp <= iat:
            logger.debug("JWT validation failed: exp not after iat")
            return None
        if exp + self.leeway <= self.clock():
            logger.debug("JWT validation failed: token expired")
            return None
        if claims["type"] not in (ACCESS, REFRESH):
            logger.debug(f"JWT validation failed: unknown type {claims['type']!r}")
            return None
        if expected_type is not None and claims["type"] != expected_type:
            logger.debug(f"JWT validation failed: expected {expected_type}, got {claims['type']}")
            return None

        return claims

    def refresh(self, refresh_token: Optional[str]) -> Optional[TokenPair]:
        """
        Exchange a valid refresh token for a new pair.

        Returns None when the token is not a valid refresh token.
        """
        claims = self.validate(refresh_token, expected_type=REFRESH)
        if claims is None:
            return None
        return self.issue_tokens(claims["sub"])
