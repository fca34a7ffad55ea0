"""
Unit tests for the JWT token service.
"""

import json

import jwt
import pytest
from jwt.utils import base64url_decode, base64url_encode

from fileroute.auth.tokens import ACCESS, REFRESH, TokenPair, TokenService
from fileroute.exceptions import ConfigurationError

from conftest import SECRET, FakeClock


class TestIssueTokens:
    """Tests for issuing token pairs."""

    def test_pair_round_trips(self, tokens, clock):
        """Both tokens validate with their own type."""
        pair = tokens.issue_tokens(42)

        access = tokens.validate(pair.access, expected_type=ACCESS)
        refresh = tokens.validate(pair.refresh, expected_type=REFRESH)

        assert access["sub"] == "42"
        assert access["type"] == "access"
        assert refresh["sub"] == "42"
        assert refresh["type"] == "refresh"

    def test_lifetimes(self, tokens, clock):
        """iat and exp follow the configured lifetimes."""
        pair = tokens.issue_tokens(1)
        now = int(clock())

        assert pair.expires == now + 900
        assert pair.refresh_expires == now + 604800

        claims = tokens.validate(pair.access)
        assert claims["iat"] == now
        assert claims["exp"] == now + 900

    def test_to_dict(self, tokens):
        """The dict form omits the refresh expiry."""
        pair = tokens.issue_tokens(1)

        assert pair.to_dict() == {
            "access": pair.access,
            "refresh": pair.refresh,
            "expires": pair.expires,
        }

    def test_missing_secret_raises(self):
        """Issuing without a secret is a configuration error."""
        with pytest.raises(ConfigurationError, match="JWT_SECRET not configured"):
            TokenService(secret=None).issue_tokens(1)

    def test_non_positive_lifetime_rejected(self):
        """Lifetimes must be positive."""
        with pytest.raises(ValueError):
            TokenService(secret=SECRET, access_ttl=0)


class TestValidate:
    """Every failure is None, never an exception."""

    def test_expired_token(self, tokens, clock):
        """Access tokens expire at their TTL, refresh tokens later."""
        pair = tokens.issue_tokens(1)

        clock.advance(899)
        assert tokens.validate(pair.access) is not None

        clock.advance(1)
        assert tokens.validate(pair.access) is None
        assert tokens.validate(pair.refresh) is not None

    def test_leeway(self, clock):
        """Leeway tolerates small clock skew."""
        service = TokenService(secret=SECRET, leeway=30, clock=clock)
        pair = service.issue_tokens(1)

        clock.advance(920)

        assert service.validate(pair.access) is not None

    def test_type_mismatch(self, tokens):
        """The expected type must match."""
        pair = tokens.issue_tokens(1)

        assert tokens.validate(pair.refresh, expected_type=ACCESS) is None
        assert tokens.validate(pair.access, expected_type=REFRESH) is None

    def test_tampered_signature(self, tokens):
        """A flipped signature is rejected."""
        pair = tokens.issue_tokens(1)
        header, payload, signature = pair.access.split(".")
        flipped = "A" if signature[0] != "A" else "B"

        assert tokens.validate(f"{header}.{payload}.{flipped}{signature[1:]}") is None

    def alter_claims(self, token, **changes):
        """Rewrite the payload but keep the original header and signature."""
        header, payload, signature = token.split(".")
        claims = json.loads(base64url_decode(payload))
        claims.update(changes)
        forged = base64url_encode(json.dumps(claims, separators=(",", ":")).encode()).decode()
        return f"{header}.{forged}.{signature}"

    def test_altered_subject(self, tokens):
        """Changing sub without re-signing is rejected."""
        token = self.alter_claims(tokens.issue_tokens(1).access, sub="2")

        assert tokens.validate(token) is None

    def test_altered_expiry(self, tokens, clock):
        """Extending exp without re-signing does not revive an expired token."""
        pair = tokens.issue_tokens(1)
        clock.advance(3600)

        token = self.alter_claims(pair.access, exp=int(clock()) + 900)

        assert tokens.validate(token) is None

    def test_altered_type(self, tokens):
        """A refresh token relabelled as access is rejected."""
        token = self.alter_claims(tokens.issue_tokens(1).refresh, type="access")

        assert tokens.validate(token, expected_type=ACCESS) is None

    def test_wrong_secret(self, tokens, clock):
        """A token signed with another secret is rejected."""
        other = TokenService(secret="another-secret-key-with-enough-length", clock=clock)

        assert other.validate(tokens.issue_tokens(1).access) is None

    def test_garbage(self, tokens):
        """Junk input is rejected."""
        assert tokens.validate("not.a.token") is None
        assert tokens.validate("") is None
        assert tokens.validate(None) is None

    def test_missing_claim(self, tokens, clock):
        """Tokens without a type claim are rejected."""
        now = int(clock())
        token = jwt.encode({"sub": "1", "iat": now, "exp": now + 60}, SECRET, algorithm="HS256")

        assert tokens.validate(token) is None

    def test_exp_not_after_iat(self, tokens, clock):
        """exp must be after iat."""
        now = int(clock())
        token = jwt.encode(
            {"sub": "1", "iat": now, "exp": now, "type": "access"}, SECRET, algorithm="HS256"
        )

        assert tokens.validate(token) is None

    def test_unknown_type(self, tokens, clock):
        """Unknown token types are rejected."""
        now = int(clock())
        token = jwt.encode(
            {"sub": "1", "iat": now, "exp": now + 60, "type": "session"}, SECRET, algorithm="HS256"
        )

        assert tokens.validate(token) is None

    def test_no_secret_is_none(self, tokens):
        """Without a secret nothing validates."""
        token = tokens.issue_tokens(1).access

        assert TokenService(secret=None).validate(token) is None


class TestRefresh:

    def test_refresh_issues_new_pair(self, tokens, clock):
        """A refresh token yields a new pair."""
        pair = tokens.issue_tokens(7)
        clock.advance(3600)

        new_pair = tokens.refresh(pair.refresh)

        assert isinstance(new_pair, TokenPair)
        assert new_pair.expires == int(clock()) + 900
        assert tokens.validate(new_pair.access, expected_type=ACCESS)["sub"] == "7"

    def test_access_token_cannot_refresh(self, tokens):
        """Access tokens cannot refresh."""
        assert tokens.refresh(tokens.issue_tokens(7).access) is None

    def test_expired_refresh_token(self, tokens, clock):
        """Expired refresh tokens cannot refresh."""
        pair = tokens.issue_tokens(7)
        clock.advance(604800)

        assert tokens.refresh(pair.refresh) is None

    def test_uses_injected_clock(self):
        """Expiry comes from the injected clock."""
        clock = FakeClock(now=1000.0)
        service = TokenService(secret=SECRET, clock=clock)

        assert service.issue_tokens(1).expires == 1900
