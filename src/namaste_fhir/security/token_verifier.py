"""
ABHA token verification.

Verification runs in stages: header decode, key resolution (through a
24 hour key cache), signature check, then claim validation against an
injected clock. Each stage has its own failure type. Demo tokens take a
separate path and yield payloads marked ``verification="demo"``.

Tokens themselves are never cached.
"""

import logging
import re
import time
from typing import Any, Callable, Dict, Optional

import jwt

from namaste_fhir.errors import ClaimsInvalid, TokenExpired, TokenMalformed
from namaste_fhir.schema import TokenPayload
from namaste_fhir.security.key_provider import KeyProvider
from namaste_fhir.utils.cache import TTLCache

logger = logging.getLogger(__name__)

ALLOWED_ALGORITHMS = ("RS256", "RS384", "RS512", "ES256", "ES384", "PS256")
ABHA_NUMBER_PATTERN = re.compile(r"^\d{14}$")

# Demo mode
DEMO_SENTINEL_TOKEN = "demo-token-12345"
DEMO_TOKEN_PREFIX = "demo-"
DEMO_KEY_ID = "demo-key-id"
DEMO_ABHA_NUMBER = "12345678901234"
DEMO_TOKEN_LIFETIME = 24 * 60 * 60
DEMO_IDENTITY = {
    "subject": DEMO_ABHA_NUMBER,
    "issuer": "demo",
    "abha_number": DEMO_ABHA_NUMBER,
    "name": "Demo ABHA User",
    "email": "demo@abha.gov.in",
    "mobile": "9999999999",
}


def strip_bearer(token: Optional[str]) -> str:
    if not token:
        return ""
    token = token.strip()
    if token[:7].lower() == "bearer ":
        token = token[7:].strip()
    return token


class TokenVerifier:
    """Verify ABHA-issued JWTs and the demo-mode tokens."""

    def __init__(
        self,
        key_provider: KeyProvider,
        key_cache: TTLCache,
        demo_mode: bool = False,
        demo_secret: Optional[str] = None,
        expected_issuer: Optional[str] = None,
        expected_audience: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.key_provider = key_provider
        self.key_cache = key_cache
        self.demo_mode = demo_mode
        self.demo_secret = demo_secret
        self.expected_issuer = expected_issuer
        self.expected_audience = expected_audience
        self.clock = clock

    async def verify(self, token: Optional[str]) -> TokenPayload:
        """
        Verify a token and return its normalized claims.

        Args:
            token: Raw token, with or without the ``Bearer`` prefix

        Returns:
            TokenPayload; ``verification`` is ``demo`` for demo tokens

        Raises:
            TokenMalformed: Empty token or undecodable header
            TokenExpired: Token is valid except that it has expired
            ClaimsInvalid: Bad signature, algorithm, or claims
            KeyFetchFailed: Signing key could not be resolved
            ServiceUnavailable: Key endpoint timed out or was unreachable
        """
        token = strip_bearer(token)
        if not token:
            raise TokenMalformed("No token provided")

        if self.demo_mode:
            demo = self._verify_demo(token)
            if demo is not None:
                return demo

        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as e:
            raise TokenMalformed(f"Malformed token: {e}") from e

        key_id = header.get("kid")
        algorithm = header.get("alg")
        if not key_id or not isinstance(key_id, str):
            raise TokenMalformed("Token header has no key id")
        if algorithm not in ALLOWED_ALGORITHMS:
            raise ClaimsInvalid(f"Unsupported signing algorithm '{algorithm}'")

        signing_key = await self.key_cache.get_or_load(
            key_id, lambda: self.key_provider.get_key(key_id)
        )

        claims = self._decode(
            token,
            signing_key.key,
            algorithm,
            issuer=self.expected_issuer,
            audience=self.expected_audience,
        )
        payload = self._to_payload(claims, verification="abha")
        logger.info("Verified ABHA token for subject %s", payload.subject)
        return payload

    def _verify_demo(self, token: str) -> Optional[TokenPayload]:
        """Demo path; None means the token is not a demo token."""
        if token == DEMO_SENTINEL_TOKEN or token.startswith(DEMO_TOKEN_PREFIX):
            logger.info("Demo mode: accepted demo sentinel token")
            return self.demo_payload()

        if not self.demo_secret:
            return None
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError:
            return None
        if header.get("kid") != DEMO_KEY_ID or header.get("alg") != "HS256":
            return None

        claims = self._decode(token, self.demo_secret, "HS256")
        logger.info("Demo mode: verified locally signed demo JWT")
        return self._to_payload(claims, verification="demo")

    def demo_payload(self) -> TokenPayload:
        """Fixed demo identity valid for 24 hours from now."""
        now = int(self.clock())
        return TokenPayload(
            issued_at=now,
            expires_at=now + DEMO_TOKEN_LIFETIME,
            verification="demo",
            **DEMO_IDENTITY,
        )

    def _decode(
        self,
        token: str,
        key: Any,
        algorithm: str,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Check signature, issuer and audience; time claims are checked separately."""
        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=[algorithm],
                issuer=issuer,
                audience=audience,
                options={
                    "verify_signature": True,
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "verify_iss": issuer is not None,
                    "verify_aud": audience is not None,
                },
            )
        except jwt.InvalidSignatureError as e:
            raise ClaimsInvalid("Token signature verification failed") from e
        except jwt.DecodeError as e:
            raise TokenMalformed(f"Malformed token: {e}") from e
        except jwt.PyJWTError as e:
            raise ClaimsInvalid(f"Invalid token: {e}") from e

        self._validate_claims(claims)
        return claims

    def _validate_claims(self, claims: Dict[str, Any]) -> None:
        missing = [
            name for name in ("sub", "iat", "exp")
            if claims.get(name) in (None, "")
        ]
        if not _abha_number(claims):
            missing.append("abha_number")
        if missing:
            raise ClaimsInvalid(f"Missing required claims: {', '.join(missing)}")

        if not ABHA_NUMBER_PATTERN.match(_abha_number(claims)):
            raise ClaimsInvalid("ABHA number must be 14 digits")

        for name in ("iat", "exp", "nbf"):
            value = claims.get(name)
            if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
                raise ClaimsInvalid(f"Claim '{name}' must be a numeric date")

        now = self.clock()
        if "nbf" in claims and claims["nbf"] > now:
            raise ClaimsInvalid("Token is not yet valid")
        if claims["exp"] <= now:
            raise TokenExpired("Token has expired")

    @staticmethod
    def _to_payload(claims: Dict[str, Any], verification: str) -> TokenPayload:
        audience = claims.get("aud")
        if isinstance(audience, list):
            audience = ",".join(str(a) for a in audience)

        address = claims.get("address")
        if isinstance(address, str):
            address = {"text": address}
        elif not isinstance(address, dict):
            address = None

        return TokenPayload(
            subject=str(claims["sub"]),
            issuer=_optional_str(claims.get("iss")),
            audience=audience,
            issued_at=int(claims["iat"]),
            expires_at=int(claims["exp"]),
            abha_number=_abha_number(claims),
            name=_optional_str(claims.get("name")),
            email=_optional_str(claims.get("email")),
            mobile=_optional_str(claims.get("mobile")),
            address=address,
            verification=verification,
        )


def _abha_number(claims: Dict[str, Any]) -> str:
    value = claims.get("abha_number", claims.get("abhaNumber"))
    return str(value) if value is not None else ""


def _optional_str(value: Any) -> Optional[str]:
    # ABHA issues numeric mobiles in some environments
    return str(value) if value is not None else None
