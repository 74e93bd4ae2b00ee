"""
Authentication dependencies for NAMASTE FHIR Gateway.

Routes that need a caller identity depend on ``require_user``, which pulls
the bearer token from the Authorization header and verifies it with the
application's TokenVerifier.
"""

from typing import Optional

from fastapi import Depends, Header

from namaste_fhir.dependencies import ServiceContainer, get_services
from namaste_fhir.errors import TokenMalformed
from namaste_fhir.schema import TokenPayload


def extract_token_from_header(authorization: Optional[str]) -> Optional[str]:
    """
    Extract token from Authorization header.

    Args:
        authorization: Authorization header value

    Returns:
        Token string or None if not found
    """
    if not authorization:
        return None

    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None

    return token.strip()


async def require_user(
    authorization: Optional[str] = Header(None),
    services: ServiceContainer = Depends(get_services),
) -> TokenPayload:
    """
    Verify the caller's bearer token.

    Returns:
        Verified token payload

    Raises:
        TokenMalformed: No bearer token supplied
        AuthenticationError: Token rejected by the verifier
    """
    token = extract_token_from_header(authorization)
    if not token:
        raise TokenMalformed("Authorization header with Bearer token required")

    return await services.verifier.verify(token)
