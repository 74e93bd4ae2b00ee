"""
Authentication API routes for NAMASTE FHIR Gateway.

ABHA login, token verification and the caller's local user record.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from namaste_fhir.dependencies import ServiceContainer, get_services
from namaste_fhir.errors import AuthenticationError, UserNotFound
from namaste_fhir.schema import AuthSession, ProfileUpdateRequest, TokenPayload, TokenRequest, UserRecord
from namaste_fhir.security.auth import require_user
from namaste_fhir.security.token_verifier import strip_bearer

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/auth/login",
    response_model=AuthSession,
    summary="ABHA Login",
    description="Verify an ABHA token and return session data"
)
async def login(
    request: TokenRequest,
    services: ServiceContainer = Depends(get_services)
) -> AuthSession:
    """
    Log in with an ABHA token.

    Args:
        request: Token (with or without ``Bearer`` prefix)
        services: Service container

    Returns:
        Session data with the local user record and ABHA profile

    Raises:
        AuthenticationError: Token rejected
    """
    return await services.users.authenticate(request.token)


@router.post(
    "/token/verify",
    summary="Verify Token",
    description="Check an ABHA token and summarise the bound profile"
)
async def verify_token(
    request: TokenRequest,
    services: ServiceContainer = Depends(get_services)
) -> Dict[str, Any]:
    """
    Report whether a token is valid.

    Rejected tokens are reported in the body; key and identity provider
    outages still surface as errors.
    """
    token = strip_bearer(request.token)
    try:
        payload = await services.verifier.verify(token)
    except AuthenticationError as e:
        logger.info("Token verification failed: %s", e.error_code)
        return {"valid": False, "error": e.error_code, "message": e.message}

    profile = await services.users.profiles.get_profile(token, payload)
    return {
        "valid": True,
        "verification": payload.verification,
        "expires_at": payload.expires_at,
        "profile": {
            "abha_id": profile.abha_id,
            "abha_address": profile.abha_address,
            "name": profile.name,
            "verification_status": profile.verification_status,
            "degraded": profile.degraded,
        },
    }


@router.get(
    "/users/me",
    response_model=UserRecord,
    summary="Current User",
    description="Local record of the authenticated user"
)
async def current_user(
    user: TokenPayload = Depends(require_user),
    services: ServiceContainer = Depends(get_services)
) -> UserRecord:
    record = await services.users.get_user(user.abha_number)
    if record is None:
        raise UserNotFound(user.abha_number)
    return record


@router.put(
    "/users/me",
    response_model=UserRecord,
    summary="Update Contact Details",
    description="Change the email or mobile on the authenticated user's local record"
)
async def update_current_user(
    request: ProfileUpdateRequest,
    user: TokenPayload = Depends(require_user),
    services: ServiceContainer = Depends(get_services)
) -> UserRecord:
    return await services.users.update_contact(
        user.abha_number, request.model_dump(exclude_none=True)
    )
