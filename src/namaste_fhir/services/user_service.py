"""
User login and contact updates for NAMASTE FHIR Gateway.

Login verifies the ABHA token, enriches it with the ABHA profile, keeps a
local user record in sync and audits the login. Users may later change the
contact details on that record.
"""

import logging
from typing import Any, Dict, Optional

from namaste_fhir.db.repositories import UserRepository
from namaste_fhir.errors import UserNotFound, ValidationFailed
from namaste_fhir.schema import AuthSession, TokenPayload, UserProfile, UserRecord
from namaste_fhir.security.audit import ACTIONS, RESOURCE_TYPES, AuditRecorder, create_audit_detail
from namaste_fhir.security.profile_service import ProfileService
from namaste_fhir.security.token_verifier import TokenVerifier, strip_bearer

logger = logging.getLogger(__name__)

CONTACT_FIELDS = ("email", "mobile")


class UserService:
    """Authenticate users and maintain their local records."""

    def __init__(
        self,
        verifier: TokenVerifier,
        profiles: ProfileService,
        users: UserRepository,
        audit: Optional[AuditRecorder] = None,
    ):
        self.verifier = verifier
        self.profiles = profiles
        self.users = users
        self.audit = audit

    async def authenticate(self, token: str) -> AuthSession:
        """
        Log a user in with an ABHA token.

        Raises:
            AuthenticationError: Token rejected
            KeyFetchFailed: Signing key unavailable
            ServiceUnavailable: Identity provider unreachable
        """
        token = strip_bearer(token)
        payload = await self.verifier.verify(token)
        profile = await self.profiles.get_profile(token, payload)
        user = await self.users.upsert(user_values(payload, profile))

        if self.audit:
            await self.audit.record(
                actor=user.abha_id,
                action=ACTIONS["LOGIN"],
                resource_type=RESOURCE_TYPES["USER"],
                resource_id=user.abha_id,
                detail=create_audit_detail(
                    endpoint="/auth/login",
                    method="POST",
                    verification=payload.verification,
                    degraded_profile=profile.degraded,
                ),
            )

        logger.info("User %s logged in (%s)", user.abha_id, payload.verification)
        return AuthSession(
            user=user,
            profile=profile,
            verification=payload.verification,
            expires_at=payload.expires_at,
        )

    async def get_user(self, abha_id: str) -> Optional[UserRecord]:
        return await self.users.get(abha_id)

    async def update_contact(self, abha_id: str, changes: Dict[str, Any]) -> UserRecord:
        """
        Update the email and/or mobile of a logged-in user.

        Raises:
            ValidationFailed: Nothing to update
            UserNotFound: No local record yet
        """
        changes = {k: v for k, v in changes.items() if k in CONTACT_FIELDS and v}
        if not changes:
            raise ValidationFailed("Provide email or mobile to update")

        user = await self.users.update(abha_id, changes)
        if user is None:
            raise UserNotFound(abha_id)

        if self.audit:
            await self.audit.record(
                actor=abha_id,
                action=ACTIONS["UPDATE"],
                resource_type=RESOURCE_TYPES["USER"],
                resource_id=abha_id,
                detail=create_audit_detail(
                    endpoint="/users/me", method="PUT", updated_fields=sorted(changes)
                ),
            )

        logger.info("User %s updated %s", abha_id, ", ".join(sorted(changes)))
        return user


def user_values(payload: TokenPayload, profile: UserProfile) -> Dict[str, Any]:
    """Column values for the local user record."""
    gender = profile.gender[:1].upper() if profile.gender else None
    return {
        "abha_id": payload.abha_number,
        "abha_number": payload.abha_number,
        "name": profile.name or payload.name or "ABHA User",
        "email": profile.email or payload.email,
        "mobile": profile.mobile or payload.mobile,
        "gender": gender,
        "date_of_birth": profile.date_of_birth,
        "address": profile.address or payload.address,
        "profile": profile.model_dump(mode="json"),
    }
