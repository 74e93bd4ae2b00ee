"""
ABHA profile enrichment.

Profiles are cached per ABHA number for an hour. When the profile service
cannot be reached a minimal profile built from the token claims is returned;
that degraded profile is not cached.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from namaste_fhir.schema import TokenPayload, UserProfile
from namaste_fhir.utils.cache import TTLCache

logger = logging.getLogger(__name__)


class ProfileService:
    """Fetch and normalize ABHA account profiles."""

    def __init__(
        self,
        profile_url: str,
        cache: TTLCache,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.profile_url = profile_url.rstrip("/")
        self.cache = cache
        self.timeout = timeout
        self.transport = transport

    async def get_profile(self, token: str, payload: TokenPayload) -> UserProfile:
        """
        Profile for a verified identity.

        Args:
            token: The bearer token, forwarded to the profile API
            payload: Verified token claims

        Returns:
            The ABHA profile, or a minimal ``degraded`` profile on failure
        """
        if payload.is_demo:
            return demo_profile(payload)

        try:
            return await self.cache.get_or_load(
                payload.abha_number, lambda: self._fetch(token, payload.abha_number)
            )
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.warning("Profile fetch failed for ABHA %s: %s", payload.abha_number, e)
            return minimal_profile(payload)

    async def _fetch(self, token: str, abha_number: str) -> UserProfile:
        logger.info("Fetching profile for ABHA %s", abha_number)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(
                f"{self.profile_url}/profile/account",
                headers={
                    "Authorization": f"Bearer {token}",
                    "X-ABHA-Number": abha_number,
                    "Accept": "application/json",
                },
            )
            response.raise_for_status()
            data = response.json()

        if not isinstance(data, dict):
            raise ValueError("Profile response is not an object")
        return normalize_profile(data, abha_number)


def normalize_profile(data: Dict[str, Any], abha_number: str) -> UserProfile:
    """Map an ABHA account document onto UserProfile."""
    number = str(data.get("healthIdNumber") or data.get("abha_number") or abha_number)
    address = data.get("address") if isinstance(data.get("address"), dict) else None
    name = data.get("name") or " ".join(
        part for part in (data.get("firstName"), data.get("lastName")) if part
    )

    return UserProfile(
        id=number,
        abha_id=number,
        abha_number=abha_number,
        abha_address=data.get("abha_address") or data.get("abhaAddress"),
        name=name or "ABHA User",
        first_name=data.get("firstName"),
        last_name=data.get("lastName"),
        gender=data.get("gender"),
        date_of_birth=data.get("dateOfBirth"),
        mobile=data.get("mobile"),
        email=data.get("email"),
        address={
            "line": address.get("line"),
            "district": address.get("district"),
            "state": address.get("state"),
            "pincode": address.get("pincode"),
        } if address else None,
        practitioner=_practitioner(data, number),
        verification_status=data.get("kycStatus") or "verified",
        last_updated=datetime.now(timezone.utc),
    )


def _practitioner(data: Dict[str, Any], abha_number: str) -> Optional[Dict[str, Any]]:
    qualifications = data.get("professionalQualifications")
    if not qualifications:
        return None
    return {
        "id": f"practitioner-{abha_number}",
        "specialty": "Traditional Medicine",
        "system": "ayurveda",
        "qualifications": qualifications,
        "registrationNumber": data.get("registrationNumber"),
    }


def minimal_profile(payload: TokenPayload) -> UserProfile:
    return UserProfile(
        id=payload.abha_number,
        abha_id=payload.abha_number,
        abha_number=payload.abha_number,
        name=payload.name or "ABHA User",
        email=payload.email,
        mobile=payload.mobile,
        address=payload.address,
        verification_status="verified",
        degraded=True,
        last_updated=datetime.now(timezone.utc),
    )


def demo_profile(payload: TokenPayload) -> UserProfile:
    return UserProfile(
        id=f"demo-{payload.abha_number}",
        abha_id=payload.abha_number,
        abha_number=payload.abha_number,
        abha_address="demo@abha",
        name=payload.name or "Demo ABHA User",
        first_name="Demo",
        last_name="User",
        gender="M",
        mobile=payload.mobile,
        email=payload.email,
        address=payload.address,
        practitioner={
            "id": "practitioner-demo-abha",
            "specialty": "Traditional Medicine",
            "system": "ayurveda",
            "qualifications": ["BAMS"],
            "registrationNumber": "AYUSH/DEMO/12345",
        },
        verification_status="verified",
        last_updated=datetime.now(timezone.utc),
    )
