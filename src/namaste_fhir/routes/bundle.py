"""
FHIR Bundle assembly API routes for NAMASTE FHIR Gateway.

Builds dual-coded (NAMASTE + ICD-11) Condition Bundles with audit logging.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from namaste_fhir.dependencies import ServiceContainer, get_services
from namaste_fhir.schema import BundleRequest, TokenPayload
from namaste_fhir.security.audit import ACTIONS, RESOURCE_TYPES, create_audit_detail
from namaste_fhir.security.auth import require_user

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/Bundle",
    summary="Create Dual-Coded Bundle",
    description="Build a FHIR collection Bundle of Conditions coded in NAMASTE and ICD-11"
)
async def create_bundle(
    request: BundleRequest,
    user: TokenPayload = Depends(require_user),
    services: ServiceContainer = Depends(get_services)
) -> Dict[str, Any]:
    """
    Create a dual-coded Condition Bundle for a patient.

    Args:
        request: Patient id and the conditions to code
        user: Verified caller
        services: Service container

    Returns:
        FHIR Bundle of type ``collection``

    Raises:
        ConceptNotFound: A requested concept is unknown; nothing is built
    """
    bundle = await services.bundles.assemble(request.patient_id, request.conditions)

    if services.audit is not None:
        await services.audit.record(
            actor=user.abha_number,
            action=ACTIONS["CREATE"],
            resource_type=RESOURCE_TYPES["BUNDLE"],
            resource_id=bundle["id"],
            detail=create_audit_detail(
                endpoint="/fhir/Bundle",
                method="POST",
                patient_id=request.patient_id,
                conditions=len(request.conditions),
                verification=user.verification,
            ),
        )

    return bundle
