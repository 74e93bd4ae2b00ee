"""
FHIR resource routes for NAMASTE FHIR Gateway.

Handles FHIR R4 CodeSystem and ConceptMap reads, the server
CapabilityStatement and structural $validate.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from namaste_fhir import __version__
from namaste_fhir.constants import SYSTEM_TITLES, SYSTEM_URIS, normalize_system
from namaste_fhir.dependencies import ServiceContainer, get_services
from namaste_fhir.errors import ConceptNotFound, ValidationFailed
from namaste_fhir.schema import ConceptResponse, TokenPayload
from namaste_fhir.security.auth import require_user
from namaste_fhir.utils import fhir

router = APIRouter()


def _known_system(value: str) -> str:
    system = normalize_system(value)
    if system not in SYSTEM_URIS:
        raise ValidationFailed(f"Unknown terminology system '{value}'")
    return system


@router.get(
    "/CodeSystem",
    summary="List Available CodeSystems",
    description="List all available terminology CodeSystems"
)
async def list_codesystems(
    services: ServiceContainer = Depends(get_services)
) -> Dict[str, Any]:
    """
    List all available terminology CodeSystems.

    Returns:
        Searchset Bundle of CodeSystem summaries with concept counts
    """
    entries = []
    for system, uri in SYSTEM_URIS.items():
        page = await services.concepts.list_by_system(system, limit=1)
        entries.append({
            "resource": {
                "resourceType": "CodeSystem",
                "id": f"namaste-{system}",
                "url": uri,
                "version": "1.0.0",
                "name": SYSTEM_TITLES.get(system, system),
                "status": "active",
                "content": "complete",
                "count": page.total,
            }
        })

    return {
        "resourceType": "Bundle",
        "type": "searchset",
        "total": len(entries),
        "entry": entries,
    }


@router.get(
    "/CodeSystem/{system}",
    summary="Get CodeSystem",
    description="Retrieve a terminology CodeSystem in FHIR R4 format"
)
async def get_codesystem(
    system: str,
    page: int = Query(1, ge=1, description="Page number (1-based)"),
    page_size: int = Query(100, ge=1, le=1000, description="Number of concepts per page"),
    services: ServiceContainer = Depends(get_services)
) -> Dict[str, Any]:
    """
    Get one CodeSystem, paged.

    Args:
        system: ayurveda, siddha, unani or icd11
        page: Page number (1-based)
        page_size: Number of concepts per page
        services: Service container

    Returns:
        FHIR CodeSystem resource; ``content`` is ``fragment`` for partial pages
    """
    name = _known_system(system)
    result = await services.concepts.list_by_system(
        name, limit=page_size, offset=(page - 1) * page_size
    )
    return fhir.code_system(name, result.items, result.total)


@router.get(
    "/CodeSystem/{system}/{code}",
    response_model=ConceptResponse,
    summary="Get Concept by Code",
    description="Retrieve a specific concept by its code"
)
async def get_concept(
    system: str,
    code: str,
    services: ServiceContainer = Depends(get_services)
) -> ConceptResponse:
    name = _known_system(system)
    concept = await services.concepts.find_by_code(code, name)
    if concept is None:
        raise ConceptNotFound(code, name)
    return ConceptResponse.from_record(concept)


@router.get(
    "/ConceptMap/namaste-icd11",
    summary="Get NAMASTE to ICD-11 ConceptMap",
    description="All active mappings of one NAMASTE system as a FHIR ConceptMap"
)
async def get_concept_map(
    system: str = Query("ayurveda", description="NAMASTE source system"),
    services: ServiceContainer = Depends(get_services)
) -> Dict[str, Any]:
    mappings, displays = await services.engine.concept_map(system)
    return fhir.concept_map(
        mappings,
        normalize_system(system),
        services.settings.fhir_base_url,
        source_displays=displays,
    )


@router.get(
    "/metadata",
    summary="Capability Statement",
    description="FHIR CapabilityStatement for this server"
)
async def get_metadata(
    services: ServiceContainer = Depends(get_services)
) -> Dict[str, Any]:
    return fhir.capability_statement(services.settings.fhir_base_url, __version__)


@router.post(
    "/$validate",
    summary="Validate Resource",
    description="Check a FHIR resource for required top-level fields"
)
async def validate_resource(
    resource: Dict[str, Any] = Body(...),
    user: TokenPayload = Depends(require_user),
):
    """
    Structurally validate a FHIR resource.

    Returns:
        Informational OperationOutcome when valid, otherwise a 400
        OperationOutcome with one ``structure`` issue per problem
    """
    errors = fhir.validation_errors(resource)
    outcome = fhir.validation_outcome(errors)
    if errors:
        return JSONResponse(status_code=400, content=outcome)
    return outcome
