"""
Terminology lookup and search API routes for NAMASTE FHIR Gateway.

Handles concept search across the NAMASTE systems and ICD-11.
"""

import time
from typing import Optional

from fastapi import APIRouter, Depends, Query

from namaste_fhir.constants import SYSTEM_URIS, normalize_system
from namaste_fhir.dependencies import ServiceContainer, get_services
from namaste_fhir.errors import ValidationFailed
from namaste_fhir.schema import ConceptResponse, SearchResponse

router = APIRouter()


@router.get(
    "/search",
    response_model=SearchResponse,
    summary="Search Terminology",
    description="Search for terminology concepts across NAMASTE and ICD-11 systems"
)
async def search_terms(
    q: str = Query(..., description="Search query string", min_length=1, max_length=200),
    system: Optional[str] = Query(None, description="Terminology system to search (ayurveda, siddha, unani, icd11)"),
    limit: Optional[int] = Query(None, description="Maximum number of results", ge=1),
    offset: int = Query(0, description="Number of results to skip", ge=0),
    services: ServiceContainer = Depends(get_services)
) -> SearchResponse:
    """
    Search for terminology concepts.

    Args:
        q: Search query string
        system: Restrict results to one terminology system
        limit: Maximum number of results, capped at ``max_search_results``
        offset: Number of results to skip
        services: Service container

    Returns:
        Ranked matches; exact code matches first, then display prefixes
    """
    start_time = time.time()

    name = None
    if system and system.lower() != "all":
        name = normalize_system(system)
        if name not in SYSTEM_URIS:
            raise ValidationFailed(f"Unknown terminology system '{system}'")

    settings = services.settings
    limit = min(limit or settings.default_search_limit, settings.max_search_results)

    page = await services.concepts.search(q.strip(), system=name, limit=limit, offset=offset)

    execution_time = (time.time() - start_time) * 1000  # Convert to milliseconds

    return SearchResponse(
        query=q,
        system=name,
        total_results=page.total,
        results=[ConceptResponse.from_record(c) for c in page.items],
        execution_time_ms=execution_time
    )
