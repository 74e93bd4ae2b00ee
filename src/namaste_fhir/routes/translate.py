"""
Translation API routes for NAMASTE FHIR Gateway.

Handles NAMASTE to ICD-11 concept translation, batch translation and
mapping listings.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from namaste_fhir.constants import ICD11_SYSTEM_URI, ORIGIN_AI, normalize_system, system_uri
from namaste_fhir.dependencies import ServiceContainer, get_services
from namaste_fhir.errors import ConceptNotFound
from namaste_fhir.schema import (
    BatchTranslateRequest,
    Coding,
    MappingRecord,
    TranslateRequest,
    TranslationResult,
)
from namaste_fhir.security.audit import ACTIONS, RESOURCE_TYPES, create_audit_detail
from namaste_fhir.utils import fhir

logger = logging.getLogger(__name__)

router = APIRouter()

AI_CURATOR = "ai-fallback-mapper"


@router.post(
    "/translate",
    summary="Translate Concept",
    description="Translate a NAMASTE concept to ICD-11 (FHIR $translate output Parameters)"
)
async def translate_concept(
    request: TranslateRequest,
    services: ServiceContainer = Depends(get_services)
) -> Dict[str, Any]:
    """
    Translate a concept to ICD-11.

    Args:
        request: Source coding, target system and AI fallback flag
        services: Service container

    Returns:
        FHIR Parameters resource; ``result`` is false when unmappable
    """
    result = await _translate(
        services,
        request.source.code,
        request.source.system,
        request.target,
        request.ai_fallback,
    )
    return fhir.translation_parameters(result)


@router.get(
    "/translate/{system}/{code}",
    summary="Translate Concept (GET)",
    description="Translate a concept using GET method"
)
async def translate_concept_get(
    system: str,
    code: str,
    target: str = Query("icd11", description="Target terminology system"),
    services: ServiceContainer = Depends(get_services)
) -> Dict[str, Any]:
    result = await services.engine.translate(code, system, target)
    return fhir.translation_parameters(result)


@router.post(
    "/translate/batch",
    summary="Batch Translate",
    description="Translate many concepts; each entry reports its own outcome"
)
async def batch_translate(
    request: BatchTranslateRequest,
    services: ServiceContainer = Depends(get_services)
) -> Dict[str, Any]:
    """
    Translate a list of concepts concurrently.

    Returns:
        FHIR ``batch-response`` Bundle, one entry per input concept
    """
    items = await services.engine.batch_translate(request.concepts, request.target)
    failed = sum(1 for item in items if not item.ok)
    if failed:
        logger.info("Batch translate: %d of %d items failed", failed, len(items))
    return fhir.batch_response(items)


@router.get(
    "/mappings/statistics",
    summary="Mapping Statistics",
    description="Counts of mappings by status, source system and equivalence"
)
async def mapping_statistics(
    services: ServiceContainer = Depends(get_services)
) -> Dict[str, Any]:
    return await services.mappings.statistics()


@router.get(
    "/mappings/{system}/{code}",
    summary="List Concept Mappings",
    description="All active ICD-11 mappings of a concept, best first"
)
async def concept_mappings(
    system: str,
    code: str,
    services: ServiceContainer = Depends(get_services)
) -> Dict[str, Any]:
    concept, mappings = await services.engine.mappings_for(code, system)
    return fhir.concept_mappings_parameters(concept, mappings)


async def _translate(
    services: ServiceContainer,
    code: str,
    system: str,
    target: str,
    ai_fallback: bool,
) -> TranslationResult:
    """Curated translation, optionally backed by an AI suggestion."""
    try:
        result = await services.engine.translate(code, system, target)
    except ConceptNotFound:
        if not ai_fallback:
            raise
        source = Coding(system=system_uri(normalize_system(system)), code=code)
        return await _ai_suggestion(services, source, normalize_system(system), known=False)

    if result.is_mapped or not ai_fallback:
        return result
    return await _ai_suggestion(services, result.source, normalize_system(system), known=True)


async def _ai_suggestion(
    services: ServiceContainer,
    source: Coding,
    system: str,
    known: bool,
) -> TranslationResult:
    """
    Ask the AI mapper for a mapping.

    Suggestions for known concepts are stored with status ``review`` so they
    never become authoritative without curation. A pair that already has a
    curated row, retired or not, keeps it.
    """
    candidate = await services.ai_mapper.map_concept(source.display or source.code, system)

    message = "AI-suggested mapping pending review"
    if candidate.origin != ORIGIN_AI:
        message = "No curated mapping; fallback suggestion requires manual review"
    elif known:
        stored = await services.mappings.propose(MappingRecord(
            source_system=system,
            source_code=source.code,
            target_code=candidate.target_code,
            target_display=candidate.target_display,
            equivalence=candidate.equivalence,
            confidence=candidate.confidence,
            comment=candidate.comment,
            status="review",
            origin=ORIGIN_AI,
            curator=AI_CURATOR,
        ))
        if stored is not None:
            await _audit_proposal(services, stored)

    return TranslationResult(
        source=source,
        target=Coding(
            system=ICD11_SYSTEM_URI,
            code=candidate.target_code,
            display=candidate.target_display,
        ),
        equivalence=candidate.equivalence,
        confidence=candidate.confidence,
        comment=candidate.comment,
        origin=candidate.origin,
        message=message,
    )


async def _audit_proposal(services: ServiceContainer, mapping: MappingRecord) -> Optional[str]:
    if services.audit is None:
        return None
    return await services.audit.record(
        actor=AI_CURATOR,
        action=ACTIONS["PROPOSE"],
        resource_type=RESOURCE_TYPES["MAPPING"],
        resource_id=str(mapping.id) if mapping.id is not None else None,
        detail=create_audit_detail(
            endpoint="/translate",
            method="POST",
            source=f"{mapping.source_system}|{mapping.source_code}",
            target=mapping.target_code,
            confidence=mapping.confidence,
        ),
    )
