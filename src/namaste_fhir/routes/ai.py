"""
AI-assisted terminology routes for NAMASTE FHIR Gateway.

Concept mapping, term translation and symptom analysis backed by the
generative provider. Every endpoint degrades to a deterministic fallback
when the provider is unavailable.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from namaste_fhir.constants import ICD11_SYSTEM, NAMASTE_SYSTEMS, normalize_system
from namaste_fhir.dependencies import ServiceContainer, get_services
from namaste_fhir.errors import ValidationFailed
from namaste_fhir.schema import (
    LanguageTranslateRequest,
    MapRequest,
    SymptomAnalysisRequest,
    TokenPayload,
)
from namaste_fhir.security.auth import require_user
from namaste_fhir.utils import fhir

logger = logging.getLogger(__name__)

router = APIRouter()


def _namaste_system(value: str) -> str:
    system = normalize_system(value)
    if system not in NAMASTE_SYSTEMS:
        raise ValidationFailed(f"Unknown source system '{value}'")
    return system


@router.post(
    "/map",
    summary="AI Concept Mapping",
    description="Propose an ICD-11 mapping for a traditional medicine concept (FHIR ConceptMap)"
)
async def map_concept(
    request: MapRequest,
    user: TokenPayload = Depends(require_user),
    services: ServiceContainer = Depends(get_services)
):
    """
    Map a NAMASTE concept to ICD-11 with the AI mapper.

    Args:
        request: Concept, systems and minimum acceptable confidence
        user: Verified caller
        services: Service container

    Returns:
        Draft ConceptMap, or a 404 OperationOutcome when the best suggestion
        is below the requested confidence
    """
    system = _namaste_system(request.source_system)
    if normalize_system(request.target_system) != ICD11_SYSTEM:
        raise ValidationFailed(f"Unsupported target system '{request.target_system}'")

    candidate = await services.ai_mapper.map_concept(request.concept, system)
    logger.info(
        "AI mapping for %r requested by %s: %s (%.2f, %s)",
        request.concept, user.abha_number, candidate.target_code, candidate.confidence, candidate.origin
    )

    if candidate.confidence < request.confidence:
        return JSONResponse(
            status_code=404,
            content=fhir.operation_outcome(
                "warning",
                "not-found",
                f"No mapping for '{request.concept}' meets confidence {request.confidence:.2f} "
                f"(best {candidate.confidence:.2f})",
                diagnostics="MAPPING_BELOW_CONFIDENCE",
            ),
        )

    return fhir.candidate_concept_map(candidate)


@router.post(
    "/translate-language",
    summary="AI Term Translation",
    description="Translate a terminology term between languages"
)
async def translate_language(
    request: LanguageTranslateRequest,
    user: TokenPayload = Depends(require_user),
    services: ServiceContainer = Depends(get_services)
) -> Dict[str, Any]:
    system = _namaste_system(request.system)
    translation = await services.ai_mapper.translate_term(
        request.concept, request.source_language, request.target_language, system
    )
    return fhir.term_translation_parameters(
        request.concept, request.source_language, request.target_language, translation
    )


@router.post(
    "/analyze-symptoms",
    summary="AI Symptom Analysis",
    description="Suggest possible conditions for a list of symptoms"
)
async def analyze_symptoms(
    request: SymptomAnalysisRequest,
    user: TokenPayload = Depends(require_user),
    services: ServiceContainer = Depends(get_services)
) -> Dict[str, Any]:
    """
    Analyze symptoms in the context of a traditional medicine system.

    Returns:
        Parameters with suggested Conditions and recommendations
    """
    system = _namaste_system(request.system)
    symptoms = [s.strip() for s in request.symptoms if s and s.strip()]
    if not symptoms:
        raise ValidationFailed("At least one non-empty symptom is required")

    analysis = await services.ai_mapper.analyze_symptoms(symptoms, request.language, system)
    return fhir.symptom_analysis_parameters(symptoms, system, analysis)
