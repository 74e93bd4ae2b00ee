"""
AI-assisted concept mapping, term translation and symptom analysis.

Used when the curated mapping store has nothing for a concept, or when a
caller explicitly asks for live AI interpretation. Provider output is
decoded strictly: the first balanced JSON value in the response text is
parsed and validated against a schema. Any failure along the way (no API
key, provider error, timeout, unparsable or invalid payload) produces a
deterministic fallback result instead of an error.
"""

import json
import logging
from typing import Any, List, Optional, Sequence, Type, TypeVar

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from namaste_fhir.constants import (
    EQUIVALENCES,
    EQUIVALENT,
    ICD11_SYSTEM,
    NOT_RELATED_TO,
    ORIGIN_AI,
    ORIGIN_FALLBACK,
    RELATED_TO,
    SOURCE_BROADER,
    SOURCE_NARROWER,
)
from namaste_fhir.errors import AIProviderFailure
from namaste_fhir.schema import (
    MappingCandidate,
    SuggestedCondition,
    SymptomAnalysis,
    TermTranslation,
)
from namaste_fhir.services.ai_provider import AIProvider

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

FALLBACK_TARGET_CODE = "MG30.Z"
FALLBACK_TARGET_DISPLAY = "Other specified disorder"
FALLBACK_MAPPING_CONFIDENCE = 0.5
FALLBACK_TRANSLATION_CONFIDENCE = 0.3
FALLBACK_RECOMMENDATION = (
    "Consult a qualified healthcare practitioner for proper diagnosis and treatment."
)

_RELATIONSHIP_ALIASES = {
    "equal": EQUIVALENT,
    "equivalent": EQUIVALENT,
    "exact": EQUIVALENT,
    "narrower": SOURCE_NARROWER,
    "source-is-narrower-than-target": SOURCE_NARROWER,
    "broader": SOURCE_BROADER,
    "source-is-broader-than-target": SOURCE_BROADER,
    "related": RELATED_TO,
    "relatedto": RELATED_TO,
    "related-to": RELATED_TO,
    "inexact": RELATED_TO,
    "unrelated": NOT_RELATED_TO,
    "disjoint": NOT_RELATED_TO,
    "not-related-to": NOT_RELATED_TO,
}


def normalize_equivalence(value: Optional[str]) -> str:
    """Map a provider relationship label onto a ConceptMap equivalence."""
    if not value:
        return RELATED_TO
    key = value.strip().lower().replace("_", "-").replace(" ", "-")
    label = _RELATIONSHIP_ALIASES.get(key, key)
    return label if label in EQUIVALENCES else RELATED_TO


def clamp_confidence(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return min(1.0, max(0.0, number))


def extract_json(text: str) -> Optional[str]:
    """
    Return the first balanced JSON object or array embedded in ``text``.

    Brackets inside JSON strings are ignored. Returns None when no balanced
    value is found.

    Each character is scanned once: when a scan fails, every opener still
    open at that point would fail the same way, so scanning resumes after
    it. A nested value that closed before the failure is returned instead.
    """
    if not text:
        return None

    closers = {"{": "}", "[": "]"}
    start = 0
    while start < len(text):
        if text[start] not in closers:
            start += 1
            continue

        # (expected closer, opener index)
        stack = [(closers[text[start]], start)]
        nested = None
        in_string = False
        escaped = False
        index = start + 1
        while index < len(text):
            c = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif c == "\\":
                    escaped = True
                elif c == '"':
                    in_string = False
            elif c == '"':
                in_string = True
            elif c in closers:
                stack.append((closers[c], index))
            elif c in ("}", "]"):
                if c != stack[-1][0]:
                    break
                _, opened = stack.pop()
                if not stack:
                    return text[start:index + 1]
                if nested is None or opened < nested[0]:
                    nested = (opened, index)
            index += 1

        if nested is not None:
            return text[nested[0]:nested[1] + 1]
        start = index + 1
    return None


# Provider payload schemas
class _ProviderModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ProviderMapping(_ProviderModel):
    target_code: str = Field(
        validation_alias=AliasChoices("icd11Code", "targetCode", "code"), min_length=1
    )
    target_display: Optional[str] = Field(
        None, validation_alias=AliasChoices("icd11Display", "targetDisplay", "display")
    )
    relationship: str = Field(
        RELATED_TO, validation_alias=AliasChoices("relationship", "equivalence")
    )
    confidence: float = Field(
        0.0, validation_alias=AliasChoices("confidenceScore", "confidence")
    )
    comment: Optional[str] = Field(None, validation_alias=AliasChoices("comment", "explanation"))
    clinical_context: Optional[str] = Field(None, validation_alias=AliasChoices("clinicalContext"))

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_confidence(value)

    @field_validator("relationship", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> str:
        return normalize_equivalence(value if isinstance(value, str) else None)


class ProviderTranslation(_ProviderModel):
    translated_term: str = Field(validation_alias=AliasChoices("translatedTerm"), min_length=1)
    confidence: float = 0.0
    cultural_context: Optional[str] = Field(None, validation_alias=AliasChoices("culturalContext"))

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_confidence(value)


class ProviderCondition(_ProviderModel):
    code: str = Field(min_length=1)
    display: str = Field(min_length=1)
    severity: str = "moderate"
    explanation: Optional[str] = None


class ProviderAnalysis(_ProviderModel):
    suggested_conditions: List[ProviderCondition] = Field(
        validation_alias=AliasChoices("suggestedConditions"), min_length=1
    )
    recommendations: str = Field(min_length=1)


class AIFallbackMapper:
    """Best-effort AI mapping with deterministic fallbacks."""

    def __init__(self, provider: AIProvider):
        self.provider = provider

    async def map_concept(
        self, concept: str, source_system: str = "ayurveda"
    ) -> MappingCandidate:
        """
        Propose an ICD-11 mapping for a traditional medicine concept.

        Args:
            concept: Concept code or term
            source_system: ayurveda, siddha or unani

        Returns:
            The highest-confidence provider suggestion, or the fallback mapping
        """
        payload = await self._ask(_mapping_prompt(concept, source_system), "mapping")
        if payload is not None:
            items = payload if isinstance(payload, list) else [payload]
            suggestions = self._validate_all(ProviderMapping, items)
            if suggestions:
                best = max(suggestions, key=lambda s: s.confidence)
                return MappingCandidate(
                    source_concept=concept,
                    source_system=source_system,
                    target_system=ICD11_SYSTEM,
                    target_code=best.target_code.strip(),
                    target_display=best.target_display,
                    equivalence=best.relationship,
                    confidence=best.confidence,
                    comment=best.comment,
                    clinical_context=best.clinical_context,
                    origin=ORIGIN_AI,
                )
            logger.warning("AI mapping response failed validation for %r", concept)

        return fallback_mapping(concept, source_system)

    async def translate_term(
        self,
        term: str,
        source_language: str,
        target_language: str,
        system: str = "ayurveda",
    ) -> TermTranslation:
        """Translate a term between languages; falls back to the original term."""
        prompt = _translation_prompt(term, source_language, target_language, system)
        payload = await self._ask(prompt, "translation")
        if isinstance(payload, dict):
            result = self._validate(ProviderTranslation, payload)
            if result is not None:
                return TermTranslation(
                    translated_term=result.translated_term,
                    confidence=result.confidence,
                    cultural_context=result.cultural_context,
                    origin=ORIGIN_AI,
                )
            logger.warning("AI translation response failed validation")

        return TermTranslation(
            translated_term=term,
            confidence=FALLBACK_TRANSLATION_CONFIDENCE,
            cultural_context="Translation not available - using original term",
            origin=ORIGIN_FALLBACK,
        )

    async def analyze_symptoms(
        self,
        symptoms: Sequence[str],
        language: str = "en",
        system: str = "ayurveda",
    ) -> SymptomAnalysis:
        """Suggest possible conditions for a list of symptoms."""
        payload = await self._ask(_analysis_prompt(symptoms, language, system), "analysis")
        if isinstance(payload, dict):
            result = self._validate(ProviderAnalysis, payload)
            if result is not None:
                return SymptomAnalysis(
                    suggested_conditions=[
                        SuggestedCondition(**c.model_dump()) for c in result.suggested_conditions
                    ],
                    recommendations=result.recommendations,
                    origin=ORIGIN_AI,
                )
            logger.warning("AI symptom analysis response failed validation")

        return SymptomAnalysis(
            suggested_conditions=[
                SuggestedCondition(
                    code="unknown",
                    display="Analysis not available",
                    severity="moderate",
                    explanation=(
                        f"AI analysis unavailable for {system} symptoms: "
                        f"{', '.join(symptoms)}"
                    ),
                )
            ],
            recommendations=FALLBACK_RECOMMENDATION,
            origin=ORIGIN_FALLBACK,
        )

    async def _ask(self, prompt: str, purpose: str) -> Any:
        """Run a prompt and decode the embedded JSON, or return None."""
        if not self.provider.configured:
            logger.info("AI provider not configured; using %s fallback", purpose)
            return None

        try:
            text = await self.provider.generate(prompt)
        except (AIProviderFailure, httpx.HTTPError) as e:
            logger.warning("AI %s request failed: %s", purpose, e)
            return None
        except Exception:
            # provider errors never reach the caller
            logger.exception("Unexpected AI provider error during %s", purpose)
            return None

        fragment = extract_json(text)
        if fragment is None:
            logger.warning("No JSON found in AI %s response", purpose)
            return None

        try:
            return json.loads(fragment)
        except json.JSONDecodeError as e:
            logger.warning("Invalid JSON in AI %s response: %s", purpose, e)
            return None

    @staticmethod
    def _validate(model: Type[T], data: Any) -> Optional[T]:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.debug("Schema validation failed for %s: %s", model.__name__, e)
            return None

    def _validate_all(self, model: Type[T], items: List[Any]) -> List[T]:
        results = []
        for item in items:
            result = self._validate(model, item)
            if result is not None:
                results.append(result)
        return results


def fallback_mapping(concept: str, source_system: str) -> MappingCandidate:
    """The single deterministic mapping returned whenever AI mapping is unavailable."""
    return MappingCandidate(
        source_concept=concept,
        source_system=source_system,
        target_system=ICD11_SYSTEM,
        target_code=FALLBACK_TARGET_CODE,
        target_display=FALLBACK_TARGET_DISPLAY,
        equivalence=RELATED_TO,
        confidence=FALLBACK_MAPPING_CONFIDENCE,
        comment=(
            f"Fallback mapping for {source_system} concept: {concept}. "
            "AI mapping unavailable - requires manual review"
        ),
        origin=ORIGIN_FALLBACK,
    )


def _mapping_prompt(concept: str, system: str) -> str:
    return f"""You are an expert medical terminology specialist with deep knowledge of traditional medicine systems and ICD-11.

Task: Map the following {system} concept to appropriate ICD-11 codes.

Input Concept: "{concept}"
Source System: {system}
Target System: ICD-11

Provide up to 3 mapping suggestions as a JSON array:
[
  {{
    "icd11Code": "ICD-11 code",
    "icd11Display": "ICD-11 title",
    "relationship": "equivalent|related-to|source-is-narrower-than-target|source-is-broader-than-target",
    "confidenceScore": 0.85,
    "comment": "Brief mapping rationale",
    "clinicalContext": "Clinical context where this mapping applies"
  }}
]

Return only valid JSON, no other text."""


def _translation_prompt(term: str, source_language: str, target_language: str, system: str) -> str:
    return f"""Translate the {system} medicine concept "{term}" from {source_language} to {target_language}.
Consider cultural and medical context. Provide a translation confidence score (0-1) and cultural context notes.

Return JSON:
{{
  "translatedTerm": "translated concept",
  "confidence": 0.85,
  "culturalContext": "explanation of cultural/medical context"
}}"""


def _analysis_prompt(symptoms: Sequence[str], language: str, system: str) -> str:
    return f"""Analyze these symptoms from a {system} medicine perspective: {', '.join(symptoms)}.
Suggest possible conditions/diagnoses and recommendations in {language}.

Return JSON:
{{
  "suggestedConditions": [
    {{
      "code": "condition_code",
      "display": "Condition Name",
      "severity": "mild|moderate|severe",
      "explanation": "explanation"
    }}
  ],
  "recommendations": "general recommendations"
}}"""
