"""
Concept translation engine for NAMASTE FHIR Gateway.

Translates NAMASTE (Ayurveda, Siddha, Unani) codes to ICD-11 using the
curated mapping store. "No mapping" is a normal result, reported with
equivalence ``unmappable``; only a missing source concept or malformed input
raise.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from namaste_fhir.constants import (
    ICD11_SYSTEM,
    ICD11_SYSTEM_URI,
    NAMASTE_SYSTEMS,
    UNMAPPABLE,
    normalize_system,
)
from namaste_fhir.db.repositories import ConceptRepository, MappingStore
from namaste_fhir.errors import ConceptNotFound, NamasteServiceError, ValidationFailed
from namaste_fhir.schema import (
    BatchTranslationItem,
    Coding,
    ConceptRecord,
    ItemError,
    MappingRecord,
    SourceCoding,
    TranslationResult,
)

logger = logging.getLogger(__name__)

NO_MAPPING_MESSAGE = "No equivalent concept found in target system"
CONCEPT_MAP_SCAN_LIMIT = 10000

_LATEST = datetime.max.replace(tzinfo=timezone.utc)


def rank_key(mapping: MappingRecord) -> Tuple[float, datetime, float]:
    """Sort key: highest confidence first, then earliest created, then lowest id."""
    created = mapping.created_at or _LATEST
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return (-mapping.confidence, created, mapping.id if mapping.id is not None else float("inf"))


def rank_mappings(mappings: Sequence[MappingRecord]) -> List[MappingRecord]:
    return sorted(mappings, key=rank_key)


class TranslationEngine:
    """Translate source concepts to ICD-11 using stored mappings."""

    def __init__(self, concepts: ConceptRepository, mappings: MappingStore):
        self.concepts = concepts
        self.mappings = mappings

    async def translate(
        self,
        source_code: str,
        source_system: str,
        target_system: str = ICD11_SYSTEM,
    ) -> TranslationResult:
        """
        Translate one source concept.

        Args:
            source_code: Source concept code
            source_system: Source system short name or URI
            target_system: Target system; only ICD-11 is supported

        Returns:
            The top-ranked active mapping, or an ``unmappable`` result

        Raises:
            ValidationFailed: Empty code/system or unsupported target
            ConceptNotFound: Source concept is missing or not active
        """
        source_code = (source_code or "").strip()
        system = normalize_system(source_system)
        target = normalize_system(target_system) or ICD11_SYSTEM

        if not source_code or not system:
            raise ValidationFailed("Source system and code are required")
        if target != ICD11_SYSTEM:
            raise ValidationFailed(f"Unsupported target system '{target_system}'")

        concept = await self._require_concept(source_code, system)
        source = Coding(system=concept.system_uri, code=concept.code, display=concept.display)

        candidates = await self.mappings.find_active_for_source(system, source_code, target)
        if not candidates:
            logger.info("No active mapping for %s|%s", system, source_code)
            return TranslationResult(source=source, equivalence=UNMAPPABLE, message=NO_MAPPING_MESSAGE)

        best = rank_mappings(candidates)[0]
        display = await self._target_display(best)

        return TranslationResult(
            source=source,
            target=Coding(system=ICD11_SYSTEM_URI, code=best.target_code, display=display),
            equivalence=best.equivalence,
            confidence=best.confidence,
            comment=best.comment,
            origin=best.origin,
        )

    async def batch_translate(
        self,
        items: Sequence[SourceCoding],
        target_system: str = ICD11_SYSTEM,
    ) -> List[BatchTranslationItem]:
        """
        Translate many concepts concurrently.

        Each item succeeds or fails on its own; the returned list has one
        entry per input, in input order, and this call never raises for an
        item failure.
        """
        return list(
            await asyncio.gather(*(self._translate_item(item, target_system) for item in items))
        )

    async def _translate_item(self, item: SourceCoding, target_system: str) -> BatchTranslationItem:
        try:
            result = await self.translate(item.code, item.system, target_system)
            return BatchTranslationItem(system=item.system, code=item.code, result=result)
        except NamasteServiceError as e:
            return BatchTranslationItem(
                system=item.system, code=item.code, error=ItemError(**e.to_dict(), status=e.status_code)
            )
        except Exception as e:
            logger.exception("Unexpected failure translating %s|%s", item.system, item.code)
            return BatchTranslationItem(
                system=item.system,
                code=item.code,
                error=ItemError(code="INTERNAL_ERROR", message=str(e) or type(e).__name__),
            )

    async def mappings_for(
        self, source_code: str, source_system: str
    ) -> Tuple[ConceptRecord, List[MappingRecord]]:
        """Source concept and all of its active ICD-11 mappings, best first."""
        system = normalize_system(source_system)
        if not source_code or not system:
            raise ValidationFailed("Source system and code are required")

        concept = await self._require_concept(source_code, system)
        candidates = await self.mappings.find_active_for_source(system, source_code, ICD11_SYSTEM)
        return concept, rank_mappings(candidates)

    async def concept_map(self, source_system: str) -> Tuple[List[MappingRecord], Dict[str, str]]:
        """
        Active mappings of one NAMASTE system, with source displays.

        Returns:
            Tuple of (mappings, {source code: display})
        """
        system = normalize_system(source_system)
        if system not in NAMASTE_SYSTEMS:
            raise ValidationFailed(f"Unknown source system '{source_system}'")

        mappings = await self.mappings.list_active(source_system=system, target_system=ICD11_SYSTEM)
        best: Dict[str, MappingRecord] = {}
        for mapping in rank_mappings(mappings):
            best.setdefault(mapping.source_code, mapping)

        page = await self.concepts.list_by_system(system, limit=CONCEPT_MAP_SCAN_LIMIT)
        displays = {c.code: c.display for c in page.items if c.code in best}

        return sorted(best.values(), key=lambda m: m.source_code), displays

    async def _require_concept(self, code: str, system: str) -> ConceptRecord:
        concept = await self.concepts.find_by_code(code, system)
        if concept is None or not concept.is_active:
            raise ConceptNotFound(code, system)
        return concept

    async def _target_display(self, mapping: MappingRecord) -> Optional[str]:
        target = await self.concepts.find_by_code(mapping.target_code, mapping.target_system)
        if target is not None:
            return target.display
        return mapping.target_display
