"""
Dual-coded Condition Bundle assembly.

Each requested condition becomes a FHIR Condition coded with its NAMASTE
concept and, when a mapping exists, the ICD-11 target. Unknown source
concepts abort the whole Bundle; unmappable ones do not.
"""

import logging
from typing import Any, Dict, List, Sequence

from namaste_fhir.constants import normalize_system
from namaste_fhir.db.repositories import ConceptRepository
from namaste_fhir.errors import ConceptNotFound, ValidationFailed
from namaste_fhir.schema import ConditionRequest, ConceptRecord
from namaste_fhir.services.translation_engine import TranslationEngine
from namaste_fhir.utils import fhir

logger = logging.getLogger(__name__)


class BundleAssembler:
    """Build collection Bundles of dual-coded Conditions."""

    def __init__(self, concepts: ConceptRepository, engine: TranslationEngine, base_url: str):
        self.concepts = concepts
        self.engine = engine
        self.base_url = base_url

    async def assemble(self, patient_id: str, conditions: Sequence[ConditionRequest]) -> Dict[str, Any]:
        """
        Assemble a Bundle for one patient.

        Args:
            patient_id: Patient the Conditions refer to
            conditions: Requested (code, system, clinical status) entries

        Returns:
            FHIR Bundle of type ``collection``

        Raises:
            ValidationFailed: Missing patient id or empty condition list
            ConceptNotFound: Any source concept is unknown
        """
        if not patient_id or not conditions:
            raise ValidationFailed("Patient ID and at least one condition are required")

        # Resolve every concept before translating anything.
        resolved: List[ConceptRecord] = []
        for item in conditions:
            system = normalize_system(item.system)
            concept = await self.concepts.find_by_code(item.code, system)
            if concept is None or not concept.is_active:
                logger.warning("Bundle aborted: unknown concept %s|%s", system, item.code)
                raise ConceptNotFound(item.code, system)
            resolved.append(concept)

        resources = []
        unmapped = 0
        for item, concept in zip(conditions, resolved):
            result = await self.engine.translate(concept.code, concept.system)
            if not result.is_mapped:
                unmapped += 1
            resources.append(fhir.condition(patient_id, concept, result, item.clinical_status))

        logger.info(
            "Assembled Bundle for patient %s: %d conditions, %d unmappable",
            patient_id, len(resources), unmapped,
        )
        return fhir.bundle(resources, bundle_type="collection", base_url=self.base_url)
