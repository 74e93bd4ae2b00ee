"""
Tests for dual-coded Condition Bundle assembly.
"""

import pytest

from namaste_fhir.constants import EXT_MAPPING_CONFIDENCE, EXT_UNMAPPABLE, ICD11_SYSTEM_URI
from namaste_fhir.errors import ConceptNotFound, ValidationFailed
from namaste_fhir.schema import ConditionRequest
from namaste_fhir.services.bundle_assembler import BundleAssembler

from conftest import BASE_URL


@pytest.fixture
def assembler(concepts, engine):
    return BundleAssembler(concepts, engine, BASE_URL)


def conditions(*pairs):
    return [ConditionRequest(system=system, code=code) for system, code in pairs]


class TestBundleAssembler:
    """Test Bundle assembly."""

    async def test_mapped_condition_is_dual_coded(self, assembler):
        bundle = await assembler.assemble("patient-1", conditions(("ayurveda", "AY001")))

        assert bundle["resourceType"] == "Bundle"
        assert bundle["type"] == "collection"
        assert bundle["total"] == 1

        entry = bundle["entry"][0]
        condition = entry["resource"]
        assert entry["fullUrl"] == f"{BASE_URL}/Condition/{condition['id']}"
        assert condition["subject"] == {"reference": "Patient/patient-1"}

        source, target = condition["code"]["coding"]
        assert source["code"] == "AY001"
        assert target == {"system": ICD11_SYSTEM_URI, "code": "MD90.0", "display": "Anxiety disorders"}
        confidence = next(e for e in source["extension"] if e["url"] == EXT_MAPPING_CONFIDENCE)
        assert confidence["valueDecimal"] == 0.75

    async def test_unmappable_condition_is_flagged(self, assembler):
        bundle = await assembler.assemble("patient-1", conditions(("ayurveda", "AY006")))

        codings = bundle["entry"][0]["resource"]["code"]["coding"]
        assert len(codings) == 1
        assert codings[0]["extension"] == [{"url": EXT_UNMAPPABLE, "valueBoolean": True}]

    async def test_unknown_concept_aborts_bundle(self, assembler, engine, monkeypatch):
        """Nothing is translated when any concept is unknown."""
        translated = []
        original = engine.translate

        async def tracking(*args, **kwargs):
            translated.append(args)
            return await original(*args, **kwargs)

        monkeypatch.setattr(engine, "translate", tracking)

        with pytest.raises(ConceptNotFound) as exc_info:
            await assembler.assemble("patient-1", conditions(("ayurveda", "AY001"), ("ayurveda", "AY404")))

        assert exc_info.value.code == "AY404"
        assert translated == []

    async def test_clinical_status_carried(self, assembler):
        request = [ConditionRequest(system="siddha", code="SI001", clinicalStatus="resolved")]
        bundle = await assembler.assemble("patient-2", request)

        status = bundle["entry"][0]["resource"]["clinicalStatus"]["coding"][0]
        assert status["code"] == "resolved"

    @pytest.mark.parametrize("patient_id,items", [("", conditions(("ayurveda", "AY001"))), ("p", [])])
    async def test_empty_input_rejected(self, assembler, patient_id, items):
        with pytest.raises(ValidationFailed):
            await assembler.assemble(patient_id, items)
