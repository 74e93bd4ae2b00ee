"""
FHIR resource builders.

Plain-dict builders for the handful of FHIR R4 resources the gateway emits:
OperationOutcome, Parameters, Condition, ConceptMap, CodeSystem, Bundle and
CapabilityStatement, plus a structural check for submitted resources.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from namaste_fhir.constants import (
    EXT_MAPPING_CONFIDENCE,
    EXT_MAPPING_ORIGIN,
    EXT_UNMAPPABLE,
    ICD11_SYSTEM_URI,
    PUBLISHER,
    SYSTEM_TITLES,
    system_uri,
)
from namaste_fhir.schema import (
    BatchTranslationItem,
    ConceptRecord,
    MappingCandidate,
    MappingRecord,
    SymptomAnalysis,
    TermTranslation,
    TranslationResult,
)

CONDITION_CLINICAL = "http://terminology.hl7.org/CodeSystem/condition-clinical"
CONDITION_VER_STATUS = "http://terminology.hl7.org/CodeSystem/condition-ver-status"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def operation_outcome(
    severity: str,
    code: str,
    text: str,
    diagnostics: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build an OperationOutcome with a single issue.

    Args:
        severity: error, warning or information
        code: FHIR issue type (invalid, not-found, security, exception, ...)
        text: Human-readable description
        diagnostics: Machine-readable error code

    Returns:
        OperationOutcome resource
    """
    issue: Dict[str, Any] = {"severity": severity, "code": code, "details": {"text": text}}
    if diagnostics:
        issue["diagnostics"] = diagnostics
    return {"resourceType": "OperationOutcome", "issue": [issue]}


def coding(system: str, code: str, display: Optional[str] = None) -> Dict[str, Any]:
    value = {"system": system, "code": code}
    if display:
        value["display"] = display
    return value


def translation_parameters(result: TranslationResult) -> Dict[str, Any]:
    """FHIR ``$translate`` output Parameters for one translation result."""
    parameters: List[Dict[str, Any]] = [
        {"name": "result", "valueBoolean": result.is_mapped},
        {"name": "message", "valueString": result.message},
    ]

    if result.is_mapped:
        parts: List[Dict[str, Any]] = [
            {"name": "equivalence", "valueCode": result.equivalence},
            {"name": "concept", "valueCoding": result.target.model_dump(exclude_none=True)},
            {"name": "confidence", "valueDecimal": result.confidence},
        ]
        if result.origin:
            parts.append({"name": "origin", "valueCode": result.origin})
        if result.comment:
            parts.append({"name": "comment", "valueString": result.comment})
        parameters.append({"name": "match", "part": parts})
    else:
        parameters.append({"name": "equivalence", "valueCode": result.equivalence})

    return {"resourceType": "Parameters", "parameter": parameters}


def condition(
    patient_id: str,
    source: ConceptRecord,
    result: TranslationResult,
    clinical_status: str = "active",
) -> Dict[str, Any]:
    """
    Build a Condition coded with the source concept and, when mapped, ICD-11.

    Mapped conditions carry the mapping confidence as an extension on the
    source coding; unmapped ones carry the ``unmappable`` extension instead.
    """
    source_coding = coding(source.system_uri, source.code, source.display)
    codings = [source_coding]

    if result.is_mapped:
        source_coding["extension"] = [
            {"url": EXT_MAPPING_CONFIDENCE, "valueDecimal": result.confidence},
            {"url": EXT_MAPPING_ORIGIN, "valueCode": result.origin or "curated"},
        ]
        codings.append(coding(ICD11_SYSTEM_URI, result.target.code, result.target.display))
    else:
        source_coding["extension"] = [{"url": EXT_UNMAPPABLE, "valueBoolean": True}]

    return {
        "resourceType": "Condition",
        "id": str(uuid.uuid4()),
        "meta": {
            "lastUpdated": _now(),
            "profile": ["http://hl7.org/fhir/StructureDefinition/Condition"],
        },
        "clinicalStatus": {
            "coding": [coding(CONDITION_CLINICAL, clinical_status, clinical_status.capitalize())]
        },
        "verificationStatus": {
            "coding": [coding(CONDITION_VER_STATUS, "confirmed", "Confirmed")]
        },
        "code": {"coding": codings, "text": source.display},
        "subject": {"reference": f"Patient/{patient_id}"},
        "recordedDate": _now(),
    }


def bundle(
    resources: Sequence[Dict[str, Any]],
    bundle_type: str = "collection",
    base_url: Optional[str] = None,
) -> Dict[str, Any]:
    """Wrap resources in a Bundle; entries get a ``fullUrl`` when a base URL is given."""
    entries = []
    for resource in resources:
        entry: Dict[str, Any] = {"resource": resource}
        if base_url and resource.get("id"):
            entry["fullUrl"] = f"{base_url.rstrip('/')}/{resource['resourceType']}/{resource['id']}"
        entries.append(entry)

    return {
        "resourceType": "Bundle",
        "id": str(uuid.uuid4()),
        "meta": {"lastUpdated": _now()},
        "type": bundle_type,
        "total": len(entries),
        "entry": entries,
    }


def concept_map(
    mappings: Iterable[MappingRecord],
    source_system: str,
    base_url: str,
    source_displays: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """ConceptMap from one NAMASTE system to ICD-11."""
    source_displays = source_displays or {}
    source = system_uri(source_system)
    elements = []
    for mapping in mappings:
        target: Dict[str, Any] = {
            "code": mapping.target_code,
            "equivalence": mapping.equivalence,
        }
        if mapping.target_display:
            target["display"] = mapping.target_display
        if mapping.comment:
            target["comment"] = mapping.comment
        target["extension"] = [{"url": EXT_MAPPING_CONFIDENCE, "valueDecimal": mapping.confidence}]

        element: Dict[str, Any] = {"code": mapping.source_code, "target": [target]}
        if mapping.source_code in source_displays:
            element["display"] = source_displays[mapping.source_code]
        elements.append(element)

    return {
        "resourceType": "ConceptMap",
        "id": f"namaste-{source_system}-icd11",
        "meta": {"lastUpdated": _now(), "versionId": "1"},
        "url": f"{base_url.rstrip('/')}/ConceptMap/namaste-icd11",
        "version": "1.0.0",
        "name": "NAMASTEToICD11Map",
        "title": f"NAMASTE {SYSTEM_TITLES.get(source_system, source_system)} to ICD-11 Concept Map",
        "status": "active",
        "experimental": False,
        "date": _now(),
        "publisher": PUBLISHER,
        "sourceUri": source,
        "targetUri": ICD11_SYSTEM_URI,
        "group": [{"source": source, "target": ICD11_SYSTEM_URI, "element": elements}],
    }


def code_system(
    system: str,
    concepts: Sequence[ConceptRecord],
    total: int,
) -> Dict[str, Any]:
    """CodeSystem resource for one terminology system (possibly a page of it)."""
    title = SYSTEM_TITLES.get(system, system)
    return {
        "resourceType": "CodeSystem",
        "id": f"namaste-{system}",
        "meta": {"lastUpdated": _now(), "versionId": "1"},
        "url": system_uri(system),
        "version": "1.0.0",
        "name": f"{title.replace('-', '')}CodeSystem",
        "title": f"NAMASTE {title} Code System" if system != "icd11" else "ICD-11 MMS",
        "status": "active",
        "experimental": False,
        "publisher": PUBLISHER,
        "caseSensitive": True,
        "content": "complete" if total == len(concepts) else "fragment",
        "count": total,
        "concept": [
            {
                "code": c.code,
                "display": c.display,
                **({"definition": c.definition} if c.definition else {}),
                **(
                    {"property": [{"code": k, "valueString": str(v)} for k, v in c.properties.items()]}
                    if c.properties else {}
                ),
            }
            for c in concepts
        ],
    }



def capability_statement(base_url: str, version: str) -> Dict[str, Any]:
    """CapabilityStatement describing the resources and operations this server supports."""
    return {
        "resourceType": "CapabilityStatement",
        "id": "namaste-capability",
        "url": f"{base_url}/metadata",
        "version": version,
        "name": "NAMASTECapabilityStatement",
        "title": "NAMASTE FHIR Gateway Capability Statement",
        "status": "active",
        "experimental": False,
        "date": _now(),
        "publisher": PUBLISHER,
        "kind": "instance",
        "implementation": {
            "description": "NAMASTE to ICD-11 terminology gateway",
            "url": base_url,
        },
        "fhirVersion": "4.0.1",
        "format": ["json"],
        "rest": [{
            "mode": "server",
            "resource": [
                {
                    "type": "CodeSystem",
                    "interaction": [{"code": "read"}, {"code": "search-type"}],
                },
                {"type": "ConceptMap", "interaction": [{"code": "read"}]},
                {"type": "Bundle", "interaction": [{"code": "create"}]},
            ],
            "operation": [
                {"name": "translate", "definition": "http://hl7.org/fhir/OperationDefinition/ConceptMap-translate"},
                {"name": "validate", "definition": "http://hl7.org/fhir/OperationDefinition/Resource-validate"},
            ],
        }],
    }


# resourceType -> fields it must carry, beyond resourceType and id
_REQUIRED_FIELDS = {
    "CodeSystem": ("url", "content"),
    "ConceptMap": ("url",),
    "Condition": ("subject", "code"),
    "Bundle": ("type",),
}


def validation_errors(resource: Dict[str, Any]) -> List[str]:
    """
    Structural problems of a FHIR resource.

    Only checks that required top-level fields are present; this is not a
    profile validator.
    """
    errors = []
    resource_type = resource.get("resourceType")
    if not resource_type:
        errors.append("Missing required field: resourceType")
    if not resource.get("id"):
        errors.append("Missing required field: id")

    for field in _REQUIRED_FIELDS.get(resource_type, ()):
        if not resource.get(field):
            errors.append(f"{resource_type} missing required field: {field}")

    if resource_type == "ConceptMap":
        if not (resource.get("sourceUri") or resource.get("sourceCanonical")):
            errors.append("ConceptMap missing source specification")
        if not (resource.get("targetUri") or resource.get("targetCanonical")):
            errors.append("ConceptMap missing target specification")

    return errors


def validation_outcome(errors: Sequence[str]) -> Dict[str, Any]:
    if not errors:
        return operation_outcome("information", "informational", "Resource is valid")
    return {
        "resourceType": "OperationOutcome",
        "issue": [
            {"severity": "error", "code": "structure", "details": {"text": e}}
            for e in errors
        ],
    }


_ISSUE_CODES = {400: "invalid", 401: "security", 404: "not-found", 502: "exception", 503: "transient"}


def batch_response(items: Sequence[BatchTranslationItem]) -> Dict[str, Any]:
    """``batch-response`` Bundle with one entry per batch item, in order."""
    entries = []
    for item in items:
        if item.ok:
            entries.append({
                "response": {"status": "200"},
                "resource": translation_parameters(item.result),
            })
        else:
            entries.append({
                "response": {"status": str(item.error.status)},
                "resource": operation_outcome(
                    "error",
                    _ISSUE_CODES.get(item.error.status, "exception"),
                    item.error.message,
                    diagnostics=item.error.code,
                ),
            })

    return {
        "resourceType": "Bundle",
        "id": str(uuid.uuid4()),
        "type": "batch-response",
        "total": len(entries),
        "entry": entries,
    }


def concept_mappings_parameters(source: ConceptRecord, mappings: Sequence[MappingRecord]) -> Dict[str, Any]:
    """Parameters listing every active mapping of one source concept."""
    return {
        "resourceType": "Parameters",
        "parameter": [
            {
                "name": "source",
                "valueCoding": coding(source.system_uri, source.code, source.display),
            },
            *[
                {
                    "name": "match",
                    "part": [
                        {"name": "equivalence", "valueCode": m.equivalence},
                        {"name": "concept", "valueCoding": coding(ICD11_SYSTEM_URI, m.target_code, m.target_display)},
                        {"name": "confidence", "valueDecimal": m.confidence},
                        {"name": "origin", "valueCode": m.origin},
                        *([{"name": "comment", "valueString": m.comment}] if m.comment else []),
                    ],
                }
                for m in mappings
            ],
        ],
    }


def candidate_concept_map(candidate: MappingCandidate) -> Dict[str, Any]:
    """Single-element ConceptMap for an AI mapping suggestion."""
    source = system_uri(candidate.source_system)
    target: Dict[str, Any] = {
        "code": candidate.target_code,
        "equivalence": candidate.equivalence,
        "extension": [
            {"url": EXT_MAPPING_CONFIDENCE, "valueDecimal": candidate.confidence},
            {"url": EXT_MAPPING_ORIGIN, "valueCode": candidate.origin},
        ],
    }
    if candidate.target_display:
        target["display"] = candidate.target_display
    if candidate.comment:
        target["comment"] = candidate.comment

    return {
        "resourceType": "ConceptMap",
        "url": f"http://terminology.gov.in/namaste/ConceptMap/{candidate.source_system}-to-icd11",
        "name": f"{candidate.source_system.upper()}-to-ICD11",
        "status": "draft",
        "sourceUri": source,
        "targetUri": ICD11_SYSTEM_URI,
        "group": [{
            "source": source,
            "target": ICD11_SYSTEM_URI,
            "element": [{
                "code": candidate.source_concept.lower().replace(" ", "-"),
                "display": candidate.source_concept,
                "target": [target],
            }],
        }],
    }


def term_translation_parameters(
    term: str, source_language: str, target_language: str, translation: TermTranslation
) -> Dict[str, Any]:
    parts = [
        {"name": "source", "valueString": term},
        {"name": "sourceLanguage", "valueCode": source_language},
        {"name": "target", "valueString": translation.translated_term},
        {"name": "targetLanguage", "valueCode": target_language},
        {"name": "confidence", "valueDecimal": translation.confidence},
        {"name": "origin", "valueCode": translation.origin},
    ]
    if translation.cultural_context:
        parts.append({"name": "culturalContext", "valueString": translation.cultural_context})
    return {"resourceType": "Parameters", "parameter": [{"name": "translation", "part": parts}]}


def symptom_analysis_parameters(
    symptoms: Sequence[str], system: str, analysis: SymptomAnalysis
) -> Dict[str, Any]:
    """Parameters wrapping suggested Conditions in a collection Bundle."""
    conditions = [
        {
            "resourceType": "Condition",
            "id": str(uuid.uuid4()),
            "code": {"coding": [coding(system_uri(system), c.code, c.display)]},
            "severity": {"coding": [{"system": "http://hl7.org/fhir/condition-severity", "code": c.severity}]},
            **({"note": [{"text": c.explanation}]} if c.explanation else {}),
        }
        for c in analysis.suggested_conditions
    ]
    return {
        "resourceType": "Parameters",
        "parameter": [{
            "name": "analysis",
            "part": [
                {"name": "symptoms", "valueString": ", ".join(symptoms)},
                {"name": "system", "valueCode": system},
                {"name": "suggestedConditions", "resource": bundle(conditions)},
                {"name": "recommendations", "valueString": analysis.recommendations},
                {"name": "origin", "valueCode": analysis.origin},
            ],
        }],
    }
