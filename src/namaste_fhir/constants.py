"""Terminology system identifiers and FHIR URLs."""

from typing import Optional

NAMASTE_SYSTEMS = {
    "ayurveda": "http://terminology.gov.in/namaste/ayurveda",
    "siddha": "http://terminology.gov.in/namaste/siddha",
    "unani": "http://terminology.gov.in/namaste/unani",
}

ICD11_SYSTEM = "icd11"
ICD11_SYSTEM_URI = "http://id.who.int/icd/release/11/mms"

SYSTEM_URIS = {**NAMASTE_SYSTEMS, ICD11_SYSTEM: ICD11_SYSTEM_URI}

SYSTEM_TITLES = {
    "ayurveda": "Ayurveda",
    "siddha": "Siddha",
    "unani": "Unani",
    ICD11_SYSTEM: "ICD-11",
}

# ConceptMap equivalence labels
EQUIVALENT = "equivalent"
SOURCE_NARROWER = "source-is-narrower-than-target"
SOURCE_BROADER = "source-is-broader-than-target"
RELATED_TO = "related-to"
NOT_RELATED_TO = "not-related-to"
UNMAPPABLE = "unmappable"

EQUIVALENCES = (EQUIVALENT, SOURCE_NARROWER, SOURCE_BROADER, RELATED_TO, NOT_RELATED_TO)

# Mapping origins
ORIGIN_CURATED = "curated"
ORIGIN_AI = "ai-generated"
ORIGIN_FALLBACK = "fallback"

# Extension URLs used on dual-coded resources
EXT_MAPPING_CONFIDENCE = "http://terminology.gov.in/namaste/StructureDefinition/mapping-confidence"
EXT_UNMAPPABLE = "http://terminology.gov.in/namaste/StructureDefinition/unmappable"
EXT_MAPPING_ORIGIN = "http://terminology.gov.in/namaste/StructureDefinition/mapping-origin"

PUBLISHER = "National Institute of Traditional Medicine"


def normalize_system(system: Optional[str]) -> str:
    """
    Resolve a system short name or URI to its short name.

    Unknown values are returned lower-cased so that lookups simply miss.
    """
    if not system:
        return ""
    value = system.strip()
    for name, uri in SYSTEM_URIS.items():
        if value == uri:
            return name
    value = value.lower()
    if value in ("icd-11", "icd11-mms"):
        return ICD11_SYSTEM
    return value


def system_uri(system: str) -> str:
    """Canonical URI for a system short name."""
    return SYSTEM_URIS.get(system, f"http://terminology.gov.in/namaste/{system}")
