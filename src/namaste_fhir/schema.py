"""
Pydantic schemas for NAMASTE FHIR Gateway.

Defines the records exchanged with repositories, the explicit result types
returned by the translation and authentication services, and the API
request/response models.
"""

from typing import Optional, List, Dict, Any, Literal
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field

from namaste_fhir.constants import ICD11_SYSTEM, system_uri


# Repository records
class ConceptRecord(BaseModel):
    """A coded term owned by the concept repository."""
    model_config = ConfigDict(from_attributes=True)

    system: str
    code: str
    display: str
    definition: Optional[str] = None
    language: str = "en"
    properties: Dict[str, Any] = Field(default_factory=dict)
    status: Literal["active", "inactive", "deprecated"] = "active"

    @property
    def system_uri(self) -> str:
        return system_uri(self.system)

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class ConceptPage(BaseModel):
    """One page of concept search results."""
    items: List[ConceptRecord]
    total: int


class MappingRecord(BaseModel):
    """A source-to-target concept relationship."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    source_system: str
    source_code: str
    target_system: str = ICD11_SYSTEM
    target_code: str
    target_display: Optional[str] = None
    equivalence: Literal[
        "equivalent",
        "source-is-narrower-than-target",
        "source-is-broader-than-target",
        "related-to",
        "not-related-to",
    ] = "related-to"
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    comment: Optional[str] = None
    status: Literal["draft", "active", "retired", "review"] = "active"
    origin: Literal["curated", "ai-generated", "fallback"] = "curated"
    curator: Optional[str] = None
    created_at: Optional[datetime] = None


# Translation results
class Coding(BaseModel):
    """FHIR Coding."""
    system: str
    code: str
    display: Optional[str] = None


class TranslationResult(BaseModel):
    """
    Outcome of translating one source concept.

    ``target`` is None and ``equivalence`` is ``unmappable`` when the source
    concept exists but has no active mapping; that is a normal result.
    """
    source: Coding
    target: Optional[Coding] = None
    equivalence: str
    confidence: Optional[float] = None
    comment: Optional[str] = None
    origin: Optional[str] = None
    message: str = "Translation completed"

    @property
    def is_mapped(self) -> bool:
        return self.target is not None


class ItemError(BaseModel):
    """Per-item failure reported inside a batch."""
    code: str
    message: str
    status: int = 500


class BatchTranslationItem(BaseModel):
    """Either a translation result or an error for one batch entry."""
    system: str
    code: str
    result: Optional[TranslationResult] = None
    error: Optional[ItemError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# AI results
class MappingCandidate(BaseModel):
    """Best-effort mapping proposed by the AI fallback mapper."""
    source_concept: str
    source_system: str
    target_system: str = ICD11_SYSTEM
    target_code: str
    target_display: Optional[str] = None
    equivalence: str = "related-to"
    confidence: float = Field(ge=0.0, le=1.0)
    comment: Optional[str] = None
    clinical_context: Optional[str] = None
    origin: Literal["ai-generated", "fallback"]


class TermTranslation(BaseModel):
    translated_term: str
    confidence: float = Field(ge=0.0, le=1.0)
    cultural_context: Optional[str] = None
    origin: Literal["ai-generated", "fallback"]


class SuggestedCondition(BaseModel):
    code: str
    display: str
    severity: str = "moderate"
    explanation: Optional[str] = None


class SymptomAnalysis(BaseModel):
    suggested_conditions: List[SuggestedCondition]
    recommendations: str
    origin: Literal["ai-generated", "fallback"]


# Authentication
class TokenPayload(BaseModel):
    """
    Normalized claims of a verified token.

    ``verification`` tells production-verified tokens (``abha``) apart from
    the demo bypass (``demo``).
    """
    subject: str
    issuer: Optional[str] = None
    audience: Optional[str] = None
    issued_at: int
    expires_at: int
    abha_number: str
    name: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None
    address: Optional[Dict[str, Any]] = None
    verification: Literal["abha", "demo"] = "abha"

    @property
    def is_demo(self) -> bool:
        return self.verification == "demo"


class UserProfile(BaseModel):
    """ABHA profile bound to a verified identity."""
    id: str
    abha_id: str
    abha_number: Optional[str] = None
    abha_address: Optional[str] = None
    name: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[str] = None
    mobile: Optional[str] = None
    email: Optional[str] = None
    address: Optional[Dict[str, Any]] = None
    practitioner: Optional[Dict[str, Any]] = None
    verification_status: str = "verified"
    degraded: bool = False
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class UserRecord(BaseModel):
    """Local user record kept for ABHA-authenticated users."""
    model_config = ConfigDict(from_attributes=True)

    abha_id: str
    abha_number: str
    name: str
    email: Optional[str] = None
    mobile: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[str] = None
    address: Optional[Dict[str, Any]] = None
    last_login: Optional[datetime] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


class ProfileUpdateRequest(BaseModel):
    """Contact details a user may change on their local record."""
    email: Optional[str] = Field(None, max_length=200, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    mobile: Optional[str] = Field(None, pattern=r"^(\+91[\s-]?)?[6-9]\d{9}$")


class AuthSession(BaseModel):
    """Session data returned by a successful login."""
    user: UserRecord
    profile: UserProfile
    verification: Literal["abha", "demo"]
    expires_at: int


# Request Models
class SourceCoding(BaseModel):
    """System/code pair identifying a source concept."""
    system: str = Field(..., description="Source terminology system", min_length=1, max_length=200)
    code: str = Field(..., description="Concept code", min_length=1, max_length=100)


class TranslateRequest(BaseModel):
    """Request model for code translation."""
    model_config = ConfigDict(populate_by_name=True)

    source: SourceCoding
    target: str = Field(ICD11_SYSTEM, description="Target terminology system")
    ai_fallback: bool = Field(
        False,
        alias="aiFallback",
        description="Ask the AI mapper when no stored mapping exists"
    )


class BatchTranslateRequest(BaseModel):
    """Request model for batch translation."""
    concepts: List[SourceCoding] = Field(..., min_length=1, max_length=200)
    target: str = Field(ICD11_SYSTEM, description="Target terminology system")


class MapRequest(BaseModel):
    """Request model for AI concept mapping."""
    model_config = ConfigDict(populate_by_name=True)

    concept: str = Field(..., min_length=1, max_length=200)
    source_system: str = Field("ayurveda", alias="sourceSystem")
    target_system: str = Field(ICD11_SYSTEM, alias="targetSystem")
    confidence: float = Field(0.0, ge=0.0, le=1.0, description="Minimum acceptable confidence")


class LanguageTranslateRequest(BaseModel):
    """Request model for AI term translation."""
    model_config = ConfigDict(populate_by_name=True)

    concept: str = Field(..., min_length=1, max_length=200)
    source_language: str = Field("en", alias="sourceLanguage", min_length=2, max_length=10)
    target_language: str = Field(..., alias="targetLanguage", min_length=2, max_length=10)
    system: str = "ayurveda"


class SymptomAnalysisRequest(BaseModel):
    """Request model for AI symptom analysis."""
    symptoms: List[str] = Field(..., min_length=1, max_length=50)
    language: str = "en"
    system: str = "ayurveda"


class TokenRequest(BaseModel):
    """Request carrying an ABHA token."""
    token: str = Field(..., min_length=1)


class ConditionRequest(BaseModel):
    """One condition to dual-code."""
    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(..., min_length=1, max_length=100)
    system: str = Field(..., min_length=1, max_length=200)
    clinical_status: str = Field("active", alias="clinicalStatus")


class BundleRequest(BaseModel):
    """Request model for dual-coded Bundle assembly."""
    model_config = ConfigDict(populate_by_name=True)

    patient_id: str = Field(..., alias="patientId", min_length=1, max_length=100)
    conditions: List[ConditionRequest] = Field(..., min_length=1, max_length=100)


# Response Models
class ConceptResponse(BaseModel):
    """Response model for a single concept."""
    system: str
    system_uri: str
    code: str
    display: str
    definition: Optional[str] = None
    language: str = "en"
    status: str = "active"
    properties: Optional[Dict[str, Any]] = None

    @classmethod
    def from_record(cls, record: ConceptRecord) -> "ConceptResponse":
        return cls(
            system=record.system,
            system_uri=record.system_uri,
            code=record.code,
            display=record.display,
            definition=record.definition,
            language=record.language,
            status=record.status,
            properties=record.properties or None,
        )


class SearchResponse(BaseModel):
    """Response model for search endpoint."""
    query: str
    system: Optional[str] = None
    total_results: int
    results: List[ConceptResponse]
    execution_time_ms: Optional[float] = None


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str
    service: str
    version: str
    database: str
    abha_auth: str
    ai_provider: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
