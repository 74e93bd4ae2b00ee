"""
Shared fixtures: in-memory repositories, fake providers and a test client
wired to a service container built from them.
"""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient

from namaste_fhir.config import Settings
from namaste_fhir.constants import ICD11_SYSTEM
from namaste_fhir.dependencies import ServiceContainer, get_services
from namaste_fhir.errors import AIProviderFailure, KeyFetchFailed
from namaste_fhir.main import create_app
from namaste_fhir.schema import ConceptPage, ConceptRecord, MappingRecord, UserRecord
from namaste_fhir.security.profile_service import ProfileService
from namaste_fhir.security.token_verifier import TokenVerifier
from namaste_fhir.services.ai_mapper import AIFallbackMapper
from namaste_fhir.services.bundle_assembler import BundleAssembler
from namaste_fhir.services.concept_loader import ConceptLoader
from namaste_fhir.services.translation_engine import TranslationEngine
from namaste_fhir.services.user_service import UserService
from namaste_fhir.utils.cache import TTLCache

BASE_URL = "http://test.local/fhir"
EPOCH = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock for caches and token expiry."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryConceptRepository:
    def __init__(self, concepts: Sequence[ConceptRecord] = ()):
        self.concepts: Dict[tuple, ConceptRecord] = {}
        for concept in concepts:
            self.concepts[(concept.system, concept.code)] = concept

    async def find_by_code(self, code: str, system: str) -> Optional[ConceptRecord]:
        return self.concepts.get((system, code))

    async def search(self, query: str, system: Optional[str] = None, limit: int = 20, offset: int = 0) -> ConceptPage:
        q = query.lower()

        def rank(c: ConceptRecord) -> int:
            if c.code.lower() == q:
                return 0
            if c.display.lower().startswith(q):
                return 1
            return 2

        matches = [
            c for c in self.concepts.values()
            if c.is_active
            and (system is None or c.system == system)
            and (q in c.code.lower() or q in c.display.lower() or q in (c.definition or "").lower())
        ]
        matches.sort(key=lambda c: (rank(c), c.display))
        return ConceptPage(items=matches[offset:offset + limit], total=len(matches))

    async def list_by_system(self, system: str, limit: int = 100, offset: int = 0) -> ConceptPage:
        items = sorted((c for c in self.concepts.values() if c.system == system), key=lambda c: c.code)
        return ConceptPage(items=items[offset:offset + limit], total=len(items))

    async def bulk_insert(self, concepts: Sequence[ConceptRecord]) -> int:
        inserted = 0
        for concept in concepts:
            key = (concept.system, concept.code)
            if key not in self.concepts:
                self.concepts[key] = concept
                inserted += 1
        return inserted


class InMemoryMappingStore:
    """Mapping store that returns rows in insertion order, unranked."""

    def __init__(self):
        self.rows: List[MappingRecord] = []
        self._ids = itertools.count(1)

    def add(self, **values: Any) -> MappingRecord:
        values.setdefault("id", next(self._ids))
        values.setdefault("created_at", EPOCH + timedelta(minutes=values["id"]))
        record = MappingRecord(**values)
        self.rows.append(record)
        return record

    async def find_active_for_source(self, source_system, source_code, target_system=ICD11_SYSTEM):
        return [
            m for m in self.rows
            if m.source_system == source_system and m.source_code == source_code
            and m.target_system == target_system and m.status == "active"
        ]

    async def find_for_source(self, source_system, source_code):
        return [m for m in self.rows if m.source_system == source_system and m.source_code == source_code]

    async def list_active(self, source_system=None, target_system=ICD11_SYSTEM, limit=1000):
        rows = [
            m for m in self.rows
            if m.status == "active" and m.target_system == target_system
            and (source_system is None or m.source_system == source_system)
        ]
        return rows[:limit]

    async def upsert(self, mapping: MappingRecord) -> MappingRecord:
        for i, row in enumerate(self.rows):
            if (row.source_system, row.source_code, row.target_system, row.target_code) == (
                mapping.source_system, mapping.source_code, mapping.target_system, mapping.target_code
            ):
                updated = mapping.model_copy(update={"id": row.id, "created_at": row.created_at})
                self.rows[i] = updated
                return updated
        return self.add(**mapping.model_dump(exclude={"id", "created_at"}))

    async def propose(self, mapping: MappingRecord) -> Optional[MappingRecord]:
        for row in self.rows:
            if (row.source_system, row.source_code, row.target_system, row.target_code) == (
                mapping.source_system, mapping.source_code, mapping.target_system, mapping.target_code
            ):
                if row.status == "review" and row.origin == mapping.origin:
                    return await self.upsert(mapping)
                return None
        return await self.upsert(mapping)

    async def retire(self, mapping_id: int) -> bool:
        for i, row in enumerate(self.rows):
            if row.id == mapping_id:
                self.rows[i] = row.model_copy(update={"status": "retired"})
                return True
        return False

    async def statistics(self) -> Dict[str, Any]:
        active = [m for m in self.rows if m.status == "active"]
        return {
            "total_mappings": len(self.rows),
            "status_distribution": {},
            "source_system_distribution": {},
            "equivalence_distribution": {},
            "average_confidence": round(sum(m.confidence for m in active) / len(active), 3) if active else 0.0,
        }


class InMemoryUserRepository:
    def __init__(self):
        self.users: Dict[str, UserRecord] = {}

    async def get(self, abha_id: str) -> Optional[UserRecord]:
        return self.users.get(abha_id)

    async def upsert(self, values: Dict[str, Any]) -> UserRecord:
        fields = {k: v for k, v in values.items() if k in UserRecord.model_fields}
        record = UserRecord(**fields, last_login=datetime.now(timezone.utc), is_active=True)
        self.users[record.abha_id] = record
        return record

    async def update(self, abha_id: str, values: Dict[str, Any]) -> Optional[UserRecord]:
        record = self.users.get(abha_id)
        if record is None:
            return None
        record = record.model_copy(update=values)
        self.users[abha_id] = record
        return record


class FakeAIProvider:
    """AI provider returning canned text, or raising."""

    def __init__(self, responses: Sequence[str] = (), error: Optional[Exception] = None, configured: bool = True):
        self.responses = list(responses)
        self.error = error
        self._configured = configured
        self.prompts: List[str] = []

    @property
    def configured(self) -> bool:
        return self._configured

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if not self.responses:
            raise AIProviderFailure("No canned response left")
        return self.responses.pop(0)


class FakeKeyProvider:
    """Key provider serving keys from a dict and counting fetches."""

    def __init__(self, keys: Optional[Dict[str, Any]] = None):
        self.keys = keys or {}
        self.calls = 0

    async def get_key(self, key_id: str):
        self.calls += 1
        if key_id not in self.keys:
            raise KeyFetchFailed(f"Unknown signing key id '{key_id}'")
        return self.keys[key_id]


class FakeAuditRecorder:
    def __init__(self):
        self.entries: List[Dict[str, Any]] = []

    async def record(self, actor, action, resource_type=None, resource_id=None, detail=None) -> str:
        self.entries.append({
            "actor": actor,
            "action": action,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "detail": detail,
        })
        return str(len(self.entries))


def concept(system: str, code: str, display: str, **kwargs: Any) -> ConceptRecord:
    return ConceptRecord(system=system, code=code, display=display, **kwargs)


SAMPLE_CONCEPTS = [
    concept("ayurveda", "AY001", "Vata Dosha Imbalance", definition="Imbalance in Vata dosha"),
    concept("ayurveda", "AY002", "Pitta Dosha Excess"),
    concept("ayurveda", "AY006", "Anidra", definition="Sleeplessness"),
    concept("ayurveda", "AY099", "Retired Term", status="inactive"),
    concept("siddha", "SI001", "Vatha Kalam Disorder"),
    concept("icd11", "MD90.0", "Anxiety disorders"),
    concept("icd11", "MG30.0", "Essential hypertension"),
    concept("icd11", "MG24.0", "Sleep disorder"),
]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def concepts():
    return InMemoryConceptRepository(SAMPLE_CONCEPTS)


@pytest.fixture
def mappings():
    store = InMemoryMappingStore()
    store.add(source_system="ayurveda", source_code="AY001", target_code="MD90.0",
              equivalence="related-to", confidence=0.75, comment="Vata imbalance often correlates with anxiety")
    store.add(source_system="ayurveda", source_code="AY002", target_code="MG30.0",
              equivalence="source-is-narrower-than-target", confidence=0.68)
    store.add(source_system="siddha", source_code="SI001", target_code="MD90.0",
              equivalence="related-to", confidence=0.70)
    return store


@pytest.fixture
def engine(concepts, mappings):
    return TranslationEngine(concepts, mappings)


@pytest.fixture
def ai_provider():
    return FakeAIProvider(configured=False)


@pytest.fixture
def audit():
    return FakeAuditRecorder()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite:///:memory:",
        demo_mode=True,
        fhir_base_url=BASE_URL,
        gemini_api_key=None,
    )


@pytest.fixture
def services(settings, concepts, mappings, engine, ai_provider, audit, clock):
    verifier = TokenVerifier(
        key_provider=FakeKeyProvider(),
        key_cache=TTLCache(86400, clock=clock, name="key-cache"),
        demo_mode=True,
        demo_secret=settings.demo_token_secret,
        clock=clock,
    )
    profiles = ProfileService("http://abha.test/api", cache=TTLCache(3600, clock=clock, name="profile-cache"))
    return ServiceContainer(
        settings=settings,
        concepts=concepts,
        mappings=mappings,
        engine=engine,
        ai_mapper=AIFallbackMapper(ai_provider),
        verifier=verifier,
        users=UserService(verifier, profiles, InMemoryUserRepository(), audit),
        bundles=BundleAssembler(concepts, engine, BASE_URL),
        loader=ConceptLoader(concepts, mappings),
        audit=audit,
    )


@pytest.fixture
def client(settings, services):
    """Test client with the service container overridden; lifespan is not run."""
    app = create_app(settings)
    app.dependency_overrides[get_services] = lambda: services
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer demo-token-12345"}
