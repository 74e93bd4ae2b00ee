"""
Tests for the SQL repositories and CSV loader against a temporary SQLite file.
"""

import pytest

from namaste_fhir.db.repositories import SqlConceptRepository, SqlMappingStore, SqlUserRepository
from namaste_fhir.db.session import create_engine, create_session_factory, init_db
from namaste_fhir.schema import ConceptRecord, MappingRecord
from namaste_fhir.security.audit import AuditRecorder
from namaste_fhir.services.concept_loader import ConceptLoader
from namaste_fhir.services.translation_engine import TranslationEngine


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'namaste-test.db'}")
    await init_db(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def concept_repo(session_factory):
    return SqlConceptRepository(session_factory)


@pytest.fixture
def mapping_store(session_factory):
    return SqlMappingStore(session_factory)


@pytest.fixture
async def seeded(concept_repo, mapping_store):
    loader = ConceptLoader(concept_repo, mapping_store)
    return await loader.seed_defaults()


def mapping(**values):
    values.setdefault("source_system", "ayurveda")
    values.setdefault("source_code", "AY006")
    return MappingRecord(**values)


class TestSqlConceptRepository:
    """Test concept storage and search."""

    async def test_seed_loads_all_systems(self, seeded, concept_repo):
        assert seeded["namaste"]["loaded"] == 13
        assert seeded["icd11"]["loaded"] == 9

        concept = await concept_repo.find_by_code("AY001", "ayurveda")
        assert concept.display == "Vata Dosha Imbalance"
        assert concept.properties["dosha"] == "vata"

        icd = await concept_repo.find_by_code("MD90.0", "icd11")
        assert icd.properties["category"] == "Mental Health"

    async def test_reseeding_skips_existing(self, seeded, concept_repo, mapping_store):
        again = await ConceptLoader(concept_repo, mapping_store).seed_defaults()

        assert again["namaste"]["loaded"] == 0
        assert again["namaste"]["skipped"] == 13
        stats = await mapping_store.statistics()
        assert stats["total_mappings"] == 12

    async def test_search_ranks_exact_code_first(self, seeded, concept_repo):
        page = await concept_repo.search("AY001")
        assert page.items[0].code == "AY001"

    async def test_search_filters_by_system(self, seeded, concept_repo):
        page = await concept_repo.search("vat", system="siddha")

        assert page.total == 1
        assert page.items[0].code == "SI001"

    async def test_search_pagination(self, seeded, concept_repo):
        first = await concept_repo.search("a", system="ayurveda", limit=2)
        second = await concept_repo.search("a", system="ayurveda", limit=2, offset=2)

        assert len(first.items) == 2
        assert first.total == second.total
        assert {c.code for c in first.items}.isdisjoint(c.code for c in second.items)

    async def test_list_by_system_ordered(self, seeded, concept_repo):
        page = await concept_repo.list_by_system("unani")
        assert [c.code for c in page.items] == ["UN001", "UN002", "UN003", "UN004"]
        assert page.total == 4

    async def test_bulk_insert_skips_duplicates(self, concept_repo):
        record = ConceptRecord(system="ayurveda", code="X1", display="Test")
        assert await concept_repo.bulk_insert([record, record]) == 1
        assert await concept_repo.bulk_insert([record]) == 0


class TestSqlMappingStore:
    """Test mapping persistence."""

    async def test_seeded_translation(self, seeded, concept_repo, mapping_store):
        """AY001 maps to MD90.0 with related-to at 0.75."""
        result = await TranslationEngine(concept_repo, mapping_store).translate("AY001", "ayurveda")

        assert result.target.code == "MD90.0"
        assert result.target.display == "Anxiety disorders"
        assert result.equivalence == "related-to"
        assert result.confidence == 0.75

    async def test_seeded_anidra_unmappable(self, seeded, concept_repo, mapping_store):
        result = await TranslationEngine(concept_repo, mapping_store).translate("AY006", "ayurveda")
        assert result.equivalence == "unmappable"

    async def test_upsert_updates_existing_pair(self, mapping_store):
        first = await mapping_store.upsert(mapping(target_code="MG24.0", confidence=0.6))
        second = await mapping_store.upsert(mapping(target_code="MG24.0", confidence=0.8, comment="revised"))

        assert second.id == first.id
        rows = await mapping_store.find_for_source("ayurveda", "AY006")
        assert len(rows) == 1
        assert rows[0].confidence == 0.8
        assert rows[0].comment == "revised"

    async def test_propose_keeps_retired_curated_row(self, mapping_store):
        curated = await mapping_store.upsert(mapping(target_code="MD90.0", comment="curated"))
        await mapping_store.retire(curated.id)

        proposal = mapping(
            target_code="MD90.0", comment="AI says so", status="review", origin="ai-generated"
        )
        assert await mapping_store.propose(proposal) is None

        rows = await mapping_store.find_for_source("ayurveda", "AY006")
        assert [(r.id, r.status, r.origin, r.comment) for r in rows] == [
            (curated.id, "retired", "curated", "curated")
        ]

    async def test_propose_inserts_then_refreshes_review_row(self, mapping_store):
        first = await mapping_store.propose(
            mapping(target_code="7A00", confidence=0.7, status="review", origin="ai-generated")
        )
        second = await mapping_store.propose(
            mapping(target_code="7A00", confidence=0.8, status="review", origin="ai-generated")
        )

        assert first.status == "review"
        assert second.id == first.id
        assert second.confidence == 0.8
        assert await mapping_store.find_active_for_source("ayurveda", "AY006") == []

    async def test_active_mappings_ordered(self, mapping_store):
        await mapping_store.upsert(mapping(target_code="MG30.0", confidence=0.9))
        await mapping_store.upsert(mapping(target_code="MG24.0", confidence=0.95))
        await mapping_store.upsert(mapping(target_code="MD90.0", confidence=0.99, status="review"))

        active = await mapping_store.find_active_for_source("ayurveda", "AY006")

        assert [m.target_code for m in active] == ["MG24.0", "MG30.0"]
        assert all(m.created_at is not None for m in active)

    async def test_retire(self, mapping_store):
        row = await mapping_store.upsert(mapping(target_code="MG24.0"))

        assert await mapping_store.retire(row.id)
        assert await mapping_store.find_active_for_source("ayurveda", "AY006") == []
        assert not await mapping_store.retire(9999)

    async def test_statistics(self, seeded, mapping_store):
        stats = await mapping_store.statistics()

        assert stats["total_mappings"] == 12
        assert stats["status_distribution"] == {"active": 12}
        assert stats["source_system_distribution"] == {"ayurveda": 5, "siddha": 3, "unani": 4}
        assert 0.6 < stats["average_confidence"] < 0.8


class TestSqlUserRepository:
    async def test_upsert_creates_then_updates(self, session_factory):
        users = SqlUserRepository(session_factory)
        values = {"abha_id": "91234567890123", "abha_number": "91234567890123", "name": "Asha"}

        created = await users.upsert(values)
        updated = await users.upsert({**values, "name": "Asha Verma"})

        assert created.last_login is not None
        assert updated.name == "Asha Verma"
        assert (await users.get("91234567890123")).name == "Asha Verma"
        assert await users.get("00000000000000") is None

    async def test_update_existing_only(self, session_factory):
        users = SqlUserRepository(session_factory)
        await users.upsert({"abha_id": "91234567890123", "abha_number": "91234567890123", "name": "Asha"})

        updated = await users.update("91234567890123", {"mobile": "9876543210"})

        assert updated.mobile == "9876543210"
        assert updated.name == "Asha"
        assert await users.update("00000000000000", {"mobile": "9876543210"}) is None

    async def test_audit_recorder_writes_entry(self, session_factory):
        audit_id = await AuditRecorder(session_factory).record(
            actor="tester", action="create", resource_type="Bundle", resource_id="b-1", detail={"n": 1}
        )
        assert audit_id
