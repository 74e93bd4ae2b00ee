"""
Tests for concept translation endpoints.
"""

import json

import pytest

from conftest import FakeAIProvider


def params(data):
    return {p["name"]: p for p in data["parameter"]}


def match_parts(data):
    return {part["name"]: part for part in params(data)["match"]["part"]}


class TestTranslateEndpoints:
    """Test translation endpoints."""

    def test_translate_concept_post(self, client):
        """Test concept translation using POST method."""
        response = client.post("/translate", json={"source": {"system": "ayurveda", "code": "AY001"}})

        assert response.status_code == 200
        data = response.json()
        assert data["resourceType"] == "Parameters"
        assert params(data)["result"]["valueBoolean"] is True

        parts = match_parts(data)
        assert parts["concept"]["valueCoding"]["code"] == "MD90.0"
        assert parts["equivalence"]["valueCode"] == "related-to"
        assert parts["confidence"]["valueDecimal"] == 0.75

    def test_translate_concept_get(self, client):
        """Test concept translation using GET method."""
        response = client.get("/translate/siddha/SI001")

        assert response.status_code == 200
        assert match_parts(response.json())["concept"]["valueCoding"]["code"] == "MD90.0"

    def test_translate_unmappable(self, client):
        response = client.post("/translate", json={"source": {"system": "ayurveda", "code": "AY006"}})

        assert response.status_code == 200
        data = params(response.json())
        assert data["result"]["valueBoolean"] is False
        assert data["equivalence"]["valueCode"] == "unmappable"
        assert data["message"]["valueString"] == "No equivalent concept found in target system"

    def test_translate_concept_not_found(self, client):
        """Test translation of non-existent concept."""
        response = client.post("/translate", json={"source": {"system": "ayurveda", "code": "INVALID"}})

        assert response.status_code == 404
        issue = response.json()["issue"][0]
        assert issue["code"] == "not-found"
        assert issue["diagnostics"] == "CONCEPT_NOT_FOUND"

    def test_translate_unsupported_target(self, client):
        response = client.get("/translate/ayurveda/AY001", params={"target": "snomed"})

        assert response.status_code == 400
        assert response.json()["issue"][0]["code"] == "invalid"

    def test_translate_missing_fields(self, client):
        """Test translation with missing required fields."""
        response = client.post("/translate", json={"source": {"system": "ayurveda"}})

        assert response.status_code == 400
        data = response.json()
        assert data["resourceType"] == "OperationOutcome"
        assert data["issue"][0]["diagnostics"] == "VALIDATION_FAILED"


class TestAIFallbackTranslation:
    """Test POST /translate with aiFallback."""

    @pytest.fixture
    def ai_provider(self):
        return FakeAIProvider([json.dumps({
            "icd11Code": "7A00", "icd11Display": "Chronic insomnia",
            "relationship": "equivalent", "confidenceScore": 0.82,
        })])

    def test_ai_candidate_persisted_for_review(self, client, mappings, audit):
        response = client.post(
            "/translate",
            json={"source": {"system": "ayurveda", "code": "AY006"}, "aiFallback": True},
        )

        assert response.status_code == 200
        data = response.json()
        parts = match_parts(data)
        assert parts["concept"]["valueCoding"]["code"] == "7A00"
        assert parts["origin"]["valueCode"] == "ai-generated"
        assert params(data)["message"]["valueString"] == "AI-suggested mapping pending review"

        stored = [m for m in mappings.rows if m.source_code == "AY006"]
        assert len(stored) == 1
        assert stored[0].status == "review"
        assert stored[0].origin == "ai-generated"
        assert audit.entries[-1]["action"] == "propose"

    def test_retired_curated_mapping_not_overwritten(self, client, mappings, audit):
        retired = mappings.add(
            source_system="ayurveda", source_code="AY006", target_code="7A00",
            confidence=0.6, comment="Withdrawn by curators", status="retired",
        )

        response = client.post(
            "/translate",
            json={"source": {"system": "ayurveda", "code": "AY006"}, "aiFallback": True},
        )

        assert response.status_code == 200
        assert match_parts(response.json())["concept"]["valueCoding"]["code"] == "7A00"
        stored = [m for m in mappings.rows if m.source_code == "AY006"]
        assert stored == [retired]
        assert audit.entries == []

    def test_review_candidate_not_used_by_curated_translation(self, client):
        client.post("/translate", json={"source": {"system": "ayurveda", "code": "AY006"}, "aiFallback": True})

        response = client.get("/translate/ayurveda/AY006")
        assert params(response.json())["equivalence"]["valueCode"] == "unmappable"

    def test_unknown_concept_gets_suggestion_without_persisting(self, client, mappings):
        before = len(mappings.rows)
        response = client.post(
            "/translate",
            json={"source": {"system": "ayurveda", "code": "Nidranasha"}, "aiFallback": True},
        )

        assert response.status_code == 200
        assert match_parts(response.json())["concept"]["valueCoding"]["code"] == "7A00"
        assert len(mappings.rows) == before

    def test_curated_mapping_skips_ai(self, client, ai_provider):
        client.post("/translate", json={"source": {"system": "ayurveda", "code": "AY001"}, "aiFallback": True})
        assert ai_provider.prompts == []


class TestBatchTranslate:
    def test_batch_response_bundle(self, client):
        response = client.post("/translate/batch", json={"concepts": [
            {"system": "ayurveda", "code": "AY001"},
            {"system": "ayurveda", "code": "AY404"},
            {"system": "ayurveda", "code": "AY006"},
        ]})

        assert response.status_code == 200
        bundle = response.json()
        assert bundle["type"] == "batch-response"
        statuses = [e["response"]["status"] for e in bundle["entry"]]
        assert statuses == ["200", "404", "200"]
        assert bundle["entry"][1]["resource"]["issue"][0]["diagnostics"] == "CONCEPT_NOT_FOUND"

    def test_empty_batch_rejected(self, client):
        assert client.post("/translate/batch", json={"concepts": []}).status_code == 400


class TestMappingEndpoints:
    def test_concept_mappings(self, client):
        response = client.get("/mappings/ayurveda/AY001")

        assert response.status_code == 200
        data = response.json()
        assert data["parameter"][0]["valueCoding"]["code"] == "AY001"
        assert [p["name"] for p in data["parameter"]] == ["source", "match"]

    def test_statistics(self, client):
        response = client.get("/mappings/statistics")

        assert response.status_code == 200
        assert response.json()["total_mappings"] == 3
