"""
Tests for terminology lookup, search and CodeSystem/ConceptMap reads.
"""


class TestSearchEndpoints:
    """Test search and lookup endpoints."""

    def test_search_terms_basic(self, client):
        """Test basic terminology search."""
        response = client.get("/terminology/search", params={"q": "vata"})

        assert response.status_code == 200
        data = response.json()
        assert data["query"] == "vata"
        assert data["total_results"] >= 1
        assert data["results"][0]["code"] == "AY001"
        assert data["results"][0]["system_uri"] == "http://terminology.gov.in/namaste/ayurveda"
        assert data["execution_time_ms"] >= 0

    def test_search_exact_code_first(self, client):
        data = client.get("/terminology/search", params={"q": "MD90.0"}).json()
        assert data["results"][0]["code"] == "MD90.0"

    def test_search_with_system_filter(self, client):
        """Test search restricted to one system."""
        data = client.get("/terminology/search", params={"q": "vat", "system": "siddha"}).json()

        assert data["system"] == "siddha"
        assert [r["code"] for r in data["results"]] == ["SI001"]

    def test_search_pagination(self, client):
        first = client.get("/terminology/search", params={"q": "a", "limit": 2}).json()
        second = client.get("/terminology/search", params={"q": "a", "limit": 2, "offset": 2}).json()

        assert len(first["results"]) == 2
        assert first["total_results"] == second["total_results"]
        assert {r["code"] for r in first["results"]}.isdisjoint(r["code"] for r in second["results"])

    def test_search_excludes_inactive(self, client):
        data = client.get("/terminology/search", params={"q": "Retired"}).json()
        assert data["total_results"] == 0

    def test_search_unknown_system(self, client):
        response = client.get("/terminology/search", params={"q": "vata", "system": "homeopathy"})
        assert response.status_code == 400

    def test_search_requires_query(self, client):
        response = client.get("/terminology/search")

        assert response.status_code == 400
        assert response.json()["resourceType"] == "OperationOutcome"


class TestCodeSystemEndpoints:
    """Test FHIR CodeSystem and ConceptMap reads."""

    def test_list_codesystems(self, client):
        data = client.get("/fhir/CodeSystem").json()

        assert data["type"] == "searchset"
        counts = {e["resource"]["id"]: e["resource"]["count"] for e in data["entry"]}
        assert counts["namaste-ayurveda"] == 4
        assert counts["namaste-icd11"] == 3

    def test_get_codesystem_paged(self, client):
        response = client.get("/fhir/CodeSystem/ayurveda", params={"page": 1, "page_size": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["resourceType"] == "CodeSystem"
        assert data["url"] == "http://terminology.gov.in/namaste/ayurveda"
        assert data["count"] == 4
        assert data["content"] == "fragment"
        assert [c["code"] for c in data["concept"]] == ["AY001", "AY002"]

    def test_get_unknown_codesystem(self, client):
        assert client.get("/fhir/CodeSystem/homeopathy").status_code == 400

    def test_get_concept(self, client):
        response = client.get("/fhir/CodeSystem/icd11/MD90.0")

        assert response.status_code == 200
        assert response.json()["display"] == "Anxiety disorders"

    def test_get_missing_concept(self, client):
        response = client.get("/fhir/CodeSystem/ayurveda/AY404")

        assert response.status_code == 404
        assert response.json()["issue"][0]["code"] == "not-found"

    def test_concept_map(self, client):
        response = client.get("/fhir/ConceptMap/namaste-icd11")

        assert response.status_code == 200
        data = response.json()
        assert data["resourceType"] == "ConceptMap"
        assert data["url"] == "http://test.local/fhir/ConceptMap/namaste-icd11"
        elements = data["group"][0]["element"]
        assert [e["code"] for e in elements] == ["AY001", "AY002"]
        assert elements[0]["display"] == "Vata Dosha Imbalance"
        assert elements[0]["target"][0]["code"] == "MD90.0"

    def test_concept_map_for_siddha(self, client):
        data = client.get("/fhir/ConceptMap/namaste-icd11", params={"system": "siddha"}).json()
        assert data["sourceUri"] == "http://terminology.gov.in/namaste/siddha"
        assert [e["code"] for e in data["group"][0]["element"]] == ["SI001"]


class TestServiceEndpoints:
    def test_health(self, client):
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["abha_auth"] == "demo_mode"
        assert data["ai_provider"] == "fallback_only"

    def test_root(self, client):
        data = client.get("/").json()
        assert data["endpoints"]["translate"] == "/translate"


class TestFhirServerEndpoints:
    """Test the CapabilityStatement and $validate."""

    def test_metadata(self, client):
        response = client.get("/fhir/metadata")

        assert response.status_code == 200
        data = response.json()
        assert data["resourceType"] == "CapabilityStatement"
        assert data["url"] == "http://test.local/fhir/metadata"
        assert data["fhirVersion"] == "4.0.1"
        types = [r["type"] for r in data["rest"][0]["resource"]]
        assert types == ["CodeSystem", "ConceptMap", "Bundle"]

    def test_validate_valid_resource(self, client, auth_headers):
        resource = {
            "resourceType": "Condition",
            "id": "c-1",
            "subject": {"reference": "Patient/patient-001"},
            "code": {"coding": [{"code": "AY001"}]},
        }

        response = client.post("/fhir/$validate", json=resource, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["issue"][0]["severity"] == "information"

    def test_validate_reports_each_problem(self, client, auth_headers):
        response = client.post(
            "/fhir/$validate",
            json={"resourceType": "ConceptMap", "id": "cm-1", "url": "http://x/cm"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        issues = response.json()["issue"]
        assert {i["code"] for i in issues} == {"structure"}
        assert [i["details"]["text"] for i in issues] == [
            "ConceptMap missing source specification",
            "ConceptMap missing target specification",
        ]

    def test_validate_missing_resource_type(self, client, auth_headers):
        response = client.post("/fhir/$validate", json={"id": "x"}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["issue"][0]["details"]["text"] == "Missing required field: resourceType"

    def test_validate_requires_token(self, client):
        assert client.post("/fhir/$validate", json={"resourceType": "Bundle"}).status_code == 401
