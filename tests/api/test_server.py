"""
API Server Tests

The backend is injected into the module global so the lifespan hook
never reads the environment.
"""

import pytest
from fastapi.testclient import TestClient

from evidence.api import server
from evidence.api.server import app
from evidence.engine import BackendConfig, EvidenceBackend
from evidence.storage import FileSnapshotStore
from tests.fixtures import VERSION_1, VERSION_2, build_store, small_corpus, write_corpus


@pytest.fixture
def client():
    server.backend_instance = EvidenceBackend(
        build_store(small_corpus()),
        BackendConfig(offline_mode=True),
    )
    try:
        yield TestClient(app)
    finally:
        server.backend_instance = None


class TestHealthAndCorpus:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "online"
        assert body["offline_mode"] is True
        assert body["corpus_versions"] == [VERSION_1]

    def test_uninitialized_backend(self):
        server.backend_instance = None
        response = TestClient(app).get("/health")
        assert response.status_code == 503

    def test_corpus(self, client):
        body = client.get("/corpus").json()
        assert body["version"] == VERSION_1
        assert body["leaf_count"] == 5
        assert body["drugs"] == [
            {"drug": "aspirin", "total_events": 3},
            {"drug": "metformin", "total_events": 2},
        ]

    def test_unknown_corpus_version(self, client):
        response = client.get("/corpus", params={"version": "v1999-01-01"})
        assert response.status_code == 404
        assert response.json()["error_code"] == "NO_CORPUS"


class TestGuidedQuery:

    def test_success(self, client):
        response = client.post("/query/guided", json={"drug": "aspirin", "sex": "Female"})
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "VERIFIED"
        assert body["trinity_level"] == 1
        assert body["results"]["total_in_corpus"] == 3
        assert body["results"]["total_matching"] == 2
        assert body["parameters"]["version"] == VERSION_1
        assert body["governance"]["decision_id"].startswith("EVE-MED-")

    def test_deterministic_hashes(self, client):
        first = client.post("/query/guided", json={"drug": "aspirin"}).json()
        second = client.post("/query/guided", json={"drug": "aspirin"}).json()
        assert first["verification"] == second["verification"]

    @pytest.mark.parametrize("payload,status,code", [
        ({}, 400, "MISSING_PARAMETER"),
        ({"drug": "aspirin", "sex": "Other"}, 400, "INVALID_PARAMETER"),
        ({"drug": "aspirin", "age_group": "65+"}, 400, "INVALID_PARAMETER"),
        ({"drug": "ibuprofen"}, 404, "NO_DATA"),
        ({"drug": "aspirin", "version": "v1999-01-01"}, 404, "NO_CORPUS"),
    ])
    def test_errors(self, client, payload, status, code):
        response = client.post("/query/guided", json=payload)
        assert response.status_code == status
        body = response.json()
        assert body["status"] == "ERROR"
        assert body["error_code"] == code


class TestCompareQuery:

    def test_success(self, client):
        response = client.post("/query/compare", json={
            "group_a": {"drug": "aspirin", "sex": "Female"},
            "group_b": {"drug": "aspirin", "sex": "Male"},
        })
        assert response.status_code == 200
        body = response.json()
        assert body["comparison"]["type"] == "SEX_COMPARISON"
        assert body["delta"]["sample_size_difference"] == 1
        assert "Causal inference" in body["interpretation_policy"]["blocked"]

    def test_version_mismatch(self, client):
        response = client.post("/query/compare", json={
            "group_a": {"drug": "aspirin", "version": VERSION_1},
            "group_b": {"drug": "aspirin", "version": VERSION_2},
        })
        assert response.status_code == 409
        assert response.json()["error_code"] == "VERSION_MISMATCH"

    def test_failing_group_named(self, client):
        response = client.post("/query/compare", json={
            "group_a": {"drug": "aspirin"},
            "group_b": {"drug": "ibuprofen"},
        })
        assert response.status_code == 404
        assert response.json()["context"]["group"] == "b"


class TestNaturalQuery:

    def test_template_answer(self, client):
        response = client.post("/query/natural", json={"question": "How many reports for aspirin?"})
        assert response.status_code == 200
        body = response.json()
        assert body["answer"]["trinity_level"] == 1
        assert body["answer"]["template_id"] == "adverse_event_count"
        assert body["query"]["parsed"]["drug"] == "aspirin"
        assert body["evidence"]["total_in_corpus"] == 3

    def test_unrecognized_question_localized(self, client):
        response = client.post("/query/natural", json={"question": "Vilka biverkningar finns för ibuprofen?"})
        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "UNRECOGNIZED_QUESTION"
        assert body["error"] == "Kunde inte identifiera något läkemedel i frågan."

    def test_exhausted_offline(self, client):
        response = client.post("/query/natural", json={"question": "Tell me about aspirin"})
        assert response.status_code == 503
        assert response.json()["error_code"] == "ESCALATION_EXHAUSTED"

    def test_empty_question(self, client):
        response = client.post("/query/natural", json={"question": "  "})
        assert response.status_code == 400


class TestProofs:

    def test_published_commitment(self, client):
        response = client.get(f"/proofs/{VERSION_1}")
        assert response.status_code == 200
        assert response.json()["leaf_count"] == 5

    def test_unknown_version(self, client):
        assert client.get("/proofs/v1999-01-01").status_code == 404

    def test_build_proof(self, client):
        published = client.get(f"/proofs/{VERSION_1}").json()
        rebuilt = client.post(f"/proofs/{VERSION_1}").json()
        assert rebuilt["root_hash"] == published["root_hash"]

    def test_record_proof_verifies(self, client):
        response = client.get(f"/proofs/{VERSION_1}/records/aspirin-A002")
        assert response.status_code == 200
        document = response.json()
        root = client.get(f"/proofs/{VERSION_1}").json()["root_hash"]

        verdict = client.post("/proofs/verify", json={
            "content": document["content"],
            "content_hash": document["content_hash"],
            "proof": document["proof"],
            "root_hash": root,
        }).json()
        assert verdict == {"valid": True, "reason": None, "root_hash": root}

    def test_tampered_record_rejected(self, client):
        document = client.get(f"/proofs/{VERSION_1}/records/aspirin-A002").json()
        verdict = client.post("/proofs/verify", json={
            "content": document["content"].replace("Headache", "Migraine"),
            "content_hash": document["content_hash"],
            "proof": document["proof"],
            "root_hash": document["proof"]["root"],
        }).json()
        assert verdict["valid"] is False
        assert verdict["reason"] == "content_hash does not match content"

    def test_unknown_record(self, client):
        response = client.get(f"/proofs/{VERSION_1}/records/aspirin-Z999")
        assert response.status_code == 404
        assert response.json()["error_code"] == "PROOF_NOT_FOUND"

    def test_bad_step_position_rejected(self, client):
        response = client.post("/proofs/verify", json={
            "content": "{}",
            "content_hash": "00",
            "proof": {"leaf": "00", "root": "00", "path": [{"hash": "00", "position": "up"}]},
            "root_hash": "00",
        })
        assert response.status_code == 422


class TestStats:

    def test_drug_stats(self, client):
        body = client.get("/stats/aspirin").json()
        assert body["total_reports"] == 3
        assert body["seriousness"] == {"serious": 2, "non_serious": 1, "unknown": 0}
        assert body["country_distribution"] == {"US": 2, "SE": 1}
        assert body["stats_hash"]

    def test_unknown_drug(self, client):
        assert client.get("/stats/ibuprofen").status_code == 404


class TestUnreadableSnapshotFiles:

    @pytest.fixture
    def file_client(self, tmp_path):
        write_corpus(tmp_path, small_corpus())
        backend = EvidenceBackend(FileSnapshotStore(str(tmp_path)), BackendConfig(offline_mode=True))
        assert backend.build_proof(VERSION_1).is_success
        server.backend_instance = backend
        try:
            yield TestClient(app), tmp_path
        finally:
            server.backend_instance = None

    def test_corrupt_proof_file_is_internal_error(self, file_client):
        client, data_dir = file_client
        (data_dir / "proofs" / f"{VERSION_1}_proof.json").write_text("{not json", encoding="utf-8")

        response = client.get(f"/proofs/{VERSION_1}")
        assert response.status_code == 500
        body = response.json()
        assert body["status"] == "ERROR"
        assert body["error_code"] == "INTERNAL_ERROR"
        assert body["context"]["action"] == "get_proof"
        assert body["context"]["path"].endswith(f"{VERSION_1}_proof.json")

    def test_corrupt_objects_file_is_internal_error(self, file_client):
        client, data_dir = file_client
        (data_dir / "corpus" / VERSION_1 / "aspirin_objects.json").write_text("[1, 2]", encoding="utf-8")

        response = client.get("/stats/aspirin")
        assert response.status_code == 500
        assert response.json()["error_code"] == "INTERNAL_ERROR"
        assert client.get("/stats/metformin").status_code == 200
