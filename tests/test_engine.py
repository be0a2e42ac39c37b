"""
Backend Integration Tests
=========================

Exercises EvidenceBackend end to end over an in-memory store: commitments,
record proofs, the natural-language path and configuration. Unreadable
snapshot files are exercised against the file store.
"""

import json
import os
from dataclasses import replace

import pytest

from evidence.contracts.base import AuditEventType, ErrorCode, TrinityLevel
from evidence.engine import BackendConfig, EvidenceBackend, create_backend
from evidence.observability import DEFAULT_AUDIT_MAX_ENTRIES, AuditLog
from evidence.storage import FileSnapshotStore
from generative.providers import MockProvider, ProviderErrorCode
from tests.fixtures import (
    VERSION_1,
    VERSION_2,
    build_store,
    make_event,
    make_object,
    metformin_corpus,
    small_corpus,
    write_corpus,
)

PARSED_METFORMIN = '{"drug": "metformin", "sex": "Female", "age_group": "65-84", "serious": null, "reaction": null}'


@pytest.fixture
def backend():
    return EvidenceBackend(build_store(small_corpus()), BackendConfig(offline_mode=True))


class TestCommitments:

    def test_build_proof_for_uncommitted_version(self):
        backend = EvidenceBackend(build_store(small_corpus(), commit=False))
        assert backend.get_proof().error.code is ErrorCode.NO_PROOF

        built = backend.build_proof()
        assert built.is_success
        assert built.value.leaf_count == 5
        assert backend.get_proof(VERSION_1).value.root_hash == built.value.root_hash

    def test_empty_version(self):
        store = build_store({"aspirin": []}, commit=False)
        result = EvidenceBackend(store).build_proof(VERSION_1)
        assert result.error.code is ErrorCode.EMPTY_CORPUS

    def test_no_corpus(self):
        backend = EvidenceBackend(build_store({}, commit=False))
        assert backend.build_proof().error.code is ErrorCode.NO_CORPUS

    def test_build_is_audited(self, backend):
        backend.build_proof()
        assert [e.action for e in backend.get_audit_log()["engine"]] == ["build_proof"]


class TestRecordProofs:

    def test_prove_and_verify(self, backend):
        result = backend.prove_record("aspirin-A003")
        assert result.is_success
        record_proof = result.value
        assert record_proof.version == VERSION_1
        assert backend.verify_proof(record_proof.proof)
        assert backend.verify_record(record_proof) == (True, None)

    def test_wrong_root(self, backend):
        record_proof = backend.prove_record("aspirin-A003").value
        ok, reason = backend.verify_record(record_proof, published_root="0" * 64)
        assert not ok
        assert reason == "proof root does not match published root"

    def test_unknown_version_without_root(self, backend):
        record_proof = backend.prove_record("aspirin-A003").value
        ok, reason = backend.verify_record(replace(record_proof, version="v1999-01-01"))
        assert not ok
        assert "unknown version" in reason

    def test_unknown_record(self, backend):
        result = backend.prove_record("aspirin-Z999")
        assert result.error.code is ErrorCode.PROOF_NOT_FOUND
        assert result.error.context_value("record_id") == "aspirin-Z999"

    def test_snapshot_drift_is_integrity_mismatch(self):
        store = build_store(small_corpus())
        store.add_objects(VERSION_1, "aspirin", [make_object(VERSION_1, "aspirin", make_event("A004"))])
        result = EvidenceBackend(store).prove_record("aspirin-A001")
        assert result.error.code is ErrorCode.INTEGRITY_MISMATCH

    def test_pinned_to_requested_version(self):
        store = build_store(small_corpus(), version=VERSION_1)
        build_store({"aspirin": [make_event("A001", reactions=[("Rash", "1")])]}, version=VERSION_2, store=store)
        backend = EvidenceBackend(store)
        old = backend.prove_record("aspirin-A001", VERSION_1).value
        new = backend.prove_record("aspirin-A001").value
        assert old.version == VERSION_1
        assert new.version == VERSION_2
        assert old.content_hash != new.content_hash


class TestUnreadableSnapshotFiles:

    @pytest.fixture
    def file_backend(self, tmp_path):
        write_corpus(tmp_path, small_corpus())
        backend = EvidenceBackend(FileSnapshotStore(str(tmp_path)), BackendConfig(offline_mode=True))
        assert backend.build_proof(VERSION_1).is_success
        return backend

    def overwrite(self, backend, relative, text):
        path = os.path.join(backend.store.data_dir, relative)
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        return path

    def test_corrupt_proof_file(self, file_backend):
        path = self.overwrite(file_backend, f"proofs/{VERSION_1}_proof.json", "{not json")

        result = file_backend.get_proof(VERSION_1)
        assert result.error.code is ErrorCode.INTERNAL_ERROR
        assert result.error.context_value("path") == path
        assert result.error.context_value("action") == "get_proof"

        assert file_backend.prove_record("aspirin-A001").error.code is ErrorCode.INTERNAL_ERROR
        assert file_backend.describe_corpus().error.code is ErrorCode.INTERNAL_ERROR

    def test_corrupt_proof_file_fails_verification(self, file_backend):
        record_proof = file_backend.prove_record("aspirin-A001").value
        self.overwrite(file_backend, f"proofs/{VERSION_1}_proof.json", "{not json")
        ok, reason = file_backend.verify_record(record_proof)
        assert not ok
        assert "unreadable" in reason

    def test_corrupt_objects_file(self, file_backend):
        self.overwrite(file_backend, f"corpus/{VERSION_1}/aspirin_objects.json", json.dumps([{"id": "x"}]))

        assert file_backend.build_proof(VERSION_1).error.code is ErrorCode.INTERNAL_ERROR
        assert file_backend.drug_statistics("aspirin").error.code is ErrorCode.INTERNAL_ERROR
        assert file_backend.run_guided_query({"drug": "aspirin"}).error.code is ErrorCode.INTERNAL_ERROR
        assert file_backend.drug_statistics("metformin").is_success

    def test_corrupt_stats_file_recomputed(self, file_backend):
        self.overwrite(file_backend, f"corpus/{VERSION_1}/aspirin_stats.json", "{not json")
        assert file_backend.drug_statistics("aspirin").value.total_reports == 3

    def test_failure_is_audited(self, file_backend):
        self.overwrite(file_backend, f"corpus/{VERSION_1}/aspirin_objects.json", "{not json")
        file_backend.build_proof(VERSION_1)
        entries = file_backend.get_audit_log()["engine"]
        assert [e.action for e in entries] == ["build_proof", "build_proof"]
        assert entries[-1].event_type is AuditEventType.ERROR


class TestNaturalPath:

    def test_offline_template_answer(self):
        backend = EvidenceBackend(build_store(metformin_corpus()), BackendConfig(offline_mode=True))
        result = backend.ask("What are the most common reactions for metformin?")
        assert result.is_success
        answer = result.value
        assert answer.parameters.drug == "metformin"
        assert answer.answer.level is TrinityLevel.VERIFIED
        assert answer.to_dict()["evidence"]["total_in_corpus"] == 500

    def test_local_model_parses_and_renders(self):
        provider = MockProvider(replies=[PARSED_METFORMIN, "120 reports; Nausea in 100%."])
        backend = EvidenceBackend(build_store(metformin_corpus()), local_provider=provider)
        result = backend.ask("Tell me about metformin in older women")

        assert result.is_success
        natural = result.value
        assert natural.result.total_matching == 120
        assert natural.answer.level is TrinityLevel.LOCAL
        assert natural.answer.text == "120 reports; Nausea in 100%."
        body = natural.to_dict()
        assert body["status"] == "UNVERIFIED"
        assert body["answer"]["model_used"] == "mock:mock-deterministic-v1"
        assert body["query"]["parsed"]["version"] == VERSION_1

    def test_parser_failure_falls_back_to_keywords(self):
        provider = MockProvider(failure_mode=ProviderErrorCode.NETWORK_ERROR)
        backend = EvidenceBackend(
            build_store(metformin_corpus()),
            BackendConfig(offline_mode=True),
            local_provider=provider,
        )
        result = backend.ask("How many reports for metformin?")
        assert result.value.parameters.sex is None
        assert result.value.answer.template_id == "adverse_event_count"

    def test_parsed_reaction_bound_to_corpus_terms(self):
        provider = MockProvider(replies=['{"drug": "metformin", "reaction": "NAUSEA"}'])
        backend = EvidenceBackend(
            build_store(metformin_corpus()), BackendConfig(offline_mode=True), local_provider=provider
        )
        result = backend.ask("How many reports for metformin?")
        assert result.value.parameters.reaction == "Nausea"
        assert result.value.result.total_matching == 120

    def test_model_reaction_never_reaches_template_answer(self):
        provider = MockProvider(replies=['{"drug": "metformin", "reaction": "You should stop taking it"}'])
        backend = EvidenceBackend(
            build_store(metformin_corpus()), BackendConfig(offline_mode=True), local_provider=provider
        )
        result = backend.ask("How many reports for metformin?")
        natural = result.value
        assert natural.parameters.reaction is None
        assert natural.answer.level is TrinityLevel.VERIFIED
        assert "stop taking" not in natural.answer.text
        assert natural.result.total_matching == 500

    def test_advisory_text_never_returned(self):
        provider = MockProvider(replies=[PARSED_METFORMIN, "You should stop taking metformin."])
        backend = EvidenceBackend(build_store(metformin_corpus()), local_provider=provider)
        result = backend.ask("Tell me about metformin")
        assert result.error.code is ErrorCode.WITNESS_VIOLATION

    def test_unrecognized_carries_language(self, backend):
        result = backend.ask("Vilka biverkningar finns för ibuprofen?")
        assert result.error.code is ErrorCode.UNRECOGNIZED_QUESTION
        assert result.error.context_value("language") == "sv"

    def test_missing_question(self, backend):
        assert backend.ask("   ").error.code is ErrorCode.MISSING_PARAMETER


class TestCorpusAndStats:

    def test_describe_corpus(self, backend):
        corpus = backend.describe_corpus().value
        assert corpus["version"] == VERSION_1
        assert corpus["leaf_count"] == 5
        assert [d["drug"] for d in corpus["drugs"]] == ["aspirin", "metformin"]

    def test_drug_statistics(self, backend):
        stats = backend.drug_statistics("metformin").value
        body = stats.to_dict()
        assert body["total_reports"] == 2
        assert body["age_distribution"]["85+"] == 1
        assert body["outcome_distribution"]["Unknown"] == 1
        assert body["reports_by_year"] == {"2024": 1, "2025": 1}

    def test_stored_stats_preferred(self):
        store = build_store(small_corpus())
        store.add_stats(VERSION_1, "aspirin", {
            "drug": "aspirin",
            "stats": {
                "total_reports": 4200,
                "seriousness": {"serious": 4000, "non_serious": 200, "unknown": 0},
                "outcome_distribution": {"Recovered/Resolved": 10, "Fatal": 2},
            },
        })
        body = EvidenceBackend(store).drug_statistics("aspirin").value.to_dict()
        assert body["total_reports"] == 4200
        assert body["outcome_distribution"] == {"Recovered/Resolved": 10, "Fatal": 2}
        assert body["country_distribution"] == {}

    def test_unreadable_stored_stats_recomputed(self):
        store = build_store(small_corpus())
        store.add_stats(VERSION_1, "aspirin", {"stats": {"seriousness": {}}})
        assert EvidenceBackend(store).drug_statistics("aspirin").value.total_reports == 3

    def test_stats_hash_stable(self, backend):
        assert backend.drug_statistics("aspirin").value.stats_hash == \
            backend.drug_statistics("aspirin").value.stats_hash

    def test_stats_errors(self, backend):
        assert backend.drug_statistics("").error.code is ErrorCode.MISSING_PARAMETER
        assert backend.drug_statistics("ibuprofen").error.code is ErrorCode.NO_DATA

    def test_guided_query_from_mapping(self, backend):
        assert backend.run_guided_query({"drug": "aspirin", "serious": "maybe"}).error.code is \
            ErrorCode.INVALID_PARAMETER


class TestConfiguration:

    def test_from_env(self):
        config = BackendConfig.from_env({
            "EVE_DATA_DIR": "/srv/eve",
            "EVE_OFFLINE_MODE": "true",
            "EVE_ENABLE_LEVEL3": "0",
            "EVE_LEVEL2_TIMEOUT": "abc",
            "EVE_LEVEL3_TIMEOUT": "12.5",
            "ANTHROPIC_API_KEY": "secret-key",
        })
        assert config.data_dir == "/srv/eve"
        assert config.offline_mode is True
        assert config.enable_level3 is False
        assert config.level2_timeout_seconds == 5.0
        assert config.level3_timeout_seconds == 12.5
        assert "secret-key" not in repr(config)

    def test_defaults(self):
        config = BackendConfig.from_env({})
        assert config.offline_mode is False
        assert config.escalation().level3_allowed is True

    def test_offline_disables_level3(self):
        assert BackendConfig(offline_mode=True).escalation().level3_allowed is False

    def test_create_backend(self, tmp_path):
        backend = create_backend(BackendConfig(data_dir=str(tmp_path), offline_mode=True))
        assert isinstance(backend.store, FileSnapshotStore)
        assert backend.list_versions() == []
        assert backend.describe_corpus().error.code is ErrorCode.NO_CORPUS

    def test_audit_bound_from_env(self):
        assert BackendConfig.from_env({"EVE_AUDIT_MAX_ENTRIES": "250"}).audit_max_entries == 250
        assert BackendConfig.from_env({"EVE_AUDIT_MAX_ENTRIES": "lots"}).audit_max_entries == \
            DEFAULT_AUDIT_MAX_ENTRIES


class TestAuditRetention:

    def test_each_layer_keeps_only_the_newest_entries(self):
        backend = EvidenceBackend(
            build_store(small_corpus()),
            BackendConfig(offline_mode=True, audit_max_entries=3),
        )
        for _ in range(5):
            backend.run_guided_query({"drug": "aspirin"})
            backend.run_compare_query({"drug": "aspirin"}, {"drug": "metformin"})
            backend.ask("How many reports for aspirin?")

        logs = backend.get_audit_log()
        assert len(logs["query"]) == 3
        assert len(logs["compare"]) == 3
        assert len(logs["escalation"]) == 3

    def test_eviction_keeps_order_and_unique_ids(self):
        log = AuditLog("test", max_entries=2)
        first = log.record(AuditEventType.QUERY, "one")
        second = log.record(AuditEventType.QUERY, "two")
        third = log.record(AuditEventType.QUERY, "three")

        assert log.get_entries() == [second, third]
        assert log.entry_count == 2
        assert log.total_recorded == 3
        assert len({first.entry_id, second.entry_id, third.entry_id}) == 3

    def test_unbounded_when_none(self):
        log = AuditLog("test", max_entries=None)
        for i in range(50):
            log.record(AuditEventType.QUERY, f"q{i}")
        assert log.entry_count == 50
        assert log.max_entries is None

    def test_rejects_non_positive_bound(self):
        with pytest.raises(ValueError):
            AuditLog("test", max_entries=0)
