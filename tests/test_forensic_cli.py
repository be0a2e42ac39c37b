"""
Forensic CLI Tests

Runs main() against a data directory laid out the way batch ingestion
writes it. Exit codes: 0 pass, 1 fail, 2 usage.
"""

import json
import os
from unittest.mock import patch

import pytest

from evidence.forensic import main
from tests.fixtures import VERSION_1, small_corpus, write_corpus


@pytest.fixture(autouse=True)
def no_log_handlers():
    with patch("evidence.forensic.configure_logging"):
        yield


@pytest.fixture
def data_dir(tmp_path):
    write_corpus(tmp_path, small_corpus())
    return str(tmp_path)


def run(data_dir, *args):
    return main(["--data-dir", data_dir, *args])


class TestVersionsAndProve:

    def test_no_command(self, data_dir, capsys):
        assert main(["--data-dir", data_dir]) == 2

    def test_versions_before_proof(self, data_dir, capsys):
        assert run(data_dir, "versions") == 0
        assert f"* {VERSION_1}  (no proof file)" in capsys.readouterr().out

    def test_empty_data_dir(self, tmp_path, capsys):
        assert run(str(tmp_path), "versions") == 1

    def test_prove_writes_proof_file(self, data_dir, capsys):
        assert run(data_dir, "prove") == 0
        out = capsys.readouterr().out
        assert f"[PASS] {VERSION_1}: 5 leaves" in out
        assert os.path.exists(os.path.join(data_dir, "proofs", f"{VERSION_1}_proof.json"))

        assert run(data_dir, "versions") == 0
        assert "(no proof file)" not in capsys.readouterr().out

    def test_prove_unknown_version(self, data_dir, capsys):
        assert run(data_dir, "prove", "--version", "v1999-01-01") == 1
        assert "[FAIL] NO_CORPUS" in capsys.readouterr().out

    def test_versions_with_corrupt_proof_file(self, data_dir, capsys):
        assert run(data_dir, "prove") == 0
        with open(os.path.join(data_dir, "proofs", f"{VERSION_1}_proof.json"), "w", encoding="utf-8") as f:
            f.write("{not json")
        capsys.readouterr()

        assert run(data_dir, "versions") == 0
        assert f"* {VERSION_1}  (unreadable proof file)" in capsys.readouterr().out

    def test_prove_with_corrupt_objects_file(self, data_dir, capsys):
        with open(os.path.join(data_dir, "corpus", VERSION_1, "aspirin_objects.json"), "w", encoding="utf-8") as f:
            f.write("{not json")
        assert run(data_dir, "prove") == 1
        assert "[FAIL] INTERNAL_ERROR" in capsys.readouterr().out


class TestRecordProofs:

    @pytest.fixture
    def proof_file(self, data_dir, tmp_path):
        assert run(data_dir, "prove") == 0
        path = str(tmp_path / "a002.json")
        assert run(data_dir, "prove-record", "aspirin-A002", "--out", path) == 0
        return path

    def test_verify_against_proof_file_root(self, data_dir, proof_file, capsys):
        assert run(data_dir, "verify-proof", proof_file) == 0
        assert "[PASS] Record aspirin-A002" in capsys.readouterr().out

    def test_verify_against_explicit_root(self, data_dir, proof_file, capsys):
        with open(proof_file, encoding="utf-8") as f:
            root = json.load(f)["proof"]["root"]
        assert run(data_dir, "verify-proof", proof_file, "--root", root) == 0
        assert run(data_dir, "verify-proof", proof_file, "--root", "0" * 64) == 1

    def test_tampered_content_fails(self, data_dir, proof_file, capsys):
        with open(proof_file, encoding="utf-8") as f:
            document = json.load(f)
        document["content"] = document["content"].replace("Headache", "Migraine")
        with open(proof_file, "w", encoding="utf-8") as f:
            json.dump(document, f)

        assert run(data_dir, "verify-proof", proof_file) == 1
        assert "content_hash does not match content" in capsys.readouterr().out

    def test_unreadable_file(self, data_dir, tmp_path, capsys):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        assert run(data_dir, "verify-proof", str(path)) == 1

    def test_record_without_commitment(self, data_dir, capsys):
        assert run(data_dir, "prove-record", "aspirin-A002") == 1
        assert "[FAIL] NO_PROOF" in capsys.readouterr().out


class TestQueries:

    @pytest.fixture(autouse=True)
    def committed(self, data_dir):
        assert run(data_dir, "prove") == 0

    def test_query(self, data_dir, capsys):
        capsys.readouterr()
        assert run(data_dir, "query", "--drug", "aspirin", "--serious") == 0
        body = json.loads(capsys.readouterr().out)
        assert body["results"]["total_matching"] == 2
        assert body["applied_filters"] == ["Serious only"]

    def test_query_invalid_sex(self, data_dir, capsys):
        assert run(data_dir, "query", "--drug", "aspirin", "--sex", "Other") == 1
        assert "INVALID_PARAMETER" in capsys.readouterr().out

    def test_compare(self, data_dir, capsys):
        capsys.readouterr()
        assert run(data_dir, "compare", '{"drug": "aspirin", "sex": "Female"}', '{"drug": "aspirin", "sex": "Male"}') == 0
        body = json.loads(capsys.readouterr().out)
        assert body["corpus_version"] == VERSION_1

    def test_compare_rejects_non_objects(self, data_dir, capsys):
        assert run(data_dir, "compare", "[1]", "{}") == 1
        assert run(data_dir, "compare", "not json", "{}") == 1

    def test_stats(self, data_dir, capsys):
        capsys.readouterr()
        assert run(data_dir, "stats", "aspirin") == 0
        assert json.loads(capsys.readouterr().out)["total_reports"] == 3
