"""
Engine Orchestration Module

Unified interface over the evidence layers. The HTTP layer and the
forensic CLI talk to EvidenceBackend only.

DESIGN PRINCIPLES:
==================
1. Layers communicate ONLY through contracts
2. The store is injected; nothing here reaches for global state
3. Every failure is a Result carrying a typed Error
4. Generative providers are optional; without them Level 1 still answers
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional, Tuple
import functools
import logging
import os
import time

from .contracts.base import (
    AuditEventType, Error, ErrorCode, Result, Timestamp,
)
from .contracts.proofs import CorpusProof, MerkleProof, RecordProof
from .contracts.query import QueryParameters, QueryResult
from .contracts.records import KnowledgeObject
from .escalation import EscalationAnswer, EscalationConfig, EscalationOrchestrator
from .escalation.templates import EscalationContext
from .governance import disclaimer_for
from .observability import AuditLog, DEFAULT_AUDIT_MAX_ENTRIES
from .query import GuidedQueryEngine, QueryEngineConfig
from .query.compare import CompareEngine
from .stats import DrugStats, build_drug_stats, stats_from_document
from .storage import FileSnapshotStore, SnapshotReadError, SnapshotStore
from .verify.merkle import (
    EmptyCorpusError, create_corpus_proof, generate_proof, verify_proof, verify_record_proof,
)

from generative.language import (
    AnswerRenderer, KeywordParser, ProviderFallback, QuestionParser, detect_language,
)
from generative.providers.base import LLMProvider
from generative.providers.external import DEFAULT_EXTERNAL_MODEL, ExternalModelProvider
from generative.providers.local import DEFAULT_LOCAL_MODEL, LocalModelProvider

logger = logging.getLogger(__name__)

TOP_REACTIONS_IN_ANSWER = 5

STORE_READ_ERRORS = (SnapshotReadError, OSError)


def _store_guarded(action: str):
    """Turn an unreadable snapshot or proof file into an INTERNAL_ERROR result."""
    def decorate(method):
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs):
            try:
                return method(self, *args, **kwargs)
            except STORE_READ_ERRORS as e:
                logger.exception("%s failed reading the snapshot store", action)
                error = Error.create(ErrorCode.INTERNAL_ERROR, f"{action} failed: {e}", action=action)
                if isinstance(e, SnapshotReadError):
                    error = error.with_context("path", e.path)
                self._audit.record(AuditEventType.ERROR, action, metadata=(("error_code", error.code.name),))
                return Result.failure(error)
        return wrapper
    return decorate


def _env_flag(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(value: Optional[str], default: float) -> float:
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring non-numeric timeout %r, using %.1f", value, default)
        return default


def _env_int(value: Optional[str], default: int) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-integer value %r, using %d", value, default)
        return default


@dataclass(frozen=True)
class BackendConfig:
    """Unified configuration for the evidence backend."""
    data_dir: str = "./data"
    offline_mode: bool = False
    enable_level3: bool = True
    level2_timeout_seconds: float = 5.0
    level3_timeout_seconds: float = 30.0
    local_llm_url: Optional[str] = None
    local_llm_model: str = DEFAULT_LOCAL_MODEL
    external_model: str = DEFAULT_EXTERNAL_MODEL
    anthropic_api_key: Optional[str] = field(default=None, repr=False)
    log_level: str = "INFO"
    audit_max_entries: int = DEFAULT_AUDIT_MAX_ENTRIES
    query: QueryEngineConfig = field(default_factory=QueryEngineConfig)

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> BackendConfig:
        env = os.environ if environ is None else environ
        return BackendConfig(
            data_dir=env.get("EVE_DATA_DIR", "./data"),
            offline_mode=_env_flag(env.get("EVE_OFFLINE_MODE"), False),
            enable_level3=_env_flag(env.get("EVE_ENABLE_LEVEL3"), True),
            level2_timeout_seconds=_env_float(env.get("EVE_LEVEL2_TIMEOUT"), 5.0),
            level3_timeout_seconds=_env_float(env.get("EVE_LEVEL3_TIMEOUT"), 30.0),
            local_llm_url=env.get("EVE_LOCAL_LLM_URL") or None,
            local_llm_model=env.get("EVE_LOCAL_LLM_MODEL", DEFAULT_LOCAL_MODEL),
            external_model=env.get("EVE_EXTERNAL_MODEL", DEFAULT_EXTERNAL_MODEL),
            anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
            log_level=env.get("EVE_LOG_LEVEL", "INFO"),
            audit_max_entries=_env_int(env.get("EVE_AUDIT_MAX_ENTRIES"), DEFAULT_AUDIT_MAX_ENTRIES),
        )

    def escalation(self) -> EscalationConfig:
        return EscalationConfig(
            level2_timeout_seconds=self.level2_timeout_seconds,
            level3_timeout_seconds=self.level3_timeout_seconds,
            enable_level3=self.enable_level3,
            offline_mode=self.offline_mode,
            audit_max_entries=self.audit_max_entries,
        )


@dataclass(frozen=True)
class NaturalAnswer:
    """Question → parsed parameters → verified result → escalated answer."""
    question: str
    language: str
    parameters: QueryParameters
    result: QueryResult
    answer: EscalationAnswer
    processing_time_ms: float = 0.0

    def to_dict(self) -> dict:
        answer = self.answer.to_dict()
        return {
            "status": self.answer.verification_status.value,
            "corpus": {
                "version": self.result.corpus_version,
                "root_hash": self.result.root_hash,
            },
            "query": {
                "original": self.question,
                "parsed": self.parameters.to_dict(),
                "applied_filters": list(self.result.applied_filters),
            },
            "answer": {
                "language": self.language,
                "text": answer["text"],
                "trinity_level": answer["trinity_level"],
                "generation_mode": answer["generation_mode"],
                "template_id": answer["template_id"],
                "model_used": answer["model_used"],
            },
            "evidence": {
                "total_matching": self.result.total_matching,
                "total_in_corpus": self.result.total_in_corpus,
                "top_reactions": [r.to_dict() for r in self.result.reaction_summary[:TOP_REACTIONS_IN_ANSWER]],
                "seriousness": self.result.seriousness,
                "outcomes": self.result.outcomes,
            },
            "verification": {
                "query_hash": self.result.query_hash,
                "result_hash": self.result.result_hash,
                "root_hash": self.result.root_hash,
            },
            "disclaimer": disclaimer_for(self.language),
            "processing_time_ms": self.processing_time_ms,
        }


class EvidenceBackend:
    """
    Unified backend for the evidence query engine.

    LAYER FLOW:
    ===========
    1. Storage: read-only snapshots + regenerable proof files
    2. Verify: Merkle commitments and inclusion proofs
    3. Query: guided and compare queries over one pinned version
    4. Escalation: template → local model → external model, witness-guarded

    The only write is the proof file produced by build_proof().
    """

    def __init__(
        self,
        store: SnapshotStore,
        config: Optional[BackendConfig] = None,
        local_provider: Optional[LLMProvider] = None,
        external_provider: Optional[LLMProvider] = None
    ):
        self._store = store
        self._config = config or BackendConfig()
        self._guided = GuidedQueryEngine(
            store, replace(self._config.query, audit_max_entries=self._config.audit_max_entries)
        )
        self._compare = CompareEngine(self._guided)
        self._local = local_provider
        self._external = external_provider
        self._escalation = EscalationOrchestrator(
            local_fallback=ProviderFallback(AnswerRenderer(local_provider)) if local_provider else None,
            external_fallback=ProviderFallback(AnswerRenderer(external_provider)) if external_provider else None,
            config=self._config.escalation(),
        )
        self._audit = AuditLog("engine", self._config.audit_max_entries)

    @property
    def store(self) -> SnapshotStore:
        return self._store

    @property
    def config(self) -> BackendConfig:
        return self._config

    def _resolve(self, version: Optional[str]) -> Result:
        resolved = self._guided.resolve_version(version)
        if resolved is None:
            message = "No corpus available" if version is None else f"Corpus version {version} not found"
            return Result.failure(Error.create(ErrorCode.NO_CORPUS, message))
        return Result.success(resolved)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def run_guided_query(self, params) -> Result:
        """Accepts QueryParameters or a raw mapping."""
        if not isinstance(params, QueryParameters):
            try:
                params = QueryParameters.from_dict(params)
            except ValueError as e:
                return Result.failure(Error.create(
                    ErrorCode.INVALID_PARAMETER, str(e), parameter="serious"
                ))
        return self._guided.run(params)

    @_store_guarded("compare_query")
    def run_compare_query(self, group_a, group_b) -> Result:
        parsed = []
        for side, params in (("a", group_a), ("b", group_b)):
            if not isinstance(params, QueryParameters):
                try:
                    params = QueryParameters.from_dict(params or {})
                except ValueError as e:
                    return Result.failure(Error.create(
                        ErrorCode.INVALID_PARAMETER, f"Group {side.upper()}: {e}", group=side
                    ))
            parsed.append(params)
        return self._compare.run(parsed[0], parsed[1])

    # =========================================================================
    # PROOFS
    # =========================================================================

    @_store_guarded("build_proof")
    def build_proof(self, version: Optional[str] = None) -> Result:
        """Build the commitment for a version and persist its proof file."""
        resolved = self._resolve(version)
        if resolved.is_failure:
            return resolved
        version = resolved.value

        objects = self._store.load_objects(version)
        try:
            proof, _ = create_corpus_proof(version, objects, Timestamp.now().to_iso())
        except EmptyCorpusError as e:
            return Result.failure(Error.create(ErrorCode.EMPTY_CORPUS, f"{e} ({version})", version=version))

        self._store.save_commitment(proof)
        self._audit.record(
            AuditEventType.PROOF, "build_proof",
            entity_id=version,
            metadata=(("root_hash", proof.root_hash), ("leaf_count", str(proof.leaf_count))),
        )
        logger.info("Committed %s: %d leaves, root %s", version, proof.leaf_count, proof.root_hash[:16])
        return Result.success(proof)

    @_store_guarded("get_proof")
    def get_proof(self, version: Optional[str] = None) -> Result:
        resolved = self._resolve(version)
        if resolved.is_failure:
            return resolved
        commitment = self._store.load_commitment(resolved.value)
        if commitment is None:
            return Result.failure(Error.create(
                ErrorCode.NO_PROOF, f"No proof found for version {resolved.value}", version=resolved.value
            ))
        return Result.success(commitment)

    @_store_guarded("prove_record")
    def prove_record(self, record_id: str, version: Optional[str] = None) -> Result:
        """
        Inclusion proof for one record against the published root.

        The tree is rebuilt from the snapshot; a root that disagrees with
        the proof file is reported as INTEGRITY_MISMATCH, never papered over.
        """
        published = self.get_proof(version)
        if published.is_failure:
            return published
        commitment: CorpusProof = published.value

        obj = self._store.find_object(commitment.version, record_id)
        if obj is None:
            return Result.failure(Error.create(
                ErrorCode.PROOF_NOT_FOUND,
                f"Record {record_id} not found in {commitment.version}",
                record_id=record_id, version=commitment.version,
            ))

        _, tree = create_corpus_proof(
            commitment.version, self._store.load_objects(commitment.version), commitment.created_at
        )
        if tree.root_hash != commitment.root_hash:
            return Result.failure(Error.create(
                ErrorCode.INTEGRITY_MISMATCH,
                f"Snapshot root {tree.root_hash} differs from published root {commitment.root_hash}",
                version=commitment.version,
            ))

        proof = generate_proof(tree, obj.content_hash)
        if proof is None:
            return Result.failure(Error.create(
                ErrorCode.PROOF_NOT_FOUND,
                f"Record {record_id} is not a leaf of {commitment.version}",
                record_id=record_id, version=commitment.version,
            ))

        self._audit.record(AuditEventType.PROOF, "prove_record", entity_id=record_id)
        return Result.success(RecordProof(
            version=commitment.version,
            record_id=obj.id,
            content=obj.content,
            content_hash=obj.content_hash,
            proof=proof,
            record_source_uri=obj.source_uri,
        ))

    def verify_proof(self, proof: MerkleProof) -> bool:
        return verify_proof(proof)

    def verify_record(
        self,
        record_proof: RecordProof,
        published_root: Optional[str] = None
    ) -> Tuple[bool, Optional[str]]:
        """
        Check a cited record. Without an explicit root, the root of the
        record's version proof file is used.
        """
        if published_root is None:
            if record_proof.version not in self._store.list_versions():
                return False, f"unknown version {record_proof.version!r} and no published root given"
            try:
                commitment = self._store.load_commitment(record_proof.version)
            except STORE_READ_ERRORS as e:
                logger.exception("Published root for %s is unreadable", record_proof.version)
                return False, f"published root for version {record_proof.version} is unreadable: {e}"
            if commitment is None:
                return False, f"no published root for version {record_proof.version}"
            published_root = commitment.root_hash

        obj = KnowledgeObject(
            id=record_proof.record_id,
            version=record_proof.version,
            content=record_proof.content,
            content_hash=record_proof.content_hash,
            source_uri=record_proof.record_source_uri or "",
            timestamp="",
            author_id="",
        )
        return verify_record_proof(obj, record_proof.proof, published_root)

    # =========================================================================
    # ESCALATION
    # =========================================================================

    def escalate(
        self,
        question: str,
        context: Optional[EscalationContext] = None,
        deadline: Optional[float] = None
    ) -> Result:
        return self._escalation.escalate(question, context, deadline)

    def _parsers(self) -> List:
        parsers = []
        if self._local is not None:
            parsers.append(QuestionParser(self._local))
        if self._external is not None and self._escalation.config.level3_allowed:
            parsers.append(QuestionParser(self._external))
        parsers.append(KeywordParser())
        return parsers

    def _reaction_terms(self, version: str, drug: str) -> List[str]:
        """Distinct reaction terms reported for a drug in one version."""
        terms = set()
        for record in self._store.load_records(drug, version):
            terms.update(r.term for r in record.reactions if r.term)
        return sorted(terms)

    def _parse(self, question: str, version: str) -> Result:
        """First parser that recognizes a known drug wins."""
        known_drugs = self._store.list_drugs(version)
        reactions_for = functools.partial(self._reaction_terms, version)
        outcome = None
        for parser in self._parsers():
            outcome = parser.parse(question, known_drugs, reactions_for)
            if outcome.is_success:
                return outcome
        return outcome

    @_store_guarded("ask")
    def ask(
        self,
        question: str,
        language: Optional[str] = None,
        version: Optional[str] = None,
        deadline: Optional[float] = None
    ) -> Result:
        """Parse → guided query → escalate. Numbers come from the query only."""
        start_time = time.time()
        if not question or not question.strip():
            return Result.failure(Error.create(
                ErrorCode.MISSING_PARAMETER, "Missing required parameter: question", parameter="question"
            ))
        language = language or detect_language(question)

        resolved = self._resolve(version)
        if resolved.is_failure:
            return resolved
        version = resolved.value

        parsed = self._parse(question, version)
        if parsed.is_failure:
            return Result.failure(parsed.error.with_context("language", language))
        params: QueryParameters = parsed.value.with_version(version)

        queried = self._guided.run(params)
        if queried.is_failure:
            return queried

        escalated = self._escalation.escalate(
            question, EscalationContext(result=queried.value, language=language), deadline
        )
        if escalated.is_failure:
            return escalated

        return Result.success(NaturalAnswer(
            question=question,
            language=language,
            parameters=params,
            result=queried.value,
            answer=escalated.value,
            processing_time_ms=(time.time() - start_time) * 1000,
        ))

    # =========================================================================
    # CORPUS
    # =========================================================================

    def list_versions(self) -> List[str]:
        return self._store.list_versions()

    @_store_guarded("describe_corpus")
    def describe_corpus(self, version: Optional[str] = None) -> Result:
        resolved = self._resolve(version)
        if resolved.is_failure:
            return resolved
        version = resolved.value
        commitment = self._store.load_commitment(version)
        manifests = {m.drug: m for m in self._store.load_manifests(version)}
        drugs = []
        for drug in self._store.list_drugs(version):
            manifest = manifests.get(drug)
            drugs.append({
                "drug": drug,
                "total_events": manifest.total_events if manifest else len(self._store.load_objects(version, drug)),
            })
        return Result.success({
            "version": version,
            "versions": self._store.list_versions(),
            "root_hash": commitment.root_hash if commitment else None,
            "leaf_count": commitment.leaf_count if commitment else None,
            "drugs": drugs,
        })

    @_store_guarded("drug_statistics")
    def drug_statistics(self, drug: str, version: Optional[str] = None) -> Result:
        if not drug:
            return Result.failure(Error.create(
                ErrorCode.MISSING_PARAMETER, "Missing required parameter: drug", parameter="drug"
            ))
        resolved = self._resolve(version)
        if resolved.is_failure:
            return resolved

        try:
            stored = self._store.load_stats(resolved.value, drug)
        except SnapshotReadError as e:
            logger.warning("Recomputing stats for %s in %s: %s", drug, resolved.value, e)
            stored = None
        if stored is not None:
            stats = stats_from_document(drug, resolved.value, stored)
            if stats is not None:
                return Result.success(stats)
            logger.warning("Ignoring unreadable stats file for %s in %s", drug, resolved.value)

        records = self._store.load_records(drug, resolved.value)
        if not records:
            return Result.failure(Error.create(
                ErrorCode.NO_DATA, f"No data for drug: {drug}", drug=drug, version=resolved.value
            ))
        stats: DrugStats = build_drug_stats(drug, resolved.value, records)
        return Result.success(stats)

    # =========================================================================
    # OBSERVABILITY
    # =========================================================================

    def get_audit_log(self) -> Dict[str, list]:
        return {
            "engine": self._audit.get_entries(),
            "query": self._guided.get_audit_log(),
            "compare": self._compare.get_audit_log(),
            "escalation": self._escalation.get_audit_log(),
        }


def create_backend(config: Optional[BackendConfig] = None) -> EvidenceBackend:
    """Wire a file-backed backend and the providers the config allows."""
    config = config or BackendConfig.from_env()
    local = None
    if config.local_llm_url:
        local = LocalModelProvider(base_url=config.local_llm_url, model=config.local_llm_model)
    external = None
    if config.anthropic_api_key and config.escalation().level3_allowed:
        external = ExternalModelProvider(api_key=config.anthropic_api_key, model=config.external_model)
    return EvidenceBackend(
        FileSnapshotStore(config.data_dir),
        config,
        local_provider=local,
        external_provider=external,
    )


__all__ = [
    'BackendConfig',
    'EvidenceBackend',
    'NaturalAnswer',
    'create_backend',
]
