"""
Verifiable Evidence Query Engine: API Server
============================================

Read layer over the evidence backend. The only write it can trigger is
the regenerable proof file (POST /proofs/{version}).

Endpoints:
- GET  /health                                   -> Liveness
- GET  /corpus                                   -> Versions, drugs, published root
- POST /query/guided                             -> Guided query (Level 1)
- POST /query/compare                            -> Two pinned guided queries + delta
- POST /query/natural                            -> Parse → query → escalate
- POST /proofs/{version}                         -> Build and persist commitment
- GET  /proofs/{version}                         -> Published commitment
- GET  /proofs/{version}/records/{record_id}     -> Inclusion proof for one record
- POST /proofs/verify                            -> Offline check of a record proof
- GET  /stats/{drug}                             -> Descriptive counts for one drug

Usage:
    uvicorn evidence.api.server:app --reload
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional
import time

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..contracts.base import Error, ErrorCode
from ..contracts.proofs import MerkleProof, RecordProof
from ..engine import BackendConfig, EvidenceBackend, create_backend
from ..governance import GOVERNANCE_VERSION, NO_MATCH_MESSAGES, issue_decision_id
from ..observability import configure_logging

# =============================================================================
# INFRASTRUCTURE SETUP
# =============================================================================

# Global Backend Instance
backend_instance: Optional[EvidenceBackend] = None

STATUS_BY_CODE: Dict[ErrorCode, int] = {
    ErrorCode.MISSING_PARAMETER: 400,
    ErrorCode.INVALID_PARAMETER: 400,
    ErrorCode.UNRECOGNIZED_QUESTION: 400,
    ErrorCode.NO_CORPUS: 404,
    ErrorCode.NO_PROOF: 404,
    ErrorCode.NO_DATA: 404,
    ErrorCode.PROOF_NOT_FOUND: 404,
    ErrorCode.VERSION_MISMATCH: 409,
    ErrorCode.EMPTY_CORPUS: 409,
    ErrorCode.INTEGRITY_MISMATCH: 409,
    ErrorCode.WITNESS_VIOLATION: 422,
    ErrorCode.ESCALATION_EXHAUSTED: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the backend from the environment unless one was injected."""
    global backend_instance
    owned = backend_instance is None

    if owned:
        config = BackendConfig.from_env()
        configure_logging(config.log_level)
        print(f"[*] Initializing Evidence Backend at: {config.data_dir}")
        backend_instance = create_backend(config)
        print(f"[*] Backend initialized. Versions: {', '.join(backend_instance.list_versions()) or 'none'}")

    yield

    if owned:
        print("[*] Shutting down backend.")
        backend_instance = None


app = FastAPI(
    title="Verifiable Evidence Query Engine API",
    version=__version__,
    description="Deterministic, Merkle-committed queries over adverse event reports",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# =============================================================================
# REQUEST MODELS
# =============================================================================

class GuidedQueryRequest(BaseModel):
    drug: Optional[str] = None
    sex: Optional[str] = None
    age_group: Optional[str] = None
    serious: Optional[bool] = None
    reaction: Optional[str] = None
    version: Optional[str] = None


class CompareQueryRequest(BaseModel):
    group_a: GuidedQueryRequest
    group_b: GuidedQueryRequest


class NaturalQueryRequest(BaseModel):
    question: str
    language: Optional[str] = None
    version: Optional[str] = None


class ProofStepModel(BaseModel):
    hash: str
    position: Literal["left", "right"]


class MerkleProofModel(BaseModel):
    leaf: str
    root: str
    path: List[ProofStepModel] = []


class VerifyRecordRequest(BaseModel):
    content: str
    content_hash: str
    proof: MerkleProofModel
    root_hash: str


# =============================================================================
# HELPERS
# =============================================================================

def get_backend() -> EvidenceBackend:
    if backend_instance is None:
        raise HTTPException(status_code=503, detail="Backend not initialized")
    return backend_instance


def error_response(error: Error) -> JSONResponse:
    message = error.message
    if error.code is ErrorCode.UNRECOGNIZED_QUESTION:
        message = NO_MATCH_MESSAGES.get(error.context_value("language") or "en", message)
    return JSONResponse(
        status_code=STATUS_BY_CODE.get(error.code, 500),
        content={
            "status": "ERROR",
            "error_code": error.code.name,
            "error": message,
            "context": dict(error.context),
        },
    )


def governance(decision_type: str, query_hash: str, result_hash: str, version: str) -> dict:
    record = issue_decision_id(decision_type, query_hash, result_hash, version, datetime.now(timezone.utc))
    return record.to_dict()


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.get("/health")
async def health_check():
    """System status."""
    backend = get_backend()
    return {
        "status": "online",
        "version": __version__,
        "governance_version": GOVERNANCE_VERSION,
        "offline_mode": backend.config.offline_mode,
        "corpus_versions": backend.list_versions(),
    }


@app.get("/corpus")
def get_corpus(version: Optional[str] = None):
    result = get_backend().describe_corpus(version)
    if result.is_failure:
        return error_response(result.error)
    return result.value


@app.post("/query/guided")
def guided_query(request: GuidedQueryRequest):
    result = get_backend().run_guided_query(request.model_dump())
    if result.is_failure:
        return error_response(result.error)
    body = result.value.to_dict()
    body["governance"] = governance(
        "GUIDED_QUERY", result.value.query_hash, result.value.result_hash, result.value.corpus_version
    )
    return body


@app.post("/query/compare")
def compare_query(request: CompareQueryRequest):
    result = get_backend().run_compare_query(request.group_a.model_dump(), request.group_b.model_dump())
    if result.is_failure:
        return error_response(result.error)
    body = result.value.to_dict()
    body["governance"] = governance(
        "COMPARE_QUERY", result.value.compare_hash, result.value.diff_hash, result.value.corpus_version
    )
    return body


@app.post("/query/natural")
def natural_query(request: NaturalQueryRequest):
    backend = get_backend()
    deadline = time.monotonic() + backend.config.level3_timeout_seconds
    result = backend.ask(request.question, request.language, request.version, deadline=deadline)
    if result.is_failure:
        return error_response(result.error)
    body = result.value.to_dict()
    body["governance"] = governance(
        "NATURAL_QUERY",
        result.value.result.query_hash,
        result.value.result.result_hash,
        result.value.result.corpus_version,
    )
    return body


# /proofs/verify is declared before /proofs/{version} so it is not
# captured as a version path parameter.
@app.post("/proofs/verify")
def verify_record(request: VerifyRecordRequest):
    proof = MerkleProof.from_dict(request.proof.model_dump())
    backend = get_backend()
    record_proof = RecordProof(
        version="",
        record_id="",
        content=request.content,
        content_hash=request.content_hash,
        proof=proof,
    )
    valid, reason = backend.verify_record(record_proof, published_root=request.root_hash)
    return {"valid": valid, "reason": reason, "root_hash": request.root_hash}


@app.post("/proofs/{version}")
def build_proof(version: str):
    result = get_backend().build_proof(version)
    if result.is_failure:
        return error_response(result.error)
    return result.value.to_dict()


@app.get("/proofs/{version}")
def get_proof(version: str):
    result = get_backend().get_proof(version)
    if result.is_failure:
        return error_response(result.error)
    return result.value.to_dict()


@app.get("/proofs/{version}/records/{record_id}")
def prove_record(version: str, record_id: str):
    result = get_backend().prove_record(record_id, version)
    if result.is_failure:
        return error_response(result.error)
    return result.value.to_dict()


@app.get("/stats/{drug}")
def drug_stats(drug: str, version: Optional[str] = None):
    result = get_backend().drug_statistics(drug, version)
    if result.is_failure:
        return error_response(result.error)
    return result.value.to_dict()
