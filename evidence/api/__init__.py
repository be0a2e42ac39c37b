"""HTTP read layer (FastAPI)."""
