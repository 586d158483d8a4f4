"""HTTP API for Passgate (FastAPI)."""
