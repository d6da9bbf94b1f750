"""HTTP API: FastAPI application, wire models and routes."""
