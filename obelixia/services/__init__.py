"""Data shaping and orchestration behind the API routes."""
