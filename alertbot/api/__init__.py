"""api — HTTP boundary (FastAPI routers and schemas)."""
