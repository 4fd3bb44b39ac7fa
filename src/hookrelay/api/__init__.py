"""REST surface — FastAPI app, dependencies and v1 routes."""
