"""Server module - FastAPI application, routes and process context."""
