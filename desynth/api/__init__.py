"""API Layer — FastAPI routes, request dependencies and error handlers.

Invariants:
    - Routes registered explicitly in main.py (no auto-discovery)
    - Every response uses the {success, data} / {success, error} envelope

Design Decisions:
    - Thin routes delegate to services
"""
