"""API Layer — FastAPI routes and error handlers for a local UI process.

Invariants:
    - Routes registered explicitly in main.py (no auto-discovery)
    - All endpoints return structured JSON responses

Design Decisions:
    - Thin routes delegate to the session services
"""
