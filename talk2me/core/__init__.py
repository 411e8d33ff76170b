"""Core Layer — pure domain logic, no IO, no network.

Invariants:
    - No module in core/ imports from services/, api/, or infrastructure/
    - State machines and policies are deterministic given their inputs

Design Decisions:
    - Functional core separated from imperative shell: services drive IO around core rules
"""
