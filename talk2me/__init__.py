"""Talk2Me Ledger Sync — client-side synchronization layer for the Talk2Me chat ledger.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)

Design Decisions:
    - Empty __init__.py: explicit imports only, no star exports
"""
