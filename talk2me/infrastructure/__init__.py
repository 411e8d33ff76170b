"""Infrastructure Layer — ledger, wallet, and content-store clients plus observability.

Invariants:
    - Every external failure is classified into the core error hierarchy here
    - No retries at this layer (callers own retry policy)

Design Decisions:
    - Thin adapters implementing core protocols: services stay testable without web3
"""
