"""Services Layer — cache, transaction tracking, participation, and the chat session.

Invariants:
    - Services depend on core protocols, never on web3 or httpx directly
    - Every public orchestrator operation returns an Outcome (never raises)

Design Decisions:
    - One service per concern, composed by ChatSession (no god objects)
"""
