"""Domain models and pure ledger logic.

This package contains in-memory (Pydantic) models describing transactions,
profile settings and derived holdings, plus the link graph, fingerprint and
holdings algorithms that operate on them. They are independent from
persistence models so that business logic and testing can evolve without DB
coupling.
"""

__all__ = [
    "assets",
    "fingerprint",
    "holdings",
    "ledger",
    "link_graph",
    "pricing",
]
