"""API Routes Package."""

from api.routes import health, sync, receivables, payment_matches

__all__ = [
    "health",
    "sync",
    "receivables",
    "payment_matches",
]
