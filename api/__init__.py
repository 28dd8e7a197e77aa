"""API Package.

FastAPI server for receivables sync and payment reconciliation.
"""

from api.server import create_app

__all__ = [
    "create_app",
]
