"""Core module - source-neutral receivables models and infrastructure.

This module contains the domain models, configuration, error taxonomy and
observability used by the sync and reconciliation engine. It is
intentionally independent of any specific accounting system.

Source-specific logic (SevDesk, Reonic, ...) belongs in /connectors/.
"""

__version__ = "1.0.0"
