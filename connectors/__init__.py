"""Source Connectors - Pluggable accounting system integrations.

This package contains the abstract source interface and concrete
implementations for specific accounting systems (SevDesk, Reonic).

Key Design Principle:
- The orchestrator and Temporal activities depend ONLY on SourceConnector
- Connectors hand back validated InvoiceRecord / PaymentRecord objects
- No SevDesk/Reonic-specific fields leak through the interface

To add a new source:
1. Create a new module (e.g., lexoffice.py)
2. Implement the SourceConnector interface
3. Register using the @register_connector decorator
"""

from connectors.source_base import (
    SourceConnector,
    SourceConfig,
    create_connector,
    register_connector,
    list_available_connectors,
    build_source_connectors,
    connector_from_settings,
)
from connectors.http_client import (
    SourceApiClient,
    SourceApiError,
    SourceAuthenticationError,
    SourceNotFoundError,
    SourceRateLimitError,
    RetryConfig,
)

# Import implementations so they register themselves
from connectors.sevdesk import SevDeskConnector
from connectors.reonic import ReonicConnector

__all__ = [
    # Core interface
    "SourceConnector",
    "SourceConfig",

    # HTTP client
    "SourceApiClient",
    "SourceApiError",
    "SourceAuthenticationError",
    "SourceNotFoundError",
    "SourceRateLimitError",
    "RetryConfig",

    # Implementations
    "SevDeskConnector",
    "ReonicConnector",

    # Factory
    "create_connector",
    "register_connector",
    "list_available_connectors",
    "build_source_connectors",
    "connector_from_settings",
]
