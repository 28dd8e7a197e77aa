"""Abstract Source Connector Interface.

This module defines the interface every accounting-system connector
implements. It is intentionally source-agnostic: no SevDesk or Reonic
specifics here.

Connectors:
1. Connect to their source API
2. Fetch raw invoice and payment records
3. Validate raw records into InvoiceRecord / PaymentRecord

Key Design Principles:
- The orchestrator and activities depend ONLY on this interface
- Parsing rejects malformed data with MalformedRecordError, never coerces
- Source-specific implementations live in their own modules
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from connectors.http_client import RetryConfig
from core.errors import MalformedRecordError
from core.models.receivables import InvoiceRecord, PaymentRecord


ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class SourceConfig:
    """Configuration for a source connector."""
    connector_type: str                     # "sevdesk", "reonic", ...
    base_url: Optional[str] = None          # Source API endpoint
    api_key: str = ""
    timeout_seconds: float = 10
    retry_config: RetryConfig = field(default_factory=RetryConfig)

    # Source-specific settings
    custom_settings: Dict[str, Any] = field(default_factory=dict)


def clean_id(value) -> Optional[str]:
    """Stringify an identifier-like value, keeping None/blank as None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class SourceConnector(ABC):
    """Abstract base class for source connectors.

    Implementations:
    - connectors/sevdesk.py
    - connectors/reonic.py
    """

    def __init__(self, config: SourceConfig):
        self.config = config

    @property
    def source_name(self) -> str:
        """Source tag stored on every record from this connector."""
        return self.config.connector_type.lower()

    # =========================================================================
    # Connection Management
    # =========================================================================

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection to the source."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection to the source."""
        pass

    # =========================================================================
    # Fetching
    # =========================================================================

    @abstractmethod
    async def fetch_invoices(self) -> List[Dict[str, Any]]:
        """Fetch all raw invoice records."""
        pass

    @abstractmethod
    async def fetch_payments(self, invoice_ref: str) -> List[Dict[str, Any]]:
        """Fetch raw payment records booked against one invoice.

        Args:
            invoice_ref: Source-native invoice id
        """
        pass

    # =========================================================================
    # Parsing
    # =========================================================================

    @abstractmethod
    def parse_invoice(self, raw: Dict[str, Any]) -> InvoiceRecord:
        """Validate a raw invoice record.

        Raises:
            MalformedRecordError: required fields missing or invalid
        """
        pass

    @abstractmethod
    def parse_payment(self, raw: Dict[str, Any], invoice_ref: Optional[str] = None) -> PaymentRecord:
        """Validate a raw payment record.

        Raises:
            MalformedRecordError: required fields missing or invalid
        """
        pass

    def _validate(
        self,
        model: Type[ModelT],
        data: Dict[str, Any],
        native_id: Optional[str],
        raw: Any,
    ) -> ModelT:
        """Build a validated record or raise MalformedRecordError."""
        try:
            return model.model_validate(data)
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}"
                for err in e.errors()
            ]
            raise MalformedRecordError(self.source_name, native_id, errors, raw=raw) from e

    def _require_mapping(self, raw: Any) -> Dict[str, Any]:
        if not isinstance(raw, dict):
            raise MalformedRecordError(
                self.source_name, None, [f"expected an object, got {type(raw).__name__}"]
            )
        return raw


# =============================================================================
# Connector Factory
# =============================================================================

_connector_registry: Dict[str, type] = {}


def register_connector(connector_type: str):
    """Decorator to register a connector implementation."""
    def decorator(cls):
        _connector_registry[connector_type] = cls
        return cls
    return decorator


def create_connector(config: SourceConfig) -> SourceConnector:
    """Create a connector instance from configuration.

    Raises:
        ValueError: If connector_type is not registered
    """
    connector_type = config.connector_type.lower()

    if connector_type not in _connector_registry:
        available = list(_connector_registry.keys())
        raise ValueError(
            f"Unknown connector type: {connector_type}. "
            f"Available: {available}"
        )

    connector_class = _connector_registry[connector_type]
    return connector_class(config)


def list_available_connectors() -> List[str]:
    """List all registered connector types."""
    return list(_connector_registry.keys())


def connector_from_settings(settings, name: str) -> SourceConnector:
    """Create the connector for one source using its configured URL and key."""
    source = settings.source_settings(name)
    return create_connector(SourceConfig(
        connector_type=name,
        base_url=source.base_url,
        api_key=source.api_key,
        timeout_seconds=settings.fetch_timeout_seconds,
    ))


def build_source_connectors(settings) -> List[SourceConnector]:
    """Create one connector per enabled source in `settings.sources`."""
    return [connector_from_settings(settings, name) for name in settings.sources]
