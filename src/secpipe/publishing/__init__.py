"""
Security event publishing.

Provides:
- EventPublisher: validate -> bus -> (eligible) schema + store
- BusMessage / build_bus_message / EventHubMessageBus
- KustoEventStore and the AnalyticalStore protocol
- SchemaProvisioner / SchemaState
- PublishOutcome / PublishResult
"""

from secpipe.publishing.bus import (
    BusMessage,
    EventHubMessageBus,
    MessageBus,
    build_bus_message,
)
from secpipe.publishing.outcome import PublishOutcome, PublishResult
from secpipe.publishing.publisher import (
    EventPublisher,
    is_retention_eligible,
    resolve_database_name,
    resolve_table_name,
)
from secpipe.publishing.schema import (
    EVENT_JSON_MAPPING,
    EVENT_TABLE_COLUMNS,
    ProvisionResult,
    SchemaProvisioner,
    SchemaState,
    mapping_name,
)
from secpipe.publishing.store import AnalyticalStore, KustoEventStore

__all__ = [
    "AnalyticalStore",
    "BusMessage",
    "EVENT_JSON_MAPPING",
    "EVENT_TABLE_COLUMNS",
    "EventHubMessageBus",
    "EventPublisher",
    "KustoEventStore",
    "MessageBus",
    "ProvisionResult",
    "PublishOutcome",
    "PublishResult",
    "SchemaProvisioner",
    "SchemaState",
    "build_bus_message",
    "is_retention_eligible",
    "mapping_name",
    "resolve_database_name",
    "resolve_table_name",
]
