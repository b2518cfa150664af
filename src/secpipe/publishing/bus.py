"""Message bus side of the publisher: wire shape and the Event Hub adapter.

Wire shape of a published event:
- body: UTF-8 camelCase JSON of the event, nulls omitted
- message id: event id (delivery idempotency key)
- correlation id: event correlation id, falling back to the event id
- content type: application/json
- subject: event type
- application properties: EventType, OwnerId, Severity, ResourceId,
  DetectedAt (ISO-8601), TraceId/SpanId when a span is active, then any
  caller-supplied custom properties
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Protocol

from azure.eventhub import EventData, TransportType
from azure.eventhub.aio import EventHubProducerClient

from core.errors.exceptions import ValidationError
from core.logging import get_current_trace_ids, get_logger
from secpipe.events.models import SecurityEvent

logger = get_logger(__name__)

CONTENT_TYPE_JSON = "application/json"
UNKNOWN_OWNER = "unknown"

STANDARD_PROPERTY_KEYS = frozenset(
    {"EventType", "OwnerId", "Severity", "ResourceId", "DetectedAt", "TraceId", "SpanId"}
)


@dataclass
class BusMessage:
    body: bytes
    message_id: str
    correlation_id: str
    content_type: str = CONTENT_TYPE_JSON
    subject: Optional[str] = None
    properties: Dict[str, str] = field(default_factory=dict)


def build_bus_message(
    event: SecurityEvent,
    custom_properties: Optional[Mapping[str, str]] = None,
) -> BusMessage:
    """
    Build the bus message for an event.

    Raises:
        ValidationError: A custom property key collides with a standard one
    """
    collisions = sorted(set(custom_properties or {}) & STANDARD_PROPERTY_KEYS)
    if collisions:
        raise ValidationError(
            [f"Custom property '{key}' collides with a standard property" for key in collisions],
            context={"event_id": event.event_id},
        )

    properties: Dict[str, str] = {
        "EventType": event.event_type or "",
        "OwnerId": event.owner_id or UNKNOWN_OWNER,
        "Severity": event.severity.value,
        "ResourceId": event.resource_id or "",
        "DetectedAt": event.detected_at.isoformat() if event.detected_at else "",
    }

    trace_ids = get_current_trace_ids()
    if trace_ids is not None:
        properties["TraceId"], properties["SpanId"] = trace_ids

    for key, value in (custom_properties or {}).items():
        properties[key] = str(value)

    return BusMessage(
        body=event.to_json().encode("utf-8"),
        message_id=event.event_id,
        correlation_id=event.effective_correlation_id,
        content_type=CONTENT_TYPE_JSON,
        subject=event.event_type,
        properties=properties,
    )


class MessageBus(Protocol):
    async def send(self, message: BusMessage, destination: str) -> None: ...


class EventHubMessageBus:
    """
    Message bus backed by Azure Event Hubs.

    Uses one EventHubProducerClient per destination (Event Hub name), created
    lazily on first send, with AMQP over WebSocket for Private Link
    compatibility.

    Usage:
        async with EventHubMessageBus(config.eventhub_connection_string) as bus:
            await bus.send(build_bus_message(event), "security-events")
    """

    def __init__(
        self,
        connection_string: str,
        transport_type: TransportType = TransportType.AmqpOverWebsocket,
    ):
        """
        Args:
            connection_string: Namespace-level connection string (no EntityPath)
            transport_type: AMQP transport; WebSocket by default
        """
        if not connection_string:
            raise ValueError(
                "Event Hub connection string is required. "
                "Set publisher.eventhub_connection_string or SECPIPE_EVENTHUB_CONNECTION_STRING."
            )
        self.connection_string = connection_string
        self.transport_type = transport_type
        self._producers: Dict[str, EventHubProducerClient] = {}
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "EventHubMessageBus":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _get_producer(self, destination: str) -> EventHubProducerClient:
        producer = self._producers.get(destination)
        if producer is not None:
            return producer

        async with self._lock:
            producer = self._producers.get(destination)
            if producer is None:
                producer = EventHubProducerClient.from_connection_string(
                    conn_str=self.connection_string,
                    eventhub_name=destination,
                    transport_type=self.transport_type,
                )
                self._producers[destination] = producer
                logger.info(
                    "Created Event Hub producer",
                    extra={"destination": destination},
                )
        return producer

    @staticmethod
    def _build_event_data(message: BusMessage) -> EventData:
        event_data = EventData(message.body)
        # Setting message_id creates the AMQP properties section subject lives in
        event_data.message_id = message.message_id
        event_data.correlation_id = message.correlation_id
        event_data.content_type = message.content_type
        if message.subject:
            event_data.raw_amqp_message.properties.subject = message.subject
        if message.properties:
            event_data.properties = dict(message.properties)
        return event_data

    async def send(self, message: BusMessage, destination: str) -> None:
        """Send one message; SDK errors propagate for the retry executor to classify."""
        producer = await self._get_producer(destination)
        event_data = self._build_event_data(message)
        start_time = time.perf_counter()

        try:
            batch = await producer.create_batch()
            batch.add(event_data)
            await producer.send_batch(batch)
        except Exception as e:
            logger.warning(
                "Failed to send message to Event Hub",
                extra={
                    "destination": destination,
                    "event_id": message.message_id,
                    "error": str(e)[:200],
                    "error_type": type(e).__name__,
                },
            )
            raise

        logger.debug(
            "Message sent to Event Hub",
            extra={
                "destination": destination,
                "event_id": message.message_id,
                "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
            },
        )

    async def close(self) -> None:
        producers = list(self._producers.items())
        self._producers = {}
        for destination, producer in producers:
            try:
                await producer.close()
            except Exception as e:
                logger.error(
                    "Error closing Event Hub producer",
                    extra={"destination": destination, "error": str(e)},
                    exc_info=True,
                )
        if producers:
            logger.info("Event Hub producers closed", extra={"item_count": len(producers)})


__all__ = [
    "BusMessage",
    "EventHubMessageBus",
    "MessageBus",
    "STANDARD_PROPERTY_KEYS",
    "build_bus_message",
]
