"""Tests for the bus message shape and the Event Hub adapter."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from azure.eventhub import TransportType

from core.errors.exceptions import ValidationError
from secpipe.events.models import SecurityEvent, Severity
from secpipe.publishing.bus import (
    CONTENT_TYPE_JSON,
    STANDARD_PROPERTY_KEYS,
    BusMessage,
    EventHubMessageBus,
    build_bus_message,
)


class AlertEvent(SecurityEvent):
    rule_name: str = "impossible-travel"


@pytest.fixture
def event():
    return AlertEvent(
        event_id="e1",
        owner_id="Contoso",
        resource_id="vm-1",
        severity=Severity.HIGH,
    )


# =========================================================================
# build_bus_message
# =========================================================================


class TestBuildBusMessage:

    def test_identity_fields(self, event):
        message = build_bus_message(event)

        assert message.message_id == "e1"
        assert message.correlation_id == "e1"
        assert message.content_type == CONTENT_TYPE_JSON
        assert message.subject == "AlertEvent"

    def test_explicit_correlation_id(self):
        event = AlertEvent(event_id="e1", resource_id="vm-1", correlation_id="c-9")

        assert build_bus_message(event).correlation_id == "c-9"

    def test_body_is_wire_json(self, event):
        body = json.loads(build_bus_message(event).body.decode("utf-8"))

        assert body == event.to_dict()
        assert body["ruleName"] == "impossible-travel"

    @patch("secpipe.publishing.bus.get_current_trace_ids", return_value=None)
    def test_standard_properties(self, _, event):
        properties = build_bus_message(event).properties

        assert properties == {
            "EventType": "AlertEvent",
            "OwnerId": "Contoso",
            "Severity": "High",
            "ResourceId": "vm-1",
            "DetectedAt": event.detected_at.isoformat(),
        }

    @patch("secpipe.publishing.bus.get_current_trace_ids", return_value=None)
    def test_missing_owner_is_unknown(self, _):
        event = AlertEvent(resource_id="vm-1")

        assert build_bus_message(event).properties["OwnerId"] == "unknown"

    @patch(
        "secpipe.publishing.bus.get_current_trace_ids",
        return_value=("0af7651916cd43dd8448eb211c80319c", "b7ad6b7169203331"),
    )
    def test_trace_properties_when_span_active(self, _, event):
        properties = build_bus_message(event).properties

        assert properties["TraceId"] == "0af7651916cd43dd8448eb211c80319c"
        assert properties["SpanId"] == "b7ad6b7169203331"

    def test_custom_properties_appended(self, event):
        message = build_bus_message(event, {"Source": "scanner", "Priority": 2})

        assert message.properties["Source"] == "scanner"
        assert message.properties["Priority"] == "2"

    @pytest.mark.parametrize("key", sorted(STANDARD_PROPERTY_KEYS))
    def test_custom_property_collision_rejected(self, event, key):
        with pytest.raises(ValidationError, match=f"Custom property '{key}'"):
            build_bus_message(event, {key: "x"})


# =========================================================================
# EventHubMessageBus
# =========================================================================


def _message():
    return BusMessage(
        body=b'{"eventId":"e1"}',
        message_id="e1",
        correlation_id="c1",
        subject="AlertEvent",
        properties={"EventType": "AlertEvent"},
    )


@pytest.fixture
def producer():
    producer = MagicMock()
    producer.create_batch = AsyncMock(return_value=MagicMock())
    producer.send_batch = AsyncMock()
    producer.close = AsyncMock()
    return producer


@pytest.fixture
def producer_client(producer):
    with patch("secpipe.publishing.bus.EventHubProducerClient") as client_cls:
        client_cls.from_connection_string.return_value = producer
        yield client_cls


class TestEventHubMessageBus:

    def test_requires_connection_string(self):
        with pytest.raises(ValueError, match="connection string"):
            EventHubMessageBus("")

    def test_defaults_to_websocket_transport(self):
        bus = EventHubMessageBus("Endpoint=sb://ns/")

        assert bus.transport_type == TransportType.AmqpOverWebsocket

    def test_build_event_data(self):
        event_data = EventHubMessageBus._build_event_data(_message())

        assert event_data.body_as_str() == '{"eventId":"e1"}'
        assert event_data.message_id == "e1"
        assert event_data.correlation_id == "c1"
        assert event_data.content_type == CONTENT_TYPE_JSON
        assert event_data.properties["EventType"] == "AlertEvent"

    @pytest.mark.asyncio
    async def test_send_uses_batch(self, producer_client, producer):
        bus = EventHubMessageBus("Endpoint=sb://ns/")

        await bus.send(_message(), "security-events")

        producer_client.from_connection_string.assert_called_once_with(
            conn_str="Endpoint=sb://ns/",
            eventhub_name="security-events",
            transport_type=TransportType.AmqpOverWebsocket,
        )
        batch = producer.create_batch.return_value
        batch.add.assert_called_once()
        producer.send_batch.assert_awaited_once_with(batch)

    @pytest.mark.asyncio
    async def test_reuses_producer_per_destination(self, producer_client):
        bus = EventHubMessageBus("Endpoint=sb://ns/")

        await bus.send(_message(), "security-events")
        await bus.send(_message(), "security-events")
        await bus.send(_message(), "audit-events")

        assert producer_client.from_connection_string.call_count == 2

    @pytest.mark.asyncio
    async def test_send_error_propagates(self, producer_client, producer):
        producer.send_batch.side_effect = RuntimeError("link detached")
        bus = EventHubMessageBus("Endpoint=sb://ns/")

        with pytest.raises(RuntimeError, match="link detached"):
            await bus.send(_message(), "security-events")

    @pytest.mark.asyncio
    async def test_close_closes_producers(self, producer_client, producer):
        async with EventHubMessageBus("Endpoint=sb://ns/") as bus:
            await bus.send(_message(), "security-events")

        producer.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_tolerates_producer_errors(self, producer_client, producer):
        producer.close.side_effect = RuntimeError("already closed")
        bus = EventHubMessageBus("Endpoint=sb://ns/")
        await bus.send(_message(), "security-events")

        await bus.close()
