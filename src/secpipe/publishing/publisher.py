"""
Dual-sink security event publisher.

publish(event):
    1. validate (no I/O on failure)
    2. send to the message bus, retrying transient failures
    3. if the event type is retention-eligible: provision schema and ingest
       into the analytical store, retrying transient failures

The bus write always precedes the store write. A store failure after a
successful bus write still fails the call; the caller may retry the whole
publish because both sinks key on the event id.
"""

from typing import Awaitable, Callable, List, Mapping, Optional, TypeVar

from opentelemetry import trace
from opentelemetry.trace import SpanKind

from core.errors.classifiers import EventHubErrorClassifier, KustoErrorClassifier
from core.errors.exceptions import PermanentSinkError, TransientSinkError
from core.logging import LogContext, get_logger
from core.resilience.retry import RetryExecutor, RetryStats
from core.types import ErrorCategory
from secpipe.config import PublisherConfig
from secpipe.events.models import SecurityEvent
from secpipe.events.validation import ensure_valid
from secpipe.publishing.bus import MessageBus, build_bus_message
from secpipe.publishing.outcome import BUS_SINK, STORE_SINK, PublishOutcome, PublishResult
from secpipe.publishing.schema import SchemaProvisioner, mapping_name
from secpipe.publishing.store import AnalyticalStore

logger = get_logger(__name__)

T = TypeVar("T")

NOTIFICATION_SUFFIX = "notificationevent"


def is_retention_eligible(event_type: Optional[str]) -> bool:
    """Every event type is stored except *NotificationEvent (case-insensitive)."""
    return not (event_type or "").lower().endswith(NOTIFICATION_SUFFIX)


def resolve_database_name(
    owner_id: Optional[str],
    template: str,
    override: Optional[str] = None,
) -> str:
    if override is not None:
        return override
    return template.format((owner_id or "unknown").lower())


def resolve_table_name(default: str, override: Optional[str] = None) -> str:
    return default if override is None else override


class EventPublisher:
    """
    Publishes SecurityEvents to the bus and, when eligible, the store.

    Args:
        bus: MessageBus implementation (EventHubMessageBus in production)
        store: AnalyticalStore implementation (KustoEventStore in production)
        config: Destination, naming and retry settings
        provisioner: Schema provisioner; defaults to one over the store
        bus_retry: Retry executor for the bus; defaults to Event Hub classification
        store_retry: Retry executor for the store; defaults to Kusto classification

    Raises from publish():
        ValidationError: event invalid or custom property collision; no I/O
        TransientSinkError: a sink kept failing with retryable errors
        PermanentSinkError: a sink failed with a non-retryable error
    """

    def __init__(
        self,
        bus: MessageBus,
        store: AnalyticalStore,
        config: Optional[PublisherConfig] = None,
        provisioner: Optional[SchemaProvisioner] = None,
        bus_retry: Optional[RetryExecutor] = None,
        store_retry: Optional[RetryExecutor] = None,
    ):
        self.bus = bus
        self.store = store
        self.config = config or PublisherConfig()
        self.provisioner = provisioner or SchemaProvisioner(store)

        retry_config = self.config.retry_config()
        self.bus_retry = bus_retry or RetryExecutor(
            EventHubErrorClassifier(), retry_config, name=BUS_SINK
        )
        self.store_retry = store_retry or RetryExecutor(
            KustoErrorClassifier(), retry_config, name=STORE_SINK
        )
        self._tracer = trace.get_tracer(__name__)

    async def publish(
        self,
        event: SecurityEvent,
        custom_properties: Optional[Mapping[str, str]] = None,
        destination: Optional[str] = None,
    ) -> PublishResult:
        """Validate, send to the bus, then store if eligible."""
        ensure_valid(event)
        destination = destination or self.config.default_destination

        with LogContext(stage="publish", event_id=event.event_id):
            with self._tracer.start_as_current_span(
                "secpipe.publish",
                kind=SpanKind.PRODUCER,
                attributes={
                    "messaging.destination": destination,
                    "messaging.message.id": event.event_id,
                    "secpipe.event_type": event.event_type or "",
                },
            ) as span:
                # Built inside the span so TraceId/SpanId describe this publish
                message = build_bus_message(event, custom_properties)
                outcomes: List[PublishOutcome] = []

                await self._run_sink(
                    BUS_SINK,
                    self.bus_retry,
                    lambda: self.bus.send(message, destination),
                    outcomes,
                    event,
                )

                eligible = is_retention_eligible(event.event_type)
                span.set_attribute("secpipe.store_eligible", eligible)
                if eligible:
                    await self._write_store(event, None, None, outcomes)
                else:
                    logger.debug(
                        "Event type not retention-eligible, skipping store",
                        extra={"event_id": event.event_id, "event_type": event.event_type},
                    )

                logger.info(
                    "Published security event",
                    extra={
                        "event_id": event.event_id,
                        "event_type": event.event_type,
                        "owner_id": event.owner_id,
                        "destination": destination,
                        "store_eligible": eligible,
                    },
                )
                return PublishResult(
                    event_id=event.event_id,
                    outcomes=outcomes,
                    store_eligible=eligible,
                )

    async def store_only(
        self,
        event: SecurityEvent,
        database: Optional[str] = None,
        table: Optional[str] = None,
    ) -> PublishOutcome:
        """
        Provision and ingest into the store without the bus write or the
        eligibility check (backfill / administrative storage).
        """
        ensure_valid(event)
        outcomes: List[PublishOutcome] = []
        with LogContext(stage="store_only", event_id=event.event_id):
            await self._write_store(event, database, table, outcomes)
        return outcomes[-1]

    async def _write_store(
        self,
        event: SecurityEvent,
        database_override: Optional[str],
        table_override: Optional[str],
        outcomes: List[PublishOutcome],
    ) -> None:
        database = resolve_database_name(
            event.owner_id, self.config.database_name_template, database_override
        )
        table = resolve_table_name(self.config.default_table_name, table_override)
        payload = event.to_json()

        async def provision_and_ingest() -> None:
            await self.provisioner.ensure_schema(database, table)
            await self.store.ingest_json(database, table, payload, mapping_name(table))

        await self._run_sink(
            STORE_SINK,
            self.store_retry,
            provision_and_ingest,
            outcomes,
            event,
            database=database,
            table=table,
        )

    async def _run_sink(
        self,
        sink: str,
        executor: RetryExecutor,
        operation: Callable[[], Awaitable[T]],
        outcomes: List[PublishOutcome],
        event: SecurityEvent,
        **log_fields: str,
    ) -> T:
        stats = RetryStats()
        try:
            result = await executor.run(operation, stats)
        except Exception as e:
            outcome = PublishOutcome(
                sink=sink,
                attempted=True,
                succeeded=False,
                attempts=stats.attempts,
                last_error=e,
            )
            outcomes.append(outcome)

            error_cls = (
                TransientSinkError
                if stats.category == ErrorCategory.TRANSIENT
                else PermanentSinkError
            )
            logger.error(
                "Publish failed at %s after %d attempt(s)",
                sink,
                stats.attempts,
                extra={
                    "event_id": event.event_id,
                    "event_type": event.event_type,
                    "sink": sink,
                    "attempt": stats.attempts,
                    "error_category": stats.category.value if stats.category else None,
                    "error": str(e)[:200],
                    "error_type": type(e).__name__,
                    **log_fields,
                },
            )
            raise error_cls(
                sink,
                stats.attempts,
                last_error=e,
                outcomes=outcomes,
                context={"event_id": event.event_id, **log_fields},
            ) from e

        outcomes.append(
            PublishOutcome(
                sink=sink,
                attempted=True,
                succeeded=True,
                attempts=stats.attempts,
            )
        )
        return result


__all__ = [
    "EventPublisher",
    "is_retention_eligible",
    "resolve_database_name",
    "resolve_table_name",
]
