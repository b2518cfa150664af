"""
Analytical store side of the publisher: Kusto (Fabric Eventhouse / ADX).

KustoEventStore runs management commands and inline JSON ingestion through
the synchronous azure-kusto-data client, off-loaded to the default thread
pool. Errors are wrapped into the PipelineError hierarchy so the retry
executor can classify them; retries themselves are the publisher's job.
"""

import asyncio
import os
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol

from azure.identity import DefaultAzureCredential
from azure.kusto.data import (
    ClientRequestProperties,
    KustoClient,
    KustoConnectionStringBuilder,
)
from azure.kusto.data.exceptions import KustoServiceError

from core.errors.classifiers import StorageErrorClassifier
from core.errors.exceptions import KustoQueryError
from core.logging import get_logger
from secpipe.config import PublisherConfig

logger = get_logger(__name__)


class AnalyticalStore(Protocol):
    async def execute_command(
        self, database: Optional[str], command: str
    ) -> List[Dict[str, Any]]: ...

    async def ingest_json(
        self, database: str, table: str, payload: str, mapping_name: str
    ) -> None: ...


def ingest_inline_command(table: str, payload: str, mapping_name: str) -> str:
    """Inline ingestion of a single-line JSON document using a mapping reference."""
    return (
        f".ingest inline into table [{table}] "
        f"with (format='json', ingestionMappingReference='{mapping_name}') <| {payload}"
    )


class KustoEventStore:
    """
    Async wrapper around KustoClient for schema commands and event ingestion.

    Authentication priority:
    1. SPN credentials (AZURE_CLIENT_ID, AZURE_CLIENT_SECRET, AZURE_TENANT_ID)
    2. DefaultAzureCredential (managed identity, CLI, etc.)

    Example:
        async with KustoEventStore(config) as store:
            await store.execute_command(None, ".show databases")
    """

    def __init__(self, config: PublisherConfig, client: Optional[KustoClient] = None):
        self.config = config
        self._client: Optional[KustoClient] = client
        self._credential: Optional[DefaultAzureCredential] = None

    async def __aenter__(self) -> "KustoEventStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        if self._client is not None:
            return  # Already connected

        cluster_url = self.config.kusto_cluster_url
        if not cluster_url:
            raise ValueError(
                "publisher.kusto_cluster_url is required. "
                "Set in config.yaml or via SECPIPE_KUSTO_CLUSTER_URL env var."
            )

        client_id = os.getenv("AZURE_CLIENT_ID")
        client_secret = os.getenv("AZURE_CLIENT_SECRET")
        tenant_id = os.getenv("AZURE_TENANT_ID")

        try:
            if client_id and client_secret and tenant_id:
                kcsb = KustoConnectionStringBuilder.with_aad_application_key_authentication(
                    cluster_url, client_id, client_secret, tenant_id
                )
                auth_mode = "spn"
            else:
                self._credential = DefaultAzureCredential()
                kcsb = KustoConnectionStringBuilder.with_azure_token_credential(
                    cluster_url, self._credential
                )
                auth_mode = "default"

            self._client = KustoClient(kcsb)
        except Exception as e:
            logger.error(
                "Failed to connect to Kusto: %s",
                str(e)[:200],
                extra={"error": str(e)[:200], "error_type": type(e).__name__},
            )
            raise StorageErrorClassifier.classify_kusto_error(
                e, {"operation": "connect"}
            ) from e

        logger.info(
            "Connected to Kusto",
            extra={"cluster_url": cluster_url, "auth_mode": auth_mode},
        )

    async def close(self) -> None:
        if self._client is not None:
            try:
                # KustoClient.close() is sync
                self._client.close()
            except Exception as e:
                logger.warning("Error closing Kusto client: %s", str(e)[:100])
            finally:
                self._client = None
                self._credential = None
            logger.debug("Kusto connection closed")

    def _request_properties(self) -> ClientRequestProperties:
        properties = ClientRequestProperties()
        properties.set_option(
            ClientRequestProperties.request_timeout_option_name,
            timedelta(seconds=self.config.query_timeout_seconds),
        )
        return properties

    async def execute_command(
        self, database: Optional[str], command: str
    ) -> List[Dict[str, Any]]:
        """
        Run a management command and return its primary result rows as dicts.

        Raises:
            KustoQueryError: syntax/semantic errors and other client errors
            KustoError / ThrottlingError / TimeoutError: retryable failures
            AuthError: credential problems
        """
        if self._client is None:
            await self.connect()

        start_time = time.perf_counter()
        client = self._client
        properties = self._request_properties()
        loop = asyncio.get_running_loop()

        try:
            # Execute in thread pool since KustoClient is sync
            response = await loop.run_in_executor(
                None,
                lambda: client.execute_mgmt(database, command, properties),
            )
        except KustoServiceError as e:
            logger.warning(
                "Kusto command failed",
                extra={
                    "database": database,
                    "command": command[:200],
                    "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
                    "error": str(e)[:500],
                    "error_type": type(e).__name__,
                },
            )
            error_str = str(e).lower()
            if "semantic error" in error_str or "syntax error" in error_str:
                raise KustoQueryError(
                    f"KQL command error: {e}",
                    cause=e,
                    context={"database": database},
                ) from e
            raise StorageErrorClassifier.classify_kusto_error(
                e, {"database": database, "operation": "execute_command"}
            ) from e
        except Exception as e:
            logger.warning(
                "Kusto command execution failed",
                extra={
                    "database": database,
                    "command": command[:200],
                    "error": str(e)[:500],
                    "error_type": type(e).__name__,
                },
            )
            raise StorageErrorClassifier.classify_kusto_error(
                e, {"database": database, "operation": "execute_command"}
            ) from e

        rows = self._rows(response)
        logger.debug(
            "Kusto command executed",
            extra={
                "database": database,
                "command": command[:200],
                "item_count": len(rows),
                "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
            },
        )
        return rows

    @staticmethod
    def _rows(response: Any) -> List[Dict[str, Any]]:
        if not response.primary_results:
            return []

        primary_table = response.primary_results[0]
        column_names = [col.column_name for col in primary_table.columns]

        rows = []
        for row in primary_table:
            row_dict = {}
            for i, col_name in enumerate(column_names):
                value = row[i]
                if isinstance(value, datetime):
                    row_dict[col_name] = value.isoformat()
                else:
                    row_dict[col_name] = value
            rows.append(row_dict)
        return rows

    async def ingest_json(
        self, database: str, table: str, payload: str, mapping_name: str
    ) -> None:
        """Ingest one JSON document (single line) through the table's mapping."""
        payload = payload.replace("\r", " ").replace("\n", " ")
        await self.execute_command(
            database, ingest_inline_command(table, payload, mapping_name)
        )


__all__ = [
    "AnalyticalStore",
    "KustoEventStore",
    "ingest_inline_command",
]
