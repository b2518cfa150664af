"""
Idempotent provisioning of the security event table in Kusto.

For a (database, table) pair:
1. create the database if `.show databases` doesn't list it
2. create the table and its JSON ingestion mapping if `.show tables`
   doesn't list it

There is no lock across processes. Two first writers can both decide to
create; a create that fails because the entity already exists counts as
success. SchemaState only skips repeat work inside one process.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Set, Tuple

from core.errors.classifiers import is_already_exists_error
from core.logging import get_logger

logger = get_logger(__name__)

# (column, kusto type, JSON path)
EVENT_TABLE_COLUMNS: List[Tuple[str, str, str]] = [
    ("EventId", "string", "$.eventId"),
    ("EventType", "string", "$.eventType"),
    ("DetectedAt", "datetime", "$.detectedAt"),
    ("OwnerId", "string", "$.ownerId"),
    ("Severity", "string", "$.severity"),
    ("ResourceId", "string", "$.resourceId"),
    ("CorrelationId", "string", "$.correlationId"),
    ("RawEventData", "dynamic", "$"),
]

EVENT_JSON_MAPPING: List[Dict[str, str]] = [
    {"column": column, "path": path, "datatype": datatype}
    for column, datatype, path in EVENT_TABLE_COLUMNS
]

# Kusto entity names: letters, digits, underscores, dashes, dots and spaces
_ENTITY_NAME = re.compile(r"^[A-Za-z0-9_\-. ]{1,1024}$")


class SchemaStore(Protocol):
    """The slice of the analytical store the provisioner needs."""

    async def execute_command(
        self, database: Optional[str], command: str
    ) -> List[Dict[str, Any]]: ...


def mapping_name(table: str) -> str:
    return f"{table}_mapping"


def apply_json_mapping(
    document: Dict[str, Any],
    mapping: List[Dict[str, str]] = EVENT_JSON_MAPPING,
) -> Dict[str, Any]:
    """Project a JSON document onto table columns the way the ingestion mapping does."""
    row: Dict[str, Any] = {}
    for entry in mapping:
        path = entry["path"]
        if path == "$":
            row[entry["column"]] = document
        else:
            row[entry["column"]] = document.get(path[2:])
    return row


def _check_entity_name(kind: str, name: str) -> str:
    if not name or not _ENTITY_NAME.match(name):
        raise ValueError(f"Invalid Kusto {kind} name: {name!r}")
    return name


def show_database_command(database: str) -> str:
    return f".show databases | where DatabaseName == '{database}'"


def create_database_command(database: str) -> str:
    return f".create database [{database}]"


def show_table_command(table: str) -> str:
    return f".show tables | where TableName == '{table}'"


def create_table_command(table: str) -> str:
    columns = ", ".join(f"{name}: {kind}" for name, kind, _ in EVENT_TABLE_COLUMNS)
    return f".create table [{table}] ({columns})"


def create_mapping_command(table: str) -> str:
    mapping_json = json.dumps(EVENT_JSON_MAPPING, separators=(",", ":"))
    return (
        f".create table [{table}] ingestion json mapping "
        f"'{mapping_name(table)}' '{mapping_json}'"
    )


class SchemaState:
    """(database, table) pairs already provisioned by this process."""

    def __init__(self):
        self._provisioned: Set[Tuple[str, str]] = set()

    def is_provisioned(self, database: str, table: str) -> bool:
        return (database, table) in self._provisioned

    def mark(self, database: str, table: str) -> None:
        self._provisioned.add((database, table))

    def forget(self, database: str, table: str) -> None:
        self._provisioned.discard((database, table))

    def clear(self) -> None:
        self._provisioned.clear()

    def __len__(self) -> int:
        return len(self._provisioned)


@dataclass
class ProvisionResult:
    created_database: bool = False
    created_table: bool = False
    skipped: bool = False


class SchemaProvisioner:
    """
    Check-then-create for the event database, table and ingestion mapping.

    Usage:
        provisioner = SchemaProvisioner(store)
        await provisioner.ensure_schema("secevents_contoso", "SecurityEvents")
    """

    def __init__(self, store: SchemaStore, state: Optional[SchemaState] = None):
        self.store = store
        self.state = state if state is not None else SchemaState()

    async def ensure_schema(self, database: str, table: str) -> ProvisionResult:
        """
        Make sure database, table and mapping exist.

        Raises:
            ValueError: database or table is not a valid Kusto name
            Exception: whatever the store raises for non "already exists" failures
        """
        _check_entity_name("database", database)
        _check_entity_name("table", table)

        if self.state.is_provisioned(database, table):
            return ProvisionResult(skipped=True)

        result = ProvisionResult()

        rows = await self.store.execute_command(None, show_database_command(database))
        if not rows:
            result.created_database = await self._create(
                None, create_database_command(database), database=database
            )

        rows = await self.store.execute_command(database, show_table_command(table))
        if not rows:
            result.created_table = await self._create(
                database, create_table_command(table), database=database, table=table
            )
            await self._create(
                database, create_mapping_command(table), database=database, table=table
            )

        self.state.mark(database, table)

        if result.created_database or result.created_table:
            logger.info(
                "Provisioned event schema",
                extra={
                    "database": database,
                    "table": table,
                    "created_database": result.created_database,
                    "created_table": result.created_table,
                },
            )
        return result

    async def _create(
        self,
        target_database: Optional[str],
        command: str,
        **log_fields: Any,
    ) -> bool:
        """Run a create command; True if created, False if it already existed."""
        try:
            await self.store.execute_command(target_database, command)
        except Exception as e:
            if not is_already_exists_error(e):
                raise
            logger.debug(
                "Entity already exists, treating create as success",
                extra={**log_fields, "command": command.split(" [", 1)[0]},
            )
            return False
        return True


__all__ = [
    "EVENT_JSON_MAPPING",
    "EVENT_TABLE_COLUMNS",
    "ProvisionResult",
    "SchemaProvisioner",
    "SchemaState",
    "SchemaStore",
    "apply_json_mapping",
    "create_database_command",
    "create_mapping_command",
    "create_table_command",
    "mapping_name",
    "show_database_command",
    "show_table_command",
]
