"""
In-memory sinks for tests and local development.

Both fakes record every call and can be scripted to fail: queue exceptions
with fail_next(); they are raised (in order) by the next calls before any
successful call is recorded.
"""

import json
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional, Set, Tuple

from secpipe.publishing.bus import BusMessage
from secpipe.publishing.schema import EVENT_JSON_MAPPING, apply_json_mapping


class _ScriptedFailures:
    def __init__(self):
        self._failures: Deque[BaseException] = deque()

    def fail_next(self, *errors: BaseException) -> None:
        self._failures.extend(errors)

    def _maybe_fail(self) -> None:
        if self._failures:
            raise self._failures.popleft()


@dataclass
class SentMessage:
    destination: str
    message: BusMessage


class InMemoryMessageBus(_ScriptedFailures):
    """MessageBus that keeps sent messages in a list."""

    def __init__(self):
        super().__init__()
        self.sent: List[SentMessage] = []
        self.send_attempts = 0

    async def send(self, message: BusMessage, destination: str) -> None:
        self.send_attempts += 1
        self._maybe_fail()
        self.sent.append(SentMessage(destination=destination, message=message))

    def messages_for(self, destination: str) -> List[BusMessage]:
        return [s.message for s in self.sent if s.destination == destination]


@dataclass
class IngestedRecord:
    database: str
    table: str
    mapping_name: str
    payload: str
    row: Dict[str, Any]


class InMemoryEventStore(_ScriptedFailures):
    """
    AnalyticalStore that understands the handful of commands the schema
    provisioner issues and keeps ingested rows per (database, table).

    Scripted failures apply to both execute_command and ingest_json.
    """

    def __init__(self):
        super().__init__()
        self.databases: Set[str] = set()
        self.tables: Set[Tuple[str, str]] = set()
        self.mappings: Set[Tuple[str, str, str]] = set()
        self.commands: List[Tuple[Optional[str], str]] = []
        self.ingested: List[IngestedRecord] = []
        self.ingest_attempts = 0

    @property
    def create_commands(self) -> List[str]:
        return [command for _, command in self.commands if command.startswith(".create")]

    async def execute_command(
        self, database: Optional[str], command: str
    ) -> List[Dict[str, Any]]:
        self.commands.append((database, command))
        self._maybe_fail()
        return self._apply(database, command)

    async def ingest_json(
        self, database: str, table: str, payload: str, mapping_name: str
    ) -> None:
        self.ingest_attempts += 1
        self._maybe_fail()
        if database not in self.databases:
            raise RuntimeError(f"Database '{database}' does not exist")
        if (database, table) not in self.tables:
            raise RuntimeError(f"Table '{table}' does not exist in '{database}'")
        self.ingested.append(
            IngestedRecord(
                database=database,
                table=table,
                mapping_name=mapping_name,
                payload=payload,
                row=apply_json_mapping(json.loads(payload), EVENT_JSON_MAPPING),
            )
        )

    def rows(self, database: str, table: str) -> List[Dict[str, Any]]:
        return [
            r.row for r in self.ingested if r.database == database and r.table == table
        ]

    def _apply(self, database: Optional[str], command: str) -> List[Dict[str, Any]]:
        if command.startswith(".show databases"):
            name = _quoted(command)
            return [{"DatabaseName": name}] if name in self.databases else []

        if command.startswith(".show tables"):
            name = _quoted(command)
            if (database, name) in self.tables:
                return [{"TableName": name, "DatabaseName": database}]
            return []

        if command.startswith(".create database"):
            name = _bracketed(command)
            if name in self.databases:
                raise RuntimeError(f"Entity ID '{name}' of kind 'Database' already exists")
            self.databases.add(name)
            return []

        if " ingestion json mapping " in command:
            table = _bracketed(command)
            mapping = _quoted(command)
            self.mappings.add((database, table, mapping))
            return []

        if command.startswith(".create table"):
            table = _bracketed(command)
            if (database, table) in self.tables:
                raise RuntimeError(f"Entity ID '{table}' of kind 'Table' already exists")
            self.tables.add((database, table))
            return []

        raise RuntimeError(f"Syntax error: unsupported command {command[:40]!r}")


def _quoted(command: str) -> str:
    return command.split("'", 2)[1]


def _bracketed(command: str) -> str:
    return command.split("[", 1)[1].split("]", 1)[0]


__all__ = [
    "InMemoryEventStore",
    "InMemoryMessageBus",
    "IngestedRecord",
    "SentMessage",
]
