"""Neo4j connection handling and the executor adapter used by the query pipeline."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from urllib.parse import unquote, urlsplit

from neo4j import READ_ACCESS, WRITE_ACCESS, AsyncDriver, AsyncGraphDatabase, Query
from neo4j.exceptions import DriverError, Neo4jError, ServiceUnavailable, SessionExpired

from .types import (
    ExecutionError,
    GraphConnectionError,
    InvalidInputError,
    PipelineConfig,
    PipelineStage,
    QueryResult,
)

logger = logging.getLogger(__name__)


def _to_plain(value: object) -> object:
    if isinstance(value, list):
        return [_to_plain(item) for item in value]
    if isinstance(value, tuple):
        return [_to_plain(item) for item in value]
    if isinstance(value, dict):
        return {key: _to_plain(item) for key, item in value.items()}
    # neo4j.time values (Date, DateTime, Duration, ...)
    if hasattr(value, "iso_format"):
        return value.iso_format()
    return value


def _normalize_row(row: dict[str, object]) -> dict[str, object]:
    return {key: _to_plain(value) for key, value in row.items()}


@dataclass
class Neo4jConnection:
    """Parsed ``scheme://[user:password@]host:port`` handle with a lazily created driver.

    Creating a connection performs no network I/O; the driver is built on
    first use and shared by every call made through the same client.
    """

    uri: str
    _driver: AsyncDriver | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        parts = urlsplit((self.uri or "").strip())
        if not parts.scheme or not parts.hostname:
            raise InvalidInputError(
                f"Graph connection must look like 'scheme://host:port', got '{self.uri}'"
            )
        try:
            port = parts.port
        except ValueError as exc:
            raise InvalidInputError(f"Graph connection has an invalid port: '{self.uri}'") from exc

        self.address = f"{parts.scheme}://{parts.hostname}" + (f":{port}" if port else "")
        self.auth = (unquote(parts.username), unquote(parts.password or "")) if parts.username else None

    @property
    def driver(self) -> AsyncDriver:
        if self._driver is None:
            try:
                self._driver = AsyncGraphDatabase.driver(self.address, auth=self.auth)
            except (DriverError, ValueError) as exc:
                raise GraphConnectionError(
                    f"Cannot open graph connection {self.address}: {exc}", step=PipelineStage.EXECUTION.value
                ) from exc
        return self._driver

    async def close(self) -> None:
        if self._driver is not None:
            await self._driver.close()
            self._driver = None


@dataclass
class Neo4jExecutor:
    """Execute a statement once, bounded by the configured timeout."""

    connection: Neo4jConnection
    config: PipelineConfig

    async def execute(self, graph_name: str, statement: str) -> QueryResult:
        step = PipelineStage.EXECUTION.value
        timeout = self.config.graph_timeout_seconds
        try:
            return await asyncio.wait_for(self._run(graph_name, statement), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ExecutionError(f"Query execution timed out after {timeout}s", step=step) from exc
        except (ServiceUnavailable, SessionExpired) as exc:
            raise GraphConnectionError(f"Graph engine unreachable: {exc}", step=step) from exc
        except Neo4jError as exc:
            raise ExecutionError(f"Graph engine rejected the query: {exc.message or exc}", step=step) from exc
        except DriverError as exc:
            raise ExecutionError(f"Query execution failed: {type(exc).__name__}: {exc}", step=step) from exc

    async def _run(self, graph_name: str, statement: str) -> QueryResult:
        access_mode = READ_ACCESS if self.config.read_only else WRITE_ACCESS
        query = Query(statement, timeout=self.config.graph_timeout_seconds)
        async with self.connection.driver.session(database=graph_name, default_access_mode=access_mode) as session:
            result = await session.run(query)
            records = await result.data()
        logger.debug("Query on %s returned %d rows", graph_name, len(records))
        return [_normalize_row(row) for row in records]
