"""Schema discovery: bounded introspection of a graph into a stable ``GraphSchema``."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass

from neo4j import READ_ACCESS, AsyncSession, Query
from neo4j.exceptions import DriverError, Neo4jError

from .executor import Neo4jConnection
from .types import (
    GraphConnectionError,
    GraphSchema,
    NodeSchema,
    PipelineConfig,
    PipelineStage,
    PropertySchema,
    RelationshipSchema,
    SchemaDiscoveryError,
)

logger = logging.getLogger(__name__)

LABELS_QUERY = "CALL db.labels() YIELD label RETURN label ORDER BY label LIMIT $limit"
REL_TYPES_QUERY = (
    "CALL db.relationshipTypes() YIELD relationshipType "
    "RETURN relationshipType AS type ORDER BY type LIMIT $limit"
)
NODE_SAMPLE_QUERY = "MATCH (n:{label}) WITH n LIMIT $sample RETURN properties(n) AS props"
REL_SAMPLE_QUERY = (
    "MATCH (a)-[r:{rel_type}]->(b) WITH a, r, b LIMIT $sample "
    "RETURN labels(a) AS source, labels(b) AS target, properties(r) AS props"
)

DATABASE_NOT_FOUND = "Neo.ClientError.Database.DatabaseNotFound"


def escape_identifier(name: str) -> str:
    """Quote a label or relationship type for safe interpolation into Cypher."""
    return "`" + name.replace("`", "``") + "`"


def _type_name(value: object) -> str:
    if isinstance(value, bool):
        return "Boolean"
    if isinstance(value, int):
        return "Integer"
    if isinstance(value, float):
        return "Float"
    if isinstance(value, str):
        return "String"
    if isinstance(value, (list, tuple)):
        return "List"
    if isinstance(value, dict):
        return "Map"
    return type(value).__name__


def collect_properties(samples: Iterable[dict[str, object] | None]) -> tuple[PropertySchema, ...]:
    """Merge sampled property maps into sorted property descriptors."""
    observed: dict[str, set[str]] = {}
    for props in samples:
        for key, value in (props or {}).items():
            types = observed.setdefault(key, set())
            if value is not None:
                types.add(_type_name(value))
    return tuple(PropertySchema(name, tuple(sorted(types))) for name, types in sorted(observed.items()))


class SchemaCache:
    """Thread-safe per-graph schema snapshots with a TTL.

    Entries are whole immutable ``GraphSchema`` values; a refresh replaces
    the entry in one assignment, so readers never observe a partial schema.
    """

    def __init__(self, ttl_seconds: int) -> None:
        self._entries: dict[str, tuple[GraphSchema, float]] = {}
        self._lock = threading.RLock()
        self._ttl = ttl_seconds

    def get(self, graph_name: str) -> GraphSchema | None:
        with self._lock:
            entry = self._entries.get(graph_name)
            if entry is None:
                return None
            schema, expiry = entry
            if time.monotonic() > expiry:
                del self._entries[graph_name]
                return None
            return schema

    def put(self, graph_name: str, schema: GraphSchema) -> None:
        if self._ttl <= 0:
            return
        with self._lock:
            self._entries[graph_name] = (schema, time.monotonic() + self._ttl)

    def invalidate(self, graph_name: str | None = None) -> None:
        with self._lock:
            if graph_name is None:
                self._entries.clear()
            else:
                self._entries.pop(graph_name, None)


@dataclass
class SchemaDiscoverer:
    """Read-only introspection capped at a fixed sample per label and relationship type."""

    connection: Neo4jConnection
    config: PipelineConfig
    cache: SchemaCache | None = None

    async def discover(self, graph_name: str, *, refresh: bool = False) -> GraphSchema:
        if self.cache is not None and not refresh:
            cached = self.cache.get(graph_name)
            if cached is not None:
                return cached

        schema = await self._introspect_bounded(graph_name)
        if self.cache is not None:
            self.cache.put(graph_name, schema)
        return schema

    async def _introspect_bounded(self, graph_name: str) -> GraphSchema:
        step = PipelineStage.SCHEMA_DISCOVERY.value
        timeout = self.config.graph_timeout_seconds
        try:
            return await asyncio.wait_for(self._introspect(graph_name), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise SchemaDiscoveryError(
                f"Schema discovery for graph '{graph_name}' timed out after {timeout}s", step=step
            ) from exc
        except Neo4jError as exc:
            if exc.code == DATABASE_NOT_FOUND:
                raise SchemaDiscoveryError(f"Graph '{graph_name}' does not exist", step=step) from exc
            raise SchemaDiscoveryError(
                f"Schema discovery for graph '{graph_name}' failed: {exc.message or exc}", step=step
            ) from exc
        except (DriverError, GraphConnectionError) as exc:
            raise SchemaDiscoveryError(
                f"Schema discovery for graph '{graph_name}' failed: graph engine unreachable ({exc})", step=step
            ) from exc

    async def _introspect(self, graph_name: str) -> GraphSchema:
        async with self.connection.driver.session(database=graph_name, default_access_mode=READ_ACCESS) as session:
            labels = await self._column(session, LABELS_QUERY, "label", limit=self.config.max_schema_labels)
            rel_types = await self._column(session, REL_TYPES_QUERY, "type", limit=self.config.max_schema_labels)

            nodes = []
            for label in labels:
                rows = await self._rows(session, NODE_SAMPLE_QUERY.format(label=escape_identifier(label)))
                nodes.append(NodeSchema(label, collect_properties(row.get("props") for row in rows)))

            relationships = []
            for rel_type in rel_types:
                rows = await self._rows(session, REL_SAMPLE_QUERY.format(rel_type=escape_identifier(rel_type)))
                connections = {
                    (source, target)
                    for row in rows
                    for source in row.get("source") or []
                    for target in row.get("target") or []
                }
                relationships.append(
                    RelationshipSchema(
                        rel_type,
                        collect_properties(row.get("props") for row in rows),
                        tuple(sorted(connections)),
                    )
                )

        logger.debug(
            "Discovered %d labels and %d relationship types in %s", len(nodes), len(relationships), graph_name
        )
        return GraphSchema(nodes=tuple(nodes), relationships=tuple(relationships))

    async def _column(self, session: AsyncSession, cypher: str, key: str, *, limit: int) -> list[str]:
        result = await session.run(Query(cypher, timeout=self.config.graph_timeout_seconds), limit=limit)
        rows = await result.data()
        return sorted({str(row[key]) for row in rows if row.get(key)})

    async def _rows(self, session: AsyncSession, cypher: str) -> list[dict[str, object]]:
        query = Query(cypher, timeout=self.config.graph_timeout_seconds)
        result = await session.run(query, sample=self.config.schema_sample_size)
        return await result.data()
