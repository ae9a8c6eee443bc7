"""Pytest configuration and shared fakes for the async Neo4j driver."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"

if SRC_DIR.exists():
    sys.path.insert(0, str(SRC_DIR))


class FakeResult:
    def __init__(self, rows: list[dict[str, object]]):
        self._rows = rows

    async def data(self) -> list[dict[str, object]]:
        return [dict(row) for row in self._rows]


class FakeSession:
    def __init__(self, driver: FakeDriver, database: str | None, access_mode: str | None):
        self._driver = driver
        self.database = database
        self.access_mode = access_mode

    async def __aenter__(self) -> FakeSession:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False

    async def run(self, query, **params):
        text = getattr(query, "text", query)
        self._driver.calls.append({"database": self.database, "cypher": text, "params": params})
        self._driver.access_modes.append(self.access_mode)
        return FakeResult(self._driver.respond(self.database, text, params))


class FakeGraph:
    """In-memory stand-in for one database: sampled nodes, relationships and canned query rows."""

    def __init__(
        self,
        nodes: dict[str, list[dict[str, object]]] | None = None,
        relationships: dict[str, list[tuple[list[str], list[str], dict[str, object]]]] | None = None,
        rows: list[dict[str, object]] | Callable[[str], list[dict[str, object]]] | None = None,
    ):
        self.nodes = nodes or {}
        self.relationships = relationships or {}
        self.rows = rows if rows is not None else []

    def respond(self, cypher: str, params: dict[str, object]) -> list[dict[str, object]]:
        if "db.labels()" in cypher:
            return [{"label": label} for label in sorted(self.nodes)][: int(params.get("limit", 1000))]
        if "db.relationshipTypes()" in cypher:
            return [{"type": rel} for rel in sorted(self.relationships)][: int(params.get("limit", 1000))]
        for label, props in self.nodes.items():
            if cypher.startswith(f"MATCH (n:`{label}`)"):
                return [{"props": p} for p in props][: int(params.get("sample", 1000))]
        for rel_type, samples in self.relationships.items():
            if cypher.startswith(f"MATCH (a)-[r:`{rel_type}`]->(b)"):
                return [
                    {"source": source, "target": target, "props": props}
                    for source, target, props in samples[: int(params.get("sample", 1000))]
                ]
        if callable(self.rows):
            return self.rows(cypher)
        return self.rows


class FakeDriver:
    def __init__(self, graphs: dict[str, FakeGraph], error: Exception | None = None):
        self.graphs = graphs
        self.error = error
        self.calls: list[dict[str, object]] = []
        self.access_modes: list[str | None] = []
        self.closed = False

    def session(self, *, database: str | None = None, default_access_mode: str | None = None) -> FakeSession:
        return FakeSession(self, database, default_access_mode)

    def respond(self, database: str | None, cypher: str, params: dict[str, object]) -> list[dict[str, object]]:
        if self.error is not None:
            raise self.error
        graph = self.graphs.get(database or "")
        if graph is None:
            from neo4j.exceptions import ClientError

            class DatabaseNotFound(ClientError):
                code = "Neo.ClientError.Database.DatabaseNotFound"
                message = f"Database does not exist. Database name: '{database}'."

            raise DatabaseNotFound(DatabaseNotFound.message)
        return graph.respond(cypher, params)

    def executed(self) -> list[str]:
        """Statements other than schema introspection queries."""
        return [
            str(call["cypher"])
            for call in self.calls
            if "db.labels()" not in str(call["cypher"])
            and "db.relationshipTypes()" not in str(call["cypher"])
            and "properties(" not in str(call["cypher"])
        ]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def movie_graph() -> FakeGraph:
    return FakeGraph(
        nodes={
            "Actor": [{"name": "Keanu Reeves"}, {"name": "Carrie-Anne Moss"}],
            "Movie": [{"title": "The Matrix", "year": 1999}],
        },
        relationships={
            "ACTED_IN": [
                (["Actor"], ["Movie"], {}),
                (["Actor"], ["Movie"], {}),
            ]
        },
        rows=[{"a.name": "Keanu Reeves"}, {"a.name": "Carrie-Anne Moss"}],
    )


@pytest.fixture
def fake_driver(movie_graph: FakeGraph) -> FakeDriver:
    return FakeDriver({"movies": movie_graph})


@pytest.fixture(autouse=True)
def disable_env_side_effects(monkeypatch, tmp_path: Path):
    # Never talk to Postgres or a real graph in tests
    for var in ("TRACE_DATABASE_URL", "DATABASE_URL", "OLLAMA_BASE_URL", "SCHEMA_CACHE_TTL_SECONDS"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("TRACE_STDOUT", "0")
    monkeypatch.setenv("TRACE_LOG_DIR", str(tmp_path / "test_logs"))
