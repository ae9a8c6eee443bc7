from __future__ import annotations

import json

import pytest
from conftest import FakeDriver, FakeGraph
from neo4j.exceptions import ServiceUnavailable

from text_to_cypher.executor import Neo4jConnection
from text_to_cypher.schema import SchemaCache, SchemaDiscoverer, collect_properties, escape_identifier
from text_to_cypher.types import GraphSchema, NodeSchema, PipelineConfig, PropertySchema, SchemaDiscoveryError


def make_discoverer(driver: FakeDriver, **config) -> SchemaDiscoverer:
    connection = Neo4jConnection("neo4j://localhost:7687")
    connection._driver = driver  # type: ignore[assignment]
    cfg = PipelineConfig(**config)
    ttl = cfg.schema_cache_ttl_seconds
    return SchemaDiscoverer(connection, cfg, SchemaCache(ttl) if ttl > 0 else None)


@pytest.mark.asyncio
async def test_discovers_labels_properties_and_connections(fake_driver: FakeDriver) -> None:
    schema = await make_discoverer(fake_driver).discover("movies")

    assert [node.label for node in schema.nodes] == ["Actor", "Movie"]
    actor, movie = schema.nodes
    assert actor.properties == (PropertySchema("name", ("String",)),)
    assert movie.properties == (PropertySchema("title", ("String",)), PropertySchema("year", ("Integer",)))

    (acted_in,) = schema.relationships
    assert acted_in.type == "ACTED_IN"
    assert acted_in.connections == (("Actor", "Movie"),)


@pytest.mark.asyncio
async def test_introspection_is_bounded_and_read_only(fake_driver: FakeDriver) -> None:
    await make_discoverer(fake_driver, schema_sample_size=7, max_schema_labels=3).discover("movies")

    limits = [call["params"]["limit"] for call in fake_driver.calls if "limit" in call["params"]]
    samples = [call["params"]["sample"] for call in fake_driver.calls if "sample" in call["params"]]
    assert limits == [3, 3]
    assert samples and set(samples) == {7}
    assert set(fake_driver.access_modes) == {"READ"}
    assert {call["database"] for call in fake_driver.calls} == {"movies"}


@pytest.mark.asyncio
async def test_empty_graph_yields_empty_schema() -> None:
    driver = FakeDriver({"empty": FakeGraph()})

    schema = await make_discoverer(driver).discover("empty")

    assert schema.is_empty
    assert json.loads(schema.to_json()) == {"nodes": [], "relationships": []}


@pytest.mark.asyncio
async def test_missing_graph_raises_discovery_error(fake_driver: FakeDriver) -> None:
    with pytest.raises(SchemaDiscoveryError, match="Graph 'nope' does not exist"):
        await make_discoverer(fake_driver).discover("nope")


@pytest.mark.asyncio
async def test_unreachable_engine_raises_discovery_error() -> None:
    driver = FakeDriver({}, error=ServiceUnavailable("connection refused"))

    with pytest.raises(SchemaDiscoveryError, match="unreachable") as excinfo:
        await make_discoverer(driver).discover("movies")

    assert excinfo.value.step == "schema_discovery"


@pytest.mark.asyncio
async def test_cache_serves_snapshot_until_refresh(fake_driver: FakeDriver) -> None:
    discoverer = make_discoverer(fake_driver, schema_cache_ttl_seconds=60)

    first = await discoverer.discover("movies")
    calls_after_first = len(fake_driver.calls)
    second = await discoverer.discover("movies")

    assert second is first
    assert len(fake_driver.calls) == calls_after_first

    refreshed = await discoverer.discover("movies", refresh=True)
    assert refreshed == first
    assert refreshed is not first
    assert len(fake_driver.calls) == 2 * calls_after_first


def test_cache_disabled_with_zero_ttl() -> None:
    cache = SchemaCache(0)
    cache.put("movies", GraphSchema())

    assert cache.get("movies") is None


def test_cache_invalidate() -> None:
    cache = SchemaCache(60)
    cache.put("movies", GraphSchema())
    cache.put("people", GraphSchema())

    cache.invalidate("movies")
    assert cache.get("movies") is None
    assert cache.get("people") is not None

    cache.invalidate()
    assert cache.get("people") is None


def test_escape_identifier_doubles_backticks() -> None:
    assert escape_identifier("Weird`Label") == "`Weird``Label`"


def test_collect_properties_merges_types_and_ignores_nulls() -> None:
    props = collect_properties([{"b": 1, "a": "x"}, {"b": 2.5, "c": None}, None])

    assert props == (
        PropertySchema("a", ("String",)),
        PropertySchema("b", ("Float", "Integer")),
        PropertySchema("c", ()),
    )


def test_schema_rejects_duplicate_labels() -> None:
    with pytest.raises(ValueError):
        GraphSchema(nodes=(NodeSchema("Actor"), NodeSchema("Actor")))
