"""Public client: one object per model, API key and graph connection."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any
from uuid import uuid4

import httpx

from .catalog import DEFAULT_CATALOG, ModelCatalog, parse_model_identifier
from .conversation import single_question, validate_messages
from .engine import QueryEngine
from .executor import Neo4jConnection, Neo4jExecutor
from .generator import CypherGenerator
from .prompts import PromptBuilder
from .providers import ProviderRouter
from .schema import SchemaCache, SchemaDiscoverer
from .summarizer import AnswerSynthesizer
from .types import (
    ConversationMessage,
    InvalidInputError,
    PipelineConfig,
    PipelineResponse,
    TraceSink,
    with_context_trace,
)
from .validator import StructuralValidator


@dataclass(frozen=True)
class ClientOptions:
    """The three settings every client needs; all are required."""

    model: str
    api_key: str
    graph_connection: str

    def __post_init__(self) -> None:
        for name in ("model", "api_key", "graph_connection"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise InvalidInputError(f"ClientOptions.{name} must be a non-empty string")

    @classmethod
    def from_env(cls) -> ClientOptions:
        return cls(
            model=os.getenv("TEXT_TO_CYPHER_MODEL", "").strip(),
            api_key=os.getenv("TEXT_TO_CYPHER_API_KEY", "").strip(),
            graph_connection=os.getenv("GRAPH_CONNECTION", "").strip(),
        )


def config_from_env(base: PipelineConfig | None = None) -> PipelineConfig:
    """Apply the optional environment overrides on top of ``base``."""
    config = base or PipelineConfig()
    overrides: dict[str, Any] = {}
    if os.getenv("OLLAMA_BASE_URL"):
        overrides["ollama_base_url"] = os.environ["OLLAMA_BASE_URL"].strip()
    if os.getenv("SCHEMA_CACHE_TTL_SECONDS"):
        overrides["schema_cache_ttl_seconds"] = int(os.environ["SCHEMA_CACHE_TTL_SECONDS"])
    if os.getenv("TEXT_TO_CYPHER_READ_ONLY"):
        overrides["read_only"] = os.environ["TEXT_TO_CYPHER_READ_ONLY"].strip().lower() in {"1", "true", "yes"}
    return replace(config, **overrides) if overrides else config


class TextToCypher:
    """Translate questions into Cypher, run them and summarise the rows.

    Construction only parses and validates settings. The graph driver and
    provider clients are created on first use, so building a client does no
    network I/O. Conversation state is never kept between calls: callers
    pass the full history to ``text_to_cypher_with_messages`` each time.
    """

    def __init__(
        self,
        options: ClientOptions,
        *,
        config: PipelineConfig | None = None,
        catalog: ModelCatalog = DEFAULT_CATALOG,
        http_client: httpx.AsyncClient | None = None,
        gemini_client: object | None = None,
        trace: TraceSink | None = None,
    ) -> None:
        self.options = options
        self.config = config or PipelineConfig()
        self.model = str(parse_model_identifier(options.model))

        self.router = ProviderRouter(
            options.api_key,
            config=self.config,
            catalog=catalog,
            http_client=http_client,
            gemini_client=gemini_client,
        )
        self.connection = Neo4jConnection(options.graph_connection)

        ttl = self.config.schema_cache_ttl_seconds
        self.discoverer = SchemaDiscoverer(self.connection, self.config, SchemaCache(ttl) if ttl > 0 else None)
        self.executor = Neo4jExecutor(self.connection, self.config)
        self.engine = QueryEngine(
            config=self.config,
            model=self.model,
            discoverer=self.discoverer,
            prompt_builder=PromptBuilder(self.config),
            generator=CypherGenerator(self.router),
            validator=StructuralValidator(self.config),
            executor=self.executor,
            synthesizer=AnswerSynthesizer(self.router, self.config),
            trace=trace,
        )

    @staticmethod
    def _check_graph(graph_name: str) -> str:
        if not isinstance(graph_name, str) or not graph_name.strip():
            raise InvalidInputError("Graph name must be a non-empty string")
        return graph_name.strip()

    def _engine_for(self, graph_name: str) -> QueryEngine:
        if self.engine.trace is None:
            return self.engine
        context = {"graph": graph_name, "run_id": uuid4().hex}
        return self.engine.with_trace(with_context_trace(self.engine.trace, context))

    async def text_to_cypher(self, graph_name: str, question: str) -> PipelineResponse:
        """Answer one question: generate, validate, execute, summarise."""
        graph = self._check_graph(graph_name)
        messages = single_question(question)
        return await self._engine_for(graph).run(graph, messages)

    async def text_to_cypher_with_messages(
        self,
        graph_name: str,
        messages: Iterable[ConversationMessage | Mapping[str, object]],
    ) -> PipelineResponse:
        """Like ``text_to_cypher`` but the last user message is asked in the context of the earlier turns."""
        graph = self._check_graph(graph_name)
        validated = validate_messages(messages)
        return await self._engine_for(graph).run(graph, validated)

    async def cypher_only(self, graph_name: str, question: str) -> PipelineResponse:
        """Generate Cypher without validating or executing it."""
        graph = self._check_graph(graph_name)
        messages = single_question(question)
        return await self._engine_for(graph).run(graph, messages, preview=True)

    async def discover_schema(self, graph_name: str, *, refresh: bool = False) -> str:
        """Schema of ``graph_name`` as JSON text with ``nodes`` and ``relationships``."""
        graph = self._check_graph(graph_name)
        schema = await self.discoverer.discover(graph, refresh=refresh)
        return schema.to_json()

    async def list_models(self) -> list[str]:
        return await self.router.list_all_models()

    async def list_models_by_provider(self, provider: str) -> list[str]:
        return await self.router.list_models_by_provider(provider)

    async def close(self) -> None:
        await self.router.aclose()
        await self.connection.close()

    async def __aenter__(self) -> TextToCypher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
