"""Shared dataclasses, protocols and errors for the Text-to-Cypher pipeline."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

VALID_ROLES = ("user", "assistant", "system")


@dataclass(frozen=True)
class PipelineConfig:
    """Limits and timeouts for running the query pipeline."""

    schema_sample_size: int = 100
    max_schema_labels: int = 200
    schema_cache_ttl_seconds: int = 0
    max_history_messages: int = 20
    max_history_chars: int = 8000
    max_result_rows_in_prompt: int = 50
    model_timeout_seconds: float = 60.0
    graph_timeout_seconds: float = 30.0
    temperature: float = 0.0
    max_output_tokens: int = 1024
    read_only: bool = False
    ollama_base_url: str = "http://localhost:11434"


class PipelineStage(str, Enum):
    """Steps of a single pipeline call, in execution order."""

    SCHEMA_DISCOVERY = "schema_discovery"
    PROMPT_CONSTRUCTION = "prompt_construction"
    GENERATION = "generation"
    VALIDATION = "validation"
    EXECUTION = "execution"
    ANSWER_SYNTHESIS = "answer_synthesis"


@dataclass(frozen=True)
class ConversationMessage:
    role: str
    content: str


@dataclass(frozen=True)
class PropertySchema:
    name: str
    types: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {"name": self.name, "types": list(self.types)}


@dataclass(frozen=True)
class NodeSchema:
    label: str
    properties: tuple[PropertySchema, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {"label": self.label, "properties": [p.to_dict() for p in self.properties]}


@dataclass(frozen=True)
class RelationshipSchema:
    type: str
    properties: tuple[PropertySchema, ...] = ()
    connections: tuple[tuple[str, str], ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.type,
            "properties": [p.to_dict() for p in self.properties],
            "connections": [{"source": src, "target": dst} for src, dst in self.connections],
        }


@dataclass(frozen=True)
class GraphSchema:
    """Read-only snapshot of the labels, relationship types and properties of a graph."""

    nodes: tuple[NodeSchema, ...] = ()
    relationships: tuple[RelationshipSchema, ...] = ()

    def __post_init__(self) -> None:
        labels = [node.label for node in self.nodes]
        if len(labels) != len(set(labels)):
            raise ValueError("Node labels must be unique within a schema")
        types = [rel.type for rel in self.relationships]
        if len(types) != len(set(types)):
            raise ValueError("Relationship types must be unique within a schema")

    @property
    def is_empty(self) -> bool:
        return not self.nodes and not self.relationships

    def to_dict(self) -> dict[str, object]:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "relationships": [rel.to_dict() for rel in self.relationships],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


@dataclass(frozen=True)
class GeneratedQuery:
    """Raw model output and the single statement isolated from it (if any)."""

    raw_text: str
    statement: str | None = None


QueryResult = list[dict[str, object]]


class PipelineResponse(BaseModel):
    """Structured outcome of a full or generate-only pipeline call."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    status: str
    graph_schema: dict[str, Any] | None = Field(default=None, alias="schema")
    cypher_query: str | None = Field(default=None, alias="cypherQuery")
    cypher_result: list[dict[str, Any]] | None = Field(default=None, alias="cypherResult")
    answer: str | None = None
    error: str | None = None

    @classmethod
    def failure(cls, message: str, **fields: Any) -> PipelineResponse:
        return cls(status="error", error=message, **fields)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)


class ModelInvoker(Protocol):
    """Sends a prompt to the model named by an identifier and returns its text."""

    async def invoke(self, model: str, prompt: Prompt) -> str:  # pragma: no cover - interface only
        ...


class SchemaSource(Protocol):
    """Produces the schema snapshot of a named graph."""

    async def discover(self, graph_name: str, *, refresh: bool = False) -> GraphSchema:  # pragma: no cover
        ...


class CypherExecutor(Protocol):
    """Executes a statement against a named graph and returns rows as dictionaries."""

    async def execute(self, graph_name: str, statement: str) -> QueryResult:  # pragma: no cover - interface only
        ...


class TraceSink(Protocol):
    """Receives step-wise trace data emitted during pipeline execution."""

    def record(self, step: str, data: dict[str, object]) -> None:  # pragma: no cover - interface only
        ...


@dataclass(frozen=True)
class Prompt:
    """Model-facing prompt: a system instruction plus ordered conversation turns."""

    system: str
    messages: tuple[ConversationMessage, ...] = field(default_factory=tuple)

    def render(self) -> str:
        parts = [f"[system]\n{self.system}"]
        parts.extend(f"[{message.role}]\n{message.content}" for message in self.messages)
        return "\n\n".join(parts)


class PipelineError(RuntimeError):
    """Raised when a pipeline step fails."""

    def __init__(self, message: str, *, step: str | None = None):
        super().__init__(message)
        self.step = step


class InvalidInputError(PipelineError):
    """Bad caller input: unknown role, empty question or graph name, missing config."""


class UnknownProviderError(PipelineError):
    """Provider name or identifier prefix outside the supported provider set."""


class ModelListError(PipelineError):
    """A provider with a live model list could not be reached."""


class SchemaDiscoveryError(PipelineError):
    """The graph does not exist or could not be introspected."""


class ProviderError(PipelineError):
    """A model provider call failed or returned no text."""


class GenerationError(PipelineError):
    """No statement could be obtained from the model."""


class ValidationError(PipelineError):
    """The statement is structurally malformed."""


class ExecutionError(PipelineError):
    """The graph engine rejected the statement or timed out."""


class GraphConnectionError(ExecutionError):
    """The graph engine is unreachable."""


def with_context_trace(trace: TraceSink | None, context: dict[str, object]) -> TraceSink | None:
    """Wrap a trace sink so every event carries a static context, or return None."""
    if trace is None:
        return None
    from .trace import ContextTraceSink

    return ContextTraceSink(trace, context)
