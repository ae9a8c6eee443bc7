"""Natural-language questions to Cypher queries over a property graph."""

from .catalog import DEFAULT_CATALOG, ModelCatalog, ModelIdentifier, Provider
from .client import ClientOptions, TextToCypher
from .engine import QueryEngine
from .types import (
    ConversationMessage,
    ExecutionError,
    GenerationError,
    GraphConnectionError,
    GraphSchema,
    InvalidInputError,
    ModelListError,
    PipelineConfig,
    PipelineError,
    PipelineResponse,
    ProviderError,
    SchemaDiscoveryError,
    UnknownProviderError,
    ValidationError,
)

__all__ = [
    "DEFAULT_CATALOG",
    "ClientOptions",
    "ConversationMessage",
    "ExecutionError",
    "GenerationError",
    "GraphConnectionError",
    "GraphSchema",
    "InvalidInputError",
    "ModelCatalog",
    "ModelIdentifier",
    "ModelListError",
    "PipelineConfig",
    "PipelineError",
    "PipelineResponse",
    "Provider",
    "ProviderError",
    "QueryEngine",
    "SchemaDiscoveryError",
    "TextToCypher",
    "UnknownProviderError",
    "ValidationError",
]
