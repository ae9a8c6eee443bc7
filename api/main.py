"""FastAPI wrapper around the Text-to-Cypher client."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from text_to_cypher import ClientOptions, TextToCypher
from text_to_cypher.client import config_from_env
from text_to_cypher.trace import (
    CompositeTraceSink,
    JsonlTraceSink,
    PostgresTraceSink,
    StdoutTraceSink,
    daily_trace_path,
)
from text_to_cypher.types import (
    InvalidInputError,
    ModelListError,
    PipelineError,
    SchemaDiscoveryError,
    TraceSink,
    UnknownProviderError,
)

load_dotenv()

logger = logging.getLogger(__name__)


class QuestionRequest(BaseModel):
    question: str


class MessageBody(BaseModel):
    role: str
    content: str


class MessagesRequest(BaseModel):
    messages: list[MessageBody]


def build_trace() -> TraceSink:
    # JSONL (local debug) + optional Postgres + optional stdout
    base = Path(os.getenv("TRACE_LOG_DIR", "logs/traces"))
    sinks: list[TraceSink] = [JsonlTraceSink(daily_trace_path(base))]

    pg_dsn = os.getenv("TRACE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if pg_dsn:
        sinks.append(PostgresTraceSink(pg_dsn))

    if os.getenv("TRACE_STDOUT", "1").strip().lower() in {"1", "true", "yes"}:
        sinks.append(StdoutTraceSink())
    return CompositeTraceSink(*sinks)


@lru_cache(maxsize=1)
def build_client() -> TextToCypher:
    try:
        options = ClientOptions.from_env()
    except InvalidInputError as exc:
        raise RuntimeError(
            "TEXT_TO_CYPHER_MODEL, TEXT_TO_CYPHER_API_KEY and GRAPH_CONNECTION must be set "
            f"before starting the API ({exc})"
        ) from exc
    return TextToCypher(options, config=config_from_env(), trace=build_trace())


def get_client() -> TextToCypher:
    return build_client()


ClientDep = Annotated[TextToCypher, Depends(get_client)]

app = FastAPI(title="Text-to-Cypher API", version="0.1.0")

allowed_origins = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _status_for(exc: PipelineError) -> int:
    if isinstance(exc, (InvalidInputError, UnknownProviderError)):
        return 400
    if isinstance(exc, (SchemaDiscoveryError, ModelListError)):
        return 502
    return 500


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    detail: dict[str, Any] = {"message": str(exc), "step": exc.step, "error_type": type(exc).__name__}
    return JSONResponse(status_code=status_code, content={"detail": detail})


@app.get("/healthz", response_model=dict[str, str])
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.head("/healthz")
async def healthz_head() -> Response:
    return Response(status_code=200)


@app.post("/graphs/{graph}/query")
async def query(graph: str, body: QuestionRequest, client: ClientDep) -> dict[str, Any]:
    response = await client.text_to_cypher(graph, body.question)
    return response.to_dict()


@app.post("/graphs/{graph}/messages")
async def messages(graph: str, body: MessagesRequest, client: ClientDep) -> dict[str, Any]:
    history = [message.model_dump() for message in body.messages]
    response = await client.text_to_cypher_with_messages(graph, history)
    return response.to_dict()


@app.post("/graphs/{graph}/cypher")
async def cypher(graph: str, body: QuestionRequest, client: ClientDep) -> dict[str, Any]:
    response = await client.cypher_only(graph, body.question)
    return response.to_dict()


@app.get("/graphs/{graph}/schema")
async def schema(graph: str, client: ClientDep, refresh: bool = False) -> Response:
    schema_json = await client.discover_schema(graph, refresh=refresh)
    return Response(content=schema_json, media_type="application/json")


@app.get("/models", response_model=list[str])
async def models(client: ClientDep, provider: str | None = None) -> list[str]:
    if provider:
        return await client.list_models_by_provider(provider)
    return await client.list_models()
