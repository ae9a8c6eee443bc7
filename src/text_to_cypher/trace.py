"""Trace sinks that record pipeline step events.

A sink failing to write never fails the query: errors are logged at debug
level and the event is dropped.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

import psycopg

from .types import TraceSink

logger = logging.getLogger(__name__)


def _event(step: str, data: dict[str, object]) -> dict[str, object]:
    return {"timestamp": datetime.now(UTC).isoformat(), "step": step, **data}


class JsonlTraceSink:
    """Append trace events to a JSONL file."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def record(self, step: str, data: dict[str, object]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                json.dump(_event(step, data), handle, ensure_ascii=False, default=str)
                handle.write("\n")
        except OSError:
            logger.debug("Could not write trace event to %s", self._path, exc_info=True)


class StdoutTraceSink:
    """Print trace events to stdout."""

    def record(self, step: str, data: dict[str, object]) -> None:
        print(f"TRACE {step}: {json.dumps(_event(step, data), ensure_ascii=False, default=str)}")


class CompositeTraceSink:
    """Forward trace events to several sinks in order."""

    def __init__(self, *sinks: TraceSink) -> None:
        self._sinks = sinks

    def record(self, step: str, data: dict[str, object]) -> None:
        for sink in self._sinks:
            sink.record(step, data)


class ContextTraceSink:
    """Inject a fixed context (graph name, run id) into every trace event."""

    def __init__(self, sink: TraceSink, context: dict[str, object]) -> None:
        self._sink = sink
        self._context = dict(context)

    def record(self, step: str, data: dict[str, object]) -> None:
        self._sink.record(step, {**self._context, **data})


class PostgresTraceSink:
    """Persist trace events to a Postgres table as JSONB rows.

    Expects a table created via:
      create table if not exists traces (
        id bigserial primary key,
        timestamp timestamptz not null default now(),
        run_id text,
        step text not null,
        payload jsonb not null
      );
    """

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    def record(self, step: str, data: dict[str, object]) -> None:
        run_id = data.get("run_id")
        payload = json.dumps(_event(step, data), ensure_ascii=False, default=str)
        try:
            with psycopg.connect(self._dsn, autocommit=True) as conn:
                conn.execute(
                    "insert into traces (run_id, timestamp, step, payload) values (%s, now(), %s, %s::jsonb)",
                    (run_id if isinstance(run_id, str) else None, step, payload),
                )
        except psycopg.Error:
            logger.debug("Could not persist trace event for step %s", step, exc_info=True)


def daily_trace_path(base: Path | None = None) -> Path:
    directory = (base or Path("logs") / "traces").resolve()
    filename = datetime.now(UTC).strftime("%Y%m%d.jsonl")
    return directory / filename
