"""High-level coordinator for the Text-to-Cypher pipeline."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace
from time import perf_counter

from .conversation import split_question
from .generator import CypherGenerator
from .prompts import PromptBuilder
from .summarizer import AnswerSynthesizer
from .types import (
    ConversationMessage,
    CypherExecutor,
    ExecutionError,
    GenerationError,
    PipelineConfig,
    PipelineError,
    PipelineResponse,
    PipelineStage,
    ProviderError,
    SchemaSource,
    TraceSink,
    ValidationError,
)
from .validator import StructuralValidator

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((perf_counter() - started) * 1000)


@dataclass
class QueryEngine:
    """Run question -> schema -> Cypher -> rows -> answer, strictly in order.

    Failures after input validation (generation, validation, execution) are
    returned as ``status="error"`` responses. A failed answer synthesis still
    returns the executed query and its rows, without an answer.
    """

    config: PipelineConfig
    model: str
    discoverer: SchemaSource
    prompt_builder: PromptBuilder
    generator: CypherGenerator
    validator: StructuralValidator
    executor: CypherExecutor
    synthesizer: AnswerSynthesizer

    trace: TraceSink | None = None

    def _trace(self, step: str, data: dict[str, object]) -> None:
        if self.trace is not None:
            try:
                self.trace.record(step, data)
            except Exception:
                logger.debug("Trace sink failed for step %s", step, exc_info=True)

    def _trace_error(self, stage: PipelineStage, exc: Exception, started: float, **extra: object) -> None:
        self._trace("error", {"step": stage.value, "error": str(exc), "duration_ms": _elapsed_ms(started), **extra})

    async def run(
        self, graph_name: str, messages: Sequence[ConversationMessage], *, preview: bool = False
    ) -> PipelineResponse:
        """Execute the pipeline for already validated messages.

        ``preview`` stops after generation: nothing is validated or executed.
        """
        history, question = split_question(list(messages))
        self._trace("question", {"graph": graph_name, "question": question, "history_len": len(history)})
        run_started = perf_counter()

        step_started = perf_counter()
        try:
            schema = await self.discoverer.discover(graph_name)
        except PipelineError as exc:
            self._trace_error(PipelineStage.SCHEMA_DISCOVERY, exc, step_started)
            raise
        schema_dict = schema.to_dict()
        self._trace(
            PipelineStage.SCHEMA_DISCOVERY.value,
            {
                "labels": len(schema.nodes),
                "relationship_types": len(schema.relationships),
                "duration_ms": _elapsed_ms(step_started),
            },
        )

        prompt = self.prompt_builder.build(schema, history, question)
        self._trace(
            PipelineStage.PROMPT_CONSTRUCTION.value,
            {"turns": len(prompt.messages), "prompt_chars": len(prompt.render())},
        )

        step_started = perf_counter()
        try:
            generated = await self.generator.generate(prompt, self.model)
        except GenerationError as exc:
            self._trace_error(PipelineStage.GENERATION, exc, step_started)
            return PipelineResponse.failure(f"Cypher generation failed: {exc}", schema=schema_dict)
        statement = generated.statement or ""
        self._trace(
            PipelineStage.GENERATION.value,
            {"model": self.model, "cypher_draft": statement, "duration_ms": _elapsed_ms(step_started)},
        )

        if preview:
            return PipelineResponse(status="success", schema=schema_dict, cypher_query=statement)

        step_started = perf_counter()
        try:
            statement = self.validator.validate(statement)
        except ValidationError as exc:
            self._trace_error(PipelineStage.VALIDATION, exc, step_started, cypher_draft=statement)
            return PipelineResponse.failure(
                f"Cypher validation failed: {exc}", schema=schema_dict, cypher_query=statement
            )
        self._trace(PipelineStage.VALIDATION.value, {"cypher": statement})

        step_started = perf_counter()
        try:
            rows = await self.executor.execute(graph_name, statement)
        except ExecutionError as exc:
            self._trace_error(PipelineStage.EXECUTION, exc, step_started, cypher=statement)
            return PipelineResponse.failure(
                f"Cypher execution failed: {exc}", schema=schema_dict, cypher_query=statement
            )
        self._trace(
            PipelineStage.EXECUTION.value,
            {"row_count": len(rows), "rows_preview": rows[:3], "duration_ms": _elapsed_ms(step_started)},
        )

        step_started = perf_counter()
        answer: str | None
        try:
            answer = await self.synthesizer.synthesize(question, schema, statement, rows, model=self.model)
        except ProviderError as exc:
            logger.warning("Answer synthesis failed; returning rows without an answer: %s", exc)
            self._trace_error(PipelineStage.ANSWER_SYNTHESIS, exc, step_started, row_count=len(rows))
            answer = None
        else:
            self._trace(
                PipelineStage.ANSWER_SYNTHESIS.value,
                {
                    "answer_len": len(answer),
                    "duration_ms": _elapsed_ms(step_started),
                    "total_duration_ms": _elapsed_ms(run_started),
                },
            )

        return PipelineResponse(
            status="success",
            schema=schema_dict,
            cypher_query=statement,
            cypher_result=rows,
            answer=answer,
        )

    def with_trace(self, trace: TraceSink | None) -> QueryEngine:
        """Return a shallow copy sharing every component but using another trace sink."""
        return replace(self, trace=trace)
