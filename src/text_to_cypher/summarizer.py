"""Answer synthesis: turn question, query and result rows into prose."""

from __future__ import annotations

import json
from dataclasses import dataclass

from .prompts import SUMMARY_PROMPT_TEMPLATE, SUMMARY_SYSTEM_PROMPT, render_schema
from .types import ConversationMessage, GraphSchema, ModelInvoker, PipelineConfig, Prompt, QueryResult


def _format_rows(rows: QueryResult, limit: int) -> str:
    if not rows:
        return "(no rows)"

    formatted = [
        json.dumps(row, ensure_ascii=False, separators=(",", ":"), default=str) for row in rows[:limit]
    ]
    omitted = len(rows) - len(formatted)
    if omitted > 0:
        formatted.append(f"... {omitted} more rows omitted")
    return "\n".join(formatted)


@dataclass
class AnswerSynthesizer:
    """Second model call of the pipeline; row count in the prompt is capped."""

    invoker: ModelInvoker
    config: PipelineConfig

    def build_prompt(self, question: str, schema: GraphSchema, statement: str, rows: QueryResult) -> Prompt:
        limit = self.config.max_result_rows_in_prompt
        content = SUMMARY_PROMPT_TEMPLATE.format(
            question=question.strip(),
            schema=render_schema(schema),
            cypher=statement,
            shown=min(len(rows), limit),
            total=len(rows),
            rows=_format_rows(rows, limit),
        )
        return Prompt(system=SUMMARY_SYSTEM_PROMPT, messages=(ConversationMessage(role="user", content=content),))

    async def synthesize(
        self, question: str, schema: GraphSchema, statement: str, rows: QueryResult, *, model: str
    ) -> str:
        prompt = self.build_prompt(question, schema, statement, rows)
        return await self.invoker.invoke(model, prompt)
