"""Prompt templates and deterministic prompt assembly."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from textwrap import dedent

from .types import ConversationMessage, GraphSchema, PipelineConfig, Prompt, PropertySchema

EMPTY_SCHEMA_TEXT = "The graph is empty: it has no node labels and no relationship types."

CYPHER_SYSTEM_TEMPLATE = dedent(
    """
    You translate questions about a property graph into Cypher queries.

    Graph schema:
    {schema}

    Rules:
    - Use only the node labels, relationship types and properties listed in the schema.
    - Follow relationship directions exactly as shown.
    - Inline literal values; do not use query parameters such as $name.
    - Name returned columns with AS aliases when they are expressions.
    - When earlier turns refine the request, answer the latest user message.
    - Reply with exactly one executable Cypher statement and nothing else:
      no explanation, no comments, no code fences.
    """
).strip()

SUMMARY_SYSTEM_PROMPT = dedent(
    """
    You answer questions about a graph using the rows returned by a Cypher query.
    Base the answer only on those rows; do not invent data.
    If there are no rows, say that the graph holds no matching data.
    Answer in plain prose, concisely, without repeating the query.
    """
).strip()

SUMMARY_PROMPT_TEMPLATE = dedent(
    """
    Question: {question}

    Graph schema:
    {schema}

    Cypher query that was executed:
    {cypher}

    Result rows ({shown} of {total}):
    {rows}
    """
).strip()


def _format_properties(properties: Sequence[PropertySchema]) -> str:
    if not properties:
        return ""
    parts = []
    for prop in properties:
        parts.append(f"{prop.name}: {'|'.join(prop.types)}" if prop.types else prop.name)
    return " {" + ", ".join(parts) + "}"


def render_schema(schema: GraphSchema) -> str:
    """Canonical text form of a schema, stable for identical snapshots."""
    if schema.is_empty:
        return EMPTY_SCHEMA_TEXT

    lines = ["Node labels:"]
    lines.extend(f"- :{node.label}{_format_properties(node.properties)}" for node in schema.nodes)
    if not schema.nodes:
        lines.append("- (none)")

    lines.append("Relationship types:")
    for rel in schema.relationships:
        props = _format_properties(rel.properties)
        if rel.connections:
            lines.extend(f"- (:{src})-[:{rel.type}{props}]->(:{dst})" for src, dst in rel.connections)
        else:
            lines.append(f"- ()-[:{rel.type}{props}]->()")
    if not schema.relationships:
        lines.append("- (none)")
    return "\n".join(lines)


@dataclass(frozen=True)
class PromptBuilder:
    """Assemble the Cypher-generation prompt from schema, history and question.

    The output depends only on the arguments: no timestamps, random ids or
    unordered iteration.
    """

    config: PipelineConfig = field(default_factory=PipelineConfig)

    def build(self, schema: GraphSchema, history: Sequence[ConversationMessage], question: str) -> Prompt:
        system = CYPHER_SYSTEM_TEMPLATE.format(schema=render_schema(schema))
        turns = self.truncate_history(history)
        turns.append(ConversationMessage(role="user", content=question.strip()))
        return Prompt(system=system, messages=tuple(turns))

    def truncate_history(self, history: Sequence[ConversationMessage]) -> list[ConversationMessage]:
        """Keep the most recent turns that fit the message and character budgets."""
        kept: list[ConversationMessage] = []
        used_chars = 0
        for message in reversed(history):
            if len(kept) >= self.config.max_history_messages:
                break
            used_chars += len(message.content)
            if used_chars > self.config.max_history_chars:
                break
            kept.append(message)
        kept.reverse()
        return kept
