"""LLM-based Cypher generator for the Text-to-Cypher pipeline.

The model is asked for one bare statement, but its output is untrusted:
extraction unwraps JSON envelopes and code fences, drops commentary before
and after the query, and keeps only the first statement.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

from pydantic import BaseModel, ValidationError as PydanticValidationError

from .literals import UnterminatedLiteral, bracket_depth, mask_literals
from .types import GeneratedQuery, GenerationError, ModelInvoker, PipelineStage, Prompt, ProviderError

STATEMENT_START_KEYWORDS = frozenset(
    {
        "MATCH",
        "OPTIONAL",
        "WITH",
        "UNWIND",
        "CALL",
        "RETURN",
        "CREATE",
        "MERGE",
        "FOREACH",
        "LOAD",
        "USE",
        "EXPLAIN",
        "PROFILE",
    }
)
CONTINUATION_KEYWORDS = STATEMENT_START_KEYWORDS | {
    "WHERE",
    "AND",
    "OR",
    "XOR",
    "NOT",
    "ORDER",
    "SKIP",
    "LIMIT",
    "SET",
    "DELETE",
    "DETACH",
    "REMOVE",
    "ON",
    "YIELD",
    "UNION",
    "CASE",
    "WHEN",
    "THEN",
    "ELSE",
    "END",
    "DISTINCT",
    "ASC",
    "DESC",
}
CONTINUATION_PREFIXES = ("(", ")", "[", "]", "{", "}", ",", ".", "<-", "->", "-[", "--", "//")
# A line ending in one of these carries on to the next
JOINING_SUFFIXES = (",", "+", "-", "*", "/", "%", "=", "<", ">", "|", "(", "[", "{")
# Words that also appear between Cypher tokens; any other pair of bare words reads as prose
CYPHER_WORDS = CONTINUATION_KEYWORDS | {
    "AS",
    "IN",
    "IS",
    "NULL",
    "TRUE",
    "FALSE",
    "STARTS",
    "ENDS",
    "CONTAINS",
    "BY",
    "ASCENDING",
    "DESCENDING",
    "ALL",
    "CSV",
    "FROM",
    "HEADERS",
    "FIELDTERMINATOR",
    "EXISTS",
    "COUNT",
}
SENTENCE_END = (".", "!", "?", ":")

# A language tag only counts as one when a newline follows it
CODE_FENCE_PATTERN = re.compile(r"```(?:[ \t]*[A-Za-z0-9_-]+[ \t]*\n|[ \t]*\n?)([\s\S]*?)```")
LEADING_LABEL_PATTERN = re.compile(r"^(?:cypher|query)\s*:\s*", re.IGNORECASE)
INLINE_START_PATTERN = re.compile(r"\b(?:OPTIONAL MATCH|MATCH|UNWIND|CREATE|MERGE|CALL|WITH|RETURN)\b\s")
FIRST_WORD_PATTERN = re.compile(r"[A-Za-z_]+")
PLAIN_WORD_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
SENTENCE_MARK_PATTERN = re.compile(r"[!?](?!=)")


class CypherEnvelope(BaseModel):
    """JSON shape some models use despite instructions."""

    cypher: str | None = None
    query: str | None = None


def _first_word(line: str) -> str:
    match = FIRST_WORD_PATTERN.match(line.strip())
    return match.group(0).upper() if match else ""


def _is_plain_word(token: str) -> bool:
    return bool(PLAIN_WORD_PATTERN.match(token)) and token.upper() not in CYPHER_WORDS


def _looks_like_prose(line: str) -> bool:
    """Whether a line reads as a sentence rather than Cypher."""
    try:
        masked = mask_literals(line).strip()
    except UnterminatedLiteral:
        # "Here's the query" style apostrophes
        return True
    if not masked:
        return False
    if masked.endswith(SENTENCE_END) or SENTENCE_MARK_PATTERN.search(masked):
        return True
    words = masked.split()
    return any(_is_plain_word(left) and _is_plain_word(right) for left, right in zip(words, words[1:]))


def _starts_statement(line: str) -> bool:
    return _first_word(line) in STATEMENT_START_KEYWORDS and not _looks_like_prose(line)


def _unwrap_json(text: str) -> str:
    if not text.startswith("{"):
        return text
    try:
        envelope = CypherEnvelope.model_validate(json.loads(text))
    except (json.JSONDecodeError, PydanticValidationError):
        return text
    return (envelope.cypher or envelope.query or text).strip()


def _unwrap_fence(text: str) -> str:
    blocks = [block.strip() for block in CODE_FENCE_PATTERN.findall(text)]
    for block in blocks:
        if any(_starts_statement(line) for line in block.splitlines()):
            return block
    if blocks:
        return blocks[0]
    if text.startswith("```"):
        # Opening fence without a closing one
        _, _, remainder = text.partition("\n")
        return remainder.strip()
    return text


def _continues(line: str, kept: list[str]) -> bool:
    """Whether ``line`` belongs to the statement built from ``kept`` so far."""
    try:
        masked = mask_literals("\n".join(kept))
    except UnterminatedLiteral:
        # A string literal spans lines
        return True
    if bracket_depth(masked) > 0:
        return True
    if _looks_like_prose(line):
        return False

    stripped = line.strip()
    if stripped.startswith(CONTINUATION_PREFIXES) or _first_word(stripped) in CONTINUATION_KEYWORDS:
        return True
    tail = masked.rstrip()
    return tail.endswith(JOINING_SUFFIXES) or tail.split()[-1].upper() in CONTINUATION_KEYWORDS


def _inline_start(line: str) -> str | None:
    """The tail of ``line`` from the first clause keyword that begins Cypher."""
    for match in INLINE_START_PATTERN.finditer(line):
        candidate = line[match.start() :]
        if not _looks_like_prose(candidate):
            return candidate
    return None


def _strip_commentary(text: str) -> str:
    lines = [LEADING_LABEL_PATTERN.sub("", line) for line in text.splitlines()]

    start = next((i for i, line in enumerate(lines) if _starts_statement(line)), None)
    if start is None:
        # Prose and query on the same line: "Here it is: MATCH (n) RETURN n"
        for i, line in enumerate(lines):
            candidate = _inline_start(line)
            if candidate is not None:
                lines[i] = candidate
                start = i
                break
    if start is None:
        return ""

    kept = [lines[start]]
    for line in lines[start + 1 :]:
        if line.strip().startswith("```"):
            break
        if not line.strip():
            kept.append(line)
            continue
        if not _continues(line, kept):
            break
        kept.append(line)
    return "\n".join(kept).strip()


def split_statements(text: str) -> list[str]:
    """Split on semicolons outside strings, identifiers and comments."""
    try:
        masked = mask_literals(text)
    except UnterminatedLiteral:
        # Left for the validator to report
        return [text.strip()] if text.strip() else []

    statements: list[str] = []
    begin = 0
    for index, ch in enumerate(masked):
        if ch == ";":
            statements.append(text[begin:index].strip())
            begin = index + 1
    statements.append(text[begin:].strip())
    return [statement for statement in statements if statement]


def extract_statement(text: str | None) -> str | None:
    """Isolate a single executable statement from raw model output."""
    content = (text or "").strip()
    if not content:
        return None
    content = _unwrap_fence(_unwrap_json(content))
    content = _strip_commentary(content)
    statements = split_statements(content)
    return statements[0] if statements else None


@dataclass
class CypherGenerator:
    """Generate Cypher through the provider router: one model call per generation."""

    invoker: ModelInvoker

    async def generate(self, prompt: Prompt, model: str) -> GeneratedQuery:
        step = PipelineStage.GENERATION.value
        try:
            raw_output = await self.invoker.invoke(model, prompt)
        except ProviderError as exc:
            raise GenerationError(f"Model call failed: {exc}", step=step) from exc

        generated = GeneratedQuery(raw_text=raw_output, statement=extract_statement(raw_output))
        if generated.statement is None:
            raise GenerationError("Model output did not contain a Cypher statement", step=step)
        return generated
