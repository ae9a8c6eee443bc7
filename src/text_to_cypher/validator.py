"""Structural Cypher validator run before a statement reaches the graph engine.

Checks are deliberately shallow: unknown labels, type errors and other
semantic problems are reported by the engine itself.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import NoReturn

from .literals import UnterminatedLiteral, mask_literals
from .types import PipelineConfig, PipelineStage, ValidationError

CLAUSE_PATTERN = re.compile(
    r"\b(?:MATCH|MERGE|CREATE|RETURN|WITH|UNWIND|CALL|DELETE|SET|REMOVE|FOREACH|LOAD\s+CSV)\b",
    re.IGNORECASE,
)

WRITE_KEYWORDS = (
    "CREATE",
    "MERGE",
    "SET",
    "DELETE",
    "REMOVE",
    "DROP",
    "DETACH",
    "FOREACH",
    "LOAD",
)

CLOSING = {")": "(", "]": "[", "}": "{"}


@dataclass
class StructuralValidator:
    """Reject statements that cannot possibly be valid Cypher."""

    config: PipelineConfig

    def validate(self, statement: str) -> str:
        text = (statement or "").strip()
        if not text:
            self._fail("Statement is empty")

        scan_text = self._mask(text)
        self._check_brackets(scan_text)
        if not CLAUSE_PATTERN.search(scan_text):
            self._fail("Statement has no recognised Cypher clause")
        if self.config.read_only:
            self._check_write_clauses(scan_text)
        return text

    @staticmethod
    def _fail(message: str) -> NoReturn:
        raise ValidationError(message, step=PipelineStage.VALIDATION.value)

    def _mask(self, text: str) -> str:
        try:
            return mask_literals(text)
        except UnterminatedLiteral as exc:
            self._fail(str(exc))

    def _check_brackets(self, text: str) -> None:
        stack: list[str] = []
        for ch in text:
            if ch in "([{":
                stack.append(ch)
            elif ch in CLOSING:
                if not stack or stack[-1] != CLOSING[ch]:
                    self._fail(f"Unbalanced bracket: unexpected '{ch}'")
                stack.pop()
        if stack:
            self._fail(f"Unbalanced bracket: '{stack[-1]}' is never closed")

    def _check_write_clauses(self, text: str) -> None:
        upper_text = text.upper()
        for keyword in WRITE_KEYWORDS:
            # Keys and labels such as n.set or :Delete are not clauses
            if re.search(rf"(?<![.:])\b{keyword}\b(?!\s*:)", upper_text):
                self._fail(f"Write clause not allowed in read-only mode: {keyword}")
