"""Literal-aware scanning of Cypher text, shared by extraction and validation."""

from __future__ import annotations

QUOTE_NAMES = {"'": "single-quoted string", '"': "double-quoted string", "`": "backtick identifier"}


class UnterminatedLiteral(ValueError):
    """A string, backtick identifier or block comment runs to the end of the text."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Unterminated {kind}")
        self.kind = kind


def mask_literals(text: str) -> str:
    """Blank out strings, backtick identifiers and comments, keeping every offset.

    The result has the same length as ``text``; masked characters become
    spaces and newlines are kept. Backslash escapes are honoured inside
    quoted strings, and a doubled backtick escapes a backtick inside an
    identifier.
    """
    out = list(text)
    n = len(text)

    def blank(start: int, end: int) -> None:
        for j in range(start, min(end, n)):
            if out[j] != "\n":
                out[j] = " "

    i = 0
    while i < n:
        ch = text[i]
        if ch in QUOTE_NAMES:
            start = i
            i += 1
            while True:
                if i >= n:
                    raise UnterminatedLiteral(QUOTE_NAMES[ch])
                if text[i] == "\\" and ch != "`":
                    i += 2
                    continue
                if text[i] == ch:
                    if ch == "`" and i + 1 < n and text[i + 1] == "`":
                        i += 2
                        continue
                    i += 1
                    break
                i += 1
            blank(start, i)
            continue
        if text.startswith("//", i):
            newline = text.find("\n", i)
            end = n if newline == -1 else newline
            blank(i, end)
            i = end
            continue
        if text.startswith("/*", i):
            close = text.find("*/", i + 2)
            if close == -1:
                raise UnterminatedLiteral("block comment")
            blank(i, close + 2)
            i = close + 2
            continue
        i += 1
    return "".join(out)


def bracket_depth(masked: str) -> int:
    """Opened minus closed brackets in already masked text."""
    return sum(masked.count(ch) for ch in "([{") - sum(masked.count(ch) for ch in ")]}")
