"""Validation and threading of caller-supplied conversation history."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .types import VALID_ROLES, ConversationMessage, InvalidInputError


def _coerce(message: ConversationMessage | Mapping[str, object]) -> ConversationMessage:
    if isinstance(message, ConversationMessage):
        return message
    if isinstance(message, Mapping):
        return ConversationMessage(role=str(message.get("role", "")), content=str(message.get("content") or ""))
    role = getattr(message, "role", None)
    content = getattr(message, "content", None)
    if role is None or content is None:
        raise InvalidInputError(f"Messages need 'role' and 'content', got {type(message).__name__}")
    return ConversationMessage(role=str(role), content=str(content))


def validate_messages(
    messages: Iterable[ConversationMessage | Mapping[str, object]],
) -> list[ConversationMessage]:
    """Return the messages in their original order or raise ``InvalidInputError``.

    Roles are matched exactly (``user``, ``assistant``, ``system``). The last
    message must come from the user: it is the question being asked, the
    rest is history.
    """
    validated: list[ConversationMessage] = []
    for raw in messages:
        message = _coerce(raw)
        if message.role not in VALID_ROLES:
            raise InvalidInputError(
                f"Invalid message role: '{message.role}'. Must be 'user', 'assistant', or 'system'"
            )
        validated.append(message)

    if not validated:
        raise InvalidInputError("At least one message is required")
    if validated[-1].role != "user":
        raise InvalidInputError("The last message must have role 'user'")
    if not validated[-1].content.strip():
        raise InvalidInputError("Question must be a non-empty string")
    return validated


def single_question(question: str) -> list[ConversationMessage]:
    if question is None or not str(question).strip():
        raise InvalidInputError("Question must be a non-empty string")
    return [ConversationMessage(role="user", content=str(question).strip())]


def split_question(messages: list[ConversationMessage]) -> tuple[list[ConversationMessage], str]:
    """Split validated messages into (history, question)."""
    return messages[:-1], messages[-1].content.strip()
