"""Model identifiers and the static provider -> model catalog."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from .types import InvalidInputError, UnknownProviderError


class Provider(str, Enum):
    """Closed set of supported model providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    OLLAMA = "ollama"

    @property
    def is_live(self) -> bool:
        """Providers whose models are discovered by probing a running server."""
        return self is Provider.OLLAMA


DEFAULT_PROVIDER = Provider.OPENAI
SUPPORTED_PROVIDERS = ", ".join(provider.value for provider in Provider)


def resolve_provider(name: str) -> Provider:
    """Match a provider name case-insensitively."""
    try:
        return Provider((name or "").strip().lower())
    except ValueError:
        raise UnknownProviderError(
            f"Unknown provider: '{name}'. Supported providers are: {SUPPORTED_PROVIDERS}"
        ) from None


@dataclass(frozen=True)
class ModelIdentifier:
    """A model name bound to the provider that serves it."""

    provider: Provider
    model: str

    def __str__(self) -> str:
        if self.provider is DEFAULT_PROVIDER:
            return self.model
        return f"{self.provider.value}:{self.model}"


def parse_model_identifier(text: str) -> ModelIdentifier:
    """Parse ``model`` (default provider) or ``provider:model``.

    Only the first colon separates the provider, so ``ollama:llama3:8b``
    names the ``llama3:8b`` model on Ollama.
    """
    value = (text or "").strip()
    if not value:
        raise InvalidInputError("Model identifier must be a non-empty string")

    prefix, sep, rest = value.partition(":")
    if not sep:
        return ModelIdentifier(DEFAULT_PROVIDER, value)

    provider = resolve_provider(prefix)
    model = rest.strip()
    if not model:
        raise InvalidInputError(f"Model identifier '{value}' is missing a model name")
    return ModelIdentifier(provider, model)


@dataclass(frozen=True)
class ModelCatalog:
    """Immutable table of statically known models per provider."""

    models: Mapping[Provider, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        frozen = {Provider(p): tuple(names) for p, names in self.models.items()}
        object.__setattr__(self, "models", MappingProxyType(frozen))

    def static_models(self, provider: Provider) -> list[ModelIdentifier]:
        return [ModelIdentifier(provider, name) for name in self.models.get(provider, ())]


def dedupe_identifiers(identifiers: Iterable[str]) -> list[str]:
    """Drop repeats while keeping first-seen order."""
    seen: set[str] = set()
    ordered: list[str] = []
    for identifier in identifiers:
        if identifier in seen:
            continue
        seen.add(identifier)
        ordered.append(identifier)
    return ordered


DEFAULT_CATALOG = ModelCatalog(
    models={
        Provider.OPENAI: (
            "gpt-4o-mini",
            "gpt-4o",
            "gpt-4.1",
            "gpt-4.1-mini",
            "gpt-4.1-nano",
            "gpt-4-turbo",
            "o3-mini",
            "o4-mini",
        ),
        Provider.ANTHROPIC: (
            "claude-sonnet-4-5",
            "claude-opus-4-1",
            "claude-3-7-sonnet-latest",
            "claude-3-5-haiku-latest",
        ),
        Provider.GEMINI: (
            "gemini-2.5-pro",
            "gemini-2.5-flash",
            "gemini-2.5-flash-lite",
            "gemini-2.0-flash",
        ),
    }
)
