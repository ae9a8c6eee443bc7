from __future__ import annotations

import pytest

from text_to_cypher.catalog import (
    DEFAULT_CATALOG,
    ModelCatalog,
    ModelIdentifier,
    Provider,
    dedupe_identifiers,
    parse_model_identifier,
    resolve_provider,
)
from text_to_cypher.types import InvalidInputError, UnknownProviderError


def test_bare_identifier_uses_default_provider() -> None:
    identifier = parse_model_identifier("gpt-4o-mini")

    assert identifier == ModelIdentifier(Provider.OPENAI, "gpt-4o-mini")
    assert str(identifier) == "gpt-4o-mini"


def test_only_first_colon_separates_provider() -> None:
    identifier = parse_model_identifier("ollama:llama3:8b")

    assert identifier.provider is Provider.OLLAMA
    assert identifier.model == "llama3:8b"
    assert str(identifier) == "ollama:llama3:8b"


def test_provider_prefix_is_case_insensitive() -> None:
    identifier = parse_model_identifier("Anthropic:claude-sonnet-4-5")

    assert identifier.provider is Provider.ANTHROPIC
    assert str(identifier) == "anthropic:claude-sonnet-4-5"


def test_unknown_prefix_is_rejected() -> None:
    with pytest.raises(UnknownProviderError, match="Unknown provider: 'mistral'"):
        parse_model_identifier("mistral:large")


@pytest.mark.parametrize("value", ["", "   ", "gemini:", "gemini:  "])
def test_empty_identifier_parts_are_invalid(value: str) -> None:
    with pytest.raises(InvalidInputError):
        parse_model_identifier(value)


def test_resolve_provider_lists_supported_names() -> None:
    with pytest.raises(UnknownProviderError) as excinfo:
        resolve_provider("not-a-provider")

    assert "openai, anthropic, gemini, ollama" in str(excinfo.value)


def test_catalog_is_read_only() -> None:
    catalog = ModelCatalog({Provider.OPENAI: ["a", "b"]})

    with pytest.raises(TypeError):
        catalog.models[Provider.OPENAI] = ("c",)  # type: ignore[index]
    assert [str(m) for m in catalog.static_models(Provider.OPENAI)] == ["a", "b"]
    assert catalog.static_models(Provider.GEMINI) == []


def test_default_catalog_has_static_providers_only() -> None:
    assert DEFAULT_CATALOG.static_models(Provider.OLLAMA) == []
    assert str(DEFAULT_CATALOG.static_models(Provider.GEMINI)[0]).startswith("gemini:")


def test_dedupe_keeps_first_occurrence() -> None:
    assert dedupe_identifiers(["a", "b", "a", "c", "b"]) == ["a", "b", "c"]
