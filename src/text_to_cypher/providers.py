"""Provider-agnostic model invocation and model listing.

Each supported provider is one arm of the ``Provider`` enum with a matching
chat handler below. A handler shapes the provider's request from a
``Prompt`` and extracts the reply text; ``ProviderRouter.invoke`` is the
only entry point used by the generator and the answer synthesizer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from google import genai
from google.genai import types as genai_types

from .catalog import (
    DEFAULT_CATALOG,
    ModelCatalog,
    ModelIdentifier,
    Provider,
    dedupe_identifiers,
    parse_model_identifier,
    resolve_provider,
)
from .types import ModelListError, PipelineConfig, Prompt, ProviderError

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"


def _split_system(prompt: Prompt) -> tuple[str, list[dict[str, str]]]:
    """Fold system turns from the history into the system text."""
    system_parts = [prompt.system] if prompt.system else []
    turns: list[dict[str, str]] = []
    for message in prompt.messages:
        if message.role == "system":
            system_parts.append(message.content)
        else:
            turns.append({"role": message.role, "content": message.content})
    return "\n\n".join(system_parts), turns


def _chat_messages(prompt: Prompt) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    if prompt.system:
        messages.append({"role": "system", "content": prompt.system})
    messages.extend({"role": m.role, "content": m.content} for m in prompt.messages)
    return messages


async def _openai_chat(router: ProviderRouter, model: str, prompt: Prompt) -> str:
    data = await router._post_json(
        f"{OPENAI_BASE_URL}/chat/completions",
        headers={"Authorization": f"Bearer {router.api_key}"},
        body={
            "model": model,
            "messages": _chat_messages(prompt),
            "temperature": router.config.temperature,
            "max_tokens": router.config.max_output_tokens,
        },
    )
    choice = (data.get("choices") or [{}])[0]
    return (choice.get("message") or {}).get("content") or ""


async def _anthropic_chat(router: ProviderRouter, model: str, prompt: Prompt) -> str:
    system, turns = _split_system(prompt)
    data = await router._post_json(
        f"{ANTHROPIC_BASE_URL}/messages",
        headers={"x-api-key": router.api_key, "anthropic-version": ANTHROPIC_VERSION},
        body={
            "model": model,
            "system": system,
            "messages": turns,
            "temperature": router.config.temperature,
            "max_tokens": router.config.max_output_tokens,
        },
    )
    for block in data.get("content") or []:
        if block.get("type") == "text":
            return block.get("text") or ""
    return ""


async def _gemini_chat(router: ProviderRouter, model: str, prompt: Prompt) -> str:
    system, turns = _split_system(prompt)
    contents = [
        genai_types.Content(
            role="model" if turn["role"] == "assistant" else "user",
            parts=[genai_types.Part(text=turn["content"])],
        )
        for turn in turns
    ]
    response = await router.gemini_client().aio.models.generate_content(
        model=model,
        contents=contents,
        config=genai_types.GenerateContentConfig(
            system_instruction=system or None,
            temperature=router.config.temperature,
            max_output_tokens=router.config.max_output_tokens,
        ),
    )
    return getattr(response, "text", None) or ""


async def _ollama_chat(router: ProviderRouter, model: str, prompt: Prompt) -> str:
    data = await router._post_json(
        f"{router.ollama_base_url}/api/chat",
        headers={},
        body={
            "model": model,
            "messages": _chat_messages(prompt),
            "stream": False,
            "options": {"temperature": router.config.temperature},
        },
    )
    return (data.get("message") or {}).get("content") or ""


ChatHandler = Callable[["ProviderRouter", str, Prompt], Awaitable[str]]

CHAT_HANDLERS: dict[Provider, ChatHandler] = {
    Provider.OPENAI: _openai_chat,
    Provider.ANTHROPIC: _anthropic_chat,
    Provider.GEMINI: _gemini_chat,
    Provider.OLLAMA: _ollama_chat,
}


class ProviderRouter:
    """Route model identifiers to provider handlers and list available models."""

    def __init__(
        self,
        api_key: str,
        *,
        config: PipelineConfig | None = None,
        catalog: ModelCatalog = DEFAULT_CATALOG,
        http_client: httpx.AsyncClient | None = None,
        gemini_client: object | None = None,
    ) -> None:
        self.api_key = api_key
        self.config = config or PipelineConfig()
        self.catalog = catalog
        self.ollama_base_url = self.config.ollama_base_url.rstrip("/")
        self._http_client = http_client
        self._gemini_client = gemini_client

    def gemini_client(self) -> Any:
        if self._gemini_client is None:
            self._gemini_client = genai.Client(api_key=self.api_key)
        return self._gemini_client

    def _http_timeout(self) -> httpx.Timeout:
        t = self.config.model_timeout_seconds
        return httpx.Timeout(connect=10.0, read=t, write=t, pool=5.0)

    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._http_timeout())
        return self._http_client

    async def _post_json(self, url: str, *, headers: dict[str, str], body: dict[str, Any]) -> dict[str, Any]:
        resp = await self.http_client().post(url, headers=headers, json=body)
        resp.raise_for_status()
        return resp.json()

    async def _get_json(self, url: str) -> dict[str, Any]:
        resp = await self.http_client().get(url)
        resp.raise_for_status()
        return resp.json()

    async def invoke(self, model: str, prompt: Prompt) -> str:
        """Send ``prompt`` to ``model`` and return the stripped reply text."""
        identifier = parse_model_identifier(model)
        provider = identifier.provider.value
        handler = CHAT_HANDLERS[identifier.provider]
        timeout = self.config.model_timeout_seconds

        try:
            text = await asyncio.wait_for(handler(self, identifier.model, prompt), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderError(f"{provider} model '{identifier.model}' timed out after {timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text[:300]
            raise ProviderError(
                f"{provider} request for model '{identifier.model}' failed with "
                f"HTTP {exc.response.status_code}: {detail}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"{provider} request failed: {type(exc).__name__}: {exc}") from exc
        except Exception as exc:
            raise ProviderError(f"{provider} call failed: {type(exc).__name__}: {exc}") from exc

        if not text or not text.strip():
            raise ProviderError(f"{provider} model '{identifier.model}' returned an empty response")
        return text.strip()

    async def _fetch_ollama_models(self) -> list[ModelIdentifier]:
        url = f"{self.ollama_base_url}/api/tags"
        try:
            data = await asyncio.wait_for(self._get_json(url), timeout=self.config.model_timeout_seconds)
        except (asyncio.TimeoutError, httpx.HTTPError, ValueError) as exc:
            raise ModelListError(
                f"Failed to list models: ollama at {self.ollama_base_url} is unreachable "
                f"({type(exc).__name__}: {exc})"
            ) from exc
        names = sorted(
            {
                str(item.get("name") or item.get("model"))
                for item in data.get("models") or []
                if isinstance(item, dict) and (item.get("name") or item.get("model"))
            }
        )
        return [ModelIdentifier(Provider.OLLAMA, name) for name in names]

    async def list_models_by_provider(self, name: str) -> list[str]:
        """Models for one provider, matched case-insensitively."""
        provider = resolve_provider(name)
        if provider.is_live:
            identifiers = await self._fetch_ollama_models()
        else:
            identifiers = self.catalog.static_models(provider)
        return dedupe_identifiers(str(identifier) for identifier in identifiers)

    async def list_all_models(self) -> list[str]:
        """De-duplicated, order-stable concatenation of every provider's models."""
        collected: list[str] = []
        for provider in Provider:
            try:
                collected.extend(await self.list_models_by_provider(provider.value))
            except ModelListError as exc:
                logger.warning("Skipping %s models: %s", provider.value, exc)
        return dedupe_identifiers(collected)

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
