"""HTTP clients for the language-model backends behind one ``send`` contract.

Each backend speaks a different wire protocol; every client exposes::

    await client.send(instructions, prompt, max_tokens, temperature=0.2) -> str

and raises :class:`ProviderError` subclasses on failure. There is no retry and
no fallback to another backend.
"""
from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Protocol

import httpx

from .config import ProviderConfig

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_TEMPERATURE = 0.2
OLLAMA_HINT = "Is the Ollama server running? Start it with `ollama serve`."

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """Base error raised for backend failures."""


class CredentialMissing(ProviderError):
    """Raised before any network call when a required API key is absent."""


class ProviderHttpError(ProviderError):
    """Raised when a backend answers with a non-success HTTP status."""

    def __init__(self, provider: str, status_code: int, body: str, hint: Optional[str] = None) -> None:
        message = f"{provider} request failed ({status_code}): {body.strip() or '<empty body>'}"
        if hint:
            message = f"{message}\n{hint}"
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.body = body


class EmptyResponse(ProviderError):
    """Raised when a successful response carries no usable text."""


class MalformedResponse(ProviderError):
    """Raised when a backend returns something other than a JSON object."""


class ProviderConnectionError(ProviderError):
    """Raised when the request never produced an HTTP response."""


class ProviderClient(Protocol):
    """Capability shared by every backend client."""

    async def send(
        self,
        instructions: str,
        prompt: str,
        max_tokens: int,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> str:
        ...

    async def aclose(self) -> None:
        ...


class _JsonTransport:
    """POSTs JSON payloads and normalises transport and status failures."""

    def __init__(
        self,
        provider: str,
        base_url: str,
        headers: Mapping[str, str],
        *,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        hint: Optional[str] = None,
    ) -> None:
        self.provider = provider
        self.hint = hint
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=dict(headers),
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def post(self, path: str, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        logger.debug("POST %s%s", self._client.base_url, path)
        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as exc:
            message = f"{self.provider} request failed: {exc}"
            if self.hint:
                message = f"{message}\n{self.hint}"
            raise ProviderConnectionError(message) from exc

        if not response.is_success:
            raise ProviderHttpError(self.provider, response.status_code, response.text, hint=self.hint)

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponse(f"{self.provider} returned a non-JSON response") from exc
        if not isinstance(data, Mapping):
            raise MalformedResponse(f"{self.provider} response was not a JSON object")
        return data


class OpenAIClient:
    """Client for OpenAI's Responses API."""

    name = "OpenAI"

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: str = "https://api.openai.com/v1",
        *,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._http = _JsonTransport(self.name, base_url, headers, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def send(
        self,
        instructions: str,
        prompt: str,
        max_tokens: int,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> str:
        if not self.api_key:
            raise CredentialMissing("OpenAI API key not found. Set OPENAI_API_KEY or add api_key to the config file.")
        payload = {
            "model": self.model,
            "instructions": instructions,
            "input": prompt,
            "temperature": temperature,
            "max_output_tokens": max_tokens,
        }
        data = await self._http.post("/responses", payload)
        return _clean_text(_openai_output_text(data), self.name)


class AnthropicClient:
    """Client for Anthropic's Messages API."""

    name = "Anthropic"

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: str = "https://api.anthropic.com",
        *,
        api_key_env: str = "ANTHROPIC_API_KEY",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.api_key_env = api_key_env
        self.model = model
        headers = {
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        if api_key:
            headers["x-api-key"] = api_key
        self._http = _JsonTransport(self.name, base_url, headers, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def send(
        self,
        instructions: str,
        prompt: str,
        max_tokens: int,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> str:
        if not self.api_key:
            raise CredentialMissing(f"Anthropic API key not found. Set {self.api_key_env}.")
        payload = {
            "model": self.model,
            "max_tokens": max_tokens,
            "system": instructions,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
        }
        data = await self._http.post("/v1/messages", payload)
        content = data.get("content")
        if not isinstance(content, list) or not content:
            raise EmptyResponse("Anthropic response contained no content blocks")
        first = content[0]
        text = first.get("text") if isinstance(first, Mapping) else None
        return _clean_text(text, self.name)


class OllamaClient:
    """Client for a self-hosted Ollama server's chat endpoint."""

    name = "Ollama"

    def __init__(
        self,
        model: str,
        base_url: str = "http://localhost:11434",
        *,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.model = model
        self._http = _JsonTransport(
            self.name,
            base_url,
            {"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
            hint=OLLAMA_HINT,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def send(
        self,
        instructions: str,
        prompt: str,
        max_tokens: int,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": instructions},
                {"role": "user", "content": prompt},
            ],
            "stream": False,
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }
        data = await self._http.post("/api/chat", payload)
        message = data.get("message")
        text = message.get("content") if isinstance(message, Mapping) else None
        return _clean_text(text, self.name)


def build_provider(
    config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> ProviderClient:
    """Instantiate the client selected by ``config.provider``."""
    name = config.provider.lower().strip()
    if name == "openai":
        return OpenAIClient(
            config.api_key,
            config.model,
            config.base_url,
            timeout=config.timeout,
            transport=transport,
        )
    if name == "anthropic":
        return AnthropicClient(
            config.api_key,
            config.model,
            config.base_url,
            api_key_env=config.api_key_env or "ANTHROPIC_API_KEY",
            timeout=config.timeout,
            transport=transport,
        )
    if name == "ollama":
        return OllamaClient(config.model, config.base_url, timeout=config.timeout, transport=transport)
    raise ValueError(f"Unknown provider: {config.provider}")


def _openai_output_text(data: Mapping[str, Any]) -> Optional[str]:
    aggregated = data.get("output_text")
    if isinstance(aggregated, str) and aggregated.strip():
        return aggregated

    parts: List[str] = []
    output = data.get("output")
    if not isinstance(output, list):
        return None
    for item in output:
        if not isinstance(item, Mapping) or item.get("type") != "message":
            continue
        for block in item.get("content") or []:
            if isinstance(block, Mapping) and block.get("type") == "output_text":
                text = block.get("text")
                if isinstance(text, str):
                    parts.append(text)
    return "".join(parts)


def _clean_text(text: Optional[str], provider: str) -> str:
    if not isinstance(text, str) or not text.strip():
        raise EmptyResponse(f"{provider} returned an empty response")
    cleaned = _strip_code_fence(text.strip())
    if not cleaned:
        raise EmptyResponse(f"{provider} returned an empty response")
    return cleaned


def _strip_code_fence(text: str) -> str:
    """Remove a single Markdown fence wrapping the whole reply.

    The opening and closing fences must sit on their own lines and nothing in
    between may be another fence; anything else is returned unchanged.
    """
    lines = text.splitlines()
    if len(lines) < 2:
        return text
    if not lines[0].startswith("```") or lines[-1].strip() != "```":
        return text
    interior = lines[1:-1]
    if any(line.lstrip().startswith("```") for line in interior):
        return text
    return "\n".join(interior).strip()
