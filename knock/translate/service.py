"""Orchestration layer that answers requests from the cache or a provider."""
from __future__ import annotations

import logging
from typing import Mapping, Optional

from . import prompts
from .context import ShellContext
from .providers import DEFAULT_TEMPERATURE, ProviderClient
from .storage import CacheStore, make_key
from .types import RequestMode, TranslationRecord, TranslationRequest


class TranslationService:
    """Public facade used by the CLI.

    One call walks key derivation, cache lookup, prompt assembly, provider
    dispatch and cache write. Provider failures propagate unchanged and leave
    the cache untouched.
    """

    def __init__(
        self,
        provider: ProviderClient,
        cache: CacheStore,
        *,
        context: Optional[ShellContext] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._provider = provider
        self._cache = cache
        self._context = context
        self.temperature = temperature
        self._logger = logger or logging.getLogger(__name__)

    @property
    def context(self) -> ShellContext:
        if self._context is None:
            self._context = ShellContext.detect()
        return self._context

    def cache_key_for(self, request: TranslationRequest) -> str:
        return make_key(request.query, self.context.os, self.context.shell, request.mode.value)

    def get_cached(self, request: TranslationRequest) -> Optional[TranslationRecord]:
        """Return an existing cached translation if one is available."""
        key = self.cache_key_for(request)
        text = self._cache.get(key)
        if text is None:
            return None
        return TranslationRecord(text=text, cache_key=key, cached=True)

    async def translate(self, request: TranslationRequest, use_cache: bool = True) -> TranslationRecord:
        """Return a translation, from the cache when possible."""
        key = self.cache_key_for(request)

        if use_cache:
            cached = self._cache.get(key)
            if cached is not None:
                self._log_debug("cache-hit", request, {"cache_key": key})
                return TranslationRecord(text=cached, cache_key=key, cached=True)

        instructions = prompts.instructions_for(request.mode)
        prompt = prompts.build(self.context, request.query, request.mode)
        text = await self._provider.send(
            instructions,
            prompt,
            prompts.max_tokens_for(request.mode),
            temperature=self.temperature,
        )

        if use_cache:
            self._cache.put(key, text)
        self._log_debug("cache-miss", request, {"cache_key": key, "stored": use_cache})
        return TranslationRecord(text=text, cache_key=key, cached=False)

    async def explain(self, command: str, use_cache: bool = True) -> TranslationRecord:
        return await self.translate(TranslationRequest(command, RequestMode.EXPLAIN), use_cache=use_cache)

    def _log_debug(self, event: str, request: TranslationRequest, extra: Mapping[str, object]) -> None:
        if not self._logger:
            return
        payload = {
            "event": event,
            "query": request.query,
            "mode": request.mode.value,
            "os": self.context.os,
            "shell": self.context.shell,
        }
        payload.update(dict(extra))
        self._logger.debug("translation-service", extra={"translation": payload})
