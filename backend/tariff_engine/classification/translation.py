"""
Description translation for classification results.

Supports:
- Claude-backed translation of nomenclature descriptions and measure names
- A pass-through translator when no API key is configured
- Best-effort caching wrapper: any failure yields the original text
"""

import asyncio
import logging
from typing import Protocol

import anthropic

from tariff_engine.classification.cache import CacheStore
from tariff_engine.classification.concurrency import bounded_gather
from tariff_engine.config import Settings

logger = logging.getLogger("tariff.translation")

TRANSLATION_SYSTEM_PROMPT = """You translate customs tariff nomenclature from {source} to {target}.

Keep HS codes, numbers, units and percentages unchanged. Use the terminology a customs broker would use. Respond with the translation only, no quotes or commentary."""


class Translator(Protocol):
    async def translate(
        self, text: str, source_lang: str, target_lang: str, timeout: float,
    ) -> str: ...


class NullTranslator:
    """Returns text unchanged."""

    async def translate(self, text: str, source_lang: str, target_lang: str, timeout: float) -> str:
        return text


class ClaudeTranslator:
    """Translates short tariff texts with Claude."""

    def __init__(self, settings: Settings):
        self.client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
        self.model = settings.translation_model
        self.max_tokens = settings.translation_max_tokens

    async def translate(self, text: str, source_lang: str, target_lang: str, timeout: float) -> str:
        response = await asyncio.wait_for(
            self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0,
                system=TRANSLATION_SYSTEM_PROMPT.format(source=source_lang, target=target_lang),
                messages=[{"role": "user", "content": text}],
            ),
            timeout=timeout,
        )
        translated = response.content[0].text.strip()
        if not translated:
            raise ValueError("Empty translation")
        return translated


class CachingTranslator:
    """Best-effort translation keyed by source text; never raises."""

    def __init__(self, translator: Translator, cache: CacheStore, settings: Settings):
        self.translator = translator
        self.cache = cache
        self.source_lang = settings.translation_source_lang
        self.target_lang = settings.translation_target_lang
        self.timeout = settings.translation_timeout_seconds
        self.ttl_seconds = settings.translation_cache_ttl_seconds
        self.concurrency = settings.translation_concurrency

    def _cache_key(self, text: str) -> str:
        return f"{self.source_lang}:{self.target_lang}:{text}"

    async def translate_or_original(self, text: str | None) -> str | None:
        if not text or not text.strip():
            return text

        key = self._cache_key(text)
        try:
            cached = await self.cache.get(key)
        except Exception as e:
            logger.warning("Translation cache read failed: %s", e)
            cached = None
        if cached is not None:
            return cached

        try:
            translated = await self.translator.translate(
                text, self.source_lang, self.target_lang, self.timeout,
            )
        except Exception as e:
            logger.debug("Translation failed, keeping original text: %s", e)
            return text

        try:
            await self.cache.set(key, translated, self.ttl_seconds)
        except Exception as e:
            logger.warning("Translation cache write failed: %s", e)
        return translated

    async def translate_many(self, texts: list[str | None]) -> dict[str, str]:
        """Translate distinct non-empty texts, at most `concurrency` at a time."""
        unique = list(dict.fromkeys(t for t in texts if t and t.strip()))
        outcomes = await bounded_gather(unique, self.translate_or_original, self.concurrency)
        return {o.item: o.value if o.ok else o.item for o in outcomes}


def build_translator(settings: Settings) -> Translator:
    if settings.anthropic_api_key:
        return ClaudeTranslator(settings)
    return NullTranslator()
