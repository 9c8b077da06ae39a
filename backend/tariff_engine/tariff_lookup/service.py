"""TariffLookupService — origin-aware rate lookup against the classification service.

Flow:
1. Normalize the code to 10 digits; return a cached result if present
2. Try the exact code, then the 8- and 6-digit parents padded to 10 digits
3. On 404 at every length, browse the 4-digit heading and pick a sibling
4. Fetch the sibling's rates and flag the result as an approximation
5. Cache exact results for a day, approximations for a few hours
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field, replace

from tariff_engine.classification.cache import CacheStore
from tariff_engine.classification.client import ClassificationClient
from tariff_engine.classification.concurrency import windowed
from tariff_engine.classification.documents import strip_html
from tariff_engine.classification.nodes import commodity_nodes
from tariff_engine.classification.translation import CachingTranslator
from tariff_engine.config import Settings
from tariff_engine.exceptions import (
    ClassificationNotFoundError,
    ImportValidationError,
    TariffEngineError,
)
from tariff_engine.tariff_lookup.rates import RateLookupResult, SuggestedCode, build_lookup_result
from tariff_engine.tariff_lookup.siblings import SiblingPolicy

logger = logging.getLogger("tariff.lookup")


@dataclass
class BatchLookupError:
    hs_code: str
    error: str


@dataclass
class BatchLookupResult:
    results: list[RateLookupResult] = field(default_factory=list)
    errors: list[BatchLookupError] = field(default_factory=list)
    total_count: int = 0


def normalize_code(hs_code: str) -> str:
    digits = re.sub(r"\D", "", hs_code or "")
    if len(digits) < 4:
        raise ImportValidationError(f"HS code must have at least 4 digits: {hs_code!r}")
    return digits[:10]


def candidate_codes(code10: str) -> list[str]:
    """Exact code, then its 8- and 6-digit parents, all padded to 10 digits."""
    candidates: list[str] = []
    for length in (10, 8, 6):
        candidate = code10[:length].ljust(10, "0")
        if candidate not in candidates:
            candidates.append(candidate)
    return candidates


class TariffLookupService:
    """Resolves (HS code, origin) to rates with fallbacks and TTL caching."""

    def __init__(
        self,
        settings: Settings,
        client: ClassificationClient,
        cache: CacheStore,
        policy: SiblingPolicy | None = None,
        translator: CachingTranslator | None = None,
        sleep=asyncio.sleep,
    ):
        self.settings = settings
        self.client = client
        self.cache = cache
        self.policy = policy or SiblingPolicy()
        self.translator = translator
        self._sleep = sleep

    async def lookup(self, hs_code: str, origin: str | None = None) -> RateLookupResult:
        digits = normalize_code(hs_code)
        code10 = digits.ljust(10, "0")
        cache_key = f"{code10}:{origin or ''}"

        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Lookup cache hit for %s", cache_key)
            return cached

        attempted: list[str] = []
        for candidate in candidate_codes(code10):
            attempted.append(candidate)
            try:
                document = await self.client.get_commodity(candidate, origin)
            except ClassificationNotFoundError:
                continue

            result = build_lookup_result(
                document, code10, origin, self.settings.remote_default_vat_rate,
            )
            result = replace(result, original_hs_code=digits, exact_match=candidate == code10)
            if not result.exact_match:
                result.note = f"{code10} not found; using parent code {result.matched_hs_code}"
            await self._translate_measures(result)
            ttl = (
                self.settings.lookup_cache_ttl_seconds if result.exact_match
                else self.settings.approximate_cache_ttl_seconds
            )
            await self.cache.set(cache_key, result, ttl)
            return result

        result = await self._heading_fallback(digits, code10, origin, attempted)
        await self.cache.set(cache_key, result, self.settings.approximate_cache_ttl_seconds)
        return result

    async def batch_lookup(
        self,
        hs_codes: list[str],
        origin: str | None = None,
        window: int | None = None,
        delay_seconds: float | None = None,
    ) -> BatchLookupResult:
        """Look up many codes in fixed windows; failures are reported per code."""

        async def worker(code: str) -> RateLookupResult:
            return await self.lookup(code, origin)

        outcomes = await windowed(
            hs_codes,
            worker,
            size=window or self.settings.batch_lookup_window,
            delay_seconds=(
                self.settings.batch_lookup_delay_seconds if delay_seconds is None else delay_seconds
            ),
            sleep=self._sleep,
        )

        batch = BatchLookupResult(total_count=len(hs_codes))
        for outcome in outcomes:
            if outcome.ok:
                batch.results.append(outcome.value)
            else:
                batch.errors.append(BatchLookupError(hs_code=outcome.item, error=str(outcome.error)))

        logger.info(
            "Batch lookup: %d codes, %d ok, %d failed",
            batch.total_count, len(batch.results), len(batch.errors),
        )
        return batch

    async def _heading_fallback(
        self,
        digits: str,
        code10: str,
        origin: str | None,
        attempted: list[str],
    ) -> RateLookupResult:
        heading = code10[:4]
        attempted.append(heading)
        try:
            heading_doc = await self.client.get_heading(heading)
        except ClassificationNotFoundError:
            raise ClassificationNotFoundError(digits, attempted) from None

        candidates = [n for n in commodity_nodes(heading_doc) if n.declarable]
        ranked = self.policy.rank(candidates, code10)
        if not ranked:
            raise ClassificationNotFoundError(digits, attempted)

        best = ranked[0]
        suggested = [
            SuggestedCode(code=n.code, description=n.description)
            for n in ranked[: self.settings.suggested_codes_limit]
        ]
        note = f"{code10} not found; closest code under heading {heading} is {best.code}"
        logger.info("Lookup for %s fell back to sibling %s", code10, best.code)

        try:
            document = await self.client.get_commodity(best.code, origin)
        except TariffEngineError as e:
            logger.warning("Rates for suggested code %s unavailable: %s", best.code, e)
            return RateLookupResult(
                hs_code=heading.ljust(8, "0"),
                hs_code_10=heading.ljust(10, "0"),
                original_hs_code=digits,
                matched_hs_code=heading,
                exact_match=False,
                description=strip_html(
                    heading_doc.data.attr("description") or heading_doc.data.attr("formatted_description")
                ),
                origin_country_code=origin,
                suggested_codes=suggested,
                note=note,
            )

        result = build_lookup_result(document, code10, origin, self.settings.remote_default_vat_rate)
        result = replace(
            result,
            original_hs_code=digits,
            exact_match=False,
            suggested_codes=suggested,
            note=note,
        )
        await self._translate_measures(result)
        return result

    async def _translate_measures(self, result: RateLookupResult) -> None:
        if self.translator is None or not result.measures:
            return
        texts = [m.type for m in result.measures] + [m.geographical_area for m in result.measures]
        translated = await self.translator.translate_many(texts)
        for measure in result.measures:
            measure.type_translated = translated.get(measure.type)
            if measure.geographical_area:
                measure.geographical_area_translated = translated.get(measure.geographical_area)
