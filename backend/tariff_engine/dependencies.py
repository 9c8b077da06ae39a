from dataclasses import dataclass

from tariff_engine.classification.cache import build_cache
from tariff_engine.classification.client import ClassificationClient
from tariff_engine.classification.documents import JsonApiDocument
from tariff_engine.classification.translation import CachingTranslator, build_translator
from tariff_engine.config import Settings, settings
from tariff_engine.customs_calculator.service import TaxCalculationService
from tariff_engine.hierarchy.resolver import HierarchyResult
from tariff_engine.hierarchy.service import HierarchyService
from tariff_engine.tariff_lookup.rates import RateLookupResult
from tariff_engine.tariff_lookup.service import TariffLookupService
from tariff_engine.tariff_lookup.store import OriginRateResolver, StoreRateLookup
from tariff_engine.tariff_merger.service import CatalogService


@dataclass
class Services:
    """Service instances sharing one HTTP client and one set of caches."""

    client: ClassificationClient
    lookup: TariffLookupService
    hierarchy: HierarchyService
    catalog: CatalogService
    tax: TaxCalculationService

    async def aclose(self) -> None:
        await self.client.aclose()


def get_classification_client(config: Settings = settings) -> ClassificationClient:
    return ClassificationClient(config)


def get_translator(config: Settings = settings) -> CachingTranslator:
    return CachingTranslator(
        build_translator(config),
        build_cache(config.redis_url, "translation", str),
        config,
    )


def get_catalog_service(config: Settings = settings) -> CatalogService:
    return CatalogService(config)


def build_services(config: Settings = settings) -> Services:
    client = get_classification_client(config)
    translator = get_translator(config)
    lookup = TariffLookupService(
        config,
        client,
        build_cache(config.redis_url, "lookup", RateLookupResult),
        translator=translator,
    )
    hierarchy = HierarchyService(
        config,
        client,
        build_cache(config.redis_url, "hierarchy", HierarchyResult),
        translator,
        lookup=lookup,
        chapter_cache=build_cache(config.redis_url, "chapter", JsonApiDocument),
    )
    resolver = OriginRateResolver(StoreRateLookup(), remote=lookup)
    return Services(
        client=client,
        lookup=lookup,
        hierarchy=hierarchy,
        catalog=get_catalog_service(config),
        tax=TaxCalculationService(config, resolver),
    )
