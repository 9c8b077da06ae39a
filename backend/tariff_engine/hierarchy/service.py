"""HierarchyService — browses the classification tree around a code.

Flow:
1. Normalize to digits; <=2 digits is a chapter view, <=4 a heading view,
   longer codes a full commodity view
2. Full view fetches the commodity and its heading concurrently
3. Locate the target in the heading's flat list and rebuild its ancestors
4. Group declarable children under their classification-only parents
5. Optionally fetch origin rates for a bounded number of children
6. Translate descriptions best-effort; cache the result for 30 minutes
"""

import asyncio
import logging
import re

from tariff_engine.classification.cache import CacheStore
from tariff_engine.classification.client import ClassificationClient
from tariff_engine.classification.concurrency import bounded_gather
from tariff_engine.classification.documents import JsonApiDocument, Resource, strip_html
from tariff_engine.classification.nodes import HsNode, commodity_nodes, node_from_resource
from tariff_engine.classification.translation import CachingTranslator
from tariff_engine.config import Settings
from tariff_engine.exceptions import ClassificationNotFoundError, TariffEngineError
from tariff_engine.hierarchy.resolver import (
    BreadcrumbEntry,
    ChildGroup,
    HierarchyResult,
    build_breadcrumb,
    declarable_children,
    find_ancestors,
    find_target_index,
    group_by_subheading,
    group_children,
)
from tariff_engine.observability import log_operation
from tariff_engine.tariff_lookup.service import TariffLookupService

logger = logging.getLogger("tariff.hierarchy")


def _description(resource: Resource) -> str:
    return strip_html(resource.attr("description") or resource.attr("formatted_description"))


def section_entry(document: JsonApiDocument) -> BreadcrumbEntry | None:
    section = document.first_of_type("section")
    if section is None:
        return None
    number = section.attr("numeral") or section.attr("position") or section.id
    return BreadcrumbEntry(code=f"S{number}", description=strip_html(section.attr("title", "")), level="section")


def chapter_entry(document: JsonApiDocument) -> BreadcrumbEntry | None:
    chapter = document.data if document.data.type == "chapter" else document.first_of_type("chapter")
    if chapter is None:
        return None
    code = str(chapter.attr("goods_nomenclature_item_id", chapter.id))[:2]
    return BreadcrumbEntry(code=code, description=_description(chapter), level="chapter")


def heading_entry(document: JsonApiDocument) -> BreadcrumbEntry | None:
    heading = document.data if document.data.type == "heading" else document.first_of_type("heading")
    if heading is None:
        return None
    code = str(heading.attr("goods_nomenclature_item_id", heading.id))[:4]
    return BreadcrumbEntry(code=code, description=_description(heading), level="heading")


class HierarchyService:
    """Reconstructs breadcrumbs and child groupings from the classification service."""

    def __init__(
        self,
        settings: Settings,
        client: ClassificationClient,
        cache: CacheStore,
        translator: CachingTranslator,
        lookup: TariffLookupService | None = None,
        chapter_cache: CacheStore | None = None,
    ):
        self.settings = settings
        self.client = client
        self.cache = cache
        self.chapter_cache = chapter_cache or cache
        self.translator = translator
        self.lookup = lookup

    async def resolve(self, hs_code: str, origin: str | None = None) -> HierarchyResult:
        digits = re.sub(r"\D", "", hs_code or "")[:10]
        if not digits:
            return HierarchyResult(code=hs_code or "", error="HS code must contain digits")

        cache_key = f"{digits}:{origin or ''}"
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        async with log_operation("hierarchy_resolve", code=digits, origin=origin) as op:
            try:
                if len(digits) <= 2:
                    result = await self._chapter_view(digits.zfill(2))
                elif len(digits) <= 4:
                    result = await self._heading_view(digits.ljust(4, "0"), origin)
                else:
                    result = await self._commodity_view(digits, origin)
            except TariffEngineError as e:
                logger.warning("Hierarchy lookup for %s failed: %s", digits, e)
                op.update(status="error", error=str(e))
                # Errors are reported, not cached
                return HierarchyResult(code=digits, error=str(e))

            await self._translate(result)
            op["children"] = result.total_children

        await self.cache.set(cache_key, result, self.settings.hierarchy_cache_ttl_seconds)
        return result

    async def _chapter_document(self, code: str) -> JsonApiDocument:
        key = f"chapter:{code}"
        cached = await self.chapter_cache.get(key)
        if cached is not None:
            return cached
        document = await self.client.get_chapter(code)
        await self.chapter_cache.set(key, document, self.settings.chapter_cache_ttl_seconds)
        return document

    async def _chapter_view(self, code: str) -> HierarchyResult:
        document = await self._chapter_document(code)
        section = section_entry(document)
        chapter = chapter_entry(document)

        children = []
        for resource in document.of_type("heading"):
            node = node_from_resource(resource)
            node.code = node.code[:4] or resource.id
            node.level = "heading"
            children.append(node)

        return HierarchyResult(
            code=code,
            description=chapter.description if chapter else "",
            level="chapter",
            section=section,
            breadcrumb=build_breadcrumb(section, chapter, None, [], None),
            children=children,
            total_children=len(children),
            declarable_count=sum(1 for c in children if c.declarable),
        )

    async def _heading_view(self, code: str, origin: str | None) -> HierarchyResult:
        document = await self.client.get_heading(code)
        section = section_entry(document)
        chapter = chapter_entry(document)
        heading = heading_entry(document)
        nodes = commodity_nodes(document)

        groups = group_by_subheading(nodes)
        children = [child for group in groups for child in group.children]
        limit = self.settings.hierarchy_rate_limit_heading
        await self._annotate_rates(children, origin, limit)

        heading_declarable = bool(document.data.attr("declarable", False)) and not children
        return HierarchyResult(
            code=code,
            description=heading.description if heading else "",
            level="heading",
            section=section,
            breadcrumb=build_breadcrumb(section, chapter, heading, [], None),
            children=children,
            child_groups=groups,
            total_children=len(children),
            declarable_count=len(children),
            is_declarable=heading_declarable,
            has_more=bool(origin) and len(children) > limit,
        )

    async def _commodity_view(self, digits: str, origin: str | None) -> HierarchyResult:
        code10 = digits.ljust(10, "0")
        commodity_doc, heading_doc = await asyncio.gather(
            self.client.get_commodity(code10, origin),
            self.client.get_heading(code10[:4]),
            return_exceptions=True,
        )
        if isinstance(heading_doc, BaseException):
            raise heading_doc
        if isinstance(commodity_doc, BaseException):
            if not isinstance(commodity_doc, ClassificationNotFoundError):
                raise commodity_doc
            # Classification-only codes have no commodity document
            commodity_doc = None

        nodes = commodity_nodes(heading_doc)
        index = find_target_index(nodes, code10)
        if index is None:
            if commodity_doc is None:
                raise ClassificationNotFoundError(digits, [code10, code10[:4]])
            nodes.append(node_from_resource(commodity_doc.data))
            index = len(nodes) - 1

        target = nodes[index]
        ancestors = find_ancestors(nodes, index)
        section = section_entry(heading_doc)
        chapter = chapter_entry(heading_doc)
        heading = heading_entry(heading_doc)
        target_entry = BreadcrumbEntry(
            code=target.code,
            description=target.description,
            level=target.level,
            indent=target.indent,
        )

        children: list[HsNode] = []
        groups: list[ChildGroup] = []
        if not target.declarable:
            positions = declarable_children(nodes, code10[:6], exclude=target.code)
            children = [nodes[p] for p in positions]
            groups = group_children(nodes, positions)

        limit = self.settings.hierarchy_rate_limit_subheading
        await self._annotate_rates(children, origin, limit)

        return HierarchyResult(
            code=target.code,
            description=target.description,
            level=target.level,
            section=section,
            breadcrumb=build_breadcrumb(section, chapter, heading, ancestors, target_entry),
            ancestors=ancestors,
            children=children,
            child_groups=groups,
            total_children=len(children),
            declarable_count=len(children) + (1 if target.declarable else 0),
            is_declarable=target.declarable,
            has_more=bool(origin) and len(children) > limit,
        )

    async def _annotate_rates(self, children: list[HsNode], origin: str | None, limit: int) -> None:
        """Attach origin rates to the first `limit` children; failures leave rates unset."""
        if not origin or self.lookup is None or not children:
            return

        async def fetch(node: HsNode):
            return await self.lookup.lookup(node.code, origin)

        outcomes = await bounded_gather(children[:limit], fetch, self.settings.hierarchy_rate_concurrency)
        failed = 0
        for node, outcome in zip(children, outcomes):
            if outcome.ok:
                node.rates = outcome.value
            else:
                failed += 1
        if failed:
            logger.info("Rates unavailable for %d of %d children", failed, len(outcomes))

    async def _translate(self, result: HierarchyResult) -> None:
        nodes = result.ancestors + result.children
        texts = [result.description]
        texts.extend(entry.description for entry in result.breadcrumb)
        texts.extend(node.description for node in nodes)
        texts.extend(group.title for group in result.child_groups)
        if result.section:
            texts.append(result.section.description)

        translated = await self.translator.translate_many(texts)

        result.description_translated = translated.get(result.description)
        for entry in result.breadcrumb:
            entry.description_translated = translated.get(entry.description)
        if result.section:
            result.section.description_translated = translated.get(result.section.description)
        for node in nodes:
            node.description_translated = translated.get(node.description)
        for group in result.child_groups:
            group.title_translated = translated.get(group.title)
