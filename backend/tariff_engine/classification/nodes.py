"""Flat commodity nodes as returned inside heading documents."""

from dataclasses import dataclass

from tariff_engine.classification.documents import JsonApiDocument, Resource, strip_html
from tariff_engine.tariff_lookup.rates import RateLookupResult


@dataclass
class HsNode:
    """One entry of the source's flat, indent-encoded commodity list."""

    code: str
    description: str
    level: str
    indent: int
    declarable: bool
    description_translated: str | None = None
    # Origin-specific rates, when they were fetched for this node
    rates: RateLookupResult | None = None


def node_from_resource(resource: Resource) -> HsNode:
    declarable = bool(resource.attr("declarable", resource.attr("leaf", False)))
    return HsNode(
        code=str(resource.attr("goods_nomenclature_item_id", "")),
        description=strip_html(resource.attr("description") or resource.attr("formatted_description")),
        level="commodity" if declarable else "subheading",
        indent=int(resource.attr("number_indents", 0)),
        declarable=declarable,
    )


def commodity_nodes(document: JsonApiDocument) -> list[HsNode]:
    """Commodities in source order; order and indent encode the tree."""
    return [node_from_resource(r) for r in document.of_type("commodity")]
