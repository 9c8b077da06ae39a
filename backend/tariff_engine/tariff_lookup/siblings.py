"""Sibling selection when a code is absent from the classification service.

The ranking is a heuristic, kept as an ordered list of rules so callers can
swap or reorder them. Candidates are compared rule by rule in order, then
lexically by code.
"""

from collections.abc import Callable
from dataclasses import dataclass

from tariff_engine.classification.nodes import HsNode

SiblingRule = Callable[[HsNode, str], bool]


def significant_code(code: str) -> str:
    """Drop trailing '00' pairs beyond the 6-digit subheading."""
    while len(code) > 6 and code.endswith("00"):
        code = code[:-2]
    return code


def is_residual_code(node: HsNode, original_code: str) -> bool:
    """Codes ending in 90/99 are the 'other' bucket of their level."""
    return significant_code(node.code).endswith(("90", "99"))


def is_other_description(node: HsNode, original_code: str) -> bool:
    return node.description.strip().lower().startswith("other")


def shares_subheading(node: HsNode, original_code: str) -> bool:
    return node.code[:6] == original_code[:6]


DEFAULT_SIBLING_RULES: tuple[SiblingRule, ...] = (
    is_residual_code,
    is_other_description,
    shares_subheading,
)


@dataclass(frozen=True)
class SiblingPolicy:
    rules: tuple[SiblingRule, ...] = DEFAULT_SIBLING_RULES

    def rank(self, candidates: list[HsNode], original_code: str) -> list[HsNode]:
        def key(node: HsNode):
            satisfied = tuple(0 if rule(node, original_code) else 1 for rule in self.rules)
            return satisfied, node.code

        return sorted(candidates, key=key)

    def best(self, candidates: list[HsNode], original_code: str) -> HsNode | None:
        ranked = self.rank(candidates, original_code)
        return ranked[0] if ranked else None
