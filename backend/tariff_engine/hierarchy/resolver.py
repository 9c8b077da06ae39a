"""Pure tree-reconstruction functions over flat commodity lists — no I/O.

The source list is not a tree: each entry's parent is the nearest earlier
classification-only entry one indent level up. Everything here works on
list positions and indents only.
"""

from dataclasses import dataclass, field

from tariff_engine.classification.nodes import HsNode

OTHER_GROUP_TITLE = "Other"


@dataclass
class BreadcrumbEntry:
    code: str
    description: str
    level: str
    indent: int | None = None
    description_translated: str | None = None


@dataclass
class ChildGroup:
    """Declarable children sharing one classification-only parent."""

    code: str | None
    title: str
    children: list[HsNode] = field(default_factory=list)
    title_translated: str | None = None


@dataclass
class HierarchyResult:
    code: str
    description: str = ""
    description_translated: str | None = None
    level: str = ""
    section: BreadcrumbEntry | None = None
    breadcrumb: list[BreadcrumbEntry] = field(default_factory=list)
    ancestors: list[HsNode] = field(default_factory=list)
    children: list[HsNode] = field(default_factory=list)
    child_groups: list[ChildGroup] = field(default_factory=list)
    total_children: int = 0
    declarable_count: int = 0
    is_declarable: bool = False
    has_more: bool = False
    error: str | None = None


def find_target_index(nodes: list[HsNode], code: str) -> int | None:
    """Position of `code`, preferring a declarable entry over a classification-only one."""
    fallback: int | None = None
    for index, node in enumerate(nodes):
        if node.code != code:
            continue
        if node.declarable:
            return index
        if fallback is None:
            fallback = index
    return fallback


def find_ancestors(nodes: list[HsNode], index: int) -> list[HsNode]:
    """Ancestors of nodes[index], outermost first.

    Scans backward once, accepting a classification-only entry whose indent
    equals the currently expected level, then expecting one level less.
    """
    expected = nodes[index].indent - 1
    found: list[HsNode] = []
    for position in range(index - 1, -1, -1):
        if expected < 0:
            break
        node = nodes[position]
        if node.indent == expected and not node.declarable:
            found.append(node)
            expected -= 1
    found.reverse()
    return found


def build_breadcrumb(
    section: BreadcrumbEntry | None,
    chapter: BreadcrumbEntry | None,
    heading: BreadcrumbEntry | None,
    ancestors: list[HsNode],
    target: BreadcrumbEntry | None,
) -> list[BreadcrumbEntry]:
    trail = [entry for entry in (section, chapter, heading) if entry is not None]
    seen = {entry.code for entry in trail}
    for node in ancestors:
        if node.code in seen:
            continue
        seen.add(node.code)
        trail.append(BreadcrumbEntry(
            code=node.code,
            description=node.description,
            level="subheading",
            indent=node.indent,
        ))
    if target is not None and target.code not in seen:
        trail.append(target)
    return trail


def declarable_children(nodes: list[HsNode], prefix: str, exclude: str | None = None) -> list[int]:
    """Positions of declarable entries under `prefix`, in source order."""
    return [
        index for index, node in enumerate(nodes)
        if node.declarable and node.code.startswith(prefix) and node.code != exclude
    ]


def group_children(nodes: list[HsNode], positions: list[int]) -> list[ChildGroup]:
    """Group children under their nearest preceding classification-only node.

    A candidate parent qualifies when its 8-digit stem is a prefix of the
    child's code; children with no such node land in the "Other" group.
    """
    groups: dict[str | None, ChildGroup] = {}
    for position in positions:
        child = nodes[position]
        parent = _nearest_group_node(nodes, position)
        key = parent.code if parent else None
        if key not in groups:
            groups[key] = ChildGroup(
                code=key,
                title=parent.description if parent else OTHER_GROUP_TITLE,
            )
        groups[key].children.append(child)
    return list(groups.values())


def _nearest_group_node(nodes: list[HsNode], position: int) -> HsNode | None:
    child_code = nodes[position].code
    for index in range(position - 1, -1, -1):
        node = nodes[index]
        if not node.declarable and child_code.startswith(node.code[:8]):
            return node
    return None


def group_by_subheading(nodes: list[HsNode]) -> list[ChildGroup]:
    """Heading view: declarable entries grouped by 6-digit subheading."""
    groups: dict[str, ChildGroup] = {}
    for node in nodes:
        if not node.declarable:
            continue
        prefix = node.code[:6]
        if prefix not in groups:
            title_node = next(
                (n for n in nodes if not n.declarable and n.code.startswith(prefix)),
                None,
            )
            groups[prefix] = ChildGroup(
                code=prefix,
                title=title_node.description if title_node else f"Subheading {prefix}",
            )
        groups[prefix].children.append(node)
    return list(groups.values())
