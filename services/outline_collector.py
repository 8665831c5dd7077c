from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import FrozenSet, List, Optional, Tuple

from harvester.core.logging import get_logger
from harvester.models.outline import Outline
from services.errors import OpmlParseError

logger = get_logger()

FEED_OUTLINE_TYPES: FrozenSet[str] = frozenset({"rss", "atom"})
DEFAULT_MAX_NODES = 10_000
DEFAULT_MAX_DEPTH = 64


def _attr(element: ET.Element, name: str) -> Optional[str]:
    # OPML producers disagree on attribute case (xmlUrl / xmlurl).
    value = element.attrib.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in element.attrib.items():
            if key.lower() == lowered:
                value = candidate
                break
    if value is None:
        return None
    value = value.strip()
    return value or None


def _to_outline(element: ET.Element, depth: int, max_depth: int) -> Outline:
    children: List[Outline] = []
    if depth < max_depth:
        children = [
            _to_outline(child, depth + 1, max_depth)
            for child in element
            if child.tag == "outline"
        ]
    elif len(element):
        logger.warning("opml_depth_cap_reached", depth=depth, text=_attr(element, "text"))
    return Outline(
        text=_attr(element, "text"),
        title=_attr(element, "title"),
        html_url=_attr(element, "htmlUrl"),
        xml_url=_attr(element, "xmlUrl"),
        type=_attr(element, "type"),
        children=children,
    )


def parse_opml(text: str, *, max_depth: int = DEFAULT_MAX_DEPTH) -> Outline:
    """
    Parse an OPML document into an outline tree. The returned root is a
    grouping node whose children are the outlines of ``<body>``.
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise OpmlParseError(f"invalid OPML: {exc}") from exc

    body = root.find("body")
    if body is None:
        raise OpmlParseError("OPML document has no <body>")

    head_title = root.findtext("head/title")
    return Outline(
        text=head_title.strip() if head_title else None,
        children=[_to_outline(child, 1, max_depth) for child in body if child.tag == "outline"],
    )


def is_feed_outline(outline: Outline) -> bool:
    return (outline.type or "").strip().lower() in FEED_OUTLINE_TYPES


def collect_feed_outlines(
    tree: Outline,
    *,
    max_nodes: int = DEFAULT_MAX_NODES,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> List[Outline]:
    """
    Depth-first, document-order flattening of ``tree`` into its feed-type
    outlines. Grouping nodes are descended into but never emitted. Traversal
    stops at ``max_nodes`` visited nodes and does not descend below
    ``max_depth``.
    """
    collected: List[Outline] = []
    stack: List[Tuple[Outline, int]] = [(tree, 0)]
    visited = 0
    while stack:
        node, depth = stack.pop()
        visited += 1
        if visited > max_nodes:
            logger.warning("outline_node_cap_reached", max_nodes=max_nodes, collected=len(collected))
            break
        if is_feed_outline(node):
            collected.append(node)
        if not node.children:
            continue
        if depth >= max_depth:
            logger.warning("outline_depth_cap_reached", max_depth=max_depth, text=node.label)
            continue
        # reversed so the leftmost child is popped first
        for child in reversed(node.children):
            stack.append((child, depth + 1))
    return collected
