"""
Clipboard - copy a node subset and paste a topologically consistent duplicate.

Links are never copied. At paste time they are re-derived from the current
graph: a link with both endpoints in the copied set is duplicated with both
ends remapped (an internal edge), a link with exactly one endpoint in the set
is duplicated with only that end remapped, so the copy keeps its
relationship to the un-copied neighbour (an external edge).
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from .models import (
    COPY_SUFFIX,
    GraphData,
    GraphLink,
    GraphNode,
    generate_link_id,
    generate_node_id,
    generate_property_id,
)

logger = logging.getLogger(__name__)

PASTE_OFFSET = (40.0, 40.0)


@dataclass
class PasteResult:
    """Outcome of a paste: the new graph and the ids it introduced."""
    graph: GraphData
    node_ids: list[str]
    link_ids: list[str]


def _shift(value: Optional[float], delta: float) -> Optional[float]:
    return None if value is None else value + delta


def clone_node(node: GraphNode, new_id: str, offset: tuple[float, float]) -> GraphNode:
    """Duplicate a node under a new id, shifted by offset and labelled as a copy."""
    dx, dy = offset
    properties = tuple(p.model_copy(update={"id": generate_property_id()}) for p in node.properties)
    return node.model_copy(update={
        "id": new_id,
        "label": f"{node.label}{COPY_SUFFIX}",
        "properties": properties,
        "x": _shift(node.x, dx),
        "y": _shift(node.y, dy),
        "fx": _shift(node.fx, dx),
        "fy": _shift(node.fy, dy),
        "vx": None,
        "vy": None,
    })


def paste_nodes(
    clipboard_nodes: Iterable[GraphNode],
    graph: GraphData,
    offset: tuple[float, float] = PASTE_OFFSET,
    node_id_factory: Callable[[], str] = generate_node_id,
    link_id_factory: Callable[[], str] = generate_link_id,
) -> PasteResult:
    """
    Append duplicates of clipboard_nodes to graph.

    Every link in graph touching the copied set is duplicated with its
    copied endpoint(s) remapped. Links touching none of the copied nodes are
    left alone.
    """
    existing_ids = {n.id for n in graph.nodes}
    mapping: dict[str, str] = {}
    new_nodes: list[GraphNode] = []

    for node in clipboard_nodes:
        new_id = node_id_factory()
        while new_id in existing_ids or new_id in mapping.values():
            new_id = node_id_factory()
        mapping[node.id] = new_id
        new_nodes.append(clone_node(node, new_id, offset))

    existing_link_ids = {l.id for l in graph.links}
    new_links: list[GraphLink] = []
    for link in graph.links:
        if not link.touches(mapping):
            continue
        new_id = link_id_factory()
        while new_id in existing_link_ids:
            new_id = link_id_factory()
        existing_link_ids.add(new_id)
        new_links.append(link.model_copy(update={
            "id": new_id,
            "source_id": mapping.get(link.source_id, link.source_id),
            "target_id": mapping.get(link.target_id, link.target_id),
        }))

    result = GraphData(nodes=graph.nodes + tuple(new_nodes), links=graph.links + tuple(new_links))
    return PasteResult(
        graph=result,
        node_ids=[n.id for n in new_nodes],
        link_ids=[l.id for l in new_links],
    )


class ClipboardManager:
    """Holds a private copy of the last copied node set."""

    def __init__(self, offset: tuple[float, float] = PASTE_OFFSET):
        self._nodes: tuple[GraphNode, ...] = ()
        self._offset = offset

    @property
    def is_empty(self) -> bool:
        return not self._nodes

    @property
    def nodes(self) -> tuple[GraphNode, ...]:
        return tuple(n.model_copy(deep=True) for n in self._nodes)

    def copy(self, nodes: Iterable[GraphNode]) -> int:
        """Store a deep copy of nodes. Returns the number copied."""
        self._nodes = tuple(n.model_copy(deep=True) for n in nodes)
        logger.debug(f"Copied {len(self._nodes)} nodes to clipboard")
        return len(self._nodes)

    def clear(self) -> None:
        self._nodes = ()

    def paste(self, graph: GraphData) -> Optional[PasteResult]:
        """Paste the clipboard into graph. Returns None if the clipboard is empty."""
        if not self._nodes:
            return None
        return paste_nodes(self._nodes, graph, offset=self._offset)
