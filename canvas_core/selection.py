"""
Selection tracking for nodes and links.

At most one of the two selections is non-empty at any time: selecting a
link clears node selection and vice versa. A plain select replaces the
selection; a multi select toggles membership.
"""

from typing import Iterable, Optional

from .models import GraphData, GraphLink, GraphNode


class SelectionManager:
    """Holds the selected node ids or link ids, in selection order."""

    def __init__(self):
        # dicts used as ordered sets
        self._nodes: dict[str, None] = {}
        self._links: dict[str, None] = {}

    @property
    def node_ids(self) -> tuple[str, ...]:
        return tuple(self._nodes)

    @property
    def link_ids(self) -> tuple[str, ...]:
        return tuple(self._links)

    @property
    def is_empty(self) -> bool:
        return not self._nodes and not self._links

    def select_node(self, node_id: Optional[str], multi: bool = False) -> None:
        """
        Select a node.

        None without multi clears everything; None with multi does nothing.
        With multi the id is toggled, otherwise it becomes the only selection.
        Link selection is always cleared when a node id is given.
        """
        if node_id is None:
            if not multi:
                self.clear()
            return
        self._links.clear()
        if multi:
            if node_id in self._nodes:
                del self._nodes[node_id]
            else:
                self._nodes[node_id] = None
        else:
            self._nodes = {node_id: None}

    def select_link(self, link_id: Optional[str], multi: bool = False) -> None:
        """Select a link. Mirrors select_node."""
        if link_id is None:
            if not multi:
                self.clear()
            return
        self._nodes.clear()
        if multi:
            if link_id in self._links:
                del self._links[link_id]
            else:
                self._links[link_id] = None
        else:
            self._links = {link_id: None}

    def select_nodes(self, node_ids: Iterable[str]) -> None:
        """Replace the selection with a set of nodes."""
        self._links.clear()
        self._nodes = dict.fromkeys(node_ids)

    def clear(self) -> None:
        self._nodes.clear()
        self._links.clear()

    def prune(self, graph: GraphData) -> None:
        """Forget ids that no longer exist in graph."""
        node_ids = {n.id for n in graph.nodes}
        link_ids = {l.id for l in graph.links}
        self._nodes = {i: None for i in self._nodes if i in node_ids}
        self._links = {i: None for i in self._links if i in link_ids}

    def selected_nodes(self, graph: GraphData) -> list[GraphNode]:
        """Resolve selected node ids against graph, in selection order."""
        by_id = {n.id: n for n in graph.nodes}
        return [by_id[i] for i in self._nodes if i in by_id]

    def selected_links(self, graph: GraphData) -> list[GraphLink]:
        by_id = {l.id: l for l in graph.links}
        return [by_id[i] for i in self._links if i in by_id]

    def to_dict(self) -> dict:
        return {"nodes": list(self._nodes), "links": list(self._links)}
