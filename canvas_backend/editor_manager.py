"""
Editor Session - routes user gestures to the graph state components.

This module implements:
- One in-memory editing session (graph, selection, history, clipboard, layout)
- Pointer, keyboard and editing operations
- Structural vs cosmetic commits: only structural commits enter history
- The asynchronous schema generation request
- Change callbacks for real-time sync

Every mutation builds the complete next state first and only then swaps it
in, so a failed operation leaves the session untouched.
"""

import logging
from typing import Any, Callable, Iterable, Optional, Union

from canvas_core import store
from canvas_core.clipboard import ClipboardManager
from canvas_core.errors import GenerationBusyError, GraphEditorError, ServiceError
from canvas_core.history import DEFAULT_MAX_HISTORY, HistoryManager
from canvas_core.layout import DEFAULT_HEIGHT, DEFAULT_WIDTH, LayoutEngine
from canvas_core.models import (
    DEFAULT_LINK_LABEL,
    DEFAULT_NODE_LABEL,
    GraphData,
    GraphLink,
    GraphNode,
    NodeKind,
    NodeProperty,
    SimulationConfig,
)
from canvas_core.selection import SelectionManager
from canvas_core.validation import parse_graph_document
from canvas_backend.config import load_settings
from canvas_backend.generator import GenerationMode, SchemaGenerationService

logger = logging.getLogger(__name__)

_PROPERTY_FIELDS = {"key", "value", "type"}
_NODE_EDIT_FIELDS = {"label", "kind", "color"}
_LINK_EDIT_FIELDS = {"label", "kind"}


def sample_graph() -> GraphData:
    """Small starter schema shown when the editor opens."""
    return GraphData.from_json_dict({
        "nodes": [
            {"id": "1", "label": "User", "type": "node",
             "properties": [{"id": "p1", "key": "username", "value": "", "type": "string"}]},
            {"id": "2", "label": "Post", "type": "document",
             "properties": [{"id": "p2", "key": "content", "value": "", "type": "text"}]},
            {"id": "3", "label": "Comment", "type": "document", "properties": []},
        ],
        "links": [
            {"id": "l1", "source": "1", "target": "2", "label": "AUTHORED"},
            {"id": "l2", "source": "1", "target": "3", "label": "WROTE"},
            {"id": "l3", "source": "3", "target": "2", "label": "ON"},
        ],
    })


class EditorSession:
    """
    Owns the live graph and every component that reads or writes it.

    Structural operations (node/link count changes) are recorded in history
    and trigger a layout rebuild. Cosmetic operations (field edits) are not
    recorded and leave the simulation's motion alone.
    """

    def __init__(
        self,
        graph: Optional[GraphData] = None,
        generator: Optional[SchemaGenerationService] = None,
        config: Optional[SimulationConfig] = None,
        width: float = DEFAULT_WIDTH,
        height: float = DEFAULT_HEIGHT,
        max_history: int = DEFAULT_MAX_HISTORY,
        seed: Optional[int] = 0,
    ):
        self._graph = graph if graph is not None else GraphData()
        self._selection = SelectionManager()
        self._history = HistoryManager(self._graph, max_history=max_history)
        self._clipboard = ClipboardManager()
        self._layout = LayoutEngine(config, width, height, seed=seed)
        self._layout.sync(self._graph)
        self._generator = generator
        self._generating = False
        self._revision = 0
        self._on_change_callbacks: list[Callable] = []

    # --- Properties ---

    @property
    def graph(self) -> GraphData:
        """The canonical graph (seed positions, not live arena positions)."""
        return self._graph

    @property
    def selection(self) -> SelectionManager:
        return self._selection

    @property
    def history(self) -> HistoryManager:
        return self._history

    @property
    def clipboard(self) -> ClipboardManager:
        return self._clipboard

    @property
    def layout(self) -> LayoutEngine:
        return self._layout

    @property
    def is_generating(self) -> bool:
        """True while a schema generation request is pending."""
        return self._generating

    @property
    def revision(self) -> int:
        """Incremented on every committed change."""
        return self._revision

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    def set_generator(self, generator: Optional[SchemaGenerationService]) -> None:
        self._generator = generator

    # --- Change Callbacks ---

    def on_change(self, callback: Callable):
        """Register a callback for graph changes."""
        self._on_change_callbacks.append(callback)

    def _notify_change(self):
        for callback in self._on_change_callbacks:
            callback()

    # --- Commit paths ---

    def _captured(self) -> GraphData:
        """Live graph with the arena's current positions and pins written in."""
        return self._layout.apply_positions(self._graph, include_pins=True)

    def _commit_structural(self, new_graph: GraphData, action: str) -> GraphData:
        self._graph = new_graph
        self._history.record(new_graph)
        self._selection.prune(new_graph)
        self._layout.sync(new_graph)
        self._revision += 1
        logger.info(f"{action}: {len(new_graph.nodes)} nodes, {len(new_graph.links)} links")
        self._notify_change()
        return new_graph

    def _commit_cosmetic(self, new_graph: GraphData) -> GraphData:
        if store.classify(self._graph, new_graph) is None:
            return self._graph
        self._graph = new_graph
        self._layout.sync(new_graph)
        self._revision += 1
        logger.debug("Cosmetic update applied")
        self._notify_change()
        return new_graph

    # --- Pointer surface ---

    def click_node(self, node_id: str, multi: bool = False, link_modifier: bool = False) -> Optional[GraphLink]:
        """
        Node click.

        With the link modifier held and exactly one other node selected, a
        link from that node to the clicked one is created and returned.
        Otherwise the node is selected (toggled when multi).
        """
        selected = self._selection.node_ids
        if link_modifier and len(selected) == 1 and selected[0] != node_id:
            return self.create_link(selected[0], node_id)
        if self._graph.get_node(node_id) is None:
            return None
        self._selection.select_node(node_id, multi=multi)
        self._notify_change()
        return None

    def click_link(self, link_id: str, multi: bool = False) -> bool:
        if self._graph.get_link(link_id) is None:
            return False
        self._selection.select_link(link_id, multi=multi)
        self._notify_change()
        return True

    def click_background(self) -> None:
        self._selection.clear()
        self._notify_change()

    def drag_start(self, node_id: str, link_modifier: bool = False) -> bool:
        """
        Pin the node for dragging.

        The node becomes the selection unless the link modifier is held or it
        is already part of the selection.
        """
        if self._graph.get_node(node_id) is None:
            return False
        if not link_modifier and node_id not in self._selection.node_ids:
            self._selection.select_node(node_id)
            self._notify_change()
        return self._layout.drag_start(node_id)

    def drag_move(self, node_id: str, x: float, y: float) -> bool:
        return self._layout.drag_move(node_id, x, y)

    def drag_end(self, node_id: str) -> bool:
        return self._layout.drag_end(node_id)

    def drop_node(self, kind: Union[NodeKind, str] = NodeKind.GENERIC, x: float = 0, y: float = 0) -> GraphNode:
        """Palette drop: a new default node at the drop coordinates."""
        node = GraphNode(label=DEFAULT_NODE_LABEL, kind=NodeKind(kind), x=x, y=y)
        self._commit_structural(store.add_node(self._captured(), node), "Node added")
        return node

    # --- Keyboard surface ---

    def key_press(self, key: str, ctrl: bool = False, shift: bool = False, text_focus: bool = False) -> Optional[str]:
        """
        Handle a global shortcut.

        Returns the name of the action taken, or None if the key was ignored.
        Nothing happens while a text field has focus.
        """
        if text_focus:
            return None
        name = key.lower() if len(key) == 1 else key

        if ctrl and name == "z":
            action = "redo" if shift else "undo"
        elif ctrl and name == "y":
            action = "redo"
        elif ctrl and name == "c":
            action = "copy"
        elif ctrl and name == "v":
            action = "paste"
        elif name in ("Delete", "Backspace"):
            action = "delete"
        else:
            return None

        if action == "undo":
            self.undo()
        elif action == "redo":
            self.redo()
        elif action == "copy":
            self.copy()
        elif action == "paste":
            self.paste()
        else:
            self.delete_selection()
        return action

    # --- Editing surface (cosmetic) ---

    def update_node(self, node_id: str, **fields) -> Optional[GraphNode]:
        """Update label/kind/color. None-valued fields are left unchanged."""
        if self._graph.get_node(node_id) is None:
            return None
        changes = {k: v for k, v in fields.items() if v is not None and k in _NODE_EDIT_FIELDS}
        self._commit_cosmetic(store.update_nodes(self._graph, {node_id: changes}))
        return self._graph.get_node(node_id)

    def update_link(self, link_id: str, **fields) -> Optional[GraphLink]:
        if self._graph.get_link(link_id) is None:
            return None
        changes = {k: v for k, v in fields.items() if v is not None and k in _LINK_EDIT_FIELDS}
        self._commit_cosmetic(store.update_links(self._graph, {link_id: changes}))
        return self._graph.get_link(link_id)

    def _replace_properties(self, node: GraphNode, properties: Iterable[NodeProperty]) -> GraphNode:
        self._commit_cosmetic(store.update_nodes(self._graph, {node.id: {"properties": tuple(properties)}}))
        return self._graph.get_node(node.id)

    def add_property(self, node_id: str) -> Optional[NodeProperty]:
        """Append a default property to a node."""
        node = self._graph.get_node(node_id)
        if node is None:
            return None
        prop = NodeProperty()
        self._replace_properties(node, node.properties + (prop,))
        return prop

    def update_property(self, node_id: str, prop_id: str, field: str, value: Any) -> Optional[NodeProperty]:
        """Set one of key/value/type on a property."""
        if field not in _PROPERTY_FIELDS:
            raise ValueError(f"Unknown property field: {field}")
        node = self._graph.get_node(node_id)
        if node is None or node.property_index(prop_id) < 0:
            return None
        properties = tuple(
            p.model_validate({**p.model_dump(), field: value}) if p.id == prop_id else p
            for p in node.properties
        )
        node = self._replace_properties(node, properties)
        return node.properties[node.property_index(prop_id)]

    def delete_property(self, node_id: str, prop_id: str) -> bool:
        node = self._graph.get_node(node_id)
        if node is None or node.property_index(prop_id) < 0:
            return False
        self._replace_properties(node, (p for p in node.properties if p.id != prop_id))
        return True

    # --- Structural surface ---

    def create_link(self, source_id: str, target_id: str, label: str = DEFAULT_LINK_LABEL) -> GraphLink:
        """Add a link between two existing nodes."""
        link = GraphLink(source_id=source_id, target_id=target_id, label=label)
        try:
            new_graph = store.add_link(self._captured(), link)
        except GraphEditorError as e:
            logger.warning(f"Link rejected: {e}")
            raise
        self._commit_structural(new_graph, "Link added")
        return link

    def delete_nodes(self, ids: Iterable[str]) -> int:
        """Delete nodes (and their links). Returns the number of nodes removed."""
        ids = set(ids)
        current = self._captured()
        new_graph = store.delete_nodes(current, ids)
        removed = len(current.nodes) - len(new_graph.nodes)
        if removed:
            self._commit_structural(new_graph, f"Deleted {removed} node(s)")
        return removed

    def delete_links(self, ids: Iterable[str]) -> int:
        current = self._captured()
        new_graph = store.delete_links(current, ids)
        removed = len(current.links) - len(new_graph.links)
        if removed:
            self._commit_structural(new_graph, f"Deleted {removed} link(s)")
        return removed

    def delete_selection(self) -> int:
        """Delete whatever is selected. Returns the number of entities removed."""
        if self._selection.node_ids:
            removed = self.delete_nodes(self._selection.node_ids)
        elif self._selection.link_ids:
            removed = self.delete_links(self._selection.link_ids)
        else:
            return 0
        self._selection.clear()
        self._notify_change()
        return removed

    def copy(self) -> int:
        """Copy selected nodes (at their current positions) to the clipboard."""
        nodes = self._selection.selected_nodes(self._captured())
        if not nodes:
            return 0
        return self._clipboard.copy(nodes)

    def paste(self) -> list[str]:
        """Paste the clipboard. New nodes become the selection."""
        result = self._clipboard.paste(self._captured())
        if result is None:
            return []
        self._commit_structural(
            result.graph,
            f"Pasted {len(result.node_ids)} node(s), {len(result.link_ids)} link(s)",
        )
        self._selection.select_nodes(result.node_ids)
        self._notify_change()
        return result.node_ids

    def import_document(self, document) -> GraphData:
        """
        Replace the graph with an imported document.

        Raises FormatError and leaves the session unchanged if the document
        is malformed.
        """
        try:
            graph = parse_graph_document(document)
        except GraphEditorError as e:
            logger.warning(f"Import rejected: {e}")
            raise
        self._selection.clear()
        return self._commit_structural(graph, "Imported graph")

    def export_document(self) -> dict:
        """Export the graph with current layout positions."""
        return self._layout.apply_positions(self._graph).to_export_dict()

    def apply_generated(self, generated: GraphData, mode: Union[GenerationMode, str] = GenerationMode.MERGE) -> GraphData:
        """Integrate a generation result against the graph as it is now."""
        mode = GenerationMode(mode)
        if mode == GenerationMode.MERGE:
            new_graph = store.merge_generated(self._captured(), generated)
        else:
            new_graph = generated
        self._selection.clear()
        return self._commit_structural(new_graph, f"Applied generated schema ({mode.value})")

    async def generate(self, prompt: str, mode: Union[GenerationMode, str] = GenerationMode.MERGE) -> GraphData:
        """
        Request a schema from the generation service and apply it.

        Only one request may be pending at a time. Local edits stay possible
        while it runs; the result is applied to whatever the graph is when
        the response arrives.
        """
        if self._generating:
            raise GenerationBusyError()
        if self._generator is None:
            raise ServiceError("No schema generation service configured")

        mode = GenerationMode(mode)
        existing = self._captured() if mode == GenerationMode.MERGE else None
        self._generating = True
        self._notify_change()
        try:
            generated = await self._generator.generate(prompt, existing, mode)
        except GraphEditorError as e:
            logger.warning(f"Schema generation failed: {e}")
            raise
        finally:
            self._generating = False
            self._notify_change()
        return self.apply_generated(generated, mode)

    # --- History ---

    def _restore(self, snapshot: Optional[GraphData], action: str) -> Optional[GraphData]:
        if snapshot is None:
            return None
        self._graph = snapshot
        self._selection.clear()
        self._layout.sync(snapshot)
        self._revision += 1
        logger.info(f"{action}: history cursor at {self._history.cursor}")
        self._notify_change()
        return snapshot

    def undo(self) -> Optional[GraphData]:
        """Restore the previous snapshot. Returns None if there is nothing to undo."""
        return self._restore(self._history.undo(), "Undo")

    def redo(self) -> Optional[GraphData]:
        return self._restore(self._history.redo(), "Redo")

    # --- Layout ---

    def set_config(self, **fields) -> SimulationConfig:
        """Change simulation settings. None-valued fields are left unchanged."""
        changes = {k: v for k, v in fields.items() if v is not None}
        config = SimulationConfig.model_validate({**self._layout.config.model_dump(), **changes})
        if config != self._layout.config:
            self._layout.update_config(config)
            self._notify_change()
        return config

    def resize(self, width: float, height: float) -> bool:
        return self._layout.resize(width, height)

    def tick(self, iterations: int = 1) -> bool:
        return self._layout.tick(iterations)

    def unpin(self, node_id: str) -> bool:
        return self._layout.unpin(node_id)

    def positions(self) -> list[dict]:
        return [b.to_dict() for b in self._layout.bodies()]

    # --- State ---

    def get_state(self) -> dict:
        """Get the full current state for API responses."""
        width, height = self._layout.dimensions
        return {
            "graph": self.export_document(),
            "selection": self._selection.to_dict(),
            "can_undo": self.can_undo,
            "can_redo": self.can_redo,
            "clipboard_size": len(self._clipboard.nodes),
            "is_generating": self._generating,
            "revision": self._revision,
            "config": self._layout.config.model_dump(mode="json"),
            "dimensions": {"width": width, "height": height},
        }


# Global instance for the application
editor_session = EditorSession(graph=sample_graph(), max_history=load_settings().history_limit)
