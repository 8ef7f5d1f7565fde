"""
GraphStore - pure transforms over GraphData.

Every function takes a GraphData and returns a new one; the input is never
modified. Operations that change node or link count are structural (they
get an undo entry); operations that only change field values are cosmetic.
"""

import logging
from typing import Iterable, Mapping, Optional, Sequence, Union

from .errors import DanglingLinkError, DuplicateIdError
from .models import GraphData, GraphLink, GraphNode

logger = logging.getLogger(__name__)

STRUCTURAL = "structural"
COSMETIC = "cosmetic"

# Identity fields that an update batch may not rewrite
_NODE_IMMUTABLE = {"id"}
_LINK_IMMUTABLE = {"id", "source_id", "target_id"}

UpdateBatch = Union[Mapping[str, Mapping], Sequence[GraphNode], Sequence[GraphLink]]


def node_index(graph: GraphData) -> dict[str, GraphNode]:
    """Map node id -> node."""
    return {n.id: n for n in graph.nodes}


def find_node(graph: GraphData, node_id: str) -> Optional[GraphNode]:
    return graph.get_node(node_id)


def find_link(graph: GraphData, link_id: str) -> Optional[GraphLink]:
    return graph.get_link(link_id)


def add_node(graph: GraphData, node: GraphNode) -> GraphData:
    """Append a node. Raises DuplicateIdError if the id is taken."""
    if any(n.id == node.id for n in graph.nodes):
        raise DuplicateIdError("node", node.id)
    return graph.model_copy(update={"nodes": graph.nodes + (node,)})


def add_link(graph: GraphData, link: GraphLink) -> GraphData:
    """
    Append a link.

    Raises DuplicateIdError if the id is taken and DanglingLinkError if an
    endpoint does not exist.
    """
    if any(l.id == link.id for l in graph.links):
        raise DuplicateIdError("link", link.id)
    ids = {n.id for n in graph.nodes}
    for endpoint in (link.source_id, link.target_id):
        if endpoint not in ids:
            raise DanglingLinkError(link.id, endpoint)
    return graph.model_copy(update={"links": graph.links + (link,)})


def _normalize_batch(batch: UpdateBatch, immutable: set[str]) -> dict[str, dict]:
    updates: dict[str, dict] = {}
    if isinstance(batch, Mapping):
        items = batch.items()
    else:
        items = ((entity.id, entity.model_dump(exclude=immutable)) for entity in batch)
    for entity_id, fields in items:
        updates[entity_id] = {k: v for k, v in fields.items() if k not in immutable}
    return updates


def _apply_updates(entities, updates: dict[str, dict]):
    result = []
    for entity in entities:
        fields = updates.get(entity.id)
        if fields:
            # Round-trip through validation so enum/tuple coercion still applies
            entity = type(entity).model_validate({**entity.model_dump(), **fields})
        result.append(entity)
    return tuple(result)


def update_nodes(graph: GraphData, batch: UpdateBatch) -> GraphData:
    """
    Replace fields of nodes whose ids appear in batch.

    batch is either {node_id: {field: value}} or a sequence of whole nodes.
    Ids that are not in the graph are ignored.
    """
    updates = _normalize_batch(batch, _NODE_IMMUTABLE)
    return graph.model_copy(update={"nodes": _apply_updates(graph.nodes, updates)})


def update_links(graph: GraphData, batch: UpdateBatch) -> GraphData:
    """Replace fields of links whose ids appear in batch. Endpoints are fixed."""
    updates = _normalize_batch(batch, _LINK_IMMUTABLE)
    return graph.model_copy(update={"links": _apply_updates(graph.links, updates)})


def delete_nodes(graph: GraphData, ids: Iterable[str]) -> GraphData:
    """Remove nodes and every link touching them, in one transform."""
    doomed = set(ids)
    return GraphData(
        nodes=tuple(n for n in graph.nodes if n.id not in doomed),
        links=tuple(l for l in graph.links if not l.touches(doomed)),
    )


def delete_links(graph: GraphData, ids: Iterable[str]) -> GraphData:
    """Remove matching links only."""
    doomed = set(ids)
    return graph.model_copy(update={"links": tuple(l for l in graph.links if l.id not in doomed)})


def classify(before: GraphData, after: GraphData) -> Optional[str]:
    """
    Classify the change between two states.

    Returns STRUCTURAL if node or link count differs, COSMETIC if only field
    values differ, None if the states are equal.
    """
    if len(before.nodes) != len(after.nodes) or len(before.links) != len(after.links):
        return STRUCTURAL
    if before != after:
        return COSMETIC
    return None


def merge_generated(current: GraphData, generated: GraphData) -> GraphData:
    """
    Integrate a merge-mode generation result.

    The result is the generated graph, except that any node whose id matches
    an existing node keeps the existing position (and pin, if any).
    """
    existing = node_index(current)
    merged = []
    for node in generated.nodes:
        old = existing.get(node.id)
        if old is not None:
            node = node.model_copy(update={"x": old.x, "y": old.y, "fx": old.fx, "fy": old.fy})
        merged.append(node)
    return GraphData(nodes=tuple(merged), links=generated.links)


def project_for_context(graph: GraphData) -> dict:
    """Simplified graph for the generation service: no physical fields."""
    return {
        "nodes": [
            {
                "id": n.id,
                "label": n.label,
                "type": n.kind.value,
                "properties": [p.model_dump() for p in n.properties],
            }
            for n in graph.nodes
        ],
        "links": [
            {"id": l.id, "source": l.source_id, "target": l.target_id, "label": l.label}
            for l in graph.links
        ],
    }


def drop_dangling_links(graph: GraphData) -> GraphData:
    """Remove links whose endpoints are missing, logging each one."""
    ids = {n.id for n in graph.nodes}
    kept = []
    for link in graph.links:
        if link.source_id in ids and link.target_id in ids:
            kept.append(link)
        else:
            logger.warning(f"Dropping link {link.id}: endpoint missing ({link.source_id} -> {link.target_id})")
    if len(kept) == len(graph.links):
        return graph
    return graph.model_copy(update={"links": tuple(kept)})
