"""
Core data models for schema graphs.

These models define the canonical schema for the editor:
- Nodes with a kind, an ordered property list and optional physics fields
- Links connecting nodes by id (never by object reference)
- Simulation settings for the layout engine

All entities are frozen and hold tuples instead of lists, so a mutation
always means building a new object. Snapshots, selections and clipboard
contents can therefore never alias the live graph.

Field Naming Convention:
- Python attributes use snake_case (`source_id`, `target_id`)
- Export JSON uses `sourceId` / `targetId`
- For backward compatibility, `source`/`target` and a node `type` field are
  accepted on input and converted
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
import uuid


class NodeKind(str, Enum):
    """Semantic kinds a node can have (drives its shape on the canvas)."""
    GENERIC = "generic"
    TABLE = "table"
    DOCUMENT = "document"


class GroupingMode(str, Enum):
    """Layout strategy governing auxiliary forces."""
    FORCE = "force"
    GRID = "grid"
    CIRCLE = "circle"  # Declared but has no dedicated force yet


DEFAULT_NODE_LABEL = "New Node"
DEFAULT_LINK_LABEL = "RELATED_TO"
COPY_SUFFIX = " (Copy)"


def generate_node_id() -> str:
    """Generate a unique node ID."""
    return f"n{uuid.uuid4().hex[:8]}"


def generate_link_id() -> str:
    """Generate a unique link ID."""
    return f"l{uuid.uuid4().hex[:8]}"


def generate_property_id() -> str:
    """Generate a unique property ID."""
    return f"p{uuid.uuid4().hex[:8]}"


def _endpoint_id(value: Any) -> Any:
    # Resolved endpoints ({"id": ...}) collapse back to plain ids
    if isinstance(value, dict):
        return value.get("id")
    return value


class NodeProperty(BaseModel):
    """A free-form schema field on a node."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_property_id)
    key: str = "new_prop"
    value: str = ""
    type: str = "string"

    @field_validator("key", "value", "type", mode="before")
    @classmethod
    def coerce_scalars(cls, value: Any) -> Any:
        """Generated payloads sometimes carry numbers or booleans here."""
        if value is None:
            return ""
        if isinstance(value, (int, float, bool)):
            return str(value)
        return value


class GraphNode(BaseModel):
    """
    A node in the graph.

    `x`/`y` hold the seed position (drop, paste or import coordinates, or the
    last captured layout position). `vx`, `vy`, `fx` and `fy` are only
    meaningful while the node lives in the layout engine's arena.
    """
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    id: str = Field(default_factory=generate_node_id)
    label: str = DEFAULT_NODE_LABEL
    kind: NodeKind = NodeKind.GENERIC
    properties: tuple[NodeProperty, ...] = ()
    color: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    vx: Optional[float] = None
    vy: Optional[float] = None
    fx: Optional[float] = None
    fy: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert legacy 'type' field and 'node' kind to the current names."""
        if isinstance(data, dict):
            data = dict(data)
            if "type" in data and "kind" not in data:
                data["kind"] = data.pop("type")
            if data.get("kind") == "node":
                data["kind"] = NodeKind.GENERIC.value
            if data.get("properties") is None:
                data.pop("properties", None)
        return data

    def property_index(self, prop_id: str) -> int:
        """Position of a property in display order, or -1."""
        for i, prop in enumerate(self.properties):
            if prop.id == prop_id:
                return i
        return -1

    def to_export_dict(self) -> dict:
        """Export shape: physics velocity and pin fields are dropped."""
        return {
            "id": self.id,
            "label": self.label,
            "kind": self.kind.value,
            "properties": [p.model_dump() for p in self.properties],
            "x": self.x,
            "y": self.y,
        }


class GraphLink(BaseModel):
    """
    A directed link between two node ids.

    Endpoints are stored as plain ids. Accepts `sourceId`/`targetId` and the
    legacy `source`/`target` names on input.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_link_id)
    source_id: str
    target_id: str
    label: str = DEFAULT_LINK_LABEL
    kind: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert camelCase and legacy endpoint names to source_id/target_id."""
        if isinstance(data, dict):
            data = dict(data)
            for legacy, canonical in (
                ("sourceId", "source_id"),
                ("source", "source_id"),
                ("targetId", "target_id"),
                ("target", "target_id"),
            ):
                if legacy in data and canonical not in data:
                    data[canonical] = _endpoint_id(data.pop(legacy))
            if "type" in data and "kind" not in data:
                data["kind"] = data.pop("type")
        return data

    def touches(self, node_ids) -> bool:
        """True if either endpoint is in node_ids."""
        return self.source_id in node_ids or self.target_id in node_ids

    def to_export_dict(self) -> dict:
        """Convert to the export JSON shape."""
        return {
            "id": self.id,
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "label": self.label,
        }


class GraphData(BaseModel):
    """
    The complete graph.
    This is what gets exported, imported and snapshotted into history.
    """
    model_config = ConfigDict(frozen=True)

    nodes: tuple[GraphNode, ...] = ()
    links: tuple[GraphLink, ...] = ()

    def to_export_dict(self) -> dict:
        """Convert to the JSON-serializable export document."""
        return {
            "nodes": [n.to_export_dict() for n in self.nodes],
            "links": [l.to_export_dict() for l in self.links],
        }

    @classmethod
    def from_json_dict(cls, data: dict) -> "GraphData":
        """Create GraphData from a JSON dict (handles legacy field names)."""
        nodes = tuple(GraphNode(**n) for n in data.get("nodes") or [])
        links = tuple(GraphLink(**l) for l in data.get("links") or [])
        return cls(nodes=nodes, links=links)

    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        """Get a node by ID (O(n))."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_link(self, link_id: str) -> Optional[GraphLink]:
        """Get a link by ID (O(n))."""
        for link in self.links:
            if link.id == link_id:
                return link
        return None


class SimulationConfig(BaseModel):
    """Tunable parameters of the force simulation."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    strength: float = 1.0   # Scales grid correction
    distance: float = 150   # Link rest length
    gravity: float = 0.1
    charge: float = -400    # Negative = repulsion
    grouping: GroupingMode = GroupingMode.FORCE


# --- API Request/Response Models ---

class DropNodeRequest(BaseModel):
    """Request to create a node from a palette drop."""
    model_config = ConfigDict(allow_inf_nan=False)

    kind: NodeKind = NodeKind.GENERIC
    x: float = 0
    y: float = 0


class UpdateNodeRequest(BaseModel):
    """Request to update an existing node (partial, cosmetic update)."""
    label: Optional[str] = None
    kind: Optional[NodeKind] = None
    color: Optional[str] = None


class UpdateLinkRequest(BaseModel):
    """Request to update an existing link (partial, cosmetic update)."""
    label: Optional[str] = None
    kind: Optional[str] = None


class CreateLinkRequest(BaseModel):
    """Request to create a new link."""
    model_config = ConfigDict(populate_by_name=True)

    source_id: str = Field(alias="sourceId")
    target_id: str = Field(alias="targetId")
    label: str = DEFAULT_LINK_LABEL


class UpdatePropertyRequest(BaseModel):
    """Request to change one field of a node property."""
    key: Optional[str] = None
    value: Optional[str] = None
    type: Optional[str] = None


class SimulationConfigRequest(BaseModel):
    """Request to update simulation parameters (partial)."""
    model_config = ConfigDict(allow_inf_nan=False)

    strength: Optional[float] = None
    distance: Optional[float] = None
    gravity: Optional[float] = None
    charge: Optional[float] = None
    grouping: Optional[GroupingMode] = None
