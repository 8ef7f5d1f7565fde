"""
Schema Canvas Core - graph model, editing transforms, history and layout.

This module provides the domain logic behind the editor: the canonical
graph model, pure store transforms, selection, undo/redo, copy/paste and
the force simulation. It performs no I/O.
"""

from .models import (
    # Enums
    NodeKind,
    GroupingMode,
    # Core models
    NodeProperty,
    GraphNode,
    GraphLink,
    GraphData,
    SimulationConfig,
    # Request models (for API)
    DropNodeRequest,
    UpdateNodeRequest,
    UpdateLinkRequest,
    CreateLinkRequest,
    UpdatePropertyRequest,
    SimulationConfigRequest,
)

from .errors import (
    GraphEditorError,
    DuplicateIdError,
    FormatError,
    DanglingLinkError,
    ServiceError,
    GenerationBusyError,
)
from .selection import SelectionManager
from .history import HistoryManager
from .clipboard import ClipboardManager, PasteResult, paste_nodes
from .layout import LayoutEngine, Body, grid_correction
from .validation import validate_graph, parse_graph_document, ValidationIssue, IssueSeverity

__all__ = [
    # Enums
    "NodeKind",
    "GroupingMode",
    # Models
    "NodeProperty",
    "GraphNode",
    "GraphLink",
    "GraphData",
    "SimulationConfig",
    # Request models
    "DropNodeRequest",
    "UpdateNodeRequest",
    "UpdateLinkRequest",
    "CreateLinkRequest",
    "UpdatePropertyRequest",
    "SimulationConfigRequest",
    # Errors
    "GraphEditorError",
    "DuplicateIdError",
    "FormatError",
    "DanglingLinkError",
    "ServiceError",
    "GenerationBusyError",
    # Components
    "SelectionManager",
    "HistoryManager",
    "ClipboardManager",
    "PasteResult",
    "paste_nodes",
    "LayoutEngine",
    "Body",
    "grid_correction",
    # Validation
    "validate_graph",
    "parse_graph_document",
    "ValidationIssue",
    "IssueSeverity",
]
