"""
Graph validation - check graphs and import documents for structural issues.

Used by the import path and by generation results so that a malformed
document is rejected before it can replace the live graph.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from pydantic import ValidationError

from .errors import FormatError
from .models import GraphData

logger = logging.getLogger(__name__)


class IssueSeverity(str, Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Invalid state, must be fixed
    WARNING = "warning"  # Potential problem, should review
    INFO = "info"        # Informational, may be intentional


@dataclass
class ValidationIssue:
    """A single validation issue found in a graph."""
    severity: IssueSeverity
    message: str
    node_id: str | None = None
    link_id: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.severity.value,
            "message": self.message
        }
        if self.node_id:
            result["node_id"] = self.node_id
        if self.link_id:
            result["link_id"] = self.link_id
        return result


def validate_graph(graph: GraphData) -> list[ValidationIssue]:
    """
    Validate a graph and return a list of issues.

    Checks for:
    - Duplicate node or link ids - ERROR
    - Invalid link references (source/target doesn't exist) - ERROR
    - Self-referencing links - WARNING
    - Duplicate links (same source->target and label) - WARNING
    - Empty graph - INFO
    """
    issues: list[ValidationIssue] = []

    if not graph.nodes:
        issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message="Graph has no nodes"
        ))

    node_ids: set[str] = set()
    for node in graph.nodes:
        if node.id in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Duplicate node id: {node.id}",
                node_id=node.id
            ))
        node_ids.add(node.id)

    link_ids: set[str] = set()
    for link in graph.links:
        if link.id in link_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Duplicate link id: {link.id}",
                link_id=link.id
            ))
        link_ids.add(link.id)

    # Check for invalid link references
    for link in graph.links:
        if link.source_id not in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Link references non-existent source node: {link.source_id}",
                link_id=link.id
            ))
        if link.target_id not in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Link references non-existent target node: {link.target_id}",
                link_id=link.id
            ))

    # Check for self-referencing links
    for link in graph.links:
        if link.source_id == link.target_id:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message="Self-referencing link (node points to itself)",
                link_id=link.id,
                node_id=link.source_id
            ))

    # Check for duplicate links (same source->target with the same label)
    seen: set[tuple[str, str, str]] = set()
    for link in graph.links:
        key = (link.source_id, link.target_id, link.label)
        if key in seen:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"Duplicate link {link.label} from {link.source_id} to {link.target_id}",
                link_id=link.id
            ))
        else:
            seen.add(key)

    return issues


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """Counts by severity."""
    return {
        "total": len(issues),
        "errors": len([i for i in issues if i.severity == IssueSeverity.ERROR]),
        "warnings": len([i for i in issues if i.severity == IssueSeverity.WARNING]),
        "info": len([i for i in issues if i.severity == IssueSeverity.INFO]),
        "valid": len([i for i in issues if i.severity == IssueSeverity.ERROR]) == 0
    }


def parse_graph_document(document: Union[str, bytes, dict, Any]) -> GraphData:
    """
    Build GraphData from an import document.

    The document must be a JSON object (or its text) holding both a `nodes`
    and a `links` collection. Anything else, including entity validation
    failures, duplicate ids and dangling links, raises FormatError. The
    caller's live graph is never touched here.
    """
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise FormatError(f"Error parsing JSON: {e}") from e

    if not isinstance(document, dict):
        raise FormatError("Invalid JSON format: expected an object with 'nodes' and 'links'")
    missing = [key for key in ("nodes", "links") if key not in document]
    if missing:
        raise FormatError(f"Invalid JSON format: missing {', '.join(missing)}")
    if not isinstance(document["nodes"], list) or not isinstance(document["links"], list):
        raise FormatError("Invalid JSON format: 'nodes' and 'links' must be lists")

    try:
        graph = GraphData.from_json_dict(document)
    except (ValidationError, TypeError) as e:
        raise FormatError(f"Invalid graph entity: {e}") from e

    issues = validate_graph(graph)
    errors = [i for i in issues if i.severity == IssueSeverity.ERROR]
    if errors:
        raise FormatError("; ".join(i.message for i in errors))
    for issue in issues:
        if issue.severity == IssueSeverity.WARNING:
            logger.warning(f"Import: {issue.message}")
    return graph
