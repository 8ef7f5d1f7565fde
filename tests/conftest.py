import sys
from pathlib import Path

import pytest

# Make the packages importable without installing
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from canvas_core.models import GraphData


@pytest.fixture
def blog_graph():
    """User -AUTHORED-> Post, Comment -ON-> Post."""
    return GraphData.from_json_dict({
        "nodes": [
            {"id": "user", "label": "User", "kind": "generic", "x": 100, "y": 100,
             "properties": [{"id": "p1", "key": "username", "value": "", "type": "string"}]},
            {"id": "post", "label": "Post", "kind": "document", "x": 300, "y": 100},
            {"id": "comment", "label": "Comment", "kind": "document", "x": 200, "y": 300},
        ],
        "links": [
            {"id": "l1", "sourceId": "user", "targetId": "post", "label": "AUTHORED"},
            {"id": "l2", "sourceId": "comment", "targetId": "post", "label": "ON"},
        ],
    })


@pytest.fixture
def chain_graph():
    """A -> B -> C."""
    return GraphData.from_json_dict({
        "nodes": [
            {"id": "a", "label": "A", "x": 0, "y": 0},
            {"id": "b", "label": "B", "x": 150, "y": 0},
            {"id": "c", "label": "C", "x": 300, "y": 0},
        ],
        "links": [
            {"id": "ab", "source": "a", "target": "b", "label": "NEXT"},
            {"id": "bc", "source": "b", "target": "c", "label": "NEXT"},
        ],
    })
