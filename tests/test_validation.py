import json

import pytest

from canvas_core.errors import FormatError
from canvas_core.models import NodeKind
from canvas_core.validation import IssueSeverity, parse_graph_document, validate_graph, validation_summary


def test_parse_accepts_export_shape(blog_graph):
    document = blog_graph.to_export_dict()
    assert parse_graph_document(document) == parse_graph_document(json.dumps(document))
    parsed = parse_graph_document(document)
    assert parsed.node_ids() == ["user", "post", "comment"]
    assert parsed.get_link("l1").source_id == "user"


def test_parse_accepts_legacy_names():
    graph = parse_graph_document({
        "nodes": [{"id": "1", "label": "User", "type": "node"}, {"id": "2", "type": "table"}],
        "links": [{"id": "l", "source": {"id": "1"}, "target": "2"}],
    })
    assert graph.get_node("1").kind == NodeKind.GENERIC
    assert graph.get_node("2").kind == NodeKind.TABLE
    link = graph.get_link("l")
    assert (link.source_id, link.target_id) == ("1", "2")


@pytest.mark.parametrize("document", [
    {"nodes": []},
    {"links": []},
    [],
    "not json",
    {"nodes": {}, "links": []},
])
def test_parse_rejects_bad_shape(document):
    with pytest.raises(FormatError):
        parse_graph_document(document)


def test_parse_rejects_dangling_link():
    with pytest.raises(FormatError, match="non-existent"):
        parse_graph_document({"nodes": [{"id": "a"}], "links": [{"id": "l", "source": "a", "target": "b"}]})


def test_parse_rejects_duplicate_ids():
    with pytest.raises(FormatError, match="Duplicate node id"):
        parse_graph_document({"nodes": [{"id": "a"}, {"id": "a"}], "links": []})


def test_parse_rejects_invalid_entity():
    with pytest.raises(FormatError):
        parse_graph_document({"nodes": [{"id": "a", "kind": "hexagon"}], "links": []})


@pytest.mark.parametrize("document", [
    '{"nodes": [{"id": "a", "x": NaN, "y": 0}], "links": []}',
    '{"nodes": [{"id": "a", "x": 0, "y": Infinity}], "links": []}',
    {"nodes": [{"id": "a", "fx": float("-inf")}], "links": []},
    {"nodes": [{"id": "a", "vx": float("nan")}], "links": []},
])
def test_parse_rejects_non_finite_coordinates(document):
    with pytest.raises(FormatError):
        parse_graph_document(document)


def test_parse_rejects_undecodable_bytes():
    with pytest.raises(FormatError, match="Error parsing JSON"):
        parse_graph_document(b'{"nodes": [], "links": [] \xff}')


def test_validate_graph_warnings(chain_graph):
    from canvas_core import store
    from canvas_core.models import GraphLink
    graph = store.add_link(chain_graph, GraphLink(id="aa", source_id="a", target_id="a"))
    graph = store.add_link(graph, GraphLink(id="ab2", source_id="a", target_id="b", label="NEXT"))

    issues = validate_graph(graph)
    assert {i.link_id for i in issues if i.severity == IssueSeverity.WARNING} == {"aa", "ab2"}
    summary = validation_summary(issues)
    assert summary["valid"] is True
    assert summary["warnings"] == 2
