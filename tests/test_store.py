import pytest

from canvas_core import store
from canvas_core.errors import DanglingLinkError, DuplicateIdError, FormatError
from canvas_core.models import GraphData, GraphLink, GraphNode, NodeKind


def test_add_node_appends_without_touching_input(chain_graph):
    result = store.add_node(chain_graph, GraphNode(id="d", label="D"))
    assert [n.id for n in result.nodes] == ["a", "b", "c", "d"]
    assert len(chain_graph.nodes) == 3


def test_add_node_rejects_duplicate_id(chain_graph):
    with pytest.raises(DuplicateIdError) as exc:
        store.add_node(chain_graph, GraphNode(id="a"))
    assert exc.value.kind == "node"
    assert exc.value.entity_id == "a"


def test_add_link_rejects_duplicate_id(chain_graph):
    with pytest.raises(DuplicateIdError):
        store.add_link(chain_graph, GraphLink(id="ab", source_id="a", target_id="c"))


def test_add_link_rejects_missing_endpoint(chain_graph):
    with pytest.raises(DanglingLinkError) as exc:
        store.add_link(chain_graph, GraphLink(id="ax", source_id="a", target_id="x"))
    assert isinstance(exc.value, FormatError)
    assert exc.value.missing == "x"


def test_delete_node_cascades_to_links(chain_graph):
    result = store.delete_nodes(chain_graph, ["b"])
    assert result.node_ids() == ["a", "c"]
    assert result.links == ()


def test_delete_absent_ids_is_noop(chain_graph):
    assert store.delete_nodes(chain_graph, ["zzz"]) == chain_graph
    assert store.delete_links(chain_graph, ["zzz"]) == chain_graph


def test_delete_links_keeps_nodes(chain_graph):
    result = store.delete_links(chain_graph, ["ab"])
    assert len(result.nodes) == 3
    assert [l.id for l in result.links] == ["bc"]


def test_update_nodes_by_mapping(chain_graph):
    result = store.update_nodes(chain_graph, {"a": {"label": "Alpha", "kind": "table"}, "missing": {"label": "x"}})
    node = result.get_node("a")
    assert node.label == "Alpha"
    assert node.kind == NodeKind.TABLE
    assert result.get_node("b") == chain_graph.get_node("b")


def test_update_nodes_cannot_change_id(chain_graph):
    result = store.update_nodes(chain_graph, {"a": {"id": "z", "label": "Alpha"}})
    assert result.node_ids() == ["a", "b", "c"]


def test_update_nodes_with_whole_entities(chain_graph):
    renamed = chain_graph.get_node("c").model_copy(update={"label": "Gamma"})
    result = store.update_nodes(chain_graph, [renamed])
    assert result.get_node("c").label == "Gamma"


def test_update_links_keeps_endpoints(chain_graph):
    result = store.update_links(chain_graph, {"ab": {"label": "FOLLOWS", "source_id": "c"}})
    link = result.get_link("ab")
    assert link.label == "FOLLOWS"
    assert link.source_id == "a"


def test_classify(chain_graph):
    assert store.classify(chain_graph, chain_graph) is None
    renamed = store.update_nodes(chain_graph, {"a": {"label": "Alpha"}})
    assert store.classify(chain_graph, renamed) == store.COSMETIC
    assert store.classify(chain_graph, store.delete_links(chain_graph, ["ab"])) == store.STRUCTURAL


def test_merge_generated_keeps_existing_positions(chain_graph):
    generated = GraphData.from_json_dict({
        "nodes": [
            {"id": "a", "label": "A renamed"},
            {"id": "new", "label": "New"},
        ],
        "links": [{"id": "x", "source": "a", "target": "new", "label": "HAS"}],
    })
    current = store.update_nodes(chain_graph, {"a": {"x": 42.0, "y": 24.0, "fx": 42.0, "fy": 24.0}})
    merged = store.merge_generated(current, generated)

    a = merged.get_node("a")
    assert (a.x, a.y) == (42.0, 24.0)
    assert (a.fx, a.fy) == (42.0, 24.0)
    assert a.label == "A renamed"
    assert merged.get_node("new").x is None
    assert merged.node_ids() == ["a", "new"]
    assert [l.id for l in merged.links] == ["x"]


def test_project_for_context_has_no_physical_fields(blog_graph):
    projection = store.project_for_context(blog_graph)
    user = projection["nodes"][0]
    assert set(user) == {"id", "label", "type", "properties"}
    assert user["properties"][0]["key"] == "username"
    assert projection["links"][0] == {"id": "l1", "source": "user", "target": "post", "label": "AUTHORED"}


def test_drop_dangling_links():
    graph = GraphData.from_json_dict({
        "nodes": [{"id": "a"}, {"id": "b"}],
        "links": [
            {"id": "ok", "source": "a", "target": "b"},
            {"id": "bad", "source": "a", "target": "ghost"},
        ],
    })
    assert [l.id for l in store.drop_dangling_links(graph).links] == ["ok"]


def test_find_helpers(chain_graph):
    assert store.find_node(chain_graph, "b").label == "B"
    assert store.find_link(chain_graph, "missing") is None
