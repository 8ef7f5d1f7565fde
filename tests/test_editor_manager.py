import asyncio
import math
from unittest.mock import AsyncMock, MagicMock

import pytest

from canvas_backend.editor_manager import EditorSession, sample_graph
from canvas_backend.generator import GenerationMode
from canvas_core.errors import DanglingLinkError, FormatError, GenerationBusyError, ServiceError
from canvas_core.models import GraphData, GroupingMode, NodeKind


class BlockingGenerator:
    """Generation service that waits until released."""

    def __init__(self, result):
        self.result = result
        self.release = asyncio.Event()
        self.calls = []

    async def generate(self, prompt, existing, mode):
        self.calls.append((prompt, existing, mode))
        await self.release.wait()
        return self.result


@pytest.fixture
def session(blog_graph):
    return EditorSession(graph=blog_graph)


def test_sample_graph_is_valid():
    graph = sample_graph()
    assert graph.node_ids() == ["1", "2", "3"]
    assert graph.get_node("1").kind == NodeKind.GENERIC
    assert [l.label for l in graph.links] == ["AUTHORED", "WROTE", "ON"]


# --- Structural operations and history ---

def test_drop_node_is_structural(session):
    node = session.drop_node("table", 120, 80)

    stored = session.graph.get_node(node.id)
    assert stored.label == "New Node"
    assert stored.kind == NodeKind.TABLE
    assert (stored.x, stored.y) == (120, 80)
    assert session.layout.body(node.id).x == 120
    assert len(session.history) == 2


def test_undo_redo_round_trip(session, blog_graph):
    node = session.drop_node("generic", 10, 10)
    with_node = session.graph

    session.undo()
    assert session.graph.get_node(node.id) is None
    assert session.graph.node_ids() == blog_graph.node_ids()
    assert session.layout.body(node.id) is None

    session.redo()
    assert session.graph.node_ids() == with_node.node_ids()


def test_undo_clears_selection(session):
    session.drop_node("generic", 0, 0)
    session.click_node("user")
    session.undo()
    assert session.selection.is_empty


def test_undo_with_empty_history(session):
    assert session.undo() is None
    assert session.redo() is None


def test_cosmetic_edits_skip_history(session):
    rebuilds = session.layout.rebuild_count
    node = session.update_node("user", label="Account", color="#ff0000")

    assert node.label == "Account"
    assert session.layout.body("user").label == "Account"
    assert session.layout.rebuild_count == rebuilds
    assert len(session.history) == 1


def test_update_unknown_entities(session):
    assert session.update_node("missing", label="x") is None
    assert session.update_link("missing", label="x") is None


def test_update_link_label(session):
    link = session.update_link("l1", label="WROTE")
    assert link.label == "WROTE"
    assert (link.source_id, link.target_id) == ("user", "post")


def test_property_editing(session):
    prop = session.add_property("comment")
    assert (prop.key, prop.value, prop.type) == ("new_prop", "", "string")

    updated = session.update_property("comment", prop.id, "key", "body")
    assert updated.key == "body"
    assert session.graph.get_node("comment").properties[0].key == "body"

    assert session.delete_property("comment", prop.id)
    assert session.graph.get_node("comment").properties == ()
    assert len(session.history) == 1


def test_update_property_rejects_unknown_field(session):
    with pytest.raises(ValueError):
        session.update_property("user", "p1", "id", "x")


def test_delete_selected_node_cascades(session):
    session.click_node("post")
    assert session.delete_selection() == 1
    assert session.graph.node_ids() == ["user", "comment"]
    assert session.graph.links == ()
    assert session.selection.is_empty
    assert len(session.history) == 2


def test_delete_selected_link_keeps_nodes(session):
    session.click_link("l2")
    assert session.key_press("Delete") == "delete"
    assert [l.id for l in session.graph.links] == ["l1"]
    assert len(session.graph.nodes) == 3


def test_delete_with_nothing_selected(session):
    assert session.delete_selection() == 0
    assert len(session.history) == 1


# --- Pointer gestures ---

def test_link_modifier_click_creates_link(session):
    session.click_node("user")
    link = session.click_node("comment", link_modifier=True)

    assert (link.source_id, link.target_id, link.label) == ("user", "comment", "RELATED_TO")
    assert session.graph.get_link(link.id) is not None
    assert session.selection.node_ids == ("user",)
    assert len(session.history) == 2


def test_link_modifier_click_without_single_selection_selects(session):
    assert session.click_node("comment", link_modifier=True) is None
    assert session.selection.node_ids == ("comment",)


def test_link_modifier_click_on_selected_node_does_not_link(session):
    session.click_node("user")
    assert session.click_node("user", link_modifier=True) is None
    assert len(session.graph.links) == 2


def test_create_link_to_missing_node_leaves_graph(session, blog_graph):
    with pytest.raises(DanglingLinkError):
        session.create_link("user", "ghost")
    assert session.graph.links == blog_graph.links
    assert len(session.history) == 1


def test_toggle_selection_scenario(session):
    session.click_node("user")
    session.click_node("post", multi=True)
    assert session.selection.node_ids == ("user", "post")
    session.click_node("user", multi=True)
    assert session.selection.node_ids == ("post",)
    session.click_link("l1")
    assert session.selection.node_ids == ()
    session.click_background()
    assert session.selection.is_empty


def test_drag_start_selection_rules(session):
    session.click_node("user")
    session.click_node("post", multi=True)

    session.drag_start("post")
    assert session.selection.node_ids == ("user", "post")

    session.drag_start("comment", link_modifier=True)
    assert session.selection.node_ids == ("user", "post")

    session.drag_start("comment")
    assert session.selection.node_ids == ("comment",)


def test_drag_does_not_touch_history(session):
    session.drag_start("user")
    session.drag_move("user", 400, 400)
    session.tick(3)
    session.drag_end("user")

    body = session.layout.body("user")
    assert (body.x, body.y) == (400, 400)
    assert (body.fx, body.fy) == (400, 400)
    assert len(session.history) == 1


def test_snapshot_keeps_last_known_position(session):
    session.drag_start("user")
    session.drag_move("user", 400, 250)
    session.tick()
    session.drag_end("user")
    session.drop_node("generic", 0, 0)

    user = session.history.current.get_node("user")
    assert (user.x, user.y) == (400, 250)
    assert (user.fx, user.fy) == (400, 250)


# --- Keyboard ---

def test_key_shortcuts(session):
    session.drop_node("generic", 0, 0)
    assert session.key_press("z", ctrl=True) == "undo"
    assert len(session.graph.nodes) == 3
    assert session.key_press("Z", ctrl=True, shift=True) == "redo"
    assert len(session.graph.nodes) == 4
    session.key_press("z", ctrl=True)
    assert session.key_press("y", ctrl=True) == "redo"
    assert len(session.graph.nodes) == 4


def test_keys_ignored_while_typing(session):
    session.click_node("user")
    assert session.key_press("Backspace", text_focus=True) is None
    assert len(session.graph.nodes) == 3
    assert session.key_press("q") is None


# --- Clipboard ---

def test_copy_paste_keeps_relationship(session):
    session.click_node("user")
    assert session.key_press("c", ctrl=True) == "copy"
    session.key_press("v", ctrl=True)

    assert len(session.graph.nodes) == 4
    new_id = session.selection.node_ids[0]
    copy = session.graph.get_node(new_id)
    assert copy.label == "User (Copy)"
    assert (copy.x, copy.y) == (140, 140)
    assert [(l.source_id, l.target_id, l.label) for l in session.graph.links if l.touches({new_id})] == [
        (new_id, "post", "AUTHORED")
    ]
    assert len(session.history) == 2

    session.undo()
    assert len(session.graph.nodes) == 3
    assert len(session.graph.links) == 2


def test_paste_empty_clipboard(session):
    assert session.paste() == []
    assert len(session.history) == 1


def test_clipboard_survives_source_edits(session):
    session.click_node("user")
    session.copy()
    session.update_node("user", label="Renamed")
    session.paste()
    labels = [n.label for n in session.graph.nodes]
    assert "User (Copy)" in labels


# --- Import / export ---

def test_rejected_import_leaves_state_identical(session):
    graph = session.graph
    session.click_node("user")

    with pytest.raises(FormatError):
        session.import_document({"nodes": [{"id": "a"}]})
    with pytest.raises(FormatError):
        session.import_document('{"nodes": [{"id": "a"}], "links": [{"source": "a", "target": "b"}]}')

    assert session.graph is graph
    assert len(session.history) == 1
    assert session.selection.node_ids == ("user",)


def test_non_finite_import_leaves_simulation_finite(session):
    graph = session.graph
    with pytest.raises(FormatError):
        session.import_document('{"nodes": [{"id": "a", "x": NaN, "y": 0}, {"id": "b", "x": 10, "y": 10}], "links": []}')

    assert session.graph is graph
    assert not session.can_undo
    session.tick()
    for x, y in session.layout.positions().values():
        assert math.isfinite(x) and math.isfinite(y)
    assert session.get_state()["graph"]["nodes"]


def test_import_replaces_graph(session):
    session.import_document({"nodes": [{"id": "x", "label": "X", "x": 5, "y": 5}], "links": []})
    assert session.graph.node_ids() == ["x"]
    assert session.layout.positions() == {"x": (5, 5)}
    assert session.can_undo
    session.undo()
    assert session.graph.node_ids() == ["user", "post", "comment"]


def test_export_shape(session):
    document = session.export_document()
    assert set(document) == {"nodes", "links"}
    assert set(document["nodes"][0]) == {"id", "label", "kind", "properties", "x", "y"}
    assert document["links"][0] == {"id": "l1", "sourceId": "user", "targetId": "post", "label": "AUTHORED"}


# --- Generation ---

@pytest.mark.asyncio
async def test_generate_merge_keeps_positions(blog_graph):
    generated = GraphData.from_json_dict({
        "nodes": [{"id": "user", "label": "User"}, {"id": "tag", "label": "Tag"}],
        "links": [{"id": "t", "source": "user", "target": "tag", "label": "USES"}],
    })
    generator = MagicMock()
    generator.generate = AsyncMock(return_value=generated)
    session = EditorSession(graph=blog_graph, generator=generator)

    await session.generate("add tags", "merge")

    assert session.graph.node_ids() == ["user", "tag"]
    user = session.graph.get_node("user")
    assert (user.x, user.y) == (100, 100)
    prompt, existing, mode = generator.generate.call_args.args
    assert existing.node_ids() == ["user", "post", "comment"]
    assert mode == GenerationMode.MERGE
    assert len(session.history) == 2


@pytest.mark.asyncio
async def test_generate_replace_sends_no_context(blog_graph):
    generated = GraphData.from_json_dict({"nodes": [{"id": "solo"}], "links": []})
    generator = MagicMock()
    generator.generate = AsyncMock(return_value=generated)
    session = EditorSession(graph=blog_graph, generator=generator)

    await session.generate("start over", GenerationMode.REPLACE)

    assert generator.generate.call_args.args[1] is None
    assert session.graph.node_ids() == ["solo"]


@pytest.mark.asyncio
async def test_second_generation_is_rejected_while_pending(blog_graph):
    generator = BlockingGenerator(blog_graph)
    session = EditorSession(graph=blog_graph, generator=generator)

    task = asyncio.create_task(session.generate("first"))
    await asyncio.sleep(0)
    assert session.is_generating

    with pytest.raises(GenerationBusyError):
        await session.generate("second")

    # Local edits stay available while waiting
    session.update_node("user", label="Busy User")
    assert session.graph.get_node("user").label == "Busy User"

    generator.release.set()
    await task
    assert not session.is_generating
    assert len(generator.calls) == 1


@pytest.mark.asyncio
async def test_failed_generation_leaves_graph(blog_graph):
    generator = MagicMock()
    generator.generate = AsyncMock(side_effect=ServiceError("API Key is missing"))
    session = EditorSession(graph=blog_graph, generator=generator)

    with pytest.raises(ServiceError):
        await session.generate("anything")

    assert session.graph is blog_graph
    assert not session.is_generating
    assert len(session.history) == 1


@pytest.mark.asyncio
async def test_generate_without_service(session):
    with pytest.raises(ServiceError):
        await session.generate("anything")


# --- Layout settings and notifications ---

def test_set_config(session):
    config = session.set_config(charge=-100, grouping="grid")
    assert config.charge == -100
    assert config.grouping == GroupingMode.GRID
    assert session.layout.config == config


def test_change_callbacks(session):
    calls = []
    session.on_change(lambda: calls.append(session.revision))
    session.drop_node("generic", 0, 0)
    session.update_node("user", label="Other")
    assert calls[-1] == 2


def test_get_state(session):
    session.click_node("user")
    state = session.get_state()
    assert state["selection"] == {"nodes": ["user"], "links": []}
    assert state["can_undo"] is False
    assert state["is_generating"] is False
    assert state["config"]["grouping"] == "force"
    assert state["dimensions"] == {"width": 800, "height": 600}
