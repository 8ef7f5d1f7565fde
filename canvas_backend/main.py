"""
Schema Canvas Backend - FastAPI Application

This is the main entry point for the schema canvas service.
It provides:
- REST API for every editor gesture (selection, drag, keyboard shortcuts,
  node/link/property edits, copy/paste, undo/redo, import/export)
- Schema generation through the configured language model
- A background simulation loop that advances the layout
- WebSocket endpoint for real-time updates
- CORS configuration for local renderer development
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from canvas_core import (
    CreateLinkRequest,
    DropNodeRequest,
    GroupingMode,
    NodeKind,
    SimulationConfigRequest,
    UpdateLinkRequest,
    UpdateNodeRequest,
    UpdatePropertyRequest,
)
from canvas_core.errors import (
    DuplicateIdError,
    FormatError,
    GenerationBusyError,
    GraphEditorError,
    ServiceError,
)
from canvas_core.validation import validate_graph, validation_summary
from canvas_backend.config import configure_logging, load_settings
from canvas_backend.editor_manager import editor_session
from canvas_backend.generator import GenerationMode, SchemaGenerator
from canvas_backend.websocket_manager import ws_manager

settings = load_settings()


def _http_error(error: GraphEditorError) -> HTTPException:
    """Map an editor error onto an HTTP status."""
    if isinstance(error, (DuplicateIdError, GenerationBusyError)):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, FormatError):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, ServiceError):
        return HTTPException(status_code=502, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))


# --- Async change notification ---
# Bridge between sync EditorSession callbacks and async WebSocket broadcasts

_change_event: Optional[asyncio.Event] = None


def on_session_change():
    """Callback for session changes - sets event for async handler."""
    if _change_event is not None:
        _change_event.set()


async def change_broadcaster():
    """Background task that broadcasts changes to WebSocket clients."""
    while True:
        await _change_event.wait()
        _change_event.clear()
        await ws_manager.notify_graph_updated(editor_session.revision)


async def simulation_loop(interval: float):
    """Background task that advances the layout and pushes positions."""
    while True:
        await asyncio.sleep(interval)
        if editor_session.tick():
            await ws_manager.notify_positions(editor_session.positions())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup/shutdown tasks."""
    global _change_event
    _change_event = asyncio.Event()
    configure_logging(settings)
    editor_session.set_generator(SchemaGenerator(api_key=settings.api_key, model=settings.model))
    editor_session.on_change(on_session_change)

    tasks = [
        asyncio.create_task(change_broadcaster()),
        asyncio.create_task(simulation_loop(settings.tick_interval)),
    ]

    yield

    # Cleanup
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass


# --- FastAPI App ---

app = FastAPI(
    title="Schema Canvas API",
    description="Backend API for the schema graph editor",
    version="1.0.0",
    lifespan=lifespan
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Health Check ---

@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "connections": ws_manager.connection_count}


# --- Session State ---

@app.get("/api/state")
async def get_state():
    """Get the current session state."""
    return editor_session.get_state()


@app.get("/api/validate")
async def validate_current_graph():
    """Validate the current graph for structural issues."""
    issues = validate_graph(editor_session.graph)
    return {
        "success": True,
        "issues": [issue.to_dict() for issue in issues],
        "summary": validation_summary(issues)
    }


# --- Import / Export ---

@app.get("/api/export")
async def export_graph():
    """Export nodes (with current positions) and links."""
    return editor_session.export_document()


@app.post("/api/import")
async def import_graph(document: Any = Body(...)):
    """Replace the graph with an imported document."""
    try:
        editor_session.import_document(document)
        return {"success": True, "state": editor_session.get_state()}
    except GraphEditorError as e:
        raise _http_error(e)


# --- Undo/Redo ---

@app.post("/api/undo")
async def undo():
    """Undo the last structural action."""
    graph = editor_session.undo()
    if graph:
        return {"success": True, "state": editor_session.get_state()}
    return {"success": False, "message": "Nothing to undo"}


@app.post("/api/redo")
async def redo():
    """Redo the last undone action."""
    graph = editor_session.redo()
    if graph:
        return {"success": True, "state": editor_session.get_state()}
    return {"success": False, "message": "Nothing to redo"}


# --- Selection ---

class ClickRequest(BaseModel):
    multi: bool = False
    link_modifier: bool = False


@app.post("/api/select/nodes/{node_id}")
async def click_node(node_id: str, request: ClickRequest):
    """Node click: select, toggle, or create a link with the modifier held."""
    try:
        link = editor_session.click_node(node_id, multi=request.multi, link_modifier=request.link_modifier)
    except GraphEditorError as e:
        raise _http_error(e)
    if link:
        return {"success": True, "link": link.to_export_dict(), "selection": editor_session.selection.to_dict()}
    if editor_session.graph.get_node(node_id) is None:
        raise HTTPException(status_code=404, detail="Node not found")
    return {"success": True, "selection": editor_session.selection.to_dict()}


@app.post("/api/select/links/{link_id}")
async def click_link(link_id: str, request: ClickRequest):
    """Link click: select or toggle."""
    if editor_session.click_link(link_id, multi=request.multi):
        return {"success": True, "selection": editor_session.selection.to_dict()}
    raise HTTPException(status_code=404, detail="Link not found")


@app.post("/api/select/clear")
async def click_background():
    """Background click: clear the selection."""
    editor_session.click_background()
    return {"success": True, "selection": editor_session.selection.to_dict()}


# --- Drag ---

class DragStartRequest(BaseModel):
    link_modifier: bool = False


class DragMoveRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    x: float
    y: float


@app.post("/api/drag/{node_id}/start")
async def drag_start(node_id: str, request: DragStartRequest):
    """Pin a node under the pointer."""
    if editor_session.drag_start(node_id, link_modifier=request.link_modifier):
        return {"success": True}
    raise HTTPException(status_code=404, detail="Node not found")


@app.post("/api/drag/{node_id}/move")
async def drag_move(node_id: str, request: DragMoveRequest):
    """Move a dragged node's pin."""
    if editor_session.drag_move(node_id, request.x, request.y):
        return {"success": True}
    raise HTTPException(status_code=404, detail="Node not found")


@app.post("/api/drag/{node_id}/end")
async def drag_end(node_id: str):
    """Release the pointer. The node stays pinned."""
    if editor_session.drag_end(node_id):
        return {"success": True}
    raise HTTPException(status_code=404, detail="Node not found")


# --- Keyboard ---

class KeyPressRequest(BaseModel):
    key: str
    ctrl: bool = False
    shift: bool = False
    text_focus: bool = False


@app.post("/api/keys")
async def key_press(request: KeyPressRequest):
    """Global keyboard shortcut."""
    try:
        action = editor_session.key_press(
            request.key,
            ctrl=request.ctrl,
            shift=request.shift,
            text_focus=request.text_focus
        )
    except GraphEditorError as e:
        raise _http_error(e)
    return {"success": action is not None, "action": action}


# --- Node Operations ---

@app.post("/api/nodes")
async def drop_node(request: DropNodeRequest):
    """Create a node from a palette drop."""
    try:
        node = editor_session.drop_node(kind=request.kind, x=request.x, y=request.y)
        return {"success": True, "node": node.to_export_dict()}
    except GraphEditorError as e:
        raise _http_error(e)


@app.patch("/api/nodes/{node_id}")
async def update_node(node_id: str, request: UpdateNodeRequest):
    """Update a node's label, kind or color."""
    node = editor_session.update_node(
        node_id,
        label=request.label,
        kind=request.kind,
        color=request.color
    )
    if node:
        return {"success": True, "node": node.to_export_dict()}
    raise HTTPException(status_code=404, detail="Node not found")


@app.delete("/api/nodes/{node_id}")
async def delete_node(node_id: str):
    """Delete a node and its connected links."""
    if editor_session.delete_nodes([node_id]):
        return {"success": True}
    raise HTTPException(status_code=404, detail="Node not found")


# --- Property Operations ---

@app.post("/api/nodes/{node_id}/properties")
async def add_property(node_id: str):
    """Append a default property."""
    prop = editor_session.add_property(node_id)
    if prop:
        return {"success": True, "property": prop.model_dump()}
    raise HTTPException(status_code=404, detail="Node not found")


@app.patch("/api/nodes/{node_id}/properties/{prop_id}")
async def update_property(node_id: str, prop_id: str, request: UpdatePropertyRequest):
    """Update key, value and/or type of a property."""
    prop = None
    for field, value in request.model_dump(exclude_none=True).items():
        prop = editor_session.update_property(node_id, prop_id, field, value)
        if prop is None:
            break
    else:
        node = editor_session.graph.get_node(node_id)
        if node is not None and node.property_index(prop_id) >= 0:
            prop = node.properties[node.property_index(prop_id)]
    if prop:
        return {"success": True, "property": prop.model_dump()}
    raise HTTPException(status_code=404, detail="Property not found")


@app.delete("/api/nodes/{node_id}/properties/{prop_id}")
async def delete_property(node_id: str, prop_id: str):
    """Remove a property from a node."""
    if editor_session.delete_property(node_id, prop_id):
        return {"success": True}
    raise HTTPException(status_code=404, detail="Property not found")


# --- Link Operations ---

@app.post("/api/links")
async def create_link(request: CreateLinkRequest):
    """Create a new link."""
    try:
        link = editor_session.create_link(request.source_id, request.target_id, label=request.label)
        return {"success": True, "link": link.to_export_dict()}
    except GraphEditorError as e:
        raise _http_error(e)


@app.patch("/api/links/{link_id}")
async def update_link(link_id: str, request: UpdateLinkRequest):
    """Update a link's label or kind."""
    link = editor_session.update_link(link_id, label=request.label, kind=request.kind)
    if link:
        return {"success": True, "link": link.to_export_dict()}
    raise HTTPException(status_code=404, detail="Link not found")


@app.delete("/api/links/{link_id}")
async def delete_link(link_id: str):
    """Delete a link."""
    if editor_session.delete_links([link_id]):
        return {"success": True}
    raise HTTPException(status_code=404, detail="Link not found")


# --- Clipboard / Selection-wide ---

@app.post("/api/copy")
async def copy_selection():
    """Copy the selected nodes."""
    return {"success": True, "copied": editor_session.copy()}


@app.post("/api/paste")
async def paste():
    """Paste the clipboard; the pasted nodes become the selection."""
    node_ids = editor_session.paste()
    return {"success": bool(node_ids), "node_ids": node_ids}


@app.post("/api/delete-selection")
async def delete_selection():
    """Delete the selected nodes or links."""
    return {"success": True, "removed": editor_session.delete_selection()}


# --- Schema Generation ---

class GenerateRequest(BaseModel):
    prompt: str
    mode: GenerationMode = GenerationMode.MERGE


@app.post("/api/generate")
async def generate_schema(request: GenerateRequest):
    """Generate (merge) or regenerate (replace) the schema from a prompt."""
    try:
        await editor_session.generate(request.prompt, request.mode)
        return {"success": True, "state": editor_session.get_state()}
    except GraphEditorError as e:
        raise _http_error(e)


# --- Layout ---

class ResizeRequest(BaseModel):
    width: float
    height: float


@app.get("/api/layout/config")
async def get_layout_config():
    """Get the simulation settings."""
    return {"config": editor_session.layout.config.model_dump(mode="json")}


@app.patch("/api/layout/config")
async def update_layout_config(request: SimulationConfigRequest):
    """Change simulation settings."""
    config = editor_session.set_config(**request.model_dump(exclude_none=True))
    return {"success": True, "config": config.model_dump(mode="json")}


@app.post("/api/layout/resize")
async def resize_canvas(request: ResizeRequest):
    """Report new canvas dimensions."""
    rebuilt = editor_session.resize(request.width, request.height)
    return {"success": True, "rebuilt": rebuilt}


@app.get("/api/layout/positions")
async def get_positions():
    """Latest arena positions for rendering."""
    return {"running": editor_session.layout.is_running, "positions": editor_session.positions()}


@app.post("/api/layout/unpin/{node_id}")
async def unpin_node(node_id: str):
    """Release a node's pin."""
    if editor_session.unpin(node_id):
        return {"success": True}
    raise HTTPException(status_code=404, detail="Node not found")


# --- Enums for Frontend ---

@app.get("/api/enums/kinds")
async def get_kinds():
    """Get available node kinds."""
    return {"kinds": [k.value for k in NodeKind]}


@app.get("/api/enums/groupings")
async def get_groupings():
    """Get available grouping modes."""
    return {"groupings": [g.value for g in GroupingMode]}


# --- WebSocket ---

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time updates.

    Clients connect here to receive graph_updated and positions events.
    """
    await ws_manager.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text('{"type": "pong"}')
    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)
    except Exception:
        await ws_manager.disconnect(websocket)


# --- Run with uvicorn ---

def run(host: Optional[str] = None, port: Optional[int] = None):
    import uvicorn
    uvicorn.run(app, host=host or settings.host, port=port or settings.port)


if __name__ == "__main__":
    run()
