"""
Continuous force-directed layout for the schema canvas.

The engine keeps an arena of physical state (position, velocity, pin) keyed
by node id and advances it one tick at a time. Forces acting on every node
per tick:
- Repulsion: all node pairs push apart (Coulomb-like, scaled by charge)
- Spring: linked nodes pull toward a rest distance (Hooke-like)
- Centering: the layout's mean drifts toward the canvas centre
- Collision: nodes closer than twice their radius push apart
- Grid correction: in grid mode, free nodes are nudged toward the nearest
  grid intersection

Topology rebuilds (node count, link count, canvas size or grouping mode
changed) create a fresh arena but carry every surviving node's state over by
id. Cosmetic edits only refresh the label/kind/color mirror of each body and
leave motion untouched.

Field ownership: tick() is the only writer of free position and velocity;
the drag methods are the only writers of pins.
"""

import logging
import math
import random
from dataclasses import dataclass, replace
from typing import Optional

from .models import GraphData, GraphLink, GraphNode, GroupingMode, SimulationConfig

logger = logging.getLogger(__name__)


# Default layout parameters
DEFAULT_WIDTH = 800
DEFAULT_HEIGHT = 600
ALPHA_MIN = 0.001
ALPHA_DECAY = 1 - ALPHA_MIN ** (1 / 300)
VELOCITY_DECAY = 0.4
CENTER_STRENGTH = 0.05
COLLIDE_RADIUS = 30.0
COLLIDE_STRENGTH = 0.5
GRID_SIZE = 100.0
GRID_PULL = 0.1
DRAG_ALPHA_TARGET = 0.3
CONFIG_REHEAT_ALPHA = 0.3
INITIAL_RADIUS = 10.0
INITIAL_ANGLE = math.pi * (3 - math.sqrt(5))


@dataclass
class Body:
    """Physical state of one node, plus a mirror of its display fields."""
    id: str
    x: float = 0.0
    y: float = 0.0
    vx: float = 0.0
    vy: float = 0.0
    fx: Optional[float] = None
    fy: Optional[float] = None
    label: str = ""
    kind: str = "generic"
    color: Optional[str] = None

    @property
    def pinned(self) -> bool:
        return self.fx is not None or self.fy is not None

    def to_dict(self) -> dict:
        return {"id": self.id, "x": self.x, "y": self.y, "pinned": self.pinned}


def grid_correction(body: Body, strength: float = 1.0, grid_size: float = GRID_SIZE) -> tuple[float, float]:
    """
    Velocity nudge toward the nearest grid intersection.

    Pinned nodes get no correction, and a node already on a grid line gets
    zero along that axis.
    """
    if body.pinned:
        return 0.0, 0.0
    # round-half-up, matching the renderer's rounding
    gx = math.floor(body.x / grid_size + 0.5) * grid_size - body.x
    gy = math.floor(body.y / grid_size + 0.5) * grid_size - body.y
    return gx * GRID_PULL * strength, gy * GRID_PULL * strength


class LayoutEngine:
    """
    Force simulation over an id-keyed arena.

    Call sync() after every graph change; it decides between a full rebuild
    and an in-place cosmetic update. Call tick() on every frame.
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        width: float = DEFAULT_WIDTH,
        height: float = DEFAULT_HEIGHT,
        seed: Optional[int] = 0,
    ):
        self._config = config or SimulationConfig()
        self._width = width
        self._height = height
        self._bodies: dict[str, Body] = {}
        self._links: tuple[GraphLink, ...] = ()
        self._graph = GraphData()
        self._signature: Optional[tuple] = None
        self._dragging: set[str] = set()
        self._random = random.Random(seed)
        self._running = False
        self.alpha = 1.0
        self.alpha_target = 0.0
        self.rebuild_count = 0

    # --- Properties ---

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def dimensions(self) -> tuple[float, float]:
        return self._width, self._height

    @property
    def is_running(self) -> bool:
        """True while the simulation still has energy to spend."""
        return self._running

    def body(self, node_id: str) -> Optional[Body]:
        return self._bodies.get(node_id)

    def bodies(self) -> list[Body]:
        return list(self._bodies.values())

    def positions(self) -> dict[str, tuple[float, float]]:
        return {b.id: (b.x, b.y) for b in self._bodies.values()}

    # --- Topology ---

    def _topology_signature(self, graph: GraphData) -> tuple:
        return (
            len(graph.nodes),
            len(graph.links),
            self._width,
            self._height,
            self._config.grouping,
        )

    def sync(self, graph: GraphData, width: Optional[float] = None, height: Optional[float] = None) -> bool:
        """
        Bring the arena in line with graph.

        Returns True if a full rebuild happened, False for a cosmetic update.
        """
        if width is not None:
            self._width = width
        if height is not None:
            self._height = height

        signature = self._topology_signature(graph)
        same_members = set(self._bodies) == {n.id for n in graph.nodes}
        self._graph = graph
        self._links = graph.links

        if signature != self._signature or not same_members:
            self._rebuild(graph)
            self._signature = signature
            return True

        self._update_in_place(graph)
        return False

    def _rebuild(self, graph: GraphData) -> None:
        """Create a new arena, carrying over surviving bodies by id."""
        old = self._bodies
        arena: dict[str, Body] = {}
        carried = 0
        for index, node in enumerate(graph.nodes):
            previous = old.get(node.id)
            if previous is not None:
                arena[node.id] = replace(previous, label=node.label, kind=node.kind.value, color=node.color)
                carried += 1
            else:
                arena[node.id] = self._seed_body(node, index)
        self._bodies = arena
        self._dragging &= set(arena)
        self.alpha = 1.0
        self._running = bool(arena)
        self.rebuild_count += 1

        if self._config.grouping == GroupingMode.CIRCLE:
            logger.warning("Grouping mode 'circle' has no dedicated force; using base forces only")
        logger.debug(
            f"Layout rebuilt: {len(arena)} nodes ({carried} carried over), "
            f"{len(graph.links)} links, {self._width}x{self._height}, {self._config.grouping.value}"
        )

    def _seed_body(self, node: GraphNode, index: int) -> Body:
        """Initial physical state for a node entering the arena."""
        if node.x is not None and node.y is not None:
            x, y = node.x, node.y
        else:
            # Phyllotaxis spiral around the origin
            radius = INITIAL_RADIUS * math.sqrt(0.5 + index)
            angle = index * INITIAL_ANGLE
            x, y = radius * math.cos(angle), radius * math.sin(angle)
        return Body(
            id=node.id,
            x=node.fx if node.fx is not None else x,
            y=node.fy if node.fy is not None else y,
            vx=node.vx or 0.0,
            vy=node.vy or 0.0,
            fx=node.fx,
            fy=node.fy,
            label=node.label,
            kind=node.kind.value,
            color=node.color,
        )

    def _update_in_place(self, graph: GraphData) -> None:
        """Refresh display fields only; motion is left undisturbed."""
        for node in graph.nodes:
            body = self._bodies[node.id]
            body.label = node.label
            body.kind = node.kind.value
            body.color = node.color

    def resize(self, width: float, height: float) -> bool:
        """Change the canvas size. Rebuilds if the size actually changed."""
        return self.sync(self._graph, width=width, height=height)

    def update_config(self, config: SimulationConfig) -> bool:
        """
        Apply new simulation settings.

        A grouping change rebuilds the arena; other changes just reheat the
        running simulation. Returns True on rebuild.
        """
        grouping_changed = config.grouping != self._config.grouping
        self._config = config
        if grouping_changed:
            return self.sync(self._graph)
        self.reheat(CONFIG_REHEAT_ALPHA)
        return False

    def reheat(self, alpha: float = CONFIG_REHEAT_ALPHA) -> None:
        self.alpha = alpha
        self._running = bool(self._bodies)

    # --- Drag protocol ---

    def drag_start(self, node_id: str) -> bool:
        """Pin the node where it is and keep the rest of the graph warm."""
        body = self._bodies.get(node_id)
        if body is None:
            return False
        self._dragging.add(node_id)
        self.alpha_target = DRAG_ALPHA_TARGET
        self._running = True
        body.fx = body.x
        body.fy = body.y
        return True

    def drag_move(self, node_id: str, x: float, y: float) -> bool:
        """Move the pin to the pointer position."""
        body = self._bodies.get(node_id)
        if body is None:
            return False
        body.fx = x
        body.fy = y
        return True

    def drag_end(self, node_id: str) -> bool:
        """
        Let the simulation cool down again.

        The pin stays in place; unpin() releases it.
        """
        self._dragging.discard(node_id)
        if not self._dragging:
            self.alpha_target = 0.0
        return node_id in self._bodies

    def unpin(self, node_id: str) -> bool:
        body = self._bodies.get(node_id)
        if body is None:
            return False
        body.fx = None
        body.fy = None
        self.reheat()
        return True

    # --- Simulation ---

    def _jiggle(self) -> float:
        return (self._random.random() - 0.5) * 1e-6

    def _resolve_links(self) -> list[tuple[Body, Body]]:
        """Throwaway id -> body projection of the link list for one tick."""
        resolved = []
        for link in self._links:
            source = self._bodies.get(link.source_id)
            target = self._bodies.get(link.target_id)
            if source is None or target is None or source is target:
                continue
            resolved.append((source, target))
        return resolved

    def _apply_links(self, resolved: list[tuple[Body, Body]]) -> None:
        """Spring force toward the configured rest distance."""
        degree: dict[str, int] = {}
        for source, target in resolved:
            degree[source.id] = degree.get(source.id, 0) + 1
            degree[target.id] = degree.get(target.id, 0) + 1

        distance = self._config.distance
        for source, target in resolved:
            dx = target.x + target.vx - source.x - source.vx or self._jiggle()
            dy = target.y + target.vy - source.y - source.vy or self._jiggle()
            length = math.sqrt(dx * dx + dy * dy)
            strength = 1 / min(degree[source.id], degree[target.id])
            bias = degree[source.id] / (degree[source.id] + degree[target.id])

            # Hooke's law around the rest length
            scale = (length - distance) / length * self.alpha * strength
            dx *= scale
            dy *= scale
            target.vx -= dx * bias
            target.vy -= dy * bias
            source.vx += dx * (1 - bias)
            source.vy += dy * (1 - bias)

    def _apply_charge(self, bodies: list[Body]) -> None:
        """Pairwise repulsion, inversely proportional to squared distance."""
        charge = self._config.charge
        for n1 in bodies:
            for n2 in bodies:
                if n1 is n2:
                    continue
                dx = n2.x - n1.x
                dy = n2.y - n1.y
                dist2 = dx * dx + dy * dy
                if dx == 0:
                    dx = self._jiggle()
                    dist2 += dx * dx
                if dy == 0:
                    dy = self._jiggle()
                    dist2 += dy * dy
                if dist2 < 1:
                    dist2 = math.sqrt(dist2)

                # Coulomb's law: negative charge pushes n1 away from n2
                weight = charge * self.alpha / dist2
                n1.vx += dx * weight
                n1.vy += dy * weight

    def _apply_center(self, bodies: list[Body]) -> None:
        """Shift free nodes so the layout's mean drifts toward the centre."""
        if not bodies:
            return
        mean_x = sum(b.x for b in bodies) / len(bodies)
        mean_y = sum(b.y for b in bodies) / len(bodies)
        shift_x = (mean_x - self._width / 2) * CENTER_STRENGTH
        shift_y = (mean_y - self._height / 2) * CENTER_STRENGTH
        for body in bodies:
            if body.fx is None:
                body.x -= shift_x
            if body.fy is None:
                body.y -= shift_y

    def _apply_collide(self, bodies: list[Body]) -> None:
        """Push apart nodes whose circles overlap."""
        reach = COLLIDE_RADIUS * 2
        for i, n1 in enumerate(bodies):
            x1 = n1.x + n1.vx
            y1 = n1.y + n1.vy
            for n2 in bodies[i + 1:]:
                dx = x1 - n2.x - n2.vx
                dy = y1 - n2.y - n2.vy
                dist2 = dx * dx + dy * dy
                if dist2 >= reach * reach:
                    continue
                if dx == 0:
                    dx = self._jiggle()
                    dist2 += dx * dx
                if dy == 0:
                    dy = self._jiggle()
                    dist2 += dy * dy
                dist = math.sqrt(dist2)
                scale = (reach - dist) / dist * COLLIDE_STRENGTH
                dx *= scale
                dy *= scale
                # Equal radii split the push evenly
                n1.vx += dx * 0.5
                n1.vy += dy * 0.5
                n2.vx -= dx * 0.5
                n2.vy -= dy * 0.5

    def _integrate(self, bodies: list[Body]) -> None:
        for body in bodies:
            if body.fx is None:
                body.vx *= 1 - VELOCITY_DECAY
                body.x += body.vx
            else:
                body.x = body.fx
                body.vx = 0.0
            if body.fy is None:
                body.vy *= 1 - VELOCITY_DECAY
                body.y += body.vy
            else:
                body.y = body.fy
                body.vy = 0.0

    def _apply_grid(self, bodies: list[Body]) -> None:
        strength = self._config.strength
        for body in bodies:
            dvx, dvy = grid_correction(body, strength)
            body.vx += dvx
            body.vy += dvy

    def tick(self, iterations: int = 1) -> bool:
        """
        Advance the simulation.

        Returns True if at least one step ran. A cold simulation (alpha below
        ALPHA_MIN) does nothing until reheated.
        """
        stepped = False
        for _ in range(iterations):
            if not self._running:
                break
            self._step()
            stepped = True
            if self.alpha < ALPHA_MIN:
                self._running = False
        return stepped

    def _step(self) -> None:
        self.alpha += (self.alpha_target - self.alpha) * ALPHA_DECAY
        bodies = list(self._bodies.values())

        self._apply_links(self._resolve_links())
        self._apply_charge(bodies)
        self._apply_center(bodies)
        self._apply_collide(bodies)
        self._integrate(bodies)

        if self._config.grouping == GroupingMode.GRID:
            self._apply_grid(bodies)

    # --- Read-back ---

    def apply_positions(self, graph: GraphData, include_pins: bool = False) -> GraphData:
        """
        Copy of graph with arena positions written into the nodes.

        Pins are written too when include_pins is set. Velocity is never
        written back. Nodes not in the arena are unchanged.
        """
        nodes = []
        for node in graph.nodes:
            body = self._bodies.get(node.id)
            if body is not None:
                update = {"x": body.x, "y": body.y}
                if include_pins:
                    update.update(fx=body.fx, fy=body.fy)
                node = node.model_copy(update=update)
            nodes.append(node)
        return graph.model_copy(update={"nodes": tuple(nodes)})
