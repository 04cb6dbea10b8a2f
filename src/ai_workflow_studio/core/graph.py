"""
Workflow Graph Model - Core data structures for the node-based workflow.

This module defines the fundamental building blocks:
- Node: A single processing unit with a kind, data payload and status
- Edge: A link from a node's source handle to another node's target handle
- NodeGroup: A purely organizational container of nodes
- WorkflowGraph: The complete graph, enforcing structural invariants

All structural mutation goes through WorkflowGraph so that acyclicity,
unique ids, handle compatibility and single-occupancy of target handles
are checked in one place. Listeners are notified of every structural
change so the executor and history can follow along.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Iterator, NewType
from uuid import uuid4

from ai_workflow_studio.core.data_types import DataValue, NodeKind, NodeStatus
from ai_workflow_studio.core.errors import StructuralError
from ai_workflow_studio.core.node_types import NodeRegistry, NodeType

logger = logging.getLogger(__name__)


# Type aliases for clarity
NodeId = NewType("NodeId", str)
EdgeId = NewType("EdgeId", str)
GroupId = NewType("GroupId", str)


def new_node_id(kind: NodeKind) -> NodeId:
    """Generate a new unique node ID, prefixed with the node kind."""
    return NodeId(f"{kind.value}-{uuid4().hex[:12]}")


def new_edge_id() -> EdgeId:
    """Generate a new unique edge ID."""
    return EdgeId(f"edge-{uuid4().hex[:12]}")


def new_group_id() -> GroupId:
    return GroupId(f"group-{uuid4().hex[:12]}")


@dataclass
class Point2D:
    """2D point for node positioning on the canvas."""
    x: float = 0.0
    y: float = 0.0

    def __add__(self, other: Point2D) -> Point2D:
        return Point2D(self.x + other.x, self.y + other.y)

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Point2D:
        data = data or {}
        return cls(data.get("x", 0.0), data.get("y", 0.0))


@dataclass
class Size2D:
    """2D size for node dimensions."""
    width: float = 300.0
    height: float = 300.0

    def to_dict(self) -> dict[str, float]:
        return {"width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Size2D:
        data = data or {}
        return cls(data.get("width", 300.0), data.get("height", 300.0))


@dataclass(frozen=True)
class SourceHandle:
    """Reference to an output handle on a node."""
    node_id: NodeId
    handle: str


@dataclass(frozen=True)
class TargetHandle:
    """Reference to an input handle on a node."""
    node_id: NodeId
    handle: str


@dataclass
class Edge:
    """
    A directed data dependency between two node handles.

    A paused edge exists structurally but carries neither data nor
    readiness until it is resumed.
    """
    id: EdgeId
    source: SourceHandle
    target: TargetHandle
    paused: bool = False

    @classmethod
    def create(
        cls,
        source_node: NodeId,
        source_handle: str,
        target_node: NodeId,
        target_handle: str,
        paused: bool = False,
    ) -> Edge:
        """Factory method to create a new edge."""
        return cls(
            id=new_edge_id(),
            source=SourceHandle(source_node, source_handle),
            target=TargetHandle(target_node, target_handle),
            paused=paused,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source.node_id,
            "sourceHandle": self.source.handle,
            "target": self.target.node_id,
            "targetHandle": self.target.handle,
            "data": {"hasPause": self.paused},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Edge:
        return cls(
            id=EdgeId(data["id"]),
            source=SourceHandle(NodeId(data["source"]), data["sourceHandle"]),
            target=TargetHandle(NodeId(data["target"]), data["targetHandle"]),
            paused=bool((data.get("data") or {}).get("hasPause", False)),
        )


@dataclass
class Node:
    """
    A single node in the workflow graph.

    Nodes have:
    - A unique ID
    - A kind (references a NodeType in the registry)
    - A type-specific data payload holding inputs, settings and the
      most recent output
    - An execution status and the last error message
    - Position and size on the canvas
    - An optional owning split-grid node
    """
    id: NodeId
    kind: NodeKind
    data: dict[str, DataValue] = field(default_factory=dict)
    status: NodeStatus = NodeStatus.IDLE
    error: str | None = None
    position: Point2D = field(default_factory=Point2D)
    size: Size2D = field(default_factory=Size2D)
    parent_id: NodeId | None = None

    @classmethod
    def create(
        cls,
        kind: NodeKind,
        data: dict[str, DataValue] | None = None,
        position: Point2D | None = None,
    ) -> Node:
        """Factory method to create a new node."""
        return cls(
            id=new_node_id(kind),
            kind=kind,
            data=dict(data or {}),
            position=position or Point2D(),
        )

    def get(self, name: str, default: Any = None) -> Any:
        """Get a data field."""
        return self.data.get(name, default)

    def mark_queued(self) -> None:
        self.status = NodeStatus.QUEUED
        self.error = None

    def mark_running(self) -> None:
        self.status = NodeStatus.RUNNING
        self.error = None

    def mark_success(self) -> None:
        self.status = NodeStatus.SUCCESS
        self.error = None

    def mark_error(self, message: str) -> None:
        """Mark this node as failed with the given message."""
        self.status = NodeStatus.ERROR
        self.error = message

    def mark_idle(self) -> None:
        """Return to idle; used when a run is cancelled or never reached this node."""
        self.status = NodeStatus.IDLE
        self.error = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind.value,
            "position": self.position.to_dict(),
            "size": self.size.to_dict(),
            "parentId": self.parent_id,
            "status": self.status.value,
            "error": self.error,
            "data": copy.deepcopy(self.data),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        status = NodeStatus(data.get("status", NodeStatus.IDLE.value))
        if status.is_busy:
            # Nothing can be in flight in a freshly loaded document
            status = NodeStatus.IDLE
        return cls(
            id=NodeId(data["id"]),
            kind=NodeKind(data["type"]),
            data=copy.deepcopy(data.get("data") or {}),
            status=status,
            error=data.get("error"),
            position=Point2D.from_dict(data.get("position")),
            size=Size2D.from_dict(data.get("size")),
            parent_id=data.get("parentId"),
        )


# Group background colors (dark mode tints)
GROUP_COLORS: dict[str, str] = {
    "neutral": "#262626",
    "blue": "#1e3a5f",
    "green": "#1a3d2e",
    "purple": "#2d2458",
    "orange": "#3d2a1a",
    "red": "#3d1a1a",
}


@dataclass
class NodeGroup:
    """
    A visual grouping of nodes.

    Groups carry no execution semantics.
    """
    id: GroupId
    name: str
    color: str = "neutral"
    position: Point2D = field(default_factory=Point2D)
    size: Size2D = field(default_factory=Size2D)
    locked: bool = False
    node_ids: list[NodeId] = field(default_factory=list)

    @classmethod
    def create(cls, name: str, node_ids: list[NodeId] | None = None, color: str = "neutral") -> NodeGroup:
        """Factory method to create a new group."""
        if color not in GROUP_COLORS:
            raise ValueError(f"Unknown group color: {color}")
        return cls(id=new_group_id(), name=name, color=color, node_ids=list(node_ids or []))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "position": self.position.to_dict(),
            "size": self.size.to_dict(),
            "locked": self.locked,
            "nodeIds": list(self.node_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeGroup:
        return cls(
            id=GroupId(data["id"]),
            name=data.get("name", ""),
            color=data.get("color", "neutral"),
            position=Point2D.from_dict(data.get("position")),
            size=Size2D.from_dict(data.get("size")),
            locked=bool(data.get("locked", False)),
            node_ids=[NodeId(n) for n in data.get("nodeIds", [])],
        )


class GraphEventKind(Enum):
    """Kinds of structural change reported to graph listeners."""
    NODE_ADDED = auto()
    NODE_REMOVED = auto()
    EDGE_ADDED = auto()
    EDGE_REMOVED = auto()
    EDGE_PAUSED = auto()
    EDGE_RESUMED = auto()


@dataclass(frozen=True)
class GraphEvent:
    """
    A structural change.

    Attributes:
        kind: What happened
        node_ids: Nodes added or removed
        edge_ids: Edges added, removed, paused or resumed
        affected_node_ids: Surviving nodes that lost an incoming edge
    """
    kind: GraphEventKind
    node_ids: tuple[NodeId, ...] = ()
    edge_ids: tuple[EdgeId, ...] = ()
    affected_node_ids: tuple[NodeId, ...] = ()


GraphListener = Callable[[GraphEvent], None]


class WorkflowGraph:
    """
    The complete node graph for a workflow.

    Contains nodes, edges between them, and optional groupings.
    Provides the mutation API, adjacency queries, and serialization.
    """

    def __init__(self, name: str = "Untitled", registry: NodeRegistry | None = None):
        if registry is None:
            from ai_workflow_studio.nodes import default_node_registry
            registry = default_node_registry()
        self.id: str = uuid4().hex
        self.name: str = name
        self.registry = registry
        self._nodes: dict[NodeId, Node] = {}
        self._edges: dict[EdgeId, Edge] = {}
        self._groups: dict[GroupId, NodeGroup] = {}
        self._listeners: list[GraphListener] = []

    # --- Listeners ---

    def subscribe(self, listener: GraphListener) -> Callable[[], None]:
        """
        Register a structural change listener.

        Returns a callable that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: GraphEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    # --- Node operations ---

    @property
    def nodes(self) -> dict[NodeId, Node]:
        """Get all nodes (read-only view)."""
        return self._nodes.copy()

    def get_node(self, node_id: NodeId) -> Node | None:
        """Get a node by ID."""
        return self._nodes.get(node_id)

    def require_node(self, node_id: NodeId) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise KeyError(f"Unknown node: {node_id}")
        return node

    def node_type(self, node: Node) -> NodeType:
        """Get the registered type of a node."""
        node_type = self.registry.get(node.kind)
        if node_type is None:
            raise StructuralError(f"Node kind not registered: {node.kind.value}")
        return node_type

    def add_node(self, node: Node) -> Node:
        """
        Add a node to the graph.

        Raises:
            StructuralError: Duplicate ID or unregistered kind.
        """
        if node.id in self._nodes:
            raise StructuralError(f"Duplicate node id: {node.id}")
        if node.kind not in self.registry:
            raise StructuralError(f"Node kind not registered: {node.kind.value}")
        if node.parent_id is not None and node.parent_id not in self._nodes:
            raise StructuralError(f"Unknown parent node: {node.parent_id}")

        self._nodes[node.id] = node
        self._emit(GraphEvent(GraphEventKind.NODE_ADDED, node_ids=(node.id,)))
        return node

    def create_node(
        self,
        kind: NodeKind,
        position: Point2D | None = None,
        parent_id: NodeId | None = None,
        **data: DataValue,
    ) -> Node:
        """Create a node with its kind's default data, overridden by `data`, and add it."""
        node_type = self.registry.get(kind)
        if node_type is None:
            raise StructuralError(f"Node kind not registered: {kind.value}")

        payload = node_type.create_default_data()
        payload.update(data)
        node = Node.create(kind, payload, position)
        node.size = node_type.default_size()
        node.parent_id = parent_id
        return self.add_node(node)

    def remove_node(self, node_id: NodeId) -> list[Node]:
        """
        Remove a node, its incident edges and any nodes it owns.

        Returns the removed nodes (empty if not found). Nodes that lost an
        incoming edge are reported to listeners as affected.
        """
        if node_id not in self._nodes:
            return []

        doomed = self._owned_closure(node_id)
        removed_edges = [
            e for e in self._edges.values()
            if e.source.node_id in doomed or e.target.node_id in doomed
        ]
        affected = {
            e.target.node_id for e in removed_edges
            if e.target.node_id not in doomed
        }

        for edge in removed_edges:
            del self._edges[edge.id]

        removed = [self._nodes.pop(nid) for nid in doomed]

        for group in self._groups.values():
            group.node_ids = [nid for nid in group.node_ids if nid not in doomed]

        # Keep surviving owners' child lists in sync
        for node in removed:
            owner = self._nodes.get(node.parent_id) if node.parent_id else None
            if owner is not None:
                children = owner.data.get("childNodeIds") or []
                owner.data["childNodeIds"] = [c for c in children if c != node.id]

        logger.debug("Removed nodes %s and %d edges", sorted(doomed), len(removed_edges))
        self._emit(GraphEvent(
            GraphEventKind.NODE_REMOVED,
            node_ids=tuple(n.id for n in removed),
            edge_ids=tuple(e.id for e in removed_edges),
            affected_node_ids=tuple(sorted(affected)),
        ))
        return removed

    def _owned_closure(self, node_id: NodeId) -> list[NodeId]:
        """The node plus every node it owns, transitively."""
        result: list[NodeId] = []
        to_visit = [node_id]
        while to_visit:
            current = to_visit.pop()
            if current in result:
                continue
            result.append(current)
            to_visit.extend(self.children_of(current))
        return result

    def children_of(self, node_id: NodeId) -> list[NodeId]:
        """Nodes owned by the given node, in insertion order."""
        return [n.id for n in self._nodes.values() if n.parent_id == node_id]

    def update_node_data(self, node_id: NodeId, updates: dict[str, DataValue]) -> Node:
        """Apply direct user edits to a node's data fields."""
        node = self.require_node(node_id)
        node.data.update(updates)
        return node

    # --- Edge operations ---

    @property
    def edges(self) -> list[Edge]:
        """Get all edges (read-only copy)."""
        return list(self._edges.values())

    def get_edge(self, edge_id: EdgeId) -> Edge | None:
        return self._edges.get(edge_id)

    def add_edge(self, edge: Edge) -> Edge:
        """
        Add an edge to the graph.

        Raises:
            StructuralError: If either node or handle doesn't exist, the
                handle types differ, the target handle is already
                occupied, or the edge would create a cycle. The graph is
                left unchanged.
        """
        if edge.id in self._edges:
            raise StructuralError(f"Duplicate edge id: {edge.id}")

        source = self._nodes.get(edge.source.node_id)
        target = self._nodes.get(edge.target.node_id)
        if source is None:
            raise StructuralError(f"Unknown source node: {edge.source.node_id}")
        if target is None:
            raise StructuralError(f"Unknown target node: {edge.target.node_id}")

        output_def = self.node_type(source).get_output(edge.source.handle)
        if output_def is None:
            raise StructuralError(
                f"{source.kind.value} has no output handle '{edge.source.handle}'"
            )
        count = output_def.handle_count(source.data)
        if count is not None and output_def.index_of(edge.source.handle) >= count:
            raise StructuralError(
                f"{source.kind.value} {source.id} has {count} '{output_def.name}' "
                f"handles, no '{edge.source.handle}'"
            )
        input_def = self.node_type(target).get_input(edge.target.handle)
        if input_def is None:
            raise StructuralError(
                f"{target.kind.value} has no input handle '{edge.target.handle}'"
            )
        if not output_def.data_type.is_compatible_with(input_def.data_type):
            raise StructuralError(
                f"Cannot connect {output_def.data_type.value} output "
                f"to {input_def.data_type.value} input"
            )

        if self.get_input_edge(edge.target.node_id, edge.target.handle) is not None:
            raise StructuralError(
                f"Input '{edge.target.handle}' of {edge.target.node_id} is already connected"
            )

        if self._would_create_cycle(edge):
            raise StructuralError("Connection would create a cycle")

        self._edges[edge.id] = edge
        self._emit(GraphEvent(GraphEventKind.EDGE_ADDED, edge_ids=(edge.id,)))
        return edge

    def connect(
        self,
        source_node: NodeId,
        source_handle: str,
        target_node: NodeId,
        target_handle: str,
        paused: bool = False,
    ) -> Edge:
        """Create and add an edge."""
        return self.add_edge(
            Edge.create(source_node, source_handle, target_node, target_handle, paused)
        )

    def remove_edge(self, edge_id: EdgeId) -> Edge | None:
        """Remove an edge by ID."""
        edge = self._edges.pop(edge_id, None)
        if edge is not None:
            self._emit(GraphEvent(
                GraphEventKind.EDGE_REMOVED,
                edge_ids=(edge.id,),
                affected_node_ids=(edge.target.node_id,),
            ))
        return edge

    def set_edge_paused(self, edge_id: EdgeId, paused: bool) -> Edge:
        """
        Pause or resume data propagation across an edge.

        Raises:
            KeyError: If the edge doesn't exist.
        """
        edge = self._edges.get(edge_id)
        if edge is None:
            raise KeyError(f"Unknown edge: {edge_id}")
        if edge.paused != paused:
            edge.paused = paused
            kind = GraphEventKind.EDGE_PAUSED if paused else GraphEventKind.EDGE_RESUMED
            self._emit(GraphEvent(kind, edge_ids=(edge.id,)))
        return edge

    def get_input_edge(self, node_id: NodeId, handle: str) -> Edge | None:
        """Get the edge feeding into a specific input handle (paused or not)."""
        for edge in self._edges.values():
            if edge.target.node_id == node_id and edge.target.handle == handle:
                return edge
        return None

    def edges_from(self, node_id: NodeId) -> list[Edge]:
        return [e for e in self._edges.values() if e.source.node_id == node_id]

    # --- Graph analysis ---

    def dependencies_of(self, node_id: NodeId) -> set[NodeId]:
        """Nodes feeding this node over non-paused edges."""
        return {
            e.source.node_id for e in self._edges.values()
            if e.target.node_id == node_id and not e.paused
        }

    def dependents_of(self, node_id: NodeId) -> set[NodeId]:
        """Nodes consuming this node's outputs over non-paused edges."""
        return {
            e.target.node_id for e in self._edges.values()
            if e.source.node_id == node_id and not e.paused
        }

    def reachable_from(self, node_id: NodeId) -> set[NodeId]:
        """The node plus every node reachable forward over non-paused edges."""
        reached: set[NodeId] = set()
        to_visit = [node_id]

        while to_visit:
            current = to_visit.pop()
            if current in reached or current not in self._nodes:
                continue
            reached.add(current)
            to_visit.extend(self.dependents_of(current))

        return reached

    def get_execution_order(self) -> list[NodeId]:
        """
        Get nodes in topological order over all edges, paused included.

        Raises:
            ValueError: If the graph contains a cycle.
        """
        dependencies: dict[NodeId, set[NodeId]] = {nid: set() for nid in self._nodes}
        for edge in self._edges.values():
            dependencies[edge.target.node_id].add(edge.source.node_id)

        # Kahn's algorithm for topological sort
        result: list[NodeId] = []
        no_deps = [nid for nid, deps in dependencies.items() if not deps]

        while no_deps:
            node_id = no_deps.pop(0)
            result.append(node_id)

            for nid, deps in dependencies.items():
                if node_id in deps:
                    deps.remove(node_id)
                    if not deps and nid not in result and nid not in no_deps:
                        no_deps.append(nid)

        if len(result) != len(self._nodes):
            raise ValueError("Graph contains a cycle")

        return result

    def _would_create_cycle(self, edge: Edge) -> bool:
        """Check if adding this edge would create a cycle."""
        if edge.source.node_id == edge.target.node_id:
            return True

        # If the source is reachable from the target over existing edges,
        # adding source->target would close a cycle. Paused edges count.
        visited: set[NodeId] = set()
        to_visit = [edge.target.node_id]

        while to_visit:
            current = to_visit.pop()
            if current in visited:
                continue
            visited.add(current)

            for existing in self._edges.values():
                if existing.source.node_id == current:
                    if existing.target.node_id == edge.source.node_id:
                        return True
                    to_visit.append(existing.target.node_id)

        return False

    # --- Group operations ---

    @property
    def groups(self) -> list[NodeGroup]:
        """Get all groups (read-only copy)."""
        return list(self._groups.values())

    def add_group(self, group: NodeGroup) -> NodeGroup:
        """Add a group to the graph."""
        if group.id in self._groups:
            raise StructuralError(f"Duplicate group id: {group.id}")
        unknown = [nid for nid in group.node_ids if nid not in self._nodes]
        if unknown:
            raise StructuralError(f"Group references unknown nodes: {unknown}")
        self._groups[group.id] = group
        return group

    def remove_group(self, group_id: GroupId) -> NodeGroup | None:
        """Remove a group (does not remove the nodes)."""
        return self._groups.pop(group_id, None)

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "nodes": [node.to_dict() for node in self._nodes.values()],
            "edges": [edge.to_dict() for edge in self._edges.values()],
            "groups": [group.to_dict() for group in self._groups.values()],
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        registry: NodeRegistry | None = None,
    ) -> WorkflowGraph:
        """
        Rebuild a graph, re-validating every node and edge.

        Raises:
            StructuralError: If the document violates a graph invariant.
        """
        graph = cls(name=data.get("name", "Untitled"), registry=registry)
        graph.id = data.get("id", graph.id)

        # Owners first so parent references resolve
        nodes = [Node.from_dict(n) for n in data.get("nodes", [])]
        pending = list(nodes)
        while pending:
            progressed = False
            for node in list(pending):
                if node.parent_id is None or node.parent_id in graph._nodes:
                    graph.add_node(node)
                    pending.remove(node)
                    progressed = True
            if not progressed:
                raise StructuralError(
                    f"Unresolvable parent references: {[n.id for n in pending]}"
                )

        for edge_data in data.get("edges", []):
            graph.add_edge(Edge.from_dict(edge_data))
        for group_data in data.get("groups", []):
            graph.add_group(NodeGroup.from_dict(group_data))
        return graph

    # --- Utility ---

    def __len__(self) -> int:
        """Return the number of nodes."""
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        """Check if a node exists in the graph."""
        return node_id in self._nodes

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self._nodes.values()))
