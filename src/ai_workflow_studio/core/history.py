"""
Output History - Per-node record of everything a node has produced.

Each node owns an append-only list of outputs plus a movable "selected"
pointer. Selecting an older entry never truncates; generating again
appends after the end, so no paid-for output is ever lost.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from ai_workflow_studio.core.graph import GraphEvent, GraphEventKind, NodeId, WorkflowGraph


@dataclass(frozen=True)
class HistoryEntry:
    """A single produced output. Immutable once recorded."""
    output: Any
    id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: float = field(default_factory=time.time)
    prompt: str | None = None
    model: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "output": self.output,
            "timestamp": self.timestamp,
            "prompt": self.prompt,
            "model": self.model,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        return cls(
            output=data.get("output"),
            id=data.get("id") or uuid4().hex,
            timestamp=data.get("timestamp", 0.0),
            prompt=data.get("prompt"),
            model=data.get("model"),
        )


@dataclass
class NodeHistory:
    """History list and selection pointer for one node."""
    entries: list[HistoryEntry] = field(default_factory=list)
    selected_index: int | None = None


class HistoryManager:
    """
    Tracks output history for every node in a workflow.

    There is exactly one history list per node. Attach the manager to a
    graph with `follow` to have lists created and dropped with nodes.
    """

    def __init__(self) -> None:
        self._histories: dict[NodeId, NodeHistory] = {}

    def follow(self, graph: WorkflowGraph) -> None:
        """Keep one history list per node of `graph`, now and on future changes."""
        for node_id in graph.nodes:
            self.ensure(node_id)
        for node_id in list(self._histories):
            if node_id not in graph:
                self.discard(node_id)
        graph.subscribe(self._on_graph_event)

    def _on_graph_event(self, event: GraphEvent) -> None:
        if event.kind == GraphEventKind.NODE_ADDED:
            for node_id in event.node_ids:
                self.ensure(node_id)
        elif event.kind == GraphEventKind.NODE_REMOVED:
            for node_id in event.node_ids:
                self.discard(node_id)

    def ensure(self, node_id: NodeId) -> NodeHistory:
        """Get the history list for a node, creating an empty one if needed."""
        history = self._histories.get(node_id)
        if history is None:
            history = self._histories[node_id] = NodeHistory()
        return history

    def discard(self, node_id: NodeId) -> None:
        self._histories.pop(node_id, None)

    def append(self, node_id: NodeId, output: Any, **info: Any) -> HistoryEntry:
        """
        Record a new output and select it.

        Keyword arguments (prompt, model) are stored on the entry.
        """
        history = self.ensure(node_id)
        entry = HistoryEntry(output=output, **info)
        history.entries.append(entry)
        history.selected_index = len(history.entries) - 1
        return entry

    def select(self, node_id: NodeId, index: int) -> HistoryEntry:
        """
        Move the selected pointer without touching the entries.

        Raises:
            IndexError: If index is outside the node's history.
        """
        history = self.ensure(node_id)
        if not 0 <= index < len(history.entries):
            raise IndexError(
                f"History index {index} out of range for {node_id} "
                f"({len(history.entries)} entries)"
            )
        history.selected_index = index
        return history.entries[index]

    def current(self, node_id: NodeId) -> Any | None:
        """The selected output, or None when nothing has been produced."""
        entry = self.current_entry(node_id)
        return entry.output if entry is not None else None

    def current_entry(self, node_id: NodeId) -> HistoryEntry | None:
        history = self._histories.get(node_id)
        if history is None or history.selected_index is None:
            return None
        return history.entries[history.selected_index]

    def entries(self, node_id: NodeId) -> list[HistoryEntry]:
        """All entries for a node, oldest first (copy)."""
        history = self._histories.get(node_id)
        return list(history.entries) if history else []

    def selected_index(self, node_id: NodeId) -> int | None:
        history = self._histories.get(node_id)
        return history.selected_index if history else None

    def length(self, node_id: NodeId) -> int:
        history = self._histories.get(node_id)
        return len(history.entries) if history else 0

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._histories

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        return {
            node_id: {
                "entries": [e.to_dict() for e in history.entries],
                "selectedIndex": history.selected_index,
            }
            for node_id, history in self._histories.items()
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryManager:
        manager = cls()
        for node_id, item in data.items():
            entries = [HistoryEntry.from_dict(e) for e in item.get("entries", [])]
            selected = item.get("selectedIndex")
            if entries and (selected is None or not 0 <= selected < len(entries)):
                selected = len(entries) - 1
            if not entries:
                selected = None
            manager._histories[NodeId(node_id)] = NodeHistory(entries, selected)
        return manager
