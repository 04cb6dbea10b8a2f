"""
Tests for the output history manager.
"""

import pytest

from ai_workflow_studio.core.data_types import NodeKind
from ai_workflow_studio.core.graph import WorkflowGraph
from ai_workflow_studio.core.history import HistoryEntry, HistoryManager


class TestHistoryManager:
    """Tests for append/select/current."""

    def test_empty(self):
        history = HistoryManager()
        assert history.current("n1") is None
        assert history.selected_index("n1") is None
        assert history.length("n1") == 0

    def test_append_selects_new_entry(self):
        history = HistoryManager()
        history.append("n1", "first")
        entry = history.append("n1", "second", prompt="a cat", model="nano-banana")

        assert history.length("n1") == 2
        assert history.selected_index("n1") == 1
        assert history.current("n1") == "second"
        assert entry.prompt == "a cat"
        assert entry.model == "nano-banana"

    def test_select_moves_pointer_only(self):
        history = HistoryManager()
        for output in ("a", "b", "c"):
            history.append("n1", output)

        history.select("n1", 0)

        assert history.current("n1") == "a"
        assert [e.output for e in history.entries("n1")] == ["a", "b", "c"]

    def test_append_after_select_goes_to_tail(self):
        history = HistoryManager()
        history.append("n1", "a")
        history.append("n1", "b")
        history.select("n1", 0)

        history.append("n1", "c")

        assert [e.output for e in history.entries("n1")] == ["a", "b", "c"]
        assert history.selected_index("n1") == 2

    def test_select_out_of_range(self):
        history = HistoryManager()
        history.append("n1", "a")
        with pytest.raises(IndexError):
            history.select("n1", 1)
        with pytest.raises(IndexError):
            history.select("n1", -1)
        assert history.selected_index("n1") == 0

    def test_entries_are_immutable(self):
        entry = HistoryEntry(output="x")
        with pytest.raises(AttributeError):
            entry.output = "y"

    def test_entries_returns_copy(self):
        history = HistoryManager()
        history.append("n1", "a")
        history.entries("n1").clear()
        assert history.length("n1") == 1

    def test_round_trip(self):
        history = HistoryManager()
        history.append("n1", "a", prompt="p")
        history.append("n1", "b")
        history.select("n1", 0)
        history.ensure("n2")

        restored = HistoryManager.from_dict(history.to_dict())

        assert restored.to_dict() == history.to_dict()
        assert restored.current("n1") == "a"
        assert "n2" in restored

    def test_from_dict_clamps_bad_selection(self):
        restored = HistoryManager.from_dict({
            "n1": {"entries": [{"output": "a"}, {"output": "b"}], "selectedIndex": 7},
            "n2": {"entries": [], "selectedIndex": 0},
        })
        assert restored.selected_index("n1") == 1
        assert restored.selected_index("n2") is None


class TestFollowGraph:
    """History lists follow node creation and deletion."""

    def test_one_list_per_node(self):
        graph = WorkflowGraph()
        existing = graph.create_node(NodeKind.PROMPT)
        history = HistoryManager()
        history.follow(graph)

        added = graph.create_node(NodeKind.GENERATE_IMAGE)
        assert existing.id in history
        assert added.id in history

        history.append(added.id, "img")
        graph.remove_node(added.id)
        assert added.id not in history
