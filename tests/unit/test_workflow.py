"""
Tests for the Workflow document: history selection and persistence.
"""

import asyncio
import json

import pytest

from ai_workflow_studio.core.data_types import NodeKind, NodeStatus
from ai_workflow_studio.core.workflow import FORMAT_VERSION, Workflow


def prompt_to_image(workflow, text="a cat"):
    graph = workflow.graph
    prompt = graph.create_node(NodeKind.PROMPT, prompt=text)
    image = graph.create_node(NodeKind.GENERATE_IMAGE)
    graph.connect(prompt.id, "text", image.id, "text")
    return prompt, image


class TestHistorySelection:
    """Selecting an older output without re-running."""

    def test_select_writes_output_field(self, workflow, providers):
        _, image = prompt_to_image(workflow)
        executor = workflow.executor(providers)
        asyncio.run(executor.run_from(image.id))
        asyncio.run(executor.run_from(image.id))
        assert image.data["outputImage"] == "https://cdn.example/out-2.png"

        entry = workflow.select_history(image.id, 0)

        assert entry.output == "https://cdn.example/out-1.png"
        assert image.data["outputImage"] == "https://cdn.example/out-1.png"
        assert workflow.history.length(image.id) == 2
        assert workflow.history.current(image.id) == entry.output

    def test_select_feeds_downstream(self, workflow, providers):
        _, image = prompt_to_image(workflow)
        output = workflow.graph.create_node(NodeKind.OUTPUT)
        workflow.graph.connect(image.id, "image", output.id, "image")
        executor = workflow.executor(providers)
        asyncio.run(executor.run_from(image.id))
        asyncio.run(executor.run_from(image.id))

        workflow.select_history(image.id, 0)
        asyncio.run(executor.run_from(output.id))

        assert output.data["image"] == "https://cdn.example/out-1.png"

    def test_select_out_of_range(self, workflow):
        node = workflow.graph.create_node(NodeKind.GENERATE_IMAGE)
        with pytest.raises(IndexError):
            workflow.select_history(node.id, 0)

    def test_select_unknown_node(self, workflow):
        with pytest.raises(KeyError):
            workflow.select_history("missing", 0)

    def test_history_follows_graph(self, workflow):
        node = workflow.graph.create_node(NodeKind.PROMPT)
        assert node.id in workflow.history

        workflow.graph.remove_node(node.id)
        assert node.id not in workflow.history


class TestPersistence:
    """Round-tripping a workflow through its JSON document."""

    def test_round_trip_after_run(self, workflow, providers):
        prompt, image = prompt_to_image(workflow)
        executor = workflow.executor(providers)
        asyncio.run(executor.run_all())

        document = json.loads(json.dumps(workflow.to_dict()))
        restored = Workflow.from_dict(document)

        assert document["version"] == FORMAT_VERSION
        assert restored.id == workflow.id
        assert restored.name == "Test"
        assert set(restored.graph.nodes) == {prompt.id, image.id}
        assert len(restored.graph.edges) == 1
        assert restored.history.entries(image.id) == workflow.history.entries(image.id)
        assert restored.history.selected_index(image.id) == 0
        assert restored.incurred_cost == pytest.approx(workflow.incurred_cost)
        assert restored.created_at == workflow.created_at

        restored_image = restored.graph.get_node(image.id)
        assert restored_image.status == NodeStatus.SUCCESS
        assert restored_image.data["outputImage"] == image.data["outputImage"]

    def test_busy_status_loads_idle(self, workflow):
        node = workflow.graph.create_node(NodeKind.GENERATE_IMAGE)
        node.mark_running()

        restored = Workflow.from_dict(workflow.to_dict())

        assert restored.graph.get_node(node.id).status == NodeStatus.IDLE

    def test_restored_workflow_runs(self, workflow, providers, fake_provider):
        prompt_to_image(workflow)
        restored = Workflow.from_dict(workflow.to_dict())

        result = asyncio.run(restored.executor(providers).run_all())

        assert result.failed == []
        assert len(result.succeeded) == 2
        assert len(fake_provider.calls) == 1

    def test_newer_version_rejected(self, workflow):
        document = workflow.to_dict()
        document["version"] = FORMAT_VERSION + 1
        with pytest.raises(ValueError, match="Unsupported"):
            Workflow.from_dict(document)

    def test_missing_cost_record(self, workflow):
        document = workflow.to_dict()
        del document["cost"]
        restored = Workflow.from_dict(document)
        assert restored.incurred_cost == 0.0
        assert restored.costs.workflow_id == workflow.id
