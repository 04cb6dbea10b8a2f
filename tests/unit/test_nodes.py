"""
Tests for the built-in node executors, run directly with a stub context.
"""

import asyncio

import pytest

from ai_workflow_studio.core.data_types import DataType, ImageData, NodeKind
from ai_workflow_studio.core.errors import ValidationError
from ai_workflow_studio.core.node_types import NodeCategory
from ai_workflow_studio.nodes import default_node_registry
from ai_workflow_studio.nodes.filter.annotation import annotation_executor, render_annotations
from ai_workflow_studio.nodes.generation.image import generate_image_executor
from ai_workflow_studio.nodes.generation.llm import llm_generate_executor
from ai_workflow_studio.nodes.generation.video import generate_video_executor
from ai_workflow_studio.nodes.input.image import image_input_executor
from ai_workflow_studio.nodes.input.prompt import prompt_executor
from ai_workflow_studio.nodes.output.preview import output_executor
from ai_workflow_studio.nodes.utility.split_grid import split_grid_executor
from ai_workflow_studio.providers.base import OutputKind


class StubContext:
    """Records generate() calls and returns a canned value."""

    def __init__(self, value="https://cdn.example/result.png"):
        self.value = value
        self.calls = []

    async def generate(self, provider_id, request):
        self.calls.append((provider_id, request))
        return self.value


def run(executor, inputs, data, context=None):
    return asyncio.run(executor(inputs, data, context or StubContext()))


def defaults(kind):
    return default_node_registry().get(kind).create_default_data()


class TestRegistry:
    """Tests for the default node registry."""

    def test_all_kinds_registered(self):
        registry = default_node_registry()
        assert {t.kind for t in registry.get_all()} == set(NodeKind)

    def test_registries_are_independent(self):
        a = default_node_registry()
        b = default_node_registry()
        a.unregister(NodeKind.OUTPUT)
        assert NodeKind.OUTPUT in b

    def test_split_grid_cell_handles(self):
        grid = default_node_registry().get(NodeKind.SPLIT_GRID)
        output = grid.get_output("cell-4")
        assert output is not None
        assert output.index_of("cell-4") == 4
        assert output.data_type == DataType.IMAGE
        assert grid.get_output("cell-x") is None

    def test_lookup_helpers(self):
        registry = default_node_registry()
        generation = {t.kind for t in registry.list_by_category(NodeCategory.GENERATION)}
        assert generation == {NodeKind.GENERATE_IMAGE, NodeKind.GENERATE_VIDEO, NodeKind.LLM_GENERATE}

        grid = registry.get(NodeKind.SPLIT_GRID)
        assert grid.get_parameter("gridRows").default == 2
        assert grid.get_parameter("missing") is None

        registry.clear()
        assert len(registry) == 0

    def test_generate_image_defaults(self):
        data = defaults(NodeKind.GENERATE_IMAGE)
        assert data["model"] == "nano-banana-pro"
        assert data["selectedModel"] == {
            "provider": "gemini",
            "modelId": "nano-banana-pro",
            "displayName": "Nano Banana Pro",
        }
        assert data["inputImages"] == []
        assert data["useGoogleSearch"] is False

    def test_llm_defaults(self):
        data = defaults(NodeKind.LLM_GENERATE)
        assert data["provider"] == "gemini"
        assert data["model"] == "gemini-3-flash-preview"
        assert data["temperature"] == 0.7
        assert data["maxTokens"] == 8192

    def test_split_grid_defaults(self):
        data = defaults(NodeKind.SPLIT_GRID)
        assert data["targetCount"] == 6
        assert data["gridRows"] == 2
        assert data["gridCols"] == 3
        assert data["isConfigured"] is False


class TestInputNodes:
    """Tests for prompt and image input."""

    def test_empty_prompt(self):
        with pytest.raises(ValidationError, match="Prompt is empty"):
            run(prompt_executor, {}, {"prompt": "   "})

    def test_prompt(self):
        assert run(prompt_executor, {}, {"prompt": "a cat"}) == {}

    def test_image_input_dimensions(self, png_data_url):
        result = run(image_input_executor, {}, {"image": png_data_url(30, 10)})
        assert result == {"dimensions": {"width": 30, "height": 10}}

    def test_image_input_missing(self):
        with pytest.raises(ValidationError):
            run(image_input_executor, {}, {"image": None})

    def test_image_input_remote_url_passes(self):
        assert run(image_input_executor, {}, {"image": "https://cdn.example/x.png"}) == {}


class TestAnnotation:
    """Tests for the annotation renderer."""

    def test_passthrough_without_annotations(self, png_data_url):
        source = png_data_url()
        result = run(annotation_executor, {"image": source}, {"annotations": []})
        assert result == {"outputImage": source}

    def test_missing_source(self):
        with pytest.raises(ValidationError):
            run(annotation_executor, {}, {"annotations": []})

    def test_rectangle_is_drawn(self, png_data_url):
        source = png_data_url(50, 50, color=(255, 255, 255))
        shapes = [{"type": "rectangle", "x": 10, "y": 10, "width": 20, "height": 20,
                   "color": "#ff0000", "strokeWidth": 2}]

        result = run(annotation_executor, {"image": source}, {"annotations": shapes})

        image = ImageData.from_data_url(result["outputImage"])
        assert tuple(image.pixels[10, 20][:3]) == (255, 0, 0)
        assert tuple(image.pixels[20, 20][:3]) == (255, 255, 255)
        assert tuple(image.pixels[0, 0][:3]) == (255, 255, 255)

    def test_all_shape_kinds_render(self, png_data_url):
        image = ImageData.from_data_url(png_data_url(80, 80))
        shapes = [
            {"type": "circle", "x": 5, "y": 5, "width": 30, "height": 30},
            {"type": "arrow", "points": [[0, 0], [60, 60]]},
            {"type": "freehand", "points": [[1, 70], [10, 60], [20, 75]]},
            {"type": "text", "x": 40, "y": 5, "text": "A", "fontSize": 12},
        ]
        rendered = render_annotations(image, shapes)
        assert rendered.size == image.size
        assert not (rendered.pixels[:, :, :3] == 255).all()

    def test_unknown_shape(self, png_data_url):
        with pytest.raises(ValidationError, match="Unknown annotation type"):
            run(annotation_executor, {"image": png_data_url()}, {"annotations": [{"type": "star"}]})


class TestGenerationNodes:
    """Tests for provider-backed nodes."""

    def test_image_request(self):
        context = StubContext()
        data = defaults(NodeKind.GENERATE_IMAGE)
        data.update(resolution="2K", parameters={"seed": 7})

        result = run(generate_image_executor, {"text": " a cat ", "image": "data:x"}, data, context)

        provider_id, request = context.calls[0]
        assert provider_id == "gemini"
        assert request.output == OutputKind.IMAGE
        assert request.prompt == "a cat"
        assert request.images == ["data:x"]
        assert request.parameters["resolution"] == "2K"
        assert request.parameters["seed"] == 7
        assert result == {
            "inputImages": ["data:x"],
            "inputPrompt": "a cat",
            "outputImage": "https://cdn.example/result.png",
        }

    def test_image_needs_prompt_or_image(self):
        context = StubContext()
        with pytest.raises(ValidationError):
            run(generate_image_executor, {}, defaults(NodeKind.GENERATE_IMAGE), context)
        assert context.calls == []

    def test_image_only_is_enough(self):
        context = StubContext()
        run(generate_image_executor, {"image": "data:x"}, defaults(NodeKind.GENERATE_IMAGE), context)
        assert context.calls[0][1].prompt is None

    def test_video_needs_model(self):
        with pytest.raises(ValidationError, match="No video model"):
            run(generate_video_executor, {"text": "waves"}, defaults(NodeKind.GENERATE_VIDEO))

    def test_video_request(self):
        context = StubContext("https://cdn.example/clip.mp4")
        data = defaults(NodeKind.GENERATE_VIDEO)
        data.update(
            selectedModel={"provider": "replicate", "modelId": "owner/video"},
            parameters={"duration": 5},
        )

        result = run(generate_video_executor, {"image": "data:x"}, data, context)

        provider_id, request = context.calls[0]
        assert provider_id == "replicate"
        assert request.output == OutputKind.VIDEO
        assert request.parameters == {"duration": 5}
        assert result["outputVideo"] == "https://cdn.example/clip.mp4"

    def test_llm_request(self):
        context = StubContext("Once upon a time")
        data = defaults(NodeKind.LLM_GENERATE)

        result = run(llm_generate_executor, {"text": "tell a story"}, data, context)

        provider_id, request = context.calls[0]
        assert provider_id == "gemini"
        assert request.model == "gemini-3-flash-preview"
        assert request.output == OutputKind.TEXT
        assert request.parameters == {"temperature": 0.7, "maxTokens": 8192}
        assert result["outputText"] == "Once upon a time"

    def test_llm_needs_prompt(self):
        with pytest.raises(ValidationError):
            run(llm_generate_executor, {"image": "data:x"}, defaults(NodeKind.LLM_GENERATE))


class TestUtilityAndOutput:
    """Tests for split grid and output nodes."""

    def test_split_grid(self, png_data_url):
        data = defaults(NodeKind.SPLIT_GRID)
        result = run(split_grid_executor, {"image": png_data_url(90, 60)}, data)
        assert len(result["cellImages"]) == 6
        assert result["targetCount"] == 6
        assert result["isConfigured"] is True

    def test_split_grid_image_too_small(self, png_data_url):
        data = defaults(NodeKind.SPLIT_GRID)
        data.update(gridRows=8, gridCols=8)
        with pytest.raises(ValidationError, match="Cannot split"):
            run(split_grid_executor, {"image": png_data_url(4, 4)}, data)

    def test_output_copies_inputs(self):
        result = run(output_executor, {"video": "https://cdn.example/clip.mp4"}, {})
        assert result == {"image": None, "video": "https://cdn.example/clip.mp4"}

    def test_output_needs_input(self):
        with pytest.raises(ValidationError):
            run(output_executor, {}, {})
