from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    """
    Ensure `src/` is on sys.path so tests can import `ai_workflow_studio`
    without requiring an editable install.
    """
    repo_root = Path(__file__).resolve().parents[1]
    src_root = repo_root / "src"
    sys.path.insert(0, str(src_root))


@pytest.fixture
def fake_provider():
    """An in-memory adapter registered as "gemini" that records its calls."""
    from ai_workflow_studio.providers.base import (
        GenerationOutput,
        ModelCard,
        OutputKind,
        ProviderAdapter,
        ProviderConfig,
    )

    class FakeProvider(ProviderAdapter):
        name = "Fake"

        def __init__(self, provider_id: str = "gemini"):
            super().__init__(ProviderConfig(api_key="test-key"))
            self.id = provider_id
            self.calls = []
            self.gate = None      # asyncio.Event to hold generate() open
            self.started = None   # asyncio.Event set when generate() is entered
            self.error = None     # exception to raise
            self.output = None    # GenerationOutput to return

        async def list_models(self, filter=None):
            return [ModelCard(id="nano-banana-pro", provider=self.id, name="Nano Banana Pro")]

        async def generate(self, input):
            self.calls.append(input)
            if self.started is not None:
                self.started.set()
            if self.gate is not None:
                await self.gate.wait()
            if self.error is not None:
                raise self.error
            if self.output is not None:
                return self.output
            if input.output == OutputKind.TEXT:
                return GenerationOutput.ok(data=f"text #{len(self.calls)}")
            return GenerationOutput.ok(url=f"https://cdn.example/out-{len(self.calls)}.png")

    return FakeProvider()


@pytest.fixture
def providers(fake_provider):
    """A provider registry holding only the fake adapter."""
    from ai_workflow_studio.providers.registry import ProviderRegistry

    registry = ProviderRegistry()
    registry.register_instance(fake_provider)
    return registry


@pytest.fixture
def workflow():
    from ai_workflow_studio.core.workflow import Workflow
    return Workflow.create("Test")


@pytest.fixture
def png_data_url():
    """Factory for solid-color PNG data URLs."""
    from PIL import Image

    from ai_workflow_studio.core.data_types import ImageData

    def make(width: int = 60, height: int = 40, color=(255, 255, 255)) -> str:
        return ImageData.from_pil(Image.new("RGB", (width, height), color)).to_data_url()

    return make
