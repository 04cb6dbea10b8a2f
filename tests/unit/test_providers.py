"""
Tests for provider adapters, the error taxonomy and the provider registry.

HTTP is never touched: adapters have their `_get` / `_post` helpers
replaced with canned responses.
"""

import asyncio
import json

import pytest

from ai_workflow_studio.core.cost import BUILTIN_PRICES
from ai_workflow_studio.providers import replicate
from ai_workflow_studio.providers.base import (
    AuthenticationError,
    Capability,
    GenerationError,
    GenerationInput,
    GenerationOutput,
    ModelFilter,
    OutputKind,
    ProviderConfig,
    RateLimitError,
    TransientProviderError,
    error_for_status,
    raise_for_output,
)
from ai_workflow_studio.providers.gemini import GeminiProvider
from ai_workflow_studio.providers.registry import API_KEY_ENV_VARS, ProviderRegistry, get_registry
from ai_workflow_studio.providers.replicate import ReplicateProvider, infer_capabilities


class Recorder:
    """Async stand-in for an adapter's _get/_post that replays responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def __call__(self, url, body=None, **kwargs):
        self.calls.append((url, body if body is not None else kwargs.get("params")))
        return self.responses.pop(0)


class TestErrorTaxonomy:
    """Tests for status mapping and failed outputs."""

    @pytest.mark.parametrize("status,error_type", [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (429, RateLimitError),
        (500, TransientProviderError),
        (503, TransientProviderError),
        (400, GenerationError),
        (422, GenerationError),
    ])
    def test_error_for_status(self, status, error_type):
        error = error_for_status(status, "boom")
        assert type(error) is error_type
        assert error.status_code == status
        assert str(error) == "boom"

    def test_rate_limit_is_transient(self):
        assert isinstance(error_for_status(429, "slow down"), TransientProviderError)

    @pytest.mark.parametrize("header,expected", [
        ("12", 12.0),
        (None, 60.0),
        ("Wed, 21 Oct 2026 07:28:00 GMT", 60.0),
    ])
    def test_rate_limit_reads_retry_after(self, header, expected):
        adapter = ReplicateProvider(ProviderConfig(api_key="r8_test"))

        with pytest.raises(RateLimitError) as excinfo:
            adapter._check_error(429, {"detail": "throttled"}, header)

        assert excinfo.value.retry_after == expected
        assert "throttled" in str(excinfo.value)

    def test_other_errors_ignore_retry_after(self):
        adapter = ReplicateProvider(ProviderConfig(api_key="r8_test"))

        with pytest.raises(TransientProviderError) as excinfo:
            adapter._check_error(503, {}, "5")

        assert not isinstance(excinfo.value, RateLimitError)
        assert excinfo.value.status_code == 503

    def test_raise_for_output(self):
        raise_for_output(GenerationOutput.ok(url="https://cdn.example/x.png"))

        with pytest.raises(GenerationError, match="no output"):
            raise_for_output(GenerationOutput.ok())
        with pytest.raises(GenerationError, match="safety"):
            raise_for_output(GenerationOutput.failed("blocked by safety"))
        with pytest.raises(AuthenticationError):
            raise_for_output(GenerationOutput.failed("bad key", status_code=401))


class TestProviderRegistry:
    """Tests for adapter lookup and configuration persistence."""

    def test_unknown_provider(self):
        registry = ProviderRegistry()
        assert registry.get_provider("nope") is None
        with pytest.raises(KeyError):
            asyncio.run(registry.list_models("nope"))

    def test_lazy_instance_uses_config(self):
        registry = ProviderRegistry()
        registry.register_provider(GeminiProvider)
        registry.set_config("gemini", ProviderConfig(api_key="k1", base_url="http://local"))

        provider = registry.get_provider("gemini")

        assert provider.api_key == "k1"
        assert provider.base_url == "http://local"
        assert registry.get_provider("gemini") is provider

    def test_set_config_invalidates_instance(self):
        registry = ProviderRegistry()
        registry.register_provider(GeminiProvider)
        first = registry.get_provider("gemini")

        registry.set_config("gemini", ProviderConfig(api_key="k2"))

        assert registry.get_provider("gemini") is not first
        assert registry.get_provider("gemini").api_key == "k2"

    def test_env_var_fallback(self, monkeypatch):
        monkeypatch.setenv("REPLICATE_API_TOKEN", "r8_env")
        registry = ProviderRegistry()
        registry.register_provider(ReplicateProvider)

        assert registry.get_provider("replicate").api_key == "r8_env"
        assert registry.list_configured_providers() == ["replicate"]

    def test_unconfigured_providers_are_listed_separately(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        registry = ProviderRegistry()
        registry.register_provider(GeminiProvider)

        assert registry.list_providers() == ["gemini"]
        assert registry.list_configured_providers() == []

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "providers.json"
        registry = ProviderRegistry()
        registry.set_config("gemini", ProviderConfig(api_key="abc", enabled=False, timeout=30.0))
        registry.save_config(path)

        saved = json.loads(path.read_text(encoding="utf-8"))
        assert saved["providers"]["gemini"]["api_key"] == "abc"

        loaded = ProviderRegistry()
        loaded.load_config(path)
        config = loaded.get_config("gemini")
        assert config.api_key == "abc"
        assert config.enabled is False
        assert config.timeout == 30.0

    def test_load_missing_or_malformed_file(self, tmp_path):
        registry = ProviderRegistry()
        registry.load_config(tmp_path / "missing.json")

        bad = tmp_path / "bad.json"
        bad.write_text("{not json", encoding="utf-8")
        registry.load_config(bad)

        assert registry.get_config("gemini").enabled is True

    def test_builtin_tables_name_registered_providers(self):
        registered = set(get_registry().list_providers())

        assert set(API_KEY_ENV_VARS) <= registered
        assert {provider for provider, _, _ in BUILTIN_PRICES} <= registered


class TestGemini:
    """Tests for the Gemini adapter."""

    @pytest.fixture
    def gemini(self):
        return GeminiProvider(ProviderConfig(api_key="g-key"))

    def test_headers(self, gemini):
        assert gemini.get_headers()["x-goog-api-key"] == "g-key"

    def test_image_request_body(self, gemini):
        post = Recorder({"candidates": [{"content": {"parts": [
            {"text": "here you go"},
            {"inlineData": {"mimeType": "image/png", "data": "AAAA"}},
        ]}}]})
        gemini._post = post

        output = asyncio.run(gemini.generate(GenerationInput(
            model="nano-banana-pro",
            prompt="a cat",
            images=["data:image/jpeg;base64,Zm9v"],
            parameters={"aspectRatio": "16:9", "resolution": "2K", "useGoogleSearch": True},
        )))

        assert output.success
        assert output.data == "data:image/png;base64,AAAA"

        url, body = post.calls[0]
        assert url.endswith("/models/gemini-3-pro-image-preview:generateContent")
        parts = body["contents"][0]["parts"]
        assert parts[0] == {"inlineData": {"mimeType": "image/jpeg", "data": "Zm9v"}}
        assert parts[1] == {"text": "a cat"}
        assert body["generationConfig"]["imageConfig"] == {"aspectRatio": "16:9", "imageSize": "2K"}
        assert body["tools"] == [{"googleSearch": {}}]

    def test_fast_model_ignores_resolution(self, gemini):
        post = Recorder({"candidates": []})
        gemini._post = post

        output = asyncio.run(gemini.generate(GenerationInput(
            model="nano-banana",
            prompt="a cat",
            parameters={"resolution": "4K"},
        )))

        assert not output.success
        _, body = post.calls[0]
        assert "imageConfig" not in body["generationConfig"]

    def test_text_generation(self, gemini):
        post = Recorder({"candidates": [{"content": {"parts": [{"text": "Once "}, {"text": "upon"}]}}]})
        gemini._post = post

        output = asyncio.run(gemini.generate(GenerationInput(
            model="gemini-3-flash-preview",
            output=OutputKind.TEXT,
            prompt="story",
            parameters={"temperature": 0.2, "maxTokens": 100},
        )))

        assert output.data == "Once upon"
        _, body = post.calls[0]
        assert body["generationConfig"] == {"temperature": 0.2, "maxOutputTokens": 100}

    def test_video_is_unsupported(self, gemini):
        output = asyncio.run(gemini.generate(GenerationInput(model="x", output=OutputKind.VIDEO)))
        assert not output.success

    def test_list_models_filter(self, gemini):
        models = asyncio.run(gemini.list_models(ModelFilter(capabilities={Capability.IMAGE_TO_IMAGE})))
        assert {m.id for m in models} == {"nano-banana", "nano-banana-pro"}


class TestReplicate:
    """Tests for the Replicate adapter."""

    @pytest.fixture
    def adapter(self, monkeypatch):
        monkeypatch.setattr(replicate, "POLL_INTERVAL", 0)
        return ReplicateProvider(ProviderConfig(api_key="r8"))

    def test_infer_capabilities(self):
        assert infer_capabilities("sdxl", "Text to image") == {Capability.TEXT_TO_IMAGE}
        assert Capability.IMAGE_TO_IMAGE in infer_capabilities("sdxl-inpaint", None)
        assert Capability.TEXT_TO_VIDEO in infer_capabilities("zeroscope", "Text to video")
        assert Capability.IMAGE_TO_VIDEO in infer_capabilities("svd", "image-to-video motion")

    def test_list_models(self, adapter):
        adapter._get = Recorder({"results": [
            {"owner": "a", "name": "flux", "description": "image model", "cover_image_url": "c.png"},
            {"owner": "b", "name": "wan", "description": "text to video"},
        ]})

        models = asyncio.run(adapter.list_models(ModelFilter(capabilities={Capability.TEXT_TO_VIDEO})))

        assert [m.id for m in models] == ["b/wan"]
        assert models[0].provider == "replicate"

    def test_search_uses_search_endpoint(self, adapter):
        get = Recorder({"results": [{"model": {"owner": "a", "name": "flux"}}]})
        adapter._get = get

        models = asyncio.run(adapter.search_models("flux"))

        assert get.calls[0] == ("https://api.replicate.com/v1/search", {"query": "flux"})
        assert models[0].id == "a/flux"

    def test_get_model(self, adapter):
        get = Recorder({"owner": "a", "name": "flux-img2img", "description": "edit images"})
        adapter._get = get

        model = asyncio.run(adapter.get_model("a/flux-img2img"))

        assert get.calls[0][0].endswith("/models/a/flux-img2img")
        assert model.supports(Capability.IMAGE_TO_IMAGE)
        assert asyncio.run(adapter.get_model("not-a-slug")) is None

    def test_generate_polls_until_done(self, adapter):
        adapter._post = Recorder({"id": "p1", "status": "starting", "urls": {"get": "poll-url"}})
        get = Recorder(
            {"id": "p1", "status": "processing"},
            {"id": "p1", "status": "succeeded", "output": ["https://cdn.example/a.png"]},
        )
        adapter._get = get

        output = asyncio.run(adapter.generate(GenerationInput(
            model="a/flux",
            prompt="cat",
            images=["data:x"],
            parameters={"seed": 1},
        )))

        assert output.url == "https://cdn.example/a.png"
        url, body = adapter._post.calls[0]
        assert url.endswith("/models/a/flux/predictions")
        assert body == {"input": {"seed": 1, "prompt": "cat", "image": "data:x"}}
        assert [c[0] for c in get.calls] == ["poll-url", "poll-url"]

    def test_cancel_stops_remote_prediction(self, adapter):
        post = Recorder({"id": "p1", "status": "starting"}, {"id": "p1", "status": "canceled"})
        adapter._post = post

        async def scenario():
            polling = asyncio.Event()

            async def hang(url, params=None):
                polling.set()
                await asyncio.Event().wait()

            adapter._get = hang
            task = asyncio.create_task(adapter.generate(GenerationInput(model="a/flux", prompt="cat")))
            await polling.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        assert len(post.calls) == 2
        assert post.calls[1] == ("https://api.replicate.com/v1/predictions/p1/cancel", {})

    def test_cancel_failure_still_propagates(self, adapter):
        posted = []

        async def post(url, body=None):
            posted.append(url)
            if url == "cancel-url":
                raise TransientProviderError("Replicate request failed")
            return {"id": "p1", "status": "starting", "urls": {"get": "poll-url", "cancel": "cancel-url"}}

        adapter._post = post

        async def scenario():
            polling = asyncio.Event()

            async def hang(url, params=None):
                polling.set()
                await asyncio.Event().wait()

            adapter._get = hang
            task = asyncio.create_task(adapter.generate(GenerationInput(model="a/flux", prompt="cat")))
            await polling.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        assert posted[-1] == "cancel-url"

    def test_failed_prediction(self, adapter):
        adapter._post = Recorder({"id": "p1", "status": "failed", "error": "NSFW"})
        with pytest.raises(GenerationError, match="NSFW"):
            asyncio.run(adapter.generate(GenerationInput(model="a/flux", prompt="x")))

    def test_text_output_is_joined(self, adapter):
        adapter._post = Recorder({"id": "p1", "status": "succeeded", "output": ["Hel", "lo"]})
        output = asyncio.run(adapter.generate(GenerationInput(
            model="meta/llama", output=OutputKind.TEXT, prompt="hi",
        )))
        assert output.data == "Hello"

    def test_invalid_model_id(self, adapter):
        output = asyncio.run(adapter.generate(GenerationInput(model="flux")))
        assert not output.success
