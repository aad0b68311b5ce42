"""
Tests for the detection engine: model lifecycle, single-flight loading and
the detect() pipeline.
"""

import asyncio

import pytest

from conftest import CountingBackend
from domain.errors import InferenceFailure, InvalidImage, UnknownModel, ValidationError
from inference.engine import DetectionEngine, ModelState
from inference.registry import BackendKind, ModelDescriptor, ModelRegistry
from models.config import DetectionConfig


@pytest.fixture
def artifact_dir(models_dir):
    (models_dir / "mobilenet-ssd.onnx").write_bytes(b"onnx")
    return models_dir


def engine_with(models_dir, backend, **kwargs):
    return DetectionEngine(
        models_dir=str(models_dir),
        backends={BackendKind.NATIVE: backend},
        **kwargs,
    )


class TestSimulatedFallback:
    @pytest.mark.asyncio
    async def test_missing_artifact_uses_simulated_backend(self, models_dir, jpeg_b64):
        engine = DetectionEngine(models_dir=str(models_dir))

        dets = await engine.detect(jpeg_b64, "mobilenet-ssd")

        assert len(dets) == 1
        assert dets[0].label == "person"
        assert dets[0].score == pytest.approx(0.95)
        assert dets[0].bbox.as_list() == pytest.approx([0.1, 0.1, 0.9, 0.9])
        assert engine.health()["simulatedModels"] == ["mobilenet-ssd"]

    @pytest.mark.asyncio
    async def test_simulated_label_follows_model_labels(self, models_dir, jpeg_b64):
        engine = DetectionEngine(models_dir=str(models_dir))

        dets = await engine.detect(jpeg_b64, "yolov5s")

        assert dets[0].label == "person"

    @pytest.mark.asyncio
    async def test_simulated_still_requires_decodable_pixels(self, models_dir):
        import base64

        engine = DetectionEngine(models_dir=str(models_dir))

        with pytest.raises(InferenceFailure):
            await engine.detect(base64.b64encode(b"\x01" * 300).decode("ascii"), "mobilenet-ssd")


class TestLoadModel:
    @pytest.mark.asyncio
    async def test_concurrent_first_loads_coalesce(self, artifact_dir):
        backend = CountingBackend(load_delay=0.1)
        engine = engine_with(artifact_dir, backend)

        results = await asyncio.gather(*[engine.load_model("mobilenet-ssd") for _ in range(8)])

        assert backend.loads == 1
        assert all(r is results[0] for r in results)
        assert engine.state_of("mobilenet-ssd") is ModelState.LOADED
        assert not results[0].simulated

    @pytest.mark.asyncio
    async def test_cached_handle_is_reused(self, artifact_dir):
        backend = CountingBackend(load_delay=0)
        engine = engine_with(artifact_dir, backend)

        first = await engine.load_model("mobilenet-ssd")
        second = await engine.load_model("mobilenet-ssd")

        assert first is second
        assert backend.loads == 1

    @pytest.mark.asyncio
    async def test_unknown_model(self, models_dir):
        engine = DetectionEngine(models_dir=str(models_dir))

        with pytest.raises(UnknownModel) as exc:
            await engine.load_model("unknown-model")
        assert exc.value.code == "MODEL_NOT_FOUND"
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_failed_load_is_shared_then_retryable(self, artifact_dir):
        backend = CountingBackend(load_delay=0.05, fail_loads=1)
        engine = engine_with(artifact_dir, backend)

        results = await asyncio.gather(
            *[engine.load_model("mobilenet-ssd") for _ in range(3)],
            return_exceptions=True,
        )

        assert backend.loads == 1
        assert all(isinstance(r, InferenceFailure) for r in results)
        assert engine.state_of("mobilenet-ssd") is ModelState.FAILED
        assert engine.health()["status"] == "degraded"

        loaded = await engine.load_model("mobilenet-ssd")

        assert backend.loads == 2
        assert loaded.handle["path"].endswith("mobilenet-ssd.onnx")
        assert engine.health()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_preload_skips_failures(self, artifact_dir):
        engine = engine_with(artifact_dir, CountingBackend(load_delay=0))

        loaded = await engine.preload(["mobilenet-ssd", "nope"])

        assert loaded == ["mobilenet-ssd"]
        assert engine.is_loaded("mobilenet-ssd")


class TestDetect:
    @pytest.mark.asyncio
    async def test_threshold_applies_per_call(self, artifact_dir, jpeg_b64):
        rows = [
            [0, 1, 0.9, 0.1, 0.1, 0.4, 0.4],
            [0, 3, 0.5, 0.2, 0.2, 0.6, 0.6],
            [0, 4, 0.35, 0.3, 0.3, 0.7, 0.7],
        ]
        engine = engine_with(artifact_dir, CountingBackend(rows=rows, load_delay=0))

        default = await engine.detect(jpeg_b64, "mobilenet-ssd")
        strict = await engine.detect(jpeg_b64, "mobilenet-ssd", confidence_threshold=0.6)

        assert len(default) == 3
        assert all(d.score >= 0.3 for d in default)
        assert [d.label for d in strict] == ["person"]
        assert engine.confidence_threshold == 0.3

    @pytest.mark.asyncio
    async def test_truncates_keeping_backend_order(self, artifact_dir, jpeg_b64):
        rows = [[0, 1, 0.5 + i / 100, 0.1, 0.1, 0.2, 0.2] for i in range(30)]
        engine = engine_with(artifact_dir, CountingBackend(rows=rows, load_delay=0))

        dets = await engine.detect(jpeg_b64, "mobilenet-ssd")
        three = await engine.detect(jpeg_b64, "mobilenet-ssd", max_detections=3)
        none = await engine.detect(jpeg_b64, "mobilenet-ssd", max_detections=0)

        assert len(dets) == 20
        assert [d.score for d in three] == pytest.approx([0.5, 0.51, 0.52])
        assert none == []
        assert engine.max_detections == 20

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kwargs", [
        {"confidence_threshold": 1.5},
        {"confidence_threshold": -0.1},
        {"max_detections": -1},
        {"max_detections": 2.5},
    ])
    async def test_invalid_parameters(self, models_dir, jpeg_b64, kwargs):
        engine = DetectionEngine(models_dir=str(models_dir))

        with pytest.raises(ValidationError):
            await engine.detect(jpeg_b64, "mobilenet-ssd", **kwargs)

    @pytest.mark.asyncio
    async def test_invalid_image(self, models_dir):
        engine = DetectionEngine(models_dir=str(models_dir))

        with pytest.raises(InvalidImage):
            await engine.detect("definitely not base64", "mobilenet-ssd")

    @pytest.mark.asyncio
    async def test_backend_run_error_becomes_inference_failure(self, artifact_dir, jpeg_b64):
        class Broken(CountingBackend):
            def run(self, handle, tensor):
                raise RuntimeError("shape mismatch")

        engine = engine_with(artifact_dir, Broken(load_delay=0))

        with pytest.raises(InferenceFailure):
            await engine.detect(jpeg_b64, "mobilenet-ssd")

    @pytest.mark.asyncio
    async def test_decoder_error_becomes_inference_failure(self, artifact_dir, jpeg_b64):
        backend = CountingBackend(rows=[[0, float("nan"), 0.9, 0.1, 0.1, 0.5, 0.5]], load_delay=0)
        engine = engine_with(artifact_dir, backend)

        with pytest.raises(InferenceFailure):
            await engine.detect(jpeg_b64, "mobilenet-ssd")

    @pytest.mark.asyncio
    async def test_default_model_used_when_omitted(self, models_dir, jpeg_b64):
        engine = DetectionEngine(models_dir=str(models_dir), default_model="yolov5s")

        await engine.detect(jpeg_b64)

        assert engine.is_loaded("yolov5s")


class TestIntrospection:
    def test_list_and_get_models(self, models_dir):
        engine = DetectionEngine(models_dir=str(models_dir))

        ids = [m["id"] for m in engine.list_models()]
        info = engine.get_model("yolov5s")

        assert ids == ["mobilenet-ssd", "yolov5s", "coco-ssd"]
        assert info["inputSize"] == [640, 640]
        assert info["state"] == "unloaded"
        assert info["loaded"] is False

    def test_get_unknown_model(self, models_dir):
        with pytest.raises(UnknownModel):
            DetectionEngine(models_dir=str(models_dir)).get_model("nope")

    def test_from_config_merges_model_entries(self, models_dir):
        cfg = DetectionConfig(
            models_dir=str(models_dir),
            confidence_threshold=0.4,
            models=[
                {"id": "yolov5s", "score_threshold": 0.1},
                {"id": "ssd-voc", "backend": "native", "path": "voc.onnx",
                 "input_size": [300, 300], "labels": "voc-ssd"},
            ],
        )

        engine = DetectionEngine.from_config(cfg)

        assert engine.confidence_threshold == 0.4
        assert engine.registry.require("yolov5s").score_threshold == 0.1
        assert engine.registry.require("yolov5s").input_size == (640, 640)
        assert engine.registry.require("ssd-voc").labels[15] == "person"


class TestRegistry:
    def test_descriptor_requires_fields_for_new_models(self):
        with pytest.raises(ValidationError):
            ModelDescriptor.from_dict({"id": "half", "path": "x.onnx"})

    def test_descriptor_rejects_unknown_format(self):
        base = ModelRegistry().require("mobilenet-ssd")

        with pytest.raises(ValidationError):
            ModelDescriptor.from_dict({"output_format": "masks"}, base=base)

    def test_resolve_path(self, tmp_path):
        desc = ModelRegistry().require("mobilenet-ssd")

        assert ModelRegistry.resolve_path(desc, str(tmp_path)) == tmp_path / "mobilenet-ssd.onnx"
