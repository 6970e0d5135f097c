import sys
import tempfile
import types
import unittest
from pathlib import Path
from unittest import mock

import numpy as np

from det_kit.config import DecodeConfig
from det_kit.pipeline import load_pipeline


def _fake_ort(outputs, input_shape=(1, 3, 640, 640)):
    """Stand-in `onnxruntime` module exposing the bits the backend touches."""

    class FakeSession:
        def __init__(self, path, sess_options=None, providers=None):
            self.path = path
            self.providers = providers or ["CPUExecutionProvider"]
            self.calls = []

        def get_inputs(self):
            return [types.SimpleNamespace(name="images", shape=list(input_shape))]

        def get_outputs(self):
            return [types.SimpleNamespace(name=name) for name in outputs]

        def get_providers(self):
            return list(self.providers)

        def run(self, names, feed):
            self.calls.append((list(names), feed))
            return [outputs[n] for n in names]

    module = types.ModuleType("onnxruntime")
    module.InferenceSession = FakeSession
    module.SessionOptions = lambda: object()
    module.get_available_providers = lambda: ["CPUExecutionProvider"]
    return module


class TestOnnxRuntimeBackend(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)
        self.model = self.root / "detector.onnx"
        self.model.write_bytes(b"onnx")
        self.labels = self.root / "labels.txt"
        self.labels.write_text("person\nbicycle\ncup\n", encoding="utf-8")
        self.outputs = {
            "boxes": np.array([[[10, 10, 50, 50], [100, 100, 140, 140]]], dtype=np.float32),
            "scores": np.array([[0.9, 0.8]], dtype=np.float32),
            "class_idx": np.array([[2, 1]], dtype=np.float32),
        }

    def test_infer_returns_all_outputs_by_name(self) -> None:
        with mock.patch.dict(sys.modules, {"onnxruntime": _fake_ort(self.outputs)}):
            from det_kit.backends.onnxruntime_backend import OnnxRuntimeBackend

            backend = OnnxRuntimeBackend(self.model)
            result = backend.infer(np.zeros((1, 3, 640, 640), dtype=np.float32))

        self.assertEqual(list(result), ["boxes", "scores", "class_idx"])
        self.assertEqual(backend.input_name, "images")
        self.assertEqual(backend.input_shape, (1, 3, 640, 640))
        self.assertEqual(backend.providers_in_use, ("CPUExecutionProvider",))

    def test_missing_model_file(self) -> None:
        with mock.patch.dict(sys.modules, {"onnxruntime": _fake_ort(self.outputs)}):
            from det_kit.backends.onnxruntime_backend import OnnxRuntimeBackend

            with self.assertRaises(FileNotFoundError):
                OnnxRuntimeBackend(self.root / "missing.onnx")

    def test_load_pipeline_end_to_end(self) -> None:
        with mock.patch.dict(sys.modules, {"onnxruntime": _fake_ort(self.outputs)}):
            pipe = load_pipeline(self.model, self.labels, cfg=DecodeConfig())

        self.assertEqual(pipe.backend_name, "onnxruntime")
        self.assertEqual(pipe.input_layout, "nchw")
        dets = pipe.run_inference(np.zeros((1, 3, 640, 640), dtype=np.float32), (640, 640))
        # "bicycle" is not in the default allow-list.
        self.assertEqual([d.label for d in dets], ["cup"])

    def test_load_pipeline_nhwc_model(self) -> None:
        fake = _fake_ort(self.outputs, input_shape=(1, 640, 640, 3))
        with mock.patch.dict(sys.modules, {"onnxruntime": fake}):
            pipe = load_pipeline(self.model, self.labels, cfg=DecodeConfig(allow_list=None))
        self.assertEqual(pipe.input_layout, "nhwc")
        dets = pipe.run_inference(np.zeros((1, 640, 640, 3), dtype=np.float32), (640, 640))
        self.assertEqual([d.label for d in dets], ["cup", "bicycle"])

    def test_load_pipeline_from_config_file(self) -> None:
        config = self.root / "decode.json"
        config.write_text('{"confidence_threshold": 0.85, "allow_list": null}', encoding="utf-8")
        with mock.patch.dict(sys.modules, {"onnxruntime": _fake_ort(self.outputs)}):
            pipe = load_pipeline(self.model, self.labels, config_path=config)
        dets = pipe.run_inference(np.zeros((1, 3, 640, 640), dtype=np.float32), (640, 640))
        self.assertEqual([d.label for d in dets], ["cup"])


if __name__ == "__main__":
    unittest.main()
