from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Union

import numpy as np

from .config import DecodeConfig, load_decode_config
from .decode import DetectionDecoder
from .events import Observer, emit
from .filter import ClassFilter
from .labels import LabelTable, load_label_table
from .nms import NMSConfig, NonMaxSuppressor
from .preprocess import make_input_blob
from .roles import OutputRoleResolver
from .types import Detection, ImageSize

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]
InferFn = Callable[[np.ndarray], Any]


class DetectionPipeline:
    """
    Raw detector outputs -> filtered, de-duplicated detections.

    Stages: role resolution -> decode -> class filter -> per-label NMS.
    The pipeline holds only read-only configuration, so one instance can serve
    concurrent frames. Output arrays are read during the call and never kept.

    With an `infer_fn` bound, calling the pipeline on a BGR image runs
    preprocess -> inference -> decode; inference failures give an empty list.
    """

    def __init__(
        self,
        labels: LabelTable,
        cfg: DecodeConfig = DecodeConfig(),
        *,
        infer_fn: Optional[InferFn] = None,
        resolver: Optional[OutputRoleResolver] = None,
        observer: Optional[Observer] = None,
        backend: Optional[object] = None,
        backend_name: Optional[str] = None,
        input_layout: str = "nhwc",
        bgr_to_rgb: bool = True,
    ):
        self.labels = labels
        self.cfg = cfg
        self.observer = observer
        self.backend = backend
        self.backend_name = backend_name
        self.input_layout = input_layout
        self.bgr_to_rgb = bgr_to_rgb
        self._infer_fn = infer_fn

        self.decoder = DetectionDecoder(cfg, resolver=resolver)
        self.class_filter = ClassFilter(labels, cfg.allow_list)
        self.suppressor = NonMaxSuppressor(NMSConfig.from_decode_config(cfg))

    def decode(self, outputs: Any, image_size: ImageSize) -> List[Detection]:
        """
        Args:
            outputs: engine outputs keyed by name (or positional); arrays, RawOutput or (flat, shape)
            image_size: (width, height) of the original image
        """

        candidates = self.decoder.decode(outputs, image_size, observer=self.observer)
        detections = self.class_filter.apply(candidates, observer=self.observer)
        return self.suppressor.suppress(detections, observer=self.observer)

    def run_inference(self, blob: np.ndarray, image_size: ImageSize) -> List[Detection]:
        if self._infer_fn is None:
            raise RuntimeError("No inference function bound to this pipeline; use decode() with raw outputs.")
        try:
            outputs = self._infer_fn(blob)
        except Exception as exc:
            LOGGER.exception("Inference failed, returning no detections")
            emit(self.observer, "inference_failed", error=repr(exc))
            return []
        return self.decode(outputs, image_size)

    def preprocess(self, image_bgr: np.ndarray) -> np.ndarray:
        return make_input_blob(
            image_bgr,
            tile_size=self.cfg.input_tile_size,
            layout=self.input_layout,
            bgr_to_rgb=self.bgr_to_rgb,
        )

    def __call__(self, image_bgr: np.ndarray) -> List[Detection]:
        blob = self.preprocess(image_bgr)
        orig_h, orig_w = image_bgr.shape[:2]
        return self.run_inference(blob, (orig_w, orig_h))


def _layout_from_input_shape(shape: Sequence[Any]) -> str:
    # NCHW exports put the 3 colour channels right after the batch axis.
    if len(shape) == 4 and shape[1] == 3:
        return "nchw"
    return "nhwc"


def load_pipeline(
    model_path: PathLike,
    labels_path: PathLike,
    *,
    cfg: Optional[DecodeConfig] = None,
    config_path: Optional[PathLike] = None,
    observer: Optional[Observer] = None,
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
    onnx_output_names: Optional[Sequence[str]] = None,
    input_layout: Optional[str] = None,
) -> DetectionPipeline:
    """
    Create a pipeline bound to an ONNX Runtime session.

    Typical usage:
        pipe = load_pipeline("models/detector.onnx", "models/labels.txt")
        detections = pipe(frame_bgr)

    Args:
        cfg / config_path: decode configuration; `cfg` wins when both are given
        input_layout: "nhwc" or "nchw"; None infers it from the model input shape
    """

    if cfg is None:
        cfg = load_decode_config(config_path) if config_path is not None else DecodeConfig()

    labels = load_label_table(Path(labels_path).expanduser())

    from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

    ort_backend = OnnxRuntimeBackend(
        Path(model_path).expanduser(),
        OnnxRuntimeBackendConfig(
            providers=onnx_providers,
            input_name=onnx_input_name,
            output_names=onnx_output_names,
        ),
    )
    layout = input_layout or _layout_from_input_shape(ort_backend.input_shape)
    LOGGER.info(
        "Loaded %s (outputs=%s, layout=%s, providers=%s)",
        ort_backend.model_path,
        ort_backend.output_names,
        layout,
        ort_backend.providers_in_use,
    )
    return DetectionPipeline(
        labels,
        cfg,
        infer_fn=ort_backend.infer,
        observer=observer,
        backend=ort_backend,
        backend_name="onnxruntime",
        input_layout=layout,
    )
