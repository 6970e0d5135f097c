from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np


PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers, passed through as given
    - input_name: override the auto-selected input
    - output_names: subset/order of outputs to fetch; None fetches all session outputs
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_names: Optional[Sequence[str]] = None


class OnnxRuntimeBackend:
    """
    Minimal ONNX Runtime backend for detectors with several outputs.

    `infer` returns every requested output keyed by name, in session order, so
    the role resolver can match them by name or by shape.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        sess_opts = ort.SessionOptions()
        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)

        self.input_name = cfg.input_name or self.session.get_inputs()[0].name
        self.output_names: List[str] = (
            list(cfg.output_names) if cfg.output_names is not None else [o.name for o in self.session.get_outputs()]
        )

    @property
    def providers_in_use(self) -> Sequence[str]:
        return tuple(self.session.get_providers())

    @property
    def available_providers(self) -> Sequence[str]:
        return tuple(self._ort.get_available_providers())

    @property
    def input_shape(self) -> Sequence[Any]:
        for inp in self.session.get_inputs():
            if inp.name == self.input_name:
                return tuple(inp.shape)
        return ()

    def infer(self, blob: np.ndarray, extra_inputs: Optional[Dict[str, Any]] = None) -> Dict[str, np.ndarray]:
        inputs: Dict[str, Any] = {self.input_name: blob}
        if extra_inputs:
            inputs.update(extra_inputs)
        outputs = self.session.run(self.output_names, inputs)
        return {name: np.asarray(value) for name, value in zip(self.output_names, outputs)}
