from __future__ import annotations

import json
import math
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Union

DEFAULT_ALLOW_LIST: FrozenSet[str] = frozenset({"person", "cup", "apple", "banana"})
DEFAULT_CLASS_IOU_THRESHOLDS: Mapping[str, float] = MappingProxyType({"person": 0.65})
ROLE_STRATEGIES = ("auto", "name", "shape", "position")


@dataclass(frozen=True)
class DecodeConfig:
    """
    Konfigurasi decode + NMS, dibaca sekali saat pipeline dibuat.
    """

    confidence_threshold: float = 0.4
    # Square side of the tile the model was fed; raw boxes are in this pixel space.
    input_tile_size: int = 640
    # None keeps every label.
    allow_list: Optional[FrozenSet[str]] = DEFAULT_ALLOW_LIST
    iou_threshold: float = 0.70
    class_iou_thresholds: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_CLASS_IOU_THRESHOLDS), hash=False
    )
    # Clamp right/bottom to the original image size (left/top are always clamped at 0).
    clip_to_image: bool = True
    max_detections: Optional[int] = None
    role_strategy: str = "auto"
    boxes_output: Optional[str] = None
    scores_output: Optional[str] = None
    classes_output: Optional[str] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be within [0, 1]")
        if self.input_tile_size <= 0:
            raise ValueError("input_tile_size must be > 0")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be within [0, 1]")
        for label, thr in self.class_iou_thresholds.items():
            if not 0.0 <= thr <= 1.0:
                raise ValueError(f"class_iou_thresholds[{label!r}] must be within [0, 1]")
        if self.max_detections is not None and self.max_detections <= 0:
            raise ValueError("max_detections must be > 0 if provided")
        if self.role_strategy not in ROLE_STRATEGIES:
            raise ValueError(f"role_strategy must be one of {ROLE_STRATEGIES}")
        if self.role_strategy == "name" and (self.boxes_output is None or self.scores_output is None):
            raise ValueError("role_strategy 'name' requires boxes_output and scores_output")
        if self.allow_list is not None and not isinstance(self.allow_list, frozenset):
            object.__setattr__(self, "allow_list", frozenset(self.allow_list))
        # Shared across concurrent decode calls, so expose a read-only view.
        object.__setattr__(self, "class_iou_thresholds", MappingProxyType(dict(self.class_iou_thresholds)))

    def iou_threshold_for(self, label: str) -> float:
        return self.class_iou_thresholds.get(label, self.iou_threshold)

    def replace(self, **overrides: Any) -> "DecodeConfig":
        return replace(self, **overrides)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DecodeConfig":
        allowed = {f.name for f in fields(cls)}
        unknown = sorted(set(payload.keys()) - allowed)
        if unknown:
            raise ValueError(f"Unknown decode config keys: {unknown}")

        kwargs: Dict[str, Any] = {}
        for key in ("confidence_threshold", "iou_threshold"):
            if key in payload:
                kwargs[key] = _require_number(payload, key)
        for key in ("input_tile_size", "max_detections"):
            if key in payload:
                kwargs[key] = _optional_int(payload, key)
        if "input_tile_size" in kwargs and kwargs["input_tile_size"] is None:
            raise ValueError("input_tile_size must be an integer")
        for key in ("role_strategy", "boxes_output", "scores_output", "classes_output"):
            if key in payload:
                kwargs[key] = _optional_str(payload, key)
        if "role_strategy" in kwargs and kwargs["role_strategy"] is None:
            raise ValueError("role_strategy must be a string")
        if "clip_to_image" in payload:
            value = payload["clip_to_image"]
            if not isinstance(value, bool):
                raise ValueError("clip_to_image must be a boolean")
            kwargs["clip_to_image"] = value
        if "allow_list" in payload:
            kwargs["allow_list"] = _optional_str_set(payload, "allow_list")
        if "class_iou_thresholds" in payload:
            kwargs["class_iou_thresholds"] = _number_mapping(payload, "class_iou_thresholds")

        return cls(**kwargs)


def _require_number(payload: Mapping[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _optional_int(payload: Mapping[str, Any], key: str) -> Optional[int]:
    value = payload[key]
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _optional_str(payload: Mapping[str, Any], key: str) -> Optional[str]:
    value = payload[key]
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{key} must be a string if provided")
    return value


def _optional_str_set(payload: Mapping[str, Any], key: str) -> Optional[FrozenSet[str]]:
    value = payload[key]
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{key} must be a list of strings or null")
    return frozenset(value)


def _number_mapping(payload: Mapping[str, Any], key: str) -> Dict[str, float]:
    value = payload[key]
    if not isinstance(value, dict):
        raise ValueError(f"{key} must be an object of label -> number")
    out: Dict[str, float] = {}
    for label in value:
        out[str(label)] = _require_number(value, label)
    return out


def load_decode_config(path: Union[str, Path]) -> DecodeConfig:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Decode config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid decode config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Decode config must be a JSON object")
    return DecodeConfig.from_dict(payload)
