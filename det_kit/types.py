from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Sequence, Tuple, Union

import numpy as np


@dataclass(frozen=True, eq=False)
class RawOutput:
    """
    One output array borrowed from the inference engine for a single decode call.

    `values` may be a flat buffer (as native runtimes hand them out) or an already
    shaped array; `shape` is authoritative.
    """

    name: str
    values: np.ndarray
    shape: Tuple[int, ...]

    @classmethod
    def from_any(
        cls,
        name: str,
        value: Union["RawOutput", np.ndarray, Tuple[Any, Sequence[int]]],
    ) -> "RawOutput":
        if isinstance(value, RawOutput):
            return value
        if isinstance(value, tuple) and len(value) == 2:
            data, shape = value
            return cls(name=name, values=np.asarray(data, dtype=np.float32), shape=tuple(int(d) for d in shape))
        arr = np.asarray(value, dtype=np.float32)
        return cls(name=name, values=arr, shape=tuple(arr.shape))

    @property
    def rank(self) -> int:
        return len(self.shape)

    @property
    def size(self) -> int:
        return int(np.prod(self.shape, dtype=np.int64)) if self.shape else 1

    @property
    def array(self) -> np.ndarray:
        return np.asarray(self.values).reshape(self.shape)

    def flat(self) -> np.ndarray:
        return np.asarray(self.values).reshape(-1)


@dataclass(frozen=True)
class Candidate:
    """
    Decoded but not yet label-checked detection, already in image pixel space.
    """

    class_id: int
    confidence: float
    left: float
    top: float
    right: float
    bottom: float


@dataclass(frozen=True)
class Detection:
    """
    Final detection handed to the caller, in original image pixel coordinates.
    """

    label: str
    confidence: float
    left: float
    top: float
    right: float
    bottom: float

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.left, self.top, self.right, self.bottom

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "confidence": self.confidence,
            "left": self.left,
            "top": self.top,
            "right": self.right,
            "bottom": self.bottom,
        }

    def __str__(self) -> str:
        return f"{self.label} ({self.confidence * 100:.2f}%)"


ImageSize = Tuple[int, int]
