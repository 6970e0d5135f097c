from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .config import DEFAULT_CLASS_IOU_THRESHOLDS, DecodeConfig
from .events import Observer, emit
from .types import Detection

LOGGER = logging.getLogger(__name__)

BoxLike = Union[Detection, Sequence[float]]


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.70
    # Per-label overrides of `iou_threshold`.
    class_thresholds: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_CLASS_IOU_THRESHOLDS), hash=False
    )
    max_detections: Optional[int] = None

    def __post_init__(self) -> None:
        # Default instances are shared by every suppressor built without a config.
        object.__setattr__(self, "class_thresholds", MappingProxyType(dict(self.class_thresholds)))

    def threshold_for(self, label: str) -> float:
        return self.class_thresholds.get(label, self.iou_threshold)

    @classmethod
    def from_decode_config(cls, cfg: DecodeConfig) -> "NMSConfig":
        return cls(
            iou_threshold=cfg.iou_threshold,
            class_thresholds=dict(cfg.class_iou_thresholds),
            max_detections=cfg.max_detections,
        )


def _xyxy(box: BoxLike) -> Tuple[float, float, float, float]:
    if isinstance(box, Detection):
        return box.as_xyxy()
    x1, y1, x2, y2 = box
    return float(x1), float(y1), float(x2), float(y2)


def iou(a: BoxLike, b: BoxLike) -> float:
    """
    Intersection over union of two xyxy boxes; 0 when they do not overlap.
    """

    l1, t1, r1, b1 = _xyxy(a)
    l2, t2, r2, b2 = _xyxy(b)
    left, top = max(l1, l2), max(t1, t2)
    right, bottom = min(r1, r2), min(b1, b2)
    if right < left or bottom < top:
        return 0.0
    inter = (right - left) * (bottom - top)
    union = (r1 - l1) * (b1 - t1) + (r2 - l2) * (b2 - t2) - inter
    if union <= 0:
        return 0.0
    return inter / union


def pairwise_iou(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    IoU of one box (4,) against boxes (M, 4), all xyxy.
    """

    xx1 = np.maximum(box[0], boxes[:, 0])
    yy1 = np.maximum(box[1], boxes[:, 1])
    xx2 = np.minimum(box[2], boxes[:, 2])
    yy2 = np.minimum(box[3], boxes[:, 3])

    w = np.maximum(0.0, xx2 - xx1)
    h = np.maximum(0.0, yy2 - yy1)
    inter = w * h
    area = (box[2] - box[0]) * (box[3] - box[1])
    areas = (boxes[:, 2] - boxes[:, 0]) * (boxes[:, 3] - boxes[:, 1])
    union = area + areas - inter
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(union > 0, inter / union, 0.0)


def nms(
    boxes: np.ndarray,
    scores: np.ndarray,
    labels: Sequence[str],
    cfg: NMSConfig = NMSConfig(),
) -> np.ndarray:
    """
    Greedy per-label NMS. Expects boxes shape (N,4) in xyxy, scores (N,) and one
    label per box. Returns indices of kept boxes in selection order.

    Ties in score keep input order, so identical inputs give identical output.
    """

    n = int(scores.shape[0])
    if n == 0:
        return np.empty((0,), dtype=np.int64)

    labels_arr = np.asarray(list(labels), dtype=object)
    thresholds = np.array([cfg.threshold_for(label) for label in labels_arr], dtype=np.float64)
    order = np.argsort(-scores, kind="stable")
    suppressed = np.zeros(n, dtype=bool)
    keep: List[int] = []

    for pos, i in enumerate(order):
        if suppressed[i]:
            continue
        keep.append(int(i))
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break

        rest = order[pos + 1 :]
        rest = rest[(labels_arr[rest] == labels_arr[i]) & ~suppressed[rest]]
        if rest.size == 0:
            continue
        ious = pairwise_iou(boxes[i], boxes[rest])
        suppressed[rest[ious > thresholds[i]]] = True

    return np.array(keep, dtype=np.int64)


class NonMaxSuppressor:
    """
    Removes lower-confidence duplicates of the same label. Labels never suppress
    each other across classes.
    """

    def __init__(self, cfg: NMSConfig = NMSConfig()):
        self.cfg = cfg

    def suppress(self, detections: Sequence[Detection], observer: Optional[Observer] = None) -> List[Detection]:
        if not detections:
            emit(observer, "nms", before=0, after=0)
            return []

        boxes = np.array([d.as_xyxy() for d in detections], dtype=np.float64)
        scores = np.array([d.confidence for d in detections], dtype=np.float64)
        keep = nms(boxes, scores, [d.label for d in detections], self.cfg)
        kept = [detections[i] for i in keep]

        emit(observer, "nms", before=len(detections), after=len(kept))
        LOGGER.debug("NMS kept %d of %d detections", len(kept), len(detections))
        return kept
