from __future__ import annotations

import logging
from typing import Any, List, Optional

import numpy as np

from .config import DecodeConfig
from .events import Observer, emit
from .roles import OutputRoleResolver, ResolvedRoles, UnresolvedOutputRoles, build_resolver, output_names
from .types import Candidate, ImageSize

LOGGER = logging.getLogger(__name__)

# Class values at or beyond this magnitude cannot be cast to int64.
_MAX_CLASS_VALUE = float(2**62)


class DetectionDecoder:
    """
    Decode raw detector outputs menjadi kandidat dengan koordinat gambar original.

    Layout yang didukung (per image):
    - boxes: (N, 4) atau (1, N, 4), [x1, y1, x2, y2] dalam pixel input model
    - scores: (N,) atau (1, N)
    - classes (opsional): sama seperti scores, class id disimpan sebagai float

    Model tanpa output classes dianggap single-class (class id 0).
    """

    def __init__(self, cfg: DecodeConfig = DecodeConfig(), resolver: Optional[OutputRoleResolver] = None):
        self.cfg = cfg
        self.resolver = resolver if resolver is not None else build_resolver(cfg)

    def decode(
        self,
        outputs: Any,
        image_size: ImageSize,
        observer: Optional[Observer] = None,
    ) -> List[Candidate]:
        """
        Resolve output roles then decode. Unresolvable outputs yield no candidates.

        Args:
            outputs: engine outputs keyed by name; values are arrays, RawOutput or (flat, shape)
            image_size: (width, height) of the original image
        """

        try:
            roles = self.resolver.resolve(outputs)
        except UnresolvedOutputRoles as exc:
            LOGGER.warning("Output roles unresolved, returning no candidates: %s", exc)
            emit(observer, "roles_unresolved", reason=str(exc), outputs=output_names(outputs))
            return []

        emit(observer, "roles_resolved", **roles.describe())
        return self.decode_roles(roles, image_size, observer=observer)

    def decode_roles(
        self,
        roles: ResolvedRoles,
        image_size: ImageSize,
        observer: Optional[Observer] = None,
    ) -> List[Candidate]:
        orig_w, orig_h = image_size
        if orig_w <= 0 or orig_h <= 0:
            raise ValueError(f"image_size must be positive (got {image_size})")

        scores = roles.scores.flat().astype(np.float64)
        boxes_flat = roles.boxes.flat().astype(np.float64)
        classes = roles.classes.flat().astype(np.float64) if roles.classes is not None else None

        # Malformed exports may disagree on length; only decode slots present in every output.
        n = min(scores.size, boxes_flat.size // 4)
        if classes is not None:
            n = min(n, classes.size)
        if n != scores.size:
            LOGGER.debug("Output lengths disagree, decoding %d of %d slots", n, scores.size)

        conf = np.minimum(scores[:n], 1.0)
        with np.errstate(invalid="ignore"):
            keep = conf > self.cfg.confidence_threshold
        idx = np.flatnonzero(keep)

        if idx.size == 0:
            emit(observer, "decode_summary", slots=n, above_threshold=0, accepted=0)
            LOGGER.debug("No candidates above %.3f among %d slots", self.cfg.confidence_threshold, n)
            return []

        class_ids = self._class_ids(classes, idx)
        xyxy = self._scale_boxes(boxes_flat[: n * 4].reshape(n, 4)[idx], (orig_w, orig_h))

        with np.errstate(invalid="ignore"):
            valid = (xyxy[:, 2] > xyxy[:, 0]) & (xyxy[:, 3] > xyxy[:, 1])

        candidates: List[Candidate] = []
        for k, slot in enumerate(idx):
            left, top, right, bottom = (float(v) for v in xyxy[k])
            if not valid[k]:
                emit(
                    observer,
                    "candidate",
                    index=int(slot),
                    outcome="degenerate",
                    class_id=int(class_ids[k]),
                    box=(left, top, right, bottom),
                )
                continue
            cand = Candidate(
                class_id=int(class_ids[k]),
                confidence=float(conf[slot]),
                left=left,
                top=top,
                right=right,
                bottom=bottom,
            )
            candidates.append(cand)
            emit(
                observer,
                "candidate",
                index=int(slot),
                outcome="accepted",
                class_id=cand.class_id,
                box=(left, top, right, bottom),
            )

        emit(observer, "decode_summary", slots=n, above_threshold=int(idx.size), accepted=len(candidates))
        LOGGER.debug("Decoded %d candidates (%d above threshold, %d slots)", len(candidates), idx.size, n)
        return candidates

    # ------------------------------------------------------------------ #
    # Helper internal
    # ------------------------------------------------------------------ #
    @staticmethod
    def _class_ids(classes: Optional[np.ndarray], idx: np.ndarray) -> np.ndarray:
        if classes is None:
            return np.zeros(idx.shape, dtype=np.int64)
        raw = classes[idx]
        with np.errstate(invalid="ignore"):
            finite = np.isfinite(raw) & (np.abs(raw) < _MAX_CLASS_VALUE)
        # Non-finite or huge ids map to -1 so the class filter drops them as out of range.
        out = np.full(idx.shape, -1, dtype=np.int64)
        out[finite] = np.rint(raw[finite]).astype(np.int64)
        return out

    def _scale_boxes(self, boxes: np.ndarray, orig_size: ImageSize) -> np.ndarray:
        """
        Map boxes dari pixel input model (tile persegi) ke gambar original.
        """

        orig_w, orig_h = orig_size
        tile = float(self.cfg.input_tile_size)
        scale = np.array([orig_w, orig_h, orig_w, orig_h], dtype=np.float64)
        out = (boxes / tile) * scale

        out[:, 0] = np.maximum(out[:, 0], 0.0)
        out[:, 1] = np.maximum(out[:, 1], 0.0)
        if self.cfg.clip_to_image:
            out[:, 2] = np.minimum(out[:, 2], float(orig_w))
            out[:, 3] = np.minimum(out[:, 3], float(orig_h))
        return out
