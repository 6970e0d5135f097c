"""
Output role resolution: which engine output holds boxes, scores and classes.

Exports disagree on naming and ordering, so the strategy is chosen when the
pipeline is built:

- NameRoleResolver: exact tensor names, optionally falling back to another strategy
- ShapeRoleResolver: boxes are the (1, N, 4) / (N, 4) output, then scores, then classes
- PositionalRoleResolver: fixed output positions
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

import numpy as np

from .config import DecodeConfig
from .types import RawOutput

LOGGER = logging.getLogger(__name__)


class UnresolvedOutputRoles(ValueError):
    """Boxes or scores could not be identified among the engine outputs."""


@dataclass(frozen=True, eq=False)
class ResolvedRoles:
    boxes: RawOutput
    scores: RawOutput
    classes: Optional[RawOutput] = None

    def describe(self) -> dict:
        return {
            "boxes": (self.boxes.name, self.boxes.shape),
            "scores": (self.scores.name, self.scores.shape),
            "classes": (self.classes.name, self.classes.shape) if self.classes is not None else None,
        }


def _named_items(outputs: Any) -> List[Tuple[str, Any]]:
    if isinstance(outputs, Mapping):
        return [(str(name), value) for name, value in outputs.items()]
    if isinstance(outputs, np.ndarray):
        return [("output0", outputs)]
    # Positional outputs (list/tuple) get stable synthetic names.
    return [(f"output{i}", value) for i, value in enumerate(outputs)]


def output_names(outputs: Any) -> List[str]:
    try:
        return [name for name, _ in _named_items(outputs)]
    except TypeError:
        return []


def normalize_outputs(outputs: Any) -> List[RawOutput]:
    """
    Accepts a mapping name -> output, a sequence of outputs, or a single array.
    Each output may be an ndarray, a RawOutput or a (flat_values, shape) pair.
    """

    return [RawOutput.from_any(name, value) for name, value in _named_items(outputs)]


def is_box_shape(shape: Tuple[int, ...]) -> bool:
    if len(shape) == 3:
        return shape[0] == 1 and shape[2] == 4
    if len(shape) == 2:
        return shape[1] == 4
    return False


def is_vector_shape(shape: Tuple[int, ...]) -> bool:
    # (N,), (1, N) or (N, 1); batch > 1 is not supported.
    if len(shape) == 1:
        return True
    if len(shape) == 2:
        return shape[0] == 1 or shape[1] == 1
    return False


def _validate(roles: ResolvedRoles) -> ResolvedRoles:
    for out in (roles.boxes, roles.scores, roles.classes):
        if out is not None and out.flat().size != out.size:
            raise UnresolvedOutputRoles(
                f"output {out.name!r} holds {out.flat().size} values but declares shape {out.shape}"
            )
    if not is_box_shape(roles.boxes.shape):
        raise UnresolvedOutputRoles(f"boxes output {roles.boxes.name!r} has unsupported shape {roles.boxes.shape}")
    if not is_vector_shape(roles.scores.shape):
        raise UnresolvedOutputRoles(f"scores output {roles.scores.name!r} has unsupported shape {roles.scores.shape}")
    if roles.classes is not None and not is_vector_shape(roles.classes.shape):
        raise UnresolvedOutputRoles(
            f"classes output {roles.classes.name!r} has unsupported shape {roles.classes.shape}"
        )
    return roles


class OutputRoleResolver:
    """Base strategy. Subclasses implement `_resolve` over normalized outputs."""

    def resolve(self, outputs: Any) -> ResolvedRoles:
        try:
            normalized = normalize_outputs(outputs)
        except (TypeError, ValueError) as exc:
            raise UnresolvedOutputRoles(f"Outputs could not be read as float arrays: {exc}") from exc
        return _validate(self._resolve(normalized))

    def _resolve(self, outputs: List[RawOutput]) -> ResolvedRoles:
        raise NotImplementedError


class ShapeRoleResolver(OutputRoleResolver):
    def _resolve(self, outputs: List[RawOutput]) -> ResolvedRoles:
        rank3 = [o for o in outputs if o.rank == 3 and o.shape[-1] == 4]
        rank2 = [o for o in outputs if o.rank == 2 and o.shape[-1] == 4]
        if len(rank2) > 1:
            # (1, 4) is also a batched vector of four scores or classes.
            rank2 = [o for o in rank2 if not is_vector_shape(o.shape)] or rank2

        if len(rank3) == 1:
            boxes = rank3[0]
        elif not rank3 and len(rank2) == 1:
            boxes = rank2[0]
        else:
            raise UnresolvedOutputRoles(
                f"Could not identify a single boxes output (rank-3 candidates={len(rank3)}, rank-2 candidates={len(rank2)})"
            )

        rest = [o for o in outputs if o is not boxes and o.rank in (1, 2)]
        if not rest:
            raise UnresolvedOutputRoles("No scores output found")

        scores = rest[0]
        classes = rest[1] if len(rest) > 1 else None
        return ResolvedRoles(boxes=boxes, scores=scores, classes=classes)


class NameRoleResolver(OutputRoleResolver):
    def __init__(
        self,
        boxes: str,
        scores: str,
        classes: Optional[str] = None,
        fallback: Optional[OutputRoleResolver] = None,
    ):
        self.boxes_name = boxes
        self.scores_name = scores
        self.classes_name = classes
        self.fallback = fallback

    def _resolve(self, outputs: List[RawOutput]) -> ResolvedRoles:
        by_name = {o.name: o for o in outputs}
        boxes = by_name.get(self.boxes_name)
        scores = by_name.get(self.scores_name)

        if boxes is None or scores is None:
            if self.fallback is not None:
                LOGGER.debug(
                    "Outputs %s missing %r/%r, falling back to %s",
                    sorted(by_name),
                    self.boxes_name,
                    self.scores_name,
                    type(self.fallback).__name__,
                )
                return self.fallback._resolve(outputs)
            raise UnresolvedOutputRoles(
                f"Outputs {sorted(by_name)} do not contain boxes={self.boxes_name!r} and scores={self.scores_name!r}"
            )

        classes = by_name.get(self.classes_name) if self.classes_name is not None else None
        return ResolvedRoles(boxes=boxes, scores=scores, classes=classes)


class PositionalRoleResolver(OutputRoleResolver):
    def __init__(self, boxes: int = 0, scores: int = 1, classes: Optional[int] = 2):
        self.boxes_index = boxes
        self.scores_index = scores
        self.classes_index = classes

    def _resolve(self, outputs: List[RawOutput]) -> ResolvedRoles:
        needed = max(self.boxes_index, self.scores_index) + 1
        if len(outputs) < needed:
            raise UnresolvedOutputRoles(f"Expected at least {needed} outputs, got {len(outputs)}")

        classes = None
        if self.classes_index is not None and self.classes_index < len(outputs):
            classes = outputs[self.classes_index]
        return ResolvedRoles(
            boxes=outputs[self.boxes_index],
            scores=outputs[self.scores_index],
            classes=classes,
        )


def build_resolver(cfg: DecodeConfig) -> OutputRoleResolver:
    if cfg.role_strategy == "shape":
        return ShapeRoleResolver()
    if cfg.role_strategy == "position":
        return PositionalRoleResolver()
    if cfg.role_strategy == "name":
        return NameRoleResolver(cfg.boxes_output, cfg.scores_output, cfg.classes_output)

    # auto: names when configured, shapes otherwise
    if cfg.boxes_output is not None and cfg.scores_output is not None:
        return NameRoleResolver(
            cfg.boxes_output,
            cfg.scores_output,
            cfg.classes_output,
            fallback=ShapeRoleResolver(),
        )
    return ShapeRoleResolver()
