from __future__ import annotations

from typing import AbstractSet, Iterable, List, Optional

from .events import Observer, emit
from .labels import LabelTable
from .types import Candidate, Detection


class ClassFilter:
    """
    Resolve class ids to labels and keep only allow-listed labels.

    `allow_list=None` keeps every label in the table.
    """

    def __init__(self, labels: LabelTable, allow_list: Optional[AbstractSet[str]]):
        self.labels = labels
        self.allow_list = frozenset(allow_list) if allow_list is not None else None

    def accept(self, cand: Candidate, observer: Optional[Observer] = None) -> Optional[Detection]:
        label = self.labels.get(cand.class_id)
        if label is None:
            emit(observer, "class_rejected", class_id=cand.class_id, reason="out_of_range")
            return None
        if self.allow_list is not None and label not in self.allow_list:
            emit(observer, "class_rejected", class_id=cand.class_id, label=label, reason="not_allowed")
            return None
        return Detection(
            label=label,
            confidence=cand.confidence,
            left=cand.left,
            top=cand.top,
            right=cand.right,
            bottom=cand.bottom,
        )

    def apply(self, candidates: Iterable[Candidate], observer: Optional[Observer] = None) -> List[Detection]:
        out: List[Detection] = []
        for cand in candidates:
            det = self.accept(cand, observer)
            if det is not None:
                out.append(det)
        return out
