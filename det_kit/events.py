from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineEvent:
    """
    Diagnostic event emitted while decoding.

    kinds:
    - roles_resolved / roles_unresolved
    - candidate (outcome: accepted | degenerate)
    - decode_summary
    - class_rejected (reason: out_of_range | not_allowed)
    - nms (before / after)
    - inference_failed
    """

    kind: str
    data: Dict[str, Any] = field(default_factory=dict)


Observer = Callable[[PipelineEvent], None]


def emit(observer: Optional[Observer], kind: str, **data: Any) -> None:
    if observer is None:
        return
    try:
        observer(PipelineEvent(kind=kind, data=data))
    except Exception:
        LOGGER.exception("Observer failed while handling %r event", kind)
