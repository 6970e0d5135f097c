"""
Detection tensor decoding and suppression.

Turns the raw boxes / scores / classes outputs of an object detector into
labeled, de-duplicated boxes in original image coordinates. Works on NumPy
arrays from any runtime; OpenCV is only needed for preprocessing and
onnxruntime only for the optional backend.
"""

from .types import Candidate, Detection, RawOutput
from .labels import LabelTable, load_label_table
from .config import DecodeConfig, load_decode_config
from .events import Observer, PipelineEvent
from .roles import (
    NameRoleResolver,
    OutputRoleResolver,
    PositionalRoleResolver,
    ResolvedRoles,
    ShapeRoleResolver,
    UnresolvedOutputRoles,
    build_resolver,
)
from .decode import DetectionDecoder
from .filter import ClassFilter
from .nms import NMSConfig, NonMaxSuppressor, iou, nms
from .preprocess import make_input_blob, resize_to_tile
from .pipeline import DetectionPipeline, load_pipeline

__all__ = [
    "Candidate",
    "Detection",
    "RawOutput",
    "LabelTable",
    "load_label_table",
    "DecodeConfig",
    "load_decode_config",
    "Observer",
    "PipelineEvent",
    "NameRoleResolver",
    "OutputRoleResolver",
    "PositionalRoleResolver",
    "ResolvedRoles",
    "ShapeRoleResolver",
    "UnresolvedOutputRoles",
    "build_resolver",
    "DetectionDecoder",
    "ClassFilter",
    "NMSConfig",
    "NonMaxSuppressor",
    "iou",
    "nms",
    "make_input_blob",
    "resize_to_tile",
    "DetectionPipeline",
    "load_pipeline",
]
