from bioseq.annotation.base import Annotation, Surface
from bioseq.annotation.ids import IdAllocator
from bioseq.annotation.overlay import LabelOverlay, Overlay, OverlayPriority
from bioseq.annotation.registry import AnnotationRegistry, default_registry
from bioseq.annotation.roi import ROI, EllipseROI, RectangleROI

__all__ = [
    "Annotation",
    "AnnotationRegistry",
    "EllipseROI",
    "IdAllocator",
    "LabelOverlay",
    "Overlay",
    "OverlayPriority",
    "ROI",
    "RectangleROI",
    "Surface",
    "default_registry",
]
