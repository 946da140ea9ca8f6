"""Type-tag registry used to rebuild annotations from their saved form."""

from collections.abc import Mapping
from typing import Callable, Dict, Iterable, List, Optional

from loguru import logger

from bioseq.annotation.base import Annotation
from bioseq.annotation.ids import IdAllocator
from bioseq.annotation.overlay import LabelOverlay, Overlay
from bioseq.annotation.roi import EllipseROI, RectangleROI

Factory = Callable[[], Annotation]


class AnnotationRegistry:
    """
    Maps stable type tags to annotation factories.

    Annotations created from a saved node keep their stored id, which is
    reserved in ``ids`` so that later allocations don't collide with it.
    Annotations saved without an id get a fresh one.

    Args:
        ids: Allocator shared with the component owning the annotations
    """

    def __init__(self, ids: Optional[IdAllocator] = None):
        self._factories: Dict[str, Factory] = {}
        self.ids = ids if ids is not None else IdAllocator()

    def register(self, tag: str, factory: Optional[Factory] = None):
        """Register ``factory`` under ``tag``.

        Without a factory, returns a decorator registering the decorated class.
        """
        if factory is None:

            def decorator(cls):
                self._factories[tag] = cls
                return cls

            return decorator

        self._factories[tag] = factory
        return factory

    def tags(self) -> List[str]:
        return sorted(self._factories)

    def __contains__(self, tag: str) -> bool:
        return tag in self._factories

    def create(self, node: Mapping) -> Optional[Annotation]:
        """Rebuild one annotation.

        Returns:
            The annotation, or None if the tag is unknown or the node is malformed
        """
        if not isinstance(node, Mapping):
            logger.warning(f"Skipping annotation entry that is not a mapping: {node!r}")
            return None

        tag = node.get("type")
        if not isinstance(tag, str):
            logger.warning(f"Skipping annotation entry without a type name: {tag!r}")
            return None
        factory = self._factories.get(tag)
        if factory is None:
            logger.warning(f"Unknown annotation type: {tag!r}")
            return None

        annotation = factory()
        try:
            loaded = annotation.load_from(node)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to load annotation of type {tag!r}: {e}")
            return None
        if not loaded:
            logger.warning(f"Failed to load annotation of type {tag!r}")
            return None

        if annotation.id is None:
            annotation.id = self.ids.next_id()
        else:
            self.ids.reserve(annotation.id)
        return annotation

    def load_all(self, node: Mapping, key: str = "annotations") -> List[Annotation]:
        """Rebuild every annotation stored under ``node[key]``.

        Entries that can't be rebuilt are skipped. Loaded annotations are
        flagged persistent so that they are saved back.
        """
        entries = node.get(key) or []
        annotations = []
        for entry in entries:
            annotation = self.create(entry)
            if annotation is None:
                continue
            annotation.persistent = True
            annotations.append(annotation)
        logger.debug(f"Loaded {len(annotations)}/{len(entries)} annotations")
        return annotations

    def save_all(
        self, node: dict, annotations: Iterable[Annotation], key: str = "annotations"
    ) -> int:
        """Save the persistent annotations into ``node[key]``.

        Returns:
            Number of annotations saved
        """
        entries = []
        for annotation in annotations:
            if not annotation.persistent:
                continue
            entry: dict = {}
            if annotation.save_to(entry):
                entries.append(entry)
            else:
                logger.warning(f"Failed to save {annotation!r}")
        node[key] = entries
        return len(entries)


def default_registry(ids: Optional[IdAllocator] = None) -> AnnotationRegistry:
    """Fresh registry knowing the built-in ROI and overlay types."""
    registry = AnnotationRegistry(ids)
    for cls in (RectangleROI, EllipseROI, Overlay, LabelOverlay):
        registry.register(cls.TAG, cls)
    return registry
