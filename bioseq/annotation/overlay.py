"""Display overlays and their painting priority."""

from collections.abc import Mapping
from enum import IntEnum
from typing import Iterable, List, Optional, Tuple

from bioseq.annotation.base import Annotation

CATEGORIES = ("background", "image", "shape", "text", "tooltip")
LEVELS = ("low", "normal", "high", "top")


class OverlayPriority(IntEnum):
    """Painting priority, a higher value is painted later (on top)."""

    BACKGROUND_LOW = 0
    BACKGROUND_NORMAL = 1
    BACKGROUND_HIGH = 2
    BACKGROUND_TOP = 3
    IMAGE_LOW = 4
    IMAGE_NORMAL = 5
    IMAGE_HIGH = 6
    IMAGE_TOP = 7
    SHAPE_LOW = 8
    SHAPE_NORMAL = 9
    SHAPE_HIGH = 10
    SHAPE_TOP = 11
    TEXT_LOW = 12
    TEXT_NORMAL = 13
    TEXT_HIGH = 14
    TEXT_TOP = 15
    TOOLTIP_LOW = 16
    TOOLTIP_NORMAL = 17
    TOOLTIP_HIGH = 18
    TOOLTIP_TOP = 19
    TOPMOST = 20

    @property
    def category(self) -> str:
        if self is OverlayPriority.TOPMOST:
            return "topmost"
        return CATEGORIES[self.value // len(LEVELS)]

    @property
    def level(self) -> Optional[str]:
        if self is OverlayPriority.TOPMOST:
            return None
        return LEVELS[self.value % len(LEVELS)]

    @classmethod
    def of(cls, category: str, level: str = "normal") -> "OverlayPriority":
        if category == "topmost":
            return cls.TOPMOST
        return cls[f"{category}_{level}".upper()]


class Overlay(Annotation):
    """
    Annotation painted on top of the image.

    Overlays sort highest priority first, which is the order display
    surfaces hit-test them in.
    """

    TAG = "overlay"
    DEFAULT_PRIORITY = OverlayPriority.SHAPE_NORMAL
    USER_EDITABLE = ("name", "priority")

    def __init__(
        self,
        name: str = "",
        priority: OverlayPriority = DEFAULT_PRIORITY,
        *,
        annotation_id: Optional[int] = None,
    ):
        super().__init__(name, annotation_id=annotation_id)
        self._priority = OverlayPriority(priority)

    @property
    def priority(self) -> OverlayPriority:
        return self._priority

    @priority.setter
    def priority(self, value: OverlayPriority) -> None:
        self._set_property("_priority", OverlayPriority(value), "priority")

    def compare_to(self, other: "Overlay") -> int:
        """Negative if ``self`` comes first, i.e. has the higher priority."""
        return other.priority - self.priority

    def __lt__(self, other: "Overlay") -> bool:
        if not isinstance(other, Overlay):
            return NotImplemented
        return self.compare_to(other) < 0

    def painter_changed(self) -> None:
        self.changed("painter")

    def save_to(self, node: dict) -> bool:
        if not super().save_to(node):
            return False
        node["priority"] = int(self._priority)
        return True

    def load_from(self, node: Mapping, preserve_id: bool = False) -> bool:
        with self._updater.updating():
            if not super().load_from(node, preserve_id):
                return False
            # ValueError on an unknown ordinal
            self.priority = OverlayPriority(node.get("priority", self.DEFAULT_PRIORITY))
        return True


def sort_overlays(overlays: Iterable[Overlay]) -> List[Overlay]:
    return sorted(overlays)


class LabelOverlay(Overlay):
    """Text label drawn at a fixed image position."""

    TAG = "overlay.label"
    DEFAULT_PRIORITY = OverlayPriority.TEXT_NORMAL
    USER_EDITABLE = ("name", "priority", "text", "position")

    def __init__(
        self,
        text: str = "",
        position: Tuple[float, float] = (0.0, 0.0),
        name: str = "",
        priority: OverlayPriority = DEFAULT_PRIORITY,
        **kwargs,
    ):
        super().__init__(name, priority, **kwargs)
        self._text = text
        self._position = (float(position[0]), float(position[1]))

    @property
    def text(self) -> str:
        return self._text

    @text.setter
    def text(self, value: str) -> None:
        if value != self._text:
            self._text = value
            self.painter_changed()

    @property
    def position(self) -> Tuple[float, float]:
        return self._position

    @position.setter
    def position(self, value: Tuple[float, float]) -> None:
        x, y = value
        value = (float(x), float(y))
        if value != self._position:
            self._position = value
            self.painter_changed()

    def save_to(self, node: dict) -> bool:
        if not super().save_to(node):
            return False
        node["text"] = self._text
        node["position"] = list(self._position)
        return True

    def load_from(self, node: Mapping, preserve_id: bool = False) -> bool:
        with self._updater.updating():
            if not super().load_from(node, preserve_id):
                return False
            text = node.get("text", "")
            if not isinstance(text, str):
                raise TypeError(f"Label text must be a string, got {text!r}")
            self.text = text
            self.position = node.get("position", (0.0, 0.0))
        return True
