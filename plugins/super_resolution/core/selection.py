"""Pointer and touch driven rectangular selection over a displayed image."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol, Union

from PIL import Image, ImageDraw

from .settings import MAX_SELECTION_SIZE


class SelectionError(ValueError):
    """Raised when an input event cannot be turned into a point."""


@dataclass(frozen=True)
class BoundingBox:
    left: float
    top: float
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True)
class TouchPoint:
    client_x: float
    client_y: float
    target: BoundingBox


@dataclass
class TouchInput:
    touches: tuple[TouchPoint, ...]
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True


@dataclass
class PointerInput:
    offset_x: float
    offset_y: float


InputEvent = Union[TouchInput, PointerInput]


@dataclass(frozen=True)
class InputPoint:
    x: float
    y: float


@dataclass(frozen=True)
class DisplayedImage:
    """An image as shown on screen: intrinsic size and rendered size."""

    natural_width: int
    natural_height: int
    width: float
    height: float

    @property
    def scale_x(self) -> float:
        return self.natural_width / self.width

    @property
    def scale_y(self) -> float:
        return self.natural_height / self.height


@dataclass
class SelectionRect:
    show: bool = False
    start_x: float = 0.0
    start_y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def has_area(self) -> bool:
        return self.show and self.width != 0 and self.height != 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "show": self.show,
            "startX": self.start_x,
            "startY": self.start_y,
            "width": self.width,
            "height": self.height,
        }


class Canvas(Protocol):
    width: int
    height: int

    def clear_rect(self, x: int, y: int, width: int, height: int) -> None: ...

    def draw_selection(self, selection: "SelectionRect") -> None: ...


@dataclass
class OverlayCanvas:
    """Transparent RGBA layer the selection outline is drawn on."""

    width: int
    height: int
    color: tuple[int, int, int, int] = (0, 0, 255, 255)
    line_width: int = 2
    image: Image.Image = field(init=False)

    def __post_init__(self) -> None:
        self.image = Image.new("RGBA", (self.width, self.height), (0, 0, 0, 0))

    def clear_rect(self, x: int, y: int, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            return
        ImageDraw.Draw(self.image).rectangle(
            [x, y, x + width - 1, y + height - 1], fill=(0, 0, 0, 0)
        )

    def draw_selection(self, selection: SelectionRect) -> None:
        self.clear_rect(0, 0, self.width, self.height)
        if not selection.has_area:
            return
        x0, x1 = sorted((selection.start_x, selection.start_x + selection.width))
        y0, y1 = sorted((selection.start_y, selection.start_y + selection.height))
        ImageDraw.Draw(self.image).rectangle(
            [x0, y0, x1, y1], outline=self.color, width=self.line_width
        )


def coordinates_of(event: InputEvent) -> InputPoint:
    if isinstance(event, TouchInput):
        if not event.touches:
            raise SelectionError("Touch event has no active touch points")
        touch = event.touches[0]
        return InputPoint(
            x=touch.client_x - touch.target.left,
            y=touch.client_y - touch.target.top,
        )
    return InputPoint(x=event.offset_x, y=event.offset_y)


def normalize_event(raw: Mapping[str, Any]) -> InputEvent:
    """Build an :data:`InputEvent` from a browser-shaped mapping.

    Mappings with a ``touches`` key become :class:`TouchInput`; anything
    else is read as a pointer event with ``offsetX``/``offsetY``.
    """

    try:
        if "touches" not in raw:
            return PointerInput(
                offset_x=float(raw.get("offsetX", 0)),
                offset_y=float(raw.get("offsetY", 0)),
            )
        touches = []
        for touch in raw.get("touches") or ():
            rect = touch.get("target") or {}
            touches.append(
                TouchPoint(
                    client_x=float(touch.get("clientX", 0)),
                    client_y=float(touch.get("clientY", 0)),
                    target=BoundingBox(
                        left=float(rect.get("left", 0)),
                        top=float(rect.get("top", 0)),
                        width=float(rect.get("width", 0)),
                        height=float(rect.get("height", 0)),
                    ),
                )
            )
    except (AttributeError, TypeError, ValueError) as exc:
        raise SelectionError("Event coordinates must be numeric") from exc
    return TouchInput(touches=tuple(touches))


class SelectionController:
    """State machine turning drags into a clamped selection rectangle.

    Geometry lives in display pixels. Positive growth on each axis is
    capped at ``max_selection_size / scale`` so the selection never covers
    more than ``max_selection_size`` natural pixels; reverse drags produce
    negative extents that are left unclamped.
    """

    def __init__(
        self,
        *,
        max_selection_size: float = MAX_SELECTION_SIZE,
        is_processing: Callable[[], bool] = lambda: False,
    ) -> None:
        self.max_selection_size = max_selection_size
        self._is_processing = is_processing
        self.selection = SelectionRect()
        self.selecting = False
        self.image: DisplayedImage | None = None
        self.canvas: Canvas | None = None

    @property
    def is_processing(self) -> bool:
        return bool(self._is_processing())

    def begin(self, event: InputEvent) -> None:
        if isinstance(event, TouchInput):
            event.prevent_default()
        if self.is_processing:
            return
        point = coordinates_of(event)
        self.selecting = True
        self.selection.show = True
        self.selection.width = 0
        self.selection.height = 0
        self.selection.start_x = point.x
        self.selection.start_y = point.y

    def resize(self, event: InputEvent) -> None:
        if self.is_processing:
            return
        if isinstance(event, TouchInput):
            event.prevent_default()
        image = self.image
        if image is None or not image.width or not image.height:
            return
        if not self.selecting:
            return
        point = coordinates_of(event)
        self.selection.width = min(
            point.x - self.selection.start_x, self.max_selection_size / image.scale_x
        )
        self.selection.height = min(
            point.y - self.selection.start_y, self.max_selection_size / image.scale_y
        )

    def end(self) -> None:
        if self.is_processing:
            return
        self.selecting = False

    def reset(self) -> None:
        canvas = self.canvas
        if canvas is not None:
            canvas.clear_rect(0, 0, canvas.width, canvas.height)
        self.selecting = False
        self.selection.show = False
        self.selection.start_x = 0
        self.selection.start_y = 0
        self.selection.width = 0
        self.selection.height = 0

    @property
    def selection_style(self) -> dict[str, str]:
        return {
            "position": "absolute",
            "top": f"{self.selection.start_y}px",
            "left": f"{self.selection.start_x}px",
            "width": f"{self.selection.width}px",
            "height": f"{self.selection.height}px",
            "border": "2px solid blue",
            "pointerEvents": "none",
        }

    def natural_box(self) -> tuple[int, int, int, int] | None:
        """Selection in natural image pixels as ``(left, top, right, bottom)``.

        Returns ``None`` without a bound image or a selection with area.
        """

        image = self.image
        if image is None or not image.width or not image.height:
            return None
        if not self.selection.has_area:
            return None
        x0, x1 = sorted((self.selection.start_x, self.selection.start_x + self.selection.width))
        y0, y1 = sorted((self.selection.start_y, self.selection.start_y + self.selection.height))
        left = max(0, min(image.natural_width, round(x0 * image.scale_x)))
        right = max(0, min(image.natural_width, round(x1 * image.scale_x)))
        top = max(0, min(image.natural_height, round(y0 * image.scale_y)))
        bottom = max(0, min(image.natural_height, round(y1 * image.scale_y)))
        if right <= left or bottom <= top:
            return None
        return left, top, right, bottom


__all__ = [
    "BoundingBox",
    "Canvas",
    "DisplayedImage",
    "InputEvent",
    "InputPoint",
    "OverlayCanvas",
    "PointerInput",
    "SelectionController",
    "SelectionError",
    "SelectionRect",
    "TouchInput",
    "TouchPoint",
    "coordinates_of",
    "normalize_event",
]
