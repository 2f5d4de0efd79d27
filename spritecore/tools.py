from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from spritecore.color import clamp_tolerance
from spritecore.fill import flood_fill
from spritecore.layers import LayerStack

if TYPE_CHECKING:
    from spritecore.session import EditorSession
    from spritecore.sprite import Sprite


@dataclass(frozen=True)
class Modifiers:
    shift: bool = False
    ctrl: bool = False
    alt: bool = False


NO_MODIFIERS = Modifiers()


class BaseTool:
    """Pointer-driven tool; coordinates are sprite-space integers."""

    name = "base"

    def __init__(self, session: "EditorSession"):
        self.session = session
        self.active = False
        self.hover: Optional[tuple] = None

    @property
    def sprite(self) -> Optional["Sprite"]:
        return self.session.current_sprite

    @property
    def stack(self) -> Optional[LayerStack]:
        sprite = self.sprite
        return sprite.active_stack if sprite is not None else None

    def activate(self) -> None:
        self.active = True

    def deactivate(self) -> None:
        self.on_pointer_leave()
        self.active = False

    def on_pointer_down(self, x: int, y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        pass

    def on_pointer_drag(self, x: int, y: int, last_x: int, last_y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        pass

    def on_pointer_up(self, x: int, y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        pass

    def on_pointer_move(self, x: int, y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        self.hover = (x, y)

    def on_pointer_leave(self) -> None:
        self.hover = None


class BucketTool(BaseTool):
    name = "bucket"

    def __init__(self, session: "EditorSession", tolerance: Optional[float] = None, contiguous: bool = True):
        super().__init__(session)
        if tolerance is None:
            tolerance = session.config.default_tolerance
        self.tolerance = clamp_tolerance(tolerance)
        self.contiguous = contiguous
        self.last_result = False

    def set_tolerance(self, tolerance: float) -> None:
        self.tolerance = clamp_tolerance(tolerance)

    def on_pointer_down(self, x: int, y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        stack = self.stack
        if stack is None:
            self.last_result = False
            return
        # Shift fills every matching pixel of the layer
        contiguous = self.contiguous and not modifiers.shift
        self.last_result = flood_fill(stack, x, y, self.session.primary_color, self.tolerance, contiguous)


class EyedropperTool(BaseTool):
    name = "eyedropper"

    def _pick(self, x: int, y: int) -> None:
        sprite = self.sprite
        if sprite is None or not sprite.in_bounds(x, y):
            return
        color = sprite.get_pixel(x, y)
        if color[3] > 0:
            self.session.set_primary_color(color)

    def on_pointer_down(self, x: int, y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        self._pick(x, y)

    def on_pointer_drag(self, x: int, y: int, last_x: int, last_y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        self._pick(x, y)
