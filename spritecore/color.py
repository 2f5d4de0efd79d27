from __future__ import annotations

import math
import re
from typing import Optional, Sequence, Tuple

RGBA = Tuple[int, int, int, int]

TRANSPARENT: RGBA = (0, 0, 0, 0)

# Largest possible euclidean distance between two RGBA colors
MAX_DISTANCE = math.sqrt(4 * 255 * 255)

_HEX_RE = re.compile(r"^#?([0-9a-f]{2})([0-9a-f]{2})([0-9a-f]{2})([0-9a-f]{2})?$", re.IGNORECASE)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_channel(value) -> int:
    if value is None:
        return 0
    if isinstance(value, float):
        if math.isnan(value):
            return 0
        value = round_half_up(value)
    return max(0, min(255, int(value)))


def normalize_color(color: Sequence) -> RGBA:
    """Clamp a 3- or 4-channel color to an RGBA tuple; alpha defaults to 255."""
    if isinstance(color, (str, bytes)) or len(color) not in (3, 4):
        raise ValueError(f"Expected RGB or RGBA color, got {color!r}")
    alpha = color[3] if len(color) == 4 else 255
    return (
        clamp_channel(color[0]),
        clamp_channel(color[1]),
        clamp_channel(color[2]),
        clamp_channel(alpha),
    )


def colors_equal(a: Sequence[int], b: Sequence[int]) -> bool:
    return a[0] == b[0] and a[1] == b[1] and a[2] == b[2] and a[3] == b[3]


def color_distance(a: Sequence[int], b: Sequence[int]) -> float:
    return math.sqrt(sum((int(a[i]) - int(b[i])) ** 2 for i in range(4)))


def color_distance_percent(a: Sequence[int], b: Sequence[int]) -> float:
    return color_distance(a, b) / MAX_DISTANCE * 100.0


def clamp_tolerance(tolerance: float) -> float:
    return max(0.0, min(100.0, float(tolerance)))


def colors_match(a: Sequence[int], b: Sequence[int], tolerance: float) -> bool:
    tolerance = clamp_tolerance(tolerance)
    if tolerance == 0:
        return colors_equal(a, b)
    return color_distance_percent(a, b) <= tolerance


def blend_over(background: Sequence[int], foreground: Sequence[int], opacity: float = 1.0) -> RGBA:
    """Composite ``foreground`` over ``background`` with the straight-alpha "over" operator."""
    fg_alpha = foreground[3] / 255.0 * opacity
    bg_alpha = background[3] / 255.0
    out_alpha = fg_alpha + bg_alpha * (1.0 - fg_alpha)
    if out_alpha <= 0:
        return TRANSPARENT
    rgb = [
        clamp_channel((foreground[i] * fg_alpha + background[i] * bg_alpha * (1.0 - fg_alpha)) / out_alpha)
        for i in range(3)
    ]
    return (rgb[0], rgb[1], rgb[2], clamp_channel(out_alpha * 255.0))


def scale_alpha(color: Sequence[int], percent: float) -> RGBA:
    percent = max(0.0, min(100.0, float(percent)))
    return (int(color[0]), int(color[1]), int(color[2]), clamp_channel(color[3] * percent / 100.0))


def hex_to_rgba(value: str) -> Optional[RGBA]:
    m = _HEX_RE.match(value.strip())
    if not m:
        return None
    alpha = int(m.group(4), 16) if m.group(4) else 255
    return (int(m.group(1), 16), int(m.group(2), 16), int(m.group(3), 16), alpha)


def rgba_to_hex(color: Sequence[int]) -> str:
    r, g, b, a = normalize_color(color)
    if a == 255:
        return f"#{r:02x}{g:02x}{b:02x}"
    return f"#{r:02x}{g:02x}{b:02x}{a:02x}"
