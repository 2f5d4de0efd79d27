from __future__ import annotations

from dataclasses import dataclass
from typing import List

import numpy as np

from spritecore.color import RGBA
from spritecore.sprite import Sprite


@dataclass(frozen=True)
class PixelRect:
    x: int
    y: int
    color: RGBA
    width: int = 1
    height: int = 1


def composite_array(sprite: Sprite) -> np.ndarray:
    return sprite.composite_array()


def composite_bytes(sprite: Sprite) -> bytes:
    return sprite.composite_array().tobytes()


def composite_grid(sprite: Sprite) -> List[List[RGBA]]:
    return sprite.get_pixel_array()


def opaque_pixel_rects(sprite: Sprite) -> List[PixelRect]:
    """Unit squares for every composited pixel with non-zero alpha, row-major."""
    arr = sprite.composite_array()
    ys, xs = np.nonzero(arr[..., 3])
    return [
        PixelRect(x=int(x), y=int(y), color=tuple(int(v) for v in arr[y, x]))
        for y, x in zip(ys, xs)
    ]
