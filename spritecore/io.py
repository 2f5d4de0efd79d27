from __future__ import annotations

from pathlib import Path
from typing import Optional

import numpy as np
from PIL import Image

from spritecore.config import EditorConfig
from spritecore.layers import Layer, LayerStack
from spritecore.pixel_buffer import PixelBuffer
from spritecore.sprite import Frame, Sprite


def pil_to_np_rgba(img: Image.Image) -> np.ndarray:
    arr = np.array(img.convert("RGBA"), dtype=np.uint8)
    if arr.ndim != 3 or arr.shape[2] != 4:
        raise ValueError("Expected RGBA image")
    return arr


def np_rgba_to_pil(arr: np.ndarray) -> Image.Image:
    return Image.fromarray(np.ascontiguousarray(arr, dtype=np.uint8))


def load_image_rgba(path: str) -> Image.Image:
    with Image.open(path) as img:
        # Convert to RGBA for consistent alpha work
        return img.convert("RGBA")


def save_image(path: str, img_rgba: Image.Image) -> None:
    # Saving as PNG preserves alpha
    img_rgba.save(path)


def sprite_to_image(sprite: Sprite, scale: int = 1) -> Image.Image:
    img = np_rgba_to_pil(sprite.composite_array())
    scale = max(1, int(scale))
    if scale > 1:
        img = img.resize((sprite.width * scale, sprite.height * scale), Image.Resampling.NEAREST)
    return img


def save_png(path: str, sprite: Sprite, scale: int = 1) -> None:
    target = Path(path)
    if target.suffix.lower() != ".png":
        target = target.with_suffix(".png")
    save_image(str(target), sprite_to_image(sprite, scale))


def sprite_from_image(img: Image.Image, name: str = "Imported", config: Optional[EditorConfig] = None) -> Sprite:
    arr = pil_to_np_rgba(img)
    height, width = arr.shape[:2]
    layer = Layer(name="Layer 1", buffer=PixelBuffer(width, height, arr))
    frame = Frame(stack=LayerStack(width, height, layers=[layer]))
    return Sprite(name=name, config=config, frames=[frame])


def load_sprite_image(path: str, name: Optional[str] = None, config: Optional[EditorConfig] = None) -> Sprite:
    return sprite_from_image(load_image_rgba(path), name=name or Path(path).stem, config=config)
