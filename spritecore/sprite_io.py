from __future__ import annotations

import base64
import binascii
import json
from io import BytesIO
from logging import getLogger
from pathlib import Path
from typing import Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from spritecore.config import EditorConfig
from spritecore.io import np_rgba_to_pil, pil_to_np_rgba
from spritecore.layers import Layer, LayerStack, clamp_opacity
from spritecore.pixel_buffer import PixelBuffer
from spritecore.sprite import Frame, Sprite

logger = getLogger(__name__)

SPRITE_VERSION = 1
PIXEL_FORMATS = ("flat", "rows", "png")


def _get(raw: dict, *keys, default=None):
    # Documents written by older editors use camelCase keys
    for key in keys:
        if key in raw:
            return raw[key]
    return default


def encode_png(buffer: PixelBuffer) -> str:
    out = BytesIO()
    np_rgba_to_pil(buffer.data).save(out, format="PNG")
    return base64.b64encode(out.getvalue()).decode("ascii")


def decode_png(data: str) -> np.ndarray:
    raw = base64.b64decode(data.encode("ascii"), validate=True)
    with Image.open(BytesIO(raw)) as img:
        return pil_to_np_rgba(img)


def pixels_to_raw(buffer: PixelBuffer, pixel_format: str = "flat"):
    if pixel_format == "flat":
        return buffer.data.reshape(-1).tolist()
    if pixel_format == "rows":
        return buffer.to_rows()
    if pixel_format == "png":
        return encode_png(buffer)
    raise ValueError(f"Unknown pixel format {pixel_format!r}")


def _decode_pixels(raw, width: int, height: int) -> np.ndarray:
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return np.frombuffer(bytes(raw), dtype=np.uint8).reshape((height, width, 4))
    if isinstance(raw, str):
        return decode_png(raw)
    if isinstance(raw, dict):
        # Typed arrays serialized as {"0": r, "1": g, ...}
        raw = [raw[k] for k in sorted(raw, key=int)]
    arr = np.asarray(raw, dtype=np.float64)
    if arr.ndim == 1:
        return arr.reshape((height, width, 4))
    return arr


def pixels_from_raw(raw, width: int, height: int, label: str = "layer") -> PixelBuffer:
    """Decode any supported pixel form; bad data becomes a transparent buffer."""
    if raw is None:
        return PixelBuffer(width, height)
    try:
        arr = _decode_pixels(raw, width, height)
        return PixelBuffer(width, height, arr)
    except (ValueError, TypeError, KeyError, binascii.Error, UnidentifiedImageError) as exc:
        logger.warning("Pixel data for %s does not fit %dx%d (%s), using a transparent buffer", label, width, height, exc)
        return PixelBuffer(width, height)


def _layer_to_raw(layer: Layer, pixel_format: str) -> dict:
    return {
        "id": layer.id,
        "name": layer.name,
        "visible": bool(layer.visible),
        "opacity": layer.opacity,
        "locked": bool(layer.locked),
        "blendMode": layer.blend_mode,
        "pixels": pixels_to_raw(layer.buffer, pixel_format),
    }


def _layer_from_raw(raw: dict, width: int, height: int, idx: int) -> Layer:
    name = str(raw.get("name", f"Layer {idx + 1}"))
    kwargs = {}
    if raw.get("id"):
        kwargs["id"] = str(raw["id"])
    return Layer(
        name=name,
        buffer=pixels_from_raw(raw.get("pixels"), width, height, label=repr(name)),
        visible=bool(raw.get("visible", True)),
        opacity=clamp_opacity(raw.get("opacity", 1.0)),
        locked=bool(raw.get("locked", False)),
        blend_mode=str(_get(raw, "blendMode", "blend_mode", default="normal")),
        **kwargs,
    )


def _frame_to_raw(frame: Frame, pixel_format: str) -> dict:
    return {
        "id": frame.id,
        "name": frame.name,
        "width": frame.width,
        "height": frame.height,
        "active_layer_index": frame.active_layer_index,
        "layers": [_layer_to_raw(layer, pixel_format) for layer in frame.layers],
    }


def _frame_from_raw(raw: dict, width: int, height: int, idx: int) -> Frame:
    fw = int(raw.get("width", width))
    fh = int(raw.get("height", height))
    if fw != width or fh != height:
        logger.warning("Frame %d is %dx%d, sprite is %dx%d; using the sprite size", idx, fw, fh, width, height)
    layers_raw = raw.get("layers")
    layers = []
    if isinstance(layers_raw, list):
        layers = [_layer_from_raw(item, width, height, i) for i, item in enumerate(layers_raw) if isinstance(item, dict)]
    if not layers:
        layers = [Layer.blank("Layer 1", width, height)]
    stack = LayerStack(
        width,
        height,
        layers=layers,
        active_index=int(_get(raw, "active_layer_index", "activeLayerIndex", default=0)),
    )
    kwargs = {}
    if raw.get("id"):
        kwargs["id"] = str(raw["id"])
    return Frame(stack=stack, name=str(raw.get("name", f"Frame {idx + 1}")), **kwargs)


def sprite_to_raw(sprite: Sprite, pixel_format: str = "flat") -> dict:
    if pixel_format not in PIXEL_FORMATS:
        raise ValueError(f"Unknown pixel format {pixel_format!r}")
    return {
        "version": SPRITE_VERSION,
        "id": sprite.id,
        "name": sprite.name,
        "width": sprite.width,
        "height": sprite.height,
        "created_at": sprite.created_at,
        "modified_at": sprite.modified_at,
        "is_animated": sprite.is_animated,
        "active_frame_index": sprite.active_frame_index,
        "pixel_format": pixel_format,
        "frames": [_frame_to_raw(frame, pixel_format) for frame in sprite.frames],
    }


def sprite_from_raw(raw: dict, config: Optional[EditorConfig] = None) -> Sprite:
    if not isinstance(raw, dict):
        raise ValueError("Expected sprite document")
    width = int(raw.get("width", 0))
    height = int(raw.get("height", 0))
    if width <= 0 or height <= 0:
        raise ValueError(f"Sprite size must be positive, got {width}x{height}")

    frames_raw = raw.get("frames")
    if isinstance(frames_raw, list) and frames_raw:
        frames = [_frame_from_raw(item, width, height, idx) for idx, item in enumerate(frames_raw) if isinstance(item, dict)]
    elif isinstance(raw.get("layers"), list):
        # Backward-compatible migration from the layers-only schema
        legacy = {
            "layers": raw["layers"],
            "active_layer_index": _get(raw, "active_layer_index", "activeLayerIndex", default=0),
        }
        frames = [_frame_from_raw(legacy, width, height, 0)]
    else:
        # Oldest schema: one pixel array on the sprite itself
        layer = Layer(name="Layer 1", buffer=pixels_from_raw(raw.get("pixels"), width, height, label="sprite"))
        frames = [Frame(stack=LayerStack(width, height, layers=[layer]))]
    if not frames:
        frames = [Frame.blank(width, height)]

    return Sprite(
        name=str(raw.get("name", "Untitled")),
        config=config,
        frames=frames,
        id=raw.get("id") or None,
        created_at=_get(raw, "created_at", "createdAt"),
        modified_at=_get(raw, "modified_at", "modifiedAt"),
        active_frame_index=int(_get(raw, "active_frame_index", "activeFrameIndex", default=0)),
    )


def save_sprite(path: str, sprite: Sprite, pixel_format: str = "png") -> None:
    payload = sprite_to_raw(sprite, pixel_format)
    Path(path).write_text(json.dumps(payload, indent=2), encoding="utf-8")


def load_sprite(path: str, config: Optional[EditorConfig] = None) -> Sprite:
    sprite_file = Path(path)
    raw = json.loads(sprite_file.read_text(encoding="utf-8"))
    version = raw.get("version", SPRITE_VERSION) if isinstance(raw, dict) else None
    if isinstance(version, int) and version > SPRITE_VERSION:
        logger.warning("%s was written by a newer version (%d), loading what is understood", sprite_file, version)
    return sprite_from_raw(raw, config=config)
