"""Palette extraction and color key helpers."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np


logger = logging.getLogger(__name__)

ColorTuple = Tuple[int, int, int]
RGBATuple = Tuple[int, int, int, int]


@dataclass(slots=True)
class PaletteEntry:
    """Pixel count of one opaque RGB color."""

    r: int
    g: int
    b: int
    count: int

    @property
    def color(self) -> ColorTuple:
        return (self.r, self.g, self.b)


class PaletteError(RuntimeError):
    """Raised when a color value cannot be parsed."""


class FrameBufferError(RuntimeError):
    """Raised when a frame buffer does not match the declared dimensions."""


def hex_to_rgb(value: str) -> ColorTuple:
    value = value.strip()
    if value.startswith("#"):
        value = value[1:]
    if len(value) != 6:
        raise PaletteError("Expected hex RGB in the form RRGGBB")
    try:
        r = int(value[0:2], 16)
        g = int(value[2:4], 16)
        b = int(value[4:6], 16)
    except ValueError as exc:
        raise PaletteError(f"Invalid hex color: {value!r}") from exc
    return (r, g, b)


def rgb_to_hex(color: Sequence[int]) -> str:
    return "#" + "".join(f"{int(c):02x}" for c in color[:3])


def _channel(value: Any) -> int:
    try:
        channel = int(value)
    except (TypeError, ValueError) as exc:
        raise PaletteError(f"Invalid color channel: {value!r}") from exc
    if channel < 0 or channel > 255:
        raise PaletteError(f"Color channel out of range: {channel}")
    return channel


def color_key_to_str(color: Sequence[int]) -> str:
    return f"{color[0]},{color[1]},{color[2]}"


def parse_color_key(value: str) -> ColorTuple:
    """Parse the ``"r,g,b"`` serialised form of a color key."""

    parts = str(value).split(",")
    if len(parts) != 3:
        raise PaletteError(f"Invalid color key: {value!r}")
    return (_channel(parts[0].strip()), _channel(parts[1].strip()), _channel(parts[2].strip()))


def coerce_color(payload: Any) -> ColorTuple:
    """Accept ``{"r","g","b"}`` objects, ``[r, g, b]`` lists, hex strings or color keys."""

    if isinstance(payload, dict):
        if "r" in payload and "g" in payload and "b" in payload:
            return (_channel(payload["r"]), _channel(payload["g"]), _channel(payload["b"]))
        if "hex" in payload:
            return hex_to_rgb(str(payload["hex"]))
        raise PaletteError("Color object must contain r, g and b")
    if isinstance(payload, str):
        if "," in payload:
            return parse_color_key(payload)
        return hex_to_rgb(payload)
    if isinstance(payload, (list, tuple)) and len(payload) >= 3:
        return (_channel(payload[0]), _channel(payload[1]), _channel(payload[2]))
    raise PaletteError(f"Unsupported color value: {payload!r}")


def coerce_rgba(payload: Any) -> RGBATuple:
    r, g, b = coerce_color(payload)
    alpha: Any = 255
    if isinstance(payload, dict):
        alpha = payload.get("a", 255)
    elif isinstance(payload, (list, tuple)) and len(payload) >= 4:
        alpha = payload[3]
    return (r, g, b, _channel(alpha))


def color_to_dict(color: Sequence[int]) -> Dict[str, int]:
    data = {"r": int(color[0]), "g": int(color[1]), "b": int(color[2])}
    if len(color) > 3:
        data["a"] = int(color[3])
    return data


def new_frame(width: int, height: int, color: Sequence[int] = (0, 0, 0, 0)) -> np.ndarray:
    """Return a flat RGBA frame buffer filled with ``color``."""

    pixels = np.empty((width * height, 4), dtype=np.uint8)
    pixels[:] = np.asarray(tuple(color) + (255,) * (4 - len(color)), dtype=np.uint8)
    return pixels.reshape(-1)


def validate_frames(frames: Sequence[np.ndarray], width: int, height: int) -> None:
    expected = width * height * 4
    for index, frame in enumerate(frames):
        if frame.size != expected:
            raise FrameBufferError(
                f"Frame {index} has {frame.size} values, expected {expected} for {width}x{height}"
            )


def copy_frames(frames: Sequence[np.ndarray]) -> List[np.ndarray]:
    return [np.array(frame, dtype=np.uint8, copy=True).reshape(-1) for frame in frames]


def pack_rgb(pixels: np.ndarray) -> np.ndarray:
    """Pack the RGB channels of an ``(N, 4)`` pixel view into ``int32`` keys."""

    return (
        (pixels[:, 0].astype(np.int32) << 16)
        | (pixels[:, 1].astype(np.int32) << 8)
        | pixels[:, 2].astype(np.int32)
    )


def extract_palette(
    frames: Sequence[np.ndarray], *, mask: np.ndarray | None = None
) -> Dict[ColorTuple, PaletteEntry]:
    """Count opaque pixels per RGB color across ``frames``.

    ``mask`` restricts the count to selected pixel positions (shared by every frame).
    Fully transparent pixels never contribute.
    """

    palette: Dict[ColorTuple, PaletteEntry] = {}
    chunks: List[np.ndarray] = []
    for frame in frames:
        pixels = frame.reshape(-1, 4)
        eligible = pixels[:, 3] > 0
        if mask is not None:
            eligible &= mask
        if eligible.any():
            chunks.append(pack_rgb(pixels[eligible]))
    if not chunks:
        return palette
    keys, counts = np.unique(np.concatenate(chunks), return_counts=True)
    for key, count in zip(keys.tolist(), counts.tolist()):
        r, g, b = (key >> 16) & 0xFF, (key >> 8) & 0xFF, key & 0xFF
        palette[(r, g, b)] = PaletteEntry(r=r, g=g, b=b, count=int(count))
    logger.debug("Extracted palette colors=%s frames=%s masked=%s", len(palette), len(frames), mask is not None)
    return palette
