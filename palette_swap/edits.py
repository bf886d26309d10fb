"""Edit entry records and the routines that apply them to frame buffers.

Every entry type owns exactly one ``apply`` routine. The same routine runs when an
edit is first made and when history is replayed from the baseline, which is what
keeps a rebuild bit-identical to the original sequence of edits.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Literal, Mapping, Tuple, Type

import numpy as np

from .geometry import Bounds, crop_to_bounds, resize_nearest_neighbor
from .palette_ops import (
    ColorTuple,
    PaletteError,
    RGBATuple,
    coerce_color,
    coerce_rgba,
    color_key_to_str,
    color_to_dict,
    copy_frames,
    pack_rgb,
    parse_color_key,
    rgb_to_hex,
)
from .selection import selection_mask
from .settings import threshold_alpha_for


logger = logging.getLogger(__name__)

PaintTool = Literal["pencil", "eraser"]
ResizeMode = Literal["percent", "pixels"]

TRANSPARENT: RGBATuple = (0, 0, 0, 0)


class EditEntryError(ValueError):
    """Raised when a serialised edit entry cannot be parsed."""


@dataclass
class FrameState:
    """Working frame set plus its shared dimensions."""

    frames: List[np.ndarray]
    width: int
    height: int

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    def copy(self) -> "FrameState":
        return FrameState(frames=copy_frames(self.frames), width=self.width, height=self.height)


def _selection_from_payload(payload: Mapping[str, Any]) -> Tuple[int, ...] | None:
    indices = payload.get("selectedIndices")
    if indices is None:
        return None
    if payload.get("hasSelection") is False:
        return None
    if not isinstance(indices, list):
        raise EditEntryError("selectedIndices must be a list")
    try:
        return tuple(int(i) for i in indices)
    except (TypeError, ValueError) as exc:
        raise EditEntryError("selectedIndices must contain integers") from exc


def _selection_payload(indices: Tuple[int, ...] | None) -> Dict[str, Any]:
    if indices is None:
        return {"hasSelection": False}
    return {"hasSelection": True, "selectedIndices": list(indices)}


def _int_field(payload: Mapping[str, Any], name: str, default: Any = None) -> int:
    value = payload.get(name, default)
    if value is None:
        raise EditEntryError(f"Missing required field {name!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise EditEntryError(f"Field {name!r} must be an integer") from exc


def _color_field(payload: Mapping[str, Any], *names: str) -> ColorTuple:
    for name in names:
        if name in payload:
            try:
                return coerce_color(payload[name])
            except PaletteError as exc:
                raise EditEntryError(f"Field {name!r}: {exc}") from exc
    raise EditEntryError(f"Missing color field {names[0]!r}")


def _scope_text(indices: Tuple[int, ...] | None) -> str:
    return "selection" if indices is not None else "full image"


def _pack_color(color: ColorTuple) -> int:
    return (color[0] << 16) | (color[1] << 8) | color[2]


def remap_rgb(pixels: np.ndarray, eligible: np.ndarray, mapping: Mapping[ColorTuple, ColorTuple]) -> int:
    """Recolor eligible pixels of an ``(N, 4)`` view through ``mapping``; returns pixels changed."""

    if not mapping or not eligible.any():
        return 0
    items = sorted((_pack_color(src), dst) for src, dst in mapping.items())
    src_keys = np.array([key for key, _dst in items], dtype=np.int32)
    dst_colors = np.array([dst for _key, dst in items], dtype=np.uint8)
    rows = np.flatnonzero(eligible)
    packed = pack_rgb(pixels[rows])
    positions = np.minimum(np.searchsorted(src_keys, packed), len(src_keys) - 1)
    found = src_keys[positions] == packed
    rows = rows[found]
    targets = dst_colors[positions[found]]
    differs = np.any(pixels[rows, :3] != targets, axis=1)
    pixels[rows[differs], :3] = targets[differs]
    return int(differs.sum())


class EditEntry:
    """Base class of the immutable history records."""

    __slots__ = ()

    type: ClassVar[str] = ""

    def apply(self, state: FrameState) -> int:
        """Mutate ``state`` in place and return how many pixels changed."""

        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "EditEntry":
        raise NotImplementedError

    def describe(self) -> str:
        return self.type


@dataclass(frozen=True, slots=True)
class SwapEntry(EditEntry):
    type: ClassVar[str] = "swap"

    from_color: ColorTuple
    to_color: ColorTuple
    selected_indices: Tuple[int, ...] | None = None

    def apply(self, state: FrameState) -> int:
        if self.from_color == self.to_color:
            return 0
        mask = selection_mask(self.selected_indices, state.pixel_count)
        r, g, b = self.from_color
        changed = 0
        for frame in state.frames:
            pixels = frame.reshape(-1, 4)
            match = (pixels[:, 0] == r) & (pixels[:, 1] == g) & (pixels[:, 2] == b)
            if mask is not None:
                match &= mask
            count = int(match.sum())
            if count:
                pixels[match, :3] = self.to_color
                changed += count
        return changed

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "fromColor": color_to_dict(self.from_color),
            "toColor": color_to_dict(self.to_color),
        }
        data.update(_selection_payload(self.selected_indices))
        return data

    def to_legacy_dict(self) -> Dict[str, Any]:
        """Swap-only record shape used by the ``swaps`` preset list."""

        data: Dict[str, Any] = {
            "from": {**color_to_dict(self.from_color), "hex": rgb_to_hex(self.from_color)},
            "to": {**color_to_dict(self.to_color), "hex": rgb_to_hex(self.to_color)},
        }
        data.update(_selection_payload(self.selected_indices))
        return data

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SwapEntry":
        nested = payload.get("swap")
        if isinstance(nested, dict):
            payload = nested
        return cls(
            from_color=_color_field(payload, "fromColor", "from"),
            to_color=_color_field(payload, "toColor", "to"),
            selected_indices=_selection_from_payload(payload),
        )

    def describe(self) -> str:
        return f"{rgb_to_hex(self.from_color)} -> {rgb_to_hex(self.to_color)} ({_scope_text(self.selected_indices)})"


@dataclass(frozen=True, slots=True)
class ReductionEntry(EditEntry):
    type: ClassVar[str] = "reduction"

    color_map: Tuple[Tuple[ColorTuple, ColorTuple], ...]
    target_count: int
    from_color_count: int = 0
    to_color_count: int = 0
    affected_pixel_count: int = 0
    changed_pixel_count: int = 0
    selected_indices: Tuple[int, ...] | None = None

    def __post_init__(self) -> None:
        # canonical form: sorted (source, target) pairs
        pairs = self.color_map.items() if isinstance(self.color_map, Mapping) else self.color_map
        normalized = tuple(sorted((tuple(src), tuple(dst)) for src, dst in pairs))
        object.__setattr__(self, "color_map", normalized)

    @property
    def mapping(self) -> Dict[ColorTuple, ColorTuple]:
        return dict(self.color_map)

    def apply(self, state: FrameState) -> int:
        mask = selection_mask(self.selected_indices, state.pixel_count)
        mapping = self.mapping
        changed = 0
        for frame in state.frames:
            pixels = frame.reshape(-1, 4)
            eligible = pixels[:, 3] > 0
            if mask is not None:
                eligible &= mask
            changed += remap_rgb(pixels, eligible, mapping)
        return changed

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "targetCount": self.target_count,
            "colorMap": {color_key_to_str(src): color_to_dict(dst) for src, dst in self.color_map},
            "fromColorCount": self.from_color_count,
            "toColorCount": self.to_color_count,
            "affectedPixelCount": self.affected_pixel_count,
            "changedPixelCount": self.changed_pixel_count,
        }
        data.update(_selection_payload(self.selected_indices))
        return data

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ReductionEntry":
        raw_map = payload.get("colorMap")
        if not isinstance(raw_map, dict):
            raise EditEntryError("reduction entry requires a colorMap object")
        color_map: Dict[ColorTuple, ColorTuple] = {}
        try:
            for key, value in raw_map.items():
                color_map[parse_color_key(key)] = coerce_color(value)
        except PaletteError as exc:
            raise EditEntryError(f"Invalid colorMap: {exc}") from exc
        return cls(
            color_map=tuple(color_map.items()),
            target_count=_int_field(payload, "targetCount", len(set(color_map.values()))),
            from_color_count=_int_field(payload, "fromColorCount", len(color_map)),
            to_color_count=_int_field(payload, "toColorCount", len(set(color_map.values()))),
            affected_pixel_count=_int_field(payload, "affectedPixelCount", 0),
            changed_pixel_count=_int_field(payload, "changedPixelCount", 0),
            selected_indices=_selection_from_payload(payload),
        )

    def describe(self) -> str:
        return f"Reduce to {self.target_count} colors ({_scope_text(self.selected_indices)})"


@dataclass(frozen=True, slots=True)
class PaintPixel:
    pixel_index: int
    from_color: RGBATuple
    to_color: RGBATuple

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pixelIndex": self.pixel_index,
            "fromColor": color_to_dict(self.from_color),
            "toColor": color_to_dict(self.to_color),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PaintPixel":
        try:
            from_color = coerce_rgba(payload.get("fromColor", payload.get("from", TRANSPARENT)))
            to_color = coerce_rgba(payload.get("toColor", payload.get("to")))
        except PaletteError as exc:
            raise EditEntryError(f"Invalid paint pixel: {exc}") from exc
        return cls(pixel_index=_int_field(payload, "pixelIndex"), from_color=from_color, to_color=to_color)


@dataclass(frozen=True, slots=True)
class PaintEntry(EditEntry):
    type: ClassVar[str] = "paint"

    frame_index: int
    tool: PaintTool
    pixels: Tuple[PaintPixel, ...]

    @property
    def changed_pixel_count(self) -> int:
        return len(self.pixels)

    def apply(self, state: FrameState) -> int:
        if not 0 <= self.frame_index < len(state.frames):
            return 0
        pixels = state.frames[self.frame_index].reshape(-1, 4)
        total = pixels.shape[0]
        changed = 0
        for change in self.pixels:
            index = change.pixel_index
            if index < 0 or index >= total:
                continue
            if tuple(pixels[index].tolist()) != change.to_color:
                pixels[index] = change.to_color
                changed += 1
        return changed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "frameIndex": self.frame_index,
            "tool": self.tool,
            "changedPixelCount": self.changed_pixel_count,
            "pixels": [pixel.to_dict() for pixel in self.pixels],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PaintEntry":
        raw_pixels = payload.get("pixels")
        if not isinstance(raw_pixels, list):
            raise EditEntryError("paint entry requires a pixels list")
        tool: PaintTool = "eraser" if payload.get("tool") == "eraser" else "pencil"
        return cls(
            frame_index=_int_field(payload, "frameIndex"),
            tool=tool,
            pixels=tuple(PaintPixel.from_dict(item) for item in raw_pixels if isinstance(item, dict)),
        )

    def describe(self) -> str:
        label = "Eraser stroke" if self.tool == "eraser" else "Pencil stroke"
        return f"{label} ({self.changed_pixel_count} px) - Frame {self.frame_index + 1}"


@dataclass(frozen=True, slots=True)
class ResizeEntry(EditEntry):
    type: ClassVar[str] = "resize"

    from_width: int
    from_height: int
    to_width: int
    to_height: int
    mode: ResizeMode = "percent"
    scale_percent: float | None = None

    def apply(self, state: FrameState) -> int:
        if self.to_width < 1 or self.to_height < 1:
            return 0
        if state.width == self.to_width and state.height == self.to_height:
            return 0
        # resample from the live dimensions so replay survives deleted geometry edits
        state.frames = resize_nearest_neighbor(
            state.frames, state.width, state.height, self.to_width, self.to_height
        )
        state.width = self.to_width
        state.height = self.to_height
        return state.pixel_count * len(state.frames)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "mode": self.mode,
            "fromWidth": self.from_width,
            "fromHeight": self.from_height,
            "toWidth": self.to_width,
            "toHeight": self.to_height,
        }
        if self.scale_percent is not None:
            data["scalePercent"] = self.scale_percent
        return data

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ResizeEntry":
        mode_raw = str(payload.get("mode", payload.get("resizeMode", "percent"))).strip().lower()
        mode: ResizeMode = "pixels" if mode_raw == "pixels" else "percent"
        scale = payload.get("scalePercent")
        try:
            scale_percent = float(scale) if scale is not None else None
        except (TypeError, ValueError) as exc:
            raise EditEntryError("scalePercent must be a number") from exc
        return cls(
            from_width=_int_field(payload, "fromWidth", 0),
            from_height=_int_field(payload, "fromHeight", 0),
            to_width=_int_field(payload, "toWidth"),
            to_height=_int_field(payload, "toHeight"),
            mode=mode,
            scale_percent=scale_percent,
        )

    def describe(self) -> str:
        percent = f" ({self.scale_percent:g}%)" if self.scale_percent is not None else ""
        return f"Resize {self.from_width}x{self.from_height} -> {self.to_width}x{self.to_height}{percent}"


@dataclass(frozen=True, slots=True)
class CropEntry(EditEntry):
    type: ClassVar[str] = "crop_transparent_border"

    from_width: int
    from_height: int
    to_width: int
    to_height: int
    offset_x: int
    offset_y: int

    def apply(self, state: FrameState) -> int:
        bounds = Bounds.from_size(self.offset_x, self.offset_y, self.to_width, self.to_height)
        if bounds.is_full(state.width, state.height):
            return 0
        if (
            self.to_width < 1
            or self.to_height < 1
            or self.offset_x < 0
            or self.offset_y < 0
            or self.offset_x + self.to_width > state.width
            or self.offset_y + self.to_height > state.height
        ):
            logger.debug("Crop entry out of bounds for %sx%s; skipped", state.width, state.height)
            return 0
        state.frames = crop_to_bounds(state.frames, state.width, state.height, bounds)
        state.width = self.to_width
        state.height = self.to_height
        return state.pixel_count * len(state.frames)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "fromWidth": self.from_width,
            "fromHeight": self.from_height,
            "toWidth": self.to_width,
            "toHeight": self.to_height,
            "offsetX": self.offset_x,
            "offsetY": self.offset_y,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CropEntry":
        return cls(
            from_width=_int_field(payload, "fromWidth", 0),
            from_height=_int_field(payload, "fromHeight", 0),
            to_width=_int_field(payload, "toWidth"),
            to_height=_int_field(payload, "toHeight"),
            offset_x=_int_field(payload, "offsetX", 0),
            offset_y=_int_field(payload, "offsetY", 0),
        )

    def describe(self) -> str:
        return f"Crop border {self.from_width}x{self.from_height} -> {self.to_width}x{self.to_height}"


@dataclass(frozen=True, slots=True)
class TransparencyCleanupEntry(EditEntry):
    type: ClassVar[str] = "transparency_cleanup"

    threshold_percent: float
    threshold_alpha: int
    affected_pixel_count: int = 0
    changed_pixel_count: int = 0
    selected_indices: Tuple[int, ...] | None = None

    def apply(self, state: FrameState) -> int:
        mask = selection_mask(self.selected_indices, state.pixel_count)
        changed = 0
        for frame in state.frames:
            pixels = frame.reshape(-1, 4)
            alpha = pixels[:, 3]
            clear = (alpha > 0) & (alpha < self.threshold_alpha)
            if mask is not None:
                clear &= mask
            count = int(clear.sum())
            if count:
                pixels[clear] = TRANSPARENT
                changed += count
        return changed

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "thresholdPercent": self.threshold_percent,
            "thresholdAlpha": self.threshold_alpha,
            "affectedPixelCount": self.affected_pixel_count,
            "changedPixelCount": self.changed_pixel_count,
        }
        data.update(_selection_payload(self.selected_indices))
        return data

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TransparencyCleanupEntry":
        try:
            percent = float(payload.get("thresholdPercent"))
        except (TypeError, ValueError) as exc:
            raise EditEntryError("thresholdPercent must be a number") from exc
        alpha = payload.get("thresholdAlpha")
        return cls(
            threshold_percent=percent,
            threshold_alpha=_int_field(payload, "thresholdAlpha") if alpha is not None else threshold_alpha_for(percent),
            affected_pixel_count=_int_field(payload, "affectedPixelCount", 0),
            changed_pixel_count=_int_field(payload, "changedPixelCount", 0),
            selected_indices=_selection_from_payload(payload),
        )

    def describe(self) -> str:
        return f"Delete transparency below {self.threshold_percent:g}% ({_scope_text(self.selected_indices)})"


ENTRY_TYPES: Dict[str, Type[EditEntry]] = {
    cls.type: cls
    for cls in (
        SwapEntry,
        ReductionEntry,
        PaintEntry,
        ResizeEntry,
        CropEntry,
        TransparencyCleanupEntry,
    )
}


def entry_from_dict(payload: Any) -> EditEntry:
    if not isinstance(payload, dict):
        raise EditEntryError("Edit entry must be an object")
    entry_type = payload.get("type")
    if entry_type is None and ("from" in payload or "swap" in payload):
        entry_type = SwapEntry.type
    cls = ENTRY_TYPES.get(str(entry_type))
    if cls is None:
        raise EditEntryError(f"Unknown edit entry type: {entry_type!r}")
    return cls.from_dict(payload)
