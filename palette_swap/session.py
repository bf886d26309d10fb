"""Editor session: the top-level edit operations over one loaded frame set."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Sequence, Tuple

import numpy as np

from .color_space import round_half_up
from .edits import (
    TRANSPARENT,
    CropEntry,
    EditEntry,
    PaintEntry,
    PaintPixel,
    PaintTool,
    ReductionEntry,
    ResizeEntry,
    SwapEntry,
    TransparencyCleanupEntry,
)
from .geometry import opaque_bounds
from .gradient import compute_group_shift
from .grouping import ColorGroups, group_colors
from .history import EditHistory
from .palette_ops import ColorTuple, PaletteEntry, RGBATuple, extract_palette, rgb_to_hex
from .presets import PresetImportResult, build_preset, import_preset
from .quantization import reduce_colors
from .selection import PixelSelection
from .settings import EditorSettings, threshold_alpha_for


logger = logging.getLogger(__name__)

AspectDriver = Literal["width", "height"]


@dataclass(slots=True)
class EditOutcome:
    """Result of a top-level edit: whether history changed plus a status line."""

    applied: bool
    message: str
    entries: Tuple[EditEntry, ...] = ()

    @property
    def entry(self) -> EditEntry | None:
        return self.entries[-1] if self.entries else None


@dataclass(slots=True)
class _Stroke:
    tool: PaintTool
    frame_index: int
    color: RGBATuple
    selection: np.ndarray | None
    pixels: Dict[int, Tuple[RGBATuple, RGBATuple]] = field(default_factory=dict)


def order_swaps(mapping: Mapping[ColorTuple, ColorTuple]) -> List[Tuple[ColorTuple, ColorTuple]]:
    """Order simultaneous color swaps so that applying them one by one gives the same result.

    A swap ``x -> y`` has to wait until every pending swap reading ``y`` has run,
    otherwise that later swap would also catch the pixels just recolored to ``y``.
    Cycles cannot be ordered; they are emitted in mapping order.
    """

    pending = [(src, dst) for src, dst in mapping.items() if src != dst]
    ordered: List[Tuple[ColorTuple, ColorTuple]] = []
    while pending:
        sources = {src for src, _dst in pending}
        ready = [swap for swap in pending if swap[1] not in sources]
        pick = ready[0] if ready else pending[0]
        ordered.append(pick)
        pending.remove(pick)
    return ordered


class EditorSession:
    """One open image or animation.

    The session owns an :class:`EditHistory` (baseline, working frames, undo/redo) and the
    current pixel selection. All mutations go through the history so that undo and
    redo can rebuild the frames by replay.
    """

    def __init__(
        self,
        frames: Sequence[np.ndarray],
        width: int,
        height: int,
        *,
        settings: EditorSettings | None = None,
        frame_delays: Sequence[int] | None = None,
        name: str = "palette-swapped",
    ) -> None:
        self.settings = settings or EditorSettings()
        self.history = EditHistory(frames, width, height)
        self.selection = PixelSelection(width, height)
        self.name = name
        delays = list(frame_delays) if frame_delays else []
        if len(delays) < len(frames):
            delays.extend([self.settings.default_frame_delay] * (len(frames) - len(delays)))
        self.frame_delays: List[int] = delays
        self._stroke: _Stroke | None = None
        logger.debug("Session opened name=%s frames=%s size=%sx%s", name, len(frames), width, height)

    # -- renderer interface -------------------------------------------------

    @property
    def width(self) -> int:
        return self.history.current.width

    @property
    def height(self) -> int:
        return self.history.current.height

    @property
    def dimensions(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def frame_count(self) -> int:
        return len(self.history.current.frames)

    def frame(self, index: int) -> np.ndarray:
        """Read-only view of the working frame buffer ``index``."""

        view = self.history.current.frames[index].view()
        view.flags.writeable = False
        return view

    @property
    def frames(self) -> List[np.ndarray]:
        return [self.frame(i) for i in range(self.frame_count)]

    def palette(self, *, scoped: bool = False) -> Dict[ColorTuple, PaletteEntry]:
        mask = self.selection.mask if scoped else None
        return extract_palette(self.history.current.frames, mask=mask)

    def color_groups(self, threshold_percent: float | None = None) -> ColorGroups:
        threshold = self.settings.grouping_threshold if threshold_percent is None else threshold_percent
        return group_colors(self.palette(), threshold)

    @property
    def entries(self) -> Tuple[EditEntry, ...]:
        return self.history.entries

    @property
    def color_swap_history(self) -> List[SwapEntry]:
        return self.history.color_swap_history

    def history_labels(self) -> List[str]:
        return [entry.describe() for entry in self.history.entries]

    # -- helpers ------------------------------------------------------------

    def _selection_context(self) -> Tuple[Tuple[int, ...] | None, np.ndarray | None]:
        mask = self.selection.mask
        if mask is None:
            return None, None
        return tuple(self.selection.indices()), mask.copy()

    def _sync_selection(self) -> None:
        if self.selection.width != self.width or self.selection.height != self.height:
            self.selection.reset(self.width, self.height)

    def _after_geometry_change(self) -> None:
        self._stroke = None
        self.selection.reset(self.width, self.height)

    # -- color edits --------------------------------------------------------

    def swap_color(self, from_color: ColorTuple, to_color: ColorTuple) -> EditOutcome:
        from_color = tuple(from_color[:3])  # type: ignore[assignment]
        to_color = tuple(to_color[:3])  # type: ignore[assignment]
        if from_color == to_color:
            return EditOutcome(False, "Source and target colors are identical.")
        indices, _mask = self._selection_context()
        entry = SwapEntry(from_color=from_color, to_color=to_color, selected_indices=indices)
        changed = self.history.apply(entry)
        return EditOutcome(
            True,
            f"Swapped {rgb_to_hex(from_color)} -> {rgb_to_hex(to_color)} ({changed} pixels changed).",
            (entry,),
        )

    def swap_group(
        self,
        group: Sequence[ColorTuple],
        target: ColorTuple,
        anchor: ColorTuple | None = None,
    ) -> EditOutcome:
        """Shift a whole color group toward ``target`` preserving its gradient.

        One swap entry is recorded per color that actually changes.
        """

        if not group:
            return EditOutcome(False, "Color group is empty.")
        mapping = compute_group_shift(list(group), tuple(target[:3]), anchor)  # type: ignore[arg-type]
        swaps = order_swaps(mapping)
        if not swaps:
            return EditOutcome(False, "Group already matches the target color.")
        indices, _mask = self._selection_context()
        entries: List[EditEntry] = []
        changed = 0
        for src, dst in swaps:
            entry = SwapEntry(from_color=src, to_color=dst, selected_indices=indices)
            changed += self.history.apply(entry)
            entries.append(entry)
        logger.debug("Group swap colors=%s swaps=%s changed=%s", len(group), len(swaps), changed)
        return EditOutcome(
            True,
            f"Shifted {len(swaps)} of {len(group)} group colors ({changed} pixels changed).",
            tuple(entries),
        )

    def reduce_colors(self, target_count: Any) -> EditOutcome:
        if self.frame_count == 0:
            return EditOutcome(False, "Load an image before reducing colors.")
        target = self.settings.clamp_reduce_target(target_count)
        indices, mask = self._selection_context()
        counts = extract_palette(self.history.current.frames, mask=mask)
        from_count = len(counts)
        if from_count == 0:
            return EditOutcome(False, "No opaque pixels found in the current scope.")
        if target >= from_count:
            return EditOutcome(False, f"No reduction needed: scope already has {from_count} colors.")

        color_map = reduce_colors(counts, target)
        affected = sum(entry.count for entry in counts.values())
        expected_changes = sum(counts[key].count for key, value in color_map.items() if value != key)
        if expected_changes == 0:
            return EditOutcome(False, "Reduction produced no visible pixel changes.")

        entry = ReductionEntry(
            color_map=tuple(color_map.items()),
            target_count=target,
            from_color_count=from_count,
            to_color_count=len(set(color_map.values())),
            affected_pixel_count=affected,
            changed_pixel_count=expected_changes,
            selected_indices=indices,
        )
        changed = self.history.apply(entry)
        return EditOutcome(
            True,
            f"Reduced {from_count} -> {entry.to_color_count} colors ({changed} pixels changed).",
            (entry,),
        )

    def cleanup_transparency(self, threshold_percent: Any) -> EditOutcome:
        if self.frame_count == 0:
            return EditOutcome(False, "Load an image before deleting transparent pixels.")
        percent = self.settings.clamp_transparency_percent(threshold_percent)
        threshold_alpha = threshold_alpha_for(percent)
        indices, mask = self._selection_context()
        affected = 0
        below = 0
        for frame in self.history.current.frames:
            alpha = frame.reshape(-1, 4)[:, 3]
            hits = (alpha > 0) & (alpha < threshold_alpha)
            if mask is not None:
                hits &= mask
                affected += int(mask.sum())
            else:
                affected += alpha.size
            below += int(hits.sum())
        if below == 0:
            return EditOutcome(False, f"No pixels found below {percent:g}% opacity in the current scope.")

        entry = TransparencyCleanupEntry(
            threshold_percent=percent,
            threshold_alpha=threshold_alpha,
            affected_pixel_count=affected,
            changed_pixel_count=below,
            selected_indices=indices,
        )
        changed = self.history.apply(entry)
        return EditOutcome(True, f"Deleted {changed} pixels below {percent:g}% opacity.", (entry,))

    # -- geometry -----------------------------------------------------------

    def crop_to_content(self) -> EditOutcome:
        if self.frame_count == 0:
            return EditOutcome(False, "Load an image before cropping.")
        from_width, from_height = self.dimensions
        bounds = opaque_bounds(self.history.current.frames, from_width, from_height)
        if bounds is None:
            return EditOutcome(False, "Image has no visible pixels to crop.")
        if bounds.is_full(from_width, from_height):
            return EditOutcome(False, "No transparent border to crop.")
        entry = CropEntry(
            from_width=from_width,
            from_height=from_height,
            to_width=bounds.width,
            to_height=bounds.height,
            offset_x=bounds.min_x,
            offset_y=bounds.min_y,
        )
        self.history.apply(entry)
        self._after_geometry_change()
        return EditOutcome(
            True,
            f"Cropped {from_width}x{from_height} -> {bounds.width}x{bounds.height} "
            f"(offset {bounds.min_x},{bounds.min_y}).",
            (entry,),
        )

    def _resize_to(
        self, to_width: int, to_height: int, mode: Literal["percent", "pixels"], scale_percent: float | None
    ) -> EditOutcome:
        from_width, from_height = self.dimensions
        if to_width == from_width and to_height == from_height:
            return EditOutcome(False, f"No resize needed: image is already {from_width}x{from_height}.")
        limit = self.settings.resize_max_dimension
        if to_width > limit or to_height > limit:
            return EditOutcome(
                False, f"Resize blocked: max dimension is {limit}px (requested {to_width}x{to_height})."
            )
        entry = ResizeEntry(
            from_width=from_width,
            from_height=from_height,
            to_width=to_width,
            to_height=to_height,
            mode=mode,
            scale_percent=scale_percent,
        )
        self.history.apply(entry)
        self._after_geometry_change()
        suffix = f"({scale_percent:g}%)" if scale_percent is not None else "(px mode)"
        return EditOutcome(
            True, f"Resized {from_width}x{from_height} -> {to_width}x{to_height} {suffix}.", (entry,)
        )

    def resize_percent(self, percent: Any) -> EditOutcome:
        if self.frame_count == 0:
            return EditOutcome(False, "Load an image before resizing.")
        scale = self.settings.clamp_resize_percent(percent)
        to_width = max(1, round_half_up(self.width * scale / 100.0))
        to_height = max(1, round_half_up(self.height * scale / 100.0))
        return self._resize_to(to_width, to_height, "percent", scale)

    def resize_pixels(
        self,
        width: Any = None,
        height: Any = None,
        *,
        keep_aspect: bool = False,
        driver: AspectDriver = "width",
    ) -> EditOutcome:
        if self.frame_count == 0:
            return EditOutcome(False, "Load an image before resizing.")
        from_width, from_height = self.dimensions
        to_width = self.settings.clamp_resize_dimension(width, from_width)
        to_height = self.settings.clamp_resize_dimension(height, from_height)
        if keep_aspect:
            if driver == "height":
                to_width = self.settings.clamp_resize_dimension(
                    round_half_up(to_height * from_width / from_height), from_width
                )
            else:
                to_height = self.settings.clamp_resize_dimension(
                    round_half_up(to_width * from_height / from_width), from_height
                )
        percent_x = to_width / from_width * 100.0
        percent_y = to_height / from_height * 100.0
        scale_percent = None
        if abs(percent_x - percent_y) < 0.0001:
            scale_percent = round_half_up(percent_x * 100.0) / 100.0
        return self._resize_to(to_width, to_height, "pixels", scale_percent)

    # -- freehand paint -----------------------------------------------------

    @property
    def is_painting(self) -> bool:
        return self._stroke is not None

    def begin_stroke(self, tool: PaintTool, frame_index: int, color: ColorTuple | None = None) -> None:
        if self._stroke is not None:
            self.end_stroke()
        rgba: RGBATuple = TRANSPARENT
        if tool != "eraser":
            if color is None:
                raise ValueError("Pencil strokes require a color")
            rgba = (int(color[0]), int(color[1]), int(color[2]), 255)
        self._stroke = _Stroke(
            tool="eraser" if tool == "eraser" else "pencil",
            frame_index=frame_index,
            color=rgba,
            selection=self.selection.mask.copy() if self.selection.has_selection else None,
        )
        logger.debug("Stroke begin tool=%s frame=%s", tool, frame_index)

    def paint(self, pixel_index: int) -> bool:
        """Paint one pixel of the active stroke; returns True when the pixel changed."""

        stroke = self._stroke
        if stroke is None:
            return False
        if stroke.selection is not None:
            if not 0 <= pixel_index < stroke.selection.size or not stroke.selection[pixel_index]:
                return False
        frames = self.history.current.frames
        if not 0 <= stroke.frame_index < len(frames) or not 0 <= pixel_index < self.width * self.height:
            return False
        current = tuple(frames[stroke.frame_index].reshape(-1, 4)[pixel_index].tolist())
        if current == stroke.color:
            return False
        previous = self.history.write_pixel(stroke.frame_index, pixel_index, stroke.color)
        if previous is None:
            return False
        if pixel_index in stroke.pixels:
            first, _last = stroke.pixels[pixel_index]
            stroke.pixels[pixel_index] = (first, stroke.color)
        else:
            stroke.pixels[pixel_index] = (previous, stroke.color)
        return True

    def paint_at(self, x: int, y: int) -> bool:
        if not 0 <= x < self.width or not 0 <= y < self.height:
            return False
        return self.paint(y * self.width + x)

    def end_stroke(self) -> EditOutcome:
        stroke = self._stroke
        self._stroke = None
        if stroke is None or not stroke.pixels:
            return EditOutcome(False, "Stroke changed no pixels.")
        entry = PaintEntry(
            frame_index=stroke.frame_index,
            tool=stroke.tool,
            pixels=tuple(
                PaintPixel(pixel_index=index, from_color=first, to_color=last)
                for index, (first, last) in stroke.pixels.items()
            ),
        )
        self.history.apply(entry)
        logger.debug("Stroke end tool=%s pixels=%s", entry.tool, entry.changed_pixel_count)
        return EditOutcome(True, entry.describe(), (entry,))

    # -- history ------------------------------------------------------------

    def undo(self) -> EditEntry | None:
        if self._stroke is not None:
            self.end_stroke()
        entry = self.history.undo()
        self._sync_selection()
        return entry

    def redo(self) -> EditEntry | None:
        if self._stroke is not None:
            self.end_stroke()
        entry = self.history.redo()
        self._sync_selection()
        return entry

    def delete_at(self, index: int) -> EditEntry | None:
        if self._stroke is not None:
            self.end_stroke()
        entry = self.history.delete_at(index)
        self._sync_selection()
        return entry

    def reset(self) -> None:
        self._stroke = None
        self.history.reset()
        self.selection.reset(self.width, self.height)

    # -- presets ------------------------------------------------------------

    def export_preset(self, name: str | None = None) -> Dict[str, Any]:
        return build_preset(self.history, name or "Color Swap Preset")

    def import_preset(self, payload: Any) -> PresetImportResult:
        self._stroke = None
        result = import_preset(self.history, payload, max_dimension=self.settings.resize_max_dimension)
        self.selection.reset(self.width, self.height)
        return result
