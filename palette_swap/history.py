"""Linear edit history with full replay from an immutable baseline."""
from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

import numpy as np

from .edits import EditEntry, FrameState, SwapEntry
from .palette_ops import RGBATuple, copy_frames, validate_frames


logger = logging.getLogger(__name__)


class EditHistory:
    """Owns the baseline frames, the working frames and the undo/redo stacks.

    Every undo, redo and delete rebuilds the working frames from the baseline by
    replaying the remaining entries in order through each entry's ``apply``.
    """

    def __init__(self, frames: Sequence[np.ndarray], width: int, height: int) -> None:
        validate_frames(frames, width, height)
        baseline = copy_frames(frames)
        for frame in baseline:
            frame.flags.writeable = False
        self._baseline = FrameState(frames=baseline, width=width, height=height)
        self._current = self._baseline.copy()
        self._history: List[EditEntry] = []
        self._redo: List[EditEntry] = []
        self._color_swaps: List[SwapEntry] = []
        self._last_undo_label: str | None = None
        self._last_redo_label: str | None = None

    @property
    def baseline(self) -> FrameState:
        return self._baseline

    @property
    def current(self) -> FrameState:
        return self._current

    @property
    def entries(self) -> Tuple[EditEntry, ...]:
        return tuple(self._history)

    @property
    def redo_entries(self) -> Tuple[EditEntry, ...]:
        return tuple(self._redo)

    @property
    def color_swap_history(self) -> List[SwapEntry]:
        return list(self._color_swaps)

    @property
    def can_undo(self) -> bool:
        return bool(self._history)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def last_undo_label(self) -> str | None:
        return self._last_undo_label

    @property
    def last_redo_label(self) -> str | None:
        return self._last_redo_label

    def __len__(self) -> int:
        return len(self._history)

    def apply(self, entry: EditEntry) -> int:
        """Apply ``entry`` to the working frames, record it and drop the redo chain."""

        changed = entry.apply(self._current)
        self._record(entry)
        logger.debug(
            "History apply type=%s changed=%s entries=%s size=%sx%s",
            entry.type,
            changed,
            len(self._history),
            self._current.width,
            self._current.height,
        )
        return changed

    def apply_if_changed(self, entry: EditEntry) -> int:
        """Like :meth:`apply` but entries that change no pixels are not recorded."""

        changed = entry.apply(self._current)
        if changed == 0:
            logger.debug("History apply skipped unchanged type=%s", entry.type)
            return 0
        self._record(entry)
        return changed

    def _record(self, entry: EditEntry) -> None:
        self._history.append(entry)
        if self._redo:
            logger.debug("History apply cleared redo entries=%s", len(self._redo))
        self._redo = []
        if isinstance(entry, SwapEntry):
            self._color_swaps.append(entry)

    def write_pixel(self, frame_index: int, pixel_index: int, color: RGBATuple) -> RGBATuple | None:
        """Live stroke preview; returns the previous color or ``None`` when out of range.

        The stroke must be committed through :meth:`apply` with a paint entry so that
        replay reproduces it.
        """

        if not 0 <= frame_index < len(self._current.frames):
            return None
        pixels = self._current.frames[frame_index].reshape(-1, 4)
        if not 0 <= pixel_index < pixels.shape[0]:
            return None
        previous = tuple(pixels[pixel_index].tolist())
        pixels[pixel_index] = color
        return previous  # type: ignore[return-value]

    def undo(self) -> EditEntry | None:
        if not self._history:
            logger.debug("History undo skipped entries=0")
            return None
        entry = self._history.pop()
        self._redo.append(entry)
        self._last_undo_label = entry.describe()
        logger.debug(
            "History undo label=%s entries=%s redo=%s", self._last_undo_label, len(self._history), len(self._redo)
        )
        self.rebuild()
        return entry

    def redo(self) -> EditEntry | None:
        if not self._redo:
            logger.debug("History redo skipped redo=0")
            return None
        entry = self._redo.pop()
        self._history.append(entry)
        self._last_redo_label = entry.describe()
        logger.debug(
            "History redo label=%s entries=%s redo=%s", self._last_redo_label, len(self._history), len(self._redo)
        )
        self.rebuild()
        return entry

    def delete_at(self, index: int) -> EditEntry | None:
        """Remove one entry anywhere in the history.

        Later entries are replayed as recorded even if the removed entry changed the
        dimensions they were made against.
        """

        if index < 0 or index >= len(self._history):
            logger.debug("History delete skipped index=%s entries=%s", index, len(self._history))
            return None
        entry = self._history.pop(index)
        self._redo = []
        logger.debug("History delete index=%s type=%s entries=%s", index, entry.type, len(self._history))
        self.rebuild()
        return entry

    def reset(self) -> None:
        self._history = []
        self._redo = []
        self.rebuild()
        logger.debug("History reset to baseline size=%sx%s", self._baseline.width, self._baseline.height)

    def rebuild(self) -> None:
        """Reset the working frames to the baseline and replay every entry."""

        self._current = self._baseline.copy()
        self._color_swaps = []
        for entry in self._history:
            entry.apply(self._current)
            if isinstance(entry, SwapEntry):
                self._color_swaps.append(entry)
        logger.debug(
            "History rebuild entries=%s size=%sx%s",
            len(self._history),
            self._current.width,
            self._current.height,
        )
