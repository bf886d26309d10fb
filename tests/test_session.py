import numpy as np
import pytest

from palette_swap.edits import PaintEntry, ReductionEntry, SwapEntry
from palette_swap.session import EditorSession, order_swaps

RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)
BLUE = (0, 0, 255, 255)
CLEAR = (0, 0, 0, 0)


def session_of(pixel_frame, pixels, width, height, frames=1):
    return EditorSession([pixel_frame(pixels) for _ in range(frames)], width, height)


def pixels_of(session, index=0):
    return [tuple(p) for p in session.frame(index).reshape(-1, 4).tolist()]


class TestOrderSwaps:
    def test_chain_is_ordered_so_no_pixel_moves_twice(self):
        mapping = {(1, 1, 1): (2, 2, 2), (2, 2, 2): (3, 3, 3)}
        assert order_swaps(mapping) == [((2, 2, 2), (3, 3, 3)), ((1, 1, 1), (2, 2, 2))]

    def test_identity_pairs_are_dropped(self):
        assert order_swaps({(1, 1, 1): (1, 1, 1)}) == []

    def test_cycle_keeps_every_swap(self):
        mapping = {(1, 1, 1): (2, 2, 2), (2, 2, 2): (1, 1, 1)}
        assert len(order_swaps(mapping)) == 2


class TestRendererInterface:
    def test_dimensions_and_read_only_frames(self, pixel_frame):
        session = session_of(pixel_frame, [RED, BLUE], 2, 1, frames=2)
        assert session.dimensions == (2, 1)
        assert session.frame_count == 2
        assert session.frame_delays == [100, 100]
        view = session.frame(0)
        with pytest.raises(ValueError):
            view[0] = 1
        assert len(session.frames) == 2

    def test_palette_counts_opaque_pixels(self, pixel_frame):
        session = session_of(pixel_frame, [RED, RED, CLEAR, BLUE], 2, 2)
        palette = session.palette()
        assert {color: entry.count for color, entry in palette.items()} == {(255, 0, 0): 2, (0, 0, 255): 1}
        session.selection.select_rectangle(1, 0, 1, 1)
        assert set(session.palette(scoped=True)) == {(255, 0, 0), (0, 0, 255)}
        session.selection.select_rectangle(0, 1, 0, 1)
        assert session.palette(scoped=True) == {}


class TestSwap:
    def test_swap_then_undo(self, pixel_frame):
        session = session_of(pixel_frame, [RED], 1, 1)
        outcome = session.swap_color((255, 0, 0), (0, 0, 255))
        assert outcome.applied
        assert isinstance(outcome.entry, SwapEntry)
        assert pixels_of(session) == [BLUE]
        assert session.undo() == outcome.entry
        assert pixels_of(session) == [RED]

    def test_identical_colors_are_not_recorded(self, pixel_frame):
        session = session_of(pixel_frame, [RED], 1, 1)
        outcome = session.swap_color((255, 0, 0), (255, 0, 0))
        assert not outcome.applied
        assert session.entries == ()

    def test_swap_is_recorded_even_without_matches(self, pixel_frame):
        session = session_of(pixel_frame, [RED], 1, 1)
        outcome = session.swap_color((1, 2, 3), (4, 5, 6))
        assert outcome.applied
        assert len(session.entries) == 1
        assert "(0 pixels changed)" in outcome.message

    def test_swap_limited_to_selection(self, pixel_frame):
        session = session_of(pixel_frame, [RED, RED], 2, 1)
        session.selection.select_rectangle(1, 0, 1, 0)
        outcome = session.swap_color((255, 0, 0), (0, 255, 0))
        assert outcome.entry.selected_indices == (1,)
        assert pixels_of(session) == [RED, GREEN]

    def test_group_swap_replays_identically(self, pixel_frame):
        session = session_of(pixel_frame, [(50, 50, 50, 255), (100, 100, 100, 255), (150, 150, 150, 255)], 3, 1)
        group = [(50, 50, 50), (100, 100, 100), (150, 150, 150)]
        outcome = session.swap_group(group, (120, 60, 60))
        assert outcome.applied
        assert len(outcome.entries) == len(session.entries)
        after = session.frame(0).copy()
        assert not np.array_equal(after, session.history.baseline.frames[0])
        session.history.rebuild()
        assert np.array_equal(session.frame(0), after)
        assert len(session.color_groups(100)) == 1

    def test_empty_group(self, pixel_frame):
        session = session_of(pixel_frame, [RED], 1, 1)
        assert not session.swap_group([], (0, 0, 0)).applied


class TestReduce:
    def test_already_small_palette_is_a_no_op(self, pixel_frame):
        session = session_of(pixel_frame, [RED] * 4, 2, 2)
        outcome = session.reduce_colors(1)
        assert not outcome.applied
        assert outcome.message == "No reduction needed: scope already has 1 colors."
        assert session.entries == ()

    def test_transparent_image_has_nothing_to_reduce(self, pixel_frame):
        session = session_of(pixel_frame, [CLEAR] * 4, 2, 2)
        assert session.reduce_colors(2).message == "No opaque pixels found in the current scope."

    def test_reduces_to_target(self, pixel_frame):
        session = session_of(
            pixel_frame, [(250, 0, 0, 255), RED, (0, 0, 250, 255), BLUE], 2, 2
        )
        outcome = session.reduce_colors(2)
        assert outcome.applied
        entry = outcome.entry
        assert isinstance(entry, ReductionEntry)
        assert (entry.from_color_count, entry.to_color_count, entry.target_count) == (4, 2, 2)
        assert len(session.palette()) == 2
        assert outcome.message.startswith("Reduced 4 -> 2 colors")


class TestCleanup:
    def test_half_opacity_threshold(self, pixel_frame):
        session = session_of(pixel_frame, [(9, 9, 9, 64), (9, 9, 9, 200)], 2, 1)
        outcome = session.cleanup_transparency(50)
        assert outcome.applied
        assert outcome.entry.threshold_alpha == 128
        assert outcome.entry.affected_pixel_count == 2
        assert outcome.message == "Deleted 1 pixels below 50% opacity."
        assert pixels_of(session) == [CLEAR, (9, 9, 9, 200)]

    def test_nothing_below_threshold(self, pixel_frame):
        session = session_of(pixel_frame, [RED, CLEAR], 2, 1)
        outcome = session.cleanup_transparency(50)
        assert not outcome.applied
        assert session.entries == ()


class TestGeometry:
    def test_crop_to_content(self, pixel_frame):
        session = session_of(pixel_frame, [CLEAR, CLEAR, CLEAR, RED], 2, 2)
        session.selection.select_rectangle(0, 0, 1, 1)
        outcome = session.crop_to_content()
        assert outcome.message == "Cropped 2x2 -> 1x1 (offset 1,1)."
        assert session.dimensions == (1, 1)
        assert pixels_of(session) == [RED]
        assert not session.selection.has_selection
        session.undo()
        assert session.dimensions == (2, 2)
        assert session.selection.pixel_count == 4

    def test_crop_no_ops(self, pixel_frame):
        assert not session_of(pixel_frame, [CLEAR], 1, 1).crop_to_content().applied
        assert not session_of(pixel_frame, [RED, BLUE], 2, 1).crop_to_content().applied

    def test_resize_percent(self, pixel_frame):
        session = session_of(pixel_frame, [RED, BLUE, GREEN, RED], 2, 2)
        outcome = session.resize_percent(200)
        assert outcome.applied
        assert session.dimensions == (4, 4)
        assert outcome.entry.scale_percent == 200.0
        assert not session.resize_percent(100).applied

    def test_resize_blocked_above_max_dimension(self, pixel_frame):
        session = session_of(pixel_frame, [RED], 1, 1)
        session.settings.resize_max_dimension = 8
        outcome = session.resize_percent(1000)
        assert not outcome.applied
        assert outcome.message.startswith("Resize blocked")

    def test_resize_pixels_keeps_aspect(self, pixel_frame):
        session = session_of(pixel_frame, [RED] * 8, 4, 2)
        outcome = session.resize_pixels(8, None, keep_aspect=True)
        assert session.dimensions == (8, 4)
        assert outcome.entry.mode == "pixels"
        assert outcome.entry.scale_percent == 200.0
        outcome = session.resize_pixels(None, 2, keep_aspect=True, driver="height")
        assert session.dimensions == (4, 2)

    def test_resize_pixels_without_uniform_scale(self, pixel_frame):
        session = session_of(pixel_frame, [RED] * 4, 2, 2)
        outcome = session.resize_pixels(4, 3)
        assert outcome.entry.scale_percent is None
        assert outcome.message.endswith("(px mode).")


class TestStrokes:
    def test_pencil_stroke_is_one_entry(self, pixel_frame):
        session = session_of(pixel_frame, [RED] * 4, 2, 2)
        session.begin_stroke("pencil", 0, (0, 0, 255))
        assert session.is_painting
        assert session.paint_at(0, 0)
        assert session.paint(3)
        assert not session.paint(3)
        assert not session.paint_at(5, 5)
        outcome = session.end_stroke()
        assert isinstance(outcome.entry, PaintEntry)
        assert outcome.message == "Pencil stroke (2 px) - Frame 1"
        assert pixels_of(session) == [BLUE, RED, RED, BLUE]
        session.undo()
        assert pixels_of(session) == [RED] * 4
        session.redo()
        assert pixels_of(session) == [BLUE, RED, RED, BLUE]

    def test_eraser_respects_selection(self, pixel_frame):
        session = session_of(pixel_frame, [RED] * 4, 2, 2)
        session.selection.select_rectangle(1, 0, 1, 1)
        session.begin_stroke("eraser", 0)
        for index in range(4):
            session.paint(index)
        session.end_stroke()
        assert pixels_of(session) == [RED, CLEAR, RED, CLEAR]

    def test_pencil_requires_color(self, pixel_frame):
        session = session_of(pixel_frame, [RED], 1, 1)
        with pytest.raises(ValueError):
            session.begin_stroke("pencil", 0)

    def test_empty_stroke_records_nothing(self, pixel_frame):
        session = session_of(pixel_frame, [RED], 1, 1)
        session.begin_stroke("pencil", 0, (255, 0, 0))
        session.paint(0)
        assert not session.end_stroke().applied
        assert session.entries == ()

    def test_undo_commits_active_stroke_first(self, pixel_frame):
        session = session_of(pixel_frame, [RED, RED], 2, 1)
        session.swap_color((0, 0, 0), (1, 1, 1))
        session.begin_stroke("pencil", 0, (0, 0, 255))
        session.paint(0)
        undone = session.undo()
        assert isinstance(undone, PaintEntry)
        assert len(session.entries) == 1
        assert pixels_of(session) == [RED, RED]


class TestHistoryLabels:
    def test_labels_and_reset(self, pixel_frame):
        session = session_of(pixel_frame, [RED, (9, 9, 9, 10)], 2, 1)
        session.swap_color((255, 0, 0), (0, 0, 255))
        session.cleanup_transparency(50)
        assert session.history_labels() == [
            "#ff0000 -> #0000ff (full image)",
            "Delete transparency below 50% (full image)",
        ]
        session.reset()
        assert session.entries == ()
        assert pixels_of(session) == [RED, (9, 9, 9, 10)]


class TestStrokeAndHistoryNavigation:
    def test_redo_commits_active_stroke(self, pixel_frame):
        session = session_of(pixel_frame, [RED, RED], 2, 1)
        session.swap_color((255, 0, 0), (0, 255, 0))
        session.undo()
        session.begin_stroke("pencil", 0, (0, 0, 255))
        session.paint(1)
        assert session.redo() is None
        assert not session.is_painting
        assert isinstance(session.entries[-1], PaintEntry)
        assert pixels_of(session) == [RED, BLUE]

    def test_delete_commits_active_stroke_before_rebuild(self, pixel_frame):
        session = session_of(pixel_frame, [RED] * 4, 2, 2)
        session.resize_percent(200)
        session.begin_stroke("pencil", 0, (0, 0, 255))
        session.paint(0)
        session.delete_at(0)
        assert not session.is_painting
        assert session.dimensions == (2, 2)
        assert [entry.type for entry in session.entries] == ["paint"]
        assert pixels_of(session) == [BLUE, RED, RED, RED]
        assert session.selection.pixel_count == 4
