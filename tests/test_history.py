import numpy as np
import pytest

from palette_swap.edits import PaintEntry, PaintPixel, ResizeEntry, SwapEntry
from palette_swap.history import EditHistory
from palette_swap.palette_ops import FrameBufferError

RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)
BLUE = (0, 0, 255, 255)


@pytest.fixture
def history(pixel_frame):
    return EditHistory([pixel_frame([RED, GREEN, BLUE, RED])], 2, 2)


def swap(src, dst):
    return SwapEntry(from_color=src, to_color=dst)


def current_pixels(history):
    return [tuple(p) for p in history.current.frames[0].reshape(-1, 4).tolist()]


class TestEditHistory:
    def test_rejects_mismatched_frames(self, pixel_frame):
        with pytest.raises(FrameBufferError):
            EditHistory([pixel_frame([RED])], 2, 2)

    def test_baseline_is_read_only_copy(self, pixel_frame):
        source = pixel_frame([RED, GREEN, BLUE, RED])
        history = EditHistory([source], 2, 2)
        source[:] = 0
        assert not history.baseline.frames[0].flags.writeable
        assert history.baseline.frames[0].reshape(-1, 4)[0].tolist() == list(RED)

    def test_undo_everything_restores_baseline(self, history):
        history.apply(swap((255, 0, 0), (0, 255, 0)))
        history.apply(swap((0, 255, 0), (0, 0, 255)))
        history.apply(ResizeEntry(from_width=2, from_height=2, to_width=4, to_height=4))
        while history.undo() is not None:
            pass
        assert (history.current.width, history.current.height) == (2, 2)
        assert np.array_equal(history.current.frames[0], history.baseline.frames[0])
        assert history.current.frames[0].flags.writeable

    def test_undo_redo_reproduces_the_same_frames(self, history):
        history.apply(swap((255, 0, 0), (0, 255, 0)))
        history.apply(swap((0, 255, 0), (9, 9, 9)))
        after = history.current.frames[0].copy()
        history.undo()
        assert current_pixels(history) == [GREEN, GREEN, BLUE, GREEN]
        history.redo()
        assert np.array_equal(history.current.frames[0], after)
        assert history.last_undo_label == "#00ff00 -> #090909 (full image)"
        assert history.last_redo_label == history.last_undo_label

    def test_new_edit_clears_redo(self, history):
        history.apply(swap((255, 0, 0), (0, 255, 0)))
        history.undo()
        assert history.can_redo
        history.apply(swap((0, 0, 255), (1, 1, 1)))
        assert not history.can_redo
        assert history.redo() is None

    def test_undo_on_empty_history(self, history):
        assert history.undo() is None
        assert not history.can_undo

    def test_apply_if_changed_skips_no_ops(self, history):
        assert history.apply_if_changed(swap((1, 2, 3), (4, 5, 6))) == 0
        assert len(history) == 0
        assert history.apply_if_changed(swap((255, 0, 0), (4, 5, 6))) == 2
        assert len(history) == 1

    def test_delete_in_the_middle_replays_the_rest(self, history):
        history.apply(swap((255, 0, 0), (7, 7, 7)))
        history.apply(swap((0, 255, 0), (8, 8, 8)))
        history.apply(swap((0, 0, 255), (9, 9, 9)))
        history.undo()
        removed = history.delete_at(1)
        assert removed == swap((0, 255, 0), (8, 8, 8))
        assert current_pixels(history) == [(7, 7, 7, 255), GREEN, BLUE, (7, 7, 7, 255)]
        assert not history.can_redo
        assert history.delete_at(5) is None

    def test_color_swap_history_follows_replay(self, history):
        history.apply(swap((255, 0, 0), (7, 7, 7)))
        history.apply(ResizeEntry(from_width=2, from_height=2, to_width=1, to_height=1))
        history.apply(swap((7, 7, 7), (8, 8, 8)))
        assert len(history.color_swap_history) == 2
        history.undo()
        assert history.color_swap_history == [swap((255, 0, 0), (7, 7, 7))]

    def test_paint_survives_removed_resize(self, history):
        history.apply(ResizeEntry(from_width=2, from_height=2, to_width=4, to_height=4))
        history.apply(PaintEntry(frame_index=0, tool="pencil", pixels=(PaintPixel(15, RED, BLUE),)))
        history.delete_at(0)
        assert (history.current.width, history.current.height) == (2, 2)
        assert current_pixels(history) == [RED, GREEN, BLUE, RED]

    def test_write_pixel_previews_without_recording(self, history):
        assert history.write_pixel(0, 1, BLUE) == GREEN
        assert history.write_pixel(0, 99, BLUE) is None
        assert history.write_pixel(4, 0, BLUE) is None
        assert len(history) == 0
        history.rebuild()
        assert current_pixels(history)[1] == GREEN

    def test_reset_drops_everything(self, history):
        history.apply(swap((255, 0, 0), (7, 7, 7)))
        history.undo()
        history.apply(swap((0, 0, 255), (7, 7, 7)))
        history.reset()
        assert len(history) == 0 and not history.can_redo
        assert current_pixels(history) == [RED, GREEN, BLUE, RED]
