from palette_swap.color_space import rgb_to_lab
from palette_swap.gradient import compute_group_shift


GROUP = [(50, 50, 50), (100, 100, 100), (150, 150, 150)]


def close(first, second, tolerance=1):
    return all(abs(a - b) <= tolerance for a, b in zip(first, second))


class TestComputeGroupShift:
    def test_empty_group(self):
        assert compute_group_shift([], (255, 0, 0)) == {}

    def test_anchor_lands_on_target(self):
        mapping = compute_group_shift(GROUP, (120, 60, 60), anchor=(100, 100, 100))
        assert set(mapping) == set(GROUP)
        assert close(mapping[(100, 100, 100)], (120, 60, 60))

    def test_missing_anchor_falls_back_to_middle_color(self):
        default = compute_group_shift(GROUP, (120, 60, 60))
        unknown = compute_group_shift(GROUP, (120, 60, 60), anchor=(1, 2, 3))
        assert default == unknown
        assert close(default[(100, 100, 100)], (120, 60, 60))

    def test_lightness_order_is_preserved(self):
        mapping = compute_group_shift(GROUP, (120, 60, 60))
        lightness = [rgb_to_lab(*mapping[color]).L for color in GROUP]
        assert lightness[0] < lightness[1] < lightness[2]

    def test_shift_to_anchor_is_identity(self):
        mapping = compute_group_shift(GROUP, (100, 100, 100))
        for color in GROUP:
            assert close(mapping[color], color)
