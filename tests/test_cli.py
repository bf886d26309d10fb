import json

import pytest
from PIL import Image

from palette_swap.cli import main


@pytest.fixture
def sprite(tmp_path):
    path = tmp_path / "sprite.png"
    image = Image.new("RGBA", (4, 4), (0, 0, 0, 0))
    image.putpixel((1, 1), (255, 0, 0, 255))
    image.putpixel((2, 1), (0, 0, 255, 255))
    image.putpixel((1, 2), (250, 0, 0, 255))
    image.putpixel((2, 2), (9, 9, 9, 20))
    image.save(path)
    return path


class TestMain:
    def test_runs_steps_and_writes_outputs(self, tmp_path, sprite, capsys):
        out_dir = tmp_path / "result"
        preset_path = tmp_path / "edits.json"
        code = main(
            [str(sprite), "--cleanup", "50", "--reduce", "2", "--crop", "--out", str(out_dir),
             "--save-preset", str(preset_path)]
        )
        assert code == 0
        output = capsys.readouterr().out
        assert "[OK] sprite.png" in output
        assert "+ cleanup: Deleted 1 pixels below 50% opacity." in output
        assert "+ crop: Cropped 4x4 -> 2x2 (offset 1,1)." in output
        with Image.open(out_dir / "sprite.png") as image:
            assert image.size == (2, 2)
        preset = json.loads(preset_path.read_text(encoding="utf-8"))
        assert [edit["type"] for edit in preset["edits"]] == [
            "transparency_cleanup",
            "reduction",
            "crop_transparent_border",
        ]

    def test_replays_preset(self, tmp_path, sprite, capsys):
        preset_path = tmp_path / "swap.json"
        preset_path.write_text(
            json.dumps({"swaps": [{"from": "#ff0000", "to": "#00ff00"}]}), encoding="utf-8"
        )
        code = main([str(sprite), "--preset", str(preset_path), "--out", str(tmp_path / "out"), "--gif"])
        assert code == 0
        assert "Preset applied: 1 edits applied, 0 skipped" in capsys.readouterr().out
        with Image.open(tmp_path / "out" / "sprite.png") as image:
            assert image.convert("RGBA").getpixel((1, 1)) == (0, 255, 0, 255)
        with Image.open(tmp_path / "out" / "sprite.gif") as gif:
            assert gif.format == "GIF"
            assert gif.size == (4, 4)

    def test_missing_input_exits(self, tmp_path):
        with pytest.raises(SystemExit):
            main([str(tmp_path / "nope.png")])

    def test_unreadable_image_is_reported(self, tmp_path, capsys):
        bogus = tmp_path / "broken.png"
        bogus.write_text("not an image", encoding="utf-8")
        assert main([str(bogus), "--out", str(tmp_path / "out")]) == 1
        assert "[FAIL]" in capsys.readouterr().out
