"""Decode images/GIFs into RGBA frame buffers and write frames back out as PNG."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

import numpy as np
from PIL import Image, ImageSequence

from .palette_ops import FrameBufferError, validate_frames


logger = logging.getLogger(__name__)

DEFAULT_FRAME_DELAY = 100


@dataclass(slots=True)
class LoadedFrames:
    frames: List[np.ndarray]
    width: int
    height: int
    delays: List[int]
    name: str


def _natural_key(path: Path) -> List[object]:
    return [int(part) if part.isdigit() else part.lower() for part in re.split(r"(\d+)", path.name)]


def _rgba_buffer(image: Image.Image) -> np.ndarray:
    return np.asarray(image.convert("RGBA"), dtype=np.uint8).reshape(-1).copy()


def load_gif(path: Path, default_delay: int = DEFAULT_FRAME_DELAY) -> LoadedFrames:
    frames: List[np.ndarray] = []
    delays: List[int] = []
    with Image.open(path) as img:
        width, height = img.size
        for frame in ImageSequence.Iterator(img):
            rgba = frame.convert("RGBA")
            if rgba.size != (width, height):
                canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
                canvas.paste(rgba, (0, 0))
                rgba = canvas
            frames.append(_rgba_buffer(rgba))
            delays.append(int(frame.info.get("duration", default_delay) or default_delay))
    logger.debug("Loaded GIF path=%s frames=%s size=%sx%s", path.name, len(frames), width, height)
    return LoadedFrames(frames=frames, width=width, height=height, delays=delays, name=path.stem)


def load_image_sequence(paths: Sequence[Path], default_delay: int = DEFAULT_FRAME_DELAY) -> LoadedFrames:
    """Load still images as frames, centred on a canvas of the largest width/height."""

    ordered = sorted(paths, key=_natural_key)
    images: List[Image.Image] = []
    for path in ordered:
        with Image.open(path) as img:
            images.append(img.convert("RGBA"))
    width = max(image.width for image in images)
    height = max(image.height for image in images)
    frames: List[np.ndarray] = []
    for image in images:
        canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        canvas.paste(image, ((width - image.width) // 2, (height - image.height) // 2))
        frames.append(_rgba_buffer(canvas))
    logger.debug("Loaded image sequence files=%s size=%sx%s", len(ordered), width, height)
    return LoadedFrames(
        frames=frames,
        width=width,
        height=height,
        delays=[default_delay] * len(frames),
        name=ordered[0].stem,
    )


def load_frames(paths: Sequence[Path], default_delay: int = DEFAULT_FRAME_DELAY) -> LoadedFrames:
    if not paths:
        raise FileNotFoundError("No input images given")
    if len(paths) == 1 and paths[0].suffix.lower() == ".gif":
        return load_gif(paths[0], default_delay)
    return load_image_sequence(paths, default_delay)


def frame_to_image(frame: np.ndarray, width: int, height: int) -> Image.Image:
    if frame.size != width * height * 4:
        raise FrameBufferError(f"Frame has {frame.size} values, expected {width * height * 4}")
    return Image.fromarray(np.ascontiguousarray(frame).reshape(height, width, 4))


def save_frames_png(
    frames: Sequence[np.ndarray], width: int, height: int, output_dir: Path, name: str
) -> List[Path]:
    """Write ``name.png`` for a single frame or ``name-frame0001.png`` ... for animations."""

    validate_frames(frames, width, height)
    output_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    for index, frame in enumerate(frames):
        suffix = f"-frame{index + 1:04d}" if len(frames) > 1 else ""
        target = output_dir / f"{name}{suffix}.png"
        frame_to_image(frame, width, height).save(target)
        written.append(target)
    logger.debug("Saved frames=%s dir=%s", len(written), output_dir)
    return written


def save_frames_gif(
    frames: Sequence[np.ndarray],
    width: int,
    height: int,
    output_dir: Path,
    name: str,
    delays: Sequence[int],
) -> Path:
    """Write every frame into one looping ``name.gif``; ``delays`` are per-frame durations in ms."""

    if not frames:
        raise FrameBufferError("No frames to write")
    validate_frames(frames, width, height)
    output_dir.mkdir(parents=True, exist_ok=True)
    images = [frame_to_image(frame, width, height) for frame in frames]
    durations = [int(delays[i]) if i < len(delays) else DEFAULT_FRAME_DELAY for i in range(len(images))]
    target = output_dir / f"{name}.gif"
    images[0].save(
        target,
        save_all=True,
        append_images=images[1:],
        duration=durations,
        loop=0,
        disposal=2,
    )
    logger.debug("Saved GIF frames=%s path=%s", len(images), target)
    return target
