"""Image sequences laid out in the TUM RGB-D format."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from slamcore.kitti import MonoSequence

__all__ = ["RGBDSequence", "load_tum_mono", "load_tum_rgbd"]

_HEADER_LINES = 3


@dataclass
class RGBDSequence:
    """Colour and depth image names paired with their timestamps in seconds."""

    rgb: list[str] = field(default_factory=list)
    depth: list[str] = field(default_factory=list)
    timestamps: list[float] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.rgb) != len(self.depth):
            raise ValueError(
                f"different number of images for rgb ({len(self.rgb)}) "
                f"and depth ({len(self.depth)})"
            )
        if len(self.rgb) != len(self.timestamps):
            raise ValueError(
                f"{len(self.rgb)} images but {len(self.timestamps)} timestamps"
            )

    def __len__(self) -> int:
        return len(self.rgb)

    def __iter__(self) -> Iterator[tuple[str, str, float]]:
        return iter(zip(self.rgb, self.depth, self.timestamps))


def _number(token: str) -> float:
    try:
        return float(token)
    except ValueError:
        raise ValueError(f"not a number: {token!r}") from None


def _token_lines(lines) -> Iterator[list[str]]:
    for line in lines:
        tokens = line.split()
        if tokens:
            yield tokens


def load_tum_mono(sequence_path) -> MonoSequence:
    """Read rgb.txt of a sequence; image names stay relative to the sequence folder.

    The first three lines of the file are a header and are skipped.
    """
    text = (Path(sequence_path) / "rgb.txt").read_text()
    images: list[str] = []
    timestamps: list[float] = []
    for tokens in _token_lines(text.splitlines()[_HEADER_LINES:]):
        if len(tokens) < 2:
            raise ValueError(f"expected a timestamp and an image name: {' '.join(tokens)!r}")
        timestamps.append(_number(tokens[0]))
        images.append(tokens[1])
    return MonoSequence(images=images, timestamps=timestamps)


def load_tum_rgbd(association_path) -> RGBDSequence:
    """Read an association file: rgb timestamp, rgb name, depth timestamp, depth name."""
    text = Path(association_path).read_text()
    rgb: list[str] = []
    depth: list[str] = []
    timestamps: list[float] = []
    for tokens in _token_lines(text.splitlines()):
        if len(tokens) < 4:
            raise ValueError(
                f"expected two timestamps and two image names: {' '.join(tokens)!r}"
            )
        timestamps.append(_number(tokens[0]))
        rgb.append(tokens[1])
        _number(tokens[2])
        depth.append(tokens[3])
    return RGBDSequence(rgb=rgb, depth=depth, timestamps=timestamps)