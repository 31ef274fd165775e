"""Image sequences laid out in the KITTI odometry format."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

__all__ = ["MonoSequence", "StereoSequence", "load_kitti_mono", "load_kitti_stereo"]


@dataclass
class MonoSequence:
    """Image file names paired with their timestamps in seconds."""

    images: list[str] = field(default_factory=list)
    timestamps: list[float] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.images) != len(self.timestamps):
            raise ValueError(
                f"{len(self.images)} images but {len(self.timestamps)} timestamps"
            )

    def __len__(self) -> int:
        return len(self.images)

    def __iter__(self) -> Iterator[tuple[str, float]]:
        return iter(zip(self.images, self.timestamps))


@dataclass
class StereoSequence:
    """Left and right image file names paired with their timestamps in seconds."""

    left: list[str] = field(default_factory=list)
    right: list[str] = field(default_factory=list)
    timestamps: list[float] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.left) != len(self.right):
            raise ValueError(
                f"{len(self.left)} left images but {len(self.right)} right images"
            )
        if len(self.left) != len(self.timestamps):
            raise ValueError(
                f"{len(self.left)} images but {len(self.timestamps)} timestamps"
            )

    def __len__(self) -> int:
        return len(self.left)

    def __iter__(self) -> Iterator[tuple[str, str, float]]:
        return iter(zip(self.left, self.right, self.timestamps))


def leading_number(line: str) -> float:
    """The number that starts a text line; the rest of the line is ignored."""
    tokens = line.split()
    if not tokens:
        raise ValueError("line holds no number")
    try:
        return float(tokens[0])
    except ValueError:
        raise ValueError(f"not a number: {tokens[0]!r}") from None


def _read_times(sequence_path) -> list[float]:
    times_file = Path(sequence_path) / "times.txt"
    text = times_file.read_text()
    return [leading_number(line) for line in text.splitlines() if line]


def _image_names(sequence_path, folder: str, count: int) -> list[str]:
    prefix = f"{os.fspath(sequence_path)}/{folder}/"
    return [f"{prefix}{i:06d}.png" for i in range(count)]


def load_kitti_mono(sequence_path) -> MonoSequence:
    """Read times.txt of a sequence and name its left images in image_0."""
    timestamps = _read_times(sequence_path)
    return MonoSequence(
        images=_image_names(sequence_path, "image_0", len(timestamps)),
        timestamps=timestamps,
    )


def load_kitti_stereo(sequence_path) -> StereoSequence:
    """Read times.txt of a sequence and name its images in image_0 and image_1."""
    timestamps = _read_times(sequence_path)
    return StereoSequence(
        left=_image_names(sequence_path, "image_0", len(timestamps)),
        right=_image_names(sequence_path, "image_1", len(timestamps)),
        timestamps=timestamps,
    )