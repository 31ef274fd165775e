"""Image sequences laid out in the EuRoC format."""

from __future__ import annotations

import os
from pathlib import Path

from slamcore.kitti import MonoSequence, StereoSequence, leading_number

__all__ = ["load_euroc_mono", "load_euroc_stereo"]


def _read_lines(times_path) -> list[str]:
    return [line for line in Path(times_path).read_text().splitlines() if line]


def load_euroc_mono(image_path, times_path) -> MonoSequence:
    """Name one image per line of the times file; nanoseconds become seconds."""
    folder = os.fspath(image_path)
    lines = _read_lines(times_path)
    return MonoSequence(
        images=[f"{folder}/{line}.png" for line in lines],
        timestamps=[leading_number(line) / 1e9 for line in lines],
    )


def load_euroc_stereo(left_path, right_path, times_path) -> StereoSequence:
    """Name a left and a right image per line of the times file."""
    left = os.fspath(left_path)
    right = os.fspath(right_path)
    lines = _read_lines(times_path)
    return StereoSequence(
        left=[f"{left}/{line}.png" for line in lines],
        right=[f"{right}/{line}.png" for line in lines],
        timestamps=[leading_number(line) / 1e9 for line in lines],
    )