"""Keypoints and binary descriptor comparison."""

from __future__ import annotations

from dataclasses import dataclass, replace

import numpy as np

__all__ = ["KeyPoint", "descriptor_distance"]


@dataclass(frozen=True)
class KeyPoint:
    """An image feature: position, pyramid level and detector attributes."""

    x: float
    y: float
    octave: int = 0
    size: float = 0.0
    angle: float = -1.0
    response: float = 0.0

    @property
    def pt(self) -> tuple[float, float]:
        return (self.x, self.y)

    def moved_to(self, x: float, y: float) -> "KeyPoint":
        """Return a copy of this keypoint placed at new coordinates."""
        return replace(self, x=float(x), y=float(y))


def _as_bytes(descriptor) -> bytes:
    if isinstance(descriptor, (bytes, bytearray, memoryview)):
        return bytes(descriptor)
    arr = np.asarray(descriptor)
    if arr.dtype != np.uint8:
        if arr.size and (arr.min() < 0 or arr.max() > 255):
            raise ValueError("descriptor values must fit in one byte")
        arr = arr.astype(np.uint8)
    return arr.ravel().tobytes()


def descriptor_distance(a, b) -> int:
    """Hamming distance between two binary descriptors of equal length."""
    bytes_a = _as_bytes(a)
    bytes_b = _as_bytes(b)
    if len(bytes_a) != len(bytes_b):
        raise ValueError(
            f"descriptor lengths differ: {len(bytes_a)} != {len(bytes_b)}"
        )
    diff = int.from_bytes(bytes_a, "little") ^ int.from_bytes(bytes_b, "little")
    return bin(diff).count("1")