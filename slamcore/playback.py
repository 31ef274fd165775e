"""Real-time playback pacing and tracking time statistics."""

from __future__ import annotations

from typing import Sequence

__all__ = ["frame_wait_time", "tracking_time_stats"]


def frame_wait_time(timestamps: Sequence[float], index: int) -> float:
    """Time between frame ``index`` and the next one, or the previous one at the end."""
    count = len(timestamps)
    if not 0 <= index < count:
        raise IndexError(f"frame index {index} out of range for {count} frames")
    if index < count - 1:
        return timestamps[index + 1] - timestamps[index]
    if index > 0:
        return timestamps[index] - timestamps[index - 1]
    return 0.0


def tracking_time_stats(times) -> tuple[float, float]:
    """Median and mean of per-frame tracking times."""
    ordered = sorted(times)
    if not ordered:
        raise ValueError("no tracking times")
    return ordered[len(ordered) // 2], sum(ordered) / len(ordered)