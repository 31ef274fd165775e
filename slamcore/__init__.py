"""Feature-based visual SLAM building blocks: frames, two-view initialization, pose utilities, dataset loaders and AR plane fitting."""

__version__ = "0.1.0"

__all__ = [
    "ar",
    "converter",
    "euroc",
    "features",
    "frame",
    "geometry",
    "initializer",
    "kitti",
    "playback",
    "tum",
]