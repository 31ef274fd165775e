"""Planes for placing virtual objects and the state shared with an AR viewer."""

from __future__ import annotations

import math
import random
import threading

import numpy as np

__all__ = [
    "Plane",
    "ViewerState",
    "exp_so3",
    "detect_plane",
    "status_message",
    "pose_to_gl",
    "plane_grid_lines",
]

_EPS = 1e-4
_MIN_PLANE_POINTS = 50
_MIN_OBSERVATIONS = 5
_UP = np.array([0.0, 1.0, 0.0])
_GREEN = (0, 255, 0)
_RED = (255, 0, 0)


def exp_so3(x, y, z) -> np.ndarray:
    """Rotation matrix of the axis-angle vector (x, y, z)."""
    d2 = x * x + y * y + z * z
    d = math.sqrt(d2)
    w = np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])
    identity = np.eye(3)
    if d < _EPS:
        return identity + w + 0.5 * (w @ w)
    return identity + w * math.sin(d) / d + (w @ w) * (1.0 - math.cos(d)) / d2


def pose_to_gl(tcw) -> tuple[float, ...]:
    """A 3x4 or 4x4 rigid transform as a column-major 4x4 matrix of 16 values."""
    t = np.asarray(tcw, dtype=np.float64)
    if t.shape not in ((3, 4), (4, 4)):
        raise ValueError("pose must be a 3x4 or 4x4 matrix")
    values: list[float] = []
    for col in range(4):
        values.extend(float(t[row, col]) for row in range(3))
        values.append(1.0 if col == 3 else 0.0)
    return tuple(values)


def plane_grid_lines(ndivs, ndivsize) -> list[tuple[tuple[float, float, float], ...]]:
    """Line segments of a square grid in the x-z plane centred on the origin."""
    if ndivs < 0:
        raise ValueError("number of divisions must not be negative")
    min_x = min_z = -ndivs * ndivsize
    max_x = max_z = ndivs * ndivsize
    lines = []
    for n in range(2 * ndivs + 1):
        offset = ndivsize * n
        lines.append(((min_x + offset, 0.0, min_z), (min_x + offset, 0.0, max_z)))
        lines.append(((min_x, 0.0, min_z + offset), (max_x, 0.0, min_z + offset)))
    return lines


def status_message(status, localization_mode):
    """Text and RGB colour shown for a tracking status, or None for other statuses."""
    mode = "LOCALIZATION" if localization_mode else "SLAM"
    if status == 1:
        return "SLAM NOT INITIALIZED", _RED
    if status == 2:
        return f"{mode} ON", _GREEN
    if status == 3:
        return f"{mode} LOST", _RED
    return None


def _random_rang(rng) -> float:
    source = rng if rng is not None else random
    return -3.14 / 2 + source.random() * 3.14


def _orientation(normal: np.ndarray, rang: float) -> np.ndarray:
    """Rotation taking the y axis to ``normal``, turned by ``rang`` about it."""
    v = np.cross(_UP, normal)
    sa = float(np.linalg.norm(v))
    ca = float(_UP @ normal)
    ang = math.atan2(sa, ca)
    if sa > 0.0:
        axis = v * ang / sa
    elif ca >= 0.0:
        axis = np.zeros(3)
    else:
        axis = np.array([math.pi, 0.0, 0.0])
    spin = _UP * rang
    return exp_so3(*axis) @ exp_so3(*spin)


class Plane:
    """A plane fitted to map points, with a frame placing objects on it.

    Map points need ``world_pos`` (three coordinates) and may have ``is_bad``.
    ``tcw`` is the camera pose when the plane was first seen; it decides which
    side the normal points to.
    """

    def __init__(self, map_points, tcw, rang=None, rng=None):
        self.map_points = list(map_points)
        self.tcw = np.array(tcw, dtype=np.float64)
        if self.tcw.shape not in ((3, 4), (4, 4)):
            raise ValueError("pose must be a 3x4 or 4x4 matrix")
        self.xc = None
        self.rang = float(rang) if rang is not None else _random_rang(rng)
        self.normal = np.zeros(3)
        self.origin = np.zeros(3)
        self.tpw = np.eye(4)
        self.gl_tpw = pose_to_gl(self.tpw)
        self.recompute()

    @classmethod
    def from_normal(cls, normal, origin, rang=None) -> "Plane":
        """A plane through ``origin`` with the given normal and no map points."""
        plane = cls.__new__(cls)
        plane.map_points = []
        plane.tcw = None
        plane.xc = None
        plane.rang = float(rang) if rang is not None else _random_rang(None)
        n = np.array(normal, dtype=np.float64).ravel()
        o = np.array(origin, dtype=np.float64).ravel()
        if n.size != 3 or o.size != 3:
            raise ValueError("normal and origin need three components")
        plane._set_frame(n, o)
        return plane

    def _set_frame(self, normal: np.ndarray, origin: np.ndarray) -> None:
        self.normal = normal
        self.origin = origin
        tpw = np.eye(4)
        tpw[:3, :3] = _orientation(normal, self.rang)
        tpw[:3, 3] = origin
        self.tpw = tpw
        self.gl_tpw = pose_to_gl(tpw)

    def recompute(self) -> None:
        """Refit the plane to its map points that are not bad."""
        points = [
            np.asarray(mp.world_pos, dtype=np.float64).ravel()
            for mp in self.map_points
            if not getattr(mp, "is_bad", False)
        ]
        if len(points) < 3:
            raise ValueError("a plane needs at least 3 good map points")
        pts = np.array(points)
        a = np.column_stack([pts, np.ones(len(pts))])
        _, _, vt = np.linalg.svd(a, full_matrices=True)
        abc = vt[3, :3].copy()
        origin = pts.mean(axis=0)
        f = 1.0 / float(np.linalg.norm(abc))

        if self.xc is None:
            if self.tcw is None:
                raise ValueError("plane has no camera pose to orient its normal")
            oc = -self.tcw[:3, :3].T @ self.tcw[:3, 3]
            self.xc = oc - origin

        if float(self.xc @ abc) > 0:
            abc = -abc
        self._set_frame(abc * f, origin)


def detect_plane(tcw, map_points, iterations=50, rng=None):
    """Fit a plane by RANSAC to well-observed map points; None with too few of them.

    Map points need ``world_pos`` and ``observations``; only those seen more than
    five times are used, and at least fifty are needed.
    """
    if iterations < 1:
        raise ValueError("at least one RANSAC iteration is needed")
    rng = rng if rng is not None else random.Random()
    candidates = [
        mp for mp in map_points
        if mp is not None and mp.observations > _MIN_OBSERVATIONS
    ]
    n = len(candidates)
    if n < _MIN_PLANE_POINTS:
        return None
    points = np.array(
        [np.asarray(mp.world_pos, dtype=np.float64).ravel() for mp in candidates]
    )

    best_dist = 1e10
    best_distances = None
    nth = max(int(0.2 * n), 20)
    for _ in range(iterations):
        available = list(range(n))
        rows = []
        for _ in range(3):
            randi = rng.randint(0, len(available) - 1)
            rows.append(points[available[randi]])
            available[randi] = available[-1]
            available.pop()
        a = np.column_stack([np.array(rows), np.ones(3)])
        _, _, vt = np.linalg.svd(a, full_matrices=True)
        pa, pb, pc, pd = vt[3]
        f = 1.0 / math.sqrt(pa * pa + pb * pb + pc * pc + pd * pd)
        distances = np.abs(points @ np.array([pa, pb, pc]) + pd) * f
        median = float(np.sort(distances)[nth])
        if median < best_dist:
            best_dist = median
            best_distances = distances

    if best_distances is None:
        return None
    th = 1.4 * best_dist
    inliers = [mp for mp, d in zip(candidates, best_distances) if d < th]
    return Plane(inliers, tcw, rng=rng)


class ViewerState:
    """The last image, pose, status and tracked points, shared between threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._image = None
        self._tcw = None
        self._status = 0
        self._keys: list = []
        self._map_points: list = []

    def set_image_pose(self, image, tcw, status, keys, map_points) -> None:
        """Store copies of the latest image, pose, status and tracked points."""
        with self._lock:
            self._image = None if image is None else np.array(image, copy=True)
            self._tcw = None if tcw is None else np.array(tcw, dtype=np.float64)
            self._status = int(status)
            self._keys = list(keys)
            self._map_points = list(map_points)

    def get_image_pose(self):
        """Copies of (image, tcw, status, keys, map_points)."""
        with self._lock:
            image = None if self._image is None else self._image.copy()
            tcw = None if self._tcw is None else self._tcw.copy()
            return image, tcw, self._status, list(self._keys), list(self._map_points)