"""Two-view geometry: homography, fundamental matrix, triangulation and pose checks."""

from __future__ import annotations

import math
from typing import NamedTuple, Sequence

import numpy as np

__all__ = [
    "compute_h21",
    "compute_f21",
    "triangulate",
    "normalize",
    "check_rt",
    "decompose_e",
]

_PARALLAX_COS_LIMIT = 0.99998
_PARALLAX_INDEX = 50


class _RTCheck(NamedTuple):
    n_good: int
    points3d: np.ndarray
    good: list
    parallax: float


def _xy(kp) -> tuple[float, float]:
    if hasattr(kp, "x") and hasattr(kp, "y"):
        return float(kp.x), float(kp.y)
    return float(kp[0]), float(kp[1])


def _points(keys) -> np.ndarray:
    if isinstance(keys, np.ndarray):
        return np.asarray(keys, dtype=np.float64).reshape(-1, 2)
    return np.array([_xy(kp) for kp in keys], dtype=np.float64).reshape(-1, 2)


def normalize(keys) -> tuple[np.ndarray, np.ndarray]:
    """Centre points on their mean and scale each axis to unit mean absolute deviation.

    Returns the normalized points (N x 2) and the 3x3 transform that produces them.
    """
    pts = _points(keys)
    if len(pts) == 0:
        raise ValueError("cannot normalize an empty set of points")
    mean = pts.mean(axis=0)
    centred = pts - mean
    mean_dev = np.abs(centred).mean(axis=0)
    if np.any(mean_dev == 0.0):
        raise ValueError("points have no spread along one axis")
    scale = 1.0 / mean_dev
    t = np.eye(3)
    t[0, 0], t[1, 1] = scale
    t[0, 2] = -mean[0] * scale[0]
    t[1, 2] = -mean[1] * scale[1]
    return centred * scale, t


def compute_h21(points1, points2) -> np.ndarray:
    """Homography mapping points of image 1 to image 2 by the direct linear transform."""
    p1 = _points(points1)
    p2 = _points(points2)
    if len(p1) != len(p2):
        raise ValueError("point sets differ in length")
    if len(p1) < 4:
        raise ValueError("a homography needs at least 4 correspondences")
    rows = []
    for (u1, v1), (u2, v2) in zip(p1, p2):
        rows.append([0.0, 0.0, 0.0, -u1, -v1, -1.0, v2 * u1, v2 * v1, v2])
        rows.append([u1, v1, 1.0, 0.0, 0.0, 0.0, -u2 * u1, -u2 * v1, -u2])
    _, _, vt = np.linalg.svd(np.array(rows), full_matrices=True)
    return vt[8].reshape(3, 3)


def compute_f21(points1, points2) -> np.ndarray:
    """Rank-2 fundamental matrix from image 1 to image 2 by the eight-point method."""
    p1 = _points(points1)
    p2 = _points(points2)
    if len(p1) != len(p2):
        raise ValueError("point sets differ in length")
    if len(p1) < 8:
        raise ValueError("a fundamental matrix needs at least 8 correspondences")
    rows = [
        [u2 * u1, u2 * v1, u2, v2 * u1, v2 * v1, v2, u1, v1, 1.0]
        for (u1, v1), (u2, v2) in zip(p1, p2)
    ]
    _, _, vt = np.linalg.svd(np.array(rows), full_matrices=True)
    f_pre = vt[8].reshape(3, 3)
    u, w, vt = np.linalg.svd(f_pre)
    w[2] = 0.0
    return u @ np.diag(w) @ vt


def triangulate(kp1, kp2, p1, p2) -> np.ndarray:
    """3D point seen at kp1 by camera p1 and at kp2 by camera p2 (3x4 projections)."""
    p1 = np.asarray(p1, dtype=np.float64)
    p2 = np.asarray(p2, dtype=np.float64)
    x1, y1 = _xy(kp1)
    x2, y2 = _xy(kp2)
    a = np.array([
        x1 * p1[2] - p1[0],
        y1 * p1[2] - p1[1],
        x2 * p2[2] - p2[0],
        y2 * p2[2] - p2[1],
    ])
    _, _, vt = np.linalg.svd(a, full_matrices=True)
    x = vt[3]
    with np.errstate(divide="ignore", invalid="ignore"):
        return x[:3] / x[3]


def check_rt(r, t, keys1, keys2, matches12: Sequence[tuple[int, int]],
             inliers: Sequence[bool], k, th2: float) -> _RTCheck:
    """Triangulate inlier matches under motion (r, t) and count the consistent ones.

    Returns ``(n_good, points3d, good, parallax)``: the number of points in front of
    both cameras with reprojection error within ``th2``, their coordinates indexed by
    keypoint of image 1, flags for points with enough parallax, and the parallax in
    degrees.
    """
    r = np.asarray(r, dtype=np.float64)
    t = np.asarray(t, dtype=np.float64).ravel()
    k = np.asarray(k, dtype=np.float64)
    fx, fy, cx, cy = k[0, 0], k[1, 1], k[0, 2], k[1, 2]
    keys1 = list(keys1)
    keys2 = list(keys2)
    if len(inliers) < len(matches12):
        raise ValueError("one inlier flag is needed for every match")

    good = [False] * len(keys1)
    points3d = np.zeros((len(keys1), 3))
    cos_parallaxes: list[float] = []

    proj1 = np.zeros((3, 4))
    proj1[:, :3] = k
    o1 = np.zeros(3)
    proj2 = k @ np.column_stack([r, t])
    o2 = -r.T @ t

    n_good = 0
    for (i1, i2), is_inlier in zip(matches12, inliers):
        if not is_inlier:
            continue
        kp1 = keys1[i1]
        kp2 = keys2[i2]
        p3d_c1 = triangulate(kp1, kp2, proj1, proj2)
        if not np.all(np.isfinite(p3d_c1)):
            good[i1] = False
            continue

        normal1 = p3d_c1 - o1
        normal2 = p3d_c1 - o2
        dist1 = np.linalg.norm(normal1)
        dist2 = np.linalg.norm(normal2)
        with np.errstate(divide="ignore", invalid="ignore"):
            cos_parallax = float(normal1 @ normal2 / (dist1 * dist2))

        if p3d_c1[2] <= 0 and cos_parallax < _PARALLAX_COS_LIMIT:
            continue
        p3d_c2 = r @ p3d_c1 + t
        if p3d_c2[2] <= 0 and cos_parallax < _PARALLAX_COS_LIMIT:
            continue

        x1, y1 = _xy(kp1)
        with np.errstate(divide="ignore", invalid="ignore"):
            inv_z1 = 1.0 / p3d_c1[2]
            im1x = fx * p3d_c1[0] * inv_z1 + cx
            im1y = fy * p3d_c1[1] * inv_z1 + cy
        if (im1x - x1) ** 2 + (im1y - y1) ** 2 > th2:
            continue

        x2, y2 = _xy(kp2)
        with np.errstate(divide="ignore", invalid="ignore"):
            inv_z2 = 1.0 / p3d_c2[2]
            im2x = fx * p3d_c2[0] * inv_z2 + cx
            im2y = fy * p3d_c2[1] * inv_z2 + cy
        if (im2x - x2) ** 2 + (im2y - y2) ** 2 > th2:
            continue

        cos_parallaxes.append(cos_parallax)
        points3d[i1] = p3d_c1
        n_good += 1
        if cos_parallax < _PARALLAX_COS_LIMIT:
            good[i1] = True

    if n_good > 0:
        cos_parallaxes.sort()
        idx = min(_PARALLAX_INDEX, len(cos_parallaxes) - 1)
        cos_value = min(1.0, max(-1.0, cos_parallaxes[idx]))
        parallax = math.degrees(math.acos(cos_value))
    else:
        parallax = 0.0
    return _RTCheck(n_good, points3d, good, parallax)


def decompose_e(e) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Two rotations and a unit translation (up to sign) from an essential matrix."""
    e = np.asarray(e, dtype=np.float64)
    if e.shape != (3, 3):
        raise ValueError("essential matrix must be 3x3")
    u, _, vt = np.linalg.svd(e)
    t = u[:, 2].copy()
    t = t / np.linalg.norm(t)

    w = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    r1 = u @ w @ vt
    if np.linalg.det(r1) < 0:
        r1 = -r1
    r2 = u @ w.T @ vt
    if np.linalg.det(r2) < 0:
        r2 = -r2
    return r1, r2, t