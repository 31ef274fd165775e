"""A frame: undistorted keypoints, a search grid, stereo depth and camera pose."""

from __future__ import annotations

import copy as _copy
import itertools
import math
from dataclasses import dataclass, field

import numpy as np

from slamcore.features import KeyPoint, descriptor_distance

__all__ = [
    "GRID_COLS",
    "GRID_ROWS",
    "TH_HIGH",
    "TH_LOW",
    "Camera",
    "ScalePyramid",
    "ProjectablePoint",
    "Frame",
    "undistort_points",
    "compute_image_bounds",
]

GRID_COLS = 64
GRID_ROWS = 48
TH_HIGH = 100
TH_LOW = 50

_UNDISTORT_ITERATIONS = 5
_PATCH_HALF = 5
_SEARCH_HALF = 5


def _round(value: float) -> int:
    """Round half away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


@dataclass
class Camera:
    """Pinhole calibration, distortion, stereo baseline times fx and depth threshold."""

    k: np.ndarray
    dist_coef: np.ndarray = field(default_factory=lambda: np.zeros(4))
    bf: float = 0.0
    th_depth: float = 0.0

    def __post_init__(self) -> None:
        self.k = np.array(self.k, dtype=np.float64)
        if self.k.shape != (3, 3):
            raise ValueError("calibration matrix must be 3x3")
        self.dist_coef = np.array(self.dist_coef, dtype=np.float64).ravel()
        if self.dist_coef.size not in (4, 5):
            raise ValueError("distortion needs 4 or 5 coefficients")
        self.bf = float(self.bf)
        self.th_depth = float(self.th_depth)

    @property
    def fx(self) -> float:
        return float(self.k[0, 0])

    @property
    def fy(self) -> float:
        return float(self.k[1, 1])

    @property
    def cx(self) -> float:
        return float(self.k[0, 2])

    @property
    def cy(self) -> float:
        return float(self.k[1, 2])

    @property
    def invfx(self) -> float:
        return 1.0 / self.fx

    @property
    def invfy(self) -> float:
        return 1.0 / self.fy

    @property
    def baseline(self) -> float:
        return self.bf / self.fx

    @property
    def distorted(self) -> bool:
        return self.dist_coef[0] != 0.0


@dataclass(frozen=True)
class ScalePyramid:
    """Scale levels of an image pyramid, each level ``scale_factor`` times coarser."""

    n_levels: int = 8
    scale_factor: float = 1.2

    def __post_init__(self) -> None:
        if self.n_levels < 1:
            raise ValueError("a pyramid needs at least one level")
        if self.scale_factor <= 0:
            raise ValueError("scale factor must be positive")

    @property
    def scale_factors(self) -> list[float]:
        factors = [1.0]
        for _ in range(1, self.n_levels):
            factors.append(factors[-1] * self.scale_factor)
        return factors

    @property
    def inv_scale_factors(self) -> list[float]:
        return [1.0 / s for s in self.scale_factors]

    @property
    def level_sigma2(self) -> list[float]:
        return [s * s for s in self.scale_factors]

    @property
    def inv_level_sigma2(self) -> list[float]:
        return [1.0 / s2 for s2 in self.level_sigma2]

    @property
    def log_scale_factor(self) -> float:
        return math.log(self.scale_factor)


@dataclass
class ProjectablePoint:
    """A 3D point with viewing direction and distance range; tracking data set on projection."""

    world_pos: np.ndarray
    normal: np.ndarray
    min_distance: float
    max_distance: float
    track_in_view: bool = False
    track_proj_x: float = 0.0
    track_proj_xr: float = 0.0
    track_proj_y: float = 0.0
    track_scale_level: int = 0
    track_view_cos: float = 0.0

    def __post_init__(self) -> None:
        self.world_pos = np.array(self.world_pos, dtype=np.float64).ravel()
        self.normal = np.array(self.normal, dtype=np.float64).ravel()
        if self.world_pos.size != 3 or self.normal.size != 3:
            raise ValueError("position and normal need three components")


def undistort_points(points, k, dist_coef) -> np.ndarray:
    """Remove radial and tangential distortion from pixel points, reprojecting with K."""
    pts = np.array(points, dtype=np.float64).reshape(-1, 2)
    k = np.asarray(k, dtype=np.float64)
    given = np.asarray(dist_coef, dtype=np.float64).ravel()
    if given.size > 5:
        raise ValueError("at most 5 distortion coefficients are supported")
    coef = np.zeros(5)
    coef[: given.size] = given
    k1, k2, p1, p2, k3 = coef
    fx, fy, cx, cy = k[0, 0], k[1, 1], k[0, 2], k[1, 2]

    x0 = (pts[:, 0] - cx) / fx
    y0 = (pts[:, 1] - cy) / fy
    x, y = x0.copy(), y0.copy()
    for _ in range(_UNDISTORT_ITERATIONS):
        r2 = x * x + y * y
        icdist = 1.0 / (1.0 + ((k3 * r2 + k2) * r2 + k1) * r2)
        delta_x = 2.0 * p1 * x * y + p2 * (r2 + 2.0 * x * x)
        delta_y = p1 * (r2 + 2.0 * y * y) + 2.0 * p2 * x * y
        x = (x0 - delta_x) * icdist
        y = (y0 - delta_y) * icdist
    return np.column_stack([x * fx + cx, y * fy + cy])


def compute_image_bounds(width, height, k, dist_coef) -> tuple[float, float, float, float]:
    """Undistorted image bounds as (min_x, max_x, min_y, max_y)."""
    coef = np.asarray(dist_coef, dtype=np.float64).ravel()
    if coef.size and coef[0] != 0.0:
        corners = [[0.0, 0.0], [width, 0.0], [0.0, height], [width, height]]
        u = undistort_points(corners, k, coef)
        return (
            float(min(u[0, 0], u[2, 0])),
            float(max(u[1, 0], u[3, 0])),
            float(min(u[0, 1], u[1, 1])),
            float(max(u[2, 1], u[3, 1])),
        )
    return 0.0, float(width), 0.0, float(height)


def _descriptor_array(descriptors, count: int) -> np.ndarray:
    if descriptors is None:
        arr = np.zeros((0, 32), dtype=np.uint8)
    else:
        arr = np.asarray(descriptors, dtype=np.uint8)
        if arr.ndim == 1 and arr.size == 0:
            arr = arr.reshape(0, 32)
    if len(arr) != count:
        raise ValueError(f"{count} keypoints but {len(arr)} descriptors")
    return arr


class Frame:
    """Keypoints of one image with calibration, a search grid, depth and pose."""

    _ids = itertools.count()

    def __init__(self, keypoints, descriptors, timestamp, camera: Camera,
                 pyramid: ScalePyramid, image_size):
        self.id = next(Frame._ids)
        self.timestamp = float(timestamp)
        self.camera = camera
        self.pyramid = pyramid
        self.keys: list[KeyPoint] = list(keypoints)
        self.descriptors = _descriptor_array(descriptors, len(self.keys))
        self.keys_right: list[KeyPoint] = []
        self.descriptors_right = np.zeros((0, self.descriptors.shape[1]), dtype=np.uint8)
        self.keys_un = self._undistort_keypoints()

        count = len(self.keys)
        self.u_right = [-1.0] * count
        self.depth = [-1.0] * count
        self.map_points: list = [None] * count
        self.outliers = [False] * count
        self.reference_kf = None

        width, height = image_size
        self.min_x, self.max_x, self.min_y, self.max_y = compute_image_bounds(
            width, height, camera.k, camera.dist_coef
        )
        self.grid_element_width_inv = GRID_COLS / (self.max_x - self.min_x)
        self.grid_element_height_inv = GRID_ROWS / (self.max_y - self.min_y)
        self.grid: list[list[list[int]]] = []
        self._assign_features_to_grid()

        self.tcw = None
        self.rcw = None
        self.rwc = None
        self.t_cw = None
        self.ow = None

    @classmethod
    def from_monocular(cls, keypoints, descriptors, timestamp, camera, pyramid, image_size):
        """A frame of a single camera: no stereo information."""
        return cls(keypoints, descriptors, timestamp, camera, pyramid, image_size)

    @classmethod
    def from_rgbd(cls, keypoints, descriptors, depth, timestamp, camera, pyramid):
        """A frame with depth read from a registered depth image."""
        depth = np.asarray(depth, dtype=np.float64)
        frame = cls(keypoints, descriptors, timestamp, camera, pyramid,
                    (depth.shape[1], depth.shape[0]))
        frame.compute_stereo_from_rgbd(depth)
        return frame

    @classmethod
    def from_stereo(cls, keypoints, descriptors, keypoints_right, descriptors_right,
                    images_left, images_right, timestamp, camera, pyramid):
        """A frame of a rectified stereo pair; images are pyramids, finest level first."""
        base = np.asarray(images_left[0])
        frame = cls(keypoints, descriptors, timestamp, camera, pyramid,
                    (base.shape[1], base.shape[0]))
        frame.compute_stereo_matches(keypoints_right, descriptors_right,
                                     images_left, images_right)
        return frame

    @property
    def n(self) -> int:
        return len(self.keys)

    @property
    def mb(self) -> float:
        return self.camera.baseline

    def copy(self) -> "Frame":
        """An independent copy with the same id; map point references are shared."""
        other = _copy.copy(self)
        other.keys = list(self.keys)
        other.keys_un = list(self.keys_un)
        other.keys_right = list(self.keys_right)
        other.descriptors = self.descriptors.copy()
        other.descriptors_right = self.descriptors_right.copy()
        other.u_right = list(self.u_right)
        other.depth = list(self.depth)
        other.map_points = list(self.map_points)
        other.outliers = list(self.outliers)
        other.grid = [[list(cell) for cell in column] for column in self.grid]
        other.tcw = other.rcw = other.rwc = other.t_cw = other.ow = None
        if self.tcw is not None:
            other.set_pose(self.tcw)
        return other

    def _undistort_keypoints(self) -> list[KeyPoint]:
        if not self.keys or not self.camera.distorted:
            return list(self.keys)
        undistorted = undistort_points(
            [kp.pt for kp in self.keys], self.camera.k, self.camera.dist_coef
        )
        return [kp.moved_to(u, v) for kp, (u, v) in zip(self.keys, undistorted)]

    def _assign_features_to_grid(self) -> None:
        self.grid = [[[] for _ in range(GRID_ROWS)] for _ in range(GRID_COLS)]
        for i, kp in enumerate(self.keys_un):
            cell = self.pos_in_grid(kp)
            if cell is not None:
                self.grid[cell[0]][cell[1]].append(i)

    def pos_in_grid(self, kp) -> tuple[int, int] | None:
        """Grid cell of an undistorted keypoint, or None when outside the grid."""
        pos_x = _round((kp.x - self.min_x) * self.grid_element_width_inv)
        pos_y = _round((kp.y - self.min_y) * self.grid_element_height_inv)
        if pos_x < 0 or pos_x >= GRID_COLS or pos_y < 0 or pos_y >= GRID_ROWS:
            return None
        return pos_x, pos_y

    def set_pose(self, tcw) -> None:
        """Set the world-to-camera transform and derive rotation, translation and centre."""
        tcw = np.array(tcw, dtype=np.float64)
        if tcw.shape != (4, 4):
            raise ValueError("pose must be a 4x4 matrix")
        self.tcw = tcw
        self.rcw = tcw[:3, :3].copy()
        self.rwc = self.rcw.T
        self.t_cw = tcw[:3, 3].copy()
        self.ow = -self.rcw.T @ self.t_cw

    def _require_pose(self) -> None:
        if self.tcw is None:
            raise ValueError("frame has no pose")

    def _predict_scale(self, dist: float, max_distance: float) -> int:
        log_factor = self.pyramid.log_scale_factor
        if log_factor == 0.0 or dist <= 0.0:
            return 0
        level = math.ceil(math.log(max_distance / dist) / log_factor)
        return min(max(level, 0), self.pyramid.n_levels - 1)

    def is_in_frustum(self, point: ProjectablePoint, viewing_cos_limit: float) -> bool:
        """Whether the point projects into this frame; fills its tracking data if so."""
        self._require_pose()
        point.track_in_view = False

        p = point.world_pos
        pc = self.rcw @ p + self.t_cw
        pc_x, pc_y, pc_z = pc
        if pc_z < 0.0:
            return False

        cam = self.camera
        invz = 1.0 / pc_z
        u = cam.fx * pc_x * invz + cam.cx
        v = cam.fy * pc_y * invz + cam.cy
        if u < self.min_x or u > self.max_x:
            return False
        if v < self.min_y or v > self.max_y:
            return False

        po = p - self.ow
        dist = float(np.linalg.norm(po))
        if dist < point.min_distance or dist > point.max_distance:
            return False

        view_cos = float(po @ point.normal) / dist
        if view_cos < viewing_cos_limit:
            return False

        point.track_in_view = True
        point.track_proj_x = float(u)
        point.track_proj_xr = float(u - cam.bf * invz)
        point.track_proj_y = float(v)
        point.track_scale_level = self._predict_scale(dist, point.max_distance)
        point.track_view_cos = view_cos
        return True

    def get_features_in_area(self, x, y, r, min_level=-1, max_level=-1) -> list[int]:
        """Indices of undistorted keypoints within a square of half-side r."""
        indices: list[int] = []
        min_cell_x = max(0, int(math.floor((x - self.min_x - r) * self.grid_element_width_inv)))
        if min_cell_x >= GRID_COLS:
            return indices
        max_cell_x = min(GRID_COLS - 1,
                         int(math.ceil((x - self.min_x + r) * self.grid_element_width_inv)))
        if max_cell_x < 0:
            return indices
        min_cell_y = max(0, int(math.floor((y - self.min_y - r) * self.grid_element_height_inv)))
        if min_cell_y >= GRID_ROWS:
            return indices
        max_cell_y = min(GRID_ROWS - 1,
                         int(math.ceil((y - self.min_y + r) * self.grid_element_height_inv)))
        if max_cell_y < 0:
            return indices

        check_levels = min_level > 0 or max_level >= 0
        for ix in range(min_cell_x, max_cell_x + 1):
            for iy in range(min_cell_y, max_cell_y + 1):
                for idx in self.grid[ix][iy]:
                    kp = self.keys_un[idx]
                    if check_levels:
                        if kp.octave < min_level:
                            continue
                        if max_level >= 0 and kp.octave > max_level:
                            continue
                    if abs(kp.x - x) < r and abs(kp.y - y) < r:
                        indices.append(idx)
        return indices

    def compute_stereo_from_rgbd(self, depth) -> None:
        """Read each keypoint's depth and derive a virtual right coordinate."""
        depth = np.asarray(depth, dtype=np.float64)
        self.u_right = [-1.0] * self.n
        self.depth = [-1.0] * self.n
        for i, (kp, kp_un) in enumerate(zip(self.keys, self.keys_un)):
            d = float(depth[int(kp.y), int(kp.x)])
            if d > 0:
                self.depth[i] = d
                self.u_right[i] = kp_un.x - self.camera.bf / d

    def compute_stereo_matches(self, keypoints_right, descriptors_right,
                               images_left, images_right) -> None:
        """Match left keypoints along rows of the right image with sub-pixel refinement."""
        self.keys_right = list(keypoints_right)
        self.descriptors_right = _descriptor_array(descriptors_right, len(self.keys_right))
        self.u_right = [-1.0] * self.n
        self.depth = [-1.0] * self.n

        th_orb_dist = (TH_HIGH + TH_LOW) // 2
        scale_factors = self.pyramid.scale_factors
        inv_scale_factors = self.pyramid.inv_scale_factors
        n_rows = np.asarray(images_left[0]).shape[0]

        row_indices: list[list[int]] = [[] for _ in range(n_rows)]
        for i_r, kp in enumerate(self.keys_right):
            r = 2.0 * scale_factors[kp.octave]
            max_r = math.ceil(kp.y + r)
            min_r = math.floor(kp.y - r)
            for yi in range(max(min_r, 0), min(max_r, n_rows - 1) + 1):
                row_indices[yi].append(i_r)

        bf = self.camera.bf
        min_d = 0.0
        max_d = bf / self.mb
        w = _PATCH_HALF
        span = _SEARCH_HALF
        dist_idx: list[tuple[int, int]] = []

        for i_l, kp_l in enumerate(self.keys):
            level_l = kp_l.octave
            v_l, u_l = kp_l.y, kp_l.x
            row = int(v_l)
            if not 0 <= row < n_rows or not row_indices[row]:
                continue

            min_u = u_l - max_d
            max_u = u_l - min_d
            if max_u < 0:
                continue

            best_dist = TH_HIGH
            best_idx_r = 0
            d_l = self.descriptors[i_l]
            for i_r in row_indices[row]:
                kp_r = self.keys_right[i_r]
                if kp_r.octave < level_l - 1 or kp_r.octave > level_l + 1:
                    continue
                if min_u <= kp_r.x <= max_u:
                    dist = descriptor_distance(d_l, self.descriptors_right[i_r])
                    if dist < best_dist:
                        best_dist = dist
                        best_idx_r = i_r

            if best_dist >= th_orb_dist:
                continue

            u_r0 = self.keys_right[best_idx_r].x
            scale = inv_scale_factors[level_l]
            su_l = _round(kp_l.x * scale)
            sv_l = _round(kp_l.y * scale)
            su_r0 = _round(u_r0 * scale)

            left_level = np.asarray(images_left[level_l])
            right_level = np.asarray(images_right[level_l])
            if (sv_l - w < 0 or sv_l + w + 1 > left_level.shape[0]
                    or su_l - w < 0 or su_l + w + 1 > left_level.shape[1]):
                continue
            patch_l = left_level[sv_l - w:sv_l + w + 1, su_l - w:su_l + w + 1].astype(np.float64)
            patch_l = patch_l - patch_l[w, w]

            ini_u = su_r0 + span - w
            end_u = su_r0 + span + w + 1
            if ini_u < 0 or end_u >= right_level.shape[1]:
                continue
            if (su_r0 - span - w < 0 or sv_l + w + 1 > right_level.shape[0]):
                continue

            best_sad = math.inf
            best_inc_r = 0
            sads = [0.0] * (2 * span + 1)
            for inc_r in range(-span, span + 1):
                c0 = su_r0 + inc_r - w
                patch_r = right_level[sv_l - w:sv_l + w + 1, c0:c0 + 2 * w + 1].astype(np.float64)
                patch_r = patch_r - patch_r[w, w]
                sad = float(np.abs(patch_l - patch_r).sum())
                if sad < best_sad:
                    best_sad = int(sad)
                    best_inc_r = inc_r
                sads[span + inc_r] = sad

            if best_inc_r in (-span, span):
                continue

            dist1 = sads[span + best_inc_r - 1]
            dist2 = sads[span + best_inc_r]
            dist3 = sads[span + best_inc_r + 1]
            denom = 2.0 * (dist1 + dist3 - 2.0 * dist2)
            if denom == 0.0:
                continue
            delta_r = (dist1 - dist3) / denom
            if delta_r < -1 or delta_r > 1:
                continue

            best_u_r = scale_factors[level_l] * (su_r0 + best_inc_r + delta_r)
            disparity = u_l - best_u_r
            if min_d <= disparity < max_d:
                if disparity <= 0:
                    disparity = 0.01
                    best_u_r = u_l - 0.01
                self.depth[i_l] = bf / disparity
                self.u_right[i_l] = best_u_r
                dist_idx.append((int(best_sad), i_l))

        if not dist_idx:
            return
        dist_idx.sort()
        median = dist_idx[len(dist_idx) // 2][0]
        th_dist = 1.5 * 1.4 * median
        for dist, i_l in reversed(dist_idx):
            if dist < th_dist:
                break
            self.u_right[i_l] = -1.0
            self.depth[i_l] = -1.0

    def unproject_stereo(self, i: int):
        """World coordinates of keypoint i from its depth, or None without depth."""
        z = self.depth[i]
        if z <= 0:
            return None
        self._require_pose()
        cam = self.camera
        kp = self.keys_un[i]
        x = (kp.x - cam.cx) * z * cam.invfx
        y = (kp.y - cam.cy) * z * cam.invfy
        return self.rwc @ np.array([x, y, z]) + self.ow