import numpy as np
import pytest

from slamcore.features import KeyPoint
from slamcore.frame import (
    GRID_COLS,
    Camera,
    Frame,
    ProjectablePoint,
    ScalePyramid,
    compute_image_bounds,
    undistort_points,
)

K = [[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]]


def _camera(dist=(0.0, 0.0, 0.0, 0.0)):
    return Camera(k=K, dist_coef=dist, bf=50.0, th_depth=40.0)


def _distort(u, v, coef):
    k1, k2, p1, p2 = coef
    x = (u - 320.0) / 500.0
    y = (v - 240.0) / 500.0
    r2 = x * x + y * y
    radial = 1 + k1 * r2 + k2 * r2 * r2
    xd = x * radial + 2 * p1 * x * y + p2 * (r2 + 2 * x * x)
    yd = y * radial + p1 * (r2 + 2 * y * y) + 2 * p2 * x * y
    return xd * 500.0 + 320.0, yd * 500.0 + 240.0


def _mono(keys):
    desc = np.zeros((len(keys), 32), dtype=np.uint8)
    return Frame.from_monocular(keys, desc, 1.0, _camera(), ScalePyramid(), (640, 480))


def test_undistort_without_distortion_is_identity():
    pts = [[10.0, 20.0], [600.0, 400.0]]
    out = undistort_points(pts, K, [0, 0, 0, 0])
    assert np.allclose(out, pts)


def test_undistort_inverts_distortion():
    coef = (-0.05, 0.01, 0.001, -0.001)
    original = [(350.0, 260.0), (200.0, 300.0)]
    distorted = [_distort(u, v, coef) for u, v in original]
    out = undistort_points(distorted, K, coef)
    assert np.allclose(out, original, atol=1e-3)


def test_bounds_without_distortion():
    assert compute_image_bounds(640, 480, K, [0, 0, 0, 0]) == (0.0, 640.0, 0.0, 480.0)


def test_bounds_with_barrel_distortion_grow():
    min_x, max_x, min_y, max_y = compute_image_bounds(640, 480, K, [-0.2, 0, 0, 0])
    assert min_x < 0.0 and max_x > 640.0
    assert min_y < 0.0 and max_y > 480.0


def test_frame_ids_increase():
    a = _mono([])
    b = _mono([])
    assert b.id == a.id + 1


def test_descriptor_count_mismatch_raises():
    with pytest.raises(ValueError):
        Frame.from_monocular([KeyPoint(1, 1)], np.zeros((0, 32), np.uint8), 0.0,
                             _camera(), ScalePyramid(), (640, 480))


def test_monocular_has_no_stereo():
    frame = _mono([KeyPoint(100, 100), KeyPoint(200, 200)])
    assert frame.u_right == [-1.0, -1.0]
    assert frame.depth == [-1.0, -1.0]
    assert frame.map_points == [None, None]


def test_features_in_area_and_levels():
    keys = [KeyPoint(100, 100, octave=0), KeyPoint(105, 100, octave=2),
            KeyPoint(400, 300, octave=1)]
    frame = _mono(keys)
    assert sorted(frame.get_features_in_area(100, 100, 10)) == [0, 1]
    assert frame.get_features_in_area(100, 100, 10, max_level=0) == [0]
    assert frame.get_features_in_area(100, 100, 10, min_level=1) == [1]
    assert frame.get_features_in_area(400, 300, 10) == [2]
    assert frame.get_features_in_area(600, 50, 5) == []


def test_pos_in_grid():
    frame = _mono([])
    assert frame.pos_in_grid(KeyPoint(0.0, 0.0)) == (0, 0)
    assert frame.pos_in_grid(KeyPoint(-10.0, 0.0)) is None
    cell = frame.pos_in_grid(KeyPoint(639.0, 479.0))
    assert cell is None or cell[0] < GRID_COLS


def test_is_in_frustum_visible_point():
    frame = _mono([])
    frame.set_pose(np.eye(4))
    point = ProjectablePoint([0, 0, 2], [0, 0, 1], 0.5, 10.0)
    assert frame.is_in_frustum(point, 0.5)
    assert point.track_in_view
    assert point.track_proj_x == pytest.approx(320.0)
    assert point.track_proj_y == pytest.approx(240.0)
    assert point.track_proj_xr < point.track_proj_x
    assert 0 <= point.track_scale_level < frame.pyramid.n_levels


def test_is_in_frustum_rejects_behind_and_far():
    frame = _mono([])
    frame.set_pose(np.eye(4))
    behind = ProjectablePoint([0, 0, -2], [0, 0, 1], 0.5, 10.0)
    behind.track_in_view = True
    assert not frame.is_in_frustum(behind, 0.5)
    assert not behind.track_in_view
    far = ProjectablePoint([0, 0, 20], [0, 0, 1], 0.5, 10.0)
    assert not frame.is_in_frustum(far, 0.5)


def test_is_in_frustum_without_pose_raises():
    frame = _mono([])
    with pytest.raises(ValueError):
        frame.is_in_frustum(ProjectablePoint([0, 0, 1], [0, 0, 1], 0.1, 5.0), 0.5)


def test_rgbd_depth_and_unprojection():
    keys = [KeyPoint(100.0, 50.0), KeyPoint(300.0, 200.0)]
    depth = np.zeros((480, 640))
    depth[50, 100] = 2.0
    frame = Frame.from_rgbd(keys, np.zeros((2, 32), np.uint8), depth, 0.0,
                            _camera(), ScalePyramid())
    assert frame.depth == [2.0, -1.0]
    assert frame.u_right[1] == -1.0
    assert frame.u_right[0] < keys[0].x
    frame.set_pose(np.eye(4))
    point = frame.unproject_stereo(0)
    assert point[2] == pytest.approx(2.0)
    assert 500.0 * point[0] / point[2] + 320.0 == pytest.approx(100.0)
    assert 500.0 * point[1] / point[2] + 240.0 == pytest.approx(50.0)
    assert frame.unproject_stereo(1) is None


def test_copy_is_independent():
    frame = _mono([KeyPoint(100, 100)])
    frame.set_pose(np.eye(4))
    other = frame.copy()
    other.u_right[0] = 5.0
    other.grid[0][0].append(99)
    assert other.id == frame.id
    assert frame.u_right[0] == -1.0
    assert 99 not in frame.grid[0][0]
    assert np.array_equal(other.tcw, frame.tcw)


def test_stereo_matches_recover_disparity():
    rng = np.random.default_rng(0)
    height, width, shift = 100, 200, 10
    left = rng.integers(0, 256, (height, width)).astype(np.int16)
    right = np.zeros_like(left)
    right[:, : width - shift] = left[:, shift:]
    right = np.clip(right + rng.integers(-2, 3, right.shape), 0, 255).astype(np.uint8)
    left = left.astype(np.uint8)

    xs = [60.0, 80.0, 100.0, 120.0, 140.0]
    ys = [30.0, 40.0, 50.0, 60.0, 70.0]
    keys_l = [KeyPoint(x, y) for x, y in zip(xs, ys)]
    keys_r = [KeyPoint(x - shift, y) for x, y in zip(xs, ys)]
    desc = rng.integers(0, 256, (5, 32), dtype=np.uint8)
    camera = Camera(k=[[500.0, 0, 100.0], [0, 500.0, 50.0], [0, 0, 1]], bf=50.0)

    frame = Frame.from_stereo(keys_l, desc, keys_r, desc.copy(), [left], [right], 0.0,
                              camera, ScalePyramid(n_levels=1))
    matched = [i for i, u in enumerate(frame.u_right) if u >= 0]
    assert matched
    for i in range(5):
        if i in matched:
            assert abs(frame.u_right[i] - keys_r[i].x) < 1.0
            assert frame.depth[i] == pytest.approx(
                camera.bf / (keys_l[i].x - frame.u_right[i]))
        else:
            assert frame.depth[i] == -1.0


def test_scale_pyramid_levels():
    pyramid = ScalePyramid(n_levels=3, scale_factor=2.0)
    assert pyramid.scale_factors == [1.0, 2.0, 4.0]
    assert pyramid.inv_scale_factors == [1.0, 0.5, 0.25]
    assert pyramid.level_sigma2 == [1.0, 4.0, 16.0]
    with pytest.raises(ValueError):
        ScalePyramid(n_levels=0)


def test_camera_rejects_bad_matrix():
    with pytest.raises(ValueError):
        Camera(k=np.eye(4))