# slamcore

Building blocks for feature-based visual SLAM, written on top of NumPy.

slamcore holds the geometric core of a keypoint-based SLAM front end.
You supply keypoints, binary descriptors, depth maps and image pyramids.
slamcore does the geometry and the bookkeeping on them.

## What is inside

- **`slamcore.features`**
  - `KeyPoint` is an immutable image keypoint. `moved_to` returns a copy at new coordinates.
  - `descriptor_distance(a, b)` is the Hamming distance between binary descriptors of equal length.
- **`slamcore.converter`**
  - Converts between 4×4 homogeneous poses, rotation matrices, translation vectors and quaternions.
  - Provides `SE3Quat`, `Sim3`, `to_se3quat`, `to_cv_mat`, `to_cv_se3`, `to_vector3d`, `to_matrix3d`, `to_quaternion` and `to_descriptor_vector`.
- **`slamcore.frame`**
  - `Frame` is one camera frame, built from monocular, RGB-D or stereo input by `Frame.from_monocular`, `Frame.from_rgbd` and `Frame.from_stereo`.
  - A frame handles:
    - keypoint undistortion;
    - grid-based spatial lookup (`get_features_in_area`, `pos_in_grid`);
    - the frustum test for 3D points (`is_in_frustum`);
    - stereo matching along image rows with sub-pixel refinement (`compute_stereo_matches`);
    - depth lookup from a depth image (`compute_stereo_from_rgbd`);
    - back-projection to world coordinates (`unproject_stereo`).
  - Also provides `Camera`, `ScalePyramid`, `ProjectablePoint`, `undistort_points` and `compute_image_bounds`.
- **`slamcore.geometry`**
  - Two-view geometry:
    - the direct linear transform for homographies (`compute_h21`);
    - the eight-point method for fundamental matrices (`compute_f21`);
    - `triangulate`, `normalize` and `decompose_e`;
    - cheirality and reprojection checks (`check_rt`).
- **`slamcore.initializer`**
  - `Initializer` performs monocular map initialization.
  - It runs RANSAC for a homography and for a fundamental matrix, then picks a model by score ratio.
  - On success it returns a `Reconstruction` with the motion and the triangulated points, and `None` otherwise.
- **`slamcore.ar`**
  - Helpers for augmented reality:
    - `detect_plane`, a RANSAC plane detector over well-observed map points;
    - `Plane`, a plane and its pose;
    - `exp_so3`, the exponential map on SO(3);
    - `pose_to_gl`, column-major pose values;
    - `plane_grid_lines`, the line segments of a grid on a plane;
    - `status_message`, the status text and its colour;
    - `ViewerState`, a thread-safe hand-off of the latest image and pose.
- **Dataset loaders**
  - `slamcore.kitti`: `load_kitti_mono` and `load_kitti_stereo`, returning `MonoSequence` and `StereoSequence`.
  - `slamcore.euroc`: `load_euroc_mono` and `load_euroc_stereo`.
  - `slamcore.tum`: `load_tum_mono` and `load_tum_rgbd`, the latter returning `RGBDSequence`.
- **`slamcore.playback`**
  - `frame_wait_time` and `tracking_time_stats`, for pacing playback in real time.

## Examples

Hamming distance between two 32-byte descriptors:

```python
import numpy as np
from slamcore.features import descriptor_distance

a = np.zeros(32, dtype=np.uint8)
b = np.zeros(32, dtype=np.uint8)
b[0] = 0b1011
print(descriptor_distance(a, b))  # 3
```

Rotation matrix to quaternion (x, y, z, w):

```python
import numpy as np
from slamcore.converter import to_quaternion

print(to_quaternion(np.eye(3, dtype=np.float32)))  # [0.0, 0.0, 0.0, 1.0]
```

Loading a KITTI sequence and pacing playback by timestamps:

```python
from slamcore.kitti import load_kitti_mono
from slamcore.playback import frame_wait_time

sequence = load_kitti_mono("/data/kitti/sequences/00")
wait = frame_wait_time(sequence.timestamps, 0)
```

`frame_wait_time(timestamps, index)` gives the time from a frame to the next one. For the last frame it gives the time since the previous one.

`tracking_time_stats(times)` returns the median and the mean of per-frame tracking times.

Exponential map of a rotation vector:

```python
from slamcore.ar import exp_so3

rotation = exp_so3(0.0, 0.1, 0.0)
```

## What it does not do

slamcore is a library and has no command-line programs.

It does not:

- detect keypoints or compute descriptors;
- read or decode image files (the loaders only produce file names and timestamps);
- draw or display anything;
- run a complete tracking, mapping or loop-closing system.

## Requirements

Python 3.10 or newer, with NumPy. Install the `test` extra to run the test suite with pytest.