"""Conversions between pose representations and plain matrices."""

from __future__ import annotations

import numpy as np

__all__ = [
    "SE3Quat",
    "Sim3",
    "to_descriptor_vector",
    "to_se3quat",
    "to_cv_mat",
    "to_cv_se3",
    "to_vector3d",
    "to_matrix3d",
    "to_quaternion",
]


def _quaternion_from_matrix(m: np.ndarray) -> np.ndarray:
    """Quaternion (x, y, z, w) of a 3x3 rotation matrix."""
    m = np.asarray(m, dtype=np.float64)
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    q = np.zeros(4)
    if trace > 0.0:
        t = np.sqrt(trace + 1.0)
        q[3] = 0.5 * t
        t = 0.5 / t
        q[0] = (m[2, 1] - m[1, 2]) * t
        q[1] = (m[0, 2] - m[2, 0]) * t
        q[2] = (m[1, 0] - m[0, 1]) * t
    else:
        i = 0
        if m[1, 1] > m[0, 0]:
            i = 1
        if m[2, 2] > m[i, i]:
            i = 2
        j = (i + 1) % 3
        k = (j + 1) % 3
        t = np.sqrt(m[i, i] - m[j, j] - m[k, k] + 1.0)
        q[i] = 0.5 * t
        t = 0.5 / t
        q[3] = (m[k, j] - m[j, k]) * t
        q[j] = (m[j, i] + m[i, j]) * t
        q[k] = (m[k, i] + m[i, k]) * t
    return q


def _matrix_from_quaternion(q: np.ndarray) -> np.ndarray:
    x, y, z, w = q
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
            [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
            [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
        ]
    )


def _to_unit_quaternion(rotation) -> np.ndarray:
    arr = np.asarray(rotation, dtype=np.float64)
    if arr.shape == (3, 3):
        q = _quaternion_from_matrix(arr)
    elif arr.size == 4:
        q = arr.ravel().copy()
    else:
        raise ValueError("rotation must be a 3x3 matrix or an (x, y, z, w) quaternion")
    norm = np.linalg.norm(q)
    if norm == 0.0:
        raise ValueError("rotation quaternion has zero norm")
    return q / norm


def _vector3(value) -> np.ndarray:
    arr = np.asarray(value, dtype=np.float64).ravel()
    if arr.size != 3:
        raise ValueError("expected three components")
    return arr


class SE3Quat:
    """A rigid transform stored as a unit quaternion and a translation."""

    def __init__(self, rotation, translation):
        self.quaternion = _to_unit_quaternion(rotation)
        self.translation = _vector3(translation)

    def rotation_matrix(self) -> np.ndarray:
        return _matrix_from_quaternion(self.quaternion)

    def to_homogeneous_matrix(self) -> np.ndarray:
        """The 4x4 homogeneous matrix of this transform."""
        m = np.eye(4)
        m[:3, :3] = self.rotation_matrix()
        m[:3, 3] = self.translation
        return m

    def __repr__(self) -> str:
        return f"SE3Quat(quaternion={self.quaternion!r}, translation={self.translation!r})"


class Sim3:
    """A similarity transform: rotation, translation and uniform scale."""

    def __init__(self, rotation, translation, scale=1.0):
        self.quaternion = _to_unit_quaternion(rotation)
        self.translation = _vector3(translation)
        self.scale = float(scale)

    def rotation_matrix(self) -> np.ndarray:
        return _matrix_from_quaternion(self.quaternion)

    def __repr__(self) -> str:
        return (
            f"Sim3(quaternion={self.quaternion!r}, translation={self.translation!r}, "
            f"scale={self.scale!r})"
        )


def to_descriptor_vector(descriptors) -> list[np.ndarray]:
    """Split a descriptor matrix into a list of its rows."""
    return list(np.asarray(descriptors))


def to_se3quat(cv_t) -> SE3Quat:
    """Build an SE3Quat from the upper 3x4 block of a float matrix."""
    m = np.asarray(cv_t, dtype=np.float32).astype(np.float64)
    if m.shape[0] < 3 or m.shape[1] < 4:
        raise ValueError("expected at least a 3x4 matrix")
    return SE3Quat(m[:3, :3], m[:3, 3])


def to_cv_se3(rotation, translation) -> np.ndarray:
    """Assemble a 4x4 single-precision transform from rotation and translation."""
    r = np.asarray(rotation, dtype=np.float64)
    if r.shape != (3, 3):
        raise ValueError("rotation must be 3x3")
    m = np.eye(4, dtype=np.float32)
    m[:3, :3] = r
    m[:3, 3] = _vector3(translation)
    return m


def to_cv_mat(value) -> np.ndarray:
    """Convert a pose or a 4x4, 3x3 or 3-vector matrix to single precision."""
    if isinstance(value, SE3Quat):
        return value.to_homogeneous_matrix().astype(np.float32)
    if isinstance(value, Sim3):
        return to_cv_se3(value.scale * value.rotation_matrix(), value.translation)
    arr = np.asarray(value, dtype=np.float64)
    if arr.shape in ((4, 4), (3, 3)):
        return arr.astype(np.float32)
    if arr.shape in ((3,), (3, 1)):
        return arr.reshape(3, 1).astype(np.float32)
    raise ValueError(f"cannot convert array of shape {arr.shape}")


def to_vector3d(value) -> np.ndarray:
    """Three-component double vector from a point or a float matrix."""
    if all(hasattr(value, attr) for attr in ("x", "y", "z")):
        return np.array([value.x, value.y, value.z], dtype=np.float32).astype(np.float64)
    arr = np.asarray(value, dtype=np.float32).ravel()
    if arr.size < 3:
        raise ValueError("expected at least three components")
    return arr[:3].astype(np.float64)


def to_matrix3d(mat) -> np.ndarray:
    """Double 3x3 matrix from the upper-left block of a float matrix."""
    m = np.asarray(mat, dtype=np.float32)
    if m.ndim != 2 or m.shape[0] < 3 or m.shape[1] < 3:
        raise ValueError("expected at least a 3x3 matrix")
    return m[:3, :3].astype(np.float64)


def to_quaternion(mat) -> list[float]:
    """Quaternion (x, y, z, w) of the rotation in a 3x3 matrix."""
    q = _quaternion_from_matrix(to_matrix3d(mat))
    return [float(v) for v in q.astype(np.float32)]