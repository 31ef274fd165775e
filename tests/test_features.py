import numpy as np
import pytest

from slamcore.features import KeyPoint, descriptor_distance


def test_moved_to_changes_only_position():
    kp = KeyPoint(1.0, 2.0, octave=3, size=31.0, angle=45.0, response=0.5)
    moved = kp.moved_to(10.5, 20.25)
    assert moved.pt == (10.5, 20.25)
    assert moved.octave == 3
    assert moved.size == 31.0
    assert moved.angle == 45.0
    assert moved.response == 0.5
    assert kp.pt == (1.0, 2.0)


def test_identical_descriptors_have_zero_distance():
    d = np.arange(32, dtype=np.uint8)
    assert descriptor_distance(d, d.copy()) == 0


def test_full_256_bit_descriptor_distance():
    zeros = np.zeros(32, dtype=np.uint8)
    ones = np.full(32, 255, dtype=np.uint8)
    assert descriptor_distance(zeros, ones) == 256


def test_single_bit_difference():
    a = np.zeros(32, dtype=np.uint8)
    b = a.copy()
    b[17] = 0b00010000
    assert descriptor_distance(a, b) == 1


def test_distance_is_symmetric_and_accepts_bytes():
    rng = np.random.default_rng(3)
    a = rng.integers(0, 256, 32, dtype=np.uint8)
    b = rng.integers(0, 256, 32, dtype=np.uint8)
    assert descriptor_distance(a, b) == descriptor_distance(b, a)
    assert descriptor_distance(a.tobytes(), b) == descriptor_distance(a, b)


def test_triangle_inequality():
    rng = np.random.default_rng(7)
    a, b, c = (rng.integers(0, 256, 32, dtype=np.uint8) for _ in range(3))
    assert descriptor_distance(a, c) <= descriptor_distance(a, b) + descriptor_distance(b, c)


def test_length_mismatch_raises():
    with pytest.raises(ValueError):
        descriptor_distance(bytes(32), bytes(16))