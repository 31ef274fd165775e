"""Map initialization from two monocular views.

A homography and a fundamental matrix are estimated by RANSAC in parallel
hypotheses. The model that explains the matches better is then decomposed
into a relative motion, and the inlier matches are triangulated.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field

import numpy as np

from slamcore.geometry import check_rt, compute_f21, compute_h21, decompose_e, normalize

__all__ = ["Reconstruction", "Initializer"]

_MIN_SET = 8
_TH_HOMOGRAPHY = 5.991
_TH_FUNDAMENTAL = 3.841
_TH_SCORE = 5.991
_HOMOGRAPHY_RATIO = 0.40
_MIN_PARALLAX = 1.0
_MIN_TRIANGULATED = 50
_SINGULAR_RATIO = 1.00001


@dataclass
class Reconstruction:
    """Motion from the reference to the current view and the triangulated points.

    ``points3d`` is indexed by keypoint of the reference view; ``triangulated``
    flags the points that were triangulated with enough parallax.
    """

    r21: np.ndarray
    t21: np.ndarray
    points3d: np.ndarray
    triangulated: list[bool] = field(default_factory=list)


def _xy(kp) -> tuple[float, float]:
    if hasattr(kp, "x") and hasattr(kp, "y"):
        return float(kp.x), float(kp.y)
    return float(kp[0]), float(kp[1])


def _coords(keys) -> np.ndarray:
    return np.array([_xy(kp) for kp in keys], dtype=np.float64).reshape(-1, 2)


class Initializer:
    """Two-view initializer anchored on a reference view.

    ``k`` is the 3x3 calibration matrix and ``reference_keys`` the undistorted
    keypoints of the reference view.
    """

    def __init__(self, k, reference_keys, sigma=1.0, iterations=200, rng=None):
        self.k = np.array(k, dtype=np.float64)
        if self.k.shape != (3, 3):
            raise ValueError("calibration matrix must be 3x3")
        if iterations < 1:
            raise ValueError("at least one RANSAC iteration is needed")
        self.keys1 = list(reference_keys)
        self.sigma = float(sigma)
        self.sigma2 = self.sigma * self.sigma
        self.max_iterations = int(iterations)
        self._rng = rng if rng is not None else random.Random(0)
        self.keys2: list = []
        self.matches12: list[tuple[int, int]] = []
        self.matched1: list[bool] = [False] * len(self.keys1)
        self.sets: list[list[int]] = []

    def _minimal_set(self, n: int) -> list[int]:
        available = list(range(n))
        chosen = []
        for _ in range(_MIN_SET):
            randi = self._rng.randint(0, len(available) - 1)
            chosen.append(available[randi])
            available[randi] = available[-1]
            available.pop()
        return chosen

    def initialize(self, current_keys, matches12):
        """Try to initialize from the current view.

        ``matches12`` gives, for each reference keypoint, the index of its match in
        ``current_keys`` or a negative value. Returns a Reconstruction, or None when
        neither model gives a clear, well-conditioned reconstruction.
        """
        matches12 = list(matches12)
        if len(matches12) > len(self.keys1):
            raise ValueError("more match entries than reference keypoints")
        self.keys2 = list(current_keys)
        self.matches12 = [(i, int(m)) for i, m in enumerate(matches12) if m >= 0]
        self.matched1 = [False] * len(self.keys1)
        for i, m in enumerate(matches12):
            self.matched1[i] = m >= 0

        n = len(self.matches12)
        if n < _MIN_SET:
            raise ValueError(f"at least {_MIN_SET} matches are needed, got {n}")

        self.sets = [self._minimal_set(n) for _ in range(self.max_iterations)]

        inliers_h, score_h, h21 = self.find_homography()
        inliers_f, score_f, f21 = self.find_fundamental()

        total = score_h + score_f
        ratio = score_h / total if total > 0 else math.nan
        if ratio > _HOMOGRAPHY_RATIO:
            if h21 is None:
                return None
            return self.reconstruct_h(inliers_h, h21, self.k, _MIN_PARALLAX, _MIN_TRIANGULATED)
        if f21 is None:
            return None
        return self.reconstruct_f(inliers_f, f21, self.k, _MIN_PARALLAX, _MIN_TRIANGULATED)

    def _match_indices(self) -> tuple[np.ndarray, np.ndarray]:
        idx1 = np.array([a for a, _ in self.matches12], dtype=np.intp)
        idx2 = np.array([b for _, b in self.matches12], dtype=np.intp)
        return idx1, idx2

    def _matched_points(self) -> tuple[np.ndarray, np.ndarray]:
        idx1, idx2 = self._match_indices()
        return _coords(self.keys1)[idx1], _coords(self.keys2)[idx2]

    def find_homography(self):
        """RANSAC over the minimal sets; returns (inliers, score, h21 or None)."""
        n = len(self.matches12)
        best_inliers = [False] * n
        best_score = 0.0
        best_h = None
        if not self.sets:
            return best_inliers, best_score, best_h

        pn1, t1 = normalize(self.keys1)
        pn2, t2 = normalize(self.keys2)
        t2inv = np.linalg.inv(t2)
        idx1, idx2 = self._match_indices()

        for sample in self.sets:
            chosen = np.asarray(sample, dtype=np.intp)
            hn = compute_h21(pn1[idx1[chosen]], pn2[idx2[chosen]])
            h21 = t2inv @ hn @ t1
            try:
                h12 = np.linalg.inv(h21)
            except np.linalg.LinAlgError:
                continue
            score, inliers = self.check_homography(h21, h12, self.sigma)
            if score > best_score:
                best_h = h21.copy()
                best_inliers = inliers
                best_score = score
        return best_inliers, best_score, best_h

    def find_fundamental(self):
        """RANSAC over the minimal sets; returns (inliers, score, f21 or None)."""
        n = len(self.matches12)
        best_inliers = [False] * n
        best_score = 0.0
        best_f = None
        if not self.sets:
            return best_inliers, best_score, best_f

        pn1, t1 = normalize(self.keys1)
        pn2, t2 = normalize(self.keys2)
        t2t = t2.T
        idx1, idx2 = self._match_indices()

        for sample in self.sets:
            chosen = np.asarray(sample, dtype=np.intp)
            fn = compute_f21(pn1[idx1[chosen]], pn2[idx2[chosen]])
            f21 = t2t @ fn @ t1
            score, inliers = self.check_fundamental(f21, self.sigma)
            if score > best_score:
                best_f = f21.copy()
                best_inliers = inliers
                best_score = score
        return best_inliers, best_score, best_f

    def check_homography(self, h21, h12, sigma):
        """Symmetric transfer error score of a homography; returns (score, inliers)."""
        h21 = np.asarray(h21, dtype=np.float64)
        h12 = np.asarray(h12, dtype=np.float64)
        p1, p2 = self._matched_points()
        inv_sigma2 = 1.0 / (sigma * sigma)
        ones = np.ones((len(p1), 1))

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            x2in1 = np.hstack([p2, ones]) @ h12.T
            p2in1 = x2in1[:, :2] / x2in1[:, 2:3]
            chi1 = ((p1 - p2in1) ** 2).sum(axis=1) * inv_sigma2

            x1in2 = np.hstack([p1, ones]) @ h21.T
            p1in2 = x1in2[:, :2] / x1in2[:, 2:3]
            chi2 = ((p2 - p1in2) ** 2).sum(axis=1) * inv_sigma2

            ok1 = ~(chi1 > _TH_HOMOGRAPHY)
            ok2 = ~(chi2 > _TH_HOMOGRAPHY)
            score = float((_TH_HOMOGRAPHY - chi1[ok1]).sum() + (_TH_HOMOGRAPHY - chi2[ok2]).sum())
        return score, [bool(v) for v in ok1 & ok2]

    def check_fundamental(self, f21, sigma):
        """Symmetric epipolar distance score of a fundamental matrix; returns (score, inliers)."""
        f21 = np.asarray(f21, dtype=np.float64)
        p1, p2 = self._matched_points()
        inv_sigma2 = 1.0 / (sigma * sigma)
        ones = np.ones((len(p1), 1))
        x1 = np.hstack([p1, ones])
        x2 = np.hstack([p2, ones])

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            line2 = x1 @ f21.T
            num2 = (line2 * x2).sum(axis=1)
            chi1 = num2 * num2 / (line2[:, 0] ** 2 + line2[:, 1] ** 2) * inv_sigma2

            line1 = x2 @ f21
            num1 = (line1 * x1).sum(axis=1)
            chi2 = num1 * num1 / (line1[:, 0] ** 2 + line1[:, 1] ** 2) * inv_sigma2

            ok1 = ~(chi1 > _TH_FUNDAMENTAL)
            ok2 = ~(chi2 > _TH_FUNDAMENTAL)
            score = float((_TH_SCORE - chi1[ok1]).sum() + (_TH_SCORE - chi2[ok2]).sum())
        return score, [bool(v) for v in ok1 & ok2]

    def _reconstruction(self, r, t, check) -> Reconstruction:
        return Reconstruction(
            r21=np.array(r, dtype=np.float64),
            t21=np.array(t, dtype=np.float64).ravel(),
            points3d=check.points3d,
            triangulated=list(check.good),
        )

    def reconstruct_f(self, inliers, f21, k, min_parallax, min_triangulated):
        """Recover motion from a fundamental matrix, or None without a clear winner."""
        inliers = list(inliers)
        n = sum(1 for flag in inliers if flag)
        k = np.asarray(k, dtype=np.float64)
        e21 = k.T @ np.asarray(f21, dtype=np.float64) @ k
        r1, r2, t = decompose_e(e21)

        hypotheses = [(r1, t), (r2, t), (r1, -t), (r2, -t)]
        checks = [
            check_rt(r, tt, self.keys1, self.keys2, self.matches12, inliers, k, 4.0 * self.sigma2)
            for r, tt in hypotheses
        ]
        goods = [c.n_good for c in checks]
        max_good = max(goods)
        n_min_good = max(int(0.9 * n), min_triangulated)
        n_similar = sum(1 for g in goods if g > 0.7 * max_good)

        if max_good < n_min_good or n_similar > 1:
            return None

        best = goods.index(max_good)
        if checks[best].parallax > min_parallax:
            r, tt = hypotheses[best]
            return self._reconstruction(r, tt, checks[best])
        return None

    def reconstruct_h(self, inliers, h21, k, min_parallax, min_triangulated):
        """Recover motion from a homography by testing its eight decompositions."""
        inliers = list(inliers)
        n = sum(1 for flag in inliers if flag)
        k = np.asarray(k, dtype=np.float64)
        a = np.linalg.inv(k) @ np.asarray(h21, dtype=np.float64) @ k

        u, w, vt = np.linalg.svd(a, full_matrices=True)
        s = np.linalg.det(u) * np.linalg.det(vt)
        d1, d2, d3 = (float(v) for v in w)

        with np.errstate(divide="ignore", invalid="ignore"):
            if d1 / d2 < _SINGULAR_RATIO or d2 / d3 < _SINGULAR_RATIO:
                return None

        aux1 = math.sqrt((d1 * d1 - d2 * d2) / (d1 * d1 - d3 * d3))
        aux3 = math.sqrt((d2 * d2 - d3 * d3) / (d1 * d1 - d3 * d3))
        x1 = (aux1, aux1, -aux1, -aux1)
        x3 = (aux3, -aux3, aux3, -aux3)

        rotations: list[np.ndarray] = []
        translations: list[np.ndarray] = []

        # d' = d2
        aux_stheta = math.sqrt((d1 * d1 - d2 * d2) * (d2 * d2 - d3 * d3)) / ((d1 + d3) * d2)
        ctheta = (d2 * d2 + d1 * d3) / ((d1 + d3) * d2)
        stheta = (aux_stheta, -aux_stheta, -aux_stheta, aux_stheta)
        for i in range(4):
            rp = np.eye(3)
            rp[0, 0] = ctheta
            rp[0, 2] = -stheta[i]
            rp[2, 0] = stheta[i]
            rp[2, 2] = ctheta
            rotations.append(s * u @ rp @ vt)
            tp = np.array([x1[i], 0.0, -x3[i]]) * (d1 - d3)
            t = u @ tp
            translations.append(t / np.linalg.norm(t))

        # d' = -d2
        aux_sphi = math.sqrt((d1 * d1 - d2 * d2) * (d2 * d2 - d3 * d3)) / ((d1 - d3) * d2)
        cphi = (d1 * d3 - d2 * d2) / ((d1 - d3) * d2)
        sphi = (aux_sphi, -aux_sphi, -aux_sphi, aux_sphi)
        for i in range(4):
            rp = np.eye(3)
            rp[0, 0] = cphi
            rp[0, 2] = sphi[i]
            rp[1, 1] = -1.0
            rp[2, 0] = sphi[i]
            rp[2, 2] = -cphi
            rotations.append(s * u @ rp @ vt)
            tp = np.array([x1[i], 0.0, x3[i]]) * (d1 + d3)
            t = u @ tp
            translations.append(t / np.linalg.norm(t))

        best_good = 0
        second_best_good = 0
        best_index = -1
        best_parallax = -1.0
        best_check = None
        for i, (r, t) in enumerate(zip(rotations, translations)):
            check = check_rt(r, t, self.keys1, self.keys2, self.matches12, inliers, k,
                             4.0 * self.sigma2)
            if check.n_good > best_good:
                second_best_good = best_good
                best_good = check.n_good
                best_index = i
                best_parallax = check.parallax
                best_check = check
            elif check.n_good > second_best_good:
                second_best_good = check.n_good

        if (best_index >= 0
                and second_best_good < 0.75 * best_good
                and best_parallax >= min_parallax
                and best_good > min_triangulated
                and best_good > 0.9 * n):
            return self._reconstruction(rotations[best_index], translations[best_index], best_check)
        return None