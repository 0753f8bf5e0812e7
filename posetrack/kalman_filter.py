"""Constant-velocity Kalman filter over (x, y, aspect ratio, height) boxes."""

from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np

_NDIM = 4
_DT = 1.0

Vector = np.ndarray
Matrix = np.ndarray


class KalmanFilter:
    """Kalman filter for tracking bounding boxes in image space.

    The 8-dimensional state is ``(x, y, a, h, vx, vy, va, vh)``: the box
    centre, aspect ratio and height, followed by their velocities.
    Observations are the first four components.
    """

    #: 0.95 quantile of the chi-square distribution, indexed by degrees of freedom.
    chi2inv95 = (0.0, 3.8415, 5.9915, 7.8147, 9.4877, 11.070, 12.592, 14.067, 15.507, 16.919)

    def __init__(self) -> None:
        self._motion_mat = np.eye(2 * _NDIM) + _DT * np.eye(2 * _NDIM, k=_NDIM)
        self._update_mat = np.eye(_NDIM, 2 * _NDIM)
        self._std_weight_position = 1.0 / 20
        self._std_weight_velocity = 1.0 / 160

    def initiate(self, measurement: Sequence[float]) -> Tuple[Vector, Matrix]:
        """Create a track state from an unassociated ``(x, y, a, h)`` measurement."""
        measurement = np.asarray(measurement, dtype=np.float64).reshape(_NDIM)
        mean = np.concatenate([measurement, np.zeros(_NDIM)])
        height = measurement[3]
        pos = self._std_weight_position
        vel = self._std_weight_velocity
        std = np.array(
            [
                2 * pos * height,
                2 * pos * height,
                1e-2,
                2 * pos * height,
                10 * vel * height,
                10 * vel * height,
                1e-5,
                10 * vel * height,
            ]
        )
        return mean, np.diag(np.square(std))

    def predict(self, mean: Sequence[float], covariance: Matrix) -> Tuple[Vector, Matrix]:
        """Run the prediction step and return the new mean and covariance."""
        mean = np.asarray(mean, dtype=np.float64).reshape(2 * _NDIM)
        covariance = np.asarray(covariance, dtype=np.float64)
        height = mean[3]
        pos = self._std_weight_position
        vel = self._std_weight_velocity
        std = np.array(
            [
                pos * height,
                pos * height,
                1e-2,
                pos * height,
                vel * height,
                vel * height,
                1e-5,
                vel * height,
            ]
        )
        motion_cov = np.diag(np.square(std))
        new_mean = self._motion_mat @ mean
        new_cov = self._motion_mat @ covariance @ self._motion_mat.T + motion_cov
        return new_mean, new_cov

    def project(self, mean: Sequence[float], covariance: Matrix) -> Tuple[Vector, Matrix]:
        """Project the state distribution into measurement space."""
        mean = np.asarray(mean, dtype=np.float64).reshape(2 * _NDIM)
        covariance = np.asarray(covariance, dtype=np.float64)
        height = mean[3]
        pos = self._std_weight_position
        std = np.array([pos * height, pos * height, 1e-1, pos * height])
        projected_mean = self._update_mat @ mean
        projected_cov = self._update_mat @ covariance @ self._update_mat.T + np.diag(np.square(std))
        return projected_mean, projected_cov

    def update(
        self, mean: Sequence[float], covariance: Matrix, measurement: Sequence[float]
    ) -> Tuple[Vector, Matrix]:
        """Run the correction step with a ``(x, y, a, h)`` measurement."""
        mean = np.asarray(mean, dtype=np.float64).reshape(2 * _NDIM)
        covariance = np.asarray(covariance, dtype=np.float64)
        measurement = np.asarray(measurement, dtype=np.float64).reshape(_NDIM)
        projected_mean, projected_cov = self.project(mean, covariance)

        rhs = (covariance @ self._update_mat.T).T
        kalman_gain = _cholesky_solve(projected_cov, rhs).T
        innovation = measurement - projected_mean

        new_mean = mean + innovation @ kalman_gain.T
        new_cov = covariance - kalman_gain @ projected_cov @ kalman_gain.T
        return new_mean, new_cov

    def gating_distance(
        self,
        mean: Sequence[float],
        covariance: Matrix,
        measurements: Sequence[Sequence[float]],
        only_position: bool = False,
    ) -> np.ndarray:
        """Return the squared gating distance of each measurement to the state."""
        if only_position:
            raise ValueError("position-only gating distance is not supported")
        projected_mean, projected_cov = self.project(mean, covariance)
        d = np.asarray(measurements, dtype=np.float64).reshape(-1, _NDIM) - projected_mean
        factor = np.linalg.cholesky(projected_cov)
        # Solve z @ L = d for z, one row per measurement.
        z = np.linalg.solve(factor.T, d.T).T
        return np.sum(z * z, axis=1)


def _cholesky_solve(spd: Matrix, rhs: Matrix) -> Matrix:
    """Solve ``spd @ x = rhs`` for a symmetric positive definite ``spd``."""
    lower = np.linalg.cholesky(spd)
    return np.linalg.solve(lower.T, np.linalg.solve(lower, rhs))