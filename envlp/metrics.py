from __future__ import annotations

import numpy as np


def mse(Y: np.ndarray, Yhat: np.ndarray) -> float:
    """Mean squared error between two matrices."""
    return float(np.mean((Y - Yhat) ** 2))


def log_det_positive(A: np.ndarray) -> float:
    """
    Log of the product of the strictly positive eigenvalues of a symmetric matrix.

    Zero and negative eigenvalues are dropped rather than flagged, so a
    rank-deficient covariance (for example when n <= r) yields the log
    pseudo-determinant instead of ``-inf``.
    """
    A = np.asarray(A, dtype=float)
    if A.size == 0:
        return 0.0
    eig = np.linalg.eigvalsh((A + A.T) / 2.0)
    pos = eig[eig > 0]
    return float(np.sum(np.log(pos)))


def gaussian_loglik(n: int, dim: int, log_det: float) -> float:
    """
    Maximised Gaussian log-likelihood for ``n`` rows of dimension ``dim``
    whose MLE covariance has log-determinant ``log_det``.

    Returns
    -------
    float
        -n dim / 2 (1 + log 2π) - n / 2 log_det
    """
    return float(-0.5 * n * dim * (1.0 + np.log(2.0 * np.pi)) - 0.5 * n * log_det)


def rmse_per_row(residuals: np.ndarray) -> float:
    """sqrt(sum of squared residuals / number of rows), identity inner product."""
    residuals = np.atleast_2d(residuals)
    return float(np.sqrt(np.sum(residuals * residuals) / residuals.shape[0]))
