"""Sample moments of a predictor/response pair.

A :class:`MomentBundle` is built fresh for every fit call and passed
explicitly to the objective builders and the reconstructor.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


def center(A: np.ndarray) -> np.ndarray:
    """Subtract column means."""
    A = np.asarray(A, dtype=float)
    return A - A.mean(axis=0, keepdims=True)


def covariance(A: np.ndarray, B: np.ndarray | None = None) -> np.ndarray:
    """Sample (cross-)covariance with divisor n."""
    Ac = center(A)
    Bc = Ac if B is None else center(B)
    S = Ac.T @ Bc / Ac.shape[0]
    if B is None:
        S = (S + S.T) / 2.0
    return S


def fit_ols(X: np.ndarray, Y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Unconstrained multivariate least squares of ``Y`` on ``X`` with intercept.

    Returns
    -------
    beta : (r × p) array
        Slope coefficients, so that fitted values are ``mean(Y) + Xc @ beta.T``.
    sig_res : (r × r) array
        Residual covariance with divisor n.
    """
    Xc = center(X)
    Yc = center(Y)
    coef, *_ = np.linalg.lstsq(Xc, Yc, rcond=None)  # p × r
    R = Yc - Xc @ coef
    sig_res = R.T @ R / Yc.shape[0]
    return coef.T, (sig_res + sig_res.T) / 2.0


@dataclass(frozen=True)
class MomentBundle:
    """Sample moments of (X, Y) and the unconstrained regression.

    Attributes
    ----------
    n, p, r : int
        Number of observations, predictors and responses.
    mean_x, mean_y : np.ndarray
        Column means.
    sig_x, sig_y : np.ndarray
        Predictor and response covariances (divisor n).
    sig_yx : np.ndarray
        Cross covariance, r × p.
    beta_ols : np.ndarray
        OLS slope coefficients, r × p.
    sig_res : np.ndarray
        OLS residual covariance, r × r.
    """

    n: int
    p: int
    r: int
    mean_x: np.ndarray
    mean_y: np.ndarray
    sig_x: np.ndarray
    sig_y: np.ndarray
    sig_yx: np.ndarray
    beta_ols: np.ndarray
    sig_res: np.ndarray

    @property
    def sig_fit(self) -> np.ndarray:
        """Covariance of the OLS fitted values, ``sig_y - sig_res``."""
        return self.sig_y - self.sig_res


def compute_moments(X: np.ndarray, Y: np.ndarray) -> MomentBundle:
    """
    Build the :class:`MomentBundle` for validated 2D arrays ``X`` (n × p) and
    ``Y`` (n × r). Singular covariances (n <= p or n <= r) are not detected
    here.
    """
    n, p = X.shape
    r = Y.shape[1]
    beta_ols, sig_res = fit_ols(X, Y)
    return MomentBundle(
        n=n,
        p=p,
        r=r,
        mean_x=X.mean(axis=0),
        mean_y=Y.mean(axis=0),
        sig_x=covariance(X),
        sig_y=covariance(Y),
        sig_yx=covariance(Y, X),
        beta_ols=beta_ols,
        sig_res=sig_res,
    )
