from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import numpy as np

from ._validation import _validate_dimension, _validate_matrix
from .config import OptimizerOptions, make_options
from .metrics import gaussian_loglik, log_det_positive
from .moments import covariance
from .objectives import mean_objective
from .reconstruct import (
    FitKind,
    fit_kind,
    guarded_ratio,
    orthogonal_complement,
    response_ratio,
)
from .results import MeanEnvelopeFit
from .start import fit_envelope_basis


def envmean(
    Y,
    u,
    options: OptimizerOptions | Mapping[str, Any] | None = None,
) -> MeanEnvelopeFit:
    """
    Envelope estimator of a multivariate mean, ``Y = mu + eps`` with
    ``mu = Γ η`` and ``Σ = Γ Ω Γ' + Γ0 Ω0 Γ0'``.

    Γ minimises ``n (log|Γ' S Γ| + log|Γ' (Y'Y/n)^{-1} Γ|)`` where ``S`` is
    the centred sample covariance. u = 0 forces ``mu = 0``; u = r gives the
    sample mean.

    Parameters
    ----------
    Y : (n × r) array-like
    u : int
        0 <= u <= r.
    options : OptimizerOptions or mapping, optional

    Returns
    -------
    MeanEnvelopeFit
        ``alpha`` is the estimated mean and ``ratio`` (r × 1) compares the
        asymptotic standard errors of the sample mean to the envelope
        estimator.
    """
    Y = _validate_matrix(Y, name="Y")
    n, r = Y.shape
    u = _validate_dimension(u, r)
    opts = make_options(options)

    ybar = Y.mean(axis=0)
    S = covariance(Y)
    second = S + np.outer(ybar, ybar)
    kind = fit_kind(u, r)
    result = None

    if kind is FitKind.DEGENERATE:
        gamma, gamma0 = np.zeros((r, 0)), np.eye(r)
        eta = np.zeros((0, 1))
        mu = np.zeros(r)
        omega, omega0 = np.zeros((0, 0)), second
        sigma = second
        loglik = gaussian_loglik(n, r, log_det_positive(second))
        ratio = np.ones((r, 1))
    elif kind is FitKind.SATURATED:
        gamma, gamma0 = np.eye(r), np.zeros((r, 0))
        eta = ybar[:, None]
        mu = ybar
        omega, omega0 = S, np.zeros((0, 0))
        sigma = S
        loglik = gaussian_loglik(n, r, log_det_positive(S))
        ratio = np.ones((r, 1))
    else:
        objective = mean_objective(S, second, n)
        result = fit_envelope_basis(objective, S, np.outer(ybar, ybar), u, opts)
        gamma = result.x
        gamma0 = orthogonal_complement(gamma)
        eta = gamma.T @ ybar[:, None]
        mu = (gamma @ eta).ravel()
        omega = gamma.T @ S @ gamma
        omega0 = gamma0.T @ second @ gamma0
        sigma = gamma @ omega @ gamma.T + gamma0 @ omega0 @ gamma0.T
        loglik = gaussian_loglik(n, r, result.fun / n + log_det_positive(second))
        ratio = guarded_ratio(
            lambda: response_ratio(eta, np.ones((1, 1)), gamma, gamma0, omega, omega0, sigma),
            (r, 1),
        )

    return MeanEnvelopeFit(
        model="envmean",
        kind=kind,
        u=u,
        n_obs=n,
        beta=np.zeros((r, 0)),
        alpha=mu,
        sigma=sigma,
        gamma=gamma,
        gamma0=gamma0,
        eta=eta,
        omega=omega,
        omega0=omega0,
        loglik=loglik,
        n_params=u + r * (r + 1) // 2,
        ratio=ratio,
        optimizer=result,
    )
