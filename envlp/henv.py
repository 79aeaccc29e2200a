from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import numpy as np

from ._validation import _validate_dimension, _validate_regression_inputs
from .config import OptimizerOptions, make_options
from .metrics import gaussian_loglik, log_det_positive
from .moments import covariance
from .objectives import heteroscedastic_objective
from .reconstruct import FitKind, fit_kind, orthogonal_complement
from .results import HeteroscedasticEnvelopeFit
from .start import fit_envelope_basis


def _groups(X: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    levels, inverse = np.unique(X, axis=0, return_inverse=True)
    return levels, np.asarray(inverse).reshape(-1)


def henv(
    X,
    Y,
    u,
    options: OptimizerOptions | Mapping[str, Any] | None = None,
) -> HeteroscedasticEnvelopeFit:
    """
    Fit the heteroscedastic envelope model for comparing group means.

    Rows of X are group indicators: every distinct row is one group. Group
    ``i`` has mean ``mu + Γ η_i`` and covariance
    ``Σ_i = Γ Ω_i Γ' + Γ0 Ω0 Γ0'``, so groups may differ in both location
    and spread inside the envelope but share the immaterial part. Γ minimises
    ``Σ_i (n_i / n) log|Γ' S_i Γ| + log|Γ' Σ_Y^{-1} Γ|``.

    Parameters
    ----------
    X : (n × q) array-like
        Group indicators with p distinct rows.
    Y : (n × r) array-like
    u : int
        0 <= u <= r.
    options : OptimizerOptions or mapping, optional

    Returns
    -------
    HeteroscedasticEnvelopeFit
        ``ratio`` is ``None`` for this model.
    """
    X, Y = _validate_regression_inputs(X, Y)
    n, r = Y.shape
    u = _validate_dimension(u, r)
    opts = make_options(options)

    levels, inverse = _groups(X)
    p = levels.shape[0]
    sizes = np.bincount(inverse, minlength=p)
    weights = sizes / n
    ybar = Y.mean(axis=0)
    means = np.column_stack([Y[inverse == i].mean(axis=0) for i in range(p)])  # r × p
    group_covs = [covariance(Y[inverse == i]) for i in range(p)]
    sig_y = covariance(Y)
    pooled = sum(w * S for w, S in zip(weights, group_covs, strict=True))

    kind = fit_kind(u, r)
    result = None

    if kind is FitKind.DEGENERATE:
        gamma, gamma0 = np.zeros((r, 0)), np.eye(r)
        fitted = np.repeat(ybar[:, None], p, axis=1)
        omega_groups = np.zeros((p, 0, 0))
        omega0 = sig_y
        sigma_groups = np.repeat(sig_y[None, :, :], p, axis=0)
        loglik = gaussian_loglik(n, r, log_det_positive(sig_y))
    elif kind is FitKind.SATURATED:
        gamma, gamma0 = np.eye(r), np.zeros((r, 0))
        fitted = means
        omega_groups = np.stack(group_covs)
        omega0 = np.zeros((0, 0))
        sigma_groups = np.stack(group_covs)
        logdet = float(sum(w * log_det_positive(S) for w, S in zip(weights, group_covs, strict=True)))
        loglik = gaussian_loglik(n, r, logdet)
    else:
        objective = heteroscedastic_objective(group_covs, weights, sig_y)
        result = fit_envelope_basis(objective, pooled, sig_y - pooled, u, opts)
        gamma = result.x
        gamma0 = orthogonal_complement(gamma)
        fitted = ybar[:, None] + gamma @ (gamma.T @ (means - ybar[:, None]))
        omega_groups = np.stack([gamma.T @ S @ gamma for S in group_covs])
        omega0 = gamma0.T @ sig_y @ gamma0
        immaterial = gamma0 @ omega0 @ gamma0.T
        sigma_groups = np.stack([gamma @ om @ gamma.T + immaterial for om in omega_groups])
        loglik = gaussian_loglik(n, r, result.fun + log_det_positive(sig_y))

    effects = fitted - ybar[:, None]
    return HeteroscedasticEnvelopeFit(
        model="henv",
        kind=kind,
        u=u,
        n_obs=n,
        beta=effects,
        alpha=ybar,
        sigma=np.tensordot(weights, sigma_groups, axes=1),
        gamma=gamma,
        gamma0=gamma0,
        eta=gamma.T @ effects,
        omega=np.tensordot(weights, omega_groups, axes=1),
        omega0=omega0,
        loglik=loglik,
        n_params=r + u * (p - 1) + u * (r - u) + p * u * (u + 1) // 2 + (r - u) * (r - u + 1) // 2,
        ratio=None,
        optimizer=result,
        group_levels=levels,
        group_sizes=sizes,
        group_means=fitted,
        sigma_groups=sigma_groups,
        omega_groups=omega_groups,
    )
