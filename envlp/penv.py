from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import numpy as np

from ._validation import _check_row_compatibility, _validate_dimension, _validate_matrix
from .config import OptimizerOptions, make_options
from .moments import fit_ols
from .objectives import response_objective
from .reconstruct import FitKind, fit_kind, reconstruct_response_envelope
from .results import PartialEnvelopeFit
from .start import fit_envelope_basis


def penv(
    X1,
    X2,
    Y,
    u,
    options: OptimizerOptions | Mapping[str, Any] | None = None,
) -> PartialEnvelopeFit:
    """
    Fit the partial envelope model ``Y = alpha + beta1 X1 + beta2 X2 + eps``
    where only ``beta1 = Γ η`` is enveloped.

    The objective is the response-envelope one with ``Σ_Y`` replaced by the
    residual covariance of Y given X2:
    ``log|Γ' Σ_res Γ| + log|Γ' Σ_{Y|X2}^{-1} Γ|``. Given ``beta1``, the
    covariate coefficients ``beta2`` are the least-squares fit of
    ``Y - X1 beta1'`` on X2.

    Parameters
    ----------
    X1 : (n × p1) array-like
        Predictors of main interest.
    X2 : (n × p2) array-like
        Covariates.
    Y : (n × r) array-like
    u : int
        0 <= u <= r.
    options : OptimizerOptions or mapping, optional

    Returns
    -------
    PartialEnvelopeFit
        ``beta``/``ratio`` refer to X1 (r × p1); ``beta2`` is r × p2.
    """
    X1 = _validate_matrix(X1, name="X1")
    X2 = _validate_matrix(X2, name="X2")
    Y = _validate_matrix(Y, name="Y")
    n = _check_row_compatibility(("Y", Y), ("X1", X1), ("X2", X2))
    r, p1, p2 = Y.shape[1], X1.shape[1], X2.shape[1]
    u = _validate_dimension(u, r)
    opts = make_options(options)

    beta_full, sig_res = fit_ols(np.hstack([X1, X2]), Y)
    beta1_ols = beta_full[:, :p1]
    _, sig_y_given_x2 = fit_ols(X2, Y)
    _, sig_x1_given_x2 = fit_ols(X2, X1)

    kind = fit_kind(u, r)
    gamma, fval, result = None, None, None
    if kind is FitKind.OPTIMIZED:
        objective = response_objective(sig_res, sig_y_given_x2)
        result = fit_envelope_basis(objective, sig_res, sig_y_given_x2 - sig_res, u, opts)
        gamma, fval = result.x, result.fun

    par = reconstruct_response_envelope(
        kind,
        gamma=gamma,
        objective_value=fval,
        beta_ols=beta1_ols,
        sig_res=sig_res,
        sig_y=sig_y_given_x2,
        sig_x=sig_x1_given_x2,
        n=n,
    )
    beta2, _ = fit_ols(X2, Y - X1 @ par.beta.T)
    alpha = Y.mean(axis=0) - par.beta @ X1.mean(axis=0) - beta2 @ X2.mean(axis=0)

    return PartialEnvelopeFit(
        model="penv",
        kind=kind,
        u=u,
        n_obs=n,
        beta=par.beta,
        alpha=alpha,
        sigma=par.sigma,
        gamma=par.gamma,
        gamma0=par.gamma0,
        eta=par.eta,
        omega=par.omega,
        omega0=par.omega0,
        loglik=par.loglik,
        n_params=r + u * p1 + r * p2 + r * (r + 1) // 2,
        ratio=par.ratio,
        optimizer=result,
        beta2=beta2,
    )
