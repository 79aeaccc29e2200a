from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import numpy as np

from ._validation import _validate_dimension, _validate_regression_inputs
from .config import OptimizerOptions, make_options
from .metrics import gaussian_loglik, log_det_positive
from .moments import compute_moments, fit_ols
from .reconstruct import (
    FitKind,
    fit_kind,
    predictor_envelope_n_params,
    reconstruct_predictor_envelope,
)
from .results import ScaledPredictorEnvelopeFit
from .scaling import fit_scaled_basis


def sxenv(
    X,
    Y,
    u,
    options: OptimizerOptions | Mapping[str, Any] | None = None,
) -> ScaledPredictorEnvelopeFit:
    """
    Fit the scaled predictor envelope, a predictor envelope for
    ``X Λ^{-1}`` with ``Λ = diag(1, λ_2, ..., λ_p)``.

    The predictor covariance is ``Σ_X = Λ (Φ Δ Φ' + Φ0 Δ0 Φ0') Λ`` and the
    coefficients (r × p) are ``(Φ η)' Λ^{-1}``. Φ and Λ are estimated by the
    same alternation as :func:`envlp.senv`. At u = 0 and u = p the scales
    are not identified and the fit is the predictor envelope with Λ = I.

    Parameters
    ----------
    X : (n × p) array-like
        Continuous predictors.
    Y : (n × r) array-like
    u : int
        0 <= u <= p.
    options : OptimizerOptions or mapping, optional

    Returns
    -------
    ScaledPredictorEnvelopeFit
        ``loglik`` is the joint (X, Y) log-likelihood in the original units,
        comparable with :func:`envlp.xenv`; ``ratio`` treats the scales as
        known.
    """
    X, Y = _validate_regression_inputs(X, Y)
    p = X.shape[1]
    u = _validate_dimension(u, p, side="p")
    opts = make_options(options)

    mom = compute_moments(X, Y)
    _, sig_x_given_y = fit_ols(Y, X)
    kind = fit_kind(u, p)
    scales = np.ones(p)
    phi, fval, result = None, None, None

    if kind is FitKind.OPTIMIZED:
        fitted = fit_scaled_basis(
            sig_x_given_y, mom.sig_x, mom.sig_x - sig_x_given_y, u, opts, label="sxenv"
        )
        phi, fval, scales, result = fitted.gamma, fitted.fun, fitted.scales, fitted.optimizer

    inv_scale = 1.0 / scales
    par = reconstruct_predictor_envelope(
        kind,
        phi=phi,
        objective_value=fval,
        beta_ols=mom.beta_ols * scales[None, :],
        sig_x=mom.sig_x * np.outer(inv_scale, inv_scale),
        sig_xy=inv_scale[:, None] * mom.sig_yx.T,
        sig_y=mom.sig_y,
        sig_res=mom.sig_res,
        n=mom.n,
    )
    beta = par.beta * inv_scale[None, :]
    n_params = predictor_envelope_n_params(mom.r, p, u)
    loglik = par.loglik
    if kind is FitKind.OPTIMIZED:
        n_params += p - 1
        loglik = gaussian_loglik(
            mom.n, p + mom.r, fval + log_det_positive(mom.sig_x) + log_det_positive(mom.sig_y)
        )

    return ScaledPredictorEnvelopeFit(
        model="sxenv",
        kind=kind,
        u=u,
        n_obs=mom.n,
        beta=beta,
        alpha=mom.mean_y - beta @ mom.mean_x,
        sigma=par.sigma,
        gamma=par.phi,
        gamma0=par.phi0,
        eta=par.eta,
        omega=par.delta,
        omega0=par.delta0,
        loglik=loglik,
        n_params=n_params,
        ratio=par.ratio,
        optimizer=result,
        sigma_x=par.sigma_x * np.outer(scales, scales),
        scales=scales,
    )
