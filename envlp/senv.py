from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import numpy as np

from ._validation import _validate_dimension, _validate_regression_inputs
from .config import OptimizerOptions, make_options
from .metrics import gaussian_loglik, log_det_positive
from .moments import compute_moments
from .reconstruct import (
    FitKind,
    fit_kind,
    reconstruct_response_envelope,
    response_envelope_n_params,
)
from .results import ScaledEnvelopeFit
from .scaling import fit_scaled_basis


def senv(
    X,
    Y,
    u,
    options: OptimizerOptions | Mapping[str, Any] | None = None,
) -> ScaledEnvelopeFit:
    """
    Fit the scaled envelope model, a response envelope for
    ``Λ^{-1} Y`` with ``Λ = diag(1, λ_2, ..., λ_r)``:
    ``Σ = Λ (Γ Ω Γ' + Γ0 Ω0 Γ0') Λ`` and ``beta = Λ Γ η``.

    The basis and the scales are estimated by alternating a Grassmann step
    for Γ at fixed Λ with a Nelder-Mead step on ``log λ`` at fixed Γ, until
    the objective stops decreasing. The scales are not identified at u = 0 or
    u = r; those dimensions fall back to the response envelope with Λ = I.

    Parameters
    ----------
    X : (n × p) array-like
    Y : (n × r) array-like
    u : int
        0 <= u <= r.
    options : OptimizerOptions or mapping, optional

    Returns
    -------
    ScaledEnvelopeFit
        ``ratio`` treats the scales as known.
    """
    X, Y = _validate_regression_inputs(X, Y)
    r = Y.shape[1]
    u = _validate_dimension(u, r)
    opts = make_options(options)

    mom = compute_moments(X, Y)
    kind = fit_kind(u, r)

    if kind is not FitKind.OPTIMIZED:
        par = reconstruct_response_envelope(
            kind,
            gamma=None,
            objective_value=None,
            beta_ols=mom.beta_ols,
            sig_res=mom.sig_res,
            sig_y=mom.sig_y,
            sig_x=mom.sig_x,
            n=mom.n,
        )
        return ScaledEnvelopeFit(
            model="senv",
            kind=kind,
            u=u,
            n_obs=mom.n,
            beta=par.beta,
            alpha=mom.mean_y - par.beta @ mom.mean_x,
            sigma=par.sigma,
            gamma=par.gamma,
            gamma0=par.gamma0,
            eta=par.eta,
            omega=par.omega,
            omega0=par.omega0,
            loglik=par.loglik,
            n_params=response_envelope_n_params(r, mom.p, u),
            ratio=par.ratio,
            optimizer=None,
            scales=np.ones(r),
        )

    fitted = fit_scaled_basis(mom.sig_res, mom.sig_y, mom.sig_fit, u, opts, label="senv")
    scales, fval = fitted.scales, fitted.fun
    inv_scale = 1.0 / scales
    par = reconstruct_response_envelope(
        kind,
        gamma=fitted.gamma,
        objective_value=fval,
        beta_ols=inv_scale[:, None] * mom.beta_ols,
        sig_res=mom.sig_res * np.outer(inv_scale, inv_scale),
        sig_y=mom.sig_y * np.outer(inv_scale, inv_scale),
        sig_x=mom.sig_x,
        n=mom.n,
    )
    beta = scales[:, None] * par.beta
    sigma = par.sigma * np.outer(scales, scales)

    return ScaledEnvelopeFit(
        model="senv",
        kind=kind,
        u=u,
        n_obs=mom.n,
        beta=beta,
        alpha=mom.mean_y - beta @ mom.mean_x,
        sigma=sigma,
        gamma=par.gamma,
        gamma0=par.gamma0,
        eta=par.eta,
        omega=par.omega,
        omega0=par.omega0,
        loglik=gaussian_loglik(mom.n, r, fval + log_det_positive(mom.sig_y)),
        n_params=response_envelope_n_params(r, mom.p, u) + r - 1,
        ratio=par.ratio,
        optimizer=fitted.optimizer,
        scales=scales,
    )
