from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ._validation import _validate_dimension, _validate_regression_inputs
from .config import OptimizerOptions, make_options
from .moments import compute_moments
from .objectives import response_objective
from .reconstruct import (
    FitKind,
    fit_kind,
    reconstruct_response_envelope,
    response_envelope_n_params,
)
from .results import EnvelopeFit
from .start import fit_envelope_basis

logger = logging.getLogger(__name__)


def env(
    X,
    Y,
    u,
    options: OptimizerOptions | Mapping[str, Any] | None = None,
) -> EnvelopeFit:
    """
    Fit the response envelope model ``Y = alpha + beta X + eps`` by maximum
    likelihood, with ``beta = Γ η`` and ``Σ = Γ Ω Γ' + Γ0 Ω0 Γ0'``.

    For 0 < u < r the basis Γ minimises
    ``log|Γ' Σ_res Γ| + log|Γ' Σ_Y^{-1} Γ|`` over the Grassmann manifold.
    u = 0 means X and Y are uncorrelated (beta = 0); u = r is the standard
    multivariate regression. Both boundaries are closed form.

    Parameters
    ----------
    X : (n × p) array-like
        Predictors, discrete or continuous.
    Y : (n × r) array-like
        Responses. Must be continuous; this is not checked.
    u : int
        Envelope dimension, 0 <= u <= r.
    options : OptimizerOptions or mapping, optional
        ``max_iter`` (300), ``ftol`` (1e-10), ``gradtol`` (1e-7), ``verbose``.

    Returns
    -------
    EnvelopeFit
        ``ratio`` holds the asymptotic standard-error ratios of the OLS
        estimator over the envelope estimator for each element of beta.

    Raises
    ------
    ValueError
        On malformed inputs or u outside [0, r].
    """
    X, Y = _validate_regression_inputs(X, Y)
    r = Y.shape[1]
    u = _validate_dimension(u, r)
    opts = make_options(options)

    mom = compute_moments(X, Y)
    kind = fit_kind(u, r)
    gamma, fval, result = None, None, None

    if kind is FitKind.OPTIMIZED:
        objective = response_objective(mom.sig_res, mom.sig_y)
        result = fit_envelope_basis(objective, mom.sig_res, mom.sig_fit, u, opts)
        gamma, fval = result.x, result.fun
        if not result.converged:
            logger.debug("env(u=%d): optimizer status %s", u, result.status)

    par = reconstruct_response_envelope(
        kind,
        gamma=gamma,
        objective_value=fval,
        beta_ols=mom.beta_ols,
        sig_res=mom.sig_res,
        sig_y=mom.sig_y,
        sig_x=mom.sig_x,
        n=mom.n,
    )
    return EnvelopeFit(
        model="env",
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
        optimizer=result,
    )
