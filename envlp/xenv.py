from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ._validation import _validate_dimension, _validate_regression_inputs
from .config import OptimizerOptions, make_options
from .moments import compute_moments, fit_ols
from .objectives import predictor_objective
from .reconstruct import (
    FitKind,
    fit_kind,
    predictor_envelope_n_params,
    reconstruct_predictor_envelope,
)
from .results import PredictorEnvelopeFit
from .start import fit_envelope_basis


def xenv(
    X,
    Y,
    u,
    options: OptimizerOptions | Mapping[str, Any] | None = None,
) -> PredictorEnvelopeFit:
    """
    Fit the envelope model for the reduction on X.

    The predictor covariance is decomposed as ``Σ_X = Φ Δ Φ' + Φ0 Δ0 Φ0'``
    with the coefficients (p × r in this parameterisation) ``Φ η``; the
    basis Φ minimises ``log|Φ' Σ_{X|Y} Φ| + log|Φ' Σ_X^{-1} Φ|``. The
    log-likelihood is that of the joint distribution of (X, Y).

    Parameters
    ----------
    X : (n × p) array-like
    Y : (n × r) array-like
    u : int
        0 <= u <= p.
    options : OptimizerOptions or mapping, optional

    Returns
    -------
    PredictorEnvelopeFit
        ``beta`` is stored r × p like every other record, ``gamma`` is Φ,
        ``omega``/``omega0`` are Δ/Δ0, ``sigma`` is Σ_{Y|X} and ``sigma_x``
        the structured predictor covariance.
    """
    X, Y = _validate_regression_inputs(X, Y)
    p = X.shape[1]
    u = _validate_dimension(u, p, side="p")
    opts = make_options(options)

    mom = compute_moments(X, Y)
    _, sig_x_given_y = fit_ols(Y, X)
    kind = fit_kind(u, p)
    phi, fval, result = None, None, None

    if kind is FitKind.OPTIMIZED:
        objective = predictor_objective(sig_x_given_y, mom.sig_x)
        result = fit_envelope_basis(objective, sig_x_given_y, mom.sig_x - sig_x_given_y, u, opts)
        phi, fval = result.x, result.fun

    par = reconstruct_predictor_envelope(
        kind,
        phi=phi,
        objective_value=fval,
        beta_ols=mom.beta_ols,
        sig_x=mom.sig_x,
        sig_xy=mom.sig_yx.T,
        sig_y=mom.sig_y,
        sig_res=mom.sig_res,
        n=mom.n,
    )
    return PredictorEnvelopeFit(
        model="xenv",
        kind=kind,
        u=u,
        n_obs=mom.n,
        beta=par.beta,
        alpha=mom.mean_y - par.beta @ mom.mean_x,
        sigma=par.sigma,
        gamma=par.phi,
        gamma0=par.phi0,
        eta=par.eta,
        omega=par.delta,
        omega0=par.delta0,
        loglik=par.loglik,
        n_params=predictor_envelope_n_params(mom.r, p, u),
        ratio=par.ratio,
        optimizer=result,
        sigma_x=par.sigma_x,
    )
