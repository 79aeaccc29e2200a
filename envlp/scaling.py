"""Alternating basis and scale estimation for the scaled envelopes.

Both scaled variants reduce, for fixed ``Λ = diag(1, λ_2, ..., λ_d)``, to the
two-term objective ``log|Γ' Λ^{-1} A Λ^{-1} Γ| + log|Γ' Λ B^{-1} Λ Γ|``: the
scaled response envelope with ``(A, B) = (Σ_res, Σ_Y)`` and the scaled
predictor envelope with ``(A, B) = (Σ_{X|Y}, Σ_X)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import scipy.optimize

from .config import SCALE_SWEEPS, OptimizerOptions
from .manifold import GrassmannResult, grassmann_minimize
from .objectives import DegenerateSubspaceError, scaled_objective
from .start import fit_envelope_basis

logger = logging.getLogger(__name__)


def _scales_from_log(log_tail: np.ndarray) -> np.ndarray:
    return np.concatenate([[1.0], np.exp(log_tail)])


def _scale_objective(log_tail, gamma, sig_a, sig_b) -> float:
    try:
        return scaled_objective(sig_a, sig_b, _scales_from_log(log_tail)).value(gamma)
    except np.linalg.LinAlgError:
        return np.inf


@dataclass(frozen=True)
class ScaledBasis:
    """Basis, scales and objective value reached by :func:`fit_scaled_basis`."""

    gamma: np.ndarray
    scales: np.ndarray
    fun: float
    optimizer: GrassmannResult


def fit_scaled_basis(
    sig_a: np.ndarray,
    sig_b: np.ndarray,
    signal: np.ndarray,
    u: int,
    options: OptimizerOptions,
    *,
    label: str,
) -> ScaledBasis:
    """
    Alternate a Grassmann step for Γ at fixed Λ with a Nelder-Mead step on
    ``log λ`` at fixed Γ until the objective stops decreasing.

    The first basis is fitted at Λ = I, so the result is never worse than the
    unscaled envelope of the same dimension. ``signal`` seeds the starting
    bases (``B - A`` in the unscaled coordinates).
    """
    d = sig_a.shape[0]
    scales = np.ones(d)
    result = fit_envelope_basis(scaled_objective(sig_a, sig_b, scales), sig_a, signal, u, options)
    gamma = result.x
    f_prev = np.inf

    for sweep in range(SCALE_SWEEPS):
        if sweep > 0:
            try:
                result = grassmann_minimize(
                    scaled_objective(sig_a, sig_b, scales),
                    gamma,
                    max_iter=options.max_iter,
                    ftol=options.ftol,
                    gradtol=options.gradtol,
                    verbose=options.verbose,
                )
            except DegenerateSubspaceError:
                logger.warning("%s: basis is singular at the current scales; stopping the sweeps", label)
                break
            gamma = result.x
        f = result.fun

        opt = scipy.optimize.minimize(
            _scale_objective,
            np.log(scales[1:]),
            args=(gamma, sig_a, sig_b),
            method="Nelder-Mead",
            options={"xatol": 1e-8, "fatol": max(options.ftol, 1e-14), "maxiter": 400 * d},
        )
        if np.isfinite(opt.fun) and opt.fun < f:
            scales = _scales_from_log(opt.x)
            f = float(opt.fun)

        (logger.info if options.verbose else logger.debug)(
            "%s sweep %d  F=%.12g  scales=%s", label, sweep + 1, f, np.array2string(scales, precision=4)
        )
        if f_prev - f <= options.ftol * (1.0 + abs(f)):
            break
        f_prev = f

    objective = scaled_objective(sig_a, sig_b, scales)
    try:
        fval = objective.value(gamma)
    except np.linalg.LinAlgError:
        fval = objective.pseudo_value(gamma)
    return ScaledBasis(gamma=gamma, scales=scales, fun=fval, optimizer=result)
