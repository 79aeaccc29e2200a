"""Closed-form reconstruction of envelope parameters from a fitted basis.

The envelope dimension selects one of three paths:

  - ``FitKind.DEGENERATE`` (u = 0): no material part; nothing is optimised.
  - ``FitKind.SATURATED`` (u = full dimension): the unconstrained model.
  - ``FitKind.OPTIMIZED``: the basis comes from the Grassmann optimizer.

The boundary paths use the same log-likelihood and parameter-count formulas as
the optimised path evaluated at Γ = [] and Γ = I, so all dimensions can be
compared on one scale.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np
import scipy.linalg

from .metrics import gaussian_loglik, log_det_positive


class FitKind(Enum):
    DEGENERATE = "degenerate"
    OPTIMIZED = "optimized"
    SATURATED = "saturated"


def fit_kind(u: int, full: int) -> FitKind:
    if u == 0:
        return FitKind.DEGENERATE
    if u == full:
        return FitKind.SATURATED
    return FitKind.OPTIMIZED


def _sym(A: np.ndarray) -> np.ndarray:
    return (A + A.T) / 2.0


def orthogonal_complement(gamma: np.ndarray) -> np.ndarray:
    """Orthonormal basis of the orthogonal complement of span(gamma)."""
    dim, u = gamma.shape
    if u == 0:
        return np.eye(dim)
    if u == dim:
        return np.zeros((dim, 0))
    return scipy.linalg.null_space(gamma.T)


def _quad_diag(L: np.ndarray, T: np.ndarray) -> np.ndarray:
    """diag(L T^{-1} L')."""
    return np.sum(L * np.linalg.solve(T, L.T).T, axis=1)


def _envelope_middle(signal_term: np.ndarray, omega: np.ndarray, omega0: np.ndarray) -> np.ndarray:
    """signal_term + Ω ⊗ Ω0^{-1} + Ω^{-1} ⊗ Ω0 - 2 I."""
    u, q = omega.shape[0], omega0.shape[0]
    return (
        signal_term
        + np.kron(omega, np.linalg.inv(omega0))
        + np.kron(np.linalg.inv(omega), omega0)
        - 2.0 * np.eye(u * q)
    )


def response_ratio(
    eta: np.ndarray,
    sig_x: np.ndarray,
    gamma: np.ndarray,
    gamma0: np.ndarray,
    omega: np.ndarray,
    omega0: np.ndarray,
    sigma: np.ndarray,
) -> np.ndarray:
    """
    Elementwise asymptotic standard-error ratio, OLS over envelope, for an
    r × p coefficient ``β = Γ η``.

    avar(vec β_OLS) = Σ_X^{-1} ⊗ Σ
    avar(vec β_env) = Σ_X^{-1} ⊗ Γ Ω Γ' + (η' ⊗ Γ0) T^{-1} (η ⊗ Γ0')
    T = η Σ_X η' ⊗ Ω0^{-1} + Ω ⊗ Ω0^{-1} + Ω^{-1} ⊗ Ω0 - 2 I
    """
    r, p = gamma.shape[0], eta.shape[1]
    sig_x_inv_diag = np.diag(np.linalg.inv(sig_x))
    asy_full = np.kron(sig_x_inv_diag, np.diag(sigma))
    T = _envelope_middle(np.kron(eta @ sig_x @ eta.T, np.linalg.inv(omega0)), omega, omega0)
    L = np.kron(eta.T, gamma0)
    asy_env = np.kron(sig_x_inv_diag, np.diag(gamma @ omega @ gamma.T)) + _quad_diag(L, T)
    return np.sqrt(asy_full / asy_env).reshape((r, p), order="F")


def predictor_ratio(
    eta: np.ndarray,
    sig_y_given_x: np.ndarray,
    phi: np.ndarray,
    phi0: np.ndarray,
    delta: np.ndarray,
    delta0: np.ndarray,
    sigma_x: np.ndarray,
) -> np.ndarray:
    """
    Standard-error ratio for a p × r coefficient ``β = Φ η`` of the
    predictor envelope, returned transposed (r × p).

    avar(vec β_OLS) = Σ_{Y|X} ⊗ Σ_X^{-1}
    avar(vec β_env) = Σ_{Y|X} ⊗ Φ Δ^{-1} Φ' + (η' ⊗ Φ0) T^{-1} (η ⊗ Φ0')
    T = η Σ_{Y|X}^{-1} η' ⊗ Δ0 + Δ ⊗ Δ0^{-1} + Δ^{-1} ⊗ Δ0 - 2 I
    """
    p, r = phi.shape[0], eta.shape[1]
    res_diag = np.diag(sig_y_given_x)
    asy_full = np.kron(res_diag, np.diag(np.linalg.inv(sigma_x)))
    signal = eta @ np.linalg.solve(sig_y_given_x, eta.T)
    T = _envelope_middle(np.kron(signal, delta0), delta, delta0)
    L = np.kron(eta.T, phi0)
    asy_env = np.kron(res_diag, np.diag(phi @ np.linalg.solve(delta, phi.T))) + _quad_diag(L, T)
    return np.sqrt(asy_full / asy_env).reshape((p, r), order="F").T


def guarded_ratio(compute, shape: tuple[int, int]) -> np.ndarray:
    """Run a ratio computation; singular blocks (n <= r) give a nan matrix."""
    try:
        with np.errstate(divide="ignore", invalid="ignore"):
            return compute()
    except np.linalg.LinAlgError:
        return np.full(shape, np.nan)


@dataclass(frozen=True)
class ResponseEnvelopeParameters:
    kind: FitKind
    gamma: np.ndarray
    gamma0: np.ndarray
    eta: np.ndarray
    beta: np.ndarray
    omega: np.ndarray
    omega0: np.ndarray
    sigma: np.ndarray
    ratio: np.ndarray
    loglik: float


def response_envelope_n_params(r: int, p: int, u: int) -> int:
    """r + u p + r (r + 1) / 2, the same expression for every u."""
    return r + u * p + r * (r + 1) // 2


def reconstruct_response_envelope(
    kind: FitKind,
    *,
    gamma: np.ndarray | None,
    objective_value: float | None,
    beta_ols: np.ndarray,
    sig_res: np.ndarray,
    sig_y: np.ndarray,
    sig_x: np.ndarray,
    n: int,
) -> ResponseEnvelopeParameters:
    """
    Rebuild (β, Σ, Γ, Γ0, η, Ω, Ω0, log-likelihood, ratio) for a response
    envelope of ``β_OLS`` with immaterial covariance ``sig_y``.

    For ``OPTIMIZED``, ``gamma`` must be semi-orthogonal and
    ``objective_value`` equal to ``log|Γ' Σ_res Γ| + log|Γ' Σ_Y^{-1} Γ|``.
    The log-likelihood adds ``log det+(Σ_Y)``, the log product of the
    strictly positive eigenvalues only.
    """
    r, p = beta_ols.shape
    if kind is FitKind.DEGENERATE:
        return ResponseEnvelopeParameters(
            kind=kind,
            gamma=np.zeros((r, 0)),
            gamma0=np.eye(r),
            eta=np.zeros((0, p)),
            beta=np.zeros((r, p)),
            omega=np.zeros((0, 0)),
            omega0=sig_y.copy(),
            sigma=sig_y.copy(),
            ratio=np.ones((r, p)),
            loglik=gaussian_loglik(n, r, log_det_positive(sig_y)),
        )
    if kind is FitKind.SATURATED:
        return ResponseEnvelopeParameters(
            kind=kind,
            gamma=np.eye(r),
            gamma0=np.zeros((r, 0)),
            eta=beta_ols.copy(),
            beta=beta_ols.copy(),
            omega=sig_res.copy(),
            omega0=np.zeros((0, 0)),
            sigma=sig_res.copy(),
            ratio=np.ones((r, p)),
            loglik=gaussian_loglik(n, r, log_det_positive(sig_res)),
        )

    gamma0 = orthogonal_complement(gamma)
    eta = gamma.T @ beta_ols
    beta = gamma @ eta
    omega = _sym(gamma.T @ sig_res @ gamma)
    omega0 = _sym(gamma0.T @ sig_y @ gamma0)
    sigma = _sym(gamma @ omega @ gamma.T + gamma0 @ omega0 @ gamma0.T)
    loglik = gaussian_loglik(n, r, float(objective_value) + log_det_positive(sig_y))
    ratio = guarded_ratio(
        lambda: response_ratio(eta, sig_x, gamma, gamma0, omega, omega0, sigma), (r, p)
    )
    return ResponseEnvelopeParameters(
        kind=kind,
        gamma=gamma,
        gamma0=gamma0,
        eta=eta,
        beta=beta,
        omega=omega,
        omega0=omega0,
        sigma=sigma,
        ratio=ratio,
        loglik=loglik,
    )


@dataclass(frozen=True)
class PredictorEnvelopeParameters:
    kind: FitKind
    phi: np.ndarray
    phi0: np.ndarray
    eta: np.ndarray
    beta: np.ndarray
    delta: np.ndarray
    delta0: np.ndarray
    sigma: np.ndarray
    sigma_x: np.ndarray
    ratio: np.ndarray
    loglik: float


def predictor_envelope_n_params(r: int, p: int, u: int) -> int:
    """r + u r + p (p + 1) / 2 + r (r + 1) / 2."""
    return r + u * r + p * (p + 1) // 2 + r * (r + 1) // 2


def reconstruct_predictor_envelope(
    kind: FitKind,
    *,
    phi: np.ndarray | None,
    objective_value: float | None,
    beta_ols: np.ndarray,
    sig_x: np.ndarray,
    sig_xy: np.ndarray,
    sig_y: np.ndarray,
    sig_res: np.ndarray,
    n: int,
) -> PredictorEnvelopeParameters:
    """
    Rebuild the predictor envelope parameters of the joint (X, Y) model.

    ``beta`` is returned r × p. The log-likelihood is that of (X, Y) with
    ``log det+(Σ_X) + log det+(Σ_Y)`` added to ``objective_value``.
    """
    r, p = beta_ols.shape
    ld_x = log_det_positive(sig_x)
    if kind is FitKind.DEGENERATE:
        return PredictorEnvelopeParameters(
            kind=kind,
            phi=np.zeros((p, 0)),
            phi0=np.eye(p),
            eta=np.zeros((0, r)),
            beta=np.zeros((r, p)),
            delta=np.zeros((0, 0)),
            delta0=sig_x.copy(),
            sigma=sig_y.copy(),
            sigma_x=sig_x.copy(),
            ratio=np.ones((r, p)),
            loglik=gaussian_loglik(n, p + r, ld_x + log_det_positive(sig_y)),
        )
    if kind is FitKind.SATURATED:
        return PredictorEnvelopeParameters(
            kind=kind,
            phi=np.eye(p),
            phi0=np.zeros((p, 0)),
            eta=beta_ols.T.copy(),
            beta=beta_ols.copy(),
            delta=sig_x.copy(),
            delta0=np.zeros((0, 0)),
            sigma=sig_res.copy(),
            sigma_x=sig_x.copy(),
            ratio=np.ones((r, p)),
            loglik=gaussian_loglik(n, p + r, ld_x + log_det_positive(sig_res)),
        )

    phi0 = orthogonal_complement(phi)
    delta = _sym(phi.T @ sig_x @ phi)
    delta0 = _sym(phi0.T @ sig_x @ phi0)
    # lstsq rather than solve: Δ is singular when n <= p.
    eta = np.linalg.lstsq(delta, phi.T @ sig_xy, rcond=None)[0]
    beta = (phi @ eta).T
    sigma_x = _sym(phi @ delta @ phi.T + phi0 @ delta0 @ phi0.T)
    sigma = _sym(sig_y - eta.T @ delta @ eta)
    loglik = gaussian_loglik(n, p + r, float(objective_value) + ld_x + log_det_positive(sig_y))
    ratio = guarded_ratio(
        lambda: predictor_ratio(eta, sigma, phi, phi0, delta, delta0, sigma_x), (r, p)
    )
    return PredictorEnvelopeParameters(
        kind=kind,
        phi=phi,
        phi0=phi0,
        eta=eta,
        beta=beta,
        delta=delta,
        delta0=delta0,
        sigma=sigma,
        sigma_x=sigma_x,
        ratio=ratio,
        loglik=loglik,
    )
