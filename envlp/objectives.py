"""Concentrated log-likelihood objectives over envelope bases.

Every envelope variant profiles all parameters except the subspace and ends
up minimising a weighted sum of log-determinants

    F(R) = s * [ Σ_k w_k log|R' A_k R| - (Σ_k w_k) log|R' R| ]

over r × u matrices ``R`` of full column rank. The ``log|R' R|`` term makes
``F(R M) = F(R)`` for every invertible u × u matrix ``M``, so ``F`` is a
function of span(R) only; the Euclidean gradient then transforms as
``grad(R M) = grad(R) M^{-T}`` and satisfies ``R' grad(R) = 0``. At a
semi-orthogonal ``R`` the normalisation vanishes and the familiar
``log|Γ' A Γ| + log|Γ' B^{-1} Γ|`` form is recovered.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from .metrics import log_det_positive


class DegenerateSubspaceError(np.linalg.LinAlgError):
    """A trial basis makes one of the reduced moment matrices singular."""


def _logdet_pd(M: np.ndarray, *, label: str) -> float:
    sign, logdet = np.linalg.slogdet(M)
    if sign <= 0 or not np.isfinite(logdet):
        raise DegenerateSubspaceError(
            f"R' {label} R is singular or indefinite at the trial basis"
        )
    return float(logdet)


def _sym_inv(A: np.ndarray) -> np.ndarray:
    # Pseudo-inverse: a rank-deficient covariance (n <= r) stays usable.
    Ainv = np.linalg.pinv(A, hermitian=True)
    return (Ainv + Ainv.T) / 2.0


@dataclass(frozen=True)
class LogDetObjective:
    """Weighted log-determinant objective and its Euclidean gradient.

    Parameters
    ----------
    terms : sequence of (weight, matrix)
        Symmetric r × r moment matrices ``A_k`` with non-negative weights.
    scale : float
        Overall multiplier ``s``.
    """

    terms: tuple[tuple[float, np.ndarray], ...]
    scale: float = 1.0

    @property
    def total_weight(self) -> float:
        return float(sum(w for w, _ in self.terms))

    def __call__(self, R: np.ndarray) -> tuple[float, np.ndarray]:
        """Return ``(F(R), grad F(R))``.

        Raises
        ------
        DegenerateSubspaceError
            If ``R' A_k R`` or ``R' R`` is singular.
        """
        R = np.asarray(R, dtype=float)
        f = 0.0
        G = np.zeros_like(R)
        for k, (w, A) in enumerate(self.terms):
            AR = A @ R
            M = R.T @ AR
            M = (M + M.T) / 2.0
            f += w * _logdet_pd(M, label=f"A[{k}]")
            G += 2.0 * w * np.linalg.solve(M, AR.T).T

        c = self.total_weight
        RtR = R.T @ R
        f -= c * _logdet_pd(RtR, label="I")
        G -= 2.0 * c * np.linalg.solve(RtR, R.T).T
        return self.scale * f, self.scale * G

    def value(self, R: np.ndarray) -> float:
        return self(R)[0]

    def gradient(self, R: np.ndarray) -> np.ndarray:
        return self(R)[1]

    def pseudo_value(self, R: np.ndarray) -> float:
        """F with every log-determinant replaced by the log pseudo-determinant.

        Finite at bases where ``__call__`` raises; equal to it elsewhere.
        """
        R = np.asarray(R, dtype=float)
        f = sum(w * log_det_positive(R.T @ A @ R) for w, A in self.terms)
        f -= self.total_weight * log_det_positive(R.T @ R)
        return self.scale * float(f)


def response_objective(sig_res: np.ndarray, sig_y: np.ndarray) -> LogDetObjective:
    """
    Response envelope: ``log|Γ' Σ_res Γ| + log|Γ' Σ_Y^{-1} Γ|``.

    Also used by the partial envelope (with ``sig_y`` the residual covariance
    of Y given the covariates) and by the scaled envelope for fixed scales.
    """
    return LogDetObjective(terms=((1.0, sig_res), (1.0, _sym_inv(sig_y))))


def mean_objective(sig_y: np.ndarray, second_moment: np.ndarray, n: int) -> LogDetObjective:
    """
    Envelope of the mean: ``n (log|Γ' S Γ| + log|Γ' (Y'Y/n)^{-1} Γ|)`` where
    ``S`` is the centred response covariance.

    At a semi-orthogonal Γ the gradient is
    ``2n (S Γ (Γ'SΓ)^{-1} + B Γ (Γ'BΓ)^{-1})`` with ``B = (Y'Y/n)^{-1}``.
    """
    return LogDetObjective(
        terms=((1.0, sig_y), (1.0, _sym_inv(second_moment))), scale=float(n)
    )


def predictor_objective(sig_x_given_y: np.ndarray, sig_x: np.ndarray) -> LogDetObjective:
    """Predictor envelope: ``log|Φ' Σ_{X|Y} Φ| + log|Φ' Σ_X^{-1} Φ|``."""
    return LogDetObjective(terms=((1.0, sig_x_given_y), (1.0, _sym_inv(sig_x))))


def heteroscedastic_objective(
    group_covs: Sequence[np.ndarray], weights: Sequence[float], sig_y: np.ndarray
) -> LogDetObjective:
    """
    Heteroscedastic envelope:
    ``Σ_i f_i log|Γ' S_i Γ| + log|Γ' Σ_Y^{-1} Γ|`` with group fractions ``f_i``.
    """
    terms = tuple((float(w), S) for w, S in zip(weights, group_covs, strict=True))
    return LogDetObjective(terms=terms + ((1.0, _sym_inv(sig_y)),))


def scaled_objective(sig_res: np.ndarray, sig_y: np.ndarray, scales: np.ndarray) -> LogDetObjective:
    """
    Scaled envelope for fixed scales Λ:
    ``log|Γ' Λ^{-1} Σ_res Λ^{-1} Γ| + log|Γ' Λ Σ_Y^{-1} Λ Γ|``.

    With ``(Σ_{X|Y}, Σ_X)`` in place of ``(Σ_res, Σ_Y)`` this is the scaled
    predictor envelope objective.
    """
    inv_scale = 1.0 / np.asarray(scales, dtype=float)
    res_scaled = sig_res * np.outer(inv_scale, inv_scale)
    y_scaled = sig_y * np.outer(inv_scale, inv_scale)
    return response_objective(res_scaled, y_scaled)
