"""Fitted envelope model records.

Records are frozen dataclasses whose arrays are made read-only on
construction. Coefficients are always stored r × p, so that fitted values are
``alpha + X @ beta.T`` for every variant with predictors.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

import numpy as np

from ._validation import _validate_matrix
from .manifold import GrassmannResult
from .reconstruct import FitKind


def _freeze(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        value = value.copy()
        value.setflags(write=False)
    return value


@dataclass(frozen=True, kw_only=True)
class EnvelopeFit:
    """Maximum-likelihood envelope estimates for one dimension ``u``.

    Attributes
    ----------
    model : str
        Variant name (``"env"``, ``"xenv"``, ...).
    kind : FitKind
        Which reconstruction path produced the record.
    u : int
        Envelope dimension.
    n_obs : int
        Number of observations used in the fit.
    beta : (r × p) array
        Regression coefficients.
    alpha : (r,) array
        Intercept.
    sigma : (r × r) array
        Error covariance.
    gamma, gamma0 : arrays
        Orthonormal bases of the envelope and its complement.
    eta : array
        Coordinates of the coefficients with respect to ``gamma``.
    omega, omega0 : arrays
        Coordinates of the covariance with respect to ``gamma`` and ``gamma0``.
    loglik : float
        Maximised log-likelihood.
    n_params : int
        Number of free parameters.
    ratio : (r × p) array or None
        Asymptotic standard-error ratios, unconstrained over envelope.
    optimizer : GrassmannResult or None
        Optimizer outcome, ``None`` on the closed-form boundary paths.
    """

    model: str
    kind: FitKind
    u: int
    n_obs: int
    beta: np.ndarray
    alpha: np.ndarray
    sigma: np.ndarray
    gamma: np.ndarray
    gamma0: np.ndarray
    eta: np.ndarray
    omega: np.ndarray
    omega0: np.ndarray
    loglik: float
    n_params: int
    ratio: np.ndarray | None
    optimizer: GrassmannResult | None = None

    def __post_init__(self) -> None:
        for f in fields(self):
            object.__setattr__(self, f.name, _freeze(getattr(self, f.name)))

    @property
    def converged(self) -> bool:
        """False only when the optimizer stopped without meeting a tolerance."""
        return True if self.optimizer is None else self.optimizer.converged

    @property
    def bic(self) -> float:
        return float(-2.0 * self.loglik + np.log(self.n_obs) * self.n_params)

    @property
    def aic(self) -> float:
        return float(-2.0 * self.loglik + 2.0 * self.n_params)

    def predict(self, X: Any) -> np.ndarray:
        """Fitted response means ``alpha + X @ beta.T`` for new predictors."""
        X_arr = _validate_matrix(X, name="X")
        if X_arr.shape[1] != self.beta.shape[1]:
            raise ValueError(
                f"X has {X_arr.shape[1]} columns but the model was fitted with {self.beta.shape[1]}"
            )
        return self.alpha[None, :] + X_arr @ self.beta.T

    def summary_dict(self) -> dict[str, Any]:
        out = {
            "model": self.model,
            "u": self.u,
            "kind": self.kind.value,
            "nobs": self.n_obs,
            "loglik": self.loglik,
            "n_params": self.n_params,
            "bic": self.bic,
            "aic": self.aic,
        }
        if self.optimizer is not None:
            out.update(
                converged=self.optimizer.converged,
                status=self.optimizer.status,
                n_iter=self.optimizer.n_iter,
            )
        return out


@dataclass(frozen=True, kw_only=True)
class PredictorEnvelopeFit(EnvelopeFit):
    """Predictor envelope; ``gamma`` spans a subspace of the predictor space,
    ``omega``/``omega0`` are the coordinates of ``sigma_x`` and ``sigma`` is
    the covariance of Y given X."""

    sigma_x: np.ndarray | None = None


@dataclass(frozen=True, kw_only=True)
class PartialEnvelopeFit(EnvelopeFit):
    """Partial envelope; ``beta`` holds the coefficients of the predictors of
    main interest and ``beta2`` those of the covariates."""

    beta2: np.ndarray | None = None

    def predict(self, X1: Any, X2: Any) -> np.ndarray:
        X1_arr = _validate_matrix(X1, name="X1")
        X2_arr = _validate_matrix(X2, name="X2")
        if X1_arr.shape[0] != X2_arr.shape[0]:
            raise ValueError("X1 and X2 must have the same number of rows")
        if X1_arr.shape[1] != self.beta.shape[1] or X2_arr.shape[1] != self.beta2.shape[1]:
            raise ValueError(
                f"Expected X1 with {self.beta.shape[1]} and X2 with {self.beta2.shape[1]} columns"
            )
        return self.alpha[None, :] + X1_arr @ self.beta.T + X2_arr @ self.beta2.T


@dataclass(frozen=True, kw_only=True)
class ScaledEnvelopeFit(EnvelopeFit):
    """Scaled envelope; ``gamma`` is a basis in the rescaled response
    coordinates ``diag(scales)^{-1} Y`` and ``scales[0] == 1``."""

    scales: np.ndarray | None = None


@dataclass(frozen=True, kw_only=True)
class MeanEnvelopeFit(EnvelopeFit):
    """Envelope of a multivariate mean; ``alpha`` is the fitted mean, ``beta``
    has no columns and ``ratio`` is r × 1 for the mean."""

    def predict(self, X: Any = None) -> np.ndarray:
        return np.array(self.alpha)


@dataclass(frozen=True, kw_only=True)
class HeteroscedasticEnvelopeFit(EnvelopeFit):
    """Heteroscedastic envelope over groups.

    ``alpha`` is the grand mean, column ``i`` of ``beta`` is the effect
    ``mu_i - alpha`` of group ``i`` and ``sigma``/``omega`` are the
    size-weighted averages of the group covariances and their coordinates.
    """

    group_levels: np.ndarray | None = None
    group_sizes: np.ndarray | None = None
    group_means: np.ndarray | None = None
    sigma_groups: np.ndarray | None = None
    omega_groups: np.ndarray | None = None

    def group_index(self, X: Any) -> np.ndarray:
        """Map each row of X to the index of its fitted group."""
        X_arr = _validate_matrix(X, name="X")
        levels = self.group_levels
        if X_arr.shape[1] != levels.shape[1]:
            raise ValueError(
                f"X has {X_arr.shape[1]} columns but group indicators have {levels.shape[1]}"
            )
        match = np.all(X_arr[:, None, :] == levels[None, :, :], axis=2)
        found = match.any(axis=1)
        if not np.all(found):
            bad = int(np.flatnonzero(~found)[0])
            raise ValueError(f"Row {bad} of X does not match any fitted group")
        return np.argmax(match, axis=1)

    def predict(self, X: Any) -> np.ndarray:
        return self.group_means[:, self.group_index(X)].T


@dataclass(frozen=True, kw_only=True)
class ScaledPredictorEnvelopeFit(PredictorEnvelopeFit):
    """Scaled predictor envelope; ``gamma`` is a basis in the rescaled
    predictor coordinates ``X diag(scales)^{-1}`` and ``scales[0] == 1``."""

    scales: np.ndarray | None = None
