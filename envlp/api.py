"""Scikit-learn style estimator for envelope regression."""

from __future__ import annotations

from typing import Any

import numpy as np

from ._validation import _check_row_compatibility, _validate_dimension, _validate_matrix
from .config import CV_SEED, FTOL, GRADTOL, LRT_ALPHA, MAX_ITER, OptimizerOptions
from .env import env
from .metrics import log_det_positive
from .results import EnvelopeFit
from .selection import SelectionResult, select_dimension
from .senv import senv
from .sxenv import sxenv
from .xenv import xenv

_FITTERS = {"env": env, "senv": senv, "xenv": xenv, "sxenv": sxenv}
_PREDICTOR_MODELS = ("xenv", "sxenv")
_CRITERIA = ("bic", "lrt", "cv")


def _column_names(obj: Any, size: int, prefix: str) -> list[str]:
    if hasattr(obj, "columns"):
        return [str(c) for c in obj.columns]
    return [f"{prefix}{i}" for i in range(size)]


class EnvelopeRegression:
    """Multivariate linear regression estimated through an envelope.

    Parameters
    ----------
    u : int or {"bic", "lrt", "cv"}
        Envelope dimension, or the criterion used to choose it at fit time.
    model : {"env", "senv", "xenv", "sxenv"}
        Response, scaled response, predictor or scaled predictor envelope.
    alpha : float
        Significance level when ``u="lrt"``.
    cv_folds, cv_perm, cv_seed
        Cross-validation settings when ``u="cv"``.
    max_iter, ftol, gradtol, verbose
        Manifold optimizer controls.
    """

    def __init__(
        self,
        *,
        u: int | str = "bic",
        model: str = "env",
        alpha: float = LRT_ALPHA,
        cv_folds: int = 5,
        cv_perm: int | None = None,
        cv_seed: int = CV_SEED,
        max_iter: int = MAX_ITER,
        ftol: float = FTOL,
        gradtol: float = GRADTOL,
        verbose: bool = False,
    ) -> None:
        self.u = u
        self.model = model
        self.alpha = alpha
        self.cv_folds = cv_folds
        self.cv_perm = cv_perm
        self.cv_seed = cv_seed
        self.max_iter = max_iter
        self.ftol = ftol
        self.gradtol = gradtol
        self.verbose = verbose

    # ------------------------------------------------------------------
    # Scikit-learn estimator protocol
    # ------------------------------------------------------------------
    def get_params(self, deep: bool = True) -> dict[str, Any]:  # noqa: D401 - sklearn API
        return {
            "u": self.u,
            "model": self.model,
            "alpha": self.alpha,
            "cv_folds": self.cv_folds,
            "cv_perm": self.cv_perm,
            "cv_seed": self.cv_seed,
            "max_iter": self.max_iter,
            "ftol": self.ftol,
            "gradtol": self.gradtol,
            "verbose": self.verbose,
        }

    def set_params(self, **params: Any) -> EnvelopeRegression:  # noqa: D401 - sklearn API
        for key, value in params.items():
            if not hasattr(self, key):
                raise ValueError(f"Unknown parameter {key!r}")
            setattr(self, key, value)
        return self

    # ------------------------------------------------------------------
    # Fitting / inference
    # ------------------------------------------------------------------
    def _options(self) -> OptimizerOptions:
        return OptimizerOptions(
            max_iter=self.max_iter,
            ftol=self.ftol,
            gradtol=self.gradtol,
            verbose=self.verbose,
        )

    def fit(self, X: Any, Y: Any) -> EnvelopeRegression:
        if self.model not in _FITTERS:
            raise ValueError(f"model must be one of {sorted(_FITTERS)}, got {self.model!r}")
        X_arr = _validate_matrix(X, name="X")
        Y_arr = _validate_matrix(Y, name="Y")
        _check_row_compatibility(("Y", Y_arr), ("X", X_arr))
        opts = self._options()

        selection: SelectionResult | None = None
        if isinstance(self.u, str):
            if self.u not in _CRITERIA:
                raise ValueError(f"u must be an integer or one of {_CRITERIA}, got {self.u!r}")
            selection = select_dimension(
                self.model,
                X_arr,
                Y_arr,
                criterion=self.u,
                alpha=self.alpha,
                m=self.cv_folds,
                perm=self.cv_perm,
                seed=self.cv_seed,
                options=opts,
            )
            u = selection.u
        else:
            if self.model in _PREDICTOR_MODELS:
                u = _validate_dimension(self.u, X_arr.shape[1], side="p")
            else:
                u = _validate_dimension(self.u, Y_arr.shape[1])

        fit: EnvelopeFit = _FITTERS[self.model](X_arr, Y_arr, u, opts)

        self.fit_ = fit
        self.selection_ = selection
        self.u_ = u
        self.coef_ = fit.beta
        self.intercept_ = fit.alpha
        self.covariance_ = fit.sigma
        self.n_features_in_ = X_arr.shape[1]
        self.n_targets_ = Y_arr.shape[1]
        self.n_obs_ = X_arr.shape[0]
        self.feature_names_in_ = _column_names(X, X_arr.shape[1], "x")
        self.target_names_ = _column_names(Y, Y_arr.shape[1], "y")
        self.is_fitted_ = True
        return self

    def _ensure_fitted(self) -> None:
        if not getattr(self, "is_fitted_", False):
            raise RuntimeError("The estimator has not been fitted yet")

    def predict(self, X: Any) -> np.ndarray:
        self._ensure_fitted()
        return self.fit_.predict(X)

    def score(self, X: Any, Y: Any) -> float:
        """Mean Gaussian log-likelihood per row under the fitted model."""
        self._ensure_fitted()
        Y_arr = _validate_matrix(Y, name="Y")
        if Y_arr.shape[1] != self.n_targets_:
            raise ValueError("Y has incompatible number of targets")
        preds = self.predict(X)
        if preds.shape != Y_arr.shape:
            raise ValueError("Predictions and Y have incompatible shapes")
        resid = Y_arr - preds
        sigma = np.asarray(self.covariance_)
        quad = np.sum(resid * np.linalg.solve(sigma, resid.T).T, axis=1)
        r = Y_arr.shape[1]
        return float(-0.5 * (r * np.log(2.0 * np.pi) + log_det_positive(sigma) + np.mean(quad)))

    def summary_dict(self) -> dict[str, Any]:
        self._ensure_fitted()
        out = self.fit_.summary_dict()
        if self.selection_ is not None:
            out["criterion"] = self.selection_.criterion
        return out
