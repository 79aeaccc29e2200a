"""Envelope dimension selection.

Three drivers, each parameterised by a fit function so that they serve every
envelope variant:

  - :func:`select_bic`: minimise ``-2 l + log(n) n_params`` over u.
  - :func:`select_lrt`: sequential likelihood-ratio tests against the full
    model, from u = 0 upward.
  - :func:`select_mfoldcv`: m-fold cross-validated prediction error,
    optionally averaged over seeded permutations of the rows.

Fits are independent of each other; the drivers never catch fit errors.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any

import numpy as np
from scipy.stats import chi2

from ._validation import (
    _check_row_compatibility,
    _validate_alpha,
    _validate_folds,
    _validate_matrix,
    _validate_permutations,
)
from .config import CV_SEED, LRT_ALPHA, OptimizerOptions, make_options
from .env import env
from .envmean import envmean
from .henv import henv
from .metrics import rmse_per_row
from .penv import penv
from .results import EnvelopeFit
from .senv import senv
from .sxenv import sxenv
from .xenv import xenv

logger = logging.getLogger(__name__)

FitAt = Callable[[int], EnvelopeFit]


@dataclass(frozen=True)
class SelectionResult:
    """Selected dimension and the per-dimension criteria behind it.

    Attributes
    ----------
    u : int
        Selected dimension.
    criterion : str
        ``"bic"``, ``"lrt"`` or ``"cv"``.
    dims : np.ndarray
        Dimensions that were evaluated.
    scores : np.ndarray
        BIC values, LRT p-values (``nan`` for the full model) or mean
        cross-validation errors, aligned with ``dims``.
    loglik, n_params : np.ndarray or None
        Per-dimension fit summaries (BIC and LRT only).
    statistic, df : np.ndarray or None
        LRT statistics and degrees of freedom.
    pre_err : np.ndarray or None
        Cross-validation errors; 1D over ``dims``, or permutations × dims
        when permutations were requested.
    """

    u: int
    criterion: str
    dims: np.ndarray
    scores: np.ndarray
    loglik: np.ndarray | None = None
    n_params: np.ndarray | None = None
    statistic: np.ndarray | None = None
    df: np.ndarray | None = None
    pre_err: np.ndarray | None = None

    def table(self) -> list[dict[str, Any]]:
        rows = []
        for j, d in enumerate(self.dims):
            row: dict[str, Any] = {"u": int(d), self.criterion: float(self.scores[j])}
            if self.loglik is not None:
                row["loglik"] = float(self.loglik[j])
            if self.statistic is not None:
                row["statistic"] = float(self.statistic[j])
                row["df"] = int(self.df[j])
            rows.append(row)
        return rows


def _progress(verbose: bool):
    return logger.info if verbose else logger.debug


def select_bic(fit_at: FitAt, n: int, max_dim: int, *, verbose: bool = False) -> SelectionResult:
    """Fit every u in [0, max_dim] and return the BIC minimiser (ties to the smaller u)."""
    log = _progress(verbose)
    dims = np.arange(max_dim + 1)
    loglik = np.empty(dims.size)
    n_params = np.empty(dims.size, dtype=int)
    for j, u in enumerate(dims):
        log("Current dimension %d", u)
        fit = fit_at(int(u))
        loglik[j] = fit.loglik
        n_params[j] = fit.n_params
    ic = -2.0 * loglik + np.log(n) * n_params
    return SelectionResult(
        u=int(dims[np.argmin(ic)]),
        criterion="bic",
        dims=dims,
        scores=ic,
        loglik=loglik,
        n_params=n_params,
    )


def select_lrt(fit_at: FitAt, max_dim: int, alpha: float = LRT_ALPHA, *, verbose: bool = False) -> SelectionResult:
    """
    Test u = 0, 1, ... against u = max_dim with statistic ``-2 (l(u) - l(max))``
    on ``n_params(max) - n_params(u)`` degrees of freedom; select the first u
    whose chi-squared p-value exceeds ``alpha``, or ``max_dim`` if none does.
    """
    alpha = _validate_alpha(alpha)
    log = _progress(verbose)
    full = fit_at(max_dim)
    loglik, n_params, stat, df, pv = [], [], [], [], []
    selected = max_dim
    for u in range(max_dim):
        log("Current dimension %d", u)
        fit = fit_at(u)
        t = max(0.0, -2.0 * (fit.loglik - full.loglik))
        d = full.n_params - fit.n_params
        loglik.append(fit.loglik)
        n_params.append(fit.n_params)
        stat.append(t)
        df.append(d)
        pv.append(float(chi2.sf(t, d)))
        if pv[-1] > alpha:
            selected = u
            break
    loglik.append(full.loglik)
    n_params.append(full.n_params)
    stat.append(0.0)
    df.append(0)
    pv.append(np.nan)
    dims = np.array(list(range(len(loglik) - 1)) + [max_dim])
    return SelectionResult(
        u=selected,
        criterion="lrt",
        dims=dims,
        scores=np.array(pv),
        loglik=np.array(loglik),
        n_params=np.array(n_params, dtype=int),
        statistic=np.array(stat),
        df=np.array(df, dtype=int),
    )


def _take_rows(X: Any, rows: np.ndarray) -> Any:
    if X is None:
        return None
    if isinstance(X, tuple):
        return tuple(block[rows] for block in X)
    return X[rows]


def select_mfoldcv(
    fit_on: Callable[[Any, np.ndarray, int], EnvelopeFit],
    predict_with: Callable[[EnvelopeFit, Any], np.ndarray],
    X: Any,
    Y: np.ndarray,
    m: int,
    max_dim: int,
    *,
    perm: int | None = None,
    seed: int = CV_SEED,
    verbose: bool = False,
) -> SelectionResult:
    """
    m-fold cross validation with the identity inner product.

    Fold ``i`` holds out rows ``floor(i n / m)`` to ``floor((i + 1) n / m) - 1``
    of the (possibly permuted) data. For each u the squared prediction errors
    of all folds are summed and reported as ``sqrt(SSE / n)``. With ``perm``,
    permutation ``w = 1..perm`` reorders the original rows with
    ``numpy.random.default_rng(seed + w)`` and u minimises the average error
    across permutations.

    Dimensions run from 0 to ``min(floor((m - 1) n / m) - 1, max_dim)`` so
    every training fold has more rows than u.
    """
    n = Y.shape[0]
    m = _validate_folds(m, n)
    perm = _validate_permutations(perm)
    log = _progress(verbose)

    top = min((m - 1) * n // m - 1, max_dim)
    if top < 0:
        raise ValueError(f"Too few observations (n={n}) for {m}-fold cross validation")
    dims = np.arange(top + 1)

    if perm is None:
        orders = [np.arange(n)]
    else:
        orders = [np.random.default_rng(seed + w).permutation(n) for w in range(1, perm + 1)]

    pre_err = np.zeros((len(orders), dims.size))
    for w, order in enumerate(orders):
        Xw, Yw = _take_rows(X, order), Y[order]
        for j, u in enumerate(dims):
            log("Current dimension %d", u)
            resid = []
            for i in range(m):
                test = np.zeros(n, dtype=bool)
                test[i * n // m : (i + 1) * n // m] = True
                fit = fit_on(_take_rows(Xw, ~test), Yw[~test], int(u))
                resid.append(Yw[test] - predict_with(fit, _take_rows(Xw, test)))
            pre_err[w, j] = rmse_per_row(np.vstack(resid))

    mean_err = pre_err.mean(axis=0)
    return SelectionResult(
        u=int(dims[np.argmin(mean_err)]),
        criterion="cv",
        dims=dims,
        scores=mean_err,
        pre_err=pre_err[0] if perm is None else pre_err,
    )


# ----------------------------------------------------------------------
# Model registry and entry points
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class _ModelSpec:
    fit: Callable[[Any, np.ndarray, int, OptimizerOptions], EnvelopeFit]
    max_dim: Callable[[Any, np.ndarray], int]
    predict: Callable[[EnvelopeFit, Any], np.ndarray]


MODELS: dict[str, _ModelSpec] = {
    "env": _ModelSpec(
        fit=lambda X, Y, u, o: env(X, Y, u, o),
        max_dim=lambda X, Y: Y.shape[1],
        predict=lambda fit, X: fit.predict(X),
    ),
    "envmean": _ModelSpec(
        fit=lambda X, Y, u, o: envmean(Y, u, o),
        max_dim=lambda X, Y: Y.shape[1],
        predict=lambda fit, X: fit.predict(),
    ),
    "xenv": _ModelSpec(
        fit=lambda X, Y, u, o: xenv(X, Y, u, o),
        max_dim=lambda X, Y: X.shape[1],
        predict=lambda fit, X: fit.predict(X),
    ),
    "penv": _ModelSpec(
        fit=lambda X, Y, u, o: penv(X[0], X[1], Y, u, o),
        max_dim=lambda X, Y: Y.shape[1],
        predict=lambda fit, X: fit.predict(*X),
    ),
    "senv": _ModelSpec(
        fit=lambda X, Y, u, o: senv(X, Y, u, o),
        max_dim=lambda X, Y: Y.shape[1],
        predict=lambda fit, X: fit.predict(X),
    ),
    "sxenv": _ModelSpec(
        fit=lambda X, Y, u, o: sxenv(X, Y, u, o),
        max_dim=lambda X, Y: X.shape[1],
        predict=lambda fit, X: fit.predict(X),
    ),
    "henv": _ModelSpec(
        fit=lambda X, Y, u, o: henv(X, Y, u, o),
        max_dim=lambda X, Y: Y.shape[1],
        predict=lambda fit, X: fit.predict(X),
    ),
}


def _validate_model_data(model: str, X: Any, Y: Any) -> tuple[Any, np.ndarray]:
    if model not in MODELS:
        raise ValueError(f"Unknown model {model!r}; expected one of {sorted(MODELS)}")
    Y_arr = _validate_matrix(Y, name="Y")
    if model == "envmean":
        return None, Y_arr
    if model == "penv":
        if not isinstance(X, (tuple, list)) or len(X) != 2:
            raise ValueError("penv expects X as a pair (X1, X2)")
        X1 = _validate_matrix(X[0], name="X1")
        X2 = _validate_matrix(X[1], name="X2")
        _check_row_compatibility(("Y", Y_arr), ("X1", X1), ("X2", X2))
        return (X1, X2), Y_arr
    X_arr = _validate_matrix(X, name="X")
    _check_row_compatibility(("Y", Y_arr), ("X", X_arr))
    return X_arr, Y_arr


def select_dimension(
    model: str,
    X: Any,
    Y: Any,
    *,
    criterion: str = "bic",
    alpha: float = LRT_ALPHA,
    m: int = 5,
    perm: int | None = None,
    seed: int = CV_SEED,
    options: OptimizerOptions | Mapping[str, Any] | None = None,
) -> SelectionResult:
    """
    Select the envelope dimension of ``model`` by ``criterion``.

    Parameters
    ----------
    model : str
        One of ``env``, ``envmean``, ``xenv``, ``penv``, ``senv``, ``sxenv``,
        ``henv``.
    X : array-like, pair of array-likes or None
        Predictors; ``(X1, X2)`` for ``penv``, ignored for ``envmean``.
    Y : (n × r) array-like
    criterion : {"bic", "lrt", "cv"}
    alpha : float
        Significance level for ``"lrt"``.
    m, perm, seed
        Cross-validation settings for ``"cv"``.
    options : OptimizerOptions or mapping, optional
        ``verbose`` reports selection progress; the inner fits run quietly.
    """
    X, Y = _validate_model_data(model, X, Y)
    entry = MODELS[model]
    opts = make_options(options)
    inner = replace(opts, verbose=False)
    max_dim = entry.max_dim(X, Y)

    def fit_at(u: int) -> EnvelopeFit:
        return entry.fit(X, Y, u, inner)

    if criterion == "bic":
        return select_bic(fit_at, Y.shape[0], max_dim, verbose=opts.verbose)
    if criterion == "lrt":
        return select_lrt(fit_at, max_dim, alpha, verbose=opts.verbose)
    if criterion == "cv":
        return select_mfoldcv(
            lambda Xtr, Ytr, u: entry.fit(Xtr, Ytr, u, inner),
            entry.predict,
            X,
            Y,
            m,
            max_dim,
            perm=perm,
            seed=seed,
            verbose=opts.verbose,
        )
    raise ValueError(f"criterion must be 'bic', 'lrt' or 'cv', got {criterion!r}")


def bic_env(X, Y, options=None) -> SelectionResult:
    return select_dimension("env", X, Y, criterion="bic", options=options)


def lrt_env(X, Y, alpha, options=None) -> SelectionResult:
    return select_dimension("env", X, Y, criterion="lrt", alpha=alpha, options=options)


def mfoldcv_env(X, Y, m, options=None, *, perm=None, seed=CV_SEED) -> SelectionResult:
    return select_dimension("env", X, Y, criterion="cv", m=m, perm=perm, seed=seed, options=options)


def bic_xenv(X, Y, options=None) -> SelectionResult:
    return select_dimension("xenv", X, Y, criterion="bic", options=options)


def lrt_penv(X1, X2, Y, alpha, options=None) -> SelectionResult:
    return select_dimension("penv", (X1, X2), Y, criterion="lrt", alpha=alpha, options=options)


def bic_senv(X, Y, options=None) -> SelectionResult:
    return select_dimension("senv", X, Y, criterion="bic", options=options)


def mfoldcv_henv(X, Y, m, options=None, *, perm=None, seed=CV_SEED) -> SelectionResult:
    return select_dimension("henv", X, Y, criterion="cv", m=m, perm=perm, seed=seed, options=options)


def mfoldcv_sxenv(X, Y, m, options=None, *, perm=None, seed=CV_SEED) -> SelectionResult:
    return select_dimension("sxenv", X, Y, criterion="cv", m=m, perm=perm, seed=seed, options=options)
