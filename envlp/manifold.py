"""Conjugate-gradient minimisation over the Grassmann manifold.

Points are represented by n × k matrices with orthonormal columns; only their
column space matters. The caller supplies ``objective(X) -> (F, G)`` where
``G`` is the Euclidean gradient, and ``F`` must be invariant under ``X -> X Q``.

Each iteration:
  - projects ``G`` onto the horizontal space ``(I - X X') G``,
  - forms a Polak-Ribière+ direction, transporting the previous direction
    and gradient by re-projection at the new point,
  - backtracks along the QR retraction ``qf(X + t D)`` until the Armijo
    condition holds; trial points whose evaluation is singular or
    non-finite are rejected like any other failed step,
  - restarts from steepest descent when the CG direction does not descend.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

import numpy as np

from .config import (
    ARMIJO_C1,
    BACKTRACK_FACTOR,
    FTOL,
    GRADTOL,
    MAX_BACKTRACKS,
    MAX_ITER,
)
from .objectives import DegenerateSubspaceError

logger = logging.getLogger(__name__)

Objective = Callable[[np.ndarray], tuple[float, np.ndarray]]


@dataclass
class GrassmannResult:
    """Outcome of :func:`grassmann_minimize`.

    ``status`` is ``"gradtol"`` or ``"ftol"`` when a tolerance was met,
    ``"maxiter"`` when the iteration cap was hit and ``"stalled"`` when no
    step along steepest descent decreased the objective. In the last two
    cases ``x`` is still the best iterate found.
    """

    x: np.ndarray
    fun: float
    grad_norm: float
    n_iter: int
    converged: bool
    status: str
    n_rejected: int = 0
    trace: list[float] = field(default_factory=list)


def orthonormalize(A: np.ndarray) -> np.ndarray:
    """Q factor of ``A`` with a non-negative diagonal in R."""
    Q, R = np.linalg.qr(A)
    signs = np.sign(np.diag(R))
    signs[signs == 0] = 1.0
    return Q * signs[None, :]


def project_tangent(X: np.ndarray, G: np.ndarray) -> np.ndarray:
    """Horizontal projection ``(I - X X') G`` at an orthonormal ``X``."""
    return G - X @ (X.T @ G)


def retract(X: np.ndarray, D: np.ndarray, t: float) -> np.ndarray:
    return orthonormalize(X + t * D)


def _inner(A: np.ndarray, B: np.ndarray) -> float:
    return float(np.sum(A * B))


class _Evaluator:
    """Wraps the objective, turning numerical failures into rejections."""

    def __init__(self, objective: Objective) -> None:
        self._objective = objective
        self.n_rejected = 0

    def __call__(self, X: np.ndarray) -> tuple[float, np.ndarray] | None:
        try:
            with np.errstate(over="raise", invalid="raise", divide="raise"):
                f, G = self._objective(X)
        except (np.linalg.LinAlgError, FloatingPointError):
            self.n_rejected += 1
            return None
        f = float(f)
        if not np.isfinite(f) or not np.all(np.isfinite(G)):
            self.n_rejected += 1
            return None
        return f, np.asarray(G, dtype=float)


def _armijo_search(
    evaluate: _Evaluator,
    X: np.ndarray,
    f: float,
    D: np.ndarray,
    slope: float,
    t0: float,
):
    """Backtrack from ``t0``; return ``(t, X_new, f_new, G_new)`` or None."""
    # Round-off level below which two objective values are indistinguishable.
    noise = 8.0 * np.finfo(float).eps * max(1.0, abs(f))
    t = t0
    for _ in range(MAX_BACKTRACKS):
        X_try = retract(X, D, t)
        out = evaluate(X_try)
        if out is not None and out[0] <= f + ARMIJO_C1 * t * slope + noise:
            return t, X_try, out[0], out[1]
        t *= BACKTRACK_FACTOR
    return None


def grassmann_minimize(
    objective: Objective,
    x0: np.ndarray,
    *,
    max_iter: int = MAX_ITER,
    ftol: float = FTOL,
    gradtol: float = GRADTOL,
    verbose: bool = False,
) -> GrassmannResult:
    """
    Minimise a subspace-invariant objective over k-dimensional subspaces of R^n.

    Parameters
    ----------
    objective : callable
        ``objective(X) -> (F, G)`` for an n × k orthonormal ``X``.
    x0 : (n × k) array
        Starting basis of full column rank, 0 < k < n.
    max_iter : int
        Iteration cap; reaching it is not an error.
    ftol : float
        Stop when one step decreases F by less than ``ftol * (1 + |F|)``.
    gradtol : float
        Stop when the Riemannian gradient norm is at most ``gradtol``.
    verbose : bool
        Log the iteration trace at INFO instead of DEBUG.

    Returns
    -------
    GrassmannResult

    Raises
    ------
    ValueError
        If ``x0`` does not have between 1 and n - 1 columns.
    DegenerateSubspaceError
        If the objective cannot be evaluated at the starting basis.
    """
    log = logger.info if verbose else logger.debug

    X = np.asarray(x0, dtype=float)
    if X.ndim != 2 or not (0 < X.shape[1] < X.shape[0]):
        raise ValueError(
            f"x0 must be an n × k matrix with 0 < k < n, got shape {X.shape}"
        )
    X = orthonormalize(X)

    evaluate = _Evaluator(objective)
    start = evaluate(X)
    if start is None:
        raise DegenerateSubspaceError(
            "Objective is singular or non-finite at the starting basis"
        )
    f, G = start
    g = project_tangent(X, G)
    gg = _inner(g, g)
    D = -g
    t_prev = 1.0 / max(1.0, np.sqrt(gg))
    trace = [f]
    status = "maxiter"
    n_iter = 0

    for it in range(1, max_iter + 1):
        if np.sqrt(gg) <= gradtol:
            status = "gradtol"
            break

        slope = _inner(g, D)
        steepest = slope >= 0.0
        if steepest:
            D = -g
            slope = -gg
        d_norm = np.sqrt(_inner(D, D))
        t0 = min(2.0 * t_prev, 0.5 * np.pi / d_norm)

        step = _armijo_search(evaluate, X, f, D, slope, t0)
        if step is None and not steepest:
            D = -g
            slope = -gg
            t0 = min(2.0 * t_prev, 0.5 * np.pi / np.sqrt(gg))
            step = _armijo_search(evaluate, X, f, D, slope, t0)
        if step is None:
            status = "stalled"
            break

        t, X_new, f_new, G_new = step
        n_iter = it
        g_new = project_tangent(X_new, G_new)

        # Polak-Ribière+ with transport by projection onto the new tangent space
        g_old = project_tangent(X_new, g)
        D_old = project_tangent(X_new, D)
        beta = max(0.0, _inner(g_new, g_new - g_old) / gg) if gg > 0 else 0.0
        D = -g_new + beta * D_old

        decrease = f - f_new
        X, f, g = X_new, f_new, g_new
        gg = _inner(g, g)
        t_prev = t
        trace.append(f)
        log("iter %4d  F=%.12g  |grad|=%.3e  step=%.3e", it, f, np.sqrt(gg), t)

        if decrease <= ftol * (1.0 + abs(f)):
            status = "ftol"
            break

    grad_norm = float(np.sqrt(gg))
    if status == "maxiter" and grad_norm <= gradtol:
        status = "gradtol"
    converged = status in ("gradtol", "ftol")
    if not converged:
        log(
            "Grassmann optimisation stopped without converging (%s) after %d iterations; "
            "returning the best iterate, F=%.12g |grad|=%.3e",
            status,
            n_iter,
            f,
            grad_norm,
        )

    return GrassmannResult(
        x=X,
        fun=f,
        grad_norm=grad_norm,
        n_iter=n_iter,
        converged=converged,
        status=status,
        n_rejected=evaluate.n_rejected,
        trace=trace,
    )
