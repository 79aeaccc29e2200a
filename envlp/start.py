"""Starting bases and the nested basis path for the manifold optimizer.

The basis of dimension u is fitted after those of dimensions 1, ..., u - 1.
Besides spectral candidates, each step is offered the previous optimum
extended by one eigenvector ``w`` of ``Γ0' C Γ0``, where ``C`` is the inverse
of the last moment matrix of the objective (the immaterial covariance: Σ_Y,
the second moment, Σ_X). Whenever the remaining weighted moments satisfy
``Σ_k w_k A_k <= C`` with ``Σ_k w_k = 1``, which holds for every envelope
variant, that extension does not increase the objective. The optimizer never
increases it either, so the fitted objective is non-increasing in u and the
maximised log-likelihood non-decreasing.
"""

from __future__ import annotations

import logging

import numpy as np
import scipy.linalg

from .config import OptimizerOptions
from .manifold import GrassmannResult, grassmann_minimize, orthonormalize
from .objectives import DegenerateSubspaceError, LogDetObjective
from .reconstruct import orthogonal_complement

logger = logging.getLogger(__name__)

# Candidates closer than this to the current span are skipped by the greedy search.
_SPAN_TOL = 1e-8


def _top_by_signal(vecs: np.ndarray, U: np.ndarray, u: int) -> np.ndarray:
    crit = np.sum(vecs * (U @ vecs), axis=0)
    order = np.argsort(-crit, kind="stable")
    return vecs[:, order[:u]]


def _sym(A: np.ndarray) -> np.ndarray:
    return (A + A.T) / 2.0


def candidate_bases(M: np.ndarray, U: np.ndarray, u: int) -> list[np.ndarray]:
    """
    Candidate r × u bases built from eigenvectors of ``M`` and ``M + U`` (the
    ones carrying most of the signal ``v' U v``) and from the leading
    generalized eigenvectors of ``U v = λ M v``.

    ``M`` is the immaterial-side covariance (e.g. the OLS residual covariance)
    and ``U`` the positive semi-definite signal part.
    """
    out = []
    for S in (M, M + U):
        _, vecs = np.linalg.eigh(_sym(S))
        out.append(_top_by_signal(vecs, U, u))
    try:
        _, gvecs = scipy.linalg.eigh(_sym(U), _sym(M))
    except (np.linalg.LinAlgError, ValueError):
        pass
    else:
        out.append(gvecs[:, ::-1][:, :u])
    return out


def _safe_value(objective: LogDetObjective, R: np.ndarray) -> float:
    try:
        f = objective.value(R)
    except np.linalg.LinAlgError:
        return np.inf
    return f if np.isfinite(f) else np.inf


def greedy_basis(objective: LogDetObjective, u: int) -> np.ndarray:
    """
    Nested basis built one column at a time from the eigenvectors of every
    moment matrix of the objective, each time adding the vector that gives
    the smallest objective. May return fewer than ``u`` columns when no
    remaining vector keeps the objective finite.
    """
    pool = np.hstack([np.linalg.eigh(_sym(A))[1] for _, A in objective.terms])
    Q = np.zeros((pool.shape[0], 0))
    for _ in range(u):
        best_f, best = np.inf, None
        for j in range(pool.shape[1]):
            w = pool[:, j] - Q @ (Q.T @ pool[:, j])
            norm = np.linalg.norm(w)
            if norm < _SPAN_TOL:
                continue
            trial = np.column_stack([Q, w / norm])
            f = _safe_value(objective, trial)
            if f < best_f:
                best_f, best = f, trial
        if best is None:
            break
        Q = best
    return Q


def extension_candidates(objective: LogDetObjective, gamma: np.ndarray) -> list[np.ndarray]:
    """
    ``[Γ, Γ0 w]`` for every eigenvector ``w`` of ``Γ0' C Γ0``, with ``C`` the
    pseudo-inverse of the last moment matrix of the objective.
    """
    C = np.linalg.pinv(objective.terms[-1][1], hermitian=True)
    gamma0 = orthogonal_complement(gamma)
    if gamma0.shape[1] == 0:
        return []
    _, W = np.linalg.eigh(_sym(gamma0.T @ C @ gamma0))
    return [np.column_stack([gamma, gamma0 @ W[:, j]]) for j in range(W.shape[1])]


def _degenerate_result(objective: LogDetObjective, candidates: list[np.ndarray]) -> GrassmannResult:
    scored = []
    for C in candidates:
        f = objective.pseudo_value(C)
        scored.append((f if np.isfinite(f) else np.inf, C))
    f, x = min(scored, key=lambda item: item[0])
    logger.warning(
        "Objective is singular at every starting basis of dimension %d; "
        "returning the best candidate by pseudo-determinant (F=%.6g)",
        x.shape[1],
        f,
    )
    return GrassmannResult(
        x=x,
        fun=float(f),
        grad_norm=float("nan"),
        n_iter=0,
        converged=False,
        status="stalled",
        trace=[float(f)],
    )


def fit_envelope_basis(
    objective: LogDetObjective,
    M: np.ndarray,
    U: np.ndarray,
    u: int,
    options: OptimizerOptions,
) -> GrassmannResult:
    """
    Minimise ``objective`` over u-dimensional subspaces, 0 < u < r.

    Dimensions 1, ..., u are fitted in turn. Each is started from the best of
    the spectral candidates of ``(M, U)``, the greedy basis and the extensions
    of the previous optimum. If the objective is singular at every candidate
    (rank-deficient moments, typically n <= r), the candidate with the
    smallest pseudo-determinant objective is returned with
    ``status="stalled"`` and ``converged=False``.
    """
    gamma = np.zeros((M.shape[0], 0))
    greedy = greedy_basis(objective, u)
    for k in range(1, u + 1):
        candidates = [orthonormalize(C) for C in candidate_bases(M, U, k)]
        if greedy.shape[1] >= k:
            candidates.append(greedy[:, :k])
        candidates.extend(orthonormalize(C) for C in extension_candidates(objective, gamma))

        values = [_safe_value(objective, C) for C in candidates]
        best = int(np.argmin(values))
        result = None
        if np.isfinite(values[best]):
            try:
                result = grassmann_minimize(
                    objective,
                    candidates[best],
                    max_iter=options.max_iter,
                    ftol=options.ftol,
                    gradtol=options.gradtol,
                    verbose=options.verbose and k == u,
                )
            except DegenerateSubspaceError:
                logger.debug("Starting basis of dimension %d rejected by the optimizer", k)
        if result is None:
            result = _degenerate_result(objective, candidates)
        gamma = result.x
    return result
