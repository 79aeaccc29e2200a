import logging

import numpy as np
import pytest

from envlp.manifold import grassmann_minimize, orthonormalize, project_tangent
from envlp.objectives import LogDetObjective


def _rayleigh_problem(seed=0, n=6):
    rng = np.random.default_rng(seed)
    Q = orthonormalize(rng.standard_normal((n, n)))
    eig = np.arange(1.0, n + 1.0)
    A = Q @ np.diag(eig) @ Q.T
    return LogDetObjective(terms=((1.0, A),)), Q, eig, rng


def test_orthonormalize_sign_convention():
    rng = np.random.default_rng(1)
    A = rng.standard_normal((5, 3))
    Q = orthonormalize(A)
    assert np.allclose(Q.T @ Q, np.eye(3))
    assert np.all(np.diag(Q.T @ A) > 0)


def test_project_tangent_is_orthogonal_to_basis():
    rng = np.random.default_rng(2)
    X = orthonormalize(rng.standard_normal((6, 2)))
    G = rng.standard_normal((6, 2))
    assert np.allclose(X.T @ project_tangent(X, G), 0.0)


def test_minimizer_finds_smallest_eigenspace():
    obj, Q, eig, rng = _rayleigh_problem()
    k = 2
    res = grassmann_minimize(obj, rng.standard_normal((6, k)), ftol=0.0, gradtol=1e-9, max_iter=500)
    assert res.converged
    assert np.isclose(res.fun, np.sum(np.log(eig[:k])), atol=1e-8)
    P_hat = res.x @ res.x.T
    P_true = Q[:, :k] @ Q[:, :k].T
    assert np.linalg.norm(P_hat - P_true) < 1e-4
    assert np.allclose(res.x.T @ res.x, np.eye(k), atol=1e-10)


def test_trace_is_nonincreasing():
    obj, _, _, rng = _rayleigh_problem(3)
    res = grassmann_minimize(obj, rng.standard_normal((6, 3)))
    trace = np.asarray(res.trace)
    assert np.all(np.diff(trace) <= 1e-10 * (1 + np.abs(trace[1:])))


def test_iteration_cap_is_not_an_error():
    obj, _, _, rng = _rayleigh_problem(4)
    res = grassmann_minimize(obj, rng.standard_normal((6, 2)), max_iter=1, ftol=0.0, gradtol=0.0)
    assert res.n_iter == 1
    assert res.status == "maxiter"
    assert res.converged is False
    assert np.allclose(res.x.T @ res.x, np.eye(2), atol=1e-10)
    assert res.fun <= res.trace[0]
    assert res.fun == res.trace[-1]


@pytest.mark.parametrize("k", [0, 6])
def test_boundary_dimensions_are_rejected(k):
    obj, _, _, _ = _rayleigh_problem()
    with pytest.raises(ValueError):
        grassmann_minimize(obj, np.eye(6)[:, :k])


def test_verbose_promotes_trace_to_info(caplog):
    obj, _, _, rng = _rayleigh_problem(5)
    with caplog.at_level(logging.INFO, logger="envlp.manifold"):
        grassmann_minimize(obj, rng.standard_normal((6, 2)), verbose=True, max_iter=3)
    assert any("iter" in rec.getMessage() for rec in caplog.records)
