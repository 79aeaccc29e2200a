import numpy as np
import pytest

from envlp import bic_env, env, envmean, lrt_env, simulate_env
from envlp.config import OptimizerOptions
from envlp.manifold import orthonormalize
from envlp.objectives import response_objective
from envlp.start import extension_candidates, fit_envelope_basis, greedy_basis

from conftest import random_spd

RTOL = 1e-8


def _assert_nondecreasing(ll):
    ll = np.asarray(ll)
    assert np.all(np.isfinite(ll))
    for u in range(1, ll.size):
        assert ll[u] >= ll[u - 1] - RTOL * (1.0 + abs(ll[u - 1])), (u, ll)


@pytest.mark.parametrize("seed", range(20))
def test_env_loglik_nondecreasing_small_samples(seed):
    X, Y, _ = simulate_env(30, 2, 6, 2, seed=seed)
    _assert_nondecreasing([env(X, Y, u).loglik for u in range(7)])


@pytest.mark.parametrize("seed", range(20))
def test_envmean_loglik_nondecreasing_small_samples(seed):
    rng = np.random.default_rng(100 + seed)
    Y = rng.standard_normal((30, 6)) @ random_spd(rng, 6, 0.2, 5.0) + rng.standard_normal(6)
    _assert_nondecreasing([envmean(Y, u).loglik for u in range(7)])


def test_extension_never_increases_objective():
    rng = np.random.default_rng(7)
    sig_y = random_spd(rng, 5, 1.0, 8.0)
    sig_res = sig_y - 0.5 * random_spd(rng, 5, 0.1, 1.0)
    obj = response_objective(sig_res, sig_y)
    gamma = orthonormalize(rng.standard_normal((5, 2)))
    f = obj.value(gamma)
    for cand in extension_candidates(obj, gamma):
        assert cand.shape == (5, 3)
        assert obj.value(cand) <= f + 1e-10


def test_greedy_basis_is_nested_and_orthonormal():
    rng = np.random.default_rng(8)
    obj = response_objective(random_spd(rng, 5), random_spd(rng, 5, 2.0, 6.0))
    Q = greedy_basis(obj, 3)
    assert Q.shape == (5, 3)
    assert np.allclose(Q.T @ Q, np.eye(3), atol=1e-10)
    assert np.allclose(greedy_basis(obj, 2), Q[:, :2])


def test_singular_objective_returns_stalled_basis():
    obj = response_objective(np.zeros((4, 4)), np.eye(4))
    res = fit_envelope_basis(obj, np.zeros((4, 4)), np.eye(4), 2, OptimizerOptions())
    assert res.status == "stalled"
    assert res.converged is False
    assert res.x.shape == (4, 2)
    assert np.allclose(res.x.T @ res.x, np.eye(2), atol=1e-10)
    assert np.isfinite(res.fun)


def test_fewer_rows_than_responses():
    rng = np.random.default_rng(3)
    X = rng.standard_normal((3, 1))
    Y = rng.standard_normal((3, 4))
    fits = [env(X, Y, u) for u in range(5)]
    assert all(np.isfinite(f.loglik) for f in fits)
    assert all(np.all(np.isfinite(f.beta)) for f in fits)
    assert 0 <= bic_env(X, Y).u <= 4
    assert 0 <= lrt_env(X, Y, 0.05).u <= 4
