import numpy as np
import pytest

from envlp import FitKind, env, simulate_env
from envlp.metrics import gaussian_loglik, log_det_positive
from envlp.moments import compute_moments


def test_zero_dimension_has_no_regression(envelope_data):
    X, Y, _ = envelope_data
    fit = env(X, Y, 0)
    mom = compute_moments(X, Y)
    assert fit.kind is FitKind.DEGENERATE
    assert np.allclose(fit.beta, 0.0)
    assert np.allclose(fit.sigma, mom.sig_y)
    assert np.allclose(fit.alpha, Y.mean(axis=0))
    assert fit.gamma.shape == (4, 0)
    assert np.allclose(fit.ratio, 1.0)
    assert fit.optimizer is None


def test_full_dimension_is_least_squares(envelope_data):
    X, Y, _ = envelope_data
    fit = env(X, Y, 4)
    mom = compute_moments(X, Y)
    assert fit.kind is FitKind.SATURATED
    assert np.allclose(fit.beta, mom.beta_ols)
    assert np.allclose(fit.sigma, mom.sig_res)
    assert np.isclose(fit.loglik, gaussian_loglik(300, 4, log_det_positive(mom.sig_res)))
    assert np.allclose(fit.predict(X), Y.mean(axis=0) + (X - X.mean(axis=0)) @ mom.beta_ols.T)


def test_optimized_fit_structure(envelope_data):
    X, Y, _ = envelope_data
    fit = env(X, Y, 1)
    assert fit.kind is FitKind.OPTIMIZED
    assert fit.converged
    G, G0 = fit.gamma, fit.gamma0
    assert np.allclose(G.T @ G, np.eye(1))
    assert np.allclose(G.T @ G0, 0.0, atol=1e-10)
    assert np.allclose(fit.beta, G @ fit.eta)
    assert np.allclose(fit.sigma, G @ fit.omega @ G.T + G0 @ fit.omega0 @ G0.T)
    assert np.allclose(fit.sigma, fit.sigma.T)
    assert fit.n_params == 4 + 1 * 2 + 10
    # Fitted plane passes through the centroid
    assert np.allclose(fit.predict(X.mean(axis=0)[None, :])[0], Y.mean(axis=0))


def test_loglik_nondecreasing_in_dimension(envelope_data):
    X, Y, _ = envelope_data
    ll = [env(X, Y, u).loglik for u in range(5)]
    for a, b in zip(ll[:-1], ll[1:]):
        assert b >= a - 1e-6 * abs(a)


def test_ratio_is_at_least_one(envelope_data):
    X, Y, _ = envelope_data
    fit = env(X, Y, 1)
    assert fit.ratio.shape == (4, 2)
    assert np.all(fit.ratio >= 1.0 - 1e-8)


def test_recovers_envelope_and_beats_least_squares():
    X, Y, truth = simulate_env(500, 2, 5, 1, seed=3)
    fit = env(X, Y, 1)
    P_hat = fit.gamma @ fit.gamma.T
    P_true = truth["gamma"] @ truth["gamma"].T
    assert np.linalg.norm(P_hat - P_true) < 0.2
    ols = env(X, Y, 5).beta
    assert np.linalg.norm(fit.beta - truth["beta"]) < np.linalg.norm(ols - truth["beta"])


def test_fit_record_is_read_only(envelope_data):
    X, Y, _ = envelope_data
    fit = env(X, Y, 1)
    with pytest.raises(ValueError):
        fit.beta[0, 0] = 1.0


def test_summary_dict_reports_optimizer(envelope_data):
    X, Y, _ = envelope_data
    summary = env(X, Y, 1, {"max_iter": 200}).summary_dict()
    assert summary["model"] == "env"
    assert summary["kind"] == "optimized"
    assert summary["nobs"] == 300
    assert "status" in summary


@pytest.mark.parametrize("u", [-1, 5, 1.5, True, "1"])
def test_invalid_dimension_raises(envelope_data, u):
    X, Y, _ = envelope_data
    with pytest.raises(ValueError):
        env(X, Y, u)


def test_row_mismatch_raises():
    rng = np.random.default_rng(0)
    with pytest.raises(ValueError, match="rows"):
        env(rng.standard_normal((10, 2)), rng.standard_normal((9, 3)), 1)


def test_unknown_option_raises(envelope_data):
    X, Y, _ = envelope_data
    with pytest.raises(ValueError, match="Unknown"):
        env(X, Y, 1, {"maxiter": 5})


def test_predict_checks_columns(envelope_data):
    X, Y, _ = envelope_data
    fit = env(X, Y, 1)
    with pytest.raises(ValueError):
        fit.predict(np.ones((3, 5)))
