import numpy as np
import pytest

from envlp import FitKind, env, envmean, henv, penv, senv, simulate_groups, sxenv, xenv
from envlp.metrics import gaussian_loglik, log_det_positive
from envlp.moments import compute_moments, covariance, fit_ols


# ----------------------------------------------------------------------
# Envelope of the mean
# ----------------------------------------------------------------------
def _mean_data(seed=0, n=200, r=4):
    rng = np.random.default_rng(seed)
    direction = np.array([1.0, 1.0, 0.0, 0.0]) / np.sqrt(2.0)
    scales = np.array([1.0, 1.0, 5.0, 5.0])
    return 2.0 * direction + rng.standard_normal((n, r)) * scales


def test_envmean_boundaries():
    Y = _mean_data()
    full = envmean(Y, 4)
    assert full.kind is FitKind.SATURATED
    assert np.allclose(full.alpha, Y.mean(axis=0))
    assert np.allclose(full.predict(), Y.mean(axis=0))
    assert np.isclose(full.loglik, gaussian_loglik(200, 4, log_det_positive(covariance(Y))))

    zero = envmean(Y, 0)
    assert np.allclose(zero.alpha, 0.0)
    second = Y.T @ Y / 200
    assert np.allclose(zero.sigma, second)


def test_envmean_optimized_record():
    Y = _mean_data(1)
    fit = envmean(Y, 1)
    assert fit.kind is FitKind.OPTIMIZED
    assert fit.beta.shape == (4, 0)
    assert fit.ratio.shape == (4, 1)
    assert fit.n_params == 1 + 10
    assert np.allclose(fit.alpha, fit.gamma @ fit.gamma.T @ Y.mean(axis=0))
    assert fit.loglik >= envmean(Y, 0).loglik - 1e-8
    assert envmean(Y, 4).loglik >= fit.loglik - 1e-6 * abs(fit.loglik)


# ----------------------------------------------------------------------
# Predictor envelope
# ----------------------------------------------------------------------
def _xenv_data(seed=0, n=250, p=4, r=2):
    rng = np.random.default_rng(seed)
    Q, _ = np.linalg.qr(rng.standard_normal((p, p)))
    X = rng.standard_normal((n, p)) @ np.diag([1.0, 4.0, 4.0, 4.0]) @ Q.T
    beta = rng.standard_normal((r, 1)) @ Q[:, :1].T
    Y = X @ beta.T + rng.standard_normal((n, r))
    return X, Y


def test_xenv_boundaries():
    X, Y = _xenv_data()
    mom = compute_moments(X, Y)
    full = xenv(X, Y, 4)
    assert np.allclose(full.beta, mom.beta_ols)
    assert np.allclose(full.sigma, mom.sig_res)
    zero = xenv(X, Y, 0)
    assert np.allclose(zero.beta, 0.0)
    assert np.allclose(zero.sigma_x, mom.sig_x)


def test_xenv_optimized_record():
    X, Y = _xenv_data(1)
    fit = xenv(X, Y, 1)
    assert fit.beta.shape == (2, 4)
    assert fit.gamma.shape == (4, 1)
    assert fit.sigma_x.shape == (4, 4)
    assert fit.ratio.shape == (2, 4)
    assert fit.n_params == 2 + 1 * 2 + 10 + 3
    assert np.allclose(fit.beta, (fit.gamma @ fit.eta).T)
    assert np.all(np.linalg.eigvalsh(fit.sigma) > 0)
    assert xenv(X, Y, 4).loglik >= fit.loglik - 1e-6 * abs(fit.loglik)


def test_xenv_dimension_bounded_by_predictors():
    X, Y = _xenv_data()
    with pytest.raises(ValueError, match="p=4"):
        xenv(X, Y, 5)


# ----------------------------------------------------------------------
# Partial envelope
# ----------------------------------------------------------------------
def _penv_data(seed=0, n=200):
    rng = np.random.default_rng(seed)
    X1 = rng.standard_normal((n, 1))
    X2 = rng.standard_normal((n, 2))
    Y = X1 @ np.array([[1.0, 1.0, 0.0]]) + X2 @ rng.standard_normal((2, 3))
    Y += rng.standard_normal((n, 3)) * np.array([1.0, 1.0, 4.0])
    return X1, X2, Y


def test_penv_full_dimension_is_joint_least_squares():
    X1, X2, Y = _penv_data()
    fit = penv(X1, X2, Y, 3)
    beta_full, _ = fit_ols(np.hstack([X1, X2]), Y)
    assert np.allclose(fit.beta, beta_full[:, :1])
    assert np.allclose(fit.beta2, beta_full[:, 1:])
    assert fit.predict(X1, X2).shape == Y.shape


def test_penv_zero_dimension_regresses_on_covariates_only():
    X1, X2, Y = _penv_data(1)
    fit = penv(X1, X2, Y, 0)
    beta2, _ = fit_ols(X2, Y)
    assert np.allclose(fit.beta, 0.0)
    assert np.allclose(fit.beta2, beta2)


def test_penv_optimized_record():
    X1, X2, Y = _penv_data(2)
    fit = penv(X1, X2, Y, 1)
    assert fit.kind is FitKind.OPTIMIZED
    assert fit.n_params == 3 + 1 + 6 + 6
    assert np.allclose(fit.beta, fit.gamma @ fit.eta)
    with pytest.raises(ValueError):
        fit.predict(X1, X2[:, :1])


# ----------------------------------------------------------------------
# Scaled envelope
# ----------------------------------------------------------------------
def test_senv_boundaries_have_unit_scales(envelope_data):
    X, Y, _ = envelope_data
    for u in (0, 4):
        fit = senv(X, Y, u)
        assert np.allclose(fit.scales, 1.0)
        assert np.isclose(fit.loglik, env(X, Y, u).loglik)


def test_senv_improves_on_response_envelope(envelope_data):
    X, Y, _ = envelope_data
    Y = Y * np.array([1.0, 3.0, 0.5, 2.0])
    fit = senv(X, Y, 1)
    base = env(X, Y, 1)
    assert fit.scales[0] == 1.0
    assert np.all(fit.scales > 0)
    assert fit.loglik >= base.loglik - 1e-6 * abs(base.loglik)
    assert fit.n_params == base.n_params + 3
    assert np.allclose(fit.sigma, fit.sigma.T)


# ----------------------------------------------------------------------
# Scaled predictor envelope
# ----------------------------------------------------------------------
def test_sxenv_boundaries_match_predictor_envelope():
    X, Y = _xenv_data(5)
    for u in (0, 4):
        fit = sxenv(X, Y, u)
        base = xenv(X, Y, u)
        assert np.allclose(fit.scales, 1.0)
        assert np.isclose(fit.loglik, base.loglik)
        assert np.allclose(fit.beta, base.beta)
        assert fit.n_params == base.n_params


def test_sxenv_improves_on_predictor_envelope():
    X, Y = _xenv_data(6)
    X = X * np.array([1.0, 3.0, 0.5, 2.0])
    fit = sxenv(X, Y, 1)
    base = xenv(X, Y, 1)
    assert fit.kind is FitKind.OPTIMIZED
    assert fit.scales[0] == 1.0
    assert np.all(fit.scales > 0)
    assert fit.loglik >= base.loglik - 1e-6 * abs(base.loglik)
    assert fit.n_params == base.n_params + 3
    assert fit.beta.shape == (2, 4)
    assert np.allclose(fit.sigma_x, fit.sigma_x.T)
    assert np.allclose(fit.gamma.T @ fit.gamma, np.eye(1))
    assert fit.predict(X[:5]).shape == (5, 2)


# ----------------------------------------------------------------------
# Heteroscedastic envelope
# ----------------------------------------------------------------------
def test_henv_full_dimension_uses_group_means():
    X, Y, _ = simulate_groups([60, 60, 60], 4, 1, seed=0)
    fit = henv(X, Y, 4)
    for i in range(3):
        rows = X[:, i] == 1.0
        onehot = np.eye(3)[i][None, :]
        assert np.allclose(fit.predict(onehot)[0], Y[rows].mean(axis=0))
    assert fit.ratio is None


def test_henv_zero_dimension_shares_grand_mean():
    X, Y, _ = simulate_groups([50, 70], 3, 1, seed=1)
    fit = henv(X, Y, 0)
    assert np.allclose(fit.predict(X), Y.mean(axis=0))


def test_henv_optimized_record():
    X, Y, gamma = simulate_groups([80, 80, 80], 4, 1, seed=2)
    fit = henv(X, Y, 1)
    assert fit.kind is FitKind.OPTIMIZED
    assert fit.group_means.shape == (4, 3)
    assert fit.sigma_groups.shape == (3, 4, 4)
    assert np.allclose(fit.group_sizes, [80, 80, 80])
    assert fit.n_params == 4 + 2 + 3 + 3 + 6
    # Group means differ only inside the envelope
    centred = fit.group_means - fit.alpha[:, None]
    assert np.allclose(fit.gamma0.T @ centred, 0.0, atol=1e-10)
    assert np.linalg.norm(fit.gamma @ fit.gamma.T - gamma @ gamma.T) < 0.3


def test_henv_unknown_group_raises():
    X, Y, _ = simulate_groups([40, 40], 3, 1, seed=3)
    fit = henv(X, Y, 1)
    with pytest.raises(ValueError, match="does not match"):
        fit.predict(np.array([[0.5, 0.5]]))
