import numpy as np

from envlp import env
from envlp.manifold import orthonormalize
from envlp.moments import compute_moments
from envlp.objectives import response_objective
from envlp.reconstruct import FitKind, guarded_ratio, reconstruct_response_envelope

RTOL = 1e-6
ATOL = 1e-8


def _rebuild(mom, gamma):
    obj = response_objective(mom.sig_res, mom.sig_y)
    return reconstruct_response_envelope(
        FitKind.OPTIMIZED,
        gamma=gamma,
        objective_value=obj.value(gamma),
        beta_ols=mom.beta_ols,
        sig_res=mom.sig_res,
        sig_y=mom.sig_y,
        sig_x=mom.sig_x,
        n=mom.n,
    )


def test_parameters_depend_only_on_the_span(envelope_data):
    X, Y, _ = envelope_data
    mom = compute_moments(X, Y)
    gamma = env(X, Y, 2).gamma
    rng = np.random.default_rng(9)
    Q = orthonormalize(rng.standard_normal((2, 2)))
    M = rng.standard_normal((2, 2)) + 3.0 * np.eye(2)

    ref = _rebuild(mom, gamma)
    for other in (_rebuild(mom, gamma @ Q), _rebuild(mom, orthonormalize(gamma @ M))):
        assert np.allclose(other.beta, ref.beta, rtol=RTOL, atol=ATOL)
        assert np.allclose(other.sigma, ref.sigma, rtol=RTOL, atol=ATOL)
        assert np.isclose(other.loglik, ref.loglik, rtol=RTOL, atol=ATOL)
        assert np.allclose(other.ratio, ref.ratio, rtol=RTOL, atol=ATOL)
        assert np.allclose(other.gamma @ other.gamma.T, ref.gamma @ ref.gamma.T, atol=1e-10)


def test_guarded_ratio_turns_singular_blocks_into_nan():
    def singular():
        return np.linalg.inv(np.zeros((2, 2)))

    out = guarded_ratio(singular, (3, 2))
    assert out.shape == (3, 2)
    assert np.all(np.isnan(out))
