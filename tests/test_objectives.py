import numpy as np
import pytest

from envlp.objectives import (
    DegenerateSubspaceError,
    LogDetObjective,
    mean_objective,
    response_objective,
)

from conftest import random_spd

RTOL = 1e-6
ATOL = 1e-8


def _objective(seed=0, r=5):
    rng = np.random.default_rng(seed)
    return response_objective(random_spd(rng, r), random_spd(rng, r, 2.0, 6.0)), rng


def test_value_invariant_under_change_of_basis():
    obj, rng = _objective(0)
    R = rng.standard_normal((5, 2))
    M = rng.standard_normal((2, 2)) + 2 * np.eye(2)
    assert np.isclose(obj.value(R), obj.value(R @ M), rtol=RTOL, atol=ATOL)


def test_gradient_matches_finite_differences():
    obj, rng = _objective(1)
    R = rng.standard_normal((5, 2))
    E = rng.standard_normal((5, 2))
    h = 1e-6
    fd = (obj.value(R + h * E) - obj.value(R - h * E)) / (2 * h)
    assert np.isclose(fd, np.sum(obj.gradient(R) * E), rtol=1e-5, atol=1e-7)


def test_gradient_transforms_with_inverse_transpose():
    obj, rng = _objective(2)
    R = rng.standard_normal((5, 3))
    M = rng.standard_normal((3, 3)) + 3 * np.eye(3)
    G = obj.gradient(R)
    G_M = obj.gradient(R @ M)
    assert np.allclose(G_M, G @ np.linalg.inv(M).T, rtol=RTOL, atol=1e-7)
    # Invariance forces the gradient to be orthogonal to the basis itself.
    assert np.allclose(R.T @ G, 0.0, atol=1e-8)


def test_singular_projection_raises():
    obj = LogDetObjective(terms=((1.0, np.diag([1.0, 1.0, 0.0])),))
    R = np.array([[0.0], [0.0], [1.0]])
    with pytest.raises(DegenerateSubspaceError):
        obj(R)


def test_rank_deficient_basis_raises():
    obj, _ = _objective(3)
    R = np.zeros((5, 2))
    R[0, 0] = R[0, 1] = 1.0
    with pytest.raises(np.linalg.LinAlgError):
        obj(R)


def test_full_dimension_value_is_log_ratio_of_determinants():
    rng = np.random.default_rng(4)
    A = random_spd(rng, 4)
    B = random_spd(rng, 4)
    obj = response_objective(A, B)
    expected = np.linalg.slogdet(A)[1] - np.linalg.slogdet(B)[1]
    assert np.isclose(obj.value(np.eye(4)), expected)


def test_mean_objective_scales_with_n():
    rng = np.random.default_rng(5)
    S = random_spd(rng, 3)
    second = S + np.outer([1.0, 2.0, 0.5], [1.0, 2.0, 0.5])
    R = rng.standard_normal((3, 1))
    base = response_objective(S, second).value(R)
    assert np.isclose(mean_objective(S, second, 25).value(R), 25 * base)
