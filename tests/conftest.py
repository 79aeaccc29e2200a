import numpy as np
import pytest

from envlp import simulate_env


@pytest.fixture
def envelope_data():
    """n=300, p=2, r=4, true dimension 1 with large immaterial variation."""
    return simulate_env(300, 2, 4, 1, seed=11)


def random_spd(rng, d, low=0.5, high=3.0):
    Q, _ = np.linalg.qr(rng.standard_normal((d, d)))
    return Q @ np.diag(rng.uniform(low, high, d)) @ Q.T
