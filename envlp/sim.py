import numpy as np

from .manifold import orthonormalize


def _spd(rng, d, low, high):
    if d == 0:
        return np.zeros((0, 0))
    Q = orthonormalize(rng.standard_normal((d, d)))
    return Q @ np.diag(rng.uniform(low, high, d)) @ Q.T


def simulate_env(n, p, r, u, seed=0, *, material_scale=1.0, immaterial_scale=25.0):
    """Draw (X, Y) from a response envelope model with a known basis.

    The immaterial variation is larger than the material one, the setting in
    which the envelope estimator gains most over least squares.

    Returns
    -------
    X, Y, truth
        ``truth`` holds ``beta``, ``sigma``, ``gamma`` and ``alpha``.
    """
    rng = np.random.default_rng(seed)
    basis = orthonormalize(rng.standard_normal((r, r)))
    gamma, gamma0 = basis[:, :u], basis[:, u:]
    eta = rng.standard_normal((u, p))
    omega = _spd(rng, u, 0.5 * material_scale, material_scale)
    omega0 = _spd(rng, r - u, 0.5 * immaterial_scale, immaterial_scale)
    beta = gamma @ eta
    sigma = gamma @ omega @ gamma.T + gamma0 @ omega0 @ gamma0.T
    alpha = rng.standard_normal(r)
    X = rng.standard_normal((n, p))
    E = rng.multivariate_normal(np.zeros(r), sigma, size=n)
    Y = alpha[None, :] + X @ beta.T + E
    return X, Y, {"beta": beta, "sigma": sigma, "gamma": gamma, "alpha": alpha}


def simulate_groups(sizes, r, u, seed=0):
    """Draw grouped responses with envelope-structured group means.

    Returns
    -------
    X, Y, gamma
        X is the one-hot group indicator, rows ordered by group.
    """
    rng = np.random.default_rng(seed)
    basis = orthonormalize(rng.standard_normal((r, r)))
    gamma, gamma0 = basis[:, :u], basis[:, u:]
    omega0 = _spd(rng, r - u, 5.0, 10.0)
    immaterial = gamma0 @ omega0 @ gamma0.T
    mu = rng.standard_normal(r)
    blocks_x, blocks_y = [], []
    for i, size in enumerate(sizes):
        sigma_i = gamma @ _spd(rng, u, 0.5, 2.0) @ gamma.T + immaterial
        mean_i = mu + gamma @ (3.0 * rng.standard_normal(u))
        blocks_y.append(rng.multivariate_normal(mean_i, sigma_i, size=size))
        onehot = np.zeros((size, len(sizes)))
        onehot[:, i] = 1.0
        blocks_x.append(onehot)
    return np.vstack(blocks_x), np.vstack(blocks_y), gamma
