import time

import numpy as np

from envlp import bic_env, env, mse, simulate_env


def main():
    n_tr, n_te, p, r, u = 200, 200, 3, 8, 2
    X, Y, truth = simulate_env(n_tr + n_te, p, r, u, seed=123)
    X_tr, Y_tr, X_te, Y_te = X[:n_tr], Y[:n_tr], X[n_tr:], Y[n_tr:]

    t0 = time.time()
    sel = bic_env(X_tr, Y_tr)
    sec_sel = time.time() - t0

    t0 = time.time()
    fit_e = env(X_tr, Y_tr, sel.u)
    sec_e = time.time() - t0
    fit_o = env(X_tr, Y_tr, r)

    err_e = np.linalg.norm(fit_e.beta - truth["beta"])
    err_o = np.linalg.norm(fit_o.beta - truth["beta"])

    print("=== Response envelope vs OLS ===")
    print(f"p={p}  r={r}  true u={u}  n_tr={n_tr}  n_te={n_te}")
    print(f"BIC selected u={sel.u}  ({sec_sel:.3f}s over {sel.dims.size} fits)")
    print(
        f"ENV:  sec={sec_e:.3f}  |beta-beta0|={err_e:.4f}  test MSE={mse(Y_te, fit_e.predict(X_te)):.4f}"
    )
    print(f"OLS:  |beta-beta0|={err_o:.4f}  test MSE={mse(Y_te, fit_o.predict(X_te)):.4f}")
    print(f"Median standard-error ratio OLS/ENV: {np.median(fit_e.ratio):.2f}")


if __name__ == "__main__":
    main()
