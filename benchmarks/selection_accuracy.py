"""Benchmark dimension selection accuracy and runtime on simulated envelopes."""

from __future__ import annotations

import argparse
import itertools
import json
import time
from pathlib import Path

import numpy as np

from envlp import select_dimension, simulate_env


def _run_one(n: int, p: int, r: int, u: int, criterion: str, seed: int) -> dict:
    X, Y, _ = simulate_env(n, p, r, u, seed=seed)
    t0 = time.perf_counter()
    res = select_dimension("env", X, Y, criterion=criterion, m=5)
    return {
        "n": n,
        "p": p,
        "r": r,
        "u_true": u,
        "criterion": criterion,
        "seed": seed,
        "u_hat": res.u,
        "sec": time.perf_counter() - t0,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--n", type=int, nargs="+", default=[100, 400])
    parser.add_argument("--r", type=int, nargs="+", default=[5, 10])
    parser.add_argument("--p", type=int, default=2)
    parser.add_argument("--u", type=int, default=2)
    parser.add_argument("--criteria", nargs="+", default=["bic", "lrt", "cv"])
    parser.add_argument("--reps", type=int, default=5)
    parser.add_argument("--out", type=Path, default=None, help="Write raw rows as JSON")
    args = parser.parse_args()

    rows = []
    for n, r, criterion in itertools.product(args.n, args.r, args.criteria):
        runs = [_run_one(n, args.p, r, args.u, criterion, seed) for seed in range(args.reps)]
        rows.extend(runs)
        hits = np.mean([run["u_hat"] == args.u for run in runs])
        sec = np.mean([run["sec"] for run in runs])
        print(f"n={n:4d} r={r:3d} {criterion:>3}: correct={hits:.2f}  mean sec={sec:.3f}")

    if args.out is not None:
        args.out.write_text(json.dumps(rows, indent=2))


if __name__ == "__main__":
    main()
