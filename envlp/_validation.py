"""Input validation helpers for envlp.

Every public fitter and selection driver funnels its inputs through these
functions so that contract violations are reported before any computation.
"""

from __future__ import annotations

from typing import Any

import numpy as np


def _validate_matrix(A: Any, *, name: str) -> np.ndarray:
    """Validate and convert a data block to a finite 2D float array.

    Parameters
    ----------
    A : array-like
        Data block, 1D inputs are treated as a single column.
    name : str
        Variable name for error messages.

    Returns
    -------
    np.ndarray
        Validated 2D numpy array.

    Raises
    ------
    ValueError
        If ``A`` is not numeric, not at most 2D, empty or not finite.
    """
    if hasattr(A, "to_numpy"):
        A = A.to_numpy()
    try:
        arr = np.asarray(A, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} cannot be converted to numeric array: {e}") from e

    if arr.ndim == 1:
        arr = arr[:, None]
    elif arr.ndim != 2:
        raise ValueError(
            f"{name} must be 1D or 2D, got {arr.ndim}D with shape {arr.shape}. "
            f"Try {name}.reshape({arr.shape[0]}, -1) to flatten to 2D."
        )

    if arr.shape[0] < 1 or arr.shape[1] < 1:
        raise ValueError(f"{name} must have at least one row and one column, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} contains NaN or infinite values; remove or impute them first.")
    return arr


def _check_row_compatibility(*blocks: tuple[str, np.ndarray]) -> int:
    """Check that all data blocks share the same number of observations."""
    (first_name, first), *rest = blocks
    n = first.shape[0]
    for name, block in rest:
        if block.shape[0] != n:
            raise ValueError(
                f"{name} has {block.shape[0]} rows but {first_name} has {n}. "
                f"All inputs must have the same number of samples."
            )
    return n


def _validate_dimension(u: Any, upper: int, *, name: str = "u", side: str = "r") -> int:
    """Validate an envelope dimension in ``[0, upper]``.

    Raises
    ------
    ValueError
        If ``u`` is not an integer or lies outside the range.
    """
    if isinstance(u, bool):
        raise ValueError(f"{name} must be an integer, got bool")
    try:
        u_int = int(u)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} must be an integer, got {type(u).__name__}") from e
    if u_int != u:
        raise ValueError(f"{name} must be an integer, got {u}")
    if not (0 <= u_int <= upper):
        raise ValueError(
            f"{name}={u_int} must be between 0 and {side}={upper}."
        )
    return u_int


def _validate_alpha(alpha: Any) -> float:
    """Validate a significance level in (0, 1]."""
    if not isinstance(alpha, (int, float)) or isinstance(alpha, bool) or not (0 < alpha <= 1):
        raise ValueError(
            f"alpha must be in (0, 1], got {alpha!r}. Try alpha=0.05 or alpha=0.01."
        )
    return float(alpha)


def _validate_folds(m: Any, n: int) -> int:
    """Validate the number of cross-validation folds."""
    if isinstance(m, bool) or not isinstance(m, (int, np.integer)) or not (2 <= m <= n):
        raise ValueError(
            f"m must be an integer between 2 and n={n}, got {m!r}. Try m=5."
        )
    return int(m)


def _validate_permutations(perm: Any) -> int | None:
    """Validate an optional number of permutations."""
    if perm is None:
        return None
    if isinstance(perm, bool) or not isinstance(perm, (int, np.integer)) or perm < 1:
        raise ValueError(
            f"Number of permutations should be a positive integer, got {perm!r}."
        )
    return int(perm)


def _validate_regression_inputs(X: Any, Y: Any, *, X_name: str = "X", Y_name: str = "Y") -> tuple[np.ndarray, np.ndarray]:
    """Validate a predictor/response pair.

    Returns
    -------
    tuple
        Validated (X, Y) as 2D float arrays with matching row counts.
    """
    X_valid = _validate_matrix(X, name=X_name)
    Y_valid = _validate_matrix(Y, name=Y_name)
    _check_row_compatibility((Y_name, Y_valid), (X_name, X_valid))
    return X_valid, Y_valid
