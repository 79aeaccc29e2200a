"""
Default settings for the envelope fitters and the manifold optimizer.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from typing import Any

# --- Manifold optimizer ---

# Maximum number of conjugate-gradient iterations on the Grassmann manifold.
MAX_ITER: int = 300

# Stop when the objective decreases by less than FTOL * (1 + |F|) in one step.
FTOL: float = 1e-10

# Stop when the Frobenius norm of the Riemannian gradient drops below GRADTOL.
GRADTOL: float = 1e-7

# Armijo sufficient-decrease constant and backtracking factor for line searches.
ARMIJO_C1: float = 1e-4
BACKTRACK_FACTOR: float = 0.5
MAX_BACKTRACKS: int = 60

# --- Scaled envelope ---

# Maximum number of alternating (basis, scales) sweeps.
SCALE_SWEEPS: int = 50

# --- Dimension selection ---

# Default significance level for likelihood-ratio testing.
LRT_ALPHA: float = 0.05

# Default seed offset for permuted cross validation.
CV_SEED: int = 1


@dataclass(frozen=True)
class OptimizerOptions:
    """Iteration controls shared by every envelope fitter.

    Parameters
    ----------
    max_iter : int
        Maximum number of manifold iterations.
    ftol : float
        Relative objective-decrease tolerance.
    gradtol : float
        Riemannian gradient-norm tolerance.
    verbose : bool
        Promote the per-iteration trace from DEBUG to INFO.
    """

    max_iter: int = MAX_ITER
    ftol: float = FTOL
    gradtol: float = GRADTOL
    verbose: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.max_iter, bool) or not isinstance(self.max_iter, int) or self.max_iter < 1:
            raise ValueError(
                f"max_iter must be a positive integer, got {self.max_iter!r}. "
                f"Try max_iter={MAX_ITER}."
            )
        if not isinstance(self.ftol, (int, float)) or self.ftol < 0:
            raise ValueError(
                f"ftol must be non-negative, got {self.ftol!r}. Try ftol={FTOL}."
            )
        if not isinstance(self.gradtol, (int, float)) or self.gradtol < 0:
            raise ValueError(
                f"gradtol must be non-negative, got {self.gradtol!r}. Try gradtol={GRADTOL}."
            )


def make_options(options: OptimizerOptions | Mapping[str, Any] | None = None, **overrides: Any) -> OptimizerOptions:
    """Normalise user options into an :class:`OptimizerOptions`.

    Missing fields take the defaults above; unknown keys are rejected.
    """
    if options is None:
        base = OptimizerOptions()
    elif isinstance(options, OptimizerOptions):
        base = options
    elif isinstance(options, Mapping):
        known = {f.name for f in fields(OptimizerOptions)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ValueError(
                f"Unknown optimizer option(s) {unknown}; expected a subset of {sorted(known)}"
            )
        base = OptimizerOptions(**dict(options))
    else:
        raise ValueError(
            f"options must be None, a mapping or OptimizerOptions, got {type(options).__name__}"
        )
    return replace(base, **overrides) if overrides else base
