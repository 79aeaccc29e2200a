import logging

from .api import EnvelopeRegression
from .config import OptimizerOptions, make_options
from .env import env
from .envmean import envmean
from .henv import henv
from .manifold import GrassmannResult, grassmann_minimize
from .metrics import gaussian_loglik, log_det_positive, mse
from .objectives import DegenerateSubspaceError, LogDetObjective
from .penv import penv
from .reconstruct import FitKind
from .results import (
    EnvelopeFit,
    HeteroscedasticEnvelopeFit,
    MeanEnvelopeFit,
    PartialEnvelopeFit,
    PredictorEnvelopeFit,
    ScaledEnvelopeFit,
    ScaledPredictorEnvelopeFit,
)
from .selection import (
    SelectionResult,
    bic_env,
    bic_senv,
    bic_xenv,
    lrt_env,
    lrt_penv,
    mfoldcv_env,
    mfoldcv_henv,
    mfoldcv_sxenv,
    select_bic,
    select_dimension,
    select_lrt,
    select_mfoldcv,
)
from .senv import senv
from .sim import simulate_env, simulate_groups
from .sxenv import sxenv
from .xenv import xenv

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "DegenerateSubspaceError",
    "EnvelopeFit",
    "EnvelopeRegression",
    "FitKind",
    "GrassmannResult",
    "HeteroscedasticEnvelopeFit",
    "LogDetObjective",
    "MeanEnvelopeFit",
    "OptimizerOptions",
    "PartialEnvelopeFit",
    "PredictorEnvelopeFit",
    "ScaledEnvelopeFit",
    "ScaledPredictorEnvelopeFit",
    "SelectionResult",
    "bic_env",
    "bic_senv",
    "bic_xenv",
    "env",
    "envmean",
    "gaussian_loglik",
    "grassmann_minimize",
    "henv",
    "log_det_positive",
    "lrt_env",
    "lrt_penv",
    "make_options",
    "mfoldcv_env",
    "mfoldcv_henv",
    "mfoldcv_sxenv",
    "mse",
    "penv",
    "select_bic",
    "select_dimension",
    "select_lrt",
    "select_mfoldcv",
    "senv",
    "simulate_env",
    "simulate_groups",
    "sxenv",
    "xenv",
]
