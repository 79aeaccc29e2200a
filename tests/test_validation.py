import numpy as np
import pytest

from envlp._validation import (
    _check_row_compatibility,
    _validate_dimension,
    _validate_matrix,
    _validate_permutations,
)
from envlp.config import MAX_ITER, OptimizerOptions, make_options


def test_vector_becomes_column():
    assert _validate_matrix([1.0, 2.0, 3.0], name="Y").shape == (3, 1)


@pytest.mark.parametrize(
    "bad",
    [np.zeros((2, 2, 2)), np.array([[1.0, np.nan]]), np.zeros((0, 3)), [["a", "b"]]],
)
def test_malformed_matrices_raise(bad):
    with pytest.raises(ValueError):
        _validate_matrix(bad, name="X")


def test_row_compatibility():
    assert _check_row_compatibility(("Y", np.ones((4, 1))), ("X", np.ones((4, 2)))) == 4
    with pytest.raises(ValueError, match="rows"):
        _check_row_compatibility(("Y", np.ones((4, 1))), ("X", np.ones((3, 2))))


def test_dimension_accepts_numpy_integers():
    assert _validate_dimension(np.int64(2), 3) == 2
    with pytest.raises(ValueError, match="between 0 and r=3"):
        _validate_dimension(4, 3)


def test_permutations():
    assert _validate_permutations(None) is None
    assert _validate_permutations(3) == 3
    with pytest.raises(ValueError):
        _validate_permutations(-1)


def test_make_options_merges_defaults():
    opts = make_options({"ftol": 1e-6})
    assert opts.ftol == 1e-6
    assert opts.max_iter == MAX_ITER
    assert make_options(opts, verbose=True).verbose is True
    assert make_options(None) == OptimizerOptions()


def test_options_validation():
    with pytest.raises(ValueError, match="max_iter"):
        OptimizerOptions(max_iter=0)
    with pytest.raises(ValueError, match="gradtol"):
        make_options({"gradtol": -1.0})
    with pytest.raises(ValueError):
        make_options([("ftol", 1.0)])
