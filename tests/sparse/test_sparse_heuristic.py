import importlib

import numpy as np
import pytest
import nsparse as nsp
from nsparse import backend_selection, to_sparse
from nsparse.errors import IncompatibleDimensions


def sparse_randn(*shape, density=0.3):
    _A = np.random.randn(*shape)
    _A[np.random.rand(*shape) > density] = 0
    return _A


sparsity_shapes = [(10,), (4, 5, 6), (1, 1, 1), (2, 3, 4, 5)]


@pytest.mark.parametrize("shape", sparsity_shapes)
@pytest.mark.parametrize("density", [0.05, 0.3, 0.9])
def test_sparsity_bounds(shape, density):
    _A = sparse_randn(*shape, density=density)
    s = nsp.sparsity(_A)
    assert 0.0 <= s <= 1.0
    assert s == pytest.approx(np.mean(_A == 0))
    assert nsp.sparsity(to_sparse(_A)) == pytest.approx(s)


@pytest.mark.parametrize("shape", sparsity_shapes)
def test_sparsity_extremes(shape):
    assert nsp.sparsity(np.zeros(shape)) == 1.0
    assert nsp.sparsity(np.random.rand(*shape) + 1.0) == 0.0


def test_sparsity_no_elements():
    assert nsp.sparsity(np.zeros((0, 3))) == 1.0


@pytest.mark.parametrize("threshold", [0.0, 0.25, 0.5, 0.8, 0.95, 1.0])
def test_is_sparse(threshold):
    for density in [0.0, 0.1, 0.5, 1.0]:
        _A = sparse_randn(8, 8, density=density)
        assert nsp.is_sparse(_A, threshold) == (nsp.sparsity(_A) >= threshold)


def test_is_sparse_default_threshold():
    threshold = backend_selection.SPARSE_THRESHOLD
    _A = np.zeros(10)
    _A[:2] = 1.0
    # the threshold is inclusive
    assert nsp.is_sparse(_A) == (0.8 >= threshold)
    assert nsp.is_sparse(np.zeros((10, 10)))
    assert nsp.is_sparse(np.ones((10, 10))) == (threshold <= 0.0)


def test_count_nonzero():
    _A = sparse_randn(5, 6)
    assert nsp.count_nonzero(_A) == np.count_nonzero(_A)
    assert nsp.count_nonzero(to_sparse(_A)) == np.count_nonzero(_A)


def _with_nnz(shape, nnz):
    _A = np.zeros(shape)
    _A.reshape(-1)[:nnz] = 1.0
    return _A


def test_worth_using_sparse_monotonic():
    # result (100, 100) is much larger than the operands (100, 1) and (1, 100)
    decisions = []
    for nnz in range(0, 101, 10):
        decisions.append(nsp.worth_using_sparse(_with_nnz((100, 1), nnz), _with_nnz((1, 100), nnz)))
    assert decisions[0]
    assert not decisions[-1]
    # once it flips to False it stays False
    assert decisions == sorted(decisions, reverse=True)


def test_worth_using_sparse_cost_model():
    # sparse: 200 + nnz_a * nnz_b, dense: 10000
    assert nsp.worth_using_sparse(_with_nnz((100, 1), 97), _with_nnz((1, 100), 100))
    # equal costs keep the dense path
    assert not nsp.worth_using_sparse(_with_nnz((100, 1), 98), _with_nnz((1, 100), 100))
    # square operands are never worth it: size(a) + size(b) > size(result)
    assert not nsp.worth_using_sparse(np.zeros((10, 10)), np.zeros((10, 10)))


def test_worth_using_sparse_accepts_sparse_tensors():
    A = to_sparse(_with_nnz((100, 1), 5))
    B = to_sparse(_with_nnz((1, 100), 5))
    assert nsp.worth_using_sparse(A, B)


def test_worth_using_sparse_incompatible():
    with pytest.raises(IncompatibleDimensions):
        nsp.worth_using_sparse(np.zeros((2, 3)), np.zeros((4, 4)))


#####################
### CONFIGURATION ###
#####################
def test_default_configuration():
    assert backend_selection.ACCUMULATOR in backend_selection.ACCUMULATORS
    assert backend_selection.WORKERS >= 1


def test_parallel_backend(monkeypatch):
    monkeypatch.setenv("NSPARSE_BACKEND", "parallel")
    monkeypatch.setenv("NSPARSE_WORKERS", "3")
    monkeypatch.setenv("NSPARSE_PARALLEL_MIN_SIZE", "4")
    try:
        importlib.reload(backend_selection)
        assert backend_selection.WORKERS == 3
        _A = sparse_randn(6, 7)
        A = to_sparse(_A)
        np.testing.assert_array_equal(A.to_dense(), _A)
    finally:
        monkeypatch.undo()
        importlib.reload(backend_selection)


@pytest.mark.parametrize(
    "name,value",
    [("NSPARSE_BACKEND", "gpu"), ("NSPARSE_ACCUMULATOR", "csr")],
)
def test_unknown_configuration(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    try:
        with pytest.raises(RuntimeError, match="Unknown nsparse"):
            importlib.reload(backend_selection)
    finally:
        monkeypatch.undo()
        importlib.reload(backend_selection)
