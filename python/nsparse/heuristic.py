"""
Sparsity heuristics used to choose between the sparse and the dense path.

Cost model of worth_using_sparse:

A dense contraction of A (M x K) and B (K x N) costs O(M*K*N); for higher
rank tensors the work grows with the size of the result. We use the element
count of the result shape as a simplified proxy for that work, not an exact
flop count.

The sparse path first converts both operands (a full scan of each) and then
multiplies matching nonzero entries, which is nnz(A) * nnz(B) products in the
worst case when every entry shares one contracted coordinate:

    sparse cost = size(A) + size(B) + nnz(A) * nnz(B)

so the sparse path pays off for very sparse operands whose result is much
larger than the operands themselves.
"""
import numpy as np

from . import backend_selection
from .analysis import result_shape
from .convert import as_dense
from .sparse_tensor import SparseTensor, prod


def _size(tensor) -> int:
    return tensor.size if isinstance(tensor, SparseTensor) else as_dense(tensor).size


def count_nonzero(tensor) -> int:
    """Number of elements that are not exactly zero."""
    if isinstance(tensor, SparseTensor):
        return tensor.nnz
    return int(np.count_nonzero(as_dense(tensor)))


def sparsity(tensor) -> float:
    """
    Fraction of elements exactly equal to zero, in [0, 1]. An array without
    any element counts as entirely sparse.
    """
    size = _size(tensor)
    if size == 0:
        return 1.0
    return (size - count_nonzero(tensor)) / size


def is_sparse(tensor, threshold: float = None) -> bool:
    threshold = backend_selection.SPARSE_THRESHOLD if threshold is None else threshold
    return sparsity(tensor) >= threshold


def worth_using_sparse(a, b) -> bool:
    """
    Return True if contracting a and b through the sparse engine is expected
    to be cheaper than a dense contraction.

    Raises:
        EmptyShape, IncompatibleDimensions: If the shapes cannot be contracted.
    """
    shape_a = a.shape if isinstance(a, SparseTensor) else as_dense(a).shape
    shape_b = b.shape if isinstance(b, SparseTensor) else as_dense(b).shape
    dense_cost = prod(result_shape(shape_a, shape_b))
    sparse_cost = _size(a) + _size(b) + count_nonzero(a) * count_nonzero(b)
    return sparse_cost < dense_cost
