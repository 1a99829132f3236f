"""
nsparse: N-dimensional sparse tensors in coordinate form.

This is the main entry point of the package and it exposes the sparse API to
the rest of the codebase. SparseTensor (sparse_tensor.py) holds the data,
convert.py moves between dense numpy arrays and SparseTensor, analysis.py
decides whether two shapes can be contracted, multiply.py is the sparse
contraction engine and heuristic.py estimates whether the sparse path is
worth taking. Runtime configuration lives in backend_selection.py.
"""

from . import backend_selection
from .errors import *
from .sparse_tensor import SparseTensor, array
from .convert import to_sparse, to_dense, as_dense, compact_strides, unravel
from .analysis import (
    MultiplicabilityVerdict,
    analyze,
    align_axes,
    check_multiplicable,
    result_shape,
)
from .multiply import multiply, try_multiply, multiply_to_dense
from .heuristic import sparsity, is_sparse, count_nonzero, worth_using_sparse
from .ops import add, try_add, dense_contract, contract
