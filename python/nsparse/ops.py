"""
Operations built on top of the core components: same-shape addition, the
dense reference contraction and a contraction that picks the sparse or the
dense path with worth_using_sparse.

Any operation involving a dense operand promotes the sparse operand to a
dense array and returns a dense array.
"""
import logging

import numpy as np

from .analysis import check_multiplicable
from .convert import as_dense, to_dense
from .errors import Result, ShapeMismatch, capture
from .heuristic import worth_using_sparse
from .multiply import multiply_to_dense
from .sparse_tensor import SparseTensor

logger = logging.getLogger(__name__)


def _dense(tensor) -> np.ndarray:
    return to_dense(tensor) if isinstance(tensor, SparseTensor) else as_dense(tensor)


def add(a, b):
    """
    Elementwise addition of two operands of identical shape.

    Returns:
        SparseTensor if both operands are sparse, a numpy array otherwise.

    Raises:
        ShapeMismatch: If the shapes differ.
    """
    if not isinstance(a, SparseTensor):
        a = as_dense(a)
    if not isinstance(b, SparseTensor):
        b = as_dense(b)
    if tuple(a.shape) != tuple(b.shape):
        raise ShapeMismatch(f"tensors must have the same shape for addition, got {a.shape} and {b.shape}")

    if isinstance(a, SparseTensor) and isinstance(b, SparseTensor):
        # duplicate coordinates are summed by the constructor
        return SparseTensor(
            a.shape,
            np.concatenate([a.values, b.values]),
            np.concatenate([a.indices, b.indices], axis=1),
        )
    return _dense(a) + _dense(b)


def try_add(a, b) -> Result:
    return capture(add, a, b)


def dense_contract(a, b) -> np.ndarray:
    """
    Reference dense contraction of the last axis of a against the first axis
    of b, with the same broadcasting rules as the sparse engine.
    """
    a, b = _dense(a), _dense(b)
    check_multiplicable(a.shape, b.shape)
    if b.ndim == 1:
        b = b[:, None]
    # (*outer, 1, k) @ (*middle, k, n) -> (*batch, 1, n)
    out = np.matmul(a[..., None, :], np.moveaxis(b, 0, -2))
    return out[..., 0, :]


def contract(a, b, use_sparse: bool = None) -> np.ndarray:
    """
    Contract a and b, going through the sparse engine only when
    worth_using_sparse expects it to be cheaper (or when use_sparse forces
    the choice). The result is dense either way.
    """
    if use_sparse is None:
        use_sparse = worth_using_sparse(a, b)
    logger.debug("contract: using the %s path", "sparse" if use_sparse else "dense")
    if use_sparse:
        return multiply_to_dense(a, b)
    return dense_contract(a, b)
