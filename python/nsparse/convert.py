"""
Conversion between dense numpy arrays and SparseTensor.

to_sparse scans the dense source in row-major order (last axis fastest) and
keeps every element that is exactly nonzero. The order of the stored entries
is the scan order, so the output of to_sparse is always canonical and the
round trip to_dense(to_sparse(x)) reproduces x exactly.

The scan can be split across a pool of worker threads (see
backend_selection). Each worker scans a contiguous slice of the flat index
range into its own buffers and the buffers are concatenated once, in slice
order, after every worker is done, so the parallel scan returns exactly what
the serial scan returns.
"""
import logging
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from . import backend_selection
from .errors import EmptyShape
from .sparse_tensor import SparseTensor

logger = logging.getLogger(__name__)


#################
### UTILITIES ###
#################
def compact_strides(shape: tuple[int, ...]):
    """Utility function to compute compact strides"""
    stride = 1
    res = []
    for i in range(1, len(shape) + 1):
        res.append(stride)
        stride *= shape[-i]
    return tuple(res[::-1])


def unravel(flat: np.ndarray, shape: tuple[int, ...]) -> np.ndarray:
    """
    Map flat row-major positions to multi-indices, ex. position 3 in a (2, 3)
    array is (1, 0). The most significant axis is peeled off first.

    Returns:
        np.ndarray: (ndim, n) array of coordinates.
    """
    rest = np.asarray(flat, dtype=np.intp)
    coords = np.empty((len(shape), rest.size), dtype=np.intp)
    if rest.size == 0:
        return coords
    for dim, stride in enumerate(compact_strides(shape)):
        coords[dim], rest = np.divmod(rest, stride)
    return coords


def as_dense(tensor) -> np.ndarray:
    """Accept numpy arrays, array types exposing numpy() and array_likes."""
    if isinstance(tensor, np.ndarray):
        return tensor
    if hasattr(tensor, "numpy"):
        return np.asarray(tensor.numpy())
    return np.asarray(tensor)


############
### SCAN ###
############
def _scan(flat: np.ndarray, shape: tuple[int, ...], start: int, stop: int):
    """Collect the nonzero values of flat[start:stop] and their coordinates."""
    positions = np.flatnonzero(flat[start:stop]) + start
    return flat[positions], unravel(positions, shape)


def _parallel_scan(flat: np.ndarray, shape: tuple[int, ...], workers: int):
    bounds = [flat.size * w // workers for w in range(workers + 1)]
    with ThreadPoolExecutor(max_workers=workers) as pool:
        parts = list(pool.map(
            lambda span: _scan(flat, shape, *span), zip(bounds[:-1], bounds[1:])
        ))
    values = np.concatenate([v for v, _ in parts])
    coords = np.concatenate([c for _, c in parts], axis=1)
    return values, coords


def to_sparse(tensor, workers: int = None) -> SparseTensor:
    """
    Convert a dense array into a SparseTensor.

    Args:
        tensor: numpy array, array exposing numpy() or array_like.
        workers (int): Number of scan workers. Defaults to the configured
            backend, which stays serial for arrays below PARALLEL_MIN_SIZE.

    Returns:
        SparseTensor: nonzero entries in row-major order, source dtype kept.

    Raises:
        EmptyShape: If the array has rank 0.
    """
    if isinstance(tensor, SparseTensor):
        return tensor
    array = as_dense(tensor)
    if array.ndim == 0:
        raise EmptyShape("cannot convert a rank 0 array to a sparse tensor")

    flat = np.ravel(array, order="C")
    if workers is None:
        workers = backend_selection.WORKERS if flat.size >= backend_selection.PARALLEL_MIN_SIZE else 1
    workers = max(1, min(workers, flat.size))

    if workers > 1:
        values, coords = _parallel_scan(flat, array.shape, workers)
    else:
        values, coords = _scan(flat, array.shape, 0, flat.size)
    logger.debug("to_sparse: shape=%s nnz=%d workers=%d", array.shape, values.size, workers)
    return SparseTensor._from_canonical(array.shape, values, coords)


def to_dense(sparse: SparseTensor) -> np.ndarray:
    """
    Convert a SparseTensor back to a dense numpy array of the same dtype.

    Raises:
        InternalConsistency: If a stored coordinate does not fit the shape.
    """
    SparseTensor.check(sparse.shape, sparse.indices, sparse.values)
    out = np.zeros(sparse.shape, dtype=sparse.dtype)
    if sparse.nnz:
        out[tuple(sparse.indices)] = sparse.values
    return out
