"""
Sparse x sparse contraction.

multiply contracts the last axis of A against the first axis of B, with
broadcasting on the remaining axes (see analysis). The engine never looks at
the zeros: B's entries are indexed by their first-axis coordinate, then every
entry of A is matched against the entries of B sharing its last-axis
coordinate. Each matching pair contributes one product to one output
coordinate, and contributions landing on the same coordinate are summed
before the result tensor is built, so the result never holds duplicates.

Contributions are accumulated either in a coordinate -> value dict, which is
flushed once in row-major order, or in a zero-filled dense buffer that is
scanned back into sparse form. Products are computed with numpy in the widest
dtype of the result kind, so integer overflow wraps around the way
numpy.matmul does. Both accumulators add the same products in the same order,
so they produce identical values.
"""
import logging
from collections import defaultdict

import numpy as np

from . import backend_selection
from .analysis import align_axes, check_multiplicable
from .convert import as_dense, to_sparse
from .errors import Result, capture
from .sparse_tensor import SparseTensor, prod

logger = logging.getLogger(__name__)

# widest dtype of each kind, products and sums are computed in it
_WORK_DTYPES = {"b": np.int64, "i": np.int64, "u": np.uint64, "f": np.float64, "c": np.complex128}


#################
### UTILITIES ###
#################
def _index_by_coordinate(coords: list) -> dict:
    """Map every distinct coordinate to the entry positions carrying it."""
    lookup = defaultdict(list)
    for j, c in enumerate(coords):
        lookup[c].append(j)
    return lookup


def _coordinate_plan(shape_a: tuple, shape_b: tuple):
    """
    Decide where each leading output coordinate comes from.

    Returns:
        sources: one (operand, axis) per leading output axis, operand 0 is A
        agree: (axis_a, axis_b) pairs of equal sized shared axes, on which a
            pair of entries only contributes if both coordinates are equal
    """
    sources, agree = [], []
    for axis_a, axis_b in align_axes(shape_a, shape_b):
        if axis_b is None:
            sources.append((0, axis_a))
        elif axis_a is None:
            sources.append((1, axis_b))
        elif shape_a[axis_a] == 1:
            sources.append((1, axis_b))
        elif shape_b[axis_b] == 1:
            sources.append((0, axis_a))
        else:
            sources.append((0, axis_a))
            agree.append((axis_a, axis_b))
    return sources, agree


def _work_dtype(dtype: np.dtype) -> np.dtype:
    return np.dtype(_WORK_DTYPES.get(dtype.kind, dtype))


def _prepare(a, b):
    """Check the shapes, then bring both operands into sparse form."""
    a = a if isinstance(a, SparseTensor) else as_dense(a)
    b = b if isinstance(b, SparseTensor) else as_dense(b)
    verdict = check_multiplicable(a.shape, b.shape)
    return to_sparse(a), to_sparse(b), verdict


################
### CONTRACT ###
################
def _match(a: SparseTensor, b: SparseTensor, lookup: dict, requires_broadcasting: bool):
    """
    Collect every matching pair of entries.

    Returns:
        a_pos, b_pos: entry positions in A and B, one per pair
        coords: output coordinate each pair contributes to
    """
    a_coords = a.indices.T.tolist()
    b_coords = b.indices.T.tolist()
    has_column = b.ndim > 1

    # without broadcasting and without middle axes in B every leading axis is A's
    fast = not requires_broadcasting and b.ndim <= 2
    sources, agree = _coordinate_plan(a.shape, b.shape)

    a_pos, b_pos, coords = [], [], []
    for i, ca in enumerate(a_coords):
        matches = lookup.get(ca[-1])
        if not matches:
            continue
        prefix = tuple(ca[:-1])
        for j in matches:
            cb = b_coords[j]
            column = (cb[-1],) if has_column else (0,)
            if fast:
                coord = prefix + column
            elif any(ca[x] != cb[y] for x, y in agree):
                continue
            else:
                coord = tuple(ca[axis] if operand == 0 else cb[axis] for operand, axis in sources) + column
            a_pos.append(i)
            b_pos.append(j)
            coords.append(coord)
    return a_pos, b_pos, coords


def _products(a: SparseTensor, b: SparseTensor, a_pos: list, b_pos: list, dtype) -> np.ndarray:
    """Products of the matched pairs, computed in the work dtype (integers wrap like numpy)."""
    work = _work_dtype(dtype)
    a_pos = np.asarray(a_pos, dtype=np.intp)
    b_pos = np.asarray(b_pos, dtype=np.intp)
    return a.values[a_pos].astype(work) * b.values[b_pos].astype(work)


def _accumulate_dict(coords: list, products: np.ndarray, shape, dtype) -> SparseTensor:
    # one slot per distinct coordinate, filled in pair order
    slots = {}
    slot_ids = [slots.setdefault(c, len(slots)) for c in coords]
    sums = np.zeros(len(slots), dtype=products.dtype)
    np.add.at(sums, np.asarray(slot_ids, dtype=np.intp), products)

    out_indices = []
    out_slots = []
    for idx, slot in sorted(slots.items()):
        out_indices.append(idx)
        out_slots.append(slot)
    values = sums[np.asarray(out_slots, dtype=np.intp)].astype(dtype)
    indices = np.array(out_indices, dtype=np.intp).reshape((len(out_slots), len(shape))).T

    # products may cancel out exactly
    keep = values != 0
    return SparseTensor._from_canonical(
        shape, np.ascontiguousarray(values[keep]), np.ascontiguousarray(indices[:, keep])
    )


def _accumulate_dense(coords: list, products: np.ndarray, shape, dtype) -> np.ndarray:
    out = np.zeros(shape, dtype=products.dtype)
    if coords:
        # unbuffered, so repeated coordinates add up in pair order
        np.add.at(out, tuple(np.array(coords, dtype=np.intp).T), products)
    return out.astype(dtype)


def multiply(a, b, accumulate: str = None) -> SparseTensor:
    """
    Contract the last axis of a against the first axis of b.

    Args:
        a, b: SparseTensors, or dense arrays which are converted after the
            shapes have been checked.
        accumulate (str): "dict", "dense" or "auto". Defaults to the
            configured accumulator.

    Returns:
        SparseTensor: the contraction, of shape analyze(a.shape, b.shape).result_shape

    Raises:
        EmptyShape: If either operand has rank 0.
        IncompatibleDimensions: If the shapes cannot be contracted.
    """
    accumulate = backend_selection.ACCUMULATOR if accumulate is None else accumulate
    if accumulate not in backend_selection.ACCUMULATORS:
        raise ValueError(f"Unknown accumulator {accumulate}")

    a, b, verdict = _prepare(a, b)
    shape = verdict.result_shape
    dtype = np.result_type(a.dtype, b.dtype)
    lookup = _index_by_coordinate(b.indices[0].tolist())

    if accumulate == "auto":
        matches = sum(len(lookup.get(k, ())) for k in a.indices[-1].tolist())
        size = prod(shape)
        dense = size > 0 and matches >= backend_selection.DENSE_FILL_RATIO * size
        accumulate = "dense" if dense else "dict"
        logger.debug("multiply: %d expected matches for result size %d", matches, size)

    logger.debug(
        "multiply: %s x %s -> %s, nnz %d x %d, broadcasting=%s, accumulator=%s",
        a.shape, b.shape, shape, a.nnz, b.nnz, verdict.requires_broadcasting, accumulate,
    )
    a_pos, b_pos, coords = _match(a, b, lookup, verdict.requires_broadcasting)
    products = _products(a, b, a_pos, b_pos, dtype)
    if accumulate == "dense":
        return to_sparse(_accumulate_dense(coords, products, shape, dtype), workers=1)
    return _accumulate_dict(coords, products, shape, dtype)


def try_multiply(a, b, accumulate: str = None) -> Result:
    """multiply, returning a Result instead of raising a SparseError."""
    return capture(multiply, a, b, accumulate=accumulate)


def multiply_to_dense(a, b) -> np.ndarray:
    """
    Contract a and b through the sparse engine but accumulate straight into a
    dense numpy array, for callers that want a dense result anyway.
    """
    a, b, verdict = _prepare(a, b)
    dtype = np.result_type(a.dtype, b.dtype)
    lookup = _index_by_coordinate(b.indices[0].tolist())
    a_pos, b_pos, coords = _match(a, b, lookup, verdict.requires_broadcasting)
    products = _products(a, b, a_pos, b_pos, dtype)
    return _accumulate_dense(coords, products, verdict.result_shape, dtype)
