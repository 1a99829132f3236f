"""
This file defines SparseTensor, the compressed representation shared by every
other part of nsparse. Much like a COO array, a SparseTensor only stores the
nonzero values of an N-dimensional array together with one coordinate array
per axis. There are no strides or offsets: the logical layout is always the
row-major order of the coordinates.

A SparseTensor is immutable once constructed. It is created by the converter
(to_sparse), by the multiply engine, or directly from raw coordinates through
the constructor, which merges duplicate coordinates by summing their values.
"""

import operator
from functools import reduce

import numpy as np

from .errors import EmptyShape, InternalConsistency


def prod(x):
    return reduce(operator.mul, x, 1)


class SparseTensor:
    """
    An N-dimensional sparse array in coordinate form.

    Attributes:
        shape: tuple with the size of every axis
        values: (nnz,) read-only array of the stored nonzero values
        indices: (ndim, nnz) read-only integer array, indices[d] holds the
            coordinates of every stored value on axis d

    Invariants, checked on construction:
        1. every axis has exactly nnz coordinates
        2. 0 <= indices[d][k] < shape[d]
        3. no stored value is exactly zero
        4. no two entries share a coordinate tuple
    """

    __slots__ = ("_shape", "_values", "_indices")

    # let numpy defer to __radd__ / __rmatmul__
    __array_ufunc__ = None

    def __init__(self, shape, values, indices):
        """
        Build a tensor from raw coordinates. Entries sharing a coordinate are
        summed, entries whose value is (or sums to) exactly zero are dropped
        and the result is ordered row-major.

        Args:
            shape (tuple): The shape of the tensor.
            values (array_like): 1-D, nnz values.
            indices (array_like): (ndim, nnz) coordinates. Empty coordinates
                may be given as [] for any rank.

        Raises:
            EmptyShape: If shape has rank 0.
            InternalConsistency: If values is not 1-D or the coordinates do
                not fit the shape.
        """
        shape = _as_shape(shape)
        values = np.array(values)
        indices = np.array(indices, dtype=np.intp)
        if indices.size == 0:
            indices = indices.reshape((len(shape), 0))
        SparseTensor.check(shape, indices, values)
        values, indices = _coalesce(values, indices)
        self._init(shape, values, indices)

    def _init(self, shape, values, indices):
        values.setflags(write=False)
        indices.setflags(write=False)
        self._shape = shape
        self._values = values
        self._indices = indices

    @classmethod
    def _from_canonical(cls, shape, values, indices):
        """
        Wrap arrays that are already unique, nonzero and row-major ordered.
        Only lengths and bounds are checked.
        """
        shape = _as_shape(shape)
        indices = np.asarray(indices, dtype=np.intp)
        cls.check(shape, indices, values)
        tensor = cls.__new__(cls)
        tensor._init(shape, values, indices)
        return tensor

    @staticmethod
    def check(shape, indices, values):
        """Check invariants (1) and (2)."""
        if values.ndim != 1:
            raise InternalConsistency(f"values must be 1-D, got {values.ndim}-D")
        if indices.shape != (len(shape), values.size):
            raise InternalConsistency(
                f"expected indices of shape {(len(shape), values.size)}, got {indices.shape}"
            )
        if values.size == 0:
            return
        if (indices < 0).any() or (indices >= np.array(shape)[:, None]).any():
            raise InternalConsistency(f"coordinate out of range for shape {shape}")

    def validate(self):
        """
        Check all four invariants of the stored entries.

        Raises:
            InternalConsistency: If any invariant is violated.
        """
        SparseTensor.check(self._shape, self._indices, self._values)
        if (self._values == 0).any():
            raise InternalConsistency("explicit zero stored in sparse tensor")
        if self.nnz > 1:
            order = np.lexsort(self._indices[::-1])
            sorted_indices = self._indices[:, order]
            same = (sorted_indices[:, 1:] == sorted_indices[:, :-1]).all(axis=0)
            if same.any():
                raise InternalConsistency("duplicate coordinate in sparse tensor")

    @property
    def shape(self):
        return self._shape

    @property
    def values(self):
        return self._values

    @property
    def indices(self):
        return self._indices

    @property
    def dtype(self):
        return self._values.dtype

    @property
    def ndim(self):
        return len(self._shape)

    @property
    def nnz(self):
        """Number of stored (nonzero) entries."""
        return self._values.size

    @property
    def size(self):
        """
        Return the total number of elements in the array, stored or not,
        which is what is expected from the size property of a dense array.
        """
        return prod(self._shape)

    @property
    def density(self):
        return self.nnz / self.size if self.size else 0.0

    def items(self):
        """Iterate over (coordinate tuple, value) pairs in storage order."""
        return zip(map(tuple, self._indices.T.tolist()), self._values.tolist())

    def __repr__(self) -> str:
        return f"SparseTensor(shape={self._shape}, nnz={self.nnz}, dtype={self.dtype})"

    #########################################
    ### ARRAY MANIPULATION AND CONVERSION ###
    #########################################
    def to_dense(self):
        """Convert to a dense numpy array"""
        from .convert import to_dense
        return to_dense(self)

    numpy = to_dense

    #######################
    ### MATH OPERATIONS ###
    #######################
    def __add__(self, other):
        from .ops import add
        return add(self, other)

    __radd__ = __add__

    def __matmul__(self, other):
        from .multiply import multiply
        return multiply(self, other)

    def __rmatmul__(self, other):
        from .multiply import multiply
        return multiply(other, self)


#################
### UTILITIES ###
#################
def _as_shape(shape):
    shape = tuple(int(s) for s in shape)
    if not shape:
        raise EmptyShape("sparse tensors must have rank >= 1")
    if any(s < 0 for s in shape):
        raise InternalConsistency(f"negative axis size in shape {shape}")
    return shape


def _coalesce(values, indices):
    """Sum duplicate coordinates, drop zeros and sort entries row-major."""
    if values.size == 0:
        return values, indices
    # lexsort treats its last key as primary, so axis 0 goes last
    order = np.lexsort(indices[::-1])
    values = values[order]
    indices = indices[:, order]

    starts = np.ones(values.size, dtype=np.bool_)
    starts[1:] = (indices[:, 1:] != indices[:, :-1]).any(axis=0)
    starts = np.flatnonzero(starts)
    values = np.add.reduceat(values, starts)
    indices = indices[:, starts]

    keep = values != 0
    return np.ascontiguousarray(values[keep]), np.ascontiguousarray(indices[:, keep])


###########################
### CONVENIENCE METHODS ###
###########################

def array(a, workers=None):
    """Convenience method for creating sparse tensors from dense data"""
    if isinstance(a, SparseTensor):
        return a
    from .convert import to_sparse
    return to_sparse(a, workers=workers)
