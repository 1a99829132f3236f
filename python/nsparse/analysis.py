"""
Multiplicability analysis of a pair of shapes.

The contraction always pairs the last axis of A with the first axis of B, like
a matrix multiply: for A of shape (*outer, k) and B of shape (k, *middle, n)
the result has shape (*batch, n) where batch is outer broadcast against middle
(numpy trailing alignment). The contracted axis itself never broadcasts.

An axis that only one operand carries is owned by that operand and passes
through unchanged. Broadcasting is only needed where both operands carry an
axis and their sizes differ with one of them being 1.
"""
from dataclasses import dataclass
from typing import Optional

from .errors import EmptyShape, IncompatibleDimensions


@dataclass(frozen=True)
class MultiplicabilityVerdict:
    compatible: bool
    requires_broadcasting: bool
    result_shape: Optional[tuple] = None

    def __bool__(self):
        return self.compatible


INCOMPATIBLE = MultiplicabilityVerdict(False, False)


def align_axes(shape_a, shape_b):
    """
    Right-align the leading axes of A (all but the last) with the middle axes
    of B (all but the first and last).

    Returns:
        list: one (axis_a, axis_b) pair per leading axis of the result, where
            an entry is None if that operand does not carry the axis.
    """
    outer = len(shape_a) - 1
    middle = max(len(shape_b) - 2, 0)
    rank = max(outer, middle)
    pairs = []
    for d in range(rank):
        ia = d - (rank - outer)
        ib = d - (rank - middle)
        pairs.append((ia if ia >= 0 else None, 1 + ib if ib >= 0 else None))
    return pairs


def analyze(shape_a, shape_b) -> MultiplicabilityVerdict:
    """
    Decide whether shape_a and shape_b can be contracted and whether
    broadcasting is needed. Never raises.
    """
    shape_a, shape_b = tuple(shape_a), tuple(shape_b)
    if not shape_a or not shape_b:
        return INCOMPATIBLE
    if shape_a[-1] != shape_b[0]:
        return INCOMPATIBLE

    broadcasting = False
    out = []
    for axis_a, axis_b in align_axes(shape_a, shape_b):
        if axis_b is None:
            out.append(shape_a[axis_a])
            continue
        if axis_a is None:
            out.append(shape_b[axis_b])
            continue

        size_a, size_b = shape_a[axis_a], shape_b[axis_b]
        if size_a == size_b:
            out.append(size_a)
        elif size_a == 1:
            broadcasting = True
            out.append(size_b)
        elif size_b == 1:
            broadcasting = True
            out.append(size_a)
        else:
            return INCOMPATIBLE

    # a rank 1 B only carries the contracted axis, its column axis has size 1
    out.append(shape_b[-1] if len(shape_b) > 1 else 1)
    return MultiplicabilityVerdict(True, broadcasting, tuple(out))


def check_multiplicable(shape_a, shape_b) -> MultiplicabilityVerdict:
    """
    Like analyze, but raise instead of returning an incompatible verdict.

    Raises:
        EmptyShape: If either shape has rank 0.
        IncompatibleDimensions: If the shapes cannot be contracted.
    """
    shape_a, shape_b = tuple(shape_a), tuple(shape_b)
    if not shape_a or not shape_b:
        raise EmptyShape(f"cannot contract shapes {shape_a} and {shape_b}: rank 0 operand")
    verdict = analyze(shape_a, shape_b)
    if not verdict.compatible:
        raise IncompatibleDimensions(
            f"cannot contract shapes {shape_a} and {shape_b}: "
            f"last axis of A must match first axis of B and other axes must broadcast"
        )
    return verdict


def result_shape(shape_a, shape_b) -> tuple:
    return check_multiplicable(shape_a, shape_b).result_shape
