"""
Logic for backend selection.

This module reads the runtime configuration of nsparse from environment
variables, once, on import. The conversion backend is determined by the value
of the environment variable NSPARSE_BACKEND. The available backends are
"serial" (single threaded row-major scan) and "parallel" (the flat index range
is split across a fixed pool of worker threads).

The remaining variables tune the other components:
    NSPARSE_WORKERS            worker count of the parallel backend
    NSPARSE_ACCUMULATOR        "auto", "dict" or "dense" (multiply engine)
    NSPARSE_THRESHOLD          default threshold of is_sparse
    NSPARSE_PARALLEL_MIN_SIZE  arrays smaller than this are always scanned serially
    NSPARSE_DENSE_FILL_RATIO   expected matches / result size at which "auto"
                               switches to the dense accumulator

If an unknown backend or accumulator is specified, a RuntimeError is raised.
Keyword arguments passed to the individual functions always take precedence.
"""
import logging
import os

logger = logging.getLogger(__name__)

ACCUMULATORS = ("auto", "dict", "dense")


BACKEND = os.environ.get("NSPARSE_BACKEND", "serial")


if BACKEND == "serial":
    logger.info("Using serial conversion backend")
    WORKERS = 1

elif BACKEND == "parallel":
    WORKERS = int(os.environ.get("NSPARSE_WORKERS", os.cpu_count() or 1))
    logger.info("Using parallel conversion backend with %d workers", WORKERS)

else:
    raise RuntimeError("Unknown nsparse conversion backend %s" % BACKEND)


ACCUMULATOR = os.environ.get("NSPARSE_ACCUMULATOR", "auto")
if ACCUMULATOR not in ACCUMULATORS:
    raise RuntimeError("Unknown nsparse accumulator %s" % ACCUMULATOR)

SPARSE_THRESHOLD = float(os.environ.get("NSPARSE_THRESHOLD", 0.8))
PARALLEL_MIN_SIZE = int(os.environ.get("NSPARSE_PARALLEL_MIN_SIZE", 1 << 16))
DENSE_FILL_RATIO = float(os.environ.get("NSPARSE_DENSE_FILL_RATIO", 0.25))
