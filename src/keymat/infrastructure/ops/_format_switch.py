"""
Dense <-> sparse conversion kernels.

These functions convert between buffer families *within one memory domain*:
both buffers must live on the same side (and the same accelerator). They use
only the array-module surface shared by NumPy and CuPy, so the same code runs
on host and device buffers.

Conventions
-----------
- Dense to sparse keeps every element whose absolute value is strictly
  greater than `threshold`. With the default threshold 0.0 only exact zeros
  are dropped.
- Sparse to dense always preserves values.
- Entries are emitted in canonical order: sorted by major index, then minor
  index.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from ...domain._state import MatrixFormat
from ..buffers._sparse_buffer import INDEX_DTYPE


def _check_same_domain(src: Any, dst: Any) -> None:
    if src.location is not dst.location or src.device_index != dst.device_index:
        raise ValueError(
            "format conversion requires both buffers in the same memory domain, "
            f"got {src!r} and {dst!r}"
        )


def dense_to_sparse(src: Any, dst: Any, threshold: float = 0.0) -> None:
    """
    Compress a dense buffer into a sparse buffer.

    Parameters
    ----------
    src : dense buffer
        Column-major source.
    dst : sparse buffer
        Receives the non-zeros in its own layout (CSC or CSR). Its reserved
        capacity is reused when large enough.
    threshold : float
        Elements with ``abs(x) <= threshold`` are treated as zero.
    """
    _check_same_domain(src, dst)
    xp = src.xp
    rows, cols = src.shape
    a = src.array
    mask = xp.abs(a) > threshold

    if dst.matrix_format is MatrixFormat.SPARSE_CSC:
        # nonzero() walks row-major; transposing yields column-major order.
        major_idx, minor_idx = xp.nonzero(mask.T)
        values = a[minor_idx, major_idx]
        n_major = cols
    else:
        major_idx, minor_idx = xp.nonzero(mask)
        values = a[major_idx, minor_idx]
        n_major = rows

    indptr = xp.zeros(n_major + 1, dtype=INDEX_DTYPE)
    if major_idx.size:
        indptr[1:] = xp.cumsum(xp.bincount(major_idx, minlength=n_major))
    dst.load_arrays(values, minor_idx.astype(INDEX_DTYPE), indptr, rows, cols)


def sparse_to_dense(src: Any, dst: Any) -> None:
    """
    Expand a sparse buffer into a dense buffer.

    `dst` is resized grow-only, so a previously allocated dense buffer of
    sufficient capacity is reused.
    """
    _check_same_domain(src, dst)
    xp = src.xp
    rows, cols = src.shape
    dst.resize(rows, cols, grow_only=True)
    out = dst.array
    out[...] = 0
    n = src.nz_count()
    if n == 0:
        return
    counts = xp.diff(src.indptr)
    major = xp.repeat(xp.arange(counts.size, dtype=np.int64), counts)
    minor = src.indices
    if src.matrix_format is MatrixFormat.SPARSE_CSC:
        out[minor, major] = src.values
    else:
        out[major, minor] = src.values


def sparse_to_sparse(src: Any, dst: Any) -> None:
    """Convert between CSC and CSR layouts."""
    _check_same_domain(src, dst)
    dst.load_matrix(src.matrix)
