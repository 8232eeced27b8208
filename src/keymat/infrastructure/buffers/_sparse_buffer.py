"""
Compressed sparse backend buffers (CSC / CSR).

This module defines the two sparse buffer variants:

- `HostSparseBuffer`: payload arrays are NumPy arrays, exposed through
  `scipy.sparse`.
- `DeviceSparseBuffer`: payload arrays are device arrays, exposed through the
  runtime's sparse module (`cupyx.scipy.sparse` in production).

Storage model
-------------
A sparse buffer owns three arrays:

- `values`  : non-zero values, with a reserved capacity (``capacity >= nnz``)
- `indices` : minor indices (row for CSC, column for CSR), same capacity
- `indptr`  : ``major + 1`` offsets into `values` / `indices`

Only the first ``nnz`` slots of `values` and `indices` are meaningful. Indices
are kept sorted within each major slice so single-element lookups can use a
binary search.

Growing past the reserved capacity doubles it when the buffer owns its
storage. Non-owning views (column slices of CSC storage) cannot grow and raise
`CapacityExceededError` instead.
"""

from __future__ import annotations

import contextlib
from abc import ABC, abstractmethod
from typing import Any, ContextManager, Optional

import numpy as np
import scipy.sparse as sp

from ...domain._errors import (
    CapacityExceededError,
    InvalidStateError,
    ShapeMismatchError,
)
from ...domain._state import Location, MatrixFormat
from ._dense_buffer import _check_dims, _check_slice
from ._transfer import copy_array_between

INDEX_DTYPE = np.int32


class _SparseBufferBase(ABC):
    """Shared implementation of the sparse buffer variants."""

    _location: Location = Location.HOST

    def __init__(
        self,
        matrix_format: MatrixFormat = MatrixFormat.SPARSE_CSC,
        dtype: Any = np.float32,
    ) -> None:
        if not matrix_format.is_sparse:
            raise ValueError(f"sparse buffer requires a sparse format, got {matrix_format}")
        self._format = matrix_format
        self._dtype = np.dtype(dtype)
        self._rows = 0
        self._cols = 0
        self._nnz = 0
        xp = self._xp
        self._values = xp.zeros(0, dtype=self._dtype)
        self._indices = xp.zeros(0, dtype=INDEX_DTYPE)
        self._indptr = xp.zeros(1, dtype=INDEX_DTYPE)
        self._owns = True
        self._base: Optional["_SparseBufferBase"] = None
        self._allocations = 0

    # ------------------------------------------------------------------
    # Variant hooks
    # ------------------------------------------------------------------
    @property
    @abstractmethod
    def _xp(self) -> Any:
        ...

    @property
    @abstractmethod
    def _sp(self) -> Any:
        """Sparse matrix module matching `_xp`."""
        ...

    @abstractmethod
    def _scope(self) -> ContextManager[Any]:
        ...

    @abstractmethod
    def _spawn(self) -> "_SparseBufferBase":
        ...

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def location(self) -> Location:
        return self._location

    @property
    def device_index(self) -> int:
        return -1

    @property
    def runtime(self) -> Any:
        return None

    @property
    def xp(self) -> Any:
        return self._xp

    @property
    def sparse_module(self) -> Any:
        return self._sp

    @property
    def matrix_format(self) -> MatrixFormat:
        return self._format

    @property
    def num_rows(self) -> int:
        return self._rows

    @property
    def num_cols(self) -> int:
        return self._cols

    @property
    def shape(self) -> tuple[int, int]:
        return (self._rows, self._cols)

    @property
    def owns_buffer(self) -> bool:
        return self._owns

    @property
    def allocations(self) -> int:
        return self._allocations

    @property
    def capacity(self) -> int:
        return int(self._values.size)

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def nbytes(self) -> int:
        """Bytes held by the three payload arrays."""
        return int(
            self._values.size * self._dtype.itemsize
            + self._indices.size * np.dtype(INDEX_DTYPE).itemsize
            + self._indptr.size * np.dtype(INDEX_DTYPE).itemsize
        )

    @property
    def values(self) -> Any:
        return self._values[: self._nnz]

    @property
    def indices(self) -> Any:
        return self._indices[: self._nnz]

    @property
    def indptr(self) -> Any:
        return self._indptr

    @property
    def matrix(self) -> Any:
        """
        The payload as a `scipy.sparse`-compatible matrix.

        The matrix shares the buffer's arrays; use it for reads and kernels,
        not for structural edits.
        """
        cls = self._sp.csc_matrix if self._format is MatrixFormat.SPARSE_CSC else self._sp.csr_matrix
        return cls(
            (self.values, self.indices, self._indptr),
            shape=(self._rows, self._cols),
            copy=False,
        )

    def _major(self, rows: int, cols: int) -> int:
        return cols if self._format is MatrixFormat.SPARSE_CSC else rows

    def _minor(self, rows: int, cols: int) -> int:
        return rows if self._format is MatrixFormat.SPARSE_CSC else cols

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------
    def _require_owner(self, op: str) -> None:
        if not self._owns:
            raise InvalidStateError(op, "a non-owning view cannot change its sparsity structure")

    def allocate(self, rows: int, cols: int, nnz: int = 0) -> None:
        """Allocate an all-zero matrix reserving room for `nnz` non-zeros."""
        self._require_owner("allocate")
        rows, cols = _check_dims(rows, cols)
        with self._scope():
            xp = self._xp
            self._values = xp.zeros(int(nnz), dtype=self._dtype)
            self._indices = xp.zeros(int(nnz), dtype=INDEX_DTYPE)
            self._indptr = xp.zeros(self._major(rows, cols) + 1, dtype=INDEX_DTYPE)
        self._rows, self._cols, self._nnz = rows, cols, 0
        self._allocations += 1

    def reserve(self, nnz: int) -> None:
        """Make room for at least `nnz` non-zeros, keeping current entries."""
        self._ensure_capacity(int(nnz))

    def _ensure_capacity(self, required: int) -> None:
        capacity = self.capacity
        if required <= capacity:
            return
        if not self._owns:
            raise CapacityExceededError(required, capacity)
        new_capacity = max(required, 2 * capacity)
        with self._scope():
            xp = self._xp
            values = xp.zeros(new_capacity, dtype=self._dtype)
            indices = xp.zeros(new_capacity, dtype=INDEX_DTYPE)
            values[: self._nnz] = self._values[: self._nnz]
            indices[: self._nnz] = self._indices[: self._nnz]
        self._values, self._indices = values, indices
        self._allocations += 1

    def load_arrays(
        self, values: Any, indices: Any, indptr: Any, rows: int, cols: int
    ) -> None:
        """
        Replace the contents with compressed arrays in this buffer's memory
        domain and layout. Capacity is reused when it suffices.
        """
        self._require_owner("load_arrays")
        rows, cols = _check_dims(rows, cols)
        if int(indptr.size) != self._major(rows, cols) + 1:
            raise ShapeMismatchError(
                "load_arrays", (self._major(rows, cols) + 1,), (int(indptr.size),)
            )
        nnz = int(indptr[-1])
        self._nnz = min(self._nnz, nnz)
        self._ensure_capacity(nnz)
        with self._scope():
            xp = self._xp
            self._values[:nnz] = xp.asarray(values[:nnz], dtype=self._dtype)
            self._indices[:nnz] = xp.asarray(indices[:nnz], dtype=INDEX_DTYPE)
            self._indptr = xp.array(indptr, dtype=INDEX_DTYPE, copy=True)
        self._rows, self._cols, self._nnz = rows, cols, nnz

    def load_matrix(self, m: Any) -> None:
        """Replace the contents with a sparse matrix from this buffer's sparse module."""
        if self._format is MatrixFormat.SPARSE_CSC:
            m = m.tocsc(copy=True)
        else:
            m = m.tocsr(copy=True)
        m.sum_duplicates()
        self.load_arrays(m.data, m.indices, m.indptr, m.shape[0], m.shape[1])

    def reset(self, rows: Optional[int] = None, cols: Optional[int] = None) -> None:
        """Drop every non-zero, optionally relabel, and keep the reserved capacity."""
        self._require_owner("reset")
        if rows is not None or cols is not None:
            self._rows, self._cols = _check_dims(
                self._rows if rows is None else rows, self._cols if cols is None else cols
            )
        with self._scope():
            self._indptr = self._xp.zeros(self._major(self._rows, self._cols) + 1, dtype=INDEX_DTYPE)
        self._nnz = 0

    def adopt_arrays(
        self, values: Any, indices: Any, indptr: Any, rows: int, cols: int
    ) -> None:
        """Take ownership of exactly-sized compressed arrays."""
        self._require_owner("adopt_arrays")
        self._values, self._indices, self._indptr = values, indices, indptr
        self._rows, self._cols = int(rows), int(cols)
        self._nnz = int(values.size)
        self._allocations += 1

    def release(self) -> None:
        with self._scope():
            xp = self._xp
            self._values = xp.zeros(0, dtype=self._dtype)
            self._indices = xp.zeros(0, dtype=INDEX_DTYPE)
            self._indptr = xp.zeros(1, dtype=INDEX_DTYPE)
        self._rows = self._cols = self._nnz = 0
        self._base = None

    # ------------------------------------------------------------------
    # Element access
    # ------------------------------------------------------------------
    def _locate(self, row: int, col: int) -> tuple[int, int, bool]:
        if not (0 <= row < self._rows and 0 <= col < self._cols):
            raise IndexError(
                f"index ({row}, {col}) out of range for {self._rows} x {self._cols} matrix"
            )
        major, minor = (col, row) if self._format is MatrixFormat.SPARSE_CSC else (row, col)
        start, end = int(self._indptr[major]), int(self._indptr[major + 1])
        pos = start + int(self._xp.searchsorted(self._indices[start:end], minor))
        found = pos < end and int(self._indices[pos]) == minor
        return major, pos, found

    def read(self, row: int, col: int) -> float:
        _, pos, found = self._locate(row, col)
        return float(self._values[pos].item()) if found else 0.0

    def write(self, row: int, col: int, value: float) -> None:
        """
        Set one element.

        Writing an existing entry never reallocates. Inserting a new non-zero
        may grow the reserved capacity, which raises `CapacityExceededError`
        for non-owning views.
        """
        major, pos, found = self._locate(row, col)
        if found:
            self._values[pos] = value
            return
        if value == 0:
            return
        self._ensure_capacity(self._nnz + 1)
        n = self._nnz
        minor = row if self._format is MatrixFormat.SPARSE_CSC else col
        self._values[pos + 1 : n + 1] = self._values[pos:n].copy()
        self._indices[pos + 1 : n + 1] = self._indices[pos:n].copy()
        self._values[pos] = value
        self._indices[pos] = minor
        self._indptr[major + 1 :] += 1
        self._nnz = n + 1

    # ------------------------------------------------------------------
    # Shape management
    # ------------------------------------------------------------------
    def resize(
        self, rows: int, cols: int, nnz_reserve: int = 0, grow_only: bool = True
    ) -> None:
        """
        Change the logical dimensions and the reserved non-zero capacity.

        Entries inside the new bounds are kept. The value/index arrays are
        reallocated only when the reservation outgrows the capacity, or when
        `grow_only` is False and the reservation differs from it.
        """
        self._require_owner("resize")
        rows, cols = _check_dims(rows, cols)
        xp = self._xp
        with self._scope():
            if (rows, cols) != (self._rows, self._cols):
                self._truncate(rows, cols)
            required = max(int(nnz_reserve), self._nnz)
            if grow_only:
                self._ensure_capacity(required)
            elif required != self.capacity:
                values = xp.zeros(required, dtype=self._dtype)
                indices = xp.zeros(required, dtype=INDEX_DTYPE)
                values[: self._nnz] = self._values[: self._nnz]
                indices[: self._nnz] = self._indices[: self._nnz]
                self._values, self._indices = values, indices
                self._allocations += 1

    def _truncate(self, rows: int, cols: int) -> None:
        xp = self._xp
        old_major = self._major(self._rows, self._cols)
        new_major, new_minor = self._major(rows, cols), self._minor(rows, cols)
        keep_major = min(old_major, new_major)

        end = int(self._indptr[keep_major])
        values = self._values[:end].copy()
        indices = self._indices[:end].copy()
        indptr = self._indptr[: keep_major + 1].copy()

        if new_minor < self._minor(self._rows, self._cols) and end > 0:
            mask = indices < new_minor
            kept = xp.concatenate(
                [xp.zeros(1, dtype=INDEX_DTYPE), xp.cumsum(mask).astype(INDEX_DTYPE)]
            )
            indptr = kept[indptr]
            values, indices = values[mask], indices[mask]
        if new_major > keep_major:
            tail = xp.full(new_major - keep_major, int(indptr[-1]), dtype=INDEX_DTYPE)
            indptr = xp.concatenate([indptr, tail])

        nnz = int(values.size)
        self._values[:nnz] = values
        self._indices[:nnz] = indices
        self._indptr = indptr.astype(INDEX_DTYPE)
        self._rows, self._cols, self._nnz = rows, cols, nnz

    def reshape(self, rows: int, cols: int) -> None:
        """
        Reinterpret the matrix with new dimensions in column-major order.

        The non-zero count and the capacity do not change.
        """
        rows, cols = _check_dims(rows, cols)
        if rows * cols != self._rows * self._cols:
            raise ShapeMismatchError(
                "reshape", (self._rows * self._cols,), (rows * cols,)
            )
        if (rows, cols) == (self._rows, self._cols):
            return
        self._require_owner("reshape")
        xp = self._xp
        n = self._nnz
        with self._scope():
            if n == 0:
                self._indptr = xp.zeros(self._major(rows, cols) + 1, dtype=INDEX_DTYPE)
                self._rows, self._cols = rows, cols
                return
            counts = xp.diff(self._indptr)
            major = xp.repeat(xp.arange(counts.size, dtype=np.int64), counts)
            minor = self._indices[:n].astype(np.int64)
            if self._format is MatrixFormat.SPARSE_CSC:
                linear = major * self._rows + minor
            else:
                linear = minor * self._rows + major
            new_row, new_col = linear % rows, linear // rows

            if self._format is MatrixFormat.SPARSE_CSC:
                # Column-major order of the entries is unchanged.
                self._indices[:n] = new_row.astype(INDEX_DTYPE)
                per_major = xp.bincount(new_col, minlength=cols)
            else:
                order = xp.lexsort(xp.stack([new_col, new_row]))
                self._values[:n] = self._values[:n][order]
                self._indices[:n] = new_col[order].astype(INDEX_DTYPE)
                per_major = xp.bincount(new_row, minlength=rows)

            indptr = xp.zeros(per_major.size + 1, dtype=INDEX_DTYPE)
            indptr[1:] = xp.cumsum(per_major)
            self._indptr = indptr
        self._rows, self._cols = rows, cols

    def element_count(self) -> int:
        return self._rows * self._cols

    def nz_count(self) -> int:
        return self._nnz

    def is_empty(self) -> bool:
        return self._rows == 0 or self._cols == 0

    # ------------------------------------------------------------------
    # Copies and views
    # ------------------------------------------------------------------
    def bulk_copy_to(self, other: "_SparseBufferBase") -> None:
        """Copy the compressed payload into `other` (same layout, any domain)."""
        if not isinstance(other, _SparseBufferBase) or other.matrix_format is not self._format:
            raise TypeError(
                f"bulk_copy_to expects a {self._format.value} sparse buffer, "
                f"got {type(other).__name__}"
            )
        other.adopt_arrays(
            copy_array_between(self.values, self, other),
            copy_array_between(self.indices, self, other),
            copy_array_between(self._indptr, self, other),
            self._rows,
            self._cols,
        )

    def column_slice(self, start: int, num_cols: int) -> "_SparseBufferBase":
        """
        Return a non-owning view over columns [start, start + num_cols).

        Only CSC storage keeps a column range contiguous.
        """
        if self._format is not MatrixFormat.SPARSE_CSC:
            raise InvalidStateError(
                "column_slice", "column slices require CSC storage"
            )
        _check_slice(start, num_cols, self._cols)
        lo = int(self._indptr[start])
        hi = int(self._indptr[start + num_cols])
        view = self._spawn()
        view._values = self._values[lo:hi]
        view._indices = self._indices[lo:hi]
        view._indptr = self._indptr[start : start + num_cols + 1] - lo
        view._rows, view._cols, view._nnz = self._rows, num_cols, hi - lo
        view._owns = False
        view._base = self
        return view

    def to_numpy(self) -> np.ndarray:
        """Return a host dense copy as a 2-D NumPy array."""
        dense = self.matrix.toarray()
        if self._location is Location.DEVICE:
            dense = self.runtime.to_host(dense)
        return np.array(dense, copy=True)


class HostSparseBuffer(_SparseBufferBase):
    """Sparse buffer whose arrays live in host memory (`scipy.sparse`)."""

    _location = Location.HOST

    @property
    def _xp(self) -> Any:
        return np

    @property
    def _sp(self) -> Any:
        return sp

    def _scope(self) -> ContextManager[Any]:
        return contextlib.nullcontext()

    def _spawn(self) -> "HostSparseBuffer":
        return HostSparseBuffer(self._format, self._dtype)

    def __repr__(self) -> str:
        return (
            f"HostSparseBuffer({self._format.value}, {self._rows}x{self._cols}, "
            f"nnz={self._nnz}/{self.capacity})"
        )


class DeviceSparseBuffer(_SparseBufferBase):
    """Sparse buffer whose arrays live in accelerator memory."""

    _location = Location.DEVICE

    def __init__(
        self,
        runtime: Any,
        device_index: int,
        matrix_format: MatrixFormat = MatrixFormat.SPARSE_CSC,
        dtype: Any = np.float32,
    ) -> None:
        self._runtime = runtime
        self._device_index = int(device_index)
        super().__init__(matrix_format, dtype)

    @property
    def _xp(self) -> Any:
        return self._runtime.array_module(self._device_index)

    @property
    def _sp(self) -> Any:
        return self._runtime.sparse_module(self._device_index)

    def _scope(self) -> ContextManager[Any]:
        return self._runtime.use_device(self._device_index)

    def _spawn(self) -> "DeviceSparseBuffer":
        return DeviceSparseBuffer(
            self._runtime, self._device_index, self._format, self._dtype
        )

    @property
    def device_index(self) -> int:
        return self._device_index

    @property
    def runtime(self) -> Any:
        return self._runtime

    def __repr__(self) -> str:
        return (
            f"DeviceSparseBuffer(cuda:{self._device_index}, {self._format.value}, "
            f"{self._rows}x{self._cols}, nnz={self._nnz}/{self.capacity})"
        )
