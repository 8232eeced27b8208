"""
Column-major dense backend buffers.

This module defines the two dense buffer variants:

- `HostDenseBuffer`: payload is a NumPy array in host memory.
- `DeviceDenseBuffer`: payload is a device array obtained from an
  `IDeviceRuntime` (CuPy in production).

Storage model
-------------
Each buffer keeps one flat 1-D *capacity* array. The logical matrix occupies
the first ``rows * cols`` elements in column-major order, so element (i, j)
lives at ``flat[j * rows + i]``. Keeping capacity separate from the logical
size is what makes grow-only resizes free: a resize that fits only relabels
the dimensions.

Ownership
---------
A buffer either owns its capacity array or is a non-owning *view* created by
`column_slice`. Column slices of column-major storage are contiguous, so a
view simply aliases ``flat[start * rows:(start + n) * rows]``. Views can read
and write through to the source but can never reallocate.
"""

from __future__ import annotations

import contextlib
from abc import ABC, abstractmethod
from typing import Any, ContextManager, Optional

import numpy as np

from ...domain._errors import InvalidStateError, ShapeMismatchError
from ...domain._state import Location, MatrixFormat
from ._transfer import copy_array_between


class _DenseBufferBase(ABC):
    """
    Shared implementation of the dense buffer variants.

    Subclasses only provide the array module, the device scope and the memory
    location. Everything else (layout, capacity management, views) is common.
    """

    _location: Location = Location.HOST

    def __init__(self, dtype: Any = np.float32) -> None:
        self._dtype = np.dtype(dtype)
        self._rows = 0
        self._cols = 0
        self._flat = self._xp.zeros(0, dtype=self._dtype)
        self._owns = True
        self._base: Optional["_DenseBufferBase"] = None
        self._allocations = 0

    # ------------------------------------------------------------------
    # Variant hooks
    # ------------------------------------------------------------------
    @property
    @abstractmethod
    def _xp(self) -> Any:
        """Array module for this buffer's memory."""
        ...

    @abstractmethod
    def _scope(self) -> ContextManager[Any]:
        """Context that makes this buffer's device current."""
        ...

    @abstractmethod
    def _spawn(self) -> "_DenseBufferBase":
        """Create an empty buffer of the same variant and dtype."""
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
        """Array module operating on this buffer's memory."""
        return self._xp

    @property
    def matrix_format(self) -> MatrixFormat:
        return MatrixFormat.DENSE

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
        return int(self._flat.size)

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def nbytes(self) -> int:
        """Bytes of the allocated capacity."""
        return self.capacity * self._dtype.itemsize

    @property
    def flat(self) -> Any:
        """Active region of the payload, column-major (a view, not a copy)."""
        return self._flat[: self._rows * self._cols]

    @property
    def array(self) -> Any:
        """
        2-D view of the active region.

        The returned array aliases the buffer: writing into it writes the
        matrix.
        """
        return self.flat.reshape((self._rows, self._cols), order="F")

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------
    def _new_flat(self, size: int) -> Any:
        with self._scope():
            flat = self._xp.zeros(int(size), dtype=self._dtype)
        self._allocations += 1
        return flat

    def _require_owner(self, op: str) -> None:
        if not self._owns:
            raise InvalidStateError(op, "a non-owning view cannot reallocate its storage")

    def allocate(self, rows: int, cols: int, nnz: int = 0) -> None:
        """Allocate zero-filled storage for `rows` x `cols` elements."""
        self._require_owner("allocate")
        rows, cols = _check_dims(rows, cols)
        self._flat = self._new_flat(rows * cols)
        self._rows, self._cols = rows, cols

    def adopt(self, flat: Any, rows: int, cols: int) -> None:
        """
        Take ownership of a flat column-major array already in this buffer's
        memory domain.
        """
        self._require_owner("adopt")
        if int(flat.size) < rows * cols:
            raise ShapeMismatchError("adopt", (rows * cols,), (int(flat.size),))
        self._flat = flat
        self._rows, self._cols = int(rows), int(cols)
        self._allocations += 1

    def load_host_array(self, host_array: np.ndarray) -> None:
        """Replace the contents with a 2-D host array (any memory order)."""
        a = np.asarray(host_array, dtype=self._dtype)
        if a.ndim != 2:
            raise ValueError(f"expected a 2-D array, got shape {a.shape}")
        flat = np.ravel(a, order="F").copy()
        if self._location is Location.HOST:
            self.adopt(flat, a.shape[0], a.shape[1])
        else:
            self.adopt(self.runtime.to_device(flat, self.device_index), *a.shape)

    def release(self) -> None:
        with self._scope():
            self._flat = self._xp.zeros(0, dtype=self._dtype)
        self._rows = self._cols = 0
        self._base = None

    # ------------------------------------------------------------------
    # Element access
    # ------------------------------------------------------------------
    def _offset(self, row: int, col: int) -> int:
        if not (0 <= row < self._rows and 0 <= col < self._cols):
            raise IndexError(
                f"index ({row}, {col}) out of range for {self._rows} x {self._cols} matrix"
            )
        return col * self._rows + row

    def read(self, row: int, col: int) -> float:
        return float(self._flat[self._offset(row, col)].item())

    def write(self, row: int, col: int, value: float) -> None:
        self._flat[self._offset(row, col)] = value

    # ------------------------------------------------------------------
    # Shape management
    # ------------------------------------------------------------------
    def resize(
        self, rows: int, cols: int, nnz_reserve: int = 0, grow_only: bool = True
    ) -> None:
        """
        Change the logical dimensions.

        When the new element count fits the capacity (grow-only) or equals it,
        no allocation happens and the overlapping top-left block keeps its
        values. Otherwise a new zeroed allocation is made and no values are
        preserved.
        """
        rows, cols = _check_dims(rows, cols)
        if (rows, cols) == (self._rows, self._cols):
            return
        self._require_owner("resize")

        size = rows * cols
        fits = size <= self.capacity if grow_only else size == self.capacity
        if not fits:
            self._flat = self._new_flat(size)
            self._rows, self._cols = rows, cols
            return

        if rows == self._rows or self._rows == 0:
            # Column-major: the leading columns stay where they are.
            self._rows, self._cols = rows, cols
            return

        keep_r, keep_c = min(rows, self._rows), min(cols, self._cols)
        overlap = self.array[:keep_r, :keep_c].copy()
        self._rows, self._cols = rows, cols
        self.array[:keep_r, :keep_c] = overlap

    def reshape(self, rows: int, cols: int) -> None:
        rows, cols = _check_dims(rows, cols)
        if rows * cols != self._rows * self._cols:
            raise ShapeMismatchError(
                "reshape", (self._rows * self._cols,), (rows * cols,)
            )
        self._rows, self._cols = rows, cols

    def element_count(self) -> int:
        return self._rows * self._cols

    def nz_count(self) -> int:
        return self.element_count()

    def is_empty(self) -> bool:
        return self._rows == 0 or self._cols == 0

    # ------------------------------------------------------------------
    # Copies and views
    # ------------------------------------------------------------------
    def bulk_copy_to(self, other: "_DenseBufferBase") -> None:
        """
        Copy the logical payload into `other`, which may live in another
        memory domain. `other` receives an exactly-sized fresh allocation.
        """
        if not isinstance(other, _DenseBufferBase):
            raise TypeError(
                f"bulk_copy_to expects a dense buffer, got {type(other).__name__}"
            )
        other.adopt(copy_array_between(self.flat, self, other), self._rows, self._cols)

    def column_slice(self, start: int, num_cols: int) -> "_DenseBufferBase":
        """Return a non-owning view over columns [start, start + num_cols)."""
        _check_slice(start, num_cols, self._cols)
        view = self._spawn()
        view._flat = self._flat[start * self._rows : (start + num_cols) * self._rows]
        view._rows, view._cols = self._rows, num_cols
        view._owns = False
        view._base = self
        return view

    def to_numpy(self) -> np.ndarray:
        """Return a host copy of the matrix as a 2-D NumPy array."""
        a = self.array
        if self._location is Location.DEVICE:
            a = self.runtime.to_host(a)
        return np.array(a, copy=True)


class HostDenseBuffer(_DenseBufferBase):
    """Dense buffer whose payload is a NumPy array in host memory."""

    _location = Location.HOST

    @property
    def _xp(self) -> Any:
        return np

    def _scope(self) -> ContextManager[Any]:
        return contextlib.nullcontext()

    def _spawn(self) -> "HostDenseBuffer":
        return HostDenseBuffer(self._dtype)

    def __repr__(self) -> str:
        kind = "owned" if self._owns else "view"
        return f"HostDenseBuffer({self._rows}x{self._cols}, {self._dtype}, {kind})"


class DeviceDenseBuffer(_DenseBufferBase):
    """
    Dense buffer whose payload lives in accelerator memory.

    Parameters
    ----------
    runtime : IDeviceRuntime
        Runtime providing the array module and the transfer primitives.
    device_index : int
        Accelerator that owns the allocation.
    dtype : Any
        Element type.
    """

    _location = Location.DEVICE

    def __init__(self, runtime: Any, device_index: int, dtype: Any = np.float32) -> None:
        self._runtime = runtime
        self._device_index = int(device_index)
        super().__init__(dtype)

    @property
    def _xp(self) -> Any:
        return self._runtime.array_module(self._device_index)

    def _scope(self) -> ContextManager[Any]:
        return self._runtime.use_device(self._device_index)

    def _spawn(self) -> "DeviceDenseBuffer":
        return DeviceDenseBuffer(self._runtime, self._device_index, self._dtype)

    @property
    def device_index(self) -> int:
        return self._device_index

    @property
    def runtime(self) -> Any:
        return self._runtime

    def __repr__(self) -> str:
        kind = "owned" if self._owns else "view"
        return (
            f"DeviceDenseBuffer(cuda:{self._device_index}, {self._rows}x{self._cols}, "
            f"{self._dtype}, {kind})"
        )


def _check_dims(rows: int, cols: int) -> tuple[int, int]:
    rows, cols = int(rows), int(cols)
    if rows < 0 or cols < 0:
        raise ValueError(f"dimensions must be non-negative, got {rows} x {cols}")
    return rows, cols


def _check_slice(start: int, num_cols: int, total: int) -> None:
    if start < 0 or num_cols < 0 or start + num_cols > total:
        raise IndexError(
            f"column slice [{start}, {start + num_cols}) out of range for {total} columns"
        )
