"""
Backend buffer interface definitions.

A backend buffer owns one raw allocation in one memory domain and knows only
its own layout and location. The matrix facade never touches array memory
directly; it goes through this contract.

Notes
-----
- The four concrete variants (host-dense, device-dense, host-sparse,
  device-sparse) live in the infrastructure layer.
- `allocations` is a diagnostics counter incremented every time the buffer
  reallocates its payload storage. Grow-only resizes that fit the current
  capacity must leave it unchanged.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from ._state import Location, MatrixFormat


@runtime_checkable
class IBackendBuffer(Protocol):
    """
    Backend buffer contract consumed by the matrix facade.

    Notes
    -----
    Dense buffers are column-major. Sparse buffers are CSC or CSR and reserve
    a non-zero capacity ahead of use.
    """

    @property
    def location(self) -> Location:
        """`Location.HOST` or `Location.DEVICE`."""
        ...

    @property
    def device_index(self) -> int:
        """Accelerator index, or -1 for host buffers."""
        ...

    @property
    def matrix_format(self) -> MatrixFormat:
        """Storage layout of this buffer."""
        ...

    @property
    def num_rows(self) -> int: ...

    @property
    def num_cols(self) -> int: ...

    @property
    def owns_buffer(self) -> bool:
        """False for non-owning views that alias another buffer."""
        ...

    @property
    def allocations(self) -> int:
        """Number of payload (re)allocations performed so far."""
        ...

    @property
    def capacity(self) -> int:
        """Allocated payload size in elements (dense) or non-zeros (sparse)."""
        ...

    @property
    def dtype(self) -> Any: ...

    def allocate(self, rows: int, cols: int, nnz: int = 0) -> None:
        """Allocate fresh storage for `rows` x `cols` (and `nnz` non-zeros)."""
        ...

    def read(self, row: int, col: int) -> float:
        """Return element (row, col)."""
        ...

    def write(self, row: int, col: int, value: float) -> None:
        """Set element (row, col)."""
        ...

    def bulk_copy_to(self, other: "IBackendBuffer") -> None:
        """Copy the whole payload into `other`, resizing it as needed."""
        ...

    def resize(
        self, rows: int, cols: int, nnz_reserve: int = 0, grow_only: bool = True
    ) -> None:
        """Change logical dimensions, reallocating only when required."""
        ...

    def reshape(self, rows: int, cols: int) -> None:
        """Relabel dimensions in place; the element count must not change."""
        ...

    def element_count(self) -> int:
        """Logical number of elements (rows * cols)."""
        ...

    def nz_count(self) -> int:
        """Number of stored non-zeros (dense: element count)."""
        ...

    def is_empty(self) -> bool:
        """True if the buffer has zero rows or zero columns."""
        ...

    def release(self) -> None:
        """Drop the payload. Non-owning buffers only forget their reference."""
        ...
