"""
Matrix facade: one logical matrix over four possible backing stores.

`Matrix` presents a single matrix type while owning up to four physically
distinct backend buffers (host-dense, device-dense, host-sparse,
device-sparse). Before any operation touches data, the facade

(a) asks the `DeviceArbitrator` to pick or confirm a device,
(b) transfers data if the authoritative buffer is not on that device,
(c) switches format if the operation needs the other buffer family,
(d) delegates to the dense or sparse control path of the operation.

State lives in a `StorageCell` (location, format, buffers, generation). Even
observably read-only operations may migrate data by mutating the cell; this
is the only interior mutability of a matrix.

Views
-----
`column_slice` returns a non-owning `Matrix` aliasing a contiguous column
range of the source's buffer. Writes through a view are seen by the source.
A view records the source's generation and aliased buffer; once the source is
resized, reshaped, switched, moved, cleared or stops holding that buffer, any
further use of the view raises `ViewInvalidatedError`.

Threading
---------
A matrix is not thread-safe. Callers serialize access per matrix (and per
view/source pair).
"""

from __future__ import annotations

import logging
import sys
import warnings
from typing import Any, Optional, Union

import numpy as np
import scipy.sparse as sp

from ...domain._errors import (
    InvalidStateError,
    ShapeMismatchError,
    ViewInvalidatedError,
)
from ...domain._state import Location, MatrixFormat, MatrixType
from ...domain.device._device import CPUDEVICE, Device
from .._config import get_default_arbitrator
from ..buffers import make_buffer
from ..buffers._dense_buffer import HostDenseBuffer
from ..buffers._sparse_buffer import HostSparseBuffer
from ..ops._format_switch import dense_to_sparse, sparse_to_dense, sparse_to_sparse
from ._storage import StorageCell
from .mixins.arithmetic import MatrixMixinArithmetic
from .mixins.reduction import MatrixMixinReduction

logger = logging.getLogger(__name__)

DeviceSpec = Union[Device, str, int, None]

_HOST = Location.HOST
_DEVICE = Location.DEVICE
_CPU = Device("cpu")


def _side(device: Device) -> Location:
    return _HOST if device.is_cpu() else _DEVICE


def _check_dtype(dtype: Any) -> np.dtype:
    dt = np.dtype(dtype)
    if dt not in (np.dtype(np.float32), np.dtype(np.float64)):
        raise TypeError(f"Matrix supports float32 and float64 elements, got {dt}")
    return dt


def _resolve_format(
    matrix_type: Union[MatrixType, str, None],
    matrix_format: Union[MatrixFormat, str, None],
) -> Optional[MatrixFormat]:
    mtype = MatrixType(matrix_type) if matrix_type is not None else None
    if matrix_format is not None:
        fmt = MatrixFormat(matrix_format)
        if mtype not in (None, MatrixType.UNDETERMINED) and fmt.matrix_type is not mtype:
            raise ValueError(f"format {fmt.value} does not belong to matrix type {mtype.value}")
        return fmt
    if mtype is None or mtype is MatrixType.UNDETERMINED:
        return None
    return MatrixFormat.default_for(mtype)


class Matrix(MatrixMixinArithmetic, MatrixMixinReduction):
    """
    Logical matrix with lazy placement and format management.

    Parameters
    ----------
    rows, cols : int, optional
        Dimensions. Omit both to build a blank (unallocated, format
        undetermined) matrix.
    device : Device | str | int | None
        Preferred placement: "cpu" (or a negative id), "cuda:N" (or N), or
        "auto" / `AUTOPLACEMATRIX` / None to let the arbitrator decide.
    matrix_type : MatrixType | str, optional
        "dense" (default when dimensions are given) or "sparse".
    matrix_format : MatrixFormat | str, optional
        "dense", "csc" (default sparse layout) or "csr".
    dtype : optional
        float32 (default) or float64.
    nnz_reserve : int, optional
        Non-zero capacity reserved by a sparse matrix.
    name : str
        Name used by serialization.
    arbitrator : DeviceArbitrator, optional
        Placement arbitrator. Defaults to the process-wide one.
    """

    def __init__(
        self,
        rows: Optional[int] = None,
        cols: Optional[int] = None,
        *,
        device: DeviceSpec = None,
        matrix_type: Union[MatrixType, str, None] = None,
        matrix_format: Union[MatrixFormat, str, None] = None,
        dtype: Any = None,
        nnz_reserve: Optional[int] = None,
        name: str = "",
        arbitrator: Any = None,
    ) -> None:
        self._arbitrator = arbitrator if arbitrator is not None else get_default_arbitrator()
        config = self._arbitrator.config
        self._dtype = _check_dtype(dtype if dtype is not None else config.dtype)
        self._preferred = Device.coerce(device if device is not None else config.default_device)
        self._storage = StorageCell()
        self._rows = 0
        self._cols = 0
        self._name = str(name)
        self._num_times_device_changed = 0
        self._num_times_matrix_type_changed = 0
        self._view_of: Optional["Matrix"] = None
        self._view_side: Optional[Location] = None
        self._view_aliased: Any = None
        self._view_generation = 0
        self._warned_element_access = False

        fmt = _resolve_format(matrix_type, matrix_format)
        if rows is None and cols is None:
            if fmt is not None:
                self._storage.set_format(fmt)
            return

        rows, cols = int(rows or 0), int(cols or 0)
        if rows < 0 or cols < 0:
            raise ValueError(f"dimensions must be non-negative, got {rows} x {cols}")
        self._allocate_on(
            self._arbitrator.resolve(self._preferred),
            rows,
            cols,
            fmt or MatrixFormat.DENSE,
            nnz_reserve,
        )

    # ------------------------------------------------------------------
    # Internal state access
    # ------------------------------------------------------------------
    @property
    def _cell(self) -> StorageCell:
        """The storage cell, after checking that a view is still valid."""
        if self._view_of is not None:
            source = self._view_of._cell
            if (
                source.generation != self._view_generation
                or source.buffers.get(self._view_side) is not self._view_aliased
            ):
                raise ViewInvalidatedError(
                    "column_slice", self._view_generation, source.generation
                )
        return self._storage

    def _blank_like(self) -> "Matrix":
        return type(self)(
            device=self._preferred,
            dtype=self._dtype,
            name=self._name,
            arbitrator=self._arbitrator,
        )

    def _new_buffer(self, device: Device, fmt: MatrixFormat) -> Any:
        return make_buffer(
            fmt,
            _side(device),
            self._dtype,
            runtime=self._arbitrator.runtime,
            device_index=device.index if device.is_cuda() else -1,
        )

    def _allocate_on(
        self,
        device: Device,
        rows: int,
        cols: int,
        fmt: MatrixFormat,
        nnz_reserve: Optional[int] = None,
    ) -> None:
        if nnz_reserve is None:
            nnz_reserve = self._arbitrator.config.default_nnz_reserve if fmt.is_sparse else 0
        buf = self._new_buffer(device, fmt)
        buf.allocate(rows, cols, nnz_reserve)
        self._storage.set_format(fmt)
        self._storage.install(_side(device), buf)
        self._rows, self._cols = rows, cols

    def _install_host_buffer(self, host_buf: Any, device: Device) -> None:
        """Install a filled host buffer, copying it to `device` first if needed."""
        if device.is_cpu():
            buf = host_buf
        else:
            buf = self._new_buffer(device, host_buf.matrix_format)
            host_buf.bulk_copy_to(buf)
        self._storage.set_format(host_buf.matrix_format)
        self._storage.install(_side(device), buf)
        self._rows, self._cols = host_buf.shape

    def _device_of_side(self, side: Location) -> Device:
        if side is _HOST:
            return _CPU
        return Device(f"cuda:{self._cell.buffer(_DEVICE).device_index}")

    def _holds(self, device: Device) -> bool:
        cell = self._cell
        if device.is_cpu():
            return cell.location.includes(_HOST)
        if not cell.location.includes(_DEVICE):
            return False
        return cell.buffer(_DEVICE).device_index == device.index

    def _work_side(self) -> Location:
        """Side used when either would do: the device side when valid."""
        return _DEVICE if self._cell.location.includes(_DEVICE) else _HOST

    def _current_device(self) -> Device:
        return Device.from_id(self.device_id)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def arbitrator(self) -> Any:
        return self._arbitrator

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
    def num_elements(self) -> int:
        return self._rows * self._cols

    def has_no_elements(self) -> bool:
        return self.num_elements == 0

    def is_empty(self) -> bool:
        """True if the matrix has zero rows or zero columns."""
        return self._rows == 0 or self._cols == 0

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def location(self) -> Location:
        return self._cell.location

    @property
    def matrix_type(self) -> MatrixType:
        return self._cell.matrix_type

    @property
    def matrix_format(self) -> Optional[MatrixFormat]:
        return self._cell.matrix_format

    @property
    def device_id(self) -> int:
        """
        Numeric id of where the matrix lives: the preferred id while
        unallocated, the accelerator id for DEVICE or BOTH, and `CPUDEVICE`
        for HOST.
        """
        cell = self._cell
        if cell.location is Location.UNALLOCATED:
            return self._preferred.id
        if cell.location is _HOST:
            return CPUDEVICE
        return cell.buffer(_DEVICE).device_index

    @property
    def device(self) -> Device:
        return self._current_device()

    @property
    def preferred_device(self) -> Device:
        return self._preferred

    def set_preferred_device(self, device: DeviceSpec) -> None:
        self._preferred = Device.coerce(device)

    def resident_devices(self) -> list[Device]:
        """Devices currently holding valid data (empty when unallocated)."""
        return [self._device_of_side(s) for s in self._cell.location.sides()]

    @property
    def owns_buffer(self) -> bool:
        return self._view_of is None

    @property
    def is_view(self) -> bool:
        return self._view_of is not None

    @property
    def name(self) -> str:
        return self._name

    def set_name(self, name: str) -> None:
        self._name = str(name)

    @property
    def buffer_size(self) -> int:
        """Bytes held by the authoritative buffer (0 when unallocated)."""
        cell = self._cell
        return max((b.nbytes for b in cell.buffers.values()), default=0)

    @property
    def allocated_size(self) -> int:
        """Allocated capacity: elements for dense, non-zeros for sparse."""
        cell = self._cell
        if cell.location is Location.UNALLOCATED:
            return 0
        return cell.buffer(self._work_side()).capacity

    @property
    def nz_count(self) -> int:
        """Stored non-zeros (dense: the element count)."""
        cell = self._cell
        if cell.location is Location.UNALLOCATED:
            return 0
        return cell.buffer(self._work_side()).nz_count()

    @property
    def num_times_device_changed(self) -> int:
        return self._num_times_device_changed

    @property
    def num_times_matrix_type_changed(self) -> int:
        return self._num_times_matrix_type_changed

    def verify_size(self, rows: int, cols: int) -> None:
        if (int(rows), int(cols)) != self.shape:
            raise ShapeMismatchError("verify_size", (int(rows), int(cols)), self.shape)

    def __repr__(self) -> str:
        fmt = self.matrix_format.value if self.matrix_format else "undetermined"
        kind = ", view" if self.is_view else ""
        return (
            f"Matrix({self._rows}x{self._cols}, {fmt}, {self._storage.location.value}, "
            f"device={self._preferred}, dtype={self._dtype}{kind})"
        )

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------
    def _transfer(self, src: Device, dst: Device, moved: bool, empty_transfer: bool) -> None:
        cell = self._cell
        if cell.location is Location.UNALLOCATED:
            return
        if not self._holds(src):
            raise InvalidStateError(
                "transfer_from_device_to_device", f"matrix holds no valid data on {src}"
            )
        if src == dst:
            return
        if self.is_view:
            raise InvalidStateError(
                "transfer_from_device_to_device", "a non-owning view cannot be transferred"
            )

        src_side, dst_side = _side(src), _side(dst)
        src_buf = cell.buffer(src_side)
        dst_buf = self._new_buffer(dst, cell.matrix_format)
        if empty_transfer:
            nnz = src_buf.capacity if cell.matrix_type is MatrixType.SPARSE else 0
            dst_buf.allocate(self._rows, self._cols, nnz)
        else:
            src_buf.bulk_copy_to(dst_buf)

        cell.install(dst_side, dst_buf)
        cell.discard_retained(dst_side)
        if moved and src_side is not dst_side:
            cell.drop(src_side)
            cell.discard_retained(src_side)
        self._num_times_device_changed += 1
        logger.debug(
            "%s: %s -> %s (moved=%s, empty=%s), location now %s",
            self._name or "matrix",
            src,
            dst,
            moved,
            empty_transfer,
            cell.location.value,
        )

    def transfer_from_device_to_device(
        self,
        from_device: DeviceSpec,
        to_device: DeviceSpec,
        moved: bool = False,
        empty_transfer: bool = False,
        update_preferred_device: bool = True,
    ) -> None:
        """
        Copy or move the data from `from_device` to `to_device`.

        Parameters
        ----------
        moved : bool
            Free the source copy afterwards. When False the source copy is
            kept and the location becomes BOTH.
        empty_transfer : bool
            Allocate the target without copying. The caller must overwrite
            the whole matrix afterwards.
        update_preferred_device : bool
            Record `to_device` as the preferred device.

        Notes
        -----
        An unavailable target accelerator resolves to the host.
        """
        src = Device.coerce(from_device)
        if src.is_auto():
            src = self._current_device()
        dst = self._arbitrator.resolve(to_device)
        self._transfer(src, dst, moved, empty_transfer)
        if update_preferred_device:
            self._preferred = dst

    def transfer_to_device_if_not_there(
        self,
        to_device: DeviceSpec,
        moved: bool = False,
        empty_transfer: bool = False,
        update_preferred_device: bool = True,
    ) -> None:
        """Like `transfer_from_device_to_device`, but a no-op if already there."""
        dst = self._arbitrator.resolve(to_device)
        cell = self._cell
        if cell.location is Location.UNALLOCATED:
            if self.is_empty() and cell.matrix_format is not None:
                self._allocate_on(dst, self._rows, self._cols, cell.matrix_format, 0)
            return
        if self._holds(dst):
            return
        if dst.is_cpu():
            src = self._device_of_side(_DEVICE)
        elif cell.location.includes(_HOST):
            src = _CPU
        else:
            src = self._device_of_side(_DEVICE)
        self.transfer_from_device_to_device(
            src, dst, moved, empty_transfer, update_preferred_device
        )

    def transfer_to_device_if_not_there_and_not_auto_place(
        self,
        to_device: DeviceSpec,
        moved: bool = False,
        empty_transfer: bool = False,
        update_preferred_device: bool = True,
    ) -> None:
        """
        Like `transfer_to_device_if_not_there`, but skipped entirely when the
        target or this matrix's preferred device is the auto sentinel.
        """
        requested = Device.coerce(to_device)
        if requested.is_auto() or self._preferred.is_auto():
            return
        self.transfer_to_device_if_not_there(
            requested, moved, empty_transfer, update_preferred_device
        )

    def require(
        self,
        device: DeviceSpec = None,
        matrix_type: Union[MatrixType, str, None] = None,
        matrix_format: Union[MatrixFormat, str, None] = None,
    ) -> Device:
        """
        Make data valid on `device` in the requested format.

        Missing data is copied (not moved), so the previous copy stays valid.
        Calling `require` when the matrix already satisfies the request does
        nothing at all. A blank matrix with a known format is allocated.

        Returns
        -------
        Device
            The resolved device.
        """
        target = self._arbitrator.resolve(device if device is not None else self._preferred)
        fmt = _resolve_format(matrix_type, matrix_format)
        cell = self._cell

        if cell.location is Location.UNALLOCATED:
            if fmt is not None and fmt is not cell.matrix_format:
                self._switch(fmt, keep_values=True)
            if cell.matrix_format is not None:
                self._allocate_on(target, self._rows, self._cols, cell.matrix_format)
            return target

        if not self._holds(target):
            self.transfer_to_device_if_not_there(
                target, moved=False, update_preferred_device=False
            )
        if fmt is not None and fmt is not cell.matrix_format:
            self._switch(fmt, keep_values=True, side=_side(target))
            if cell.location is Location.UNALLOCATED:
                self._allocate_on(target, self._rows, self._cols, fmt, 0)
        return target

    # ------------------------------------------------------------------
    # Format switch
    # ------------------------------------------------------------------
    def switch_to_matrix_type(
        self,
        matrix_type: Union[MatrixType, str],
        matrix_format: Union[MatrixFormat, str, None] = None,
        keep_values: bool = True,
    ) -> "Matrix":
        """
        Convert between dense and sparse storage (or between CSC and CSR).

        Parameters
        ----------
        matrix_type : MatrixType | str
            Target family.
        matrix_format : MatrixFormat | str, optional
            Target layout. Defaults to CSC for sparse.
        keep_values : bool
            When False, a conversion to sparse discards the contents. A
            conversion to dense always keeps values.

        Notes
        -----
        The conversion runs on the device side when data is valid on both
        sides; the other side is kept as reusable storage only. Switching an
        empty matrix converts nothing: its empty buffers are released and the
        next use allocates the new layout on the same device.
        """
        mtype = MatrixType(matrix_type)
        if mtype is MatrixType.UNDETERMINED:
            raise InvalidStateError(
                "switch_to_matrix_type", "target format must be dense or sparse"
            )
        self._switch(_resolve_format(mtype, matrix_format), keep_values)
        return self

    def _switch(
        self, fmt: MatrixFormat, keep_values: bool, side: Optional[Location] = None
    ) -> None:
        cell = self._cell
        if cell.matrix_format is fmt:
            return
        if self.is_view:
            raise InvalidStateError(
                "switch_to_matrix_type", "cannot switch the format of a non-owning view"
            )
        old = cell.matrix_format
        if cell.location is Location.UNALLOCATED:
            cell.set_format(fmt)
            self._num_times_matrix_type_changed += 1
            return
        if self.is_empty():
            # No values to convert: drop the empty buffers and let the next use
            # allocate the new layout on the same device.
            if not self._preferred.is_auto():
                self._preferred = self._current_device()
            cell.release_all()
            cell.set_format(fmt)
            self._num_times_matrix_type_changed += 1
            logger.debug("%s: empty switch to %s", self._name or "matrix", fmt.value)
            return

        side = side or self._work_side()
        src_buf = cell.buffer(side)
        dst_buf = cell.take_retained(side, fmt)
        if dst_buf is None:
            dst_buf = self._new_buffer(self._device_of_side(side), fmt)

        if not fmt.is_sparse:
            sparse_to_dense(src_buf, dst_buf)
        elif not keep_values:
            dst_buf.reset(self._rows, self._cols)
            dst_buf.reserve(self._arbitrator.config.default_nnz_reserve)
        elif src_buf.matrix_format is MatrixFormat.DENSE:
            dense_to_sparse(src_buf, dst_buf, self._arbitrator.config.zero_threshold)
        else:
            sparse_to_sparse(src_buf, dst_buf)

        if cell.location is Location.BOTH:
            for s in (_HOST, _DEVICE):
                cell.retain(s, cell.buffers.pop(s))
        else:
            cell.drop(side)
        cell.set_format(fmt)
        cell.install(side, dst_buf)
        cell.bump()
        self._num_times_matrix_type_changed += 1
        logger.debug(
            "%s: switched %s -> %s on %s",
            self._name or "matrix",
            old.value if old else None,
            fmt.value,
            side.value,
        )

    # ------------------------------------------------------------------
    # Resize / reshape / slices
    # ------------------------------------------------------------------
    def resize(
        self,
        rows: int,
        cols: int,
        num_nz_to_reserve: Optional[int] = None,
        grow_only: bool = True,
    ) -> "Matrix":
        """
        Change the dimensions.

        With `grow_only` (the default) a request that fits the allocated
        capacity only relabels the dimensions: nothing is reallocated and the
        overlapping block keeps its values. Larger requests reallocate; dense
        values are then not preserved. Sparse entries inside the new bounds
        are always kept, and `num_nz_to_reserve` sizes the non-zero capacity.
        """
        rows, cols = int(rows), int(cols)
        if rows < 0 or cols < 0:
            raise ValueError(f"dimensions must be non-negative, got {rows} x {cols}")
        if self.is_view:
            raise InvalidStateError("resize", "a non-owning view cannot be resized")
        cell = self._cell
        changed = (rows, cols) != self.shape
        if cell.location is not Location.UNALLOCATED:
            reserve = (
                self._arbitrator.config.default_nnz_reserve
                if num_nz_to_reserve is None
                else int(num_nz_to_reserve)
            )
            for side in cell.location.sides():
                cell.buffer(side).resize(rows, cols, reserve, grow_only)
        self._rows, self._cols = rows, cols
        if changed:
            cell.bump()
        return self

    def resize_columns(self, cols: int) -> "Matrix":
        return self.resize(self._rows, cols)

    def reshape(self, rows: int, cols: int) -> "Matrix":
        """Relabel the dimensions in place (column-major); rows*cols must not change."""
        rows, cols = int(rows), int(cols)
        if rows * cols != self.num_elements:
            raise ShapeMismatchError("reshape", (self.num_elements,), (rows * cols,))
        cell = self._cell
        for side in cell.location.sides():
            cell.buffer(side).reshape(rows, cols)
        self._rows, self._cols = rows, cols
        cell.bump()
        return self

    def column_slice(self, start_column: int, num_cols: int) -> "Matrix":
        """
        Return a non-owning view of columns [start_column, start_column + num_cols).

        The view aliases this matrix's storage: writes through it are seen
        here. It cannot be resized, transferred or switched.
        """
        cell = self._cell
        if cell.location is Location.UNALLOCATED:
            raise InvalidStateError("column_slice", "matrix is unallocated")
        start, n = int(start_column), int(num_cols)
        if start < 0 or n < 0 or start + n > self._cols:
            raise IndexError(
                f"column slice [{start}, {start + n}) out of range for {self._cols} columns"
            )
        side = self._work_side()
        src_buf = cell.buffer(side)
        view_buf = src_buf.column_slice(start, n)

        view = self._blank_like()
        view._storage.set_format(cell.matrix_format)
        view._storage.install(side, view_buf)
        view._rows, view._cols = view_buf.shape
        view._view_of = self
        view._view_side = side
        view._view_aliased = src_buf
        view._view_generation = cell.generation
        return view

    def as_reference(self) -> "Matrix":
        """A view over all columns (not resizable, but reshapable)."""
        return self.column_slice(0, self._cols)

    def reshaped(self, rows: int, cols: int) -> "Matrix":
        """A reshaped view; this matrix keeps its dimensions."""
        return self.as_reference().reshape(rows, cols)

    def assign_column_slice(
        self, from_matrix: "Matrix", start_column: int, num_cols: int
    ) -> "Matrix":
        """
        Turn this matrix into a view of ``from_matrix[:, start:start + n]``.

        Nothing is copied; this matrix's own storage is released.
        """
        if from_matrix is self:
            raise InvalidStateError("assign_column_slice", "a matrix cannot alias itself")
        view = from_matrix.column_slice(start_column, num_cols)
        self._storage.release_all()
        self._take_state(view)
        return self

    def _take_state(self, other: "Matrix") -> None:
        self._storage = other._storage
        self._rows, self._cols = other._rows, other._cols
        self._dtype = other._dtype
        self._view_of = other._view_of
        self._view_side = other._view_side
        self._view_aliased = other._view_aliased
        self._view_generation = other._view_generation

    def _after_view_write(self, side: Location) -> None:
        """A view wrote into this matrix's `side` buffer: the other side is stale."""
        self._cell.keep_only(side)
        if self._view_of is not None:
            self._view_of._after_view_write(self._view_side)

    # ------------------------------------------------------------------
    # Write preparation used by the control paths
    # ------------------------------------------------------------------
    def _arbitrate(self, *reads: "Matrix", writes=(), overwrite: bool = False) -> Device:
        return self._arbitrator.decide_and_move(
            *reads, writes=writes, overwrite=overwrite, update_preferred_device=False
        )

    def _adopt_format_of(self, other: "Matrix", op: str) -> None:
        fmt = other.matrix_format
        if fmt is None:
            raise InvalidStateError(op, "operand format is undetermined")
        self._cell.set_format(fmt)

    def _begin_write(
        self,
        device: Device,
        shape: Optional[tuple[int, int]] = None,
        overwrite: bool = False,
    ) -> Any:
        """
        Return the buffer to write on `device`.

        Allocates a blank matrix, moves data that lives elsewhere, drops the
        stale side of a BOTH matrix and resizes to `shape`.
        """
        cell = self._cell
        side = _side(device)
        rows, cols = shape if shape is not None else self.shape
        if self.is_view and (rows, cols) != self.shape:
            raise ShapeMismatchError("write", self.shape, (rows, cols))

        if cell.location is Location.UNALLOCATED:
            if cell.matrix_format is None:
                raise InvalidStateError("write", "matrix format is undetermined")
            self._allocate_on(device, rows, cols, cell.matrix_format)
        else:
            if not self._holds(device):
                self.transfer_to_device_if_not_there(
                    device,
                    moved=True,
                    empty_transfer=overwrite,
                    update_preferred_device=False,
                )
            cell.keep_only(side)
            if (rows, cols) != self.shape:
                self.resize(rows, cols)

        if self._view_of is not None:
            self._view_of._after_view_write(self._view_side)
        elif cell.matrix_type is MatrixType.SPARSE:
            # The sparsity structure may change; column views must not survive it.
            cell.bump()
        return cell.buffer(side)

    def _read_buffer(self, device: Device, op: str) -> Any:
        cell = self._cell
        if cell.location is Location.UNALLOCATED:
            raise InvalidStateError(op, "matrix is unallocated")
        return cell.buffer(_side(device))

    # ------------------------------------------------------------------
    # Element access
    # ------------------------------------------------------------------
    def _warn_element_access(self) -> None:
        if not self._warned_element_access:
            self._warned_element_access = True
            warnings.warn(
                "Element access on a device-resident matrix reads device memory one "
                "element at a time; move the matrix to the host for bulk access.",
                UserWarning,
                stacklevel=3,
            )

    def get_value(self, row: int, col: int) -> float:
        """Bounds-checked read of element (row, col)."""
        cell = self._cell
        if cell.location is Location.UNALLOCATED:
            raise InvalidStateError("get_value", "matrix is unallocated")
        if cell.location.includes(_HOST):
            return cell.buffer(_HOST).read(int(row), int(col))
        self._warn_element_access()
        return cell.buffer(_DEVICE).read(int(row), int(col))

    def set_value_at(self, row: int, col: int, value: float) -> None:
        """Bounds-checked write of element (row, col)."""
        cell = self._cell
        if cell.location is Location.UNALLOCATED:
            raise InvalidStateError("set_value_at", "matrix is unallocated")
        side = _HOST if cell.location.includes(_HOST) else _DEVICE
        if side is _DEVICE:
            self._warn_element_access()
        cell.buffer(side).write(int(row), int(col), value)
        cell.keep_only(side)
        if self._view_of is not None:
            self._view_of._after_view_write(self._view_side)
        elif cell.matrix_type is MatrixType.SPARSE:
            cell.bump()

    def _index(self, key: Any) -> tuple[int, int]:
        if not (isinstance(key, tuple) and len(key) == 2):
            raise TypeError("Matrix indices must be a (row, col) pair")
        return int(key[0]), int(key[1])

    def __getitem__(self, key: Any) -> float:
        return self.get_value(*self._index(key))

    def __setitem__(self, key: Any, value: float) -> None:
        self.set_value_at(*self._index(key), value)

    def to_numpy(self) -> np.ndarray:
        """Host copy of the values as a 2-D NumPy array (never migrates)."""
        cell = self._cell
        if cell.location is Location.UNALLOCATED:
            return np.zeros(self.shape, dtype=self._dtype)
        side = _HOST if cell.location.includes(_HOST) else _DEVICE
        return cell.buffer(side).to_numpy()

    def to_scipy(self) -> Any:
        """Host copy as a `scipy.sparse` matrix in the current sparse layout (CSC for dense)."""
        cell = self._cell
        if cell.matrix_type is not MatrixType.SPARSE or cell.location is Location.UNALLOCATED:
            return sp.csc_matrix(self.to_numpy())
        side = _HOST if cell.location.includes(_HOST) else _DEVICE
        buf = cell.buffer(side)
        if side is _DEVICE:
            host = HostSparseBuffer(buf.matrix_format, self._dtype)
            buf.bulk_copy_to(host)
            buf = host
        return buf.matrix.copy()

    def get_00_element(self) -> float:
        """
        Element (0, 0), read from wherever the matrix lives.

        This is how the scalar result of a 1 x 1 matrix is fetched, so it
        does not raise the per-element device access warning.
        """
        cell = self._cell
        if cell.location is Location.UNALLOCATED:
            raise InvalidStateError("get_00_element", "matrix is unallocated")
        side = _HOST if cell.location.includes(_HOST) else _DEVICE
        return cell.buffer(side).read(0, 0)

    def copy_section(
        self,
        num_rows: int,
        num_cols: int,
        dst: Optional[np.ndarray] = None,
        col_stride: Optional[int] = None,
    ) -> np.ndarray:
        """
        Copy the leading ``num_rows x num_cols`` block to the host.

        Parameters
        ----------
        num_rows, num_cols : int
            Size of the block, counted from element (0, 0).
        dst : np.ndarray, optional
            Flat destination. Column ``j`` of the block is written to
            ``dst[j * col_stride : j * col_stride + num_rows]``. When omitted,
            a new 2-D array is returned.
        col_stride : int, optional
            Distance between columns in `dst`. Defaults to `num_rows`.

        Returns
        -------
        np.ndarray
            `dst`, or the new block.
        """
        n_rows, n_cols = int(num_rows), int(num_cols)
        if not (0 <= n_rows <= self._rows and 0 <= n_cols <= self._cols):
            raise IndexError(
                f"section {n_rows} x {n_cols} exceeds matrix of shape {self.shape}"
            )
        block = self.to_numpy()[:n_rows, :n_cols]
        if dst is None:
            return block.copy()

        stride = n_rows if col_stride is None else int(col_stride)
        if stride < n_rows:
            raise ValueError(f"column stride {stride} is smaller than {n_rows} rows")
        needed = (n_cols - 1) * stride + n_rows if n_cols else 0
        if dst.ndim != 1 or dst.shape[0] < needed:
            raise ShapeMismatchError("copy_section", (needed,), dst.shape)
        for j in range(n_cols):
            dst[j * stride : j * stride + n_rows] = block[:, j]
        return dst

    def print(
        self,
        name: Optional[str] = None,
        row_start: int = 0,
        row_end: Optional[int] = None,
        col_start: int = 0,
        col_end: Optional[int] = None,
        file: Any = None,
    ) -> None:
        """
        Print the matrix, or the block ``[row_start:row_end, col_start:col_end]``.

        Values are read from a host copy; the matrix is never migrated.
        Printing a large device matrix copies all of it.
        """
        row_end = self._rows if row_end is None else int(row_end)
        col_end = self._cols if col_end is None else int(col_end)
        row_start, col_start = int(row_start), int(col_start)
        if not (0 <= row_start <= row_end <= self._rows):
            raise IndexError(f"rows [{row_start}, {row_end}) out of range for {self._rows} rows")
        if not (0 <= col_start <= col_end <= self._cols):
            raise IndexError(f"columns [{col_start}, {col_end}) out of range for {self._cols} columns")

        label = self._name if name is None else str(name)
        fmt = self.matrix_format.value if self.matrix_format else "undetermined"
        out = file if file is not None else sys.stdout
        print(
            f"{label or 'matrix'}: {self._rows} x {self._cols}, {fmt}, "
            f"{self._storage.location.value}",
            file=out,
        )
        block = self.to_numpy()[row_start:row_end, col_start:col_end]
        for row in block:
            print(" ".join(f"{v:.6g}" for v in row), file=out)

    # ------------------------------------------------------------------
    # Copy / move / clear
    # ------------------------------------------------------------------
    def _clone_storage(self, device: Optional[Device]) -> StorageCell:
        cell = self._cell
        clone = StorageCell()
        clone.set_format(cell.matrix_format)
        if cell.location is Location.UNALLOCATED:
            return clone
        side = self._work_side()
        src_buf = cell.buffer(side)
        target = device if device is not None else self._device_of_side(side)
        dst_buf = self._new_buffer(target, cell.matrix_format)
        src_buf.bulk_copy_to(dst_buf)
        clone.install(_side(target), dst_buf)
        return clone

    def copy(self, device: DeviceSpec = None) -> "Matrix":
        """
        Deep copy. With `device`, the copy is placed there and prefers it;
        otherwise it stays where this matrix's data lives.
        """
        target = self._arbitrator.resolve(device) if device is not None else None
        result = self._blank_like()
        result._storage = self._clone_storage(target)
        result._rows, result._cols = self.shape
        if device is not None:
            result._preferred = Device.coerce(device)
        return result

    def set_value(self, source: Union["Matrix", float, int]) -> "Matrix":
        """
        Deep-copy assignment from another matrix, or fill with a scalar.

        The receiver takes on the source's dtype. A view keeps aliasing its
        source and receives the values in place.
        """
        if not isinstance(source, Matrix):
            return self.fill(float(source))
        if source is self:
            return self
        if self.is_view:
            if source.shape != self.shape:
                raise ShapeMismatchError("set_value", self.shape, source.shape)
            return self.set_column_slice(source, 0, self._cols)

        target = None
        if self._storage.location is not Location.UNALLOCATED:
            target = self._current_device()
        clone = source._clone_storage(target)
        self._storage.release_all()
        clone.generation = self._storage.generation + 1
        self._storage = clone
        self._rows, self._cols = source.shape
        self._dtype = source._dtype
        return self

    def move_from(self, other: "Matrix") -> "Matrix":
        """
        Take over `other`'s storage without copying. `other` is left blank
        and unallocated.
        """
        if other is self:
            return self
        self._storage.release_all()
        self._take_state(other)
        self._preferred = other._preferred
        other._storage = StorageCell()
        other._storage.generation = self._storage.generation + 1
        other._rows = other._cols = 0
        other._view_of = None
        other._view_side = None
        other._view_aliased = None
        return self

    def clear(self) -> None:
        """Release all storage; the matrix becomes blank and unallocated."""
        self._storage.release_all()
        self._rows = self._cols = 0
        self._view_of = None
        self._view_side = None
        self._view_aliased = None

    def transpose(self) -> "Matrix":
        """New matrix holding the transpose."""
        return self._blank_like().assign_transpose_of(self)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def write(self, stream: Any, name: Optional[str] = None) -> None:
        """Append this matrix to a text stream as a named record."""
        from ..serialization import write_matrix

        write_matrix(stream, self, name)

    def read(self, stream: Any, name: str) -> "Matrix":
        """
        Replace this matrix with the next record of `stream`.

        Raises `SerializationNameMismatchError` if the stored name is not
        `name`. The data is placed on this matrix's preferred device.
        """
        from ..serialization import read_matrix

        loaded = read_matrix(
            stream, name, device=self._preferred, arbitrator=self._arbitrator
        )
        self.move_from(loaded)
        self._name = loaded.name
        return self

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------
    @classmethod
    def zeros(cls, rows: int, cols: int, device: DeviceSpec = None, **kwargs: Any) -> "Matrix":
        return cls(rows, cols, device=device, **kwargs)

    @classmethod
    def ones(cls, rows: int, cols: int, device: DeviceSpec = None, **kwargs: Any) -> "Matrix":
        return cls(rows, cols, device=device, **kwargs).fill(1.0)

    @classmethod
    def eye(cls, rows: int, device: DeviceSpec = None, **kwargs: Any) -> "Matrix":
        return cls(rows, rows, device=device, **kwargs).set_diagonal_value(1.0)

    @classmethod
    def random_uniform(
        cls,
        rows: int,
        cols: int,
        low: float,
        high: float,
        seed: Optional[int] = None,
        device: DeviceSpec = None,
        **kwargs: Any,
    ) -> "Matrix":
        """Dense matrix of uniform samples in [low, high), generated on the host."""
        rng = np.random.default_rng(seed)
        return cls.from_numpy(rng.uniform(low, high, size=(rows, cols)), device=device, **kwargs)

    @classmethod
    def random_gaussian(
        cls,
        rows: int,
        cols: int,
        mean: float,
        sigma: float,
        seed: Optional[int] = None,
        device: DeviceSpec = None,
        **kwargs: Any,
    ) -> "Matrix":
        """Dense matrix of normal samples, generated on the host."""
        rng = np.random.default_rng(seed)
        return cls.from_numpy(rng.normal(mean, sigma, size=(rows, cols)), device=device, **kwargs)

    @classmethod
    def from_numpy(
        cls,
        array: Any,
        device: DeviceSpec = None,
        *,
        matrix_type: Union[MatrixType, str, None] = None,
        matrix_format: Union[MatrixFormat, str, None] = None,
        dtype: Any = None,
        name: str = "",
        arbitrator: Any = None,
    ) -> "Matrix":
        """
        Build a matrix from a 2-D array.

        Sparse targets drop elements at or below the configured zero
        threshold.
        """
        a = np.asarray(array)
        if a.ndim != 2:
            raise ValueError(f"expected a 2-D array, got shape {a.shape}")
        m = cls(device=device, dtype=dtype, name=name, arbitrator=arbitrator)
        target = m._arbitrator.resolve(m._preferred)
        fmt = _resolve_format(matrix_type, matrix_format) or MatrixFormat.DENSE

        dense = HostDenseBuffer(m._dtype)
        dense.load_host_array(a)
        if fmt.is_sparse:
            host_buf = HostSparseBuffer(fmt, m._dtype)
            dense_to_sparse(dense, host_buf, m._arbitrator.config.zero_threshold)
        else:
            host_buf = dense
        m._install_host_buffer(host_buf, target)
        return m

    @classmethod
    def from_scipy(
        cls,
        matrix: Any,
        device: DeviceSpec = None,
        *,
        matrix_format: Union[MatrixFormat, str, None] = None,
        dtype: Any = None,
        name: str = "",
        arbitrator: Any = None,
    ) -> "Matrix":
        """Build a sparse matrix from a `scipy.sparse` matrix (CSR input stays CSR)."""
        if matrix_format is None:
            matrix_format = MatrixFormat.SPARSE_CSR if matrix.format == "csr" else MatrixFormat.SPARSE_CSC
        fmt = MatrixFormat(matrix_format)
        if not fmt.is_sparse:
            return cls.from_numpy(
                matrix.toarray(), device, dtype=dtype, name=name, arbitrator=arbitrator
            )
        m = cls(device=device, dtype=dtype, name=name, arbitrator=arbitrator)
        host_buf = HostSparseBuffer(fmt, m._dtype)
        host_buf.load_matrix(matrix)
        m._install_host_buffer(host_buf, m._arbitrator.resolve(m._preferred))
        return m

    @classmethod
    def from_csc_arrays(
        cls,
        col_ptr: Any,
        row_idx: Any,
        values: Any,
        rows: int,
        cols: int,
        device: DeviceSpec = None,
        **kwargs: Any,
    ) -> "Matrix":
        """Build a CSC matrix from host column pointers, row indices and values."""
        col_ptr = np.asarray(col_ptr)
        if col_ptr.size != int(cols) + 1:
            raise ShapeMismatchError("from_csc_arrays", (int(cols) + 1,), (int(col_ptr.size),))
        csc = sp.csc_matrix(
            (np.asarray(values), np.asarray(row_idx), col_ptr), shape=(int(rows), int(cols))
        )
        return cls.from_scipy(csc, device, matrix_format=MatrixFormat.SPARSE_CSC, **kwargs)

    # ------------------------------------------------------------------
    # Static arithmetic helpers
    # ------------------------------------------------------------------
    @staticmethod
    def scale_and_add(alpha: float, a: "Matrix", c: "Matrix") -> "Matrix":
        """``c += alpha * a``."""
        return c.add_with_scale_of(alpha, a)

    @staticmethod
    def scale(alpha: float, a: "Matrix") -> "Matrix":
        """``a *= alpha``."""
        return a.scale_in_place(alpha)

    @staticmethod
    def multiply_and_weighted_add(
        alpha: float,
        a: "Matrix",
        transpose_a: bool,
        b: "Matrix",
        transpose_b: bool,
        beta: float,
        c: "Matrix",
    ) -> "Matrix":
        """``c = alpha * op(a) @ op(b) + beta * c``."""
        return c.assign_weighted_product(alpha, a, transpose_a, b, transpose_b, beta)

    @staticmethod
    def multiply(a: "Matrix", b: "Matrix", c: Optional["Matrix"] = None) -> "Matrix":
        """``c = a @ b``; a new matrix is created when `c` is omitted."""
        if c is None:
            c = a._blank_like()
        return c.assign_weighted_product(1.0, a, False, b, False, 0.0)

    @staticmethod
    def are_equal(a: "Matrix", b: "Matrix", threshold: Optional[float] = None) -> bool:
        return a.is_equal_to(b, threshold)
