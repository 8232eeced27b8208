"""
Operand access helpers shared by the dense and sparse control paths.

After the facade has arbitrated a device, every operand holds valid data on
that device. These helpers hand the kernels the operand in the shape they
want (dense array or sparse matrix) without moving it again.
"""

from __future__ import annotations

from typing import Any

import scipy.sparse as sp

from ....domain._errors import InvalidStateError, ShapeMismatchError
from ....domain._state import Location, MatrixFormat
from ....domain.device._device import Device


def side_of(device: Device) -> Location:
    return Location.HOST if device.is_cpu() else Location.DEVICE


def operand_buffer(m: Any, device: Device, op: str) -> Any:
    """Return `m`'s valid buffer on `device`."""
    if m.location is Location.UNALLOCATED:
        raise InvalidStateError(op, "operand is unallocated")
    return m._cell.buffer(side_of(device))


def sparse_module_for(m: Any, device: Device) -> Any:
    if device.is_cpu():
        return sp
    return m.arbitrator.runtime.sparse_module(device.index)


def dense_operand(m: Any, device: Device, op: str) -> Any:
    """
    `m` as a 2-D array on `device`.

    Dense operands are returned as a view of their storage (do not write into
    it); sparse operands are expanded into a temporary.
    """
    buf = operand_buffer(m, device, op)
    if buf.matrix_format is MatrixFormat.DENSE:
        return buf.array
    return buf.matrix.toarray()


def sparse_operand(m: Any, device: Device, op: str) -> Any:
    """`m` as a sparse matrix on `device` (dense operands are compressed)."""
    buf = operand_buffer(m, device, op)
    if buf.matrix_format.is_sparse:
        return buf.matrix
    return sparse_module_for(m, device).csc_matrix(buf.array)


def product_operand(m: Any, device: Device, op: str) -> Any:
    """`m` in its native family: a dense array or a sparse matrix."""
    buf = operand_buffer(m, device, op)
    if buf.matrix_format is MatrixFormat.DENSE:
        return buf.array
    return buf.matrix


def check_same_shape(op: str, a: Any, b: Any) -> None:
    if a.shape != b.shape:
        raise ShapeMismatchError(op, a.shape, b.shape)


def aliases(m: Any, *others: Any) -> bool:
    """True if `m` is one of `others` (same object)."""
    return any(m is o for o in others)
