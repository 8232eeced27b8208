"""
Backend buffers: one raw allocation in one memory domain.

`make_buffer` is the single construction point used by the matrix facade.
"""

from __future__ import annotations

from typing import Any

from ...domain._state import Location, MatrixFormat
from ._dense_buffer import DeviceDenseBuffer, HostDenseBuffer
from ._sparse_buffer import DeviceSparseBuffer, HostSparseBuffer


def make_buffer(
    matrix_format: MatrixFormat,
    side: Location,
    dtype: Any,
    runtime: Any = None,
    device_index: int = -1,
):
    """
    Build an empty buffer of the requested layout on `side`.

    Parameters
    ----------
    matrix_format : MatrixFormat
        Dense, CSC or CSR.
    side : Location
        `Location.HOST` or `Location.DEVICE`.
    dtype : Any
        Element type.
    runtime : IDeviceRuntime, optional
        Required for device buffers.
    device_index : int
        Accelerator index for device buffers.
    """
    if side is Location.HOST:
        if matrix_format is MatrixFormat.DENSE:
            return HostDenseBuffer(dtype)
        return HostSparseBuffer(matrix_format, dtype)
    if side is not Location.DEVICE:
        raise ValueError(f"buffers live on HOST or DEVICE, not {side}")
    if runtime is None:
        raise ValueError("device buffers require a runtime")
    if matrix_format is MatrixFormat.DENSE:
        return DeviceDenseBuffer(runtime, device_index, dtype)
    return DeviceSparseBuffer(runtime, device_index, matrix_format, dtype)


__all__ = [
    "HostDenseBuffer",
    "DeviceDenseBuffer",
    "HostSparseBuffer",
    "DeviceSparseBuffer",
    "make_buffer",
]
