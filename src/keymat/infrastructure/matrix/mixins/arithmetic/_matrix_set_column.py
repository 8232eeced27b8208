"""
Dense and sparse control paths of `Matrix.set_column`.

The new column may be a scalar, a 1-D array-like of ``num_rows`` values or a
``num_rows x 1`` matrix. Sparse receivers take the values one element at a
time, so only non-zeros (and entries already stored) end up in the structure.
"""

import numpy as np

from .....domain._errors import ShapeMismatchError
from .....domain._state import MatrixType
from ..._matrix_builder import matrix_control_path_manager
from .._operands import dense_operand
from ._base import MatrixMixinArithmetic as MMA


def _check_column(self, col_index: int) -> int:
    col = int(col_index)
    if not 0 <= col < self.num_cols:
        raise IndexError(f"column {col} out of range for {self.num_cols} columns")
    return col


def _host_values(self, value):
    """`value` as a host vector of ``num_rows`` entries, or None for a scalar."""
    if np.isscalar(value):
        return None
    if hasattr(value, "to_numpy"):
        if value.shape != (self.num_rows, 1):
            raise ShapeMismatchError("set_column", (self.num_rows, 1), value.shape)
        return value.to_numpy()[:, 0]
    column = np.asarray(value, dtype=self.dtype).reshape(-1)
    if column.shape[0] != self.num_rows:
        raise ShapeMismatchError("set_column", (self.num_rows,), column.shape)
    return column


@matrix_control_path_manager(MMA, MMA.set_column, MatrixType.DENSE)
def set_column_dense(self, value, col_index: int):
    col = _check_column(self, col_index)
    if hasattr(value, "to_numpy"):
        if value.shape != (self.num_rows, 1):
            raise ShapeMismatchError("set_column", (self.num_rows, 1), value.shape)
        device = self._arbitrate(value, writes=(self,))
        column = dense_operand(value, device, "set_column")[:, 0].copy()
    else:
        device = self._arbitrate(writes=(self,))
        column = _host_values(self, value)

    out = self._begin_write(device)
    if column is None:
        out.array[:, col] = value
    else:
        out.array[:, col] = out.xp.asarray(column)
    return self


@matrix_control_path_manager(MMA, MMA.set_column, MatrixType.SPARSE)
def set_column_sparse(self, value, col_index: int):
    col = _check_column(self, col_index)
    column = _host_values(self, value)
    device = self._arbitrate(writes=(self,))
    out = self._begin_write(device)
    for row in range(self.num_rows):
        out.write(row, col, float(value) if column is None else float(column[row]))
    return self
