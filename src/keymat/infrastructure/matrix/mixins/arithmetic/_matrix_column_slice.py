"""
Dense control path of `Matrix.set_column_slice`.

Copying a column block into a sparse matrix would rebuild its structure, so
sparse receivers are not supported.
"""

from .....domain._errors import ShapeMismatchError
from .....domain._state import MatrixType
from ..._matrix_builder import matrix_control_path_manager
from .._operands import dense_operand
from ._base import MatrixMixinArithmetic as MMA


@matrix_control_path_manager(MMA, MMA.set_column_slice, MatrixType.DENSE)
def set_column_slice_dense(self, from_matrix, start_column: int, num_cols: int):
    start, n = int(start_column), int(num_cols)
    if start < 0 or n < 0 or start + n > self.num_cols:
        raise IndexError(
            f"column slice [{start}, {start + n}) out of range for {self.num_cols} columns"
        )
    if from_matrix.shape != (self.num_rows, n):
        raise ShapeMismatchError("set_column_slice", (self.num_rows, n), from_matrix.shape)

    device = self._arbitrate(from_matrix, writes=(self,))
    block = dense_operand(from_matrix, device, "set_column_slice").copy()
    out = self._begin_write(device)
    out.array[:, start : start + n] = block
    return self
