"""
Dense and sparse control paths of `Matrix.fill` and `Matrix.set_diagonal_value`.
"""

from .....domain._errors import MatrixTypeNotSupportedError, ShapeMismatchError
from .....domain._state import MatrixType
from ..._matrix_builder import matrix_control_path_manager
from ._base import MatrixMixinArithmetic as MMA


@matrix_control_path_manager(MMA, MMA.fill, MatrixType.DENSE)
def fill_dense(self, value: float):
    device = self._arbitrate(writes=(self,), overwrite=True)
    out = self._begin_write(device, overwrite=True)
    out.array[...] = value
    return self


@matrix_control_path_manager(MMA, MMA.fill, MatrixType.SPARSE)
def fill_sparse(self, value: float):
    if value != 0:
        raise MatrixTypeNotSupportedError("fill with a non-zero value", "sparse")
    device = self._arbitrate(writes=(self,), overwrite=True)
    self._begin_write(device, overwrite=True).reset()
    return self


def _check_square(self) -> int:
    rows, cols = self.shape
    if rows != cols:
        raise ShapeMismatchError("set_diagonal_value", (rows, rows), (rows, cols))
    return rows


@matrix_control_path_manager(MMA, MMA.set_diagonal_value, MatrixType.DENSE)
def set_diagonal_value_dense(self, value: float):
    n = _check_square(self)
    device = self._arbitrate(writes=(self,))
    out = self._begin_write(device)
    # Column-major: consecutive diagonal entries are n + 1 elements apart.
    out.flat[: n * n : n + 1] = value
    return self


@matrix_control_path_manager(MMA, MMA.set_diagonal_value, MatrixType.SPARSE)
def set_diagonal_value_sparse(self, value: float):
    n = _check_square(self)
    device = self._arbitrate(writes=(self,))
    out = self._begin_write(device)
    for i in range(n):
        out.write(i, i, value)
    return self
