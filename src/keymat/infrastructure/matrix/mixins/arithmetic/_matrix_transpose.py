"""
Dense and sparse control paths of `Matrix.assign_transpose_of`.
"""

from .....domain._errors import InvalidStateError
from .....domain._state import MatrixType
from ..._matrix_builder import matrix_control_path_manager
from .._operands import dense_operand, sparse_operand
from ._base import MatrixMixinArithmetic as MMA


def _check_not_self(self, a) -> None:
    if a is self:
        raise InvalidStateError("assign_transpose_of", "in-place transpose is not supported")


@matrix_control_path_manager(MMA, MMA.assign_transpose_of, MatrixType.DENSE)
def assign_transpose_of_dense(self, a):
    _check_not_self(self, a)
    device = self._arbitrate(a, writes=(self,), overwrite=True)
    result = dense_operand(a, device, "assign_transpose_of").T.copy()
    out = self._begin_write(device, (a.num_cols, a.num_rows), overwrite=True)
    out.array[...] = result
    return self


@matrix_control_path_manager(MMA, MMA.assign_transpose_of, MatrixType.SPARSE)
def assign_transpose_of_sparse(self, a):
    _check_not_self(self, a)
    device = self._arbitrate(a, writes=(self,), overwrite=True)
    result = sparse_operand(a, device, "assign_transpose_of").T
    out = self._begin_write(device, (a.num_cols, a.num_rows), overwrite=True)
    out.load_matrix(result)
    return self


@matrix_control_path_manager(MMA, MMA.assign_transpose_of, MatrixType.UNDETERMINED)
def assign_transpose_of_undetermined(self, a):
    self._adopt_format_of(a, "assign_transpose_of")
    return self.assign_transpose_of(a)
