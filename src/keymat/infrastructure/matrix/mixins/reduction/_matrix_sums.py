"""
Dense and sparse control paths of the sum reductions.

A sparse matrix only stores its non-zeros, so its sums run over the stored
values directly.
"""

from .....domain._state import MatrixType
from ..._matrix_builder import matrix_control_path_manager
from ._base import MatrixMixinReduction as MMR


def _reduce_on(self, op: str):
    device = self._arbitrate(self)
    return self._read_buffer(device, op)


@matrix_control_path_manager(MMR, MMR.sum_of_elements, MatrixType.DENSE)
def sum_of_elements_dense(self) -> float:
    buf = _reduce_on(self, "sum_of_elements")
    return float(buf.xp.sum(buf.array))


@matrix_control_path_manager(MMR, MMR.sum_of_elements, MatrixType.SPARSE)
def sum_of_elements_sparse(self) -> float:
    buf = _reduce_on(self, "sum_of_elements")
    return float(buf.xp.sum(buf.values))


@matrix_control_path_manager(MMR, MMR.sum_of_abs_elements, MatrixType.DENSE)
def sum_of_abs_elements_dense(self) -> float:
    buf = _reduce_on(self, "sum_of_abs_elements")
    return float(buf.xp.sum(buf.xp.abs(buf.array)))


@matrix_control_path_manager(MMR, MMR.sum_of_abs_elements, MatrixType.SPARSE)
def sum_of_abs_elements_sparse(self) -> float:
    buf = _reduce_on(self, "sum_of_abs_elements")
    return float(buf.xp.sum(buf.xp.abs(buf.values)))
