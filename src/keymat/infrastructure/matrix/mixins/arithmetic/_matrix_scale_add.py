"""
Dense and sparse control paths of the scaled-addition family:

- ``add_with_scale_of`` : ``self += alpha * a``
- ``assign_sum_of``     : ``self = a + b``
- ``scale_in_place``    : ``self *= alpha``

Each path arbitrates one device for all operands first. Read operands are
copied (not moved) there; the receiver is moved, and when it is fully
overwritten and not one of the operands its old payload is not copied at all.
"""

from .....domain._state import Location, MatrixType
from ..._matrix_builder import matrix_control_path_manager
from .._operands import (
    aliases,
    check_same_shape,
    dense_operand,
    sparse_operand,
)
from ._base import MatrixMixinArithmetic as MMA


def _target_shape(self, a):
    """Shape the receiver must have: `a`'s when unallocated, else checked."""
    if self.location is Location.UNALLOCATED:
        return a.shape
    check_same_shape("add_with_scale_of", self, a)
    return self.shape


@matrix_control_path_manager(MMA, MMA.add_with_scale_of, MatrixType.DENSE)
def add_with_scale_of_dense(self, alpha: float, a):
    shape = _target_shape(self, a)
    device = self._arbitrate(a, writes=(self,))
    out = self._begin_write(device, shape)
    out.array[...] += alpha * dense_operand(a, device, "add_with_scale_of")
    return self


@matrix_control_path_manager(MMA, MMA.add_with_scale_of, MatrixType.SPARSE)
def add_with_scale_of_sparse(self, alpha: float, a):
    shape = _target_shape(self, a)
    device = self._arbitrate(a, writes=(self,))
    addend = alpha * sparse_operand(a, device, "add_with_scale_of")
    out = self._begin_write(device, shape)
    out.load_matrix(out.matrix + addend)
    return self


@matrix_control_path_manager(MMA, MMA.add_with_scale_of, MatrixType.UNDETERMINED)
def add_with_scale_of_undetermined(self, alpha: float, a):
    self._adopt_format_of(a, "add_with_scale_of")
    return self.add_with_scale_of(alpha, a)


@matrix_control_path_manager(MMA, MMA.assign_sum_of, MatrixType.DENSE)
def assign_sum_of_dense(self, a, b):
    check_same_shape("assign_sum_of", a, b)
    overwrite = not aliases(self, a, b)
    device = self._arbitrate(a, b, writes=(self,), overwrite=overwrite)
    result = dense_operand(a, device, "assign_sum_of") + dense_operand(b, device, "assign_sum_of")
    out = self._begin_write(device, a.shape, overwrite=overwrite)
    out.array[...] = result
    return self


@matrix_control_path_manager(MMA, MMA.assign_sum_of, MatrixType.SPARSE)
def assign_sum_of_sparse(self, a, b):
    check_same_shape("assign_sum_of", a, b)
    overwrite = not aliases(self, a, b)
    device = self._arbitrate(a, b, writes=(self,), overwrite=overwrite)
    result = sparse_operand(a, device, "assign_sum_of") + sparse_operand(b, device, "assign_sum_of")
    out = self._begin_write(device, a.shape, overwrite=overwrite)
    out.load_matrix(result)
    return self


@matrix_control_path_manager(MMA, MMA.assign_sum_of, MatrixType.UNDETERMINED)
def assign_sum_of_undetermined(self, a, b):
    self._adopt_format_of(a, "assign_sum_of")
    return self.assign_sum_of(a, b)


@matrix_control_path_manager(MMA, MMA.scale_in_place, MatrixType.DENSE)
def scale_in_place_dense(self, alpha: float):
    device = self._arbitrate(writes=(self,))
    out = self._begin_write(device)
    out.array[...] *= alpha
    return self


@matrix_control_path_manager(MMA, MMA.scale_in_place, MatrixType.SPARSE)
def scale_in_place_sparse(self, alpha: float):
    device = self._arbitrate(writes=(self,))
    out = self._begin_write(device)
    out.values[...] *= alpha
    return self
