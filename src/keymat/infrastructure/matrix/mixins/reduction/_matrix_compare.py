"""
Dense and sparse control paths of `Matrix.is_equal_to`.

Both matrices are first brought to one device. Mixed dense/sparse pairs are
compared densely; two sparse matrices are compared through their sparse
difference, so only stored entries are visited.
"""

from typing import Optional

from .....domain._state import MatrixType
from ..._matrix_builder import matrix_control_path_manager
from .._operands import dense_operand, operand_buffer, sparse_operand
from ._base import MatrixMixinReduction as MMR


def _threshold(self, threshold: Optional[float]) -> float:
    if threshold is None:
        return self.arbitrator.config.equality_threshold
    return float(threshold)


def _compare_dense(self, other, device, threshold: float) -> bool:
    xp = operand_buffer(self, device, "is_equal_to").xp
    diff = dense_operand(self, device, "is_equal_to") - dense_operand(other, device, "is_equal_to")
    return bool((xp.abs(diff) <= threshold).all())


@matrix_control_path_manager(MMR, MMR.is_equal_to, MatrixType.DENSE)
def is_equal_to_dense(self, other, threshold: Optional[float] = None) -> bool:
    if self.shape != other.shape:
        return False
    device = self._arbitrate(self, other)
    return _compare_dense(self, other, device, _threshold(self, threshold))


@matrix_control_path_manager(MMR, MMR.is_equal_to, MatrixType.SPARSE)
def is_equal_to_sparse(self, other, threshold: Optional[float] = None) -> bool:
    if self.shape != other.shape:
        return False
    device = self._arbitrate(self, other)
    thr = _threshold(self, threshold)
    if other.matrix_type is not MatrixType.SPARSE:
        return _compare_dense(self, other, device, thr)

    xp = operand_buffer(self, device, "is_equal_to").xp
    diff = sparse_operand(self, device, "is_equal_to") - sparse_operand(other, device, "is_equal_to")
    if diff.nnz == 0:
        return True
    return bool((xp.abs(diff.data) <= thr).all())
