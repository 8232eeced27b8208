"""
Dense and sparse control paths of the norms and the NaN check.
"""

import math

from .....domain._state import MatrixType
from ..._matrix_builder import matrix_control_path_manager
from ._base import MatrixMixinReduction as MMR
from ._matrix_sums import _reduce_on


def _payload(buf):
    """The elements a reduction must visit: all of them, or the stored non-zeros."""
    return buf.array if buf.matrix_format.matrix_type is MatrixType.DENSE else buf.values


@matrix_control_path_manager(MMR, MMR.frobenius_norm, MatrixType.DENSE)
@matrix_control_path_manager(MMR, MMR.frobenius_norm, MatrixType.SPARSE)
def frobenius_norm(self) -> float:
    buf = _reduce_on(self, "frobenius_norm")
    x = _payload(buf)
    return math.sqrt(float(buf.xp.sum(x * x)))


@matrix_control_path_manager(MMR, MMR.matrix_norm0, MatrixType.DENSE)
@matrix_control_path_manager(MMR, MMR.matrix_norm0, MatrixType.SPARSE)
def matrix_norm0(self) -> int:
    buf = _reduce_on(self, "matrix_norm0")
    return int(buf.xp.count_nonzero(_payload(buf)))


@matrix_control_path_manager(MMR, MMR.has_nan, MatrixType.DENSE)
@matrix_control_path_manager(MMR, MMR.has_nan, MatrixType.SPARSE)
def has_nan(self) -> bool:
    buf = _reduce_on(self, "has_nan")
    return bool(buf.xp.isnan(_payload(buf)).any())
