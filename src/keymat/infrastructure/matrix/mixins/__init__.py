"""
Matrix mixins: the public operation surface and its dense/sparse control paths.
"""

from .arithmetic import MatrixMixinArithmetic
from .reduction import MatrixMixinReduction

__all__ = [
    MatrixMixinArithmetic.__name__,
    MatrixMixinReduction.__name__,
]
