"""
Reduction mixins and format-specific implementations for Matrix operations.

This package aggregates the reduction Matrix mixin and its control paths:

- sum_of_elements / sum_of_abs_elements
- frobenius_norm / matrix_norm0 / has_nan
- is_equal_to

The implementation modules are imported for their side effects so that their
control paths are registered. Only the base mixin is public.
"""

from ._matrix_sums import *
from ._matrix_norms import *
from ._matrix_compare import *
from ._base import MatrixMixinReduction

__all__ = [
    MatrixMixinReduction.__name__,
]
